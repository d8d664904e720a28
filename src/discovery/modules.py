"""Installed module enumeration and code loading."""

import importlib
import sys
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Iterable, Optional

from shared.logging import get_logger
from shared.models import ModuleInfo, ModuleMcpConfig
from discovery.manifest import MANIFEST_FILE, ManifestConfigResolver, child_text, read_manifest

logger = get_logger(__name__)


class DiscoveryError(Exception):
    """A module could not be loaded for scanning."""

    def __init__(self, module_id: str, message: str) -> None:
        super().__init__(f"Module '{module_id}': {message}")
        self.module_id = module_id


@dataclass
class LoadedModule:
    """An enabled module together with its imported code."""
    info: ModuleInfo
    config: ModuleMcpConfig
    code: ModuleType


def read_module_info(path: str | Path) -> Optional[ModuleInfo]:
    """
    Read the identity of the module installed at ``path``.

    ``<id>`` defaults to the directory name and ``<entryPoint>`` to the id.
    Directories without a readable manifest are not modules.
    """
    path = Path(path)
    manifest = path / MANIFEST_FILE
    if not manifest.is_file():
        return None

    try:
        root = read_manifest(manifest)
    except (ET.ParseError, OSError) as e:
        logger.warning("Unreadable module manifest", path=str(manifest), error=str(e))
        return None

    module_id = child_text(root, "id") or path.name
    return ModuleInfo(
        id=module_id,
        version=child_text(root, "version") or "1.0.0",
        path=path,
        entry_point=child_text(root, "entryPoint") or module_id,
    )


def discover_modules(root: str | Path) -> list[ModuleInfo]:
    """List the modules installed under ``root``, ordered by directory name."""
    root = Path(root)
    if not root.is_dir():
        logger.warning("Modules path does not exist", path=str(root))
        return []

    modules = []
    for child in sorted(root.iterdir(), key=lambda p: p.name):
        if not child.is_dir():
            continue
        info = read_module_info(child)
        if info is not None:
            modules.append(info)

    logger.info("Discovered modules", path=str(root), count=len(modules))
    return modules


def import_code_module(info: ModuleInfo) -> ModuleType:
    """
    Import a module's entry point.

    Raises:
        DiscoveryError: If the entry point cannot be imported
    """
    directory = str(info.path.resolve())
    if directory not in sys.path:
        sys.path.insert(0, directory)

    entry_point = info.entry_point or info.id
    try:
        return importlib.import_module(entry_point)
    except Exception as e:
        raise DiscoveryError(info.id, f"cannot import '{entry_point}': {e}") from e


def load_modules(
    infos: Iterable[ModuleInfo],
    resolver: ManifestConfigResolver,
) -> list[LoadedModule]:
    """
    Import the code of every enabled module.

    Modules whose code fails to import are logged and skipped.
    """
    loaded: list[LoadedModule] = []
    for info in infos:
        config = resolver.get_config(info)
        if config is None or not config.enabled:
            logger.debug("Module not exposed", module=info.id)
            continue

        try:
            code = import_code_module(info)
        except DiscoveryError as e:
            logger.warning("Module skipped", module=info.id, error=str(e))
            continue

        loaded.append(LoadedModule(info=info, config=config, code=code))
    return loaded
