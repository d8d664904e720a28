"""Module manifest parsing.

Each installed module ships a ``module.manifest`` XML file. The optional
``mcpConfiguration`` (or ``mcp``) element inside it declares whether the
module's controllers are exposed as tools and how:

    <mcpConfiguration>
      <enabled>true</enabled>
      <apiExposure>
        <controllers>
          <include pattern="*Controller" />
          <exclude pattern="Internal*" />
        </controllers>
        <methods>
          <include httpMethod="GET" />
        </methods>
        <security>
          <requireAuthentication>true</requireAuthentication>
          <mcpPermissions>
            <permission>order:read</permission>
          </mcpPermissions>
        </security>
      </apiExposure>
      <toolNaming>
        <convention>module_controller_action</convention>
        <separator>_</separator>
      </toolNaming>
    </mcpConfiguration>

Modules opt in explicitly: a module without this block is not exposed.
"""

import threading
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from shared.logging import get_logger
from shared.models import ModuleInfo, ModuleMcpConfig

logger = get_logger(__name__)

MANIFEST_FILE = "module.manifest"
CONFIG_ELEMENTS = ("mcpConfiguration", "mcp")


def local_name(tag: str) -> str:
    """Element name without its XML namespace."""
    return tag.rsplit("}", 1)[-1]


def find_child(element: Optional[ET.Element], name: str) -> Optional[ET.Element]:
    if element is None:
        return None
    for child in element:
        if local_name(child.tag) == name:
            return child
    return None


def find_children(element: Optional[ET.Element], name: str) -> list[ET.Element]:
    if element is None:
        return []
    return [child for child in element if local_name(child.tag) == name]


def child_text(element: Optional[ET.Element], name: str) -> Optional[str]:
    """Stripped text of a child element; None when missing or blank."""
    child = find_child(element, name)
    if child is None or child.text is None or not child.text.strip():
        return None
    return child.text.strip()


def read_manifest(path: Path) -> ET.Element:
    """Parse a manifest file and return its root element."""
    return ET.parse(path).getroot()


def find_config_element(root: ET.Element) -> Optional[ET.Element]:
    for element in root.iter():
        if local_name(element.tag) in CONFIG_ELEMENTS:
            return element
    return None


def _set_text(target: dict[str, Any], key: str, element: Optional[ET.Element], name: str) -> None:
    value = child_text(element, name)
    if value is not None:
        target[key] = value


def _pattern_rules(element: Optional[ET.Element], attribute: str) -> dict[str, list[str]]:
    rules: dict[str, list[str]] = {}
    for kind in ("include", "exclude"):
        values = [
            (child.get(attribute) or child.text or "").strip()
            for child in find_children(element, kind)
        ]
        rules[kind] = [v for v in values if v]
    return rules


def config_from_element(element: ET.Element) -> ModuleMcpConfig:
    """
    Deserialize an ``mcpConfiguration`` element.

    Absent elements take their defaults.

    Raises:
        ValidationError: If a value cannot be converted (e.g. ``<enabled>maybe</enabled>``)
    """
    data: dict[str, Any] = {}
    _set_text(data, "enabled", element, "enabled")
    _set_text(data, "description", element, "description")
    _set_text(data, "version", element, "version")

    capabilities = find_child(element, "capabilities")
    if capabilities is not None:
        caps: dict[str, Any] = {}
        for name in ("tools", "resources", "prompts"):
            _set_text(caps, name, capabilities, name)
        data["capabilities"] = caps

    exposure = find_child(element, "apiExposure")
    if exposure is not None:
        data["controllers"] = _pattern_rules(find_child(exposure, "controllers"), "pattern")
        data["methods"] = _pattern_rules(find_child(exposure, "methods"), "httpMethod")

        security = find_child(exposure, "security")
        if security is not None:
            sec: dict[str, Any] = {}
            _set_text(sec, "require_authentication", security, "requireAuthentication")
            _set_text(sec, "respect_existing_authorization", security, "respectExistingAuthorization")
            permissions = find_child(security, "mcpPermissions")
            sec["permissions"] = [
                p.text.strip()
                for p in find_children(permissions, "permission")
                if p.text and p.text.strip()
            ]
            data["security"] = sec

    naming = find_child(element, "toolNaming")
    if naming is not None:
        tool_naming: dict[str, Any] = {}
        _set_text(tool_naming, "convention", naming, "convention")
        _set_text(tool_naming, "remove_controller_suffix", naming, "removeControllerSuffix")
        _set_text(tool_naming, "use_camel_case", naming, "useCamelCase")
        separator = find_child(naming, "separator")
        if separator is not None and separator.text:
            # Whitespace is a legal separator, do not strip
            tool_naming["separator"] = separator.text
        data["tool_naming"] = tool_naming

    return ModuleMcpConfig.model_validate(data)


def parse_mcp_config(manifest_xml: str) -> Optional[ModuleMcpConfig]:
    """
    Extract the MCP configuration from manifest XML text.

    Returns None when the manifest has no configuration block.

    Raises:
        ET.ParseError: If the XML is malformed
        ValidationError: If a configuration value is invalid
    """
    root = ET.fromstring(manifest_xml)
    element = find_config_element(root)
    if element is None:
        return None
    return config_from_element(element)


class ManifestConfigResolver:
    """
    Resolves and caches the MCP configuration of each module.

    Never raises: missing or broken manifests resolve to None.
    """

    def __init__(self) -> None:
        self._configs: dict[str, ModuleMcpConfig] = {}
        self._lock = threading.Lock()

    def get_config(self, module_info: Optional[ModuleInfo]) -> Optional[ModuleMcpConfig]:
        """
        Get the MCP configuration of a module.

        Args:
            module_info: Installed module

        Returns:
            Parsed configuration with defaults applied, or None
        """
        if module_info is None:
            return None

        cached = self._configs.get(module_info.id)
        if cached is not None:
            return cached

        config = self._load(module_info)
        if config is not None:
            with self._lock:
                config = self._configs.setdefault(module_info.id, config)
            logger.debug("Loaded MCP configuration", module=module_info.id, enabled=config.enabled)
        return config

    def _load(self, module_info: ModuleInfo) -> Optional[ModuleMcpConfig]:
        manifest_path = module_info.manifest_path
        if not manifest_path.is_file():
            logger.debug("Manifest file not found", module=module_info.id, path=str(manifest_path))
            return None

        try:
            config = parse_mcp_config(manifest_path.read_text(encoding="utf-8"))
        except (ET.ParseError, OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to read module manifest", module=module_info.id, path=str(manifest_path), error=str(e))
            return None
        except ValidationError as e:
            logger.warning("Invalid MCP configuration", module=module_info.id, errors=e.error_count())
            return None

        if config is None:
            logger.debug("Manifest has no MCP configuration", module=module_info.id)
        return config

    def has_config(self, module_info: Optional[ModuleInfo]) -> bool:
        return self.get_config(module_info) is not None

    def is_enabled(self, module_info: Optional[ModuleInfo]) -> bool:
        """True only for modules that explicitly enable MCP exposure."""
        config = self.get_config(module_info)
        return config is not None and config.enabled

    def get_all_configs(self, modules: Iterable[ModuleInfo]) -> dict[str, ModuleMcpConfig]:
        """Enabled configurations keyed by module id."""
        result: dict[str, ModuleMcpConfig] = {}
        for module_info in modules:
            config = self.get_config(module_info)
            if config is not None and config.enabled:
                result[module_info.id] = config
        return result

    def clear(self) -> None:
        with self._lock:
            self._configs.clear()
