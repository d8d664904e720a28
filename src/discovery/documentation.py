"""Documentation index for discovered operations.

Descriptions come from a documentation bundle shipped next to a module's
source file (``orders_api.py`` -> ``orders_api.xml``) in the familiar
``<doc><members><member name="M:...">`` layout, and from docstrings for
members the bundle does not cover. Each module is loaded at most once.
"""

import html
import inspect
import re
import threading
import typing
import xml.etree.ElementTree as ET
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Optional

from shared.logging import get_logger

logger = get_logger(__name__)

_SECTION_HEADERS = {
    "args", "arguments", "parameters", "params", "returns", "return",
    "raises", "yields", "examples", "example", "note", "notes",
}
_PARAM_LINE = re.compile(r"^(\*{0,2}\w+)\s*(?:\([^)]*\))?\s*:\s*(.*)$")


# ---------------------------------------------------------------------------
# Extraction helpers
# ---------------------------------------------------------------------------

def _clean(text: str) -> str:
    text = re.sub(r"\s*(?:\r\n|\r|\n)\s*", " ", text.strip())
    return html.unescape(text).strip()


def extract_summary(text: Optional[str]) -> str:
    """Text of the ``<summary>`` element, newlines collapsed; empty when absent."""
    if not text:
        return ""
    match = re.search(r"<summary>(.*?)</summary>", text, re.DOTALL)
    return _clean(match.group(1)) if match else ""


def extract_param_description(text: Optional[str], param_name: str) -> str:
    """Text of the ``<param name="...">`` element for ``param_name``."""
    if not text or not param_name:
        return ""
    pattern = r'<param name="' + re.escape(param_name) + r'">(.*?)</param>'
    match = re.search(pattern, text, re.DOTALL)
    return _clean(match.group(1)) if match else ""


def extract_returns_description(text: Optional[str]) -> str:
    """Text of the ``<returns>`` element."""
    if not text:
        return ""
    match = re.search(r"<returns>(.*?)</returns>", text, re.DOTALL)
    return _clean(match.group(1)) if match else ""


def docstring_to_xml(docstring: str) -> str:
    """Convert a Google style docstring into summary/param/returns elements."""
    lines = inspect.cleandoc(docstring).splitlines()
    summary: list[str] = []
    params: dict[str, list[str]] = {}
    returns: list[str] = []

    section = "summary"
    current_param: Optional[str] = None
    for line in lines:
        stripped = line.strip()
        header = stripped.rstrip(":").lower()
        if stripped.endswith(":") and header in _SECTION_HEADERS and not line.startswith(" "):
            section = header
            current_param = None
            continue

        if section == "summary":
            summary.append(stripped)
        elif section in ("args", "arguments", "parameters", "params"):
            match = _PARAM_LINE.match(stripped)
            if match and line.startswith(" ") and len(line) - len(line.lstrip()) <= 4:
                current_param = match.group(1).lstrip("*")
                params[current_param] = [match.group(2)]
            elif current_param and stripped:
                params[current_param].append(stripped)
        elif section in ("returns", "return"):
            returns.append(stripped)

    # Only the first paragraph is the summary
    first_paragraph: list[str] = []
    for line in summary:
        if not line and first_paragraph:
            break
        if line:
            first_paragraph.append(line)

    parts = [f"<summary>{' '.join(first_paragraph)}</summary>"]
    for name, text in params.items():
        parts.append(f'<param name="{name}">{" ".join(t for t in text if t)}</param>')
    if any(returns):
        parts.append(f"<returns>{' '.join(r for r in returns if r)}</returns>")
    return "".join(parts)


# ---------------------------------------------------------------------------
# Member keys
# ---------------------------------------------------------------------------

def _strip_generics(name: str) -> str:
    return re.sub(r"\[.*\]", "", name)


def qualified_name(cls: type) -> str:
    """Dotted module + qualified name, nested classes joined with ``.``."""
    return _strip_generics(f"{cls.__module__}.{cls.__qualname__}")


def _type_string(
    annotation: Any,
    class_vars: dict[Any, int],
    method_vars: dict[Any, int],
) -> str:
    if annotation is inspect.Parameter.empty:
        return "builtins.object"
    if annotation is None or annotation is type(None):
        return "builtins.NoneType"
    if isinstance(annotation, typing.TypeVar):
        if annotation in class_vars:
            return f"`{class_vars[annotation]}"
        index = method_vars.setdefault(annotation, len(method_vars))
        return f"``{index}"

    origin = typing.get_origin(annotation)
    if origin is not None:
        args = typing.get_args(annotation)
        if origin is typing.Union or type(annotation).__name__ == "UnionType":
            origin_name = "typing.Union"
        elif isinstance(origin, type):
            origin_name = qualified_name(origin)
        else:
            origin_name = str(origin)
        if not args:
            return origin_name
        rendered = ",".join(_type_string(arg, class_vars, method_vars) for arg in args)
        return f"{origin_name}{{{rendered}}}"

    if isinstance(annotation, type):
        return qualified_name(annotation)
    if annotation is Ellipsis:
        return "..."
    return str(annotation)


def type_key(cls: type) -> str:
    return "T:" + qualified_name(cls)


def property_key(cls: type, name: str) -> str:
    return f"P:{qualified_name(cls)}.{name}"


def method_key(func: Callable[..., Any], owner: Optional[type] = None) -> str:
    """
    Key for a function or method.

    ``M:<owner>.<name>(<param types>)``; the receiver is not part of the
    parameter list and parameterless members have no parentheses.
    """
    if owner is not None:
        key = f"{qualified_name(owner)}.{func.__name__}"
    else:
        key = _strip_generics(f"{func.__module__}.{func.__qualname__}")

    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return "M:" + key

    try:
        hints = typing.get_type_hints(func)
    except (NameError, TypeError, AttributeError):
        # Unresolvable forward references fall back to raw annotations
        hints = {}

    class_vars = {tv: i for i, tv in enumerate(getattr(owner, "__parameters__", ()))}
    method_vars: dict[Any, int] = {}

    parameters = list(signature.parameters.values())
    if owner is not None and parameters and not isinstance(
        inspect.getattr_static(owner, func.__name__, None), staticmethod
    ):
        parameters = parameters[1:]

    rendered = [
        _type_string(hints.get(p.name, p.annotation), class_vars, method_vars)
        for p in parameters
        if p.kind not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
    ]
    if rendered:
        key += "(" + ",".join(rendered) + ")"
    return "M:" + key


def documentation_path(module: ModuleType) -> Optional[Path]:
    """Bundle location: the module source file with an ``.xml`` suffix."""
    source = getattr(module, "__file__", None)
    if not source:
        return None
    path = Path(source)
    if path.name == "__init__.py":
        return path.parent / f"{path.parent.name}.xml"
    return path.with_suffix(".xml")


# ---------------------------------------------------------------------------
# Index
# ---------------------------------------------------------------------------

class DocumentationIndex:
    """
    Thread-safe cache of member documentation.

    ``describe`` returns the raw ``<summary>...`` text for a member key; the
    extraction helpers turn it into plain descriptions.
    """

    def __init__(self) -> None:
        self._docs: dict[str, str] = {}
        self._loaded_modules: set[str] = set()
        self._lock = threading.Lock()

    def load_for_module(self, module: ModuleType) -> None:
        """Load the bundle and docstrings of ``module``; later calls are no-ops."""
        name = getattr(module, "__name__", None)
        if not name:
            return

        with self._lock:
            if name in self._loaded_modules:
                return
            self._loaded_modules.add(name)

            bundle = documentation_path(module)
            if bundle is not None and bundle.is_file():
                count = self._load_bundle(bundle)
                logger.debug("Loaded documentation bundle", module=name, path=str(bundle), members=count)
            else:
                logger.debug("No documentation bundle", module=name, path=str(bundle))

            self._load_docstrings(module)

    def load_file(self, path: str | Path) -> int:
        """Merge a documentation bundle file; returns the number of members read."""
        with self._lock:
            return self._load_bundle(Path(path))

    def _load_bundle(self, path: Path) -> int:
        try:
            tree = ET.parse(path)
        except (ET.ParseError, OSError) as e:
            logger.warning("Failed to load documentation bundle", path=str(path), error=str(e))
            return 0

        count = 0
        for member in tree.getroot().iter("member"):
            key = member.get("name")
            if not key:
                continue
            inner = (member.text or "") + "".join(
                ET.tostring(child, encoding="unicode") for child in member
            )
            self._docs[key] = inner.strip()
            count += 1
        return count

    def _load_docstrings(self, module: ModuleType) -> None:
        for _, cls in inspect.getmembers(module, inspect.isclass):
            if cls.__module__ != module.__name__:
                continue
            if cls.__doc__:
                self._docs.setdefault(type_key(cls), docstring_to_xml(cls.__doc__))
            for attr_name, func in vars(cls).items():
                if isinstance(func, (staticmethod, classmethod)):
                    func = func.__func__
                if not inspect.isfunction(func) or not func.__doc__:
                    continue
                try:
                    key = method_key(func, cls)
                except Exception as e:
                    logger.debug("Skipping docstring", member=attr_name, error=str(e))
                    continue
                self._docs.setdefault(key, docstring_to_xml(func.__doc__))

    def register(self, key: str, text: str) -> None:
        """Add or replace the documentation of one member."""
        with self._lock:
            self._docs[key] = text

    def describe(self, key: str) -> str:
        """Raw documentation for ``key``, empty when unknown."""
        return self._docs.get(key, "")

    def is_loaded(self, module: ModuleType) -> bool:
        return getattr(module, "__name__", None) in self._loaded_modules

    def __contains__(self, key: str) -> bool:
        return key in self._docs

    def __len__(self) -> int:
        return len(self._docs)
