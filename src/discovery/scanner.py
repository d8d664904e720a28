"""Endpoint scanner.

Turns the marked controllers of a code module into tool descriptors,
applying the module's exposure policy, its documentation and the
authorization markers on each controller and action.
"""

import importlib
import inspect
import pkgutil
import re
import sys
import typing
from types import ModuleType
from typing import Any, Callable, Iterator, Optional

from pydantic import BaseModel

from shared.logging import get_logger
from shared.models import (
    ModuleMcpConfig,
    ParameterSchema,
    PatternRules,
    SecurityRequirement,
    ToolDescriptor,
    ToolNamingConfig,
    ToolNamingConvention,
)
from discovery.documentation import (
    DocumentationIndex,
    extract_param_description,
    extract_returns_description,
    extract_summary,
    method_key,
    property_key,
    qualified_name,
)
from discovery.markers import HTTP_METHODS, Markers, get_markers
from discovery.typemap import build_parameter_schema

logger = get_logger(__name__)

CONTROLLER_SUFFIX = "Controller"

ROUTE_PLACEHOLDER = re.compile(r"\{\*{0,2}([A-Za-z_][A-Za-z0-9_]*)[^}]*\}")


# ---------------------------------------------------------------------------
# Policy helpers
# ---------------------------------------------------------------------------

def matches_pattern(name: str, pattern: str) -> bool:
    """Case-insensitive, anchored glob match; ``*`` matches any run of characters."""
    pattern = pattern.strip()
    if pattern == "*":
        return True
    regex = "^" + re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".") + "$"
    return re.match(regex, name, re.IGNORECASE) is not None


def should_include_controller(controller_name: str, rules: PatternRules) -> bool:
    """Exclude patterns win; an empty include list accepts everything else."""
    if any(matches_pattern(controller_name, p) for p in rules.exclude):
        return False
    if not rules.include:
        return True
    return any(matches_pattern(controller_name, p) for p in rules.include)


def is_http_method_allowed(http_method: str, rules: PatternRules) -> bool:
    verb = http_method.upper()
    if verb in rules.exclude:
        return False
    if not rules.include:
        return True
    return verb in rules.include


def strip_controller_suffix(name: str) -> str:
    if len(name) > len(CONTROLLER_SUFFIX) and name.lower().endswith(CONTROLLER_SUFFIX.lower()):
        return name[: -len(CONTROLLER_SUFFIX)]
    return name


def generate_tool_name(
    module_id: str,
    controller_name: str,
    action_name: str,
    http_method: str,
    naming: Optional[ToolNamingConfig] = None,
) -> str:
    """
    Build a deterministic tool name.

    Args:
        module_id: Owning module id
        controller_name: Controller class name, suffix included
        action_name: Action (method) name
        http_method: HTTP verb of the action
        naming: Naming options; defaults when omitted

    Returns:
        Segments joined with the configured separator, e.g. ``shop_order_list``
    """
    naming = naming or ToolNamingConfig()
    convention = ToolNamingConvention.parse(naming.convention)

    if convention == ToolNamingConvention.CONTROLLER_ACTION:
        segments = [controller_name, action_name]
    elif convention == ToolNamingConvention.MODULE_ACTION:
        segments = [module_id, action_name]
    elif convention == ToolNamingConvention.METHOD_CONTROLLER_ACTION:
        segments = [http_method, controller_name, action_name]
    else:
        segments = [module_id, controller_name, action_name]

    formatted = []
    for segment in segments:
        if naming.remove_controller_suffix:
            segment = strip_controller_suffix(segment)
        if naming.use_camel_case:
            segment = segment[:1].lower() + segment[1:]
        else:
            segment = segment.lower()
        formatted.append(segment)

    return naming.separator.join(formatted)


def route_placeholders(route: str) -> list[str]:
    """Names of the ``{name}``, ``{name:constraint}`` and ``{name?}`` segments of a route."""
    return list(dict.fromkeys(ROUTE_PLACEHOLDER.findall(route)))


def _join_route(*parts: str) -> str:
    segments = [p.strip("/") for p in parts if p and p.strip("/")]
    return "/" + "/".join(segments)


def _replace_tokens(template: str, controller: str, action: str) -> str:
    return (
        template.replace("[controller]", controller)
        .replace("[action]", action)
    )


def build_security(
    controller_markers: Markers,
    method_markers: Markers,
    config: ModuleMcpConfig,
) -> SecurityRequirement:
    """Merge the authorization markers of an action and its controller with module defaults."""
    if method_markers.allow_anonymous or controller_markers.allow_anonymous:
        return SecurityRequirement(allow_anonymous=True)

    roles: list[str] = []
    policies: list[str] = []
    if config.security.respect_existing_authorization:
        for marker in [*method_markers.authorize, *controller_markers.authorize]:
            if marker.policy:
                policies.append(marker.policy)
            if marker.roles:
                roles.extend(role.strip() for role in marker.roles.split(","))

    return SecurityRequirement(
        requires_authentication=config.security.require_authentication,
        required_permissions=list(config.security.permissions),
        required_roles=roles,
        authorization_policies=policies,
    )


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------

class EndpointScanner:
    """
    Discovers tool descriptors in imported module code.

    Scanning never calls controller code; it only reads markers, signatures
    and documentation.
    """

    def __init__(self, doc_index: Optional[DocumentationIndex] = None) -> None:
        self.doc_index = doc_index or DocumentationIndex()

    def discover(
        self,
        code_module: Optional[ModuleType],
        config: Optional[ModuleMcpConfig],
        module_id: str,
    ) -> list[ToolDescriptor]:
        """
        Discover the exposed endpoints of a module.

        Args:
            code_module: Imported module or package holding the controllers
            config: The module's exposure policy
            module_id: Module id used in tool names

        Returns:
            Descriptors in controller then method order; empty when the module
            is not enabled
        """
        if code_module is None or config is None or not config.enabled:
            return []

        descriptors: list[ToolDescriptor] = []
        for controller in self.find_controllers(code_module):
            if not should_include_controller(controller.__name__, config.controllers):
                logger.debug("Controller excluded", module=module_id, controller=controller.__name__)
                continue
            try:
                descriptors.extend(self._discover_controller(controller, config, module_id))
            except Exception as e:
                logger.warning(
                    "Failed to scan controller",
                    module=module_id,
                    controller=controller.__name__,
                    error=str(e),
                )

        logger.info("Discovered endpoints", module=module_id, count=len(descriptors))
        return descriptors

    def find_controllers(self, code_module: ModuleType) -> list[type]:
        """Public, concrete, marked controller classes defined in the module or its sub-modules."""
        controllers: list[type] = []
        seen: set[int] = set()
        for module in _walk_modules(code_module):
            for name, cls in inspect.getmembers(module, inspect.isclass):
                if id(cls) in seen or cls.__module__ != module.__name__:
                    continue
                if name.startswith("_") or inspect.isabstract(cls):
                    continue
                if not name.endswith(CONTROLLER_SUFFIX):
                    continue
                markers = get_markers(cls)
                if markers is None or not markers.controller:
                    continue
                seen.add(id(cls))
                controllers.append(cls)
        return controllers

    def _discover_controller(
        self,
        controller: type,
        config: ModuleMcpConfig,
        module_id: str,
    ) -> list[ToolDescriptor]:
        self._load_documentation(controller)
        controller_markers = get_markers(controller) or Markers()
        short_name = strip_controller_suffix(controller.__name__)

        descriptors = []
        for name, func in _public_methods(controller):
            method_markers = get_markers(func)
            if method_markers is None or method_markers.non_action or not method_markers.http_methods:
                continue

            verbs = [
                verb for verb in HTTP_METHODS
                if verb in method_markers.http_methods and is_http_method_allowed(verb, config.methods)
            ]
            if not verbs:
                logger.debug("HTTP method not exposed", controller=controller.__name__, action=name)
                continue

            try:
                descriptors.append(
                    self._build_descriptor(
                        controller, controller_markers, short_name, func, method_markers,
                        verbs[0], config, module_id,
                    )
                )
            except Exception as e:
                logger.warning(
                    "Failed to build tool descriptor",
                    module=module_id,
                    controller=controller.__name__,
                    action=name,
                    error=str(e),
                )
        return descriptors

    def _build_descriptor(
        self,
        controller: type,
        controller_markers: Markers,
        short_name: str,
        func: Callable[..., Any],
        method_markers: Markers,
        http_method: str,
        config: ModuleMcpConfig,
        module_id: str,
    ) -> ToolDescriptor:
        action = method_markers.action_name or func.__name__
        route = self._resolve_route(controller_markers, short_name, method_markers, http_method, action)

        doc = self._describe_method(controller, func)
        parameters = self._build_parameters(func, doc)
        for placeholder in route_placeholders(route):
            existing = parameters.get(placeholder)
            if existing is None:
                parameters[placeholder] = ParameterSchema(
                    type="string",
                    description=f"Route parameter: {placeholder}",
                    required=True,
                )
            elif not existing.required:
                parameters[placeholder] = existing.model_copy(update={"required": True})

        return ToolDescriptor(
            name=generate_tool_name(module_id, controller.__name__, action, http_method, config.tool_naming),
            http_method=http_method,
            route=route,
            description=extract_summary(doc) or f"{http_method} {route}",
            parameters=parameters,
            module_id=module_id,
            source_type_name=qualified_name(controller),
            source_member_name=func.__name__,
            security=build_security(controller_markers, method_markers, config),
            return_description=extract_returns_description(doc) or None,
        )

    @staticmethod
    def _resolve_route(
        controller_markers: Markers,
        short_name: str,
        method_markers: Markers,
        http_method: str,
        action: str,
    ) -> str:
        token = short_name.lower()
        if controller_markers.route is not None:
            base = _replace_tokens(controller_markers.route, token, action)
        else:
            base = token

        template = method_markers.http_methods.get(http_method)
        if method_markers.route is not None:
            route = _join_route(method_markers.route)
        elif template is not None:
            route = _join_route(template) if template.startswith("/") else _join_route(base, template)
        else:
            route = _join_route(base, action)
        return _replace_tokens(route, token, action)

    def _build_parameters(self, func: Callable[..., Any], doc: str) -> dict[str, ParameterSchema]:
        signature = inspect.signature(func)
        try:
            hints = typing.get_type_hints(func)
        except (NameError, TypeError, AttributeError):
            hints = {}

        parameters: dict[str, ParameterSchema] = {}
        for index, param in enumerate(signature.parameters.values()):
            if index == 0 and param.name in ("self", "cls"):
                continue
            if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
                continue
            parameters[param.name] = build_parameter_schema(
                hints.get(param.name, param.annotation),
                description=extract_param_description(doc, param.name),
                required=param.default is inspect.Parameter.empty,
                default=param.default,
                describe_property=self._describe_property,
            )
        return parameters

    def _describe_property(self, owner: type, name: str) -> str:
        summary = extract_summary(self.doc_index.describe(property_key(owner, name)))
        if summary:
            return summary
        if issubclass(owner, BaseModel):
            field = owner.model_fields.get(name)
            if field is not None and field.description:
                return field.description
        return ""

    def _describe_method(self, controller: type, func: Callable[..., Any]) -> str:
        """Documentation of an action, keyed by the controller or the base class declaring it."""
        doc = self.doc_index.describe(method_key(func, controller))
        if doc:
            return doc
        owner = _declaring_class(controller, func)
        if owner is None or owner is controller:
            return ""
        # Inherited actions are documented next to their base controller
        self._load_documentation(owner)
        return self.doc_index.describe(method_key(func, owner))

    def _load_documentation(self, controller: type) -> None:
        module = sys.modules.get(controller.__module__)
        if module is not None:
            self.doc_index.load_for_module(module)


def _walk_modules(code_module: ModuleType) -> Iterator[ModuleType]:
    yield code_module
    search_path = getattr(code_module, "__path__", None)
    if search_path is None:
        return
    for info in pkgutil.walk_packages(search_path, code_module.__name__ + "."):
        try:
            yield importlib.import_module(info.name)
        except Exception as e:
            logger.warning("Failed to import sub-module", module=info.name, error=str(e))


def _declaring_class(cls: type, func: Callable[..., Any]) -> Optional[type]:
    for klass in cls.__mro__:
        if vars(klass).get(func.__name__) is func:
            return klass
    return None


def _public_methods(cls: type) -> Iterator[tuple[str, Callable[..., Any]]]:
    """Public instance methods, inherited ones included, in definition order."""
    seen: set[str] = set()
    for klass in cls.__mro__:
        if klass is object:
            continue
        for name, attr in vars(klass).items():
            if name in seen or name.startswith("_"):
                continue
            seen.add(name)
            if inspect.isfunction(attr):
                yield name, attr
