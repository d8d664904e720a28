"""Declarative markers for platform controllers.

Controllers describe their HTTP surface with these decorators; the endpoint
scanner reads the attached metadata once at startup without ever calling
the decorated code.

    @api_controller(route="api/order")
    @authorize(roles="Admin, Sales")
    class OrderController:

        @http_get("{id}")
        def get(self, id: str) -> Order:
            ...
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")

MARKER_ATTR = "__mcp_markers__"

# Resolution priority when a method carries several verb markers
HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH")


@dataclass
class AuthorizeMarker:
    """An authorization requirement on a controller or action."""
    policy: Optional[str] = None
    roles: Optional[str] = None


@dataclass
class Markers:
    """Discovery metadata attached to a class or function."""
    controller: bool = False
    route: Optional[str] = None
    http_methods: dict[str, Optional[str]] = field(default_factory=dict)
    non_action: bool = False
    action_name: Optional[str] = None
    allow_anonymous: bool = False
    authorize: list[AuthorizeMarker] = field(default_factory=list)


def get_markers(obj: Any) -> Optional[Markers]:
    """Return the markers declared on ``obj`` itself (classes do not inherit them)."""
    if isinstance(obj, type):
        return obj.__dict__.get(MARKER_ATTR)
    return getattr(obj, MARKER_ATTR, None)


def _markers_for(obj: Any) -> Markers:
    markers = get_markers(obj)
    if markers is None:
        markers = Markers()
        setattr(obj, MARKER_ATTR, markers)
    return markers


def api_controller(cls: Optional[type] = None, *, route: Optional[str] = None) -> Any:
    """Mark a class as an API controller, optionally with its base route template."""
    def decorate(target: type) -> type:
        markers = _markers_for(target)
        markers.controller = True
        if route is not None:
            markers.route = route
        return target

    return decorate(cls) if cls is not None else decorate


def route(template: str) -> Callable[[T], T]:
    """Set an explicit route template on a controller or an action."""
    def decorate(target: T) -> T:
        _markers_for(target).route = template
        return target
    return decorate


def _http_method(verb: str) -> Callable[..., Any]:
    def marker(template: Any = None) -> Any:
        # Bare usage: @http_get
        if callable(template):
            _markers_for(template).http_methods.setdefault(verb, None)
            return template

        def decorate(func: T) -> T:
            _markers_for(func).http_methods[verb] = template
            return func
        return decorate

    marker.__name__ = f"http_{verb.lower()}"
    marker.__doc__ = f"Mark a method as a {verb} action, optionally with a route template."
    return marker


http_get = _http_method("GET")
http_post = _http_method("POST")
http_put = _http_method("PUT")
http_delete = _http_method("DELETE")
http_patch = _http_method("PATCH")


def non_action(func: T) -> T:
    """Exclude a public method from discovery."""
    _markers_for(func).non_action = True
    return func


def action_name(name: str) -> Callable[[T], T]:
    """Override the action name used for routes and tool names."""
    def decorate(func: T) -> T:
        _markers_for(func).action_name = name
        return func
    return decorate


def allow_anonymous(target: T) -> T:
    """Allow unauthenticated access to a controller or action."""
    _markers_for(target).allow_anonymous = True
    return target


def authorize(
    target: Any = None,
    *,
    policy: Optional[str] = None,
    roles: Optional[str] = None,
) -> Any:
    """Require authorization; ``roles`` is a comma separated list."""
    def decorate(obj: T) -> T:
        _markers_for(obj).authorize.append(AuthorizeMarker(policy=policy, roles=roles))
        return obj

    return decorate(target) if target is not None else decorate
