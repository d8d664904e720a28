"""Built-in tools.

Hand-written tools that bypass generic forwarding. Each one supplies its own
descriptor, so it is listed like any discovered tool, and turns loosely typed
arguments into the platform request it needs.
"""

import json
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from shared.models import OutboundRequest, ParameterSchema, SecurityRequirement, ToolDescriptor

BUILTIN_MODULE_ID = "mcp"

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off"}


# ---------------------------------------------------------------------------
# Tolerant coercion
# ---------------------------------------------------------------------------

def coerce_string(value: Any) -> Optional[str]:
    """Scalar to non-empty string; None for missing, blank or structured values."""
    if value is None or isinstance(value, (dict, list, tuple, set)):
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value).strip()
    return text or None


def coerce_string_list(value: Any) -> Optional[list[str]]:
    """
    Accept a list, a JSON array string, a comma separated string or a scalar.

    Returns None when nothing usable remains.
    """
    if value is None:
        return None

    items: list[Any]
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith("["):
            try:
                parsed = json.loads(stripped)
            except json.JSONDecodeError:
                parsed = None
            items = parsed if isinstance(parsed, list) else stripped.strip("[]").split(",")
        else:
            items = stripped.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = list(value)
    else:
        items = [value]

    result = [s for s in (coerce_string(item) for item in items) if s is not None]
    return result or None


def coerce_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return None


def coerce_int(value: Any, default: int, minimum: Optional[int] = None) -> int:
    """Integer from int, integral float or numeric string; ``default`` otherwise."""
    result: Optional[int] = None
    if isinstance(value, bool):
        result = None
    elif isinstance(value, int):
        result = value
    elif isinstance(value, float) and value.is_integer():
        result = int(value)
    elif isinstance(value, str):
        try:
            result = int(value.strip())
        except ValueError:
            result = None

    if result is None or (minimum is not None and result < minimum):
        return default
    return result


# ---------------------------------------------------------------------------
# Built-in tool registry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BuiltinTool:
    """A tool whose platform request is assembled by hand."""
    descriptor: ToolDescriptor
    build_request: Callable[[Mapping[str, Any]], OutboundRequest]

    @property
    def name(self) -> str:
        return self.descriptor.name


ORDER_SEARCH_ROUTE = "/api/order/customerOrders/search"
DEFAULT_TAKE = 20

_STRING_CRITERIA = (
    "customerId", "number", "status", "organizationId", "employeeId",
    "startDate", "endDate", "subscriptionId", "keyword", "sort",
)
_LIST_CRITERIA = ("customerIds", "numbers", "statuses", "storeIds")
_BOOL_CRITERIA = ("withPrototypes", "onlyRecurring")


def build_order_search_criteria(arguments: Mapping[str, Any]) -> dict[str, Any]:
    """Assemble the order search criteria, dropping empty values."""
    criteria: dict[str, Any] = {}
    for name in _STRING_CRITERIA:
        value = coerce_string(arguments.get(name))
        if value is not None:
            criteria[name] = value
    for name in _LIST_CRITERIA:
        values = coerce_string_list(arguments.get(name))
        if values is not None:
            criteria[name] = values
    for name in _BOOL_CRITERIA:
        flag = coerce_bool(arguments.get(name))
        if flag is not None:
            criteria[name] = flag
    criteria["take"] = coerce_int(arguments.get("take"), DEFAULT_TAKE, minimum=0)
    criteria["skip"] = coerce_int(arguments.get("skip"), 0, minimum=0)
    return criteria


def _order_search_request(arguments: Mapping[str, Any]) -> OutboundRequest:
    return OutboundRequest(
        method="POST",
        path=ORDER_SEARCH_ROUTE,
        json_body=build_order_search_criteria(arguments),
    )


def _string_param(description: str) -> ParameterSchema:
    return ParameterSchema(type="string", description=description)


def _list_param(description: str) -> ParameterSchema:
    return ParameterSchema(type="array", description=description, items=ParameterSchema(type="string"))


SEARCH_CUSTOMER_ORDERS = BuiltinTool(
    descriptor=ToolDescriptor(
        name="search_customer_orders",
        http_method="POST",
        route=ORDER_SEARCH_ROUTE,
        description="Search customer orders by various criteria",
        parameters={
            "customerId": _string_param("Customer ID to search orders for"),
            "customerIds": _list_param("Array of customer IDs to search orders for"),
            "number": _string_param("Order number to search for"),
            "numbers": _list_param("Array of order numbers to search for"),
            "status": _string_param("Order status to filter by"),
            "statuses": _list_param("Array of order statuses to filter by"),
            "storeIds": _list_param("Array of store IDs to filter orders"),
            "organizationId": _string_param("Organization ID to filter orders"),
            "employeeId": _string_param("Employee ID to filter orders"),
            "startDate": _string_param("Start date for order search (ISO 8601 format)"),
            "endDate": _string_param("End date for order search (ISO 8601 format)"),
            "withPrototypes": ParameterSchema(type="boolean", description="Include prototype orders in search"),
            "onlyRecurring": ParameterSchema(
                type="boolean", description="Search only recurring orders created by subscription"
            ),
            "subscriptionId": _string_param("Search orders with given subscription ID"),
            "keyword": _string_param("Keyword to search for in orders"),
            "take": ParameterSchema(
                type="integer",
                description="Maximum number of orders to return (default: 20)",
                default=DEFAULT_TAKE,
            ),
            "skip": ParameterSchema(
                type="integer",
                description="Number of orders to skip for pagination (default: 0)",
                default=0,
            ),
            "sort": _string_param("Sort expression (e.g., 'createdDate:desc')"),
        },
        module_id=BUILTIN_MODULE_ID,
        source_type_name=__name__,
        source_member_name="search_customer_orders",
        security=SecurityRequirement(requires_authentication=True),
        return_description="Order search result with totalCount and results",
    ),
    build_request=_order_search_request,
)

DEFAULT_BUILTINS: tuple[BuiltinTool, ...] = (SEARCH_CUSTOMER_ORDERS,)


def builtin_registry(tools: tuple[BuiltinTool, ...] = DEFAULT_BUILTINS) -> dict[str, BuiltinTool]:
    """Built-in tools keyed by name."""
    return {tool.name: tool for tool in tools}
