"""Fault taxonomy for the MCP bridge.

Protocol-level faults are raised as ``BridgeError`` subclasses; each knows
its JSON-RPC error code and the HTTP status used by the REST surface.
Failures of the backing platform are not errors here: they are reported
inside the invocation result.
"""

from typing import Any, Optional

# JSON-RPC 2.0 error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class BridgeError(Exception):
    """Base class for bridge faults."""
    code: int = INTERNAL_ERROR
    http_status: int = 500

    def __init__(self, message: str, data: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.data = data

    def to_jsonrpc(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


class UnknownToolError(BridgeError):
    """No tool with the requested name is registered."""
    code = METHOD_NOT_FOUND
    http_status = 404

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool '{tool_name}' not found")
        self.tool_name = tool_name


class InvalidArgumentsError(BridgeError):
    """Tool arguments are missing, malformed or fail schema validation."""
    code = INVALID_PARAMS
    http_status = 400

    def __init__(self, message: str, errors: Optional[list[str]] = None) -> None:
        super().__init__(message, data={"errors": errors} if errors else None)
        self.errors = errors or []


class InternalFaultError(BridgeError):
    """Unexpected failure inside the bridge itself."""
