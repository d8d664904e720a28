"""JSON-RPC handling for the MCP endpoint.

Implements the subset of the Model Context Protocol the bridge serves:
``initialize``, ``tools/list``, ``tools/call`` and ``ping``.
"""

import json
from typing import Any, Optional

from shared.config import BridgeServerSettings
from shared.logging import get_logger
from shared.models import InboundRequest, InvocationContext
from mcp_server.catalog import ToolCatalog
from mcp_server.errors import (
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    BridgeError,
    InternalFaultError,
)
from mcp_server.router import ToolInvocationRouter

logger = get_logger(__name__)

JSONRPC_VERSION = "2.0"


def success_response(request_id: Any, result: Any) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def error_response(
    request_id: Any,
    code: int,
    message: str,
    data: Optional[Any] = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error}


def parse_error_response(detail: Optional[str] = None) -> dict[str, Any]:
    """Response for a body that is not valid JSON."""
    return error_response(None, PARSE_ERROR, "Parse error", detail)


class JsonRpcHandler:
    """
    Dispatches JSON-RPC messages to the catalog and the router.

    Requests yield a response object; notifications (no ``id``) yield None.
    """

    def __init__(
        self,
        catalog: ToolCatalog,
        router: ToolInvocationRouter,
        settings: Optional[BridgeServerSettings] = None,
    ) -> None:
        self.catalog = catalog
        self.router = router
        self.settings = settings or BridgeServerSettings()

    async def handle(
        self,
        payload: Any,
        inbound: Optional[InboundRequest] = None,
    ) -> Optional[Any]:
        """
        Handle a decoded JSON-RPC payload.

        Args:
            payload: A request object or a batch of them
            inbound: Headers and query of the HTTP request carrying the payload

        Returns:
            Response object, list of responses for a batch, or None when
            nothing is to be sent back
        """
        if isinstance(payload, list):
            if not payload:
                return error_response(None, INVALID_REQUEST, "Invalid Request")
            responses = [await self.handle_message(message, inbound) for message in payload]
            return [r for r in responses if r is not None] or None
        return await self.handle_message(payload, inbound)

    async def handle_message(
        self,
        message: Any,
        inbound: Optional[InboundRequest] = None,
    ) -> Optional[dict[str, Any]]:
        if not isinstance(message, dict) or not isinstance(message.get("method"), str):
            request_id = message.get("id") if isinstance(message, dict) else None
            return error_response(request_id, INVALID_REQUEST, "Invalid Request")

        method = message["method"]
        is_notification = "id" not in message
        request_id = message.get("id")

        try:
            result = await self._dispatch(method, message.get("params"), inbound, request_id)
        except BridgeError as e:
            logger.info("JSON-RPC request rejected", method=method, code=e.code, error=e.message)
            fault = e
        except Exception as e:
            logger.error("JSON-RPC request failed", method=method, error=str(e), exc_info=True)
            fault = InternalFaultError(
                "Internal error",
                str(e) if self.settings.expose_error_details else None,
            )
        else:
            return None if is_notification else success_response(request_id, result)

        if is_notification:
            return None
        return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": fault.to_jsonrpc()}

    async def _dispatch(
        self,
        method: str,
        params: Any,
        inbound: Optional[InboundRequest],
        request_id: Any,
    ) -> Any:
        if method == "initialize":
            return self.initialize_result()
        if method == "tools/list":
            return {"tools": self.catalog.get_tools_for_mcp()}
        if method == "tools/call":
            return await self._call_tool(params, inbound, request_id)
        if method == "ping":
            return {}
        if method.startswith("notifications/"):
            return None
        raise _MethodNotFound(method)

    def initialize_result(self) -> dict[str, Any]:
        return {
            "protocolVersion": self.settings.protocol_version,
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {
                "name": self.settings.server_name,
                "version": self.settings.server_version,
            },
        }

    async def _call_tool(
        self,
        params: Any,
        inbound: Optional[InboundRequest],
        request_id: Any,
    ) -> dict[str, Any]:
        if not isinstance(params, dict):
            raise _InvalidParams("params must be an object")
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise _InvalidParams("params.name is required")

        context = InvocationContext(inbound=inbound)
        logger.debug("tools/call", tool=name, rpc_id=request_id, request_id=context.request_id)

        result = await self.router.invoke(name, params.get("arguments"), context)
        return {
            "content": [{"type": "text", "text": json.dumps(result.to_wire())}],
            "isError": not result.success,
        }


class _MethodNotFound(BridgeError):
    code = METHOD_NOT_FOUND
    http_status = 404

    def __init__(self, method: str) -> None:
        super().__init__(f"Method not found: {method}")


class _InvalidParams(BridgeError):
    code = INVALID_PARAMS
    http_status = 400
