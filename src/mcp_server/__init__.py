"""MCP Bridge Server - tool catalog, invocation routing and the MCP endpoint.

The server discovers the platform operations that modules expose, lists
them as tools and forwards tool calls to the platform API.
"""

from mcp_server.catalog import ToolCatalog
from mcp_server.credentials import CredentialResolver
from mcp_server.errors import BridgeError, InvalidArgumentsError, UnknownToolError
from mcp_server.protocol import JsonRpcHandler
from mcp_server.router import ToolInvocationRouter

__all__ = [
    "ToolCatalog",
    "CredentialResolver",
    "BridgeError",
    "InvalidArgumentsError",
    "UnknownToolError",
    "JsonRpcHandler",
    "ToolInvocationRouter",
]
