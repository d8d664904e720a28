"""MCP Client - access to the Commerce MCP Bridge.

Lists and calls bridge tools over the MCP JSON-RPC endpoint.
"""

from mcp_client.client import (
    BridgeClient,
    BridgeClientError,
    BridgeConnectionError,
    BridgeProtocolError,
)

__all__ = [
    "BridgeClient",
    "BridgeClientError",
    "BridgeConnectionError",
    "BridgeProtocolError",
]
