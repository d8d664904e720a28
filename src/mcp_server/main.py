"""MCP Bridge - FastAPI Application.

Serves the MCP JSON-RPC endpoint and a small REST surface over the tool
catalog. Discovery runs once in the lifespan handler; requests only read
the resulting state.
"""

import json
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from shared.config import Settings, get_settings
from shared.logging import bind_context, clear_context, get_logger, setup_logging
from shared.models import InboundRequest, InvocationContext
from mcp_server.bootstrap import BridgeState, build_state
from mcp_server.builtins import BUILTIN_MODULE_ID
from mcp_server.errors import BridgeError
from mcp_server.protocol import parse_error_response

logger = get_logger(__name__)


# Request/Response Models
class ToolCallRequest(BaseModel):
    """Request to invoke a tool."""
    name: str = Field(..., description="Tool name as listed by tools/list")
    arguments: Any = Field(default=None, description="JSON object of tool arguments")


class ToolListResponse(BaseModel):
    """List of available tools."""
    tools: list[dict[str, Any]]
    count: int


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    modules: list[str]
    tool_count: int


def _inbound(request: Request) -> InboundRequest:
    return InboundRequest(
        headers=dict(request.headers),
        query=dict(request.query_params),
    )


def _state(request: Request) -> BridgeState:
    state: Optional[BridgeState] = getattr(request.app.state, "bridge", None)
    if state is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Server not initialized"
        )
    return state


def create_app(
    settings: Optional[Settings] = None,
    state: Optional[BridgeState] = None,
) -> FastAPI:
    """
    Create the bridge application.

    Args:
        settings: Application settings; loaded from configuration when omitted
        state: Prebuilt state; discovery runs at startup when omitted
    """
    settings = settings or (state.settings if state is not None else get_settings())
    prefix = "/" + settings.mcp_server.route_prefix.strip("/")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        setup_logging(settings.log_level, json_output=settings.environment == "production")
        logger.info("Starting MCP bridge", route_prefix=prefix)

        bridge = state or build_state(settings)
        app.state.bridge = bridge

        logger.info(
            "MCP bridge started",
            modules=bridge.catalog.module_ids(),
            tool_count=len(bridge.catalog)
        )

        yield

        logger.info("Shutting down MCP bridge")
        await bridge.close()

    app = FastAPI(
        title=settings.mcp_server.server_name,
        description="Exposes commerce platform APIs as MCP tools",
        version=settings.mcp_server.server_version,
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def malformed_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Malformed REST bodies are client errors (400), like invalid tool arguments."""
        errors = [
            f"{'.'.join(str(p) for p in e.get('loc', ()) if p != 'body')}: {e.get('msg', '')}"
            for e in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": "Malformed request", "errors": errors},
        )

    async def jsonrpc(request: Request) -> Response:
        """MCP JSON-RPC endpoint."""
        bridge = _state(request)

        try:
            payload = json.loads(await request.body())
        except ValueError as e:
            logger.info("Unparsable JSON-RPC body", error=str(e))
            return JSONResponse(parse_error_response())

        result = await bridge.handler.handle(payload, _inbound(request))
        if result is None:
            return Response(status_code=status.HTTP_202_ACCEPTED)
        return JSONResponse(result)

    app.add_api_route(prefix, jsonrpc, methods=["POST"], tags=["MCP"])
    app.add_api_route(f"{prefix}/sse", jsonrpc, methods=["POST"], tags=["MCP"])

    @app.get(f"{prefix}/status", tags=["MCP"])
    async def server_status(request: Request):
        """Server information and discovery statistics."""
        bridge = _state(request)
        server = bridge.settings.mcp_server
        tools = bridge.catalog.list_tools()
        return {
            "status": "running",
            "protocolVersion": server.protocol_version,
            "serverInfo": {"name": server.server_name, "version": server.server_version},
            "capabilities": {"tools": {"listChanged": False}},
            "statistics": {
                "discoveredEndpoints": sum(1 for t in tools if t.module_id != BUILTIN_MODULE_ID),
                "availableTools": len(tools),
                "modules": len(bridge.catalog.module_ids()),
            },
        }

    @app.get(f"{prefix}/tools", response_model=ToolListResponse, tags=["Tools"])
    async def list_tools(request: Request):
        """List all available tools in MCP format."""
        tools = _state(request).catalog.get_tools_for_mcp()
        return ToolListResponse(tools=tools, count=len(tools))

    @app.post(f"{prefix}/tools/call", tags=["Tools"])
    async def call_tool(body: ToolCallRequest, request: Request):
        """
        Invoke a tool.

        Platform failures are returned with ``success: false``; unknown tools
        and invalid arguments are HTTP errors.
        """
        bridge = _state(request)
        context = InvocationContext(inbound=_inbound(request))
        bind_context(request_id=context.request_id)
        try:
            result = await bridge.router.invoke(body.name, body.arguments, context)
        except BridgeError as e:
            raise HTTPException(status_code=e.http_status, detail=e.message)
        finally:
            clear_context()
        return JSONResponse(result.to_wire())

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check(request: Request):
        """Health check endpoint."""
        bridge = _state(request)
        return HealthResponse(
            status="healthy",
            version=bridge.settings.mcp_server.server_version,
            modules=bridge.catalog.module_ids(),
            tool_count=len(bridge.catalog)
        )

    return app


def main():
    """Run the MCP bridge."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "mcp_server.main:create_app",
        factory=True,
        host=settings.mcp_server.host,
        port=settings.mcp_server.port,
        reload=settings.environment == "development"
    )


if __name__ == "__main__":
    main()
