"""Startup wiring for the MCP bridge.

Runs discovery once and assembles the long-lived components shared by all
requests.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import httpx

from shared.config import Settings
from shared.logging import get_logger
from discovery.documentation import DocumentationIndex
from discovery.manifest import ManifestConfigResolver
from discovery.modules import LoadedModule, discover_modules, load_modules
from discovery.scanner import EndpointScanner
from mcp_server.audit import AuditLogger
from mcp_server.builtins import builtin_registry
from mcp_server.catalog import ToolCatalog
from mcp_server.credentials import CredentialResolver
from mcp_server.protocol import JsonRpcHandler
from mcp_server.router import ToolInvocationRouter

logger = get_logger(__name__)


@dataclass
class BridgeState:
    """Components built at startup and shared by every request."""
    settings: Settings
    catalog: ToolCatalog
    router: ToolInvocationRouter
    handler: JsonRpcHandler
    http_client: httpx.AsyncClient
    audit_logger: AuditLogger
    modules: list[LoadedModule] = field(default_factory=list)
    owns_http_client: bool = True

    async def close(self) -> None:
        await self.audit_logger.flush()
        if self.owns_http_client:
            await self.http_client.aclose()


def create_http_client(settings: Settings) -> httpx.AsyncClient:
    """Client for the backing platform; keeps the httpx default timeout unless configured."""
    kwargs: dict[str, Any] = {"base_url": settings.platform.base_url}
    if settings.platform.timeout_seconds is not None:
        kwargs["timeout"] = settings.platform.timeout_seconds
    return httpx.AsyncClient(**kwargs)


def build_state(
    settings: Settings,
    http_client: Optional[httpx.AsyncClient] = None,
    modules_path: Optional[str | Path] = None,
) -> BridgeState:
    """
    Discover modules and build the catalog, router and protocol handler.

    Args:
        settings: Application settings
        http_client: Client for the platform; created from settings when omitted
        modules_path: Overrides ``settings.mcp_server.modules_path``

    Returns:
        Ready to serve state
    """
    server_settings = settings.mcp_server

    resolver = ManifestConfigResolver()
    infos = discover_modules(modules_path or server_settings.modules_path)
    modules = load_modules(infos, resolver)

    builtins = builtin_registry()
    catalog = ToolCatalog(EndpointScanner(DocumentationIndex()))
    catalog.rebuild(modules, [tool.descriptor for tool in builtins.values()])

    owns_http_client = http_client is None
    client = http_client or create_http_client(settings)

    audit_logger = AuditLogger(
        log_path=server_settings.audit_log_path,
        enabled=server_settings.enable_audit,
    )
    router = ToolInvocationRouter(
        catalog=catalog,
        http_client=client,
        credentials=CredentialResolver(settings.platform, client),
        audit_logger=audit_logger,
        builtins=builtins,
        default_timeout=server_settings.invocation_timeout_seconds,
        expose_error_details=server_settings.expose_error_details,
    )
    handler = JsonRpcHandler(catalog, router, server_settings)

    logger.info(
        "Bridge state built",
        modules=[m.info.id for m in modules],
        tool_count=len(catalog),
    )
    return BridgeState(
        settings=settings,
        catalog=catalog,
        router=router,
        handler=handler,
        http_client=client,
        audit_logger=audit_logger,
        modules=modules,
        owns_http_client=owns_http_client,
    )
