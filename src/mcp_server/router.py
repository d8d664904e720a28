"""Tool Invocation Router for the MCP bridge.

Routes tool calls to the backing platform API.
Handles argument coercion, validation, credential resolution, execution
and auditing.
"""

import asyncio
import json
import re
import time
from typing import Any, Mapping, Optional
from urllib.parse import quote

import httpx

from shared.logging import get_logger
from shared.models import (
    ErrorType,
    InvocationContext,
    InvocationResult,
    OutboundRequest,
    ToolDescriptor,
)
from shared.schema import coerce_arguments, validate_schema
from discovery.scanner import ROUTE_PLACEHOLDER
from mcp_server.audit import AuditLogger
from mcp_server.builtins import BuiltinTool
from mcp_server.catalog import ToolCatalog
from mcp_server.credentials import CredentialResolver
from mcp_server.errors import InvalidArgumentsError, UnknownToolError

logger = get_logger(__name__)

QUERY_METHODS = ("GET", "DELETE")
GENERIC_ERROR_MESSAGE = "An internal error occurred while invoking the tool"


def substitute_route(route: str, arguments: Mapping[str, Any]) -> tuple[str, dict[str, Any]]:
    """
    Fill the route placeholders from ``arguments``.

    Values are URL-quoted; unresolved optional placeholders are dropped.

    Returns:
        The concrete path and the arguments not consumed by it

    Raises:
        InvalidArgumentsError: If a required placeholder has no value
    """
    remaining = dict(arguments)

    def replace(match: re.Match) -> str:
        name = match.group(1)
        placeholder = match.group(0)
        value = remaining.pop(name, None)
        if value is None:
            if "?" in placeholder:
                return ""
            raise InvalidArgumentsError(f"Missing route parameter '{name}'", [f"{name}: required"])
        if isinstance(value, bool):
            value = "true" if value else "false"
        # Catch-all segments keep their slashes
        safe = "/" if placeholder.startswith("{*") else ""
        return quote(str(value), safe=safe)

    path = ROUTE_PLACEHOLDER.sub(replace, route)
    path = re.sub(r"/{2,}", "/", path)
    if len(path) > 1:
        path = path.rstrip("/")
    return path, remaining


def _query_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return [_query_value(v) for v in value]
    if isinstance(value, dict):
        return json.dumps(value)
    return value


def _parse_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class ToolInvocationRouter:
    """
    Routes tool calls to the platform API.

    Responsibilities:
    - Validate arguments against tool schemas
    - Build the outbound request
    - Attach credentials
    - Report every outcome in the result envelope
    - Audit all invocations
    """

    def __init__(
        self,
        catalog: ToolCatalog,
        http_client: httpx.AsyncClient,
        credentials: CredentialResolver,
        audit_logger: Optional[AuditLogger] = None,
        builtins: Optional[Mapping[str, BuiltinTool]] = None,
        default_timeout: Optional[float] = None,
        expose_error_details: bool = False,
    ) -> None:
        self.catalog = catalog
        self.http_client = http_client
        self.credentials = credentials
        self.audit_logger = audit_logger
        self.builtins = dict(builtins or {})
        self.default_timeout = default_timeout
        self.expose_error_details = expose_error_details

    async def invoke(
        self,
        tool_name: str,
        arguments: Any = None,
        context: Optional[InvocationContext] = None,
    ) -> InvocationResult:
        """
        Invoke a tool.

        This is the main entry point for tool execution.

        Args:
            tool_name: Catalog name of the tool
            arguments: JSON object of tool arguments
            context: Invocation context; a fresh one when omitted

        Returns:
            Invocation result; platform failures are reported in it

        Raises:
            UnknownToolError: If no tool has this name
            InvalidArgumentsError: If the arguments are not an object or fail validation
        """
        context = context or InvocationContext()

        tool = self.catalog.find(tool_name)
        if tool is None:
            raise UnknownToolError(tool_name)

        if arguments is None:
            arguments = {}
        if not isinstance(arguments, Mapping):
            raise InvalidArgumentsError("Tool arguments must be a JSON object")
        arguments = dict(arguments)

        logger.debug("Invoking tool", tool=tool_name, request_id=context.request_id)

        builtin = self.builtins.get(tool_name)
        if builtin is not None:
            request = builtin.build_request(arguments)
        else:
            request = self.build_request(tool, arguments)

        start_time = time.perf_counter()
        result = await self._execute(tool, request, context)
        execution_time_ms = (time.perf_counter() - start_time) * 1000

        if self.audit_logger is not None:
            await self.audit_logger.log(tool, arguments, context, result, execution_time_ms)

        return result

    def build_request(self, tool: ToolDescriptor, arguments: dict[str, Any]) -> OutboundRequest:
        """
        Build the outbound request for a discovered tool.

        Raises:
            InvalidArgumentsError: If the arguments violate the tool schema
        """
        coerced = coerce_arguments(arguments, tool.parameters)
        is_valid, errors = validate_schema(coerced, tool.input_schema())
        if not is_valid:
            raise InvalidArgumentsError(
                f"Invalid arguments for tool '{tool.name}': {'; '.join(errors)}",
                errors,
            )

        path, remaining = substitute_route(tool.route, coerced)
        remaining = {k: v for k, v in remaining.items() if v is not None}
        method = tool.http_method.upper()

        if method in QUERY_METHODS:
            return OutboundRequest(
                method=method,
                path=path,
                query={k: _query_value(v) for k, v in remaining.items()},
            )

        body: Any = remaining or None
        if len(remaining) == 1:
            name, value = next(iter(remaining.items()))
            schema = tool.parameters.get(name)
            if schema is not None and schema.type == "object":
                body = value
        return OutboundRequest(method=method, path=path, json_body=body)

    async def _execute(
        self,
        tool: ToolDescriptor,
        request: OutboundRequest,
        context: InvocationContext,
    ) -> InvocationResult:
        timeout = context.timeout_seconds or self.default_timeout
        try:
            if timeout:
                return await asyncio.wait_for(self._send(tool, request, context), timeout)
            return await self._send(tool, request, context)
        except asyncio.TimeoutError:
            logger.warning("Tool invocation timed out", tool=tool.name, timeout=timeout)
            return InvocationResult.failure(
                tool.name,
                error=f"Tool '{tool.name}' timed out after {timeout} seconds",
                error_type=ErrorType.TIMEOUT,
            )
        except httpx.TimeoutException as e:
            logger.warning("Platform request timed out", tool=tool.name, error=str(e))
            return InvocationResult.failure(
                tool.name,
                error=str(e) or "Platform request timed out",
                error_type=ErrorType.TIMEOUT,
            )
        except httpx.TransportError as e:
            logger.warning("Platform request failed", tool=tool.name, error=str(e))
            return InvocationResult.failure(
                tool.name,
                error=str(e) or type(e).__name__,
                error_type=ErrorType.TRANSPORT,
            )
        except Exception as e:
            logger.error("Tool invocation failed", tool=tool.name, error=str(e), exc_info=True)
            error = GENERIC_ERROR_MESSAGE
            if self.expose_error_details:
                error = f"{error}: {e}"
            return InvocationResult.failure(tool.name, error=error, error_type=ErrorType.INTERNAL)

    async def _send(
        self,
        tool: ToolDescriptor,
        request: OutboundRequest,
        context: InvocationContext,
    ) -> InvocationResult:
        if not tool.security.allow_anonymous:
            credential = await self.credentials.resolve(request, context.inbound)
            request = credential.apply(request)

        response = await self.http_client.request(
            request.method,
            request.path,
            params=request.query or None,
            headers=request.headers or None,
            json=request.json_body,
        )
        data = _parse_body(response)

        if response.is_success:
            return InvocationResult.ok(tool.name, data=data, status_code=response.status_code)

        logger.info(
            "Platform returned an error status",
            tool=tool.name,
            status_code=response.status_code,
        )
        return InvocationResult.failure(
            tool.name,
            error=f"HTTP {response.status_code}: {response.reason_phrase}",
            error_type=ErrorType.HTTP,
            details=data,
            status_code=response.status_code,
        )
