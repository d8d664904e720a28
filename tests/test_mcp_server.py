"""Tests for MCP bridge server components."""

import asyncio
import json
import time

import httpx
import pytest
from unittest.mock import AsyncMock

from shared.config import PlatformSettings
from shared.models import (
    CallCredential,
    ErrorType,
    InboundRequest,
    InvocationContext,
    InvocationResult,
    ParameterSchema,
    SecurityRequirement,
    ToolDescriptor,
)

BASE_URL = "http://platform.test"


def make_tool(**overrides) -> ToolDescriptor:
    fields = {
        "name": "shop_order_get",
        "http_method": "GET",
        "route": "/api/order/{id}",
        "module_id": "shop",
        "parameters": {
            "id": ParameterSchema(type="string", required=True),
            "take": ParameterSchema(type="integer"),
        },
    }
    fields.update(overrides)
    return ToolDescriptor(**fields)


def make_router(handler, tools, platform: PlatformSettings | None = None, **kwargs):
    from mcp_server.catalog import ToolCatalog
    from mcp_server.credentials import CredentialResolver
    from mcp_server.router import ToolInvocationRouter

    catalog = ToolCatalog()
    for tool in tools:
        catalog.register(tool)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE_URL)
    credentials = CredentialResolver(platform or PlatformSettings(api_key="K1"), client)
    return ToolInvocationRouter(catalog, client, credentials, **kwargs)


class TestToolCatalog:
    """Tests for the ToolCatalog."""

    def test_register_and_find(self):
        """Test registering a tool."""
        from mcp_server.catalog import ToolCatalog

        catalog = ToolCatalog()
        catalog.register(make_tool())

        assert catalog.find("shop_order_get") is not None
        assert catalog.find("missing") is None
        assert len(catalog) == 1

    def test_collision_last_write_wins(self):
        """Test that a duplicate name replaces the earlier tool."""
        from mcp_server.catalog import ToolCatalog

        catalog = ToolCatalog()
        catalog.register(make_tool(route="/first/{id}"))
        catalog.register(make_tool(route="/second/{id}"))

        assert len(catalog) == 1
        assert catalog.find("shop_order_get").route == "/second/{id}"

    def test_tools_for_mcp(self):
        """Test the tools/list format."""
        from mcp_server.catalog import ToolCatalog

        catalog = ToolCatalog()
        catalog.register(make_tool())

        tools = catalog.get_tools_for_mcp()

        assert tools == [{
            "name": "shop_order_get",
            "description": "GET /api/order/{id}",
            "inputSchema": {
                "type": "object",
                "properties": {"id": {"type": "string"}, "take": {"type": "integer"}},
                "required": ["id"],
            },
        }]

    def test_rebuild_from_modules(self, fixtures_path):
        """Test scanning enabled modules and adding built-ins."""
        from discovery.manifest import ManifestConfigResolver
        from discovery.modules import discover_modules, load_modules
        from mcp_server.builtins import SEARCH_CUSTOMER_ORDERS
        from mcp_server.catalog import ToolCatalog

        catalog = ToolCatalog()
        modules = load_modules(discover_modules(fixtures_path), ManifestConfigResolver())

        count = catalog.rebuild(modules, [SEARCH_CUSTOMER_ORDERS.descriptor])

        assert count == 8
        assert catalog.module_ids() == ["shop"]
        assert "shop_order_list" in catalog
        assert catalog.list_tools()[-1].name == "search_customer_orders"
        assert len(catalog.list_tools(module_id="shop")) == 7

    def test_rebuild_without_enabled_modules_is_empty(self):
        """Test that no enabled module means no tools at all."""
        from mcp_server.builtins import SEARCH_CUSTOMER_ORDERS
        from mcp_server.catalog import ToolCatalog

        catalog = ToolCatalog()

        assert catalog.rebuild([], [SEARCH_CUSTOMER_ORDERS.descriptor]) == 0
        assert catalog.get_tools_for_mcp() == []


class TestCredentialResolver:
    """Tests for outbound credential resolution."""

    @pytest.mark.asyncio
    async def test_api_key_beats_bearer(self):
        """Test that a configured API key wins over a bearer token."""
        from mcp_server.credentials import CredentialResolver

        resolver = CredentialResolver(PlatformSettings(api_key="K1", bearer_token="T1"))

        assert await resolver.resolve() == CallCredential.api_key_header("K1")

    @pytest.mark.asyncio
    async def test_api_key_query_mode(self):
        """Test sending the API key as a query parameter."""
        from mcp_server.credentials import CredentialResolver

        resolver = CredentialResolver(PlatformSettings(api_key="K1", api_key_mode="query"))

        assert await resolver.resolve() == CallCredential.api_key_query("K1")

    @pytest.mark.asyncio
    async def test_bearer_token(self):
        """Test a configured bearer token."""
        from mcp_server.credentials import CredentialResolver

        resolver = CredentialResolver(PlatformSettings(bearer_token="T1"))

        assert await resolver.resolve() == CallCredential.bearer_token("T1")

    @pytest.mark.asyncio
    async def test_password_grant_is_cached(self):
        """Test that the password grant runs once and its token is reused."""
        from mcp_server.credentials import CredentialResolver

        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=BASE_URL)
        resolver = CredentialResolver(
            PlatformSettings(base_url=BASE_URL, username="admin", password="store"),
            client,
        )

        first = await resolver.resolve()
        second = await resolver.resolve()

        assert first == CallCredential.bearer_token("tok")
        assert second == first
        assert len(calls) == 1
        assert calls[0].url.path == "/connect/token"
        assert b"grant_type=password" in calls[0].content

    @pytest.mark.asyncio
    async def test_password_grant_failure_sends_no_credential(self):
        """Test that a failed exchange never falls back to the caller's credentials."""
        from mcp_server.credentials import CredentialResolver

        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(400, json={"error": "invalid_grant"})),
            base_url=BASE_URL,
        )
        resolver = CredentialResolver(
            PlatformSettings(base_url=BASE_URL, username="admin", password="wrong"),
            client,
        )
        inbound = InboundRequest(headers={"Authorization": "Bearer caller"})

        credential = await resolver.resolve(inbound=inbound)

        assert credential == CallCredential.none()

    def test_token_lifetime_from_jwt(self):
        """Test reading the lifetime from the JWT exp claim."""
        from jose import jwt
        from mcp_server.credentials import CredentialResolver

        token = jwt.encode({"exp": int(time.time()) + 120}, "secret", algorithm="HS256")

        lifetime = CredentialResolver._token_lifetime(token, None)

        assert 100 < lifetime <= 120
        assert CredentialResolver._token_lifetime("opaque", None) == 3600
        assert CredentialResolver._token_lifetime("opaque", 60) == 60

    @pytest.mark.asyncio
    async def test_passthrough_order(self):
        """Test the order of inbound passthrough sources."""
        from mcp_server.credentials import CredentialResolver

        resolver = CredentialResolver(PlatformSettings())

        both = InboundRequest(headers={"api_key": "H", "Authorization": "Bearer X"}, query={"api_key": "Q"})
        assert await resolver.resolve(inbound=both) == CallCredential.passthrough_header("api_key", "H")

        query = InboundRequest(headers={"Authorization": "Bearer X"}, query={"api_key": "Q"})
        assert await resolver.resolve(inbound=query) == CallCredential.passthrough_header("api_key", "Q")

        auth = InboundRequest(headers={"authorization": "Bearer X"})
        assert await resolver.resolve(inbound=auth) == CallCredential.passthrough_header("Authorization", "Bearer X")

    @pytest.mark.asyncio
    async def test_nothing_available(self):
        """Test that no source yields an empty credential."""
        from mcp_server.credentials import CredentialResolver

        resolver = CredentialResolver(PlatformSettings())

        assert await resolver.resolve(inbound=InboundRequest()) == CallCredential.none()


class TestBuiltins:
    """Tests for built-in tools and their coercion helpers."""

    def test_coercion_helpers(self):
        """Test tolerant coercion."""
        from mcp_server.builtins import coerce_bool, coerce_int, coerce_string, coerce_string_list

        assert coerce_string("  x ") == "x"
        assert coerce_string("") is None
        assert coerce_string(5) == "5"
        assert coerce_string_list("a, b,,c") == ["a", "b", "c"]
        assert coerce_string_list('["a", "b"]') == ["a", "b"]
        assert coerce_string_list(["a", None, 3]) == ["a", "3"]
        assert coerce_string_list("") is None
        assert coerce_bool("yes") is True
        assert coerce_bool("0") is False
        assert coerce_bool("maybe") is None
        assert coerce_int("7", 20) == 7
        assert coerce_int("many", 20) == 20
        assert coerce_int(-1, 0, minimum=0) == 0

    def test_order_search_criteria(self):
        """Test building the order search body."""
        from mcp_server.builtins import build_order_search_criteria

        criteria = build_order_search_criteria({
            "customerId": "",
            "keyword": "chair",
            "statuses": "New,Processing",
            "withPrototypes": "true",
            "take": "5",
        })

        assert criteria == {
            "keyword": "chair",
            "statuses": ["New", "Processing"],
            "withPrototypes": True,
            "take": 5,
            "skip": 0,
        }

    def test_descriptor_is_listed(self):
        """Test the built-in descriptor shape."""
        from mcp_server.builtins import SEARCH_CUSTOMER_ORDERS

        tool = SEARCH_CUSTOMER_ORDERS.descriptor.to_mcp_tool()

        assert tool["name"] == "search_customer_orders"
        assert tool["inputSchema"]["required"] == []
        assert tool["inputSchema"]["properties"]["take"]["default"] == 20


class TestToolInvocationRouter:
    """Tests for the tool invocation router."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        """Test that unknown tools raise."""
        from mcp_server.errors import UnknownToolError

        router = make_router(lambda request: httpx.Response(200), [])

        with pytest.raises(UnknownToolError) as exc_info:
            await router.invoke("nope", {})

        assert exc_info.value.tool_name == "nope"
        assert exc_info.value.code == -32601

    @pytest.mark.asyncio
    async def test_arguments_must_be_object(self):
        """Test that non-object arguments are rejected."""
        from mcp_server.errors import InvalidArgumentsError

        router = make_router(lambda request: httpx.Response(200), [make_tool()])

        with pytest.raises(InvalidArgumentsError):
            await router.invoke("shop_order_get", ["id"])

    @pytest.mark.asyncio
    async def test_schema_violation(self):
        """Test that a missing required argument is rejected before any call."""
        from mcp_server.errors import InvalidArgumentsError

        handler = AsyncMock(return_value=httpx.Response(200))
        router = make_router(handler, [make_tool()])

        with pytest.raises(InvalidArgumentsError) as exc_info:
            await router.invoke("shop_order_get", {"take": 5})

        assert exc_info.value.code == -32602
        assert exc_info.value.errors
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_get_forwarding(self):
        """Test path substitution, query arguments and the API key header."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "A 1", "total": 10})

        router = make_router(handler, [make_tool()])

        result = await router.invoke("shop_order_get", {"id": "A 1", "take": "5"})

        assert result.success
        assert result.data == {"id": "A 1", "total": 10}
        assert result.http_status_code == 200
        assert result.metadata.tool_name == "shop_order_get"
        request = seen[0]
        assert request.method == "GET"
        assert request.url.path == "/api/order/A 1"
        assert b"/api/order/A%201" in request.url.raw_path
        assert request.url.params["take"] == "5"
        assert request.headers["api_key"] == "K1"

    @pytest.mark.asyncio
    async def test_post_single_object_is_body(self):
        """Test that a lone object argument becomes the request body."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json=[])

        tool = make_tool(
            name="shop_order_search",
            http_method="POST",
            route="/api/order/search",
            parameters={"criteria": ParameterSchema(type="object", required=True)},
        )
        router = make_router(handler, [tool])

        await router.invoke("shop_order_search", {"criteria": {"keyword": "chair"}})

        assert seen == [{"keyword": "chair"}]

    @pytest.mark.asyncio
    async def test_post_several_arguments_form_body(self):
        """Test that several arguments are sent as one JSON object."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(204)

        tool = make_tool(
            name="shop_order_update",
            http_method="PUT",
            parameters={
                "id": ParameterSchema(type="string", required=True),
                "status": ParameterSchema(type="string"),
                "total": ParameterSchema(type="number"),
            },
        )
        router = make_router(handler, [tool])

        result = await router.invoke("shop_order_update", {"id": "1", "status": "New", "total": "9.5"})

        assert seen == [{"status": "New", "total": 9.5}]
        assert result.success
        assert result.data is None

    @pytest.mark.asyncio
    async def test_upstream_error_is_data(self):
        """Test that a non-2xx response is reported in the envelope."""
        router = make_router(
            lambda request: httpx.Response(503, json={"message": "maintenance"}),
            [make_tool()],
        )

        result = await router.invoke("shop_order_get", {"id": "1"})
        wire = result.to_wire()

        assert wire["success"] is False
        assert wire["httpStatusCode"] == 503
        assert wire["errorType"] == "http"
        assert wire["details"] == {"message": "maintenance"}
        assert wire["metadata"]["toolName"] == "shop_order_get"

    @pytest.mark.asyncio
    async def test_transport_error(self):
        """Test that connection failures are reported as transport errors."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        router = make_router(handler, [make_tool()])

        result = await router.invoke("shop_order_get", {"id": "1"})

        assert not result.success
        assert result.error_type == ErrorType.TRANSPORT
        assert "connection refused" in result.error

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test that the caller deadline bounds the call."""
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1)
            return httpx.Response(200)

        router = make_router(handler, [make_tool()])

        result = await router.invoke("shop_order_get", {"id": "1"}, InvocationContext(timeout_seconds=0.05))

        assert not result.success
        assert result.error_type == ErrorType.TIMEOUT

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        """Test that cancelling the caller aborts the invocation."""
        started = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            started.set()
            await asyncio.sleep(10)
            return httpx.Response(200)

        router = make_router(handler, [make_tool()])
        task = asyncio.create_task(router.invoke("shop_order_get", {"id": "1"}))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_internal_error_hides_details(self):
        """Test that unexpected failures return a generic message."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise RuntimeError("database password is hunter2")

        router = make_router(handler, [make_tool()])

        result = await router.invoke("shop_order_get", {"id": "1"})

        assert result.error_type == ErrorType.INTERNAL
        assert "hunter2" not in result.error

    @pytest.mark.asyncio
    async def test_anonymous_tool_skips_credentials(self):
        """Test that anonymous tools are called without credentials."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="pong")

        tool = make_tool(
            name="shop_order_ping",
            route="/api/order-ping",
            parameters={},
            security=SecurityRequirement(allow_anonymous=True),
        )
        router = make_router(handler, [tool])

        result = await router.invoke("shop_order_ping")

        assert result.data == "pong"
        assert "api_key" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_builtin_order_search(self):
        """Test the built-in order search with loosely typed arguments."""
        from mcp_server.builtins import SEARCH_CUSTOMER_ORDERS, builtin_registry

        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"totalCount": 0, "results": []})

        router = make_router(
            handler,
            [SEARCH_CUSTOMER_ORDERS.descriptor],
            builtins=builtin_registry(),
        )

        result = await router.invoke("search_customer_orders", {"take": "5", "onlyRecurring": "no"})

        assert result.success
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/api/order/customerOrders/search"
        assert json.loads(seen[0].content) == {"onlyRecurring": False, "take": 5, "skip": 0}

    @pytest.mark.asyncio
    async def test_invocations_are_audited(self, tmp_path):
        """Test that every resolved invocation is written to the audit log."""
        from mcp_server.audit import AuditLogger

        audit = AuditLogger(log_path=str(tmp_path / "audit.log"), buffer_size=1)
        router = make_router(
            lambda request: httpx.Response(404, json={}),
            [make_tool()],
            audit_logger=audit,
        )

        await router.invoke("shop_order_get", {"id": "1", "password": "x"})
        entries = await audit.query(tool_name="shop_order_get")

        assert len(entries) == 1
        assert entries[0].success is False
        assert entries[0].http_status_code == 404
        assert entries[0].error_type == ErrorType.HTTP
        assert entries[0].arguments["password"] == "[REDACTED]"


class TestAuditLogger:
    """Tests for audit logging."""

    def test_entry_creation(self, tmp_path):
        """Test creating audit entries."""
        from mcp_server.audit import AuditLogger

        audit = AuditLogger(log_path=str(tmp_path / "audit.log"))
        context = InvocationContext()
        result = InvocationResult.ok("shop_order_get", data={"id": "1"}, status_code=200)

        entry = audit.create_entry(make_tool(), {"id": "1", "api_key": "K"}, context, result, 12.5)

        assert entry.request_id == context.request_id
        assert entry.route == "/api/order/{id}"
        assert entry.module_id == "shop"
        assert entry.success is True
        assert entry.arguments == {"id": "1", "api_key": "[REDACTED]"}
        assert entry.execution_time_ms == 12.5

    @pytest.mark.asyncio
    async def test_disabled_logger_writes_nothing(self, tmp_path):
        """Test that a disabled logger ignores invocations."""
        from mcp_server.audit import AuditLogger

        audit = AuditLogger(log_path=str(tmp_path / "audit.log"), enabled=False, buffer_size=1)
        result = InvocationResult.ok("shop_order_get")

        await audit.log(make_tool(), {}, InvocationContext(), result)

        assert await audit.query() == []


class TestJsonRpcHandler:
    """Tests for JSON-RPC dispatch."""

    @pytest.fixture
    def handler(self):
        from mcp_server.protocol import JsonRpcHandler

        router = make_router(lambda request: httpx.Response(503, json={"message": "down"}), [make_tool()])
        return JsonRpcHandler(router.catalog, router)

    @pytest.mark.asyncio
    async def test_initialize(self, handler):
        """Test the initialize handshake."""
        response = await handler.handle({"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}})

        result = response["result"]
        assert result["protocolVersion"] == "2024-11-05"
        assert "tools" in result["capabilities"]
        assert result["serverInfo"]["name"] == "Commerce MCP Bridge"

    @pytest.mark.asyncio
    async def test_tools_list(self, handler):
        """Test listing tools."""
        response = await handler.handle({"jsonrpc": "2.0", "id": 2, "method": "tools/list"})

        assert [t["name"] for t in response["result"]["tools"]] == ["shop_order_get"]

    @pytest.mark.asyncio
    async def test_unknown_tool(self, handler):
        """Test that an unknown tool is a -32601 error without result."""
        response = await handler.handle({
            "jsonrpc": "2.0", "id": 3, "method": "tools/call",
            "params": {"name": "nope", "arguments": {}},
        })

        assert response["id"] == 3
        assert response["error"]["code"] == -32601
        assert "result" not in response

    @pytest.mark.asyncio
    async def test_invalid_params(self, handler):
        """Test that bad tool arguments are a -32602 error."""
        missing_name = await handler.handle({"jsonrpc": "2.0", "id": 4, "method": "tools/call", "params": {}})
        bad_args = await handler.handle({
            "jsonrpc": "2.0", "id": 5, "method": "tools/call",
            "params": {"name": "shop_order_get", "arguments": {}},
        })

        assert missing_name["error"]["code"] == -32602
        assert bad_args["error"]["code"] == -32602

    @pytest.mark.asyncio
    async def test_call_result_is_text_content(self, handler):
        """Test that the invocation result is returned as JSON text."""
        response = await handler.handle({
            "jsonrpc": "2.0", "id": 6, "method": "tools/call",
            "params": {"name": "shop_order_get", "arguments": {"id": "1"}},
        })

        content = response["result"]["content"]
        assert content[0]["type"] == "text"
        payload = json.loads(content[0]["text"])
        assert payload["success"] is False
        assert payload["httpStatusCode"] == 503
        assert response["result"]["isError"] is True

    @pytest.mark.asyncio
    async def test_unknown_method_and_invalid_request(self, handler):
        """Test protocol level errors."""
        unknown = await handler.handle({"jsonrpc": "2.0", "id": 7, "method": "resources/list"})
        invalid = await handler.handle({"jsonrpc": "2.0", "id": 8})

        assert unknown["error"]["code"] == -32601
        assert invalid["error"]["code"] == -32600

    @pytest.mark.asyncio
    async def test_internal_fault(self, handler):
        """Test that unexpected failures are -32603 without details by default."""
        handler.router.invoke = AsyncMock(side_effect=RuntimeError("secret detail"))

        response = await handler.handle({
            "jsonrpc": "2.0", "id": 10, "method": "tools/call",
            "params": {"name": "shop_order_get", "arguments": {"id": "1"}},
        })

        assert response["error"] == {"code": -32603, "message": "Internal error"}

    @pytest.mark.asyncio
    async def test_notifications_and_ping(self, handler):
        """Test that notifications get no response and ping an empty result."""
        assert await handler.handle({"jsonrpc": "2.0", "method": "notifications/initialized"}) is None
        assert (await handler.handle({"jsonrpc": "2.0", "id": 9, "method": "ping"}))["result"] == {}

    @pytest.mark.asyncio
    async def test_batch(self, handler):
        """Test batched requests."""
        responses = await handler.handle([
            {"jsonrpc": "2.0", "id": 1, "method": "ping"},
            {"jsonrpc": "2.0", "method": "notifications/initialized"},
            {"jsonrpc": "2.0", "id": 2, "method": "tools/list"},
        ])

        assert [r["id"] for r in responses] == [1, 2]


class TestBridgeApp:
    """Tests for the FastAPI application."""

    @pytest.fixture
    def client(self, settings):
        from fastapi.testclient import TestClient
        from mcp_server.bootstrap import build_state
        from mcp_server.main import create_app

        def platform(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/order/list":
                return httpx.Response(200, json={"totalCount": 1, "results": [{"id": "1"}]})
            return httpx.Response(503, json={"message": "maintenance"})

        http_client = httpx.AsyncClient(transport=httpx.MockTransport(platform), base_url=BASE_URL)
        state = build_state(settings, http_client=http_client)

        with TestClient(create_app(settings, state)) as test_client:
            yield test_client

    def test_health(self, client):
        """Test the health endpoint."""
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["modules"] == ["shop"]
        assert body["tool_count"] == 8

    def test_status(self, client):
        """Test discovery statistics."""
        body = client.get("/api/mcp/status").json()

        assert body["status"] == "running"
        assert body["statistics"] == {"discoveredEndpoints": 7, "availableTools": 8, "modules": 1}

    def test_jsonrpc_tools_list(self, client):
        """Test tools/list over HTTP."""
        response = client.post("/api/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "tools/list"})

        names = [t["name"] for t in response.json()["result"]["tools"]]
        assert "shop_order_list" in names
        assert "search_customer_orders" in names

    def test_jsonrpc_parse_error(self, client):
        """Test an unparsable body."""
        response = client.post("/api/mcp", content=b"{not json", headers={"Content-Type": "application/json"})

        assert response.json()["error"]["code"] == -32700

    def test_jsonrpc_notification(self, client):
        """Test that notifications are accepted without a body."""
        response = client.post("/api/mcp/sse", json={"jsonrpc": "2.0", "method": "notifications/initialized"})

        assert response.status_code == 202
        assert response.content == b""

    def test_rest_call_success(self, client):
        """Test calling a tool through the REST surface."""
        response = client.post("/api/mcp/tools/call", json={"name": "shop_order_list", "arguments": {"take": "1"}})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["totalCount"] == 1

    def test_rest_call_upstream_failure(self, client):
        """Test that upstream failures are returned with HTTP 200."""
        response = client.post("/api/mcp/tools/call", json={"name": "shop_order_get", "arguments": {"id": "1"}})

        assert response.status_code == 200
        assert response.json()["httpStatusCode"] == 503

    def test_rest_call_errors(self, client):
        """Test unknown tools and invalid arguments."""
        unknown = client.post("/api/mcp/tools/call", json={"name": "nope"})
        invalid = client.post("/api/mcp/tools/call", json={"name": "shop_order_get", "arguments": {}})

        assert unknown.status_code == 404
        assert invalid.status_code == 400

    def test_rest_call_without_name_is_bad_request(self, client):
        """Test that a body missing the tool name is a client error, not 422."""
        missing = client.post("/api/mcp/tools/call", json={"arguments": {}})
        garbled = client.post(
            "/api/mcp/tools/call",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert missing.status_code == 400
        assert missing.json()["detail"] == "Malformed request"
        assert any(e.startswith("name:") for e in missing.json()["errors"])
        assert garbled.status_code == 400

    def test_rest_tools(self, client):
        """Test the REST tool listing."""
        body = client.get("/api/mcp/tools").json()

        assert body["count"] == len(body["tools"]) == 8
