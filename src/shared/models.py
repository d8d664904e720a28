"""Core data models for the Commerce MCP Bridge.

This module defines the shared data structures: tool descriptors produced by
discovery, the per-module exposure policy read from manifests, outbound call
credentials and the invocation result envelope returned to MCP clients.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

SchemaTypeName = Literal["string", "integer", "number", "boolean", "array", "object"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Tool descriptors
# ---------------------------------------------------------------------------

class ParameterSchema(BaseModel):
    """Schema of a single tool parameter."""
    type: SchemaTypeName = "string"
    description: str = ""
    required: bool = False
    properties: Optional[dict[str, "ParameterSchema"]] = None
    items: Optional["ParameterSchema"] = None
    enum: Optional[list[Any]] = None
    default: Any = None

    def to_json_schema(self) -> dict[str, Any]:
        """Render as a JSON Schema fragment."""
        schema: dict[str, Any] = {"type": self.type}
        if self.description:
            schema["description"] = self.description
        if self.enum:
            schema["enum"] = list(self.enum)
        if self.default is not None:
            schema["default"] = self.default
        if self.properties is not None:
            schema["properties"] = {
                name: prop.to_json_schema() for name, prop in self.properties.items()
            }
            nested_required = [name for name, prop in self.properties.items() if prop.required]
            if nested_required:
                schema["required"] = nested_required
        if self.items is not None:
            schema["items"] = self.items.to_json_schema()
        return schema


class SecurityRequirement(BaseModel):
    """
    Access rules for a tool.

    When ``allow_anonymous`` is set the tool is invoked without credential
    resolution and the remaining fields are advisory only.
    """
    requires_authentication: bool = False
    allow_anonymous: bool = False
    required_permissions: list[str] = Field(default_factory=list)
    required_roles: list[str] = Field(default_factory=list)
    authorization_policies: list[str] = Field(default_factory=list)

    @field_validator("required_permissions", "required_roles", "authorization_policies")
    @classmethod
    def _dedupe(cls, values: list[str]) -> list[str]:
        return list(dict.fromkeys(v for v in values if v))


class ToolDescriptor(BaseModel):
    """
    One exposed API operation.

    Created once during discovery and immutable afterwards.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Generated tool name, unique within the catalog")
    http_method: str = Field(default="GET")
    route: str = Field(..., description="Path template, may contain {param} segments")
    description: str = ""
    parameters: dict[str, ParameterSchema] = Field(default_factory=dict)
    module_id: str = ""
    source_type_name: str = ""
    source_member_name: str = ""
    security: SecurityRequirement = Field(default_factory=SecurityRequirement)
    return_description: Optional[str] = None

    def input_schema(self) -> dict[str, Any]:
        """Build the MCP ``inputSchema`` object for this tool."""
        properties: dict[str, Any] = {}
        required: list[str] = []
        for name, param in self.parameters.items():
            properties[name] = param.to_json_schema()
            if param.required:
                required.append(name)
        return {"type": "object", "properties": properties, "required": required}

    def to_mcp_tool(self) -> dict[str, Any]:
        """Format for a ``tools/list`` response."""
        return {
            "name": self.name,
            "description": self.description or f"{self.http_method} {self.route}",
            "inputSchema": self.input_schema(),
        }


# ---------------------------------------------------------------------------
# Module exposure policy
# ---------------------------------------------------------------------------

class ToolNamingConvention(str, Enum):
    """Order of the segments a tool name is assembled from."""
    MODULE_CONTROLLER_ACTION = "module_controller_action"
    CONTROLLER_ACTION = "controller_action"
    MODULE_ACTION = "module_action"
    METHOD_CONTROLLER_ACTION = "method_controller_action"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ToolNamingConvention":
        """Resolve a configured value, falling back to module_controller_action."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.MODULE_CONTROLLER_ACTION


class ToolNamingConfig(BaseModel):
    """Tool naming options."""
    convention: str = ToolNamingConvention.MODULE_CONTROLLER_ACTION.value
    remove_controller_suffix: bool = True
    use_camel_case: bool = False
    separator: str = "_"


class PatternRules(BaseModel):
    """Include/exclude rule pair. Exclude always wins; empty include accepts all."""
    include: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)


class SecurityDefaults(BaseModel):
    """Security defaults applied to every tool of a module."""
    require_authentication: bool = True
    respect_existing_authorization: bool = True
    permissions: list[str] = Field(default_factory=list)


class McpCapabilities(BaseModel):
    """MCP capabilities a module declares."""
    tools: bool = True
    resources: bool = False
    prompts: bool = False


class ModuleMcpConfig(BaseModel):
    """A module's declarative exposure policy, parsed from its manifest."""
    enabled: bool = True
    description: Optional[str] = None
    version: str = "1.0.0"
    capabilities: McpCapabilities = Field(default_factory=McpCapabilities)
    controllers: PatternRules = Field(default_factory=PatternRules)
    methods: PatternRules = Field(default_factory=PatternRules)
    security: SecurityDefaults = Field(default_factory=SecurityDefaults)
    tool_naming: ToolNamingConfig = Field(default_factory=ToolNamingConfig)

    @field_validator("methods")
    @classmethod
    def _upper_verbs(cls, rules: PatternRules) -> PatternRules:
        return PatternRules(
            include=[m.strip().upper() for m in rules.include if m and m.strip()],
            exclude=[m.strip().upper() for m in rules.exclude if m and m.strip()],
        )


class ModuleInfo(BaseModel):
    """An installed module: where it lives and what code it exposes."""
    id: str
    version: str = "1.0.0"
    path: Path
    entry_point: Optional[str] = None

    @property
    def manifest_path(self) -> Path:
        return self.path / "module.manifest"


# ---------------------------------------------------------------------------
# Outbound calls and credentials
# ---------------------------------------------------------------------------

class OutboundRequest(BaseModel):
    """HTTP-shaped description of a call to the backing platform."""
    method: str
    path: str
    query: dict[str, Any] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    json_body: Any = None


class InboundRequest(BaseModel):
    """Headers and query string of the HTTP request that triggered an invocation."""
    headers: dict[str, str] = Field(default_factory=dict)
    query: dict[str, str] = Field(default_factory=dict)

    @field_validator("headers")
    @classmethod
    def _lower_header_names(cls, headers: dict[str, str]) -> dict[str, str]:
        return {name.lower(): value for name, value in headers.items()}

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())


class InvocationContext(BaseModel):
    """Per-invocation context: identity of the call and the caller's deadline."""
    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    inbound: Optional[InboundRequest] = None
    timeout_seconds: Optional[float] = Field(default=None, gt=0)


class CredentialKind(str, Enum):
    """Kinds of auth material attached to an outbound call."""
    NONE = "none"
    API_KEY_HEADER = "api_key_header"
    API_KEY_QUERY = "api_key_query"
    BEARER_TOKEN = "bearer_token"
    PASSTHROUGH_HEADER = "passthrough_header"


class CallCredential(BaseModel):
    """Resolved auth material for one outbound call. Never persisted."""
    model_config = ConfigDict(frozen=True)

    kind: CredentialKind = CredentialKind.NONE
    name: Optional[str] = None
    value: Optional[str] = None

    @classmethod
    def none(cls) -> "CallCredential":
        return cls()

    @classmethod
    def api_key_header(cls, value: str, name: str = "api_key") -> "CallCredential":
        return cls(kind=CredentialKind.API_KEY_HEADER, name=name, value=value)

    @classmethod
    def api_key_query(cls, value: str, name: str = "api_key") -> "CallCredential":
        return cls(kind=CredentialKind.API_KEY_QUERY, name=name, value=value)

    @classmethod
    def bearer_token(cls, value: str) -> "CallCredential":
        return cls(kind=CredentialKind.BEARER_TOKEN, name="Authorization", value=value)

    @classmethod
    def passthrough_header(cls, name: str, value: str) -> "CallCredential":
        return cls(kind=CredentialKind.PASSTHROUGH_HEADER, name=name, value=value)

    def apply(self, request: OutboundRequest) -> OutboundRequest:
        """Return a copy of ``request`` carrying this credential."""
        if self.kind == CredentialKind.NONE or not self.value:
            return request

        headers = dict(request.headers)
        query = dict(request.query)
        if self.kind == CredentialKind.API_KEY_QUERY:
            query[self.name or "api_key"] = self.value
        elif self.kind == CredentialKind.BEARER_TOKEN:
            headers["Authorization"] = f"Bearer {self.value}"
        else:
            headers[self.name or "api_key"] = self.value

        return request.model_copy(update={"headers": headers, "query": query})


# ---------------------------------------------------------------------------
# Invocation results
# ---------------------------------------------------------------------------

class ErrorType(str, Enum):
    """Classification of a failed invocation."""
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    HTTP = "http"
    INTERNAL = "internal"


class InvocationMetadata(BaseModel):
    """Metadata attached to every invocation result."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    timestamp: datetime = Field(default_factory=_utcnow)
    tool_name: str
    http_status_code: Optional[int] = None


class InvocationResult(BaseModel):
    """
    Uniform envelope returned for every resolved invocation.

    Upstream failures are reported here with ``success=False`` rather than
    raised, so clients must inspect the flag.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None
    data: Any = None
    details: Any = None
    http_status_code: Optional[int] = None
    metadata: InvocationMetadata

    @classmethod
    def ok(
        cls,
        tool_name: str,
        data: Any = None,
        status_code: Optional[int] = None,
        message: Optional[str] = None,
    ) -> "InvocationResult":
        return cls(
            success=True,
            message=message or f"Tool '{tool_name}' executed successfully",
            data=data,
            http_status_code=status_code,
            metadata=InvocationMetadata(tool_name=tool_name, http_status_code=status_code),
        )

    @classmethod
    def failure(
        cls,
        tool_name: str,
        error: str,
        error_type: ErrorType,
        details: Any = None,
        status_code: Optional[int] = None,
    ) -> "InvocationResult":
        return cls(
            success=False,
            error=error,
            error_type=error_type,
            details=details,
            http_status_code=status_code,
            metadata=InvocationMetadata(tool_name=tool_name, http_status_code=status_code),
        )

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys, omitting unset fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AuditEntry(BaseModel):
    """
    Audit log entry for a tool invocation.

    Captures the tool, its backing route, redacted arguments and the outcome.
    """
    id: str
    timestamp: datetime = Field(default_factory=_utcnow)
    request_id: str

    # Tool information
    tool_name: str
    module_id: str
    http_method: str
    route: str

    # Request details
    arguments: dict[str, Any] = Field(default_factory=dict)

    # Result information
    success: bool
    error_type: Optional[ErrorType] = None
    http_status_code: Optional[int] = None
    execution_time_ms: float = 0
