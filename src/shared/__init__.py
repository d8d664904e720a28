"""Shared utilities and data models for the Commerce MCP Bridge."""

from shared.models import (
    CallCredential,
    InvocationContext,
    InvocationResult,
    ModuleMcpConfig,
    ParameterSchema,
    SecurityRequirement,
    ToolDescriptor,
)
from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging

__all__ = [
    "CallCredential",
    "InvocationContext",
    "InvocationResult",
    "ModuleMcpConfig",
    "ParameterSchema",
    "SecurityRequirement",
    "ToolDescriptor",
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
]
