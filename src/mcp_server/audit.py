"""Audit logging for the MCP bridge.

Logs every resolved tool invocation for compliance and debugging.
Captures: tool, backing route, arguments, outcome, duration.
"""

import asyncio
import json
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import aiofiles

from shared.logging import get_logger
from shared.models import AuditEntry, InvocationContext, InvocationResult, ToolDescriptor

logger = get_logger(__name__)


class AuditLogger:
    """
    Audit logger for tool invocations.

    Entries go to the structured log immediately and to a JSON-lines file
    in batches.
    """

    # Arguments that are redacted in audit logs
    SENSITIVE_PARAMS = {"password", "token", "secret", "api_key", "apikey", "credential", "authorization"}

    def __init__(
        self,
        log_path: str = "logs/audit.log",
        enabled: bool = True,
        buffer_size: int = 100
    ) -> None:
        self.log_path = Path(log_path)
        self.enabled = enabled
        self.buffer_size = buffer_size
        self._buffer: list[AuditEntry] = []
        self._lock = asyncio.Lock()

        if self.enabled:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def _redact_sensitive(self, params: dict[str, Any]) -> dict[str, Any]:
        redacted = {}
        for key, value in params.items():
            if key.lower() in self.SENSITIVE_PARAMS:
                redacted[key] = "[REDACTED]"
            elif isinstance(value, dict):
                redacted[key] = self._redact_sensitive(value)
            else:
                redacted[key] = value
        return redacted

    def create_entry(
        self,
        tool: ToolDescriptor,
        arguments: dict[str, Any],
        context: InvocationContext,
        result: InvocationResult,
        execution_time_ms: float = 0,
    ) -> AuditEntry:
        """
        Create an audit entry from invocation data.

        Args:
            tool: Invoked tool
            arguments: Arguments as received
            context: Invocation context
            result: Invocation result

        Returns:
            Audit entry
        """
        return AuditEntry(
            id=str(uuid.uuid4()),
            request_id=context.request_id,
            tool_name=tool.name,
            module_id=tool.module_id,
            http_method=tool.http_method,
            route=tool.route,
            arguments=self._redact_sensitive(arguments),
            success=result.success,
            error_type=result.error_type,
            http_status_code=result.http_status_code,
            execution_time_ms=execution_time_ms,
        )

    async def log(
        self,
        tool: ToolDescriptor,
        arguments: dict[str, Any],
        context: InvocationContext,
        result: InvocationResult,
        execution_time_ms: float = 0,
    ) -> None:
        """Record one invocation."""
        if not self.enabled:
            return

        entry = self.create_entry(tool, arguments, context, result, execution_time_ms)

        logger.info(
            "Tool invoked",
            audit_id=entry.id,
            request_id=entry.request_id,
            tool=entry.tool_name,
            module=entry.module_id,
            route=f"{entry.http_method} {entry.route}",
            success=entry.success,
            error_type=entry.error_type.value if entry.error_type else None,
            http_status_code=entry.http_status_code,
            execution_time_ms=round(entry.execution_time_ms, 2),
        )

        async with self._lock:
            self._buffer.append(entry)

            if len(self._buffer) >= self.buffer_size:
                await self._flush()

    async def _flush(self) -> None:
        if not self._buffer:
            return

        entries_to_write = self._buffer.copy()
        self._buffer.clear()

        try:
            async with aiofiles.open(self.log_path, "a") as f:
                for entry in entries_to_write:
                    await f.write(entry.model_dump_json() + "\n")
        except OSError as e:
            logger.error("Failed to write audit log", path=str(self.log_path), error=str(e))
            # Keep entries for the next flush
            self._buffer.extend(entries_to_write)

    async def flush(self) -> None:
        """Write buffered entries to the audit file."""
        async with self._lock:
            await self._flush()

    async def query(
        self,
        tool_name: Optional[str] = None,
        module_id: Optional[str] = None,
        success: Optional[bool] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        limit: int = 100
    ) -> list[AuditEntry]:
        """
        Query flushed audit entries.

        Args:
            tool_name: Filter by tool name
            module_id: Filter by module
            success: Filter by outcome
            start_time: Earliest timestamp
            end_time: Latest timestamp
            limit: Maximum entries to return

        Returns:
            Matching entries in file order
        """
        results: list[AuditEntry] = []

        if not self.log_path.exists():
            return results

        try:
            async with aiofiles.open(self.log_path, "r") as f:
                async for line in f:
                    if len(results) >= limit:
                        break

                    try:
                        entry = AuditEntry(**json.loads(line.strip()))
                    except (json.JSONDecodeError, ValueError):
                        continue

                    if tool_name and entry.tool_name != tool_name:
                        continue
                    if module_id and entry.module_id != module_id:
                        continue
                    if success is not None and entry.success != success:
                        continue
                    if start_time and entry.timestamp < start_time:
                        continue
                    if end_time and entry.timestamp > end_time:
                        continue

                    results.append(entry)

        except OSError as e:
            logger.error("Failed to query audit log", path=str(self.log_path), error=str(e))

        return results
