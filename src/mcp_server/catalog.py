"""Tool Catalog for the MCP bridge.

Holds every tool descriptor produced by discovery plus the built-in tools.
The catalog is built once at startup and read concurrently afterwards.
"""

import threading
from typing import Any, Iterable, Optional

from shared.logging import get_logger
from shared.models import ToolDescriptor
from discovery.modules import LoadedModule
from discovery.scanner import EndpointScanner

logger = get_logger(__name__)


class ToolCatalog:
    """
    Central catalog of exposed tools.

    Responsibilities:
    - Scan enabled modules into descriptors
    - Register built-in tools
    - Lookup tools by name
    - Format tools for MCP clients
    """

    def __init__(self, scanner: Optional[EndpointScanner] = None) -> None:
        self.scanner = scanner or EndpointScanner()
        self._tools: dict[str, ToolDescriptor] = {}
        self._modules: list[str] = []
        self._lock = threading.Lock()

    def rebuild(
        self,
        modules: Iterable[LoadedModule],
        builtins: Iterable[ToolDescriptor] = (),
    ) -> int:
        """
        Replace the catalog contents with freshly scanned tools.

        Args:
            modules: Enabled modules with their imported code
            builtins: Descriptors of hand-written tools, registered last

        Returns:
            Number of tools in the catalog
        """
        with self._lock:
            self._tools.clear()
            self._modules.clear()

        for module in modules:
            descriptors = self.scanner.discover(module.code, module.config, module.info.id)
            for descriptor in descriptors:
                self.register(descriptor)
            if descriptors and module.info.id not in self._modules:
                self._modules.append(module.info.id)

        # Built-ins are only offered alongside at least one discovered endpoint
        if self._tools:
            for descriptor in builtins:
                self.register(descriptor)
        else:
            logger.warning("No module exposes any endpoint, tool catalog is empty")

        logger.info("Tool catalog built", modules=self._modules, tool_count=len(self._tools))
        return len(self._tools)

    def register(self, tool: ToolDescriptor) -> None:
        """
        Register a tool.

        A tool with the same name replaces the earlier one.
        """
        with self._lock:
            previous = self._tools.get(tool.name)
            if previous is not None:
                logger.warning(
                    "Tool name collision, replacing earlier tool",
                    tool=tool.name,
                    previous=f"{previous.source_type_name}.{previous.source_member_name}",
                    replacement=f"{tool.source_type_name}.{tool.source_member_name}",
                )
            self._tools[tool.name] = tool

        logger.debug("Tool registered", tool=tool.name, module=tool.module_id, route=tool.route)

    def find(self, tool_name: str) -> Optional[ToolDescriptor]:
        return self._tools.get(tool_name)

    def list_tools(self, module_id: Optional[str] = None) -> list[ToolDescriptor]:
        """List tools in registration order, optionally for one module."""
        tools = list(self._tools.values())
        if module_id:
            tools = [t for t in tools if t.module_id == module_id]
        return tools

    def module_ids(self) -> list[str]:
        """Modules that contributed at least one discovered tool."""
        return list(self._modules)

    def get_tools_for_mcp(self) -> list[dict[str, Any]]:
        """Tool definitions in ``tools/list`` format."""
        return [tool.to_mcp_tool() for tool in self._tools.values()]

    def __contains__(self, tool_name: str) -> bool:
        return tool_name in self._tools

    def __len__(self) -> int:
        return len(self._tools)
