"""Discovery - module manifests, controller scanning and documentation.

Finds the modules that opt in to MCP exposure, scans their marked
controllers and turns each exposed action into a tool descriptor.
"""

from discovery.documentation import DocumentationIndex
from discovery.manifest import ManifestConfigResolver
from discovery.modules import DiscoveryError, LoadedModule, discover_modules, load_modules
from discovery.scanner import EndpointScanner, generate_tool_name

__all__ = [
    "DocumentationIndex",
    "ManifestConfigResolver",
    "DiscoveryError",
    "LoadedModule",
    "discover_modules",
    "load_modules",
    "EndpointScanner",
    "generate_tool_name",
]
