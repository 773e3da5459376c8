"""
memplug MCP Server

Exposes the registered memplug commands as MCP tools. Each call runs the
command with JSON output into memory and returns the parsed result.
"""
from __future__ import annotations

import asyncio
import io
import json
import logging
from typing import Any, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    TextContent,
    Tool,
)

from . import __version__
from .config import BUILTIN_PLUGIN_PACKAGE, MAX_RESPONSE_SIZE
from .core import (
    VOL3_AVAILABLE,
    VOL3_PATH,
    ConfObject,
    MemplugError,
    PluginRegistry,
    clear_sessions,
    list_sessions,
)
from .plugins import yarascan

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Create MCP server
server = Server("memplug")

# Plugin registry (singleton)
_registry: PluginRegistry | None = None


def _get_registry() -> PluginRegistry:
    """Get or create the global PluginRegistry."""
    global _registry
    if _registry is None:
        _registry = PluginRegistry()
        _registry.load_package(BUILTIN_PLUGIN_PACKAGE)
    return _registry


def truncate_response(data: dict[str, Any], max_size: int = MAX_RESPONSE_SIZE) -> dict[str, Any]:
    """Truncate response if it exceeds max size."""
    json_str = json.dumps(data, indent=2, default=str)

    if len(json_str) <= max_size:
        return data

    # Progressively truncate lists until under limit
    for keep_count in [500, 200, 100, 50, 20]:
        for key in list(data.keys()):
            value = data[key]
            if isinstance(value, list) and len(value) > keep_count:
                original_len = len(value)
                data[key] = value[:keep_count]
                data.setdefault("_truncation", {})[f"{key}_truncated"] = f"Showing {keep_count} of {original_len}. Use 'filter' param to narrow results."

        check = json.dumps(data, indent=2, default=str)
        if len(check) <= max_size:
            return data

    data.setdefault("_truncation", {})["truncated"] = True
    data["_truncation"]["message"] = "Response truncated. Use 'filter' param to narrow results."
    return data


def _apply_filter(data: dict[str, Any], filter_str: str) -> dict[str, Any]:
    """Apply case-insensitive substring filter to list values in response."""
    filter_lower = filter_str.lower()
    for key, value in list(data.items()):
        if isinstance(value, list):
            original_len = len(value)
            filtered = []
            for item in value:
                item_str = json.dumps(item, default=str).lower() if isinstance(item, dict) else str(item).lower()
                if filter_lower in item_str:
                    filtered.append(item)
            data[key] = filtered
            if len(filtered) < original_len:
                data.setdefault("_filter_info", {})[key] = f"Matched {len(filtered)} of {original_len} (filter: '{filter_str}')"
    return data


def json_response(data: dict[str, Any]) -> list[TextContent]:
    """Format data as JSON response."""
    data = truncate_response(data)
    return [TextContent(type="text", text=json.dumps(data, indent=2, default=str))]


def run_command(
    plugin: str,
    image_path: Optional[str] = None,
    options: Optional[dict[str, Any]] = None,
    registry: Optional[PluginRegistry] = None,
) -> dict[str, Any]:
    """
    Run a registered command with JSON output and return its parsed result.

    Options are given by name ("pid", "yara-rules", "YARA_FILE"...) and must
    be global options or private options of the selected command.
    """
    registry = registry or _get_registry()
    config = ConfObject()
    registry.register_options(config)

    command = registry.create(plugin, config)
    config.set("OUTPUT", "json")
    if image_path is not None and config.has_option("FILENAME"):
        config.set("FILENAME", image_path)
    for key, value in (options or {}).items():
        config.set(key, value)

    sink = io.StringIO()
    command.execute(outfd=sink)

    return {
        "plugin": command.name,
        "image_path": image_path,
        "results": json.loads(sink.getvalue()),
    }


def describe_plugins(registry: Optional[PluginRegistry] = None) -> list[dict[str, Any]]:
    """Registered plugins with their private options."""
    registry = registry or _get_registry()

    plugins = []
    for name, cls in registry.items():
        # Fresh config per plugin so shared private options are listed for each
        config = ConfObject()
        registry.register_options(config)
        command = registry.create(name, config)
        plugins.append({
            "name": name,
            "module": registry.origin(name),
            "description": cls.summary(),
            "formats": command.supported_formats(),
            "options": [
                {
                    "name": option.name.lower(),
                    "action": option.action,
                    "default": option.default,
                    "help": option.help,
                }
                for option in config.options(owner=name, include_global=False)
            ],
        })
    return plugins


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available MCP tools."""
    tools = []

    tools.append(Tool(
        name="memplug_list_plugins",
        description="List registered memplug plugins with their descriptions, output formats and plugin-specific options.",
        inputSchema={"type": "object", "properties": {}},
    ))

    tools.append(Tool(
        name="memplug_run_plugin",
        description="Run a memplug plugin against a memory image and return its results as JSON. Use memplug_list_plugins to see plugin names and options.",
        inputSchema={
            "type": "object",
            "properties": {
                "plugin": {
                    "type": "string",
                    "description": "Plugin name (e.g., 'pslist', 'imageinfo', 'yarascan')",
                },
                "image_path": {
                    "type": "string",
                    "description": "Path to memory dump file",
                },
                "options": {
                    "type": "object",
                    "description": "Plugin options by name, e.g. {\"pid\": \"4,1234\"} or {\"yara-rules\": \"evil.com\"}",
                },
                "filter": {
                    "type": "string",
                    "description": "Case-insensitive substring filter applied to result rows",
                },
            },
            "required": ["plugin"],
        },
    ))

    tools.append(Tool(
        name="memplug_list_sessions",
        description="List memory image sessions with cached Volatility3 results.",
        inputSchema={"type": "object", "properties": {}},
    ))

    tools.append(Tool(
        name="memplug_clear_sessions",
        description="Drop cached sessions (all, or those older than max_age_seconds).",
        inputSchema={
            "type": "object",
            "properties": {
                "max_age_seconds": {"type": "integer", "description": "Only clear sessions older than this"},
            },
        },
    ))

    tools.append(Tool(
        name="memplug_get_status",
        description="Get status and capabilities: available analysis libraries and plugin count.",
        inputSchema={"type": "object", "properties": {}},
    ))

    return tools


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls."""
    try:
        if name == "memplug_list_plugins":
            return json_response({"plugins": describe_plugins()})

        elif name == "memplug_run_plugin":
            result = run_command(
                plugin=arguments["plugin"],
                image_path=arguments.get("image_path"),
                options=arguments.get("options"),
            )
            if arguments.get("filter"):
                result = _apply_filter(result, arguments["filter"])
            return json_response(result)

        elif name == "memplug_list_sessions":
            return json_response({"sessions": list_sessions()})

        elif name == "memplug_clear_sessions":
            cleared = clear_sessions(arguments.get("max_age_seconds"))
            return json_response({"cleared": cleared})

        elif name == "memplug_get_status":
            registry = _get_registry()
            return json_response({
                "volatility3": {
                    "available": VOL3_AVAILABLE,
                    "path": VOL3_PATH,
                },
                "yara_available": yarascan.YARA_AVAILABLE,
                "plugins": len(registry),
                "load_errors": registry.load_errors,
                "server_version": __version__,
            })

        else:
            return json_response({"error": f"Unknown tool: {name}"})

    except MemplugError as e:
        return json_response({"error": type(e).__name__, "detail": str(e), "tool": name})

    except FileNotFoundError as e:
        return json_response({"error": "File not found", "detail": str(e)})

    except ImportError as e:
        return json_response({
            "error": "Missing dependency",
            "detail": str(e),
            "hint": "Install volatility3 and yara-python: pip install volatility3 yara-python",
        })

    except Exception as e:
        logger.exception(f"Error in tool {name}")
        return json_response({
            "error": "Internal error",
            "detail": str(e),
            "tool": name,
        })


async def main():
    """Run the MCP server."""
    logger.info(f"Starting memplug MCP server {__version__}")
    logger.info(f"Volatility3: {'available' if VOL3_AVAILABLE else 'not installed'}")
    logger.info(f"Plugins registered: {len(_get_registry())}")

    async with stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            server.create_initialization_options(),
        )


def run():
    """Entry point for the server."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
