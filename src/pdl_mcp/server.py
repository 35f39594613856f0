"""PDL MCP Server - Expose project lifecycle tracking to AI assistants."""
import sys
import asyncio
import logging
import traceback
from typing import Any, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from pdl_core.config import get_settings
from pdl_core.operations import Operations
from pdl_core.store import Store

from . import formatters
from . import tools
from . import handlers


# Configure logging to stderr (stdout carries the MCP protocol)
logging.basicConfig(
    level=get_settings().log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr,
    force=True
)
logger = logging.getLogger("pdl-mcp")


# MCP Server instance
app = Server("pdl-mcp")

# Operations facade, built once per process in main()
_ops: Optional[Operations] = None


def build_operations() -> Operations:
    """Open the canonical store and fold in any legacy stores found nearby."""
    settings = get_settings()
    logger.info(f"MCP Server starting with store: {settings.database_path}")
    store = Store.from_settings(settings)
    ops = Operations(store, settings)

    result = ops.run_consolidation()
    if result.ok:
        logger.info(formatters.format_consolidation_report(result.value.model_dump(mode="json")))
    else:
        logger.warning(f"Consolidation failed: {result.message}")
    return ops


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available MCP tools for project lifecycle tracking."""
    return tools.get_tools()


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle MCP tool calls by delegating to shared handlers."""
    global _ops

    logger.info(f"Tool call: {name} with arguments: {arguments}")
    if _ops is None:
        _ops = build_operations()

    try:
        return await handlers.dispatch(name, arguments or {}, _ops)
    except Exception as e:
        # Catch-all for unexpected errors
        logger.error(f"Unexpected error during {name} call:")
        logger.error(f"  Error type: {type(e).__name__}")
        logger.error(f"  Error message: {str(e)}")
        logger.error(f"  Arguments: {arguments}")
        logger.error(f"  Traceback:\n{traceback.format_exc()}")
        return [TextContent(type="text", text=f"Error: {type(e).__name__}: {str(e)}")]


async def main():
    """Run the MCP server."""
    global _ops
    _ops = build_operations()
    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(read_stream, write_stream, app.create_initialization_options())
    finally:
        _ops.store.dispose()


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
