"""MCP server entry point for sqlite-memory.

This module provides the main entry point for the sqlite-memory MCP server with:
- CLI argument parsing layered over MemorySettings (SQLITE_* env vars, .env)
- Store initialization (text-only or vector-enabled)
- Signal handling for graceful shutdown
- Logging to stderr (CRITICAL for MCP stdio)

Usage:
    python -m sqlite_memory [options]
    python -m sqlite_memory migrate
    python -m sqlite_memory --call search_nodes --args '{"query": "anthropic"}'

    Options:
        --db-path PATH            SQLite database (from SQLITE_DB_PATH)
        --no-vector               Disable sqlite-vec and vector search
        --vector-dimensions N     Embedding width (from SQLITE_VECTOR_DIMENSIONS)
        --log-level LEVEL         Logging level (from SQLITE_LOG_LEVEL)

CRITICAL: MCP servers using stdio transport must NEVER write to stdout
as it corrupts JSON-RPC messages. All logging goes to stderr.
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from sqlite_memory import __version__
from sqlite_memory.config import LOG_LEVELS, MemorySettings

# Load .env file - must be done before any config access
load_dotenv()

logger = logging.getLogger(__name__)


def setup_logging(log_level: str) -> None:
    """Configure logging to stderr (never stdout for MCP servers).

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,  # Critical: never use stdout in MCP servers
    )

    logger.info(f"Logging initialized at {log_level.upper()} level")


def parse_arguments(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments. Unset flags fall back to MemorySettings."""
    parser = argparse.ArgumentParser(
        prog="sqlite-memory",
        description="SQLite-based persistent knowledge graph memory server for MCP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "command",
        nargs="?",
        choices=["serve", "migrate"],
        default="serve",
        help="serve (default) runs the MCP stdio server; migrate creates the schema and exits",
    )

    # Direct tool call mode (for scripting)
    parser.add_argument(
        "--call",
        type=str,
        metavar="TOOL_NAME",
        help="Call a tool directly, print its JSON result and exit",
    )
    parser.add_argument(
        "--args",
        type=str,
        default="{}",
        help="JSON arguments for --call mode",
    )

    parser.add_argument(
        "--db-path",
        type=Path,
        default=None,
        help="SQLite database path (from SQLITE_DB_PATH)",
    )
    parser.add_argument(
        "--no-vector",
        action="store_true",
        help="Disable vector storage and search (from SQLITE_ENABLE_VECTOR)",
    )
    parser.add_argument(
        "--vector-dimensions",
        type=int,
        default=None,
        help="Embedding dimensionality (from SQLITE_VECTOR_DIMENSIONS)",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default=None,
        choices=list(LOG_LEVELS),
        help="Logging level (from SQLITE_LOG_LEVEL)",
    )

    return parser.parse_args(argv)


def load_settings(args: argparse.Namespace) -> MemorySettings:
    """Build MemorySettings from the environment with CLI overrides applied."""
    overrides: dict[str, Any] = {}
    if args.db_path is not None:
        overrides["db_path"] = args.db_path
    if args.no_vector:
        overrides["enable_vector"] = False
    if args.vector_dimensions is not None:
        overrides["vector_dimensions"] = args.vector_dimensions
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    return MemorySettings(**overrides)


def initialize_components(settings: MemorySettings) -> dict[str, Any]:
    """Initialize the store, graph façade and tools, in dependency order.

    Returns:
        Dictionary with store, graph and graph_tools

    Raises:
        StorageError: If the database cannot be opened
    """
    from sqlite_memory.graph import KnowledgeGraph
    from sqlite_memory.storage import create_store_from_settings
    from sqlite_memory.tools import GraphTools

    logger.info(f"Initializing store at {settings.get_db_path()}")
    store = create_store_from_settings(settings)
    graph = KnowledgeGraph(store)
    return {
        "store": store,
        "graph": graph,
        "graph_tools": GraphTools(graph),
    }


def handle_shutdown(signum: int, _frame: Any) -> None:
    """Handle SIGINT/SIGTERM for graceful shutdown.

    Raises SystemExit so that main()'s finally block closes the store.
    """
    logger.info(f"Received signal {signum}, shutting down gracefully...")
    sys.exit(0)


def run_migrations(settings: MemorySettings) -> int:
    """Create the schema (idempotent) and report the applied version."""
    from sqlite_memory.storage import create_store_from_settings

    logger.info("Starting migrations...")
    with create_store_from_settings(settings) as store:
        version = store.schema_version()
    logger.info(f"Migrations completed successfully (schema version {version})")
    return version


def call_tool_directly(components: dict[str, Any], tool_name: str, raw_args: str) -> int:
    """Call a tool directly and print its JSON result to stdout.

    Returns:
        Process exit code (0 on success)
    """
    try:
        tool_args = json.loads(raw_args)
    except json.JSONDecodeError as e:
        print(json.dumps({"success": False, "error": f"Invalid JSON args: {e}"}))
        return 1

    tools = components["graph_tools"]
    tool_map = {
        "create_entities": tools.create_entities,
        "create_relations": tools.create_relations,
        "search_nodes": tools.search_nodes,
        "read_graph": tools.read_graph,
        "delete_entity": tools.delete_entity,
        "delete_relation": tools.delete_relation,
        "get_entity_with_relations": tools.get_entity_with_relations,
        "get_stats": tools.get_stats,
    }

    if tool_name not in tool_map:
        print(json.dumps({"success": False, "error": f"Unknown tool: {tool_name}"}))
        return 1

    try:
        result = asyncio.run(tool_map[tool_name](**tool_args))
    except TypeError as e:
        result = {"success": False, "error": f"Invalid arguments for {tool_name}: {e}"}

    print(json.dumps(result, indent=2))
    return 0 if result.get("success") else 1


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point for the MCP server.

    Workflow:
    1. Parse CLI arguments and load settings
    2. Setup logging to stderr
    3. Run migrate / --call, or open the store and serve MCP over stdio
    4. Close the store on every exit path
    """
    args = parse_arguments(argv)

    try:
        settings = load_settings(args)
    except ValueError as e:
        sys.stderr.write(f"ERROR: Invalid configuration: {e}\n")
        sys.exit(1)

    if args.call:
        setup_logging("WARNING")  # Quiet logging for --call mode
    else:
        setup_logging(settings.log_level)

    if args.command == "migrate":
        try:
            run_migrations(settings)
        except Exception as e:
            logger.error(f"Error running migrations: {e}", exc_info=True)
            sys.exit(1)
        return

    logger.info(f"Starting sqlite-memory MCP server v{__version__}...")
    logger.info(
        f"Configuration: db_path={settings.get_db_path()}, "
        f"vector={settings.enable_vector}, dimensions={settings.vector_dimensions}"
    )

    components: dict[str, Any] = {}
    try:
        components = initialize_components(settings)

        if args.call:
            sys.exit(call_tool_directly(components, args.call, args.args))

        from sqlite_memory.mcp_server import mcp, set_tool_instances

        set_tool_instances(graph=components["graph_tools"])

        # Register signal handlers for graceful shutdown
        signal.signal(signal.SIGINT, handle_shutdown)
        signal.signal(signal.SIGTERM, handle_shutdown)

        logger.info("MCP server ready, starting stdio transport...")

        # Blocks until the server shuts down
        mcp.run(transport="stdio")

    except Exception as e:
        logger.error(f"Server failed: {e}", exc_info=True)
        sys.exit(1)

    finally:
        store = components.get("store")
        if store is not None:
            store.close()


if __name__ == "__main__":
    main()
