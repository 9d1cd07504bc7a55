"""MCP server for oracle card search.

Exposes the query engine over the user's locally cached oracle cards and
owned collection. Uses the low-level MCP Server class.
"""

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import mcp.types as types
from mcp.server.lowlevel import Server, NotificationOptions
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.models import InitializationOptions
import mcp.server.stdio

from oracle_lens import __version__
from oracle_lens.card_store import CardStore
from oracle_lens.collection_import import COLLECTION_FORMATS, parse_collection
from oracle_lens.data_manager import DEFAULT_DATA_TYPE, DataManager
from oracle_lens.import_utils import import_cards_streaming
from oracle_lens.query_parser import QueryError, SYNTAX_SUMMARY

logger = logging.getLogger(__name__)

SERVER_NAME = "oracle-lens"

DATA_DIR_ENV = "ORACLE_LENS_DATA_DIR"

DEFAULT_LIMIT = 20
MAX_LIMIT = 100

SCHEMA_URI = "mcp://mtg/schema/oracle_cards"
COLLECTION_SUMMARY_URI = "mcp://mtg/collection/summary"

ORACLE_CARDS_SCHEMA = {
    "oracle_id": "string (primary key)",
    "name": "string",
    "mana_cost": "string",
    "cmc": "integer",
    "type_line": "string",
    "oracle_text": "string",
    "colors": "string (JSON array)",
    "color_identity": "string (JSON array)",
    "keywords": "string (JSON array)",
    "legalities": "string (JSON object)",
}


@dataclass
class Tool:
    """Tool definition for MCP."""

    name: str
    description: str
    inputSchema: dict[str, Any]


@dataclass
class Resource:
    """Resource definition for MCP."""

    uri: str
    name: str
    description: str
    mimeType: str = "application/json"


_QUERY_SCHEMA = {
    "type": "object",
    "properties": {
        "query": {
            "type": "string",
            "description": "Search query using Scryfall syntax or plain text "
            "(e.g., 't:creature ci:esper cmc<=:3')",
        },
        "limit": {
            "type": "integer",
            "description": f"Maximum results to return (default {DEFAULT_LIMIT}, max {MAX_LIMIT})",
            "default": DEFAULT_LIMIT,
            "minimum": 1,
            "maximum": MAX_LIMIT,
        },
    },
    "required": ["query"],
}


def _clamp_limit(arguments: dict[str, Any]) -> int:
    return max(1, min(arguments.get("limit", DEFAULT_LIMIT), MAX_LIMIT))


def _query_error_result(error: QueryError) -> dict[str, Any]:
    return {
        "error": error.message,
        "hint": error.hint,
        "supported_syntax": error.supported_syntax,
    }


class OracleLensServer:
    """Oracle Lens MCP server.

    Searches all oracle cards and the owned collection from a local
    SQLite store, and keeps that store in sync with Scryfall bulk data.
    """

    name = SERVER_NAME
    version = __version__

    def __init__(self, data_dir: Path):
        """Initialize server.

        Args:
            data_dir: Directory for storing card data
        """
        self.data_dir = data_dir
        self.db_path = data_dir / "cards.db"

        self._store: CardStore | None = None
        self._data_manager = DataManager(data_dir)
        self._refresh_task: asyncio.Task | None = None
        self._refresh_status: str = "idle"
        self._refresh_lock = asyncio.Lock()  # Prevents queries during import

    def _get_store(self) -> CardStore:
        """Get or create card store."""
        if self._store is None:
            self._store = CardStore(self.db_path)
        return self._store

    def close(self) -> None:
        """Close server resources synchronously."""
        if self._store is not None:
            self._store.close()
            self._store = None

    async def cleanup(self) -> None:
        """Cancel any background refresh and release all resources."""
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None

        self.close()
        await self._data_manager.close()

    def __enter__(self) -> "OracleLensServer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    async def __aenter__(self) -> "OracleLensServer":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.cleanup()

    def _init_db(self, cards: list[dict[str, Any]]) -> None:
        """Load cards directly into the store (for testing)."""
        self._get_store().insert_cards(cards)

    def list_tools(self) -> list[Tool]:
        """List available tools."""
        return [
            Tool(
                name="oracle_search",
                description=f"Search all Oracle cards using Scryfall-like syntax. {SYNTAX_SUMMARY}",
                inputSchema=_QUERY_SCHEMA,
            ),
            Tool(
                name="collection_search",
                description="Search cards in your collection using the same syntax as oracle_search. "
                "Results include owned quantity, tags and location.",
                inputSchema=_QUERY_SCHEMA,
            ),
            Tool(
                name="import_collection",
                description="Import owned cards from a collection file. Cards are matched "
                "to Oracle cards by exact name; quantities are added to existing ones. "
                "Optional tags and location are recorded on every imported card.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "path": {
                            "type": "string",
                            "description": "Path to the collection file",
                        },
                        "format": {
                            "type": "string",
                            "description": "Collection format (default: 'goldfish')",
                            "enum": list(COLLECTION_FORMATS),
                            "default": "goldfish",
                        },
                        "tags": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Tags to add to every imported card",
                        },
                        "location": {
                            "type": "string",
                            "description": "Where the imported cards are kept, e.g. 'Binder 1'",
                        },
                    },
                    "required": ["path"],
                },
            ),
            Tool(
                name="data_status",
                description="Check the status of the local card data cache. "
                "Returns card count, last updated time, and whether data is stale.",
                inputSchema={"type": "object", "properties": {}},
            ),
            Tool(
                name="refresh_data",
                description="Trigger a refresh of the local Oracle card data. "
                "Downloads the latest Oracle cards file from Scryfall if it has changed.",
                inputSchema={"type": "object", "properties": {}},
            ),
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Execute a tool and return its result dictionary."""
        if name == "oracle_search":
            return await self._oracle_search(arguments)
        elif name == "collection_search":
            return await self._collection_search(arguments)
        elif name == "import_collection":
            return await self._import_collection(arguments)
        elif name == "data_status":
            return await self._data_status(arguments)
        elif name == "refresh_data":
            return await self._refresh_data(arguments)
        else:
            return {"error": f"Unknown tool: {name}"}

    async def _oracle_search(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Search all oracle cards.

        Returns:
            {"cards": [...], "total_count": int, "query_time_ms": int}
        """
        query = arguments.get("query", "")
        limit = _clamp_limit(arguments)
        start_time = time.time()

        try:
            async with self._refresh_lock:
                cards, total_count = self._get_store().search_with_total(query, limit=limit)
        except QueryError as e:
            return _query_error_result(e)

        return {
            "cards": [card.to_dict() for card in cards],
            "total_count": total_count,
            "query_time_ms": int((time.time() - start_time) * 1000),
        }

    async def _collection_search(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Search owned cards.

        Returns:
            {"cards": [...], "query_time_ms": int}
        """
        query = arguments.get("query", "")
        limit = _clamp_limit(arguments)
        start_time = time.time()

        try:
            async with self._refresh_lock:
                entries = self._get_store().search_collection(query, limit=limit)
        except QueryError as e:
            return _query_error_result(e)

        return {
            "cards": [entry.to_dict() for entry in entries],
            "query_time_ms": int((time.time() - start_time) * 1000),
        }

    async def _import_collection(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Import a collection file.

        Returns:
            {"imported": int, "unique": int, "not_found": [...]}
        """
        path = arguments.get("path")
        fmt = arguments.get("format", "goldfish")
        tags = arguments.get("tags")
        location = arguments.get("location")

        if not path:
            return {"error": "'path' must be provided"}
        if tags is not None and (
            not isinstance(tags, list) or not all(isinstance(tag, str) for tag in tags)
        ):
            return {"error": "'tags' must be a list of strings"}
        if location is not None and not isinstance(location, str):
            return {"error": "'location' must be a string"}

        file_path = Path(path).expanduser()
        if not file_path.is_file():
            return {"error": f"File not found: {path}"}

        try:
            counts = parse_collection(file_path.read_text(encoding="utf-8-sig"), fmt)
        except (OSError, UnicodeDecodeError, ValueError) as e:
            return {"error": f"Failed to read collection: {e}"}

        async with self._refresh_lock:
            imported, not_found = self._get_store().import_collection(
                counts, tags=tags, location=location
            )

        return {
            "imported": imported,
            "unique": len(counts) - len(not_found),
            "not_found": not_found,
        }

    async def _data_status(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Get data cache status."""
        async with self._refresh_lock:
            store = self._get_store()
            card_count = store.get_card_count()
            collection = store.collection_summary()
        status = await self._data_manager.get_status()

        result = status.to_dict()
        result["card_count"] = card_count
        result["collection"] = collection

        if self._refresh_status != "idle":
            result["refresh_status"] = self._refresh_status

        return result

    def _import_cards_blocking(self, file_path: Path) -> int:
        """Import cards from a bulk file (blocking I/O, runs in a worker thread).

        Uses its own connection since sqlite3 connections are bound to the
        thread that created them. Existing rows are updated in place, so the
        collection survives a refresh.
        """
        with CardStore(self.db_path) as store:
            return import_cards_streaming(file_path, store)

    async def _do_refresh(self) -> None:
        """Download and import the oracle cards file (runs in background)."""
        try:
            self._refresh_status = "downloading"
            file_path = await self._data_manager.download_bulk_data(DEFAULT_DATA_TYPE)

            self._refresh_status = "importing"
            async with self._refresh_lock:
                card_count = await asyncio.to_thread(self._import_cards_blocking, file_path)

            self._data_manager.update_card_count(card_count)
            self._refresh_status = "completed"

        except Exception as e:
            logger.exception("Data refresh failed")
            self._refresh_status = f"error: {e}"

        finally:
            self._refresh_task = None

    async def _refresh_data(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Start or report on a data refresh.

        Returns:
            {"status": str, "message": str}
        """
        try:
            if self._refresh_task is not None and not self._refresh_task.done():
                return {
                    "status": "in_progress",
                    "message": f"Data refresh already in progress: {self._refresh_status}",
                }

            if self._refresh_status == "completed":
                self._refresh_status = "idle"
                return {
                    "status": "completed",
                    "message": "Data refresh completed successfully",
                }

            if self._refresh_status.startswith("error:"):
                error_msg = self._refresh_status
                self._refresh_status = "idle"
                return {
                    "status": "error",
                    "message": error_msg,
                }

            if not await self._data_manager.is_cache_stale():
                return {
                    "status": "already_current",
                    "message": "Data is already up to date",
                }

            self._refresh_task = asyncio.create_task(self._do_refresh())

            return {
                "status": "downloading",
                "message": "Data refresh started. Use data_status to check progress.",
            }

        except Exception as e:
            logger.exception("Failed to start data refresh")
            return {
                "status": "error",
                "message": f"Failed to refresh data: {e}",
            }

    def list_resources(self) -> list[Resource]:
        """List available resources."""
        return [
            Resource(
                uri=SCHEMA_URI,
                name="Oracle Cards Schema",
                description="Schema documentation for the oracle_cards table",
            ),
            Resource(
                uri=COLLECTION_SUMMARY_URI,
                name="Collection Summary",
                description="Summary of your MTG collection",
            ),
        ]

    async def read_resource(self, uri: str) -> str:
        """Read a resource as JSON text.

        Raises:
            ValueError: If the resource is unknown
        """
        if uri == SCHEMA_URI:
            return json.dumps({"schema": ORACLE_CARDS_SCHEMA}, indent=2)

        if uri == COLLECTION_SUMMARY_URI:
            async with self._refresh_lock:
                summary = self._get_store().collection_summary()
            return json.dumps(summary, indent=2)

        raise ValueError(f"Unknown resource: {uri}")


def create_server(data_dir: Path) -> tuple[Server, OracleLensServer]:
    """Create MCP server instance.

    Args:
        data_dir: Directory for storing card data

    Returns:
        Tuple of (MCP Server, OracleLensServer instance for cleanup)
    """
    oracle_lens = OracleLensServer(data_dir)
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def handle_list_tools() -> list[types.Tool]:
        return [
            types.Tool(name=t.name, description=t.description, inputSchema=t.inputSchema)
            for t in oracle_lens.list_tools()
        ]

    @server.call_tool()
    async def handle_call_tool(
        name: str, arguments: dict[str, Any]
    ) -> list[types.TextContent]:
        result = await oracle_lens.call_tool(name, arguments or {})
        return [
            types.TextContent(
                type="text",
                text=json.dumps(result, default=str),
            )
        ]

    @server.list_resources()
    async def handle_list_resources() -> list[types.Resource]:
        return [
            types.Resource(
                uri=r.uri,
                name=r.name,
                description=r.description,
                mimeType=r.mimeType,
            )
            for r in oracle_lens.list_resources()
        ]

    @server.read_resource()
    async def handle_read_resource(uri) -> list[ReadResourceContents]:
        text = await oracle_lens.read_resource(str(uri))
        return [ReadResourceContents(content=text, mime_type="application/json")]

    return server, oracle_lens


def default_data_dir() -> Path:
    """Data directory from the environment, else ./data under the project root."""
    env_dir = os.environ.get(DATA_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser()
    return Path(__file__).parent.parent / "data"


async def run_server(data_dir: Path | None = None) -> None:
    """Run the MCP server over stdio."""
    if data_dir is None:
        data_dir = default_data_dir()

    data_dir.mkdir(parents=True, exist_ok=True)

    server, oracle_lens = create_server(data_dir)

    try:
        async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                InitializationOptions(
                    server_name=SERVER_NAME,
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                ),
            )
    finally:
        await oracle_lens.cleanup()


if __name__ == "__main__":
    asyncio.run(run_server())
