"""CLI for managing oracle card data and running searches."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from oracle_lens.card_store import CardStore
from oracle_lens.collection_import import COLLECTION_FORMATS, parse_collection
from oracle_lens.data_manager import DEFAULT_DATA_TYPE, DataManager
from oracle_lens.import_utils import import_cards_streaming
from oracle_lens.query_parser import QueryError
from oracle_lens.server import default_data_dir, run_server

logger = logging.getLogger(__name__)


def format_size(bytes_size: float) -> str:
    """Format bytes as human-readable size."""
    for unit in ["B", "KB", "MB", "GB"]:
        if bytes_size < 1024:
            return f"{bytes_size:.1f} {unit}"
        bytes_size /= 1024
    return f"{bytes_size:.1f} TB"


def print_progress_bar(downloaded: int, total: int) -> None:
    """Print a download progress bar to stdout.

    Matches the progress_callback signature of DataManager.download_bulk_data.
    """
    bar_length = 40
    if total == 0:
        return

    percent = downloaded / total
    filled = int(bar_length * percent)
    bar = "█" * filled + "░" * (bar_length - filled)

    sys.stdout.write(
        f"\r  [{bar}] {percent*100:.1f}% ({format_size(downloaded)} / {format_size(total)})"
    )
    sys.stdout.flush()


def print_import_progress(imported: int) -> None:
    sys.stdout.write(f"\r  Importing... {imported:,} cards")
    sys.stdout.flush()


def find_bulk_file(data_dir: Path) -> Path | None:
    """Return the most recently modified bulk JSON file in data_dir."""
    json_files = [f for f in data_dir.glob("*.json") if f.name != "metadata.json"]
    if not json_files:
        return None
    return max(json_files, key=lambda f: f.stat().st_mtime)


async def download_data(data_dir: Path, force: bool = False) -> int:
    """Download the oracle cards file and import it. Returns an exit code."""
    manager = DataManager(data_dir)

    print("Checking for updates...")

    try:
        if not force and not await manager.is_cache_stale():
            status = await manager.get_status()
            print("Data is already up to date!")
            print(f"  Last updated: {status.last_updated}")
            print(f"  Cards: {status.card_count:,}")
            print("  Use --force to re-download anyway.")
            return 0

        info = await manager.get_bulk_data_info(DEFAULT_DATA_TYPE)
        if not info:
            print(f"Error: Scryfall catalog has no '{DEFAULT_DATA_TYPE}' file")
            return 1

        print(f"Downloading {info.get('name', DEFAULT_DATA_TYPE)}...")
        print(f"  Size: {format_size(info.get('size', 0))}")
        print(f"  Updated: {info.get('updated_at', 'unknown')}")
        print()

        file_path = await manager.download_bulk_data(
            DEFAULT_DATA_TYPE,
            progress_callback=print_progress_bar,
        )

        print()
        print(f"Downloaded to: {file_path}")
        print()
        print("Importing cards into database...")

        with CardStore(data_dir / "cards.db") as store:
            total_cards = import_cards_streaming(
                file_path, store, progress_callback=print_import_progress
            )

        manager.update_card_count(total_cards)

        print()
        print(f"Import complete! {total_cards:,} cards imported.")
        return 0

    finally:
        await manager.close()


async def show_status(data_dir: Path) -> int:
    """Show current data status."""
    manager = DataManager(data_dir)

    try:
        status = await manager.get_status()

        print("Oracle Lens Data Status")
        print("-" * 40)
        print(f"  Last updated: {status.last_updated or 'Never'}")
        print(f"  Card count:   {status.card_count:,}")
        print(f"  Version:      {status.version or 'Unknown'}")
        print(f"  Stale:        {'Yes' if status.is_stale else 'No'}")

        db_path = data_dir / "cards.db"
        if db_path.exists():
            with CardStore(db_path) as store:
                summary = store.collection_summary()
            print(
                f"  Collection:   {summary['total_cards']:,} cards "
                f"({summary['total_unique']:,} unique)"
            )

        if status.is_stale:
            print()
            print("Run 'oracle-lens download' to update.")
        return 0

    finally:
        await manager.close()


def import_data(data_dir: Path, json_file: Path | None = None) -> int:
    """Import cards from a bulk JSON file into the database."""
    if json_file is None:
        json_file = find_bulk_file(data_dir)
        if json_file is None:
            print("Error: No JSON data file found in data directory.")
            print("Run 'oracle-lens download' first.")
            return 1

    if not json_file.exists():
        print(f"Error: File not found: {json_file}")
        return 1

    print(f"Importing from: {json_file.name}")
    print(f"  File size: {format_size(json_file.stat().st_size)}")
    print()

    with CardStore(data_dir / "cards.db") as store:
        total_cards = import_cards_streaming(
            json_file, store, progress_callback=print_import_progress
        )

    DataManager(data_dir).update_card_count(total_cards)

    print()
    print()
    print(f"Import complete! {total_cards:,} cards in database.")
    return 0


def run_search(data_dir: Path, query: str, limit: int, collection: bool = False) -> int:
    """Print the names of cards matching a query."""
    with CardStore(data_dir / "cards.db") as store:
        try:
            if collection:
                entries = store.search_collection(query, limit=limit)
                lines = [f"{entry.qty}x {entry.card.name}" for entry in entries]
            else:
                lines = [card.name for card in store.search(query, limit=limit)]
        except QueryError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2

    if not lines:
        print("No cards found.")
        return 0

    for line in lines:
        print(line)
    return 0


def import_collection_file(
    data_dir: Path,
    path: Path,
    fmt: str,
    tags: list[str] | None = None,
    location: str | None = None,
) -> int:
    """Add the cards listed in a collection file to the collection."""
    if not path.is_file():
        print(f"Error: File not found: {path}")
        return 1

    counts = parse_collection(path.read_text(encoding="utf-8-sig"), fmt)

    with CardStore(data_dir / "cards.db") as store:
        imported, not_found = store.import_collection(counts, tags=tags, location=location)
        summary = store.collection_summary()

    print(f"Imported {imported:,} cards.")
    if not_found:
        print(f"Not found ({len(not_found)}):")
        for name in not_found:
            print(f"  {name}")
    print(
        f"Collection now holds {summary['total_cards']:,} cards "
        f"({summary['total_unique']:,} unique)."
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="oracle-lens",
        description="Oracle Lens - search MTG oracle cards and your collection",
    )

    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory for storing data (default: $ORACLE_LENS_DATA_DIR or ./data)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    download_parser = subparsers.add_parser(
        "download",
        help="Download or update the oracle cards file and import it",
    )
    download_parser.add_argument(
        "--force",
        action="store_true",
        help="Force re-download even if data is current",
    )

    import_parser = subparsers.add_parser(
        "import",
        help="Import cards from a downloaded JSON file into the database",
    )
    import_parser.add_argument(
        "--file",
        type=Path,
        help="JSON file to import (auto-detects if not specified)",
    )

    subparsers.add_parser("status", help="Show current data status")

    search_parser = subparsers.add_parser("search", help="Search cards")
    search_parser.add_argument("query", help="Scryfall-style query, e.g. 't:creature c:g'")
    search_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Maximum results to show (default: 20)",
    )
    search_parser.add_argument(
        "--collection",
        action="store_true",
        help="Search only cards in your collection",
    )

    collection_parser = subparsers.add_parser(
        "collection",
        help="Import a collection file",
    )
    collection_parser.add_argument("file", type=Path, help="Collection file")
    collection_parser.add_argument(
        "--format",
        choices=COLLECTION_FORMATS,
        default="goldfish",
        help="Collection format (default: goldfish)",
    )
    collection_parser.add_argument(
        "--tag",
        dest="tags",
        action="append",
        help="Tag every imported card (repeatable)",
    )
    collection_parser.add_argument(
        "--location",
        help="Record where the imported cards are kept",
    )

    subparsers.add_parser("serve", help="Run the MCP server over stdio")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    data_dir = args.data_dir if args.data_dir is not None else default_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)

    if args.command == "download":
        return asyncio.run(download_data(data_dir, args.force))
    elif args.command == "import":
        return import_data(data_dir, args.file)
    elif args.command == "status":
        return asyncio.run(show_status(data_dir))
    elif args.command == "search":
        if args.limit < 0:
            parser.error("--limit must be non-negative")
        return run_search(data_dir, args.query, args.limit, args.collection)
    elif args.command == "collection":
        return import_collection_file(
            data_dir, args.file, args.format, args.tags, args.location
        )
    elif args.command == "serve":
        asyncio.run(run_server(data_dir))
        return 0
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
