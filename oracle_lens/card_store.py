"""Card store using SQLite.

Stores oracle cards and the user's collection (inventory), and runs the
query engine over them. All statements use parameterized values.
"""

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from itertools import islice
from pathlib import Path
from typing import Any, Iterator

from oracle_lens.card import CardRecord
from oracle_lens.search import build_predicate, search

logger = logging.getLogger(__name__)


def _load_tags(raw: str | None, oracle_id: str) -> list[str]:
    """Decode the JSON tags column, treating a corrupt value as no tags."""
    if not raw:
        return []
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.debug("Failed to parse tags for card %s: %s", oracle_id, e)
        return []


@dataclass
class CollectionEntry:
    """An owned card with its inventory details."""

    card: CardRecord
    qty: int = 1
    tags: list[str] = field(default_factory=list)
    location: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = self.card.to_dict()
        result.update({"qty": self.qty, "tags": self.tags, "location": self.location})
        return result


class CardStore:
    """SQLite-based oracle card and collection storage."""

    def __init__(self, db_path: Path):
        """Initialize card store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        # Enable WAL mode for better concurrent read performance during refresh
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables and indexes."""
        cursor = self._conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS oracle_cards (
                oracle_id TEXT PRIMARY KEY NOT NULL,
                name TEXT NOT NULL,
                mana_cost TEXT,
                cmc INTEGER,
                type_line TEXT NOT NULL,
                oracle_text TEXT,
                colors TEXT,  -- JSON array
                color_identity TEXT,  -- JSON array
                keywords TEXT,  -- JSON array of keyword abilities
                legalities TEXT  -- JSON object
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS inventory (
                oracle_id TEXT PRIMARY KEY NOT NULL
                    REFERENCES oracle_cards(oracle_id),
                qty INTEGER NOT NULL DEFAULT 1,
                tags TEXT,  -- JSON array
                location TEXT
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_oracle_cards_name ON oracle_cards(name)")
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_oracle_cards_name_lower ON oracle_cards(LOWER(name))"
        )
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_oracle_cards_type ON oracle_cards(type_line)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_oracle_cards_cmc ON oracle_cards(cmc)")

        self._conn.commit()

    def close(self) -> None:
        """Close database connection."""
        self._conn.close()

    def __enter__(self) -> "CardStore":
        """Enter context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager and close connection."""
        self.close()

    def get_card_count(self) -> int:
        """Get total number of cards in database."""
        cursor = self._conn.cursor()
        cursor.execute("SELECT COUNT(*) FROM oracle_cards")
        return cursor.fetchone()[0]

    # UPSERT keeps the rowid stable, so iteration order survives refreshes
    _INSERT_SQL = """
        INSERT INTO oracle_cards (
            oracle_id, name, mana_cost, cmc, type_line, oracle_text,
            colors, color_identity, keywords, legalities
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(oracle_id) DO UPDATE SET
            name = excluded.name,
            mana_cost = excluded.mana_cost,
            cmc = excluded.cmc,
            type_line = excluded.type_line,
            oracle_text = excluded.oracle_text,
            colors = excluded.colors,
            color_identity = excluded.color_identity,
            keywords = excluded.keywords,
            legalities = excluded.legalities
    """

    def _card_to_params(self, card: dict[str, Any] | CardRecord) -> tuple:
        """Extract card data as SQL parameters.

        Args:
            card: Scryfall card dictionary or CardRecord

        Returns:
            Tuple of parameters for SQL insert
        """
        record = card if isinstance(card, CardRecord) else CardRecord.from_scryfall(card)
        return (
            record.id,
            record.name,
            record.mana_cost,
            record.mana_value,
            record.type_line,
            record.oracle_text,
            json.dumps(list(record.sorted_colors)),
            json.dumps(list(record.sorted_color_identity)),
            json.dumps(list(record.keywords)),
            json.dumps(dict(record.legalities)),
        )

    def insert_cards(self, cards: list[dict[str, Any]] | list[CardRecord]) -> None:
        """Insert multiple cards into the database atomically.

        If any card fails to insert, the entire batch is rolled back.

        Args:
            cards: Scryfall card dictionaries or CardRecords

        Raises:
            Exception: Re-raises any exception after rolling back the transaction
        """
        cursor = self._conn.cursor()
        cursor.execute("BEGIN TRANSACTION")
        try:
            for card in cards:
                cursor.execute(self._INSERT_SQL, self._card_to_params(card))
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def get_card_by_id(self, oracle_id: str) -> CardRecord | None:
        """Get card by oracle ID.

        Args:
            oracle_id: Scryfall oracle ID

        Returns:
            CardRecord or None if not found
        """
        cursor = self._conn.cursor()
        cursor.execute("SELECT * FROM oracle_cards WHERE oracle_id = ?", (oracle_id,))
        row = cursor.fetchone()
        return CardRecord.from_row(row) if row else None

    def get_card_by_name(self, name: str) -> CardRecord | None:
        """Get card by exact name (case-insensitive).

        Args:
            name: Card name

        Returns:
            CardRecord or None if not found
        """
        cursor = self._conn.cursor()
        cursor.execute(
            "SELECT * FROM oracle_cards WHERE LOWER(name) = LOWER(?) ORDER BY rowid LIMIT 1",
            (name,),
        )
        row = cursor.fetchone()
        return CardRecord.from_row(row) if row else None

    def iter_cards(self) -> Iterator[CardRecord]:
        """Iterate over all cards in insertion order.

        Rows are fetched lazily, so a consumer that stops early does not
        load the whole table.
        """
        cursor = self._conn.execute("SELECT * FROM oracle_cards ORDER BY rowid")
        for row in cursor:
            yield CardRecord.from_row(row)

    def search(self, query: str, limit: int = 20) -> list[CardRecord]:
        """Search all oracle cards.

        Args:
            query: Scryfall-style query
            limit: Maximum results to return

        Returns:
            Matching cards in insertion order

        Raises:
            QueryError: If the query cannot be parsed
        """
        return search(query, limit, self.iter_cards())

    def search_with_total(self, query: str, limit: int = 20) -> tuple[list[CardRecord], int]:
        """Search all oracle cards and count every match, in a single scan.

        Returns:
            Tuple of (first ``limit`` matching cards, total number of matches)

        Raises:
            QueryError: If the query cannot be parsed
            ValueError: If limit is negative
        """
        if limit < 0:
            raise ValueError(f"limit must be non-negative, got {limit}")

        predicate = build_predicate(query)
        if predicate is None:
            return [], 0

        cards: list[CardRecord] = []
        total = 0
        for card in self.iter_cards():
            if predicate(card):
                total += 1
                if len(cards) < limit:
                    cards.append(card)
        return cards, total

    # -------------------------------------------------------------------------
    # Collection (inventory)
    # -------------------------------------------------------------------------

    def _get_tags(self, oracle_id: str) -> list[str]:
        row = self._conn.execute(
            "SELECT tags FROM inventory WHERE oracle_id = ?", (oracle_id,)
        ).fetchone()
        return _load_tags(row["tags"], oracle_id) if row else []

    def add_to_inventory(
        self,
        oracle_id: str,
        qty: int = 1,
        tags: list[str] | None = None,
        location: str | None = None,
    ) -> None:
        """Add copies of a card to the collection.

        Tags are merged into the ones already stored and a location replaces
        the stored one. Details left out keep their stored values.

        Raises:
            sqlite3.IntegrityError: If the card is not in oracle_cards
        """
        merged = self._get_tags(oracle_id) if tags else []
        for tag in tags or []:
            if tag not in merged:
                merged.append(tag)

        cursor = self._conn.cursor()
        cursor.execute(
            """
            INSERT INTO inventory (oracle_id, qty, tags, location) VALUES (?, ?, ?, ?)
            ON CONFLICT(oracle_id) DO UPDATE SET
                qty = qty + excluded.qty,
                tags = COALESCE(excluded.tags, tags),
                location = COALESCE(excluded.location, location)
            """,
            (oracle_id, qty, json.dumps(merged) if merged else None, location),
        )
        self._conn.commit()

    def import_collection(
        self,
        counts: dict[str, int],
        tags: list[str] | None = None,
        location: str | None = None,
    ) -> tuple[int, list[str]]:
        """Add cards to the collection by name.

        Args:
            counts: Mapping of card name to quantity
            tags: Tags to add to every imported card
            location: Location to record for every imported card

        Returns:
            Tuple of (total copies imported, names not found)
        """
        imported = 0
        not_found: list[str] = []

        for name, qty in counts.items():
            card = self.get_card_by_name(name)
            if card is None:
                not_found.append(name)
                continue
            self.add_to_inventory(card.id, qty, tags=tags, location=location)
            imported += qty

        if not_found:
            logger.info("Collection import skipped %d unknown card names", len(not_found))
        return imported, not_found

    def _row_to_entry(self, row: sqlite3.Row) -> CollectionEntry:
        return CollectionEntry(
            card=CardRecord.from_row(row),
            qty=row["qty"],
            tags=_load_tags(row["tags"], row["oracle_id"]),
            location=row["location"],
        )

    def iter_collection(self) -> Iterator[CollectionEntry]:
        """Iterate over owned cards in card insertion order."""
        cursor = self._conn.execute("""
            SELECT oracle_cards.*, inventory.qty, inventory.tags, inventory.location
            FROM inventory
            JOIN oracle_cards ON inventory.oracle_id = oracle_cards.oracle_id
            ORDER BY oracle_cards.rowid
        """)
        for row in cursor:
            yield self._row_to_entry(row)

    def search_collection(self, query: str, limit: int = 20) -> list[CollectionEntry]:
        """Search owned cards with the same query syntax as search().

        Raises:
            QueryError: If the query cannot be parsed
            ValueError: If limit is negative
        """
        if limit < 0:
            raise ValueError(f"limit must be non-negative, got {limit}")

        predicate = build_predicate(query)
        if predicate is None:
            return []

        matches = (entry for entry in self.iter_collection() if predicate(entry.card))
        return list(islice(matches, limit))

    def collection_summary(self) -> dict[str, int]:
        """Summarize the collection.

        Returns:
            {"total_cards": copies owned, "total_unique": distinct cards}
        """
        cursor = self._conn.cursor()
        cursor.execute("SELECT COALESCE(SUM(qty), 0), COUNT(*) FROM inventory")
        total_cards, total_unique = cursor.fetchone()
        return {"total_cards": total_cards, "total_unique": total_unique}
