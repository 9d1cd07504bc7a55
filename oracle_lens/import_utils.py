"""Streaming import of Scryfall bulk card files into the card store."""

import logging
from itertools import islice
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator

import ijson

from oracle_lens.card import CardRecord
from oracle_lens.card_store import CardStore

logger = logging.getLogger(__name__)


def iter_card_records(items: Iterable[dict[str, Any]]) -> Iterator[CardRecord]:
    """Convert Scryfall objects to records, skipping ones without a name or id."""
    skipped = 0
    for item in items:
        try:
            yield CardRecord.from_scryfall(item)
        except KeyError as e:
            skipped += 1
            logger.debug("Skipping bulk object missing %s", e)

    if skipped:
        logger.warning("Skipped %d bulk objects without a name or id", skipped)


def import_cards_streaming(
    json_file: Path,
    store: CardStore,
    batch_size: int = 1000,
    progress_callback: Callable[[int], None] | None = None,
) -> int:
    """Import cards from a Scryfall bulk JSON file.

    The top-level array is parsed incrementally with ijson, so memory use
    does not grow with the file. Each batch is upserted atomically. The
    caller owns the store and must close it.

    Args:
        json_file: Bulk JSON file (a top-level array of card objects)
        store: Store to import into
        batch_size: Cards per transaction
        progress_callback: Called with the running total after each batch

    Returns:
        Number of cards imported

    Raises:
        FileNotFoundError: If json_file does not exist
    """
    card_count = 0

    with open(json_file, "rb") as f:
        records = iter_card_records(ijson.items(f, "item"))
        while True:
            batch = list(islice(records, batch_size))
            if not batch:
                break
            store.insert_cards(batch)
            card_count += len(batch)
            if progress_callback:
                progress_callback(card_count)

    logger.info("Imported %d cards from %s", card_count, json_file.name)
    return card_count
