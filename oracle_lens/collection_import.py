"""Parsers for collection export formats.

Supports:
- Simple format: "4 Lightning Bolt" or "4x Lightning Bolt"
- CSV format: "Card",Quantity,... (MTGGoldfish style)
"""

import csv
import re
from io import StringIO

# Pattern: "4 Lightning Bolt" or "4x Lightning Bolt"
SIMPLE_PATTERN = re.compile(r"^(\d+)x?\s+(.+)$", re.IGNORECASE)

NAME_COLUMNS = ("card", "card name", "name")
QUANTITY_COLUMNS = ("quantity", "qty", "count")

COLLECTION_FORMATS = ("simple", "csv", "goldfish")


def parse_simple_format(text: str) -> dict[str, int]:
    """Parse "quantity card_name" lines.

    Lines that do not match are skipped. Duplicate names are summed.

    Returns:
        Dict mapping card names to quantities
    """
    cards: dict[str, int] = {}

    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue

        match = SIMPLE_PATTERN.match(line)
        if match:
            name = match.group(2).strip()
            if name:
                cards[name] = cards.get(name, 0) + int(match.group(1))

    return cards


def parse_csv_format(text: str) -> dict[str, int]:
    """Parse a CSV collection export.

    The name column may be called Card, Card Name or Name; the quantity
    column Quantity, Qty or Count (case-insensitive). A missing or invalid
    quantity counts as one copy.

    Returns:
        Dict mapping card names to quantities
    """
    cards: dict[str, int] = {}
    reader = csv.DictReader(StringIO(text))

    if not reader.fieldnames:
        return cards

    name_col = next((c for c in reader.fieldnames if c.strip().lower() in NAME_COLUMNS), None)
    qty_col = next((c for c in reader.fieldnames if c.strip().lower() in QUANTITY_COLUMNS), None)

    if name_col is None:
        return cards

    for row in reader:
        name = (row.get(name_col) or "").strip()
        if not name:
            continue

        quantity = 1
        if qty_col is not None:
            try:
                quantity = int((row.get(qty_col) or "1").strip())
            except ValueError:
                quantity = 1

        if quantity > 0:
            cards[name] = cards.get(name, 0) + quantity

    return cards


def parse_collection(text: str, fmt: str = "goldfish") -> dict[str, int]:
    """Parse collection text in the given format.

    Raises:
        ValueError: If the format is not supported
    """
    fmt = fmt.lower()
    if fmt == "simple":
        return parse_simple_format(text)
    if fmt in ("csv", "goldfish"):
        return parse_csv_format(text)
    raise ValueError(
        f"Unsupported collection format: {fmt} (expected one of {', '.join(COLLECTION_FORMATS)})"
    )
