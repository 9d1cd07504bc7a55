"""Oracle card record model."""

import json
import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping

from oracle_lens.colors import WUBRG, sort_colors

logger = logging.getLogger(__name__)


def _canonical_color_set(colors: Any) -> frozenset[str]:
    """Keep only the five canonical color letters."""
    if not colors:
        return frozenset()
    return frozenset(c for c in colors if c in WUBRG)


def round_mana_value(cmc: Any) -> int | None:
    """Round a Scryfall cmc (float or Decimal) to a whole mana value.

    Halves round up, so Little Girl's 0.5 becomes 1.
    """
    if cmc is None:
        return None
    if isinstance(cmc, Decimal):
        cmc = float(cmc)
    return int(math.floor(float(cmc) + 0.5))


@dataclass(frozen=True)
class CardRecord:
    """A single oracle card (rules-text identity, independent of printings)."""

    id: str
    name: str
    type_line: str = ""
    mana_cost: str | None = None
    mana_value: int | None = None
    oracle_text: str | None = None
    colors: frozenset[str] = field(default_factory=frozenset)
    color_identity: frozenset[str] = field(default_factory=frozenset)
    keywords: tuple[str, ...] = ()
    legalities: Mapping[str, str] = field(default_factory=dict)

    @property
    def sorted_colors(self) -> tuple[str, ...]:
        return sort_colors(self.colors)

    @property
    def sorted_color_identity(self) -> tuple[str, ...]:
        return sort_colors(self.color_identity)

    @classmethod
    def from_scryfall(cls, card: dict[str, Any]) -> "CardRecord":
        """Build a record from a Scryfall oracle card object.

        For multi-faced cards without top-level oracle text, type line, mana
        cost or colors, the face values are combined with " // ".
        """
        faces = card.get("card_faces") or []

        def from_faces(key: str) -> str | None:
            values = [face[key] for face in faces if face.get(key)]
            return " // ".join(values) if values else None

        colors = card.get("colors")
        if not colors and faces:
            colors = [c for face in faces for c in face.get("colors") or []]

        return cls(
            id=card.get("oracle_id") or card["id"],
            name=card["name"],
            type_line=card.get("type_line") or from_faces("type_line") or "",
            mana_cost=card.get("mana_cost") or from_faces("mana_cost"),
            mana_value=round_mana_value(card.get("cmc")),
            oracle_text=card.get("oracle_text") or from_faces("oracle_text"),
            colors=_canonical_color_set(colors),
            color_identity=_canonical_color_set(card.get("color_identity")),
            keywords=tuple(card.get("keywords") or ()),
            legalities=dict(card.get("legalities") or {}),
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CardRecord":
        """Build a record from an oracle_cards database row."""

        def load_json(column: str, default: Any) -> Any:
            raw = row[column]
            if not raw:
                return default
            try:
                return json.loads(raw)
            except json.JSONDecodeError as e:
                logger.debug(
                    "Failed to parse JSON field %s for card %s: %s",
                    column, row["oracle_id"], e
                )
                return default

        return cls(
            id=row["oracle_id"],
            name=row["name"],
            type_line=row["type_line"] or "",
            mana_cost=row["mana_cost"],
            mana_value=row["cmc"],
            oracle_text=row["oracle_text"],
            colors=_canonical_color_set(load_json("colors", [])),
            color_identity=_canonical_color_set(load_json("color_identity", [])),
            keywords=tuple(load_json("keywords", [])),
            legalities=load_json("legalities", {}),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "oracle_id": self.id,
            "name": self.name,
            "mana_cost": self.mana_cost,
            "cmc": self.mana_value,
            "type_line": self.type_line,
            "oracle_text": self.oracle_text,
            "colors": list(self.sorted_colors),
            "color_identity": list(self.sorted_color_identity),
            "keywords": list(self.keywords),
            "legalities": dict(self.legalities),
        }
