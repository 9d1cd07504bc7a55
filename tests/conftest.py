"""Shared test fixtures for Oracle Lens."""

from decimal import Decimal

import pytest
from typing import Any, Callable

from oracle_lens.card import CardRecord


def oracle_card(
    name: str,
    mana_cost: str | None,
    cmc: float,
    type_line: str | None,
    oracle_text: str | None,
    colors: list[str],
    keywords: list[str] | None = None,
    color_identity: list[str] | None = None,
    **legalities: str,
) -> dict[str, Any]:
    """Build a Scryfall oracle card object; unspecified eternal formats are legal."""
    slug = name.lower().replace(" // ", "-").replace(" ", "-")
    card: dict[str, Any] = {
        "object": "card",
        "id": f"print-{slug}",
        "oracle_id": f"oracle-{slug}",
        "name": name,
        "cmc": cmc,
        "colors": colors,
        "color_identity": colors if color_identity is None else color_identity,
        "keywords": keywords or [],
        "legalities": {
            "legacy": "legal",
            "vintage": "legal",
            "commander": "legal",
            **legalities,
        },
    }
    if mana_cost is not None:
        card["mana_cost"] = mana_cost
    if type_line is not None:
        card["type_line"] = type_line
    if oracle_text is not None:
        card["oracle_text"] = oracle_text
    return card


@pytest.fixture
def sample_cards() -> list[dict[str, Any]]:
    """Scryfall oracle card objects covering the fields the engine reads.

    Only cards with keyword abilities carry keywords, as in Scryfall data:
    - Lightning Bolt, Counterspell, Dark Ritual: no keywords
    - Shivan Dragon, Serra Angel, Nicol Bolas: Flying (Serra also Vigilance)
    - Llanowar Elves, Sol Ring: no keywords
    - Fire // Ice: split card with text only on its faces
    """
    fire_ice = oracle_card("Fire // Ice", None, 4.0, None, None, ["U", "R"], modern="legal")
    fire_ice["card_faces"] = [
        {
            "name": "Fire",
            "mana_cost": "{1}{R}",
            "type_line": "Instant",
            "oracle_text": "Fire deals 2 damage divided as you choose among one or two targets.",
            "colors": ["R"],
        },
        {
            "name": "Ice",
            "mana_cost": "{1}{U}",
            "type_line": "Instant",
            "oracle_text": "Tap target permanent.\nDraw a card.",
            "colors": ["U"],
        },
    ]

    return [
        oracle_card(
            "Lightning Bolt", "{R}", 1.0, "Instant",
            "Lightning Bolt deals 3 damage to any target.", ["R"],
            standard="not_legal", modern="legal",
        ),
        oracle_card(
            "Counterspell", "{U}{U}", 2.0, "Instant", "Counter target spell.", ["U"],
            standard="not_legal", modern="not_legal", pauper="legal",
        ),
        oracle_card(
            "Dark Ritual", "{B}", 1.0, "Instant", "Add {B}{B}{B}.", ["B"],
            modern="not_legal", legacy="banned", pauper="legal",
        ),
        oracle_card(
            "Shivan Dragon", "{4}{R}{R}", 6.0, "Creature — Dragon",
            "Flying\n{R}: Shivan Dragon gets +1/+0 until end of turn.", ["R"],
            keywords=["Flying"], modern="legal",
        ),
        oracle_card(
            "Serra Angel", "{3}{W}{W}", 5.0, "Creature — Angel", "Flying, vigilance", ["W"],
            keywords=["Flying", "Vigilance"], modern="legal",
        ),
        oracle_card(
            "Nicol Bolas", "{2}{U}{U}{B}{B}{R}{R}", 8.0, "Legendary Creature — Elder Dragon",
            "Flying\nAt the beginning of your upkeep, sacrifice Nicol Bolas unless you pay "
            "{U}{B}{R}.\nWhenever Nicol Bolas deals damage to an opponent, that player "
            "discards their hand.",
            ["U", "B", "R"], keywords=["Flying"], color_identity=["B", "R", "U"],
        ),
        oracle_card(
            "Llanowar Elves", "{G}", 1.0, "Creature — Elf Druid", "{T}: Add {G}.", ["G"],
            standard="not_legal", modern="legal", pauper="legal",
        ),
        oracle_card(
            "Sol Ring", "{1}", 1.0, "Artifact", "{T}: Add {C}{C}.", [],
            modern="not_legal", legacy="banned", vintage="restricted",
        ),
        fire_ice,
    ]


@pytest.fixture
def sample_records(sample_cards: list[dict[str, Any]]) -> list[CardRecord]:
    """The sample cards as CardRecords, in fixture order."""
    return [CardRecord.from_scryfall(card) for card in sample_cards]


@pytest.fixture
def lightning_bolt(sample_cards: list[dict[str, Any]]) -> dict[str, Any]:
    """Single card fixture for Lightning Bolt."""
    return sample_cards[0]


@pytest.fixture
def split_card(sample_cards: list[dict[str, Any]]) -> dict[str, Any]:
    """Single card fixture for Fire // Ice (faces only)."""
    return sample_cards[8]


@pytest.fixture
def make_card() -> Callable[..., CardRecord]:
    """Factory for synthetic CardRecords with sensible defaults."""
    counter = iter(range(1_000_000))

    def _make(
        name: str = "Test Card",
        colors: str = "",
        color_identity: str | None = None,
        mana_value: int | None = 0,
        **kwargs: Any,
    ) -> CardRecord:
        return CardRecord(
            id=kwargs.pop("id", f"test-{next(counter)}"),
            name=name,
            colors=frozenset(colors),
            color_identity=frozenset(colors if color_identity is None else color_identity),
            mana_value=mana_value,
            **kwargs,
        )

    return _make


@pytest.fixture
def two_card_corpus(make_card: Callable[..., CardRecord]) -> list[CardRecord]:
    """R1: red hasty creature, mana value 3. R2: blue-black instant, mana value 2."""
    return [
        make_card(
            id="R1",
            name="Record One",
            colors="R",
            mana_value=3,
            type_line="Creature",
            keywords=("Haste",),
        ),
        make_card(
            id="R2",
            name="Record Two",
            colors="UB",
            mana_value=2,
            type_line="Instant",
        ),
    ]


@pytest.fixture
def cards_with_decimal_values() -> list[dict[str, Any]]:
    """Cards shaped the way ijson yields them: numbers as Decimal.

    Little Girl has a fractional mana value (0.5) from Unhinged.
    """
    return [
        {
            "id": "decimal-test-1",
            "oracle_id": "decimal-oracle-1",
            "name": "Little Girl",
            "mana_cost": "{½}{W}",
            "cmc": Decimal("0.5"),
            "type_line": "Creature — Human Child",
            "oracle_text": "",
            "colors": ["W"],
            "color_identity": ["W"],
            "legalities": {"vintage": "not_legal"},
        },
        {
            "id": "decimal-test-2",
            "oracle_id": "decimal-oracle-2",
            "name": "Tarmogoyf",
            "mana_cost": "{1}{G}",
            "cmc": Decimal("2.0"),
            "type_line": "Creature — Lhurgoyf",
            "oracle_text": "Tarmogoyf's power is equal to the number of card types "
            "among cards in all graveyards and its toughness is equal to that number plus 1.",
            "colors": ["G"],
            "color_identity": ["G"],
            "legalities": {"modern": "legal", "legacy": "legal"},
        },
    ]
