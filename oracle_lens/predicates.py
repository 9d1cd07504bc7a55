"""Field resolution and predicate compilation.

Lowers a parsed query tree into a predicate over CardRecord objects.

Unknown field names and unusable values (non-numeric mana values, formats
outside the allowlist) resolve to "no opinion" (None) instead of raising,
so a partially misspelled query degrades rather than failing. Under AND
and OR a no-opinion side is an identity element: the other side's
predicate is used alone. Negating no opinion is still no opinion.
"""

import logging
from enum import Enum
from typing import Callable, Iterable

from oracle_lens.card import CardRecord
from oracle_lens.colors import COLORLESS, MULTICOLOR, parse_color_set
from oracle_lens.query_parser import And, Field, Node, Not, Or, PlainText

logger = logging.getLogger(__name__)

Predicate = Callable[[CardRecord], bool]


class FieldKind(Enum):
    NAME = "name"
    TYPE = "type"
    ORACLE = "oracle"
    COLORS = "colors"
    COLOR_IDENTITY = "color_identity"
    MANA_VALUE = "mana_value"
    MANA_COST = "mana_cost"
    KEYWORD = "keyword"
    FORMAT_LEGAL = "format_legal"
    FORMAT_BANNED = "format_banned"
    FORMAT_RESTRICTED = "format_restricted"


# Every accepted spelling of each field
FIELD_ALIASES = {
    "n": FieldKind.NAME,
    "name": FieldKind.NAME,
    "t": FieldKind.TYPE,
    "type": FieldKind.TYPE,
    "o": FieldKind.ORACLE,
    "oracle": FieldKind.ORACLE,
    "c": FieldKind.COLORS,
    "color": FieldKind.COLORS,
    "colors": FieldKind.COLORS,
    "ci": FieldKind.COLOR_IDENTITY,
    "id": FieldKind.COLOR_IDENTITY,
    "identity": FieldKind.COLOR_IDENTITY,
    "color_identity": FieldKind.COLOR_IDENTITY,
    "cmc": FieldKind.MANA_VALUE,
    "mv": FieldKind.MANA_VALUE,
    "manavalue": FieldKind.MANA_VALUE,
    "m": FieldKind.MANA_COST,
    "mana": FieldKind.MANA_COST,
    "k": FieldKind.KEYWORD,
    "kw": FieldKind.KEYWORD,
    "keyword": FieldKind.KEYWORD,
    "f": FieldKind.FORMAT_LEGAL,
    "format": FieldKind.FORMAT_LEGAL,
    "banned": FieldKind.FORMAT_BANNED,
    "restricted": FieldKind.FORMAT_RESTRICTED,
}

# Allowlist of format names accepted by format filters
VALID_FORMATS = frozenset({
    "standard", "future", "historic", "timeless", "gladiator",
    "pioneer", "modern", "legacy", "pauper", "vintage",
    "penny", "commander", "oathbreaker", "standardbrawl", "brawl",
    "alchemy", "paupercommander", "duel", "oldschool", "premodern", "predh"
})

FORMAT_STATUS = {
    FieldKind.FORMAT_LEGAL: "legal",
    FieldKind.FORMAT_BANNED: "banned",
    FieldKind.FORMAT_RESTRICTED: "restricted",
}

# Numeric comparisons for mana value (empty operator means equals)
NUMERIC_OPERATORS: dict[str, Callable[[int, int], bool]] = {
    "": lambda a, b: a == b,
    "=": lambda a, b: a == b,
    "<=": lambda a, b: a <= b,
    ">=": lambda a, b: a >= b,
    "<": lambda a, b: a < b,
    ">": lambda a, b: a > b,
    "!=": lambda a, b: a != b,
    "!": lambda a, b: a != b,
}

PARITY_VALUES = {"even": 0, "odd": 1}


def lookup_field(name: str) -> FieldKind | None:
    """Resolve a field name or alias (case-insensitive)."""
    return FIELD_ALIASES.get(name.lower())


def _contains(haystack: str | None, needle: str) -> bool:
    return haystack is not None and needle in haystack.lower()


def _text_predicate(getter: Callable[[CardRecord], str | None], value: str) -> Predicate:
    needle = value.lower()
    return lambda card: _contains(getter(card), needle)


def _mana_value_predicate(operator: str, value: str) -> Predicate | None:
    parity = PARITY_VALUES.get(value.lower())
    if parity is not None:
        return lambda card: card.mana_value is not None and card.mana_value % 2 == parity

    try:
        number = int(value)
    except ValueError:
        logger.debug("Ignoring non-numeric mana value %r", value)
        return None

    # Unlisted operator spellings fall back to equality
    compare = NUMERIC_OPERATORS.get(operator, NUMERIC_OPERATORS["="])
    return lambda card: card.mana_value is not None and compare(card.mana_value, number)


def match_colors(card_colors: frozenset[str], target: frozenset[str], operator: str) -> bool:
    """Compare a card's color set against a target set of literal colors.

    Operators:
        =        exact match
        <=       card colors are a subset of target (colorless always matches)
        >=       card colors are a superset of target
        ! / !=   not an exact match
        other    card shares at least one color with target
    """
    if operator == "=":
        return card_colors == target
    if operator == "<=":
        return card_colors <= target
    if operator == ">=":
        return card_colors >= target
    if operator in ("!", "!="):
        return card_colors != target
    return bool(card_colors & target)


def _color_predicate(
    getter: Callable[[CardRecord], frozenset[str]], operator: str, value: str
) -> Predicate:
    target = frozenset(parse_color_set(value))
    negate = operator in ("!", "!=")

    # Pseudo-colors are checks on the whole set, never literal members
    checks: list[Predicate] = []
    if COLORLESS in target:
        checks.append(lambda card: not getter(card))
    if MULTICOLOR in target:
        checks.append(lambda card: len(getter(card)) > 1)

    literal = target - {COLORLESS, MULTICOLOR}
    if literal or not checks:
        checks.append(lambda card: match_colors(getter(card), literal, "=" if negate else operator))

    # The plain operator means "any of", so c:wc is white cards or colorless ones
    combine = any if operator not in ("=", "<=", ">=", "!", "!=") else all

    def predicate(card: CardRecord) -> bool:
        matched = combine(check(card) for check in checks)
        return not matched if negate else matched

    return predicate


def _keyword_predicate(value: str) -> Predicate:
    wanted = value.lower()
    return lambda card: any(keyword.lower() == wanted for keyword in card.keywords)


def _format_predicate(kind: FieldKind, value: str) -> Predicate | None:
    format_name = value.lower()
    if format_name not in VALID_FORMATS:
        logger.debug("Ignoring unknown format %r", value)
        return None
    status = FORMAT_STATUS[kind]
    return lambda card: card.legalities.get(format_name) == status


def compile_field(node: Field) -> Predicate | None:
    """Build the predicate for one fielded term.

    Returns:
        Predicate, or None when the field name or value is not recognized
    """
    kind = lookup_field(node.name)
    if kind is None:
        logger.debug("Ignoring unknown field %r", node.name)
        return None

    operator, value = node.operator, node.value

    if kind is FieldKind.NAME:
        return _text_predicate(lambda card: card.name, value)
    if kind is FieldKind.TYPE:
        return _text_predicate(lambda card: card.type_line, value)
    if kind is FieldKind.ORACLE:
        return _text_predicate(lambda card: card.oracle_text, value)
    if kind is FieldKind.MANA_COST:
        return _text_predicate(lambda card: card.mana_cost, value)
    if kind is FieldKind.MANA_VALUE:
        return _mana_value_predicate(operator, value)
    if kind is FieldKind.COLORS:
        return _color_predicate(lambda card: card.colors, operator, value)
    if kind is FieldKind.COLOR_IDENTITY:
        return _color_predicate(lambda card: card.color_identity, operator, value)
    if kind is FieldKind.KEYWORD:
        return _keyword_predicate(value)
    if kind in FORMAT_STATUS:
        return _format_predicate(kind, value)

    raise AssertionError(f"Unhandled field kind: {kind}")


def resolve_field(node: Field, card: CardRecord) -> bool | None:
    """Evaluate one fielded term against a card.

    Returns:
        True/False, or None (no opinion) for unrecognized fields or values
    """
    predicate = compile_field(node)
    if predicate is None:
        return None
    return predicate(card)


def plain_text_predicate(value: str) -> Predicate:
    """Match a free-text word or phrase against name or oracle text."""
    needle = value.lower()
    return lambda card: _contains(card.name, needle) or _contains(card.oracle_text, needle)


def _flatten(node: And | Or) -> list[Node]:
    """Operands of a chain of same-type nodes, left to right.

    The parser builds implicit AND and explicit OR chains left-deep, one
    level per term, so this walks them with a stack instead of recursing.
    """
    chain_type = type(node)
    operands: list[Node] = []
    stack: list[Node] = [node]
    while stack:
        current = stack.pop()
        if type(current) is chain_type:
            stack.append(current.right)
            stack.append(current.left)
        else:
            operands.append(current)
    return operands


def compile_node(node: Node) -> Predicate | None:
    """Compile a query tree into a predicate.

    AND and OR chains compile to a single all()/any() over their operands,
    so neither compiling nor evaluating grows with the number of terms.
    Nesting through parentheses and negation is bounded by the parser.

    Returns:
        Predicate, or None if the whole subtree has no opinion
    """
    if isinstance(node, (And, Or)):
        compiled = [compile_node(operand) for operand in _flatten(node)]
        predicates = [p for p in compiled if p is not None]
        if not predicates:
            return None
        if len(predicates) == 1:
            return predicates[0]
        if isinstance(node, And):
            return lambda card: all(p(card) for p in predicates)
        return lambda card: any(p(card) for p in predicates)

    if isinstance(node, Not):
        operand = compile_node(node.operand)
        if operand is None:
            return None
        return lambda card: not operand(card)

    if isinstance(node, Field):
        return compile_field(node)

    if isinstance(node, PlainText):
        return plain_text_predicate(node.value)

    raise TypeError(f"Unknown query node: {node!r}")


def filter_cards(predicate: Predicate, cards: Iterable[CardRecord], limit: int) -> list[CardRecord]:
    """Collect up to ``limit`` matching cards, preserving input order.

    Stops consuming ``cards`` as soon as the limit is reached.
    """
    results: list[CardRecord] = []
    if limit <= 0:
        return results
    for card in cards:
        if predicate(card):
            results.append(card)
            if len(results) >= limit:
                break
    return results
