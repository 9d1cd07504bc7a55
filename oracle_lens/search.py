"""Search entry point: query string in, matching cards out."""

import logging
from typing import Iterable

from oracle_lens.card import CardRecord
from oracle_lens.predicates import Predicate, compile_node, filter_cards
from oracle_lens.query_parser import ParseError, QueryError, parse_query

logger = logging.getLogger(__name__)


def build_predicate(query: str) -> Predicate | None:
    """Parse and compile a query.

    Returns:
        Predicate, or None when no term of the query was recognized

    Raises:
        QueryError: If the query cannot be tokenized or parsed
    """
    try:
        tree = parse_query(query)
    except ParseError as e:
        logger.debug("Rejected query %r: %s", query, e.message)
        raise QueryError(
            e.message,
            hint="Check quotes, parentheses and that every field has a value",
        ) from e
    return compile_node(tree)


def search(query: str, limit: int, corpus: Iterable[CardRecord]) -> list[CardRecord]:
    """Find cards matching a Scryfall-style query.

    Cards are returned in corpus order, truncated to ``limit``. A query in
    which no term was recognized (e.g. ``zzz:foo``) matches nothing, even
    though unrecognized terms are ignored inside larger queries.

    Args:
        query: Query string, e.g. 't:creature k:haste cmc<=:3'
        limit: Maximum number of results (non-negative)
        corpus: Cards to search, in a stable order

    Returns:
        List of matching cards

    Raises:
        QueryError: If the query cannot be tokenized or parsed
        ValueError: If limit is negative
    """
    if limit < 0:
        raise ValueError(f"limit must be non-negative, got {limit}")

    predicate = build_predicate(query)
    if predicate is None:
        return []

    return filter_cards(predicate, corpus, limit)
