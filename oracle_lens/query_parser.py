"""Scryfall query syntax parser.

Turns Scryfall-style queries into a boolean syntax tree.
Supports fielded terms (t:creature, cmc>=:3, ci<=:wbg, o:"draw a card"),
quoted phrases, plain words, implicit AND, explicit OR, negation (-)
and parentheses.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Union


# Supported syntax for error messages
SUPPORTED_SYNTAX = [
    'name search: "Lightning Bolt" (name or oracle text), bolt, n:bolt',
    "colors: c:blue, c:urg, c>=:rg, c<=:w, c=:esper, c!=:r, c:c (colorless), c:m (multicolor)",
    "color identity: id:wubrg, identity:esper, ci<=:rg (for Commander)",
    "mana value: cmc:3, cmc>=:5, cmc<:2, cmc!=:1, mv:even, mv:odd",
    "mana cost: m:{R}{R}, mana:{2}{U}",
    "type: t:creature, t:\"legendary creature\"",
    "oracle text: o:flying, o:\"enters the battlefield\"",
    "keyword: k:haste, kw:\"first strike\"",
    "format: f:modern, banned:legacy, restricted:vintage",
    "boolean: implicit AND, OR, - (negation), parentheses",
]

SYNTAX_SUMMARY = (
    "Fields: n: t: o: c: ci: cmc: m: k: f: banned: restricted:. "
    "Comparison operators (= != ! < > <= >=) go before the colon, e.g. cmc>=:3 or ci<=:wub. "
    "Combine with spaces (AND), OR, - and parentheses."
)

# <field>[<operator>]: prefix shared by tokenizing and term construction
FIELD_PREFIX_PATTERN = re.compile(r"([a-zA-Z]+)([<>=!]+)?:")
FIELD_TERM_PATTERN = re.compile(FIELD_PREFIX_PATTERN.pattern + r"(.+)$", re.DOTALL)

OR_PATTERN = re.compile(r"\bOR\b", re.IGNORECASE)

# Guards against runaway recursion on pathological input like "((((((..."
MAX_NESTING_DEPTH = 100


class ParseError(Exception):
    """Error tokenizing or parsing a query."""

    def __init__(self, message: str, position: int | None = None):
        super().__init__(message)
        self.message = message
        self.position = position


class QueryError(Exception):
    """Error running a query, with helpful hints."""

    def __init__(
        self,
        message: str,
        hint: str | None = None,
        supported_syntax: list[str] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.hint = hint or "Check the query syntax"
        self.supported_syntax = supported_syntax or SUPPORTED_SYNTAX

    def __str__(self) -> str:
        return f"{self.message}. Hint: {self.hint}"


class TokenType(Enum):
    FIELD = "FIELD"
    QUOTED_STRING = "QUOTED_STRING"
    PLAIN_TEXT = "PLAIN_TEXT"
    OR = "OR"
    NOT = "NOT"
    LPAREN = "LPAREN"
    RPAREN = "RPAREN"


@dataclass(frozen=True)
class Token:
    """A lexical token with its source span (for error messages)."""

    type: TokenType
    value: str
    start: int
    end: int


@dataclass(frozen=True)
class And:
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Or:
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Not:
    operand: "Node"


@dataclass(frozen=True)
class Field:
    """Fielded term such as t:creature or cmc>=:3.

    ``operator`` is the verbatim comparison text between the field name and
    the colon; an empty string means the field's default comparison.
    """

    name: str
    operator: str
    value: str


@dataclass(frozen=True)
class PlainText:
    value: str


Node = Union[And, Or, Not, Field, PlainText]


def _is_separator(char: str) -> bool:
    return char.isspace() or char in "()"


def _read_quoted(query: str, pos: int) -> tuple[str, int]:
    """Read a quoted string starting at the opening quote.

    Backslash escapes the following character. An unterminated string runs
    to the end of input.

    Returns:
        Tuple of (unescaped content, position after the closing quote)
    """
    chars = []
    pos += 1  # opening quote
    while pos < len(query) and query[pos] != '"':
        if query[pos] == "\\" and pos + 1 < len(query):
            pos += 1
        chars.append(query[pos])
        pos += 1
    if pos < len(query):
        pos += 1  # closing quote
    return "".join(chars), pos


def _read_word(query: str, pos: int) -> tuple[str, int]:
    """Read a run of characters up to whitespace or a parenthesis."""
    start = pos
    while pos < len(query) and not _is_separator(query[pos]):
        pos += 1
    return query[start:pos], pos


def tokenize(query: str) -> list[Token]:
    """Tokenize a query string.

    Raises:
        ParseError: If the query is empty or whitespace only
    """
    if not query or not query.strip():
        raise ParseError("Query cannot be empty")

    tokens: list[Token] = []
    pos = 0

    while pos < len(query):
        char = query[pos]

        if char.isspace():
            pos += 1
            continue

        start = pos

        if char == '"':
            value, pos = _read_quoted(query, pos)
            tokens.append(Token(TokenType.QUOTED_STRING, value, start, pos))
            continue

        if char == "(":
            tokens.append(Token(TokenType.LPAREN, "(", start, pos + 1))
            pos += 1
            continue

        if char == ")":
            tokens.append(Token(TokenType.RPAREN, ")", start, pos + 1))
            pos += 1
            continue

        # Unary minus only at start of a term ("a-b" stays one word); a minus
        # directly after another negation stacks, so "--x" is NOT NOT x
        if char == "-" and (pos == 0 or query[pos - 1].isspace() or query[pos - 1] in "(-"):
            tokens.append(Token(TokenType.NOT, "-", start, pos + 1))
            pos += 1
            continue

        field_match = FIELD_PREFIX_PATTERN.match(query, pos)
        if field_match:
            name = field_match.group(1).lower()
            operator = field_match.group(2) or ""
            pos = field_match.end()
            if pos < len(query) and query[pos] == '"':
                value, pos = _read_quoted(query, pos)
            else:
                value, pos = _read_word(query, pos)
            tokens.append(Token(TokenType.FIELD, f"{name}{operator}:{value}", start, pos))
            continue

        or_match = OR_PATTERN.match(query, pos)
        if or_match:
            tokens.append(Token(TokenType.OR, "OR", start, or_match.end()))
            pos = or_match.end()
            continue

        word, pos = _read_word(query, pos)
        tokens.append(Token(TokenType.PLAIN_TEXT, word, start, pos))

    return tokens


def split_field_term(text: str) -> Field:
    """Split stored field token text back into name, operator and value.

    Raises:
        ParseError: If the text is not <field><operator?>:<value>
    """
    match = FIELD_TERM_PATTERN.match(text)
    if not match:
        raise ParseError(f"Invalid field syntax: {text}")
    name, operator, value = match.groups()
    return Field(name=name.lower(), operator=operator or "", value=value)


class Parser:
    """Recursive descent parser over a token list.

    Grammar (lowest to highest precedence):
        or   := and ("OR" and)*
        and  := not (not)*          implicit AND
        not  := "-" not | term      right-associative
        term := "(" or ")" | FIELD | QUOTED_STRING | PLAIN_TEXT
    """

    def __init__(self, tokens: list[Token]):
        self._tokens = tokens
        self._index = 0
        self._depth = 0

    def _peek(self) -> Token | None:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _at(self, *types: TokenType) -> bool:
        token = self._peek()
        return token is not None and token.type in types

    def parse(self) -> Node:
        """Parse the full token list into a single tree."""
        node = self._parse_or()

        token = self._peek()
        if token is not None:
            if token.type == TokenType.RPAREN:
                raise ParseError(
                    f"Unmatched closing parenthesis at position {token.start}",
                    token.start,
                )
            raise ParseError(f"Unexpected token at position {token.start}", token.start)

        return node

    def _parse_or(self) -> Node:
        left = self._parse_and()
        while self._at(TokenType.OR):
            self._index += 1
            right = self._parse_and()
            left = Or(left, right)
        return left

    def _parse_and(self) -> Node:
        left = self._parse_not()
        while self._peek() is not None and not self._at(TokenType.OR, TokenType.RPAREN):
            right = self._parse_not()
            left = And(left, right)
        return left

    def _parse_not(self) -> Node:
        token = self._peek()
        if token is not None and token.type == TokenType.NOT:
            self._index += 1
            if self._peek() is None:
                raise ParseError(
                    f"Negation at position {token.start} has no operand", token.start
                )
            self._enter()
            operand = self._parse_not()
            self._depth -= 1
            return Not(operand)
        return self._parse_term()

    def _parse_term(self) -> Node:
        token = self._peek()
        if token is None:
            raise ParseError("Unexpected end of query")

        if token.type == TokenType.LPAREN:
            self._index += 1
            self._enter()
            node = self._parse_or()
            self._depth -= 1
            if not self._at(TokenType.RPAREN):
                raise ParseError(
                    f"Unmatched opening parenthesis at position {token.start}",
                    token.start,
                )
            self._index += 1
            return node

        if token.type == TokenType.FIELD:
            self._index += 1
            return split_field_term(token.value)

        if token.type in (TokenType.QUOTED_STRING, TokenType.PLAIN_TEXT):
            self._index += 1
            return PlainText(token.value)

        raise ParseError(
            f"Unexpected token: {token.type.value} at position {token.start}",
            token.start,
        )

    def _enter(self) -> None:
        self._depth += 1
        if self._depth > MAX_NESTING_DEPTH:
            raise ParseError("Query is nested too deeply")


def parse(tokens: list[Token]) -> Node:
    """Parse tokens into a syntax tree."""
    return Parser(tokens).parse()


def parse_query(query: str) -> Node:
    """Tokenize and parse a query string.

    Raises:
        ParseError: On empty queries or structural problems
    """
    return parse(tokenize(query))
