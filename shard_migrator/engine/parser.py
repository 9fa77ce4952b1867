"""Parser for the select queries used to read legacy series.

Grammar (keywords are case-insensitive, statements are ';' separated)::

    select (* | column [, column ...]) from series [limit N] [order asc|desc]

Names may be bare identifiers or double-quoted strings with backslash escapes.
"""

import re

from ..core.exceptions import QueryParseError
from ..models.query import WILDCARD, Query

_TOKEN = re.compile(
    r"""
    \s*(?:
        (?P<quoted>"(?:[^"\\]|\\.)*")
      | (?P<number>\d+)
      | (?P<word>[A-Za-z_][A-Za-z0-9_.\-]*)
      | (?P<symbol>[*,;])
    )
    """,
    re.VERBOSE,
)


def quote_name(name: str) -> str:
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def select_all_query(series: str) -> str:
    """Full-scan query text for one series."""
    return f"select * from {quote_name(series)}"


def _tokenize(text: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    position = 0
    stripped_end = len(text.rstrip())
    while position < stripped_end:
        match = _TOKEN.match(text, position)
        if match is None or match.end() == position:
            raise QueryParseError(f"Unexpected input at position {position}: {text[position:]!r}")
        kind = match.lastgroup or ""
        tokens.append((kind, match.group(kind)))
        position = match.end()
    return tokens


def _unquote(token: str) -> str:
    return re.sub(r"\\(.)", r"\1", token[1:-1])


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = _tokenize(text)
        self.position = 0

    def peek(self) -> tuple[str, str] | None:
        if self.position < len(self.tokens):
            return self.tokens[self.position]
        return None

    def next(self, expected: str) -> tuple[str, str]:
        token = self.peek()
        if token is None:
            raise QueryParseError(f"Expected {expected} but query ended: {self.text!r}")
        self.position += 1
        return token

    def accept_keyword(self, keyword: str) -> bool:
        token = self.peek()
        if token and token[0] == "word" and token[1].lower() == keyword:
            self.position += 1
            return True
        return False

    def expect_keyword(self, keyword: str) -> None:
        if not self.accept_keyword(keyword):
            found = self.peek()
            raise QueryParseError(
                f"Expected '{keyword}' but found {found[1] if found else 'end of query'!r}"
            )

    def name(self, what: str) -> str:
        kind, value = self.next(what)
        if kind == "quoted":
            value = _unquote(value)
        elif kind != "word":
            raise QueryParseError(f"Expected {what} but found {value!r}")
        if not value:
            raise QueryParseError(f"Empty {what} in query: {self.text!r}")
        return value

    def parse(self) -> list[Query]:
        queries: list[Query] = []
        while self.peek() is not None:
            if self.peek() == ("symbol", ";"):
                self.position += 1
                continue
            queries.append(self.select())
            token = self.peek()
            if token is not None and token != ("symbol", ";"):
                raise QueryParseError(f"Unexpected {token[1]!r} after query")
        if not queries:
            raise QueryParseError("Empty query")
        return queries

    def select(self) -> Query:
        self.expect_keyword("select")
        columns = self.columns()
        self.expect_keyword("from")
        series_name = self.name("series name")

        limit: int | None = None
        ascending = False
        while True:
            if self.accept_keyword("limit"):
                kind, value = self.next("limit value")
                if kind != "number":
                    raise QueryParseError(f"Limit must be a number, found {value!r}")
                limit = int(value)
            elif self.accept_keyword("order"):
                direction = self.name("order direction").lower()
                if direction not in ("asc", "desc"):
                    raise QueryParseError(f"Order must be asc or desc, found {direction!r}")
                ascending = direction == "asc"
            else:
                break

        return Query(series_name=series_name, columns=columns, limit=limit, ascending=ascending)

    def columns(self) -> tuple[str, ...]:
        if self.peek() == ("symbol", WILDCARD):
            self.position += 1
            return (WILDCARD,)
        columns = [self.name("column name")]
        while self.peek() == ("symbol", ","):
            self.position += 1
            columns.append(self.name("column name"))
        return tuple(columns)


def parse_query(text: str) -> list[Query]:
    """Parse one or more ';' separated select statements.

    Raises:
        QueryParseError: If the text is not a valid query
    """
    return _Parser(text).parse()
