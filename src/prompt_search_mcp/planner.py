"""Translate search criteria into index lookups."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from .analysis import TermProcessor, lowercase, query_terms, term_processor_for
from .documents import INDEXED_FIELDS

DEFAULT_LIMIT = 20
DEFAULT_MAX_SUGGESTIONS = 5
DEFAULT_FUZZY_DISTANCE = 0.2


class SearchScope(str, Enum):
    TITLES = "titles"
    CONTENT = "content"
    ALL = "all"

    @classmethod
    def _missing_(cls, value: object) -> SearchScope | None:
        aliases = {"both": cls.ALL, "filename": cls.TITLES}
        if isinstance(value, str):
            return aliases.get(value.lower())
        return None


SCOPE_FIELDS: Mapping[SearchScope, tuple[str, ...]] = MappingProxyType(
    {
        SearchScope.TITLES: ("fileName", "title"),
        SearchScope.CONTENT: ("content", "description", "tags"),
        SearchScope.ALL: INDEXED_FIELDS,
    }
)

# title >= description >= tags >= content
FIELD_BOOSTS: Mapping[str, float] = MappingProxyType(
    {"title": 5.0, "fileName": 4.0, "description": 3.0, "tags": 2.0, "content": 1.0}
)


class QuerySyntaxError(ValueError):
    """Raised when a query uses the boolean syntax incorrectly."""


@dataclass(frozen=True)
class SearchCriteria:
    query: str
    scope: SearchScope | None = SearchScope.ALL
    case_sensitive: bool = False
    match_whole_word: bool = False
    fuzzy: bool = False
    limit: int | None = None
    max_suggestions: int | None = None
    is_active: bool = True

    def __post_init__(self) -> None:
        if self.scope is not None and not isinstance(self.scope, SearchScope):
            object.__setattr__(self, "scope", SearchScope(self.scope))

    @property
    def is_blank(self) -> bool:
        return not self.is_active or not self.query.strip()


@dataclass(frozen=True)
class ParsedQuery:
    """A query split into required groups of alternatives and exclusions.

    Every group must be satisfied by at least one of its alternatives; no
    excluded phrase may match.
    """

    groups: tuple[tuple[str, ...], ...]
    excluded: tuple[str, ...] = ()

    @property
    def literals(self) -> tuple[str, ...]:
        return tuple(alternative for group in self.groups for alternative in group)


@dataclass(frozen=True)
class SearchOptions:
    """Every knob an index lookup understands.

    ``prefix`` allows a query token to match inside a longer indexed term;
    ``fuzzy_distance`` of 0 disables approximate matching; ``enrich`` asks
    for hit objects with matched terms and spans instead of bare id lists.
    """

    fields: tuple[str, ...] = INDEXED_FIELDS
    boosts: Mapping[str, float] = field(default_factory=lambda: dict(FIELD_BOOSTS))
    prefix: bool = True
    fuzzy_distance: float = 0.0
    term_processor: TermProcessor = lowercase
    limit: int | None = DEFAULT_LIMIT
    enrich: bool = True

    def boost(self, field_name: str) -> float:
        return self.boosts.get(field_name, 1.0)

    @property
    def max_boost(self) -> float:
        return max((self.boost(name) for name in self.fields), default=1.0)


@dataclass(frozen=True)
class SearchPlan:
    query: ParsedQuery
    options: SearchOptions
    case_sensitive: bool
    whole_word: bool
    fuzzy: bool


_CHUNK_PATTERN = re.compile(r'[-+]?"[^"]*"?|\||[^\s"|]+')
_OR_TOKENS = {"|", "OR"}


def parse_query(text: str) -> ParsedQuery | None:
    """Parse *text* into a :class:`ParsedQuery`.

    Returns ``None`` when nothing searchable is left, raises
    :class:`QuerySyntaxError` for dangling operators, unterminated or empty
    phrases and queries made only of exclusions.
    """

    groups: list[list[str]] = []
    excluded: list[str] = []
    pending_or = False

    for chunk in _CHUNK_PATTERN.findall(text):
        if chunk in _OR_TOKENS:
            if not groups or pending_or:
                raise QuerySyntaxError(f"Misplaced {chunk!r} in query {text!r}")
            pending_or = True
            continue

        negate = len(chunk) > 1 and chunk[0] == "-"
        if len(chunk) > 1 and chunk[0] in "+-":
            chunk = chunk[1:]

        quoted = chunk.startswith('"')
        if quoted:
            if len(chunk) < 2 or not chunk.endswith('"'):
                raise QuerySyntaxError(f"Unterminated phrase in query {text!r}")
            chunk = chunk[1:-1].strip()

        if not query_terms(chunk):
            if quoted:
                raise QuerySyntaxError(f"Empty phrase in query {text!r}")
            continue

        if negate:
            if pending_or:
                raise QuerySyntaxError(f"Cannot OR an exclusion in query {text!r}")
            excluded.append(chunk)
        elif pending_or:
            groups[-1].append(chunk)
            pending_or = False
        else:
            groups.append([chunk])

    if pending_or:
        raise QuerySyntaxError(f"Query ends with an operator: {text!r}")
    if not groups:
        if excluded:
            raise QuerySyntaxError(f"Query {text!r} only excludes terms")
        return None
    return ParsedQuery(tuple(tuple(group) for group in groups), tuple(excluded))


def fields_for(
    scope: SearchScope | None, explicit: Iterable[str] | None = None
) -> tuple[str, ...]:
    """Fields searched for *scope*; a scope always wins over *explicit* fields."""

    if scope is not None:
        return SCOPE_FIELDS[scope]
    if explicit:
        return tuple(name for name in explicit if name in INDEXED_FIELDS)
    return INDEXED_FIELDS


def plan_search(
    criteria: SearchCriteria,
    *,
    default_limit: int | None = DEFAULT_LIMIT,
    fuzzy_distance: float = DEFAULT_FUZZY_DISTANCE,
    fields: Iterable[str] | None = None,
    enrich: bool = True,
) -> SearchPlan | None:
    """Build the lookup for *criteria*, or ``None`` when no search should run."""

    if criteria.is_blank:
        return None
    query = parse_query(criteria.query)
    if query is None:
        return None

    selected = fields_for(criteria.scope, fields)
    options = SearchOptions(
        fields=selected,
        boosts={name: FIELD_BOOSTS[name] for name in selected},
        prefix=not criteria.match_whole_word or criteria.fuzzy,
        fuzzy_distance=fuzzy_distance if criteria.fuzzy else 0.0,
        term_processor=term_processor_for(criteria.case_sensitive),
        limit=criteria.limit if criteria.limit is not None else default_limit,
        enrich=enrich,
    )
    return SearchPlan(
        query=query,
        options=options,
        case_sensitive=criteria.case_sensitive,
        whole_word=criteria.match_whole_word and not criteria.fuzzy,
        fuzzy=criteria.fuzzy,
    )
