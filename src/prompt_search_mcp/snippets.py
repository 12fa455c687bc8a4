"""Match records and display snippets for search results."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .documents import Document

DEFAULT_CONTEXT_RADIUS = 50
MAX_RECORDS_PER_FIELD = 5
ELLIPSIS = "..."

FIELD_PRIORITY = {"title": 4, "description": 3, "tags": 2, "content": 1}

# Indexed field name -> reported match field.
MATCH_FIELDS = {
    "fileName": "title",
    "title": "title",
    "description": "description",
    "tags": "tags",
    "content": "content",
}

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class MatchRecord:
    field: str
    position: int
    length: int
    context: str


def _is_word_char(char: str) -> bool:
    return char.isalnum() or char == "_"


def extract_context(
    text: str, position: int, length: int, radius: int = DEFAULT_CONTEXT_RADIUS
) -> str:
    """Return the text around ``text[position:position + length]``.

    The window reaches *radius* characters each way, then grows to the
    nearest word boundary (by at most another *radius* characters). Each
    truncated side gets an ellipsis.
    """

    if not text:
        return ""
    position = max(0, min(position, len(text)))
    start = max(0, position - radius)
    end = min(len(text), position + length + radius)

    floor = max(0, start - radius)
    while start > floor and _is_word_char(text[start - 1]) and _is_word_char(text[start]):
        start -= 1
    ceiling = min(len(text), end + radius)
    while end < ceiling and _is_word_char(text[end - 1]) and _is_word_char(text[end]):
        end += 1

    context = _WHITESPACE.sub(" ", text[start:end]).strip()
    if start > 0:
        context = ELLIPSIS + context
    if end < len(text):
        context = context + ELLIPSIS
    return context


def _locate(text: str, term: str, case_sensitive: bool) -> int:
    if case_sensitive:
        return text.find(term)
    return text.lower().find(term.lower())


def _spread_spans(
    text: str, spans: Sequence[tuple[int, int]], limit: int, case_sensitive: bool
) -> list[tuple[int, int]]:
    """Up to *limit* spans, starting with the first span of every distinct word."""

    seen: set[str] = set()
    first: list[tuple[int, int]] = []
    repeats: list[tuple[int, int]] = []
    for start, end in spans:
        word = text[start:end] if case_sensitive else text[start:end].lower()
        (repeats if word in seen else first).append((start, end))
        seen.add(word)
    return sorted(first[:limit] + repeats[: max(limit - len(first), 0)])


def match_records(
    document: Document,
    field_name: str,
    terms: Iterable[str] = (),
    spans: Sequence[tuple[int, int]] = (),
    *,
    case_sensitive: bool = False,
    radius: int = DEFAULT_CONTEXT_RADIUS,
    limit: int = MAX_RECORDS_PER_FIELD,
) -> list[MatchRecord]:
    """Build match records for one field of *document*.

    Exact spans are used when the index reported them; otherwise each term
    is looked up in the field text and reported at position 0 when it
    cannot be found.
    """

    text = document.field_text(field_name)
    reported = MATCH_FIELDS.get(field_name, "content")
    records: list[MatchRecord] = []

    if spans:
        for start, end in _spread_spans(text, spans, limit, case_sensitive):
            length = end - start
            context = extract_context(text, start, length, radius)
            records.append(MatchRecord(reported, start, length, context))
        return records

    for term in list(terms)[:limit]:
        found = _locate(text, term, case_sensitive)
        position = max(found, 0)
        context = extract_context(text, position, len(term), radius)
        records.append(MatchRecord(reported, position, len(term), context))
    return records


def _contains(context: str, literal: str, case_sensitive: bool) -> int:
    if case_sensitive:
        return context.find(literal)
    return context.lower().find(literal.lower())


def choose_snippet(
    records: Sequence[MatchRecord],
    literals: Iterable[str] = (),
    *,
    case_sensitive: bool = False,
    prominence: int = DEFAULT_CONTEXT_RADIUS,
) -> str:
    """Pick the single best context to show for a result."""

    if not records:
        return ""

    literals = [literal for literal in literals if literal]
    for literal in literals:
        for record in records:
            offset = _contains(record.context, literal, case_sensitive)
            if 0 <= offset <= prominence:
                return record.context
    for literal in literals:
        for record in records:
            if _contains(record.context, literal, case_sensitive) >= 0:
                return record.context

    best = records[0]
    for record in records[1:]:
        if FIELD_PRIORITY.get(record.field, 0) > FIELD_PRIORITY.get(best.field, 0):
            best = record
    return best.context
