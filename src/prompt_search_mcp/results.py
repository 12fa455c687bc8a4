"""Collapse raw index hits into ranked, explainable search results."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Union

from .analysis import word_boundary_pattern
from .documents import Document
from .index import FieldResult, Hit
from .snippets import DEFAULT_CONTEXT_RADIUS, MatchRecord, choose_snippet, match_records

RawHit = Union[str, FieldResult, Hit]
DocumentLookup = Callable[[str], Union[Document, None]]

# Presence weights for hits that arrive without a score of their own.
FALLBACK_WEIGHTS = {"title": 0.4, "description": 0.3, "tags": 0.2, "content": 0.1}
FALLBACK_FLOOR = 0.01


@dataclass
class SearchResult:
    id: str
    file_path: str
    file_name: str
    title: str
    score: float
    matches: dict[str, list[str]] = field(default_factory=dict)
    snippet: str = ""
    records: list[MatchRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "filePath": self.file_path,
            "fileName": self.file_name,
            "title": self.title,
            "score": self.score,
            "matches": {name: list(terms) for name, terms in self.matches.items()},
            "snippet": self.snippet,
            "records": [
                {
                    "field": record.field,
                    "position": record.position,
                    "length": record.length,
                    "context": record.context,
                }
                for record in self.records
            ],
        }


@dataclass(frozen=True)
class _Resolved:
    document: Document
    field: str | None
    score: float | None
    terms: tuple[str, ...] = ()
    spans: tuple[tuple[int, int], ...] = ()


def fallback_score(
    document: Document, literals: Iterable[str], case_sensitive: bool = False
) -> float:
    """Field-weighted presence score for hits the index did not score."""

    score = 0.0
    for name, weight in FALLBACK_WEIGHTS.items():
        text = document.field_text(name)
        if not case_sensitive:
            text = text.lower()
        for literal in literals:
            needle = literal if case_sensitive else literal.lower()
            if needle and needle in text:
                score += weight
                break
    return max(FALLBACK_FLOOR, min(1.0, score))


def _resolve(raw_hits: Iterable[RawHit], lookup: DocumentLookup) -> Iterator[_Resolved]:
    """Turn every supported raw hit shape into :class:`_Resolved` entries."""

    for raw in raw_hits:
        if isinstance(raw, str):
            document = lookup(raw)
            if document is not None:
                yield _Resolved(document, None, None)
        elif isinstance(raw, FieldResult):
            for doc_id in raw.result:
                document = lookup(doc_id)
                if document is not None:
                    yield _Resolved(document, raw.field, None)
        elif isinstance(raw, Hit):
            document = lookup(raw.id)
            if document is not None:
                yield _Resolved(document, raw.field, raw.score, raw.terms, raw.spans)
        else:
            raise TypeError(f"Unsupported raw hit: {raw!r}")


def _merge_terms(existing: list[str], new: Iterable[str]) -> None:
    for term in new:
        if term not in existing:
            existing.append(term)


def _candidate_texts(result: SearchResult, document: Document) -> Iterator[str]:
    yield result.title
    yield result.snippet
    yield result.file_name
    for record in result.records:
        yield record.context
    # Records are capped per field, so the matched fields are checked in full.
    for name in result.matches:
        yield document.field_text(name)


def passes_case_filter(
    result: SearchResult, document: Document, groups: Sequence[Sequence[str]]
) -> bool:
    """Every group needs one alternative that appears verbatim, case included."""

    texts = list(_candidate_texts(result, document))
    return all(
        any(literal in text for literal in group for text in texts) for group in groups
    )


def passes_whole_word_filter(
    result: SearchResult,
    document: Document,
    groups: Sequence[Sequence[str]],
    case_sensitive: bool,
) -> bool:
    """Reject results whose literals only occur inside longer words."""

    texts = list(_candidate_texts(result, document))
    for group in groups:
        patterns = [word_boundary_pattern(literal, case_sensitive) for literal in group]
        if not any(pattern.search(text) for pattern in patterns for text in texts):
            return False
    return True


def normalize_hits(
    raw_hits: Iterable[RawHit],
    lookup: DocumentLookup,
    groups: Sequence[Sequence[str]],
    *,
    case_sensitive: bool = False,
    whole_word: bool = False,
    fuzzy: bool = False,
    radius: int = DEFAULT_CONTEXT_RADIUS,
) -> list[SearchResult]:
    """Merge *raw_hits* into one result per document, best first.

    Matches from several fields of the same document are unioned and the
    highest score wins. Ties keep the order in which documents were first
    seen. Literal post filters run for non-fuzzy queries only, since a
    fuzzy hit need not contain the literal text; case-sensitive fuzzy
    lookups already refuse terms that differ from the query only in case.
    """

    literals = [literal for group in groups for literal in group]
    merged: dict[str, SearchResult] = {}
    documents: dict[str, Document] = {}

    for resolved in _resolve(raw_hits, lookup):
        document = resolved.document
        score = resolved.score
        if score is None:
            score = fallback_score(document, literals, case_sensitive)

        matches: dict[str, list[str]] = {}
        records: list[MatchRecord] = []
        if resolved.field is not None:
            terms = resolved.terms or tuple(literals)
            matches[resolved.field] = list(terms)
            records = match_records(
                document,
                resolved.field,
                terms,
                resolved.spans,
                case_sensitive=case_sensitive,
                radius=radius,
            )

        existing = merged.get(document.id)
        if existing is None:
            documents[document.id] = document
            merged[document.id] = SearchResult(
                id=document.id,
                file_path=document.file_path,
                file_name=document.file_name,
                title=document.title,
                score=score,
                matches=matches,
                records=records,
            )
            continue
        for name, terms in matches.items():
            _merge_terms(existing.matches.setdefault(name, []), terms)
        existing.records.extend(records)
        existing.score = max(existing.score, score)

    results: list[SearchResult] = []
    for result in merged.values():
        result.snippet = choose_snippet(
            result.records, literals, case_sensitive=case_sensitive, prominence=radius
        )
        if not fuzzy:
            document = documents[result.id]
            if case_sensitive and not passes_case_filter(result, document, groups):
                continue
            if whole_word and not passes_whole_word_filter(
                result, document, groups, case_sensitive
            ):
                continue
        results.append(result)

    results.sort(key=lambda result: -result.score)
    return results
