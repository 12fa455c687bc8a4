"""Inverted indexes and the manager keeping one per matching configuration."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from rapidfuzz.distance import Levenshtein

from .analysis import TermProcessor, max_edits, query_terms, term_processor_for, tokenize
from .cache import IndexCache
from .documents import INDEXED_FIELDS, Document
from .planner import DEFAULT_FUZZY_DISTANCE, ParsedQuery, SearchOptions

logger = logging.getLogger(__name__)

Span = tuple[int, int]

# Quality multiplier for a term reached only through edit distance.
FUZZY_PENALTY = 0.5


class IndexBuildError(RuntimeError):
    """Raised when a document cannot be registered in an index."""


class MatchMode(str, Enum):
    SUBSTRING = "substring"
    WHOLE_WORD = "wholeWord"


@dataclass(frozen=True)
class IndexConfiguration:
    case_sensitive: bool
    match_mode: MatchMode = MatchMode.SUBSTRING
    fuzzy: bool = False

    @property
    def name(self) -> str:
        case = "cs" if self.case_sensitive else "ci"
        if self.fuzzy:
            return f"{case}-fuzzy"
        if self.match_mode is MatchMode.WHOLE_WORD:
            return f"{case}-strict"
        return f"{case}-substring"

    @property
    def term_processor(self) -> TermProcessor:
        return term_processor_for(self.case_sensitive)


def configuration_for(case_sensitive: bool, whole_word: bool, fuzzy: bool) -> IndexConfiguration:
    """Pick the configuration for a query.

    Fuzzy wins over whole-word (fuzzy lookups are always substring style);
    case sensitivity is independent of both.
    """

    if fuzzy:
        return IndexConfiguration(case_sensitive, MatchMode.SUBSTRING, fuzzy=True)
    if whole_word:
        return IndexConfiguration(case_sensitive, MatchMode.WHOLE_WORD)
    return IndexConfiguration(case_sensitive, MatchMode.SUBSTRING)


ALL_CONFIGURATIONS: tuple[IndexConfiguration, ...] = tuple(
    configuration_for(case_sensitive, whole_word, fuzzy)
    for fuzzy in (False, True)
    for whole_word in ((False, True) if not fuzzy else (False,))
    for case_sensitive in (False, True)
)


@dataclass(frozen=True)
class FieldResult:
    """Ids that matched on one field, best first."""

    field: str
    result: tuple[str, ...]


@dataclass(frozen=True)
class Hit:
    """One document matching on one field."""

    id: str
    field: str
    score: float
    terms: tuple[str, ...] = ()
    spans: tuple[Span, ...] = ()


@dataclass
class _TokenHit:
    quality: float = 0.0
    terms: set[str] = field(default_factory=set)
    spans: list[Span] = field(default_factory=list)


@dataclass(frozen=True)
class TermMatch:
    term: str
    quality: float


def spends_edits_on_case(token: str, term: str, distance: int) -> bool:
    """Whether some of the *distance* edits between *token* and *term* only change case."""

    return Levenshtein.distance(token.lower(), term.lower()) < distance


class InvertedIndex:
    """Field-aware inverted index for one :class:`IndexConfiguration`.

    Postings map ``field -> term -> document id -> character spans``. Case
    folding happens when terms are stored, so an index answers for exactly
    one case-sensitivity setting.
    """

    def __init__(
        self,
        configuration: IndexConfiguration,
        fields: Iterable[str] = INDEXED_FIELDS,
        fuzzy_distance: float = DEFAULT_FUZZY_DISTANCE,
    ) -> None:
        self.configuration = configuration
        self.fields = tuple(fields)
        self.fuzzy_distance = fuzzy_distance
        self._process = configuration.term_processor
        self._postings: dict[str, dict[str, dict[str, list[Span]]]] = {
            name: {} for name in self.fields
        }
        self._documents: dict[str, Document] = {}
        self._doc_terms: dict[str, set[tuple[str, str]]] = {}

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._documents

    def document(self, doc_id: str) -> Document | None:
        return self._documents.get(doc_id)

    def add(self, document: Document) -> None:
        if document.id in self._documents:
            self.remove(document.id)

        registered: set[tuple[str, str]] = set()
        for name in self.fields:
            postings = self._postings[name]
            for token in tokenize(document.field_text(name)):
                term = self._process(token.text)
                postings.setdefault(term, {}).setdefault(document.id, []).append(
                    (token.start, token.end)
                )
                registered.add((name, term))
        self._documents[document.id] = document
        self._doc_terms[document.id] = registered

    def remove(self, doc_id: str) -> bool:
        registered = self._doc_terms.pop(doc_id, None)
        if registered is None:
            return False
        for name, term in registered:
            postings = self._postings[name]
            docs = postings.get(term)
            if docs is None:
                continue
            docs.pop(doc_id, None)
            if not docs:
                del postings[term]
        del self._documents[doc_id]
        return True

    def vocabulary(self, field_name: str) -> list[str]:
        return list(self._postings.get(field_name, {}))

    def _case_mismatch(self, token: str, term: str, distance: int) -> bool:
        return self.configuration.case_sensitive and spends_edits_on_case(token, term, distance)

    def lookup(self, field_name: str, token: str, options: SearchOptions) -> list[TermMatch]:
        """Indexed terms of *field_name* that *token* (already processed) matches."""

        postings = self._postings.get(field_name)
        if not postings:
            return []

        prefix = options.prefix and self.configuration.match_mode is MatchMode.SUBSTRING
        fuzzy = self.configuration.fuzzy and options.fuzzy_distance > 0
        if not prefix and not fuzzy:
            return [TermMatch(token, 1.0)] if token in postings else []

        edits = max_edits(token, options.fuzzy_distance) if fuzzy else 0
        found: list[TermMatch] = []
        for term in postings:
            if token in term:
                found.append(TermMatch(term, len(token) / len(term)))
            elif edits:
                distance = Levenshtein.distance(token, term, score_cutoff=edits)
                if distance <= edits and not self._case_mismatch(token, term, distance):
                    similarity = 1.0 - distance / max(len(token), len(term))
                    found.append(TermMatch(term, similarity * FUZZY_PENALTY))
        return found

    def _token_hits(
        self, field_name: str, token: str, options: SearchOptions
    ) -> dict[str, _TokenHit]:
        hits: dict[str, _TokenHit] = {}
        postings = self._postings.get(field_name, {})
        for match in self.lookup(field_name, token, options):
            for doc_id, spans in postings.get(match.term, {}).items():
                hit = hits.setdefault(doc_id, _TokenHit())
                hit.quality = max(hit.quality, match.quality)
                hit.terms.add(match.term)
                hit.spans.extend(spans)
        return hits

    def search(
        self, query: ParsedQuery, options: SearchOptions
    ) -> list[Hit] | list[FieldResult]:
        """Run *query* and return one raw hit per matching (document, field).

        Every token of an alternative must be found in at least one searched
        field; fields are scored independently so a title hit outranks the
        same hit in the body.
        """

        fields = [name for name in options.fields if name in self._postings]
        processor = options.term_processor
        cache: dict[tuple[str, str], dict[str, _TokenHit]] = {}

        def token_hits(name: str, token: str) -> dict[str, _TokenHit]:
            key = (name, token)
            if key not in cache:
                cache[key] = self._token_hits(name, token, options)
            return cache[key]

        def phrase_tokens(phrase: str) -> list[str]:
            return [processor(term) for term in query_terms(phrase)]

        def matching_docs(phrase: str) -> set[str]:
            docs: set[str] | None = None
            for token in phrase_tokens(phrase):
                found: set[str] = set()
                for name in fields:
                    found.update(token_hits(name, token))
                docs = found if docs is None else docs & found
                if not docs:
                    return set()
            return docs or set()

        accepted: set[str] | None = None
        for group in query.groups:
            group_docs: set[str] = set()
            for alternative in group:
                group_docs |= matching_docs(alternative)
            accepted = group_docs if accepted is None else accepted & group_docs
            if not accepted:
                return []
        if not accepted:
            return []
        for phrase in query.excluded:
            accepted -= matching_docs(phrase)

        ordered = [doc_id for doc_id in self._documents if doc_id in accepted]
        max_boost = options.max_boost or 1.0
        hits: list[Hit] = []
        for name in fields:
            for doc_id in ordered:
                total = 0.0
                terms: set[str] = set()
                spans: set[Span] = set()
                for group in query.groups:
                    best = 0.0
                    for alternative in group:
                        tokens = phrase_tokens(alternative)
                        found = [token_hits(name, token).get(doc_id) for token in tokens]
                        qualities = [hit.quality if hit else 0.0 for hit in found]
                        best = max(best, sum(qualities) / len(qualities))
                        for hit in found:
                            if hit:
                                terms.update(hit.terms)
                                spans.update(hit.spans)
                    total += best
                if total <= 0:
                    continue
                quality = total / len(query.groups)
                score = min(1.0, quality * options.boost(name) / max_boost)
                hits.append(
                    Hit(doc_id, name, round(score, 6), tuple(sorted(terms)), tuple(sorted(spans)))
                )

        if options.enrich:
            return hits

        by_field: dict[str, list[Hit]] = {}
        for hit in hits:
            by_field.setdefault(hit.field, []).append(hit)
        return [
            FieldResult(name, tuple(hit.id for hit in sorted(group, key=lambda h: -h.score)))
            for name, group in by_field.items()
        ]

    def complete(self, token: str, options: SearchOptions) -> dict[str, float]:
        """Score indexed terms that *token* is a prefix of, for autocomplete."""

        edits = 0
        if self.configuration.fuzzy and options.fuzzy_distance > 0:
            edits = max_edits(token, options.fuzzy_distance)
        max_boost = options.max_boost or 1.0
        scores: dict[str, float] = {}
        for name in options.fields:
            weight = options.boost(name) / max_boost
            for term, docs in self._postings.get(name, {}).items():
                if term.startswith(token):
                    quality = len(token) / len(term)
                elif edits and len(term) >= len(token):
                    head = term[: len(token)]
                    distance = Levenshtein.distance(token, head, score_cutoff=edits)
                    if distance > edits or self._case_mismatch(token, head, distance):
                        continue
                    quality = (1.0 - distance / len(token)) * FUZZY_PENALTY
                else:
                    continue
                scores[term] = scores.get(term, 0.0) + weight * quality * len(docs)
        return scores


class IndexSet:
    """One :class:`InvertedIndex` per configuration, all over the same documents.

    Matching behavior is baked into an index when it is built, so the set
    keeps parallel indexes instead of one configurable index. Missing
    configurations are built lazily from the registered documents.
    """

    def __init__(
        self,
        fuzzy_distance: float = DEFAULT_FUZZY_DISTANCE,
        configurations: Iterable[IndexConfiguration] = ALL_CONFIGURATIONS,
    ) -> None:
        self.fuzzy_distance = fuzzy_distance
        self.configurations = tuple(configurations)
        self._documents: dict[str, Document] = {}
        self._indexes: IndexCache[IndexConfiguration, InvertedIndex] = IndexCache()

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._documents

    @property
    def documents(self) -> list[Document]:
        return list(self._documents.values())

    @property
    def built_configurations(self) -> list[IndexConfiguration]:
        return list(self._indexes)

    def get_document(self, doc_id: str) -> Document | None:
        return self._documents.get(doc_id)

    def _build_index(
        self, configuration: IndexConfiguration, documents: Iterable[Document]
    ) -> InvertedIndex:
        index = InvertedIndex(configuration, fuzzy_distance=self.fuzzy_distance)
        for document in documents:
            try:
                index.add(document)
            except Exception as exc:
                raise IndexBuildError(
                    f"Failed to index {document.id} into {configuration.name}"
                ) from exc
        return index

    def build(self, documents: Iterable[Document]) -> None:
        """Replace every index with fresh ones holding exactly *documents*."""

        registry: dict[str, Document] = {}
        for document in documents:
            registry[document.id] = document

        built = {
            configuration: self._build_index(configuration, registry.values())
            for configuration in self.configurations
        }
        self._documents = registry
        self._indexes.replace(built)
        logger.info(
            "Built %d indexes over %d documents", len(built), len(registry)
        )

    def upsert(self, document: Document) -> None:
        for index in self._indexes.values():
            index.remove(document.id)
            index.add(document)
        self._documents[document.id] = document
        logger.debug("Upserted %s", document.id)

    def remove(self, doc_id: str) -> None:
        if self._documents.pop(doc_id, None) is None:
            return
        for index in self._indexes.values():
            index.remove(doc_id)
        logger.debug("Removed %s", doc_id)

    def get(self, configuration: IndexConfiguration) -> InvertedIndex:
        return self._indexes.get_or_build(
            configuration,
            lambda config: self._build_index(config, self._documents.values()),
        )

    def select_index(self, case_sensitive: bool, whole_word: bool, fuzzy: bool) -> InvertedIndex:
        return self.get(configuration_for(case_sensitive, whole_word, fuzzy))

    def invalidate(self, configuration: IndexConfiguration | None = None) -> None:
        """Drop built indexes (one, or all); documents stay registered."""

        self._indexes.invalidate(configuration)

    def clear(self) -> None:
        self._documents = {}
        self._indexes.invalidate()
