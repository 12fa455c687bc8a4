"""Search engine facade over the index set, planner and result pipeline."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from typing import Any, Union

from .analysis import term_processor_for, tokenize
from .cache import DEFAULT_PARSE_CACHE_SIZE, ParseCache
from .documents import Document, Parser, normalize
from .frontmatter import parse_document
from .index import IndexSet
from .planner import (
    DEFAULT_FUZZY_DISTANCE,
    DEFAULT_LIMIT,
    DEFAULT_MAX_SUGGESTIONS,
    FIELD_BOOSTS,
    QuerySyntaxError,
    SearchCriteria,
    SearchOptions,
    SearchPlan,
    SearchScope,
    fields_for,
    plan_search,
)
from .results import SearchResult, normalize_hits
from .snippets import DEFAULT_CONTEXT_RADIUS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineConfig:
    limit: int = DEFAULT_LIMIT
    max_suggestions: int = DEFAULT_MAX_SUGGESTIONS
    fuzzy_distance: float = DEFAULT_FUZZY_DISTANCE
    context_radius: int = DEFAULT_CONTEXT_RADIUS
    parse_cache_size: int = DEFAULT_PARSE_CACHE_SIZE


@dataclass(frozen=True)
class FileContent:
    """A raw prompt file as read by the caller."""

    path: str
    content: str


@dataclass(frozen=True)
class Suggestion:
    suggestion: str
    terms: tuple[str, ...]
    score: float

    def to_dict(self) -> dict[str, Any]:
        return {"suggestion": self.suggestion, "terms": list(self.terms), "score": self.score}


Target = Union[Document, FileContent]


class SearchEngine:
    """Full-text search over prompt documents.

    Typical lifecycle: feed the corpus once with :meth:`index_files` (or
    :meth:`ensure_indexed`), keep it current with :meth:`upsert_file` and
    :meth:`remove_document`, and call :meth:`clear_cache` when the caller
    wants everything re-parsed. The engine never touches the file system.

    Not safe for concurrent use: one owner issues one call at a time.
    """

    def __init__(self, config: EngineConfig | None = None, parser: Parser = parse_document) -> None:
        self.config = config or EngineConfig()
        self._parser = parser
        self._parse_cache = ParseCache(self.config.parse_cache_size)
        self._indexes = IndexSet(fuzzy_distance=self.config.fuzzy_distance)
        self._sources: dict[str, str] = {}
        self._ready = False
        self._stale = False
        self.last_diagnostic: str | None = None

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def documents(self) -> list[Document]:
        self._refresh()
        return self._indexes.documents

    def __len__(self) -> int:
        return len(self._indexes)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._indexes

    def get_document(self, doc_id: str) -> Document | None:
        self._refresh()
        return self._indexes.get_document(doc_id)

    def cache_stats(self) -> dict[str, Any]:
        return {
            "parse": self._parse_cache.stats(),
            "indexes": [config.name for config in self._indexes.built_configurations],
            "documents": len(self._indexes),
        }

    # -- indexing ---------------------------------------------------------

    def normalize(self, path: str, raw_content: str) -> Document:
        """Parse *raw_content* through the content-hash keyed cache."""

        return self._parse_cache.get_or_parse(
            path, raw_content, lambda p, raw: normalize(p, raw, self._parser)
        )

    def index(self, documents: Iterable[Document]) -> None:
        """Rebuild every index from already normalized *documents*."""

        self._indexes.build(documents)
        self._sources = {}
        self._ready = True
        self._stale = False

    def index_files(self, files: Iterable[FileContent]) -> None:
        """Rebuild every index from raw *files*."""

        sources = {file.path: file.content for file in files}
        documents = [self.normalize(path, raw) for path, raw in sources.items()]
        self._indexes.build(documents)
        self._sources = sources
        self._ready = True
        self._stale = False

    def ensure_indexed(self, loader: Callable[[], Iterable[FileContent]]) -> None:
        """Index the files returned by *loader* unless the engine is already ready."""

        if self._ready:
            self._refresh()
            return
        self.index_files(loader())

    def upsert_document(self, document: Document) -> None:
        self._refresh()
        self._sources.pop(document.id, None)
        self._indexes.upsert(document)
        self._ready = True

    def upsert_file(self, path: str, content: str) -> Document:
        self._refresh()
        document = self.normalize(path, content)
        self._sources[path] = content
        self._indexes.upsert(document)
        self._ready = True
        return document

    def remove_document(self, doc_id: str) -> None:
        self._refresh()
        self._sources.pop(doc_id, None)
        self._indexes.remove(doc_id)

    def clear_cache(self) -> None:
        """Forget parsed documents and built indexes.

        The next operation re-parses every retained source and rebuilds the
        index set in one step.
        """

        self._parse_cache.clear()
        self._indexes.invalidate()
        self._stale = True
        logger.debug("Search caches cleared")

    def _refresh(self) -> None:
        if not self._stale:
            return
        documents = [
            self.normalize(document.id, self._sources[document.id])
            if document.id in self._sources
            else document
            for document in self._indexes.documents
        ]
        self._indexes.build(documents)
        self._stale = False

    # -- querying ---------------------------------------------------------

    def available_scopes(self) -> list[SearchScope]:
        return list(SearchScope)

    def _report(self, message: str) -> None:
        self.last_diagnostic = message
        logger.warning(message)

    def _plan(self, criteria: SearchCriteria, **kwargs: Any) -> SearchPlan | None:
        self.last_diagnostic = None
        try:
            return plan_search(
                criteria,
                default_limit=self.config.limit,
                fuzzy_distance=self.config.fuzzy_distance,
                **kwargs,
            )
        except QuerySyntaxError as exc:
            self._report(f"Ignoring malformed query: {exc}")
            return None

    def _execute(self, plan: SearchPlan, indexes: IndexSet) -> list[SearchResult]:
        index = indexes.select_index(plan.case_sensitive, plan.whole_word, plan.fuzzy)
        raw_hits = index.search(plan.query, plan.options)
        results = normalize_hits(
            raw_hits,
            index.document,
            plan.query.groups,
            case_sensitive=plan.case_sensitive,
            whole_word=plan.whole_word,
            fuzzy=plan.fuzzy,
            radius=self.config.context_radius,
        )
        if plan.options.limit is not None:
            results = results[: max(plan.options.limit, 0)]
        return results

    def search(self, criteria: SearchCriteria) -> list[SearchResult]:
        """Ranked results for *criteria*; empty for inactive or blank queries."""

        plan = self._plan(criteria)
        if plan is None:
            return []
        self._refresh()
        return self._execute(plan, self._indexes)

    def count(self, criteria: SearchCriteria) -> int:
        plan = self._plan(criteria, enrich=False)
        if plan is None:
            return 0
        self._refresh()
        unlimited = replace(plan, options=replace(plan.options, limit=None))
        return len(self._execute(unlimited, self._indexes))

    def _register(self, target: Target) -> str:
        if isinstance(target, FileContent):
            current = self._sources.get(target.path)
            if current != target.content or target.path not in self._indexes:
                self.upsert_file(target.path, target.content)
            return target.path
        if self._indexes.get_document(target.id) != target:
            self.upsert_document(target)
        return target.id

    def matches(self, target: Target, criteria: SearchCriteria) -> bool:
        """Whether *target* shows up in a full, unlimited search for *criteria*."""

        plan = self._plan(criteria)
        if plan is None:
            return False
        self._refresh()
        doc_id = self._register(target)
        unlimited = replace(plan, options=replace(plan.options, limit=None))
        return any(result.id == doc_id for result in self._execute(unlimited, self._indexes))

    def search_single(self, target: Target, criteria: SearchCriteria) -> SearchResult | None:
        """Search *target* alone, without touching the shared indexes."""

        plan = self._plan(criteria)
        if plan is None:
            return None
        if isinstance(target, FileContent):
            document = self.normalize(target.path, target.content)
        else:
            document = target
        scratch = IndexSet(fuzzy_distance=self.config.fuzzy_distance, configurations=())
        scratch.build([document])
        results = self._execute(plan, scratch)
        return results[0] if results else None

    def autocomplete(self, criteria: SearchCriteria) -> list[Suggestion]:
        """Complete the last word of the query from the indexed vocabulary."""

        if criteria.is_blank:
            return []
        tokens = list(tokenize(criteria.query))
        if not tokens:
            return []
        limit = criteria.max_suggestions
        if limit is None:
            limit = self.config.max_suggestions
        if limit <= 0:
            return []

        self._refresh()
        last = tokens[-1]
        head = tuple(token.text for token in tokens[:-1])
        lead = criteria.query[: last.start]
        fields = fields_for(criteria.scope)
        processor = term_processor_for(criteria.case_sensitive)
        options = SearchOptions(
            fields=fields,
            boosts={name: FIELD_BOOSTS[name] for name in fields},
            prefix=True,
            fuzzy_distance=self.config.fuzzy_distance if criteria.fuzzy else 0.0,
            term_processor=processor,
            limit=limit,
        )
        index = self._indexes.select_index(criteria.case_sensitive, False, criteria.fuzzy)
        scores = index.complete(processor(last.text), options)
        ranked = sorted(scores.items(), key=lambda item: (-item[1], item[0]))[:limit]
        return [
            Suggestion(suggestion=f"{lead}{term}", terms=(*head, term), score=round(score, 6))
            for term, score in ranked
        ]

