"""FastMCP server exposing prompt search tools."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, TypeVar, cast

from dotenv import load_dotenv
from fastmcp import FastMCP
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from .engine import EngineConfig, FileContent, SearchEngine
from .paths import (
    PromptRoot,
    list_root_names,
    parse_root_paths,
    resolve_prompt_path,
)
from .planner import SearchCriteria
from .security import HEALTH_PATH, build_security_middleware

TToolFunc = TypeVar("TToolFunc", bound=Callable[..., Any])

logger = logging.getLogger(__name__)

load_dotenv()


@dataclass(slots=True)
class Settings:
    roots: Mapping[str, PromptRoot]
    host: str
    port: int
    shared_secret: str | None
    log_level: str
    engine: EngineConfig = field(default_factory=EngineConfig)


@dataclass(slots=True)
class SearchService:
    """Reads prompt files from the configured roots and feeds the search engine."""

    roots: Mapping[str, PromptRoot]
    engine: SearchEngine = field(default_factory=SearchEngine)

    def _load_files(self) -> list[FileContent]:
        files: list[FileContent] = []
        for prompt_root in self.roots.values():
            for path in prompt_root.prompts():
                try:
                    content = path.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError) as exc:
                    logger.warning("Skipping unreadable prompt %s: %s", path, exc)
                    continue
                files.append(FileContent(str(path), content))
        return files

    def _criteria(self, query: str, **options: Any) -> SearchCriteria:
        return SearchCriteria(query=query, **options)

    def list_roots(self) -> dict[str, list[str]]:
        return {"roots": list_root_names(self.roots.values())}

    def reindex(self) -> dict[str, Any]:
        try:
            self.engine.index_files(self._load_files())
            return {"ok": True, "documents": len(self.engine)}
        except Exception as exc:
            logger.exception("Reindexing failed")
            return {"ok": False, "error": str(exc)}

    def search(
        self,
        query: str,
        scope: str = "all",
        case_sensitive: bool = False,
        match_whole_word: bool = False,
        fuzzy: bool = False,
        limit: int | None = None,
    ) -> dict[str, Any]:
        try:
            self.engine.ensure_indexed(self._load_files)
            criteria = self._criteria(
                query,
                scope=scope,
                case_sensitive=case_sensitive,
                match_whole_word=match_whole_word,
                fuzzy=fuzzy,
                limit=limit,
            )
            results = self.engine.search(criteria)
            response: dict[str, Any] = {
                "ok": True,
                "ids": [result.id for result in results],
                "results": [result.to_dict() for result in results],
            }
            if self.engine.last_diagnostic:
                response["diagnostic"] = self.engine.last_diagnostic
            return response
        except Exception as exc:
            return {"ok": False, "error": str(exc)}

    def autocomplete(
        self,
        query: str,
        scope: str = "all",
        case_sensitive: bool = False,
        fuzzy: bool = False,
        max_suggestions: int | None = None,
    ) -> dict[str, Any]:
        try:
            self.engine.ensure_indexed(self._load_files)
            criteria = self._criteria(
                query,
                scope=scope,
                case_sensitive=case_sensitive,
                fuzzy=fuzzy,
                max_suggestions=max_suggestions,
            )
            suggestions = self.engine.autocomplete(criteria)
            return {"ok": True, "suggestions": [s.to_dict() for s in suggestions]}
        except Exception as exc:
            return {"ok": False, "error": str(exc)}

    def matches(
        self,
        path: str,
        query: str,
        scope: str = "all",
        case_sensitive: bool = False,
        match_whole_word: bool = False,
        fuzzy: bool = False,
    ) -> dict[str, Any]:
        try:
            self.engine.ensure_indexed(self._load_files)
            target = resolve_prompt_path(path, self.roots)
            if not target.exists():
                return {"ok": False, "error": "Prompt does not exist", "path": str(target)}
            file = FileContent(str(target), target.read_text(encoding="utf-8"))
            criteria = self._criteria(
                query,
                scope=scope,
                case_sensitive=case_sensitive,
                match_whole_word=match_whole_word,
                fuzzy=fuzzy,
            )
            return {"ok": True, "path": str(target), "matches": self.engine.matches(file, criteria)}
        except Exception as exc:
            return {"ok": False, "error": str(exc)}

    def fetch(self, note_id: str | None = None, *, id: str | None = None) -> dict[str, Any]:
        identifier = id if id is not None else note_id
        if identifier is None:
            return {"ok": False, "error": "Missing prompt identifier"}

        try:
            path = resolve_prompt_path(identifier, self.roots)
            content = path.read_text(encoding="utf-8")
            document = self.engine.normalize(str(path), content)
            return {
                "ok": True,
                "id": document.id,
                "title": document.title,
                "description": document.description,
                "tags": list(document.tags),
                "content": content,
            }
        except Exception as exc:
            return {"ok": False, "error": str(exc)}

    def upsert_prompt(self, path: str) -> dict[str, Any]:
        """Re-read one prompt after it changed on disk; drops it if it is gone."""

        try:
            target = resolve_prompt_path(path, self.roots)
            self.engine.ensure_indexed(self._load_files)
            if not target.exists():
                self.engine.remove_document(str(target))
                return {"ok": True, "path": str(target), "removed": True}
            document = self.engine.upsert_file(str(target), target.read_text(encoding="utf-8"))
            return {"ok": True, "path": document.id, "title": document.title}
        except Exception as exc:
            return {"ok": False, "error": str(exc)}

    def remove_prompt(self, path: str) -> dict[str, Any]:
        try:
            target = resolve_prompt_path(path, self.roots)
            self.engine.remove_document(str(target))
            return {"ok": True, "path": str(target)}
        except Exception as exc:
            return {"ok": False, "error": str(exc)}

    def clear_cache(self) -> dict[str, Any]:
        self.engine.clear_cache()
        return {"ok": True}


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def load_settings() -> Settings:
    """Load configuration from environment variables."""

    roots = parse_root_paths(os.environ.get("PROMPT_PATHS", ""))

    host = os.environ.get("HOST", "0.0.0.0")  # noqa: S104 (intentional bind)
    port = _env_int("PORT", 8000)
    shared_secret = os.environ.get("MCP_SHARED_SECRET")

    log_level = os.environ.get("LOG_LEVEL", "info").upper()
    logging.basicConfig(level=getattr(logging, log_level, logging.INFO))

    defaults = EngineConfig()
    engine = EngineConfig(
        limit=_env_int("SEARCH_LIMIT", defaults.limit),
        max_suggestions=_env_int("SEARCH_MAX_SUGGESTIONS", defaults.max_suggestions),
        fuzzy_distance=float(
            os.environ.get("SEARCH_FUZZY_DISTANCE", str(defaults.fuzzy_distance))
        ),
        context_radius=_env_int("SEARCH_CONTEXT_RADIUS", defaults.context_radius),
        parse_cache_size=_env_int("PARSE_CACHE_SIZE", defaults.parse_cache_size),
    )

    return Settings(
        roots=roots,
        host=host,
        port=port,
        shared_secret=shared_secret,
        log_level=log_level,
        engine=engine,
    )


def create_server(settings: Settings | None = None) -> tuple[FastMCP, list[Middleware]]:
    """Create a configured :class:`FastMCP` instance and its security middleware."""

    settings = settings or load_settings()
    server = FastMCP(
        "Prompt Search",
        instructions="Full-text search over markdown prompt collections",
    )

    security_middleware = build_security_middleware(settings.shared_secret)

    service = SearchService(settings.roots, SearchEngine(settings.engine))

    def tool(*args: Any, **kwargs: Any) -> Callable[[TToolFunc], TToolFunc]:
        decorator = server.tool(*args, **kwargs)
        return cast(Callable[[TToolFunc], TToolFunc], decorator)

    @tool()
    async def list_roots() -> dict[str, list[str]]:
        return service.list_roots()

    @tool()
    async def reindex() -> dict[str, Any]:
        return service.reindex()

    @tool()
    async def search(
        query: str,
        scope: str = "all",
        case_sensitive: bool = False,
        match_whole_word: bool = False,
        fuzzy: bool = False,
        limit: int | None = None,
    ) -> dict[str, Any]:
        return service.search(query, scope, case_sensitive, match_whole_word, fuzzy, limit)

    @tool()
    async def autocomplete(
        query: str,
        scope: str = "all",
        case_sensitive: bool = False,
        fuzzy: bool = False,
        max_suggestions: int | None = None,
    ) -> dict[str, Any]:
        return service.autocomplete(query, scope, case_sensitive, fuzzy, max_suggestions)

    @tool()
    async def matches(
        path: str,
        query: str,
        scope: str = "all",
        case_sensitive: bool = False,
        match_whole_word: bool = False,
        fuzzy: bool = False,
    ) -> dict[str, Any]:
        return service.matches(path, query, scope, case_sensitive, match_whole_word, fuzzy)

    @tool()
    async def fetch(id: str, note_id: str | None = None) -> dict[str, Any]:
        identifier = id or note_id
        if identifier is None:
            return {"ok": False, "error": "Either 'id' or 'note_id' must be provided"}

        if id:
            return service.fetch(id=id)
        return service.fetch(identifier)

    @tool()
    async def upsert_prompt(path: str) -> dict[str, Any]:
        return service.upsert_prompt(path)

    @tool()
    async def remove_prompt(path: str) -> dict[str, Any]:
        return service.remove_prompt(path)

    @tool()
    async def clear_cache() -> dict[str, Any]:
        return service.clear_cache()

    @server.custom_route(HEALTH_PATH, methods=["GET"])
    async def health(request: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "documents": len(service.engine)})

    return cast(FastMCP, server), security_middleware


def main() -> None:
    """Run the FastMCP server."""

    settings = load_settings()
    server, security_middleware = create_server(settings)
    server.run(
        transport="http",
        host=settings.host,
        port=settings.port,
        middleware=security_middleware,
    )


if __name__ == "__main__":
    main()
