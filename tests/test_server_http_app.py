"""Regression tests for HTTP app construction."""

from prompt_search_mcp.engine import EngineConfig
from prompt_search_mcp.paths import PromptRoot
from prompt_search_mcp.server import Settings, create_server, load_settings


def test_http_app_builds_with_security_middleware(tmp_path):
    prompt_root = tmp_path / "prompts"
    prompt_root.mkdir()

    settings = Settings(
        roots={"prompts": PromptRoot("prompts", prompt_root)},
        host="127.0.0.1",
        port=0,
        shared_secret="super-secret",
        log_level="INFO",
    )

    server, security_middleware = create_server(settings)

    app = server.http_app(middleware=security_middleware)

    assert app is not None
    assert len(security_middleware) == 2


def test_load_settings_reads_environment(tmp_path, monkeypatch):
    prompt_root = tmp_path / "prompts"
    prompt_root.mkdir()
    monkeypatch.setenv("PROMPT_PATHS", str(prompt_root))
    monkeypatch.setenv("PORT", "9001")
    monkeypatch.setenv("SEARCH_LIMIT", "7")
    monkeypatch.setenv("SEARCH_FUZZY_DISTANCE", "0.3")
    monkeypatch.delenv("MCP_SHARED_SECRET", raising=False)

    settings = load_settings()

    assert list(settings.roots) == ["prompts"]
    assert settings.port == 9001
    assert settings.shared_secret is None
    assert settings.engine == EngineConfig(limit=7, fuzzy_distance=0.3)
