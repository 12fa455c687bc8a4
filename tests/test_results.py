import pytest

from prompt_search_mcp.documents import normalize
from prompt_search_mcp.index import FieldResult, Hit
from prompt_search_mcp.results import fallback_score, normalize_hits


@pytest.fixture
def documents():
    docs = [
        normalize("/p/a.md", "---\ntitle: Python Basics\ntags: [programming]\n---\nLearn python."),
        normalize("/p/b.md", "---\ntitle: Rust\n---\nSystems programming in rust."),
    ]
    return {doc.id: doc for doc in docs}


def test_hits_for_one_document_are_merged(documents):
    raw = [
        Hit("/p/a.md", "tags", 0.4, ("programming",), ((0, 11),)),
        Hit("/p/b.md", "content", 0.2, ("programming",), ((8, 19),)),
        Hit("/p/a.md", "title", 0.9, ("python",), ((0, 6),)),
    ]

    results = normalize_hits(raw, documents.get, [("programming",)])

    assert [result.id for result in results] == ["/p/a.md", "/p/b.md"]
    first = results[0]
    assert first.score == 0.9
    assert first.matches == {"tags": ["programming"], "title": ["python"]}
    assert first.file_name == "a.md"


def test_unscored_hits_get_presence_weights(documents):
    results = normalize_hits(
        ["/p/b.md", FieldResult("tags", ("/p/a.md",))], documents.get, [("programming",)]
    )

    scores = {result.id: result.score for result in results}
    assert scores["/p/a.md"] == pytest.approx(0.2)
    assert scores["/p/b.md"] == pytest.approx(0.1)
    assert results[0].matches == {"tags": ["programming"]}


def test_fallback_score_has_floor(documents):
    assert fallback_score(documents["/p/b.md"], ["absent"]) == 0.01


def test_unknown_ids_are_dropped(documents):
    assert normalize_hits(["/p/missing.md"], documents.get, [("x",)]) == []


def test_unsupported_hit_shape_raises(documents):
    with pytest.raises(TypeError):
        normalize_hits([42], documents.get, [("x",)])


def test_case_sensitive_filter_drops_folded_matches(documents):
    raw = [Hit("/p/a.md", "content", 0.5, ("python",), ((6, 12),))]

    assert normalize_hits(raw, documents.get, [("PYTHON",)], case_sensitive=True) == []
    assert normalize_hits(raw, documents.get, [("python",)], case_sensitive=True)


def test_whole_word_filter_rejects_partial_words(documents):
    raw = [Hit("/p/b.md", "content", 0.5, ("programming",), ((8, 19),))]

    assert normalize_hits(raw, documents.get, [("program",)], whole_word=True) == []
    assert normalize_hits(raw, documents.get, [("program",)], whole_word=True, fuzzy=True)


def test_ties_keep_first_seen_order(documents):
    raw = [
        Hit("/p/b.md", "content", 0.5, ("programming",)),
        Hit("/p/a.md", "tags", 0.5, ("programming",)),
    ]
    results = normalize_hits(raw, documents.get, [("programming",)])
    assert [result.id for result in results] == ["/p/b.md", "/p/a.md"]


def test_to_dict_uses_camel_case(documents):
    result = normalize_hits(["/p/a.md"], documents.get, [("python",)])[0]
    payload = result.to_dict()
    assert payload["filePath"] == "/p/a.md"
    assert payload["fileName"] == "a.md"
    assert payload["matches"] == {}


def test_filters_check_the_whole_matched_field(documents):
    body = "Alpha one. " * 6 + "filler " * 40 + "Beta end."
    document = normalize("/p/long.md", body)
    alpha = tuple((i * 11, i * 11 + 5) for i in range(6))
    # No record reaches "Beta"; only the full field text shows it.
    raw = [Hit(document.id, "content", 0.5, ("Alpha", "Beta"), alpha)]
    lookup = {document.id: document}.get

    sensitive = normalize_hits(raw, lookup, [("Alpha",), ("Beta",)], case_sensitive=True)
    assert [result.id for result in sensitive] == ["/p/long.md"]
    whole_word = normalize_hits(raw, lookup, [("alpha",), ("beta",)], whole_word=True)
    assert [result.id for result in whole_word] == ["/p/long.md"]
