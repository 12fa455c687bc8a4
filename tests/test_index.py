import pytest

from prompt_search_mcp.analysis import identity
from prompt_search_mcp.documents import Document, normalize
from prompt_search_mcp.index import (
    ALL_CONFIGURATIONS,
    FieldResult,
    IndexBuildError,
    IndexConfiguration,
    IndexSet,
    InvertedIndex,
    MatchMode,
    configuration_for,
    spends_edits_on_case,
)
from prompt_search_mcp.planner import ParsedQuery, SearchOptions


def _doc(path, raw):
    return normalize(path, raw)


def _query(*words):
    return ParsedQuery(tuple((word,) for word in words))


def test_six_configurations_with_distinct_names():
    names = sorted(config.name for config in ALL_CONFIGURATIONS)
    assert names == [
        "ci-fuzzy",
        "ci-strict",
        "ci-substring",
        "cs-fuzzy",
        "cs-strict",
        "cs-substring",
    ]


def test_configuration_for_prefers_fuzzy():
    config = configuration_for(case_sensitive=True, whole_word=True, fuzzy=True)
    assert config == IndexConfiguration(True, MatchMode.SUBSTRING, fuzzy=True)


def test_substring_index_matches_inside_words():
    index = InvertedIndex(IndexConfiguration(False))
    index.add(_doc("/p/a.md", "Unit testing basics"))

    hits = index.search(_query("test"), SearchOptions())
    assert {hit.field for hit in hits} == {"content"}
    assert hits[0].terms == ("testing",)
    assert hits[0].spans == ((5, 12),)


def test_strict_index_requires_whole_terms():
    index = InvertedIndex(IndexConfiguration(False, MatchMode.WHOLE_WORD))
    index.add(_doc("/p/a.md", "Unit testing basics"))

    assert index.search(_query("test"), SearchOptions(prefix=False)) == []
    assert index.search(_query("testing"), SearchOptions(prefix=False))


def test_fuzzy_index_tolerates_typos():
    index = InvertedIndex(IndexConfiguration(False, fuzzy=True))
    index.add(_doc("/p/a.md", "Modern JavaScript patterns"))

    hits = index.search(_query("javascipt"), SearchOptions(fuzzy_distance=0.2))
    assert [hit.terms for hit in hits] == [("javascript",)]
    assert hits[0].score < 1.0


def test_case_sensitive_fuzzy_index_refuses_case_only_edits():
    index = InvertedIndex(IndexConfiguration(True, fuzzy=True))
    index.add(_doc("/p/a.md", "Modern JavaScript patterns"))
    options = SearchOptions(fuzzy_distance=0.2, term_processor=identity)

    assert index.search(_query("javascript"), options) == []
    assert [hit.terms for hit in index.search(_query("JavaScipt"), options)] == [("JavaScript",)]
    assert "JavaScript" not in index.complete("javaS", options)


def test_spends_edits_on_case():
    assert spends_edits_on_case("javascript", "JavaScript", 2)
    assert not spends_edits_on_case("JavaScipt", "JavaScript", 1)


def test_title_hits_outrank_content_hits():
    index = InvertedIndex(IndexConfiguration(False))
    index.add(_doc("/p/a.md", "---\ntitle: Deploy\n---\nnothing else"))
    index.add(_doc("/p/b.md", "How to deploy"))

    hits = index.search(_query("deploy"), SearchOptions())
    scores = {(hit.id, hit.field): hit.score for hit in hits}
    assert scores[("/p/a.md", "title")] > scores[("/p/b.md", "content")]


def test_search_requires_every_group_and_honours_exclusions():
    index = InvertedIndex(IndexConfiguration(False))
    index.add(_doc("/p/a.md", "python testing"))
    index.add(_doc("/p/b.md", "python deployment"))
    index.add(_doc("/p/c.md", "rust testing"))

    both = index.search(_query("python", "testing"), SearchOptions())
    assert {hit.id for hit in both} == {"/p/a.md"}

    either = ParsedQuery((("testing", "deployment"),), excluded=("rust",))
    assert {hit.id for hit in index.search(either, SearchOptions())} == {"/p/a.md", "/p/b.md"}


def test_unenriched_search_returns_field_results():
    index = InvertedIndex(IndexConfiguration(False))
    index.add(_doc("/p/a.md", "needle"))

    results = index.search(_query("needle"), SearchOptions(enrich=False))
    assert results == [FieldResult("content", ("/p/a.md",))]


def test_remove_drops_postings():
    index = InvertedIndex(IndexConfiguration(False))
    index.add(_doc("/p/a.md", "unique words"))

    assert index.remove("/p/a.md")
    assert not index.remove("/p/a.md")
    assert index.vocabulary("content") == []
    assert index.search(_query("unique"), SearchOptions()) == []


def test_complete_scores_prefixes():
    index = InvertedIndex(IndexConfiguration(False))
    index.add(_doc("/p/a.md", "python pythonic pyramid"))

    scores = index.complete("pyth", SearchOptions())
    assert set(scores) == {"python", "pythonic"}
    assert scores["python"] > scores["pythonic"]


def test_index_set_upsert_and_remove_reach_every_built_index():
    indexes = IndexSet()
    indexes.build([_doc("/p/a.md", "alpha")])
    assert len(indexes.built_configurations) == len(ALL_CONFIGURATIONS)

    indexes.upsert(_doc("/p/a.md", "beta"))
    for config in ALL_CONFIGURATIONS:
        index = indexes.get(config)
        assert index.search(_query("alpha"), SearchOptions(prefix=False)) == []
        assert index.search(_query("beta"), SearchOptions(prefix=False))

    indexes.remove("/p/a.md")
    indexes.remove("/p/missing.md")
    assert len(indexes) == 0


def test_index_set_builds_invalidated_configuration_lazily():
    indexes = IndexSet()
    indexes.build([_doc("/p/a.md", "alpha")])
    config = configuration_for(False, False, False)

    indexes.invalidate(config)
    assert config not in indexes.built_configurations

    assert indexes.select_index(False, False, False).search(_query("alp"), SearchOptions())
    assert config in indexes.built_configurations


def test_failed_build_keeps_previous_indexes():
    indexes = IndexSet()
    indexes.build([_doc("/p/a.md", "alpha")])

    class Broken(Document):
        def field_text(self, name):
            raise RuntimeError("unreadable")

    with pytest.raises(IndexBuildError):
        indexes.build([Broken(id="/p/b.md", file_name="b.md", title="b")])

    assert indexes.get_document("/p/a.md") is not None
    assert indexes.get_document("/p/b.md") is None
