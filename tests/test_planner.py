import pytest

from prompt_search_mcp.analysis import identity, lowercase
from prompt_search_mcp.planner import (
    QuerySyntaxError,
    SearchCriteria,
    SearchScope,
    fields_for,
    parse_query,
    plan_search,
)


def test_parse_query_splits_terms_into_groups():
    query = parse_query("python  testing")
    assert query.groups == (("python",), ("testing",))
    assert query.excluded == ()


def test_parse_query_handles_or_phrases_and_exclusions():
    query = parse_query('"unit test" | integration OR e2e -flaky -"slow suite"')
    assert query.groups == (("unit test", "integration", "e2e"),)
    assert query.excluded == ("flaky", "slow suite")
    assert query.literals == ("unit test", "integration", "e2e")


def test_parse_query_ignores_punctuation_only_input():
    assert parse_query("   ") is None
    assert parse_query("!!! ???") is None


@pytest.mark.parametrize(
    "text",
    ['"unterminated', "| python", "python OR", "a | | b", "-python", 'a ""', "a | -b"],
)
def test_parse_query_rejects_malformed_syntax(text):
    with pytest.raises(QuerySyntaxError):
        parse_query(text)


def test_scope_aliases():
    assert SearchScope("both") is SearchScope.ALL
    assert SearchScope("filename") is SearchScope.TITLES
    assert SearchCriteria("x", scope="content").scope is SearchScope.CONTENT
    with pytest.raises(ValueError):
        SearchScope("everything")


def test_fields_for_scope_wins_over_explicit_fields():
    assert fields_for(SearchScope.TITLES, ["content"]) == ("fileName", "title")
    assert fields_for(SearchScope.CONTENT) == ("content", "description", "tags")
    assert fields_for(None, ["content", "bogus"]) == ("content",)


def test_plan_search_skips_blank_and_inactive_criteria():
    assert plan_search(SearchCriteria("")) is None
    assert plan_search(SearchCriteria("python", is_active=False)) is None


def test_plan_search_whole_word_disables_prefix():
    plan = plan_search(SearchCriteria("py", match_whole_word=True, case_sensitive=True))
    assert plan.whole_word
    assert not plan.options.prefix
    assert plan.options.term_processor is identity
    assert plan.options.fuzzy_distance == 0.0


def test_plan_search_fuzzy_overrides_whole_word():
    plan = plan_search(
        SearchCriteria("py", match_whole_word=True, fuzzy=True), fuzzy_distance=0.3
    )
    assert plan.fuzzy and not plan.whole_word
    assert plan.options.prefix
    assert plan.options.fuzzy_distance == 0.3
    assert plan.options.term_processor is lowercase


def test_plan_search_limit_and_boosts():
    plan = plan_search(SearchCriteria("py", scope="titles", limit=3), default_limit=20)
    assert plan.options.limit == 3
    assert plan.options.boosts == {"fileName": 4.0, "title": 5.0}
    assert plan.options.max_boost == 5.0

    defaulted = plan_search(SearchCriteria("py"), default_limit=9)
    assert defaulted.options.limit == 9
