"""Tokenization and term processing shared by indexing and querying."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass

TermProcessor = Callable[[str], str]

# Words, with inner apostrophes kept together ("don't").
WORD_PATTERN = re.compile(r"\w+(?:'\w+)*", re.UNICODE)

MAX_TOKEN_LENGTH = 255
MAX_FUZZY_EDITS = 6


@dataclass(frozen=True, slots=True)
class Token:
    text: str
    start: int
    end: int


def identity(term: str) -> str:
    return term


def lowercase(term: str) -> str:
    return term.lower()


def term_processor_for(case_sensitive: bool) -> TermProcessor:
    """Case-insensitive search folds terms, case-sensitive search keeps them."""

    return identity if case_sensitive else lowercase


def tokenize(text: str) -> Iterator[Token]:
    """Yield word tokens of *text* with their character offsets."""

    for match in WORD_PATTERN.finditer(text):
        word = match.group()
        if len(word) > MAX_TOKEN_LENGTH:
            continue
        yield Token(word, match.start(), match.end())


def query_terms(text: str) -> list[str]:
    return [token.text for token in tokenize(text)]


def max_edits(term: str, fuzzy_distance: float) -> int:
    """Number of edits a fuzzy lookup of *term* tolerates.

    Values below one are a fraction of the term length, larger values are an
    absolute edit count.
    """

    if fuzzy_distance <= 0:
        return 0
    if fuzzy_distance < 1:
        edits = round(len(term) * fuzzy_distance)
    else:
        edits = int(fuzzy_distance)
    return min(edits, MAX_FUZZY_EDITS)


def word_boundary_pattern(term: str, case_sensitive: bool) -> re.Pattern[str]:
    """Regex matching *term* only where it is not part of a longer word."""

    flags = 0 if case_sensitive else re.IGNORECASE
    return re.compile(rf"(?<!\w){re.escape(term)}(?!\w)", flags)
