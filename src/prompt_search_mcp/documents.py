"""Canonical searchable records built from raw prompt files."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from .frontmatter import (
    ParsedDocument,
    file_name_from_path,
    parse_document,
    title_from_file_name,
)

logger = logging.getLogger(__name__)

Parser = Callable[[str, str], ParsedDocument]

INDEXED_FIELDS: tuple[str, ...] = ("fileName", "title", "description", "tags", "content")


@dataclass(frozen=True)
class Document:
    """A prompt as the search core sees it.

    ``id`` is the stable path of the source file and doubles as
    ``file_path``.
    """

    id: str
    file_name: str
    title: str
    description: str = ""
    tags_text: str = ""
    content: str = ""
    tags: tuple[str, ...] = ()

    @property
    def file_path(self) -> str:
        return self.id

    def field_text(self, name: str) -> str:
        """Return the text stored for the indexed field *name*."""

        if name == "fileName":
            return self.file_name
        if name == "tags":
            return self.tags_text
        if name in ("title", "description", "content"):
            return getattr(self, name)
        raise KeyError(name)


def document_from_parsed(path: str, parsed: ParsedDocument) -> Document:
    tags = tuple(parsed.tags)
    return Document(
        id=path,
        file_name=file_name_from_path(path),
        title=parsed.title,
        description=parsed.description,
        tags_text=" ".join(tags),
        content=parsed.content,
        tags=tags,
    )


def fallback_document(path: str, raw_content: str) -> Document:
    """Minimal record used when the parser cannot make sense of a file."""

    file_name = file_name_from_path(path)
    return Document(
        id=path,
        file_name=file_name,
        title=title_from_file_name(file_name),
        content=raw_content,
    )


def normalize(path: str, raw_content: str, parser: Parser = parse_document) -> Document:
    """Convert the raw file at *path* into a :class:`Document`.

    A parser failure is recovered here so that one malformed file never
    blocks searching the rest of the corpus.
    """

    try:
        parsed = parser(path, raw_content)
    except Exception as exc:
        logger.warning("Could not parse %s, indexing raw content: %s", path, exc)
        return fallback_document(path, raw_content)
    return document_from_parsed(path, parsed)
