"""Front matter parsing for prompt markdown files."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any

import yaml

logger = logging.getLogger(__name__)

FRONTMATTER_PATTERN = re.compile(r"^---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|$)", re.DOTALL)
_LINE_PATTERN = re.compile(r"^\s*([A-Za-z0-9_\-]+)\s*:(.*)$")


@dataclass(frozen=True)
class ParsedDocument:
    """Best-effort fields extracted from a prompt file."""

    title: str
    content: str
    description: str = ""
    tags: tuple[str, ...] = ()
    front_matter: dict[str, Any] = field(default_factory=dict)


def file_name_from_path(path: str) -> str:
    return PurePosixPath(path.replace("\\", "/")).name or path


def title_from_file_name(file_name: str) -> str:
    """Derive a display title from *file_name* (``my-prompt.md`` -> ``my prompt``)."""

    stem = PurePosixPath(file_name).stem or file_name
    return re.sub(r"[-_]+", " ", stem).strip() or "Untitled"


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def _parse_loose_value(value: str) -> Any:
    value = value.strip()
    if value.startswith("[") and value.endswith("]"):
        try:
            return json.loads(value)
        except ValueError:
            inner = value[1:-1]
            return [_unquote(item.strip()) for item in inner.split(",") if item.strip()]
    return _unquote(value)


def _load_loose(raw: str) -> dict[str, Any]:
    """Read ``key: value`` lines when YAML rejects the block."""

    data: dict[str, Any] = {}
    for line in raw.splitlines():
        match = _LINE_PATTERN.match(line)
        if match:
            data[match.group(1)] = _parse_loose_value(match.group(2))
    return data


def split_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Split *content* into its front matter mapping and body."""

    match = FRONTMATTER_PATTERN.match(content)
    if not match:
        return {}, content
    body = content[match.end() :]
    raw_frontmatter = match.group(1)
    try:
        loaded = yaml.safe_load(raw_frontmatter)
    except yaml.YAMLError:
        logger.debug("YAML front matter rejected, falling back to line reader")
        loaded = _load_loose(raw_frontmatter)
    if not isinstance(loaded, dict):
        loaded = _load_loose(raw_frontmatter)
    return dict(loaded), body


def extract_frontmatter_tags(data: dict[str, Any]) -> list[str]:
    value = data.get("tags")
    if isinstance(value, str):
        candidates: Iterable[Any] = value.split(",")
    elif isinstance(value, Iterable):
        candidates = value
    else:
        candidates = ()

    tags: list[str] = []
    for item in candidates:
        if item is None:
            continue
        tag = str(item).strip().lstrip("#")
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def _text_field(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    return str(value).strip()


def parse_document(path: str, raw_content: str) -> ParsedDocument:
    """Parse *raw_content* of the prompt at *path*.

    Never raises on malformed markup: whatever cannot be read is left empty
    and the title falls back to one derived from the file name.
    """

    front_matter, body = split_frontmatter(raw_content)
    title = _text_field(front_matter, "title") or title_from_file_name(
        file_name_from_path(path)
    )
    return ParsedDocument(
        title=title,
        content=body.strip(),
        description=_text_field(front_matter, "description"),
        tags=tuple(extract_frontmatter_tags(front_matter)),
        front_matter=front_matter,
    )
