"""Prompt roots: where prompt files live and how tool paths map onto them."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path

PROMPT_SUFFIXES = (".md", ".markdown")
DEFAULT_SUFFIX = ".md"


class RootConfigurationError(ValueError):
    """Raised when prompt root configuration is invalid."""


def is_prompt_file(path: Path) -> bool:
    return path.suffix.lower() in PROMPT_SUFFIXES and not any(
        part.startswith(".") for part in path.parts
    )


def iter_prompt_files(root: Path) -> Iterator[Path]:
    """Yield prompt files below *root* in a stable order, skipping hidden entries."""

    for path in sorted(root.rglob("*")):
        if path.is_file() and is_prompt_file(path.relative_to(root)):
            yield path


@dataclass(frozen=True)
class PromptRoot:
    """A directory tree of prompt files, addressed by its folder name."""

    name: str
    root: Path

    @classmethod
    def from_path(cls, path: Path) -> PromptRoot:
        root = path.expanduser().resolve(strict=False)
        return cls(name=root.name, root=root)

    def contains(self, path: Path) -> bool:
        return path.resolve(strict=False).is_relative_to(self.root)

    def prompt_path(self, relative: Path) -> Path:
        """Absolute path of the prompt *relative* to this root.

        A missing suffix means a markdown prompt; anything that resolves
        outside the root is refused.
        """

        target = self.root / relative
        if not target.suffix:
            target = target.with_suffix(DEFAULT_SUFFIX)
        target = target.resolve(strict=False)
        if not self.contains(target):
            raise PermissionError(f"Path {target} is outside prompt root {self.name!r}")
        return target

    def prompts(self) -> Iterator[Path]:
        return iter_prompt_files(self.root)


def parse_root_paths(raw: str) -> dict[str, PromptRoot]:
    """Parse the comma separated ``PROMPT_PATHS`` value, keyed by root name."""

    candidates = [Path(chunk.strip()) for chunk in raw.split(",") if chunk.strip()]
    if not candidates:
        raise RootConfigurationError("PROMPT_PATHS must name at least one directory")

    relative = [str(path) for path in candidates if not path.expanduser().is_absolute()]
    if relative:
        raise RootConfigurationError(f"Prompt roots must be absolute: {', '.join(relative)}")

    roots: dict[str, PromptRoot] = {}
    for path in candidates:
        prompt_root = PromptRoot.from_path(path)
        if not prompt_root.name:
            raise RootConfigurationError(f"Prompt root needs a folder name: {path}")
        if prompt_root.name in roots:
            raise RootConfigurationError(f"Two prompt roots are named {prompt_root.name!r}")
        roots[prompt_root.name] = prompt_root
    return roots


def ensure_in_root(path: Path, roots: Mapping[str, PromptRoot]) -> PromptRoot:
    """Return the root that holds *path*."""

    for prompt_root in roots.values():
        if prompt_root.contains(path):
            return prompt_root
    raise PermissionError(f"Path {path} is outside configured prompt roots")


def resolve_prompt_path(path_str: str, roots: Mapping[str, PromptRoot]) -> Path:
    """Map a tool supplied prompt path onto a file inside the configured roots.

    Absolute paths must already sit inside a root. Relative paths may start
    with a root name (``work/review.md``); with a single root the prefix is
    optional.
    """

    path = Path(path_str)
    if path.is_absolute():
        return ensure_in_root(path, roots).prompt_path(path)
    if not path.parts:
        raise ValueError("Empty prompt path")

    head, *rest = path.parts
    if head in roots and rest:
        return roots[head].prompt_path(Path(*rest))
    if len(roots) == 1:
        return next(iter(roots.values())).prompt_path(path)
    raise ValueError("Ambiguous path - prefix with root name (e.g. 'prompts/review.md')")


def list_root_names(roots: Iterable[PromptRoot]) -> list[str]:
    return sorted(r.name for r in roots)
