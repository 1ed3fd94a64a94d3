"""Safe file and directory names for downloaded conventions."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentteams.schemas.convention import Convention, PlatformGuide

MAX_NAME_LENGTH = 60
MARKDOWN_SUFFIX = ".md"
DEFAULT_FILE_STEM = "convention"
DEFAULT_CATEGORY_DIR = "uncategorized"

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def safe_file_name(value: str) -> str:
    """Reduce untrusted text to a filesystem-safe name segment.

    - Lowercase
    - Collapse every run of non-alphanumeric chars into one hyphen
    - Strip leading/trailing hyphens
    - Truncate to 60 chars

    Empty input yields an empty string.
    """
    text = _NON_ALNUM.sub("-", value.lower())
    return text.strip("-")[:MAX_NAME_LENGTH]


def safe_directory_name(category: str | None) -> str:
    """Directory name for a category, ``uncategorized`` when nothing survives."""
    return safe_file_name(category or "") or DEFAULT_CATEGORY_DIR


def build_file_name(doc: Convention | PlatformGuide) -> str:
    """Pick the base markdown file name for a document.

    An explicit ``fileName`` wins, then the title, then ``convention``.
    The ``.md`` suffix is present exactly once.
    """
    explicit = (doc.file_name or "").strip()
    if explicit:
        stem = explicit[: -len(MARKDOWN_SUFFIX)] if explicit.lower().endswith(MARKDOWN_SUFFIX) else explicit
        stem = safe_file_name(stem)
        if stem:
            return f"{stem}{MARKDOWN_SUFFIX}"
    stem = safe_file_name(doc.title or "")
    return f"{stem or DEFAULT_FILE_STEM}{MARKDOWN_SUFFIX}"


class FileNameAllocator:
    """Hands out collision-free file names within one download pass.

    The first document for a ``category/base`` pair keeps the base name;
    later ones get ``-2``, ``-3``, ... inserted before the suffix, in the
    order they are requested. A suffixed name that another document already
    claimed as its base name is skipped.
    """

    def __init__(self) -> None:
        self._seen: dict[str, int] = {}
        self._taken: set[str] = set()

    def allocate(self, category_dir: str, base_file_name: str) -> str:
        key = f"{category_dir}/{base_file_name}"
        stem = base_file_name.removesuffix(MARKDOWN_SUFFIX)
        count = self._seen.get(key, 0) + 1
        file_name = base_file_name if count == 1 else f"{stem}-{count}{MARKDOWN_SUFFIX}"
        while f"{category_dir}/{file_name}" in self._taken:
            count += 1
            file_name = f"{stem}-{count}{MARKDOWN_SUFFIX}"
        self._seen[key] = count
        self._taken.add(f"{category_dir}/{file_name}")
        return file_name
