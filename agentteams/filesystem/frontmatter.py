"""YAML front matter parser for local convention files."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

import frontmatter
import yaml

from agentteams.exceptions import ConventionValidationError

# Front matter key -> request field. Only keys present in the file are sent.
METADATA_KEYS: dict[str, str] = {
    "trigger": "trigger",
    "description": "description",
    "agentInstruction": "agent_instruction",
}

RECOGNIZED_FIELDS: frozenset[str] = frozenset({"title", "category", *METADATA_KEYS})

_DELIMITER_LINE = re.compile(r"^-{3,}[ \t]*(?:\r?\n|\Z)", re.MULTILINE)


@dataclass
class ConventionFile:
    """Parsed local convention file."""

    title: str
    body: str
    raw_content: str
    category: str | None = None
    metadata: dict[str, str | None] = field(default_factory=dict)
    file_path: str = ""


def title_from_file_name(file_path: str) -> str:
    """Derive a title from a file name: drop ``.md``, hyphens and underscores become spaces."""
    name = file_path.replace("\\", "/").rsplit("/", maxsplit=1)[-1]
    name = name.removesuffix(".md").removesuffix(".MD")
    title = " ".join(name.replace("-", " ").replace("_", " ").split())
    return title or "Untitled"


def _text_value(raw: object) -> str | None:
    """Normalize a front matter value; blank or null means "clear"."""
    if raw is None:
        return None
    text = raw if isinstance(raw, str) else str(raw)
    text = text.strip()
    return text or None


def _split_front_matter(raw_content: str) -> tuple[str, str] | None:
    """Return ``(front matter block, body)``, or ``None`` when there is no closed block.

    The body is sliced from the raw text so its whitespace and line endings
    survive untouched.
    """
    opening = _DELIMITER_LINE.match(raw_content)
    if opening is None:
        return None
    closing = _DELIMITER_LINE.search(raw_content, opening.end())
    if closing is None:
        return None
    return raw_content[: closing.end()], raw_content[closing.end() :]


def parse_convention_file(raw_content: str, file_path: str = "") -> ConventionFile:
    """Split a markdown file into front matter metadata and body.

    A metadata key that is present with an empty value maps to ``None`` and
    is therefore distinct from a key that is missing altogether. The body is
    everything after the closing ``---`` line, byte for byte; a file without
    a front matter block is all body.
    """
    split = _split_front_matter(raw_content)
    if split is None:
        meta: dict[str, object] = {}
        body = raw_content
    else:
        block, body = split
        try:
            meta = frontmatter.loads(block).metadata
        except yaml.YAMLError as exc:
            raise ConventionValidationError(f"Invalid front matter in {file_path}: {exc}") from exc

    title = _text_value(meta.get("title")) or title_from_file_name(file_path)
    category = _text_value(meta.get("category"))
    metadata = {
        attr: _text_value(meta.get(key)) for key, attr in METADATA_KEYS.items() if key in meta
    }

    return ConventionFile(
        title=title,
        body=body,
        raw_content=raw_content,
        category=category,
        metadata=metadata,
        file_path=file_path,
    )
