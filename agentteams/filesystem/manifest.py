"""Side-car manifest mapping local convention files to remote identities."""

from __future__ import annotations

import json
import logging
from pathlib import Path, PurePosixPath
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from agentteams.config import CONVENTION_DIR
from agentteams.exceptions import ManifestError
from agentteams.services.datetime_service import now_iso

logger = logging.getLogger(__name__)

MANIFEST_FILE = "conventions.manifest.json"
MANIFEST_VERSION = 1


class _ManifestModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class ManifestEntry(_ManifestModel):
    """One tracked local file and the remote convention it mirrors."""

    convention_id: str = Field(min_length=1)
    file_relative_path: str = Field(min_length=1)
    file_name: str
    category_dir: str
    title: str | None = None
    category: str | None = None
    updated_at: str | None = None
    downloaded_at: str
    last_uploaded_at: str | None = None
    last_known_updated_at: str | None = None


class Manifest(_ManifestModel):
    """Versioned index of tracked convention files.

    Optional fields are serialized only when they were explicitly set, so an
    absent key stays absent across a save/load round-trip.
    """

    version: Literal[1]
    generated_at: str
    platform_guides_hash: str | None = None
    entries: list[ManifestEntry] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_unique_paths(self) -> Manifest:
        seen: set[str] = set()
        for entry in self.entries:
            if entry.file_relative_path in seen:
                msg = f"duplicate fileRelativePath: {entry.file_relative_path}"
                raise ValueError(msg)
            seen.add(entry.file_relative_path)
        return self

    def find_entry(self, file_relative_path: str) -> ManifestEntry | None:
        for entry in self.entries:
            if entry.file_relative_path == file_relative_path:
                return entry
        return None

    def tracked_paths(self) -> list[str]:
        return [entry.file_relative_path for entry in self.entries]


def manifest_path(project_root: Path) -> Path:
    """Location of the manifest inside the convention directory."""
    return project_root / CONVENTION_DIR / MANIFEST_FILE


def empty_manifest(generated_at: str | None = None) -> Manifest:
    """A manifest with no entries, stamped with *generated_at* or now."""
    return Manifest(version=MANIFEST_VERSION, generated_at=generated_at or now_iso(), entries=[])


def parse_manifest(data: Any, source: Path) -> Manifest:
    """Validate decoded manifest JSON, naming *source* in any error."""
    if not isinstance(data, dict):
        raise ManifestError(f"Invalid manifest format (expected object): {source}")
    version = data.get("version")
    if version != MANIFEST_VERSION or isinstance(version, bool):
        raise ManifestError(f"Unsupported manifest version {version!r}: {source}")
    if not isinstance(data.get("entries"), list):
        raise ManifestError(f"Invalid manifest format (entries must be a list): {source}")
    try:
        return Manifest.model_validate(data)
    except ValidationError as exc:
        raise ManifestError(f"Invalid manifest format: {source}\n{exc}") from exc


def load_manifest(path: Path) -> Manifest:
    """Load and validate the manifest at *path*."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ManifestError(
            f"Manifest not found: {path}\nRun 'agentteams convention download' first."
        ) from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ManifestError(f"Manifest is not valid JSON: {path} ({exc})") from exc
    return parse_manifest(data, path)


def load_or_empty_manifest(path: Path) -> Manifest:
    """Load the manifest, or start a fresh one when the file does not exist yet."""
    if not path.exists():
        logger.debug("No manifest at %s, starting empty", path)
        return empty_manifest()
    return load_manifest(path)


def save_manifest(path: Path, manifest: Manifest) -> None:
    """Write the manifest as indented JSON with a trailing newline."""
    data: dict[str, Any] = {"version": MANIFEST_VERSION}
    data.update(manifest.model_dump(mode="json", by_alias=True, exclude_unset=True))
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


def add_entry(manifest: Manifest, entry: ManifestEntry) -> Manifest:
    """Return a copy of *manifest* with *entry* appended."""
    if manifest.find_entry(entry.file_relative_path) is not None:
        raise ManifestError(f"Path is already tracked: {entry.file_relative_path}")
    return manifest.model_copy(update={"entries": [*manifest.entries, entry]})


def remove_entry(manifest: Manifest, file_relative_path: str) -> Manifest:
    """Return a copy of *manifest* without the entry for *file_relative_path*."""
    remaining = [e for e in manifest.entries if e.file_relative_path != file_relative_path]
    return manifest.model_copy(update={"entries": remaining})


def record_upload(
    manifest: Manifest,
    file_relative_path: str,
    *,
    revision: str,
    uploaded_at: str,
) -> Manifest:
    """Return a copy of *manifest* with the upload bookkeeping of one entry updated."""
    entries: list[ManifestEntry] = []
    for entry in manifest.entries:
        if entry.file_relative_path == file_relative_path:
            entry = entry.model_copy(
                update={"last_uploaded_at": uploaded_at, "last_known_updated_at": revision}
            )
        entries.append(entry)
    return manifest.model_copy(update={"entries": entries})


def resolve_target_path(file_arg: str, cwd: Path, project_root: Path | None) -> Path:
    """Resolve a user-supplied file reference to an absolute path.

    Tried in order, first existing path wins:
    1. an absolute path, as given;
    2. a path starting with ``.agentteams/``, against the project root;
    3. a path relative to *cwd*.

    When none exists the *cwd* resolution is returned so error messages stay
    predictable.
    """
    given = Path(file_arg).expanduser()
    if given.is_absolute():
        if given.exists():
            return given.resolve()
        return given

    parts = PurePosixPath(file_arg.replace("\\", "/")).parts
    if project_root is not None and parts and parts[0] == CONVENTION_DIR:
        rooted = project_root / Path(*parts)
        if rooted.exists():
            return rooted.resolve()

    return (cwd / given).resolve()


def to_relative_path(path: Path, project_root: Path) -> str:
    """Project-root-relative, forward-slash form of *path*.

    Raises ``ValueError`` when *path* is outside the project root.
    """
    return path.resolve().relative_to(project_root.resolve()).as_posix()
