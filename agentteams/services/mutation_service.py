"""Create, update, and delete single conventions against manifest-tracked files.

Every operation works on a list of files, one at a time. The manifest is
reloaded for each file, changed as a value, and written back as the last
step for that file. The first failure stops the batch; files already
processed keep their committed manifest changes.
"""

from __future__ import annotations

import difflib
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

import httpx

from agentteams.config import CONVENTION_DIR
from agentteams.exceptions import (
    ConfigurationError,
    ConventionError,
    ConventionValidationError,
    UntrackedFileError,
)
from agentteams.filesystem.frontmatter import parse_convention_file
from agentteams.filesystem.manifest import (
    MANIFEST_FILE,
    Manifest,
    ManifestEntry,
    add_entry,
    load_manifest,
    load_or_empty_manifest,
    manifest_path,
    record_upload,
    remove_entry,
    resolve_target_path,
    save_manifest,
    to_relative_path,
)
from agentteams.schemas.convention import ConventionCreate, ConventionUpdate
from agentteams.services.datetime_service import now_iso
from agentteams.services.download_service import RESERVED_CATEGORY_DIRS, require_project_root
from agentteams.services.freshness_service import (
    DOWNLOAD_SUGGESTION,
    build_freshness_notice_lines,
    check_convention_freshness,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from agentteams.client import ConventionClient
    from agentteams.schemas.convention import Convention

logger = logging.getLogger(__name__)

MAX_TRACKED_PATHS_HINT = 30


class MutationAction(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    NO_CHANGES = "no_changes"
    DRY_RUN = "dry_run"


@dataclass
class MutationOutcome:
    """Result for one target file."""

    file_path: str
    action: MutationAction
    message: str
    convention_id: str | None = None
    diff: str = ""

    def render(self) -> str:
        if self.diff:
            return f"{self.message}\n{self.diff}"
        return self.message


@dataclass
class MutationReport:
    """Results of a batch, in processing order.

    Every line of output goes through :meth:`emit` as soon as it is known,
    so a caller passing *echo* sees the lines of files already committed
    even when a later file fails.
    """

    echo: Callable[[str], None] | None = None
    outcomes: list[MutationOutcome] = field(default_factory=list)
    lines: list[str] = field(default_factory=list)

    def emit(self, text: str) -> None:
        self.lines.append(text)
        if self.echo is not None:
            self.echo(text)

    def add(self, outcome: MutationOutcome) -> None:
        self.outcomes.append(outcome)
        self.emit(outcome.render())

    @property
    def message(self) -> str:
        return "\n".join(self.lines)


def render_diff(server_body: str, local_body: str, file_path: str) -> str:
    """Unified line diff from the server body to the uploaded body; empty when equal."""
    lines = difflib.unified_diff(
        server_body.splitlines(),
        local_body.splitlines(),
        fromfile=f"server/{file_path}",
        tofile=f"local/{file_path}",
        lineterm="",
    )
    return "\n".join(lines)


def _read_text(path: Path) -> str:
    if not path.is_file():
        raise ConventionValidationError(f"File not found: {path}")
    try:
        with path.open(encoding="utf-8", newline="") as f:
            return f.read()
    except UnicodeDecodeError as exc:
        raise ConventionValidationError(f"File is not valid UTF-8: {path}") from exc


def _relative_target(file_arg: str, cwd: Path, project_root: Path) -> tuple[Path, str]:
    path = resolve_target_path(file_arg, cwd, project_root)
    try:
        return path, to_relative_path(path, project_root)
    except ValueError:
        raise ConventionValidationError(
            f"File is outside the project root {project_root}: {path}"
        ) from None


def _require_manifest(project_root: Path) -> Manifest:
    path = manifest_path(project_root)
    if not path.exists():
        raise ConfigurationError(
            f"Manifest not found: {path}\nRun 'agentteams convention download' first."
        )
    return load_manifest(path)


def _require_entry(manifest: Manifest, file_relative_path: str) -> ManifestEntry:
    entry = manifest.find_entry(file_relative_path)
    if entry is not None:
        return entry

    tracked = manifest.tracked_paths()[:MAX_TRACKED_PATHS_HINT]
    lines = [
        f"No manifest entry for {file_relative_path}.",
        f"Only files tracked in {CONVENTION_DIR}/{MANIFEST_FILE} can be updated or deleted.",
    ]
    if tracked:
        lines.append("Tracked files:")
        lines.extend(f"  - {path}" for path in tracked)
        remaining = len(manifest.entries) - len(tracked)
        if remaining > 0:
            lines.append(f"  ... and {remaining} more")
    else:
        lines.append("No files are tracked yet.")
    lines.append(
        "Run 'agentteams convention download' to refresh the manifest, "
        "or 'agentteams convention create' for a new file."
    )
    raise UntrackedFileError("\n".join(lines), tracked)


# Create


def validate_create_target(path: Path, rel_path: str, manifest: Manifest) -> str:
    """Check a create target and return its category directory.

    Runs before any network call.
    """
    parts = PurePosixPath(rel_path).parts
    if len(parts) < 3 or parts[0] != CONVENTION_DIR:
        raise ConventionValidationError(
            f"Create target must be under {CONVENTION_DIR}/<category>/: {rel_path}"
        )
    category_dir = parts[1]
    if category_dir in RESERVED_CATEGORY_DIRS:
        raise ConventionValidationError(
            f"'{category_dir}' is a reserved directory and cannot be used as a category: {rel_path}"
        )
    if path.suffix.lower() != ".md":
        raise ConventionValidationError(f"Convention file must be a markdown (.md) file: {rel_path}")
    if manifest.find_entry(rel_path) is not None:
        raise ConventionValidationError(
            f"{rel_path} is already tracked. Use 'agentteams convention update' instead."
        )
    return category_dir


def create_convention(
    client: ConventionClient,
    manifest: Manifest,
    path: Path,
    rel_path: str,
) -> tuple[Manifest, MutationOutcome]:
    category_dir = validate_create_target(path, rel_path, manifest)
    parsed = parse_convention_file(_read_text(path), rel_path)

    payload = ConventionCreate(
        title=parsed.title,
        category=parsed.category or category_dir,
        file_name=path.name,
        content=parsed.body,
        **{key: value for key, value in parsed.metadata.items() if value is not None},
    )
    created = client.create_convention(payload)
    logger.info("Created convention %s from %s", created.id, rel_path)

    optional = {"updated_at": created.updated_at} if created.updated_at else {}
    entry = ManifestEntry(
        convention_id=created.id,
        file_relative_path=rel_path,
        file_name=path.name,
        category_dir=category_dir,
        title=created.title or payload.title,
        category=created.category or payload.category,
        downloaded_at=now_iso(),
        **optional,
    )
    outcome = MutationOutcome(
        file_path=rel_path,
        action=MutationAction.CREATED,
        message=f"Created convention {created.id} from {rel_path}",
        convention_id=created.id,
    )
    return add_entry(manifest, entry), outcome


def create_conventions(
    client: ConventionClient,
    cwd: Path,
    files: Sequence[str],
    *,
    echo: Callable[[str], None] | None = None,
) -> MutationReport:
    """Create a remote convention for each new file and start tracking it."""
    project_root = require_project_root(cwd)
    path_file = manifest_path(project_root)
    report = MutationReport(echo=echo)
    for file_arg in files:
        manifest = load_or_empty_manifest(path_file)
        path, rel_path = _relative_target(file_arg, cwd, project_root)
        manifest, outcome = create_convention(client, manifest, path, rel_path)
        save_manifest(path_file, manifest)
        report.add(outcome)
    return report


# Update


def _normalized(value: str | None) -> str | None:
    return (value or "").strip() or None


def metadata_changes(
    detail: Convention, metadata: dict[str, str | None]
) -> dict[str, str | None]:
    """Front matter values that differ from what the server holds."""
    return {
        attr: value
        for attr, value in metadata.items()
        if _normalized(getattr(detail, attr)) != value
    }


def _render_changes(diff: str, changes: dict[str, str | None], detail: Convention) -> str:
    lines = [diff] if diff else []
    lines.extend(
        f"metadata {attr}: {_normalized(getattr(detail, attr))!r} -> {value!r}"
        for attr, value in changes.items()
    )
    return "\n".join(lines)


def update_convention(
    client: ConventionClient,
    manifest: Manifest,
    path: Path,
    rel_path: str,
    *,
    apply: bool,
) -> tuple[Manifest, MutationOutcome]:
    """Upload one tracked file when its body or metadata differs from the server.

    The preview compares exactly what would be sent: the body below the
    front matter against the server body, plus each front matter value
    against the server's metadata.
    """
    entry = _require_entry(manifest, rel_path)
    parsed = parse_convention_file(_read_text(path), rel_path)

    detail = client.fetch_detail(entry.convention_id)
    server_body = client.fetch_body(entry.convention_id)
    changes = metadata_changes(detail, parsed.metadata)
    diff = _render_changes(render_diff(server_body, parsed.body, rel_path), changes, detail)
    if not diff:
        return manifest, MutationOutcome(
            file_path=rel_path,
            action=MutationAction.NO_CHANGES,
            message=f"No changes: {rel_path}",
            convention_id=entry.convention_id,
        )

    if not apply:
        return manifest, MutationOutcome(
            file_path=rel_path,
            action=MutationAction.DRY_RUN,
            message=f"Dry run: {rel_path} differs from server (use --apply to upload)",
            convention_id=entry.convention_id,
            diff=diff,
        )

    token = (detail.updated_at or "").strip()
    if not token:
        raise ConventionValidationError(
            f"Server did not return updatedAt for convention {entry.convention_id}; "
            f"refusing to overwrite {rel_path}. "
            "Run 'agentteams convention download' and retry."
        )

    payload = ConventionUpdate(updated_at=token, content=parsed.body, **parsed.metadata)
    updated = client.update_convention(entry.convention_id, payload)
    revision = updated.updated_at or token
    logger.info("Updated convention %s from %s (updatedAt %s)", entry.convention_id, rel_path, revision)

    outcome = MutationOutcome(
        file_path=rel_path,
        action=MutationAction.UPDATED,
        message=f"Updated convention {entry.convention_id} from {rel_path}",
        convention_id=entry.convention_id,
        diff=diff,
    )
    return record_upload(manifest, rel_path, revision=revision, uploaded_at=now_iso()), outcome


def warn_if_stale(client: ConventionClient, project_root: Path) -> None:
    """Log freshness notices; never blocks the caller."""
    try:
        report = check_convention_freshness(client, project_root)
    except (httpx.HTTPError, ConventionError) as exc:
        logger.warning("Convention freshness check failed: %s", exc)
        return
    if report.has_changes:
        for line in build_freshness_notice_lines(report):
            logger.warning(line)
        logger.warning(DOWNLOAD_SUGGESTION)


def update_conventions(
    client: ConventionClient,
    cwd: Path,
    files: Sequence[str],
    *,
    apply: bool = False,
    check_freshness: bool = True,
    echo: Callable[[str], None] | None = None,
) -> MutationReport:
    """Diff each tracked file against the server and upload it when *apply* is set."""
    project_root = require_project_root(cwd)
    path_file = manifest_path(project_root)
    if check_freshness:
        warn_if_stale(client, project_root)

    report = MutationReport(echo=echo)
    for file_arg in files:
        manifest = _require_manifest(project_root)
        path, rel_path = _relative_target(file_arg, cwd, project_root)
        new_manifest, outcome = update_convention(client, manifest, path, rel_path, apply=apply)
        if new_manifest is not manifest:
            save_manifest(path_file, new_manifest)
        report.add(outcome)
    return report


# Delete


def delete_convention(
    client: ConventionClient,
    manifest: Manifest,
    path: Path,
    rel_path: str,
    *,
    apply: bool,
    echo: Callable[[str], None] | None = None,
) -> tuple[Manifest, MutationOutcome]:
    """Delete one tracked convention; the planned deletion is echoed before anything else."""
    entry = _require_entry(manifest, rel_path)
    planned = f"Planned deletion: {rel_path} (conventionId: {entry.convention_id})"
    logger.info("%s", planned)
    if echo is not None:
        echo(planned)

    if not apply:
        return manifest, MutationOutcome(
            file_path=rel_path,
            action=MutationAction.DRY_RUN,
            message="Dry run: use --apply to delete",
            convention_id=entry.convention_id,
        )

    client.delete_convention(entry.convention_id)
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not remove local file %s: %s", path, exc)

    outcome = MutationOutcome(
        file_path=rel_path,
        action=MutationAction.DELETED,
        message=f"Deleted convention {entry.convention_id}",
        convention_id=entry.convention_id,
    )
    return remove_entry(manifest, rel_path), outcome


def delete_conventions(
    client: ConventionClient,
    cwd: Path,
    files: Sequence[str],
    *,
    apply: bool = False,
    echo: Callable[[str], None] | None = None,
) -> MutationReport:
    """Delete each tracked file's remote convention when *apply* is set."""
    project_root = require_project_root(cwd)
    path_file = manifest_path(project_root)
    report = MutationReport(echo=echo)
    for file_arg in files:
        manifest = _require_manifest(project_root)
        path, rel_path = _relative_target(file_arg, cwd, project_root)
        new_manifest, outcome = delete_convention(
            client, manifest, path, rel_path, apply=apply, echo=report.emit
        )
        if new_manifest is not manifest:
            save_manifest(path_file, new_manifest)
        report.add(outcome)
    return report
