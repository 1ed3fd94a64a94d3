"""Freshness check: compare the saved manifest against the current remote catalog."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from agentteams.filesystem.manifest import Manifest, load_manifest, manifest_path

if TYPE_CHECKING:
    from pathlib import Path

    from agentteams.client import ConventionClient
    from agentteams.schemas.convention import Convention

logger = logging.getLogger(__name__)

DOWNLOAD_SUGGESTION = "Run 'agentteams convention download' to sync latest conventions."


class ChangeType(StrEnum):
    """Kind of drift between the manifest and the remote catalog."""

    NEW = "new"
    UPDATED = "updated"
    DELETED = "deleted"


def _non_blank(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


@dataclass(frozen=True)
class ConventionChange:
    """One drifted convention."""

    id: str
    type: ChangeType
    title: str | None = None
    file_name: str | None = None

    @property
    def target(self) -> str:
        return _non_blank(self.title) or _non_blank(self.file_name) or self.id

    @property
    def label(self) -> str:
        return f"{self.type}: {self.target}"


@dataclass
class FreshnessReport:
    """Advisory result of a freshness check."""

    platform_guides_changed: bool = False
    convention_changes: list[ConventionChange] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return self.platform_guides_changed or bool(self.convention_changes)

    def change_labels(self) -> list[str]:
        labels: list[str] = []
        if self.platform_guides_changed:
            labels.append("platform guides (shared)")
        labels.extend(change.label for change in self.convention_changes)
        return labels


def detect_changes(
    manifest: Manifest | None,
    platform_guides_hash: str,
    catalog: list[Convention],
) -> FreshnessReport:
    """Classify every tracked or remote convention as new, updated, or deleted.

    Without a manifest there is nothing to compare and no drift is reported.
    Revision tokens are compared only when both sides carry one; the token
    recorded by our last upload takes precedence over the downloaded one.
    """
    if manifest is None:
        return FreshnessReport()

    stored_hash = manifest.platform_guides_hash
    guides_changed = bool(stored_hash) and stored_hash != platform_guides_hash

    remote_by_id = {doc.id: doc for doc in catalog}
    entries_by_id = {entry.convention_id: entry for entry in manifest.entries}

    changes: list[ConventionChange] = []
    for doc in catalog:
        entry = entries_by_id.get(doc.id)
        if entry is None:
            changes.append(
                ConventionChange(
                    id=doc.id, type=ChangeType.NEW, title=doc.title, file_name=doc.file_name
                )
            )
            continue
        # Our own uploads advance lastKnownUpdatedAt, not updatedAt.
        known = entry.last_known_updated_at or entry.updated_at
        if known and doc.updated_at and known != doc.updated_at:
            changes.append(
                ConventionChange(
                    id=doc.id,
                    type=ChangeType.UPDATED,
                    title=doc.title or entry.title,
                    file_name=entry.file_name,
                )
            )

    for entry in manifest.entries:
        if entry.convention_id not in remote_by_id:
            changes.append(
                ConventionChange(
                    id=entry.convention_id,
                    type=ChangeType.DELETED,
                    title=entry.title,
                    file_name=entry.file_name,
                )
            )

    return FreshnessReport(platform_guides_changed=guides_changed, convention_changes=changes)


def check_convention_freshness(client: ConventionClient, project_root: Path) -> FreshnessReport:
    """Run a freshness check for the project at *project_root*.

    Read-only: neither the manifest nor the working tree is touched.
    """
    path = manifest_path(project_root)
    if not path.exists():
        logger.debug("No manifest at %s, skipping freshness check", path)
        return FreshnessReport()
    manifest = load_manifest(path)
    guides_hash = client.fetch_shared_guides_hash()
    catalog = client.fetch_all()
    return detect_changes(manifest, guides_hash, catalog)


def build_freshness_notice_lines(report: FreshnessReport) -> list[str]:
    """Human-readable notice for a report with changes."""
    lines = ["Updated conventions found:"]
    lines.extend(f"  - {label}" for label in report.change_labels())
    return lines
