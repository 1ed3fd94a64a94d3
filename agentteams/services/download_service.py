"""Download: rebuild the categorized convention tree and its manifest from the server."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from agentteams.config import CONVENTION_DIR, find_project_root
from agentteams.exceptions import ConfigurationError, ConventionError, RemoteResponseError
from agentteams.filesystem.manifest import (
    MANIFEST_FILE,
    MANIFEST_VERSION,
    Manifest,
    ManifestEntry,
    manifest_path,
    save_manifest,
)
from agentteams.filesystem.naming import FileNameAllocator, build_file_name, safe_directory_name
from agentteams.services.datetime_service import now_iso

if TYPE_CHECKING:
    from pathlib import Path

    from agentteams.client import ConventionClient
    from agentteams.schemas.convention import Convention

logger = logging.getLogger(__name__)

PRIMARY_TEMPLATE_FILE = "convention.md"
PLATFORM_GUIDE_DIR = "platform"
LEGACY_DOWNLOAD_DIR = "conventions"
RESERVED_CATEGORY_DIRS: frozenset[str] = frozenset({PLATFORM_GUIDE_DIR, LEGACY_DOWNLOAD_DIR})


@dataclass
class DownloadResult:
    """What a download wrote."""

    template_updated: bool
    guide_count: int
    convention_count: int
    category_count: int

    @property
    def message(self) -> str:
        lines = ["Convention download completed."]
        if self.template_updated:
            lines.append(f"Updated convention template: {CONVENTION_DIR}/{PRIMARY_TEMPLATE_FILE}")
        if self.guide_count:
            lines.append(
                f"Downloaded {self.guide_count} platform guide(s) into "
                f"{CONVENTION_DIR}/{PLATFORM_GUIDE_DIR}"
            )
        if self.convention_count:
            lines.append(
                f"Downloaded {self.convention_count} file(s) into {self.category_count} "
                f"category director{'y' if self.category_count == 1 else 'ies'} "
                f"under {CONVENTION_DIR}"
            )
            lines.append(f"Manifest: {CONVENTION_DIR}/{MANIFEST_FILE}")
        else:
            lines.append("No project conventions found.")
        return "\n".join(lines)


def require_project_root(cwd: Path) -> Path:
    """Locate the project root and check the convention directory exists."""
    project_root = find_project_root(cwd)
    if project_root is None:
        raise ConfigurationError("No .agentteams directory found. Run 'agentteams init' first.")
    convention_root = project_root / CONVENTION_DIR
    if not convention_root.is_dir():
        raise ConfigurationError(
            f"Convention directory not found: {convention_root}\nRun 'agentteams init' first."
        )
    return project_root


def category_dir_for(category: str | None) -> str:
    """Directory for a remote category; never one of the reserved directories."""
    directory = safe_directory_name(category)
    if directory in RESERVED_CATEGORY_DIRS:
        return f"{directory}-category"
    return directory


def _download_primary_template(client: ConventionClient, convention_root: Path) -> bool:
    try:
        content = client.fetch_primary_template()
    except (httpx.HTTPError, RemoteResponseError) as exc:
        logger.warning("Skipping convention template: %s", exc)
        return False
    if content is None:
        logger.info("No agent config registered, skipping convention template")
        return False
    (convention_root / PRIMARY_TEMPLATE_FILE).write_text(content, encoding="utf-8", newline="")
    return True


def _download_platform_guides(client: ConventionClient, convention_root: Path) -> int:
    guides = client.fetch_shared_guides()
    guide_dir = convention_root / PLATFORM_GUIDE_DIR
    shutil.rmtree(guide_dir, ignore_errors=True)
    guide_dir.mkdir(parents=True)

    allocator = FileNameAllocator()
    for guide in guides:
        sub_dir = safe_directory_name(guide.category) if guide.category else "."
        target_dir = guide_dir / sub_dir
        target_dir.mkdir(exist_ok=True)
        file_name = allocator.allocate(sub_dir, build_file_name(guide))
        (target_dir / file_name).write_text(guide.content or "", encoding="utf-8", newline="")
    return len(guides)


def _optional_fields(doc: Convention) -> dict[str, str]:
    # Only set what the server sent so absent fields stay absent in the manifest.
    fields = {"title": doc.title, "category": doc.category, "updated_at": doc.updated_at}
    return {key: value for key, value in fields.items() if value is not None}


def download_conventions(client: ConventionClient, cwd: Path) -> DownloadResult:
    """Rebuild the local convention tree and manifest from the server.

    Category directories are deleted and recreated, so local files inside
    them that the server does not know about are lost. Every body and the
    platform-guide hash are fetched before the tree is touched, and the
    manifest is written last.
    """
    project_root = require_project_root(cwd)
    convention_root = project_root / CONVENTION_DIR

    template_updated = _download_primary_template(client, convention_root)
    guide_count = _download_platform_guides(client, convention_root)

    catalog = client.fetch_all()
    if not catalog:
        if not template_updated:
            raise ConventionError(
                "No conventions found for this project. Create one via the web dashboard first."
            )
        logger.info("No project conventions found; category directories left untouched")
        return DownloadResult(
            template_updated=template_updated,
            guide_count=guide_count,
            convention_count=0,
            category_count=0,
        )

    bodies = [(doc, client.fetch_body(doc.id)) for doc in catalog]
    guides_hash = client.fetch_shared_guides_hash()

    shutil.rmtree(convention_root / LEGACY_DOWNLOAD_DIR, ignore_errors=True)

    category_dirs = list(dict.fromkeys(category_dir_for(doc.category) for doc in catalog))
    for category_dir in category_dirs:
        target = convention_root / category_dir
        shutil.rmtree(target, ignore_errors=True)
        target.mkdir(parents=True)

    downloaded_at = now_iso()
    allocator = FileNameAllocator()
    entries: list[ManifestEntry] = []
    for doc, body in bodies:
        category_dir = category_dir_for(doc.category)
        file_name = allocator.allocate(category_dir, build_file_name(doc))
        (convention_root / category_dir / file_name).write_text(body, encoding="utf-8", newline="")
        logger.debug("Wrote %s/%s for convention %s", category_dir, file_name, doc.id)
        entries.append(
            ManifestEntry(
                convention_id=doc.id,
                file_relative_path=f"{CONVENTION_DIR}/{category_dir}/{file_name}",
                file_name=file_name,
                category_dir=category_dir,
                downloaded_at=downloaded_at,
                **_optional_fields(doc),
            )
        )

    manifest = Manifest(
        version=MANIFEST_VERSION,
        generated_at=downloaded_at,
        platform_guides_hash=guides_hash,
        entries=entries,
    )
    save_manifest(manifest_path(project_root), manifest)
    logger.info("Downloaded %d convention(s) into %d director(ies)", len(entries), len(category_dirs))

    return DownloadResult(
        template_updated=template_updated,
        guide_count=guide_count,
        convention_count=len(entries),
        category_count=len(category_dirs),
    )
