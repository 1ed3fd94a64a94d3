"""Client configuration loaded from config files and environment variables."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict

from agentteams.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONVENTION_DIR = ".agentteams"
CONFIG_FILE = "config.json"

_REQUIRED_FIELDS: tuple[str, ...] = ("team_id", "project_id", "agent_name", "api_key", "api_url")

# Config files use the camelCase keys written by `agentteams init`.
_FILE_KEYS: dict[str, str] = {
    "teamId": "team_id",
    "projectId": "project_id",
    "agentName": "agent_name",
    "apiKey": "api_key",
    "apiUrl": "api_url",
    "repositoryId": "repository_id",
}


class Settings(BaseSettings):
    """AgentTeams client settings."""

    model_config = SettingsConfigDict(
        env_prefix="AGENTTEAMS_",
        extra="ignore",
    )

    team_id: str = ""
    project_id: str = ""
    agent_name: str = ""
    api_key: str = ""
    api_url: str = ""
    repository_id: str | None = None

    @property
    def api_base_url(self) -> str:
        return self.api_url.rstrip("/")

    def missing_fields(self) -> list[str]:
        return [name for name in _REQUIRED_FIELDS if not getattr(self, name).strip()]


def find_project_config(start_dir: Path) -> Path | None:
    """Find the nearest ``.agentteams/config.json`` walking up from *start_dir*."""
    current = start_dir.resolve()
    while True:
        candidate = current / CONVENTION_DIR / CONFIG_FILE
        if candidate.is_file():
            return candidate
        if current.parent == current:
            return None
        current = current.parent


def find_project_root(start_dir: Path) -> Path | None:
    """Return the directory that contains the ``.agentteams`` sentinel, if any."""
    config_path = find_project_config(start_dir)
    if config_path is None:
        return None
    return config_path.parent.parent


def _read_config_file(path: Path) -> dict[str, Any]:
    """Read a JSON config file, returning an empty mapping when unusable."""
    if not path.is_file():
        return {}
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return {}
    if not isinstance(raw, dict):
        logger.warning("Ignoring config file %s: expected a JSON object", path)
        return {}
    return {_FILE_KEYS[key]: value for key, value in raw.items() if key in _FILE_KEYS}


def load_settings(
    cwd: Path,
    *,
    home: Path | None = None,
    **overrides: str,
) -> Settings:
    """Load settings merged from global config, project config, env, and overrides.

    Priority (highest first): explicit overrides, ``AGENTTEAMS_*`` environment
    variables, the nearest project ``.agentteams/config.json``, and the global
    ``~/.agentteams/config.json``.
    """
    home_dir = home if home is not None else Path.home()
    merged: dict[str, Any] = {}
    merged.update(_read_config_file(home_dir / CONVENTION_DIR / CONFIG_FILE))

    project_config = find_project_config(cwd)
    if project_config is not None:
        merged.update(_read_config_file(project_config))

    merged.update(Settings().model_dump(exclude_unset=True))
    merged.update({key: value for key, value in overrides.items() if value})

    settings = Settings.model_validate(merged)
    if settings.missing_fields():
        raise ConfigurationError(
            "Configuration not found. Run 'agentteams init' first "
            "or set AGENTTEAMS_* environment variables."
        )
    return settings
