"""Shared test fixtures for the AgentTeams convention client."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from agentteams.config import CONFIG_FILE, CONVENTION_DIR

if TYPE_CHECKING:
    from pathlib import Path

TEST_CONFIG = {
    "teamId": "team-1",
    "projectId": "proj-1",
    "agentName": "test-agent",
    "apiKey": "key-123",
    "apiUrl": "https://agentteams.test",
}


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep AGENTTEAMS_* variables from the developer's shell out of tests."""
    for name in ("TEAM_ID", "PROJECT_ID", "AGENT_NAME", "API_KEY", "API_URL", "REPOSITORY_ID"):
        monkeypatch.delenv(f"AGENTTEAMS_{name}", raising=False)


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """A project with an initialized ``.agentteams`` directory."""
    root = tmp_path / "project"
    convention_root = root / CONVENTION_DIR
    convention_root.mkdir(parents=True)
    (convention_root / CONFIG_FILE).write_text(json.dumps(TEST_CONFIG), encoding="utf-8")
    return root


@pytest.fixture
def convention_root(project_root: Path) -> Path:
    return project_root / CONVENTION_DIR
