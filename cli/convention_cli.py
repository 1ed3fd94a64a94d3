"""CLI for syncing AgentTeams conventions with the local working tree."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from agentteams.client import ConventionClient
from agentteams.config import load_settings
from agentteams.exceptions import ConventionError
from agentteams.services.catalog_service import list_conventions, show_conventions
from agentteams.services.download_service import download_conventions, require_project_root
from agentteams.services.freshness_service import (
    DOWNLOAD_SUGGESTION,
    build_freshness_notice_lines,
    check_convention_freshness,
)
from agentteams.services.mutation_service import (
    create_conventions,
    delete_conventions,
    update_conventions,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

CONVENTION_ACTIONS = ("list", "show", "download", "check", "create", "update", "delete")
_FILE_ACTIONS = frozenset({"create", "update", "delete"})


def _configure_logging(verbose: bool) -> None:
    """Configure CLI logging; diagnostics go to stderr so stdout stays parseable."""
    if verbose:
        level = logging.DEBUG
        fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    else:
        level = logging.WARNING
        fmt = "%(message)s"
    logging.basicConfig(level=level, format=fmt, stream=sys.stderr, force=True)
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _server_message(response: httpx.Response) -> tuple[str, str | None]:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    message = response.reason_phrase or f"HTTP {response.status_code}"
    error_code = None
    if isinstance(payload, dict):
        if isinstance(payload.get("message"), str):
            message = payload["message"]
        if isinstance(payload.get("errorCode"), str):
            error_code = payload["errorCode"]
    return message, error_code


def describe_error(exc: BaseException) -> str:
    """Turn an exception into an actionable message for the terminal."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        message, error_code = _server_message(exc.response)
        if status == 400:
            return (
                "Bad request. Check your flags and payload.\n"
                f"Next: Verify the target file and try again.\nDetails: {message}"
            )
        if status == 401:
            return (
                "Invalid API key. Please check your AGENTTEAMS_API_KEY environment variable.\n"
                f"Next: Re-run 'agentteams init' or set AGENTTEAMS_API_KEY.\nDetails: {message}"
            )
        if status == 403:
            if error_code == "CONVENTION_WRITE_FORBIDDEN":
                return (
                    "Forbidden.\nNext: Convention write operations require proper "
                    f"project/team permissions.\nDetails: {message}"
                )
            return (
                "Forbidden.\nNext: Confirm your API key permissions for this project/team.\n"
                f"Details: {message}"
            )
        if status == 404:
            return (
                "Resource not found.\nNext: Check the convention id and the target project.\n"
                f"Details: {message}"
            )
        if status == 409:
            if error_code == "OPTIMISTIC_LOCK_CONFLICT":
                return (
                    "Conflict (stale update).\nNext: Run 'agentteams convention download' "
                    f"and retry with the latest updatedAt.\nDetails: {message}"
                )
            return (
                "Conflict.\nNext: Run 'agentteams convention download' and retry.\n"
                f"Details: {message}"
            )
        if status >= 500:
            return (
                "Server error occurred. Please try again later.\n"
                f"Next: Retry later. If it persists, check server status.\nDetails: {message}"
            )
        return f"HTTP {status} error: {message}"
    if isinstance(exc, httpx.ConnectError):
        return (
            f"Cannot connect to server: {exc}\n"
            "Next: Check AGENTTEAMS_API_URL and connectivity."
        )
    if isinstance(exc, httpx.HTTPError):
        return f"Network error: {exc}"
    return str(exc)


def execute_convention_command(
    client: ConventionClient,
    action: str,
    *,
    cwd: Path,
    files: Sequence[str] = (),
    apply: bool = False,
    echo: Callable[[str], None] | None = None,
) -> str:
    """Run one ``convention`` action and return the text to print.

    With *echo*, create, update and delete hand each line to it as soon as it
    is produced and return an empty string.
    """
    if action in _FILE_ACTIONS and not files:
        raise ConventionError(f"--file is required for convention {action}")

    if action == "list":
        return json.dumps(list_conventions(client), indent=2, ensure_ascii=False)
    if action == "show":
        return show_conventions(client)
    if action == "download":
        return download_conventions(client, cwd).message
    if action == "check":
        freshness = check_convention_freshness(client, require_project_root(cwd))
        if not freshness.has_changes:
            return "Conventions are up to date."
        return "\n".join([*build_freshness_notice_lines(freshness), DOWNLOAD_SUGGESTION])
    if action == "create":
        report = create_conventions(client, cwd, files, echo=echo)
    elif action == "update":
        report = update_conventions(client, cwd, files, apply=apply, echo=echo)
    elif action == "delete":
        report = delete_conventions(client, cwd, files, apply=apply, echo=echo)
    else:
        raise ConventionError(
            f"Unknown convention action: {action}. Use {', '.join(CONVENTION_ACTIONS)}."
        )
    return "" if echo is not None else report.message


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agentteams",
        description="Sync AgentTeams conventions with the local .agentteams directory",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command")

    sync_parser = subparsers.add_parser("sync", help="Download conventions from the server")
    sync_parser.add_argument("--cwd", help="Working directory (default: current)")

    convention_parser = subparsers.add_parser("convention", help="Manage project conventions")
    convention_parser.add_argument("action", choices=CONVENTION_ACTIONS)
    convention_parser.add_argument("--cwd", help="Working directory (default: current)")
    convention_parser.add_argument(
        "--file",
        "-f",
        action="append",
        default=[],
        help="Target convention markdown file (repeatable; create requires "
        "a file under .agentteams/<category>/)",
    )
    convention_parser.add_argument(
        "--apply",
        action="store_true",
        help="Apply changes to the server (default: dry-run)",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if args.command is None:
        parser.print_help()
        return 1

    cwd = Path(args.cwd).resolve() if args.cwd else Path.cwd()
    action = "download" if args.command == "sync" else args.action
    try:
        settings = load_settings(cwd)
        with ConventionClient.from_settings(settings) as client:
            output = execute_convention_command(
                client,
                action,
                cwd=cwd,
                files=getattr(args, "file", []),
                apply=getattr(args, "apply", False),
                echo=print,
            )
    except (ConventionError, httpx.HTTPError) as exc:
        print(f"Error: {describe_error(exc)}", file=sys.stderr)
        return 1

    if output:
        print(output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
