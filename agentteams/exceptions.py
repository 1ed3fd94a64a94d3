"""Application-level exception types.

Convention:
- ``ConfigurationError`` for missing project scaffolding or credentials. The
  message always names the command that fixes it.
- ``ManifestError`` and ``ConventionValidationError`` for malformed local
  state or rejected input. Both are ``ValueError`` subclasses and carry the
  offending path or value in the message.
- ``UntrackedFileError`` when an update or delete targets a file the manifest
  does not know about.
- ``httpx.HTTPStatusError`` and ``httpx.TransportError`` are not wrapped; they
  propagate unchanged to the CLI, which turns them into readable text.
"""

from __future__ import annotations


class ConventionError(Exception):
    """Base class for errors raised by the convention sync engine."""


class ConfigurationError(ConventionError):
    """Raised when the project root, config, or convention directory is missing."""


class ManifestError(ConventionError, ValueError):
    """Raised when a manifest file fails version or shape validation."""


class ConventionValidationError(ConventionError, ValueError):
    """Raised when a mutation target or server precondition is invalid."""


class RemoteResponseError(ConventionError):
    """Raised when the server returns a payload that cannot be interpreted."""


class UntrackedFileError(ConventionError):
    """Raised when an update or delete targets a path missing from the manifest."""

    def __init__(self, message: str, tracked_paths: list[str]) -> None:
        super().__init__(message)
        self.tracked_paths = tracked_paths
