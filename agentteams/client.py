"""HTTP client for the AgentTeams convention and platform-guide endpoints."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Collection
from importlib.metadata import PackageNotFoundError, version
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError

from agentteams.exceptions import RemoteResponseError
from agentteams.schemas.convention import (
    AgentConfigSummary,
    Convention,
    ConventionCreate,
    ConventionUpdate,
    PageMeta,
    PlatformGuide,
)

if TYPE_CHECKING:
    from agentteams.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100
MAX_RETRIES = 3
BASE_DELAY_SECONDS = 1.0

try:
    CLI_VERSION = version("agentteams")
except PackageNotFoundError:  # pragma: no cover - running from a source checkout
    CLI_VERSION = "0.0.0"


def _unwrap(payload: Any) -> Any:
    """Strip the ``{"data": ...}`` envelope when present."""
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


def _total_pages(payload: Any) -> int | None:
    if not isinstance(payload, dict) or not isinstance(payload.get("meta"), dict):
        return None
    try:
        return PageMeta.model_validate(payload["meta"]).total_pages
    except ValidationError:
        return None


def _json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        raise RemoteResponseError(
            f"Server returned non-JSON response for {response.request.url} "
            f"(HTTP {response.status_code})"
        ) from None


def retry_delay(response: httpx.Response, attempt: int) -> float:
    """Seconds to wait before retrying a 429 response.

    Prefers the ``Retry-After`` header, then a ``retryAfter`` body field, then
    exponential backoff from one second.
    """
    header = response.headers.get("retry-after")
    if header:
        try:
            seconds = float(header)
        except ValueError:
            seconds = 0.0
        if seconds > 0:
            return seconds

    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        retry_after = body.get("retryAfter")
        if isinstance(retry_after, (int, float)) and not isinstance(retry_after, bool):
            if retry_after > 0:
                return float(retry_after)

    return BASE_DELAY_SECONDS * 2**attempt


class ConventionClient:
    """Client for the convention catalog of one project."""

    def __init__(
        self,
        api_url: str,
        project_id: str,
        api_key: str,
        *,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.project_id = project_id
        self._sleep = sleep
        self.client = httpx.Client(
            base_url=self.api_url,
            headers={
                "X-API-Key": api_key,
                "Content-Type": "application/json",
                "X-CLI-Version": CLI_VERSION,
            },
            timeout=60.0,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> ConventionClient:
        return cls(settings.api_base_url, settings.project_id, settings.api_key)

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> ConventionClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _project_path(self, suffix: str) -> str:
        return f"/api/projects/{self.project_id}{suffix}"

    def _request(
        self,
        method: str,
        url: str,
        *,
        allow_statuses: Collection[int] = (),
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, retrying HTTP 429 a bounded number of times."""
        attempt = 0
        while True:
            response = self.client.request(method, url, **kwargs)
            if response.status_code != 429 or attempt >= MAX_RETRIES:
                break
            delay = retry_delay(response, attempt)
            logger.warning("Rate limited on %s %s, retrying in %.1fs", method, url, delay)
            self._sleep(delay)
            attempt += 1

        if response.status_code not in allow_statuses:
            response.raise_for_status()
        return response

    # Catalog reads

    def fetch_all(self, page_size: int = DEFAULT_PAGE_SIZE) -> list[Convention]:
        """Fetch every convention of the project, following pagination.

        Stops at ``meta.totalPages`` when the server reports it, otherwise at
        the first page shorter than *page_size*. A payload that is not a list
        ends pagination.
        """
        conventions: list[Convention] = []
        page = 1
        while True:
            response = self._request(
                "GET",
                self._project_path("/conventions"),
                params={"page": page, "pageSize": page_size},
            )
            payload = _json(response)
            items = _unwrap(payload)
            if not isinstance(items, list):
                logger.debug("Convention list page %d is not a list, stopping", page)
                break
            try:
                conventions.extend(Convention.model_validate(item) for item in items)
            except ValidationError as exc:
                raise RemoteResponseError(f"Invalid convention list payload: {exc}") from exc

            total_pages = _total_pages(payload)
            if not items:
                break
            if total_pages is not None:
                if page >= total_pages:
                    break
            elif len(items) < page_size:
                break
            page += 1
        return conventions

    def fetch_body(self, convention_id: str) -> str:
        """Fetch the raw markdown of a convention."""
        response = self._request(
            "GET", self._project_path(f"/conventions/{convention_id}/download")
        )
        return response.text

    def fetch_detail(self, convention_id: str) -> Convention:
        """Fetch convention metadata, including its current ``updatedAt`` token."""
        response = self._request("GET", self._project_path(f"/conventions/{convention_id}"))
        try:
            return Convention.model_validate(_unwrap(_json(response)))
        except ValidationError as exc:
            raise RemoteResponseError(
                f"Invalid convention detail payload for {convention_id}: {exc}"
            ) from exc

    def fetch_shared_guides(self) -> list[PlatformGuide]:
        """Fetch the shared platform guides; an absent endpoint means no guides."""
        response = self._request("GET", "/api/platform/guides", allow_statuses=(404,))
        if response.status_code == 404:
            logger.debug("Platform guides unavailable (404)")
            return []
        items = _unwrap(_json(response))
        if not isinstance(items, list):
            raise RemoteResponseError("Invalid platform guides payload: expected a list")
        try:
            return [PlatformGuide.model_validate(item) for item in items]
        except ValidationError as exc:
            raise RemoteResponseError(f"Invalid platform guides payload: {exc}") from exc

    def fetch_shared_guides_hash(self) -> str:
        """Fetch the fingerprint of the whole platform-guide set."""
        response = self._request("GET", "/api/platform/guides/hash")
        data = _unwrap(_json(response))
        guide_hash = data.get("hash") if isinstance(data, dict) else None
        if not isinstance(guide_hash, str):
            raise RemoteResponseError("Invalid platform guides hash response from server.")
        return guide_hash

    def fetch_primary_template(self) -> str | None:
        """Fetch the convention template linked to the first agent config.

        Returns ``None`` when the project has no agent config.
        """
        response = self._request("GET", self._project_path("/agent-configs"))
        items = _unwrap(_json(response))
        if not isinstance(items, list) or not items:
            return None
        try:
            agent_config = AgentConfigSummary.model_validate(items[0])
        except ValidationError as exc:
            raise RemoteResponseError(f"Invalid agent config payload: {exc}") from exc

        response = self._request(
            "GET", self._project_path(f"/agent-configs/{agent_config.id}/convention")
        )
        data = _unwrap(_json(response))
        content = data.get("content") if isinstance(data, dict) else None
        if not isinstance(content, str):
            raise RemoteResponseError("Invalid convention template response from server.")
        return content

    # Mutations

    def create_convention(self, payload: ConventionCreate) -> Convention:
        response = self._request(
            "POST",
            self._project_path("/conventions"),
            json=payload.model_dump(by_alias=True, exclude_none=True),
        )
        try:
            return Convention.model_validate(_unwrap(_json(response)))
        except ValidationError as exc:
            raise RemoteResponseError(f"Invalid create response: {exc}") from exc

    def update_convention(self, convention_id: str, payload: ConventionUpdate) -> Convention:
        """Replace a convention body; unset metadata stays untouched server-side."""
        response = self._request(
            "PUT",
            self._project_path(f"/conventions/{convention_id}"),
            json=payload.model_dump(by_alias=True, exclude_unset=True),
        )
        data = _unwrap(_json(response))
        if isinstance(data, dict):
            data = {"id": convention_id, **data}
        try:
            return Convention.model_validate(data)
        except ValidationError as exc:
            raise RemoteResponseError(f"Invalid update response: {exc}") from exc

    def delete_convention(self, convention_id: str) -> None:
        self._request("DELETE", self._project_path(f"/conventions/{convention_id}"))
