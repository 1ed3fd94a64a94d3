"""Tests for the HTTP convention client against a mock transport."""

from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from agentteams.client import ConventionClient, retry_delay
from agentteams.exceptions import RemoteResponseError
from agentteams.schemas.convention import ConventionCreate, ConventionUpdate

Handler = Callable[[httpx.Request], httpx.Response]


class _Recorder:
    """Route requests to canned responses and remember every request."""

    def __init__(self, handler: Handler) -> None:
        self.handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)


def _client(
    handler: Handler, sleeps: list[float] | None = None
) -> tuple[ConventionClient, _Recorder]:
    recorder = _Recorder(handler)
    recorded_sleeps = sleeps if sleeps is not None else []
    client = ConventionClient(
        "https://api.test/",
        "proj-1",
        "key-123",
        transport=httpx.MockTransport(recorder),
        sleep=recorded_sleeps.append,
    )
    return client, recorder


def _item(i: int) -> dict[str, object]:
    return {"id": i, "title": f"Doc {i}", "category": "rules", "updatedAt": f"T{i}"}


class TestHeaders:
    def test_sends_api_key_and_version(self) -> None:
        client, recorder = _client(lambda request: httpx.Response(200, json={"data": []}))
        client.fetch_all()
        request = recorder.requests[0]
        assert request.headers["X-API-Key"] == "key-123"
        assert request.headers["Content-Type"] == "application/json"
        assert "X-CLI-Version" in request.headers
        assert request.url.path == "/api/projects/proj-1/conventions"


class TestFetchAll:
    def test_follows_total_pages(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params["page"])
            items = [_item(page * 10 + i) for i in range(2)]
            return httpx.Response(200, json={"data": items, "meta": {"totalPages": 3}})

        client, recorder = _client(handler)
        docs = client.fetch_all(page_size=2)
        assert len(docs) == 6
        assert len(recorder.requests) == 3
        assert docs[0].id == "10"
        assert recorder.requests[0].url.params["pageSize"] == "2"

    def test_short_page_stops_without_meta(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params["page"])
            count = 2 if page == 1 else 1
            return httpx.Response(200, json={"data": [_item(i) for i in range(count)]})

        client, recorder = _client(handler)
        assert len(client.fetch_all(page_size=2)) == 3
        assert len(recorder.requests) == 2

    def test_empty_page_stops(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params["page"])
            data = [_item(1), _item(2)] if page == 1 else []
            return httpx.Response(200, json={"data": data, "meta": {"totalPages": 99}})

        client, recorder = _client(handler)
        assert len(client.fetch_all(page_size=2)) == 2
        assert len(recorder.requests) == 2

    def test_non_list_payload_stops(self) -> None:
        client, _ = _client(lambda request: httpx.Response(200, json={"data": {"oops": 1}}))
        assert client.fetch_all() == []

    def test_server_error_propagates(self) -> None:
        client, _ = _client(lambda request: httpx.Response(500, json={"message": "boom"}))
        with pytest.raises(httpx.HTTPStatusError):
            client.fetch_all()

    def test_invalid_item_is_rejected(self) -> None:
        client, _ = _client(lambda request: httpx.Response(200, json={"data": [{"title": "x"}]}))
        with pytest.raises(RemoteResponseError, match="Invalid convention list payload"):
            client.fetch_all()


class TestReads:
    def test_fetch_body_returns_raw_text(self) -> None:
        client, recorder = _client(lambda request: httpx.Response(200, text="# Body\r\n"))
        assert client.fetch_body("7") == "# Body\r\n"
        assert recorder.requests[0].url.path == "/api/projects/proj-1/conventions/7/download"

    def test_fetch_detail_unwraps(self) -> None:
        client, _ = _client(
            lambda request: httpx.Response(200, json={"data": {"id": "7", "updatedAt": "T7"}})
        )
        assert client.fetch_detail("7").updated_at == "T7"

    def test_non_json_detail(self) -> None:
        client, _ = _client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(RemoteResponseError, match="non-JSON"):
            client.fetch_detail("7")


class TestPlatformGuides:
    def test_not_found_means_no_guides(self) -> None:
        client, _ = _client(lambda request: httpx.Response(404))
        assert client.fetch_shared_guides() == []

    def test_guides_are_parsed(self) -> None:
        payload = {"data": [{"title": "Intro", "fileName": "intro.md", "content": "hi"}]}
        client, recorder = _client(lambda request: httpx.Response(200, json=payload))
        guides = client.fetch_shared_guides()
        assert guides[0].file_name == "intro.md"
        assert recorder.requests[0].url.path == "/api/platform/guides"

    def test_non_list_guides_rejected(self) -> None:
        client, _ = _client(lambda request: httpx.Response(200, json={"data": "nope"}))
        with pytest.raises(RemoteResponseError):
            client.fetch_shared_guides()

    def test_hash(self) -> None:
        client, _ = _client(lambda request: httpx.Response(200, json={"data": {"hash": "abc"}}))
        assert client.fetch_shared_guides_hash() == "abc"

    def test_malformed_hash(self) -> None:
        client, _ = _client(lambda request: httpx.Response(200, json={"data": {"hash": 5}}))
        with pytest.raises(RemoteResponseError, match="hash"):
            client.fetch_shared_guides_hash()


class TestPrimaryTemplate:
    def test_no_agent_config(self) -> None:
        client, recorder = _client(lambda request: httpx.Response(200, json={"data": []}))
        assert client.fetch_primary_template() is None
        assert len(recorder.requests) == 1

    def test_uses_first_agent_config(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/agent-configs"):
                return httpx.Response(200, json={"data": [{"id": "ac-1"}, {"id": "ac-2"}]})
            return httpx.Response(200, json={"data": {"content": "# Template"}})

        client, recorder = _client(handler)
        assert client.fetch_primary_template() == "# Template"
        assert recorder.requests[1].url.path == "/api/projects/proj-1/agent-configs/ac-1/convention"

    def test_missing_content(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/agent-configs"):
                return httpx.Response(200, json={"data": [{"id": "ac-1"}]})
            return httpx.Response(200, json={"data": {}})

        client, _ = _client(handler)
        with pytest.raises(RemoteResponseError):
            client.fetch_primary_template()


class TestMutations:
    def test_create_omits_unset_metadata(self) -> None:
        client, recorder = _client(
            lambda request: httpx.Response(201, json={"data": {"id": 42, "updatedAt": "T1"}})
        )
        created = client.create_convention(
            ConventionCreate(title="T", category="c", file_name="t.md", content="body")
        )
        assert created.id == "42"
        request = recorder.requests[0]
        assert request.method == "POST"
        assert json.loads(request.content) == {
            "title": "T",
            "category": "c",
            "fileName": "t.md",
            "content": "body",
        }

    def test_update_sends_null_but_not_unset(self) -> None:
        client, recorder = _client(
            lambda request: httpx.Response(200, json={"data": {"updatedAt": "T2"}})
        )
        updated = client.update_convention(
            "9", ConventionUpdate(updated_at="T1", content="body", trigger=None)
        )
        assert updated.id == "9"
        assert updated.updated_at == "T2"
        request = recorder.requests[0]
        assert request.method == "PUT"
        assert request.url.path == "/api/projects/proj-1/conventions/9"
        assert json.loads(request.content) == {
            "updatedAt": "T1",
            "content": "body",
            "trigger": None,
        }

    def test_update_conflict_propagates(self) -> None:
        client, _ = _client(
            lambda request: httpx.Response(
                409, json={"errorCode": "OPTIMISTIC_LOCK_CONFLICT", "message": "stale"}
            )
        )
        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            client.update_convention("9", ConventionUpdate(updated_at="T1", content="x"))
        assert exc_info.value.response.status_code == 409

    def test_delete(self) -> None:
        client, recorder = _client(lambda request: httpx.Response(204))
        client.delete_convention("9")
        assert recorder.requests[0].method == "DELETE"


class TestRateLimitRetry:
    def test_retries_then_succeeds(self) -> None:
        responses = iter(
            [
                httpx.Response(429, headers={"Retry-After": "2"}),
                httpx.Response(429, json={"retryAfter": 3}),
                httpx.Response(200, text="ok"),
            ]
        )
        sleeps: list[float] = []
        client, recorder = _client(lambda request: next(responses), sleeps)
        assert client.fetch_body("1") == "ok"
        assert sleeps == [2.0, 3.0]
        assert len(recorder.requests) == 3

    def test_gives_up_after_three_retries(self) -> None:
        sleeps: list[float] = []
        client, recorder = _client(lambda request: httpx.Response(429), sleeps)
        with pytest.raises(httpx.HTTPStatusError):
            client.fetch_body("1")
        assert len(recorder.requests) == 4
        assert sleeps == [1.0, 2.0, 4.0]


class TestRetryDelay:
    def _response(self, **kwargs: object) -> httpx.Response:
        return httpx.Response(429, request=httpx.Request("GET", "https://api.test"), **kwargs)  # type: ignore[arg-type]

    def test_header_wins(self) -> None:
        response = self._response(headers={"Retry-After": "5"}, json={"retryAfter": 9})
        assert retry_delay(response, 0) == 5.0

    def test_body_field(self) -> None:
        assert retry_delay(self._response(json={"retryAfter": 1.5}), 0) == 1.5

    def test_invalid_header_falls_back(self) -> None:
        response = self._response(headers={"Retry-After": "soon"})
        assert retry_delay(response, 2) == 4.0

    def test_exponential_backoff(self) -> None:
        assert retry_delay(self._response(), 0) == 1.0
        assert retry_delay(self._response(), 3) == 8.0
