"""Tests for the candidate URL validator."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from content_gate.validator import PathValidator
from tests.mocks import RecordingTransport, failing_transport

URL = "https://content.test/guide"


def _status_transport(status_code: int) -> RecordingTransport:
    return RecordingTransport(lambda request: httpx.Response(status_code))


class TestPathValidator:
    """Tests for PathValidator.validate."""

    @pytest.mark.asyncio
    async def test_200_is_valid(self) -> None:
        transport = _status_transport(200)
        assert await PathValidator(transport=transport).validate(URL) is True
        assert transport.requests[0].method == "HEAD"
        assert str(transport.requests[0].url) == URL

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [201, 204, 404, 410, 500])
    async def test_other_status_is_invalid(self, status_code: int) -> None:
        validator = PathValidator(transport=_status_transport(status_code))
        assert await validator.validate(URL) is False

    @pytest.mark.asyncio
    async def test_redirect_followed_to_200(self) -> None:
        def _handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/guide":
                return httpx.Response(301, headers={"Location": "https://content.test/v2"})
            return httpx.Response(200)

        transport = RecordingTransport(_handler)
        assert await PathValidator(transport=transport).validate(URL) is True
        assert [r.url.path for r in transport.requests] == ["/guide", "/v2"]

    @pytest.mark.asyncio
    async def test_redirect_to_missing_is_invalid(self) -> None:
        def _handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/guide":
                return httpx.Response(302, headers={"Location": "/gone"})
            return httpx.Response(404)

        assert await PathValidator(transport=RecordingTransport(_handler)).validate(URL) is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "url",
        ["", "not a url", "ftp://content.test/guide", "https://", "mailto:someone@content.test"],
    )
    async def test_malformed_url_makes_no_request(self, url: str) -> None:
        transport = _status_transport(200)
        assert await PathValidator(transport=transport).validate(url) is False
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_connection_error_is_invalid(self) -> None:
        validator = PathValidator(transport=failing_transport(httpx.ConnectError("refused")))
        assert await validator.validate(URL) is False

    @pytest.mark.asyncio
    async def test_transport_timeout_is_invalid(self) -> None:
        validator = PathValidator(transport=failing_transport(httpx.ConnectTimeout("slow")))
        assert await validator.validate(URL) is False

    @pytest.mark.asyncio
    async def test_deadline_enforced(self) -> None:
        async def _slow(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200)

        validator = PathValidator(transport=RecordingTransport(_slow))  # type: ignore[arg-type]

        loop = asyncio.get_running_loop()
        started = loop.time()
        assert await validator.validate(URL, deadline=0.1) is False
        assert loop.time() - started < 1.0
