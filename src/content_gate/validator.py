"""Candidate URL existence check."""

from __future__ import annotations

import asyncio

import httpx

from content_gate.logging import get_logger

logger = get_logger(__name__)

DEFAULT_VALIDATION_TIMEOUT: float = 5.0

# Success is exactly 200; other 2xx codes do not count as "content exists".
SUCCESS_STATUS = 200

_ALLOWED_SCHEMES = frozenset({"http", "https"})


class PathValidator:
    """Checks that a candidate content URL exists with a HEAD request.

    Redirects are followed and the final response must be 200.

    Args:
        timeout: Default deadline in seconds when the caller passes none.
        transport: Optional httpx transport, for tests and custom stacks.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_VALIDATION_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self._transport = transport

    async def validate(self, url: str, deadline: float | None = None) -> bool:
        """Return True only if *url* answers HEAD with status 200.

        Never raises.

        Args:
            url: Candidate content URL.
            deadline: Seconds allowed for the request. Defaults to ``timeout``.
        """
        deadline = self.timeout if deadline is None else deadline
        log = logger.with_context(url=url)

        try:
            parsed = httpx.URL(url)
        except (httpx.InvalidURL, TypeError, ValueError) as e:
            log.warning("[CONTENT_GATE] Candidate URL is malformed: %s", e)
            return False
        if parsed.scheme not in _ALLOWED_SCHEMES or not parsed.host:
            log.warning("[CONTENT_GATE] Candidate URL is not an http(s) URL")
            return False

        try:
            status = await asyncio.wait_for(self._head(parsed, deadline), timeout=deadline)
        except (TimeoutError, httpx.TimeoutException):
            log.warning("[CONTENT_GATE] Validation timed out after %.1fs", deadline)
            return False
        except httpx.RequestError as e:
            log.warning("[CONTENT_GATE] Validation request error: %s", e)
            return False

        if status != SUCCESS_STATUS:
            log.info("[CONTENT_GATE] Validation got HTTP %d", status)
            return False

        log.debug("Candidate validated", extra={"diagnostic_tag": "network"})
        return True

    async def _head(self, url: httpx.URL, deadline: float) -> int:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(deadline),
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            response = await client.head(url)
            return response.status_code
