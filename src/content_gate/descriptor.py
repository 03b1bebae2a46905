"""Remote content descriptor fetcher.

The descriptor is a JSON object whose keys are shard keys
(``{prefix}1`` .. ``{prefix}N``) and whose values are candidate content
URLs.  Each fetch picks one shard key uniformly at random and extracts that
entry only; every failure mode collapses into "no candidate".
"""

from __future__ import annotations

import asyncio
import random
from typing import Any

import httpx

from content_gate.config import DEFAULT_SHARD_COUNT, DEFAULT_SHARD_PREFIX
from content_gate.logging import get_logger

logger = get_logger(__name__)

DEFAULT_FETCH_TIMEOUT: float = 5.0


class DescriptorFetcher:
    """Fetches a candidate content URL from the descriptor endpoint.

    Args:
        endpoint: Descriptor URL. Empty means no candidate is ever returned.
        shard_prefix: Prefix of every shard key.
        shard_count: Number of shard keys, numbered from 1.
        timeout: Default deadline in seconds when the caller passes none.
        rng: Random source used to pick the shard key.
        transport: Optional httpx transport, for tests and custom stacks.
    """

    def __init__(
        self,
        endpoint: str,
        shard_prefix: str = DEFAULT_SHARD_PREFIX,
        shard_count: int = DEFAULT_SHARD_COUNT,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        rng: random.Random | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if shard_count < 1:
            msg = f"shard_count must be positive, got {shard_count}"
            raise ValueError(msg)
        self.endpoint = endpoint
        self.shard_prefix = shard_prefix
        self.shard_count = shard_count
        self.timeout = timeout
        self._rng = rng or random.Random()
        self._transport = transport

    @property
    def shard_keys(self) -> tuple[str, ...]:
        """All shard keys in the key space."""
        return tuple(f"{self.shard_prefix}{n}" for n in range(1, self.shard_count + 1))

    def choose_shard_key(self) -> str:
        """Pick a shard key uniformly at random."""
        return f"{self.shard_prefix}{self._rng.randint(1, self.shard_count)}"

    async def fetch_candidate(self, deadline: float | None = None) -> str | None:
        """Fetch the descriptor and return the URL under a random shard key.

        Args:
            deadline: Seconds allowed for the whole request. Defaults to the
                fetcher's ``timeout``.

        Returns:
            The candidate URL, or None on any failure.
        """
        if not self.endpoint:
            logger.debug(
                "No descriptor endpoint configured",
                extra={"diagnostic_tag": "network"},
            )
            return None

        deadline = self.timeout if deadline is None else deadline
        shard_key = self.choose_shard_key()
        log = logger.with_context(shard_key=shard_key)

        try:
            body = await asyncio.wait_for(self._get_json(deadline), timeout=deadline)
        except (TimeoutError, httpx.TimeoutException):
            log.warning("[CONTENT_GATE] Descriptor fetch timed out after %.1fs", deadline)
            return None
        except httpx.HTTPStatusError as e:
            log.warning("[CONTENT_GATE] Descriptor fetch got HTTP %d", e.response.status_code)
            return None
        except httpx.RequestError as e:
            log.warning("[CONTENT_GATE] Descriptor fetch request error: %s", e)
            return None
        except ValueError as e:
            # json.JSONDecodeError and UnicodeDecodeError are ValueErrors
            log.warning("[CONTENT_GATE] Descriptor body is not valid JSON: %s", e)
            return None

        if not isinstance(body, dict):
            log.warning(
                "[CONTENT_GATE] Descriptor body is a %s, expected an object",
                type(body).__name__,
            )
            return None

        candidate = body.get(shard_key)
        if not isinstance(candidate, str) or not candidate:
            log.info("[CONTENT_GATE] Descriptor has no candidate for shard key")
            return None

        log.debug(
            "Descriptor candidate found",
            extra={"diagnostic_tag": "network", "url": candidate},
        )
        return candidate

    async def _get_json(self, deadline: float) -> Any:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(deadline),
            transport=self._transport,
        ) as client:
            response = await client.get(self.endpoint)
            response.raise_for_status()
            return response.json()
