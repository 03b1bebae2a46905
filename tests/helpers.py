"""Test helper functions for content gate tests.

Usage
=====

Import and use helpers directly in tests::

    from tests.helpers import make_config, make_resolver

    def test_example():
        resolver, parts = make_resolver(candidate="https://x.test/ok")
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from content_gate.cache import ResolutionCache
from content_gate.config import (
    Config,
    DescriptorConfig,
    LoggingConfig,
    StorageConfig,
    TimeoutConfig,
)
from content_gate.expiry import ExpiryGate
from content_gate.reachability import ReachabilityProbe
from content_gate.resolver import GateResolver
from content_gate.store import MemoryStateStore, StateValue
from tests.mocks import MockFetcher, MockRouteCheck, MockValidator

# A day safely after the default activation date.
AFTER_ACTIVATION = datetime(2026, 1, 15, 12, 0, 0)
BEFORE_ACTIVATION = datetime(2025, 10, 16, 23, 59, 59)


def make_config(
    descriptor_url: str = "https://descriptor.test/content.json",
    shard_prefix: str = "data",
    shard_count: int = 10,
    activation_date: str = "2025-10-17",
    state_file: Path = Path("./content_gate_state.yaml"),
    fetch_timeout: float = 5.0,
    validation_timeout: float = 5.0,
    startup_validation_timeout: float = 3.0,
    blocking_timeout: float = 5.0,
    log_level: str = "INFO",
) -> Config:
    """Create a Config with sensible test defaults."""
    return Config(
        descriptor=DescriptorConfig(
            url=descriptor_url,
            shard_prefix=shard_prefix,
            shard_count=shard_count,
        ),
        timeouts=TimeoutConfig(
            fetch=fetch_timeout,
            validation=validation_timeout,
            startup_validation=startup_validation_timeout,
            blocking=blocking_timeout,
        ),
        storage=StorageConfig(state_file=state_file),
        logging_config=LoggingConfig(level=log_level),
        activation_date=activation_date,
    )


@dataclass
class ResolverParts:
    """Collaborators of a resolver built by ``make_resolver``."""

    store: MemoryStateStore
    cache: ResolutionCache
    fetcher: MockFetcher
    validator: MockValidator
    route_check: MockRouteCheck
    probe: ReachabilityProbe


def make_resolver(
    candidate: str | None = None,
    valid: bool = True,
    initial: dict[str, StateValue] | None = None,
    now: datetime = AFTER_ACTIVATION,
    activation_date: str = "2025-10-17",
    reachable: bool = True,
    is_tablet: bool = False,
    fetch_delay: float = 0.0,
    validate_delay: float = 0.0,
    timeouts: TimeoutConfig | None = None,
) -> tuple[GateResolver, ResolverParts]:
    """Create a GateResolver wired to in-memory fakes.

    Returns:
        Tuple of (resolver, parts) so tests can inspect the fakes.
    """
    store = MemoryStateStore(initial)
    cache = ResolutionCache(store)
    fetcher = MockFetcher(candidate=candidate, delay=fetch_delay)
    validator = MockValidator(valid=valid, delay=validate_delay)
    route_check = MockRouteCheck(reachable=reachable)
    probe = ReachabilityProbe(cache, route_check=route_check)
    resolver = GateResolver(
        cache=cache,
        expiry_gate=ExpiryGate(activation_date),
        probe=probe,
        fetcher=fetcher,
        validator=validator,
        timeouts=timeouts,
        clock=lambda: now,
        is_tablet=lambda: is_tablet,
    )
    parts = ResolverParts(
        store=store,
        cache=cache,
        fetcher=fetcher,
        validator=validator,
        route_check=route_check,
        probe=probe,
    )
    return resolver, parts
