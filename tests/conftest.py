"""Shared pytest fixtures for content gate tests."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from content_gate.cache import ResolutionCache
from content_gate.resolver import GateResolver
from content_gate.store import MemoryStateStore
from tests.helpers import ResolverParts, make_resolver


@pytest.fixture
def memory_store() -> MemoryStateStore:
    """Empty in-memory state store."""
    return MemoryStateStore()


@pytest.fixture
def cache(memory_store: MemoryStateStore) -> ResolutionCache:
    """Resolution cache over an empty in-memory store."""
    return ResolutionCache(memory_store)


@pytest.fixture
def resolver_factory() -> Iterator:
    """Factory for resolvers that are closed at teardown.

    Usage::

        def test_example(resolver_factory):
            resolver, parts = resolver_factory(candidate="https://x.test/ok")
    """
    created: list[GateResolver] = []

    def _factory(**kwargs) -> tuple[GateResolver, ResolverParts]:
        resolver, parts = make_resolver(**kwargs)
        created.append(resolver)
        return resolver, parts

    yield _factory

    for resolver in created:
        resolver.close()
