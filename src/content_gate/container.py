"""Dependency Injection container for the content gate.

This module wires the gate components with the dependency-injector library,
replacing process-wide shared instances with explicit providers:

- Testability: the network collaborators can be swapped as a group
- Lifecycle: every component is a container-managed singleton

Usage:
    # Production setup
    container = create_container()
    resolver = container.resolver()

    # Test setup with fakes
    container = create_container(config)
    container.network.descriptor_fetcher.override(providers.Object(fake_fetcher))
    resolver = container.resolver()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from dependency_injector import containers, providers

if TYPE_CHECKING:
    from content_gate.cache import ResolutionCache
    from content_gate.config import Config
    from content_gate.descriptor import DescriptorFetcher
    from content_gate.expiry import ExpiryGate
    from content_gate.reachability import ReachabilityProbe
    from content_gate.resolver import GateResolver
    from content_gate.store import StateStore
    from content_gate.validator import PathValidator


class NetworkContainer(containers.DeclarativeContainer):
    """Container for the HTTP collaborators (descriptor fetch, validation).

    Grouping them lets tests replace the whole network side at once.
    """

    config: providers.Dependency[Config] = providers.Dependency()

    descriptor_fetcher: providers.Dependency[DescriptorFetcher] = providers.Dependency()
    path_validator: providers.Dependency[PathValidator] = providers.Dependency()


class ContentGateContainer(containers.DeclarativeContainer):
    """Root container for the content gate.

    ContentGateContainer
    ├── config (Config)
    ├── state_store (StateStore)
    ├── cache (ResolutionCache)
    ├── expiry_gate (ExpiryGate)
    ├── reachability_probe (ReachabilityProbe)
    ├── network (NetworkContainer)
    │   ├── descriptor_fetcher
    │   └── path_validator
    └── resolver (GateResolver)
    """

    config: providers.Dependency[Config] = providers.Dependency()

    network = providers.Container(
        NetworkContainer,
        config=config,
    )

    state_store: providers.Dependency[StateStore] = providers.Dependency()
    cache: providers.Dependency[ResolutionCache] = providers.Dependency()
    expiry_gate: providers.Dependency[ExpiryGate] = providers.Dependency()
    reachability_probe: providers.Dependency[ReachabilityProbe] = providers.Dependency()
    resolver: providers.Dependency[GateResolver] = providers.Dependency()


def create_state_store(config: Config) -> StateStore:
    """Create the YAML-backed state store.

    Args:
        config: Gate configuration.

    Returns:
        YamlStateStore at the configured state file.
    """
    from content_gate.store import YamlStateStore

    return YamlStateStore(
        config.storage.state_file,
        lock_timeout_seconds=config.storage.lock_timeout,
    )


def create_cache(state_store: StateStore) -> ResolutionCache:
    """Create the resolution cache over a state store."""
    from content_gate.cache import ResolutionCache

    return ResolutionCache(state_store)


def create_expiry_gate(config: Config) -> ExpiryGate:
    """Create the activation-date gate."""
    from content_gate.expiry import ExpiryGate

    return ExpiryGate(config.activation_date)


def create_reachability_probe(cache: ResolutionCache) -> ReachabilityProbe:
    """Create the reachability probe with the OS route check."""
    from content_gate.reachability import ReachabilityProbe

    return ReachabilityProbe(cache)


def create_descriptor_fetcher(config: Config) -> DescriptorFetcher:
    """Create the descriptor fetcher.

    Args:
        config: Gate configuration.

    Returns:
        DescriptorFetcher for the configured endpoint and shard key space.
    """
    from content_gate.descriptor import DescriptorFetcher

    return DescriptorFetcher(
        endpoint=config.descriptor.url,
        shard_prefix=config.descriptor.shard_prefix,
        shard_count=config.descriptor.shard_count,
        timeout=config.timeouts.fetch,
    )


def create_path_validator(config: Config) -> PathValidator:
    """Create the HEAD validator."""
    from content_gate.validator import PathValidator

    return PathValidator(timeout=config.timeouts.validation)


def create_gate_resolver(
    config: Config,
    cache: ResolutionCache,
    expiry_gate: ExpiryGate,
    reachability_probe: ReachabilityProbe,
    descriptor_fetcher: DescriptorFetcher,
    path_validator: PathValidator,
) -> GateResolver:
    """Create the gate resolver with all collaborators injected."""
    from content_gate.resolver import GateResolver

    return GateResolver(
        cache=cache,
        expiry_gate=expiry_gate,
        probe=reachability_probe,
        fetcher=descriptor_fetcher,
        validator=path_validator,
        timeouts=config.timeouts,
    )


def create_container(config: Config | None = None) -> ContentGateContainer:
    """Create and configure the content gate container.

    Args:
        config: Optional configuration. If not provided, loads from environment.

    Returns:
        Fully configured ContentGateContainer.
    """
    from content_gate.config import load_config

    if config is None:
        config = load_config()

    container = ContentGateContainer()
    container.config.override(providers.Object(config))

    container.network.descriptor_fetcher.override(
        providers.Singleton(create_descriptor_fetcher, config)
    )
    container.network.path_validator.override(providers.Singleton(create_path_validator, config))

    container.state_store.override(providers.Singleton(create_state_store, config))
    container.cache.override(providers.Singleton(create_cache, container.state_store))
    container.expiry_gate.override(providers.Singleton(create_expiry_gate, config))
    container.reachability_probe.override(
        providers.Singleton(create_reachability_probe, container.cache)
    )
    container.resolver.override(
        providers.Singleton(
            create_gate_resolver,
            config=container.config,
            cache=container.cache,
            expiry_gate=container.expiry_gate,
            reachability_probe=container.reachability_probe,
            descriptor_fetcher=container.network.descriptor_fetcher,
            path_validator=container.network.path_validator,
        )
    )

    return container


__all__ = [
    "ContentGateContainer",
    "NetworkContainer",
    "create_container",
    "create_state_store",
    "create_cache",
    "create_expiry_gate",
    "create_reachability_probe",
    "create_descriptor_fetcher",
    "create_path_validator",
    "create_gate_resolver",
]
