"""Bootstrap and host-facing accessors for the content gate.

This module is the composition root used by a host application:

- ``bootstrap()`` loads configuration, configures logging and builds the
  resolver from the DI container.
- ``choose_root_view()`` makes the one blocking startup decision: show the
  sticky URL if there is one, otherwise run the startup resolution with its
  timeout and show remote content only if a URL is cached afterwards.
- ``on_native_view_shown()`` fires the opportunistic background check once
  the native UI is on screen; its result only matters to the next launch.
"""

from __future__ import annotations

import concurrent.futures
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from content_gate.config import Config, load_config
from content_gate.container import ContentGateContainer, create_container
from content_gate.logging import get_logger, setup_logging
from content_gate.resolver import Decision, GateResolver, ResolutionPolicy

logger = get_logger(__name__)


class RootView(Enum):
    """Top-level view the host renders."""

    REMOTE = "remote"
    NATIVE = "native"


@dataclass(frozen=True)
class RootViewChoice:
    """Startup view decision.

    Attributes:
        view: Which top-level view to render.
        url: Content URL when ``view`` is ``REMOTE``.
    """

    view: RootView
    url: str | None = None


class BootstrapContext:
    """Holds the bootstrapped configuration, container and resolver."""

    def __init__(
        self,
        config: Config,
        container: ContentGateContainer,
        resolver: GateResolver,
    ) -> None:
        self.config = config
        self.container = container
        self.resolver = resolver

    def close(self) -> None:
        """Stop the resolver's background loop."""
        self.resolver.close()


def bootstrap(
    env_file: Path | None = None,
    config: Config | None = None,
    configure_logging: bool = True,
) -> BootstrapContext:
    """Build the content gate for a host process.

    Args:
        env_file: Optional .env file for ``load_config``.
        config: Pre-built configuration; skips environment loading.
        configure_logging: If False, leave the host's logging setup alone.

    Returns:
        BootstrapContext with a ready resolver.
    """
    if config is None:
        config = load_config(env_file)

    if configure_logging:
        setup_logging(
            level=config.logging_config.level,
            json_format=config.logging_config.json,
            replace_handlers=False,
            diagnostic_tags=config.logging_config.diagnostic_tags,
        )

    if not config.descriptor.configured:
        logger.warning(
            "[CONTENT_GATE] CONTENT_GATE_DESCRIPTOR_URL is not set; "
            "only a previously resolved URL can be shown"
        )

    container = create_container(config)
    resolver = container.resolver()
    logger.debug(
        "Content gate bootstrapped (state file %s)",
        config.storage.state_file,
        extra={"diagnostic_tag": "resolver"},
    )
    return BootstrapContext(config=config, container=container, resolver=resolver)


def choose_root_view(resolver: GateResolver, timeout: float | None = None) -> RootViewChoice:
    """Decide the top-level view before the UI is composed.

    Args:
        resolver: The gate resolver.
        timeout: Blocking timeout; defaults to the resolver's configured value.

    Returns:
        ``REMOTE`` with the URL to display, or ``NATIVE``.
    """
    url = resolver.material_source()
    if url:
        return RootViewChoice(view=RootView.REMOTE, url=url)

    decision = resolver.resolve_blocking(timeout, policy=ResolutionPolicy.STARTUP)
    if decision.is_remote:
        url = resolver.material_source() or decision.url
        if url:
            return RootViewChoice(view=RootView.REMOTE, url=url)

    return RootViewChoice(view=RootView.NATIVE)


def on_native_view_shown(
    resolver: GateResolver,
    callback: Callable[[Decision], None] | None = None,
) -> concurrent.futures.Future[Decision]:
    """Start the opportunistic background check.

    Args:
        resolver: The gate resolver.
        callback: Optional callable receiving the decision.

    Returns:
        Future completed with the decision.
    """
    return resolver.resolve_async(ResolutionPolicy.OPPORTUNISTIC, callback)
