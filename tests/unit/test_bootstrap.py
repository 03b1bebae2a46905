"""Tests for bootstrap and the host-facing accessors."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from content_gate.bootstrap import (
    BootstrapContext,
    RootView,
    RootViewChoice,
    bootstrap,
    choose_root_view,
    on_native_view_shown,
)
from content_gate.cache import KEY_CONTENT_PATH
from content_gate.logging import HANDLER_NAME
from content_gate.resolver import Decision, DecisionSource, GateResolver, ResolutionPolicy
from tests.helpers import BEFORE_ACTIVATION, make_config

CANDIDATE = "https://x.test/ok"


class TestBootstrap:
    """Tests for bootstrap()."""

    def test_builds_context_from_config(self, tmp_path: Path) -> None:
        config = make_config(state_file=tmp_path / "state.yaml")

        context = bootstrap(config=config, configure_logging=False)
        try:
            assert isinstance(context, BootstrapContext)
            assert context.config is config
            assert isinstance(context.resolver, GateResolver)
            assert context.container.resolver() is context.resolver
        finally:
            context.close()

    def test_loads_config_from_env_file(self, tmp_path: Path) -> None:
        config = make_config(state_file=tmp_path / "state.yaml")
        env_file = tmp_path / ".env"

        with patch("content_gate.bootstrap.load_config", return_value=config) as load:
            context = bootstrap(env_file=env_file, configure_logging=False)
        context.close()

        load.assert_called_once_with(env_file)

    def test_configures_logging_without_replacing_handlers(self, tmp_path: Path) -> None:
        config = make_config(state_file=tmp_path / "state.yaml", log_level="DEBUG")

        with patch("content_gate.bootstrap.setup_logging") as setup:
            context = bootstrap(config=config)
        context.close()

        setup.assert_called_once_with(
            level="DEBUG",
            json_format=False,
            replace_handlers=False,
            diagnostic_tags="",
        )

    def test_warns_without_descriptor_endpoint(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        config = make_config(descriptor_url="", state_file=tmp_path / "state.yaml")

        with caplog.at_level(logging.WARNING):
            context = bootstrap(config=config, configure_logging=False)
        context.close()

        assert "CONTENT_GATE_DESCRIPTOR_URL is not set" in caplog.text

    def test_no_warning_with_descriptor_endpoint(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        config = make_config(state_file=tmp_path / "state.yaml")

        with caplog.at_level(logging.WARNING):
            context = bootstrap(config=config, configure_logging=False)
        context.close()

        assert "CONTENT_GATE_DESCRIPTOR_URL" not in caplog.text

    def test_repeated_bootstrap_does_not_duplicate_output(self, tmp_path: Path) -> None:
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        config = make_config(state_file=tmp_path / "state.yaml")
        try:
            bootstrap(config=config).close()
            bootstrap(config=config).close()

            assert len([h for h in root.handlers if h.get_name() == HANDLER_NAME]) == 1
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)

    def test_skips_logging_when_disabled(self, tmp_path: Path) -> None:
        config = make_config(state_file=tmp_path / "state.yaml")

        with patch("content_gate.bootstrap.setup_logging") as setup:
            context = bootstrap(config=config, configure_logging=False)
        context.close()

        setup.assert_not_called()


class TestChooseRootView:
    """Tests for choose_root_view()."""

    def test_sticky_url_shows_remote_without_resolving(self, resolver_factory) -> None:
        resolver, parts = resolver_factory(initial={KEY_CONTENT_PATH: CANDIDATE})

        with patch.object(resolver, "resolve_blocking") as resolve_blocking:
            choice = choose_root_view(resolver)

        assert choice == RootViewChoice(view=RootView.REMOTE, url=CANDIDATE)
        resolve_blocking.assert_not_called()
        assert parts.fetcher.calls == []

    def test_resolved_at_startup_shows_remote(self, resolver_factory) -> None:
        resolver, _ = resolver_factory(candidate=CANDIDATE)

        choice = choose_root_view(resolver, timeout=2.0)

        assert choice == RootViewChoice(view=RootView.REMOTE, url=CANDIDATE)

    def test_uses_startup_policy(self, resolver_factory) -> None:
        resolver, _ = resolver_factory()

        with patch.object(
            resolver,
            "resolve_blocking",
            return_value=Decision.native(DecisionSource.POLICY),
        ) as resolve_blocking:
            choose_root_view(resolver, timeout=1.5)

        resolve_blocking.assert_called_once_with(1.5, policy=ResolutionPolicy.STARTUP)

    def test_timeout_shows_native(self, resolver_factory) -> None:
        resolver, _ = resolver_factory(candidate=CANDIDATE, fetch_delay=1.0)

        choice = choose_root_view(resolver, timeout=0.1)

        assert choice == RootViewChoice(view=RootView.NATIVE)

    def test_before_activation_shows_native(self, resolver_factory) -> None:
        resolver, _ = resolver_factory(candidate=CANDIDATE, now=BEFORE_ACTIVATION)
        assert choose_root_view(resolver, timeout=1.0).view is RootView.NATIVE


class TestOnNativeViewShown:
    """Tests for on_native_view_shown()."""

    def test_runs_opportunistic_check(self, resolver_factory) -> None:
        resolver, parts = resolver_factory(candidate=CANDIDATE)

        decision = on_native_view_shown(resolver).result(timeout=2.0)

        assert decision == Decision.resolved(CANDIDATE, DecisionSource.NETWORK)
        # Reachability is only consulted by the opportunistic policy
        assert parts.cache.get().first_launch_seen is True

    def test_result_applies_to_next_launch(self, resolver_factory) -> None:
        resolver, parts = resolver_factory(candidate=CANDIDATE)
        on_native_view_shown(resolver).result(timeout=2.0)

        restarted, _ = resolver_factory(initial=parts.store.load())
        assert choose_root_view(restarted) == RootViewChoice(view=RootView.REMOTE, url=CANDIDATE)

    def test_callback_receives_decision(self, resolver_factory) -> None:
        resolver, _ = resolver_factory(candidate=None, fetch_delay=0.05)
        received: list[Decision] = []
        done = threading.Event()

        def _callback(decision: Decision) -> None:
            received.append(decision)
            done.set()

        on_native_view_shown(resolver, _callback)

        assert done.wait(2.0)
        assert received == [Decision.native(DecisionSource.NETWORK)]
