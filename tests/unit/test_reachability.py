"""Tests for the reachability probe."""

from __future__ import annotations

import socket
from unittest.mock import MagicMock, patch

from content_gate.cache import ResolutionCache
from content_gate.reachability import (
    ROUTE_PROBE_ADDRESS,
    ReachabilityProbe,
    RouteFlags,
    default_route_flags,
)
from content_gate.store import MemoryStateStore
from tests.mocks import MockRouteCheck


class TestRouteFlags:
    """Tests for RouteFlags.usable."""

    def test_reachable_is_usable(self) -> None:
        assert RouteFlags(reachable=True).usable is True

    def test_connection_required_is_not_usable(self) -> None:
        assert RouteFlags(reachable=True, connection_required=True).usable is False

    def test_unreachable_is_not_usable(self) -> None:
        assert RouteFlags(reachable=False).usable is False


class TestDefaultRouteFlags:
    """Tests for the OS route query."""

    def test_route_available(self) -> None:
        sock = MagicMock()
        sock.__enter__.return_value = sock
        sock.getsockname.return_value = ("192.168.1.20", 40000)
        with patch("content_gate.reachability.socket.socket", return_value=sock):
            flags = default_route_flags()

        sock.connect.assert_called_once_with(ROUTE_PROBE_ADDRESS)
        assert flags == RouteFlags(reachable=True, connection_required=False)

    def test_unspecified_local_address(self) -> None:
        sock = MagicMock()
        sock.__enter__.return_value = sock
        sock.getsockname.return_value = ("0.0.0.0", 0)
        with patch("content_gate.reachability.socket.socket", return_value=sock):
            flags = default_route_flags()

        assert flags.reachable is True
        assert flags.connection_required is True

    def test_no_route(self) -> None:
        sock = MagicMock()
        sock.__enter__.return_value = sock
        sock.connect.side_effect = OSError(101, "Network is unreachable")
        with patch("content_gate.reachability.socket.socket", return_value=sock):
            flags = default_route_flags()

        assert flags == RouteFlags(reachable=False)

    def test_uses_datagram_socket(self) -> None:
        sock = MagicMock()
        sock.__enter__.return_value = sock
        sock.getsockname.return_value = ("10.0.0.2", 1234)
        with patch("content_gate.reachability.socket.socket", return_value=sock) as factory:
            default_route_flags()

        factory.assert_called_once_with(socket.AF_INET, socket.SOCK_DGRAM)
        sock.send.assert_not_called()
        sock.sendto.assert_not_called()


class TestReachabilityProbe:
    """Tests for ReachabilityProbe.is_network_usable."""

    def test_first_call_reports_unusable(self, cache: ResolutionCache) -> None:
        route_check = MockRouteCheck(reachable=True)
        probe = ReachabilityProbe(cache, route_check=route_check)

        assert probe.is_network_usable() is False
        assert cache.get().first_launch_seen is True
        assert route_check.call_count == 0

    def test_second_call_confirms_network(self, cache: ResolutionCache) -> None:
        route_check = MockRouteCheck(reachable=True)
        probe = ReachabilityProbe(cache, route_check=route_check)

        probe.is_network_usable()
        assert probe.is_network_usable() is True
        assert cache.get().network_confirmed_once is True

    def test_confirmation_is_sticky(self, cache: ResolutionCache) -> None:
        """Once confirmed, the OS is not asked again."""
        route_check = MockRouteCheck(reachable=True)
        probe = ReachabilityProbe(cache, route_check=route_check)
        probe.is_network_usable()
        probe.is_network_usable()

        route_check.flags = RouteFlags(reachable=False)
        assert probe.is_network_usable() is True
        assert route_check.call_count == 1

    def test_unreachable_not_confirmed(self) -> None:
        cache = ResolutionCache(MemoryStateStore({"first_launch": True}))
        probe = ReachabilityProbe(cache, route_check=MockRouteCheck(reachable=False))

        assert probe.is_network_usable() is False
        assert cache.get().network_confirmed_once is False

    def test_connection_required_not_usable(self) -> None:
        cache = ResolutionCache(MemoryStateStore({"first_launch": True}))
        probe = ReachabilityProbe(
            cache,
            route_check=MockRouteCheck(reachable=True, connection_required=True),
        )

        assert probe.is_network_usable() is False

    def test_route_check_error_reports_unusable(self) -> None:
        cache = ResolutionCache(MemoryStateStore({"first_launch": True}))
        probe = ReachabilityProbe(cache, route_check=MagicMock(side_effect=RuntimeError("boom")))

        assert probe.is_network_usable() is False
        assert cache.get().network_confirmed_once is False

    def test_persisted_confirmation_survives_restart(self) -> None:
        store = MemoryStateStore()
        probe = ReachabilityProbe(ResolutionCache(store), route_check=MockRouteCheck())
        probe.is_network_usable()
        probe.is_network_usable()

        restarted = ReachabilityProbe(
            ResolutionCache(store), route_check=MockRouteCheck(reachable=False)
        )
        assert restarted.is_network_usable() is True
