"""Network reachability probe.

The probe distrusts the very first call in the persisted history (the
network stack may still be warming up) and, once the network has been
confirmed usable, keeps answering yes without asking the OS again.

The OS-level check asks the kernel to pick a route toward a public address
by connecting an unbound UDP socket.  ``connect`` on a datagram socket sends
nothing; it only resolves the route and the local address that would be
used, which is the information a default-route reachability query gives.
"""

from __future__ import annotations

import socket
from collections.abc import Callable
from dataclasses import dataclass

from content_gate.cache import ResolutionCache
from content_gate.logging import get_logger

logger = get_logger(__name__)

# Any routable public address works; nothing is sent to it.
ROUTE_PROBE_ADDRESS: tuple[str, int] = ("8.8.8.8", 53)

_UNSPECIFIED_ADDRESSES = frozenset({"0.0.0.0", ""})


@dataclass(frozen=True)
class RouteFlags:
    """Result of an OS-level reachability query.

    Attributes:
        reachable: The kernel has a route toward the public internet.
        connection_required: A route exists but no interface address is
            assigned yet, so traffic would need a connection step first.
    """

    reachable: bool
    connection_required: bool = False

    @property
    def usable(self) -> bool:
        return self.reachable and not self.connection_required


def default_route_flags() -> RouteFlags:
    """Query the OS for a default route.

    Returns:
        ``RouteFlags`` for the default route. Any socket error means the
        route is not reachable.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(ROUTE_PROBE_ADDRESS)
            local_address = sock.getsockname()[0]
    except OSError as e:
        logger.debug(
            "Default route query failed: %s",
            e,
            extra={"diagnostic_tag": "network"},
        )
        return RouteFlags(reachable=False)

    return RouteFlags(
        reachable=True,
        connection_required=local_address in _UNSPECIFIED_ADDRESSES,
    )


class ReachabilityProbe:
    """Answers "is the network currently usable?".

    Args:
        cache: Resolution cache holding the first-launch and confirmation flags.
        route_check: Callable returning ``RouteFlags``. Defaults to
            ``default_route_flags``; tests inject a fake.
    """

    def __init__(
        self,
        cache: ResolutionCache,
        route_check: Callable[[], RouteFlags] | None = None,
    ) -> None:
        self._cache = cache
        self._route_check: Callable[[], RouteFlags] = route_check or default_route_flags

    def is_network_usable(self) -> bool:
        """Return whether the network may be used for resolution.

        Never raises: a failing route check is reported as not usable.
        """
        state = self._cache.get()

        if not state.first_launch_seen:
            self._cache.mark_first_launch_seen()
            logger.debug(
                "First launch: not trusting reachability yet",
                extra={"diagnostic_tag": "network"},
            )
            return False

        if state.network_confirmed_once:
            return True

        try:
            flags = self._route_check()
        except Exception as e:
            # INTENTIONAL BROAD CATCH: reachability must never crash resolution.
            logger.warning(
                "[CONTENT_GATE] Reachability check failed: %s: %s",
                type(e).__name__,
                e,
            )
            return False

        if flags.usable:
            self._cache.mark_network_confirmed()
            logger.info("[CONTENT_GATE] Network confirmed usable")
            return True

        logger.debug(
            "Network not usable: %s",
            flags,
            extra={"diagnostic_tag": "network"},
        )
        return False
