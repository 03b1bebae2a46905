"""Persistent resolution cache for the content gate.

``ResolutionCache`` is the only component allowed to mutate the persisted
``GateState``.  Reads return an immutable snapshot and never take a lock;
every mutation is serialized by a single ``threading.Lock`` and flushed to
the ``StateStore`` before the lock is released.

Persisted entries:

- ``health_content_path``: the sticky resolved URL. The host reads this
  entry to decide which top-level view to show.
- ``health_guide_location``: write-only mirror of the resolved URL.
- ``first_launch``: the reachability probe has run at least once.
- ``network_available``: the network has been confirmed usable once.
- ``health_guide_update_checked``: a fetch+validate round trip succeeded.
- ``health_guide_up_to_date``: the startup check should not look for content.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass, replace

from content_gate.errors import StateStoreError
from content_gate.logging import get_logger
from content_gate.store import StateStore, StateValue

logger = get_logger(__name__)

KEY_CONTENT_PATH = "health_content_path"
KEY_CONTENT_LOCATION = "health_guide_location"
KEY_FIRST_LAUNCH = "first_launch"
KEY_NETWORK_AVAILABLE = "network_available"
KEY_UPDATE_CHECKED = "health_guide_update_checked"
KEY_UP_TO_DATE = "health_guide_up_to_date"


@dataclass(frozen=True)
class GateState:
    """Snapshot of the persisted gate state.

    Attributes:
        resolved_url: Sticky resolved content URL, or None.
        first_launch_seen: The reachability probe has run before.
        network_confirmed_once: The network was confirmed usable once.
        update_checked: A fetch+validate round trip has committed a URL.
        up_to_date_no_content: The startup check should not look for content.
    """

    resolved_url: str | None = None
    first_launch_seen: bool = False
    network_confirmed_once: bool = False
    update_checked: bool = False
    up_to_date_no_content: bool = False

    @classmethod
    def from_entries(cls, entries: Mapping[str, StateValue]) -> GateState:
        """Build a snapshot from flat store entries.

        Missing or mistyped entries fall back to their defaults; an empty
        content path counts as absent.
        """

        def flag(key: str) -> bool:
            value = entries.get(key, False)
            return value if isinstance(value, bool) else False

        path = entries.get(KEY_CONTENT_PATH)
        return cls(
            resolved_url=path if isinstance(path, str) and path else None,
            first_launch_seen=flag(KEY_FIRST_LAUNCH),
            network_confirmed_once=flag(KEY_NETWORK_AVAILABLE),
            update_checked=flag(KEY_UPDATE_CHECKED),
            up_to_date_no_content=flag(KEY_UP_TO_DATE),
        )

    def to_entries(self) -> dict[str, StateValue]:
        """Convert to flat store entries."""
        entries: dict[str, StateValue] = {
            KEY_FIRST_LAUNCH: self.first_launch_seen,
            KEY_NETWORK_AVAILABLE: self.network_confirmed_once,
            KEY_UPDATE_CHECKED: self.update_checked,
            KEY_UP_TO_DATE: self.up_to_date_no_content,
        }
        if self.resolved_url:
            entries[KEY_CONTENT_PATH] = self.resolved_url
            entries[KEY_CONTENT_LOCATION] = self.resolved_url
        return entries


class ResolutionCache:
    """Thread-safe owner of the persisted ``GateState``.

    Thread-safety contract:
        ``get()`` and ``has_sticky()`` read a reference to the current
        immutable snapshot and need no lock.  ``commit()``,
        ``mark_first_launch_seen()`` and ``mark_network_confirmed()`` hold
        ``_lock`` for the read-modify-write and the flush, so concurrent
        resolution attempts cannot interleave partial writes.

    Persistence failures are logged and absorbed: the in-memory snapshot
    stays authoritative for the rest of the process and the next successful
    mutation writes the full state again.

    Args:
        store: Backend holding the flat key-value entries.
    """

    def __init__(self, store: StateStore) -> None:
        self._store = store
        self._lock = threading.Lock()
        self._extra_entries: dict[str, StateValue] = {}
        self._state = self._load()

    def _load(self) -> GateState:
        try:
            entries = self._store.load()
        except StateStoreError as e:
            logger.warning("[CONTENT_GATE] Could not load gate state, using defaults: %s", e)
            return GateState()
        known = {
            KEY_CONTENT_PATH,
            KEY_CONTENT_LOCATION,
            KEY_FIRST_LAUNCH,
            KEY_NETWORK_AVAILABLE,
            KEY_UPDATE_CHECKED,
            KEY_UP_TO_DATE,
        }
        # Entries owned by the host application share the store; keep them.
        self._extra_entries = {k: v for k, v in entries.items() if k not in known}
        state = GateState.from_entries(entries)
        logger.debug(
            "Loaded gate state: %s",
            state,
            extra={"diagnostic_tag": "cache"},
        )
        return state

    def _flush(self, state: GateState) -> None:
        """Persist *state*. Must be called with ``_lock`` held."""
        entries = dict(self._extra_entries)
        entries.update(state.to_entries())
        try:
            self._store.save(entries)
        except StateStoreError as e:
            logger.warning("[CONTENT_GATE] Could not persist gate state: %s", e)

    def get(self) -> GateState:
        """Return the current state snapshot."""
        return self._state

    def has_sticky(self) -> str | None:
        """Return the sticky resolved URL, or None if nothing is cached."""
        return self._state.resolved_url

    def commit(self, url: str) -> str:
        """Record *url* as the resolved content URL and persist it.

        Committing the URL that is already cached is a no-op.  If a
        different URL was committed first it is kept: a sticky resolution
        is never replaced.

        Args:
            url: Validated content URL.

        Returns:
            The URL that is cached after the call.
        """
        with self._lock:
            current = self._state
            if current.resolved_url:
                if current.resolved_url != url:
                    logger.info(
                        "[CONTENT_GATE] Keeping previously committed URL, discarding %s",
                        url,
                        extra={"url": current.resolved_url},
                    )
                return current.resolved_url

            updated = replace(current, resolved_url=url, update_checked=True)
            self._state = updated
            self._flush(updated)
            logger.info("[CONTENT_GATE] Committed resolved content URL", extra={"url": url})
            return url

    def mark_first_launch_seen(self) -> None:
        """Persist that the reachability probe has run once."""
        self._set_flag("first_launch_seen")

    def mark_network_confirmed(self) -> None:
        """Persist that the network was confirmed usable. Monotonic."""
        self._set_flag("network_confirmed_once")

    def _set_flag(self, name: str) -> None:
        with self._lock:
            if getattr(self._state, name):
                return
            updated = replace(self._state, **{name: True})
            self._state = updated
            self._flush(updated)
            logger.debug(
                "Set %s",
                name,
                extra={"diagnostic_tag": "cache"},
            )
