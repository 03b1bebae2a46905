"""Exception types used inside the content gate.

None of these escape the public resolver API: each component catches them
at its boundary and degrades to "no candidate" / "native UI".
"""

from __future__ import annotations


class ContentGateError(Exception):
    """Base class for content gate errors."""

    pass


class StateStoreError(ContentGateError):
    """Raised when the persisted gate state cannot be read or written."""

    pass


class StateLockTimeoutError(StateStoreError):
    """Raised when the state file lock cannot be acquired in time."""

    pass
