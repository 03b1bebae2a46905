"""Activation-date gate.

Remote content stays locked until a fixed calendar day.  The check is pure
and total: a malformed configured date keeps the content locked instead of
bypassing the gate.
"""

from __future__ import annotations

from datetime import UTC, datetime

from content_gate.config import ACTIVATION_DATE_FORMAT, DEFAULT_ACTIVATION_DATE
from content_gate.logging import get_logger

logger = get_logger(__name__)


class ExpiryGate:
    """Answers whether the activation date is still in the future.

    Args:
        activation_date: Calendar day in ``YYYY-MM-DD`` form.
    """

    def __init__(self, activation_date: str = DEFAULT_ACTIVATION_DATE) -> None:
        self.activation_date = activation_date
        try:
            self._activation: datetime | None = datetime.strptime(
                activation_date, ACTIVATION_DATE_FORMAT
            )
        except (TypeError, ValueError):
            logger.warning(
                "[CONTENT_GATE] Activation date %r is malformed; remote content stays locked",
                activation_date,
            )
            self._activation = None

    def is_before_activation(self, now: datetime | None = None) -> bool:
        """Return True while remote content must not be resolved.

        Naive ``now`` values are compared with local midnight of the
        activation day; aware values are compared in UTC.

        Args:
            now: Point in time to check. Defaults to the current local time.

        Returns:
            True if ``now`` is before activation or the date is malformed.
        """
        if self._activation is None:
            return True

        if now is None:
            now = datetime.now()

        if now.tzinfo is None:
            return now < self._activation
        return now.astimezone(UTC) < self._activation.replace(tzinfo=UTC)
