"""Configuration loading from environment variables."""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

# Valid log levels
VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

# Activation dates are calendar days, no time component.
ACTIVATION_DATE_FORMAT = "%Y-%m-%d"

DEFAULT_ACTIVATION_DATE = "2025-10-17"
DEFAULT_SHARD_PREFIX = "data"
DEFAULT_SHARD_COUNT = 10
DEFAULT_STATE_FILE = Path("./content_gate_state.yaml")


@dataclass(frozen=True)
class DescriptorConfig:
    """Remote descriptor endpoint and shard key space.

    Attributes:
        url: Descriptor endpoint. Empty means no candidate can ever be fetched.
        shard_prefix: Prefix of every shard key (``data`` -> ``data1``..``data10``).
        shard_count: Number of shard keys, numbered from 1.
    """

    url: str = ""
    shard_prefix: str = DEFAULT_SHARD_PREFIX
    shard_count: int = DEFAULT_SHARD_COUNT

    @property
    def configured(self) -> bool:
        """Check if a descriptor endpoint is configured."""
        return bool(self.url)


@dataclass(frozen=True)
class TimeoutConfig:
    """Deadlines, in seconds, for each suspension point.

    Attributes:
        fetch: Deadline for the descriptor GET.
        validation: Deadline for the HEAD check on the opportunistic path.
        startup_validation: Deadline for the HEAD check on the startup path.
        blocking: Wall-clock limit for ``resolve_blocking``.
    """

    fetch: float = 5.0
    validation: float = 5.0
    startup_validation: float = 3.0
    blocking: float = 5.0


@dataclass(frozen=True)
class StorageConfig:
    """Persistence of the gate state.

    Attributes:
        state_file: YAML file holding the flat key-value state.
        lock_timeout: Seconds to wait for the advisory file lock on writes.
    """

    state_file: Path = DEFAULT_STATE_FILE
    lock_timeout: float = 5.0


@dataclass(frozen=True)
class LoggingConfig:
    """Logging options.

    Attributes:
        level: Log level name.
        json: Emit JSON log lines instead of the structured text format.
        diagnostic_tags: Comma-separated debug tags to enable.
    """

    level: str = "INFO"
    json: bool = False
    diagnostic_tags: str = ""


@dataclass(frozen=True)
class Config:
    """Content gate configuration loaded from environment.

    This dataclass is frozen (immutable) to prevent accidental modification
    after creation.
    """

    descriptor: DescriptorConfig = field(default_factory=DescriptorConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging_config: LoggingConfig = field(default_factory=LoggingConfig)
    activation_date: str = DEFAULT_ACTIVATION_DATE


def _parse_positive_int(value: str, name: str, default: int) -> int:
    """Parse a string as a positive integer with validation.

    Args:
        value: The string value to parse.
        name: The name of the setting (for error messages).
        default: The default value to use if parsing fails.

    Returns:
        The parsed positive integer, or the default if invalid.

    Logs a warning if the value is invalid.
    """
    try:
        parsed = int(value)
        if parsed <= 0:
            logging.warning(
                "Invalid %s: %d is not positive, using default %d",
                name,
                parsed,
                default,
            )
            return default
        return parsed
    except ValueError:
        logging.warning(
            "Invalid %s: '%s' is not a valid integer, using default %d",
            name,
            value,
            default,
        )
        return default


def _parse_positive_float(value: str, name: str, default: float) -> float:
    """Parse a string as a strictly positive float with validation.

    Zero, negative and non-finite values (``inf``, ``nan``) are rejected:
    every value parsed here ends up as a wait deadline.

    Args:
        value: The string value to parse.
        name: The name of the setting (for error messages).
        default: The default value to use if parsing fails.

    Returns:
        The parsed positive float, or the default if invalid.
    """
    try:
        parsed = float(value)
        if not math.isfinite(parsed):
            logging.warning(
                "Invalid %s: %s is not finite, using default %f",
                name,
                value.strip(),
                default,
            )
            return default
        if parsed <= 0:
            logging.warning(
                "Invalid %s: %f is not positive, using default %f",
                name,
                parsed,
                default,
            )
            return default
        return parsed
    except ValueError:
        logging.warning(
            "Invalid %s: '%s' is not a valid number, using default %f",
            name,
            value,
            default,
        )
        return default


def _parse_bool(value: str) -> bool:
    """Parse a string as a boolean.

    Args:
        value: The string value to parse.

    Returns:
        True if value is "true", "1", or "yes" (case-insensitive), False otherwise.
    """
    return value.lower() in ("true", "1", "yes")


def _validate_log_level(value: str, default: str = "INFO") -> str:
    """Validate and normalize a log level string.

    Args:
        value: The log level string to validate.
        default: The default value to use if invalid.

    Returns:
        The validated log level (uppercase), or the default if invalid.
    """
    normalized = value.upper()
    if normalized not in VALID_LOG_LEVELS:
        logging.warning(
            "Invalid CONTENT_GATE_LOG_LEVEL: '%s' is not valid, using default '%s'. "
            "Valid values: %s",
            value,
            default,
            ", ".join(sorted(VALID_LOG_LEVELS)),
        )
        return default
    return normalized


def _validate_activation_date(value: str) -> str:
    """Check the activation date format without replacing it.

    A malformed date is kept as-is: the expiry gate treats it as "still
    locked", which is safer than silently substituting the default.

    Args:
        value: The configured activation date.

    Returns:
        The stripped value.
    """
    value = value.strip()
    try:
        datetime.strptime(value, ACTIVATION_DATE_FORMAT)
    except ValueError:
        logging.warning(
            "Invalid CONTENT_GATE_ACTIVATION_DATE: '%s' does not match %s; "
            "remote content will stay locked",
            value,
            ACTIVATION_DATE_FORMAT,
        )
    return value


def _validate_shard_prefix(value: str, default: str = DEFAULT_SHARD_PREFIX) -> str:
    """Validate the shard key prefix.

    Args:
        value: The prefix to validate.
        default: Prefix used when the value is empty.

    Returns:
        The stripped prefix, or the default if empty.
    """
    value = value.strip()
    if not value:
        logging.warning(
            "Invalid CONTENT_GATE_SHARD_PREFIX: empty prefix, using default '%s'",
            default,
        )
        return default
    return value


def load_config(env_file: Path | None = None) -> Config:
    """Load configuration from environment variables.

    Args:
        env_file: Optional path to .env file. If not provided,
                  looks for .env in current directory.

    Returns:
        Config object with loaded values.

    Invalid values never raise; a warning is logged and the default is used.
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    descriptor = DescriptorConfig(
        url=os.getenv("CONTENT_GATE_DESCRIPTOR_URL", "").strip(),
        shard_prefix=_validate_shard_prefix(
            os.getenv("CONTENT_GATE_SHARD_PREFIX", DEFAULT_SHARD_PREFIX)
        ),
        shard_count=_parse_positive_int(
            os.getenv("CONTENT_GATE_SHARD_COUNT", str(DEFAULT_SHARD_COUNT)),
            "CONTENT_GATE_SHARD_COUNT",
            DEFAULT_SHARD_COUNT,
        ),
    )

    timeouts = TimeoutConfig(
        fetch=_parse_positive_float(
            os.getenv("CONTENT_GATE_FETCH_TIMEOUT", "5.0"),
            "CONTENT_GATE_FETCH_TIMEOUT",
            5.0,
        ),
        validation=_parse_positive_float(
            os.getenv("CONTENT_GATE_VALIDATION_TIMEOUT", "5.0"),
            "CONTENT_GATE_VALIDATION_TIMEOUT",
            5.0,
        ),
        startup_validation=_parse_positive_float(
            os.getenv("CONTENT_GATE_STARTUP_VALIDATION_TIMEOUT", "3.0"),
            "CONTENT_GATE_STARTUP_VALIDATION_TIMEOUT",
            3.0,
        ),
        blocking=_parse_positive_float(
            os.getenv("CONTENT_GATE_BLOCKING_TIMEOUT", "5.0"),
            "CONTENT_GATE_BLOCKING_TIMEOUT",
            5.0,
        ),
    )

    state_file_str = os.getenv("CONTENT_GATE_STATE_FILE", "")
    storage = StorageConfig(
        state_file=Path(state_file_str).expanduser() if state_file_str else DEFAULT_STATE_FILE,
        lock_timeout=_parse_positive_float(
            os.getenv("CONTENT_GATE_LOCK_TIMEOUT", "5.0"),
            "CONTENT_GATE_LOCK_TIMEOUT",
            5.0,
        ),
    )

    logging_config = LoggingConfig(
        level=_validate_log_level(os.getenv("CONTENT_GATE_LOG_LEVEL", "INFO")),
        json=_parse_bool(os.getenv("CONTENT_GATE_LOG_JSON", "")),
        diagnostic_tags=os.getenv("CONTENT_GATE_DIAGNOSTIC_TAGS", ""),
    )

    return Config(
        descriptor=descriptor,
        timeouts=timeouts,
        storage=storage,
        logging_config=logging_config,
        activation_date=_validate_activation_date(
            os.getenv("CONTENT_GATE_ACTIVATION_DATE", DEFAULT_ACTIVATION_DATE)
        ),
    )
