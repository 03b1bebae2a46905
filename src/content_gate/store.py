"""Flat key-value persistence for the gate state.

The gate keeps a handful of scalar entries (see ``ResolutionCache``).  This
module provides the storage backends:

- ``YamlStateStore`` keeps them in a YAML mapping file written with
  ruamel.yaml.  Writes go to a sibling temp file that replaces the target
  with ``os.replace`` while an advisory ``flock`` is held, so readers never
  observe a partial file and two processes never interleave writes.
- ``MemoryStateStore`` keeps them in a dict, for hosts that persist the
  values elsewhere and for tests.
"""

from __future__ import annotations

import fcntl
import os
import tempfile
import threading
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from ruamel.yaml import YAML, YAMLError

from content_gate.errors import StateLockTimeoutError, StateStoreError
from content_gate.logging import get_logger

logger = get_logger(__name__)

# Default timeout for file lock acquisition (in seconds)
DEFAULT_LOCK_TIMEOUT_SECONDS: float = 5.0

# Default retry interval for lock acquisition (in seconds)
DEFAULT_LOCK_RETRY_INTERVAL: float = 0.05

StateValue = str | bool


@runtime_checkable
class StateStore(Protocol):
    """Protocol for gate state persistence backends."""

    def load(self) -> dict[str, StateValue]:
        """Return every persisted entry.

        Raises:
            StateStoreError: If the backing storage cannot be read.
        """
        ...  # pragma: no cover

    def save(self, values: Mapping[str, StateValue]) -> None:
        """Replace the persisted entries with *values*.

        Raises:
            StateStoreError: If the backing storage cannot be written.
        """
        ...  # pragma: no cover


class MemoryStateStore:
    """Dict-backed state store.

    ``save_count`` counts successful saves so callers can assert that a
    mutation was (or was not) flushed.
    """

    def __init__(self, initial: Mapping[str, StateValue] | None = None) -> None:
        self._values: dict[str, StateValue] = dict(initial or {})
        self._lock = threading.Lock()
        self.save_count = 0

    def load(self) -> dict[str, StateValue]:
        with self._lock:
            return dict(self._values)

    def save(self, values: Mapping[str, StateValue]) -> None:
        with self._lock:
            self._values = dict(values)
            self.save_count += 1


@contextmanager
def _file_lock(
    file_path: Path,
    max_wait_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
    retry_interval_seconds: float = DEFAULT_LOCK_RETRY_INTERVAL,
) -> Iterator[None]:
    """Context manager holding an exclusive advisory lock beside *file_path*.

    Args:
        file_path: Path to the file to lock. The lock lives in ``<file>.lock``.
        max_wait_seconds: Maximum time to wait for lock acquisition. If 0,
            blocks indefinitely.
        retry_interval_seconds: Time to wait between acquisition attempts.

    Yields:
        None

    Raises:
        StateLockTimeoutError: If the lock cannot be acquired within the timeout.
        StateStoreError: If the lock file cannot be opened or locked.
    """
    lock_path = file_path.with_suffix(file_path.suffix + ".lock")
    lock_file = None
    start_time = time.monotonic()

    try:
        lock_file = open(lock_path, "w")  # noqa: SIM115

        if max_wait_seconds == 0:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
        else:
            while True:
                try:
                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.monotonic() - start_time >= max_wait_seconds:
                        lock_file.close()
                        lock_file = None
                        raise StateLockTimeoutError(
                            f"Timed out waiting for lock on {file_path} "
                            f"after {max_wait_seconds:.1f} seconds"
                        ) from None
                    time.sleep(retry_interval_seconds)
        yield
    except StateStoreError:
        raise
    except OSError as e:
        if lock_file is not None:
            lock_file.close()
            lock_file = None
        raise StateStoreError(f"Failed to acquire lock for {file_path}: {e}") from e
    finally:
        if lock_file is not None:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
            lock_file.close()


class YamlStateStore:
    """State store backed by a YAML mapping file.

    Only ``str`` and ``bool`` scalars are kept; anything else found in the
    file is dropped on load with a debug log, so a hand-edited file cannot
    smuggle structured values into the gate state.

    Args:
        path: Location of the YAML file. Parent directories are created on
            first save.
        lock_timeout_seconds: Maximum time to wait for the write lock.
    """

    def __init__(
        self,
        path: Path,
        lock_timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
    ) -> None:
        self.path = Path(path)
        self._lock_timeout_seconds = lock_timeout_seconds
        self._yaml = YAML()
        self._yaml.default_flow_style = False
        self._yaml.width = 4096

    def load(self) -> dict[str, StateValue]:
        """Load the persisted entries.

        Returns:
            Mapping of entry name to value. Empty if the file does not exist
            or is empty.

        Raises:
            StateStoreError: If the file cannot be read or parsed, or does
                not hold a mapping.
        """
        try:
            with open(self.path, encoding="utf-8") as f:
                data: Any = self._yaml.load(f)
        except FileNotFoundError:
            return {}
        except PermissionError as e:
            raise StateStoreError(f"Permission denied reading {self.path}: {e}") from e
        except YAMLError as e:
            raise StateStoreError(f"Failed to parse YAML in {self.path}: {e}") from e
        except UnicodeDecodeError as e:
            raise StateStoreError(f"Failed to decode {self.path} as UTF-8: {e}") from e
        except OSError as e:
            raise StateStoreError(f"Failed to read {self.path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, Mapping):
            raise StateStoreError(
                f"Expected a mapping in {self.path}, got {type(data).__name__}"
            )

        values: dict[str, StateValue] = {}
        for key, value in data.items():
            if isinstance(value, (str, bool)):
                values[str(key)] = value
            else:
                logger.debug(
                    "Ignoring non-scalar state entry %s in %s",
                    key,
                    self.path,
                    extra={"diagnostic_tag": "cache"},
                )
        return values

    def save(self, values: Mapping[str, StateValue]) -> None:
        """Atomically replace the file contents with *values*.

        Raises:
            StateStoreError: If the directory, lock or file cannot be written.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StateStoreError(f"Failed to create {self.path.parent}: {e}") from e

        with _file_lock(self.path, max_wait_seconds=self._lock_timeout_seconds):
            tmp_name = None
            try:
                with tempfile.NamedTemporaryFile(
                    "w",
                    encoding="utf-8",
                    dir=self.path.parent,
                    prefix=f".{self.path.name}.",
                    suffix=".tmp",
                    delete=False,
                ) as tmp:
                    tmp_name = tmp.name
                    self._yaml.dump(dict(values), tmp)
                    tmp.flush()
                    os.fsync(tmp.fileno())
                os.replace(tmp_name, self.path)
                tmp_name = None
            except OSError as e:
                raise StateStoreError(f"Failed to write {self.path}: {e}") from e
            finally:
                if tmp_name is not None:
                    try:
                        os.unlink(tmp_name)
                    except OSError:
                        logger.debug("Could not remove temp file: %s", tmp_name)
