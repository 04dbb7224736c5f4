"""A key-value cache whose entries expire after a TTL, swept on a fixed interval."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

DEFAULT_TTL = timedelta(minutes=10)
DEFAULT_INTERVAL = timedelta(minutes=15)

_log = logging.getLogger(__name__)


class NotFoundError(LookupError):
    """The key is not in the store."""


@dataclass(frozen=True)
class _Entry:
    created: float
    timestamp: int
    value: Any


def _seconds(value: float | timedelta) -> float:
    return value.total_seconds() if isinstance(value, timedelta) else float(value)


class InMemoryStore:
    """Stores values by key; a background thread removes entries older than the TTL."""

    def __init__(
        self,
        ttl: float | timedelta = DEFAULT_TTL,
        interval: float | timedelta = DEFAULT_INTERVAL,
        logger: logging.Logger | None = None,
    ) -> None:
        self._data: dict[str, _Entry] = {}
        self._lock = threading.RLock()
        self._ttl = _seconds(ttl)
        self._interval = _seconds(interval)
        self._logger = logger or _log
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            self._vacuum()

    def _vacuum(self) -> None:
        with self._lock:
            self._logger.debug("cleaning cache: len %d ...", len(self._data))
            now = time.monotonic()
            self._data = {
                key: entry
                for key, entry in self._data.items()
                if now - entry.created <= self._ttl
            }
            self._logger.debug("cache cleaned: len %d ...", len(self._data))

    def set(self, key: str, value: Any) -> int:
        """Store value under key and return the Unix timestamp of the entry."""
        timestamp = int(time.time())
        with self._lock:
            self._data[key] = _Entry(time.monotonic(), timestamp, value)
        return timestamp

    def get(self, key: str, expected_type: type) -> tuple[int, Any]:
        """Return (timestamp, value) for key, checking the value is an expected_type."""
        if not isinstance(expected_type, type):
            raise TypeError("destination argument must be a type")
        with self._lock:
            entry = self._data.get(key)
        if entry is None:
            raise NotFoundError(key)
        if not isinstance(entry.value, expected_type):
            raise TypeError(
                "the types of cache source and dst are different: "
                f"{type(entry.value).__name__!r} {expected_type.__name__!r}"
            )
        return entry.timestamp, entry.value

    def stop_vacuum(self) -> None:
        """Stop the background sweep; entries are kept from then on."""
        self._logger.debug("stopping vacuum thread")
        self._stop.set()

    def save(self) -> dict[str, Any]:
        """Nothing is written anywhere; return a snapshot of the stored values by key."""
        with self._lock:
            return {key: entry.value for key, entry in self._data.items()}

    def delete(self, key: str) -> None:
        """Remove key from the store; a missing key is not an error."""
        with self._lock:
            self._data.pop(key, None)

    def __enter__(self) -> InMemoryStore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop_vacuum()