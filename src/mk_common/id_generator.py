"""Snowflake-style ID generator for listing, order and message ids.

IDs are decimal strings of equal width for the lifetime of the epoch, so
string comparison (`id < :cursor_id`) orders them by creation time.
"""

import threading
import time


class SnowflakeIdGenerator:
    """Layout (63 bits): 41-bit ms timestamp | 10-bit worker | 12-bit sequence."""

    _EPOCH_MS = 1_735_689_600_000  # 2025-01-01T00:00:00Z
    _WORKER_BITS = 10
    _SEQUENCE_BITS = 12
    _MAX_SEQUENCE = (1 << _SEQUENCE_BITS) - 1

    def __init__(self, worker_id: int = 0) -> None:
        if not (0 <= worker_id < (1 << self._WORKER_BITS)):
            raise ValueError(f"worker_id must be 0-{(1 << self._WORKER_BITS) - 1}")
        self._worker_id = worker_id
        self._sequence = 0
        self._last_ms = -1
        self._lock = threading.Lock()

    def next_id(self) -> str:
        with self._lock:
            now_ms = self._now_ms()
            if now_ms < self._last_ms:
                # Clock stepped backwards: keep issuing from the last timestamp
                now_ms = self._last_ms
            if now_ms == self._last_ms:
                self._sequence = (self._sequence + 1) & self._MAX_SEQUENCE
                if self._sequence == 0:
                    now_ms = self._wait_until_after(now_ms)
            else:
                self._sequence = 0

            self._last_ms = now_ms
            value = (
                ((now_ms - self._EPOCH_MS) << (self._WORKER_BITS + self._SEQUENCE_BITS))
                | (self._worker_id << self._SEQUENCE_BITS)
                | self._sequence
            )
            return f"{value:019d}"

    def _now_ms(self) -> int:
        return int(time.time() * 1000)

    def _wait_until_after(self, last_ms: int) -> int:
        now_ms = self._now_ms()
        while now_ms <= last_ms:
            now_ms = self._now_ms()
        return now_ms


_default_generator = SnowflakeIdGenerator()


def generate_id() -> str:
    """Next id from the process-wide generator."""
    return _default_generator.next_id()
