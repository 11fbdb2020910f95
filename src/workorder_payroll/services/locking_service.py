"""Keyed in-process locks for work order and ledger mutations.

Every mutation of a work order, a (month, worker) detail row or a month
header first takes the matching key here. Database row locks (``SELECT …
FOR UPDATE`` on PostgreSQL) and version counters still apply underneath;
these locks keep a single process from racing itself and give every wait a
bounded timeout.

Lock order is fixed: work order → worker keys (sorted) → month key.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field


class RetryableProcessingError(Exception):
    """Base class for transient failures the caller may retry."""

    retryable = True


class LockTimeoutError(RetryableProcessingError):
    """Raised when a lock cannot be acquired within the timeout."""

    def __init__(self, key: str, timeout: float):
        self.key = key
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout:.2f}s waiting for lock '{key}'")


class AccumulationConflictError(RetryableProcessingError):
    """Raised when write contention outlasts the retry budget."""

    def __init__(self, month_key: str, attempts: int, cause: Exception | None = None):
        self.month_key = month_key
        self.attempts = attempts
        self.cause = cause
        super().__init__(
            f"Concurrent updates to pay calculation {month_key} did not settle "
            f"after {attempts} attempt(s)"
        )


def work_order_key(work_order_id: int) -> str:
    return f"work_order:{work_order_id}"


def detail_key(month_key: str, worker_id: int) -> str:
    return f"pay_detail:{month_key}:{worker_id}"


def month_key_lock(month_key: str) -> str:
    return f"pay_month:{month_key}"


@dataclass
class _Entry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class LockManager:
    """Registry of named asyncio locks with bounded waits.

    Entries are reference counted and dropped once nobody holds or waits
    on them, so the registry does not grow with every month and worker seen.
    """

    def __init__(self, default_timeout: float = 5.0):
        self.default_timeout = default_timeout
        self._entries: dict[str, _Entry] = {}

    def is_locked(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    @asynccontextmanager
    async def hold(self, *keys: str, timeout: float | None = None) -> AsyncIterator[None]:
        """Hold every key for the duration of the block.

        Keys are acquired in the order given, after de-duplication. Callers
        pass them already ordered (see module docstring).

        Raises:
            LockTimeoutError: If any key cannot be acquired in time
        """
        wait = self.default_timeout if timeout is None else timeout
        ordered = list(dict.fromkeys(keys))

        async with AsyncExitStack() as stack:
            for key in ordered:
                await stack.enter_async_context(self._acquire(key, wait))
            yield

    @asynccontextmanager
    async def _acquire(self, key: str, timeout: float) -> AsyncIterator[None]:
        entry = self._entries.setdefault(key, _Entry())
        entry.holders += 1
        try:
            try:
                await asyncio.wait_for(entry.lock.acquire(), timeout=timeout)
            except asyncio.TimeoutError:
                raise LockTimeoutError(key, timeout) from None
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            entry.holders -= 1
            if entry.holders == 0 and self._entries.get(key) is entry:
                del self._entries[key]
