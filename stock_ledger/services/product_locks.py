"""
ProductLockRegistry -- per-product critical sections for ledger mutations.

Responsibility:
    Serializes append/update/remove on the same product's ledger within a
    process.  Each product id maps to its own lock, so mutations on
    different products never wait on each other.

Architecture position:
    Ledger > Services -- imperative shell infrastructure.
    Held by LedgerEngine around the whole mutate + recompute transaction.
    Cross-process serialization on PostgreSQL comes from
    LedgerStore.lock_product (advisory lock) taken inside the transaction.

Invariants enforced:
    - Multiple products are always locked in ascending id order, so two
      mutations that each touch two products (update moving an entry between
      products) cannot deadlock.
    - Waiting is bounded by a timeout; expiry raises ConcurrencyConflictError
      and nothing has been written.
    - A product's lock is dropped from the registry once no caller holds or
      waits for it.
"""

import threading
from contextlib import contextmanager
from typing import Generator

from stock_ledger.exceptions import ConcurrencyConflictError
from stock_ledger.logging_config import get_logger

logger = get_logger("services.product_locks")

DEFAULT_LOCK_TIMEOUT_SECONDS = 10.0


class ProductLockRegistry:
    """
    Registry of one lock per product id.

    A single registry must be shared by every LedgerEngine that writes to
    the same database in one process.  A product's lock exists only while a
    caller holds it or waits for it, so the registry does not grow with the
    number of products ever touched.
    """

    def __init__(self, timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS):
        self.timeout_seconds = timeout_seconds
        self._locks: dict[int, threading.Lock] = {}
        self._users: dict[int, int] = {}
        self._guard = threading.Lock()

    def active_count(self) -> int:
        """Number of products currently held or waited for."""
        with self._guard:
            return len(self._locks)

    def _checkout(self, product_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(product_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[product_id] = lock
            self._users[product_id] = self._users.get(product_id, 0) + 1
            return lock

    def _checkin(self, product_id: int) -> None:
        with self._guard:
            remaining = self._users[product_id] - 1
            if remaining:
                self._users[product_id] = remaining
            else:
                del self._users[product_id]
                del self._locks[product_id]

    def is_locked(self, product_id: int) -> bool:
        with self._guard:
            lock = self._locks.get(product_id)
        return lock is not None and lock.locked()

    @contextmanager
    def hold(
        self,
        *product_ids: int,
        timeout_seconds: float | None = None,
    ) -> Generator[tuple[int, ...], None, None]:
        """
        Hold the locks of the given products for the duration of the block.

        Yields the distinct product ids in the order they were locked.

        Raises:
            ConcurrencyConflictError: a lock was not acquired in time.  Locks
                already taken by this call are released first.
        """
        timeout = self.timeout_seconds if timeout_seconds is None else timeout_seconds
        ordered = tuple(sorted(set(product_ids)))
        checked_out: list[int] = []
        acquired: list[threading.Lock] = []
        try:
            for product_id in ordered:
                lock = self._checkout(product_id)
                checked_out.append(product_id)
                if not lock.acquire(timeout=timeout):
                    logger.warning(
                        "ledger_lock_timeout",
                        extra={"product_id": product_id, "timeout_seconds": timeout},
                    )
                    raise ConcurrencyConflictError(product_id, timeout)
                acquired.append(lock)
            yield ordered
        finally:
            for lock in reversed(acquired):
                lock.release()
            for product_id in checked_out:
                self._checkin(product_id)
