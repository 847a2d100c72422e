"""Correlation cache — maps short message ids to WhatsApp routing info.

Every inbound WhatsApp message gets an id like `msg_17`. The Telegram
notification carries that id (in text and in its buttons), so a reply
can be routed back to the right chat long after the operator has moved
on. Entries live for 24 hours.

The counter is per-instance and only resets on restart: two processes
sharing one store would collide. Single-process by design.
"""

import itertools
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .expiring import ExpiringStore

logger = logging.getLogger("wabridge.correlation")

MESSAGE_TTL = 24 * 60 * 60


@dataclass(frozen=True)
class RoutingEntry:
    address: str        # WhatsApp chat JID to reply to
    display_name: str
    is_group: bool
    received_at: float  # unix timestamp
    phone: str = ""     # phone digits, empty when unknown (groups, unmapped @lid)


class CorrelationCache:
    """Issues correlation ids and resolves them back to routing entries."""

    def __init__(
        self,
        ttl: float = MESSAGE_TTL,
        store: Optional[ExpiringStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store or ExpiringStore(default_ttl=ttl)
        self._ttl = ttl
        self._clock = clock
        self._counter = itertools.count(1)
        self._counter_lock = threading.Lock()
        self._issued = 0

    @property
    def store(self) -> ExpiringStore:
        return self._store

    @property
    def total_recorded(self) -> int:
        """Number of ids issued since start (live or expired)."""
        return self._issued

    def __len__(self) -> int:
        return len(self._store)

    def record_inbound(self, address: str, display_name: str, is_group: bool, phone: str = "") -> str:
        """Store routing info for an inbound message and return its id."""
        with self._counter_lock:
            n = next(self._counter)
            self._issued = n
        correlation_id = f"msg_{n}"
        entry = RoutingEntry(
            address=address,
            display_name=display_name,
            is_group=is_group,
            received_at=self._clock(),
            phone=phone,
        )
        self._store.put(correlation_id, entry, ttl=self._ttl)
        logger.debug(f"Recorded {correlation_id} -> {address}")
        return correlation_id

    def resolve(self, correlation_id: str) -> Optional[RoutingEntry]:
        """Return the entry for correlation_id, or None if unknown/expired."""
        if not correlation_id:
            return None
        return self._store.get(correlation_id.strip())

    def recent(self, n: int) -> list[tuple[str, RoutingEntry]]:
        """Up to n most recent (id, entry) pairs, newest first.

        Ids that expire between listing and lookup are skipped.
        """
        if n <= 0:
            return []
        result = []
        for key in reversed(self._store.keys()):
            entry = self._store.get(key)
            if entry is None:
                continue
            result.append((key, entry))
            if len(result) >= n:
                break
        return result
