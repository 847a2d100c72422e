"""Auto-reply cooldown per WhatsApp sender.

When auto-reply is enabled, every inbound direct message could trigger
an acknowledgement. The gate makes sure a given sender gets at most one
acknowledgement per interval, so two bots (or one chatty contact) can't
ping-pong each other into a message storm.

This is not an inbound rate limiter: messages are always forwarded to
Telegram, only the automatic acknowledgement is gated. Group chats are
never auto-replied to and never reach the gate.
"""

import logging
import time
from typing import Callable, Optional

from .cache.expiring import ExpiringStore

logger = logging.getLogger("wabridge.cooldown")

# How long a sender's last auto-reply timestamp is kept around.
DEFAULT_RETENTION = 24 * 60 * 60


class CooldownGate:
    """Minimum interval between automatic replies, per source address.

    Timestamps are kept in an ExpiringStore, so the map is bounded by
    time and not only by the number of distinct senders. The retention
    is never shorter than the interval in use, otherwise an entry could
    vanish while it should still block.
    """

    def __init__(
        self,
        retention: float = DEFAULT_RETENTION,
        clock: Callable[[], float] = time.monotonic,
        store: Optional[ExpiringStore] = None,
    ):
        """Initialize cooldown gate.

        Args:
            retention: Seconds to remember a sender after its last auto-reply
            clock: Time source for `now` when the caller omits it
            store: Backing store (mostly for tests)
        """
        self.retention = retention
        self._clock = clock
        self._store = store or ExpiringStore(default_ttl=retention)

    @property
    def store(self) -> ExpiringStore:
        return self._store

    def try_acquire(self, address: str, min_interval: float, now: Optional[float] = None) -> bool:
        """Check whether an auto-reply may be sent to address right now.

        Args:
            address: WhatsApp JID of the sender
            min_interval: Required seconds since the last auto-reply
            now: Current time (defaults to the gate's clock)

        Returns:
            True if allowed; `now` is then recorded as the last auto-reply.
            False if still cooling down; nothing is recorded.
        """
        if now is None:
            now = self._clock()

        last = self._store.get(address)
        if last is not None and now - last <= min_interval:
            logger.debug(
                f"Auto-reply to {address} suppressed: "
                f"{now - last:.1f}s since last, need > {min_interval}s"
            )
            return False

        self._store.put(address, now, ttl=max(self.retention, min_interval))
        return True

