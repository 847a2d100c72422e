"""Conversation state — what the operator's next plain-text message means.

After tapping "Reply" on a notification, picking a contact, or choosing
to type a number, the operator's next ordinary Telegram message is not
a command. This module remembers, per operator, how to interpret it:

    Idle                      -> text is ignored (never echoed)
    AwaitingReplyText(id)     -> text is relayed to the chat behind id
    AwaitingSendText(a, name) -> text is relayed to address a
    AwaitingManualAddress     -> text is a phone number to message next

States expire after 10 minutes of inactivity. Consuming a relay state
removes it before the send is attempted, so a failed send never leaves
the operator stuck in reply mode.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Union

from .cache.correlation import CorrelationCache, RoutingEntry
from .cache.expiring import ExpiringStore
from .errors import NotFoundError

logger = logging.getLogger("wabridge.conversation")

STATE_TTL = 10 * 60
DEFAULT_COUNTRY_CODE = "62"


# ── States ────────────────────────────────────────────────

@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class AwaitingReplyText:
    target_id: str


@dataclass(frozen=True)
class AwaitingSendText:
    address: str
    display_name: str


@dataclass(frozen=True)
class AwaitingManualAddress:
    pass


ConversationState = Union[Idle, AwaitingReplyText, AwaitingSendText, AwaitingManualAddress]

IDLE = Idle()


# ── Outcomes of consuming a text message ──────────────────

@dataclass(frozen=True)
class Ignored:
    """No active state; the text must be dropped silently."""
    pass


@dataclass(frozen=True)
class Relay:
    address: str
    display_name: str
    text: str


@dataclass(frozen=True)
class TargetExpired:
    target_id: str


@dataclass(frozen=True)
class AddressAccepted:
    address: str


@dataclass(frozen=True)
class InvalidAddress:
    text: str


Outcome = Union[Ignored, Relay, TargetExpired, AddressAccepted, InvalidAddress]


def normalize_address(text: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Turn a typed phone number into international digits.

    Strips every non-digit; a leading 0 becomes the country code.
    "0812-3456 7890" -> "6281234567890". Returns "" if no digits remain.
    """
    digits = re.sub(r"\D", "", text or "")
    if digits.startswith("0"):
        digits = country_code + digits[1:]
    return digits


class ConversationStateMachine:
    """Per-operator conversation state with a 10 minute TTL."""

    def __init__(
        self,
        correlation: CorrelationCache,
        ttl: float = STATE_TTL,
        country_code: str = DEFAULT_COUNTRY_CODE,
        store: Optional[ExpiringStore] = None,
    ):
        self.correlation = correlation
        self.country_code = country_code
        self._store = store or ExpiringStore(default_ttl=ttl)

    @property
    def store(self) -> ExpiringStore:
        return self._store

    @staticmethod
    def _key(operator_id) -> str:
        return f"chat_{operator_id}"

    def state(self, operator_id) -> ConversationState:
        """Current state for operator (Idle when absent or expired)."""
        return self._store.get(self._key(operator_id), IDLE)

    def _set(self, operator_id, state: ConversationState):
        self._store.put(self._key(operator_id), state)
        logger.debug(f"Operator {operator_id} -> {state}")

    def begin_reply(self, operator_id, correlation_id: str) -> RoutingEntry:
        """Wait for the text of a reply to correlation_id.

        Raises:
            NotFoundError: the id is unknown or already expired.
        """
        entry = self.correlation.resolve(correlation_id)
        if entry is None:
            raise NotFoundError(correlation_id)
        self._set(operator_id, AwaitingReplyText(target_id=correlation_id))
        return entry

    def begin_send(self, operator_id, address: str, display_name: str):
        """Wait for the text of a new message to address."""
        self._set(operator_id, AwaitingSendText(address=address, display_name=display_name))

    def begin_manual_address(self, operator_id):
        """Wait for the operator to type a phone number."""
        self._set(operator_id, AwaitingManualAddress())

    def cancel(self, operator_id) -> bool:
        """Drop any pending state. Returns False if there was nothing to cancel."""
        state = self._store.pop(self._key(operator_id))
        return state is not None and not isinstance(state, Idle)

    def consume(self, operator_id, text: str) -> Outcome:
        """Interpret a plain-text message against the operator's state."""
        key = self._key(operator_id)
        state = self._store.get(key)

        if state is None or isinstance(state, Idle):
            return Ignored()

        if isinstance(state, AwaitingManualAddress):
            address = normalize_address(text, self.country_code)
            if not address:
                # Keep waiting; the operator can retry or /cancel
                return InvalidAddress(text=text)
            self._set(operator_id, AwaitingSendText(address=address, display_name=address))
            return AddressAccepted(address=address)

        # Relay states are single-use: remove before anything is sent
        state = self._store.pop(key)
        if isinstance(state, AwaitingReplyText):
            entry = self.correlation.resolve(state.target_id)
            if entry is None:
                logger.info(f"Reply target {state.target_id} expired for operator {operator_id}")
                return TargetExpired(target_id=state.target_id)
            return Relay(address=entry.address, display_name=entry.display_name, text=text)
        if isinstance(state, AwaitingSendText):
            return Relay(address=state.address, display_name=state.display_name, text=text)

        # Popped concurrently (cancel/expiry between get and pop)
        return Ignored()
