"""Tests for the operator conversation state machine."""

import pytest

from wabridge.conversation import (
    IDLE,
    AddressAccepted,
    AwaitingManualAddress,
    AwaitingReplyText,
    AwaitingSendText,
    Ignored,
    InvalidAddress,
    Relay,
    TargetExpired,
    normalize_address,
)
from wabridge.errors import NotFoundError

OP = 42
ALICE = "628111@s.whatsapp.net"


# ── normalize_address ────────────────────────────────────────

class TestNormalizeAddress:
    def test_leading_zero_gets_country_code(self):
        assert normalize_address("0812-3456 7890") == "6281234567890"

    def test_international_kept(self):
        assert normalize_address("+62 812 3456") == "628123456"

    def test_custom_country_code(self):
        assert normalize_address("0612345678", country_code="31") == "31612345678"

    def test_no_digits(self):
        assert normalize_address("hello") == ""
        assert normalize_address("") == ""


# ── Reply flow ───────────────────────────────────────────────

class TestReplyFlow:
    def test_idle_text_is_ignored(self, conversations):
        assert conversations.state(OP) == IDLE
        assert isinstance(conversations.consume(OP, "hi"), Ignored)

    def test_reply_relays_once(self, conversations, correlation):
        cid = correlation.record_inbound(ALICE, "Alice", False)
        conversations.begin_reply(OP, cid)
        assert conversations.state(OP) == AwaitingReplyText(cid)

        outcome = conversations.consume(OP, "On my way")
        assert outcome == Relay(ALICE, "Alice", "On my way")
        assert conversations.state(OP) == IDLE
        assert isinstance(conversations.consume(OP, "again"), Ignored)

    def test_begin_reply_unknown_id(self, conversations):
        with pytest.raises(NotFoundError):
            conversations.begin_reply(OP, "msg_404")
        assert conversations.state(OP) == IDLE

    def test_target_expired_between_tap_and_text(self, conversations, correlation, clock):
        cid = correlation.record_inbound(ALICE, "Alice", False)
        conversations.begin_reply(OP, cid)
        correlation.store.delete(cid)

        assert conversations.consume(OP, "late") == TargetExpired(cid)
        assert conversations.state(OP) == IDLE

    def test_state_expires_after_ten_minutes(self, conversations, correlation, clock):
        cid = correlation.record_inbound(ALICE, "Alice", False)
        conversations.begin_reply(OP, cid)
        clock.advance(600)
        assert conversations.state(OP) == IDLE
        assert isinstance(conversations.consume(OP, "too late"), Ignored)

    def test_operators_are_independent(self, conversations, correlation):
        cid = correlation.record_inbound(ALICE, "Alice", False)
        conversations.begin_reply(OP, cid)
        assert isinstance(conversations.consume(7, "not mine"), Ignored)
        assert isinstance(conversations.consume(OP, "mine"), Relay)


# ── New message flow ─────────────────────────────────────────

class TestSendFlow:
    def test_picked_contact(self, conversations):
        conversations.begin_send(OP, ALICE, "Alice")
        assert conversations.state(OP) == AwaitingSendText(ALICE, "Alice")
        assert conversations.consume(OP, "Hello") == Relay(ALICE, "Alice", "Hello")
        assert conversations.state(OP) == IDLE

    def test_manual_address_then_text(self, conversations):
        conversations.begin_manual_address(OP)
        assert conversations.state(OP) == AwaitingManualAddress()

        assert conversations.consume(OP, "0812 3456") == AddressAccepted("628123456")
        assert conversations.state(OP) == AwaitingSendText("628123456", "628123456")

        assert conversations.consume(OP, "Hi there") == Relay("628123456", "628123456", "Hi there")

    def test_invalid_manual_address_keeps_waiting(self, conversations):
        conversations.begin_manual_address(OP)
        assert conversations.consume(OP, "no digits") == InvalidAddress("no digits")
        assert conversations.state(OP) == AwaitingManualAddress()

    def test_new_state_replaces_old(self, conversations, correlation):
        cid = correlation.record_inbound(ALICE, "Alice", False)
        conversations.begin_reply(OP, cid)
        conversations.begin_send(OP, "628999@s.whatsapp.net", "Zed")
        assert conversations.consume(OP, "x").address == "628999@s.whatsapp.net"


class TestCancel:
    def test_cancel_active(self, conversations):
        conversations.begin_manual_address(OP)
        assert conversations.cancel(OP) is True
        assert conversations.state(OP) == IDLE

    def test_cancel_idle(self, conversations):
        assert conversations.cancel(OP) is False
