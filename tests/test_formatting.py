"""Tests for operator-facing text helpers."""

from wabridge.cache import RoutingEntry
from wabridge.formatting import (
    format_contact_info,
    format_recent,
    format_sent,
    minutes_ago,
    phone_of,
    split_message,
    user_phone,
    vcard_filename,
)


class TestHelpers:
    def test_phone_of(self):
        assert phone_of("628123@s.whatsapp.net") == "628123"
        assert phone_of("628123:12@s.whatsapp.net") == "628123"
        assert phone_of("") == ""

    def test_user_phone_only_for_real_numbers(self):
        assert user_phone("628123@s.whatsapp.net") == "628123"
        assert user_phone("628123") == "628123"
        assert user_phone("98765@lid") == ""
        assert user_phone("120363042@g.us") == ""

    def test_minutes_ago_never_negative(self):
        assert minutes_ago(1000.0, now=1000.0 + 125) == 2
        assert minutes_ago(1000.0, now=900.0) == 0

    def test_vcard_filename_sanitized(self):
        assert vcard_filename("Ann / Bob?") == "Ann  Bob.vcf"
        assert vcard_filename("???") == "contact.vcf"


class TestRecent:
    def test_lists_age_and_name(self):
        entry = RoutingEntry("628111@s.whatsapp.net", "Alice", False, received_at=0.0)
        text = format_recent([("msg_3", entry)], now=600.0)
        assert "msg_3" in text
        assert "Alice" in text
        assert "10 min ago" in text


class TestContactInfo:
    def test_lid_id_not_shown_as_number(self):
        entry = RoutingEntry("98765@lid", "Carol", False, received_at=0.0)
        text = format_contact_info("msg_1", entry)
        assert "Phone: unknown" in text
        assert "/send" not in text

    def test_known_phone_gives_send_hint(self):
        entry = RoutingEntry("98765@lid", "Carol", False, received_at=0.0, phone="628555")
        text = format_contact_info("msg_1", entry)
        assert "Phone: +628555" in text
        assert "/send 628555" in text

    def test_group_has_no_phone_line(self):
        entry = RoutingEntry("120363042@g.us", "Family", True, received_at=0.0)
        assert "Phone:" not in format_contact_info("msg_1", entry)

    def test_sent_confirmation_for_lid_shows_jid(self):
        assert "98765@lid" in format_sent("Carol", "98765@lid", "hi")


class TestSplitMessage:
    def test_short_text_unchanged(self):
        assert split_message("hello") == ["hello"]

    def test_prefers_newlines(self):
        chunks = split_message("aaaa\nbbbb\ncccc", max_length=10)
        assert chunks == ["aaaa\nbbbb", "cccc"]

    def test_hard_cut_without_whitespace(self):
        chunks = split_message("x" * 25, max_length=10)
        assert [len(c) for c in chunks] == [10, 10, 5]
