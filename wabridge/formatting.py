"""Operator-facing text for Telegram.

Everything is Telegram HTML (<b>, <i>, <code>). WhatsApp names and
message bodies are arbitrary user text, so they are always escaped;
Markdown would break on the first stray underscore in a contact name.
"""

import html as _html
import time
from datetime import datetime
from typing import Optional

from .cache.correlation import RoutingEntry

SEPARATOR = "─────────────────"
TELEGRAM_MAX_LENGTH = 4096


def escape_html(text) -> str:
    """Escape HTML special characters in plain text segments."""
    return _html.escape(str(text or ""), quote=False)


def phone_of(address: str) -> str:
    """Local part of a JID: '628123@s.whatsapp.net' -> '628123'."""
    return (address or "").split("@", 1)[0].split(":", 1)[0]


def user_phone(address: str) -> str:
    """Phone digits behind a user address, or "" when it is not a phone number.

    Bare digits and @s.whatsapp.net JIDs carry the number; group JIDs and
    @lid privacy ids do not.
    """
    address = (address or "").strip()
    if "@" not in address:
        return address if address.isdigit() else ""
    if address.endswith("@s.whatsapp.net"):
        return phone_of(address)
    return ""


def minutes_ago(timestamp: float, now: Optional[float] = None) -> int:
    now = time.time() if now is None else now
    return max(0, int((now - timestamp) // 60))


# ── Notifications ─────────────────────────────────────────

def format_notification(
    correlation_id: str,
    display_name: str,
    body: str,
    sender_name: str = "",
    is_group: bool = False,
) -> str:
    lines = [f"📨 <b>{escape_html(display_name)}</b>"]
    if is_group and sender_name:
        lines.append(f"👤 {escape_html(sender_name)}")
    lines.append(f"🆔 <code>{escape_html(correlation_id)}</code>")
    lines.append(SEPARATOR)
    lines.append(escape_html(body) if body else "[Media/File]")
    return "\n".join(lines)


_MEDIA_EMOJI = {"photo": "📷", "video": "🎥", "audio": "🎵", "document": "📎"}


def format_media_caption(kind: str, display_name: str, correlation_id: str) -> str:
    # Plain text: captions are sent without parse_mode
    return f"{_MEDIA_EMOJI.get(kind, '📎')} {display_name} | {correlation_id}"


# ── Command replies ───────────────────────────────────────

def format_welcome(claimed: bool) -> str:
    text = (
        "🤖 <b>WhatsApp-Telegram Bridge</b>\n\n"
        "Every WhatsApp message is forwarded here automatically.\n"
        "Use the buttons below for quick access:"
    )
    if claimed:
        text += "\n\n✅ This chat is now the control channel."
    return text


def format_help() -> str:
    return (
        "📖 <b>WhatsApp-Telegram Bridge — Help</b>\n\n"
        "<b>Replying</b>\n"
        "Tap 💬 <b>Reply</b> under a forwarded message, then type your text.\n"
        "Or: <code>/reply &lt;msg_id&gt; &lt;text&gt;</code>\n"
        "Example: <code>/reply msg_5 Thanks for your message!</code>\n\n"
        "<b>New message</b>\n"
        "<code>/send &lt;number&gt; &lt;text&gt;</code>\n"
        "Example: <code>/send 628123456789 Hello!</code>\n"
        "Numbers starting with 0 get the default country code.\n"
        "Or pick a chat with /contacts.\n\n"
        "<b>Other commands</b>\n"
        "/list — 10 most recent messages\n"
        "/status — WhatsApp connection status\n"
        "/autoreply — show or change the auto-reply\n"
        "/cancel — cancel a pending reply\n\n"
        "Photos, videos, audio and files are forwarded too."
    )


def format_status(
    state: str,
    active_messages: int,
    total_forwarded: int,
    auto_reply_enabled: bool,
) -> str:
    connected = state == "CONNECTED"
    return (
        "📊 <b>Bridge Status</b>\n\n"
        f"WhatsApp: {'✅ Connected' if connected else '❌ Disconnected'}\n"
        f"State: {escape_html(state)}\n"
        f"Active messages: {active_messages}\n"
        f"Total forwarded: {total_forwarded}\n"
        f"Auto-reply: {'ON' if auto_reply_enabled else 'OFF'}"
    )


def format_recent(entries: list[tuple[str, RoutingEntry]], now: Optional[float] = None) -> str:
    if not entries:
        return "📭 No stored messages yet."
    lines = [f"📋 <b>{len(entries)} Most Recent Messages:</b>", ""]
    for correlation_id, entry in entries:
        lines.append(f"🆔 <code>{escape_html(correlation_id)}</code>")
        lines.append(f"👤 {escape_html(entry.display_name)}")
        lines.append(f"⏰ {minutes_ago(entry.received_at, now)} min ago")
        lines.append("─────────────")
    return "\n".join(lines)


def format_sent(display_name: str, address: str, text: str) -> str:
    return (
        f"✅ Message sent to <b>{escape_html(display_name)}</b>\n"
        f"📞 {escape_html(user_phone(address) or address)}\n\n"
        f"💬 \"{escape_html(text)}\""
    )


def format_contact_info(correlation_id: str, entry: RoutingEntry) -> str:
    received = datetime.fromtimestamp(entry.received_at).strftime("%Y-%m-%d %H:%M:%S")
    text = (
        "📇 <b>Contact Info</b>\n\n"
        f"👤 Name: {escape_html(entry.display_name)}\n"
        f"📞 ID: <code>{escape_html(entry.address)}</code>\n"
        f"📁 Type: {'Group' if entry.is_group else 'Personal'}\n"
        f"⏰ Received: {received}\n"
        f"🆔 Msg ID: <code>{escape_html(correlation_id)}</code>"
    )
    if not entry.is_group:
        phone = f"+{escape_html(entry.phone)}" if entry.phone else "unknown"
        text += f"\n📱 Phone: {phone}"
    if entry.phone:
        text += f"\n\n<i>Use /send {escape_html(entry.phone)} to start a new message</i>"
    return text


def format_contacts_header(page_index: int, pages: int, total: int) -> str:
    return (
        "👥 <b>Pick a chat</b>\n"
        f"Page {page_index + 1}/{pages} · {total} chats"
    )


def format_autoreply(enabled: bool, text: str) -> str:
    return (
        f"🤖 <b>Auto-reply:</b> {'ON' if enabled else 'OFF'}\n\n"
        f"💬 {escape_html(text)}\n\n"
        "<code>/autoreply on</code> · <code>/autoreply off</code>\n"
        "<code>/autoreply text &lt;message&gt;</code>"
    )


def build_vcard(display_name: str, phone: str) -> bytes:
    return (
        "BEGIN:VCARD\n"
        "VERSION:3.0\n"
        f"FN:{display_name}\n"
        f"TEL;TYPE=CELL:+{phone}\n"
        "END:VCARD"
    ).encode("utf-8")


def vcard_filename(display_name: str) -> str:
    safe = "".join(c for c in display_name if c.isalnum() or c in " -_").strip()
    return f"{safe or 'contact'}.vcf"


def split_message(text: str, max_length: int = TELEGRAM_MAX_LENGTH) -> list[str]:
    """Split text into chunks no longer than max_length.

    Prefers newline boundaries, then spaces, then a hard cut.
    """
    chunks = []
    remaining = text
    while remaining:
        if len(remaining) <= max_length:
            chunks.append(remaining)
            break

        split_at = remaining.rfind("\n", 0, max_length)
        if split_at == -1:
            split_at = remaining.rfind(" ", 0, max_length)
        if split_at == -1:
            split_at = max_length

        chunks.append(remaining[:split_at])
        remaining = remaining[split_at:].lstrip()
    return chunks
