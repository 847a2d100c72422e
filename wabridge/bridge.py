"""Bridge orchestrator — routing and formatting policy.

Sits between the WhatsApp source client and the Telegram control
client. Inbound WhatsApp messages become Telegram notifications with a
correlation id; operator commands, button presses and plain-text
follow-ups are resolved to exactly one outbound WhatsApp send.

Every operator-facing method returns a Reply and never raises: errors
are classified into a single acknowledgement at this boundary.
"""

import logging
from typing import Optional

from .cache.correlation import CorrelationCache
from .callbacks import (
    CancelAction,
    ContactInfo,
    ContactsPage,
    ManualAddress,
    Menu,
    PickContact,
    ReplyTo,
    ShareContact,
    decode_callback,
    fits,
)
from .conversation import (
    AddressAccepted,
    ConversationStateMachine,
    Ignored,
    InvalidAddress,
    Relay,
    TargetExpired,
    normalize_address,
)
from .cooldown import CooldownGate
from .errors import (
    ConfigWriteFailure,
    NotFoundError,
    SourceDisconnected,
    classify_error,
)
from .formatting import (
    build_vcard,
    format_autoreply,
    format_contact_info,
    format_contacts_header,
    format_help,
    format_media_caption,
    format_notification,
    format_recent,
    format_sent,
    format_status,
    format_welcome,
    escape_html,
    phone_of,
    user_phone,
    vcard_filename,
)
from .interfaces import (
    CONNECTED,
    Attachment,
    Button,
    Contact,
    ControlClient,
    InboundMessage,
    Reply,
    SourceClient,
)
from .pagination import DEFAULT_PAGE_SIZE, page, page_count
from .store import BridgeConfig, ConfigStore

logger = logging.getLogger("wabridge.bridge")

_LABEL_MAX = 40


def _usage(text: str) -> Reply:
    return Reply(text=f"❌ Wrong format!\n\n{text}")


class Bridge:
    """Wires inbound events, commands and button callbacks together."""

    def __init__(
        self,
        source: SourceClient,
        config_store: ConfigStore,
        correlation: CorrelationCache,
        conversations: ConversationStateMachine,
        cooldown: CooldownGate,
        control: Optional[ControlClient] = None,
        auto_reply_cooldown: float = 3600.0,
        contacts_page_size: int = DEFAULT_PAGE_SIZE,
        recent_limit: int = 10,
    ):
        self.source = source
        self.config_store = config_store
        self.correlation = correlation
        self.conversations = conversations
        self.cooldown = cooldown
        self.control = control
        self.auto_reply_cooldown = auto_reply_cooldown
        self.contacts_page_size = contacts_page_size
        self.recent_limit = recent_limit

    def set_control(self, control: ControlClient):
        self.control = control

    @property
    def config(self) -> BridgeConfig:
        return self.config_store.config

    def is_authorized(self, chat_id: int) -> bool:
        """Only the control chat may operate the bridge once it is claimed."""
        owner_chat = self.config.control_channel_id
        return owner_chat is None or int(chat_id) == int(owner_chat)

    # ── Inbound (WhatsApp → Telegram) ─────────────────────────

    @staticmethod
    def display_name(msg: InboundMessage) -> str:
        if msg.is_group:
            return msg.chat_name or phone_of(msg.address)
        return msg.sender_name or msg.chat_name or msg.phone or phone_of(msg.address)

    async def handle_inbound(self, msg: InboundMessage):
        """Forward one inbound WhatsApp message to the control chat."""
        if msg.from_me:
            return

        name = self.display_name(msg)

        # Auto-reply first; the operator sees the message either way
        if not msg.is_group:
            await self._maybe_auto_reply(msg.address)

        phone = "" if msg.is_group else (msg.phone or user_phone(msg.address))
        correlation_id = self.correlation.record_inbound(msg.address, name, msg.is_group, phone=phone)

        chat_id = self.config.control_channel_id
        if chat_id is None:
            logger.warning("Control chat not set yet. Send /start to the Telegram bot.")
            return
        if self.control is None:
            logger.warning(f"No control client attached, dropping notification for {correlation_id}")
            return

        text = format_notification(
            correlation_id,
            name,
            msg.body,
            sender_name=msg.sender_name,
            is_group=msg.is_group,
        )
        buttons = [[
            Button("💬 Reply", ReplyTo(correlation_id)),
            Button("ℹ️ Info", ContactInfo(correlation_id)),
        ]]
        try:
            await self.control.notify(chat_id, text, buttons)
        except Exception as e:
            logger.error(f"Failed to notify control chat for {correlation_id}: {e}")

        if msg.has_media:
            await self._forward_media(chat_id, msg, name, correlation_id)

        logger.info(f"Forwarded message from {name} to Telegram ({correlation_id})")

    async def _maybe_auto_reply(self, address: str):
        auto = self.config.auto_reply
        if not auto.enabled or not auto.text:
            return
        if not self.cooldown.try_acquire(address, self.auto_reply_cooldown):
            return
        try:
            await self.source.send(address, auto.text)
            logger.info(f"Auto-reply sent to {address}")
        except Exception as e:
            logger.warning(f"Auto-reply to {address} failed: {e}")

    async def _forward_media(self, chat_id: int, msg: InboundMessage, name: str, correlation_id: str):
        try:
            media = await msg.fetch_media()
            if media is None:
                return
            caption = format_media_caption(media.kind, name, correlation_id)
            await self.control.send_media(
                chat_id, media.kind, media.data, caption, filename=media.filename or "file",
            )
        except Exception as e:
            logger.error(f"Error forwarding media for {correlation_id}: {e}")
            try:
                await self.control.notify(chat_id, f"⚠️ Failed to download media from {escape_html(name)}")
            except Exception as notify_err:
                logger.error(f"Failed to report media error: {notify_err}")

    async def handle_connection_change(self, connected: bool, reason: str = ""):
        """Tell the operator when WhatsApp connects or drops."""
        if connected:
            logger.info("WhatsApp connected")
            text = "✅ WhatsApp connected! The bridge is ready."
        else:
            logger.warning(f"WhatsApp disconnected: {reason}")
            text = f"❌ WhatsApp disconnected: {escape_html(reason or 'unknown reason')}"

        chat_id = self.config.control_channel_id
        if chat_id is None or self.control is None:
            return
        try:
            await self.control.notify(chat_id, text)
        except Exception as e:
            logger.error(f"Failed to send connection notice: {e}")

    # ── Commands ──────────────────────────────────────────────

    async def cmd_start(self, operator_id, chat_id: int) -> Reply:
        claimed = False
        note = ""
        if self.config.control_channel_id is None:
            claimed = True
            try:
                self.config_store.save({"control_channel_id": int(chat_id)})
            except ConfigWriteFailure as e:
                note = "\n\n" + classify_error(e)
            logger.info(f"Control chat set to {chat_id} by operator {operator_id}")

        buttons = [
            [Button("📊 Status", Menu("status")), Button("📋 Recent", Menu("list"))],
            [Button("📤 New message", Menu("send")), Button("👥 Contacts", Menu("contacts"))],
            [Button("❓ Help", Menu("help"))],
        ]
        return Reply(text=format_welcome(claimed) + note, buttons=buttons)

    async def cmd_help(self) -> Reply:
        return Reply(text=format_help())

    async def cmd_status(self) -> Reply:
        try:
            state = self.source.connection_state()
        except Exception as e:
            logger.warning(f"Could not read WhatsApp state: {e}")
            state = "UNKNOWN"
        return Reply(text=format_status(
            state,
            active_messages=len(self.correlation),
            total_forwarded=self.correlation.total_recorded,
            auto_reply_enabled=self.config.auto_reply.enabled,
        ))

    async def cmd_list(self) -> Reply:
        return Reply(text=format_recent(self.correlation.recent(self.recent_limit)))

    async def cmd_reply(self, operator_id, args_text: str) -> Reply:
        parts = (args_text or "").split(maxsplit=1)
        if len(parts) < 2:
            return _usage(
                "Use: <code>/reply &lt;msg_id&gt; &lt;text&gt;</code>\n"
                "Example: <code>/reply msg_5 Hello, thanks!</code>"
            )
        correlation_id, text = parts
        entry = self.correlation.resolve(correlation_id)
        if entry is None:
            return Reply(text=classify_error(NotFoundError(correlation_id)))
        return await self._relay(entry.address, entry.display_name, text)

    async def cmd_send(self, operator_id, args_text: str) -> Reply:
        parts = (args_text or "").split(maxsplit=1)
        if len(parts) < 2:
            return _usage(
                "Use: <code>/send &lt;number&gt; &lt;text&gt;</code>\n"
                "Example: <code>/send 628123456789 Hello from Telegram!</code>"
            )
        target, text = parts
        address = target if "@" in target else normalize_address(target, self.conversations.country_code)
        if not address:
            return Reply(text="❌ That doesn't look like a phone number. Use international format (628xxx).")
        return await self._relay(address, phone_of(address), text)

    async def cmd_cancel(self, operator_id) -> Reply:
        if self.conversations.cancel(operator_id):
            return Reply(text="✅ Cancelled.")
        return Reply(text="Nothing to cancel.")

    async def cmd_contacts(self, operator_id, args_text: str = "") -> Reply:
        arg = (args_text or "").strip()
        page_index = int(arg) - 1 if arg.isdigit() and int(arg) > 0 else 0
        return await self._contacts_page(page_index)

    async def cmd_autoreply(self, args_text: str = "") -> Reply:
        arg = (args_text or "").strip()
        action, _, rest = arg.partition(" ")
        action = action.lower()

        if not action:
            auto = self.config.auto_reply
            return Reply(text=format_autoreply(auto.enabled, auto.text))

        if action in ("on", "off"):
            patch = {"auto_reply": {"enabled": action == "on"}}
        elif action == "text" and rest.strip():
            patch = {"auto_reply": {"text": rest.strip()}}
        else:
            return _usage(
                "Use: <code>/autoreply on</code>, <code>/autoreply off</code> "
                "or <code>/autoreply text &lt;message&gt;</code>"
            )

        note = ""
        try:
            self.config_store.save(patch)
        except ConfigWriteFailure as e:
            note = "\n\n" + classify_error(e)
        auto = self.config.auto_reply
        logger.info(f"Auto-reply updated: enabled={auto.enabled}")
        return Reply(text=format_autoreply(auto.enabled, auto.text) + note)

    # ── Buttons ───────────────────────────────────────────────

    async def handle_callback(self, operator_id, data: str) -> Reply:
        """Dispatch one inline button press."""
        cb = decode_callback(data)
        if cb is None:
            logger.warning(f"Unknown callback data from {operator_id}: {data!r}")
            return Reply(text="❓ Unknown action.", alert=True)

        if isinstance(cb, ReplyTo):
            try:
                entry = self.conversations.begin_reply(operator_id, cb.correlation_id)
            except NotFoundError:
                return Reply(text="❌ Message expired!", alert=True)
            return Reply(
                text=f"💬 <b>Reply to: {escape_html(entry.display_name)}</b>\n\n"
                     "✍️ Type your message (or /cancel to abort):"
            )

        if isinstance(cb, ContactInfo):
            entry = self.correlation.resolve(cb.correlation_id)
            if entry is None:
                return Reply(text="❌ Message expired!", alert=True)
            row = [Button("💬 Reply", ReplyTo(cb.correlation_id))]
            if entry.phone:
                row.append(Button("📤 Share Contact", ShareContact(cb.correlation_id)))
            return Reply(text=format_contact_info(cb.correlation_id, entry), buttons=[row])

        if isinstance(cb, ShareContact):
            entry = self.correlation.resolve(cb.correlation_id)
            if entry is None:
                return Reply(text="❌ Message expired!", alert=True)
            if not entry.phone:
                return Reply(text="❌ No phone number known for this chat.", alert=True)
            return Reply(document=Attachment(
                filename=vcard_filename(entry.display_name),
                data=build_vcard(entry.display_name, entry.phone),
                caption=f"📇 Contact: {entry.display_name}\n📞 +{entry.phone}",
            ))

        if isinstance(cb, Menu):
            return await self._menu(cb.action)

        if isinstance(cb, ContactsPage):
            return await self._contacts_page(cb.page_index)

        if isinstance(cb, PickContact):
            name = await self._contact_name(cb.address)
            self.conversations.begin_send(operator_id, cb.address, name)
            return Reply(
                text=f"✍️ <b>New message to: {escape_html(name)}</b>\n\n"
                     "Type your message (or /cancel to abort):"
            )

        if isinstance(cb, ManualAddress):
            self.conversations.begin_manual_address(operator_id)
            return Reply(
                text="⌨️ Type the WhatsApp number (e.g. <code>0812…</code> or "
                     "<code>62812…</code>), or /cancel:"
            )

        if isinstance(cb, CancelAction):
            return await self.cmd_cancel(operator_id)

        raise TypeError(f"Unhandled callback type: {type(cb).__name__}")

    async def _menu(self, action: str) -> Reply:
        if action == "status":
            return await self.cmd_status()
        if action == "list":
            return await self.cmd_list()
        if action == "help":
            return await self.cmd_help()
        if action == "contacts":
            return await self._contacts_page(0)
        # "send"
        return Reply(
            text="📤 <b>New message</b>\n\n"
                 "Format: <code>/send &lt;number&gt; &lt;text&gt;</code>\n"
                 "Example: <code>/send 628123456789 Hello from Telegram!</code>\n\n"
                 "Or pick a chat / type a number:",
            buttons=[[
                Button("👥 Contacts", ContactsPage(0)),
                Button("⌨️ Type a number", ManualAddress()),
            ]],
        )

    async def _fetch_contacts(self) -> list[Contact]:
        if self.source.connection_state() != CONNECTED:
            raise SourceDisconnected()
        contacts = await self.source.list_contacts()
        return [c for c in contacts if fits(PickContact(c.address))]

    async def _contact_name(self, address: str) -> str:
        try:
            for contact in await self.source.list_contacts():
                if contact.address == address:
                    return contact.name or phone_of(address)
        except Exception as e:
            logger.debug(f"Contact lookup for {address} failed: {e}")
        return phone_of(address)

    async def _contacts_page(self, page_index: int) -> Reply:
        try:
            contacts = await self._fetch_contacts()
        except Exception as e:
            logger.warning(f"Could not list contacts: {e}")
            return Reply(text=classify_error(e))

        if not contacts:
            return Reply(
                text="📭 No chats found yet.",
                buttons=[[Button("⌨️ Type a number", ManualAddress())]],
            )

        pages = page_count(len(contacts), self.contacts_page_size)
        page_index = min(page_index, pages - 1)
        window = page(contacts, self.contacts_page_size, page_index)

        buttons = []
        for contact in window.rows:
            icon = "👥" if contact.is_group else "👤"
            label = f"{icon} {contact.name or phone_of(contact.address)}"
            if len(label) > _LABEL_MAX:
                label = label[:_LABEL_MAX - 1] + "…"
            buttons.append([Button(label, PickContact(contact.address))])

        nav = []
        if window.has_prev:
            nav.append(Button("◀️ Prev", ContactsPage(page_index - 1)))
        if window.has_next:
            nav.append(Button("Next ▶️", ContactsPage(page_index + 1)))
        if nav:
            buttons.append(nav)
        buttons.append([
            Button("⌨️ Type a number", ManualAddress()),
            Button("❌ Cancel", CancelAction()),
        ])

        return Reply(
            text=format_contacts_header(page_index, pages, len(contacts)),
            buttons=buttons,
        )

    # ── Plain text ────────────────────────────────────────────

    async def handle_text(self, operator_id, text: str) -> Optional[Reply]:
        """Interpret a non-command message. None means stay silent."""
        outcome = self.conversations.consume(operator_id, text)

        if isinstance(outcome, Ignored):
            return None
        if isinstance(outcome, Relay):
            return await self._relay(outcome.address, outcome.display_name, outcome.text)
        if isinstance(outcome, TargetExpired):
            return Reply(text="❌ The message you were replying to has expired. Use /list to find it again.")
        if isinstance(outcome, AddressAccepted):
            return Reply(
                text=f"✍️ <b>New message to: {escape_html(outcome.address)}</b>\n\n"
                     "Type your message (or /cancel to abort):"
            )
        if isinstance(outcome, InvalidAddress):
            return Reply(text="❌ That doesn't look like a phone number. Try again or /cancel.")

        raise TypeError(f"Unhandled outcome type: {type(outcome).__name__}")

    async def _relay(self, address: str, display_name: str, text: str) -> Reply:
        """Exactly one send attempt to WhatsApp, result reported back."""
        try:
            if self.source.connection_state() != CONNECTED:
                raise SourceDisconnected()
            await self.source.send(address, text)
        except Exception as e:
            logger.error(f"Error sending to {address}: {e}")
            return Reply(text=classify_error(e))

        logger.info(f"Message sent to {display_name} ({address})")
        return Reply(text=format_sent(display_name, address, text))
