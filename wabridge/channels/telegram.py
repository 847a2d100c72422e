"""Telegram control channel.

Thin adapter: every update is translated into a Bridge call, and the
returned Reply is rendered back (HTML text, inline keyboard, document,
or a popup alert on the pressed button). It also implements
ControlClient so the bridge can push notifications and media.
"""

import io
import logging
from typing import Optional

from telegram import (
    BotCommand,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    InputFile,
    Update,
)
from telegram.error import BadRequest, TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from ..bridge import Bridge
from ..errors import SendFailure
from ..formatting import split_message
from ..interfaces import Button, ControlClient, Reply

logger = logging.getLogger("wabridge.telegram")

BOT_COMMANDS = [
    ("start", "Welcome message and menu"),
    ("help", "How to use the bridge"),
    ("status", "WhatsApp connection status"),
    ("list", "Most recent messages"),
    ("reply", "Reply: /reply <msg_id> <text>"),
    ("send", "New message: /send <number> <text>"),
    ("contacts", "Pick a chat to message"),
    ("autoreply", "Show or change the auto-reply"),
    ("cancel", "Cancel a pending reply"),
]


def build_markup(buttons: Optional[list[list[Button]]]) -> Optional[InlineKeyboardMarkup]:
    """Render bridge buttons as an inline keyboard (None when empty)."""
    if not buttons:
        return None
    keyboard = [
        [InlineKeyboardButton(b.label, callback_data=b.callback.to_data()) for b in row]
        for row in buttons
        if row
    ]
    return InlineKeyboardMarkup(keyboard) if keyboard else None


class TelegramChannel(ControlClient):
    """Telegram bot adapter for the bridge."""

    def __init__(self, bridge: Bridge, bot_token: str):
        self.bridge = bridge
        self.bot_token = bot_token
        self.app: Optional[Application] = None

    async def start(self):
        """Start the Telegram bot (polling)."""
        self.app = Application.builder().token(self.bot_token).build()

        self.app.add_handler(CommandHandler("start", self._cmd_start))
        self.app.add_handler(CommandHandler("help", self._cmd_help))
        self.app.add_handler(CommandHandler("status", self._cmd_status))
        self.app.add_handler(CommandHandler("list", self._cmd_list))
        self.app.add_handler(CommandHandler("reply", self._cmd_reply))
        self.app.add_handler(CommandHandler("send", self._cmd_send))
        self.app.add_handler(CommandHandler("contacts", self._cmd_contacts))
        self.app.add_handler(CommandHandler("autoreply", self._cmd_autoreply))
        self.app.add_handler(CommandHandler("cancel", self._cmd_cancel))

        # Plain text: only meaningful while a conversation state is active
        self.app.add_handler(MessageHandler(
            filters.TEXT & ~filters.COMMAND,
            self._handle_text,
        ))

        self.app.add_handler(CallbackQueryHandler(self._handle_callback))
        self.app.add_error_handler(self._handle_error)

        logger.info("Starting Telegram bot...")
        await self.app.initialize()
        await self.app.start()
        await self.app.updater.start_polling(drop_pending_updates=True)

        try:
            await self.app.bot.set_my_commands([BotCommand(n, d) for n, d in BOT_COMMANDS])
        except TelegramError as e:
            logger.warning(f"Failed to register bot commands: {e}")

        logger.info("Telegram bot started.")

    async def stop(self):
        """Stop the Telegram bot."""
        if self.app:
            await self.app.updater.stop()
            await self.app.stop()
            await self.app.shutdown()
            logger.info("Telegram bot stopped.")

    # ── ControlClient ─────────────────────────────────────────

    async def notify(self, chat_id: int, text: str, buttons: Optional[list[list[Button]]] = None):
        """Send HTML text; buttons go on the last chunk. Raises SendFailure."""
        if not self.app:
            raise SendFailure("Telegram bot not started")
        bot = self.app.bot
        chunks = split_message(text) or [""]
        markup = build_markup(buttons)
        try:
            for i, chunk in enumerate(chunks):
                rm = markup if i == len(chunks) - 1 else None
                try:
                    await bot.send_message(chat_id=chat_id, text=chunk, parse_mode="HTML", reply_markup=rm)
                except BadRequest as e:
                    # HTML rejected (e.g. a tag cut by splitting): resend as plain text
                    logger.debug(f"HTML send failed, retrying as plain text: {e}")
                    await bot.send_message(chat_id=chat_id, text=chunk, reply_markup=rm)
        except TelegramError as e:
            raise SendFailure(f"Telegram send failed: {e}") from e

    async def send_media(
        self,
        chat_id: int,
        kind: str,
        data: bytes,
        caption: str,
        filename: Optional[str] = None,
    ):
        if not self.app:
            raise SendFailure("Telegram bot not started")
        bot = self.app.bot
        payload = InputFile(io.BytesIO(data), filename=filename or "file")
        try:
            if kind == "photo":
                await bot.send_photo(chat_id=chat_id, photo=payload, caption=caption)
            elif kind == "video":
                await bot.send_video(chat_id=chat_id, video=payload, caption=caption)
            elif kind == "audio":
                await bot.send_audio(chat_id=chat_id, audio=payload, caption=caption)
            else:
                await bot.send_document(chat_id=chat_id, document=payload, caption=caption)
        except TelegramError as e:
            raise SendFailure(f"Telegram media send failed: {e}") from e
        logger.info(f"Sent {kind} to {chat_id}")

    # ── Rendering ─────────────────────────────────────────────

    async def _render(self, chat_id: int, reply: Optional[Reply]):
        if reply is None:
            return
        if reply.document:
            doc = reply.document
            await self.app.bot.send_document(
                chat_id=chat_id,
                document=InputFile(io.BytesIO(doc.data), filename=doc.filename),
                caption=doc.caption or None,
            )
        if reply.text:
            await self.notify(chat_id, reply.text, reply.buttons)

    def _authorized(self, update: Update) -> bool:
        chat = update.effective_chat
        if chat is None:
            return False
        if self.bridge.is_authorized(chat.id):
            return True
        logger.warning(f"Ignoring update from unauthorized chat {chat.id}")
        return False

    @staticmethod
    def _args(context: ContextTypes.DEFAULT_TYPE) -> str:
        return " ".join(context.args or [])

    @staticmethod
    def _operator(update: Update) -> str:
        return str(update.effective_user.id)

    # ── Commands ──────────────────────────────────────────────

    async def _cmd_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /start — claims the control chat on first use."""
        if not self._authorized(update):
            return
        reply = await self.bridge.cmd_start(self._operator(update), update.effective_chat.id)
        await self._render(update.effective_chat.id, reply)

    async def _cmd_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._authorized(update):
            return
        await self._render(update.effective_chat.id, await self.bridge.cmd_help())

    async def _cmd_status(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._authorized(update):
            return
        await self._render(update.effective_chat.id, await self.bridge.cmd_status())

    async def _cmd_list(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._authorized(update):
            return
        await self._render(update.effective_chat.id, await self.bridge.cmd_list())

    async def _cmd_reply(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /reply <msg_id> <text>."""
        if not self._authorized(update):
            return
        reply = await self.bridge.cmd_reply(self._operator(update), self._args(context))
        await self._render(update.effective_chat.id, reply)

    async def _cmd_send(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /send <number> <text>."""
        if not self._authorized(update):
            return
        reply = await self.bridge.cmd_send(self._operator(update), self._args(context))
        await self._render(update.effective_chat.id, reply)

    async def _cmd_contacts(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._authorized(update):
            return
        reply = await self.bridge.cmd_contacts(self._operator(update), self._args(context))
        await self._render(update.effective_chat.id, reply)

    async def _cmd_autoreply(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._authorized(update):
            return
        await self._render(update.effective_chat.id, await self.bridge.cmd_autoreply(self._args(context)))

    async def _cmd_cancel(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not self._authorized(update):
            return
        await self._render(update.effective_chat.id, await self.bridge.cmd_cancel(self._operator(update)))

    # ── Text & buttons ────────────────────────────────────────

    async def _handle_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Plain text: routed by conversation state, silently dropped when idle."""
        message = update.effective_message
        user = update.effective_user
        if not message or not message.text or not user or user.is_bot:
            return
        if not self._authorized(update):
            return
        reply = await self.bridge.handle_text(str(user.id), message.text)
        await self._render(update.effective_chat.id, reply)

    async def _handle_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle inline button presses."""
        query = update.callback_query
        if query is None:
            return
        if not self._authorized(update):
            await query.answer("⚠️ Not allowed.", show_alert=True)
            return

        reply = await self.bridge.handle_callback(str(query.from_user.id), query.data or "")

        if reply.alert:
            await query.answer(reply.text, show_alert=True)
            return
        await query.answer()
        await self._render(query.message.chat_id, reply)

    async def _handle_error(self, update: object, context: ContextTypes.DEFAULT_TYPE):
        """Handle errors."""
        logger.error(f"Telegram error: {context.error}", exc_info=context.error)
