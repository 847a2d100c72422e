"""wabridge — Main entry point."""

import asyncio
import logging
import os
import signal

from .bridge import Bridge
from .cache import CorrelationCache
from .channels.telegram import TelegramChannel
from .channels.whatsapp import WhatsAppClient
from .config import load_settings
from .conversation import ConversationStateMachine
from .cooldown import CooldownGate
from .errors import ConfigWriteFailure
from .store import ConfigStore

_log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_log_file = os.path.expanduser("~/wabridge.log")

logger = logging.getLogger("wabridge")

_SWEEP_INTERVAL = 60.0


def setup_logging(level: int = logging.INFO):
    """Console plus ~/wabridge.log, same format for both."""
    logging.basicConfig(
        level=level,
        format=_log_format,
        handlers=[
            logging.StreamHandler(),                           # stderr (console)
            logging.FileHandler(_log_file, encoding="utf-8"),  # ~/wabridge.log
        ],
    )
    # Polling logs every getUpdates request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _seed_control_chat(store: ConfigStore, chat_id):
    """Use WABRIDGE_TELEGRAM_CHAT_ID only when no chat has been claimed yet."""
    if chat_id is None or store.config.control_channel_id is not None:
        return
    try:
        store.save({"control_channel_id": int(chat_id)})
    except ConfigWriteFailure:
        logger.warning(f"Control chat {chat_id} seeded from settings but not persisted")
    else:
        logger.info(f"Control chat seeded from settings: {chat_id}")


async def run():
    """Main run loop."""
    settings = load_settings()
    if not settings.telegram_bot_token:
        logger.error("No Telegram bot token configured. Set WABRIDGE_TELEGRAM_BOT_TOKEN in .env.")
        return

    config_store = ConfigStore(settings.config_path)
    config_store.load()
    _seed_control_chat(config_store, settings.telegram_chat_id)

    correlation = CorrelationCache(ttl=settings.message_ttl)
    conversations = ConversationStateMachine(
        correlation,
        ttl=settings.state_ttl,
        country_code=settings.country_code,
    )
    cooldown = CooldownGate()

    whatsapp = WhatsAppClient(
        wacli_path=settings.wacli_path,
        db_path=settings.wacli_db,
        poll_interval=settings.poll_interval,
        session_db=settings.wacli_session_db,
    )
    bridge = Bridge(
        whatsapp,
        config_store,
        correlation,
        conversations,
        cooldown,
        auto_reply_cooldown=settings.auto_reply_cooldown,
        contacts_page_size=settings.contacts_page_size,
        recent_limit=settings.recent_limit,
    )
    telegram = TelegramChannel(bridge, settings.telegram_bot_token)
    bridge.set_control(telegram)
    whatsapp.set_message_handler(bridge.handle_inbound)
    whatsapp.set_state_handler(bridge.handle_connection_change)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows: fall back to KeyboardInterrupt
            pass

    sweepers = []
    telegram_started = False
    try:
        await telegram.start()
        telegram_started = True
        logger.info("Telegram channel active.")

        if await whatsapp.start():
            logger.info("WhatsApp bridge active.")
        else:
            logger.warning("WhatsApp failed to start; commands will report it as disconnected.")

        for store in (correlation.store, conversations.store, cooldown.store):
            sweepers.append(asyncio.create_task(store.run_sweeper(_SWEEP_INTERVAL)))

        logger.info("wabridge is running. Press Ctrl+C to stop.")
        await stop_event.wait()

    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    except Exception as e:
        logger.critical(f"Fatal error: {type(e).__name__}: {e}", exc_info=True)
    finally:
        for task in sweepers:
            task.cancel()
        await asyncio.gather(*sweepers, return_exceptions=True)
        await whatsapp.stop()
        if telegram_started:
            await telegram.stop()
        logger.info("wabridge stopped.")


def main():
    """Entry point."""
    setup_logging()
    asyncio.run(run())


if __name__ == "__main__":
    main()
