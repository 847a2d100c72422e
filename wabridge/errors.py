"""Bridge error taxonomy and operator-facing error classification."""

import asyncio


class BridgeError(Exception):
    """Base class for all bridge errors."""
    pass

class NotFoundError(BridgeError):
    """Correlation id or conversation state is absent or expired."""
    pass

class SendFailure(BridgeError):
    """Outbound call to WhatsApp or Telegram failed."""
    pass

class ConfigWriteFailure(BridgeError):
    """Persisted configuration could not be written.

    The in-memory configuration stays authoritative until the next
    successful write.
    """
    pass

class SourceDisconnected(BridgeError):
    """WhatsApp is not connected right now."""
    pass


def classify_error(e: Exception) -> str:
    """Classify any exception into a short message for the operator.

    Never raises. The result is plain text, suitable for sending as-is.
    """
    if isinstance(e, NotFoundError):
        return "❌ Message ID not found or expired. Use /list to see recent messages."
    if isinstance(e, SourceDisconnected):
        return "❌ WhatsApp is disconnected. Check /status and try again."
    if isinstance(e, ConfigWriteFailure):
        return "⚠️ Setting applied, but it could not be saved to disk."

    # Timeouts before generic send failures: wacli calls are bounded by wait_for
    if isinstance(e, asyncio.TimeoutError):
        return "❌ WhatsApp did not respond in time. Please try again."
    if isinstance(e, SendFailure):
        msg = str(e).lower()
        if "not a valid" in msg or "invalid" in msg:
            return "❌ Failed to send: the number does not look valid."
        return "❌ Failed to send message. Make sure WhatsApp is still connected."

    if isinstance(e, (ConnectionError, OSError)):
        return "❌ Network error while talking to WhatsApp. Please try again."

    type_name = type(e).__name__
    return f"❌ Something went wrong ({type_name}). Check logs for details."
