"""wabridge — WhatsApp to Telegram relay with one-tap replies."""

__version__ = "0.2.0"
