"""Shared utilities for wabridge CLI commands."""

from rich.console import Console

from wabridge.config import load_settings
from wabridge.store import ConfigStore

console = Console()


def _open_store() -> ConfigStore:
    """Load the persisted operator config named by the current settings."""
    settings = load_settings()
    store = ConfigStore(settings.config_path)
    store.load()
    return store
