"""Persisted operator configuration.

Small JSON document, read at startup and rewritten on every mutating
command (/start claiming the control chat, /autoreply ...):

    {
      "control_channel_id": 123456789,
      "auto_reply": {"enabled": false, "text": "..."}
    }

The in-memory copy is authoritative. If a write fails the change still
applies for this process, ConfigWriteFailure is raised so the caller can
tell the operator, and the next successful save persists everything.
"""

import json
import logging
import os
import tempfile
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigWriteFailure

logger = logging.getLogger("wabridge.store")

DEFAULT_AUTO_REPLY_TEXT = (
    "Thanks for your message! I'm not available right now and will get back to you soon."
)


class AutoReplyConfig(BaseModel):
    enabled: bool = False
    text: str = DEFAULT_AUTO_REPLY_TEXT


class BridgeConfig(BaseModel):
    control_channel_id: Optional[int] = None
    auto_reply: AutoReplyConfig = Field(default_factory=AutoReplyConfig)


def _deep_merge(base: dict, patch: dict) -> dict:
    merged = dict(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigStore:
    """Load/save BridgeConfig as JSON at `path`."""

    def __init__(self, path: str):
        self.path = os.path.expanduser(path)
        self._config = BridgeConfig()

    @property
    def config(self) -> BridgeConfig:
        return self._config

    def load(self) -> BridgeConfig:
        """Read the file. Missing or unreadable files yield defaults."""
        if not os.path.exists(self.path):
            logger.info(f"No config at {self.path}, using defaults")
            self._config = BridgeConfig()
            return self._config

        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
            self._config = BridgeConfig.model_validate(raw)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Failed to read config {self.path}, using defaults: {e}")
            self._config = BridgeConfig()
        return self._config

    def save(self, patch: Optional[dict[str, Any]] = None) -> BridgeConfig:
        """Merge patch into the config, apply it in memory, then write.

        Raises:
            ValueError: patch does not validate (nothing is applied).
            ConfigWriteFailure: applied in memory but not written to disk.
        """
        if patch:
            merged = _deep_merge(self._config.model_dump(), patch)
            try:
                self._config = BridgeConfig.model_validate(merged)
            except ValidationError as e:
                raise ValueError(f"Invalid config patch: {e}") from e

        try:
            self._write(self._config)
        except OSError as e:
            logger.error(f"Failed to write config {self.path}: {e}")
            raise ConfigWriteFailure(str(e)) from e

        logger.info(f"Config saved to {self.path}")
        return self._config

    def _write(self, config: BridgeConfig):
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".config-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(config.model_dump_json(indent=2))
            os.replace(tmp_path, self.path)
        except OSError:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
