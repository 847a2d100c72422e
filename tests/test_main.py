"""Tests for startup wiring in wabridge.main."""

import logging
from unittest.mock import patch

from wabridge.main import _seed_control_chat


class TestSeedControlChat:
    def test_seed_persisted(self, config_store, caplog):
        caplog.set_level(logging.INFO, logger="wabridge")
        _seed_control_chat(config_store, "-100123")

        assert config_store.config.control_channel_id == -100123
        assert "seeded from settings: -100123" in caplog.text
        assert "not persisted" not in caplog.text

    def test_write_failure_logs_warning_only(self, config_store, caplog):
        caplog.set_level(logging.INFO, logger="wabridge")
        with patch.object(config_store, "_write", side_effect=OSError("read-only")):
            _seed_control_chat(config_store, 777)

        assert config_store.config.control_channel_id == 777
        assert "seeded from settings: 777" not in caplog.text
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert any("not persisted" in r.getMessage() for r in warnings)

    def test_claimed_chat_not_overridden(self, claimed_store):
        _seed_control_chat(claimed_store, 777)
        assert claimed_store.config.control_channel_id == 555

    def test_no_seed_configured(self, config_store):
        _seed_control_chat(config_store, None)
        assert config_store.config.control_channel_id is None
