"""Tests for the persisted operator config."""

import json
from unittest.mock import patch

import pytest

from wabridge.errors import ConfigWriteFailure
from wabridge.store import DEFAULT_AUTO_REPLY_TEXT, ConfigStore


class TestLoad:
    def test_missing_file_gives_defaults(self, tmp_path):
        store = ConfigStore(str(tmp_path / "nope.json"))
        cfg = store.load()
        assert cfg.control_channel_id is None
        assert cfg.auto_reply.enabled is False
        assert cfg.auto_reply.text == DEFAULT_AUTO_REPLY_TEXT

    def test_corrupt_file_gives_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        assert ConfigStore(str(path)).load().control_channel_id is None

    def test_partial_file_fills_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"auto_reply": {"enabled": True}}))
        cfg = ConfigStore(str(path)).load()
        assert cfg.auto_reply.enabled is True
        assert cfg.auto_reply.text == DEFAULT_AUTO_REPLY_TEXT


class TestSave:
    def test_round_trip_through_disk(self, tmp_path):
        path = tmp_path / "sub" / "config.json"
        store = ConfigStore(str(path))
        store.save({"control_channel_id": 99, "auto_reply": {"enabled": True}})

        raw = json.loads(path.read_text())
        assert raw["control_channel_id"] == 99
        assert raw["auto_reply"]["enabled"] is True

        reloaded = ConfigStore(str(path)).load()
        assert reloaded.control_channel_id == 99

    def test_patch_merges_nested(self, config_store):
        config_store.save({"auto_reply": {"text": "Away"}})
        config_store.save({"auto_reply": {"enabled": True}})
        assert config_store.config.auto_reply.text == "Away"
        assert config_store.config.auto_reply.enabled is True

    def test_invalid_patch_applies_nothing(self, config_store):
        with pytest.raises(ValueError):
            config_store.save({"control_channel_id": "not-a-number"})
        assert config_store.config.control_channel_id is None

    def test_write_failure_keeps_memory_copy(self, config_store):
        with patch.object(config_store, "_write", side_effect=OSError("disk full")):
            with pytest.raises(ConfigWriteFailure):
                config_store.save({"auto_reply": {"enabled": True}})
        assert config_store.config.auto_reply.enabled is True

    def test_no_temp_files_left_behind(self, tmp_path):
        store = ConfigStore(str(tmp_path / "config.json"))
        store.save({"control_channel_id": 1})
        store.save({"control_channel_id": 2})
        assert sorted(p.name for p in tmp_path.iterdir()) == ["config.json"]
