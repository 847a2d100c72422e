"""Tests for the config CLI commands."""

import json

import pytest
from click.testing import CliRunner

from wabridge.cli import cli


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    monkeypatch.setenv("WABRIDGE_CONFIG_FILE", str(path))
    monkeypatch.setenv("WABRIDGE_TELEGRAM_BOT_TOKEN", "123:abc")
    return path


class TestConfigCommands:
    def test_autoreply_on_with_text(self, config_file):
        result = CliRunner().invoke(cli, ["config", "autoreply", "on", "--text", "Away today"])
        assert result.exit_code == 0, result.output
        saved = json.loads(config_file.read_text())
        assert saved["auto_reply"] == {"enabled": True, "text": "Away today"}

    def test_autoreply_rejects_unknown_state(self, config_file):
        result = CliRunner().invoke(cli, ["config", "autoreply", "maybe"])
        assert result.exit_code != 0
        assert not config_file.exists()

    def test_chat(self, config_file):
        result = CliRunner().invoke(cli, ["config", "chat", "--", "-100123"])
        assert result.exit_code == 0, result.output
        assert json.loads(config_file.read_text())["control_channel_id"] == -100123

    def test_show(self, config_file):
        result = CliRunner().invoke(cli, ["config", "show"])
        assert result.exit_code == 0, result.output
