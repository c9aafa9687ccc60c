"""Unit tests for configuration management."""
from pathlib import Path

from simple_signal.utils.config import Config, Settings, load_config, save_config


def test_load_default_config():
    """Test loading the shipped default configuration."""
    config = load_config(Path(__file__).parents[2] / "configs" / "default.yaml")

    assert isinstance(config, Config)
    assert config.relay.port == 8765
    assert config.client.connection_timeout == 10.0
    assert config.rtc.ice_servers


def test_missing_file_falls_back_to_defaults(temp_dir):
    config = load_config(temp_dir / "does-not-exist.yaml")

    assert config == Config()


def test_partial_file_keeps_other_defaults(temp_dir):
    path = temp_dir / "partial.yaml"
    path.write_text("relay:\n  port: 9000\nclient:\n  connection_timeout: null\n")

    config = load_config(str(path))

    assert config.relay.port == 9000
    assert config.relay.host == "0.0.0.0"
    assert config.client.connection_timeout is None
    assert config.rtc.channel_label == "simple-signal"


def test_empty_file_yields_defaults(temp_dir):
    path = temp_dir / "empty.yaml"
    path.write_text("")

    assert load_config(path) == Config()


def test_save_and_reload(temp_dir):
    config = Config()
    config.relay.port = 7000
    config.rtc.ice_servers = []
    path = temp_dir / "saved.yaml"

    save_config(config, path)

    assert load_config(path) == config


def test_settings_from_environment(monkeypatch):
    """Test that settings are read from environment variables."""
    monkeypatch.setenv("SIGNALING_PORT", "9100")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("CONNECTION_TIMEOUT", "2.5")

    settings = Settings()

    assert settings.signaling_port == 9100
    assert settings.log_level == "DEBUG"
    assert settings.connection_timeout == 2.5
