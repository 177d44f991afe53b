import json
from dataclasses import replace
from pathlib import Path

import pytest

from liftsync.config import (
    ConfigError,
    RateLimitSettings,
    ServerSettings,
    Settings,
    StorageSettings,
    load_settings,
)

CUSTOM_TOML = """
[server]
host = "custom_host"
port = 8080

[storage]
path = "custom_data"

[rate_limit]
max_requests = 150
window_secs = 90
"""


def _write_toml(tmp_path, name="config.toml", content=CUSTOM_TOML):
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return path


def test_default_settings():
    settings = Settings()
    assert settings.server.port == 8080
    assert settings.server.host == "127.0.0.1"
    assert settings.storage.path == Path("data")
    assert settings.rate_limit == RateLimitSettings(max_requests=100, window_secs=60)


def test_custom_config_from_toml(tmp_path):
    path = _write_toml(tmp_path)
    settings = Settings.load(path, environ={})
    assert settings.server.port == 8080
    assert settings.server.host == "custom_host"
    assert settings.storage.path == Path("custom_data")
    assert settings.rate_limit == RateLimitSettings(max_requests=150, window_secs=90)


def test_environment_override(tmp_path):
    path = _write_toml(tmp_path)
    settings = Settings.load(
        path, environ={"APP_SERVER__PORT": "9000", "APP_SERVER__HOST": "custom_host"}
    )
    assert settings.server.port == 9000
    assert settings.server.host == "custom_host"
    assert settings.rate_limit.max_requests == 150


def test_unprefixed_environment_is_ignored(tmp_path):
    path = _write_toml(tmp_path)
    settings = Settings.load(path, environ={"OTHER_SERVER__PORT": "9000"})
    assert settings.server.port == 8080


def test_name_without_extension_finds_toml(tmp_path):
    _write_toml(tmp_path, "default.toml")
    settings = Settings.load(tmp_path / "default", environ={})
    assert settings.storage.path == Path("custom_data")


def test_json_file(tmp_path):
    data = {
        "server": {"host": "custom_host", "port": 8080},
        "storage": {"path": "custom_data"},
        "rate_limit": {"max_requests": 150, "window_secs": 90},
    }
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    assert Settings.load(path, environ={}) == Settings.from_mapping(data)


def test_from_mapping_matches_constructed_settings():
    data = {
        "server": {"host": "custom_host", "port": 8080},
        "storage": {"path": "custom_data"},
        "rate_limit": {"max_requests": 150, "window_secs": 90},
    }
    expected = Settings(
        server=ServerSettings(host="custom_host", port=8080),
        storage=StorageSettings(path=Path("custom_data")),
        rate_limit=RateLimitSettings(window_secs=90, max_requests=150),
    )
    assert Settings.from_mapping(data) == expected
    assert replace(expected, server=ServerSettings("custom_host", 9000)).server.port == 9000


def test_missing_file_raises(tmp_path):
    with pytest.raises(ConfigError):
        Settings.load(tmp_path / "absent", environ={})


def test_missing_section_raises():
    with pytest.raises(ConfigError):
        Settings.from_mapping({"server": {"host": "h", "port": 1}, "storage": {"path": "p"}})


def test_missing_field_raises(tmp_path):
    path = _write_toml(tmp_path, content=CUSTOM_TOML.replace("port = 8080", ""))
    with pytest.raises(ConfigError):
        Settings.load(path, environ={})


def test_port_out_of_range_raises(tmp_path):
    path = _write_toml(tmp_path)
    with pytest.raises(ConfigError):
        Settings.load(path, environ={"APP_SERVER__PORT": "70000"})


def test_non_numeric_override_raises(tmp_path):
    path = _write_toml(tmp_path)
    with pytest.raises(ConfigError):
        Settings.load(path, environ={"APP_RATE_LIMIT__WINDOW_SECS": "soon"})


def test_malformed_toml_raises(tmp_path):
    path = _write_toml(tmp_path, content="[server\nhost = ")
    with pytest.raises(ConfigError):
        Settings.load(path, environ={})


def test_load_settings_uses_process_environment(tmp_path, monkeypatch):
    path = _write_toml(tmp_path)
    monkeypatch.setenv("APP_RATE_LIMIT__MAX_REQUESTS", "100")
    settings = load_settings(path)
    assert settings.rate_limit == RateLimitSettings(max_requests=100, window_secs=90)