"""
Tests for config loading and runtime settings.
"""

import json

import pytest

from anveshak import config as config_mod
from anveshak.config import (
    DEFAULT_BASE_URL,
    SETTINGS_KEY,
    Settings,
    load_config,
    load_settings,
    save_settings,
)
from anveshak.storage.kv import MemoryKVStore


@pytest.fixture(autouse=True)
def _fresh_config():
    config_mod.reset_config()
    yield
    config_mod.reset_config()


def test_missing_file_uses_defaults(tmp_path):
    """Without a config file every section falls back to built-in defaults."""
    cfg = load_config(tmp_path / "nope.yaml")
    assert cfg["loop"]["max_turns"] == 10
    assert cfg["sandbox"]["timeout_ms"] == 2000
    assert cfg["decoder"]["content_mode"] == "cumulative"


def test_yaml_overrides_and_env_substitution(tmp_path, monkeypatch):
    """YAML values override defaults and ${VAR} is substituted."""
    monkeypatch.setenv("ANVESHAK_TEST_KEY", "sk-test")
    path = tmp_path / "config.yaml"
    path.write_text(
        "backend:\n"
        "  api_key: ${ANVESHAK_TEST_KEY}\n"
        "loop:\n"
        "  max_turns: 3\n"
    )
    cfg = load_config(path)
    assert cfg["backend"]["api_key"] == "sk-test"
    assert cfg["backend"]["timeout"] == 120
    assert cfg["loop"]["max_turns"] == 3


def test_settings_defaults_from_config():
    """Empty stored settings fall back to config values."""
    cfg = {"backend": {"api_key": "from-config", "default_model": "gpt-4o-mini"}}
    settings = load_settings(MemoryKVStore(), cfg)
    assert settings.base_url == DEFAULT_BASE_URL
    assert settings.api_key == "from-config"
    assert settings.model == "gpt-4o-mini"
    assert settings.tools_enabled is True
    assert settings.configured


def test_settings_roundtrip():
    """Saved settings are stored as camelCase JSON and read back."""
    kv = MemoryKVStore()
    save_settings(kv, Settings(base_url="https://aipipe.org/openai/v1", api_key="k", model="m",
                               tools_enabled=False))
    raw = json.loads(kv.get(SETTINGS_KEY))
    assert raw["baseUrl"] == "https://aipipe.org/openai/v1"
    assert raw["toolsEnabled"] is False

    loaded = load_settings(kv, {})
    assert loaded.tools_enabled is False
    assert loaded.model == "m"


def test_corrupt_settings_ignored():
    """Unreadable settings JSON falls back to defaults."""
    kv = MemoryKVStore({SETTINGS_KEY: "{oops"})
    assert load_settings(kv, {}).base_url == DEFAULT_BASE_URL
