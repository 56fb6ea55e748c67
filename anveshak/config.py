"""
Config loader for anveshak.
Reads config.yaml once at startup. All other modules import from here.

Two layers:
  - static config (config.yaml, ${ENV_VAR} substituted, .env loaded)
  - runtime Settings (provider URL, keys, model) kept in the key-value
    store under "agentSettings", editable from the CLI
"""

from __future__ import annotations

import copy
import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

_CONFIG_PATH = Path(os.environ.get(
    "ANVESHAK_CONFIG", Path(__file__).parent.parent / "config.yaml"
))

SETTINGS_KEY = "agentSettings"
DEFAULT_BASE_URL = "https://api.openai.com/v1"

DEFAULTS: dict = {
    "backend": {
        "base_url": DEFAULT_BASE_URL,
        "api_key": "",
        "timeout": 120,
    },
    "loop": {"max_turns": 10},
    "decoder": {"content_mode": "cumulative"},
    "sandbox": {"timeout_ms": 2000, "max_output_chars": 4000},
    "tools": {
        "google_search": {"enabled": True, "api_key": "", "max_results": 5},
        "aipipe": {"enabled": True, "api_key": "", "max_output_chars": 8000},
        "execute_python": {"enabled": True},
        "open_in_browser": {"enabled": True},
        "memory": {"enabled": True},
    },
    "storage": {"path": "./data/anveshak.db"},
    "title": {"enabled": True},
    "logging": {"level": "WARNING", "file": None},
}

_config: dict | None = None


def _resolve_env_vars(value: str) -> str:
    """Replace ${ENV_VAR} patterns with actual environment variable values."""
    def replacer(match):
        return os.environ.get(match.group(1), "")
    return re.sub(r"\$\{(\w+)\}", replacer, value)


def _walk_and_resolve(obj):
    """Recursively resolve env vars in all string values."""
    if isinstance(obj, dict):
        return {k: _walk_and_resolve(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_walk_and_resolve(v) for v in obj]
    elif isinstance(obj, str):
        return _resolve_env_vars(obj)
    return obj


def _merge(base: dict, override: dict) -> dict:
    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def load_config(path: Path | None = None) -> dict:
    """Load and cache config from YAML file, layered over DEFAULTS."""
    global _config
    if _config is not None and path is None:
        return _config

    config_path = Path(path) if path else _CONFIG_PATH
    raw: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
    else:
        logger.info("No config at %s, using built-in defaults", config_path)

    _config = _merge(DEFAULTS, _walk_and_resolve(raw))
    return _config


def get_config() -> dict:
    """Return cached config, loading if necessary."""
    if _config is None:
        return load_config()
    return _config


def reset_config():
    """Drop the cached config (tests, config reloads)."""
    global _config
    _config = None


def setup_logging(cfg: dict):
    log_cfg = cfg.get("logging", {})
    level = getattr(logging, str(log_cfg.get("level", "INFO")).upper(), logging.INFO)
    log_file = log_cfg.get("file")

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )


# ---------------------------------------------------------------------------
# Runtime settings
# ---------------------------------------------------------------------------

@dataclass
class Settings:
    """Connection settings. The core only reads these; the CLI edits them."""
    base_url: str = DEFAULT_BASE_URL
    api_key: str = ""
    aipipe_api_key: str = ""
    serper_api_key: str = ""
    model: str = ""
    models: list[str] = field(default_factory=list)
    tools_enabled: bool = True

    def to_dict(self) -> dict:
        return {
            "baseUrl": self.base_url,
            "apiKey": self.api_key,
            "aipipeApiKey": self.aipipe_api_key,
            "serperApiKey": self.serper_api_key,
            "model": self.model,
            "models": list(self.models),
            "toolsEnabled": self.tools_enabled,
        }

    @classmethod
    def from_dict(cls, data: dict, cfg: dict | None = None) -> Settings:
        """Build settings from a stored record, falling back to static config."""
        cfg = cfg or {}
        backend = cfg.get("backend", {})
        tools = cfg.get("tools", {})
        return cls(
            base_url=(data.get("baseUrl") or backend.get("base_url") or DEFAULT_BASE_URL).rstrip("/"),
            api_key=data.get("apiKey") or backend.get("api_key", ""),
            aipipe_api_key=data.get("aipipeApiKey") or tools.get("aipipe", {}).get("api_key", ""),
            serper_api_key=data.get("serperApiKey") or tools.get("google_search", {}).get("api_key", ""),
            model=data.get("model") or backend.get("default_model", "") or "",
            models=list(data.get("models") or []),
            tools_enabled=data.get("toolsEnabled") is not False,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.model)


def load_settings(kv, cfg: dict | None = None) -> Settings:
    raw = kv.get(SETTINGS_KEY)
    data = {}
    if raw:
        try:
            data = json.loads(raw) or {}
        except json.JSONDecodeError:
            logger.warning("Stored settings are not valid JSON, using defaults")
    return Settings.from_dict(data, cfg if cfg is not None else get_config())


def save_settings(kv, settings: Settings):
    kv.set(SETTINGS_KEY, json.dumps(settings.to_dict()))
