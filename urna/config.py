"""Runtime settings for the orchestrator.

Sources, highest priority first:
  1. Process environment (including values loaded from ``.env``).
  2. The native JSON config written by the host app (allow-listed keys only).
  3. Defaults from ``urna.constants``.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv

from urna.constants import (
    ALLOWED_ENV_KEYS,
    APP_CONFIG_DIR,
    DEFAULT_BASE_URL,
    OTLP_ENDPOINT,
    PLAYBACK_AUTO_STOP,
    PREDICT_PATH,
    REQUEST_TIMEOUT,
    TELEMETRY_EXPORTER,
)

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUTHY


def _as_float(value: str | None, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("[Config] Not a number: %r — using %s", value, default)
        return default


@dataclass(frozen=True)
class Settings:
    base_url: str = DEFAULT_BASE_URL
    predict_path: str = PREDICT_PATH
    simulate: bool = False
    request_timeout: float = REQUEST_TIMEOUT
    enable_audio_feedback: bool = True
    enable_haptic_feedback: bool = True
    playback_timeout: float = PLAYBACK_AUTO_STOP
    telemetry_exporter: str = TELEMETRY_EXPORTER
    otlp_endpoint: str = OTLP_ENDPOINT

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        return cls(
            base_url=env.get("URNA_BASE_URL") or DEFAULT_BASE_URL,
            predict_path=env.get("URNA_PREDICT_PATH") or PREDICT_PATH,
            simulate=_as_bool(env.get("URNA_SIMULATE"), False),
            request_timeout=_as_float(env.get("URNA_REQUEST_TIMEOUT"), REQUEST_TIMEOUT),
            enable_audio_feedback=_as_bool(env.get("URNA_ENABLE_AUDIO_FEEDBACK"), True),
            enable_haptic_feedback=_as_bool(env.get("URNA_ENABLE_HAPTIC_FEEDBACK"), True),
            playback_timeout=_as_float(env.get("URNA_PLAYBACK_TIMEOUT"), PLAYBACK_AUTO_STOP),
            telemetry_exporter=(env.get("URNA_TELEMETRY_EXPORTER") or TELEMETRY_EXPORTER).strip().lower(),
            otlp_endpoint=env.get("URNA_OTLP_ENDPOINT") or OTLP_ENDPOINT,
        )


def native_config_path() -> Path:
    """Return the platform-specific path of the host app's ``config.json``.

      Windows  : %APPDATA%\\urna\\config.json
      macOS    : ~/Library/Application Support/urna/config.json
      Linux    : $XDG_CONFIG_HOME/urna/config.json (default ~/.config)
    """
    platform: str = sys.platform
    if platform == "win32":
        base = os.environ.get("APPDATA", "")
        return Path(base) / APP_CONFIG_DIR / "config.json"
    if platform == "darwin":
        return Path.home() / "Library" / "Application Support" / APP_CONFIG_DIR / "config.json"
    xdg = os.environ.get("XDG_CONFIG_HOME", "")
    base_dir = Path(xdg) if xdg else Path.home() / ".config"
    return base_dir / APP_CONFIG_DIR / "config.json"


def load_native_config(path: Path | None = None) -> list[str]:
    """Copy allow-listed keys from the native config into ``os.environ``.

    Only sets keys that are not already in the environment so ``.env`` values
    still win during local development. Returns the keys that were loaded.
    """
    config_path = path or native_config_path()
    if not config_path.exists():
        logger.debug("[Config] No native config at %s — using environment only.", config_path)
        return []

    loaded: list[str] = []
    try:
        keys: dict = json.loads(config_path.read_text(encoding="utf-8"))
        for k, v in keys.items():
            if k in ALLOWED_ENV_KEYS and isinstance(v, (str, int, float, bool)) and v != "":
                if k not in os.environ:
                    os.environ[k] = str(v).lower() if isinstance(v, bool) else str(v)
                    loaded.append(k)
        if loaded:
            logger.info("[Config] Loaded from native config: %s", loaded)
    except Exception as exc:
        logger.warning("[Config] Failed to parse native config: %s", exc)
    return loaded


def load_settings(native_path: Path | None = None) -> Settings:
    """Load ``.env``, merge the native config, and build ``Settings``."""
    load_dotenv()
    load_native_config(native_path)
    return Settings.from_env()
