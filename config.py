# config.py
import copy
import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

SETTINGS_ENV = "CDI_VOICE_SETTINGS"
DEFAULT_SETTINGS_PATH = Path(__file__).resolve().parent / "settings.json"

DEFAULTS = {
    "host": {"url": "http://127.0.0.1:3000"},
    "asr": {
        "endpoint": "/api/audio/transcribe",
        "timeout": 30.0,
        "max_retries": 3,
        "backoff_factor": 1.0,
    },
    "tts": {
        "endpoint": "/api/tts",
        "voice": "nova",
        "speed": 1.1,
        "model": "tts-1-hd",
        "timeout": 10.0,
        "max_retries": 3,
        "backoff_factor": 1.0,
        "max_chars": 1000,
    },
    "recognition": {
        "language": "pt-BR",
        "continuous": True,
        "interim_results": True,
        "max_alternatives": 3,
        "sensitivity": "medium",
        "noise_reduction": True,
        "auto_stop": True,
        "auto_stop_timeout": 3.0,
        "restart_delay": 1.0,
        "error_restart_delay": 2.0,
    },
    "dispatcher": {
        "min_confidence": 0.7,
        "history_size": 10,
    },
    "audio": {
        "sample_rate": 16000,
        "frame_ms": 30,
        "silence_duration": 1.0,
        "min_speech_duration": 0.3,
        "no_speech_timeout": 8.0,
        "player_command": ["paplay"],
        "tmp_dir": "tmp",
    },
    "voice_control": {
        "enable_hands_free": False,
        "auto_play_responses": True,
    },
}


def _merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    _config = None
    _path = None

    @classmethod
    def get_config(cls):
        if cls._config is None:
            cls.reload_config()
        return cls._config

    @classmethod
    def settings_path(cls) -> Path:
        return Path(os.getenv(SETTINGS_ENV) or DEFAULT_SETTINGS_PATH)

    @classmethod
    def reload_config(cls, path=None):
        cls._path = Path(path) if path else cls.settings_path()
        overrides = {}
        if cls._path.is_file():
            with open(cls._path, "r", encoding="utf-8") as f:
                overrides = json.load(f)
        else:
            logger.warning("Settings file %s not found; using defaults", cls._path)
        cls._config = _merge(DEFAULTS, overrides)
        return cls._config

    @classmethod
    def section(cls, name: str) -> dict:
        return cls.get_config().get(name, {})

    @classmethod
    def endpoint_url(cls, service: str) -> str:
        config = cls.get_config()
        return config["host"]["url"].rstrip("/") + config[service]["endpoint"]
