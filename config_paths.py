import json
import logging
import os

from separator_resolver import (
    MODE_EXTENSION,
    MODES,
    SeparatorSettings,
    is_valid_separator,
    normalize_extension,
    parse_separator_input,
)

HOME = os.path.expanduser("~")
XDG_CONFIG_HOME = os.environ.get("XDG_CONFIG_HOME")
CONFIG_HOME = XDG_CONFIG_HOME if XDG_CONFIG_HOME else os.path.join(HOME, ".config")
CONFIG_DIR = os.path.join(CONFIG_HOME, "gridtext")
CONFIG_JSON = os.path.join(CONFIG_DIR, "config.json")
STATE_JSON = os.path.join(CONFIG_DIR, "state.json")

# default settings
SEPARATOR_MODE_DEFAULT = MODE_EXTENSION
DEFAULT_SEPARATOR_DEFAULT = ","
CHUNK_SIZE_DEFAULT = 1000
MAX_LOCAL_CHUNKS_DEFAULT = 10
LOG_LEVEL_DEFAULT = "WARNING"
LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def ensure_config_dirs():
    try:
        os.makedirs(CONFIG_DIR, exist_ok=True)
    except OSError:
        pass


def _positive_int(value, minimum: int):
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if value >= minimum else None


def load_config():
    cfg = {
        "SEPARATOR_MODE": SEPARATOR_MODE_DEFAULT,
        "DEFAULT_SEPARATOR": DEFAULT_SEPARATOR_DEFAULT,
        "SEPARATOR_BY_EXTENSION": {},
        "CHUNK_SIZE": CHUNK_SIZE_DEFAULT,
        "MAX_LOCAL_CHUNKS": MAX_LOCAL_CHUNKS_DEFAULT,
        "LOG_LEVEL": LOG_LEVEL_DEFAULT,
    }

    if not os.path.exists(CONFIG_JSON):
        return cfg
    try:
        with open(CONFIG_JSON, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError):
        return cfg
    if not isinstance(data, dict):
        return cfg

    sep_cfg = data.get("separator")
    if isinstance(sep_cfg, dict):
        mode = sep_cfg.get("mode")
        if mode in MODES:
            cfg["SEPARATOR_MODE"] = mode
        default = sep_cfg.get("default")
        if isinstance(default, str):
            parsed = parse_separator_input(default)
            if is_valid_separator(parsed):
                cfg["DEFAULT_SEPARATOR"] = parsed
        by_ext = sep_cfg.get("by_extension")
        if isinstance(by_ext, dict):
            for ext, raw in by_ext.items():
                if not isinstance(ext, str) or not isinstance(raw, str):
                    continue
                key = normalize_extension(ext)
                sep = parse_separator_input(raw)
                if key and is_valid_separator(sep):
                    cfg["SEPARATOR_BY_EXTENSION"][key] = sep

    chunk_size = _positive_int(data.get("chunk_size"), 1)
    if chunk_size is not None:
        cfg["CHUNK_SIZE"] = chunk_size
    max_local = _positive_int(data.get("max_local_chunks"), 0)
    if max_local is not None:
        cfg["MAX_LOCAL_CHUNKS"] = max_local

    level = data.get("log_level")
    if isinstance(level, str) and level.upper() in LOG_LEVELS:
        cfg["LOG_LEVEL"] = level.upper()

    return cfg


def separator_settings_from_config(cfg) -> SeparatorSettings:
    return SeparatorSettings(
        mode=cfg.get("SEPARATOR_MODE", SEPARATOR_MODE_DEFAULT),
        default_separator=cfg.get("DEFAULT_SEPARATOR", DEFAULT_SEPARATOR_DEFAULT),
        by_extension=dict(cfg.get("SEPARATOR_BY_EXTENSION") or {}),
    )


def log_level(cfg, override: str | None = None) -> int:
    name = (override or cfg.get("LOG_LEVEL") or LOG_LEVEL_DEFAULT).upper()
    if name not in LOG_LEVELS:
        name = LOG_LEVEL_DEFAULT
    return getattr(logging, name)
