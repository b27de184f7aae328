"""Pre-DB bootstrap configuration. Zero imports from the rest of the app
beyond constants.

Stores settings that must be known before opening the DB (db_folder) or
before the scheduler starts (run_at, log_level).
Config lives in ~/.budget_recurring/config.json.
"""
import json
import os
from pathlib import Path

from utils.constants import DEFAULT_LOG_LEVEL, DEFAULT_RUN_AT

CONFIG_DIR = Path.home() / ".budget_recurring"
CONFIG_FILE = CONFIG_DIR / "config.json"


def load_config(path: Path | None = None) -> dict:
    """Returns {} on missing or corrupt file; never raises."""
    try:
        with open(path or CONFIG_FILE, "r", encoding="utf-8") as f:
            config = json.load(f)
    except Exception:
        return {}
    return config if isinstance(config, dict) else {}


def save_config(config: dict, path: Path | None = None) -> None:
    """Creates the config dir if needed; atomic write via .tmp + os.replace()."""
    target = path or CONFIG_FILE
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_suffix(".tmp")
    try:
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        os.replace(tmp, target)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


def get_db_folder(config: dict | None = None) -> str | None:
    """Return config["db_folder"] or None if not set."""
    return (config if config is not None else load_config()).get("db_folder")


def get_run_at(config: dict | None = None) -> str:
    """Daily sweep time as HH:MM."""
    return (config if config is not None else load_config()).get("run_at") or DEFAULT_RUN_AT


def get_log_level(config: dict | None = None) -> str:
    level = (config if config is not None else load_config()).get("log_level")
    return str(level).upper() if level else DEFAULT_LOG_LEVEL
