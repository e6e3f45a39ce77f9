import os
import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = os.path.expanduser("~/.config/otpview")
CONFIG_FILE_PATH = Path(DEFAULT_CONFIG_DIR) / "config.json"
DEFAULT_LOG_FILE = Path(DEFAULT_CONFIG_DIR) / "otpview.log"
DEFAULT_REFRESH_MS = 250

DEFAULT_CONFIG = {
    "last_opened_vault": None,
    "last_vault_dir": None,
    "default_color_mode": True,  # Colors enabled unless turned off here or by --no-color
    "refresh_interval_ms": DEFAULT_REFRESH_MS,
}


def load_config(path: Path = CONFIG_FILE_PATH) -> dict:
    config = dict(DEFAULT_CONFIG)
    if not path.exists():
        return config
    try:
        with open(path, 'r') as f:
            stored = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Could not parse config file {path}: {e}. Using default config.")
        return config
    if isinstance(stored, dict):
        config.update(stored)
    return config


def save_config(config: dict, path: Path = CONFIG_FILE_PATH) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            json.dump(config, f, indent=4)
    except OSError as e:
        logger.error(f"Error saving config to {path}: {e}")
