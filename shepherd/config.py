"""
Engine configuration persistence.

Stores runtime knobs (log level, save retry policy, idle tick interval) in
a JSON file beside the game state. Gameplay preferences live in
GameState.settings instead.
"""

import json
from pathlib import Path
from typing import TypedDict


class Config(TypedDict, total=False):
    """Engine configuration."""
    state_dir: str  # Where the store keeps its files
    log_level: str  # DEBUG, INFO, WARNING, ...
    save_retries: int  # Retries after the first failed write
    retry_base_delay_ms: int  # First backoff delay, doubled per retry
    idle_collection_interval_minutes: int  # Periodic idle tick


DEFAULT_CONFIG: Config = {
    "state_dir": "shepherd_data",
    "log_level": "INFO",
    "save_retries": 3,
    "retry_base_delay_ms": 100,
    "idle_collection_interval_minutes": 5,
}


def get_config_path(state_dir: Path | str = "shepherd_data") -> Path:
    """Get path to config file."""
    return Path(state_dir) / ".shepherd_config.json"


def load_config(state_dir: Path | str = "shepherd_data") -> Config:
    """Load config from file, or return defaults if not found."""
    path = get_config_path(state_dir)

    config = DEFAULT_CONFIG.copy()
    config["state_dir"] = str(state_dir)
    if not path.exists():
        return config

    try:
        with open(path, "r", encoding="utf-8") as f:
            saved = json.load(f)
    except (json.JSONDecodeError, OSError):
        return config

    # Merge with defaults to handle missing keys
    if isinstance(saved, dict):
        config.update(saved)
    return config


def save_config(config: Config, state_dir: Path | str = "shepherd_data") -> bool:
    """Save config to file. Returns True on success."""
    path = get_config_path(state_dir)
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        return True
    except OSError:
        return False


def set_log_level(level: str, state_dir: Path | str = "shepherd_data") -> None:
    """Save log level preference."""
    config = load_config(state_dir)
    config["log_level"] = level.upper()
    save_config(config, state_dir)
