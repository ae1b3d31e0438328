"""
Configuration and logging setup for cloudclip.

Configuration lives in ~/.cloudclip/config.yaml (or $CLOUDCLIP_HOME/config.yaml)
and is merged over DEFAULT_CONFIG. A missing file is created with the defaults.
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml

LOGGER_NAME = "cloudclip"
LOG_FORMAT = '%(asctime)s | %(levelname)s | %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'


def get_home() -> Path:
    """Return the cloudclip home directory"""
    return Path(os.environ.get("CLOUDCLIP_HOME", Path.home() / ".cloudclip"))


def default_config(home: Optional[Path] = None) -> dict:
    """Build the default configuration rooted at the given home directory"""
    home = Path(home) if home else get_home()
    return {
        # Server
        "host": "0.0.0.0",
        "port": 3000,
        "data_dir": str(home / "data"),
        "log_file": str(home / "cloudclip.log"),
        "cors_origins": ["*"],
        "max_content_kb": 1024,
        "password_salt": "default-salt-for-clipboard-app",
        # Time and expiry
        "utc_offset_hours": 8,
        "default_expiration_hours": 24,
        "request_grace_hours": 1,
        "swept_memory_hours": 1,
        "cleanup_interval_minutes": 30,
        # Client
        "server_url": "http://localhost:3000",
        "client_timeout_seconds": 10,
        "cache_ttl_seconds": 60,
        "local_cache_dir": str(home / "local"),
    }


def load_config(config_file: Optional[Path] = None) -> dict:
    """Load configuration from config.yaml, creating it with defaults if missing"""
    home = get_home()
    config_file = Path(config_file) if config_file else home / "config.yaml"
    defaults = default_config(home)

    config_file.parent.mkdir(parents=True, exist_ok=True)

    if config_file.exists():
        with open(config_file, 'r') as f:
            config = yaml.safe_load(f) or {}
        config = {**defaults, **config}
    else:
        with open(config_file, 'w') as f:
            yaml.safe_dump(defaults, f)
        config = dict(defaults)

    # The salt may be injected through the environment instead of the file
    salt = os.environ.get("CLOUDCLIP_PASSWORD_SALT")
    if salt:
        config["password_salt"] = salt

    return config


def setup_logging(log_file: Optional[str] = None, level: int = logging.INFO) -> logging.Logger:
    """Configure the cloudclip logger with a console handler and an optional file handler"""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False  # Keep our lines out of the uvicorn logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            print(f"Warning: Failed to setup file logging: {e}", flush=True)

    return logger
