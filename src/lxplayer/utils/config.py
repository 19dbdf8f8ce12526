import yaml
import os
import logging
from typing import Optional
from dotenv import load_dotenv

from lxplayer.utils.constants import (
    DEFAULT_SOURCES, HISTORY_LIMIT, OPEN_TIMEOUT, REQUEST_TIMEOUT,
    SAMPLE_INTERVAL
)
from lxplayer.utils.exceptions import ConfigError
from lxplayer.utils.ipc_protocol import DEFAULT_COMMAND_PORT, DEFAULT_EVENT_PORT

"""
Configuration loading for the player service.

Configuration comes from environment variables (optionally loaded from a
.env file) with a YAML file merged on top when one is present.
"""

REQUIRED_SOURCE_KEYS = ('name', 'search_url', 'play_url', 'lyric_url')


def get_mpv_path() -> Optional[str]:
    """
    Get the mpv path from the environment, if it points at an existing file.
    Returns None to let the backend resolve 'mpv' from PATH.
    """
    logger = logging.getLogger(__name__)

    env_mpv = os.getenv('MPV_PATH')
    if env_mpv:
        logger.debug(f"Checking mpv from environment variable: {env_mpv}")
        if os.path.exists(env_mpv):
            logger.info(f"Found mpv from environment variable: {env_mpv}")
            return env_mpv
        logger.warning(f"MPV_PATH is set but {env_mpv} does not exist, falling back to PATH")
    return None


def _default_config() -> dict:
    bind_host = os.getenv('BIND_HOST', '127.0.0.1')
    return {
        'sources': [dict(s) for s in DEFAULT_SOURCES],
        'database_path': os.getenv('LXPLAYER_DB', 'data/lxplayer.db'),
        'mpv_path': get_mpv_path(),
        'log_level': os.getenv('LOG_LEVEL', 'INFO'),
        'sample_interval': float(os.getenv('SAMPLE_INTERVAL', SAMPLE_INTERVAL)),
        'history_limit': int(os.getenv('HISTORY_LIMIT', HISTORY_LIMIT)),
        'request_timeout': float(os.getenv('REQUEST_TIMEOUT', REQUEST_TIMEOUT)),
        'open_timeout': float(os.getenv('OPEN_TIMEOUT', OPEN_TIMEOUT)),
        'command_address': f"tcp://{bind_host}:{int(os.getenv('COMMAND_PORT', DEFAULT_COMMAND_PORT))}",
        'event_address': f"tcp://{bind_host}:{int(os.getenv('EVENT_PORT', DEFAULT_EVENT_PORT))}"
    }


def validate_config(config: dict) -> dict:
    """
    Check required values and raise ConfigError on the first problem found.
    """
    sources = config.get('sources') or []
    if not sources:
        raise ConfigError("At least one source is required in configuration")
    for source in sources:
        missing = [k for k in REQUIRED_SOURCE_KEYS if not source.get(k)]
        if missing:
            raise ConfigError(f"Source {source.get('name', '?')} is missing {', '.join(missing)}")

    if float(config.get('sample_interval', 0)) <= 0:
        raise ConfigError("sample_interval must be greater than zero")
    return config


def load_config(path: Optional[str] = None) -> dict:
    """
    Loads configuration from the environment and an optional config.yaml.

    Args:
        path: Explicit YAML path. Defaults to $LXPLAYER_CONFIG, then config/config.yaml

    Returns:
        dict: Dictionary containing player configuration
    """
    logger = logging.getLogger(__name__)

    # Load .env file if it exists
    env_path = os.path.join(os.getcwd(), '.env')
    if os.path.exists(env_path):
        logger.debug(f"Loading .env file from: {env_path}")
        load_dotenv(env_path)

    default_config = _default_config()
    config_path = path or os.getenv('LXPLAYER_CONFIG') or os.path.join('config', 'config.yaml')

    try:
        if os.path.exists(config_path):
            with open(config_path, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f)
                # Merge yaml config with defaults
                config = {**default_config, **(yaml_config or {})}
            logger.info(f"Loaded configuration from {config_path}")
        else:
            logger.info(f"No config file at {config_path}, using environment defaults")
            config = default_config.copy()
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error loading {config_path}: {e}")
        config = default_config.copy()

    return validate_config(config)
