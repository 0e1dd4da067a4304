"""
Configuration and filesystem locations for fontfin.

Configuration lives in `config.yaml` inside the platformdirs user config
directory, next to the `installers/` directory and the installed-fonts
manifest. Pages, staging areas and the lock file live in the user cache
directory. Missing keys fall back to DEFAULT_CONFIG.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import platformdirs
import yaml

from fontfin.constants import (
    APP_NAME,
    CONFIG_FILE_NAME,
    DEFAULT_CACHE_TIMEOUT,
    DEFAULT_INSTALL_DIR,
    DEFAULT_MAX_WORKERS,
    INSTALLED_FILE_NAME,
    INSTALLERS_DIR_NAME,
    LOCK_FILE_NAME,
    MIN_INSTALL_DIR_DEPTH,
    PAGES_DIR_NAME,
    STAGING_DIR_NAME,
)
from fontfin.exceptions import ConfigFileError, ConfigValidationError
from fontfin.log_utils import logger

DEFAULT_CONFIG: Dict[str, Any] = {
    "INSTALL_DIR": DEFAULT_INSTALL_DIR,
    "CACHE_TIMEOUT": DEFAULT_CACHE_TIMEOUT,
    "MAX_WORKERS": DEFAULT_MAX_WORKERS,
    "VERBOSE_URLS": False,
    "VERBOSE_FILES": False,
    "VERBOSE_LIST": False,
    "LOG_LEVEL": "INFO",
}

BOOLEAN_KEYS = ("VERBOSE_URLS", "VERBOSE_FILES", "VERBOSE_LIST")


def get_config_dir() -> str:
    return platformdirs.user_config_dir(APP_NAME)


def get_cache_dir() -> str:
    return platformdirs.user_cache_dir(APP_NAME)


def get_log_dir() -> str:
    return platformdirs.user_log_dir(APP_NAME)


def get_config_file() -> str:
    return os.path.join(get_config_dir(), CONFIG_FILE_NAME)


def get_installers_dir() -> str:
    return os.path.join(get_config_dir(), INSTALLERS_DIR_NAME)


def get_installed_file() -> str:
    return os.path.join(get_config_dir(), INSTALLED_FILE_NAME)


def get_pages_dir() -> str:
    return os.path.join(get_cache_dir(), PAGES_DIR_NAME)


def get_staging_dir() -> str:
    return os.path.join(get_cache_dir(), STAGING_DIR_NAME)


def get_lock_file() -> str:
    return os.path.join(get_cache_dir(), LOCK_FILE_NAME)


def config_exists(config_path: Optional[str] = None) -> bool:
    return os.path.exists(config_path or get_config_file())


def validate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Check configuration values and normalise their types.

    Parameters:
        config (Dict[str, Any]): Merged configuration.

    Returns:
        Dict[str, Any]: The same mapping with integer and boolean values coerced.

    Raises:
        ConfigValidationError: If a value is out of range or the install directory is too shallow.
    """
    install_dir = config.get("INSTALL_DIR")
    if not isinstance(install_dir, str) or not install_dir.strip():
        raise ConfigValidationError("INSTALL_DIR must be a non-empty path")
    expanded = os.path.expanduser(install_dir)
    parts = [part for part in Path(expanded).parts[1:] if part]
    if not os.path.isabs(expanded) or len(parts) < MIN_INSTALL_DIR_DEPTH:
        raise ConfigValidationError(
            "INSTALL_DIR is not a valid install location",
            details=f"{install_dir} must be an absolute path at least {MIN_INSTALL_DIR_DEPTH} levels deep",
        )

    for key, minimum in (("CACHE_TIMEOUT", 0), ("MAX_WORKERS", 1)):
        try:
            value = int(config.get(key))
        except (TypeError, ValueError):
            raise ConfigValidationError(
                f"{key} must be an integer", details=repr(config.get(key))
            ) from None
        if value < minimum:
            raise ConfigValidationError(f"{key} must be at least {minimum}")
        config[key] = value

    for key in BOOLEAN_KEYS:
        config[key] = bool(config.get(key))
    return config


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load the fontfin configuration, filling in defaults for missing keys.

    A missing file is not an error: the defaults are returned.

    Parameters:
        config_path (Optional[str]): Explicit config file; the platformdirs location by default.

    Returns:
        Dict[str, Any]: The validated configuration.

    Raises:
        ConfigFileError: If the file cannot be read or is not a YAML mapping.
        ConfigValidationError: If a value is invalid.
    """
    path = config_path or get_config_file()
    config = dict(DEFAULT_CONFIG)
    try:
        with open(path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except FileNotFoundError:
        logger.debug(f"No configuration at {path}; using defaults")
        return validate_config(config)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigFileError(f"Could not read configuration {path}", str(e)) from e

    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        raise ConfigFileError(f"Configuration {path} must be a YAML mapping")

    unknown = sorted(set(loaded) - set(DEFAULT_CONFIG))
    if unknown:
        logger.warning(f"Ignoring unknown configuration keys: {', '.join(unknown)}")
    config.update({k: v for k, v in loaded.items() if k in DEFAULT_CONFIG})
    return validate_config(config)


def write_default_config(config_path: Optional[str] = None) -> str:
    """
    Write DEFAULT_CONFIG to the config file, replacing any existing one.

    Returns:
        str: The path written.

    Raises:
        ConfigFileError: If the file cannot be written.
    """
    path = config_path or get_config_file()
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(DEFAULT_CONFIG, f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        raise ConfigFileError(f"Could not write configuration {path}", str(e)) from e
    logger.info(f"Default configuration written to {path}")
    return path


def delete_config(config_path: Optional[str] = None) -> bool:
    """
    Delete the config file.

    Returns:
        bool: `True` if a file was removed.
    """
    path = config_path or get_config_file()
    try:
        os.remove(path)
    except FileNotFoundError:
        return False
    except OSError as e:
        raise ConfigFileError(f"Could not delete configuration {path}", str(e)) from e
    logger.info(f"Configuration {path} deleted")
    return True
