"""Configuration management for AniKodik."""

from __future__ import annotations

import configparser
import os
import re
import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


class KodikConfig(BaseModel):
    """Catalog API configuration."""

    api_key: str | None = None
    base_url: str = "https://kodikapi.com"
    timeout: float = 30.0


class OptionsConfig(BaseModel):
    """General options configuration."""

    items_per_page: int = 50
    cache_ttl_hours: int = 24
    watch_order_limit: int = 15  # Cap on franchise entries returned
    watch_order_query_limit: int = 50  # Results requested per franchise sub-query
    history_limit: int = 20
    max_attempts: int = 3
    retry_delay: float = 1.0


class StorageConfig(BaseModel):
    """Local store configuration."""

    path: str | None = None  # Defaults to anikodik.store.json next to the config file


class AppConfig(BaseModel):
    """Application configuration."""

    kodik: KodikConfig = Field(default_factory=KodikConfig)
    options: OptionsConfig = Field(default_factory=OptionsConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


# Global config instance
_config: AppConfig | None = None
_config_path: Path | None = None  # Track where config was loaded from


def get_exe_directory() -> Path:
    """Get the directory containing the executable (or script).

    Handles both normal Python execution and PyInstaller bundles.

    Returns:
        Path to the directory containing the exe or the current directory.
    """
    if getattr(sys, "frozen", False):
        return Path(sys.executable).parent
    else:
        # Running as Python script - use current working directory
        # (not __file__ since that's inside the package)
        return Path.cwd()


def get_config_paths() -> list[Path]:
    """Get list of config file paths to search, in priority order.

    Search order:
    1. Exe directory
    2. Current working directory
    3. User home directory (~/.anikodik/)

    INI format is preferred over YAML.

    Returns:
        List of paths to check for config files.
    """
    paths = []

    exe_dir = get_exe_directory()
    home_dir = Path.home() / ".anikodik"

    paths.append(exe_dir / "anikodik.ini")

    cwd = Path.cwd()
    if cwd != exe_dir:  # Avoid duplicates
        paths.append(cwd / "anikodik.ini")

    paths.append(home_dir / "anikodik.ini")

    # YAML support (lower priority)
    paths.append(cwd / "anikodik.yaml")
    paths.append(cwd / "anikodik.yml")
    paths.append(home_dir / "config.yaml")
    paths.append(home_dir / "config.yml")

    return paths


def find_config_file() -> Path | None:
    """Find the first existing config file.

    Returns:
        Path to config file if found, None otherwise.
    """
    for path in get_config_paths():
        if path.exists():
            return path
    return None


def _expand_env_vars(value: Any) -> Any:
    """Recursively expand environment variables in config values.

    Supports ${VAR} and $VAR syntax.

    Args:
        value: Config value (string, dict, list, or other).

    Returns:
        Value with environment variables expanded.
    """
    if isinstance(value, str):
        pattern = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")

        def replace(match: re.Match[str]) -> str:
            var_name = match.group(1) or match.group(2)
            return os.environ.get(var_name, "")

        return pattern.sub(replace, value)
    elif isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_expand_env_vars(item) for item in value]
    return value


_INT_OPTIONS = (
    "items_per_page",
    "cache_ttl_hours",
    "watch_order_limit",
    "watch_order_query_limit",
    "history_limit",
    "max_attempts",
)
_FLOAT_OPTIONS = ("retry_delay",)


def _load_ini_config(path: Path) -> dict[str, Any]:
    """Load configuration from INI file.

    Args:
        path: Path to INI config file.

    Returns:
        Dictionary structure matching AppConfig schema.
    """
    parser = configparser.ConfigParser()
    parser.read(path, encoding="utf-8")

    config: dict[str, Any] = {}

    # Parse [kodik] section
    if parser.has_section("kodik"):
        kodik: dict[str, Any] = {
            "api_key": parser.get("kodik", "api_key", fallback=None),
            "base_url": parser.get("kodik", "base_url", fallback=None),
        }
        if parser.has_option("kodik", "timeout"):
            try:
                kodik["timeout"] = float(parser.get("kodik", "timeout"))
            except ValueError:
                pass  # Keep default
        # Remove None/empty values
        config["kodik"] = {k: v for k, v in kodik.items() if v not in (None, "")}

    # Parse [options] section
    if parser.has_section("options"):
        options: dict[str, Any] = {}
        for key in _INT_OPTIONS:
            if parser.has_option("options", key):
                try:
                    options[key] = int(parser.get("options", key))
                except ValueError:
                    pass  # Keep default
        for key in _FLOAT_OPTIONS:
            if parser.has_option("options", key):
                try:
                    options[key] = float(parser.get("options", key))
                except ValueError:
                    pass  # Keep default
        if options:
            config["options"] = options

    # Parse [storage] section
    if parser.has_section("storage"):
        value = parser.get("storage", "path", fallback="").strip()
        if value:
            config["storage"] = {"path": value}

    return config


def _load_yaml_config(path: Path) -> dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        path: Path to YAML config file.

    Returns:
        Dictionary structure matching AppConfig schema.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from file.

    Supports both INI (.ini/.cfg) and YAML (.yaml/.yml) formats.
    Environment variables are expanded in all values using ${VAR} syntax.
    If no api_key is configured, KODIK_API_KEY from the environment is used.

    Args:
        path: Explicit path to config file. If None, searches default locations.

    Returns:
        Loaded configuration with environment variables expanded.
    """
    global _config, _config_path

    if path is None:
        path = find_config_file()

    if path is None or not path.exists():
        raw_config: dict[str, Any] = {}
        _config_path = None
    else:
        if path.suffix in (".ini", ".cfg"):
            raw_config = _load_ini_config(path)
        else:
            raw_config = _load_yaml_config(path)
        _config_path = path

    expanded_config = _expand_env_vars(raw_config)

    _config = AppConfig.model_validate(expanded_config)
    if not _config.kodik.api_key:
        _config.kodik.api_key = os.environ.get("KODIK_API_KEY") or None
    return _config


def get_config_path() -> Path | None:
    """Get the path to the currently loaded config file.

    Returns:
        Path to config file, or None if using defaults.
    """
    return _config_path


def get_config() -> AppConfig:
    """Get the current configuration.

    Loads from file if not already loaded.

    Returns:
        Current application configuration.
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def has_valid_config() -> bool:
    """Check if configuration has the catalog API key.

    Returns:
        True if the Kodik API key is configured.
    """
    return bool(get_config().kodik.api_key)


def reset_config() -> None:
    """Reset the cached configuration.

    Useful for testing or when config file changes.
    """
    global _config, _config_path
    _config = None
    _config_path = None


def save_default_config(path: Path | None = None, api_key: str = "") -> Path:
    """Save a default INI config file.

    Args:
        path: Where to save. Defaults to ./anikodik.ini (current directory).
        api_key: Kodik API key (optional, falls back to env var syntax).

    Returns:
        Path to saved config file.
    """
    if path is None:
        path = Path.cwd() / "anikodik.ini"

    api_key_value = api_key or "${KODIK_API_KEY}"

    default_config = f"""\
# AniKodik Configuration
# You can use environment variables with ${{VAR}} syntax

[kodik]
# Kodik API token
api_key = {api_key_value}
# base_url = https://kodikapi.com
# Request timeout in seconds
timeout = 30

[options]
# Page size for catalog listings
items_per_page = 50
# Anime detail records are refetched after this many hours
cache_ttl_hours = 24
# Maximum entries in a franchise watch order
watch_order_limit = 15
# Results requested per franchise sub-query
watch_order_query_limit = 50
# Watch history length per user
history_limit = 20
# Attempts per request and fixed delay between them (seconds)
max_attempts = 3
retry_delay = 1.0

[storage]
# Local store file (defaults to anikodik.store.json next to this file)
# path = /path/to/anikodik.store.json
"""

    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        f.write(default_config)

    return path
