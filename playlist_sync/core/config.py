"""
Configuration management for playlist-sync.

This module handles loading, validating, and providing access to the
application configuration stored in config.yaml.

The configuration file contains:
    - Remote document store settings (Firebase project, API key, timeout)
    - Local storage directory
    - Sharing behavior (listing size, share code attempts, auto sign-in)

Every section is optional: without a remote section the application runs
local-only. Firebase credentials can also be supplied through environment
variables (or a .env file), which take precedence over the file:

    PLAYLIST_SYNC_FIREBASE_API_KEY
    PLAYLIST_SYNC_FIREBASE_PROJECT_ID

Example config.yaml:
    remote:
      project_id: "power-hour-share"
      api_key: "AIza..."
      timeout: 10

    storage:
      directory: "~/.playlist-sync"

    sharing:
      list_limit: 20
      share_code_attempts: 5
      auto_sign_in: true
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from playlist_sync.core.exceptions import ConfigError


# Default configuration file name (looked up in current working directory)
CONFIG_FILENAME = "config.yaml"

API_KEY_ENV = "PLAYLIST_SYNC_FIREBASE_API_KEY"
PROJECT_ID_ENV = "PLAYLIST_SYNC_FIREBASE_PROJECT_ID"

DEFAULT_STORAGE_DIR = "~/.playlist-sync"
DEFAULT_DATABASE_FILE = "playlist_sync.db"
DEFAULT_TIMEOUT = 10.0
DEFAULT_LIST_LIMIT = 20
DEFAULT_SHARE_CODE_ATTEMPTS = 5


@dataclass(frozen=True)
class RemoteConfig:
    """
    Remote document store configuration.

    Attributes:
        enabled: Master switch; False forces local-only mode.
        project_id: Firebase project id.
        api_key: Firebase web API key.
        database: Firestore database id.
        timeout: Total timeout of one HTTP request, in seconds.
        firestore_url: Base URL of the Firestore REST API (emulator override).
        auth_url: Base URL of the Identity Toolkit REST API.
    """
    enabled: bool = True
    project_id: str | None = None
    api_key: str | None = None
    database: str = "(default)"
    timeout: float = DEFAULT_TIMEOUT
    firestore_url: str = "https://firestore.googleapis.com/v1"
    auth_url: str = "https://identitytoolkit.googleapis.com/v1"

    @property
    def is_configured(self) -> bool:
        return bool(self.enabled and self.project_id and self.api_key)


@dataclass(frozen=True)
class StorageConfig:
    """
    Local storage configuration.

    Attributes:
        directory: Directory holding the local database and logs.
        database_file: File name of the SQLite database.
    """
    directory: Path
    database_file: str = DEFAULT_DATABASE_FILE

    @property
    def database_path(self) -> Path:
        return self.directory / self.database_file


@dataclass(frozen=True)
class SharingConfig:
    """
    Sharing behavior configuration.

    Attributes:
        list_limit: Default number of records returned by category listings.
        share_code_attempts: How many fresh codes to try before giving up
                             on remote uniqueness checking.
        auto_sign_in: Sign in anonymously before remote writes when no
                      account is signed in.
    """
    list_limit: int = DEFAULT_LIST_LIMIT
    share_code_attempts: int = DEFAULT_SHARE_CODE_ATTEMPTS
    auto_sign_in: bool = True


@dataclass(frozen=True)
class Config:
    """
    Complete application configuration, created by load_config().

    Example:
        config = load_config()
        print(f"Local data in: {config.storage.directory}")
        if not config.remote.is_configured:
            print("Running local-only")
    """
    remote: RemoteConfig
    storage: StorageConfig
    sharing: SharingConfig


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration.

    Args:
        config_path: Optional explicit path to config file.
                     If None, looks for config.yaml in the current working
                     directory and falls back to defaults when absent.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If an explicit config file is missing, the YAML is
                     invalid, a section is not a dictionary, or a value is
                     invalid.

    Behavior:
        1. Load .env into the environment (existing variables win)
        2. Read and parse YAML content if a file is available
        3. Parse each section, applying defaults
        4. Apply Firebase credentials from the environment
    """
    load_dotenv()

    explicit = config_path is not None
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME

    raw_config: dict[str, Any] = {}
    if config_path.exists():
        raw_config = _read_yaml(config_path)
    elif explicit:
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            details={"file_path": str(config_path)}
        )

    for section in ("remote", "storage", "sharing"):
        if section in raw_config and not isinstance(raw_config[section], dict):
            raise ConfigError(
                f"Section '{section}' must be a dictionary",
                details={"section": section}
            )

    return Config(
        remote=_parse_remote_config(raw_config.get("remote") or {}),
        storage=_parse_storage_config(raw_config.get("storage") or {}),
        sharing=_parse_sharing_config(raw_config.get("sharing") or {}),
    )


def _read_yaml(config_path: Path) -> dict[str, Any]:
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    if raw_config is None:
        return {}
    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )
    return raw_config


def _optional_string(section: dict[str, Any], key: str, field_name: str) -> str | None:
    value = section.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(
            f"'{field_name}' must be a non-empty string",
            details={"field": field_name}
        )
    return value.strip()


def _parse_remote_config(remote_section: dict[str, Any]) -> RemoteConfig:
    enabled = remote_section.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ConfigError(
            "'remote.enabled' must be true or false",
            details={"field": "remote.enabled", "value": enabled}
        )

    timeout = remote_section.get("timeout", DEFAULT_TIMEOUT)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError(
            "'remote.timeout' must be a positive number",
            details={"field": "remote.timeout", "value": timeout}
        )

    project_id = os.getenv(PROJECT_ID_ENV) or _optional_string(
        remote_section, "project_id", "remote.project_id"
    )
    api_key = os.getenv(API_KEY_ENV) or _optional_string(
        remote_section, "api_key", "remote.api_key"
    )

    defaults = RemoteConfig()
    return RemoteConfig(
        enabled=enabled,
        project_id=project_id,
        api_key=api_key,
        database=_optional_string(remote_section, "database", "remote.database") or defaults.database,
        timeout=float(timeout),
        firestore_url=(
            _optional_string(remote_section, "firestore_url", "remote.firestore_url")
            or defaults.firestore_url
        ).rstrip("/"),
        auth_url=(
            _optional_string(remote_section, "auth_url", "remote.auth_url")
            or defaults.auth_url
        ).rstrip("/"),
    )


def _parse_storage_config(storage_section: dict[str, Any]) -> StorageConfig:
    """
    Expands ~ to home directory and converts to an absolute Path.
    Does NOT create the directory (that happens at startup).
    """
    directory = _optional_string(storage_section, "directory", "storage.directory")
    path = Path(directory or DEFAULT_STORAGE_DIR).expanduser().resolve()

    database_file = _optional_string(storage_section, "database_file", "storage.database_file")
    return StorageConfig(directory=path, database_file=database_file or DEFAULT_DATABASE_FILE)


def _parse_sharing_config(sharing_section: dict[str, Any]) -> SharingConfig:
    list_limit = sharing_section.get("list_limit", DEFAULT_LIST_LIMIT)
    if isinstance(list_limit, bool) or not isinstance(list_limit, int) or list_limit < 1:
        raise ConfigError(
            "'sharing.list_limit' must be a positive integer",
            details={"field": "sharing.list_limit", "value": list_limit}
        )

    attempts = sharing_section.get("share_code_attempts", DEFAULT_SHARE_CODE_ATTEMPTS)
    if isinstance(attempts, bool) or not isinstance(attempts, int) or attempts < 1:
        raise ConfigError(
            "'sharing.share_code_attempts' must be a positive integer",
            details={"field": "sharing.share_code_attempts", "value": attempts}
        )

    auto_sign_in = sharing_section.get("auto_sign_in", True)
    if not isinstance(auto_sign_in, bool):
        raise ConfigError(
            "'sharing.auto_sign_in' must be true or false",
            details={"field": "sharing.auto_sign_in", "value": auto_sign_in}
        )

    return SharingConfig(
        list_limit=list_limit,
        share_code_attempts=attempts,
        auto_sign_in=auto_sign_in,
    )
