"""
Core module for playlist-sync.

This module provides the foundational components used throughout the application:
    - exceptions: Custom exception classes and OperationResult
    - config: Configuration loading and validation
    - identifiers: Local ids and share codes
    - models: Playlist, shared record, rating and receipt dataclasses
    - local_store: SQLite-backed local cache (always available)
    - logger: Logging setup with the sync failures report
    - progress: Rich progress bar for migrations
"""

from playlist_sync.core.config import (
    Config,
    RemoteConfig,
    SharingConfig,
    StorageConfig,
    load_config,
)
from playlist_sync.core.exceptions import (
    ConfigError,
    ErrorKind,
    LocalStoreError,
    NotFound,
    OperationResult,
    OwnershipDenied,
    PlaylistSyncError,
    RemoteError,
    RemoteRejected,
    RemoteUnavailable,
    ValidationFailed,
)
from playlist_sync.core.local_store import LocalStore
from playlist_sync.core.logger import (
    get_logger,
    log_sync_failure,
    setup_logging,
    shutdown_logging,
)
from playlist_sync.core.models import (
    Attachment,
    Clip,
    DownloadReceipt,
    LocalRef,
    Playlist,
    RatingEntry,
    RecordRef,
    RemoteRef,
    SharedPlaylistRecord,
    UserProfile,
)

__all__ = [
    # Config
    "Config",
    "RemoteConfig",
    "StorageConfig",
    "SharingConfig",
    "load_config",
    # Exceptions
    "PlaylistSyncError",
    "ConfigError",
    "LocalStoreError",
    "RemoteError",
    "RemoteUnavailable",
    "RemoteRejected",
    "NotFound",
    "OwnershipDenied",
    "ValidationFailed",
    "ErrorKind",
    "OperationResult",
    # Store
    "LocalStore",
    # Logging
    "setup_logging",
    "get_logger",
    "log_sync_failure",
    "shutdown_logging",
    # Models
    "Clip",
    "Attachment",
    "Playlist",
    "LocalRef",
    "RemoteRef",
    "RecordRef",
    "SharedPlaylistRecord",
    "RatingEntry",
    "DownloadReceipt",
    "UserProfile",
]
