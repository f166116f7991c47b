"""
playlist-sync: Share power hour playlists by code.

This package is the hybrid sharing layer of a power hour app. Every
shared playlist is saved to a local SQLite store first and mirrored to a
Cloud Firestore project when one is configured and reachable; reads go
remote first and fall back to the local cache.

Architecture:
    core/       - Configuration, local store, models, logging, exceptions
    remote/     - Firestore REST client and Firebase identity providers
    sharing/    - Sync coordinator, resolver, ratings, imports, migration
    cli.py      - Command-line interface

Usage:
    Command Line:
        playlist-sync share <playlist-id> --tag party
        playlist-sync import AB12CD34
        playlist-sync list --category trending
        playlist-sync migrate

    Python API:
        from playlist_sync.core import LocalStore, load_config, setup_logging
        from playlist_sync.remote import FirebaseAuthProvider, FirestoreRemoteStore
        from playlist_sync.sharing import SyncCoordinator

        config = load_config()
        setup_logging(config.storage.directory)
        store = LocalStore(config.storage.database_path)
        remote = FirestoreRemoteStore(config.remote)
        auth = FirebaseAuthProvider(config.remote, store)

        coordinator = SyncCoordinator(store, remote, auth, config.sharing)
        result = await coordinator.share(playlist, tags=("party",))
        print(result.record.share_code)

Configuration:
    Optional config.yaml in the current directory:

        remote:
          project_id: "my-firebase-project"
          api_key: "..."
          timeout: 10

        storage:
          directory: "~/.playlist-sync"

        sharing:
          list_limit: 20

    Credentials may also come from PLAYLIST_SYNC_FIREBASE_PROJECT_ID and
    PLAYLIST_SYNC_FIREBASE_API_KEY (a .env file is read at startup).

Dependencies:
    - aiohttp: Firestore and Identity Toolkit REST calls
    - pyyaml: Configuration file parsing
    - python-dotenv: Credentials from .env
    - click / rich-click: CLI framework and colors
    - rich: Migration progress bar
    - tqdm: Console logging that cooperates with progress output
"""

__version__ = "0.1.0"
__author__ = "playlist-sync"
__license__ = "MIT"

from playlist_sync.core import (
    Config,
    ConfigError,
    ErrorKind,
    LocalStore,
    LocalStoreError,
    OperationResult,
    Playlist,
    PlaylistSyncError,
    SharedPlaylistRecord,
    get_logger,
    load_config,
    setup_logging,
)
from playlist_sync.remote import FirebaseAuthProvider, FirestoreRemoteStore, Identity
from playlist_sync.sharing import MigrationService, SyncCoordinator

__all__ = [
    # Version
    "__version__",
    # Core
    "Config",
    "load_config",
    "LocalStore",
    "setup_logging",
    "get_logger",
    # Exceptions and results
    "PlaylistSyncError",
    "ConfigError",
    "LocalStoreError",
    "ErrorKind",
    "OperationResult",
    # Models
    "Playlist",
    "SharedPlaylistRecord",
    # Services
    "Identity",
    "FirestoreRemoteStore",
    "FirebaseAuthProvider",
    "SyncCoordinator",
    "MigrationService",
]
