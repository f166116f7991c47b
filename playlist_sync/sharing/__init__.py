"""
Sharing layer: everything a caller needs to share, find, rate and migrate.

Components:
    SyncCoordinator: Entry point; local-first saves, remote-first reads
    TieredResolver: Remote-first, local-fallback lookups
    RatingAggregator: Ratings, download receipts, derived counters
    Importer: Copies shared playlists into the local library
    MigrationService: Pushes the local library into an account
    ownership / filters: Owner checks and category/filter semantics
"""

from playlist_sync.sharing.coordinator import SaveResult, SyncCoordinator
from playlist_sync.sharing.filters import CATEGORIES, SORT_KEYS, PlaylistFilters
from playlist_sync.sharing.importer import Importer, ImportResult
from playlist_sync.sharing.migration import MigrationReport, MigrationService, MigrationStatus
from playlist_sync.sharing.rating import RatingAggregator, RatingStats
from playlist_sync.sharing.resolver import Resolution, TieredResolver

__all__ = [
    "SyncCoordinator",
    "SaveResult",
    "TieredResolver",
    "Resolution",
    "RatingAggregator",
    "RatingStats",
    "Importer",
    "ImportResult",
    "MigrationService",
    "MigrationStatus",
    "MigrationReport",
    "PlaylistFilters",
    "CATEGORIES",
    "SORT_KEYS",
]
