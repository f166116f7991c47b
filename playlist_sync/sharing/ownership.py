"""
Ownership checks for creator-restricted remote mutations.

Renaming, visibility toggling and deleting a remote record are restricted
to its creator. Rating and downloading are open to any identity and never
go through this guard.
"""

from playlist_sync.core.exceptions import ErrorKind, OperationResult
from playlist_sync.core.models import SharedPlaylistRecord
from playlist_sync.remote.auth import Identity


def assert_owner(record: SharedPlaylistRecord, acting: Identity | None) -> bool:
    """
    Whether ``acting`` may mutate creator-restricted fields of ``record``.

    A record without a creator id predates authentication and is owned by
    nobody; it must be migrated before it can be mutated. Identities
    without a remote account (the local anonymous profile) own nothing.
    """
    if record.creator_id is None or acting is None:
        return False
    if not acting.authenticated:
        return False
    return record.creator_id == acting.uid


def check(record: SharedPlaylistRecord, acting: Identity | None) -> OperationResult[None]:
    if assert_owner(record, acting):
        return OperationResult.success()
    return OperationResult.failure(
        ErrorKind.OWNERSHIP_DENIED,
        f"You can only modify playlists you created ('{record.name}')",
        details={"record_id": record.id, "creator_id": record.creator_id},
    )
