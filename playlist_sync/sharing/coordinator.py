"""
Sync coordinator: the entry point for every sharing operation.

The local store is written first and is the source of truth for "did my
action take effect"; the remote store is an optional mirror. Remote
failures on the save path are logged to the sync failures report and the
local result is returned. Reads go remote first and fall back to the
local cache (see TieredResolver).

Record identity:
    A playlist shared while offline is cached under LocalRef(playlist id).
    Once the remote copy exists, the cached entry is re-keyed to
    RemoteRef(document id, playlist id), so the cache holds one entry per
    shared playlist.

Ownership:
    Anyone may change the local cache. Changing a remote record's name,
    visibility or existence requires the Ownership Guard; rating and
    downloading are open to any identity (see RatingAggregator).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable

from playlist_sync.core.config import SharingConfig
from playlist_sync.core.exceptions import (
    ErrorKind,
    OperationResult,
    RemoteError,
    ValidationFailed,
)
from playlist_sync.core.identifiers import new_share_code, normalize_share_code
from playlist_sync.core.local_store import LocalStore
from playlist_sync.core.logger import get_logger, log_sync_failure
from playlist_sync.core.models import (
    LocalRef,
    Playlist,
    RemoteRef,
    SharedPlaylistRecord,
    normalize_tags,
    now_iso,
)
from playlist_sync.remote.auth import Identity, IdentityProvider
from playlist_sync.remote.firestore import CATEGORY_OVERFETCH, FirestoreRemoteStore
from playlist_sync.sharing import ownership
from playlist_sync.sharing.filters import (
    PlaylistFilters,
    all_creators,
    all_tags,
    apply_category,
    dedupe,
    filter_records,
    validate_category,
)
from playlist_sync.sharing.importer import Importer, ImportResult
from playlist_sync.sharing.rating import RatingAggregator
from playlist_sync.sharing.resolver import TieredResolver


logger = get_logger(__name__)

# Fields the owner never writes: derived counters and editorial flags
_SERVER_OWNED_FIELDS = ("rating", "downloadCount", "createdAt", "featured", "verified")


@dataclass(frozen=True)
class SaveResult:
    """
    Outcome of save()/share().

    The save itself always succeeded locally when a SaveResult exists;
    ``synced`` tells whether the remote mirror was written too.

    Attributes:
        record: The record as cached after the save.
        remote_id: Remote document id, when synced.
        synced: True if the remote copy was created or updated.
        message: Summary suitable for display.
    """
    record: SharedPlaylistRecord
    remote_id: str | None = None
    synced: bool = False
    message: str = ""


class SyncCoordinator:
    """
    Orchestrates the local store, remote store, ratings and imports.

    Example:
        coordinator = SyncCoordinator(store, remote, auth)
        result = await coordinator.share(playlist, tags=("party",))
        print(f"Share code: {result.record.share_code}")

        found = await coordinator.resolve_by_code("ab12cd34")
        if found:
            print(found.value.name)
    """

    def __init__(
        self,
        store: LocalStore,
        remote: FirestoreRemoteStore | None,
        identity: IdentityProvider,
        sharing: SharingConfig | None = None,
        ratings: RatingAggregator | None = None,
        importer: Importer | None = None
    ) -> None:
        self.store = store
        self.remote = remote
        self.identity = identity
        self.sharing = sharing or SharingConfig()
        self.ratings = ratings or RatingAggregator(store, remote)
        self.importer = importer or Importer(store)
        self.resolver = TieredResolver(remote)
        self._sign_in_attempted = False
        self._save_locks: dict[tuple[str, str], asyncio.Lock] = {}

    @property
    def remote_available(self) -> bool:
        return self.resolver.remote_available

    async def acting_identity(self, for_remote_write: bool = False) -> Identity:
        """
        Current identity; before a remote write, try one anonymous sign-in.

        A failed sign-in is logged and not retried for the lifetime of
        the coordinator.
        """
        acting = await self.identity.current_identity()
        if (
            for_remote_write
            and not acting.authenticated
            and self.remote_available
            and self.sharing.auto_sign_in
            and not self._sign_in_attempted
        ):
            self._sign_in_attempted = True
            try:
                acting = await self.identity.sign_in_anonymously()
            except RemoteError as e:
                logger.warning(f"Anonymous sign-in failed, staying local-only: {e.message}")
        return acting

    # =========================================================================
    # Saving
    # =========================================================================

    async def share(
        self,
        playlist: Playlist,
        description: str = "",
        tags: tuple[str, ...] | list[str] = (),
        is_public: bool = True
    ) -> SaveResult:
        """
        Publish a library playlist.

        Re-sharing the same playlist keeps its share code and creation
        date and bumps the version; a first share draws a new code that
        is not in use remotely.

        Raises:
            ValidationFailed: If the playlist has no name or no clips.
            LocalStoreError: If the local write fails.
        """
        if not playlist.name.strip() or not playlist.clips:
            raise ValidationFailed(
                "A playlist needs a name and at least one clip to be shared",
                details={"playlist_id": playlist.id}
            )

        acting = await self.acting_identity(for_remote_write=True)
        async with self._save_lock(acting, playlist.id):
            record = await self._share_record(playlist, acting, description, tags, is_public)
            logger.info(f"Sharing '{playlist.name}' as {record.share_code} (version {record.version})")
            return await self._save(record)

    async def _share_record(
        self,
        playlist: Playlist,
        acting: Identity,
        description: str,
        tags: tuple[str, ...] | list[str],
        is_public: bool
    ) -> SharedPlaylistRecord:
        creator_id = acting.uid if acting.authenticated else None

        cached = self.store.find_by_original(playlist.id, creator_id)
        previous = cached[0] if cached else None
        if previous is None and creator_id and self.remote_available:
            try:
                previous = await self.remote.get_by_original(playlist.id, creator_id)
            except RemoteError as e:
                logger.warning(f"Could not look up previous share: {e.message}")

        if previous is not None:
            share_code = previous.share_code
            ref = previous.ref
            created_at = previous.created_at
            version = previous.version + 1
        else:
            share_code = await self.unique_share_code()
            ref = LocalRef(playlist.id)
            created_at = now_iso()
            version = 1

        return SharedPlaylistRecord(
            ref=ref,
            name=playlist.name,
            share_code=share_code,
            clips=playlist.clips,
            description=description.strip(),
            tags=normalize_tags(list(tags)),
            creator_id=creator_id,
            creator_display_name=acting.display_name,
            is_public=is_public,
            featured=previous.featured if previous else False,
            verified=previous.verified if previous else False,
            rating=previous.rating if previous else 0.0,
            download_count=previous.download_count if previous else 0,
            created_at=created_at,
            version=version,
            drinking_sound=playlist.drinking_sound,
            image_path=playlist.image_path,
        )

    async def unique_share_code(self, generate: Callable[[], str] | None = None) -> str:
        """
        Draw a share code not used locally nor (when reachable) remotely.

        Args:
            generate: Code generator; new_share_code when None.

        Gives up checking after the configured number of attempts and
        returns the last draw; collisions are unlikely at 36^8.
        """
        generate = generate or new_share_code
        code = generate()
        for _ in range(self.sharing.share_code_attempts):
            if self.store.get_by_code(code) is None:
                if not self.remote_available:
                    return code
                try:
                    if not await self.remote.share_code_exists(code):
                        return code
                except RemoteError as e:
                    logger.warning(f"Could not check share code uniqueness: {e.message}")
                    return code
            code = generate()
        logger.warning(f"No verified-unique share code after {self.sharing.share_code_attempts} attempts")
        return code

    def _save_lock(self, acting: Identity, original_local_id: str) -> asyncio.Lock:
        # One save at a time per (identity, source playlist): lookup and create must not interleave
        key = (acting.uid, original_local_id)
        if key not in self._save_locks:
            self._save_locks[key] = asyncio.Lock()
        return self._save_locks[key]

    async def save(self, record: SharedPlaylistRecord) -> SaveResult:
        """
        Save a record locally, then mirror it remotely when possible.

        Steps:
            1. Write to the local store (always).
            2. If the remote store is available and the caller is
               authenticated, update the caller's remote record for the
               same source playlist, or create one.
            3. Remote failures are logged; the local save stands.

        Overlapping saves of the same source playlist by the same identity
        run one after the other, so the second one updates the record the
        first one created.

        Raises:
            LocalStoreError: Only if the local write fails.
        """
        acting = await self.acting_identity(for_remote_write=True)
        async with self._save_lock(acting, record.original_local_id or record.id):
            return await self._save(record)

    async def _save(self, record: SharedPlaylistRecord) -> SaveResult:
        stamp = now_iso()
        record = replace(record, created_at=record.created_at or stamp, updated_at=stamp)
        await self.store.put(record)

        if not self.remote_available:
            return SaveResult(record, message="Saved locally")

        acting = await self.acting_identity(for_remote_write=True)
        if not acting.authenticated:
            return SaveResult(record, message="Saved locally (not signed in)")
        if record.creator_id not in (None, acting.uid):
            return SaveResult(record, message="Saved locally (owned by another account)")
        if record.creator_id is None:
            record = replace(
                record,
                creator_id=acting.uid,
                creator_display_name=record.creator_display_name or acting.display_name,
            )

        original = record.original_local_id or record.id
        try:
            existing = await self.remote.get_by_original(original, acting.uid)
            if existing is None and record.is_remote:
                existing = await self.remote.get(record.id)
            if existing is not None:
                synced = await self._update_remote(record, existing, acting)
                if synced is None:
                    return SaveResult(record, message="Saved locally (remote copy not writable)")
            else:
                remote_id = await self.remote.create(record, acting)
                synced = replace(record, ref=RemoteRef(remote_id, original))
        except RemoteError as e:
            log_sync_failure(logger, record.name, record.share_code, "save", e.message)
            return SaveResult(record, message=f"Saved locally; remote sync failed: {e.message}")

        await self._recache(record, synced)
        logger.info(f"Synced '{synced.name}' to remote document {synced.id}")
        return SaveResult(synced, remote_id=synced.id, synced=True, message="Shared")

    async def _update_remote(
        self,
        record: SharedPlaylistRecord,
        existing: SharedPlaylistRecord,
        acting: Identity
    ) -> SharedPlaylistRecord | None:
        # A share code is never reassigned: the remote one wins
        merged = replace(
            record,
            ref=existing.ref,
            share_code=existing.share_code or record.share_code,
            created_at=existing.created_at or record.created_at,
            rating=existing.rating,
            download_count=existing.download_count,
            featured=existing.featured,
            verified=existing.verified,
            version=max(record.version, existing.version + 1),
        )
        fields = {
            key: value for key, value in merged.to_document().items()
            if key not in _SERVER_OWNED_FIELDS
        }
        if not await self.remote.update_fields(existing.id, fields, acting):
            return None
        return merged

    async def _recache(self, old: SharedPlaylistRecord, new: SharedPlaylistRecord) -> None:
        await self.store.put(new)
        if old.id != new.id:
            await self.store.delete(old.id)

    # =========================================================================
    # Reading
    # =========================================================================

    async def resolve_by_code(self, code: str) -> OperationResult[SharedPlaylistRecord]:
        """
        Find a shared playlist by its share code.

        The code is validated before any store is consulted. A remote hit
        is written into the local cache before it is returned.
        """
        try:
            code = normalize_share_code(code)
        except ValidationFailed as e:
            return OperationResult.from_exception(e)

        resolution = await self.resolver.resolve(
            remote=lambda: self.remote.get_by_share_code(code),
            local=lambda: self.store.get_by_code(code),
            warm=self.store.put,
        )
        if not resolution.found:
            return OperationResult.failure(
                ErrorKind.NOT_FOUND,
                "Playlist not found. Please check the share code and try again.",
                details={"share_code": code},
            )
        return OperationResult.success(resolution.value, f"Found {resolution.source}ly")

    async def find(self, record_id: str) -> SharedPlaylistRecord | None:
        resolution = await self.resolver.resolve(
            remote=lambda: self.remote.get(record_id),
            local=lambda: self.store.get(record_id),
        )
        return resolution.value

    async def list(
        self,
        category: str = "new",
        limit: int | None = None,
        filters: PlaylistFilters | None = None
    ) -> OperationResult[list[SharedPlaylistRecord]]:
        """
        Public playlists of a category, remote first.

        Falls back to the public records of the local cache when the
        remote store is unavailable, fails, or returns nothing. Records
        appearing twice are reported once.
        """
        try:
            validate_category(category)
        except ValidationFailed as e:
            return OperationResult.from_exception(e)
        limit = limit or self.sharing.list_limit

        resolution = await self.resolver.resolve(
            remote=lambda: self.remote.query_by_category(category, limit),
            local=lambda: [r for r in self.store.get_all() if r.is_public],
        )
        records = apply_category(dedupe(resolution.value or []), category)
        if filters is not None:
            try:
                records = filter_records(records, filters)
            except ValidationFailed as e:
                return OperationResult.from_exception(e)
        return OperationResult.success(records[:limit], f"{len(records[:limit])} playlists")

    async def list_mine(self) -> OperationResult[list[SharedPlaylistRecord]]:
        """Records owned by the current account plus those shared from here."""
        acting = await self.acting_identity()
        local_only = [
            r for r in self.store.get_all()
            if not r.is_remote and r.creator_id in (None, acting.uid)
        ]
        if not acting.authenticated:
            return OperationResult.success(local_only)

        owned = [r for r in self.store.get_all() if r.is_remote and r.creator_id == acting.uid]
        if self.remote_available:
            try:
                owned = await self.remote.query_by_creator(acting.uid)
            except RemoteError as e:
                logger.warning(f"Could not load your remote playlists, using cache: {e.message}")
        return OperationResult.success(dedupe(owned + local_only))

    async def share_code_for(self, playlist_id: str) -> str | None:
        """Share code of an already shared library playlist, if any."""
        cached = self.store.find_by_original(playlist_id)
        if cached:
            return cached[0].share_code

        acting = await self.acting_identity()
        if not (acting.authenticated and self.remote_available):
            return None
        try:
            existing = await self.remote.get_by_original(playlist_id, acting.uid)
        except RemoteError as e:
            logger.warning(f"Could not look up share code: {e.message}")
            return None
        return existing.share_code if existing else None

    async def tags(self) -> list[str]:
        records = await self.list("new", limit=self.sharing.list_limit * CATEGORY_OVERFETCH)
        return all_tags(records.value or [])

    async def creators(self) -> list[str]:
        records = await self.list("new", limit=self.sharing.list_limit * CATEGORY_OVERFETCH)
        return all_creators(records.value or [])

    # =========================================================================
    # Importing
    # =========================================================================

    async def import_code(self, code: str) -> OperationResult[ImportResult]:
        """
        Copy the playlist behind a share code into the local library.

        Records a download receipt for the source record.
        """
        resolved = await self.resolve_by_code(code)
        if not resolved:
            return OperationResult.failure(resolved.error, resolved.message, resolved.details)

        source = resolved.value
        try:
            result = await self.importer.import_record(source)
        except ValidationFailed as e:
            return OperationResult.from_exception(e)

        acting = await self.acting_identity()
        await self.ratings.record_download(source.id, acting)
        return OperationResult.success(result, result.message)

    async def import_file(self, path: Path) -> OperationResult[ImportResult]:
        try:
            result = await self.importer.import_from_file(path)
        except ValidationFailed as e:
            return OperationResult.from_exception(e)
        return OperationResult.success(result, result.message)

    # =========================================================================
    # Ratings and downloads (acting as the current identity)
    # =========================================================================

    async def rate(self, record_id: str, value: int, review: str | None = None) -> OperationResult[float]:
        return await self.ratings.rate(record_id, await self.acting_identity(), value, review)

    async def record_download(self, record_id: str) -> OperationResult[int]:
        return await self.ratings.record_download(record_id, await self.acting_identity())

    # =========================================================================
    # Owner operations
    # =========================================================================

    async def _remote_target(
        self,
        record: SharedPlaylistRecord,
        acting: Identity
    ) -> SharedPlaylistRecord | None:
        """
        The remote record an owner operation applies to.

        A local-only record may still have a remote counterpart shared
        from another session; it is found through the source playlist id.
        """
        if record.is_remote:
            return record
        if not (acting.authenticated and self.remote_available and record.original_local_id):
            return None
        try:
            return await self.remote.get_by_original(record.original_local_id, acting.uid)
        except RemoteError as e:
            logger.warning(f"Could not look up remote copy: {e.message}")
            return None

    async def _owner_update(
        self,
        record_id: str,
        fields: dict[str, Any],
        changes: dict[str, Any],
        operation: str
    ) -> OperationResult[SharedPlaylistRecord]:
        record = await self.find(record_id)
        if record is None:
            return OperationResult.failure(
                ErrorKind.NOT_FOUND, "Playlist not found", details={"record_id": record_id}
            )

        acting = await self.acting_identity()
        target = await self._remote_target(record, acting)

        if target is not None:
            guard = ownership.check(target, acting)
            if not guard:
                return OperationResult.failure(guard.error, guard.message, guard.details)
            if not self.remote_available:
                return OperationResult.failure(
                    ErrorKind.REMOTE_UNAVAILABLE,
                    "The shared copy cannot be changed while offline",
                    details={"record_id": target.id},
                )
            try:
                updated = await self.remote.update_fields(target.id, fields, acting)
            except RemoteError as e:
                return OperationResult.from_exception(e)
            if not updated:
                return OperationResult.failure(
                    ErrorKind.OWNERSHIP_DENIED,
                    "The shared copy no longer exists or belongs to another account",
                    details={"record_id": target.id},
                )
            if target.id != record.id:
                await self.store.put(replace(target, updated_at=now_iso(), **changes))

        result = replace(record, updated_at=now_iso(), **changes)
        await self.store.put(result)
        logger.info(f"{operation}: '{result.name}' ({result.id})")
        return OperationResult.success(result)

    async def remove_from_community(self, record_id: str) -> OperationResult[SharedPlaylistRecord]:
        """
        Make a shared playlist private without deleting it.

        The record keeps its ratings and downloads and stays resolvable
        by exact share code.
        """
        return await self._owner_update(
            record_id, {"isPublic": False}, {"is_public": False}, "Removed from community"
        )

    async def update_details(
        self,
        record_id: str,
        name: str | None = None,
        description: str | None = None,
        tags: list[str] | None = None
    ) -> OperationResult[SharedPlaylistRecord]:
        """Rename or re-describe a shared playlist (owner only)."""
        fields: dict[str, Any] = {}
        changes: dict[str, Any] = {}
        if name is not None:
            if not name.strip():
                return OperationResult.failure(ErrorKind.VALIDATION_FAILED, "Name cannot be empty")
            fields["name"] = changes["name"] = name.strip()
        if description is not None:
            fields["description"] = changes["description"] = description.strip()
        if tags is not None:
            changes["tags"] = normalize_tags(tags)
            fields["tags"] = list(changes["tags"])
        if not fields:
            return OperationResult.failure(ErrorKind.VALIDATION_FAILED, "Nothing to update")
        return await self._owner_update(record_id, fields, changes, "Updated details")

    async def delete(self, record_id: str) -> OperationResult[None]:
        """
        Delete a shared playlist with its ratings and downloads.

        Remote-backed records require ownership; if the remote delete is
        refused or fails, nothing is deleted locally.
        """
        record = await self.find(record_id)
        if record is None:
            return OperationResult.failure(
                ErrorKind.NOT_FOUND, "Playlist not found", details={"record_id": record_id}
            )

        acting = await self.acting_identity()
        target = await self._remote_target(record, acting)
        if target is not None:
            guard = ownership.check(target, acting)
            if not guard:
                return OperationResult.failure(guard.error, guard.message, guard.details)
            if not self.remote_available:
                return OperationResult.failure(
                    ErrorKind.REMOTE_UNAVAILABLE,
                    "The shared copy cannot be deleted while offline",
                    details={"record_id": target.id},
                )
            try:
                deleted = await self.remote.delete(target.id, acting)
            except RemoteError as e:
                return OperationResult.from_exception(e)
            if not deleted:
                return OperationResult.failure(
                    ErrorKind.OWNERSHIP_DENIED,
                    "The shared copy no longer exists or belongs to another account",
                    details={"record_id": target.id},
                )
            await self.store.delete_cascade(target.id)

        await self.store.delete_cascade(record.id)
        logger.info(f"Deleted shared playlist '{record.name}' ({record.id})")
        return OperationResult.success(message=f"Deleted '{record.name}'")
