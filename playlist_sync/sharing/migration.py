"""
Migration of local playlists into the signed-in account.

Playlists created before signing in live only in this installation. The
migration service pushes each library playlist to the remote store under
the current account, so it follows the user to other devices:

    - A playlist already shared from here (a local-only shared record)
      is pushed as is, keeping its share code and visibility.
    - Any other playlist gets a private record tagged 'migrated', with a
      MIG-prefixed share code and a "Migrated from local storage" note.

A playlist whose (account, playlist id) pair already has a remote record
is skipped, so running the migration twice creates nothing the second
time. One failing playlist never stops the batch.

Writes go through SyncCoordinator.save(), the same path as sharing.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import AsyncIterator

from playlist_sync.core.exceptions import RemoteError
from playlist_sync.core.identifiers import new_migration_share_code
from playlist_sync.core.logger import get_logger
from playlist_sync.core.models import LocalRef, Playlist, SharedPlaylistRecord, now_iso
from playlist_sync.core.progress import MigrationProgressBar
from playlist_sync.remote.auth import Identity
from playlist_sync.sharing.coordinator import SyncCoordinator


logger = get_logger(__name__)

MIGRATED_TAG = "migrated"
MIGRATED_CREATOR_NAME = "Migrated User"


@dataclass(frozen=True)
class MigrationStatus:
    """
    Migration overview for the current identity.

    Attributes:
        local_playlists: Playlists in the local library.
        remote_playlists: Records the account owns remotely.
        needs_migration: Library playlists without a remote record.
        total: local_playlists + remote_playlists.
        can_migrate: Signed in, remote reachable, and work to do.
    """
    local_playlists: int
    remote_playlists: int
    needs_migration: int
    total: int
    can_migrate: bool


@dataclass(frozen=True)
class MigrationItem:
    """Outcome for one playlist."""
    playlist_id: str
    name: str
    migrated: bool = False
    skipped: bool = False
    remote_id: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.migrated or self.skipped


@dataclass(frozen=True)
class MigrationReport:
    """
    Outcome of a batch.

    Example:
        report = await service.migrate_all()
        print(report.message)
        for error in report.errors:
            print(f"  {error}")
    """
    items: tuple[MigrationItem, ...] = ()
    reason: str | None = None

    @property
    def migrated_count(self) -> int:
        return sum(1 for item in self.items if item.migrated)

    @property
    def skipped_count(self) -> int:
        return sum(1 for item in self.items if item.skipped)

    @property
    def failed_count(self) -> int:
        return sum(1 for item in self.items if not item.ok)

    @property
    def errors(self) -> list[str]:
        return [f'Failed to migrate "{item.name}": {item.error}' for item in self.items if not item.ok]

    @property
    def success(self) -> bool:
        return self.reason is None and self.failed_count == 0

    @property
    def message(self) -> str:
        if self.reason is not None:
            return self.reason
        text = f"Migration completed. {self.migrated_count} playlists migrated"
        if self.skipped_count:
            text += f", {self.skipped_count} already in your account"
        if self.failed_count:
            text += f", {self.failed_count} failed"
        return text + "."


class MigrationService:
    """
    Moves local playlists into the signed-in account and back.

    Example:
        service = MigrationService(coordinator)
        status = await service.status()
        if status.can_migrate:
            report = await service.migrate_all(progress=True)
    """

    def __init__(self, coordinator: SyncCoordinator) -> None:
        self._coordinator = coordinator
        self._store = coordinator.store
        self._remote = coordinator.remote

    async def _account(self) -> Identity | None:
        acting = await self._coordinator.acting_identity()
        if not acting.authenticated or not self._coordinator.remote_available:
            return None
        return acting

    async def _remote_originals(self, acting: Identity) -> set[str] | None:
        try:
            owned = await self._remote.query_by_creator(acting.uid)
        except RemoteError as e:
            logger.warning(f"Could not list your remote playlists: {e.message}")
            return None
        return {record.original_local_id or record.id for record in owned}

    async def status(self) -> MigrationStatus:
        playlists = self._store.get_playlists()
        acting = await self._account()

        remote_count = 0
        needs = 0
        if acting is not None:
            try:
                owned = await self._remote.query_by_creator(acting.uid)
            except RemoteError as e:
                logger.warning(f"Could not check remote playlists: {e.message}")
            else:
                remote_count = len(owned)
                originals = {record.original_local_id or record.id for record in owned}
                needs = sum(1 for playlist in playlists if playlist.id not in originals)

        return MigrationStatus(
            local_playlists=len(playlists),
            remote_playlists=remote_count,
            needs_migration=needs,
            total=len(playlists) + remote_count,
            can_migrate=acting is not None and needs > 0,
        )

    async def needs_migration(self, playlist_id: str) -> bool:
        acting = await self._account()
        if acting is None:
            return False
        try:
            return await self._remote.get_by_original(playlist_id, acting.uid) is None
        except RemoteError as e:
            logger.warning(f"Could not check migration status: {e.message}")
            return False

    async def _migration_record(self, playlist: Playlist, acting: Identity) -> SharedPlaylistRecord:
        cached = [
            record for record in self._store.find_by_original(playlist.id, acting.uid)
            if not record.is_remote
        ]
        if cached:
            return replace(cached[0], creator_id=acting.uid)

        share_code = await self._coordinator.unique_share_code(new_migration_share_code)

        return SharedPlaylistRecord(
            ref=LocalRef(playlist.id),
            name=playlist.name,
            share_code=share_code,
            clips=playlist.clips,
            description=f"Migrated from local storage on {datetime.now().strftime('%Y-%m-%d')}",
            tags=(MIGRATED_TAG,),
            creator_id=acting.uid,
            creator_display_name=acting.display_name or MIGRATED_CREATOR_NAME,
            is_public=False,
            created_at=playlist.created_at or now_iso(),
            drinking_sound=playlist.drinking_sound,
            image_path=playlist.image_path,
        )

    async def migrate_one(
        self,
        playlist: Playlist,
        existing: set[str] | None = None
    ) -> MigrationItem:
        """
        Migrate a single library playlist.

        Args:
            playlist: Library playlist to push.
            existing: Source playlist ids already in the account, when the
                      caller has listed them; otherwise looked up per call.

        Returns:
            MigrationItem; skipped=True when already migrated.

        Raises:
            LocalStoreError: If the local write fails.
        """
        acting = await self._account()
        if acting is None:
            return MigrationItem(playlist.id, playlist.name, error="Sign in to migrate playlists")

        if existing is not None:
            already = playlist.id in existing
        else:
            try:
                already = await self._remote.get_by_original(playlist.id, acting.uid) is not None
            except RemoteError as e:
                return MigrationItem(playlist.id, playlist.name, error=e.message)
        if already:
            logger.debug(f"Already migrated: {playlist.name}")
            return MigrationItem(playlist.id, playlist.name, skipped=True)

        result = await self._coordinator.save(await self._migration_record(playlist, acting))
        if not result.synced:
            return MigrationItem(playlist.id, playlist.name, error=result.message)

        if existing is not None:
            existing.add(playlist.id)
        logger.info(f"Migrated '{playlist.name}' as {result.record.share_code}")
        return MigrationItem(playlist.id, playlist.name, migrated=True, remote_id=result.remote_id)

    async def iter_migrate(self) -> AsyncIterator[MigrationItem]:
        """
        Migrate the library one playlist at a time.

        Callers may stop iterating between items; an item already in
        flight always completes.
        """
        acting = await self._account()
        if acting is None:
            return
        existing = await self._remote_originals(acting)
        for playlist in self._store.get_playlists():
            yield await self.migrate_one(playlist, existing)

    async def migrate_all(self, progress: bool = False) -> MigrationReport:
        """
        Migrate every library playlist.

        Args:
            progress: Show a Rich progress bar.
        """
        if await self._account() is None:
            return MigrationReport(reason="You must be signed in and online to migrate playlists")

        total = len(self._store.get_playlists())
        items: list[MigrationItem] = []
        if progress:
            with MigrationProgressBar(total=total) as bar:
                async for item in self.iter_migrate():
                    items.append(item)
                    bar.update(migrated=item.migrated, skipped=item.skipped)
        else:
            async for item in self.iter_migrate():
                items.append(item)

        report = MigrationReport(items=tuple(items))
        logger.info(report.message)
        return report

    async def pull_to_local(self) -> MigrationReport:
        """
        Copy the account's remote playlists into the local library.

        Only playlists missing locally are written; existing library
        entries are never overwritten.
        """
        acting = await self._account()
        if acting is None:
            return MigrationReport(reason="You must be signed in and online to sync playlists")
        try:
            owned = await self._remote.query_by_creator(acting.uid)
        except RemoteError as e:
            return MigrationReport(reason=f"Sync failed: {e.message}")

        items = []
        for record in owned:
            playlist_id = record.original_local_id or record.id
            if self._store.get_playlist(playlist_id) is not None:
                items.append(MigrationItem(playlist_id, record.name, skipped=True, remote_id=record.id))
                continue
            await self._store.put_playlist(Playlist(
                id=playlist_id,
                name=record.name,
                clips=record.clips,
                created_at=record.created_at,
                drinking_sound=record.drinking_sound,
                image_path=record.image_path,
            ))
            items.append(MigrationItem(playlist_id, record.name, migrated=True, remote_id=record.id))

        logger.info(f"Pulled {sum(1 for i in items if i.migrated)} playlists into the local library")
        return MigrationReport(items=tuple(items))
