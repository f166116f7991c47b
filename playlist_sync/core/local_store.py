"""
SQLite-backed local store for playlist-sync.

The store mirrors a browser-style key/value storage: each logical table is
one JSON document under a well-known key. An in-memory view of every key
is loaded at construction; reads are served from that view and every
mutation is committed to SQLite before the awaited call returns.

Schema:
    schema_version:     Single row with the schema version
    kv:                 key TEXT PRIMARY KEY, value TEXT (JSON), updated_at

Keys:
    shared_playlists:   list of shared playlist records
    playlist_ratings:   list of rating entries
    user_downloads:     list of download receipts
    user_profile:       anonymous installation profile (object)
    playlists:          the user's own playlist library

Corruption Policy:
    Unparseable JSON or a value of the wrong shape is logged and reset to
    empty instead of failing. Individual malformed entries inside a valid
    list are skipped with a warning.

Concurrency:
    Writes run in a worker thread (sqlite3 is blocking) and are serialized
    by an asyncio.Lock. Each write persists the in-memory view as it is
    when the write starts, so overlapping writers cannot persist an older
    state after a newer one.

Usage:
    store = LocalStore(data_dir / "playlist_sync.db")
    await store.put(record)
    record = store.get_by_code("AB12CD34")
"""

import asyncio
import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Generator, TypeVar

from playlist_sync.core.exceptions import LocalStoreError
from playlist_sync.core.logger import get_logger
from playlist_sync.core.models import (
    DownloadReceipt,
    Playlist,
    RatingEntry,
    SharedPlaylistRecord,
    UserProfile,
)


logger = get_logger(__name__)

DATABASE_VERSION = 1

SHARED_PLAYLISTS_KEY = "shared_playlists"
PLAYLIST_RATINGS_KEY = "playlist_ratings"
USER_DOWNLOADS_KEY = "user_downloads"
USER_PROFILE_KEY = "user_profile"
PLAYLISTS_KEY = "playlists"

_LIST_KEYS = (SHARED_PLAYLISTS_KEY, PLAYLIST_RATINGS_KEY, USER_DOWNLOADS_KEY, PLAYLISTS_KEY)

T = TypeVar("T")


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT,
    updated_at TEXT
);
"""


class LocalStore:
    """
    Durable local cache of shared playlists, ratings, receipts and profile.

    Uses a single persistent connection guarded by a thread lock (writes
    happen on worker threads) and an asyncio lock that orders writes.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._lock = threading.Lock()
        self._write_lock: asyncio.Lock | None = None
        self._conn: sqlite3.Connection | None = None
        self._view: dict[str, Any] = {}

        if not db_path.parent.exists():
            raise LocalStoreError(
                f"Parent directory does not exist: {db_path.parent}",
                details={"path": str(db_path.parent)}
            )

        try:
            self._init_database()
            self._load_view()
        except sqlite3.Error as e:
            raise LocalStoreError(
                f"Failed to initialize local store: {e}",
                details={"path": str(db_path)}
            ) from e

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=30.0,
                check_same_thread=False  # Thread safety handled by _lock
            )
            self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.execute("PRAGMA synchronous = FULL")
        yield self._conn

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _init_database(self) -> None:
        with self._lock:
            with self._get_connection() as conn:
                conn.executescript(_SCHEMA_SQL)

                row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
                if row is None:
                    conn.execute(
                        "INSERT INTO schema_version (version) VALUES (?)", (DATABASE_VERSION,)
                    )
                elif row[0] != DATABASE_VERSION:
                    raise LocalStoreError(
                        f"Local store version mismatch: expected {DATABASE_VERSION}, got {row[0]}",
                        details={"expected": DATABASE_VERSION, "actual": row[0]}
                    )
                conn.commit()

    def _load_view(self) -> None:
        with self._lock:
            with self._get_connection() as conn:
                rows = dict(conn.execute("SELECT key, value FROM kv").fetchall())

        for key in _LIST_KEYS:
            self._view[key] = self._parse(key, rows.get(key), list)
        self._view[USER_PROFILE_KEY] = self._parse(USER_PROFILE_KEY, rows.get(USER_PROFILE_KEY), dict)

    def _parse(self, key: str, raw: str | None, expected: type) -> Any:
        if raw is None:
            return expected()
        try:
            value = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Corrupt local data under '{key}', resetting: {e}")
            self._write_key(key, json.dumps(expected()))
            return expected()
        if not isinstance(value, expected):
            logger.warning(
                f"Unexpected local data shape under '{key}' "
                f"({type(value).__name__}), resetting"
            )
            self._write_key(key, json.dumps(expected()))
            return expected()
        return value

    def _write_key(self, key: str, payload: str) -> None:
        try:
            with self._lock:
                with self._get_connection() as conn:
                    conn.execute("""
                        INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)
                        ON CONFLICT(key) DO UPDATE SET
                            value = excluded.value,
                            updated_at = excluded.updated_at
                    """, (key, payload, datetime.now(timezone.utc).isoformat()))
                    conn.commit()
        except sqlite3.Error as e:
            raise LocalStoreError(
                f"Failed to write local data: {e}",
                details={"path": str(self.db_path), "key": key}
            ) from e

    async def _commit(self, key: str) -> None:
        if self._write_lock is None:
            self._write_lock = asyncio.Lock()
        async with self._write_lock:
            payload = json.dumps(self._view[key])
            await asyncio.to_thread(self._write_key, key, payload)

    def _entries(self, key: str, factory: Callable[[dict[str, Any]], T]) -> list[T]:
        items: list[T] = []
        for raw in self._view[key]:
            if not isinstance(raw, dict):
                continue
            try:
                items.append(factory(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed entry in '{key}': {e}")
        return items

    # =========================================================================
    # Shared Playlists
    # =========================================================================

    def get_all(self) -> list[SharedPlaylistRecord]:
        """All cached shared playlist records. Never raises."""
        return self._entries(SHARED_PLAYLISTS_KEY, SharedPlaylistRecord.from_dict)

    def get(self, record_id: str) -> SharedPlaylistRecord | None:
        for record in self.get_all():
            if record.id == record_id:
                return record
        return None

    def get_by_code(self, share_code: str) -> SharedPlaylistRecord | None:
        """First cached record whose share code equals ``share_code``."""
        for record in self.get_all():
            if record.share_code == share_code:
                return record
        return None

    def find_by_original(
        self,
        original_local_id: str,
        creator_id: str | None = None
    ) -> list[SharedPlaylistRecord]:
        """
        Cached records derived from one library playlist.

        When ``creator_id`` is given, records of other creators are
        excluded; records without a creator still match.
        """
        return [
            record for record in self.get_all()
            if record.original_local_id == original_local_id
            and (creator_id is None or record.creator_id in (None, creator_id))
        ]

    async def put(self, record: SharedPlaylistRecord) -> SharedPlaylistRecord:
        """Upsert a record by id (last write wins)."""
        entries = [
            raw for raw in self._view[SHARED_PLAYLISTS_KEY]
            if not (isinstance(raw, dict) and raw.get("id") == record.id)
        ]
        entries.append(record.to_dict())
        self._view[SHARED_PLAYLISTS_KEY] = entries
        await self._commit(SHARED_PLAYLISTS_KEY)
        logger.debug(f"Saved shared playlist locally: {record.name} ({record.id})")
        return record

    async def delete(self, record_id: str) -> None:
        """Remove a record. Deleting a missing id is a no-op."""
        before = self._view[SHARED_PLAYLISTS_KEY]
        after = [raw for raw in before if not (isinstance(raw, dict) and raw.get("id") == record_id)]
        if len(after) == len(before):
            return
        self._view[SHARED_PLAYLISTS_KEY] = after
        await self._commit(SHARED_PLAYLISTS_KEY)

    async def delete_cascade(self, record_id: str) -> None:
        """Remove a record together with its ratings and download receipts."""
        await self.delete(record_id)
        for key in (PLAYLIST_RATINGS_KEY, USER_DOWNLOADS_KEY):
            before = self._view[key]
            after = [
                raw for raw in before
                if not (isinstance(raw, dict) and raw.get("playlistId") == record_id)
            ]
            if len(after) != len(before):
                self._view[key] = after
                await self._commit(key)

    async def clear_shared(self) -> None:
        self._view[SHARED_PLAYLISTS_KEY] = []
        await self._commit(SHARED_PLAYLISTS_KEY)

    # =========================================================================
    # Ratings
    # =========================================================================

    def get_ratings(self, playlist_id: str | None = None) -> list[RatingEntry]:
        entries = self._entries(PLAYLIST_RATINGS_KEY, RatingEntry.from_dict)
        if playlist_id is None:
            return entries
        return [entry for entry in entries if entry.playlist_id == playlist_id]

    def get_rating(self, playlist_id: str, rater_id: str) -> RatingEntry | None:
        for entry in self.get_ratings(playlist_id):
            if entry.rater_id == rater_id:
                return entry
        return None

    async def put_rating(self, entry: RatingEntry) -> None:
        """Insert or replace the rating of one rater for one playlist."""
        entries = [
            raw for raw in self._view[PLAYLIST_RATINGS_KEY]
            if not (
                isinstance(raw, dict)
                and raw.get("playlistId") == entry.playlist_id
                and raw.get("userId") == entry.rater_id
            )
        ]
        entries.append(entry.to_dict())
        self._view[PLAYLIST_RATINGS_KEY] = entries
        await self._commit(PLAYLIST_RATINGS_KEY)

    async def delete_rating(self, playlist_id: str, rater_id: str) -> bool:
        before = self._view[PLAYLIST_RATINGS_KEY]
        after = [
            raw for raw in before
            if not (
                isinstance(raw, dict)
                and raw.get("playlistId") == playlist_id
                and raw.get("userId") == rater_id
            )
        ]
        if len(after) == len(before):
            return False
        self._view[PLAYLIST_RATINGS_KEY] = after
        await self._commit(PLAYLIST_RATINGS_KEY)
        return True

    # =========================================================================
    # Download Receipts
    # =========================================================================

    def get_downloads(self, playlist_id: str | None = None) -> list[DownloadReceipt]:
        receipts = self._entries(USER_DOWNLOADS_KEY, DownloadReceipt.from_dict)
        if playlist_id is None:
            return receipts
        return [receipt for receipt in receipts if receipt.playlist_id == playlist_id]

    def has_download(self, playlist_id: str, downloader_id: str) -> bool:
        return any(
            receipt.downloader_id == downloader_id
            for receipt in self.get_downloads(playlist_id)
        )

    async def add_download(self, receipt: DownloadReceipt) -> bool:
        """
        Store a download receipt.

        Returns:
            True if the receipt was added, False if one already existed for
            the same (playlist, downloader) pair.
        """
        if self.has_download(receipt.playlist_id, receipt.downloader_id):
            return False
        self._view[USER_DOWNLOADS_KEY] = self._view[USER_DOWNLOADS_KEY] + [receipt.to_dict()]
        await self._commit(USER_DOWNLOADS_KEY)
        return True

    async def prune_before(self, cutoff: datetime) -> tuple[int, int]:
        """
        Drop ratings and receipts older than ``cutoff``.

        Entries with unparseable timestamps are kept.

        Returns:
            (ratings_removed, downloads_removed)
        """
        removed = []
        for key, stamp_field in (
            (PLAYLIST_RATINGS_KEY, "createdAt"),
            (USER_DOWNLOADS_KEY, "downloadedAt"),
        ):
            before = self._view[key]
            after = [raw for raw in before if not _older_than(raw, stamp_field, cutoff)]
            removed.append(len(before) - len(after))
            if len(after) != len(before):
                self._view[key] = after
                await self._commit(key)
        return removed[0], removed[1]

    # =========================================================================
    # Playlist Library
    # =========================================================================

    def get_playlists(self) -> list[Playlist]:
        return self._entries(PLAYLISTS_KEY, Playlist.from_dict)

    def get_playlist(self, playlist_id: str) -> Playlist | None:
        for playlist in self.get_playlists():
            if playlist.id == playlist_id:
                return playlist
        return None

    async def put_playlist(self, playlist: Playlist) -> Playlist:
        entries = [
            raw for raw in self._view[PLAYLISTS_KEY]
            if not (isinstance(raw, dict) and raw.get("id") == playlist.id)
        ]
        entries.append(playlist.to_dict())
        self._view[PLAYLISTS_KEY] = entries
        await self._commit(PLAYLISTS_KEY)
        return playlist

    async def delete_playlist(self, playlist_id: str) -> None:
        before = self._view[PLAYLISTS_KEY]
        after = [raw for raw in before if not (isinstance(raw, dict) and raw.get("id") == playlist_id)]
        if len(after) != len(before):
            self._view[PLAYLISTS_KEY] = after
            await self._commit(PLAYLISTS_KEY)

    # =========================================================================
    # Profile
    # =========================================================================

    def get_profile(self) -> UserProfile | None:
        raw = self._view[USER_PROFILE_KEY]
        if not raw:
            return None
        try:
            return UserProfile.from_dict(raw)
        except ValueError as e:
            logger.warning(f"Ignoring malformed user profile: {e}")
            return None

    async def save_profile(self, profile: UserProfile) -> None:
        self._view[USER_PROFILE_KEY] = profile.to_dict()
        await self._commit(USER_PROFILE_KEY)


def _older_than(raw: Any, stamp_field: str, cutoff: datetime) -> bool:
    if not isinstance(raw, dict):
        return False
    try:
        stamp = datetime.fromisoformat(str(raw.get(stamp_field)))
    except ValueError:
        return False
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp < cutoff
