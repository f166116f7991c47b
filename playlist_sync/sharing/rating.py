"""
Ratings and download receipts.

The rating and download count shown on a shared playlist are caches of a
computation over the entry sets (one RatingEntry per rater, one
DownloadReceipt per downloader). Every write replaces or inserts an entry
and then recomputes the cached value from the whole set; counters are
never incremented in place against the remote document.

Which entry set is authoritative:
    - Remote-backed record, remote reachable: the remote collections
      (they hold every user's entries). The result is written onto the
      remote document and the local cache.
    - Local-only record: the local entry set.
    - Remote-backed record, remote unreachable: the local set only holds
      this installation's entries, so it is not recomputed from. The
      cached rating is kept; a newly added receipt bumps the cached
      download count until the next successful recompute.

Permissions:
    rate() requires a non-anonymous account. record_download() accepts
    any identity, including the local anonymous profile.
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Iterable

from playlist_sync.core.exceptions import ErrorKind, OperationResult, RemoteError
from playlist_sync.core.local_store import LocalStore
from playlist_sync.core.logger import get_logger, log_sync_failure
from playlist_sync.core.models import (
    MAX_RATING,
    MIN_RATING,
    DownloadReceipt,
    RatingEntry,
    SharedPlaylistRecord,
)
from playlist_sync.remote.auth import Identity
from playlist_sync.remote.firestore import FirestoreRemoteStore
from playlist_sync.sharing.resolver import TieredResolver


logger = get_logger(__name__)

DEFAULT_DAYS_TO_KEEP = 365


def average_rating(values: Iterable[int]) -> float:
    """
    Arithmetic mean rounded half-up to one decimal; 0.0 for no ratings.

    Example:
        >>> average_rating([3, 4])
        3.5
    """
    values = list(values)
    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return math.floor(mean * 10 + 0.5) / 10


@dataclass(frozen=True)
class RatingStats:
    """
    Summary of one playlist's ratings.

    Attributes:
        average: Mean rating, one decimal.
        total: Number of ratings.
        distribution: Count per star value, keys 1..5.
    """
    average: float
    total: int
    distribution: dict[int, int]


class RatingAggregator:
    """
    Records ratings and downloads and keeps the derived fields current.

    Example:
        ratings = RatingAggregator(store, remote)
        result = await ratings.rate(record.id, identity, 5)
        if result:
            print(f"Now rated {result.value}")
    """

    def __init__(self, store: LocalStore, remote: FirestoreRemoteStore | None = None) -> None:
        self._store = store
        self._remote = remote
        self._resolver = TieredResolver(remote)

    def _targets_remote(self, record: SharedPlaylistRecord | None) -> bool:
        # Uncached ids come from remote listings
        return self._resolver.remote_available and (record is None or record.is_remote)

    def _report(self, record: SharedPlaylistRecord | None, playlist_id: str, operation: str, error: RemoteError) -> None:
        log_sync_failure(
            logger,
            record.name if record else playlist_id,
            record.share_code if record else None,
            operation,
            error.message,
        )

    # =========================================================================
    # Ratings
    # =========================================================================

    async def rate(
        self,
        playlist_id: str,
        acting: Identity | None,
        value: int,
        review: str | None = None
    ) -> OperationResult[float]:
        """
        Set the acting identity's rating for a playlist.

        Args:
            playlist_id: Shared playlist id.
            acting: Rater; must be an authenticated, non-anonymous account.
            value: Star value, 1..5.
            review: Optional review text.

        Returns:
            OperationResult carrying the recomputed average rating.
            OWNERSHIP_DENIED for guests, VALIDATION_FAILED for bad values.
        """
        if acting is None or not acting.can_rate:
            return OperationResult.failure(
                ErrorKind.OWNERSHIP_DENIED,
                "Sign in with an account to rate playlists",
                details={"playlist_id": playlist_id},
            )
        if isinstance(value, bool) or not isinstance(value, int) or not MIN_RATING <= value <= MAX_RATING:
            return OperationResult.failure(
                ErrorKind.VALIDATION_FAILED,
                f"Rating must be a whole number between {MIN_RATING} and {MAX_RATING}",
                details={"value": value},
            )

        entry = RatingEntry(
            playlist_id=playlist_id,
            rater_id=acting.uid,
            value=value,
            review=(review or "").strip() or None,
        )
        await self._store.put_rating(entry)

        record = self._store.get(playlist_id)
        entries = None
        if self._targets_remote(record):
            try:
                await self._remote.upsert_rating(entry, acting)
                entries = await self._remote.list_ratings(playlist_id)
                await self._remote.update_aggregates(
                    playlist_id, acting, rating=average_rating(e.value for e in entries)
                )
            except RemoteError as e:
                self._report(record, playlist_id, "rate", e)

        average = await self._cache_rating(record, playlist_id, entries)
        logger.info(f"Rated {playlist_id}: {value} (average now {average})")
        return OperationResult.success(average)

    async def remove_rating(self, playlist_id: str, acting: Identity | None) -> OperationResult[float]:
        """Withdraw the acting identity's rating and recompute the average."""
        if acting is None:
            return OperationResult.failure(ErrorKind.OWNERSHIP_DENIED, "No identity to remove a rating for")

        removed = await self._store.delete_rating(playlist_id, acting.uid)

        record = self._store.get(playlist_id)
        entries = None
        if self._targets_remote(record) and acting.authenticated:
            try:
                removed = await self._remote.delete_rating(playlist_id, acting.uid, acting) or removed
                entries = await self._remote.list_ratings(playlist_id)
                await self._remote.update_aggregates(
                    playlist_id, acting, rating=average_rating(e.value for e in entries)
                )
            except RemoteError as e:
                self._report(record, playlist_id, "remove rating", e)

        if not removed:
            return OperationResult.failure(
                ErrorKind.NOT_FOUND,
                "You have not rated this playlist",
                details={"playlist_id": playlist_id},
            )
        return OperationResult.success(await self._cache_rating(record, playlist_id, entries))

    async def _cache_rating(
        self,
        record: SharedPlaylistRecord | None,
        playlist_id: str,
        entries: list[RatingEntry] | None
    ) -> float:
        if entries is None:
            if record is not None and record.is_remote:
                return record.rating
            entries = self._store.get_ratings(playlist_id)

        average = average_rating(e.value for e in entries)
        if record is not None and record.rating != average:
            await self._store.put(replace(record, rating=average))
        return average

    async def user_rating(self, playlist_id: str, acting: Identity | None) -> RatingEntry | None:
        if acting is None:
            return None
        resolution = await self._resolver.resolve(
            remote=lambda: self._remote.get_rating(playlist_id, acting.uid),
            local=lambda: self._store.get_rating(playlist_id, acting.uid),
        )
        return resolution.value

    async def stats(self, playlist_id: str) -> RatingStats:
        resolution = await self._resolver.resolve(
            remote=lambda: self._remote.list_ratings(playlist_id),
            local=lambda: self._store.get_ratings(playlist_id),
        )
        entries = resolution.value or []
        distribution = {star: 0 for star in range(MIN_RATING, MAX_RATING + 1)}
        for entry in entries:
            distribution[entry.value] = distribution.get(entry.value, 0) + 1
        return RatingStats(
            average=average_rating(e.value for e in entries),
            total=len(entries),
            distribution=distribution,
        )

    # =========================================================================
    # Downloads
    # =========================================================================

    async def record_download(self, playlist_id: str, acting: Identity | None) -> OperationResult[int]:
        """
        Record that ``acting`` downloaded a playlist.

        A repeat download by the same identity is a successful no-op: the
        count does not change.

        Returns:
            OperationResult carrying the download count.
        """
        if acting is None:
            return OperationResult.failure(ErrorKind.OWNERSHIP_DENIED, "No identity to record a download for")

        receipt = DownloadReceipt(playlist_id=playlist_id, downloader_id=acting.uid)
        added = await self._store.add_download(receipt)

        record = self._store.get(playlist_id)
        count = None
        if self._targets_remote(record):
            try:
                added = await self._remote.add_download(receipt, acting) or added
                downloaders = {r.downloader_id for r in await self._remote.list_downloads(playlist_id)}
                count = len(downloaders)
                await self._remote.update_aggregates(playlist_id, acting, download_count=count)
            except RemoteError as e:
                self._report(record, playlist_id, "download", e)

        if count is None:
            if record is not None and record.is_remote:
                count = record.download_count + (1 if added else 0)
            else:
                count = len(self._store.get_downloads(playlist_id))

        if record is not None and record.download_count != count:
            await self._store.put(replace(record, download_count=count))

        if not added:
            return OperationResult.success(count, "Already downloaded")
        logger.debug(f"Recorded download of {playlist_id} by {acting.uid}")
        return OperationResult.success(count)

    async def has_downloaded(self, playlist_id: str, acting: Identity | None) -> bool:
        if acting is None:
            return False
        if self._store.has_download(playlist_id, acting.uid):
            return True
        if not self._resolver.remote_available:
            return False
        try:
            return await self._remote.has_download(playlist_id, acting.uid)
        except RemoteError as e:
            logger.warning(f"Could not check remote downloads: {e.message}")
            return False

    async def cleanup(self, days_to_keep: int = DEFAULT_DAYS_TO_KEEP) -> tuple[int, int]:
        """
        Drop local ratings and receipts older than ``days_to_keep`` days.

        Returns:
            (ratings_removed, downloads_removed)
        """
        cutoff = datetime.now(timezone.utc) - timedelta(days=days_to_keep)
        removed = await self._store.prune_before(cutoff)
        if any(removed):
            logger.info(f"Pruned {removed[0]} ratings and {removed[1]} downloads older than {days_to_keep} days")
        return removed
