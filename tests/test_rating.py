# tests/test_rating.py
"""Test ratings, download receipts and derived counters"""

from datetime import datetime, timedelta, timezone

import pytest

from playlist_sync.core.exceptions import ErrorKind
from playlist_sync.core.models import (
    DownloadReceipt,
    LocalRef,
    RatingEntry,
    RemoteRef,
    SharedPlaylistRecord,
)
from playlist_sync.remote.auth import Identity
from playlist_sync.sharing.rating import RatingAggregator, average_rating

from conftest import make_clip


def _remote_record(**kwargs):
    return SharedPlaylistRecord(
        ref=RemoteRef("doc1", "p1"),
        name="Party Mix",
        share_code="AB12CD34",
        clips=(make_clip(1),),
        creator_id="uid_alice",
        **kwargs,
    )


def _local_record(**kwargs):
    return SharedPlaylistRecord(ref=LocalRef("p1"), name="Party Mix", share_code="AB12CD34", **kwargs)


@pytest.fixture
def ratings(store, remote):
    return RatingAggregator(store, remote)


class TestAverage:
    """Test the average computation"""

    @pytest.mark.parametrize("values, expected", [
        ([], 0.0),
        ([5], 5.0),
        ([3, 4], 3.5),
        ([4, 4, 5], 4.3),
        ([1, 2, 2, 2], 1.8),
        ([3, 3, 4, 4, 4, 5], 3.8),
    ])
    def test_average_rating(self, values, expected):
        assert average_rating(values) == expected


class TestRate:
    """Test rate() and remove_rating()"""

    async def test_rating_sequence_on_remote_record(self, ratings, store, remote, account, other_account):
        """5 then 3 by one rater gives 3.0; a second rater's 4 gives 3.5"""
        remote.documents["doc1"] = _remote_record().to_document()
        await store.put(_remote_record())

        assert (await ratings.rate("doc1", account, 5)).value == 5.0
        assert (await ratings.rate("doc1", account, 3)).value == 3.0
        assert (await ratings.rate("doc1", other_account, 4)).value == 3.5

        assert remote.documents["doc1"]["rating"] == 3.5
        assert store.get("doc1").rating == 3.5
        assert len(remote.ratings) == 2

    async def test_anonymous_cannot_rate(self, ratings, guest):
        result = await ratings.rate("doc1", guest, 5)
        assert result.error is ErrorKind.OWNERSHIP_DENIED

    async def test_remote_guest_cannot_rate(self, ratings):
        remote_guest = Identity(uid="anon1", authenticated=True, is_anonymous=True)
        assert (await ratings.rate("doc1", remote_guest, 5)).error is ErrorKind.OWNERSHIP_DENIED

    @pytest.mark.parametrize("value", [0, 6, 2.5, True, "5"])
    async def test_invalid_values(self, ratings, account, store, value):
        result = await ratings.rate("doc1", account, value)
        assert result.error is ErrorKind.VALIDATION_FAILED
        assert store.get_ratings() == []

    async def test_local_only_record_uses_local_entries(self, ratings, store, remote, account, other_account):
        remote.available = False
        await store.put(_local_record())
        await ratings.rate("p1", account, 5)
        result = await ratings.rate("p1", other_account, 4)
        assert result.value == 4.5
        assert store.get("p1").rating == 4.5
        assert remote.calls == []

    async def test_remote_record_offline_keeps_cached_rating(self, ratings, store, remote, account):
        """The local entry set is partial for remote records, so it is not recomputed from"""
        remote.available = False
        await store.put(_remote_record(rating=4.2))
        result = await ratings.rate("doc1", account, 1)
        assert result.value == 4.2
        assert store.get_rating("doc1", account.uid).value == 1

    async def test_remote_failure_is_not_fatal(self, ratings, store, remote, account):
        remote.failing = True
        await store.put(_remote_record(rating=4.2))
        result = await ratings.rate("doc1", account, 2)
        assert result.ok
        assert result.value == 4.2
        assert store.get_rating("doc1", account.uid) is not None

    async def test_remove_rating(self, ratings, store, remote, account, other_account):
        remote.documents["doc1"] = _remote_record().to_document()
        await store.put(_remote_record())
        await ratings.rate("doc1", account, 5)
        await ratings.rate("doc1", other_account, 2)

        result = await ratings.remove_rating("doc1", account)
        assert result.value == 2.0
        assert (await ratings.remove_rating("doc1", account)).error is ErrorKind.NOT_FOUND

    async def test_user_rating_and_stats(self, ratings, store, remote, account, other_account):
        remote.seed_rating("doc1", account.uid, 5)
        remote.seed_rating("doc1", other_account.uid, 4)
        assert (await ratings.user_rating("doc1", account)).value == 5
        stats = await ratings.stats("doc1")
        assert stats.average == 4.5
        assert stats.total == 2
        assert stats.distribution == {1: 0, 2: 0, 3: 0, 4: 1, 5: 1}

    async def test_stats_tolerate_out_of_range_entries(self, ratings, remote, account):
        remote.seed_rating("doc1", account.uid, 7)
        stats = await ratings.stats("doc1")
        assert stats.total == 1
        assert stats.distribution[7] == 1

    async def test_stats_fall_back_to_local(self, ratings, store, remote, account):
        remote.available = False
        await store.put_rating(RatingEntry("p1", account.uid, 3))
        stats = await ratings.stats("p1")
        assert stats.total == 1
        assert stats.average == 3.0


class TestDownloads:
    """Test record_download()"""

    async def test_download_is_counted_once(self, ratings, store, remote, guest):
        remote.documents["doc1"] = _remote_record().to_document()
        await store.put(_remote_record())

        first = await ratings.record_download("doc1", guest)
        second = await ratings.record_download("doc1", guest)
        assert first.value == 1
        assert second.ok and second.value == 1
        assert second.message == "Already downloaded"
        assert remote.documents["doc1"]["downloadCount"] == 1
        assert store.get("doc1").download_count == 1

    async def test_count_comes_from_all_downloaders(self, ratings, store, remote, guest):
        remote.documents["doc1"] = _remote_record(download_count=0).to_document()
        remote.seed_download("doc1", "someone_else")
        result = await ratings.record_download("doc1", guest)
        assert result.value == 2

    async def test_offline_remote_record_bumps_cached_count(self, ratings, store, remote, guest):
        remote.available = False
        await store.put(_remote_record(download_count=7))
        assert (await ratings.record_download("doc1", guest)).value == 8
        assert (await ratings.record_download("doc1", guest)).value == 8
        assert store.get("doc1").download_count == 8

    async def test_local_only_record_counts_receipts(self, ratings, store, remote, guest, account):
        remote.available = False
        await store.put(_local_record())
        await ratings.record_download("p1", guest)
        assert (await ratings.record_download("p1", account)).value == 2

    async def test_has_downloaded(self, ratings, store, remote, guest):
        assert not await ratings.has_downloaded("doc1", guest)
        remote.seed_download("doc1", guest.uid)
        assert await ratings.has_downloaded("doc1", guest)
        remote.available = False
        assert not await ratings.has_downloaded("doc1", guest)
        await store.add_download(DownloadReceipt("doc1", guest.uid))
        assert await ratings.has_downloaded("doc1", guest)

    async def test_cleanup(self, ratings, store):
        old = (datetime.now(timezone.utc) - timedelta(days=30)).isoformat()
        await store.put_rating(RatingEntry("p1", "u1", 4, created_at=old))
        await store.add_download(DownloadReceipt("p1", "u1", downloaded_at=old))
        assert await ratings.cleanup(days_to_keep=365) == (0, 0)
        assert await ratings.cleanup(days_to_keep=7) == (1, 1)
