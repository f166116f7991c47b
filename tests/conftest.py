"""Test configuration and fixtures"""

import itertools
import tempfile
from pathlib import Path

import pytest

from playlist_sync.core.exceptions import RemoteUnavailable
from playlist_sync.core.local_store import LocalStore
from playlist_sync.core.models import (
    Clip,
    DownloadReceipt,
    Playlist,
    RatingEntry,
    SharedPlaylistRecord,
)
from playlist_sync.remote.auth import Identity, IdentityProvider
from playlist_sync.sharing.coordinator import SyncCoordinator


class FakeRemoteStore:
    """
    In-memory stand-in for FirestoreRemoteStore.

    Documents are kept in their camelCase document form and rebuilt with
    SharedPlaylistRecord.from_document(), like the real client does.

    Attributes:
        available: Value returned by is_available().
        failing: When True every call raises RemoteUnavailable.
    """

    def __init__(self):
        self.available = True
        self.failing = False
        self.documents = {}
        self.ratings = {}
        self.downloads = {}
        self.calls = []
        self._ids = itertools.count(1)

    def is_available(self):
        return self.available

    async def close(self):
        return None

    def _enter(self, name):
        self.calls.append(name)
        if self.failing:
            raise RemoteUnavailable("Remote store unreachable: simulated outage")

    def _record(self, doc_id):
        return SharedPlaylistRecord.from_document(doc_id, self.documents[doc_id])

    async def create(self, record, acting):
        self._enter("create")
        doc_id = f"remote{next(self._ids)}"
        self.documents[doc_id] = record.to_document()
        return doc_id

    async def get(self, record_id):
        self._enter("get")
        if record_id not in self.documents:
            return None
        return self._record(record_id)

    async def update_fields(self, record_id, fields, acting):
        self._enter("update_fields")
        existing = self.documents.get(record_id)
        if existing is None:
            return False
        if not acting.authenticated or existing.get("creatorId") != acting.uid:
            return False
        existing.update(fields)
        return True

    async def update_aggregates(self, record_id, acting, rating=None, download_count=None):
        self._enter("update_aggregates")
        existing = self.documents.get(record_id)
        if existing is None:
            return False
        if rating is not None:
            existing["rating"] = rating
        if download_count is not None:
            existing["downloadCount"] = download_count
        return True

    async def get_by_share_code(self, share_code):
        self._enter("get_by_share_code")
        for doc_id, data in self.documents.items():
            if data.get("shareCode") == share_code:
                return self._record(doc_id)
        return None

    async def share_code_exists(self, share_code):
        self._enter("share_code_exists")
        return any(data.get("shareCode") == share_code for data in self.documents.values())

    async def get_by_original(self, original_local_id, creator_id):
        self._enter("get_by_original")
        for doc_id, data in self.documents.items():
            if data.get("originalPlaylistId") == original_local_id and data.get("creatorId") == creator_id:
                return self._record(doc_id)
        return None

    async def query_by_category(self, category, limit):
        self._enter("query_by_category")
        return [self._record(doc_id) for doc_id, data in self.documents.items() if data.get("isPublic", True)]

    async def query_by_creator(self, creator_id):
        self._enter("query_by_creator")
        return [self._record(doc_id) for doc_id, data in self.documents.items() if data.get("creatorId") == creator_id]

    async def delete(self, record_id, acting):
        self._enter("delete")
        existing = self.documents.get(record_id)
        if existing is None or not acting.authenticated or existing.get("creatorId") != acting.uid:
            return False
        del self.documents[record_id]
        self.ratings = {k: v for k, v in self.ratings.items() if k[0] != record_id}
        self.downloads = {k: v for k, v in self.downloads.items() if k[0] != record_id}
        return True

    async def list_ratings(self, playlist_id):
        self._enter("list_ratings")
        return [entry for (pid, _), entry in self.ratings.items() if pid == playlist_id]

    async def get_rating(self, playlist_id, rater_id):
        self._enter("get_rating")
        return self.ratings.get((playlist_id, rater_id))

    async def upsert_rating(self, entry, acting):
        self._enter("upsert_rating")
        self.ratings[(entry.playlist_id, entry.rater_id)] = entry

    async def delete_rating(self, playlist_id, rater_id, acting):
        self._enter("delete_rating")
        return self.ratings.pop((playlist_id, rater_id), None) is not None

    async def list_downloads(self, playlist_id):
        self._enter("list_downloads")
        return [receipt for (pid, _), receipt in self.downloads.items() if pid == playlist_id]

    async def has_download(self, playlist_id, downloader_id):
        self._enter("has_download")
        return (playlist_id, downloader_id) in self.downloads

    async def add_download(self, receipt, acting):
        self._enter("add_download")
        key = (receipt.playlist_id, receipt.downloader_id)
        if key in self.downloads:
            return False
        self.downloads[key] = receipt
        return True

    # Helpers for arranging remote state directly

    def seed_rating(self, playlist_id, rater_id, value):
        self.ratings[(playlist_id, rater_id)] = RatingEntry(playlist_id, rater_id, value)

    def seed_download(self, playlist_id, downloader_id):
        self.downloads[(playlist_id, downloader_id)] = DownloadReceipt(playlist_id, downloader_id)


class FakeIdentityProvider(IdentityProvider):
    """Hands out a fixed identity; anonymous sign-in yields a remote guest."""

    def __init__(self, identity, guest=None):
        self.identity = identity
        self.guest = guest
        self.sign_in_calls = 0

    async def current_identity(self):
        return self.identity

    async def sign_in_anonymously(self):
        self.sign_in_calls += 1
        if self.guest is not None:
            self.identity = self.guest
        return self.identity


def make_clip(index=1, **overrides):
    values = {
        "id": f"clip{index}",
        "video_id": f"vid{index:08d}",
        "title": f"Song {index}",
        "artist": f"Artist {index}",
        "start_time": 30,
        "duration": 60,
    }
    values.update(overrides)
    return Clip(**values)


def make_playlist(playlist_id="playlist_1718900000000_abc123xyz", name="Party Mix", clips=3):
    return Playlist(
        id=playlist_id,
        name=name,
        clips=tuple(make_clip(i) for i in range(1, clips + 1)),
        created_at="2024-06-20T12:00:00+00:00",
    )


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def store(temp_dir):
    """Local store in a temporary directory"""
    local_store = LocalStore(temp_dir / "playlist_sync.db")
    yield local_store
    local_store.close()


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def account():
    return Identity(uid="uid_alice", display_name="Alice", is_anonymous=False, authenticated=True, id_token="tok-a")


@pytest.fixture
def other_account():
    return Identity(uid="uid_bob", display_name="Bob", is_anonymous=False, authenticated=True, id_token="tok-b")


@pytest.fixture
def guest():
    return Identity(uid="user_1718900000000_guest0001", display_name="User4821")


@pytest.fixture
def provider(account):
    return FakeIdentityProvider(account)


@pytest.fixture
def coordinator(store, remote, provider):
    return SyncCoordinator(store, remote, provider)


@pytest.fixture
def playlist():
    """A three clip library playlist named 'Party Mix'"""
    return make_playlist()
