# tests/test_firestore.py
"""Test the Firestore REST client"""

import asyncio
import json
from unittest.mock import AsyncMock

import aiohttp
import pytest

from playlist_sync.core.config import RemoteConfig
from playlist_sync.core.exceptions import RemoteRejected, RemoteUnavailable
from playlist_sync.core.models import DownloadReceipt, LocalRef, RatingEntry, SharedPlaylistRecord
from playlist_sync.remote.auth import Identity
from playlist_sync.remote.codec import encode_fields
from playlist_sync.remote.firestore import (
    PLAYLIST_DOWNLOADS,
    PLAYLIST_RATINGS,
    SHARED_PLAYLISTS,
    FirestoreRemoteStore,
    _error_reason,
)


CONFIG = RemoteConfig(project_id="power-hour-share", api_key="key-123")
ALICE = Identity(uid="uid_alice", display_name="Alice", is_anonymous=False, authenticated=True, id_token="tok")


def _doc(collection, doc_id, data):
    return {
        "name": f"projects/power-hour-share/databases/(default)/documents/{collection}/{doc_id}",
        "fields": encode_fields(data),
    }


class FakeResponse:
    def __init__(self, status, payload=None):
        self.status = status
        self._payload = payload

    async def json(self, content_type=None):
        return self._payload

    async def text(self):
        return json.dumps(self._payload) if self._payload is not None else ""

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Records requests and replays canned responses (or raises)"""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def request(self, method, url, params=None, json=None, headers=None):
        self.requests.append({"method": method, "url": url, "params": params, "json": json, "headers": headers})
        if self.error is not None:
            raise self.error
        return self.response


class TestRequest:
    """Test HTTP handling and failure mapping"""

    async def test_not_configured(self):
        """Nothing is sent without credentials"""
        session = FakeSession(FakeResponse(200, {}))
        remote = FirestoreRemoteStore(RemoteConfig(), session=session)
        assert not remote.is_available()
        with pytest.raises(RemoteUnavailable):
            await remote.get("abc")
        assert session.requests == []

    async def test_url_key_and_token(self):
        session = FakeSession(FakeResponse(200, _doc(SHARED_PLAYLISTS, "abc", {"name": "Mix"})))
        remote = FirestoreRemoteStore(CONFIG, session=session)
        await remote._request("GET", f"{SHARED_PLAYLISTS}/abc", acting=ALICE)
        sent = session.requests[0]
        assert sent["url"].endswith("/projects/power-hour-share/databases/(default)/documents/shared_playlists/abc")
        assert sent["params"][0] == ("key", "key-123")
        assert sent["headers"]["Authorization"] == "Bearer tok"

    async def test_run_query_path(self):
        session = FakeSession(FakeResponse(200, []))
        remote = FirestoreRemoteStore(CONFIG, session=session)
        assert await remote.share_code_exists("AB12CD34") is False
        assert session.requests[0]["url"].endswith("/documents:runQuery")

    @pytest.mark.parametrize("status, error", [
        (500, RemoteUnavailable),
        (503, RemoteUnavailable),
        (429, RemoteUnavailable),
        (400, RemoteRejected),
        (403, RemoteRejected),
    ])
    async def test_status_mapping(self, status, error):
        payload = {"error": {"code": status, "message": "nope", "status": "X"}}
        remote = FirestoreRemoteStore(CONFIG, session=FakeSession(FakeResponse(status, payload)))
        with pytest.raises(error) as excinfo:
            await remote._request("GET", "shared_playlists/abc")
        assert excinfo.value.status == status
        assert "nope" in excinfo.value.message

    async def test_missing_document(self):
        """A 404 on a document read is a miss, not an error"""
        remote = FirestoreRemoteStore(CONFIG, session=FakeSession(FakeResponse(404, {"error": {}})))
        assert await remote.get("abc") is None

    @pytest.mark.parametrize("error", [aiohttp.ClientConnectionError("down"), asyncio.TimeoutError()])
    async def test_transport_failures(self, error):
        remote = FirestoreRemoteStore(CONFIG, session=FakeSession(error=error))
        with pytest.raises(RemoteUnavailable):
            await remote.get("abc")

    def test_error_reason(self):
        assert _error_reason('{"error": {"message": "PERMISSION_DENIED"}}') == "PERMISSION_DENIED"
        assert _error_reason('[{"error": {"status": "NOT_FOUND"}}]') == "NOT_FOUND"
        assert _error_reason("") == "no response body"
        assert _error_reason("<html>bad gateway</html>") == "<html>bad gateway</html>"


@pytest.fixture
def remote():
    return FirestoreRemoteStore(CONFIG, session=FakeSession())


class TestPlaylists:
    """Test shared playlist operations with _request mocked"""

    async def test_create_returns_document_id(self, remote):
        record = SharedPlaylistRecord(ref=LocalRef("p1"), name="Party Mix", share_code="AB12CD34")
        remote._request = AsyncMock(return_value={"name": "projects/x/documents/shared_playlists/new1"})
        assert await remote.create(record, ALICE) == "new1"
        method, path = remote._request.call_args.args
        assert (method, path) == ("POST", SHARED_PLAYLISTS)
        fields = remote._request.call_args.kwargs["body"]["fields"]
        assert fields["originalPlaylistId"] == {"stringValue": "p1"}

    async def test_get_by_share_code_retries_without_visibility(self, remote):
        """Legacy documents without isPublic are found by the second query"""
        hit = [{"document": _doc(SHARED_PLAYLISTS, "doc1", {"name": "Old", "shareCode": "AB12CD34", "id": "p1"})}]
        remote._request = AsyncMock(side_effect=[[], hit])
        record = await remote.get_by_share_code("AB12CD34")
        assert record.id == "doc1"
        assert record.original_local_id == "p1"
        assert remote._request.await_count == 2
        second = remote._request.await_args_list[1].kwargs["body"]["structuredQuery"]["where"]
        assert second["fieldFilter"]["field"]["fieldPath"] == "shareCode"

    async def test_update_fields_requires_owner(self, remote):
        """A creator mismatch returns False and writes nothing"""
        remote._request = AsyncMock(return_value=_doc(SHARED_PLAYLISTS, "doc1", {"creatorId": "uid_bob"}))
        assert await remote.update_fields("doc1", {"isPublic": False}, ALICE) is False
        assert remote._request.await_count == 1

    async def test_update_fields_missing_document(self, remote):
        remote._request = AsyncMock(return_value=None)
        assert await remote.update_fields("doc1", {"isPublic": False}, ALICE) is False

    async def test_update_fields_patches_with_mask(self, remote):
        remote._request = AsyncMock(side_effect=[
            _doc(SHARED_PLAYLISTS, "doc1", {"creatorId": "uid_alice"}),
            {},
        ])
        assert await remote.update_fields("doc1", {"isPublic": False}, ALICE) is True
        patch = remote._request.await_args_list[1]
        assert patch.args[0] == "PATCH"
        masks = [value for key, value in patch.kwargs["params"] if key == "updateMask.fieldPaths"]
        assert sorted(masks) == ["isPublic", "updatedAt"]

    async def test_update_aggregates_never_creates(self, remote):
        """Aggregates are patched with currentDocument.exists=true"""
        remote._request = AsyncMock(return_value={})
        assert await remote.update_aggregates("doc1", ALICE, rating=3.5) is True
        params = remote._request.await_args.kwargs["params"]
        assert ("currentDocument.exists", "true") in params
        assert ("updateMask.fieldPaths", "rating") in params

        remote._request = AsyncMock(side_effect=RemoteRejected("gone", status=404))
        assert await remote.update_aggregates("doc1", ALICE, download_count=2) is False
        assert await remote.update_aggregates("doc1", ALICE) is False

    async def test_query_by_category_overfetches(self, remote):
        remote._request = AsyncMock(return_value=[])
        await remote.query_by_category("new", 20)
        new_query = remote._request.await_args.kwargs["body"]["structuredQuery"]
        assert new_query["orderBy"][0]["field"]["fieldPath"] == "createdAt"
        assert new_query["limit"] == 20

        await remote.query_by_category("trending", 20)
        trending_query = remote._request.await_args.kwargs["body"]["structuredQuery"]
        assert "orderBy" not in trending_query
        assert trending_query["limit"] == 100

    async def test_delete_cascades(self, remote):
        """Ratings and downloads of the playlist are deleted with it"""
        remote._request = AsyncMock(side_effect=[
            _doc(SHARED_PLAYLISTS, "doc1", {"creatorId": "uid_alice"}),
            [{"document": _doc(PLAYLIST_RATINGS, "r1", {"playlistId": "doc1"})}],
            None,
            [{"document": _doc(PLAYLIST_DOWNLOADS, "d1", {"playlistId": "doc1"})}],
            None,
            None,
        ])
        assert await remote.delete("doc1", ALICE) is True
        deleted = [c.args[1] for c in remote._request.await_args_list if c.args[0] == "DELETE"]
        assert deleted == [f"{PLAYLIST_RATINGS}/r1", f"{PLAYLIST_DOWNLOADS}/d1", f"{SHARED_PLAYLISTS}/doc1"]


class TestRatingsAndDownloads:
    """Test pair documents"""

    async def test_upsert_rating_uses_pair_id_and_drops_duplicates(self, remote):
        remote._request = AsyncMock(side_effect=[
            [
                {"document": _doc(PLAYLIST_RATINGS, "legacy", {"playlistId": "doc1", "userId": "uid_alice"})},
                {"document": _doc(PLAYLIST_RATINGS, "doc1_uid_alice", {"playlistId": "doc1", "userId": "uid_alice"})},
            ],
            None,
            {},
        ])
        await remote.upsert_rating(RatingEntry("doc1", "uid_alice", 4), ALICE)
        calls = remote._request.await_args_list
        assert (calls[1].args[0], calls[1].args[1]) == ("DELETE", f"{PLAYLIST_RATINGS}/legacy")
        assert (calls[2].args[0], calls[2].args[1]) == ("PATCH", f"{PLAYLIST_RATINGS}/doc1_uid_alice")

    async def test_list_ratings_skips_malformed(self, remote):
        remote._request = AsyncMock(return_value=[
            {"document": _doc(PLAYLIST_RATINGS, "a", {"playlistId": "doc1", "userId": "u1", "rating": 5})},
            {"document": _doc(PLAYLIST_RATINGS, "b", {"playlistId": "doc1", "userId": "u2", "rating": 9})},
            {"document": _doc(PLAYLIST_RATINGS, "c", {"playlistId": "doc1"})},
        ])
        entries = await remote.list_ratings("doc1")
        assert [e.rater_id for e in entries] == ["u1"]

    async def test_add_download_is_deduplicated(self, remote):
        existing = [{"document": _doc(PLAYLIST_DOWNLOADS, "x", {"playlistId": "doc1", "userId": "u1"})}]
        remote._request = AsyncMock(return_value=existing)
        assert await remote.add_download(DownloadReceipt("doc1", "u1"), ALICE) is False
        assert remote._request.await_count == 1

        remote._request = AsyncMock(side_effect=[[], {}])
        assert await remote.add_download(DownloadReceipt("doc1", "u1"), ALICE) is True
        assert remote._request.await_args.args[1] == f"{PLAYLIST_DOWNLOADS}/doc1_u1"
