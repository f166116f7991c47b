"""
Cloud Firestore REST client for shared playlists.

Talks to the Firestore REST API (v1) with aiohttp. Three collections are
used:

    shared_playlists      One document per shared playlist
    playlist_ratings      One document per (playlist, rater) pair
    playlist_downloads    One document per (playlist, downloader) pair

Rating and download documents use a deterministic id built from the pair,
so a second write for the same pair overwrites instead of appending.
Documents written by older clients have random ids; pair lookups go
through queries, which find both.

Failure Mapping:
    Not configured            -> RemoteUnavailable (nothing is sent)
    Network error / timeout   -> RemoteUnavailable
    HTTP 5xx, 429             -> RemoteUnavailable
    Other HTTP 4xx            -> RemoteRejected

    update_fields() and delete() fail closed instead: a missing document
    or a creator mismatch returns False.

Categories:
    query_by_category() only does the server-side part ('new' is ordered
    by createdAt, other categories fetch a wider window of public
    documents); the caller applies the category filter and sort.
"""

import asyncio
import json
from typing import Any

import aiohttp

from playlist_sync.core.config import RemoteConfig
from playlist_sync.core.exceptions import RemoteRejected, RemoteUnavailable
from playlist_sync.core.logger import get_logger
from playlist_sync.core.models import (
    DownloadReceipt,
    RatingEntry,
    SharedPlaylistRecord,
    now_iso,
)
from playlist_sync.remote.auth import Identity
from playlist_sync.remote.codec import (
    decode_document,
    document_id,
    encode_fields,
    field_filter,
    query_documents,
    structured_query,
)


logger = get_logger(__name__)

SHARED_PLAYLISTS = "shared_playlists"
PLAYLIST_RATINGS = "playlist_ratings"
PLAYLIST_DOWNLOADS = "playlist_downloads"

AGGREGATE_FIELDS = ("rating", "downloadCount")

# Non-'new' categories are filtered client-side from a wider window
CATEGORY_OVERFETCH = 5


def _pair_id(playlist_id: str, user_id: str) -> str:
    return f"{playlist_id}_{user_id}"


class FirestoreRemoteStore:
    """
    Remote document store client.

    Callers must check is_available() before calling anything else; every
    other method raises RemoteUnavailable when the store is not configured.

    Example:
        remote = FirestoreRemoteStore(config.remote)
        if remote.is_available():
            record = await remote.get_by_share_code("AB12CD34")
        await remote.close()
    """

    def __init__(
        self,
        config: RemoteConfig,
        session: aiohttp.ClientSession | None = None
    ) -> None:
        self._config = config
        self._session = session
        self._owns_session = session is None

    def is_available(self) -> bool:
        """Cheap capability probe: configured and enabled. No network I/O."""
        return self._config.is_configured

    @property
    def documents_url(self) -> str:
        return (
            f"{self._config.firestore_url}/projects/{self._config.project_id}"
            f"/databases/{self._config.database}/documents"
        )

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._config.timeout)
            )
        return self._session

    async def _request(
        self,
        method: str,
        path: str,
        *,
        acting: Identity | None = None,
        body: dict[str, Any] | None = None,
        params: list[tuple[str, str]] | None = None,
        allow_missing: bool = False
    ) -> Any:
        """
        Send one REST request and return the decoded JSON body.

        Args:
            method: HTTP method.
            path: Path under the documents root ("shared_playlists/abc"),
                  or a ":verb" suffix such as ":runQuery".
            acting: Identity whose token authorizes the request.
            body: JSON request body.
            params: Extra query parameters (repeatable keys allowed).
            allow_missing: Return None on 404 instead of raising.

        Raises:
            RemoteUnavailable: Not configured, transport failure, timeout,
                               HTTP 5xx or 429.
            RemoteRejected: Any other HTTP 4xx.
        """
        if not self.is_available():
            raise RemoteUnavailable("Remote store is not configured")

        url = self.documents_url + (path if path.startswith(":") else f"/{path}")
        query = [("key", self._config.api_key)] + list(params or [])
        headers = {}
        if acting is not None and acting.id_token:
            headers["Authorization"] = f"Bearer {acting.id_token}"

        try:
            async with self._get_session().request(
                method, url, params=query, json=body, headers=headers
            ) as response:
                if response.status == 404 and allow_missing:
                    return None
                if response.status >= 400:
                    reason = _error_reason(await response.text())
                    details = {"method": method, "path": path, "reason": reason}
                    if response.status >= 500 or response.status == 429:
                        raise RemoteUnavailable(
                            f"Remote store error (HTTP {response.status}): {reason}",
                            details=details,
                            status=response.status
                        )
                    raise RemoteRejected(
                        f"Remote store rejected {method} {path} (HTTP {response.status}): {reason}",
                        details=details,
                        status=response.status
                    )
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RemoteUnavailable(
                f"Remote store unreachable: {e or type(e).__name__}",
                details={"method": method, "path": path}
            ) from e

    async def _get_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        response = await self._request("GET", f"{collection}/{doc_id}", allow_missing=True)
        if response is None:
            return None
        return decode_document(response)[1]

    async def _patch(
        self,
        collection: str,
        doc_id: str,
        fields: dict[str, Any],
        acting: Identity | None,
        must_exist: bool | None = None
    ) -> None:
        params = [("updateMask.fieldPaths", key) for key in fields]
        if must_exist is not None:
            params.append(("currentDocument.exists", "true" if must_exist else "false"))
        await self._request(
            "PATCH",
            f"{collection}/{doc_id}",
            acting=acting,
            body={"fields": encode_fields(fields)},
            params=params,
        )

    async def _delete_document(self, collection: str, doc_id: str, acting: Identity | None) -> None:
        await self._request("DELETE", f"{collection}/{doc_id}", acting=acting, allow_missing=True)

    async def _run_query(self, body: dict[str, Any]) -> list[tuple[str, dict[str, Any]]]:
        response = await self._request("POST", ":runQuery", body=body)
        return query_documents(response)

    async def _pair_documents(
        self,
        collection: str,
        playlist_id: str,
        user_id: str | None = None
    ) -> list[tuple[str, dict[str, Any]]]:
        filters = [field_filter("playlistId", playlist_id)]
        if user_id is not None:
            filters.append(field_filter("userId", user_id))
        return await self._run_query(structured_query(collection, filters))

    # =========================================================================
    # Shared Playlists
    # =========================================================================

    async def create(self, record: SharedPlaylistRecord, acting: Identity) -> str:
        """
        Create a shared playlist document.

        Returns:
            The document id assigned by Firestore.
        """
        response = await self._request(
            "POST",
            SHARED_PLAYLISTS,
            acting=acting,
            body={"fields": encode_fields(record.to_document())},
        )
        remote_id = document_id(response["name"])
        logger.debug(f"Created remote document {remote_id} for '{record.name}'")
        return remote_id

    async def get(self, record_id: str) -> SharedPlaylistRecord | None:
        data = await self._get_document(SHARED_PLAYLISTS, record_id)
        if data is None:
            return None
        return SharedPlaylistRecord.from_document(record_id, data)

    async def update_fields(
        self,
        record_id: str,
        fields: dict[str, Any],
        acting: Identity
    ) -> bool:
        """
        Partially update a document owned by ``acting``.

        Args:
            record_id: Document id.
            fields: camelCase document fields to overwrite.
            acting: Must be the document's creator.

        Returns:
            True if updated; False if the document is missing or owned by
            someone else (nothing is written in that case).
        """
        existing = await self._get_document(SHARED_PLAYLISTS, record_id)
        if existing is None:
            logger.warning(f"Remote update skipped, document not found: {record_id}")
            return False
        if not acting.authenticated or existing.get("creatorId") != acting.uid:
            logger.warning(f"Remote update refused, {acting.uid} does not own {record_id}")
            return False

        await self._patch(SHARED_PLAYLISTS, record_id, {**fields, "updatedAt": now_iso()}, acting)
        return True

    async def update_aggregates(
        self,
        record_id: str,
        acting: Identity | None,
        rating: float | None = None,
        download_count: int | None = None
    ) -> bool:
        """
        Write the derived rating / downloadCount fields.

        Open to any identity: these fields are recomputed from the entry
        collections, not edited. Never creates a missing document.
        """
        fields: dict[str, Any] = {}
        if rating is not None:
            fields["rating"] = rating
        if download_count is not None:
            fields["downloadCount"] = download_count
        if not fields:
            return False

        try:
            await self._patch(SHARED_PLAYLISTS, record_id, fields, acting, must_exist=True)
        except RemoteRejected as e:
            if e.status == 404:
                return False
            raise
        return True

    async def get_by_share_code(self, share_code: str) -> SharedPlaylistRecord | None:
        """
        Look up a document by share code.

        Public documents are searched first. Older documents may lack the
        isPublic flag entirely, so a miss is retried without it.
        """
        matches = await self._run_query(structured_query(
            SHARED_PLAYLISTS,
            [field_filter("shareCode", share_code), field_filter("isPublic", True)],
            limit=1,
        ))
        if not matches:
            logger.debug(f"No public match for {share_code}, retrying without visibility filter")
            matches = await self._run_query(structured_query(
                SHARED_PLAYLISTS,
                [field_filter("shareCode", share_code)],
                limit=1,
            ))
        if not matches:
            return None
        doc_id, data = matches[0]
        return SharedPlaylistRecord.from_document(doc_id, data)

    async def share_code_exists(self, share_code: str) -> bool:
        matches = await self._run_query(structured_query(
            SHARED_PLAYLISTS, [field_filter("shareCode", share_code)], limit=1
        ))
        return bool(matches)

    async def get_by_original(
        self,
        original_local_id: str,
        creator_id: str
    ) -> SharedPlaylistRecord | None:
        """The creator's document shared from one library playlist, if any."""
        matches = await self._run_query(structured_query(
            SHARED_PLAYLISTS,
            [
                field_filter("originalPlaylistId", original_local_id),
                field_filter("creatorId", creator_id),
            ],
            limit=1,
        ))
        if not matches:
            return None
        doc_id, data = matches[0]
        return SharedPlaylistRecord.from_document(doc_id, data)

    async def query_by_category(self, category: str, limit: int) -> list[SharedPlaylistRecord]:
        if category == "new":
            body = structured_query(
                SHARED_PLAYLISTS,
                [field_filter("isPublic", True)],
                order_by="createdAt",
                descending=True,
                limit=limit,
            )
        else:
            body = structured_query(
                SHARED_PLAYLISTS,
                [field_filter("isPublic", True)],
                limit=limit * CATEGORY_OVERFETCH,
            )
        documents = await self._run_query(body)
        logger.debug(f"Loaded {len(documents)} remote playlists for category '{category}'")
        return [SharedPlaylistRecord.from_document(doc_id, data) for doc_id, data in documents]

    async def query_by_creator(self, creator_id: str) -> list[SharedPlaylistRecord]:
        """All documents owned by ``creator_id``, public or not."""
        documents = await self._run_query(structured_query(
            SHARED_PLAYLISTS, [field_filter("creatorId", creator_id)]
        ))
        return [SharedPlaylistRecord.from_document(doc_id, data) for doc_id, data in documents]

    async def delete(self, record_id: str, acting: Identity) -> bool:
        """
        Delete a document together with its ratings and downloads.

        Returns:
            False when the document is missing or not owned by ``acting``.
        """
        existing = await self._get_document(SHARED_PLAYLISTS, record_id)
        if existing is None:
            return False
        if not acting.authenticated or existing.get("creatorId") != acting.uid:
            logger.warning(f"Remote delete refused, {acting.uid} does not own {record_id}")
            return False

        for collection in (PLAYLIST_RATINGS, PLAYLIST_DOWNLOADS):
            for doc_id, _ in await self._pair_documents(collection, record_id):
                await self._delete_document(collection, doc_id, acting)

        await self._delete_document(SHARED_PLAYLISTS, record_id, acting)
        logger.info(f"Deleted remote playlist {record_id}")
        return True

    # =========================================================================
    # Ratings
    # =========================================================================

    async def list_ratings(self, playlist_id: str) -> list[RatingEntry]:
        entries = []
        for doc_id, data in await self._pair_documents(PLAYLIST_RATINGS, playlist_id):
            try:
                entries.append(RatingEntry.from_dict(data))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed remote rating {doc_id}: {e}")
        return entries

    async def get_rating(self, playlist_id: str, rater_id: str) -> RatingEntry | None:
        for doc_id, data in await self._pair_documents(PLAYLIST_RATINGS, playlist_id, rater_id):
            try:
                return RatingEntry.from_dict(data)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed remote rating {doc_id}: {e}")
        return None

    async def upsert_rating(self, entry: RatingEntry, acting: Identity) -> None:
        """Replace the rater's rating (older random-id duplicates are removed)."""
        target = _pair_id(entry.playlist_id, entry.rater_id)
        for doc_id, _ in await self._pair_documents(PLAYLIST_RATINGS, entry.playlist_id, entry.rater_id):
            if doc_id != target:
                await self._delete_document(PLAYLIST_RATINGS, doc_id, acting)
        await self._patch(PLAYLIST_RATINGS, target, entry.to_dict(), acting)

    async def delete_rating(self, playlist_id: str, rater_id: str, acting: Identity) -> bool:
        documents = await self._pair_documents(PLAYLIST_RATINGS, playlist_id, rater_id)
        for doc_id, _ in documents:
            await self._delete_document(PLAYLIST_RATINGS, doc_id, acting)
        return bool(documents)

    # =========================================================================
    # Downloads
    # =========================================================================

    async def list_downloads(self, playlist_id: str) -> list[DownloadReceipt]:
        receipts = []
        for doc_id, data in await self._pair_documents(PLAYLIST_DOWNLOADS, playlist_id):
            try:
                receipts.append(DownloadReceipt.from_dict(data))
            except (KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed remote download {doc_id}: {e}")
        return receipts

    async def has_download(self, playlist_id: str, downloader_id: str) -> bool:
        return bool(await self._pair_documents(PLAYLIST_DOWNLOADS, playlist_id, downloader_id))

    async def add_download(self, receipt: DownloadReceipt, acting: Identity | None) -> bool:
        """
        Store a download receipt.

        Returns:
            False if the pair already had a receipt (nothing written).
        """
        if await self.has_download(receipt.playlist_id, receipt.downloader_id):
            return False
        await self._patch(
            PLAYLIST_DOWNLOADS,
            _pair_id(receipt.playlist_id, receipt.downloader_id),
            receipt.to_dict(),
            acting,
        )
        return True


def _error_reason(text: str) -> str:
    """Extract the message from a Firestore error body."""
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return text[:200] or "no response body"
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        error = payload["error"]
        return str(error.get("message") or error.get("status") or "unknown error")
    if isinstance(payload, list) and payload and isinstance(payload[0], dict):
        return _error_reason(json.dumps(payload[0]))
    return text[:200]
