"""
Data models for shared playlists.

This module defines immutable dataclasses for the playlist library, shared
playlist records, ratings, download receipts and the anonymous profile.
The same camelCase dictionary layout is used for the local JSON documents
and for remote documents, so records written by older versions of the
application keep loading.

Design Decisions:
    - All dataclasses are frozen (immutable); updates go through
      dataclasses.replace()
    - Sequences are tuples for immutability
    - A record's identity is a tagged union (LocalRef | RemoteRef) instead
      of a bare id string of unclear provenance
    - from_dict() is lenient: missing optional fields take defaults,
      missing required fields raise ValueError

Usage:
    from playlist_sync.core.models import SharedPlaylistRecord, LocalRef

    record = SharedPlaylistRecord(
        ref=LocalRef("playlist_1718900000000_k3j9x0a2b"),
        name="Party Mix",
        share_code="AB12CD34",
        clips=(clip1, clip2, clip3),
    )
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


MAX_TAGS = 10
MIN_RATING = 1
MAX_RATING = 5
DRINKING_SOUND_NAME = "Drinking Sound"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_tags(tags: Any) -> tuple[str, ...]:
    """
    Deduplicate and cap a tag list.

    Empty and non-string tags are dropped, surrounding whitespace is
    stripped, first occurrence wins, at most MAX_TAGS are kept.
    """
    if not isinstance(tags, (list, tuple)):
        return ()
    seen: list[str] = []
    for tag in tags:
        if not isinstance(tag, str):
            continue
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
        if len(seen) == MAX_TAGS:
            break
    return tuple(seen)


def clamp_rating(value: Any) -> float:
    try:
        rating = float(value)
    except (TypeError, ValueError):
        return 0.0
    return round(min(max(rating, 0.0), float(MAX_RATING)), 1)


@dataclass(frozen=True)
class Clip:
    """
    One timed excerpt of a media item.

    Attributes:
        id: Clip identifier, unique inside its playlist.
        video_id: Media reference (YouTube video id).
        title: Track title.
        artist: Track artist.
        start_time: Offset into the media, in seconds.
        duration: Clip length in seconds (typically 60 for a power hour).
        thumbnail: Thumbnail URL.
    """
    id: str
    video_id: str
    title: str
    artist: str
    start_time: float
    duration: float
    thumbnail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "videoId": self.video_id,
            "title": self.title,
            "artist": self.artist,
            "startTime": self.start_time,
            "duration": self.duration,
            "thumbnail": self.thumbnail,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Clip":
        return cls(
            id=str(data.get("id", "")),
            video_id=str(data.get("videoId", "")),
            title=str(data.get("title", "")),
            artist=str(data.get("artist", "")),
            start_time=data.get("startTime"),
            duration=data.get("duration"),
            thumbnail=str(data.get("thumbnail") or ""),
        )


@dataclass(frozen=True)
class Attachment:
    """
    Media attached to a playlist outside its clip list.

    Attributes:
        kind: "audio" for drinking sounds, "image" for cover images.
        path: Local path or URL of the file.
        name: Display name.
    """
    kind: str
    path: str
    name: str = ""

    @classmethod
    def from_drinking_sound(cls, raw: Any) -> "Attachment | None":
        """
        Parse a drinking sound value in any of its stored formats.

        Accepts None, a structured dict, a JSON string of that dict, or a
        legacy plain path string (converted to the structured format).
        """
        if not raw:
            return None
        if isinstance(raw, dict):
            data = raw
        elif isinstance(raw, str) and raw.lstrip().startswith("{"):
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                return None
            if not isinstance(data, dict):
                return None
        elif isinstance(raw, str):
            return cls(kind="audio", path=raw, name=DRINKING_SOUND_NAME)
        else:
            return None

        path = data.get("path")
        if not path:
            return None
        return cls(
            kind=str(data.get("type") or "audio"),
            path=str(path),
            name=str(data.get("name") or DRINKING_SOUND_NAME),
        )

    def to_drinking_sound(self) -> str:
        return json.dumps({"type": self.kind, "path": self.path, "name": self.name})


@dataclass(frozen=True)
class Playlist:
    """
    A playlist in the user's own library.

    Attributes:
        id: Local playlist id.
        name: Playlist title.
        clips: Ordered clips.
        created_at: ISO timestamp of creation ('date' in stored documents).
        drinking_sound: Optional drinking sound attachment.
        image_path: Optional cover image path.
    """
    id: str
    name: str
    clips: tuple[Clip, ...] = ()
    created_at: str = ""
    drinking_sound: Attachment | None = None
    image_path: str | None = None

    def attachments(self) -> list[Attachment]:
        found = []
        if self.drinking_sound is not None:
            found.append(self.drinking_sound)
        if self.image_path:
            found.append(Attachment(kind="image", path=self.image_path, name="Cover Image"))
        return found

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "clips": [clip.to_dict() for clip in self.clips],
            "date": self.created_at,
            "drinkingSoundPath": (
                self.drinking_sound.to_drinking_sound() if self.drinking_sound else None
            ),
            "imagePath": self.image_path,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Playlist":
        if not data.get("id"):
            raise ValueError("Playlist document has no id")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            clips=tuple(Clip.from_dict(c) for c in data.get("clips") or [] if isinstance(c, dict)),
            created_at=str(data.get("date") or data.get("createdAt") or ""),
            drinking_sound=Attachment.from_drinking_sound(data.get("drinkingSoundPath")),
            image_path=data.get("imagePath") or None,
        )


@dataclass(frozen=True)
class LocalRef:
    """Identity of a record that only exists in this installation."""
    local_id: str

    @property
    def storage_id(self) -> str:
        return self.local_id

    @property
    def original_local_id(self) -> str:
        return self.local_id


@dataclass(frozen=True)
class RemoteRef:
    """
    Identity of a record backed by a remote document.

    Attributes:
        remote_id: Document id assigned by the remote store.
        original_local_id: Id of the library playlist the record was
                           shared from, when known.
    """
    remote_id: str
    original_local_id: str | None = None

    @property
    def storage_id(self) -> str:
        return self.remote_id


RecordRef = LocalRef | RemoteRef


@dataclass(frozen=True)
class SharedPlaylistRecord:
    """
    A playlist published for sharing.

    Attributes:
        ref: LocalRef or RemoteRef; call sites branch on the variant.
        name: Playlist title.
        share_code: 8-character code, stable for the record's lifetime.
        clips: Ordered clips.
        description: Free text description.
        tags: Up to 10 unique tags.
        creator_id: Owning account id; None until authenticated/migrated.
        creator_display_name: Human label for the creator.
        is_public: False = resolvable by exact code only.
        featured: Editorial flag used by the 'featured' category.
        verified: Editorial flag, informational.
        rating: Derived average rating, never set directly by callers.
        download_count: Derived number of unique downloaders.
        created_at: Immutable after the first write.
        updated_at: Last modification timestamp.
        version: Informational counter bumped on re-share.
        drinking_sound: Optional drinking sound attachment.
        image_path: Optional cover image path.
    """
    ref: RecordRef
    name: str
    share_code: str
    clips: tuple[Clip, ...] = ()
    description: str = ""
    tags: tuple[str, ...] = ()
    creator_id: str | None = None
    creator_display_name: str = ""
    is_public: bool = True
    featured: bool = False
    verified: bool = False
    rating: float = 0.0
    download_count: int = 0
    created_at: str = ""
    updated_at: str = ""
    version: int = 1
    drinking_sound: Attachment | None = None
    image_path: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", normalize_tags(list(self.tags)))
        object.__setattr__(self, "clips", tuple(self.clips))

    @property
    def id(self) -> str:
        return self.ref.storage_id

    @property
    def original_local_id(self) -> str | None:
        return self.ref.original_local_id

    @property
    def is_remote(self) -> bool:
        return isinstance(self.ref, RemoteRef)

    def attachments(self) -> list[Attachment]:
        found = []
        if self.drinking_sound is not None:
            found.append(self.drinking_sound)
        if self.image_path:
            found.append(Attachment(kind="image", path=self.image_path, name="Cover Image"))
        return found

    def to_document(self) -> dict[str, Any]:
        """Fields shared by local and remote documents (no identity fields)."""
        return {
            "name": self.name,
            "description": self.description,
            "tags": list(self.tags),
            "clips": [clip.to_dict() for clip in self.clips],
            "creatorId": self.creator_id,
            "creator": self.creator_display_name,
            "shareCode": self.share_code,
            "isPublic": self.is_public,
            "featured": self.featured,
            "verified": self.verified,
            "rating": self.rating,
            "downloadCount": self.download_count,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "version": self.version,
            "originalPlaylistId": self.original_local_id,
            "drinkingSoundPath": (
                self.drinking_sound.to_drinking_sound() if self.drinking_sound else None
            ),
            "imagePath": self.image_path,
        }

    def to_dict(self) -> dict[str, Any]:
        """Local cache layout: the document plus identity and provenance."""
        data = self.to_document()
        data["id"] = self.id
        data["source"] = "remote" if self.is_remote else "local"
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SharedPlaylistRecord":
        """
        Build a record from a local cache document.

        Documents without a 'source' marker come from older versions; they
        are treated as remote-backed when their originalPlaylistId differs
        from their id, which is how remote copies used to be cached.
        """
        record_id = data.get("id")
        if not record_id:
            raise ValueError("Shared playlist document has no id")
        original = data.get("originalPlaylistId") or None
        source = data.get("source")
        if source == "remote" or (source is None and original and original != record_id):
            ref: RecordRef = RemoteRef(str(record_id), original)
        else:
            ref = LocalRef(str(record_id))
        return cls._from_fields(ref, data)

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "SharedPlaylistRecord":
        """
        Build a record from a remote document.

        Legacy documents carry the source playlist id in 'id' instead of
        'originalPlaylistId'.
        """
        original = data.get("originalPlaylistId") or data.get("id") or None
        return cls._from_fields(RemoteRef(doc_id, original), data)

    @classmethod
    def _from_fields(cls, ref: RecordRef, data: dict[str, Any]) -> "SharedPlaylistRecord":
        try:
            download_count = max(int(data.get("downloadCount") or 0), 0)
        except (TypeError, ValueError):
            download_count = 0
        try:
            version = int(data.get("version") or 1)
        except (TypeError, ValueError):
            version = 1
        return cls(
            ref=ref,
            name=str(data.get("name", "")),
            share_code=str(data.get("shareCode", "")).upper(),
            clips=tuple(Clip.from_dict(c) for c in data.get("clips") or [] if isinstance(c, dict)),
            description=str(data.get("description") or ""),
            tags=normalize_tags(data.get("tags")),
            creator_id=data.get("creatorId") or None,
            creator_display_name=str(data.get("creator") or ""),
            # Legacy documents may lack the flag entirely
            is_public=bool(data.get("isPublic", True)),
            featured=bool(data.get("featured", False)),
            verified=bool(data.get("verified", False)),
            rating=clamp_rating(data.get("rating")),
            download_count=download_count,
            created_at=str(data.get("createdAt") or data.get("date") or ""),
            updated_at=str(data.get("updatedAt") or ""),
            version=version,
            drinking_sound=Attachment.from_drinking_sound(data.get("drinkingSoundPath")),
            image_path=data.get("imagePath") or None,
        )


@dataclass(frozen=True)
class RatingEntry:
    """One rater's rating of one playlist; unique per (playlist_id, rater_id)."""
    playlist_id: str
    rater_id: str
    value: int
    review: str | None = None
    created_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "playlistId": self.playlist_id,
            "userId": self.rater_id,
            "rating": self.value,
            "review": self.review,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RatingEntry":
        value = int(data["rating"])
        if not MIN_RATING <= value <= MAX_RATING:
            raise ValueError(f"Rating out of range: {value}")
        return cls(
            playlist_id=str(data["playlistId"]),
            rater_id=str(data["userId"]),
            value=value,
            review=data.get("review") or None,
            created_at=str(data.get("createdAt") or ""),
        )


@dataclass(frozen=True)
class DownloadReceipt:
    """Proof that one identity downloaded one playlist."""
    playlist_id: str
    downloader_id: str
    downloaded_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "playlistId": self.playlist_id,
            "userId": self.downloader_id,
            "downloadedAt": self.downloaded_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DownloadReceipt":
        return cls(
            playlist_id=str(data["playlistId"]),
            downloader_id=str(data["userId"]),
            downloaded_at=str(data.get("downloadedAt") or ""),
        )


@dataclass(frozen=True)
class UserProfile:
    """Anonymous identity of this installation."""
    id: str
    display_name: str
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "username": self.display_name, "createdAt": self.created_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserProfile":
        if not data.get("id"):
            raise ValueError("Profile document has no id")
        return cls(
            id=str(data["id"]),
            display_name=str(data.get("username") or ""),
            created_at=str(data.get("createdAt") or ""),
        )
