"""
Importing shared playlists into the local library.

An import never links the library to the shared record: the clips and
attachments are copied into a brand new playlist with its own local id and
an " (Imported)" suffix on the name, so later edits on either side are
independent.

Attachments (drinking sound, cover image) are file paths on the sharer's
machine. When the importer's library does not already reference the same
path, the attachment is returned in ImportResult.pending_attachments so the
caller can ask the user to locate the file once.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from playlist_sync.core.exceptions import ValidationFailed
from playlist_sync.core.identifiers import new_local_id
from playlist_sync.core.local_store import LocalStore
from playlist_sync.core.logger import get_logger
from playlist_sync.core.models import (
    Attachment,
    Clip,
    Playlist,
    SharedPlaylistRecord,
    now_iso,
)


logger = get_logger(__name__)

IMPORTED_SUFFIX = " (Imported)"
IMPORT_FILE_SUFFIXES = (".json", ".phpl")


@dataclass(frozen=True)
class IntegrityReport:
    """
    Result of checking a clip list.

    Attributes:
        valid: True when no issue was found.
        issues: Human-readable problems, one per failed check.
        valid_clips: Number of clips without issues.
        total_clips: Number of clips checked.
    """
    valid: bool
    issues: tuple[str, ...]
    valid_clips: int
    total_clips: int


@dataclass(frozen=True)
class ImportResult:
    """
    A completed import.

    Attributes:
        playlist: The new library playlist.
        source: Record the playlist was copied from.
        pending_attachments: Attachments the library does not have yet.
        message: Summary suitable for display.
    """
    playlist: Playlist
    source: SharedPlaylistRecord | Playlist
    pending_attachments: tuple[Attachment, ...] = ()
    message: str = ""


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def check_clip(clip: Clip) -> list[str]:
    label = clip.title or "Unknown"
    issues = []
    if not clip.id:
        issues.append(f'Clip "{label}" is missing its id')
    if not clip.video_id:
        issues.append(f'Clip "{label}" is missing video ID')
    if not clip.title or not clip.artist:
        issues.append(f'Clip "{label}" is missing title or artist')
    if not _is_number(clip.start_time) or clip.start_time < 0:
        issues.append(f'Clip "{label}" has invalid start time')
    if not _is_number(clip.duration) or clip.duration <= 0:
        issues.append(f'Clip "{label}" has invalid duration')
    return issues


def check_integrity(clips: tuple[Clip, ...]) -> IntegrityReport:
    issues: list[str] = []
    valid_clips = 0
    for clip in clips:
        clip_issues = check_clip(clip)
        if not clip_issues:
            valid_clips += 1
        issues.extend(clip_issues)
    return IntegrityReport(
        valid=not issues,
        issues=tuple(issues),
        valid_clips=valid_clips,
        total_clips=len(clips),
    )


def validate_structure(source: SharedPlaylistRecord | Playlist) -> None:
    """
    Check that a playlist-shaped value can be imported.

    Raises:
        ValidationFailed: Empty id or name, no clips, or malformed clips.
    """
    if not source.id or not source.name.strip():
        raise ValidationFailed(
            "Invalid playlist data. The playlist may be corrupted.",
            details={"reason": "missing id or name", "id": source.id}
        )
    if not source.clips:
        raise ValidationFailed(
            "Invalid playlist data. The playlist has no clips.",
            details={"id": source.id}
        )
    report = check_integrity(source.clips)
    if not report.valid:
        raise ValidationFailed(
            "Invalid playlist data. The playlist may be corrupted.",
            details={"id": source.id, "issues": list(report.issues)}
        )


def to_library_playlist(source: SharedPlaylistRecord | Playlist) -> Playlist:
    """Independent library copy of ``source`` with a fresh local id."""
    return Playlist(
        id=new_local_id("youtube_playlist"),
        name=f"{source.name}{IMPORTED_SUFFIX}",
        clips=tuple(source.clips),
        created_at=now_iso(),
        drinking_sound=source.drinking_sound,
        image_path=source.image_path,
    )


def parse_import_document(data: Any) -> SharedPlaylistRecord | Playlist:
    """
    Interpret a decoded JSON document as a shared record or a plain playlist.

    Documents carrying both a share code and a creator are shared records;
    anything else is read as a library playlist.
    """
    if not isinstance(data, dict):
        raise ValidationFailed("Invalid file format. Expected a JSON object.")
    try:
        if data.get("shareCode") and data.get("creator"):
            return SharedPlaylistRecord.from_dict(data)
        return Playlist.from_dict(data)
    except ValueError as e:
        raise ValidationFailed(
            f"Invalid playlist data: {e}",
            details={"reason": str(e)}
        ) from e


class Importer:
    """
    Copies shared playlists into the local library.

    Example:
        importer = Importer(store)
        result = await importer.import_record(record)
        for attachment in result.pending_attachments:
            print(f"Please locate {attachment.name}: {attachment.path}")
    """

    def __init__(self, store: LocalStore) -> None:
        self._store = store

    def _pending_attachments(self, source: SharedPlaylistRecord | Playlist) -> tuple[Attachment, ...]:
        known = {
            attachment.path
            for playlist in self._store.get_playlists()
            for attachment in playlist.attachments()
        }
        return tuple(a for a in source.attachments() if a.path not in known)

    async def import_record(self, source: SharedPlaylistRecord | Playlist) -> ImportResult:
        """
        Validate, copy and persist ``source``.

        Raises:
            ValidationFailed: If the structure is not importable.
            LocalStoreError: If the copy cannot be persisted.
        """
        validate_structure(source)

        pending = self._pending_attachments(source)
        playlist = to_library_playlist(source)
        await self._store.put_playlist(playlist)

        logger.info(f"Imported '{source.name}' as {playlist.id} ({len(playlist.clips)} clips)")
        if pending:
            logger.info(f"{len(pending)} attachment(s) need to be located by the user")

        return ImportResult(
            playlist=playlist,
            source=source,
            pending_attachments=pending,
            message=f'Successfully imported "{source.name}" with {len(playlist.clips)} clips.',
        )

    async def import_from_file(self, path: Path) -> ImportResult:
        """
        Import a playlist exported as JSON.

        Args:
            path: A .json or .phpl file holding a shared record or a plain
                  library playlist.

        Raises:
            ValidationFailed: Wrong file type, unreadable file, invalid
                              JSON, or invalid playlist structure.
        """
        if path.suffix.lower() not in IMPORT_FILE_SUFFIXES:
            raise ValidationFailed(
                "Invalid file type. Please select a JSON or PHPL file.",
                details={"file_path": str(path)}
            )
        try:
            content = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise ValidationFailed(
                "Invalid file format. The file is not UTF-8 text.",
                details={"file_path": str(path), "original_error": str(e)}
            ) from e
        except OSError as e:
            raise ValidationFailed(
                f"Could not read {path.name}: {e}",
                details={"file_path": str(path)}
            ) from e
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ValidationFailed(
                "Invalid file format. The file does not contain valid JSON data.",
                details={"file_path": str(path), "original_error": str(e)}
            ) from e

        return await self.import_record(parse_import_document(data))
