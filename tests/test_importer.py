# tests/test_importer.py
"""Test importing shared playlists into the library"""

import json

import pytest

from playlist_sync.core.exceptions import ValidationFailed
from playlist_sync.core.models import Attachment, Playlist, RemoteRef, SharedPlaylistRecord
from playlist_sync.sharing.importer import (
    IMPORTED_SUFFIX,
    Importer,
    check_integrity,
    parse_import_document,
    validate_structure,
)

from conftest import make_clip, make_playlist


def _shared(**kwargs):
    values = {
        "ref": RemoteRef("doc1", "p1"),
        "name": "Party Mix",
        "share_code": "AB12CD34",
        "clips": tuple(make_clip(i) for i in range(1, 4)),
        "creator_display_name": "Alice",
    }
    values.update(kwargs)
    return SharedPlaylistRecord(**values)


class TestIntegrity:
    """Test clip and structure checks"""

    def test_valid_clips(self):
        report = check_integrity(tuple(make_clip(i) for i in range(1, 4)))
        assert report.valid
        assert report.valid_clips == report.total_clips == 3

    def test_clip_issues(self):
        clips = (
            make_clip(1, video_id=""),
            make_clip(2, start_time=-5),
            make_clip(3, duration=0),
            make_clip(4, start_time=None),
            make_clip(5),
        )
        report = check_integrity(clips)
        assert not report.valid
        assert report.valid_clips == 1
        assert len(report.issues) == 4

    @pytest.mark.parametrize("overrides", [{"name": "  "}, {"clips": ()}, {"clips": (make_clip(1, title=""),)}])
    def test_validate_structure_rejects(self, overrides):
        with pytest.raises(ValidationFailed):
            validate_structure(_shared(**overrides))


class TestImportRecord:
    """Test Importer.import_record()"""

    async def test_creates_independent_copy(self, store):
        source = _shared()
        result = await Importer(store).import_record(source)
        playlist = result.playlist
        assert playlist.name == "Party Mix" + IMPORTED_SUFFIX
        assert playlist.id != source.id
        assert playlist.id.startswith("youtube_playlist_")
        assert playlist.clips == source.clips
        assert store.get_playlist(playlist.id) == playlist
        assert "3 clips" in result.message

    async def test_repeated_import_creates_new_copies(self, store):
        importer = Importer(store)
        await importer.import_record(_shared())
        await importer.import_record(_shared())
        assert len(store.get_playlists()) == 2

    async def test_pending_attachments(self, store):
        """Attachments the library already references are not asked for again"""
        sound = Attachment("audio", "/sounds/beep.mp3", "Beep")
        await store.put_playlist(Playlist(id="mine", name="Mine", clips=(make_clip(1),), drinking_sound=sound))
        source = _shared(drinking_sound=sound, image_path="/images/cover.png")
        result = await Importer(store).import_record(source)
        assert [a.path for a in result.pending_attachments] == ["/images/cover.png"]
        assert result.playlist.drinking_sound == sound

    async def test_invalid_record_writes_nothing(self, store):
        with pytest.raises(ValidationFailed):
            await Importer(store).import_record(_shared(clips=()))
        assert store.get_playlists() == []


class TestImportFile:
    """Test Importer.import_from_file()"""

    async def test_plain_playlist_file(self, store, temp_dir):
        path = temp_dir / "mix.json"
        path.write_text(json.dumps(make_playlist().to_dict()), encoding="utf-8")
        result = await Importer(store).import_from_file(path)
        assert result.playlist.name == "Party Mix (Imported)"
        assert isinstance(result.source, Playlist)

    async def test_shared_record_file(self, store, temp_dir):
        path = temp_dir / "mix.phpl"
        path.write_text(json.dumps(_shared().to_dict()), encoding="utf-8")
        result = await Importer(store).import_from_file(path)
        assert isinstance(result.source, SharedPlaylistRecord)
        assert result.source.share_code == "AB12CD34"

    async def test_wrong_suffix(self, store, temp_dir):
        path = temp_dir / "mix.txt"
        path.write_text("{}", encoding="utf-8")
        with pytest.raises(ValidationFailed, match="Invalid file type"):
            await Importer(store).import_from_file(path)

    async def test_invalid_json(self, store, temp_dir):
        path = temp_dir / "mix.json"
        path.write_text("{broken", encoding="utf-8")
        with pytest.raises(ValidationFailed, match="valid JSON"):
            await Importer(store).import_from_file(path)

    async def test_not_utf8(self, store, temp_dir):
        path = temp_dir / "mix.json"
        path.write_bytes(b'{"id": "x", "name": "\xff\xfe"}')
        with pytest.raises(ValidationFailed, match="not UTF-8"):
            await Importer(store).import_from_file(path)
        assert store.get_playlists() == []

    async def test_missing_file(self, store, temp_dir):
        with pytest.raises(ValidationFailed):
            await Importer(store).import_from_file(temp_dir / "missing.json")

    def test_parse_import_document(self):
        with pytest.raises(ValidationFailed):
            parse_import_document(["not", "an", "object"])
        with pytest.raises(ValidationFailed):
            parse_import_document({"name": "no id"})
