# tests/test_models.py
"""Test data models"""

import json

import pytest

from playlist_sync.core.models import (
    Attachment,
    LocalRef,
    Playlist,
    RatingEntry,
    RemoteRef,
    SharedPlaylistRecord,
    clamp_rating,
    normalize_tags,
)

from conftest import make_clip


class TestTags:
    """Test tag normalization"""

    def test_dedupes_and_strips(self):
        """Whitespace is stripped, duplicates and empties dropped"""
        assert normalize_tags([" party ", "party", "", "80s", 3]) == ("party", "80s")

    def test_caps_at_ten(self):
        """At most ten tags are kept"""
        assert len(normalize_tags([f"t{i}" for i in range(15)])) == 10

    def test_non_list_is_empty(self):
        assert normalize_tags("party") == ()

    def test_record_normalizes_tags(self):
        """Records normalize tags on construction"""
        record = SharedPlaylistRecord(ref=LocalRef("p1"), name="Mix", share_code="AB12CD34", tags=("a", "a", "b"))
        assert record.tags == ("a", "b")


class TestRecordIdentity:
    """Test LocalRef / RemoteRef handling"""

    def test_local_record(self):
        record = SharedPlaylistRecord(ref=LocalRef("p1"), name="Mix", share_code="AB12CD34")
        assert record.id == "p1"
        assert record.original_local_id == "p1"
        assert not record.is_remote

    def test_remote_record(self):
        record = SharedPlaylistRecord(ref=RemoteRef("doc9", "p1"), name="Mix", share_code="AB12CD34")
        assert record.id == "doc9"
        assert record.original_local_id == "p1"
        assert record.is_remote

    def test_cache_round_trip_keeps_variant(self):
        """to_dict() marks the source so from_dict() restores the same ref"""
        remote = SharedPlaylistRecord(ref=RemoteRef("doc9", "p1"), name="Mix", share_code="AB12CD34")
        local = SharedPlaylistRecord(ref=LocalRef("p1"), name="Mix", share_code="AB12CD34")
        assert SharedPlaylistRecord.from_dict(remote.to_dict()).ref == RemoteRef("doc9", "p1")
        assert SharedPlaylistRecord.from_dict(local.to_dict()).ref == LocalRef("p1")

    def test_legacy_cache_entry_with_differing_original_is_remote(self):
        """Entries without a source marker are remote when originalPlaylistId differs"""
        data = {"id": "doc9", "originalPlaylistId": "p1", "name": "Mix", "shareCode": "ab12cd34"}
        record = SharedPlaylistRecord.from_dict(data)
        assert record.ref == RemoteRef("doc9", "p1")
        assert record.share_code == "AB12CD34"

    def test_legacy_cache_entry_without_original_is_local(self):
        record = SharedPlaylistRecord.from_dict({"id": "p1", "name": "Mix", "shareCode": "AB12CD34"})
        assert record.ref == LocalRef("p1")

    def test_missing_id_raises(self):
        with pytest.raises(ValueError):
            SharedPlaylistRecord.from_dict({"name": "Mix"})

    def test_legacy_remote_document_uses_id_field(self):
        """Old remote documents store the source playlist id under 'id'"""
        record = SharedPlaylistRecord.from_document("doc9", {"id": "p1", "name": "Mix", "shareCode": "AB12CD34"})
        assert record.ref == RemoteRef("doc9", "p1")
        assert record.is_public


class TestRecordFields:
    """Test lenient parsing of stored documents"""

    def test_defaults_for_missing_fields(self):
        record = SharedPlaylistRecord.from_dict({"id": "p1"})
        assert record.rating == 0.0
        assert record.download_count == 0
        assert record.version == 1
        assert record.tags == ()

    def test_bad_counters_fall_back(self):
        record = SharedPlaylistRecord.from_dict(
            {"id": "p1", "rating": "lots", "downloadCount": -4, "version": "x"}
        )
        assert record.rating == 0.0
        assert record.download_count == 0
        assert record.version == 1

    def test_clamp_rating(self):
        assert clamp_rating(7) == 5.0
        assert clamp_rating(-1) == 0.0
        assert clamp_rating("3.46") == 3.5
        assert clamp_rating(None) == 0.0

    def test_document_carries_clips(self):
        record = SharedPlaylistRecord(
            ref=LocalRef("p1"), name="Mix", share_code="AB12CD34", clips=(make_clip(1), make_clip(2))
        )
        document = record.to_document()
        assert [c["videoId"] for c in document["clips"]] == ["vid00000001", "vid00000002"]
        assert "id" not in document


class TestAttachments:
    """Test drinking sound formats"""

    def test_structured_dict(self):
        attachment = Attachment.from_drinking_sound({"type": "audio", "path": "/s/beep.mp3", "name": "Beep"})
        assert attachment == Attachment("audio", "/s/beep.mp3", "Beep")

    def test_json_string(self):
        raw = json.dumps({"type": "audio", "path": "/s/beep.mp3", "name": "Beep"})
        assert Attachment.from_drinking_sound(raw).path == "/s/beep.mp3"

    def test_legacy_plain_path(self):
        """A plain path string is converted to the structured format"""
        attachment = Attachment.from_drinking_sound("/s/beep.mp3")
        assert attachment.kind == "audio"
        assert attachment.name == "Drinking Sound"

    def test_empty_or_invalid(self):
        assert Attachment.from_drinking_sound(None) is None
        assert Attachment.from_drinking_sound("{not json") is None
        assert Attachment.from_drinking_sound({"name": "no path"}) is None

    def test_playlist_attachments(self):
        playlist = Playlist(
            id="p1",
            name="Mix",
            drinking_sound=Attachment("audio", "/s/beep.mp3", "Beep"),
            image_path="/img/cover.png",
        )
        kinds = [a.kind for a in playlist.attachments()]
        assert kinds == ["audio", "image"]
        assert Playlist.from_dict(playlist.to_dict()) == playlist


class TestRatingEntry:
    """Test rating entry parsing"""

    def test_out_of_range_rejected(self):
        with pytest.raises(ValueError):
            RatingEntry.from_dict({"playlistId": "p1", "userId": "u1", "rating": 6})

    def test_layout(self):
        entry = RatingEntry("p1", "u1", 4, review="nice")
        data = entry.to_dict()
        assert data["userId"] == "u1"
        assert data["rating"] == 4
        assert RatingEntry.from_dict(data) == entry
