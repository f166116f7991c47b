# tests/test_identifiers.py
"""Test identifiers and share codes"""

import re

import pytest

from playlist_sync.core.exceptions import ValidationFailed
from playlist_sync.core.identifiers import (
    MIGRATION_CODE_PREFIX,
    SHARE_CODE_LENGTH,
    is_valid_share_code,
    new_display_name,
    new_local_id,
    new_migration_share_code,
    new_share_code,
    new_user_id,
    normalize_share_code,
)


class TestIdentifiers:
    """Test id generation"""

    def test_local_id_format(self):
        """Local ids are prefix, millisecond timestamp and base36 suffix"""
        assert re.fullmatch(r"playlist_\d{13}_[0-9a-z]{9}", new_local_id())
        assert new_local_id("youtube_playlist").startswith("youtube_playlist_")

    def test_local_ids_are_unique(self):
        """Ids generated in a burst do not collide"""
        ids = {new_local_id() for _ in range(500)}
        assert len(ids) == 500

    def test_user_id_and_display_name(self):
        """Anonymous profiles get user_ ids and UserNNNN names"""
        assert new_user_id().startswith("user_")
        assert re.fullmatch(r"User\d{1,4}", new_display_name())

    def test_share_code_alphabet(self):
        """Share codes are 8 uppercase alphanumerics"""
        for _ in range(100):
            code = new_share_code()
            assert len(code) == SHARE_CODE_LENGTH
            assert re.fullmatch(r"[A-Z0-9]{8}", code)

    def test_migration_share_code(self):
        """Migration codes keep the length and carry the MIG prefix"""
        code = new_migration_share_code()
        assert code.startswith(MIGRATION_CODE_PREFIX)
        assert is_valid_share_code(code)


class TestNormalizeShareCode:
    """Test share code normalization"""

    def test_normalizes_case_and_whitespace(self):
        """Input is trimmed and upper-cased"""
        assert normalize_share_code("  ab12cd34 ") == "AB12CD34"

    @pytest.mark.parametrize("code", ["", "   ", None, "AB12", "AB12CD345", "AB12-D34", "ab12cd3é"])
    def test_rejects_malformed(self, code):
        """Empty, wrong length and foreign characters are rejected"""
        with pytest.raises(ValidationFailed):
            normalize_share_code(code)
