"""
Identifier and share code generation.

Local ids are time-based with a random base36 suffix, which keeps them
unique within one process lifetime. Share codes are 8 characters drawn
from a 36-symbol alphabet; the generator does NOT guarantee global
uniqueness, callers check against the remote store.
"""

import random
import string
import time

from playlist_sync.core.exceptions import ValidationFailed


SHARE_CODE_ALPHABET = string.ascii_uppercase + string.digits
SHARE_CODE_LENGTH = 8
MIGRATION_CODE_PREFIX = "MIG"

_BASE36 = string.digits + string.ascii_lowercase
_SUFFIX_LENGTH = 9


def _random_suffix(length: int = _SUFFIX_LENGTH) -> str:
    return "".join(random.choice(_BASE36) for _ in range(length))


def new_local_id(prefix: str = "playlist") -> str:
    """
    Generate an opaque local identifier.

    Example:
        >>> new_local_id()
        'playlist_1718900000000_k3j9x0a2b'
    """
    return f"{prefix}_{int(time.time() * 1000)}_{_random_suffix()}"


def new_user_id() -> str:
    """Generate the id of an anonymous installation profile."""
    return new_local_id("user")


def new_display_name() -> str:
    """Generate a throwaway display name like 'User4821'."""
    return f"User{random.randint(0, 9999)}"


def new_share_code() -> str:
    """Generate an 8-character uppercase alphanumeric share code."""
    return "".join(random.choice(SHARE_CODE_ALPHABET) for _ in range(SHARE_CODE_LENGTH))


def new_migration_share_code() -> str:
    """
    Generate a share code for a migrated playlist.

    Same length and alphabet as regular codes, with a fixed 'MIG' prefix
    so migrated records are recognizable.
    """
    suffix_length = SHARE_CODE_LENGTH - len(MIGRATION_CODE_PREFIX)
    suffix = "".join(random.choice(SHARE_CODE_ALPHABET) for _ in range(suffix_length))
    return MIGRATION_CODE_PREFIX + suffix


def is_valid_share_code(code: str) -> bool:
    """Check an already-normalized code for length and alphabet."""
    return (
        len(code) == SHARE_CODE_LENGTH
        and all(ch in SHARE_CODE_ALPHABET for ch in code)
    )


def normalize_share_code(code: str | None) -> str:
    """
    Normalize user input into a canonical share code.

    Args:
        code: Raw share code as typed by the user (any case, may carry
              surrounding whitespace).

    Returns:
        The upper-cased code.

    Raises:
        ValidationFailed: If the code is empty, not 8 characters long, or
                          contains characters outside A-Z0-9.
    """
    if not isinstance(code, str) or not code.strip():
        raise ValidationFailed("Share code is required", details={"share_code": code})

    normalized = code.strip().upper()
    if len(normalized) != SHARE_CODE_LENGTH:
        raise ValidationFailed(
            f"Invalid share code format. Share codes must be {SHARE_CODE_LENGTH} characters long.",
            details={"share_code": code, "length": len(normalized)}
        )
    if not is_valid_share_code(normalized):
        raise ValidationFailed(
            "Invalid share code format. Only letters and digits are allowed.",
            details={"share_code": code}
        )
    return normalized
