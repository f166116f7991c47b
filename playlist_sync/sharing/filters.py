"""
Category semantics, filtering and sorting of shared playlist lists.

Categories:
    new            Most recent first
    trending       Highest download count first
    highly-rated   Rating >= 4.0
    featured       Explicit featured flag

All functions are pure: they take a list of records and return a new one.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from playlist_sync.core.exceptions import ValidationFailed
from playlist_sync.core.models import SharedPlaylistRecord


CATEGORIES = ("new", "trending", "highly-rated", "featured")
SORT_KEYS = ("rating", "downloads", "date", "name")
HIGHLY_RATED_THRESHOLD = 4.0

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class PlaylistFilters:
    """
    User-selected narrowing of a listing.

    Attributes:
        tags: Keep records carrying at least one of these tags.
        min_rating: Keep records rated at least this much.
        creator: Case-insensitive substring of the creator display name.
        search: Case-insensitive substring of name, description, creator
                or tags.
        sort_by: One of SORT_KEYS, or None to keep the category order.
        descending: Sort direction when sort_by is set.
    """
    tags: tuple[str, ...] = ()
    min_rating: float | None = None
    creator: str | None = None
    search: str | None = None
    sort_by: str | None = None
    descending: bool = True


def _timestamp(value: str) -> datetime:
    try:
        stamp = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return _EPOCH
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp


def validate_category(category: str) -> str:
    if category not in CATEGORIES:
        raise ValidationFailed(
            f"Unknown category '{category}'. Choose from: {', '.join(CATEGORIES)}",
            details={"category": category}
        )
    return category


def apply_category(
    records: Iterable[SharedPlaylistRecord],
    category: str,
    limit: int | None = None
) -> list[SharedPlaylistRecord]:
    """Filter and order records for one category, then cap at ``limit``."""
    items = list(records)
    if category == "featured":
        items = [r for r in items if r.featured]
    elif category == "highly-rated":
        items = [r for r in items if r.rating >= HIGHLY_RATED_THRESHOLD]
    elif category == "trending":
        items.sort(key=lambda r: r.download_count, reverse=True)
    elif category == "new":
        items.sort(key=lambda r: _timestamp(r.created_at), reverse=True)
    if limit is not None:
        items = items[:limit]
    return items


def dedupe(records: Iterable[SharedPlaylistRecord]) -> list[SharedPlaylistRecord]:
    """Drop repeated ids, keeping the first occurrence."""
    seen: set[str] = set()
    unique = []
    for record in records:
        if record.id in seen:
            continue
        seen.add(record.id)
        unique.append(record)
    return unique


def _matches_search(record: SharedPlaylistRecord, query: str) -> bool:
    haystacks = (
        record.name,
        record.description,
        record.creator_display_name,
        " ".join(record.tags),
    )
    return any(query in text.lower() for text in haystacks)


def filter_records(
    records: Iterable[SharedPlaylistRecord],
    filters: PlaylistFilters
) -> list[SharedPlaylistRecord]:
    """
    Apply tag, rating, creator and search filters, then sort.

    Example:
        >>> filter_records(records, PlaylistFilters(tags=("party",), sort_by="rating"))
    """
    items = list(records)

    if filters.tags:
        wanted = set(filters.tags)
        items = [r for r in items if wanted.intersection(r.tags)]

    if filters.min_rating:
        items = [r for r in items if r.rating >= filters.min_rating]

    if filters.creator:
        creator = filters.creator.lower()
        items = [r for r in items if creator in r.creator_display_name.lower()]

    if filters.search:
        query = filters.search.lower()
        items = [r for r in items if _matches_search(r, query)]

    if filters.sort_by == "rating":
        items.sort(key=lambda r: r.rating, reverse=filters.descending)
    elif filters.sort_by == "downloads":
        items.sort(key=lambda r: r.download_count, reverse=filters.descending)
    elif filters.sort_by == "date":
        items.sort(key=lambda r: _timestamp(r.created_at), reverse=filters.descending)
    elif filters.sort_by == "name":
        items.sort(key=lambda r: r.name.lower(), reverse=filters.descending)
    elif filters.sort_by is not None:
        raise ValidationFailed(
            f"Unknown sort key '{filters.sort_by}'",
            details={"sort_by": filters.sort_by}
        )

    return items


def all_tags(records: Iterable[SharedPlaylistRecord]) -> list[str]:
    return sorted({tag for record in records for tag in record.tags})


def all_creators(records: Iterable[SharedPlaylistRecord]) -> list[str]:
    return sorted({r.creator_display_name for r in records if r.creator_display_name})
