from __future__ import annotations

from typing import Iterable, List, Sequence

from snippet_feed.domain.entities.feed_record import FeedViewRecord

SORT_NEWEST = "newest"
SORT_MOST_LIKED = "mostLiked"
SORT_KEYS = (SORT_NEWEST, SORT_MOST_LIKED)

ALL_LANGUAGES = "all"


def matches_query(record: FeedViewRecord, query: str) -> bool:
    """Case-insensitive substring match on title, description or language."""
    needle = query.lower()
    return (
        needle in (record.title or "").lower()
        or needle in (record.description or "").lower()
        or needle in (record.language or "").lower()
    )


def apply_view(
    records: Sequence[FeedViewRecord],
    sort_key: str = SORT_NEWEST,
    language_filter: str = ALL_LANGUAGES,
    search_query: str = "",
) -> List[FeedViewRecord]:
    """Return the visible, ordered subset of ``records``.

    Pure and deterministic; the input sequence is never mutated. A non-empty
    search query searches the full record set and replaces the language
    filter and sort: matches come back in input (store) order. Otherwise the
    language filter is applied, then a stable sort, so equal keys keep
    input order.
    """
    if sort_key not in SORT_KEYS:
        raise ValueError(f"unknown sort key: {sort_key!r}")

    query = (search_query or "").strip()
    if query:
        return [r for r in records if matches_query(r, query)]

    if language_filter and language_filter != ALL_LANGUAGES:
        visible = [r for r in records if r.language == language_filter]
    else:
        visible = list(records)

    if sort_key == SORT_MOST_LIKED:
        visible.sort(key=lambda r: r.like_count, reverse=True)
    else:
        visible.sort(key=lambda r: r.created_at, reverse=True)
    return visible


def distinct_languages(records: Iterable[FeedViewRecord]) -> List[str]:
    return sorted({r.language for r in records})


def trending_languages(languages: Sequence[str], limit: int = 8) -> List[str]:
    return list(languages[: max(0, int(limit))])
