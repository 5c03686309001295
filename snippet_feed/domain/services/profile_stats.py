from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from snippet_feed.domain.entities.snippet import Snippet


@dataclass(frozen=True)
class ProfileStats:
    snippet_count: int
    total_likes: int
    average_likes: float


def compute_profile_stats(snippets: Iterable[Snippet]) -> ProfileStats:
    """Per-user totals shown on the profile page.

    The average is rounded to one decimal and is 0.0 while the author has no
    likes at all.
    """
    items = list(snippets)
    total = sum(max(0, int(s.likes)) for s in items)
    average = round(total / len(items), 1) if total > 0 and items else 0.0
    return ProfileStats(snippet_count=len(items), total_likes=total, average_likes=average)
