from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from snippet_feed.domain.entities.snippet import Snippet


@dataclass(frozen=True)
class LikeState:
    """What the viewer sees for one snippet: liked flag and like count."""

    liked: bool
    like_count: int


@dataclass(frozen=True)
class FeedViewRecord:
    """A snippet as shown in the feed. Derived, in-memory only, never persisted."""

    id: str
    user_id: str
    title: str
    language: str
    description: str
    code: str
    like_count: int
    created_at: datetime
    author_username: str
    comment_count: int = 0
    liked: bool = False

    @classmethod
    def from_snippet(cls, snippet: Snippet, *, comment_count: int = 0, liked: bool = False) -> "FeedViewRecord":
        return cls(
            id=snippet.id,
            user_id=snippet.user_id,
            title=snippet.title,
            language=snippet.language,
            description=snippet.description,
            code=snippet.code,
            like_count=max(0, int(snippet.likes)),
            created_at=snippet.created_at,
            author_username=snippet.author_username,
            comment_count=max(0, int(comment_count)),
            liked=bool(liked),
        )

    @property
    def like_state(self) -> LikeState:
        return LikeState(liked=self.liked, like_count=self.like_count)

    def with_like_state(self, state: LikeState) -> "FeedViewRecord":
        return replace(self, liked=state.liked, like_count=state.like_count)

    def unliked(self) -> "FeedViewRecord":
        return replace(self, liked=False)
