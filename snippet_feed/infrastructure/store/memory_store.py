from __future__ import annotations

import itertools
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from snippet_feed.domain.entities.snippet import Comment, Like, Profile, Snippet
from snippet_feed.domain.errors import DuplicateRecordError, StoreError
from snippet_feed.domain.interfaces.remote_store_interface import IRemoteStore


class InMemoryRemoteStore(IRemoteStore):
    """Process-local store with the backend's server-side rules.

    Emulates what the hosted backend enforces: the unique (snippet, user)
    like key, the like-count side effect of like insert/delete, and
    row-level ownership on deletes (non-owned rows are invisible, so the
    delete removes nothing). Used for local development and tests.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._seq = itertools.count(1)
        self._profiles: Dict[str, Profile] = {}
        self._snippets: Dict[str, Tuple[int, Snippet]] = {}
        self._likes: Set[Like] = set()
        self._comments: Dict[str, Tuple[int, Comment]] = {}

    # ---------- seeding ----------
    def add_profile(self, user_id: str, username: str, joined_at: Optional[datetime] = None) -> Profile:
        if any(p.username == username for p in self._profiles.values() if p.id != user_id):
            raise DuplicateRecordError(f"username {username!r} is taken")
        profile = Profile(id=user_id, username=username, joined_at=joined_at or self._clock())
        self._profiles[user_id] = profile
        return profile

    def add_snippet(
        self,
        user_id: str,
        *,
        title: str,
        language: str,
        description: str = "",
        code: str = "",
        likes: int = 0,
        created_at: Optional[datetime] = None,
        snippet_id: Optional[str] = None,
    ) -> Snippet:
        snippet = Snippet(
            id=snippet_id or uuid.uuid4().hex,
            user_id=user_id,
            title=title,
            language=language,
            description=description,
            code=code,
            likes=max(0, int(likes)),
            created_at=created_at or self._clock(),
        )
        self._snippets[snippet.id] = (next(self._seq), snippet)
        return snippet

    def like_rows(self, snippet_id: Optional[str] = None) -> List[Like]:
        return [lk for lk in self._likes if snippet_id is None or lk.snippet_id == snippet_id]

    # ---------- snippets ----------
    async def fetch_snippets(self) -> List[Snippet]:
        return [self._joined(s) for s in self._newest_first(self._snippets.values())]

    async def fetch_snippet(self, snippet_id: str) -> Optional[Snippet]:
        entry = self._snippets.get(snippet_id)
        return self._joined(entry[1]) if entry else None

    async def fetch_user_snippets(self, user_id: str) -> List[Snippet]:
        own = [e for e in self._snippets.values() if e[1].user_id == user_id]
        return [self._joined(s) for s in self._newest_first(own)]

    async def insert_snippet(
        self, user_id: str, *, title: str, language: str, description: str, code: str
    ) -> Snippet:
        if user_id not in self._profiles:
            raise StoreError(f"no profile for user {user_id}")
        snippet = self.add_snippet(user_id, title=title, language=language, description=description, code=code)
        return self._joined(snippet)

    async def delete_snippet(self, snippet_id: str, user_id: str) -> bool:
        entry = self._snippets.get(snippet_id)
        if entry is None or entry[1].user_id != user_id:
            return False
        del self._snippets[snippet_id]
        self._likes = {lk for lk in self._likes if lk.snippet_id != snippet_id}
        self._comments = {k: v for k, v in self._comments.items() if v[1].snippet_id != snippet_id}
        return True

    # ---------- profiles ----------
    async def fetch_profile(self, user_id: str) -> Optional[Profile]:
        return self._profiles.get(user_id)

    # ---------- comments ----------
    async def fetch_comment_count(self, snippet_id: str) -> int:
        return sum(1 for _, c in self._comments.values() if c.snippet_id == snippet_id)

    async def fetch_comment_counts(self, snippet_ids: Sequence[str]) -> Dict[str, int]:
        wanted = set(snippet_ids)
        counts: Dict[str, int] = {}
        for _, c in self._comments.values():
            if c.snippet_id in wanted:
                counts[c.snippet_id] = counts.get(c.snippet_id, 0) + 1
        return counts

    async def fetch_comments(self, snippet_id: str) -> List[Comment]:
        rows = [e for e in self._comments.values() if e[1].snippet_id == snippet_id]
        return [self._comment_joined(c) for c in self._newest_first(rows)]

    async def insert_comment(self, snippet_id: str, user_id: str, text: str) -> Comment:
        if snippet_id not in self._snippets:
            raise StoreError(f"snippet {snippet_id} does not exist")
        comment = Comment(
            id=uuid.uuid4().hex,
            snippet_id=snippet_id,
            user_id=user_id,
            text=text,
            created_at=self._clock(),
        )
        self._comments[comment.id] = (next(self._seq), comment)
        return self._comment_joined(comment)

    async def delete_comment(self, comment_id: str, user_id: str) -> bool:
        entry = self._comments.get(comment_id)
        if entry is None or entry[1].user_id != user_id:
            return False
        del self._comments[comment_id]
        return True

    # ---------- likes ----------
    async def fetch_user_liked_ids(self, user_id: str) -> Set[str]:
        return {lk.snippet_id for lk in self._likes if lk.user_id == user_id}

    async def has_liked(self, snippet_id: str, user_id: str) -> bool:
        return Like(snippet_id, user_id) in self._likes

    async def insert_like(self, snippet_id: str, user_id: str) -> None:
        entry = self._snippets.get(snippet_id)
        if entry is None:
            raise StoreError(f"snippet {snippet_id} does not exist")
        like = Like(snippet_id, user_id)
        if like in self._likes:
            raise DuplicateRecordError(f"like ({snippet_id}, {user_id}) exists")
        self._likes.add(like)
        entry[1].likes += 1

    async def delete_like(self, snippet_id: str, user_id: str) -> bool:
        like = Like(snippet_id, user_id)
        if like not in self._likes:
            return False
        self._likes.discard(like)
        entry = self._snippets.get(snippet_id)
        if entry is not None:
            entry[1].likes = max(0, entry[1].likes - 1)
        return True

    # ---------- helpers ----------
    @staticmethod
    def _newest_first(entries) -> list:
        ordered = sorted(entries, key=lambda e: (e[1].created_at, e[0]), reverse=True)
        return [item for _, item in ordered]

    def _username(self, user_id: str) -> str:
        profile = self._profiles.get(user_id)
        return profile.username if profile else ""

    def _joined(self, s: Snippet) -> Snippet:
        return Snippet(
            id=s.id,
            user_id=s.user_id,
            title=s.title,
            language=s.language,
            code=s.code,
            description=s.description,
            likes=s.likes,
            created_at=s.created_at,
            author_username=self._username(s.user_id),
        )

    def _comment_joined(self, c: Comment) -> Comment:
        return Comment(
            id=c.id,
            snippet_id=c.snippet_id,
            user_id=c.user_id,
            text=c.text,
            created_at=c.created_at,
            author_username=self._username(c.user_id),
        )
