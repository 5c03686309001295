from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Set

from snippet_feed.domain.entities.snippet import Comment, Profile, Snippet


class IRemoteStore(ABC):
    """Contract of the hosted backend the feed engine reads from and writes to.

    Domain defines the contract; infrastructure implements it. Every method may
    fail with a StoreError. Row-level access control is the store's job:
    deletes of rows the caller does not own remove nothing and return False.
    """

    # ---------- snippets ----------
    @abstractmethod
    async def fetch_snippets(self) -> List[Snippet]:
        """All snippets with author username, newest first."""
        raise NotImplementedError

    @abstractmethod
    async def fetch_snippet(self, snippet_id: str) -> Optional[Snippet]:
        raise NotImplementedError

    @abstractmethod
    async def fetch_user_snippets(self, user_id: str) -> List[Snippet]:
        raise NotImplementedError

    @abstractmethod
    async def insert_snippet(
        self, user_id: str, *, title: str, language: str, description: str, code: str
    ) -> Snippet:
        raise NotImplementedError

    @abstractmethod
    async def delete_snippet(self, snippet_id: str, user_id: str) -> bool:
        raise NotImplementedError

    # ---------- profiles ----------
    @abstractmethod
    async def fetch_profile(self, user_id: str) -> Optional[Profile]:
        raise NotImplementedError

    # ---------- comments ----------
    @abstractmethod
    async def fetch_comment_count(self, snippet_id: str) -> int:
        raise NotImplementedError

    @abstractmethod
    async def fetch_comment_counts(self, snippet_ids: Sequence[str]) -> Dict[str, int]:
        """Single aggregate query; snippets without comments may be absent."""
        raise NotImplementedError

    @abstractmethod
    async def fetch_comments(self, snippet_id: str) -> List[Comment]:
        """Comments of one snippet with author username, newest first."""
        raise NotImplementedError

    @abstractmethod
    async def insert_comment(self, snippet_id: str, user_id: str, text: str) -> Comment:
        raise NotImplementedError

    @abstractmethod
    async def delete_comment(self, comment_id: str, user_id: str) -> bool:
        raise NotImplementedError

    # ---------- likes ----------
    @abstractmethod
    async def fetch_user_liked_ids(self, user_id: str) -> Set[str]:
        raise NotImplementedError

    @abstractmethod
    async def has_liked(self, snippet_id: str, user_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def insert_like(self, snippet_id: str, user_id: str) -> None:
        """Raises DuplicateRecordError if the (snippet, user) pair exists."""
        raise NotImplementedError

    @abstractmethod
    async def delete_like(self, snippet_id: str, user_id: str) -> bool:
        raise NotImplementedError
