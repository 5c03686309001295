from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

from snippet_feed.domain.entities.snippet import Comment
from snippet_feed.domain.errors import (
    EmptyContent,
    FetchFailure,
    Forbidden,
    MutationFailure,
    StoreError,
    Unauthenticated,
)
from snippet_feed.domain.interfaces.identity_provider_interface import IdentityChanged
from snippet_feed.domain.interfaces.remote_store_interface import IRemoteStore
from snippet_feed.metrics import record_comment_mutation
from snippet_feed.observability import emit_event


class CommentThread:
    """Fetch/create/delete a snippet's comments, newest first.

    Every successful mutation re-fetches the full list from the store rather
    than appending or splicing locally, so list and count always match the
    store.
    """

    def __init__(self, store: IRemoteStore, *, call_timeout: float = 5.0) -> None:
        self._store = store
        self._call_timeout = call_timeout
        self._threads: Dict[str, List[Comment]] = {}
        self._comment_snippet: Dict[str, str] = {}
        self._drafts: Dict[str, str] = {}

    # ---------- cached views ----------
    def comments(self, snippet_id: str) -> List[Comment]:
        return list(self._threads.get(snippet_id, []))

    def count(self, snippet_id: str) -> int:
        return len(self._threads.get(snippet_id, []))

    def draft(self, snippet_id: str) -> str:
        return self._drafts.get(snippet_id, "")

    def set_draft(self, snippet_id: str, text: str) -> None:
        self._drafts[snippet_id] = text or ""

    # ---------- operations ----------
    async def list(self, snippet_id: str) -> List[Comment]:
        try:
            comments = await asyncio.wait_for(self._store.fetch_comments(snippet_id), timeout=self._call_timeout)
        except (StoreError, asyncio.TimeoutError) as e:
            emit_event(
                "comments_fetch_error",
                severity="error",
                operation="fetch_comments",
                snippet_id=snippet_id,
                error=str(e) or type(e).__name__,
            )
            raise FetchFailure(f"could not load comments for {snippet_id}") from e
        ordered = sorted(comments, key=lambda c: c.created_at, reverse=True)
        for stale in self._threads.get(snippet_id, []):
            self._comment_snippet.pop(stale.id, None)
        self._threads[snippet_id] = ordered
        for c in ordered:
            self._comment_snippet[c.id] = snippet_id
        return list(ordered)

    async def add(self, snippet_id: str, user_id: Optional[str], text: str) -> Comment:
        if not user_id:
            raise Unauthenticated("comment")
        body = (text or "").strip()
        if not body:
            raise EmptyContent("comment text is empty")

        try:
            created = await asyncio.wait_for(
                self._store.insert_comment(snippet_id, user_id, body), timeout=self._call_timeout
            )
        except (StoreError, asyncio.TimeoutError) as e:
            record_comment_mutation("add", "error")
            emit_event(
                "comment_add_failed",
                severity="error",
                operation="insert_comment",
                snippet_id=snippet_id,
                user_id=user_id,
                error=str(e) or type(e).__name__,
            )
            raise MutationFailure(f"could not add comment to {snippet_id}") from e

        record_comment_mutation("add", "ok")
        self._drafts.pop(snippet_id, None)
        await self._refetch_after_mutation(snippet_id)
        return created

    async def remove(self, comment_id: str, requester_id: Optional[str], snippet_id: Optional[str] = None) -> None:
        if not requester_id:
            raise Unauthenticated("delete comments")
        snippet_id = snippet_id or self._comment_snippet.get(comment_id)
        known = self._find(snippet_id, comment_id)
        if known is not None and known.user_id != requester_id:
            record_comment_mutation("remove", "forbidden")
            raise Forbidden("only the author can delete this comment")

        try:
            removed = await asyncio.wait_for(
                self._store.delete_comment(comment_id, requester_id), timeout=self._call_timeout
            )
        except (StoreError, asyncio.TimeoutError) as e:
            record_comment_mutation("remove", "error")
            emit_event(
                "comment_remove_failed",
                severity="error",
                operation="delete_comment",
                comment_id=comment_id,
                error=str(e) or type(e).__name__,
            )
            raise MutationFailure(f"could not delete comment {comment_id}") from e

        if not removed:
            # row missing or hidden by the store's row-level rules
            record_comment_mutation("remove", "forbidden")
            emit_event("comment_remove_rejected", severity="warn", comment_id=comment_id)
            raise Forbidden("comment was not deleted")

        record_comment_mutation("remove", "ok")
        self._comment_snippet.pop(comment_id, None)
        if snippet_id:
            await self._refetch_after_mutation(snippet_id)

    def reset(self) -> None:
        """Identity changed: drop drafts and cached threads of the previous session."""
        self._drafts.clear()
        self._threads.clear()
        self._comment_snippet.clear()

    def on_identity_changed(self, event: IdentityChanged) -> None:
        self.reset()

    async def _refetch_after_mutation(self, snippet_id: str) -> None:
        # the mutation itself succeeded; a failed re-fetch leaves the cached list stale
        try:
            await self.list(snippet_id)
        except FetchFailure:
            emit_event("comments_refetch_failed", severity="warn", snippet_id=snippet_id)

    def _find(self, snippet_id: Optional[str], comment_id: str) -> Optional[Comment]:
        if not snippet_id:
            return None
        for c in self._threads.get(snippet_id, []):
            if c.id == comment_id:
                return c
        return None
