from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional

from snippet_feed.application.dto.create_snippet_dto import (
    DEFAULT_CODE_MAX_LENGTH,
    DEFAULT_DESCRIPTION_MAX_LENGTH,
    DEFAULT_TITLE_MAX_LENGTH,
    CreateSnippetDTO,
)
from snippet_feed.application.services.comment_thread import CommentThread
from snippet_feed.domain.entities.feed_record import FeedViewRecord
from snippet_feed.domain.entities.snippet import Comment, Profile, Snippet
from snippet_feed.domain.errors import (
    AuxiliaryFetchFailure,
    FetchFailure,
    Forbidden,
    MutationFailure,
    StoreError,
    Unauthenticated,
)
from snippet_feed.domain.interfaces.remote_store_interface import IRemoteStore
from snippet_feed.domain.services.profile_stats import ProfileStats, compute_profile_stats
from snippet_feed.metrics import record_auxiliary_failure
from snippet_feed.observability import emit_event


@dataclass
class SnippetDetail:
    record: FeedViewRecord
    comments: List[Comment]
    degraded: List[AuxiliaryFetchFailure] = field(default_factory=list)

    @property
    def comment_count(self) -> int:
        return len(self.comments)


@dataclass
class ProfileView:
    profile: Profile
    snippets: List[Snippet]
    stats: ProfileStats


class SnippetService:
    """Application service orchestrating snippet detail, publishing and profile views.

    Thin orchestration over domain + store. No transport concerns here.
    """

    def __init__(
        self,
        store: IRemoteStore,
        comment_thread: CommentThread,
        *,
        call_timeout: float = 5.0,
        description_max_length: int = DEFAULT_DESCRIPTION_MAX_LENGTH,
        title_max_length: int = DEFAULT_TITLE_MAX_LENGTH,
        code_max_length: int = DEFAULT_CODE_MAX_LENGTH,
    ) -> None:
        self._store = store
        self._comments = comment_thread
        self._call_timeout = call_timeout
        self._limits = {
            "description_max_length": description_max_length,
            "title_max_length": title_max_length,
            "code_max_length": code_max_length,
        }

    async def load_detail(self, snippet_id: str, user_id: Optional[str] = None) -> SnippetDetail:
        snippet = await self._primary(self._store.fetch_snippet(snippet_id), "fetch_snippet")
        if snippet is None:
            raise FetchFailure(f"snippet {snippet_id} not found")

        degraded: List[AuxiliaryFetchFailure] = []
        liked = False
        if user_id:
            try:
                liked = bool(await asyncio.wait_for(
                    self._store.has_liked(snippet_id, user_id), timeout=self._call_timeout
                ))
            except (StoreError, asyncio.TimeoutError) as e:
                degraded.append(self._auxiliary("liked", snippet_id, e))

        try:
            comments = await self._comments.list(snippet_id)
        except FetchFailure as e:
            comments = []
            degraded.append(self._auxiliary("comments", snippet_id, e))

        record = FeedViewRecord.from_snippet(snippet, comment_count=len(comments), liked=liked)
        return SnippetDetail(record=record, comments=comments, degraded=degraded)

    async def publish(
        self,
        user_id: Optional[str],
        *,
        title: str,
        language: str,
        description: str,
        code: str,
    ) -> Snippet:
        """Validate raw form input with the configured limits, then create."""
        dto = CreateSnippetDTO(
            user_id=user_id,
            title=title,
            language=language,
            description=description,
            code=code,
            **self._limits,
        )
        return await self.create_snippet(dto)

    async def create_snippet(self, dto: CreateSnippetDTO) -> Snippet:
        try:
            created = await asyncio.wait_for(
                self._store.insert_snippet(
                    dto.user_id,
                    title=dto.title,
                    language=dto.language,
                    description=dto.description,
                    code=dto.code,
                ),
                timeout=self._call_timeout,
            )
        except (StoreError, asyncio.TimeoutError) as e:
            emit_event(
                "snippet_create_failed",
                severity="error",
                operation="insert_snippet",
                user_id=dto.user_id,
                error=str(e) or type(e).__name__,
            )
            raise MutationFailure("could not publish snippet") from e
        emit_event("snippet_published", user_id=dto.user_id, language=created.language)
        return created

    async def delete_snippet(self, snippet_id: str, user_id: Optional[str]) -> None:
        if not user_id:
            raise Unauthenticated("delete snippets")
        try:
            removed = await asyncio.wait_for(
                self._store.delete_snippet(snippet_id, user_id), timeout=self._call_timeout
            )
        except (StoreError, asyncio.TimeoutError) as e:
            emit_event(
                "snippet_delete_failed",
                severity="error",
                operation="delete_snippet",
                snippet_id=snippet_id,
                error=str(e) or type(e).__name__,
            )
            raise MutationFailure(f"could not delete snippet {snippet_id}") from e
        if not removed:
            emit_event("snippet_delete_rejected", severity="warn", snippet_id=snippet_id)
            raise Forbidden("snippet was not deleted")
        emit_event("snippet_deleted", snippet_id=snippet_id)

    async def load_profile(self, user_id: Optional[str]) -> ProfileView:
        if not user_id:
            raise Unauthenticated("view your profile")
        profile = await self._primary(self._store.fetch_profile(user_id), "fetch_profile")
        if profile is None:
            raise FetchFailure(f"profile {user_id} not found")
        snippets = await self._primary(self._store.fetch_user_snippets(user_id), "fetch_user_snippets")
        snippets = sorted(snippets, key=lambda s: s.created_at, reverse=True)
        return ProfileView(profile=profile, snippets=snippets, stats=compute_profile_stats(snippets))

    async def _primary(self, call, operation: str):
        try:
            return await asyncio.wait_for(call, timeout=self._call_timeout)
        except (StoreError, asyncio.TimeoutError) as e:
            emit_event("primary_fetch_error", severity="error", operation=operation, error=str(e) or type(e).__name__)
            raise FetchFailure(f"{operation} failed") from e

    @staticmethod
    def _auxiliary(kind: str, snippet_id: str, cause: BaseException) -> AuxiliaryFetchFailure:
        record_auxiliary_failure(kind)
        emit_event("detail_auxiliary_fetch_failed", severity="warn", kind=kind, snippet_id=snippet_id, error=str(cause))
        return AuxiliaryFetchFailure(kind, snippet_id, cause)
