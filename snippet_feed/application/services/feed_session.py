from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional

from snippet_feed.application.services.comment_thread import CommentThread
from snippet_feed.application.services.feed_assembler import AssembledFeed, FeedAssembler
from snippet_feed.application.services.like_toggle import LikeToggle
from snippet_feed.domain.entities.feed_record import FeedViewRecord, LikeState
from snippet_feed.domain.errors import AuxiliaryFetchFailure, FetchFailure
from snippet_feed.domain.interfaces.identity_provider_interface import IdentityChanged, IIdentityProvider
from snippet_feed.domain.services.view_engine import (
    ALL_LANGUAGES,
    SORT_KEYS,
    SORT_NEWEST,
    apply_view,
    trending_languages,
)
from snippet_feed.metrics import record_stale_discard
from snippet_feed.observability import emit_event


class FeedSession:
    """State of the feed screen for one viewer.

    Holds the last applied feed snapshot, the view options and the optimistic
    like overlay. Refreshes are numbered; a result is applied only if it is
    still the latest request and the identity has not changed since it was
    issued, so an older, slower fetch never overwrites a fresher one.
    """

    def __init__(
        self,
        assembler: FeedAssembler,
        like_toggle: LikeToggle,
        identity: IIdentityProvider,
        *,
        comment_thread: Optional[CommentThread] = None,
        reconcile_after_like: bool = True,
        refresh_on_identity_change: bool = True,
        trending_limit: int = 8,
    ) -> None:
        self._assembler = assembler
        self._likes = like_toggle
        self._identity = identity
        self._comments = comment_thread
        self._reconcile_after_like = reconcile_after_like
        self._refresh_on_identity_change = refresh_on_identity_change
        self._trending_limit = trending_limit

        self._records: List[FeedViewRecord] = []
        self._languages: List[str] = []
        self._degraded: List[AuxiliaryFetchFailure] = []
        self._loaded = False

        self.sort_key = SORT_NEWEST
        self.language_filter = ALL_LANGUAGES
        self.search_query = ""

        self._seq = 0
        self._epoch = 0
        # refresh sequence number current when each like toggle settled
        self._like_settled: Dict[str, int] = {}
        self.pending_refresh: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = identity.subscribe(self.on_identity_changed)

    # ---------- snapshot ----------
    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def records(self) -> List[FeedViewRecord]:
        """All records of the snapshot with optimistic like state merged in."""
        return [self._likes.overlay(r) for r in self._records]

    @property
    def visible(self) -> List[FeedViewRecord]:
        return apply_view(self.records, self.sort_key, self.language_filter, self.search_query)

    @property
    def languages(self) -> List[str]:
        return list(self._languages)

    @property
    def trending_languages(self) -> List[str]:
        return trending_languages(self._languages, self._trending_limit)

    @property
    def degraded(self) -> List[AuxiliaryFetchFailure]:
        return list(self._degraded)

    def record(self, snippet_id: str) -> Optional[FeedViewRecord]:
        for r in self._records:
            if r.id == snippet_id:
                return self._likes.overlay(r)
        return None

    # ---------- view options ----------
    def set_sort(self, sort_key: str) -> None:
        if sort_key not in SORT_KEYS:
            raise ValueError(f"unknown sort key: {sort_key!r}")
        self.sort_key = sort_key

    def set_language(self, language: str) -> None:
        self.language_filter = language or ALL_LANGUAGES

    def set_search(self, query: str) -> None:
        self.search_query = query or ""

    # ---------- actions ----------
    async def refresh(self) -> bool:
        """Fetch and apply a new snapshot. Returns False if the result was superseded."""
        self._seq += 1
        seq = self._seq
        epoch = self._epoch
        user_id = self._identity.current_identity()
        try:
            feed = await self._assembler.assemble(user_id)
        except FetchFailure:
            # keep the previous snapshot on screen
            if seq == self._seq:
                emit_event("feed_refresh_failed", severity="warn", kept_records=len(self._records))
            raise
        if seq != self._seq or epoch != self._epoch:
            record_stale_discard()
            emit_event("feed_refresh_discarded", seq=seq, latest=self._seq)
            return False
        self._apply(feed, seq)
        return True

    async def toggle_like(self, snippet_id: str) -> LikeState:
        record = self.record(snippet_id)
        if record is None:
            raise KeyError(snippet_id)
        epoch = self._epoch
        try:
            state = await self._likes.toggle(
                snippet_id,
                self._identity.current_identity(),
                record.liked,
                record.like_count,
            )
        finally:
            if epoch == self._epoch:
                self._like_settled[snippet_id] = self._seq
        if self._reconcile_after_like:
            try:
                await self.refresh()
            except FetchFailure:
                # the like itself succeeded; the overlay keeps showing it
                pass
        return state

    def on_identity_changed(self, event: IdentityChanged) -> None:
        """Discard everything derived from the previous identity."""
        self._epoch += 1
        self._records = [r.unliked() for r in self._records]
        self._like_settled.clear()
        self._likes.reset()
        if self._comments is not None:
            self._comments.reset()
        emit_event("feed_identity_reset", signed_in=event.current is not None)
        if self._refresh_on_identity_change:
            self._schedule_refresh()

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _schedule_refresh(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.refresh())
        task.add_done_callback(_log_refresh_result)
        self.pending_refresh = task

    def _apply(self, feed: AssembledFeed, seq: int) -> None:
        self._records = list(feed.records)
        self._languages = list(feed.languages)
        self._degraded = list(feed.degraded)
        self._loaded = True
        # a refresh issued before a toggle settled may predate its write
        settled = [r for r in self._records if self._like_settled.get(r.id, 0) < seq]
        self._likes.reconcile(settled)
        for r in settled:
            self._like_settled.pop(r.id, None)


def _log_refresh_result(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        emit_event("feed_background_refresh_failed", severity="warn", error=str(exc))
