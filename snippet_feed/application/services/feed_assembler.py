from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

from snippet_feed.domain.entities.feed_record import FeedViewRecord
from snippet_feed.domain.errors import AuxiliaryFetchFailure, FetchFailure, StoreError
from snippet_feed.domain.interfaces.remote_store_interface import IRemoteStore
from snippet_feed.domain.services.view_engine import distinct_languages
from snippet_feed.metrics import record_auxiliary_failure, record_feed_load, track_performance
from snippet_feed.observability import emit_event

STRATEGY_BULK = "bulk"
STRATEGY_PER_SNIPPET = "per_snippet"


@dataclass
class AssembledFeed:
    records: List[FeedViewRecord]
    languages: List[str]
    degraded: List[AuxiliaryFetchFailure] = field(default_factory=list)


class FeedAssembler:
    """Builds view-ready feed records from independently fetched store data.

    The snippet list is the primary read: its failure fails the whole
    assembly. Comment counts and the viewer's liked ids are auxiliary: a
    failure is logged, defaulted (0 / not liked) and reported on
    ``AssembledFeed.degraded``; a partial feed beats no feed.
    """

    def __init__(
        self,
        store: IRemoteStore,
        *,
        comment_count_strategy: str = STRATEGY_BULK,
        comment_count_concurrency: int = 8,
        feed_timeout: float = 10.0,
        call_timeout: float = 5.0,
    ) -> None:
        if comment_count_strategy not in (STRATEGY_BULK, STRATEGY_PER_SNIPPET):
            raise ValueError(f"unknown comment count strategy: {comment_count_strategy!r}")
        self._store = store
        self._strategy = comment_count_strategy
        self._concurrency = max(1, int(comment_count_concurrency))
        self._feed_timeout = feed_timeout
        self._call_timeout = call_timeout

    async def assemble(self, user_id: Optional[str] = None) -> AssembledFeed:
        try:
            with track_performance("feed_assemble"):
                feed = await self._assemble(user_id)
        except FetchFailure:
            record_feed_load("error")
            raise
        except asyncio.TimeoutError as e:
            record_feed_load("timeout")
            emit_event("feed_fetch_timeout", severity="warn", timeout=self._feed_timeout)
            raise FetchFailure(f"feed fetch timed out after {self._feed_timeout}s") from e
        record_feed_load("ok", records=len(feed.records), degraded=len(feed.degraded))
        return feed

    async def _assemble(self, user_id: Optional[str]) -> AssembledFeed:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._feed_timeout
        try:
            snippets = await asyncio.wait_for(self._store.fetch_snippets(), timeout=self._feed_timeout)
        except StoreError as e:
            emit_event("feed_fetch_error", severity="error", operation="fetch_snippets", error=str(e))
            raise FetchFailure(f"could not load snippets: {e}") from e

        degraded: List[AuxiliaryFetchFailure] = []
        ids = [s.id for s in snippets]
        counts: Dict[str, int] = {}
        liked: Dict[str, Set[str]] = {}

        async def _collect_liked() -> None:
            liked["ids"] = await self._liked_ids(user_id, degraded)

        # auxiliary reads get whatever is left of the feed budget
        remaining = max(0.0, deadline - loop.time())
        try:
            await asyncio.wait_for(
                asyncio.gather(self._comment_counts(ids, counts, degraded), _collect_liked()),
                timeout=remaining,
            )
        except asyncio.TimeoutError:
            cause = asyncio.TimeoutError(f"feed deadline of {self._feed_timeout}s reached")
            for sid in ids:
                if sid not in counts:
                    counts[sid] = 0
                    self._note_auxiliary(AuxiliaryFetchFailure("comment_count", sid, cause), degraded)
            if user_id and "ids" not in liked:
                self._note_auxiliary(AuxiliaryFetchFailure("liked_ids", None, cause), degraded)

        liked_ids = liked.get("ids", set())
        records = [
            FeedViewRecord.from_snippet(s, comment_count=counts.get(s.id, 0), liked=s.id in liked_ids)
            for s in snippets
        ]
        return AssembledFeed(records=records, languages=distinct_languages(records), degraded=degraded)

    # ---------- auxiliary data ----------
    async def _comment_counts(
        self, ids: Sequence[str], counts: Dict[str, int], degraded: List[AuxiliaryFetchFailure]
    ) -> None:
        if not ids:
            return
        if self._strategy == STRATEGY_BULK:
            try:
                fetched = await asyncio.wait_for(self._store.fetch_comment_counts(ids), timeout=self._call_timeout)
                counts.update({sid: max(0, int(fetched.get(sid, 0) or 0)) for sid in ids})
                return
            except (StoreError, asyncio.TimeoutError) as e:
                # aggregate query failed; fall back to the per-snippet fan-out
                self._note_auxiliary(AuxiliaryFetchFailure("comment_counts", None, e), None)
        await self._comment_counts_per_snippet(ids, counts, degraded)

    async def _comment_counts_per_snippet(
        self, ids: Sequence[str], counts: Dict[str, int], degraded: List[AuxiliaryFetchFailure]
    ) -> None:
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _one(snippet_id: str) -> None:
            async with semaphore:
                try:
                    count = await asyncio.wait_for(
                        self._store.fetch_comment_count(snippet_id), timeout=self._call_timeout
                    )
                    counts[snippet_id] = max(0, int(count or 0))
                except (StoreError, asyncio.TimeoutError) as e:
                    counts[snippet_id] = 0
                    self._note_auxiliary(AuxiliaryFetchFailure("comment_count", snippet_id, e), degraded)

        await asyncio.gather(*(_one(sid) for sid in ids))

    async def _liked_ids(self, user_id: Optional[str], degraded: List[AuxiliaryFetchFailure]) -> Set[str]:
        if not user_id:
            return set()
        try:
            return set(await asyncio.wait_for(self._store.fetch_user_liked_ids(user_id), timeout=self._call_timeout))
        except (StoreError, asyncio.TimeoutError) as e:
            self._note_auxiliary(AuxiliaryFetchFailure("liked_ids", None, e), degraded)
            return set()

    @staticmethod
    def _note_auxiliary(failure: AuxiliaryFetchFailure, degraded: Optional[List[AuxiliaryFetchFailure]]) -> None:
        record_auxiliary_failure(failure.kind)
        emit_event(
            "feed_auxiliary_fetch_failed",
            severity="warn",
            kind=failure.kind,
            snippet_id=failure.key,
            error=str(failure.cause) if failure.cause else "",
        )
        if degraded is not None:
            degraded.append(failure)
