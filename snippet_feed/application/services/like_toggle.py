from __future__ import annotations

import asyncio
import itertools
from typing import Dict, Iterable, Optional

from snippet_feed.domain.entities.feed_record import FeedViewRecord, LikeState
from snippet_feed.domain.errors import DuplicateRecordError, MutationFailure, StoreError, Unauthenticated
from snippet_feed.domain.interfaces.identity_provider_interface import IdentityChanged
from snippet_feed.domain.interfaces.remote_store_interface import IRemoteStore
from snippet_feed.metrics import record_like_toggle
from snippet_feed.observability import emit_event


class LikeToggle:
    """Optimistic per-snippet like/unlike engine.

    The optimistic state is recorded before the store call resolves and kept
    in an overlay keyed by snippet id. The store stays the source of truth
    for counts; ``reconcile`` drops settled overlay entries once fresh feed
    data arrives. Overlapping toggles on one snippet are last-writer-wins:
    only the latest operation may roll the overlay back.
    """

    def __init__(
        self,
        store: IRemoteStore,
        *,
        rollback_on_failure: bool = True,
        call_timeout: float = 5.0,
    ) -> None:
        self._store = store
        self._rollback = bool(rollback_on_failure)
        self._call_timeout = call_timeout
        self._states: Dict[str, LikeState] = {}
        self._latest_op: Dict[str, int] = {}
        self._op_ids = itertools.count(1)
        self._epoch = 0

    def state_for(self, snippet_id: str) -> Optional[LikeState]:
        return self._states.get(snippet_id)

    def is_pending(self, snippet_id: str) -> bool:
        return snippet_id in self._latest_op

    def overlay(self, record: FeedViewRecord) -> FeedViewRecord:
        state = self._states.get(record.id)
        return record.with_like_state(state) if state is not None else record

    async def toggle(
        self,
        snippet_id: str,
        user_id: Optional[str],
        liked: bool,
        like_count: int,
    ) -> LikeState:
        if not user_id:
            record_like_toggle("none", "unauthenticated")
            raise Unauthenticated("like snippets")

        prior = LikeState(liked=bool(liked), like_count=max(0, int(like_count)))
        target = not prior.liked
        action = "like" if target else "unlike"
        optimistic = LikeState(
            liked=target,
            like_count=max(0, prior.like_count + (1 if target else -1)),
        )

        op_id = next(self._op_ids)
        epoch = self._epoch
        self._latest_op[snippet_id] = op_id
        self._states[snippet_id] = optimistic

        try:
            if target:
                await asyncio.wait_for(self._store.insert_like(snippet_id, user_id), timeout=self._call_timeout)
            else:
                # a delete that removed nothing means the store is already unliked
                await asyncio.wait_for(self._store.delete_like(snippet_id, user_id), timeout=self._call_timeout)
        except DuplicateRecordError:
            # the unique (snippet, user) key already holds: already liked
            emit_event("like_duplicate_ignored", snippet_id=snippet_id)
        except (StoreError, asyncio.TimeoutError) as e:
            current = self._is_current(snippet_id, op_id, epoch)
            if current and self._rollback:
                self._states[snippet_id] = prior
            emit_event(
                "like_toggle_failed",
                severity="error",
                operation=action,
                snippet_id=snippet_id,
                user_id=user_id,
                rolled_back=bool(current and self._rollback),
                error=str(e) or type(e).__name__,
            )
            record_like_toggle(action, "error")
            raise MutationFailure(f"could not {action} snippet {snippet_id}") from e
        finally:
            if self._is_current(snippet_id, op_id, epoch):
                self._latest_op.pop(snippet_id, None)

        record_like_toggle(action, "ok")
        return optimistic

    def reconcile(self, records: Iterable[FeedViewRecord]) -> None:
        """Authoritative data arrived: forget overlay entries with no toggle in flight."""
        for record in records:
            if record.id in self._states and not self.is_pending(record.id):
                del self._states[record.id]

    def reset(self) -> None:
        self._states.clear()
        self._latest_op.clear()
        self._epoch += 1

    def on_identity_changed(self, event: IdentityChanged) -> None:
        self.reset()

    def _is_current(self, snippet_id: str, op_id: int, epoch: int) -> bool:
        return epoch == self._epoch and self._latest_op.get(snippet_id) == op_id
