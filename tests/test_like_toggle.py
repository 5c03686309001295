import asyncio

import pytest

from snippet_feed.application.services.like_toggle import LikeToggle
from snippet_feed.domain.entities.feed_record import LikeState
from snippet_feed.domain.errors import MutationFailure, StoreError, Unauthenticated
from snippet_feed.domain.interfaces.identity_provider_interface import IdentityChanged


@pytest.mark.asyncio
async def test_like_then_unlike_round_trip_keeps_store_consistent(seeded_store):
    likes = LikeToggle(seeded_store)

    first = await likes.toggle("s1", "bob", False, 0)
    assert first == LikeState(liked=True, like_count=1)
    assert len(seeded_store.like_rows("s1")) == 1

    second = await likes.toggle("s1", "bob", first.liked, first.like_count)
    assert second == LikeState(liked=False, like_count=0)
    assert seeded_store.like_rows("s1") == []
    snippet = await seeded_store.fetch_snippet("s1")
    assert snippet.likes == 0


@pytest.mark.asyncio
async def test_double_invocation_from_same_state_never_duplicates_rows(seeded_store):
    likes = LikeToggle(seeded_store)

    results = await asyncio.gather(
        likes.toggle("s2", "alice", False, 0),
        likes.toggle("s2", "alice", False, 0),
    )

    assert all(r.liked for r in results)
    assert len(seeded_store.like_rows("s2")) == 1
    assert (await seeded_store.fetch_snippet("s2")).likes == 1


@pytest.mark.asyncio
async def test_unlike_of_missing_row_is_a_no_op(seeded_store):
    likes = LikeToggle(seeded_store)
    state = await likes.toggle("s3", "bob", True, 1)
    assert state == LikeState(liked=False, like_count=0)
    assert seeded_store.like_rows() == []


@pytest.mark.asyncio
async def test_unauthenticated_toggle_changes_nothing(seeded_store):
    likes = LikeToggle(seeded_store)
    with pytest.raises(Unauthenticated):
        await likes.toggle("s1", None, False, 4)
    with pytest.raises(Unauthenticated):
        await likes.toggle("s1", "", True, 4)
    assert likes.state_for("s1") is None
    assert seeded_store.like_rows() == []


@pytest.mark.asyncio
async def test_optimistic_state_is_visible_before_store_confirms(seeded_store, monkeypatch):
    release = asyncio.Event()
    original = seeded_store.insert_like

    async def slow_insert(snippet_id, user_id):
        await release.wait()
        await original(snippet_id, user_id)

    monkeypatch.setattr(seeded_store, "insert_like", slow_insert)
    likes = LikeToggle(seeded_store)

    task = asyncio.create_task(likes.toggle("s1", "bob", False, 5))
    await asyncio.sleep(0)
    assert likes.state_for("s1") == LikeState(liked=True, like_count=6)
    assert likes.is_pending("s1")

    release.set()
    await task
    assert not likes.is_pending("s1")


@pytest.mark.asyncio
async def test_failed_mutation_reverts_optimistic_state(seeded_store, monkeypatch):
    async def reject(snippet_id, user_id):
        raise StoreError("write rejected")

    monkeypatch.setattr(seeded_store, "insert_like", reject)
    likes = LikeToggle(seeded_store)

    with pytest.raises(MutationFailure):
        await likes.toggle("s1", "bob", False, 3)

    assert likes.state_for("s1") == LikeState(liked=False, like_count=3)
    assert not likes.is_pending("s1")


@pytest.mark.asyncio
async def test_failed_mutation_keeps_optimistic_state_when_rollback_disabled(seeded_store, monkeypatch):
    async def reject(snippet_id, user_id):
        raise StoreError("write rejected")

    monkeypatch.setattr(seeded_store, "delete_like", reject)
    likes = LikeToggle(seeded_store, rollback_on_failure=False)

    with pytest.raises(MutationFailure):
        await likes.toggle("s1", "bob", True, 3)

    assert likes.state_for("s1") == LikeState(liked=False, like_count=2)


@pytest.mark.asyncio
async def test_timeout_is_a_mutation_failure(seeded_store, monkeypatch):
    async def hang(snippet_id, user_id):
        await asyncio.sleep(1)

    monkeypatch.setattr(seeded_store, "insert_like", hang)
    likes = LikeToggle(seeded_store, call_timeout=0.05)
    with pytest.raises(MutationFailure):
        await likes.toggle("s1", "bob", False, 0)
    assert likes.state_for("s1") == LikeState(liked=False, like_count=0)


@pytest.mark.asyncio
async def test_stale_failure_does_not_roll_back_a_newer_toggle(seeded_store, monkeypatch):
    gate = asyncio.Event()

    async def fail_after_gate(snippet_id, user_id):
        await gate.wait()
        raise StoreError("late failure")

    monkeypatch.setattr(seeded_store, "insert_like", fail_after_gate)
    likes = LikeToggle(seeded_store)

    older = asyncio.create_task(likes.toggle("s1", "bob", False, 0))
    await asyncio.sleep(0)
    # a newer unlike supersedes it before the first call resolves
    newer = await likes.toggle("s1", "bob", True, 1)
    gate.set()
    with pytest.raises(MutationFailure):
        await older

    assert likes.state_for("s1") == newer


@pytest.mark.asyncio
async def test_count_never_goes_negative(seeded_store):
    likes = LikeToggle(seeded_store)
    state = await likes.toggle("s1", "bob", True, 0)
    assert state.like_count == 0


@pytest.mark.asyncio
async def test_reconcile_and_identity_reset(seeded_store, make_record):
    likes = LikeToggle(seeded_store)
    await likes.toggle("s1", "bob", False, 0)
    assert likes.state_for("s1") is not None

    likes.reconcile([make_record(snippet_id="s1")])
    assert likes.state_for("s1") is None

    await likes.toggle("s2", "bob", False, 0)
    likes.on_identity_changed(IdentityChanged(previous="bob", current=None))
    assert likes.state_for("s2") is None


@pytest.mark.asyncio
async def test_sign_out_mid_toggle_discards_the_in_flight_state(seeded_store, monkeypatch, identity):
    gate = asyncio.Event()

    async def fail_after_gate(snippet_id, user_id):
        await gate.wait()
        raise StoreError("late failure")

    monkeypatch.setattr(seeded_store, "insert_like", fail_after_gate)
    likes = LikeToggle(seeded_store)
    identity.subscribe(likes.on_identity_changed)
    identity.sign_in("bob")

    pending = asyncio.create_task(likes.toggle("s1", "bob", False, 2))
    await asyncio.sleep(0)
    assert likes.is_pending("s1")

    identity.sign_out()
    gate.set()
    with pytest.raises(MutationFailure):
        await pending

    assert likes.state_for("s1") is None
    assert not likes.is_pending("s1")
