import asyncio

import pytest

from snippet_feed.application.services.comment_thread import CommentThread
from snippet_feed.application.services.feed_assembler import FeedAssembler
from snippet_feed.application.services.feed_session import FeedSession
from snippet_feed.application.services.like_toggle import LikeToggle
from snippet_feed.domain.errors import FetchFailure, StoreError, Unauthenticated


class _GatedAssembler:
    """Wraps a real assembler; each call waits on its own gate before returning."""

    def __init__(self, inner):
        self.inner = inner
        self.gates = []

    async def assemble(self, user_id=None):
        feed = await self.inner.assemble(user_id)
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        return feed


def _session(store, identity, **kwargs):
    comments = CommentThread(store)
    session = FeedSession(
        kwargs.pop("assembler", None) or FeedAssembler(store),
        LikeToggle(store),
        identity,
        comment_thread=comments,
        **kwargs,
    )
    return session, comments


@pytest.mark.asyncio
async def test_refresh_populates_snapshot_and_view(seeded_store, identity):
    identity.sign_in("alice")
    session, _ = _session(seeded_store, identity)

    assert await session.refresh() is True
    assert session.loaded
    assert [r.id for r in session.visible] == ["s3", "s2", "s1"]
    assert session.languages == ["Go", "Python"]
    assert session.trending_languages == ["Go", "Python"]

    session.set_language("Go")
    assert [r.id for r in session.visible] == ["s2"]
    session.set_search("quick")
    # search supersedes the language filter
    assert [r.id for r in session.visible] == ["s1"]
    session.set_search("")
    session.set_language("")
    assert len(session.visible) == 3


def test_unknown_sort_key_is_rejected(seeded_store, identity):
    session, _ = _session(seeded_store, identity)
    with pytest.raises(ValueError):
        session.set_sort("popular")


@pytest.mark.asyncio
async def test_older_slower_refresh_never_overwrites_newer(seeded_store, identity):
    gated = _GatedAssembler(FeedAssembler(seeded_store))
    session, _ = _session(seeded_store, identity, assembler=gated)

    first = asyncio.create_task(session.refresh())
    while len(gated.gates) < 1:
        await asyncio.sleep(0)

    seeded_store.add_snippet("bob", snippet_id="s4", title="Newer", language="Rust")
    second = asyncio.create_task(session.refresh())
    while len(gated.gates) < 2:
        await asyncio.sleep(0)

    gated.gates[1].set()
    assert await second is True
    gated.gates[0].set()
    assert await first is False

    assert [r.id for r in session.records][0] == "s4"
    assert "Rust" in session.languages


@pytest.mark.asyncio
async def test_failed_refresh_keeps_previous_snapshot(seeded_store, identity, monkeypatch):
    session, _ = _session(seeded_store, identity)
    await session.refresh()

    async def boom():
        raise StoreError("offline")

    monkeypatch.setattr(seeded_store, "fetch_snippets", boom)
    with pytest.raises(FetchFailure):
        await session.refresh()
    assert len(session.records) == 3


@pytest.mark.asyncio
async def test_toggle_like_applies_overlay_and_reconciles(seeded_store, identity):
    identity.sign_in("bob")
    session, _ = _session(seeded_store, identity)
    await session.refresh()

    state = await session.toggle_like("s1")
    assert state.liked and state.like_count == 1

    record = session.record("s1")
    assert record.liked and record.like_count == 1
    # refreshed from the store, so the overlay entry was reconciled away
    assert session._likes.state_for("s1") is None


@pytest.mark.asyncio
async def test_overlay_survives_without_reconcile(seeded_store, identity):
    identity.sign_in("bob")
    session, _ = _session(seeded_store, identity, reconcile_after_like=False)
    await session.refresh()

    await session.toggle_like("s2")
    assert session.record("s2").liked is True
    assert seeded_store.like_rows("s2")[0].user_id == "bob"


@pytest.mark.asyncio
async def test_toggle_like_requires_identity_and_known_record(seeded_store, identity):
    session, _ = _session(seeded_store, identity)
    await session.refresh()

    with pytest.raises(Unauthenticated):
        await session.toggle_like("s1")
    assert session.record("s1").liked is False
    with pytest.raises(KeyError):
        await session.toggle_like("nope")


@pytest.mark.asyncio
async def test_identity_change_clears_identity_derived_state(seeded_store, identity):
    identity.sign_in("bob")
    session, comments = _session(seeded_store, identity)
    await seeded_store.insert_like("s3", "bob")
    await session.refresh()
    assert session.record("s3").liked is True
    comments.set_draft("s3", "unsent")

    identity.sign_out()

    assert not any(r.liked for r in session.records)
    assert comments.draft("s3") == ""
    assert session.pending_refresh is not None
    assert await session.pending_refresh is True
    assert not any(r.liked for r in session.records)


@pytest.mark.asyncio
async def test_refresh_started_before_sign_out_is_discarded(seeded_store, identity):
    identity.sign_in("bob")
    await seeded_store.insert_like("s1", "bob")
    gated = _GatedAssembler(FeedAssembler(seeded_store))
    session, _ = _session(seeded_store, identity, assembler=gated, refresh_on_identity_change=False)

    pending = asyncio.create_task(session.refresh())
    while not gated.gates:
        await asyncio.sleep(0)

    identity.sign_out()
    gated.gates[0].set()

    assert await pending is False
    assert session.loaded is False


@pytest.mark.asyncio
async def test_closed_session_ignores_identity_events(seeded_store, identity):
    session, _ = _session(seeded_store, identity)
    session.close()
    identity.sign_in("alice")
    assert session.pending_refresh is None


@pytest.mark.asyncio
async def test_refresh_issued_before_a_like_does_not_drop_it(seeded_store, identity):
    identity.sign_in("bob")
    gated = _GatedAssembler(FeedAssembler(seeded_store))
    session, _ = _session(
        seeded_store, identity, assembler=gated, reconcile_after_like=False, refresh_on_identity_change=False
    )
    first = asyncio.create_task(session.refresh())
    while not gated.gates:
        await asyncio.sleep(0)
    gated.gates[0].set()
    await first

    # this refresh reads the store before the like lands
    older = asyncio.create_task(session.refresh())
    while len(gated.gates) < 2:
        await asyncio.sleep(0)
    await session.toggle_like("s1")
    gated.gates[1].set()
    assert await older is True

    assert session.record("s1").liked is True
    assert session.record("s1").like_count == 1

    newer = asyncio.create_task(session.refresh())
    while len(gated.gates) < 3:
        await asyncio.sleep(0)
    gated.gates[2].set()
    assert await newer is True
    assert session.record("s1").liked is True
    assert session._likes.state_for("s1") is None
