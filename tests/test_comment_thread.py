import pytest

from snippet_feed.application.services.comment_thread import CommentThread
from snippet_feed.domain.errors import (
    EmptyContent,
    FetchFailure,
    Forbidden,
    MutationFailure,
    StoreError,
    Unauthenticated,
)
from snippet_feed.domain.interfaces.identity_provider_interface import IdentityChanged
from snippet_feed.infrastructure.store.memory_store import InMemoryRemoteStore


class _CountingStore(InMemoryRemoteStore):
    def __init__(self):
        super().__init__()
        self.inserts = 0
        self.deletes = 0

    async def insert_comment(self, snippet_id, user_id, text):
        self.inserts += 1
        return await super().insert_comment(snippet_id, user_id, text)

    async def delete_comment(self, comment_id, user_id):
        self.deletes += 1
        return await super().delete_comment(comment_id, user_id)


@pytest.fixture
def counting_store():
    store = _CountingStore()
    store.add_profile("alice", "alice_dev")
    store.add_profile("bob", "bob_codes")
    store.add_snippet("alice", snippet_id="s1", title="Quick Sort", language="Python")
    return store


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   ", "\n\t "])
async def test_blank_comment_never_reaches_the_store(counting_store, text):
    thread = CommentThread(counting_store)
    with pytest.raises(EmptyContent):
        await thread.add("s1", "bob", text)
    assert counting_store.inserts == 0
    assert thread.count("s1") == 0


@pytest.mark.asyncio
async def test_unauthenticated_comment_is_rejected(counting_store):
    thread = CommentThread(counting_store)
    with pytest.raises(Unauthenticated):
        await thread.add("s1", None, "hello")
    assert counting_store.inserts == 0


@pytest.mark.asyncio
async def test_add_refetches_and_lists_newest_first(counting_store):
    thread = CommentThread(counting_store)
    thread.set_draft("s1", "draft text")

    await thread.add("s1", "bob", "  first  ")
    await thread.add("s1", "alice", "second")

    comments = thread.comments("s1")
    assert [c.text for c in comments] == ["second", "first"]
    assert thread.count("s1") == 2
    assert comments[1].author_username == "bob_codes"
    assert thread.draft("s1") == ""


@pytest.mark.asyncio
async def test_add_store_failure_is_mutation_failure(counting_store):
    thread = CommentThread(counting_store)
    with pytest.raises(MutationFailure):
        await thread.add("missing", "bob", "into the void")


@pytest.mark.asyncio
async def test_author_can_remove_own_comment(counting_store):
    thread = CommentThread(counting_store)
    created = await thread.add("s1", "bob", "remove me")
    await thread.add("s1", "alice", "stays")

    await thread.remove(created.id, "bob")

    assert [c.text for c in thread.comments("s1")] == ["stays"]
    assert await counting_store.fetch_comment_count("s1") == 1


@pytest.mark.asyncio
async def test_non_author_is_forbidden_without_a_store_call(counting_store):
    thread = CommentThread(counting_store)
    created = await thread.add("s1", "bob", "mine")

    with pytest.raises(Forbidden):
        await thread.remove(created.id, "alice")

    assert counting_store.deletes == 0
    assert thread.count("s1") == 1


@pytest.mark.asyncio
async def test_store_side_rejection_is_forbidden(counting_store):
    created = await counting_store.insert_comment("s1", "bob", "not cached locally")
    thread = CommentThread(counting_store)

    with pytest.raises(Forbidden):
        await thread.remove(created.id, "alice", snippet_id="s1")
    assert counting_store.deletes == 1
    assert await counting_store.fetch_comment_count("s1") == 1


@pytest.mark.asyncio
async def test_remove_store_error_is_mutation_failure(counting_store, monkeypatch):
    async def broken(comment_id, user_id):
        raise StoreError("connection reset")

    monkeypatch.setattr(counting_store, "delete_comment", broken)
    thread = CommentThread(counting_store)
    with pytest.raises(MutationFailure):
        await thread.remove("c-1", "bob")


@pytest.mark.asyncio
async def test_remove_requires_identity(counting_store):
    with pytest.raises(Unauthenticated):
        await CommentThread(counting_store).remove("c-1", None)


@pytest.mark.asyncio
async def test_list_failure_is_fetch_failure(counting_store, monkeypatch):
    async def broken(snippet_id):
        raise StoreError("timeout")

    monkeypatch.setattr(counting_store, "fetch_comments", broken)
    with pytest.raises(FetchFailure):
        await CommentThread(counting_store).list("s1")


@pytest.mark.asyncio
async def test_failed_refetch_still_reports_success(counting_store, monkeypatch):
    async def broken(snippet_id):
        raise StoreError("read replica down")

    monkeypatch.setattr(counting_store, "fetch_comments", broken)
    thread = CommentThread(counting_store)
    created = await thread.add("s1", "bob", "persisted anyway")
    assert created.text == "persisted anyway"
    assert await counting_store.fetch_comment_count("s1") == 1


def test_identity_change_clears_drafts(counting_store):
    thread = CommentThread(counting_store)
    thread.set_draft("s1", "half-written")
    thread.on_identity_changed(IdentityChanged(previous="bob", current="alice"))
    assert thread.draft("s1") == ""


@pytest.mark.asyncio
async def test_reset_drops_cached_threads(counting_store):
    thread = CommentThread(counting_store)
    created = await thread.add("s1", "bob", "cached")
    assert thread.count("s1") == 1

    thread.reset()

    assert thread.comments("s1") == []
    # no local record left: the store decides ownership
    with pytest.raises(Forbidden):
        await thread.remove(created.id, "alice")
    assert counting_store.deletes == 1
