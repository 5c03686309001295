"""
tests/conftest.py

Shared fixtures: an in-memory store seeded with a small feed, an identity
provider the tests sign in and out of, and a quiet structlog setup so events
emitted by the services do not clutter the output.
"""

import os
from datetime import datetime, timedelta, timezone

import pytest
import structlog

# Safe, isolated defaults (no external IO)
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from snippet_feed.domain.entities.feed_record import FeedViewRecord  # noqa: E402
from snippet_feed.infrastructure.identity.session_identity import SessionIdentityProvider  # noqa: E402
from snippet_feed.infrastructure.store.memory_store import InMemoryRemoteStore  # noqa: E402

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _quiet_structlog():
    structlog.configure(
        processors=[structlog.processors.add_log_level, structlog.processors.KeyValueRenderer()],
        wrapper_class=structlog.make_filtering_bound_logger(40),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    yield
    structlog.reset_defaults()


@pytest.fixture
def store():
    return InMemoryRemoteStore()


@pytest.fixture
def identity():
    return SessionIdentityProvider()


@pytest.fixture
def seeded_store(store):
    """Three snippets by two authors, oldest first: s1 (Python), s2 (Go), s3 (Python)."""
    store.add_profile("alice", "alice_dev", joined_at=BASE_TIME - timedelta(days=30))
    store.add_profile("bob", "bob_codes", joined_at=BASE_TIME - timedelta(days=10))
    store.add_snippet(
        "alice",
        snippet_id="s1",
        title="Quick Sort Algorithm",
        language="Python",
        description="Classic divide and conquer sort",
        code="def quick_sort(xs): ...",
        created_at=BASE_TIME,
    )
    store.add_snippet(
        "bob",
        snippet_id="s2",
        title="Goroutine fan-out",
        language="Go",
        description="Worker pool with channels",
        code="func main() {}",
        created_at=BASE_TIME + timedelta(hours=1),
    )
    store.add_snippet(
        "alice",
        snippet_id="s3",
        title="Dataclass tricks",
        language="Python",
        description="Frozen dataclasses and replace()",
        code="@dataclass(frozen=True)\nclass P: ...",
        created_at=BASE_TIME + timedelta(hours=2),
    )
    return store


@pytest.fixture
def make_record():
    counter = {"n": 0}

    def _make(
        *,
        likes=0,
        language="Python",
        title="Snippet",
        description="",
        created_at=None,
        snippet_id=None,
        liked=False,
        comments=0,
    ):
        counter["n"] += 1
        n = counter["n"]
        return FeedViewRecord(
            id=snippet_id or f"r{n}",
            user_id="u",
            title=title,
            language=language,
            description=description,
            code="",
            like_count=likes,
            created_at=created_at or BASE_TIME + timedelta(minutes=n),
            author_username="someone",
            comment_count=comments,
            liked=liked,
        )

    return _make
