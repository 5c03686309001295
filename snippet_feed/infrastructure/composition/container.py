from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from snippet_feed.config import FeedConfig

if TYPE_CHECKING:
    from snippet_feed.application.services.comment_thread import CommentThread
    from snippet_feed.application.services.feed_session import FeedSession
    from snippet_feed.application.services.like_toggle import LikeToggle
    from snippet_feed.application.services.snippet_service import SnippetService
    from snippet_feed.domain.interfaces.remote_store_interface import IRemoteStore
    from snippet_feed.infrastructure.identity.session_identity import SessionIdentityProvider


@dataclass
class FeedContainer:
    config: FeedConfig
    store: IRemoteStore
    identity: SessionIdentityProvider
    comments: CommentThread
    likes: LikeToggle
    feed: FeedSession
    snippets: SnippetService

    async def startup(self) -> None:
        """Prepare the backing store (indexes for the mongo backend)."""
        ensure_indexes = getattr(self.store, "ensure_indexes", None)
        if ensure_indexes is not None:
            await ensure_indexes()


_container_singleton = None  # type: Optional[FeedContainer]
_singleton_lock = threading.Lock()


def build_store(cfg: FeedConfig):
    """Select the remote store implementation configured by STORE_BACKEND."""
    if cfg.STORE_BACKEND == "mongo":
        if not cfg.MONGODB_URL:
            raise ValueError("STORE_BACKEND=mongo requires MONGODB_URL")
        from snippet_feed.infrastructure.store.mongo_store import MongoRemoteStore

        return MongoRemoteStore.from_url(
            cfg.MONGODB_URL,
            cfg.DATABASE_NAME,
            server_selection_timeout_ms=cfg.MONGODB_SERVER_SELECTION_TIMEOUT_MS,
            app_name=cfg.MONGODB_APPNAME,
        )
    from snippet_feed.infrastructure.store.memory_store import InMemoryRemoteStore

    return InMemoryRemoteStore()


def build_container(cfg: FeedConfig, store=None, identity=None) -> FeedContainer:
    """Wire config, store, identity and services. Handlers only see the application layer."""
    from snippet_feed.application.services.comment_thread import CommentThread
    from snippet_feed.application.services.feed_assembler import FeedAssembler
    from snippet_feed.application.services.feed_session import FeedSession
    from snippet_feed.application.services.like_toggle import LikeToggle
    from snippet_feed.application.services.snippet_service import SnippetService
    from snippet_feed.infrastructure.identity.session_identity import SessionIdentityProvider

    store = store if store is not None else build_store(cfg)
    identity = identity if identity is not None else SessionIdentityProvider()
    comments = CommentThread(store, call_timeout=cfg.STORE_CALL_TIMEOUT_SECS)
    likes = LikeToggle(
        store,
        rollback_on_failure=cfg.LIKE_ROLLBACK_ON_FAILURE,
        call_timeout=cfg.STORE_CALL_TIMEOUT_SECS,
    )
    assembler = FeedAssembler(
        store,
        comment_count_strategy=cfg.COMMENT_COUNT_STRATEGY,
        comment_count_concurrency=cfg.COMMENT_COUNT_CONCURRENCY,
        feed_timeout=cfg.FEED_FETCH_TIMEOUT_SECS,
        call_timeout=cfg.STORE_CALL_TIMEOUT_SECS,
    )
    feed = FeedSession(
        assembler,
        likes,
        identity,
        comment_thread=comments,
        reconcile_after_like=cfg.RECONCILE_AFTER_LIKE,
        refresh_on_identity_change=cfg.REFRESH_ON_IDENTITY_CHANGE,
        trending_limit=cfg.TRENDING_LANGUAGES_LIMIT,
    )
    snippets = SnippetService(
        store,
        comments,
        call_timeout=cfg.STORE_CALL_TIMEOUT_SECS,
        description_max_length=cfg.DESCRIPTION_MAX_LENGTH,
        title_max_length=cfg.TITLE_MAX_LENGTH,
        code_max_length=cfg.MAX_CODE_SIZE,
    )
    return FeedContainer(
        config=cfg,
        store=store,
        identity=identity,
        comments=comments,
        likes=likes,
        feed=feed,
        snippets=snippets,
    )


def get_container() -> FeedContainer:
    """
    Composition Root: build and return a singleton FeedContainer.
    Keeps construction inside infrastructure, so callers only depend on the application layer.
    """
    global _container_singleton
    if _container_singleton is not None:
        return _container_singleton

    # Ensure singleton creation is thread-safe under concurrent first requests
    with _singleton_lock:
        if _container_singleton is not None:
            return _container_singleton

        from snippet_feed.config import config
        from snippet_feed.observability import init_sentry, setup_structlog_logging

        setup_structlog_logging(config.LOG_LEVEL)
        init_sentry(config.SENTRY_DSN)
        _container_singleton = build_container(config)
        return _container_singleton


def reset_container() -> None:
    global _container_singleton
    with _singleton_lock:
        if _container_singleton is not None:
            _container_singleton.feed.close()
        _container_singleton = None
