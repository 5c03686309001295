from __future__ import annotations

from typing import Optional


class StoreError(Exception):
    """Any failure reported by the remote store (network, rejected write, ...)."""


class DuplicateRecordError(StoreError):
    """The store rejected an insert because the unique key already exists."""


class FeedError(Exception):
    """Base class for failures surfaced by the feed engine."""


class Unauthenticated(FeedError):
    """The action requires a user identity and none is present."""

    def __init__(self, action: str = "") -> None:
        super().__init__(f"sign in required to {action}" if action else "sign in required")
        self.action = action


class EmptyContent(FeedError):
    """A submission was blank after trimming whitespace."""


class ValidationFailure(FeedError):
    """Submitted fields violate a precondition (length, required field)."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


class Forbidden(FeedError):
    """The requester may not perform the action on this record."""


class FetchFailure(FeedError):
    """A primary read failed; prior state must be kept, not cleared."""


class AuxiliaryFetchFailure(FeedError):
    """A derived value could not be loaded and was defaulted."""

    def __init__(self, kind: str, key: Optional[str], cause: Optional[BaseException] = None) -> None:
        detail = f"{kind} unavailable" + (f" for {key}" if key else "")
        if cause is not None:
            detail += f": {cause}"
        super().__init__(detail)
        self.kind = kind
        self.key = key
        self.cause = cause


class MutationFailure(FeedError):
    """A write was rejected by the store or did not reach it."""
