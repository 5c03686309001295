from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Snippet:
    """Domain entity: a published code snippet joined with its author's username.

    Kept framework-free to allow use across layers.
    """

    id: str
    user_id: str
    title: str
    language: str
    code: str
    description: str = ""
    likes: int = 0
    created_at: datetime = field(default_factory=_utcnow)
    author_username: str = ""


@dataclass
class Profile:
    id: str
    username: str
    joined_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class Like:
    snippet_id: str
    user_id: str


@dataclass
class Comment:
    id: str
    snippet_id: str
    user_id: str
    text: str
    created_at: datetime = field(default_factory=_utcnow)
    author_username: str = ""
