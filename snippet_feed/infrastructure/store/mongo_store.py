"""
MongoDB-backed remote store (async, Motor).

Collections: profiles, snippets, snippet_likes, comments. Ids are opaque
strings stored in ``_id``. The unique (snippet_id, user_id) index on
snippet_likes is what makes a double like toggle safe; the like counter on
the snippet document moves with every like insert/delete.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Set

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, IndexModel
from pymongo.errors import DuplicateKeyError, PyMongoError

from snippet_feed.domain.entities.snippet import Comment, Profile, Snippet
from snippet_feed.domain.errors import DuplicateRecordError, StoreError
from snippet_feed.domain.interfaces.remote_store_interface import IRemoteStore

logger = logging.getLogger(__name__)


def _as_utc(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc)


def snippet_from_doc(d: Dict[str, Any], username: str = "") -> Snippet:
    return Snippet(
        id=str(d.get("_id", "")),
        user_id=str(d.get("user_id", "") or ""),
        title=str(d.get("title", "") or ""),
        language=str(d.get("language", "") or ""),
        code=str(d.get("code", "") or ""),
        description=str(d.get("description", "") or ""),
        likes=max(0, int(d.get("likes", 0) or 0)),
        created_at=_as_utc(d.get("created_at")),
        author_username=username,
    )


def comment_from_doc(d: Dict[str, Any], username: str = "") -> Comment:
    return Comment(
        id=str(d.get("_id", "")),
        snippet_id=str(d.get("snippet_id", "") or ""),
        user_id=str(d.get("user_id", "") or ""),
        text=str(d.get("text", "") or ""),
        created_at=_as_utc(d.get("created_at")),
        author_username=username,
    )


def profile_from_doc(d: Dict[str, Any]) -> Profile:
    return Profile(
        id=str(d.get("_id", "")),
        username=str(d.get("username", "") or ""),
        joined_at=_as_utc(d.get("joined_at")),
    )


class MongoRemoteStore(IRemoteStore):
    """IRemoteStore over MongoDB. Every driver error surfaces as StoreError."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self.db = db
        self.profiles = db.profiles
        self.snippets = db.snippets
        self.likes = db.snippet_likes
        self.comments = db.comments

    @classmethod
    def from_url(
        cls,
        url: str,
        database_name: str,
        *,
        server_selection_timeout_ms: int = 3_000,
        app_name: Optional[str] = None,
    ) -> "MongoRemoteStore":
        kwargs: Dict[str, Any] = {"serverSelectionTimeoutMS": server_selection_timeout_ms, "tz_aware": True}
        if app_name:
            kwargs["appname"] = app_name
        client = AsyncIOMotorClient(url, **kwargs)
        return cls(client[database_name])

    async def ensure_indexes(self) -> None:
        try:
            await self.likes.create_indexes([
                IndexModel(
                    [("snippet_id", ASCENDING), ("user_id", ASCENDING)],
                    unique=True,
                    name="unique_snippet_user_like",
                ),
                IndexModel([("user_id", ASCENDING)], name="likes_by_user"),
            ])
            await self.snippets.create_indexes([
                IndexModel([("created_at", DESCENDING)], name="snippets_newest"),
                IndexModel([("user_id", ASCENDING), ("created_at", DESCENDING)], name="user_snippets_newest"),
            ])
            await self.comments.create_indexes([
                IndexModel([("snippet_id", ASCENDING), ("created_at", DESCENDING)], name="snippet_comments_newest"),
            ])
            await self.profiles.create_indexes([
                IndexModel([("username", ASCENDING)], unique=True, name="unique_username"),
            ])
            logger.info("snippet feed indexes created successfully")
        except PyMongoError as e:
            raise StoreError(f"failed to create indexes: {e}") from e

    # ---------- snippets ----------
    async def fetch_snippets(self) -> List[Snippet]:
        try:
            docs = await self.snippets.find({}, sort=[("created_at", DESCENDING)]).to_list(length=None)
            names = await self._usernames({d.get("user_id") for d in docs})
        except PyMongoError as e:
            raise StoreError(str(e)) from e
        return [snippet_from_doc(d, names.get(str(d.get("user_id")), "")) for d in docs]

    async def fetch_snippet(self, snippet_id: str) -> Optional[Snippet]:
        try:
            doc = await self.snippets.find_one({"_id": snippet_id})
            if doc is None:
                return None
            names = await self._usernames({doc.get("user_id")})
        except PyMongoError as e:
            raise StoreError(str(e)) from e
        return snippet_from_doc(doc, names.get(str(doc.get("user_id")), ""))

    async def fetch_user_snippets(self, user_id: str) -> List[Snippet]:
        try:
            docs = await self.snippets.find({"user_id": user_id}, sort=[("created_at", DESCENDING)]).to_list(length=None)
            names = await self._usernames({user_id})
        except PyMongoError as e:
            raise StoreError(str(e)) from e
        return [snippet_from_doc(d, names.get(user_id, "")) for d in docs]

    async def insert_snippet(
        self, user_id: str, *, title: str, language: str, description: str, code: str
    ) -> Snippet:
        doc = {
            "_id": uuid.uuid4().hex,
            "user_id": user_id,
            "title": title,
            "language": language,
            "description": description,
            "code": code,
            "likes": 0,
            "created_at": datetime.now(timezone.utc),
        }
        try:
            await self.snippets.insert_one(doc)
            names = await self._usernames({user_id})
        except PyMongoError as e:
            raise StoreError(str(e)) from e
        return snippet_from_doc(doc, names.get(user_id, ""))

    async def delete_snippet(self, snippet_id: str, user_id: str) -> bool:
        try:
            res = await self.snippets.delete_one({"_id": snippet_id, "user_id": user_id})
        except PyMongoError as e:
            raise StoreError(str(e)) from e
        if not res.deleted_count:
            return False
        # the snippet is gone; leftover likes/comments are unreachable and only logged
        for collection in (self.likes, self.comments):
            try:
                await collection.delete_many({"snippet_id": snippet_id})
            except PyMongoError:
                logger.warning("cascade delete on %s failed for snippet %s", collection.name, snippet_id, exc_info=True)
        return True

    # ---------- profiles ----------
    async def fetch_profile(self, user_id: str) -> Optional[Profile]:
        try:
            doc = await self.profiles.find_one({"_id": user_id})
        except PyMongoError as e:
            raise StoreError(str(e)) from e
        return profile_from_doc(doc) if doc else None

    # ---------- comments ----------
    async def fetch_comment_count(self, snippet_id: str) -> int:
        try:
            return int(await self.comments.count_documents({"snippet_id": snippet_id}))
        except PyMongoError as e:
            raise StoreError(str(e)) from e

    async def fetch_comment_counts(self, snippet_ids: Sequence[str]) -> Dict[str, int]:
        pipeline = [
            {"$match": {"snippet_id": {"$in": list(snippet_ids)}}},
            {"$group": {"_id": "$snippet_id", "count": {"$sum": 1}}},
        ]
        try:
            rows = await self.comments.aggregate(pipeline).to_list(length=None)
        except PyMongoError as e:
            raise StoreError(str(e)) from e
        return {str(r["_id"]): int(r.get("count", 0) or 0) for r in rows}

    async def fetch_comments(self, snippet_id: str) -> List[Comment]:
        try:
            docs = await self.comments.find({"snippet_id": snippet_id}, sort=[("created_at", DESCENDING)]).to_list(length=None)
            names = await self._usernames({d.get("user_id") for d in docs})
        except PyMongoError as e:
            raise StoreError(str(e)) from e
        return [comment_from_doc(d, names.get(str(d.get("user_id")), "")) for d in docs]

    async def insert_comment(self, snippet_id: str, user_id: str, text: str) -> Comment:
        doc = {
            "_id": uuid.uuid4().hex,
            "snippet_id": snippet_id,
            "user_id": user_id,
            "text": text,
            "created_at": datetime.now(timezone.utc),
        }
        try:
            await self.comments.insert_one(doc)
            names = await self._usernames({user_id})
        except PyMongoError as e:
            raise StoreError(str(e)) from e
        return comment_from_doc(doc, names.get(user_id, ""))

    async def delete_comment(self, comment_id: str, user_id: str) -> bool:
        try:
            res = await self.comments.delete_one({"_id": comment_id, "user_id": user_id})
        except PyMongoError as e:
            raise StoreError(str(e)) from e
        return bool(res.deleted_count)

    # ---------- likes ----------
    async def fetch_user_liked_ids(self, user_id: str) -> Set[str]:
        try:
            docs = await self.likes.find({"user_id": user_id}, projection={"snippet_id": 1}).to_list(length=None)
        except PyMongoError as e:
            raise StoreError(str(e)) from e
        return {str(d.get("snippet_id")) for d in docs}

    async def has_liked(self, snippet_id: str, user_id: str) -> bool:
        try:
            doc = await self.likes.find_one({"snippet_id": snippet_id, "user_id": user_id}, projection={"_id": 1})
        except PyMongoError as e:
            raise StoreError(str(e)) from e
        return doc is not None

    async def insert_like(self, snippet_id: str, user_id: str) -> None:
        row = {"snippet_id": snippet_id, "user_id": user_id}
        try:
            await self.likes.insert_one({**row, "created_at": datetime.now(timezone.utc)})
        except DuplicateKeyError as e:
            raise DuplicateRecordError(f"like ({snippet_id}, {user_id}) exists") from e
        except PyMongoError as e:
            raise StoreError(str(e)) from e
        try:
            await self.snippets.update_one({"_id": snippet_id}, {"$inc": {"likes": 1}})
        except PyMongoError as e:
            # counter not moved: take the like row back out so both stay in step
            await self._compensate(self.likes.delete_one(row), "insert_like", snippet_id)
            raise StoreError(str(e)) from e

    async def delete_like(self, snippet_id: str, user_id: str) -> bool:
        row = {"snippet_id": snippet_id, "user_id": user_id}
        try:
            removed = await self.likes.find_one_and_delete(row)
        except PyMongoError as e:
            raise StoreError(str(e)) from e
        if removed is None:
            return False
        try:
            await self.snippets.update_one(
                {"_id": snippet_id, "likes": {"$gt": 0}}, {"$inc": {"likes": -1}}
            )
        except PyMongoError as e:
            await self._compensate(self.likes.insert_one(removed), "delete_like", snippet_id)
            raise StoreError(str(e)) from e
        return True

    # ---------- helpers ----------
    async def _compensate(self, undo, operation: str, snippet_id: str) -> None:
        try:
            await undo
        except PyMongoError:
            logger.error("could not undo %s for snippet %s", operation, snippet_id, exc_info=True)

    async def _usernames(self, user_ids) -> Dict[str, str]:
        ids = [str(u) for u in user_ids if u]
        if not ids:
            return {}
        docs = await self.profiles.find({"_id": {"$in": ids}}, projection={"username": 1}).to_list(length=None)
        return {str(d["_id"]): str(d.get("username", "") or "") for d in docs}
