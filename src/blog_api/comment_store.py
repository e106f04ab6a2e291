"""Storage for comments: Protocol + Memory + Redis implementations.

Comments are queryable by parent post through a secondary index ordered by
creation time. The index does not check that the parent still exists.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from redis.asyncio import Redis

from blog_api.errors import not_found
from blog_api.models import Comment, CommentCreate, epoch_micros, utcnow

log = structlog.get_logger()

_RESOURCE = "Comment"

Clock = Callable[[], datetime]


@runtime_checkable
class CommentStore(Protocol):
    """Protocol for comment persistence backends."""

    async def create(self, post_id: str, data: CommentCreate, author_id: str) -> Comment: ...

    async def get_by_id(self, comment_id: str) -> Comment: ...

    async def list_by_parent(self, post_id: str) -> list[Comment]: ...

    async def delete(self, comment_id: str) -> None: ...

    async def aclose(self) -> None: ...


def _new_comment(post_id: str, data: CommentCreate, author_id: str, now: datetime) -> Comment:
    return Comment(
        id=str(uuid4()),
        post_id=post_id,
        content=data.content,
        author_id=author_id,
        created_at=now,
    )


class MemoryCommentStore:
    """In-memory comment store for local runs and testing."""

    def __init__(self, clock: Clock = utcnow) -> None:
        self._data: dict[str, Comment] = {}
        self._clock = clock

    async def create(self, post_id: str, data: CommentCreate, author_id: str) -> Comment:
        comment = _new_comment(post_id, data, author_id, self._clock())
        self._data[comment.id] = comment
        return comment.model_copy()

    async def get_by_id(self, comment_id: str) -> Comment:
        comment = self._data.get(comment_id)
        if comment is None:
            raise not_found(_RESOURCE)
        return comment.model_copy()

    async def list_by_parent(self, post_id: str) -> list[Comment]:
        matches = [c for c in self._data.values() if c.post_id == post_id]
        return [c.model_copy() for c in sorted(matches, key=lambda c: c.created_at)]

    async def delete(self, comment_id: str) -> None:
        if self._data.pop(comment_id, None) is None:
            raise not_found(_RESOURCE)

    async def aclose(self) -> None:
        self._data.clear()


class RedisCommentStore:
    """Redis-backed comment store.

    Records live at ``<prefix>:<id>``; ``<prefix>:by_post:<post_id>`` is a sorted
    set of comment ids scored by creation time.
    """

    def __init__(self, client: Redis, prefix: str = "comments", clock: Clock = utcnow) -> None:
        self._client: Redis = client
        self._prefix = prefix
        self._clock = clock

    def _key(self, comment_id: str) -> str:
        return f"{self._prefix}:{comment_id}"

    def _index(self, post_id: str) -> str:
        return f"{self._prefix}:by_post:{post_id}"

    async def create(self, post_id: str, data: CommentCreate, author_id: str) -> Comment:
        comment = _new_comment(post_id, data, author_id, self._clock())
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.set(self._key(comment.id), comment.model_dump_json())
            pipe.zadd(self._index(post_id), {comment.id: epoch_micros(comment.created_at)})
            await pipe.execute()
        return comment

    async def get_by_id(self, comment_id: str) -> Comment:
        val = await self._client.get(self._key(comment_id))
        if val is None:
            raise not_found(_RESOURCE)
        return Comment.model_validate_json(val)

    async def list_by_parent(self, post_id: str) -> list[Comment]:
        ids = await self._client.zrange(self._index(post_id), 0, -1)
        if not ids:
            return []
        keys = [self._key(i.decode() if isinstance(i, bytes) else str(i)) for i in ids]
        values = await self._client.mget(keys)
        comments = [Comment.model_validate_json(v) for v in values if v is not None]
        if len(comments) != len(keys):
            await log.awarning(
                "comment_index_stale", post_id=post_id, missing=len(keys) - len(comments)
            )
        return comments

    async def delete(self, comment_id: str) -> None:
        comment = await self.get_by_id(comment_id)
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.delete(self._key(comment_id))
            pipe.zrem(self._index(comment.post_id), comment_id)
            deleted, _ = await pipe.execute()
        if not deleted:
            raise not_found(_RESOURCE)

    async def aclose(self) -> None:
        await self._client.aclose()


def create_comment_store(
    backend: str, redis_url: str | None = None, prefix: str = "comments"
) -> CommentStore:
    """Factory: create a CommentStore for the given backend."""
    if backend == "redis":
        import redis.asyncio as aioredis

        if not redis_url:
            msg = "redis_url is required when backend='redis'"
            raise ValueError(msg)
        return RedisCommentStore(aioredis.from_url(redis_url), prefix)
    return MemoryCommentStore()
