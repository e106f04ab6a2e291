"""Storage for posts: Protocol + Memory + Redis implementations."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from redis.asyncio import Redis

from blog_api.errors import not_found
from blog_api.models import Post, PostCreate, PostPatch, epoch_micros, utcnow

log = structlog.get_logger()

_RESOURCE = "Post"

Clock = Callable[[], datetime]


@runtime_checkable
class PostStore(Protocol):
    """Protocol for post persistence backends."""

    async def create(self, data: PostCreate, author_id: str) -> Post: ...

    async def get_by_id(self, post_id: str) -> Post: ...

    async def list_all(self) -> list[Post]: ...

    async def update(self, post_id: str, patch: PostPatch) -> Post: ...

    async def delete(self, post_id: str) -> None: ...

    async def aclose(self) -> None: ...


def _new_post(data: PostCreate, author_id: str, now: datetime) -> Post:
    return Post(
        id=str(uuid4()),
        title=data.title,
        content=data.content,
        image_key=data.image_key,
        author_id=author_id,
        created_at=now,
        updated_at=now,
    )


def _apply(post: Post, patch: PostPatch, now: datetime) -> Post:
    return post.model_copy(update={**patch.changes(), "updated_at": now})


class MemoryPostStore:
    """In-memory post store for local runs and testing."""

    def __init__(self, clock: Clock = utcnow) -> None:
        self._data: dict[str, Post] = {}
        self._clock = clock

    async def create(self, data: PostCreate, author_id: str) -> Post:
        post = _new_post(data, author_id, self._clock())
        self._data[post.id] = post
        return post.model_copy()

    async def get_by_id(self, post_id: str) -> Post:
        post = self._data.get(post_id)
        if post is None:
            raise not_found(_RESOURCE)
        return post.model_copy()

    async def list_all(self) -> list[Post]:
        posts = sorted(self._data.values(), key=lambda p: p.created_at, reverse=True)
        return [p.model_copy() for p in posts]

    async def update(self, post_id: str, patch: PostPatch) -> Post:
        current = self._data.get(post_id)
        if current is None:
            raise not_found(_RESOURCE)
        updated = _apply(current, patch, self._clock())
        self._data[post_id] = updated
        return updated.model_copy()

    async def delete(self, post_id: str) -> None:
        if self._data.pop(post_id, None) is None:
            raise not_found(_RESOURCE)

    async def aclose(self) -> None:
        self._data.clear()


class RedisPostStore:
    """Redis-backed post store.

    Each post is a JSON string at ``<prefix>:<id>``; the sorted set
    ``<prefix>:by_created`` orders ids by creation time.
    """

    def __init__(self, client: Redis, prefix: str = "posts", clock: Clock = utcnow) -> None:
        self._client: Redis = client
        self._prefix = prefix
        self._clock = clock

    def _key(self, post_id: str) -> str:
        return f"{self._prefix}:{post_id}"

    @property
    def _index(self) -> str:
        return f"{self._prefix}:by_created"

    async def create(self, data: PostCreate, author_id: str) -> Post:
        post = _new_post(data, author_id, self._clock())
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.set(self._key(post.id), post.model_dump_json())
            pipe.zadd(self._index, {post.id: epoch_micros(post.created_at)})
            await pipe.execute()
        return post

    async def get_by_id(self, post_id: str) -> Post:
        val = await self._client.get(self._key(post_id))
        if val is None:
            raise not_found(_RESOURCE)
        return Post.model_validate_json(val)

    async def list_all(self) -> list[Post]:
        ids = await self._client.zrevrange(self._index, 0, -1)
        if not ids:
            return []
        keys = [self._key(i.decode() if isinstance(i, bytes) else str(i)) for i in ids]
        values = await self._client.mget(keys)
        posts = [Post.model_validate_json(v) for v in values if v is not None]
        if len(posts) != len(keys):
            await log.awarning("post_index_stale", missing=len(keys) - len(posts))
        return posts

    async def update(self, post_id: str, patch: PostPatch) -> Post:
        current = await self.get_by_id(post_id)
        updated = _apply(current, patch, self._clock())
        # XX: never resurrect a post deleted since it was read
        written = await self._client.set(self._key(post_id), updated.model_dump_json(), xx=True)
        if not written:
            raise not_found(_RESOURCE)
        return updated

    async def delete(self, post_id: str) -> None:
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.delete(self._key(post_id))
            pipe.zrem(self._index, post_id)
            deleted, _ = await pipe.execute()
        if not deleted:
            raise not_found(_RESOURCE)

    async def aclose(self) -> None:
        await self._client.aclose()


def create_post_store(
    backend: str, redis_url: str | None = None, prefix: str = "posts"
) -> PostStore:
    """Factory: create a PostStore for the given backend."""
    if backend == "redis":
        import redis.asyncio as aioredis

        if not redis_url:
            msg = "redis_url is required when backend='redis'"
            raise ValueError(msg)
        return RedisPostStore(aioredis.from_url(redis_url), prefix)
    return MemoryPostStore()
