"""Document store with a Redis primary and an in-memory fallback.

Documents are JSON objects grouped into named collections and keyed by
an opaque string id. Queries are predicate scans; the repositories on
top of this module own ordering, paging and geo filtering.

Single-writer semantics: a ``replace`` overwrites the stored document
wholesale; there is no optimistic concurrency check.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

import orjson
import structlog

logger = structlog.get_logger(__name__)

Document = dict[str, Any]
Predicate = Callable[[Document], bool]


class DocumentNotFound(KeyError):
    """Raised by ``replace`` when the target document does not exist."""


# ---------------------------------------------------------------------------
# Store protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class DocumentStore(Protocol):
    """Async document store interface."""

    async def insert(self, collection: str, doc_id: str, document: Document) -> None: ...

    async def get(self, collection: str, doc_id: str) -> Document | None: ...

    async def replace(self, collection: str, doc_id: str, document: Document) -> None: ...

    async def find(self, collection: str, predicate: Predicate | None = None) -> list[Document]: ...

    async def count(self, collection: str, predicate: Predicate | None = None) -> int: ...

    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class InMemoryDocumentStore:
    """Process-local store.

    Documents are kept as serialised bytes so callers never share
    mutable state with the store, matching what a real database gives.
    """

    __slots__ = ("_collections", "_lock")

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, bytes]] = {}
        self._lock = asyncio.Lock()

    async def insert(self, collection: str, doc_id: str, document: Document) -> None:
        async with self._lock:
            bucket = self._collections.setdefault(collection, {})
            if doc_id in bucket:
                raise ValueError(f"duplicate id {doc_id!r} in {collection}")
            bucket[doc_id] = orjson.dumps(document)

    async def get(self, collection: str, doc_id: str) -> Document | None:
        async with self._lock:
            raw = self._collections.get(collection, {}).get(doc_id)
        return orjson.loads(raw) if raw is not None else None

    async def replace(self, collection: str, doc_id: str, document: Document) -> None:
        async with self._lock:
            bucket = self._collections.get(collection, {})
            if doc_id not in bucket:
                raise DocumentNotFound(f"{collection}/{doc_id}")
            bucket[doc_id] = orjson.dumps(document)

    async def find(self, collection: str, predicate: Predicate | None = None) -> list[Document]:
        async with self._lock:
            raws = list(self._collections.get(collection, {}).values())
        documents = [orjson.loads(raw) for raw in raws]
        if predicate is None:
            return documents
        return [doc for doc in documents if predicate(doc)]

    async def count(self, collection: str, predicate: Predicate | None = None) -> int:
        return len(await self.find(collection, predicate))

    async def close(self) -> None:
        return None


# ---------------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------------


class RedisDocumentStore:
    """One Redis hash per collection: ``HSET <namespace><collection> <id> <json>``."""

    __slots__ = ("_namespace", "_pool", "_redis")

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        *,
        namespace: str = "travault:",
        max_connections: int = 20,
    ) -> None:
        import redis.asyncio as aioredis

        self._namespace = namespace
        self._pool = aioredis.ConnectionPool.from_url(
            url,
            max_connections=max_connections,
            decode_responses=False,
        )
        self._redis = aioredis.Redis(connection_pool=self._pool)

    def _key(self, collection: str) -> str:
        return f"{self._namespace}{collection}"

    async def insert(self, collection: str, doc_id: str, document: Document) -> None:
        created = await self._redis.hsetnx(self._key(collection), doc_id, orjson.dumps(document))
        if not created:
            raise ValueError(f"duplicate id {doc_id!r} in {collection}")

    async def get(self, collection: str, doc_id: str) -> Document | None:
        raw = await self._redis.hget(self._key(collection), doc_id)
        return orjson.loads(raw) if raw is not None else None

    async def replace(self, collection: str, doc_id: str, document: Document) -> None:
        key = self._key(collection)
        if not await self._redis.hexists(key, doc_id):
            raise DocumentNotFound(f"{collection}/{doc_id}")
        await self._redis.hset(key, doc_id, orjson.dumps(document))

    async def find(self, collection: str, predicate: Predicate | None = None) -> list[Document]:
        raws = await self._redis.hvals(self._key(collection))
        documents = [orjson.loads(raw) for raw in raws]
        if predicate is None:
            return documents
        return [doc for doc in documents if predicate(doc)]

    async def count(self, collection: str, predicate: Predicate | None = None) -> int:
        if predicate is None:
            return int(await self._redis.hlen(self._key(collection)))
        return len(await self.find(collection, predicate))

    async def ping(self) -> bool:
        """Return *True* if the Redis server is reachable."""
        try:
            return bool(await self._redis.ping())
        except Exception:
            return False

    async def close(self) -> None:
        await self._redis.aclose()
        await self._pool.aclose()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


async def open_document_store(redis_url: str | None) -> DocumentStore:
    """Return a Redis store when *redis_url* is reachable, else an in-memory one."""
    if redis_url:
        try:
            store = RedisDocumentStore(url=redis_url)
        except Exception:
            logger.warning("store.redis_init_failed", redis_url=redis_url)
        else:
            if await store.ping():
                logger.info("store.redis_connected")
                return store
            logger.warning("store.redis_unavailable_using_inmemory")
            with contextlib.suppress(Exception):
                await store.close()

    logger.info("store.inmemory_selected")
    return InMemoryDocumentStore()
