"""Document store with subscribe-on-change semantics.

Two backends share one interface: an in-process store for demo and test runs
and a Redis-backed store (one hash per document, pub/sub per collection for
change notification).
"""

import asyncio
import json
import uuid
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from copilot.constants import ITINERARY_DOC_ID
from copilot.utils.config_loader import StoreSettings
from copilot.utils.errors import DocumentNotFoundError, PreconditionFailedError, StoreError
from copilot.utils.logging import get_logger

logger = get_logger(__name__)


def transactions_path(app_id: str, user_id: str) -> str:
    return f"artifacts/{app_id}/users/{user_id}/transactions"


def itinerary_path(app_id: str, user_id: str) -> str:
    return f"artifacts/{app_id}/users/{user_id}/itinerary"


def chat_path(app_id: str, user_id: str) -> str:
    return f"artifacts/{app_id}/users/{user_id}/chatHistory"


def mail_queue_path(app_id: str) -> str:
    return f"artifacts/{app_id}/public/data/mailQueue"


def sort_documents(docs: List[Dict[str, Any]], order_by: Optional[str], descending: bool) -> List[Dict[str, Any]]:
    """Order documents by a field; documents missing the field sort last"""
    if not order_by:
        return docs
    present = [d for d in docs if d.get(order_by) is not None]
    missing = [d for d in docs if d.get(order_by) is None]
    # Timestamps are written as ISO-8601 strings, so they order lexically
    present.sort(key=lambda d: d[order_by], reverse=descending)
    return present + missing


def check_expected(doc: Dict[str, Any], expected: Optional[Dict[str, Any]]) -> None:
    """Raise PreconditionFailedError on the first field that differs"""
    for field, value in (expected or {}).items():
        if doc.get(field) != value:
            raise PreconditionFailedError(field, value, doc.get(field))


class DocumentStore(ABC):
    """Collections of JSON-like documents addressed by path and id"""

    @abstractmethod
    async def create(self, collection: str, record: Dict[str, Any]) -> str:
        """Add a document and return its generated id"""

    @abstractmethod
    async def set(self, collection: str, doc_id: str, record: Dict[str, Any]) -> None:
        """Create or replace a document wholesale"""

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any],
                     expected: Optional[Dict[str, Any]] = None) -> None:
        """
        Atomically merge fields into an existing document.

        When expected is given, every listed field must still hold that value
        or PreconditionFailedError is raised and nothing is written.
        """

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Remove a document if present"""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one document (with its id under 'id'), or None"""

    @abstractmethod
    async def list(self, collection: str, order_by: Optional[str] = None,
                   descending: bool = False) -> List[Dict[str, Any]]:
        """Fetch every document in a collection"""

    @abstractmethod
    def subscribe(self, collection: str, order_by: Optional[str] = None,
                  descending: bool = False) -> AsyncIterator[List[Dict[str, Any]]]:
        """Yield the current snapshot, then a fresh snapshot after every change"""

    @abstractmethod
    async def check_health(self) -> bool:
        """True if the backend is reachable"""

    async def close(self) -> None:
        pass


class InMemoryDocumentStore(DocumentStore):
    """In-process store; subscribers are woken through asyncio queues."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._subscribers: Dict[str, List[asyncio.Queue]] = {}
        self.fail_writes = False

    def _check_writable(self, collection: str) -> None:
        if self.fail_writes:
            raise StoreError(f"Write rejected for {collection}")

    def _notify(self, collection: str) -> None:
        for queue in self._subscribers.get(collection, []):
            queue.put_nowait(None)

    def _snapshot(self, collection: str, order_by: Optional[str], descending: bool) -> List[Dict[str, Any]]:
        docs = [{**data, 'id': doc_id} for doc_id, data in self._collections.get(collection, {}).items()]
        return sort_documents(docs, order_by, descending)

    async def create(self, collection: str, record: Dict[str, Any]) -> str:
        self._check_writable(collection)
        doc_id = uuid.uuid4().hex
        self._collections.setdefault(collection, {})[doc_id] = dict(record)
        self._notify(collection)
        return doc_id

    async def set(self, collection: str, doc_id: str, record: Dict[str, Any]) -> None:
        self._check_writable(collection)
        self._collections.setdefault(collection, {})[doc_id] = dict(record)
        self._notify(collection)

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any],
                     expected: Optional[Dict[str, Any]] = None) -> None:
        self._check_writable(collection)
        docs = self._collections.get(collection, {})
        if doc_id not in docs:
            raise DocumentNotFoundError(f"{collection}/{doc_id} not found")
        check_expected(docs[doc_id], expected)
        docs[doc_id].update(fields)
        self._notify(collection)

    async def delete(self, collection: str, doc_id: str) -> None:
        self._check_writable(collection)
        if self._collections.get(collection, {}).pop(doc_id, None) is not None:
            self._notify(collection)

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        data = self._collections.get(collection, {}).get(doc_id)
        return {**data, 'id': doc_id} if data is not None else None

    async def list(self, collection: str, order_by: Optional[str] = None,
                   descending: bool = False) -> List[Dict[str, Any]]:
        return self._snapshot(collection, order_by, descending)

    async def subscribe(self, collection: str, order_by: Optional[str] = None,
                        descending: bool = False) -> AsyncIterator[List[Dict[str, Any]]]:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.setdefault(collection, []).append(queue)
        try:
            yield self._snapshot(collection, order_by, descending)
            while True:
                await queue.get()
                # Coalesce bursts of changes into one snapshot
                while not queue.empty():
                    queue.get_nowait()
                yield self._snapshot(collection, order_by, descending)
        finally:
            self._subscribers[collection].remove(queue)

    async def check_health(self) -> bool:
        return True


class RedisDocumentStore(DocumentStore):
    """
    Redis backend.

    Layout:
        doc:{collection}:{id}  hash, one JSON-encoded value per field
        idx:{collection}       set of document ids
        changes:{collection}   pub/sub channel, published after every write
    """

    def __init__(self, client: aioredis.Redis):
        self.client = client

    @classmethod
    def from_settings(cls, settings: StoreSettings) -> "RedisDocumentStore":
        client = aioredis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_keepalive=True,
            socket_connect_timeout=5
        )
        return cls(client)

    @staticmethod
    def _doc_key(collection: str, doc_id: str) -> str:
        return f"doc:{collection}:{doc_id}"

    @staticmethod
    def _index_key(collection: str) -> str:
        return f"idx:{collection}"

    @staticmethod
    def _channel(collection: str) -> str:
        return f"changes:{collection}"

    @staticmethod
    def _encode(record: Dict[str, Any]) -> Dict[str, str]:
        return {key: json.dumps(value, default=str) for key, value in record.items() if key != 'id'}

    @staticmethod
    def _decode(doc_id: str, raw: Dict[str, str]) -> Dict[str, Any]:
        doc = {key: json.loads(value) for key, value in raw.items()}
        doc['id'] = doc_id
        return doc

    async def _write(self, collection: str, doc_id: str, record: Dict[str, Any], replace: bool) -> None:
        key = self._doc_key(collection, doc_id)
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                if replace:
                    pipe.delete(key)
                if record:
                    pipe.hset(key, mapping=self._encode(record))
                pipe.sadd(self._index_key(collection), doc_id)
                pipe.publish(self._channel(collection), doc_id)
                await pipe.execute()
        except RedisError as e:
            raise StoreError(f"Failed to write {collection}/{doc_id}: {e}")

    async def create(self, collection: str, record: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        await self._write(collection, doc_id, record, replace=True)
        return doc_id

    async def set(self, collection: str, doc_id: str, record: Dict[str, Any]) -> None:
        await self._write(collection, doc_id, record, replace=True)

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any],
                     expected: Optional[Dict[str, Any]] = None) -> None:
        key = self._doc_key(collection, doc_id)

        async def apply(pipe):
            if not await pipe.exists(key):
                raise DocumentNotFoundError(f"{collection}/{doc_id} not found")
            if expected:
                names = list(expected)
                raws = await pipe.hmget(key, names)
                check_expected(
                    {name: json.loads(raw) for name, raw in zip(names, raws) if raw is not None},
                    expected
                )
            pipe.multi()
            pipe.hset(key, mapping=self._encode(fields))
            pipe.publish(self._channel(collection), doc_id)

        try:
            await self.client.transaction(apply, key)
        except RedisError as e:
            raise StoreError(f"Failed to update {collection}/{doc_id}: {e}")

    async def delete(self, collection: str, doc_id: str) -> None:
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.delete(self._doc_key(collection, doc_id))
                pipe.srem(self._index_key(collection), doc_id)
                pipe.publish(self._channel(collection), doc_id)
                await pipe.execute()
        except RedisError as e:
            raise StoreError(f"Failed to delete {collection}/{doc_id}: {e}")

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            raw = await self.client.hgetall(self._doc_key(collection, doc_id))
        except RedisError as e:
            raise StoreError(f"Failed to read {collection}/{doc_id}: {e}")
        return self._decode(doc_id, raw) if raw else None

    async def list(self, collection: str, order_by: Optional[str] = None,
                   descending: bool = False) -> List[Dict[str, Any]]:
        try:
            doc_ids = sorted(await self.client.smembers(self._index_key(collection)))
            async with self.client.pipeline(transaction=False) as pipe:
                for doc_id in doc_ids:
                    pipe.hgetall(self._doc_key(collection, doc_id))
                raws = await pipe.execute()
        except RedisError as e:
            raise StoreError(f"Failed to list {collection}: {e}")

        docs = [self._decode(doc_id, raw) for doc_id, raw in zip(doc_ids, raws) if raw]
        return sort_documents(docs, order_by, descending)

    async def subscribe(self, collection: str, order_by: Optional[str] = None,
                        descending: bool = False) -> AsyncIterator[List[Dict[str, Any]]]:
        pubsub = self.client.pubsub()
        try:
            await pubsub.subscribe(self._channel(collection))
            yield await self.list(collection, order_by, descending)
            async for message in pubsub.listen():
                if message.get('type') == 'message':
                    yield await self.list(collection, order_by, descending)
        except RedisError as e:
            raise StoreError(f"Subscription to {collection} failed: {e}")
        finally:
            await pubsub.aclose()

    async def check_health(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        await self.client.aclose()


def create_store(settings: StoreSettings) -> DocumentStore:
    """Build the configured backend"""
    if settings.backend == "redis":
        logger.info("Using Redis document store", url=settings.redis_url)
        return RedisDocumentStore.from_settings(settings)
    logger.info("Using in-memory document store")
    return InMemoryDocumentStore()


__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "RedisDocumentStore",
    "create_store",
    "transactions_path",
    "itinerary_path",
    "chat_path",
    "mail_queue_path",
    "ITINERARY_DOC_ID",
]
