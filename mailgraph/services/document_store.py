"""
Collection-style JSON document store on top of Redis.

Documents are addressed by (collection, doc_id) and stored as JSON strings
under "{collection}:{doc_id}". Failures are logged and reported as None /
False so callers can degrade instead of crashing a scan.
"""

import json
from typing import Any

from mailgraph.infrastructure.observability.logging import get_logger
from mailgraph.services.infrastructure.redis_client import FastRedisClient, fast_redis

logger = get_logger(__name__)


def document_key(collection: str, doc_id: str) -> str:
    return f"{collection}:{doc_id}"


class DocumentStore:
    """Thin document API used by the repositories."""

    def __init__(self, client: FastRedisClient | None = None):
        self._client = client or fast_redis

    async def get_document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        raw = await self._client.get(document_key(collection, doc_id))
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.error(
                "Stored document is not valid JSON",
                collection=collection,
                doc_id=doc_id,
                error=str(e),
            )
            return None
        return data if isinstance(data, dict) else None

    async def set_document(
        self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False
    ) -> bool:
        """Write a document; with merge=True, top-level fields are merged into the existing one."""
        payload = dict(data)
        if merge:
            existing = await self.get_document(collection, doc_id) or {}
            payload = {**existing, **payload}

        return await self._client.set_with_ttl(
            document_key(collection, doc_id), json.dumps(payload, default=str)
        )

    async def delete_document(self, collection: str, doc_id: str) -> bool:
        return await self._client.delete(document_key(collection, doc_id))

    async def set_if_absent(self, key: str, value: str, ttl_s: int | None = None) -> bool | None:
        return await self._client.set_if_absent(key, value, ttl_s)

    async def get_raw(self, key: str) -> str | None:
        return await self._client.get(key)

    async def delete_raw(self, key: str) -> bool:
        return await self._client.delete(key)


document_store = DocumentStore()
