"""
Tests for the JSON document store over Redis.
"""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from mailgraph.services.document_store import document_key
from mailgraph.services.infrastructure.redis_client import FastRedisClient


def test_document_key():
    assert document_key("scanProgress", "a@x.com_imap") == "scanProgress:a@x.com_imap"


@pytest.mark.asyncio
async def test_set_and_get_document(document_store):
    await document_store.set_document("imapSettings", "a@x.com", {"enabled": True, "mailbox": "INBOX"})

    assert await document_store.get_document("imapSettings", "a@x.com") == {
        "enabled": True,
        "mailbox": "INBOX",
    }


@pytest.mark.asyncio
async def test_merge_keeps_untouched_fields(document_store):
    await document_store.set_document("imapSettings", "a@x.com", {"enabled": True, "mailbox": "INBOX"})
    await document_store.set_document("imapSettings", "a@x.com", {"mailbox": "Archive"}, merge=True)

    assert await document_store.get_document("imapSettings", "a@x.com") == {
        "enabled": True,
        "mailbox": "Archive",
    }


@pytest.mark.asyncio
async def test_corrupt_document_reads_as_missing(document_store, fake_redis):
    fake_redis.store["gmailContacts:a@x.com"] = "{not json"

    assert await document_store.get_document("gmailContacts", "a@x.com") is None


@pytest.mark.asyncio
async def test_delete_document(document_store):
    await document_store.set_document("gmailContacts", "a@x.com", {"merged": []})

    assert await document_store.delete_document("gmailContacts", "a@x.com") is True
    assert await document_store.get_document("gmailContacts", "a@x.com") is None


def connected_client(**set_behaviour) -> FastRedisClient:
    client = FastRedisClient(url="redis://localhost:6379/0")
    client.client = AsyncMock()
    client.client.set = AsyncMock(**set_behaviour)
    client._initialized = True
    return client


@pytest.mark.asyncio
async def test_set_if_absent_tells_held_key_from_unreachable_redis():
    assert await connected_client(return_value=True).set_if_absent("k", "v", 60) is True
    assert await connected_client(return_value=None).set_if_absent("k", "v", 60) is False

    unreachable = connected_client(side_effect=RedisConnectionError("connection refused"))
    assert await unreachable.set_if_absent("k", "v", 60) is None
