"""
A chunked IMAP scan that resumes from its Redis checkpoint across invocations.
"""

import json

import pytest
from imapclient.response_types import Address, Envelope

from mailgraph.features.contact_scan.repository.imap_settings_repository import (
    ImapSettingsRepository,
)
from mailgraph.features.contact_scan.repository.progress_repository import (
    DocumentScanProgressStore,
)
from mailgraph.features.contact_scan.scanners.base import scan_async
from mailgraph.features.contact_scan.scanners.imap_header_scanner import ImapHeaderScanner
from mailgraph.features.contact_scan.scanners.scanner_config import get_imap_config

ACCOUNT = "owner@example.com"

pytestmark = pytest.mark.integration


def make_envelope(n: int) -> Envelope:
    sender = Address(name=None, route=None, mailbox=f"sender{n % 7}".encode(), host=b"example.com")
    owner = Address(name=b"Owner", route=None, mailbox=b"owner", host=b"example.com")
    return Envelope(
        date=None,
        subject=None,
        from_=(sender,),
        sender=(sender,),
        reply_to=(sender,),
        to=(owner,),
        cc=None,
        bcc=None,
        in_reply_to=None,
        message_id=None,
    )


class MailboxServer:
    """Hands out a fresh fake IMAP session per batch over one shared mailbox."""

    def __init__(self, size: int):
        self.messages = [make_envelope(n) for n in range(1, size + 1)]
        self.fetched_ranges: list[str] = []
        self.open_sessions = 0

    def connect(self):
        server = self

        class Session:
            def __init__(self):
                server.open_sessions += 1

            def oauth2_login(self, user, token):
                pass

            def select_folder(self, name, readonly=False):
                return {b"EXISTS": len(server.messages)}

            def fetch(self, messages, data):
                server.fetched_ranges.append(messages)
                start, end = (int(part) for part in messages.split(":"))
                return {
                    seq: {b"ENVELOPE": server.messages[seq - 1]} for seq in range(start, end + 1)
                }

            def logout(self):
                server.open_sessions -= 1

        return Session()


@pytest.mark.asyncio
async def test_chunked_scan_resumes_until_mailbox_is_exhausted(
    document_store, fake_redis, session_provider, registry
):
    server = MailboxServer(size=45)
    scanner = ImapHeaderScanner(
        session_provider=session_provider,
        settings_repository=ImapSettingsRepository(store=document_store),
        client_factory=server.connect,
    )
    store = DocumentScanProgressStore(store=document_store)
    config = get_imap_config({"max_messages": 20, "batch_size": 10, "delay_between_batches": 0})

    results = []
    for attempt in range(4):
        results.append(
            await scan_async(
                "rt", ACCOUNT, f"job-{attempt}", scanner, config, progress_store=store, registry=registry
            )
        )

    assert server.fetched_ranges == ["1:10", "11:20", "21:30", "31:40", "41:45"]
    assert server.open_sessions == 0
    assert [r.scanned for r in results] == [20, 20, 5, 45]
    assert "chunk complete" in results[0].message
    assert "scan complete" in results[2].message
    assert "already completed" in results[3].message

    checkpoint = json.loads(fake_redis.store["scanProgress:owner@example.com_imap"])
    assert checkpoint["isComplete"] is True
    assert checkpoint["totalMessages"] == 45
    assert checkpoint["chunksCompleted"] == 5
    assert not any(key.startswith("scanLocks:") for key in fake_redis.store)

    merged = set().union(*(r.merged for r in results[:3]))
    assert merged == {f"sender{n}@example.com" for n in range(7)} | {ACCOUNT}
