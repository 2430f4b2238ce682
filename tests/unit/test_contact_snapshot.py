"""
Tests for folding scan results into the contact snapshot.
"""

import json

import pytest

from mailgraph.features.contact_scan.domain.models import ContactSnapshot, ScanResult
from mailgraph.features.contact_scan.repository.contact_snapshot_repository import (
    ContactSnapshotRepository,
    merge_scan_into_snapshot,
)

ACCOUNT = "owner@example.com"


def scan_result(senders, recipients, scanned):
    merged = sorted(set(senders) | set(recipients))
    return ScanResult(
        senders=sorted(senders),
        recipients=sorted(recipients),
        merged=merged,
        scanned=scanned,
        contacts=len(merged),
        message="done",
        last_message_scanned=None,
    )


def test_merge_into_empty_snapshot():
    snapshot = merge_scan_into_snapshot(None, scan_result(["b@x.com", "a@x.com"], ["c@x.com"], 10))

    assert snapshot.senders == ["a@x.com", "b@x.com"]
    assert snapshot.recipients == ["c@x.com"]
    assert snapshot.merged == ["a@x.com", "b@x.com", "c@x.com"]
    assert snapshot.message_sample_count == 10


def test_merge_is_union_with_existing():
    existing = ContactSnapshot(
        senders=["a@x.com"], recipients=["z@x.com"], merged=["a@x.com", "z@x.com"], message_sample_count=5
    )

    snapshot = merge_scan_into_snapshot(existing, scan_result(["a@x.com", "b@x.com"], ["c@x.com"], 3))

    assert snapshot.senders == ["a@x.com", "b@x.com"]
    assert snapshot.recipients == ["c@x.com", "z@x.com"]
    assert snapshot.merged == ["a@x.com", "b@x.com", "c@x.com", "z@x.com"]
    assert snapshot.message_sample_count == 8


def test_reapplying_same_result_converges():
    result = scan_result(["a@x.com"], ["b@x.com"], 4)

    once = merge_scan_into_snapshot(None, result)
    twice = merge_scan_into_snapshot(once, result)

    assert twice.senders == once.senders
    assert twice.recipients == once.recipients
    assert twice.merged == once.merged
    assert twice.message_sample_count == 8


@pytest.mark.asyncio
async def test_repository_merge_persists_document(document_store, fake_redis):
    repository = ContactSnapshotRepository(store=document_store)

    await repository.merge_result(ACCOUNT, scan_result(["a@x.com"], ["b@x.com"], 2))
    snapshot = await repository.merge_result(ACCOUNT, scan_result(["c@x.com"], [], 1))

    assert snapshot.merged == ["a@x.com", "b@x.com", "c@x.com"]
    stored = json.loads(fake_redis.store["gmailContacts:owner@example.com"])
    assert stored["messageSampleCount"] == 3
    assert stored["merged"] == ["a@x.com", "b@x.com", "c@x.com"]
