"""
Contact snapshot persistence and merge.

A finished scan is folded into the account's snapshot by set union, so
re-applying the same result converges to the same address lists.
"""

from mailgraph.infrastructure.observability.logging import get_logger
from mailgraph.services.document_store import DocumentStore, document_store

from ..domain.models import ContactSnapshot, ScanResult, utc_now_iso

logger = get_logger(__name__)

CONTACTS_COLLECTION = "gmailContacts"


def merge_scan_into_snapshot(existing: ContactSnapshot | None, result: ScanResult) -> ContactSnapshot:
    existing = existing or ContactSnapshot()

    senders = set(existing.senders) | set(result.senders)
    recipients = set(existing.recipients) | set(result.recipients)
    merged = set(existing.merged) | senders | recipients

    return ContactSnapshot(
        senders=sorted(senders),
        recipients=sorted(recipients),
        merged=sorted(merged),
        message_sample_count=existing.message_sample_count + result.scanned,
        updated_at=utc_now_iso(),
    )


class ContactSnapshotRepository:
    def __init__(self, store: DocumentStore | None = None):
        self._store = store or document_store

    async def load(self, account_email: str) -> ContactSnapshot | None:
        data = await self._store.get_document(CONTACTS_COLLECTION, account_email)
        return ContactSnapshot.from_document(data) if data else None

    async def save(self, account_email: str, snapshot: ContactSnapshot) -> bool:
        return await self._store.set_document(
            CONTACTS_COLLECTION, account_email, snapshot.to_document(), merge=True
        )

    async def merge_result(self, account_email: str, result: ScanResult) -> ContactSnapshot:
        snapshot = merge_scan_into_snapshot(await self.load(account_email), result)
        if not await self.save(account_email, snapshot):
            logger.warning("Failed to save contact snapshot", account_email=account_email)
        else:
            logger.info(
                "Contact snapshot updated",
                account_email=account_email,
                contacts=len(snapshot.merged),
                message_sample_count=snapshot.message_sample_count,
            )
        return snapshot
