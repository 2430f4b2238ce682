"""
Scan progress stores.

Checkpoints are keyed by (account email, scanner kind) so scans of the same
account through different backends never share a record. Each store also
exposes an advisory lock on the same key, held by a running scan so two
scans of one account through one backend cannot interleave checkpoint
writes.
"""

from typing import Protocol

from mailgraph.config import settings
from mailgraph.infrastructure.observability.logging import get_logger
from mailgraph.services.document_store import DocumentStore, document_store

from ..domain.models import ScanProgress, utc_now_iso

logger = get_logger(__name__)

PROGRESS_COLLECTION = "scanProgress"
LOCK_COLLECTION = "scanLocks"


class ProgressStoreUnavailableError(Exception):
    """The checkpoint store could not be reached, so no lock could be taken."""

    def __init__(self, message: str, account_email: str | None = None):
        super().__init__(message)
        self.account_email = account_email


def progress_key(account_email: str, scanner_type: str) -> str:
    return f"{account_email}_{scanner_type}"


class ScanProgressStore(Protocol):
    async def save(self, account_email: str, scanner_type: str, progress: ScanProgress) -> None: ...

    async def load(self, account_email: str, scanner_type: str) -> ScanProgress | None: ...

    async def delete(self, account_email: str, scanner_type: str) -> bool: ...

    async def acquire_lock(self, account_email: str, scanner_type: str, owner: str) -> bool: ...

    async def release_lock(self, account_email: str, scanner_type: str, owner: str) -> None: ...


class DocumentScanProgressStore:
    """Durable store on the Redis document store."""

    def __init__(self, store: DocumentStore | None = None, lock_ttl_s: int | None = None):
        self._store = store or document_store
        self._lock_ttl_s = lock_ttl_s or settings.SCAN_LOCK_TTL_SECONDS

    async def save(self, account_email: str, scanner_type: str, progress: ScanProgress) -> None:
        progress.user_email = account_email
        progress.scanner_type = scanner_type
        progress.updated_at = utc_now_iso()

        ok = await self._store.set_document(
            PROGRESS_COLLECTION,
            progress_key(account_email, scanner_type),
            progress.to_document(),
        )
        if not ok:
            logger.warning(
                "Failed to save scan progress",
                account_email=account_email,
                scanner_type=scanner_type,
            )

    async def load(self, account_email: str, scanner_type: str) -> ScanProgress | None:
        data = await self._store.get_document(
            PROGRESS_COLLECTION, progress_key(account_email, scanner_type)
        )
        return ScanProgress.from_document(data) if data else None

    async def delete(self, account_email: str, scanner_type: str) -> bool:
        return await self._store.delete_document(
            PROGRESS_COLLECTION, progress_key(account_email, scanner_type)
        )

    async def acquire_lock(self, account_email: str, scanner_type: str, owner: str) -> bool:
        key = f"{LOCK_COLLECTION}:{progress_key(account_email, scanner_type)}"
        acquired = await self._store.set_if_absent(key, owner, self._lock_ttl_s)
        if acquired is None:
            raise ProgressStoreUnavailableError(
                "Scan progress store is unavailable, try again shortly",
                account_email=account_email,
            )
        return acquired

    async def release_lock(self, account_email: str, scanner_type: str, owner: str) -> None:
        key = f"{LOCK_COLLECTION}:{progress_key(account_email, scanner_type)}"
        # Only the holder may release; an expired lock may already belong to someone else
        if await self._store.get_raw(key) == owner:
            await self._store.delete_raw(key)


class InMemoryScanProgressStore:
    """Process-local store for tests and single-process development."""

    def __init__(self):
        self._progress: dict[str, dict] = {}
        self._locks: dict[str, str] = {}

    async def save(self, account_email: str, scanner_type: str, progress: ScanProgress) -> None:
        progress.user_email = account_email
        progress.scanner_type = scanner_type
        progress.updated_at = utc_now_iso()
        self._progress[progress_key(account_email, scanner_type)] = progress.to_document()

    async def load(self, account_email: str, scanner_type: str) -> ScanProgress | None:
        data = self._progress.get(progress_key(account_email, scanner_type))
        return ScanProgress.from_document(data) if data else None

    async def delete(self, account_email: str, scanner_type: str) -> bool:
        return self._progress.pop(progress_key(account_email, scanner_type), None) is not None

    async def acquire_lock(self, account_email: str, scanner_type: str, owner: str) -> bool:
        key = progress_key(account_email, scanner_type)
        if key in self._locks:
            return False
        self._locks[key] = owner
        return True

    async def release_lock(self, account_email: str, scanner_type: str, owner: str) -> None:
        key = progress_key(account_email, scanner_type)
        if self._locks.get(key) == owner:
            del self._locks[key]

    def clear(self) -> None:
        self._progress.clear()
        self._locks.clear()


class NoOpScanProgressStore:
    """Used when persistence is disabled."""

    async def save(self, account_email: str, scanner_type: str, progress: ScanProgress) -> None:
        return None

    async def load(self, account_email: str, scanner_type: str) -> ScanProgress | None:
        return None

    async def delete(self, account_email: str, scanner_type: str) -> bool:
        return False

    async def acquire_lock(self, account_email: str, scanner_type: str, owner: str) -> bool:
        return True

    async def release_lock(self, account_email: str, scanner_type: str, owner: str) -> None:
        return None


def create_progress_store(store_type: str = "redis") -> ScanProgressStore:
    if store_type == "redis":
        return DocumentScanProgressStore()
    if store_type == "memory":
        return InMemoryScanProgressStore()
    if store_type == "none":
        return NoOpScanProgressStore()
    raise ValueError(f"Unknown progress store type: {store_type}")


_default_store: ScanProgressStore | None = None


def get_progress_store() -> ScanProgressStore:
    """Process-wide store chosen from settings on first use."""
    global _default_store
    if _default_store is None:
        _default_store = create_progress_store(settings.get_progress_store_type())
    return _default_store
