"""
Persistence for scan checkpoints, alternate credentials and contact snapshots.
"""

from .contact_snapshot_repository import ContactSnapshotRepository, merge_scan_into_snapshot
from .imap_settings_repository import ImapSettings, ImapSettingsRepository
from .progress_repository import (
    DocumentScanProgressStore,
    InMemoryScanProgressStore,
    NoOpScanProgressStore,
    ProgressStoreUnavailableError,
    ScanProgressStore,
    create_progress_store,
    get_progress_store,
)

__all__ = [
    "ContactSnapshotRepository",
    "merge_scan_into_snapshot",
    "ImapSettings",
    "ImapSettingsRepository",
    "DocumentScanProgressStore",
    "InMemoryScanProgressStore",
    "NoOpScanProgressStore",
    "ProgressStoreUnavailableError",
    "ScanProgressStore",
    "create_progress_store",
    "get_progress_store",
]
