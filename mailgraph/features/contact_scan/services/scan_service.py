"""
Contact scan service.

Starts scans as background asyncio tasks, answers status polls from the
job registry and turns stop requests into cooperative cancellation. After
a scan returns, its contacts are folded into the account's snapshot.
Stored checkpoints can be inspected and reset so a finished mailbox can
be scanned again.
"""

import asyncio
import secrets
import string
import time
from dataclasses import replace
from datetime import datetime

from mailgraph.infrastructure.observability.logging import get_logger
from mailgraph.services.google_session_service import (
    GoogleSessionProvider,
    google_session_provider,
)

from ..domain.models import (
    JOB_STATUS_CANCELLED,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_PENDING,
    JOB_STATUS_RUNNING,
    ContactSnapshot,
    ScanResult,
    utc_now_iso,
)
from ..jobs.registry import JobRegistry, job_registry
from ..repository.contact_snapshot_repository import ContactSnapshotRepository
from ..repository.imap_settings_repository import ImapSettingsRepository
from ..repository.progress_repository import ScanProgressStore, get_progress_store
from ..scanners.base import MailboxScanner, scan_async
from ..scanners.errors import ScanInProgressError
from ..scanners.gmail_api_scanner import GmailApiScanner
from ..scanners.imap_header_scanner import ImapHeaderScanner
from ..scanners.scanner_config import (
    SCANNER_PRESETS,
    SCANNER_TYPE_IMAP,
    ScannerConfig,
    get_scanner_config,
)

logger = get_logger(__name__)

SCAN_METHOD_IMAP = "imap"
SCAN_METHOD_API = "api"

# method -> (base config kind, job id prefix)
SCAN_METHODS = {
    SCAN_METHOD_IMAP: ("imap", "imap"),
    SCAN_METHOD_API: ("gmail_api", "gmailapi"),
}

COMPLETE_MESSAGES = {
    JOB_STATUS_COMPLETED: "Scan complete! All messages processed.",
    JOB_STATUS_CANCELLED: "Scan was cancelled. Data collected so far has been saved.",
    JOB_STATUS_FAILED: "Scan failed. Try restarting.",
}

_JOB_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def generate_job_id(prefix: str) -> str:
    suffix = "".join(secrets.choice(_JOB_SUFFIX_ALPHABET) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def _parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def time_elapsed_seconds(job: dict, now: datetime | None = None) -> int:
    start = _parse_iso(job.get("started_at")) or _parse_iso(job.get("created_at"))
    if start is None:
        return 0
    end = _parse_iso(job.get("completed_at")) or now or datetime.now(start.tzinfo)
    return max(int((end - start).total_seconds()), 0)


def estimate_time_remaining(job: dict, elapsed: int) -> int | None:
    """
    Rough seconds-to-go from the observed message rate.

    Only defined for running jobs with a known max_messages; the rate is
    assumed constant, so treat the value as an approximation.
    """
    max_messages = job.get("max_messages")
    processed = job.get("processed_messages") or 0
    if job.get("status") != JOB_STATUS_RUNNING or not max_messages:
        return None
    if processed <= 0 or elapsed <= 0:
        return None

    remaining = max(max_messages - processed, 0)
    rate = processed / elapsed
    return round(remaining / rate)


class ContactScanService:
    """Entry point the HTTP layer uses to run scans and manage their checkpoints."""

    def __init__(
        self,
        session_provider: GoogleSessionProvider | None = None,
        registry: JobRegistry | None = None,
        progress_store: ScanProgressStore | None = None,
        snapshot_repository: ContactSnapshotRepository | None = None,
        imap_settings_repository: ImapSettingsRepository | None = None,
        scanner_factories: dict | None = None,
    ):
        self._session_provider = session_provider or google_session_provider
        self._registry = registry or job_registry
        self._progress_store = progress_store
        self._snapshots = snapshot_repository or ContactSnapshotRepository()
        self._imap_settings = imap_settings_repository or ImapSettingsRepository()
        self._scanner_factories = scanner_factories or {
            SCAN_METHOD_IMAP: lambda: ImapHeaderScanner(
                session_provider=self._session_provider,
                settings_repository=self._imap_settings,
            ),
            SCAN_METHOD_API: lambda: GmailApiScanner(session_provider=self._session_provider),
        }
        self._tasks: set[asyncio.Task] = set()

    @property
    def progress_store(self) -> ScanProgressStore:
        return self._progress_store or get_progress_store()

    def _validate_method(self, method: str) -> None:
        if method not in SCAN_METHODS:
            raise ValueError(
                f"Unknown scan method '{method}'. Available: {', '.join(sorted(SCAN_METHODS))}"
            )

    def scanner_type_for(self, method: str) -> str:
        self._validate_method(method)
        config_kind, _ = SCAN_METHODS[method]
        return get_scanner_config(config_kind).scanner_type

    async def build_config(
        self,
        method: str,
        account_email: str,
        max_messages: int | None = None,
        preset: str | None = None,
    ) -> ScannerConfig:
        """
        Resolve the scan config for a request.

        Precedence for max_messages: request, then the account's IMAP
        settings (IMAP only), then the preset or base config.

        Raises:
            ValueError: Unknown method or preset, or a preset for the other backend
        """
        self._validate_method(method)
        config_kind, _ = SCAN_METHODS[method]

        if preset:
            if preset not in SCANNER_PRESETS:
                raise ValueError(
                    f"Unknown preset '{preset}'. Available: {', '.join(sorted(SCANNER_PRESETS))}"
                )
            config = SCANNER_PRESETS[preset]
            if config.scanner_type != get_scanner_config(config_kind).scanner_type:
                raise ValueError(f"Preset '{preset}' does not apply to method '{method}'")
        else:
            config = get_scanner_config(config_kind)

        if max_messages is None and config.scanner_type == SCANNER_TYPE_IMAP:
            imap_settings = await self._imap_settings.load(account_email)
            if imap_settings and imap_settings.max_messages:
                max_messages = imap_settings.max_messages

        if max_messages is not None:
            config = replace(config, max_messages=max_messages)
        return config

    def create_scanner(self, method: str) -> MailboxScanner:
        return self._scanner_factories[method]()

    async def start_scan(
        self,
        refresh_token: str,
        method: str = SCAN_METHOD_API,
        max_messages: int | None = None,
        preset: str | None = None,
    ) -> dict:
        """
        Accept a scan and run it in the background.

        Returns the pending job record. Success or failure of the scan
        itself is only visible through get_status.

        Raises:
            ValueError: Invalid method/preset combination
            GoogleOAuthError: The refresh token cannot be used
        """
        self._validate_method(method)

        session = await self._session_provider.get_mail_client(refresh_token)
        account_email = session.account_email
        config = await self.build_config(method, account_email, max_messages, preset)

        _, prefix = SCAN_METHODS[method]
        job_id = generate_job_id(prefix)
        record = self._registry.update(
            job_id,
            status=JOB_STATUS_PENDING,
            method=method,
            account_email=account_email,
            scanner_type=config.scanner_type,
            max_messages=config.max_messages,
            message="Scan queued",
        )

        scanner = self.create_scanner(method)
        task = asyncio.create_task(
            self._run_scan(refresh_token, account_email, job_id, scanner, config)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info(
            "Contact scan started",
            job_id=job_id,
            account_email=account_email,
            method=method,
            preset=preset,
            max_messages=config.max_messages,
        )
        return record

    async def _run_scan(
        self,
        refresh_token: str,
        account_email: str,
        job_id: str,
        scanner: MailboxScanner,
        config: ScannerConfig,
    ) -> ScanResult | None:
        try:
            result = await scan_async(
                refresh_token,
                account_email,
                job_id,
                scanner,
                config,
                progress_store=self.progress_store if config.use_persistence else None,
                registry=self._registry,
            )
        except Exception as e:
            # scan_async has already marked the job failed
            logger.error(
                "Contact scan failed",
                job_id=job_id,
                account_email=account_email,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        try:
            if result.from_checkpoint:
                snapshot = await self._snapshots.load(account_email) or ContactSnapshot()
            else:
                snapshot = await self._snapshots.merge_result(account_email, result)
                if config.use_persistence:
                    await self._sync_progress_contacts(
                        account_email, config, len(snapshot.merged)
                    )
        except Exception as e:
            logger.error(
                "Failed to merge scan into contact snapshot",
                job_id=job_id,
                account_email=account_email,
                error=str(e),
                error_type=type(e).__name__,
            )
            self._registry.update(
                job_id, status=JOB_STATUS_FAILED, error=str(e), completed_at=utc_now_iso()
            )
            return result

        fields = {
            "scanned": result.scanned,
            "contacts": result.contacts,
            "total_contacts": len(snapshot.merged),
            "total_scanned": snapshot.message_sample_count,
            "last_message_scanned": result.last_message_scanned,
            "message": result.message,
            "completed_at": utc_now_iso(),
        }
        # A cancelled scan keeps its status; its partial contacts are still saved
        if self._registry.status_of(job_id) != JOB_STATUS_CANCELLED:
            fields["status"] = JOB_STATUS_COMPLETED
        self._registry.update(job_id, **fields)

        logger.info(
            "Contact scan finished",
            job_id=job_id,
            account_email=account_email,
            scanned=result.scanned,
            contacts=result.contacts,
            total_contacts=len(snapshot.merged),
        )
        return result

    async def _sync_progress_contacts(
        self, account_email: str, config: ScannerConfig, total_contacts: int
    ) -> None:
        """The checkpoint's contacts_found reflects the whole snapshot, not one chunk."""
        store = self.progress_store
        progress = await store.load(account_email, config.scanner_type)
        if progress is None or progress.contacts_found == total_contacts:
            return
        progress.contacts_found = total_contacts
        await store.save(account_email, config.scanner_type, progress)

    async def get_progress(self, refresh_token: str, method: str = SCAN_METHOD_IMAP) -> dict:
        """
        Stored checkpoint for the account behind the refresh token.

        Raises:
            ValueError: Unknown method
            GoogleOAuthError: The refresh token cannot be used
        """
        scanner_type = self.scanner_type_for(method)
        session = await self._session_provider.get_mail_client(refresh_token)
        account_email = session.account_email

        progress = await self.progress_store.load(account_email, scanner_type)
        result = {
            "account_email": account_email,
            "method": method,
            "scanner_type": scanner_type,
            "has_progress": progress is not None,
        }
        if progress is None:
            result["message"] = "No scan in progress. Start a new scan."
            return result

        result.update(
            last_message_scanned=progress.last_message_scanned,
            total_messages=progress.total_messages,
            contacts_found=progress.contacts_found,
            chunks_completed=progress.chunks_completed,
            is_complete=progress.is_complete,
            created_at=progress.created_at,
            updated_at=progress.updated_at,
        )
        if progress.is_complete:
            result["message"] = "Scan complete. Reset progress to scan the mailbox again."
        else:
            result["message"] = (
                f"Scan paused after {progress.total_messages} messages. "
                "The next scan resumes from here."
            )
        return result

    async def reset_progress(self, refresh_token: str, method: str = SCAN_METHOD_IMAP) -> dict:
        """
        Drop the stored checkpoint so the next scan starts from the beginning.

        The scan lock is taken for the delete, so a running scan cannot
        re-create the checkpoint underneath the reset.

        Raises:
            ValueError: Unknown method
            GoogleOAuthError: The refresh token cannot be used
            ScanInProgressError: A scan currently holds the lock
            ProgressStoreUnavailableError: The store could not be reached
        """
        scanner_type = self.scanner_type_for(method)
        session = await self._session_provider.get_mail_client(refresh_token)
        account_email = session.account_email

        store = self.progress_store
        owner = generate_job_id("reset")
        if not await store.acquire_lock(account_email, scanner_type, owner):
            raise ScanInProgressError(
                f"A {scanner_type} scan is running for {account_email}; stop it before resetting",
                account_email=account_email,
                scanner_type=scanner_type,
            )
        try:
            deleted = await store.delete(account_email, scanner_type)
        finally:
            await store.release_lock(account_email, scanner_type, owner)

        logger.info(
            "Scan progress reset",
            account_email=account_email,
            scanner_type=scanner_type,
            deleted=deleted,
        )
        return {
            "account_email": account_email,
            "method": method,
            "scanner_type": scanner_type,
            "reset": deleted,
            "message": "Scan progress reset. Next scan will start from beginning.",
        }

    def get_status(self, job_id: str) -> dict | None:
        job = self._registry.get(job_id)
        if job is None:
            return None

        elapsed = time_elapsed_seconds(job)
        job["time_elapsed"] = elapsed
        job["estimated_time_remaining"] = estimate_time_remaining(job, elapsed)
        job["complete_message"] = COMPLETE_MESSAGES.get(job["status"])
        return job

    def stop_scan(self, job_id: str) -> dict | None:
        job = self._registry.cancel(job_id)
        if job is not None:
            logger.info("Contact scan stop requested", job_id=job_id, status=job["status"])
        return job

    async def wait_for_all(self) -> None:
        """Wait for in-flight scan tasks; used on shutdown and in tests."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


contact_scan_service = ContactScanService()
