"""
Shared orchestration loop for mailbox scanners.

`scan_async` drives any backend that implements `scan_batch` until the
backend runs out of messages, the per-invocation cap is reached, or the
job is cancelled. Batches run strictly one after another because each
offset comes from the previous result. Progress is published to the job
registry after every batch and, when persistence is on, checkpointed so
a later invocation resumes where this one stopped.
"""

import asyncio
from dataclasses import replace
from typing import Protocol

import structlog

from mailgraph.infrastructure.observability.logging import get_logger, log_scan_batch

from ..domain.models import (
    JOB_STATUS_CANCELLED,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_RUNNING,
    BatchResult,
    Offset,
    ScanProgress,
    ScanResult,
    utc_now_iso,
)
from ..jobs.registry import JobRegistry, job_registry
from ..repository.progress_repository import ScanProgressStore, get_progress_store
from .errors import ScanInProgressError, ScannerError
from .scanner_config import ScannerConfig

logger = get_logger(__name__)


class MailboxScanner(Protocol):
    """A scanner backend: reads one bounded batch starting at `offset`."""

    async def scan_batch(
        self,
        refresh_token: str,
        account_email: str,
        config: ScannerConfig,
        offset: Offset | None = None,
    ) -> BatchResult: ...


def percent_complete(processed: int, max_messages: int | None) -> int | None:
    """Share of the per-invocation cap done; None when there is no cap to measure against."""
    if not max_messages:
        return None
    return min(round(processed / max_messages * 100), 100)


def _contact_count(senders: set[str], recipients: set[str]) -> int:
    return len(senders | recipients)


def _build_result(
    senders: set[str],
    recipients: set[str],
    processed: int,
    message: str,
    last_message_scanned: Offset | None,
) -> ScanResult:
    merged = senders | recipients
    return ScanResult(
        senders=sorted(senders),
        recipients=sorted(recipients),
        merged=sorted(merged),
        scanned=processed,
        contacts=len(merged),
        message=message,
        last_message_scanned=last_message_scanned,
    )


async def scan_async(
    refresh_token: str,
    account_email: str,
    job_id: str,
    scanner: MailboxScanner,
    config: ScannerConfig,
    *,
    progress_store: ScanProgressStore | None = None,
    registry: JobRegistry | None = None,
) -> ScanResult:
    """
    Run a scan to exhaustion, cancellation or the max_messages cap.

    Args:
        refresh_token: Credential handed through to the backend
        account_email: Account being scanned; also the checkpoint key
        job_id: Job record to publish progress into
        scanner: Backend implementing scan_batch
        config: Tuning for this run (see scanner_config)
        progress_store: Checkpoint store; defaults to the process store when
            config.use_persistence is set
        registry: Job registry; defaults to the process registry

    Returns:
        ScanResult for this invocation

    Raises:
        Whatever scan_batch raises, after marking the job failed.
    """
    registry = registry or job_registry
    store = (progress_store or get_progress_store()) if config.use_persistence else None
    scanner_type = config.scanner_type
    scanner_name = type(scanner).__name__

    with structlog.contextvars.bound_contextvars(
        job_id=job_id, account_email=account_email, scanner_type=scanner_type
    ):
        lock_held = False
        try:
            existing: ScanProgress | None = None
            if store is not None:
                lock_held = await store.acquire_lock(account_email, scanner_type, job_id)
                if not lock_held:
                    raise ScanInProgressError(
                        f"A {scanner_type} scan is already running for {account_email}",
                        account_email=account_email,
                        scanner_type=scanner_type,
                    )

                existing = await store.load(account_email, scanner_type)
                if existing and existing.is_complete:
                    logger.info(
                        "Scan already completed, skipping",
                        total_messages=existing.total_messages,
                        contacts_found=existing.contacts_found,
                    )
                    message = (
                        f"Scan already completed: {existing.contacts_found} contacts "
                        f"from {existing.total_messages} messages"
                    )
                    registry.update(
                        job_id,
                        status=JOB_STATUS_COMPLETED,
                        account_email=account_email,
                        scanner_type=scanner_type,
                        contacts_found=existing.contacts_found,
                        percent_complete=100,
                        message=message,
                        completed_at=utc_now_iso(),
                    )
                    return ScanResult(
                        senders=[],
                        recipients=[],
                        merged=[],
                        scanned=existing.total_messages,
                        contacts=existing.contacts_found,
                        message=message,
                        last_message_scanned=existing.last_message_scanned,
                        from_checkpoint=True,
                    )

            job_fields = {
                "started_at": utc_now_iso(),
                "account_email": account_email,
                "scanner_type": scanner_type,
                "max_messages": config.max_messages,
            }
            # A stop request may arrive before the first batch; keep it visible to the loop
            if registry.status_of(job_id) != JOB_STATUS_CANCELLED:
                job_fields["status"] = JOB_STATUS_RUNNING
            registry.update(job_id, **job_fields)

            senders: set[str] = set()
            recipients: set[str] = set()
            processed = 0
            offset: Offset | None = existing.last_message_scanned if existing else None
            chunks_completed = existing.chunks_completed if existing else 0
            base_total = existing.total_messages if existing else 0
            previous_contacts = existing.contacts_found if existing else 0
            created_at = existing.created_at if existing else utc_now_iso()
            exhausted = False

            if offset is not None:
                logger.info(
                    "Resuming scan from checkpoint",
                    offset=offset,
                    chunks_completed=chunks_completed,
                )

            async def checkpoint(position: Offset | None, is_complete: bool) -> None:
                if store is None:
                    return
                await store.save(
                    account_email,
                    scanner_type,
                    ScanProgress(
                        user_email=account_email,
                        scanner_type=scanner_type,
                        last_message_scanned=position,
                        total_messages=base_total + processed,
                        contacts_found=max(previous_contacts, _contact_count(senders, recipients)),
                        chunks_completed=chunks_completed,
                        is_complete=is_complete,
                        created_at=created_at,
                    ),
                )

            while True:
                if registry.status_of(job_id) == JOB_STATUS_CANCELLED:
                    logger.info("Job cancelled, stopping scan", processed=processed)
                    return _build_result(
                        senders, recipients, processed, "Scan was cancelled by user", offset
                    )

                batch_config = config
                if config.max_messages is not None:
                    remaining = max(config.max_messages - processed, 1)
                    batch_config = replace(config, batch_size=min(config.batch_size, remaining))

                batch = await scanner.scan_batch(refresh_token, account_email, batch_config, offset)

                if batch.has_more and batch.next_offset == offset:
                    raise ScannerError(
                        f"{scanner_name} returned a batch that does not advance past offset {offset}",
                        account_email=account_email,
                    )

                senders |= batch.senders
                recipients |= batch.recipients
                processed += batch.processed
                chunks_completed += 1

                position = batch.next_offset if batch.has_more else offset
                await checkpoint(position, is_complete=not batch.has_more)

                contacts_found = _contact_count(senders, recipients)
                percent = percent_complete(processed, config.max_messages)
                progress_text = f" ({percent}%)" if percent is not None else ""
                registry.update(
                    job_id,
                    processed_messages=processed,
                    percent_complete=percent,
                    contacts_found=contacts_found,
                    message=(
                        f"Processed {processed} messages{progress_text} - "
                        f"Found {contacts_found} contacts"
                    ),
                )
                log_scan_batch(
                    job_id=job_id,
                    scanner_type=scanner_type,
                    offset=offset,
                    processed=batch.processed,
                    total_processed=processed,
                    contacts_found=contacts_found,
                    has_more=batch.has_more,
                )

                if not batch.has_more:
                    exhausted = True
                    break

                offset = batch.next_offset

                if config.max_messages is not None and processed >= config.max_messages:
                    logger.info(
                        "Per-invocation message cap reached", max_messages=config.max_messages
                    )
                    break

                if config.delay_between_batches:
                    await asyncio.sleep(config.delay_between_batches)

            await checkpoint(offset, is_complete=exhausted)

            merged_count = _contact_count(senders, recipients)
            if exhausted:
                message = (
                    f"{scanner_name} scan complete: Found {merged_count} unique contacts "
                    f"from {processed} messages"
                )
            else:
                message = (
                    f"{scanner_name} chunk complete: Found {merged_count} unique contacts "
                    f"from {processed} messages, more messages remain"
                )

            logger.info(
                "Scan finished",
                processed=processed,
                contacts=merged_count,
                exhausted=exhausted,
                chunks_completed=chunks_completed,
            )
            return _build_result(senders, recipients, processed, message, offset)

        except Exception as e:
            logger.error("Scan failed", error=str(e), error_type=type(e).__name__)
            registry.update(
                job_id,
                status=JOB_STATUS_FAILED,
                error=str(e),
                completed_at=utc_now_iso(),
            )
            raise

        finally:
            if lock_held and store is not None:
                await store.release_lock(account_email, scanner_type, job_id)
