"""
Contact scan API request/response models.
Used by the sync router for input validation and response shaping.
"""

from typing import Literal

from pydantic import BaseModel, Field


class StartScanRequest(BaseModel):
    """Request for starting a contact scan."""

    method: Literal["api", "imap"] = Field(
        default="api", description="Scanner backend: Gmail REST API or IMAP envelopes"
    )
    max_messages: int | None = Field(
        default=None, ge=1, le=1_000_000, description="Per-invocation message cap"
    )
    preset: str | None = Field(
        default=None, description="Named preset (imap_fast, imap_thorough, gmail_recent, gmail_full)"
    )


class StartScanResponse(BaseModel):
    """Response after a scan has been accepted."""

    success: bool = True
    method: str
    job_id: str
    status: str = "started"
    message: str


class ScanJobResponse(BaseModel):
    """Status of a scan job for polling clients."""

    job_id: str
    status: str
    method: str | None = None
    scanner_type: str | None = None
    processed_messages: int = 0
    percent_complete: int | None = None
    contacts_found: int = 0
    message: str = ""
    error: str | None = None
    created_at: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    time_elapsed: int = 0
    estimated_time_remaining: int | None = Field(
        default=None,
        description="Approximate seconds remaining, from the observed rate; null without a message cap",
    )
    complete_message: str | None = None
    last_message_scanned: int | str | None = None
    total_contacts: int | None = None


class StopScanResponse(BaseModel):
    """Response after a stop request."""

    job_id: str
    status: str
    message: str


class ScanProgressResponse(BaseModel):
    """Stored checkpoint for one account and backend."""

    method: str
    scanner_type: str
    has_progress: bool
    message: str
    last_message_scanned: int | str | None = None
    total_messages: int = 0
    contacts_found: int = 0
    chunks_completed: int = 0
    is_complete: bool = False
    created_at: str | None = None
    updated_at: str | None = None


class ResetProgressResponse(BaseModel):
    """Response after a checkpoint reset."""

    success: bool = True
    method: str
    reset: bool
    message: str
