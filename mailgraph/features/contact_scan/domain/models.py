"""
Domain models for the contact scan feature.

Plain dataclasses describing what flows between the orchestration loop,
the scanner backends and the persistence layer. Offsets are either an int
(IMAP sequence number) or a str (Gmail page token); the loop forwards
them without looking inside.
"""

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

Offset = int | str

JOB_STATUS_PENDING = "pending"
JOB_STATUS_RUNNING = "running"
JOB_STATUS_COMPLETED = "completed"
JOB_STATUS_CANCELLED = "cancelled"
JOB_STATUS_FAILED = "failed"

TERMINAL_JOB_STATUSES = {JOB_STATUS_COMPLETED, JOB_STATUS_CANCELLED, JOB_STATUS_FAILED}


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(slots=True)
class BatchResult:
    """One scan_batch call's output."""

    senders: set[str] = field(default_factory=set)
    recipients: set[str] = field(default_factory=set)
    processed: int = 0
    has_more: bool = False
    next_offset: Offset | None = None

    def __post_init__(self):
        if self.has_more and self.next_offset is None:
            raise ValueError("BatchResult with has_more=True needs a next_offset")
        if not self.has_more:
            self.next_offset = None


@dataclass(slots=True)
class ScanResult:
    senders: list[str]
    recipients: list[str]
    merged: list[str]
    scanned: int
    contacts: int
    message: str
    last_message_scanned: Offset | None
    # Set when the result restates a finished checkpoint instead of new scanning
    from_checkpoint: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "senders": self.senders,
            "recipients": self.recipients,
            "merged": self.merged,
            "scanned": self.scanned,
            "contacts": self.contacts,
            "message": self.message,
            "lastMessageScanned": self.last_message_scanned,
        }


@dataclass(slots=True)
class ScanProgress:
    """Durable checkpoint for one (account, scanner kind) pair."""

    user_email: str
    scanner_type: str
    last_message_scanned: Offset | None = None
    total_messages: int = 0
    contacts_found: int = 0
    chunks_completed: int = 0
    is_complete: bool = False
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    def to_document(self) -> dict[str, Any]:
        return {
            "userEmail": self.user_email,
            "scannerType": self.scanner_type,
            "lastMessageScanned": self.last_message_scanned,
            "totalMessages": self.total_messages,
            "contactsFound": self.contacts_found,
            "chunksCompleted": self.chunks_completed,
            "isComplete": self.is_complete,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "ScanProgress":
        return cls(
            user_email=data.get("userEmail", ""),
            scanner_type=data.get("scannerType", ""),
            last_message_scanned=data.get("lastMessageScanned"),
            total_messages=int(data.get("totalMessages") or 0),
            contacts_found=int(data.get("contactsFound") or 0),
            chunks_completed=int(data.get("chunksCompleted") or 0),
            is_complete=bool(data.get("isComplete", False)),
            created_at=data.get("createdAt") or utc_now_iso(),
            updated_at=data.get("updatedAt") or utc_now_iso(),
        )


@dataclass(slots=True)
class ContactSnapshot:
    """Convergent per-account contact lists that downstream features read."""

    senders: list[str] = field(default_factory=list)
    recipients: list[str] = field(default_factory=list)
    merged: list[str] = field(default_factory=list)
    message_sample_count: int = 0
    updated_at: str = field(default_factory=utc_now_iso)

    def to_document(self) -> dict[str, Any]:
        data = asdict(self)
        return {
            "senders": data["senders"],
            "recipients": data["recipients"],
            "merged": data["merged"],
            "messageSampleCount": data["message_sample_count"],
            "updatedAt": data["updated_at"],
        }

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "ContactSnapshot":
        return cls(
            senders=list(data.get("senders") or []),
            recipients=list(data.get("recipients") or []),
            merged=list(data.get("merged") or []),
            message_sample_count=int(data.get("messageSampleCount") or 0),
            updated_at=data.get("updatedAt") or utc_now_iso(),
        )
