"""
Domain models shared by the contact scan layers.
"""

from .models import (
    JOB_STATUS_CANCELLED,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_PENDING,
    JOB_STATUS_RUNNING,
    BatchResult,
    ContactSnapshot,
    ScanProgress,
    ScanResult,
)

__all__ = [
    "JOB_STATUS_CANCELLED",
    "JOB_STATUS_COMPLETED",
    "JOB_STATUS_FAILED",
    "JOB_STATUS_PENDING",
    "JOB_STATUS_RUNNING",
    "BatchResult",
    "ContactSnapshot",
    "ScanProgress",
    "ScanResult",
]
