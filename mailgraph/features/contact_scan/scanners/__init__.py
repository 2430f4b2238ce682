"""
Scanner backends and the shared orchestration loop.
"""

from .base import MailboxScanner, percent_complete, scan_async
from .errors import MailAuthError, MailboxNotFoundError, ScanInProgressError, ScannerError
from .gmail_api_scanner import GmailApiError, GmailApiScanner
from .imap_header_scanner import ImapHeaderScanner

__all__ = [
    "MailboxScanner",
    "percent_complete",
    "scan_async",
    "ScannerError",
    "MailAuthError",
    "MailboxNotFoundError",
    "ScanInProgressError",
    "GmailApiError",
    "GmailApiScanner",
    "ImapHeaderScanner",
]
