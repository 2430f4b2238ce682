"""
Contact scan feature package.

Walks a Gmail mailbox in bounded batches through one of two interchangeable
backends (IMAP envelope fetch or the Gmail REST API), tracks progress for
status polling, honours cooperative cancellation, and checkpoints so long
scans can resume after a restart.
"""

# Re-export the primary building blocks for easy access.
from .api.router import router as contact_scan_router  # noqa: F401
from .domain.models import BatchResult, ScanProgress, ScanResult  # noqa: F401
from .jobs.registry import JobRegistry, job_registry  # noqa: F401
from .scanners.base import MailboxScanner, scan_async  # noqa: F401
from .scanners.gmail_api_scanner import GmailApiScanner  # noqa: F401
from .scanners.imap_header_scanner import ImapHeaderScanner  # noqa: F401
from .scanners.scanner_config import SCANNER_PRESETS, ScannerConfig, get_scanner_config  # noqa: F401
from .services.scan_service import ContactScanService, contact_scan_service  # noqa: F401
