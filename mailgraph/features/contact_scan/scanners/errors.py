"""
Exceptions raised by the contact scanning engine.
"""


class ScannerError(Exception):
    """Base exception for scanner failures that should fail the job."""

    def __init__(self, message: str, account_email: str | None = None):
        super().__init__(message)
        self.account_email = account_email


class MailAuthError(ScannerError):
    """A mailbox session could not be established."""

    def __init__(self, message: str, account_email: str | None = None, auth_method: str | None = None):
        super().__init__(message, account_email)
        self.auth_method = auth_method


class MailboxNotFoundError(ScannerError):
    """None of the candidate mailboxes could be opened."""

    def __init__(self, message: str, account_email: str | None = None, tried: list[str] | None = None):
        super().__init__(message, account_email)
        self.tried = tried or []


class ScanInProgressError(ScannerError):
    """Another scan already holds the checkpoint lock for this account and backend."""

    def __init__(self, message: str, account_email: str | None = None, scanner_type: str | None = None):
        super().__init__(message, account_email)
        self.scanner_type = scanner_type
