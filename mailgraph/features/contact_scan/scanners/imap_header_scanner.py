"""
IMAP envelope scanner.

Reads only ENVELOPE data (From/To/Cc/Bcc), never bodies. Offsets are 1-based
message sequence numbers: a batch covers [offset, offset + batch_size - 1]
clamped to the mailbox size, and the next offset is the first message after
the window. Each batch opens its own session and always logs out, so a
failed batch leaves nothing behind and the next call starts clean.
"""

import asyncio
from dataclasses import dataclass, field

from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientError

from mailgraph.config import settings
from mailgraph.infrastructure.observability.logging import get_logger
from mailgraph.services.google_session_service import (
    CachedSessionProvider,
    GoogleOAuthError,
    GoogleSessionProvider,
    google_session_provider,
)
from mailgraph.services.infrastructure.encryption_service import EncryptionError, decrypt_secret

from ..domain.models import BatchResult, Offset
from ..repository.imap_settings_repository import ImapSettings, ImapSettingsRepository
from .errors import MailAuthError, MailboxNotFoundError, ScannerError
from .extraction import extract_emails_from_addresses
from .scanner_config import ScannerConfig

logger = get_logger(__name__)

AUTH_METHOD_APP_PASSWORD = "app_password"
AUTH_METHOD_OAUTH = "oauth2"

# "All Mail" under its common localized names, then INBOX, then the
# Google Mail (UK/DE) namespace and a generic archive folder.
MAILBOX_CANDIDATES = [
    "[Gmail]/All Mail",
    "[Gmail]/Alle Nachrichten",
    "[Gmail]/Tous les messages",
    "[Gmail]/Todos",
    "[Gmail]/Tutti i messaggi",
    "[Gmail]/Alle e-mail",
    "INBOX",
    "[Google Mail]/All Mail",
    "Archive",
]


@dataclass(slots=True)
class ImapCredentials:
    auth_method: str
    username: str
    secret: str = field(repr=False)


def _decode(value: bytes | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def envelope_addresses(addresses) -> list[dict | None]:
    """Convert imapclient Address tuples into {"name", "address"} entries."""
    if not addresses:
        return []

    entries: list[dict | None] = []
    for addr in addresses:
        # Group syntax markers carry no host
        if addr is None or not addr.mailbox or not addr.host:
            entries.append(None)
            continue
        entries.append(
            {
                "name": _decode(addr.name),
                "address": f"{_decode(addr.mailbox)}@{_decode(addr.host)}",
            }
        )
    return entries


class ImapHeaderScanner:
    """Scanner backend over an IMAP session (app password or XOAUTH2)."""

    def __init__(
        self,
        session_provider: GoogleSessionProvider | None = None,
        settings_repository: ImapSettingsRepository | None = None,
        client_factory=None,
        host: str | None = None,
        port: int | None = None,
        timeout: float | None = None,
    ):
        self.host = host or settings.IMAP_HOST
        self.port = port or settings.IMAP_PORT
        self.timeout = timeout or settings.IMAP_TIMEOUT
        self._session_provider = CachedSessionProvider(session_provider or google_session_provider)
        self._settings_repository = settings_repository or ImapSettingsRepository()
        self._client_factory = client_factory or self._create_client

    def _create_client(self) -> IMAPClient:
        return IMAPClient(self.host, port=self.port, ssl=True, use_uid=False, timeout=self.timeout)

    async def resolve_credentials(
        self, refresh_token: str, account_email: str, imap_settings: ImapSettings | None
    ) -> ImapCredentials:
        """
        Prefer a configured app password, otherwise mint an OAuth bearer token.

        Raises:
            MailAuthError: If neither credential can be produced
        """
        if imap_settings and imap_settings.uses_app_password:
            try:
                password = decrypt_secret(imap_settings.encrypted_secret, account_email)
            except EncryptionError as e:
                raise MailAuthError(
                    f"Stored IMAP app password could not be decrypted: {e}",
                    account_email=account_email,
                    auth_method=AUTH_METHOD_APP_PASSWORD,
                ) from e
            return ImapCredentials(AUTH_METHOD_APP_PASSWORD, account_email, password)

        try:
            session = await self._session_provider.get_mail_client(refresh_token)
            access_token = await session.get_access_token()
        except GoogleOAuthError as e:
            raise MailAuthError(
                f"Failed to get IMAP access token: {e}",
                account_email=account_email,
                auth_method=AUTH_METHOD_OAUTH,
            ) from e

        return ImapCredentials(AUTH_METHOD_OAUTH, session.account_email or account_email, access_token)

    def mailbox_candidates(self, *preferred: str | None) -> list[str]:
        candidates: list[str] = []
        for name in (*preferred, *MAILBOX_CANDIDATES):
            if name and name not in candidates:
                candidates.append(name)
        return candidates

    async def scan_batch(
        self,
        refresh_token: str,
        account_email: str,
        config: ScannerConfig,
        offset: Offset | None = None,
    ) -> BatchResult:
        imap_settings = await self._settings_repository.load(account_email)
        credentials = await self.resolve_credentials(refresh_token, account_email, imap_settings)
        candidates = self.mailbox_candidates(
            config.mailbox, imap_settings.mailbox if imap_settings else None
        )
        start = int(offset) if offset else 1

        return await asyncio.to_thread(
            self._scan_window, credentials, candidates, start, config.batch_size, account_email
        )

    def _login(self, client: IMAPClient, credentials: ImapCredentials, account_email: str) -> None:
        try:
            if credentials.auth_method == AUTH_METHOD_APP_PASSWORD:
                client.login(credentials.username, credentials.secret)
            else:
                client.oauth2_login(credentials.username, credentials.secret)
        except (IMAPClientError, OSError) as e:
            raise MailAuthError(
                f"IMAP authentication failed: {e}",
                account_email=account_email,
                auth_method=credentials.auth_method,
            ) from e

    def _open_mailbox(
        self, client: IMAPClient, candidates: list[str], account_email: str
    ) -> tuple[str, int]:
        for name in candidates:
            try:
                info = client.select_folder(name, readonly=True)
            except IMAPClientError as e:
                logger.debug("Mailbox not available", mailbox=name, error=str(e))
                continue
            return name, int(info.get(b"EXISTS", 0))

        raise MailboxNotFoundError(
            f"No usable mailbox found (tried: {', '.join(candidates)})",
            account_email=account_email,
            tried=candidates,
        )

    def _close(self, client: IMAPClient) -> None:
        try:
            client.logout()
        except (IMAPClientError, OSError) as e:
            logger.debug("IMAP logout failed, shutting socket down", error=str(e))
            try:
                client.shutdown()
            except (IMAPClientError, OSError) as shutdown_error:
                logger.error("IMAP shutdown failed", error=str(shutdown_error))

    def _scan_window(
        self,
        credentials: ImapCredentials,
        candidates: list[str],
        start: int,
        batch_size: int,
        account_email: str,
    ) -> BatchResult:
        try:
            client = self._client_factory()
        except (IMAPClientError, OSError) as e:
            raise ScannerError(
                f"Could not connect to {self.host}:{self.port}: {e}", account_email=account_email
            ) from e

        try:
            self._login(client, credentials, account_email)
            mailbox, total = self._open_mailbox(client, candidates, account_email)

            end = min(start + batch_size - 1, total)
            if end < start:
                return BatchResult(processed=0, has_more=False)

            senders: set[str] = set()
            recipients: set[str] = set()
            processed = end - start + 1

            try:
                response = client.fetch(f"{start}:{end}", ["ENVELOPE"])
                for data in response.values():
                    envelope = data.get(b"ENVELOPE")
                    if envelope is None:
                        continue
                    senders.update(extract_emails_from_addresses(envelope_addresses(envelope.from_)))
                    for field_addresses in (envelope.to, envelope.cc, envelope.bcc):
                        recipients.update(
                            extract_emails_from_addresses(envelope_addresses(field_addresses))
                        )
            except (IMAPClientError, OSError) as e:
                logger.warning(
                    "IMAP batch fetch failed, treating window as empty",
                    account_email=account_email,
                    host=self.host,
                    auth_method=credentials.auth_method,
                    mailbox=mailbox,
                    range=f"{start}:{end}",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                senders.clear()
                recipients.clear()
                processed = 0

            has_more = end < total
            logger.debug(
                "IMAP window scanned",
                mailbox=mailbox,
                range=f"{start}:{end}",
                mailbox_total=total,
                senders=len(senders),
                recipients=len(recipients),
            )
            return BatchResult(
                senders=senders,
                recipients=recipients,
                processed=processed,
                has_more=has_more,
                next_offset=end + 1 if has_more else None,
            )
        finally:
            self._close(client)
