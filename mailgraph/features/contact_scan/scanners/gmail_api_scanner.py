"""
Gmail REST API scanner.

Each batch lists one page of message IDs, then fetches header metadata
(From/To/Cc/Bcc only) for every ID concurrently. Offsets are opaque page
tokens returned by the listing call.
"""

import asyncio

import httpx

from mailgraph.config import settings
from mailgraph.infrastructure.observability.logging import get_logger
from mailgraph.services.google_session_service import (
    CachedSessionProvider,
    GoogleOAuthError,
    GoogleSessionProvider,
    google_session_provider,
)

from ..domain.models import BatchResult, Offset
from .errors import MailAuthError, ScannerError
from .extraction import extract_emails_from_header
from .scanner_config import ScannerConfig

logger = get_logger(__name__)

GMAIL_API_BASE_URL = "https://gmail.googleapis.com/gmail/v1"
GMAIL_USER_ID = "me"
GMAIL_MAX_PAGE_SIZE = 500

REQUEST_TIMEOUT = 30  # seconds
SENDER_HEADERS = ("from",)
RECIPIENT_HEADERS = ("to", "cc", "bcc")
METADATA_HEADERS = ["From", "To", "Cc", "Bcc"]


class GmailApiError(ScannerError):
    """Gmail REST API call failed."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code
        self.response_data = response_data or {}


def _map_gmail_error(status_code: int, error_message: str) -> str:
    """Map Gmail API status codes to user-friendly messages."""
    error_mappings = {
        400: "Invalid Gmail request format.",
        401: "Gmail authorization expired. Please reconnect.",
        403: "Gmail access denied. Please check permissions.",
        404: "Gmail message not found.",
        429: "Too many Gmail requests. Please try again later.",
        500: "Gmail service temporarily unavailable.",
    }
    return error_mappings.get(status_code, f"Gmail error: {error_message}")


def _handle_api_response(response: httpx.Response, operation: str) -> dict:
    """
    Parse a Gmail API response.

    Raises:
        GmailApiError: If the response is an error or not JSON
    """
    if response.is_success:
        try:
            return response.json() if response.text else {}
        except ValueError as e:
            logger.error(f"Failed to parse Gmail API {operation} response", error=str(e))
            raise GmailApiError(f"Invalid response format: {e}") from e

    try:
        error_data = response.json() if response.text else {}
    except ValueError:
        logger.error(
            f"Gmail API {operation} failed with non-JSON response",
            status_code=response.status_code,
            response_text=response.text[:200] if response.text else "",
        )
        raise GmailApiError(
            f"Gmail API error (HTTP {response.status_code})",
            status_code=response.status_code,
        ) from None

    error_info = error_data.get("error", {}) if isinstance(error_data, dict) else {}
    error_message = error_info.get("message", "Unknown Gmail API error")
    logger.error(
        f"Gmail API {operation} failed",
        status_code=response.status_code,
        error_message=error_message,
    )
    raise GmailApiError(
        _map_gmail_error(response.status_code, error_message),
        error_code=str(error_info.get("code", response.status_code)),
        status_code=response.status_code,
        response_data=error_data,
    )


def headers_by_name(message: dict) -> dict[str, str]:
    """Lower-cased header name -> value from a metadata-format message."""
    headers = message.get("payload", {}).get("headers", []) or []
    return {h.get("name", "").lower(): h.get("value", "") for h in headers if h.get("name")}


class GmailApiScanner:
    """Scanner backend over the Gmail REST API."""

    def __init__(
        self,
        session_provider: GoogleSessionProvider | None = None,
        client_factory=None,
        stagger_seconds: float | None = None,
    ):
        self._session_provider = CachedSessionProvider(session_provider or google_session_provider)
        self._client_factory = client_factory or (lambda: httpx.AsyncClient(timeout=REQUEST_TIMEOUT))
        self.stagger_seconds = (
            settings.GMAIL_FETCH_STAGGER_SECONDS if stagger_seconds is None else stagger_seconds
        )

    async def _get_access_token(self, refresh_token: str, account_email: str) -> str:
        try:
            session = await self._session_provider.get_mail_client(refresh_token)
            return await session.get_access_token()
        except GoogleOAuthError as e:
            raise MailAuthError(
                f"Failed to get Gmail access token: {e}",
                account_email=account_email,
                auth_method="oauth2",
            ) from e

    async def _list_message_ids(
        self,
        client: httpx.AsyncClient,
        headers: dict,
        config: ScannerConfig,
        page_token: str | None,
    ) -> tuple[list[str], str | None]:
        params: dict = {"maxResults": min(config.batch_size, GMAIL_MAX_PAGE_SIZE)}
        if config.query:
            params["q"] = config.query
        if page_token:
            params["pageToken"] = page_token

        try:
            response = await client.get(
                f"{GMAIL_API_BASE_URL}/users/{GMAIL_USER_ID}/messages",
                headers=headers,
                params=params,
            )
        except httpx.RequestError as e:
            logger.error("Network error listing Gmail messages", error=str(e))
            raise GmailApiError(f"Network error listing messages: {e}") from e

        data = _handle_api_response(response, "list_messages")
        message_ids = [msg["id"] for msg in data.get("messages", []) or [] if msg.get("id")]
        return message_ids, data.get("nextPageToken") or None

    async def _fetch_headers(
        self, client: httpx.AsyncClient, headers: dict, message_id: str, index: int
    ) -> dict[str, str] | None:
        # Spread request start times so a page doesn't hit the API in one burst
        if self.stagger_seconds and index:
            await asyncio.sleep(index * self.stagger_seconds)

        try:
            response = await client.get(
                f"{GMAIL_API_BASE_URL}/users/{GMAIL_USER_ID}/messages/{message_id}",
                headers=headers,
                params=[("format", "metadata")]
                + [("metadataHeaders", name) for name in METADATA_HEADERS],
            )
            return headers_by_name(_handle_api_response(response, "get_message"))
        except (GmailApiError, httpx.RequestError) as e:
            logger.warning("Failed to get message headers", message_id=message_id, error=str(e))
            return None

    async def scan_batch(
        self,
        refresh_token: str,
        account_email: str,
        config: ScannerConfig,
        offset: Offset | None = None,
    ) -> BatchResult:
        access_token = await self._get_access_token(refresh_token, account_email)
        auth_headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        page_token = str(offset) if offset else None

        async with self._client_factory() as client:
            message_ids, next_page_token = await self._list_message_ids(
                client, auth_headers, config, page_token
            )
            if not message_ids:
                return BatchResult(
                    processed=0,
                    has_more=bool(next_page_token),
                    next_offset=next_page_token,
                )

            results = await asyncio.gather(
                *(
                    self._fetch_headers(client, auth_headers, message_id, index)
                    for index, message_id in enumerate(message_ids)
                )
            )

        senders: set[str] = set()
        recipients: set[str] = set()
        failed = 0
        for message_headers in results:
            if message_headers is None:
                failed += 1
                continue
            for name in SENDER_HEADERS:
                senders.update(extract_emails_from_header(message_headers.get(name)))
            for name in RECIPIENT_HEADERS:
                recipients.update(extract_emails_from_header(message_headers.get(name)))

        logger.debug(
            "Gmail API page scanned",
            account_email=account_email,
            listed=len(message_ids),
            failed=failed,
            senders=len(senders),
            recipients=len(recipients),
        )
        return BatchResult(
            senders=senders,
            recipients=recipients,
            processed=len(message_ids),
            has_more=bool(next_page_token),
            next_offset=next_page_token,
        )
