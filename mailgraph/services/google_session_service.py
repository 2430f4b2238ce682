"""
Google session provider for mailbox scanning.
Turns a stored refresh token into a short-lived bearer token and resolves
the account email the token belongs to. Both scanner backends authenticate
through this module.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import httpx

from mailgraph.config import settings
from mailgraph.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GMAIL_PROFILE_URL = "https://gmail.googleapis.com/gmail/v1/users/me/profile"

# Request timeouts and retry configuration
REQUEST_TIMEOUT = 10  # seconds
MAX_RETRIES = 3
BACKOFF_FACTOR = 2  # 2, 4, 8 seconds
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}
TOKEN_EXPIRY_BUFFER = timedelta(minutes=2)


class GoogleOAuthError(Exception):
    """Custom exception for Google OAuth-related errors."""

    def __init__(
        self, message: str, error_code: str | None = None, response_data: dict | None = None
    ):
        super().__init__(message)
        self.error_code = error_code
        self.response_data = response_data or {}


@dataclass
class MailSession:
    """Authenticated view of one Gmail account."""

    account_email: str
    access_token: str
    refresh_token: str
    expires_at: datetime | None = None
    _provider: "GoogleSessionProvider | None" = field(default=None, repr=False)

    def is_expired(self) -> bool:
        if not self.expires_at:
            return False
        return datetime.now(UTC) + TOKEN_EXPIRY_BUFFER >= self.expires_at

    async def get_access_token(self) -> str:
        """Bearer token for protocol-level auth, refreshed when close to expiry."""
        if self.is_expired() and self._provider is not None:
            access_token, expires_at = await self._provider.refresh_access_token(
                self.refresh_token
            )
            self.access_token = access_token
            self.expires_at = expires_at
        return self.access_token


class GoogleSessionProvider:
    """Exchanges refresh tokens and resolves account identity."""

    def __init__(self, client_id: str | None = None, client_secret: str | None = None):
        self.client_id = client_id or settings.GOOGLE_CLIENT_ID
        self.client_secret = client_secret or settings.GOOGLE_CLIENT_SECRET

    def _validate_config(self) -> None:
        if not self.client_id:
            raise GoogleOAuthError("GOOGLE_CLIENT_ID not configured")
        if not self.client_secret:
            raise GoogleOAuthError("GOOGLE_CLIENT_SECRET not configured")

    async def _request_with_retry(
        self, client: httpx.AsyncClient, method: str, url: str, operation: str, **kwargs
    ) -> httpx.Response:
        """Perform a request with retry/backoff handling."""
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await client.request(method, url, **kwargs)

                if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                    wait_time = BACKOFF_FACTOR**attempt
                    logger.warning(
                        "Google transient status",
                        operation=operation,
                        status_code=response.status_code,
                        attempt=attempt,
                        wait_time=wait_time,
                    )
                    await asyncio.sleep(wait_time)
                    continue

                return response

            except httpx.RequestError as exc:
                if attempt == MAX_RETRIES:
                    raise

                wait_time = BACKOFF_FACTOR**attempt
                logger.warning(
                    "Google request error, retrying",
                    operation=operation,
                    attempt=attempt,
                    wait_time=wait_time,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                await asyncio.sleep(wait_time)

        raise GoogleOAuthError(f"{operation} failed: retries exhausted")

    async def refresh_access_token(self, refresh_token: str) -> tuple[str, datetime | None]:
        """
        Mint a fresh access token from a refresh token.

        Returns:
            (access_token, expires_at)

        Raises:
            GoogleOAuthError: If the exchange fails
        """
        self._validate_config()
        if not refresh_token:
            raise GoogleOAuthError("Refresh token is required", error_code="missing_refresh_token")

        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }

        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                response = await self._request_with_retry(
                    client,
                    "POST",
                    GOOGLE_TOKEN_URL,
                    "token_refresh",
                    data=data,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.RequestError as e:
            logger.error(
                "Network error during token refresh",
                refresh_token_preview=refresh_token[:12] + "...",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise GoogleOAuthError(f"Network error during token refresh: {e}") from e

        payload = self._parse_json(response, "token_refresh")
        if not response.is_success or not payload.get("access_token"):
            error_code = payload.get("error", "unknown")
            logger.error(
                "Token refresh failed",
                status_code=response.status_code,
                error_code=error_code,
            )
            raise GoogleOAuthError(
                f"Token refresh failed: {payload.get('error_description', error_code)}",
                error_code=error_code,
                response_data=payload,
            )

        expires_in = payload.get("expires_in")
        expires_at = (
            datetime.now(UTC) + timedelta(seconds=int(expires_in)) if expires_in else None
        )
        return payload["access_token"], expires_at

    async def get_account_email(self, access_token: str) -> str:
        """Resolve the account email from userinfo, falling back to the Gmail profile."""
        headers = {"Authorization": f"Bearer {access_token}", "Accept": "application/json"}

        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                response = await self._request_with_retry(
                    client, "GET", GOOGLE_USERINFO_URL, "userinfo", headers=headers
                )
                if response.is_success:
                    email = self._parse_json(response, "userinfo").get("email")
                    if email:
                        return email.lower()

                response = await self._request_with_retry(
                    client, "GET", GMAIL_PROFILE_URL, "gmail_profile", headers=headers
                )
                if response.is_success:
                    email = self._parse_json(response, "gmail_profile").get("emailAddress")
                    if email:
                        return email.lower()
        except httpx.RequestError as e:
            logger.error(
                "Network error resolving account email",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise GoogleOAuthError(f"Network error resolving account email: {e}") from e

        raise GoogleOAuthError("Unable to read Gmail account email from token")

    async def get_mail_client(self, refresh_token: str) -> MailSession:
        """
        Build an authenticated MailSession for a refresh token.

        Raises:
            GoogleOAuthError: If the token cannot be exchanged or the account resolved
        """
        access_token, expires_at = await self.refresh_access_token(refresh_token)
        account_email = await self.get_account_email(access_token)

        logger.info("Mail session established", account_email=account_email)
        return MailSession(
            account_email=account_email,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            _provider=self,
        )

    def _parse_json(self, response: httpx.Response, operation: str) -> dict:
        try:
            data = response.json() if response.text else {}
        except ValueError:
            logger.error(
                f"Non-JSON response during {operation}",
                status_code=response.status_code,
                response_text=response.text[:200] if response.text else "",
            )
            return {}
        return data if isinstance(data, dict) else {}


class CachedSessionProvider:
    """
    Reuses one MailSession per refresh token.

    Scanners call get_mail_client once per batch; the cached session refreshes
    its own bearer token near expiry, so only the first batch pays for the
    token exchange and account lookup.
    """

    def __init__(self, provider):
        self._provider = provider
        self._sessions: dict[str, MailSession] = {}

    async def get_mail_client(self, refresh_token: str) -> MailSession:
        session = self._sessions.get(refresh_token)
        if session is None:
            session = await self._provider.get_mail_client(refresh_token)
            self._sessions[refresh_token] = session
        return session


google_session_provider = GoogleSessionProvider()
