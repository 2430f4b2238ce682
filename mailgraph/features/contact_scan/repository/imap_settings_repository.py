"""
Alternate-credential (IMAP app password) settings per account.
"""

from dataclasses import dataclass

from mailgraph.infrastructure.observability.logging import get_logger
from mailgraph.services.document_store import DocumentStore, document_store

logger = get_logger(__name__)

IMAP_SETTINGS_COLLECTION = "imapSettings"


@dataclass(slots=True)
class ImapSettings:
    enabled: bool = False
    setup_completed: bool = False
    encrypted_secret: str | None = None
    mailbox: str | None = None
    max_messages: int | None = None

    @property
    def uses_app_password(self) -> bool:
        return bool(self.enabled and self.setup_completed and self.encrypted_secret)

    def to_document(self) -> dict:
        return {
            "enabled": self.enabled,
            "setupCompleted": self.setup_completed,
            "appPassword": self.encrypted_secret,
            "mailbox": self.mailbox,
            "maxMessages": self.max_messages,
        }

    @classmethod
    def from_document(cls, data: dict) -> "ImapSettings":
        max_messages = data.get("maxMessages")
        return cls(
            enabled=bool(data.get("enabled", False)),
            setup_completed=bool(data.get("setupCompleted", False)),
            encrypted_secret=data.get("appPassword") or None,
            mailbox=data.get("mailbox") or None,
            max_messages=int(max_messages) if max_messages else None,
        )


class ImapSettingsRepository:
    """Document-store helpers for imapSettings."""

    def __init__(self, store: DocumentStore | None = None):
        self._store = store or document_store

    async def load(self, account_email: str) -> ImapSettings | None:
        data = await self._store.get_document(IMAP_SETTINGS_COLLECTION, account_email)
        return ImapSettings.from_document(data) if data else None

    async def save(self, account_email: str, imap_settings: ImapSettings) -> bool:
        ok = await self._store.set_document(
            IMAP_SETTINGS_COLLECTION, account_email, imap_settings.to_document(), merge=True
        )
        if not ok:
            logger.warning("Failed to save IMAP settings", account_email=account_email)
        return ok
