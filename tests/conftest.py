import os

# Settings are read at import time; pin the test environment first.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("ENCRYPTION_KEY", "MDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDAwMDA=")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")

import pytest  # noqa: E402

from mailgraph.features.contact_scan.domain.models import BatchResult  # noqa: E402
from mailgraph.features.contact_scan.jobs.registry import JobRegistry, job_registry  # noqa: E402
from mailgraph.features.contact_scan.repository import progress_repository  # noqa: E402
from mailgraph.features.contact_scan.repository.progress_repository import (  # noqa: E402
    InMemoryScanProgressStore,
)
from mailgraph.services.document_store import DocumentStore  # noqa: E402
from mailgraph.services.google_session_service import GoogleOAuthError, MailSession  # noqa: E402


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        self.store[key] = value
        return True

    async def set_if_absent(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        if key in self.store:
            return False
        self.store[key] = value
        return True

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def delete(self, key: str) -> bool:
        return self.store.pop(key, None) is not None


class FakeSessionProvider:
    """Stands in for GoogleSessionProvider without touching Google."""

    def __init__(self, account_email: str = "owner@example.com", fail: bool = False):
        self.account_email = account_email
        self.fail = fail
        self.calls: list[str] = []

    async def get_mail_client(self, refresh_token: str) -> MailSession:
        self.calls.append(refresh_token)
        if self.fail:
            raise GoogleOAuthError("Token refresh failed: invalid_grant", error_code="invalid_grant")
        return MailSession(
            account_email=self.account_email,
            access_token="access-token",
            refresh_token=refresh_token,
        )


class ScriptedScanner:
    """
    Backend that replays a list of BatchResults and records every call.

    Items may also be exceptions (raised) or callables taking the offset.
    """

    def __init__(self, batches):
        self.batches = list(batches)
        self.calls: list[dict] = []

    async def scan_batch(self, refresh_token, account_email, config, offset=None):
        self.calls.append({"offset": offset, "batch_size": config.batch_size})
        item = self.batches[len(self.calls) - 1]
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(offset)
        return item


def numbered_batches(total: int, batch_size: int, per_batch_contacts: int = 1) -> list[BatchResult]:
    """IMAP-like batches over `total` messages with 1-based numeric offsets."""
    batches = []
    start = 1
    index = 0
    while start <= total:
        end = min(start + batch_size - 1, total)
        has_more = end < total
        batches.append(
            BatchResult(
                senders={f"sender{index}-{n}@example.com" for n in range(per_batch_contacts)},
                recipients={"shared@example.com"},
                processed=end - start + 1,
                has_more=has_more,
                next_offset=end + 1 if has_more else None,
            )
        )
        start = end + 1
        index += 1
    return batches


@pytest.fixture(autouse=True)
def reset_process_state():
    job_registry.clear()
    progress_repository._default_store = None
    yield
    job_registry.clear()
    progress_repository._default_store = None


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def document_store(fake_redis):
    return DocumentStore(client=fake_redis)


@pytest.fixture
def registry():
    return JobRegistry()


@pytest.fixture
def progress_store():
    return InMemoryScanProgressStore()


@pytest.fixture
def session_provider():
    return FakeSessionProvider()


@pytest.fixture
def scripted_scanner():
    return ScriptedScanner


@pytest.fixture
def make_batches():
    return numbered_batches


@pytest.fixture
def failing_session_provider():
    return FakeSessionProvider(fail=True)
