"""
Centralized scanner configuration.

Base configs per backend plus a few named presets built by shallow
override. Delays are in seconds.
"""

from dataclasses import dataclass, fields, replace
from typing import Any

SCANNER_TYPE_IMAP = "imap"
SCANNER_TYPE_GMAIL_API = "gmail-api"


@dataclass(frozen=True, slots=True)
class ScannerConfig:
    scanner_type: str
    # None means no per-invocation cap
    max_messages: int | None = None
    batch_size: int = 100
    delay_between_batches: float = 0.0
    use_persistence: bool = True
    # IMAP only; None falls back to the saved mailbox, then the localized All Mail names
    mailbox: str | None = None
    # Gmail API only
    query: str | None = None


SCANNER_CONFIGS: dict[str, ScannerConfig] = {
    "imap": ScannerConfig(
        scanner_type=SCANNER_TYPE_IMAP,
        max_messages=10000,
        batch_size=1000,  # IMAP fetches envelopes in bulk cheaply
        delay_between_batches=0.1,
        use_persistence=True,
    ),
    "gmail_api": ScannerConfig(
        scanner_type=SCANNER_TYPE_GMAIL_API,
        max_messages=2000,  # Gmail API quota
        query="",
        batch_size=50,
        delay_between_batches=1.0,
        use_persistence=True,
    ),
}

_CONFIG_FIELDS = {f.name for f in fields(ScannerConfig)}


def get_scanner_config(scanner_kind: str, overrides: dict[str, Any] | None = None) -> ScannerConfig:
    """
    Base config for a backend with optional overrides.

    Usage: get_scanner_config("imap", {"max_messages": 50000})
    """
    if scanner_kind not in SCANNER_CONFIGS:
        raise ValueError(
            f"Unknown scanner kind '{scanner_kind}'. "
            f"Available: {', '.join(sorted(SCANNER_CONFIGS))}"
        )

    overrides = overrides or {}
    unknown = set(overrides) - _CONFIG_FIELDS
    if unknown:
        raise ValueError(f"Unknown scanner config fields: {', '.join(sorted(unknown))}")

    return replace(SCANNER_CONFIGS[scanner_kind], **overrides)


def get_imap_config(overrides: dict[str, Any] | None = None) -> ScannerConfig:
    return get_scanner_config("imap", overrides)


def get_gmail_api_config(overrides: dict[str, Any] | None = None) -> ScannerConfig:
    return get_scanner_config("gmail_api", overrides)


SCANNER_PRESETS: dict[str, ScannerConfig] = {
    # Fast IMAP scan for testing
    "imap_fast": get_imap_config({"max_messages": 1000, "batch_size": 100}),
    # Thorough IMAP scan
    "imap_thorough": get_imap_config({"max_messages": 100000, "batch_size": 2000}),
    # Recent Gmail API scan
    "gmail_recent": get_gmail_api_config({"max_messages": 1000, "query": "newer_than:30d"}),
    # Full Gmail API scan
    "gmail_full": get_gmail_api_config({"max_messages": 2000}),
}
