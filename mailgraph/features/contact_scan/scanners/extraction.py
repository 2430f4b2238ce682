"""
Address extraction helpers.

Pure functions that turn header strings or structured envelope address
lists into lower-cased email addresses. Deduplication is left to the set
aggregation in the callers.
"""

import re
from collections.abc import Iterable, Mapping
from typing import Any

_SEPARATORS = re.compile(r"[,;]")
_ANGLE_ADDRESS = re.compile(r"<([^>]+)>")
_BARE_ADDRESS = re.compile(r"([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})")
_FULL_ADDRESS = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def extract_emails_from_header(raw: str | None) -> list[str]:
    """
    Extract addresses from a From/To/Cc/Bcc header value.

    Examples:
        'a@x.com'                   -> ['a@x.com']
        'Name <A@x.com>, b@y.com'   -> ['a@x.com', 'b@y.com']
        'Name <malformed@'          -> []
    """
    if not raw:
        return []

    emails: list[str] = []
    for part in _SEPARATORS.split(raw):
        token = part.strip()
        if not token:
            continue

        angle = _ANGLE_ADDRESS.search(token)
        if angle:
            candidate = angle.group(1).strip()
            if _FULL_ADDRESS.match(candidate):
                emails.append(candidate.lower())
            continue

        bare = _BARE_ADDRESS.search(token)
        if bare:
            emails.append(bare.group(1).lower())

    return emails


def _address_of(entry: Any) -> str | None:
    if isinstance(entry, Mapping):
        return entry.get("address")
    return getattr(entry, "address", None)


def extract_emails_from_addresses(addresses: Iterable[Any] | None) -> list[str]:
    """
    Lower-case the `address` field of structured envelope entries.

    None entries and entries without a non-empty address are dropped;
    input order and duplicates are kept.
    """
    if not addresses:
        return []

    emails: list[str] = []
    for entry in addresses:
        if entry is None:
            continue
        address = _address_of(entry)
        if isinstance(address, str) and address.strip():
            emails.append(address.strip().lower())
    return emails
