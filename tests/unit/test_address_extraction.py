"""
Tests for header and envelope address extraction.
"""

import pytest

from mailgraph.features.contact_scan.scanners.extraction import (
    extract_emails_from_addresses,
    extract_emails_from_header,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("a@x.com", ["a@x.com"]),
        ("Name <a@x.com>", ["a@x.com"]),
        ("a@x.com, b@y.com", ["a@x.com", "b@y.com"]),
        ("", []),
        (None, []),
        ("not-an-email", []),
        ("Name <malformed@", []),
        ("Alice <Alice@Example.COM>; bob@y.org", ["alice@example.com", "bob@y.org"]),
        ("Broken <not-an-address>, c@z.io", ["c@z.io"]),
        ('"Doe, Jane" <jane@corp.com>', ["jane@corp.com"]),
    ],
)
def test_extract_emails_from_header(raw, expected):
    assert extract_emails_from_header(raw) == expected


def test_header_keeps_duplicates_for_set_layer():
    assert extract_emails_from_header("a@x.com, A@x.com") == ["a@x.com", "a@x.com"]


def test_extract_emails_from_addresses_filters_and_lowercases():
    addresses = [
        {"name": "A", "address": "A@X.com"},
        None,
        {"name": "No address"},
        {"address": ""},
        {"address": "b@y.com"},
        {"address": "a@x.com"},
    ]

    assert extract_emails_from_addresses(addresses) == ["a@x.com", "b@y.com", "a@x.com"]


def test_extract_emails_from_addresses_accepts_objects():
    class Addr:
        def __init__(self, address):
            self.address = address

    assert extract_emails_from_addresses([Addr("Z@Q.io"), Addr(None)]) == ["z@q.io"]


def test_extract_emails_from_addresses_empty():
    assert extract_emails_from_addresses(None) == []
    assert extract_emails_from_addresses([]) == []
