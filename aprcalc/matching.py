"""Address helpers and opportunity-identifier matching."""

from __future__ import annotations

import re

_ADDRESS_RE = re.compile(r"0x[a-fA-F0-9]{40}")
_IDENTIFIER_SUFFIX_RE = re.compile(r"^0x[a-fA-F0-9]{40}(.*)$")


def is_address(value: str | None) -> bool:
    """Strict hex address check (0x + 40 hex chars)."""
    return bool(value) and _ADDRESS_RE.fullmatch(value) is not None


def addresses_equal(left: str | None, right: str | None) -> bool:
    """Case-insensitive address equality; malformed addresses never match."""
    if not is_address(left) or not is_address(right):
        return False
    return left.lower() == right.lower()


def identifier_matches_address(identifier: str | None, address: str | None) -> bool:
    """
    Does a Merkl opportunity identifier point at `address`?

    Identifiers are either the bare target address or the address followed by
    a program-specific suffix, so a prefix match is enough.
    """
    if not identifier or not address:
        return False
    normalized_identifier = identifier.lower()
    normalized_address = address.lower()
    return normalized_identifier == normalized_address or normalized_identifier.startswith(
        normalized_address
    )


def identifier_address(identifier: str | None) -> str | None:
    """Leading address of an identifier, if it starts with one."""
    if not identifier:
        return None
    match = _IDENTIFIER_SUFFIX_RE.match(identifier)
    return identifier[:42] if match else None


def identifier_suffix(identifier: str | None) -> str | None:
    """
    Uppercased suffix after the leading address, e.g. "0xabc...-jumper" -> "JUMPER".

    Leading separators are stripped; returns None when there is no suffix.
    """
    if not identifier:
        return None
    match = _IDENTIFIER_SUFFIX_RE.match(identifier)
    if not match:
        return None
    cleaned = re.sub(r"^[^a-zA-Z0-9]+", "", match.group(1))
    return cleaned.upper() or None
