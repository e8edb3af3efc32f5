"""Starknet address normalization helpers."""
from __future__ import annotations

import re

_HEX_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{1,64}$")


def is_valid_address(address: str) -> bool:
    return isinstance(address, str) and bool(_HEX_ADDRESS_RE.match(address))


def pad_address(address: str) -> str:
    """Left-pad an address to the full 64 hex digits.

    Raises:
        ValueError: If the value is not a 0x-prefixed hex address
    """
    if not is_valid_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return "0x" + address[2:].lower().rjust(64, "0")


def normalize_address(address: str) -> str:
    """Canonical comparison form: lowercase with leading zeros stripped."""
    if not is_valid_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return "0x" + (address[2:].lower().lstrip("0") or "0")
