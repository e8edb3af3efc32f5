"""Supported tokens and amount conversion.

Three unit formats are in play:

- Tongo units: integer shielded-balance units
- base units: the ERC-20 smallest unit (wei for STRK/ETH)
- display: a human decimal string such as ``"0.05"``

One Tongo unit equals ``rate`` base units of its token.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Union

from .errors import ValidationError

_DECIMAL_RE = re.compile(r"^\d+(\.\d+)?$")
_HEX_RE = re.compile(r"^0x[0-9a-fA-F]+$")


@dataclass(frozen=True)
class TokenConfig:
    """Static configuration of a supported token."""

    symbol: str
    name: str
    decimals: int
    erc20_address: str
    tongo_contract: str
    rate: int


TOKENS: Dict[str, TokenConfig] = {
    "STRK": TokenConfig(
        symbol="STRK",
        name="Starknet Token",
        decimals=18,
        erc20_address="0x04718f5a0fc34cc1af16a1cdee98ffb20c31f5cd61d6ab07201858f4287c938d",
        tongo_contract="0x0408163bfcfc2d76f34b444cb55e09dace5905cf84c0884e4637c2c0f06ab6ed",
        rate=50000000000000000,
    ),
    "ETH": TokenConfig(
        symbol="ETH",
        name="Ethereum",
        decimals=18,
        erc20_address="0x049d36570d4e46f48e99674bd3fcc84644ddd6b96f7c741b1562b82f9e004dc7",
        tongo_contract="0x02cf0dc1d9e8c7731353dd15e6f2f22140120ef2d27116b982fa4fed87f6fef5",
        rate=3000000000000,
    ),
    "USDC": TokenConfig(
        symbol="USDC",
        name="USD Coin",
        decimals=6,
        erc20_address="0x053b40a647cedfca6ca84f542a0fe36736031905a9639a7f19a3c1e66bfd5080",
        tongo_contract="0x02caae365e67921979a4e5c16dd70eaa5776cfc6a9592bcb903d91933aaf2552",
        rate=10000,
    ),
}


def get_token(symbol: str) -> TokenConfig:
    """Look up a token by symbol.

    Raises:
        ValidationError: If the token is not supported
    """
    try:
        return TOKENS[symbol.upper()]
    except KeyError:
        raise ValidationError(f"Unsupported token: {symbol}") from None


def parse_token_amount(amount: str, decimals: int) -> int:
    """Parse a display amount into base units.

    Args:
        amount: Decimal string such as ``"0.5"`` or ``"12"``
        decimals: Token decimals

    Returns:
        Amount in base units

    Raises:
        ValidationError: If the string is malformed or more precise than the token allows
    """
    text = amount.strip() if isinstance(amount, str) else ""
    if not _DECIMAL_RE.match(text):
        raise ValidationError(f"Invalid amount: {amount!r}")

    whole, _, frac = text.partition(".")
    if len(frac) > decimals:
        raise ValidationError(f"Amount {amount} has more than {decimals} decimal places")
    return int(whole) * 10**decimals + int(frac.ljust(decimals, "0") or "0")


def format_token_amount(amount: int, decimals: int, max_decimals: int = 4) -> str:
    """Render base units as a trimmed decimal string."""
    whole, remainder = divmod(amount, 10**decimals)
    if remainder == 0:
        return str(whole)
    trimmed = str(remainder).rjust(decimals, "0")[:max_decimals].rstrip("0")
    return f"{whole}.{trimmed}" if trimmed else str(whole)


def to_tongo_units(amount: str, token: Union[str, TokenConfig]) -> int:
    """Convert a display amount into whole Tongo units.

    Raises:
        ValidationError: If the amount is malformed, non-positive, or not an
            exact multiple of the token's unit size
    """
    cfg = token if isinstance(token, TokenConfig) else get_token(token)
    base = parse_token_amount(amount, cfg.decimals)
    if base <= 0:
        raise ValidationError("Amount must be greater than zero")

    units, remainder = divmod(base, cfg.rate)
    if remainder:
        step = format_token_amount(cfg.rate, cfg.decimals, max_decimals=cfg.decimals)
        raise ValidationError(f"Amount must be a multiple of {step} {cfg.symbol}")
    return units


def tongo_units_to_base(units: int, token: Union[str, TokenConfig]) -> int:
    cfg = token if isinstance(token, TokenConfig) else get_token(token)
    return units * cfg.rate


def parse_funding_amount(value: Union[str, int]) -> int:
    """Normalize a ward funding amount into STRK base units.

    Accepts an integer, a ``0x`` hex base-unit string, or a decimal STRK
    display string.

    Raises:
        ValidationError: If the value is malformed or not positive
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid funding amount: {value!r}")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, str) and _HEX_RE.match(value.strip()):
        amount = int(value.strip(), 16)
    elif isinstance(value, str):
        amount = parse_token_amount(value, TOKENS["STRK"].decimals)
    else:
        raise ValidationError(f"Invalid funding amount: {value!r}")

    if amount <= 0:
        raise ValidationError("Funding amount must be greater than zero")
    return amount


def format_wei_to_strk(amount: int) -> str:
    """Format STRK base units for progress messages (up to 6 decimals)."""
    return format_token_amount(amount, TOKENS["STRK"].decimals, max_decimals=6)
