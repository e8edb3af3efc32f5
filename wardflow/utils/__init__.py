"""Shared utilities: logging, address handling, and bounded polling."""

from .addresses import normalize_address, pad_address
from .logger import configure_logger, get_logger

__all__ = [
    "configure_logger",
    "get_logger",
    "normalize_address",
    "pad_address",
]
