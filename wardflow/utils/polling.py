"""Bounded polling for transaction confirmation and approvals."""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from ..errors import ConfirmationTimeoutError
from ..models.transaction import TxStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class PollBudget:
    """How long to keep polling before giving up.

    Attributes:
        max_polls: Maximum number of status reads
        interval: Delay in seconds before the second read
        max_interval: Ceiling for the growing delay
        backoff: Growth factor applied after each read
        jitter: Whether to add ±25% random jitter to each delay
    """

    max_polls: int = 60
    interval: float = 2.0
    max_interval: float = 10.0
    backoff: float = 1.5
    jitter: bool = False

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.max_polls < 1:
            raise ValueError("max_polls must be at least 1")
        if self.interval < 0:
            raise ValueError("interval must be non-negative")
        if self.max_interval < self.interval:
            raise ValueError("max_interval must be >= interval")
        if self.backoff < 1:
            raise ValueError("backoff must be >= 1")

    def delay(self, poll: int) -> float:
        """Delay before the given 0-based poll, capped at ``max_interval``."""
        if poll == 0:
            return 0.0
        delay = min(self.interval * (self.backoff ** (poll - 1)), self.max_interval)
        if self.jitter:
            jitter_range = delay * 0.25
            delay += random.uniform(-jitter_range, jitter_range)
        return max(0.0, min(delay, self.max_interval))


async def poll_until(
    fetch: Callable[[], Awaitable[T]],
    is_done: Callable[[T], bool],
    budget: PollBudget,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Optional[T]:
    """Read ``fetch`` until ``is_done`` holds or the budget runs out.

    Returns:
        The first value accepted by ``is_done``, or None when the budget is spent
    """
    for poll in range(budget.max_polls):
        delay = budget.delay(poll)
        if delay:
            await sleep(delay)
        value = await fetch()
        if is_done(value):
            return value
    return None


async def wait_for_confirmation(
    get_status: Callable[[str], Awaitable[TxStatus]],
    tx_hash: str,
    budget: PollBudget,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Wait until a transaction is accepted on chain.

    Args:
        get_status: Chain status query
        tx_hash: Transaction to watch
        budget: Poll budget
        sleep: Awaitable sleep, injectable for tests

    Raises:
        RuntimeError: If the chain reports the transaction as rejected
        ConfirmationTimeoutError: If the budget runs out while still pending
    """
    status = await poll_until(
        lambda: get_status(tx_hash),
        lambda s: s != TxStatus.PENDING,
        budget,
        sleep,
    )
    if status is None:
        logger.warning(f"Confirmation budget exhausted for {tx_hash}")
        raise ConfirmationTimeoutError(tx_hash, budget.max_polls)
    if status == TxStatus.REJECTED:
        raise RuntimeError(f"Transaction {tx_hash} was rejected")
    logger.debug(f"Transaction {tx_hash} accepted")
