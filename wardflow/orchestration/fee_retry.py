"""User-confirmed retry of transactions rejected for insufficient fees."""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Sequence

from ..config import MAX_FEE_RETRIES
from ..errors import FeeInsufficientError, RetryExhaustedError, TerminalError
from ..models.transaction import TransactionIntent

if TYPE_CHECKING:
    from .router import RouteResult, TransactionRouter

logger = logging.getLogger(__name__)

INSUFFICIENT_FEE_RE = re.compile(
    r"Insufficient max (\w+):\s*max amount:\s*(\d+),\s*actual used:\s*(\d+)",
    re.IGNORECASE,
)
MIN_SUGGESTED_MULTIPLIER = 1.5
# Headroom over the amount the chain reported as used
FEE_HEADROOM = 1.3


def parse_insufficient_fee(message: str) -> Optional[Dict[str, Any]]:
    """Parse a sequencer "Insufficient max ..." error.

    Example: ``"Insufficient max L2Gas: max amount: 800000, actual used: 809800."``

    Returns:
        Dict with resource, max_amount, actual_used, suggested_multiplier;
        None if the message is not a fee error
    """
    match = INSUFFICIENT_FEE_RE.search(message or "")
    if not match:
        return None
    max_amount = int(match.group(2))
    actual_used = int(match.group(3))
    suggested = MIN_SUGGESTED_MULTIPLIER
    if max_amount > 0:
        suggested = max(math.ceil(actual_used / max_amount * FEE_HEADROOM * 100) / 100, MIN_SUGGESTED_MULTIPLIER)
    return {
        "resource": match.group(1),
        "max_amount": max_amount,
        "actual_used": actual_used,
        "suggested_multiplier": suggested,
    }


@dataclass
class FeePrompt:
    """What the user is asked to confirm before a fee retry."""

    attempt: int
    max_attempts: int
    resource: str
    estimated_fee: int
    actual_fee: int
    suggested_multiplier: float
    message: str


@dataclass
class RetryState:
    """Retry bookkeeping for one logical intent."""

    max_attempts: int = MAX_FEE_RETRIES
    attempt: int = 0
    last_error: Optional[BaseException] = None
    multipliers: List[float] = field(default_factory=list)

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts


class FeeRetryController:
    """Wraps one router execution with bounded, confirmed fee retries.

    Only insufficient-fee failures are retried, at most three times, and
    only after ``confirm`` returns True. Any other failure propagates as is.
    """

    def __init__(
        self,
        router: "TransactionRouter",
        confirm: Callable[[FeePrompt], Awaitable[bool]],
        max_attempts: Optional[int] = None,
        schedule: Optional[Sequence[float]] = None,
        ceiling: Optional[float] = None,
    ):
        config = router.session.config
        self.router = router
        self.confirm = confirm
        self.max_attempts = min(MAX_FEE_RETRIES, config.fee_retry_max_attempts if max_attempts is None else max_attempts)
        self.schedule = list(schedule or config.fee_multiplier_schedule)
        self.ceiling = ceiling if ceiling is not None else config.fee_multiplier_ceiling
        self.state: Optional[RetryState] = None

    async def run(self, intent: TransactionIntent) -> "RouteResult":
        """Execute ``intent``, offering a fee retry after each fee rejection.

        Raises:
            RetryExhaustedError: The retry budget is used up
            TerminalError: The user declined a retry
            Exception: Any non-fee failure, unchanged
        """
        state = RetryState(max_attempts=self.max_attempts)
        self.state = state
        multiplier = 1.0

        while True:
            try:
                return await self.router.execute(intent, fee_multiplier=multiplier)
            except Exception as e:
                state.last_error = e
                fee = self._fee_details(e)
                if fee is None:
                    logger.error(f"Transaction failed with a non-fee error: {e}")
                    raise
                if state.exhausted:
                    logger.error(f"Fee retries exhausted after {state.attempt} retries")
                    raise RetryExhaustedError(state.attempt + 1, e) from e

                multiplier = self.next_multiplier(fee["suggested_multiplier"], state)
                prompt = FeePrompt(
                    attempt=state.attempt + 1,
                    max_attempts=state.max_attempts,
                    resource=fee["resource"],
                    estimated_fee=fee["max_amount"],
                    actual_fee=fee["actual_used"],
                    suggested_multiplier=multiplier,
                    message=str(e),
                )
                if not await self.confirm(prompt):
                    logger.info("Fee retry declined by user")
                    raise TerminalError(f"Fee retry declined: {e}") from e

                state.attempt += 1
                state.multipliers.append(multiplier)
                logger.info(f"Retrying with fee multiplier {multiplier} (retry {state.attempt}/{state.max_attempts})")

    def next_multiplier(self, suggested: float, state: RetryState) -> float:
        """Multiplier for the next retry: increasing per attempt, capped at the ceiling."""
        scheduled = self.schedule[min(state.attempt, len(self.schedule) - 1)]
        previous = state.multipliers[-1] if state.multipliers else 1.0
        candidate = max(suggested, scheduled)
        if candidate <= previous:
            candidate = round(previous + 0.5, 2)
        return min(candidate, self.ceiling)

    @staticmethod
    def _fee_details(exc: BaseException) -> Optional[Dict[str, Any]]:
        if isinstance(exc, FeeInsufficientError):
            return {
                "resource": exc.resource,
                "max_amount": exc.max_amount,
                "actual_used": exc.actual_used,
                "suggested_multiplier": exc.suggested_multiplier,
            }
        return parse_insufficient_fee(str(exc))
