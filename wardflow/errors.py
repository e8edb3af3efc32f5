"""Error taxonomy shared by the pipelines, router, and retry controller."""
from __future__ import annotations

from typing import Optional


class WardflowError(Exception):
    """Base class for every error raised by wardflow."""


class ValidationError(WardflowError):
    """Raised when caller input is rejected before any side effect occurs.

    Funding amounts, token amounts, and missing resume records all surface
    as this error. Nothing has been written locally or remotely when it is
    raised, so the caller can correct the input and try again.
    """


class StepExecutionError(WardflowError):
    """A pipeline step failed.

    The message is the underlying failure's message, unchanged, so callers
    can show it directly. The failing step is available for branching.

    Attributes:
        step_index: 1-based index of the failing step
        step_label: Human label of the failing step
        cause: The original exception
    """

    def __init__(self, message: str, step_index: int, step_label: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.step_index = step_index
        self.step_label = step_label
        self.cause = cause

    @classmethod
    def from_exception(cls, exc: BaseException, step_index: int, step_label: str) -> "StepExecutionError":
        return cls(str(exc) or exc.__class__.__name__, step_index, step_label, exc)


class ConfirmationTimeoutError(WardflowError):
    """Transaction confirmation polling ran out of budget.

    The transaction may still land; resuming re-polls the same hash.
    """

    def __init__(self, tx_hash: str, polls: int):
        super().__init__(f"Transaction {tx_hash} not confirmed after {polls} polls")
        self.tx_hash = tx_hash
        self.polls = polls


class PolicyError(WardflowError):
    """Ward policy rejected a transaction before any network call.

    Attributes:
        reason: Machine-readable reason code (for example ``WARD_FROZEN``)
    """

    def __init__(self, message: str, reason: str):
        super().__init__(message)
        self.reason = reason


class FeeInsufficientError(WardflowError):
    """The chain rejected a transaction because its fee bound was too low.

    Attributes:
        resource: Resource named by the chain (``fee``, ``l1_gas``, ...)
        max_amount: Fee bound that was submitted
        actual_used: Amount the chain reported as required
        suggested_multiplier: Multiplier that would have covered the shortfall
    """

    def __init__(self, message: str, resource: str, max_amount: int, actual_used: int, suggested_multiplier: float):
        super().__init__(message)
        self.resource = resource
        self.max_amount = max_amount
        self.actual_used = actual_used
        self.suggested_multiplier = suggested_multiplier


class TerminalError(WardflowError):
    """A failure that no component will retry automatically."""


class ApprovalTimeoutError(TerminalError):
    """A secondary-device or guardian approval was not granted in time."""

    def __init__(self, approval_id: str, timeout: float):
        super().__init__(f"Approval {approval_id} not granted within {timeout:.0f}s")
        self.approval_id = approval_id
        self.timeout = timeout


class RetryExhaustedError(TerminalError):
    """Raised when the fee retry budget has been used up.

    Attributes:
        attempts: Number of submissions made
        last_error: The final failure
    """

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"Transaction failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class AuthenticationError(TerminalError):
    """Local (biometric or passcode) authentication was refused."""
