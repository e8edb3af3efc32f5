"""wardflow: orchestration core for ward provisioning, 2FA, and transaction routing."""

__version__ = "1.0.0"

from .errors import (
    ApprovalTimeoutError,
    AuthenticationError,
    ConfirmationTimeoutError,
    FeeInsufficientError,
    PolicyError,
    RetryExhaustedError,
    StepExecutionError,
    TerminalError,
    ValidationError,
    WardflowError,
)
from .orchestration.fee_retry import FeePrompt, FeeRetryController
from .orchestration.pipeline import RunResult, StepDescriptor, StepPipeline
from .orchestration.router import RouteResult, TransactionRouter
from .orchestration.two_factor import TwoFactorWorkflow
from .orchestration.ward_provisioning import WardProvisioningWorkflow
from .session import WalletSession

__all__ = [
    "__version__",
    "ApprovalTimeoutError",
    "AuthenticationError",
    "ConfirmationTimeoutError",
    "FeeInsufficientError",
    "FeePrompt",
    "FeeRetryController",
    "PolicyError",
    "RetryExhaustedError",
    "RouteResult",
    "RunResult",
    "StepDescriptor",
    "StepExecutionError",
    "StepPipeline",
    "TerminalError",
    "TransactionRouter",
    "TwoFactorWorkflow",
    "ValidationError",
    "WalletSession",
    "WardProvisioningWorkflow",
    "WardflowError",
]
