"""Workflow orchestration: the step pipeline and the workflows built on it."""

from .fee_retry import FeePrompt, FeeRetryController, RetryState, parse_insufficient_fee
from .pipeline import PipelineRun, PipelineStatus, RunResult, StepDescriptor, StepPipeline
from .router import RouteResult, TransactionRouter, evaluate_ward_limits
from .two_factor import TwoFactorWorkflow
from .ward_provisioning import WardProvisioningWorkflow

__all__ = [
    "FeePrompt",
    "FeeRetryController",
    "PipelineRun",
    "PipelineStatus",
    "RetryState",
    "RouteResult",
    "RunResult",
    "StepDescriptor",
    "StepPipeline",
    "TransactionRouter",
    "TwoFactorWorkflow",
    "WardProvisioningWorkflow",
    "evaluate_ward_limits",
    "parse_insufficient_fee",
]
