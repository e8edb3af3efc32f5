"""Data models for wards, transactions, and 2FA sessions."""

from .transaction import (
    AccountContext,
    ActionKind,
    Call,
    DeployResult,
    ExecutionPath,
    KeyPair,
    PreparedTransaction,
    TransactionIntent,
    TxStatus,
)
from .two_factor import TwoFactorAction, TwoFactorSession, TwoFactorStep
from .ward import PartialWardRecord, WardAccount, WardStatus

__all__ = [
    "AccountContext",
    "ActionKind",
    "Call",
    "DeployResult",
    "ExecutionPath",
    "KeyPair",
    "PartialWardRecord",
    "PreparedTransaction",
    "TransactionIntent",
    "TwoFactorAction",
    "TwoFactorSession",
    "TwoFactorStep",
    "TxStatus",
    "WardAccount",
    "WardStatus",
]
