"""Transaction intent and chain-facing value objects."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as ModelValidationError

from ..errors import ValidationError
from ..tokens import TOKENS, get_token, to_tongo_units
from ..utils.addresses import is_valid_address


class ActionKind(str, Enum):
    FUND = "fund"
    WITHDRAW = "withdraw"
    TRANSFER = "transfer"
    ROLLOVER = "rollover"


class AccountContext(str, Enum):
    """Who is submitting the transaction."""

    NORMAL = "normal"
    WARD = "ward"
    GUARDIAN_FOR_WARD = "guardian_for_ward"


class ExecutionPath(str, Enum):
    DIRECT = "direct"
    DUAL_SIGN = "dual_sign"
    GUARDIAN_GATED = "guardian_gated"


class TxStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class TransactionIntent(BaseModel):
    """A single user request to move shielded funds.

    ``amount`` is an integer count of Tongo units; use :meth:`from_display`
    to build one from a human amount string.
    """

    model_config = ConfigDict(frozen=True)

    action: ActionKind
    token: str = "STRK"
    amount: int = Field(ge=0)
    recipient: Optional[str] = None
    account_context: AccountContext = AccountContext.NORMAL
    ward_address: Optional[str] = None

    @field_validator("token")
    @classmethod
    def validate_token(cls, v: str) -> str:
        v = v.upper()
        if v not in TOKENS:
            raise ValueError(f"Unsupported token: {v}")
        return v

    @field_validator("recipient", "ward_address")
    @classmethod
    def validate_address(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not is_valid_address(v):
            raise ValueError(f"Invalid address: {v}")
        return v

    @model_validator(mode="after")
    def check_context(self) -> "TransactionIntent":
        if self.account_context == AccountContext.GUARDIAN_FOR_WARD and not self.ward_address:
            raise ValueError("ward_address is required when acting for a ward")
        if self.action == ActionKind.TRANSFER and not self.recipient:
            raise ValueError("recipient is required for transfers")
        return self

    @classmethod
    def from_display(cls, action: ActionKind, token: str, amount: str, **kwargs) -> "TransactionIntent":
        """Build an intent from a human amount string.

        Raises:
            ValidationError: If the amount does not convert to whole units or
                the intent fails model validation
        """
        units = to_tongo_units(amount, token)
        try:
            return cls(action=action, token=token, amount=units, **kwargs)
        except ModelValidationError as e:
            raise ValidationError(f"Invalid transaction intent: {e.errors()[0]['msg']}") from e

    @property
    def spend(self) -> int:
        """Amount leaving the account in ERC-20 base units.

        Rollover only moves pending balance into the spendable balance.
        """
        if self.action == ActionKind.ROLLOVER:
            return 0
        return self.amount * get_token(self.token).rate


@dataclass
class Call:
    """One contract call inside a multicall."""

    contract_address: str
    entrypoint: str
    calldata: List[str] = field(default_factory=list)

    def to_dict(self):
        return {"contractAddress": self.contract_address, "entrypoint": self.entrypoint, "calldata": list(self.calldata)}


@dataclass
class PreparedTransaction:
    """A built but unsigned transaction."""

    sender: str
    calls: List[Call]
    tx_hash: str
    nonce: int = 0
    max_fee: int = 0
    fee_multiplier: float = 1.0


@dataclass
class DeployResult:
    tx_hash: str
    contract_address: str


@dataclass
class KeyPair:
    private_key: str = field(repr=False)
    public_key: str
