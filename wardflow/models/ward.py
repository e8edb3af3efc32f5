"""Ward account and partial provisioning record models."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils.addresses import is_valid_address

DAILY_WINDOW = timedelta(hours=24)


class WardStatus(str, Enum):
    """Lifecycle status of a ward account."""

    ACTIVE = "active"
    FROZEN = "frozen"


@dataclass
class WardAccount:
    """A provisioned ward account as the guardian sees it.

    Limits are in STRK base units; ``0`` means no limit. ``spent_24h`` is the
    rolling total reported as of ``spent_24h_as_of``; spends made through this
    process are tracked with their timestamps and age out of the window.
    """

    address: str
    guardian_address: str
    pseudo_name: Optional[str] = None
    status: WardStatus = WardStatus.ACTIVE
    spending_limit_per_tx: int = 0
    daily_limit: int = 0
    spent_24h: int = 0
    spent_24h_as_of: datetime = field(default_factory=datetime.now)
    spends: List[Tuple[datetime, int]] = field(default_factory=list, repr=False)
    require_guardian_for_all: bool = True
    funding_amount: int = 0
    public_key: Optional[str] = None
    private_key: Optional[str] = field(default=None, repr=False)
    network: str = "sepolia"

    @property
    def is_frozen(self) -> bool:
        return self.status == WardStatus.FROZEN

    def record_spend(self, amount: int, at: Optional[datetime] = None) -> None:
        self.spends.append((at or datetime.now(), amount))

    def spent_in_window(self, now: Optional[datetime] = None) -> int:
        """Amount spent in the 24 hours ending at ``now``, pruning older spends.

        The reported total covers spends made before ``spent_24h_as_of`` and
        stops counting once a full window has passed since then.
        """
        now = now or datetime.now()
        cutoff = now - DAILY_WINDOW
        self.spends = [(at, amount) for at, amount in self.spends if at > cutoff]
        reported = self.spent_24h if self.spent_24h_as_of > cutoff else 0
        return reported + sum(amount for _, amount in self.spends)

    def invite_payload(self) -> str:
        """JSON payload handed to the ward device (usually as a QR code).

        Raises:
            ValueError: If the ward private key is not available
        """
        if not self.private_key:
            raise ValueError("Ward private key not available for invite")
        return json.dumps(
            {
                "type": "cloak_ward_invite",
                "wardAddress": self.address,
                "wardPrivateKey": self.private_key,
                "guardianAddress": self.guardian_address,
                "network": self.network,
                "pseudoName": self.pseudo_name,
                "initialFundingAmountWei": hex(self.funding_amount),
            }
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a dictionary without the private key."""
        return {
            "address": self.address,
            "guardian_address": self.guardian_address,
            "pseudo_name": self.pseudo_name,
            "status": self.status.value,
            "spending_limit_per_tx": str(self.spending_limit_per_tx),
            "daily_limit": str(self.daily_limit),
            "spent_24h": str(self.spent_in_window()),
            "require_guardian_for_all": self.require_guardian_for_all,
            "funding_amount": str(self.funding_amount),
            "public_key": self.public_key,
            "network": self.network,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WardAccount":
        return cls(
            address=data["address"],
            guardian_address=data["guardian_address"],
            pseudo_name=data.get("pseudo_name"),
            status=WardStatus(data.get("status", WardStatus.ACTIVE.value)),
            spending_limit_per_tx=int(data.get("spending_limit_per_tx", 0)),
            daily_limit=int(data.get("daily_limit", 0)),
            spent_24h=int(data.get("spent_24h", 0)),
            require_guardian_for_all=data.get("require_guardian_for_all", True),
            funding_amount=int(data.get("funding_amount", 0)),
            public_key=data.get("public_key"),
            private_key=data.get("private_key"),
            network=data.get("network", "sepolia"),
        )


class PartialWardRecord(BaseModel):
    """Snapshot of an interrupted ward creation.

    Only committed work is reflected in ``last_completed_step``. Transaction
    hashes of submitted but unconfirmed steps are kept so a resume polls
    them instead of submitting again.
    """

    model_config = ConfigDict(validate_assignment=True)

    last_completed_step: int = Field(ge=0, le=6)
    funding_amount: int = Field(gt=0)
    guardian_address: str
    guardian_public_key: Optional[str] = None
    pseudo_name: Optional[str] = None
    ward_address: Optional[str] = None
    ward_public_key: Optional[str] = None
    ward_private_key: Optional[str] = Field(default=None, repr=False)
    deploy_tx_hash: Optional[str] = None
    funding_tx_hash: Optional[str] = None
    token_tx_hash: Optional[str] = None
    failed_step: Optional[str] = None
    error_message: Optional[str] = None
    updated_at: datetime = Field(default_factory=datetime.now)

    @field_validator("ward_address", "guardian_address")
    @classmethod
    def validate_address(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not is_valid_address(v):
            raise ValueError(f"Invalid address: {v}")
        return v

    @property
    def has_keys(self) -> bool:
        return bool(self.ward_private_key and self.ward_public_key)

    def context(self) -> Dict[str, Any]:
        """Pipeline context seeded from the committed artifacts."""
        return {k: v for k, v in self.model_dump(exclude={"updated_at", "failed_step", "error_message"}).items() if v is not None}

    def to_account(self) -> WardAccount:
        if not self.ward_address:
            raise ValueError("Partial ward record has no ward address")
        return WardAccount(
            address=self.ward_address,
            guardian_address=self.guardian_address,
            pseudo_name=self.pseudo_name,
            funding_amount=self.funding_amount,
            public_key=self.ward_public_key,
            private_key=self.ward_private_key,
        )
