"""Two-factor enable/disable session state."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class TwoFactorAction(str, Enum):
    ENABLE = "enable"
    DISABLE = "disable"


class TwoFactorStep(str, Enum):
    """Observable states of a 2FA session."""

    IDLE = "idle"
    AUTH = "auth"
    KEYGEN = "keygen"
    ONCHAIN = "onchain"
    REGISTER = "register"
    DONE = "done"
    ERROR = "error"


# Steps that change state outside this device.
REMOTE_STEPS = frozenset({TwoFactorStep.ONCHAIN, TwoFactorStep.REGISTER})


@dataclass
class TwoFactorSession:
    """One enable or disable run, discarded after it reaches a terminal state."""

    action: TwoFactorAction
    step: TwoFactorStep = TwoFactorStep.IDLE
    committed_steps: List[TwoFactorStep] = field(default_factory=list)
    failed_step: Optional[TwoFactorStep] = None
    error: Optional[Exception] = None
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def is_terminal(self) -> bool:
        return self.step in (TwoFactorStep.DONE, TwoFactorStep.ERROR)

    @property
    def succeeded(self) -> bool:
        return self.step == TwoFactorStep.DONE

    @property
    def needs_reconciliation(self) -> bool:
        """True when a remote step committed but the session did not finish."""
        return self.step == TwoFactorStep.ERROR and any(s in REMOTE_STEPS for s in self.committed_steps)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "step": self.step.value,
            "committed_steps": [s.value for s in self.committed_steps],
            "failed_step": self.failed_step.value if self.failed_step else None,
            "error": str(self.error) if self.error else None,
            "needs_reconciliation": self.needs_reconciliation,
            "started_at": self.started_at.isoformat(),
        }
