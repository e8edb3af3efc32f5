"""Execution path selection and submission for shielded transactions."""
from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..errors import ApprovalTimeoutError, FeeInsufficientError, PolicyError, TerminalError, WardflowError
from ..models.transaction import AccountContext, Call, ExecutionPath, TransactionIntent
from ..models.ward import WardAccount
from ..session import WalletSession
from ..utils.polling import PollBudget, poll_until, wait_for_confirmation
from .fee_retry import parse_insufficient_fee

logger = logging.getLogger(__name__)

# Ward policy reason codes
WARD_FROZEN = "WARD_FROZEN"
WARD_POLICY_UNAVAILABLE = "WARD_POLICY_UNAVAILABLE"
EXCEEDS_MAX_PER_TXN = "EXCEEDS_MAX_PER_TXN"
EXCEEDS_DAILY_LIMIT = "EXCEEDS_DAILY_LIMIT"


def evaluate_ward_limits(ward: WardAccount, spend: int, now: Optional[datetime] = None) -> List[str]:
    """Return the limit reasons that ``spend`` violates; a zero limit is unlimited."""
    reasons = []
    if spend <= 0:
        return reasons
    if ward.spending_limit_per_tx > 0 and spend > ward.spending_limit_per_tx:
        reasons.append(EXCEEDS_MAX_PER_TXN)
    if ward.daily_limit > 0 and ward.spent_in_window(now) + spend > ward.daily_limit:
        reasons.append(EXCEEDS_DAILY_LIMIT)
    return reasons


@dataclass
class RouteResult:
    """Outcome of a successful routed execution."""

    tx_hash: str
    path: ExecutionPath
    fee_multiplier: float = 1.0
    approval_id: Optional[str] = None


class TransactionRouter:
    """Picks direct, dual-signature, or guardian-gated execution.

    Precedence: frozen ward, then ward limits, then 2FA, then direct. Policy
    checks read only the session's local ward state, so a rejected intent
    never reaches the network.
    """

    def __init__(
        self,
        session: WalletSession,
        budget: Optional[PollBudget] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.session = session
        config = session.config
        self.budget = budget or config.confirmation_budget()
        self.approval_budget = PollBudget(
            max_polls=max(1, math.ceil(config.approval_timeout / config.approval_poll_interval) + 1),
            interval=config.approval_poll_interval,
            max_interval=config.approval_poll_interval,
            backoff=1.0,
        )
        self.approval_timeout = config.approval_timeout
        self._sleep = sleep
        self._clock = clock

    def select_path(self, intent: TransactionIntent) -> ExecutionPath:
        """Decide how ``intent`` must be executed.

        Raises:
            PolicyError: If the ward is frozen, unknown, or over its limits
        """
        if intent.account_context == AccountContext.WARD:
            ward = self._require_ward(self.session.ward)
            reasons = evaluate_ward_limits(ward, intent.spend, self._clock())
            if reasons:
                raise PolicyError(f"Transaction exceeds ward limits: {', '.join(reasons)}", reasons[0])
            if ward.require_guardian_for_all:
                return ExecutionPath.GUARDIAN_GATED
        elif intent.account_context == AccountContext.GUARDIAN_FOR_WARD:
            self._require_ward(self.session.get_guarded_ward(intent.ward_address))

        if self.session.two_factor_enabled:
            return ExecutionPath.DUAL_SIGN
        return ExecutionPath.DIRECT

    async def execute(self, intent: TransactionIntent, fee_multiplier: float = 1.0) -> RouteResult:
        """Route, submit, and confirm a transaction.

        Args:
            intent: What to execute
            fee_multiplier: Multiplier applied to the estimated fee bounds

        Returns:
            RouteResult with the confirmed transaction hash

        Raises:
            PolicyError: Rejected by ward policy; no network call was made
            FeeInsufficientError: The chain rejected the fee bound
            ApprovalTimeoutError: The required approval did not arrive in time
            TerminalError: The approval was rejected
        """
        path = self.select_path(intent)
        logger.info(f"Routing {intent.action.value} of {intent.amount} {intent.token} units via {path.value}")

        if self.session.call_builder is None:
            raise TerminalError("No call builder configured for this session")
        calls = await self.session.call_builder.prepare_calls(intent)

        approval_id = None
        try:
            if path == ExecutionPath.DIRECT:
                tx_hash = await self.session.chain.invoke(calls, fee_multiplier=fee_multiplier)
            else:
                tx_hash, approval_id = await self._execute_with_approval(intent, calls, path, fee_multiplier)
            await wait_for_confirmation(self.session.chain.get_transaction_status, tx_hash, self.budget, self._sleep)
        except WardflowError:
            raise
        except Exception as e:
            fee = parse_insufficient_fee(str(e))
            if fee is not None:
                raise FeeInsufficientError(str(e), **fee) from e
            raise

        await self._after_success(intent, tx_hash, path)
        return RouteResult(tx_hash=tx_hash, path=path, fee_multiplier=fee_multiplier, approval_id=approval_id)

    # ========== Paths ==========

    async def _execute_with_approval(
        self, intent: TransactionIntent, calls: List[Call], path: ExecutionPath, fee_multiplier: float
    ):
        chain = self.session.chain
        prepared = await chain.build_transaction(self.session.address, calls, fee_multiplier)
        primary = await self.session.keys.sign(prepared.tx_hash)

        request: Dict[str, Any] = {
            "kind": "ward" if path == ExecutionPath.GUARDIAN_GATED else "two_factor",
            "wallet_address": self.session.address,
            "action": intent.action.value,
            "token": intent.token,
            "amount": str(intent.amount),
            "recipient": intent.recipient,
            "tx_hash": prepared.tx_hash,
            "calls": [c.to_dict() for c in calls],
            "primary_signature": primary,
            "fee_multiplier": fee_multiplier,
        }
        if path == ExecutionPath.GUARDIAN_GATED:
            request["guardian_address"] = self.session.ward.guardian_address

        approval_id = await self.session.backend.create_approval(request)
        logger.info(f"Waiting for {request['kind']} approval {approval_id}")
        co_signature = await self._await_approval(approval_id)
        tx_hash = await chain.broadcast(prepared, primary + co_signature)
        return tx_hash, approval_id

    async def _await_approval(self, approval_id: str) -> List[str]:
        response = await poll_until(
            lambda: self.session.backend.get_approval(approval_id),
            lambda r: r.get("status") != "pending",
            self.approval_budget,
            self._sleep,
        )
        if response is None:
            raise ApprovalTimeoutError(approval_id, self.approval_timeout)
        if response.get("status") != "approved":
            raise TerminalError(f"Approval {approval_id} was {response.get('status')}")
        return list(response.get("signature") or [])

    # ========== Helpers ==========

    def _require_ward(self, ward: Optional[WardAccount]) -> WardAccount:
        if ward is None:
            raise PolicyError("Ward policy snapshot not found", WARD_POLICY_UNAVAILABLE)
        if ward.is_frozen:
            raise PolicyError("Ward account is frozen", WARD_FROZEN)
        return ward

    async def _after_success(self, intent: TransactionIntent, tx_hash: str, path: ExecutionPath) -> None:
        self.session.balance_cache.invalidate(self.session.address, intent.token)
        if intent.account_context == AccountContext.WARD and self.session.ward is not None:
            self.session.ward.record_spend(intent.spend, self._clock())

        try:
            await self.session.backend.record_transaction(
                {
                    "wallet_address": self.session.address,
                    "tx_hash": tx_hash,
                    "type": intent.action.value,
                    "token": intent.token,
                    "amount": str(intent.amount),
                    "recipient": intent.recipient,
                    "account_type": intent.account_context.value,
                    "path": path.value,
                    "created_at": datetime.now().isoformat(),
                }
            )
        except Exception as e:
            logger.warning(f"Failed to record transaction {tx_hash}: {e}")
        logger.info(f"Transaction {tx_hash} confirmed via {path.value}")
