"""Enable and disable two-factor authentication for the signed-in account."""
from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..errors import AuthenticationError, StepExecutionError, ValidationError
from ..models.transaction import Call
from ..models.two_factor import TwoFactorAction, TwoFactorSession, TwoFactorStep
from ..session import WalletSession
from ..storage import RECONCILIATION_KEY, SECONDARY_KEY_KEY, load_json, save_json
from ..utils.polling import PollBudget, wait_for_confirmation
from .pipeline import Context, ProgressCallback, StepDescriptor, StepPipeline

logger = logging.getLogger(__name__)

StepFn = Callable[[Context], Awaitable[Optional[Dict[str, Any]]]]


def _is_unset_key(value: Optional[str]) -> bool:
    if not value:
        return True
    try:
        return int(value, 16) == 0
    except ValueError:
        logger.warning(f"Unrecognized secondary key format {value!r}, treating it as set")
        return False


class TwoFactorWorkflow:
    """Runs the five-step 2FA enable/disable pipeline.

    Steps: authenticate, key operation, on-chain submission, backend
    registration, and finalize. Nothing is rolled back on failure; a session
    that failed after a remote step committed is flagged for reconciliation
    and a marker is kept in the local store until :meth:`reconcile` runs.
    """

    def __init__(
        self,
        session: WalletSession,
        pipeline: Optional[StepPipeline] = None,
        budget: Optional[PollBudget] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session = session
        self.pipeline = pipeline or StepPipeline("two-factor")
        self.budget = budget or session.config.confirmation_budget()
        self._sleep = sleep

    async def enable(self, progress: Optional[ProgressCallback] = None) -> TwoFactorSession:
        """Enable 2FA.

        Raises:
            ValidationError: If 2FA is already enabled
        """
        if self.session.two_factor_enabled:
            raise ValidationError("Two-factor authentication is already enabled")
        state = TwoFactorSession(TwoFactorAction.ENABLE)
        steps = [
            self._step(state, TwoFactorStep.AUTH, "Authenticating...", self._authenticate("Authenticate to enable 2FA")),
            self._step(state, TwoFactorStep.KEYGEN, "Generating secondary key...", self._generate_secondary_key),
            self._step(state, TwoFactorStep.ONCHAIN, "Registering secondary key on-chain...", self._set_secondary_key),
            self._step(state, TwoFactorStep.REGISTER, "Saving 2FA configuration...", self._register_config),
            self._step(state, TwoFactorStep.DONE, "Finalizing...", self._finalize_enable),
        ]
        return await self._run(state, steps, progress)

    async def disable(self, progress: Optional[ProgressCallback] = None) -> TwoFactorSession:
        """Disable 2FA.

        The local secondary key is deleted only in the final step, after the
        chain and the backend have both dropped it.

        Raises:
            ValidationError: If 2FA is not enabled
        """
        if not self.session.two_factor_enabled:
            raise ValidationError("Two-factor authentication is not enabled")
        state = TwoFactorSession(TwoFactorAction.DISABLE)
        steps = [
            self._step(state, TwoFactorStep.AUTH, "Authenticating...", self._authenticate("Authenticate to disable 2FA")),
            self._step(state, TwoFactorStep.KEYGEN, "Loading secondary key...", self._load_secondary_key),
            self._step(state, TwoFactorStep.ONCHAIN, "Removing secondary key on-chain...", self._remove_secondary_key),
            self._step(state, TwoFactorStep.REGISTER, "Removing 2FA configuration...", self._unregister_config),
            self._step(state, TwoFactorStep.DONE, "Finalizing...", self._finalize_disable),
        ]
        return await self._run(state, steps, progress)

    def pending_reconciliation(self) -> Optional[Dict[str, Any]]:
        return load_json(self.session.store, RECONCILIATION_KEY)

    async def reconcile(self) -> bool:
        """Make the backend and local state agree with the chain.

        Returns:
            Whether 2FA is enabled on chain
        """
        address = self.session.address
        on_chain_key = await self.session.chain.get_secondary_key(address)
        enabled = not _is_unset_key(on_chain_key)
        status = await self.session.backend.get_two_factor_status(address)
        backend_enabled = bool(status and status.get("is_enabled"))

        if enabled and not backend_enabled:
            logger.info(f"Reconcile: registering on-chain secondary key for {address} in backend")
            await self.session.backend.enable_two_factor(address, on_chain_key)
        elif not enabled and backend_enabled:
            logger.info(f"Reconcile: removing stale backend 2FA config for {address}")
            await self.session.backend.disable_two_factor(address)

        local = load_json(self.session.store, SECONDARY_KEY_KEY)
        if not enabled and local:
            self.session.store.delete(SECONDARY_KEY_KEY)
        elif enabled and (not local or local.get("public_key") != on_chain_key):
            logger.warning(f"On-chain secondary key for {address} has no matching local key; re-enable 2FA to recover")

        self.session.two_factor_enabled = enabled
        self.session.store.delete(RECONCILIATION_KEY)
        return enabled

    # ========== Pipeline plumbing ==========

    def _step(self, state: TwoFactorSession, step: TwoFactorStep, message: str, fn: StepFn) -> StepDescriptor:
        async def action(ctx: Context) -> Optional[Dict[str, Any]]:
            state.step = step
            result = await fn(ctx)
            if step != TwoFactorStep.DONE:
                state.committed_steps.append(step)
            return result

        return StepDescriptor(step.value, action, message)

    async def _run(self, state: TwoFactorSession, steps: List[StepDescriptor], progress: Optional[ProgressCallback]) -> TwoFactorSession:
        result = await self.pipeline.run(steps, progress, context={})
        if not result.failed:
            logger.info(f"2FA {state.action.value} completed for {self.session.address}")
            return state

        state.failed_step = state.step
        state.step = TwoFactorStep.ERROR
        state.error = StepExecutionError.from_exception(result.error, result.at_step, result.failed_label)
        if state.needs_reconciliation:
            logger.error(
                f"2FA {state.action.value} failed at {state.failed_step.value} after "
                f"{[s.value for s in state.committed_steps]} committed; reconciliation required"
            )
            save_json(
                self.session.store,
                RECONCILIATION_KEY,
                {
                    "wallet_address": self.session.address,
                    "recorded_at": datetime.now().isoformat(),
                    **state.to_dict(),
                },
            )
        return state

    # ========== Steps ==========

    def _authenticate(self, prompt: str) -> StepFn:
        async def authenticate(ctx: Context) -> None:
            if not await self.session.authenticator.authenticate(prompt):
                raise AuthenticationError("Authentication failed")

        return authenticate

    async def _generate_secondary_key(self, ctx: Context) -> Dict[str, Any]:
        keypair = await self.session.keys.generate_keypair()
        save_json(
            self.session.store,
            SECONDARY_KEY_KEY,
            {"private_key": keypair.private_key, "public_key": keypair.public_key},
        )
        return {"secondary_public_key": keypair.public_key}

    async def _set_secondary_key(self, ctx: Context) -> Dict[str, Any]:
        call = Call(self.session.address, "set_secondary_key", [ctx["secondary_public_key"]])
        tx_hash = await self.session.chain.invoke([call])
        await wait_for_confirmation(self.session.chain.get_transaction_status, tx_hash, self.budget, self._sleep)
        return {"tx_hash": tx_hash}

    async def _register_config(self, ctx: Context) -> None:
        await self.session.backend.enable_two_factor(self.session.address, ctx["secondary_public_key"])

    async def _finalize_enable(self, ctx: Context) -> None:
        self.session.two_factor_enabled = True

    async def _load_secondary_key(self, ctx: Context) -> Dict[str, Any]:
        raw = self.session.store.get(SECONDARY_KEY_KEY)
        if raw is None:
            raise ValidationError("Secondary key not found on this device; re-enable 2FA")
        return {"secondary_private_key": json.loads(raw)["private_key"]}

    async def _remove_secondary_key(self, ctx: Context) -> Dict[str, Any]:
        chain = self.session.chain
        prepared = await chain.build_transaction(self.session.address, [Call(self.session.address, "remove_secondary_key", [])])
        primary = await self.session.keys.sign(prepared.tx_hash)
        secondary = await self.session.keys.sign(prepared.tx_hash, ctx["secondary_private_key"])
        tx_hash = await chain.broadcast(prepared, primary + secondary)
        await wait_for_confirmation(chain.get_transaction_status, tx_hash, self.budget, self._sleep)
        return {"tx_hash": tx_hash}

    async def _unregister_config(self, ctx: Context) -> None:
        await self.session.backend.disable_two_factor(self.session.address)

    async def _finalize_disable(self, ctx: Context) -> None:
        self.session.store.delete(SECONDARY_KEY_KEY)
        self.session.two_factor_enabled = False
