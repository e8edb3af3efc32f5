"""Guardian-side ward creation, resumption, and freeze control."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..errors import StepExecutionError, ValidationError
from ..models.transaction import Call, TxStatus
from ..models.ward import PartialWardRecord, WardAccount, WardStatus
from ..session import WalletSession
from ..storage import LAST_WARD_OPTIONS_KEY, PartialWardStore, save_json
from ..tokens import TOKENS, format_wei_to_strk, parse_funding_amount, parse_token_amount
from ..utils.addresses import normalize_address, pad_address
from ..utils.polling import PollBudget, wait_for_confirmation
from .pipeline import Context, ProgressCallback, StepDescriptor, StepPipeline

logger = logging.getLogger(__name__)

WARD_CREATION_TOTAL_STEPS = 6
RETRY_PREFIX = "Retrying: "

_RECORD_FIELDS = (
    "funding_amount",
    "guardian_address",
    "guardian_public_key",
    "pseudo_name",
    "ward_address",
    "ward_public_key",
    "ward_private_key",
    "deploy_tx_hash",
    "funding_tx_hash",
    "token_tx_hash",
)

_U128_MASK = (1 << 128) - 1


def _u256(value: int) -> List[str]:
    return [hex(value & _U128_MASK), hex(value >> 128)]


def _normalize_pseudo_name(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    name = name.strip()
    if len(name) > 64:
        raise ValidationError("Pseudo name must be at most 64 characters")
    return name or None


class WardProvisioningWorkflow:
    """Creates ward accounts on behalf of the signed-in guardian.

    Creation runs six steps. A failure leaves a partial record behind that
    :meth:`retry_partial_ward` resumes from the first step that did not
    commit.
    """

    def __init__(
        self,
        session: WalletSession,
        pipeline: Optional[StepPipeline] = None,
        budget: Optional[PollBudget] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session = session
        self.pipeline = pipeline or StepPipeline("ward-provisioning")
        self.partial_store = PartialWardStore(session.store)
        self.budget = budget or session.config.confirmation_budget()
        self._sleep = sleep
        self._strk = TOKENS["STRK"]

    # ========== Public API ==========

    async def create_ward(
        self,
        progress: Optional[ProgressCallback] = None,
        pseudo_name: Optional[str] = None,
        funding_amount: Union[str, int, None] = None,
    ) -> WardAccount:
        """Create, fund, and register a new ward.

        Args:
            progress: Receives ``(step, total, message)`` before each step
            pseudo_name: Optional display name for the ward
            funding_amount: Hex base units (``"0x..."``) or a decimal STRK
                amount; defaults to the configured amount

        Returns:
            The new ward account, including its private key for the invite

        Raises:
            ValidationError: If the options are invalid; nothing was written
            StepExecutionError: If a step failed; a partial record was saved
        """
        amount = parse_funding_amount(
            funding_amount if funding_amount is not None else self.session.config.default_funding_wei
        )
        name = _normalize_pseudo_name(pseudo_name)

        save_json(self.session.store, LAST_WARD_OPTIONS_KEY, {"pseudo_name": name, "funding_amount": hex(amount)})
        context: Context = {
            "funding_amount": amount,
            "pseudo_name": name,
            "guardian_address": pad_address(self.session.address),
            "guardian_public_key": self.session.public_key,
        }
        logger.info(f"Creating ward for guardian {self.session.address}")
        return await self._execute(progress, context, from_step=0)

    async def retry_partial_ward(
        self,
        progress: Optional[ProgressCallback] = None,
        pseudo_name: Optional[str] = None,
        funding_amount: Union[str, int, None] = None,
    ) -> WardAccount:
        """Resume the last interrupted creation at its first uncommitted step.

        Args:
            progress: Receives ``(step, total, message)``; messages carry a
                ``"Retrying: "`` prefix
            pseudo_name: Used only when the record has no name
            funding_amount: Replaces the stored amount if funding has not
                been submitted yet

        Returns:
            The ward account

        Raises:
            ValidationError: If there is nothing to resume or the options are invalid
            StepExecutionError: If a step failed again; the record was updated
        """
        record = self.partial_store.load()
        if record is None:
            raise ValidationError("No partial ward creation to resume")
        if normalize_address(record.guardian_address) != normalize_address(self.session.address):
            raise ValidationError("Partial ward record belongs to a different guardian")

        if record.last_completed_step >= WARD_CREATION_TOTAL_STEPS:
            logger.info(f"Partial ward {record.ward_address} already completed, clearing record")
            self.partial_store.clear()
            return self._register_locally(record.to_account())

        context = record.context()
        if funding_amount is not None and record.last_completed_step < 4 and not record.funding_tx_hash:
            context["funding_amount"] = parse_funding_amount(funding_amount)
        if not context.get("pseudo_name"):
            context["pseudo_name"] = _normalize_pseudo_name(pseudo_name)

        logger.info(f"Resuming ward creation after step {record.last_completed_step}")
        return await self._execute(progress, context, from_step=record.last_completed_step, prefix=RETRY_PREFIX)

    def partial_ward(self) -> Optional[PartialWardRecord]:
        return self.partial_store.load()

    def clear_partial_ward(self) -> bool:
        """Forget the interrupted creation. On-chain artifacts are left as they are."""
        cleared = self.partial_store.clear()
        if cleared:
            logger.info("Cleared partial ward record")
        return cleared

    async def freeze_ward(self, ward_address: str) -> str:
        """Freeze a ward on chain, then sync the backend status best-effort."""
        return await self._toggle_freeze(ward_address, freeze=True)

    async def unfreeze_ward(self, ward_address: str) -> str:
        return await self._toggle_freeze(ward_address, freeze=False)

    async def set_spending_limit(self, ward_address: str, limit_per_tx: Union[str, int]) -> str:
        """Set the ward's per-transaction limit in STRK base units.

        Args:
            ward_address: Ward to update
            limit_per_tx: Base units as int or ``0x`` hex, or a decimal STRK
                amount; ``0`` removes the limit

        Returns:
            Transaction hash

        Raises:
            ValidationError: If the limit is malformed or negative
        """
        limit = self._parse_limit(limit_per_tx)
        address = pad_address(ward_address)
        tx_hash = await self.session.chain.invoke([Call(address, "set_spending_limit", _u256(limit))])
        await self._confirm(tx_hash)
        await self._sync_backend(address, {"spending_limit_per_tx": str(limit)})

        ward = self.session.get_guarded_ward(address)
        if ward is not None:
            ward.spending_limit_per_tx = limit
        return tx_hash

    async def set_require_guardian(self, ward_address: str, required: bool) -> str:
        """Require guardian approval for every ward transaction, or stop requiring it.

        Args:
            ward_address: Ward to update
            required: True to gate every transaction on the guardian

        Returns:
            Transaction hash
        """
        address = pad_address(ward_address)
        flag = "0x1" if required else "0x0"
        tx_hash = await self.session.chain.invoke([Call(address, "set_require_guardian_for_all", [flag])])
        await self._confirm(tx_hash)
        logger.info(f"Ward {address} require_guardian_for_all={required} ({tx_hash})")
        await self._sync_backend(address, {"require_guardian_for_all": required})

        ward = self.session.get_guarded_ward(address)
        if ward is not None:
            ward.require_guardian_for_all = required
        return tx_hash

    # ========== Pipeline ==========

    def _steps(self) -> List[StepDescriptor]:
        return [
            StepDescriptor(
                "generate keys",
                self._generate_keys,
                "Generating ward keys...",
                is_complete=lambda c: bool(c.get("ward_address")) or bool(c.get("ward_private_key") and c.get("ward_public_key")),
            ),
            StepDescriptor(
                "deploy contract",
                self._deploy,
                "Deploying ward contract...",
                is_complete=lambda c: bool(c.get("ward_address") and c.get("deploy_tx_hash")),
            ),
            StepDescriptor("confirm deployment", self._confirm_deployment, "Waiting for deployment confirmation..."),
            StepDescriptor(
                "fund ward",
                self._fund,
                lambda c: f"Funding ward with {format_wei_to_strk(c['funding_amount'])} STRK...",
            ),
            StepDescriptor("register token", self._register_token, "Adding STRK as known token..."),
            StepDescriptor("register ward", self._register_backend, "Registering ward in database..."),
        ]

    async def _execute(self, progress: Optional[ProgressCallback], context: Context, from_step: int, prefix: str = "") -> WardAccount:
        try:
            result = await self.pipeline.run(self._steps(), progress, from_step, context, message_prefix=prefix)
        except asyncio.CancelledError:
            run = self.pipeline.current
            self._save_partial(context, run.last_completed_step if run else from_step, "cancelled", "Ward creation cancelled")
            raise

        if result.failed:
            error = StepExecutionError.from_exception(result.error, result.at_step, result.failed_label)
            try:
                self._save_partial(result.context, result.last_completed_step, result.failed_label, str(result.error))
            except Exception as e:
                logger.error(f"Failed to save partial ward record, creation cannot be resumed: {e}")
                raise e from error
            raise error from result.error

        self.partial_store.clear()
        account = self._account_from_context(result.context)
        logger.info(f"Ward {account.address} created")
        return self._register_locally(account)

    async def _generate_keys(self, ctx: Context) -> Dict[str, Any]:
        keypair = await self.session.keys.generate_keypair()
        return {"ward_private_key": keypair.private_key, "ward_public_key": keypair.public_key}

    async def _deploy(self, ctx: Context) -> Dict[str, Any]:
        result = await self.session.chain.deploy_ward(
            ctx["ward_public_key"], ctx["guardian_address"], ctx.get("guardian_public_key")
        )
        ward_address = pad_address(result.contract_address)
        logger.info(f"Ward contract deploy submitted at {ward_address}")
        return {"ward_address": ward_address, "deploy_tx_hash": result.tx_hash}

    async def _confirm_deployment(self, ctx: Context) -> None:
        await self._confirm(ctx["deploy_tx_hash"])

    async def _fund(self, ctx: Context) -> Dict[str, Any]:
        call = Call(self._strk.erc20_address, "transfer", [ctx["ward_address"], *_u256(ctx["funding_amount"])])
        return await self._submit_once(ctx, "funding_tx_hash", [call])

    async def _register_token(self, ctx: Context) -> Dict[str, Any]:
        call = Call(ctx["ward_address"], "add_known_token", [self._strk.erc20_address])
        return await self._submit_once(ctx, "token_tx_hash", [call])

    async def _register_backend(self, ctx: Context) -> None:
        await self.session.backend.register_ward(
            {
                "ward_address": normalize_address(ctx["ward_address"]),
                "guardian_address": normalize_address(ctx["guardian_address"]),
                "ward_public_key": ctx["ward_public_key"],
                "guardian_public_key": ctx.get("guardian_public_key"),
                "pseudo_name": ctx.get("pseudo_name"),
                "status": WardStatus.ACTIVE.value,
                "require_guardian_for_all": True,
            }
        )

    async def _submit_once(self, ctx: Context, key: str, calls: List[Call]) -> Dict[str, Any]:
        """Submit ``calls`` unless an earlier attempt already did, then confirm.

        The hash is stored in the context before confirmation so that a
        partial record written after a confirmation failure carries it.
        """
        tx_hash = ctx.get(key)
        if tx_hash:
            status = await self.session.chain.get_transaction_status(tx_hash)
            if status == TxStatus.REJECTED:
                logger.warning(f"Previous {key} {tx_hash} was rejected, submitting again")
                tx_hash = None
            else:
                logger.info(f"Re-polling previously submitted {key} {tx_hash}")
        if not tx_hash:
            tx_hash = await self.session.chain.invoke(calls)
            ctx[key] = tx_hash
        await self._confirm(tx_hash)
        return {key: tx_hash}

    # ========== Helpers ==========

    async def _confirm(self, tx_hash: str) -> None:
        await wait_for_confirmation(self.session.chain.get_transaction_status, tx_hash, self.budget, self._sleep)

    def _save_partial(self, context: Context, last_completed_step: int, label: Optional[str], message: str) -> None:
        record = PartialWardRecord(
            last_completed_step=last_completed_step,
            failed_step=label,
            error_message=message,
            **{k: context[k] for k in _RECORD_FIELDS if context.get(k) is not None},
        )
        self.partial_store.save(record)

    def _account_from_context(self, ctx: Context) -> WardAccount:
        return WardAccount(
            address=ctx["ward_address"],
            guardian_address=ctx["guardian_address"],
            pseudo_name=ctx.get("pseudo_name"),
            funding_amount=ctx["funding_amount"],
            public_key=ctx.get("ward_public_key"),
            private_key=ctx.get("ward_private_key"),
            network=self.session.config.network,
        )

    def _register_locally(self, account: WardAccount) -> WardAccount:
        self.session.add_guarded_ward(account)
        return account

    async def _toggle_freeze(self, ward_address: str, freeze: bool) -> str:
        address = pad_address(ward_address)
        entrypoint = "freeze" if freeze else "unfreeze"
        status = WardStatus.FROZEN if freeze else WardStatus.ACTIVE

        tx_hash = await self.session.chain.invoke([Call(address, entrypoint, [])])
        await self._confirm(tx_hash)
        logger.info(f"Ward {address} {status.value} on chain ({tx_hash})")

        await self._sync_backend(address, {"status": status.value})
        ward = self.session.get_guarded_ward(address)
        if ward is not None:
            ward.status = status
        return tx_hash

    async def _sync_backend(self, ward_address: str, fields: Dict[str, Any]) -> None:
        # Chain state is authoritative; a stale backend row is corrected on the next sync.
        try:
            await self.session.backend.update_ward(normalize_address(ward_address), fields)
        except Exception as e:
            logger.warning(f"Failed to sync ward {ward_address} to backend: {e}")

    @staticmethod
    def _parse_limit(value: Union[str, int]) -> int:
        if isinstance(value, bool):
            raise ValidationError(f"Invalid spending limit: {value!r}")
        if isinstance(value, int):
            limit = value
        elif isinstance(value, str) and value.strip().startswith("0x"):
            try:
                limit = int(value.strip(), 16)
            except ValueError:
                raise ValidationError(f"Invalid spending limit: {value!r}") from None
        elif isinstance(value, str):
            limit = parse_token_amount(value, TOKENS["STRK"].decimals)
        else:
            raise ValidationError(f"Invalid spending limit: {value!r}")
        if limit < 0:
            raise ValidationError("Spending limit must not be negative")
        return limit
