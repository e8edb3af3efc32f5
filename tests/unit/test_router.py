"""Tests for execution path selection and routed submission."""

from datetime import datetime, timedelta

import pytest

from wardflow.errors import ApprovalTimeoutError, FeeInsufficientError, PolicyError, TerminalError
from wardflow.models.transaction import AccountContext, ActionKind, ExecutionPath, TransactionIntent
from wardflow.models.ward import WardAccount, WardStatus
from wardflow.orchestration.router import (
    EXCEEDS_DAILY_LIMIT,
    EXCEEDS_MAX_PER_TXN,
    WARD_FROZEN,
    WARD_POLICY_UNAVAILABLE,
    TransactionRouter,
    evaluate_ward_limits,
)
from wardflow.tokens import TOKENS

STRK_UNIT = TOKENS["STRK"].rate
WARD_ADDRESS = "0x5ea1"
FEE_ERROR = "Insufficient max L2Gas: max amount: 800000, actual used: 809800."


async def _no_sleep(_delay):
    return None


@pytest.fixture
def router(session):
    return TransactionRouter(session, sleep=_no_sleep)


@pytest.fixture
def ward_session(session):
    """Session signed in as a ward whose guardian must approve every spend."""
    session.ward = WardAccount(address=session.address, guardian_address="0x777")
    return session


def _fund(units=2, **kwargs):
    return TransactionIntent(action=ActionKind.FUND, amount=units, **kwargs)


def _ward_fund(units=2):
    return _fund(units, account_context=AccountContext.WARD)


class TestWardPolicy:
    """Frozen and limit checks happen before any network call."""

    @pytest.mark.asyncio
    async def test_frozen_ward_makes_no_network_calls(self, router, ward_session, chain, backend, call_builder):
        ward_session.ward.status = WardStatus.FROZEN

        with pytest.raises(PolicyError) as exc_info:
            await router.execute(_ward_fund())

        assert exc_info.value.reason == WARD_FROZEN
        assert chain.calls == []
        assert call_builder.intents == []
        assert backend.approval_requests == []

    def test_frozen_takes_precedence_over_limits(self, router, ward_session):
        ward_session.ward.status = WardStatus.FROZEN
        ward_session.ward.spending_limit_per_tx = 1

        with pytest.raises(PolicyError) as exc_info:
            router.select_path(_ward_fund())

        assert exc_info.value.reason == WARD_FROZEN

    def test_per_transaction_limit(self, router, ward_session):
        ward_session.ward.spending_limit_per_tx = STRK_UNIT

        with pytest.raises(PolicyError) as exc_info:
            router.select_path(_ward_fund(2))

        assert exc_info.value.reason == EXCEEDS_MAX_PER_TXN

    def test_daily_limit_counts_prior_spend(self, router, ward_session):
        ward_session.ward.daily_limit = 3 * STRK_UNIT
        ward_session.ward.spent_24h = 2 * STRK_UNIT

        with pytest.raises(PolicyError) as exc_info:
            router.select_path(_ward_fund(2))

        assert exc_info.value.reason == EXCEEDS_DAILY_LIMIT

    def test_rollover_is_never_over_limit(self, router, ward_session):
        ward_session.ward.spending_limit_per_tx = 1
        ward_session.ward.daily_limit = 1
        intent = TransactionIntent(action=ActionKind.ROLLOVER, amount=100, account_context=AccountContext.WARD)

        assert router.select_path(intent) == ExecutionPath.GUARDIAN_GATED

    def test_missing_ward_snapshot(self, router):
        with pytest.raises(PolicyError) as exc_info:
            router.select_path(_ward_fund())

        assert exc_info.value.reason == WARD_POLICY_UNAVAILABLE

    def test_zero_limits_mean_unlimited(self):
        ward = WardAccount(address=WARD_ADDRESS, guardian_address="0x777")

        assert evaluate_ward_limits(ward, 10**30) == []

    def test_both_limit_reasons_reported(self):
        ward = WardAccount(address=WARD_ADDRESS, guardian_address="0x777", spending_limit_per_tx=5, daily_limit=5)

        assert evaluate_ward_limits(ward, 10) == [EXCEEDS_MAX_PER_TXN, EXCEEDS_DAILY_LIMIT]

    @pytest.mark.asyncio
    async def test_daily_limit_frees_up_after_24_hours(self, session, ward_session):
        now = [datetime(2026, 1, 1, 12)]
        router = TransactionRouter(session, sleep=_no_sleep, clock=lambda: now[0])
        ward_session.ward.daily_limit = 3 * STRK_UNIT

        await router.execute(_ward_fund(2))
        now[0] += timedelta(hours=1)
        with pytest.raises(PolicyError) as exc_info:
            router.select_path(_ward_fund(2))
        assert exc_info.value.reason == EXCEEDS_DAILY_LIMIT

        now[0] += timedelta(hours=24)
        assert router.select_path(_ward_fund(2)) == ExecutionPath.GUARDIAN_GATED


class TestGuardianForWard:
    """A guardian acting on behalf of one of its wards."""

    def test_unknown_ward_is_rejected(self, router):
        intent = _fund(account_context=AccountContext.GUARDIAN_FOR_WARD, ward_address=WARD_ADDRESS)

        with pytest.raises(PolicyError) as exc_info:
            router.select_path(intent)

        assert exc_info.value.reason == WARD_POLICY_UNAVAILABLE

    def test_frozen_ward_is_rejected(self, router, session, guardian_address):
        session.add_guarded_ward(WardAccount(address=WARD_ADDRESS, guardian_address=guardian_address, status=WardStatus.FROZEN))
        intent = _fund(account_context=AccountContext.GUARDIAN_FOR_WARD, ward_address="0x0005ea1")

        with pytest.raises(PolicyError) as exc_info:
            router.select_path(intent)

        assert exc_info.value.reason == WARD_FROZEN

    def test_ward_limits_do_not_apply_to_guardian(self, router, session, guardian_address):
        session.add_guarded_ward(WardAccount(address=WARD_ADDRESS, guardian_address=guardian_address, spending_limit_per_tx=1))
        intent = _fund(account_context=AccountContext.GUARDIAN_FOR_WARD, ward_address=WARD_ADDRESS)

        assert router.select_path(intent) == ExecutionPath.DIRECT


class TestExecutionPaths:
    """Submission along each path."""

    @pytest.mark.asyncio
    async def test_direct_path(self, router, session, chain, backend, balance_cache, guardian_address):
        result = await router.execute(_fund())

        assert result.path == ExecutionPath.DIRECT
        assert result.approval_id is None
        assert chain.calls == ["invoke", "get_transaction_status"]
        assert chain.entrypoints() == ["fund"]
        assert balance_cache.invalidated == [(guardian_address, "STRK")]
        assert backend.transactions[0]["tx_hash"] == result.tx_hash
        assert backend.transactions[0]["path"] == "direct"

    @pytest.mark.asyncio
    async def test_dual_sign_when_two_factor_enabled(self, router, session, chain, backend):
        session.two_factor_enabled = True

        result = await router.execute(_fund())

        assert result.path == ExecutionPath.DUAL_SIGN
        assert result.approval_id == "approval-1"
        assert backend.approval_requests[0]["kind"] == "two_factor"
        assert backend.approval_requests[0]["primary_signature"] == ["sig:primary"]
        prepared, signature = chain.broadcasts[0]
        assert signature == ["sig:primary", "sig:cosigner"]
        assert result.tx_hash == prepared.tx_hash

    @pytest.mark.asyncio
    async def test_guardian_gated_records_spend(self, router, ward_session, chain, backend):
        result = await router.execute(_ward_fund(2))

        assert result.path == ExecutionPath.GUARDIAN_GATED
        request = backend.approval_requests[0]
        assert request["kind"] == "ward"
        assert request["guardian_address"] == "0x777"
        assert chain.broadcasts[0][1] == ["sig:primary", "sig:cosigner"]
        assert ward_session.ward.spent_in_window() == 2 * STRK_UNIT

    @pytest.mark.asyncio
    async def test_ward_without_guardian_requirement_uses_two_factor(self, router, ward_session):
        ward_session.ward.require_guardian_for_all = False
        ward_session.two_factor_enabled = True

        assert router.select_path(_ward_fund()) == ExecutionPath.DUAL_SIGN

    @pytest.mark.asyncio
    async def test_fee_multiplier_is_passed_through(self, router, chain):
        result = await router.execute(_fund(), fee_multiplier=2.0)

        assert chain.multipliers == [2.0]
        assert result.fee_multiplier == 2.0

    @pytest.mark.asyncio
    async def test_missing_call_builder(self, router, session):
        session.call_builder = None

        with pytest.raises(TerminalError):
            await router.execute(_fund())


class TestApprovalFailures:
    """Approval timeout and rejection."""

    @pytest.mark.asyncio
    async def test_approval_timeout(self, router, session, chain, backend, balance_cache):
        session.two_factor_enabled = True
        backend.approval_response = {"status": "pending"}

        with pytest.raises(ApprovalTimeoutError) as exc_info:
            await router.execute(_fund())

        assert exc_info.value.approval_id == "approval-1"
        assert backend.approval_polls == router.approval_budget.max_polls
        assert chain.broadcasts == []
        assert balance_cache.invalidated == []

    @pytest.mark.asyncio
    async def test_rejected_approval_is_terminal(self, router, session, chain, backend):
        session.two_factor_enabled = True
        backend.approval_response = {"status": "rejected"}

        with pytest.raises(TerminalError) as exc_info:
            await router.execute(_fund())

        assert not isinstance(exc_info.value, ApprovalTimeoutError)
        assert backend.approval_polls == 1
        assert chain.broadcasts == []


class TestFailureClassification:
    """Errors raised from submission."""

    @pytest.mark.asyncio
    async def test_insufficient_fee_is_classified(self, router, chain, backend):
        chain.fail("invoke", RuntimeError(FEE_ERROR))

        with pytest.raises(FeeInsufficientError) as exc_info:
            await router.execute(_fund())

        err = exc_info.value
        assert err.resource == "L2Gas"
        assert err.max_amount == 800000
        assert err.actual_used == 809800
        assert err.suggested_multiplier == 1.5
        assert backend.transactions == []

    @pytest.mark.asyncio
    async def test_other_errors_propagate_unchanged(self, router, chain):
        chain.fail("invoke", RuntimeError("nonce too low"))

        with pytest.raises(RuntimeError, match="nonce too low"):
            await router.execute(_fund())

    @pytest.mark.asyncio
    async def test_record_failure_does_not_fail_transaction(self, router, backend, balance_cache):
        backend.fail("record_transaction", RuntimeError("backend down"))

        result = await router.execute(_fund())

        assert result.tx_hash
        assert len(balance_cache.invalidated) == 1
