"""Global pytest fixtures and in-memory collaborators.

This module provides fakes for every external collaborator a wallet session
needs, so workflows and the router can be exercised without a chain or a
backend:

- FakeKeyService: deterministic key generation, records signing requests
- FakeChainClient: records every call, with per-method or per-entrypoint failures
- FakeBackend: in-memory ward registry, 2FA configs, and approvals
- FakeAuthenticator, FakeBalanceCache, FakeCallBuilder
- session: a WalletSession wired to all of the above
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import pytest

from wardflow.config import Config, reset_config
from wardflow.models.transaction import Call, DeployResult, KeyPair, PreparedTransaction, TransactionIntent, TxStatus
from wardflow.session import WalletSession
from wardflow.storage import InMemoryKeyValueStore
from wardflow.tokens import TOKENS
from wardflow.utils.addresses import pad_address

GUARDIAN_ADDRESS = "0x0123abc"
GUARDIAN_PUBLIC_KEY = "0x7e57"
DEPLOYED_WARD_ADDRESS = "0x5ea1"


class _FailureQueue:
    def __init__(self):
        self.failures: Dict[str, List[BaseException]] = {}

    def fail(self, key: str, *errors: BaseException) -> None:
        """Queue errors raised by the next calls matching ``key``."""
        self.failures.setdefault(key, []).extend(errors)

    def _maybe_fail(self, key: str) -> None:
        queue = self.failures.get(key)
        if queue:
            raise queue.pop(0)


class FakeKeyService:
    def __init__(self):
        self.generated = 0
        self.sign_calls: List[tuple] = []

    async def generate_keypair(self) -> KeyPair:
        self.generated += 1
        return KeyPair(private_key=hex(0x1000 + self.generated), public_key=hex(0x2000 + self.generated))

    async def sign(self, message_hash: str, private_key: Optional[str] = None) -> List[str]:
        self.sign_calls.append((message_hash, private_key))
        return [f"sig:{private_key or 'primary'}"]


class FakeChainClient(_FailureQueue):
    """Records calls; transactions are accepted unless their entrypoint is held pending."""

    def __init__(self):
        super().__init__()
        self.calls: List[str] = []
        self.invocations: List[List[Call]] = []
        self.multipliers: List[float] = []
        self.broadcasts: List[tuple] = []
        self.statuses: Dict[str, TxStatus] = {}
        self.pending_entrypoints: set = set()
        self.secondary_key: Optional[str] = None
        self._counter = 0

    def _next_hash(self) -> str:
        self._counter += 1
        return hex(0xABC000 + self._counter)

    def entrypoints(self) -> List[str]:
        return [call.entrypoint for batch in self.invocations for call in batch]

    async def deploy_ward(self, public_key, guardian_address, guardian_public_key) -> DeployResult:
        self.calls.append("deploy_ward")
        self._maybe_fail("deploy_ward")
        tx_hash = self._next_hash()
        self.statuses[tx_hash] = TxStatus.ACCEPTED
        return DeployResult(tx_hash=tx_hash, contract_address=DEPLOYED_WARD_ADDRESS)

    async def invoke(self, calls: Sequence[Call], fee_multiplier: float = 1.0, signature=None) -> str:
        self.calls.append("invoke")
        self.invocations.append(list(calls))
        self.multipliers.append(fee_multiplier)
        self._maybe_fail("invoke")
        for call in calls:
            self._maybe_fail(call.entrypoint)
        tx_hash = self._next_hash()
        pending = any(c.entrypoint in self.pending_entrypoints for c in calls)
        self.statuses[tx_hash] = TxStatus.PENDING if pending else TxStatus.ACCEPTED
        return tx_hash

    async def build_transaction(self, sender, calls, fee_multiplier: float = 1.0) -> PreparedTransaction:
        self.calls.append("build_transaction")
        self.invocations.append(list(calls))
        self.multipliers.append(fee_multiplier)
        self._maybe_fail("build_transaction")
        return PreparedTransaction(sender=sender, calls=list(calls), tx_hash=self._next_hash(), fee_multiplier=fee_multiplier)

    async def broadcast(self, prepared: PreparedTransaction, signature: List[str]) -> str:
        self.calls.append("broadcast")
        self.broadcasts.append((prepared, signature))
        self._maybe_fail("broadcast")
        self.statuses[prepared.tx_hash] = TxStatus.ACCEPTED
        return prepared.tx_hash

    async def get_transaction_status(self, tx_hash: str) -> TxStatus:
        self.calls.append("get_transaction_status")
        return self.statuses.get(tx_hash, TxStatus.PENDING)

    async def get_secondary_key(self, address: str) -> Optional[str]:
        self.calls.append("get_secondary_key")
        return self.secondary_key


class FakeBackend(_FailureQueue):
    def __init__(self):
        super().__init__()
        self.wards: List[Dict[str, Any]] = []
        self.updates: List[tuple] = []
        self.two_factor: Dict[str, str] = {}
        self.approval_requests: List[Dict[str, Any]] = []
        self.approval_response: Dict[str, Any] = {"status": "approved", "signature": ["sig:cosigner"]}
        self.approval_polls = 0
        self.transactions: List[Dict[str, Any]] = []

    async def register_ward(self, record):
        self._maybe_fail("register_ward")
        self.wards.append(record)

    async def update_ward(self, ward_address, fields):
        self._maybe_fail("update_ward")
        self.updates.append((ward_address, fields))

    async def enable_two_factor(self, wallet_address, secondary_public_key):
        self._maybe_fail("enable_two_factor")
        self.two_factor[wallet_address] = secondary_public_key

    async def disable_two_factor(self, wallet_address):
        self._maybe_fail("disable_two_factor")
        self.two_factor.pop(wallet_address, None)

    async def get_two_factor_status(self, wallet_address):
        if wallet_address not in self.two_factor:
            return None
        return {"is_enabled": True, "secondary_public_key": self.two_factor[wallet_address]}

    async def create_approval(self, request):
        self.approval_requests.append(request)
        return f"approval-{len(self.approval_requests)}"

    async def get_approval(self, approval_id):
        self.approval_polls += 1
        return dict(self.approval_response)

    async def record_transaction(self, record):
        self._maybe_fail("record_transaction")
        self.transactions.append(record)


class FakeAuthenticator:
    def __init__(self, result: bool = True):
        self.result = result
        self.prompts: List[str] = []

    async def authenticate(self, prompt: str) -> bool:
        self.prompts.append(prompt)
        return self.result


class FakeBalanceCache:
    def __init__(self):
        self.invalidated: List[tuple] = []

    def invalidate(self, address: str, token: str) -> None:
        self.invalidated.append((address, token))


class FakeCallBuilder:
    def __init__(self):
        self.intents: List[TransactionIntent] = []

    async def prepare_calls(self, intent: TransactionIntent) -> List[Call]:
        self.intents.append(intent)
        return [Call(TOKENS[intent.token].tongo_contract, intent.action.value, [hex(intent.amount)])]


class ProgressRecorder:
    """Collects ``(step, total, message)`` progress events."""

    def __init__(self):
        self.events: List[tuple] = []

    def __call__(self, step: int, total: int, message: str) -> None:
        self.events.append((step, total, message))

    @property
    def steps(self) -> List[int]:
        return [event[0] for event in self.events]


@pytest.fixture(autouse=True)
def clear_cached_config():
    """Drop the process-wide configuration before and after each test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def config(tmp_path) -> Config:
    """Configuration with instant polling and a short approval window.

    Args:
        tmp_path: pytest temporary directory

    Returns:
        Config instance
    """
    return Config(
        state_db_path=tmp_path / "state.db",
        confirmation_max_polls=3,
        confirmation_poll_interval=0.0,
        confirmation_max_poll_interval=0.0,
        approval_timeout=0.05,
        approval_poll_interval=0.01,
        fee_retry_max_attempts=3,
        fee_multiplier_schedule=[1.5, 2.0, 3.0],
        fee_multiplier_ceiling=5.0,
    )


@pytest.fixture
def guardian_address() -> str:
    return GUARDIAN_ADDRESS


@pytest.fixture
def deployed_ward_address() -> str:
    """Full-width address the fake chain deploys wards at."""
    return pad_address(DEPLOYED_WARD_ADDRESS)


@pytest.fixture
def chain() -> FakeChainClient:
    return FakeChainClient()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def keys() -> FakeKeyService:
    return FakeKeyService()


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def authenticator() -> FakeAuthenticator:
    return FakeAuthenticator()


@pytest.fixture
def balance_cache() -> FakeBalanceCache:
    return FakeBalanceCache()


@pytest.fixture
def call_builder() -> FakeCallBuilder:
    return FakeCallBuilder()


@pytest.fixture
def progress() -> ProgressRecorder:
    return ProgressRecorder()


@pytest.fixture
def session(config, chain, backend, keys, store, authenticator, balance_cache, call_builder) -> WalletSession:
    """Wallet session for the guardian account, wired to the fakes."""
    return WalletSession(
        address=GUARDIAN_ADDRESS,
        public_key=GUARDIAN_PUBLIC_KEY,
        keys=keys,
        chain=chain,
        backend=backend,
        store=store,
        authenticator=authenticator,
        balance_cache=balance_cache,
        call_builder=call_builder,
        config=config,
    )
