"""Interfaces of the collaborators the workflows drive.

Implementations live outside this package (RPC clients, the backend API
client, platform keychains). Tests use in-memory fakes.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from .models.transaction import Call, DeployResult, KeyPair, PreparedTransaction, TransactionIntent, TxStatus


@runtime_checkable
class KeyService(Protocol):
    """Key generation and signing."""

    async def generate_keypair(self) -> KeyPair: ...

    async def sign(self, message_hash: str, private_key: Optional[str] = None) -> List[str]:
        """Sign with ``private_key``, or the account's primary key when None."""
        ...


@runtime_checkable
class ChainClient(Protocol):
    """Starknet access for the signed-in account."""

    async def deploy_ward(self, public_key: str, guardian_address: str, guardian_public_key: Optional[str]) -> DeployResult: ...

    async def invoke(self, calls: Sequence[Call], fee_multiplier: float = 1.0, signature: Optional[List[str]] = None) -> str:
        """Build, sign with the primary key (or ``signature``), and submit."""
        ...

    async def build_transaction(self, sender: str, calls: Sequence[Call], fee_multiplier: float = 1.0) -> PreparedTransaction: ...

    async def broadcast(self, prepared: PreparedTransaction, signature: List[str]) -> str: ...

    async def get_transaction_status(self, tx_hash: str) -> TxStatus: ...

    async def get_secondary_key(self, address: str) -> Optional[str]: ...


@runtime_checkable
class CallBuilder(Protocol):
    """Turns an intent into contract calls, including any proofs."""

    async def prepare_calls(self, intent: TransactionIntent) -> List[Call]: ...


@runtime_checkable
class BackendRegistry(Protocol):
    """The remote registry for wards, 2FA configs, approvals, and history."""

    async def register_ward(self, record: Dict[str, Any]) -> None: ...

    async def update_ward(self, ward_address: str, fields: Dict[str, Any]) -> None: ...

    async def enable_two_factor(self, wallet_address: str, secondary_public_key: str) -> None: ...

    async def disable_two_factor(self, wallet_address: str) -> None: ...

    async def get_two_factor_status(self, wallet_address: str) -> Optional[Dict[str, Any]]: ...

    async def create_approval(self, request: Dict[str, Any]) -> str: ...

    async def get_approval(self, approval_id: str) -> Dict[str, Any]:
        """Return ``{"status": "pending"|"approved"|"rejected", "signature": [...]}``."""
        ...

    async def record_transaction(self, record: Dict[str, Any]) -> None: ...


@runtime_checkable
class KeyValueStore(Protocol):
    """Local persistent store. A missing key reads as None."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> bool: ...


@runtime_checkable
class Authenticator(Protocol):
    async def authenticate(self, prompt: str) -> bool: ...


@runtime_checkable
class BalanceCache(Protocol):
    def invalidate(self, address: str, token: str) -> None: ...
