"""Explicitly owned wallet session passed to workflows and the router."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from .config import Config, get_config
from .models.ward import WardAccount
from .ports import Authenticator, BackendRegistry, BalanceCache, CallBuilder, ChainClient, KeyService, KeyValueStore
from .utils.addresses import normalize_address

logger = logging.getLogger(__name__)


@dataclass
class WalletSession:
    """The signed-in account plus every collaborator the workflows need.

    A session is opened once per sign-in and closed on sign-out. Workflows
    hold a reference to it and never reach for process-global state.

    Attributes:
        address: Account address of the signed-in wallet
        public_key: Primary public key of the account
        ward: The ward account when the signed-in wallet is itself a ward
        guarded_wards: Wards this account is guardian of, keyed by normalized address
        two_factor_enabled: Whether 2FA is active for this account
    """

    address: str
    public_key: str
    keys: KeyService
    chain: ChainClient
    backend: BackendRegistry
    store: KeyValueStore
    authenticator: Authenticator
    balance_cache: BalanceCache
    call_builder: Optional[CallBuilder] = None
    config: Config = field(default_factory=get_config)
    ward: Optional[WardAccount] = None
    guarded_wards: Dict[str, WardAccount] = field(default_factory=dict)
    two_factor_enabled: bool = False
    is_open: bool = field(default=False, init=False)

    async def open(self) -> "WalletSession":
        """Load the 2FA status and mark the session usable."""
        status = await self.backend.get_two_factor_status(self.address)
        self.two_factor_enabled = bool(status and status.get("is_enabled"))
        self.is_open = True
        logger.info(f"Opened wallet session for {self.address} (2FA {'on' if self.two_factor_enabled else 'off'})")
        return self

    async def close(self) -> None:
        self.guarded_wards.clear()
        self.is_open = False
        logger.info(f"Closed wallet session for {self.address}")

    async def __aenter__(self) -> "WalletSession":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def is_ward(self) -> bool:
        return self.ward is not None

    def add_guarded_ward(self, ward: WardAccount) -> None:
        self.guarded_wards[normalize_address(ward.address)] = ward

    def get_guarded_ward(self, address: str) -> Optional[WardAccount]:
        return self.guarded_wards.get(normalize_address(address))
