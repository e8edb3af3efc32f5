"""Simplified configuration management using environment variables."""
from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from ..utils.polling import PollBudget

logger = logging.getLogger(__name__)

# Default ward funding: 0.5 STRK
DEFAULT_FUNDING_WEI = "0x6f05b59d3b20000"
MAX_FEE_RETRIES = 3


def _parse_bool(value: str | bool | None) -> bool:
    """Parse boolean value from various formats."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return value.lower() in ("true", "1", "yes", "on", "enabled")


def _parse_list(value: str | List[str] | None, delimiter: str = ",") -> List[str]:
    """Parse list value from string or return as-is if already a list."""
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        return [item.strip() for item in value.split(delimiter) if item.strip()]
    return []


def _getenv(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.getenv(key, default)


def _getenv_int(key: str, default: int) -> int:
    """Get integer environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Parsed integer value

    Raises:
        ValueError: If value cannot be parsed as integer
    """
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(
            f"Invalid integer value for {key}='{value}'. "
            f"Expected integer, got: {value}"
        ) from e


def _getenv_float(key: str, default: float) -> float:
    """Get float environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set

    Returns:
        Parsed float value

    Raises:
        ValueError: If value cannot be parsed as float
    """
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(
            f"Invalid float value for {key}='{value}'. "
            f"Expected float, got: {value}"
        ) from e


def load_environment() -> Optional[Path]:
    """Load the first ``.env`` file found, without overriding the real environment.

    Returns:
        Path of the loaded file, or None
    """
    for env_path in (Path(".env"), Path.home() / ".wardflow" / ".env"):
        if env_path.exists():
            load_dotenv(env_path, override=False)
            logger.debug(f"Loaded environment from {env_path}")
            return env_path
    return None


@dataclass
class Config:
    """Application configuration loaded from environment variables."""

    # ========== Network ==========
    network: str = field(default_factory=lambda: _getenv("WARDFLOW_NETWORK", "sepolia"))

    # ========== Paths ==========
    state_db_path: Path = field(
        default_factory=lambda: Path(_getenv("WARDFLOW_STATE_DB", str(Path.home() / ".wardflow" / "state.db")))
    )

    # ========== Logging ==========
    log_level: str = field(default_factory=lambda: _getenv("LOG_LEVEL", "INFO").upper())
    log_format: str = field(
        default_factory=lambda: _getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    log_file: Optional[str] = field(default_factory=lambda: _getenv("LOG_FILE") or None)

    # ========== Ward Provisioning ==========
    default_funding_wei: str = field(default_factory=lambda: _getenv("WARD_DEFAULT_FUNDING_WEI", DEFAULT_FUNDING_WEI))

    # ========== Confirmation Polling ==========
    confirmation_max_polls: int = field(default_factory=lambda: _getenv_int("CONFIRMATION_MAX_POLLS", 60))
    confirmation_poll_interval: float = field(default_factory=lambda: _getenv_float("CONFIRMATION_POLL_INTERVAL", 2.0))
    confirmation_max_poll_interval: float = field(
        default_factory=lambda: _getenv_float("CONFIRMATION_MAX_POLL_INTERVAL", 10.0)
    )

    # ========== Approvals ==========
    approval_timeout: float = field(default_factory=lambda: _getenv_float("APPROVAL_TIMEOUT", 300.0))
    approval_poll_interval: float = field(default_factory=lambda: _getenv_float("APPROVAL_POLL_INTERVAL", 2.0))

    # ========== Fee Retry ==========
    fee_retry_max_attempts: int = field(default_factory=lambda: _getenv_int("FEE_RETRY_MAX_ATTEMPTS", MAX_FEE_RETRIES))
    fee_multiplier_schedule: List[float] = field(
        default_factory=lambda: [float(v) for v in _parse_list(_getenv("FEE_MULTIPLIER_SCHEDULE", "1.5,2.0,3.0"))]
    )
    fee_multiplier_ceiling: float = field(default_factory=lambda: _getenv_float("FEE_MULTIPLIER_CEILING", 5.0))

    # ========== UI ==========
    json_output: bool = field(default_factory=lambda: _parse_bool(_getenv("JSON_OUTPUT", "false")))

    def __post_init__(self):
        """Clamp the retry budget to the hard maximum."""
        if self.fee_retry_max_attempts > MAX_FEE_RETRIES:
            logger.warning(
                f"FEE_RETRY_MAX_ATTEMPTS={self.fee_retry_max_attempts} exceeds {MAX_FEE_RETRIES}, clamping"
            )
            self.fee_retry_max_attempts = MAX_FEE_RETRIES

    def validate(self) -> None:
        """Validate values that cannot be checked field by field.

        Raises:
            ValueError: If a setting is out of range
        """
        if self.confirmation_max_polls < 1:
            raise ValueError("CONFIRMATION_MAX_POLLS must be at least 1")
        if self.confirmation_max_poll_interval < self.confirmation_poll_interval:
            raise ValueError("CONFIRMATION_MAX_POLL_INTERVAL must be >= CONFIRMATION_POLL_INTERVAL")
        if self.approval_timeout <= 0 or self.approval_poll_interval <= 0:
            raise ValueError("APPROVAL_TIMEOUT and APPROVAL_POLL_INTERVAL must be positive")
        if self.fee_retry_max_attempts < 0:
            raise ValueError("FEE_RETRY_MAX_ATTEMPTS must be non-negative")
        if not self.fee_multiplier_schedule or any(m < 1.0 for m in self.fee_multiplier_schedule):
            raise ValueError("FEE_MULTIPLIER_SCHEDULE must contain multipliers >= 1.0")
        if self.fee_multiplier_ceiling < max(self.fee_multiplier_schedule):
            raise ValueError("FEE_MULTIPLIER_CEILING must be >= every scheduled multiplier")

    def confirmation_budget(self) -> PollBudget:
        return PollBudget(
            max_polls=self.confirmation_max_polls,
            interval=self.confirmation_poll_interval,
            max_interval=self.confirmation_max_poll_interval,
        )

    def to_dict(self) -> dict:
        return {name: str(getattr(self, name)) if isinstance(getattr(self, name), Path) else getattr(self, name)
                for name in self.__dataclass_fields__}


_config: Optional[Config] = None
_config_lock = threading.Lock()


def get_config() -> Config:
    """Return the process-wide configuration, loading ``.env`` on first use.

    Raises:
        ValueError: If the environment holds an invalid setting
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                load_environment()
                config = Config()
                config.validate()
                _config = config
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next access re-reads the environment."""
    global _config
    with _config_lock:
        _config = None


__all__ = ["Config", "DEFAULT_FUNDING_WEI", "MAX_FEE_RETRIES", "get_config", "load_environment", "reset_config"]
