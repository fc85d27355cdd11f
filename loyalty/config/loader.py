"""
Loyalty TOML Configuration Loader

Loads the [chain], [token] and [wallet] sections of config.toml with
environment variable overrides.

Environment variable mapping:
    [chain] chain_id           → LOYALTY_CHAIN_ID
    [chain] genesis_timestamp  → LOYALTY_GENESIS_TIMESTAMP
    [token] max_supply         → LOYALTY_MAX_SUPPLY
    [token] protocol_fee       → LOYALTY_PROTOCOL_FEE
    [token] fee_account        → LOYALTY_FEE_ACCOUNT
    [wallet] max_owner_count   → LOYALTY_MAX_OWNER_COUNT

Private keys never belong in the config file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    try:
        import tomli  # type: ignore[no-redef]
    except ImportError:
        tomli = None  # type: ignore[assignment]

from ..constants import (
    DEFAULT_CHAIN_ID,
    DEFAULT_PROTOCOL_FEE,
    LYT_DECIMALS,
    LYT_DEFAULT_MAX_SUPPLY,
    LYT_NAME,
    LYT_SYMBOL,
    MAX_OWNER_COUNT,
)
from ..crypto.address import is_valid_address, to_checksum_address
from ..exceptions import ConfigurationError
from ..logger import get_logger

logger = get_logger(__name__)


def _env_int(name: str) -> Optional[int]:
    v = os.environ.get(name)
    if not v:
        return None
    try:
        return int(v, 0)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {v!r}")


# ---------------------------------------------------------------------------
# Section dataclasses, one per [section] of config.example.toml
# ---------------------------------------------------------------------------


@dataclass
class ChainConfig:
    """[chain] section."""
    chain_id: int = DEFAULT_CHAIN_ID
    genesis_timestamp: int = 0  # 0 = wall clock at startup

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChainConfig":
        return cls(
            chain_id=data.get("chain_id", DEFAULT_CHAIN_ID),
            genesis_timestamp=data.get("genesis_timestamp", 0),
        )

    def apply_env(self) -> None:
        """Override from environment variables."""
        if (v := _env_int("LOYALTY_CHAIN_ID")) is not None:
            self.chain_id = v
        if (v := _env_int("LOYALTY_GENESIS_TIMESTAMP")) is not None:
            self.genesis_timestamp = v


@dataclass
class TokenConfig:
    """[token] section."""
    name: str = LYT_NAME
    symbol: str = LYT_SYMBOL
    decimals: int = LYT_DECIMALS
    max_supply: int = LYT_DEFAULT_MAX_SUPPLY
    protocol_fee: int = DEFAULT_PROTOCOL_FEE
    fee_account: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenConfig":
        return cls(
            name=data.get("name", LYT_NAME),
            symbol=data.get("symbol", LYT_SYMBOL),
            decimals=data.get("decimals", LYT_DECIMALS),
            max_supply=int(data.get("max_supply", LYT_DEFAULT_MAX_SUPPLY)),
            protocol_fee=int(data.get("protocol_fee", DEFAULT_PROTOCOL_FEE)),
            fee_account=data.get("fee_account", ""),
        )

    def apply_env(self) -> None:
        if (v := _env_int("LOYALTY_MAX_SUPPLY")) is not None:
            self.max_supply = v
        if (v := _env_int("LOYALTY_PROTOCOL_FEE")) is not None:
            self.protocol_fee = v
        if v := os.environ.get("LOYALTY_FEE_ACCOUNT"):
            self.fee_account = v

    def validate(self) -> None:
        if not self.name:
            raise ConfigurationError("token name cannot be empty")
        if not self.symbol:
            raise ConfigurationError("token symbol cannot be empty")
        if not 0 <= self.decimals <= 18:
            raise ConfigurationError(f"token decimals must be 0-18, got {self.decimals}")
        if self.max_supply < 0:
            raise ConfigurationError("max_supply cannot be negative (0 = uncapped)")
        if self.protocol_fee < 0:
            raise ConfigurationError("protocol_fee cannot be negative")
        if self.fee_account and not is_valid_address(self.fee_account):
            raise ConfigurationError(f"Invalid fee_account: {self.fee_account}")


@dataclass
class WalletConfig:
    """[wallet] section."""
    max_owner_count: int = MAX_OWNER_COUNT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WalletConfig":
        return cls(max_owner_count=data.get("max_owner_count", MAX_OWNER_COUNT))

    def apply_env(self) -> None:
        if (v := _env_int("LOYALTY_MAX_OWNER_COUNT")) is not None:
            self.max_owner_count = v


# -----------------------------------------------------------------------
# Top-level config
# -----------------------------------------------------------------------

@dataclass
class LoyaltyConfig:
    """
    Loyalty configuration.

    Loads every section of config.toml and applies environment variable
    overrides.
    """
    chain: ChainConfig = field(default_factory=ChainConfig)
    token: TokenConfig = field(default_factory=TokenConfig)
    wallet: WalletConfig = field(default_factory=WalletConfig)

    # --- factories --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoyaltyConfig":
        """Create LoyaltyConfig from a parsed TOML dict."""
        return cls(
            chain=ChainConfig.from_dict(data.get("chain", {})),
            token=TokenConfig.from_dict(data.get("token", {})),
            wallet=WalletConfig.from_dict(data.get("wallet", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "LoyaltyConfig":
        """
        Load configuration from a TOML file.

        A missing file yields the defaults (with env overrides).

        Args:
            config_path: Path to config.toml

        Raises:
            ConfigurationError: If the file is not valid TOML
        """
        path = Path(config_path)
        if not path.exists():
            logger.debug(f"Config file not found: {config_path}, using defaults")
            cfg = cls()
            cfg.apply_env()
            return cfg

        if tomli is None:
            raise ImportError(
                "tomli is required for TOML config loading. "
                "Install it: pip install tomli"
            )

        with open(path, "rb") as f:
            try:
                raw = tomli.load(f)
            except tomli.TOMLDecodeError as e:
                raise ConfigurationError(f"Invalid TOML in {config_path}: {e}")

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    # --- env overrides ----------------------------------------------------

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.chain.apply_env()
        self.token.apply_env()
        self.wallet.apply_env()

    # --- validation -------------------------------------------------------

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Returns:
            True if all valid

        Raises:
            ConfigurationError: on invalid config
        """
        if self.chain.chain_id < 1:
            raise ConfigurationError("chain_id must be >= 1")
        if self.chain.genesis_timestamp < 0:
            raise ConfigurationError("genesis_timestamp cannot be negative")
        self.token.validate()
        if not 1 <= self.wallet.max_owner_count <= MAX_OWNER_COUNT:
            raise ConfigurationError(
                f"max_owner_count must be 1-{MAX_OWNER_COUNT}, got {self.wallet.max_owner_count}"
            )
        return True

    # --- serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics, NOT for re-creating TOML)."""
        return {
            "chain": {
                "chain_id": self.chain.chain_id,
                "genesis_timestamp": self.chain.genesis_timestamp,
            },
            "token": {
                "name": self.token.name,
                "symbol": self.token.symbol,
                "decimals": self.token.decimals,
                "max_supply": self.token.max_supply,
                "protocol_fee": self.token.protocol_fee,
                "fee_account": (
                    to_checksum_address(self.token.fee_account)
                    if self.token.fee_account else ""
                ),
            },
            "wallet": {
                "max_owner_count": self.wallet.max_owner_count,
            },
        }


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> LoyaltyConfig:
    """
    Load and validate the loyalty configuration.

    Resolution order:
        1. Explicit *path* argument
        2. LOYALTY_CONFIG env var
        3. ./config.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("LOYALTY_CONFIG", "config.toml")

    cfg = LoyaltyConfig.from_file(path)
    cfg.validate()
    return cfg
