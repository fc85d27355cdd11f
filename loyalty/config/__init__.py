"""
Loyalty Configuration

Loads config.toml; environment variables override TOML values.
"""

from .loader import (
    LoyaltyConfig,
    ChainConfig,
    TokenConfig,
    WalletConfig,
    load_config,
)

__all__ = [
    "LoyaltyConfig",
    "ChainConfig",
    "TokenConfig",
    "WalletConfig",
    "load_config",
]
