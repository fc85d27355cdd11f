"""
Loyalty Wallet Module

M-of-N quorum wallets and the registry that creates them.
"""

from .multisig import QuorumWallet, Transaction, TransactionStatus, validate_owners
from .registry import WalletRegistry

__all__ = [
    "QuorumWallet",
    "Transaction",
    "TransactionStatus",
    "validate_owners",
    "WalletRegistry",
]
