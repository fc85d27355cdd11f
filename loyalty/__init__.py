"""
Loyalty Tokens Package

Two authorization engines over a shared loyalty-token ledger:
    - QuorumWallet: M-of-N owner approval of arbitrary pre-agreed operations
    - DelegatedTransferAuthority: off-line signed, relayer-submitted transfers

Core imports are lazily loaded so that importing a single submodule does not
pull in the whole package:

    from loyalty.chain import Chain
    from loyalty.ledger import LoyaltyToken
    from loyalty.wallet import QuorumWallet, WalletRegistry
"""

__version__ = "2.3.0"


def __getattr__(name):
    """Lazy loading of the most used entry points."""
    if name == 'Chain':
        from .chain import Chain
        return Chain
    elif name == 'LoyaltyToken':
        from .ledger import LoyaltyToken
        return LoyaltyToken
    elif name == 'QuorumWallet':
        from .wallet import QuorumWallet
        return QuorumWallet
    elif name == 'WalletRegistry':
        from .wallet import WalletRegistry
        return WalletRegistry
    elif name == 'LoyaltyException':
        from .exceptions import LoyaltyException
        return LoyaltyException
    raise AttributeError(f"module 'loyalty' has no attribute {name!r}")


__all__ = ['Chain', 'LoyaltyToken', 'QuorumWallet', 'WalletRegistry', 'LoyaltyException']
