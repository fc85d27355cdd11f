"""
Loyalty Ledger Module

The loyalty token ledger and amount helpers.
"""

from .amount import Amount
from .token import LoyaltyToken

__all__ = ["Amount", "LoyaltyToken"]
