"""
Loyalty Exceptions

Exception classes shared by the chain runtime, the ledger, the quorum wallet
and the delegated transfer authority.

Every ContractError aborts the call that raised it; the chain runtime reverts
all state touched by that call before re-raising.
"""

from .constants import ERROR_EXPIRED_SIGNATURE, ERROR_INVALID_SIGNATURE


class LoyaltyException(Exception):
    """Base exception for the loyalty package."""
    pass


class InvalidKeyError(LoyaltyException):
    """Invalid cryptographic key."""
    pass


class InvalidAddressError(LoyaltyException):
    """Invalid address format."""
    pass


class ConfigurationError(LoyaltyException):
    """Configuration error."""
    pass


class ContractError(LoyaltyException):
    """A contract call reverted."""
    pass


# -- Quorum wallet -----------------------------------------------------------

class UnauthorizedError(ContractError):
    """Caller is not allowed to perform the operation."""
    pass


class InvalidWalletConfigError(ContractError):
    """Owner set or confirmation threshold is invalid."""
    pass


class TransactionNotFoundError(ContractError):
    """Unknown wallet transaction id."""
    pass


class AlreadyConfirmedError(ContractError):
    """Owner already confirmed this transaction."""
    pass


class NotConfirmedError(ContractError):
    """Owner has not confirmed this transaction."""
    pass


class AlreadyExecutedError(ContractError):
    """Transaction was already executed; execution is final."""
    pass


class ThresholdNotMetError(ContractError):
    """Execution attempted below the required confirmation count."""
    pass


# -- Delegated transfers -----------------------------------------------------

class InvalidSignatureError(ContractError):
    """Permit signature does not recover to the permit's sender."""

    def __init__(self, message: str = ERROR_INVALID_SIGNATURE):
        super().__init__(message)


class ExpiredSignatureError(ContractError):
    """Permit expiry is at or before the current chain time."""

    def __init__(self, message: str = ERROR_EXPIRED_SIGNATURE):
        super().__init__(message)


class FeeExceedsAmountError(ContractError):
    """Protocol fee is larger than the transferred amount."""
    pass


# -- Ledger ------------------------------------------------------------------

class InsufficientBalanceError(ContractError):
    """Sender balance is too low."""
    pass


class SupplyCapExceededError(ContractError):
    """Minting would exceed the maximum supply."""
    pass
