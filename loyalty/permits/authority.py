"""
Delegated Transfer Authority

Executes transfers that a balance holder authorized off-line with a signed
permit. Any relayer may submit the permit; it is valid once, only before
its expiry, only for the token and chain it names.
"""

import copy
from typing import Callable, Dict, Union

from ..constants import UINT256_MAX
from ..crypto.address import to_checksum_address
from ..crypto.keys import Signature
from ..exceptions import (
    ContractError,
    ExpiredSignatureError,
    FeeExceedsAmountError,
    InvalidSignatureError,
    LoyaltyException,
)
from ..logger import get_logger
from .message import compute_message, recover_permit_signer

logger = get_logger(__name__)

TransferFn = Callable[[str, str, int], None]


class DelegatedTransferAuthority:
    """
    Permit verification and nonce bookkeeping for one token.

    Args:
        chain_id: Chain id embedded in every permit
        token_address: Address of the token the permits move
        clock: Returns the current block timestamp
        transfer: Ledger transfer (sender, recipient, amount); raises on
            insufficient balance
    """

    def __init__(self, chain_id: int, token_address: str, clock: Callable[[], int],
                 transfer: TransferFn):
        self.chain_id = chain_id
        self.token_address = to_checksum_address(token_address)
        self._clock = clock
        self._transfer = transfer
        self._nonces: Dict[str, int] = {}

    def nonce_of(self, account: str) -> int:
        return self._nonces.get(to_checksum_address(account), 0)

    def _verify(self, sender: str, recipient: str, amount: int, expiry: int,
                signature: Union[bytes, str, Signature]) -> int:
        """Check expiry and signer; returns the nonce the permit was signed with."""
        if expiry <= self._clock():
            raise ExpiredSignatureError()
        if not 0 <= amount <= UINT256_MAX or expiry > UINT256_MAX:
            raise ContractError(f"Permit amount or expiry out of range: {amount}, {expiry}")

        nonce = self.nonce_of(sender)
        digest = compute_message(
            self.chain_id, self.token_address, sender, recipient, amount, nonce, expiry
        )
        if recover_permit_signer(digest, signature) != sender:
            raise InvalidSignatureError()
        return nonce

    def delegated_transfer(self, sender: str, recipient: str, amount: int, expiry: int,
                           signature: Union[bytes, str, Signature]) -> None:
        """
        Move ``amount`` from ``sender`` to ``recipient`` on the strength of
        ``sender``'s signed permit.

        Raises:
            ExpiredSignatureError: If ``expiry`` is not after the current time
            InvalidSignatureError: If the signature is malformed or not by ``sender``
            InsufficientBalanceError: Propagated from the ledger
        """
        sender = to_checksum_address(sender)
        recipient = to_checksum_address(recipient)

        nonce = self._verify(sender, recipient, amount, expiry, signature)
        self._nonces[sender] = nonce + 1
        try:
            self._transfer(sender, recipient, amount)
        except LoyaltyException:
            self._nonces[sender] = nonce
            raise

        logger.info(f"Delegated transfer {sender} -> {recipient} amount={amount} nonce={nonce}")

    def delegated_transfer_with_fee(self, sender: str, recipient: str, amount: int,
                                    expiry: int, signature: Union[bytes, str, Signature],
                                    fee: int, fee_account: str) -> None:
        """
        Like delegated_transfer(), but ``fee`` of ``amount`` goes to
        ``fee_account`` and the rest to ``recipient``.

        The permit covers the gross amount; the recipient receives
        ``amount - fee``. Nonce consumption and both transfers happen
        together or not at all.

        Raises:
            FeeExceedsAmountError: If ``fee`` is larger than ``amount``
        """
        sender = to_checksum_address(sender)
        recipient = to_checksum_address(recipient)
        fee_account = to_checksum_address(fee_account)

        nonce = self._verify(sender, recipient, amount, expiry, signature)
        if fee > amount:
            raise FeeExceedsAmountError(f"Protocol fee {fee} exceeds amount {amount}")

        self._nonces[sender] = nonce + 1
        try:
            if fee > 0:
                self._transfer(sender, fee_account, fee)
            self._transfer(sender, recipient, amount - fee)
        except LoyaltyException:
            self._nonces[sender] = nonce
            raise

        logger.info(
            f"Delegated transfer {sender} -> {recipient} amount={amount - fee} "
            f"fee={fee} to {fee_account} nonce={nonce}"
        )

    # ── Snapshots ─────────────────────────────────────────────────────

    def snapshot(self) -> Dict[str, int]:
        return copy.deepcopy(self._nonces)

    def restore(self, nonces: Dict[str, int]) -> None:
        self._nonces = nonces
