"""
Quorum Wallet

M-of-N multisig wallet. Owners propose operations as (destination, value,
payload) transactions; once ``required`` current owners have confirmed one,
the wallet performs the call itself.

Lifecycle of a transaction:
    PENDING  -- confirmations reach required -->  READY  -- executed --> EXECUTED
    READY    -- a confirmation is revoked    -->  PENDING

Execution is final. A transaction whose call reverted stays READY and can be
executed again later.
"""

import copy
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional, Sequence, Set

from eth_abi import encode

from ..chain.events import (
    Confirmation,
    Deposit,
    Execution,
    ExecutionFailure,
    OwnerAddition,
    OwnerRemoval,
    RequirementChange,
    Revocation,
    Submission,
)
from ..chain.runtime import Chain, Contract, external
from ..constants import MAX_OWNER_COUNT
from ..crypto.address import is_zero_address, to_checksum_address
from ..crypto.encoding import encode_call
from ..exceptions import (
    AlreadyConfirmedError,
    AlreadyExecutedError,
    ContractError,
    InvalidWalletConfigError,
    LoyaltyException,
    NotConfirmedError,
    ThresholdNotMetError,
    TransactionNotFoundError,
    UnauthorizedError,
)
from ..logger import get_logger

logger = get_logger(__name__)


class TransactionStatus(IntEnum):
    """Status of a wallet transaction."""
    PENDING = 0     # Fewer confirmations than required
    READY = 1       # Enough confirmations, not executed
    EXECUTED = 2    # Call succeeded (terminal)


@dataclass
class Transaction:
    """
    A proposed wallet operation.

    Attributes:
        id:             Index in the wallet's transaction list
        destination:    Called address
        value:          Native value sent with the call
        data:           ABI payload, empty for a plain transfer
        confirmations:  Owners that confirmed (may include removed owners)
    """
    id: int
    title: str
    description: str
    destination: str
    value: int
    data: bytes
    submitted_at: int
    executed: bool = False
    executed_at: Optional[int] = None
    confirmations: Set[str] = field(default_factory=set)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transactionId": self.id,
            "title": self.title,
            "description": self.description,
            "destination": self.destination,
            "value": str(self.value),
            "data": '0x' + self.data.hex(),
            "submittedAt": self.submitted_at,
            "executed": self.executed,
            "executedAt": self.executed_at,
            "confirmations": sorted(self.confirmations),
        }


def validate_owners(owners: Sequence[str], required: int,
                    max_owner_count: int = MAX_OWNER_COUNT) -> List[str]:
    """
    Check an owner set and threshold.

    Returns:
        Checksummed owners in the given order

    Raises:
        InvalidWalletConfigError: Empty, oversized, duplicate or zero owners,
            or ``required`` outside 1..len(owners)
    """
    if not owners:
        raise InvalidWalletConfigError("Wallet needs at least one owner")
    if len(owners) > max_owner_count:
        raise InvalidWalletConfigError(
            f"Too many owners: {len(owners)} > {max_owner_count}"
        )

    result: List[str] = []
    for owner in owners:
        owner = to_checksum_address(owner)
        if is_zero_address(owner):
            raise InvalidWalletConfigError("Owner cannot be the zero address")
        if owner in result:
            raise InvalidWalletConfigError(f"Duplicate owner {owner}")
        result.append(owner)

    if not 1 <= required <= len(result):
        raise InvalidWalletConfigError(
            f"Required confirmations must be 1-{len(result)}, got {required}"
        )
    return result


class QuorumWallet(Contract):
    """
    Multisig wallet contract.

    Interface:
        - submitTransaction(title, description, destination, value, data) → id
        - confirmTransaction(id) / revokeConfirmation(id) / executeTransaction(id)
        - addMember / removeMember / replaceMember / changeRequirement
          (only through the wallet's own transactions)
        - receive() (payable)
    """

    storage = ('_owners', '_required', '_transactions')

    def __init__(
        self,
        chain: Chain,
        address: str,
        title: str,
        description: str,
        owners: Sequence[str],
        required: int,
        *,
        registry: Optional[str] = None,
        max_owner_count: int = MAX_OWNER_COUNT,
    ):
        """
        Args:
            chain: Hosting chain
            address: Address assigned at deployment
            title: Display name
            description: Free text
            owners: Initial owner addresses
            required: Confirmations needed to execute
            registry: WalletRegistry notified of membership changes
            max_owner_count: Upper bound on the owner set
        """
        super().__init__(chain, address)

        self.title = title
        self.description = description
        self.max_owner_count = max_owner_count
        self.registry = to_checksum_address(registry) if registry else None

        self._owners: List[str] = validate_owners(owners, required, max_owner_count)
        self._required = required
        self._transactions: List[Transaction] = []

        logger.info(
            f"QuorumWallet '{title}' deployed at {address}: "
            f"{required}-of-{len(self._owners)}"
        )

    @classmethod
    def init_code(cls, title: str = "", description: str = "",
                  owners: Sequence[str] = (), required: int = 0, *args) -> bytes:
        """Creation bytes for CREATE2: owner set and threshold."""
        owners = [to_checksum_address(o) for o in owners]
        return cls.__name__.encode('utf-8') + encode(['address[]', 'uint256'], [owners, required])

    # ── Guards ────────────────────────────────────────────────────────

    def _require_owner(self) -> str:
        sender = self.msg_sender
        if sender not in self._owners:
            raise UnauthorizedError(f"{sender} is not an owner of wallet {self.address}")
        return sender

    def _require_wallet(self) -> None:
        if self.msg_sender != self.address:
            raise UnauthorizedError(
                "Member management is only callable through the wallet's own transactions"
            )

    def _get(self, transaction_id: int) -> Transaction:
        if not 0 <= transaction_id < len(self._transactions):
            raise TransactionNotFoundError(f"Transaction #{transaction_id} does not exist")
        return self._transactions[transaction_id]

    def _require_not_executed(self, tx: Transaction) -> None:
        if tx.executed:
            raise AlreadyExecutedError(f"Transaction #{tx.id} was already executed")

    # ── Core operations ───────────────────────────────────────────────

    @external("submitTransaction(string,string,address,uint256,bytes)")
    def submit_transaction(self, title: str, description: str, destination: str,
                           value: int, data: bytes) -> int:
        """
        Propose a transaction and confirm it as the submitter.

        With ``required == 1`` the transaction executes within this call.

        Returns:
            Transaction id
        """
        sender = self._require_owner()

        destination = to_checksum_address(destination)
        if is_zero_address(destination):
            raise ContractError("Destination cannot be the zero address")
        if value < 0:
            raise ContractError("Value cannot be negative")

        transaction_id = len(self._transactions)
        self._transactions.append(Transaction(
            id=transaction_id,
            title=title,
            description=description,
            destination=destination,
            value=value,
            data=bytes(data),
            submitted_at=self.now,
        ))
        self.emit(Submission, transaction_id=transaction_id)
        logger.info(
            f"Wallet {self.address} transaction #{transaction_id} submitted by {sender}: "
            f"'{title}' -> {destination}"
        )

        self._confirm(transaction_id, sender)
        return transaction_id

    @external("confirmTransaction(uint256)")
    def confirm_transaction(self, transaction_id: int) -> None:
        """
        Confirm a pending transaction; executes it once enough owners agree.

        Raises:
            UnauthorizedError: Caller is not an owner
            TransactionNotFoundError: Unknown id
            AlreadyExecutedError: Transaction already executed
            AlreadyConfirmedError: Caller already confirmed
        """
        sender = self._require_owner()
        tx = self._get(transaction_id)
        self._require_not_executed(tx)
        if sender in tx.confirmations:
            raise AlreadyConfirmedError(
                f"{sender} already confirmed transaction #{transaction_id}"
            )
        self._confirm(transaction_id, sender)

    def _confirm(self, transaction_id: int, owner: str) -> None:
        self._transactions[transaction_id].confirmations.add(owner)
        self.emit(Confirmation, owner=owner, transaction_id=transaction_id)
        logger.debug(
            f"Wallet {self.address} transaction #{transaction_id} confirmed by {owner} "
            f"({self.get_confirmation_count(transaction_id)}/{self._required})"
        )
        if self.is_confirmed(transaction_id):
            self._execute(transaction_id)

    @external("revokeConfirmation(uint256)")
    def revoke_confirmation(self, transaction_id: int) -> None:
        """
        Withdraw the caller's confirmation of a transaction not yet executed.

        Raises:
            NotConfirmedError: Caller has not confirmed
        """
        sender = self._require_owner()
        tx = self._get(transaction_id)
        self._require_not_executed(tx)
        if sender not in tx.confirmations:
            raise NotConfirmedError(
                f"{sender} has not confirmed transaction #{transaction_id}"
            )

        tx.confirmations.discard(sender)
        self.emit(Revocation, owner=sender, transaction_id=transaction_id)
        logger.debug(f"Wallet {self.address} transaction #{transaction_id} revoked by {sender}")

    @external("executeTransaction(uint256)")
    def execute_transaction(self, transaction_id: int) -> bool:
        """
        Execute a confirmed transaction, e.g. to retry one whose call failed.

        Returns:
            True if the call succeeded, False if it reverted

        Raises:
            ThresholdNotMetError: Fewer than ``required`` confirmations
        """
        self._require_owner()
        tx = self._get(transaction_id)
        self._require_not_executed(tx)
        if not self.is_confirmed(transaction_id):
            raise ThresholdNotMetError(
                f"Transaction #{transaction_id} has "
                f"{self.get_confirmation_count(transaction_id)}/{self._required} confirmations"
            )
        return self._execute(transaction_id)

    def _execute(self, transaction_id: int) -> bool:
        tx = self._transactions[transaction_id]
        tx.executed = True
        try:
            self.chain.call(self.address, tx.destination, tx.value, tx.data)
        except LoyaltyException as e:
            # The reverted call restored storage; look the transaction up again
            tx = self._transactions[transaction_id]
            tx.executed = False
            reason = str(e) or type(e).__name__
            self.emit(ExecutionFailure, transaction_id=transaction_id, reason=reason)
            logger.warning(
                f"Wallet {self.address} transaction #{transaction_id} failed: "
                f"{type(e).__name__}: {reason}"
            )
            return False

        tx = self._transactions[transaction_id]
        tx.executed_at = self.now
        self.emit(Execution, transaction_id=transaction_id)
        logger.info(f"Wallet {self.address} transaction #{transaction_id} EXECUTED")
        return True

    @external("receive()", payable=True)
    def receive(self) -> None:
        """Accept native value."""
        value = self.msg_value
        if value > 0:
            self.emit(Deposit, sender=self.msg_sender, value=value)

    # ── Member management ─────────────────────────────────────────────

    def _notify_registry(self, hook: str, owner: str) -> None:
        if self.registry is None:
            return
        self.chain.call(self.address, self.registry, 0, encode_call(hook, owner))

    @external("addMember(address)")
    def add_member(self, owner: str) -> None:
        self._require_wallet()
        owner = to_checksum_address(owner)
        if is_zero_address(owner):
            raise InvalidWalletConfigError("Owner cannot be the zero address")
        if owner in self._owners:
            raise InvalidWalletConfigError(f"{owner} is already an owner")
        if len(self._owners) >= self.max_owner_count:
            raise InvalidWalletConfigError(f"Wallet already has {self.max_owner_count} owners")

        self._owners.append(owner)
        self.emit(OwnerAddition, owner=owner)
        self._notify_registry("addMember(address)", owner)
        logger.info(f"Wallet {self.address} added owner {owner}")

    @external("removeMember(address)")
    def remove_member(self, owner: str) -> None:
        """Remove an owner, lowering ``required`` if it would exceed the owner count."""
        self._require_wallet()
        owner = to_checksum_address(owner)
        if owner not in self._owners:
            raise InvalidWalletConfigError(f"{owner} is not an owner")
        if len(self._owners) == 1:
            raise InvalidWalletConfigError("Cannot remove the last owner")

        self._owners.remove(owner)
        self.emit(OwnerRemoval, owner=owner)
        if self._required > len(self._owners):
            self._set_required(len(self._owners))
        self._notify_registry("removeMember(address)", owner)
        logger.info(f"Wallet {self.address} removed owner {owner}")

    @external("replaceMember(address,address)")
    def replace_member(self, owner: str, new_owner: str) -> None:
        self._require_wallet()
        owner = to_checksum_address(owner)
        new_owner = to_checksum_address(new_owner)
        if owner not in self._owners:
            raise InvalidWalletConfigError(f"{owner} is not an owner")
        if is_zero_address(new_owner):
            raise InvalidWalletConfigError("Owner cannot be the zero address")
        if new_owner in self._owners:
            raise InvalidWalletConfigError(f"{new_owner} is already an owner")

        self._owners[self._owners.index(owner)] = new_owner
        self.emit(OwnerRemoval, owner=owner)
        self.emit(OwnerAddition, owner=new_owner)
        self._notify_registry("removeMember(address)", owner)
        self._notify_registry("addMember(address)", new_owner)
        logger.info(f"Wallet {self.address} replaced owner {owner} with {new_owner}")

    @external("changeRequirement(uint256)")
    def change_requirement(self, required: int) -> None:
        self._require_wallet()
        if not 1 <= required <= len(self._owners):
            raise InvalidWalletConfigError(
                f"Required confirmations must be 1-{len(self._owners)}, got {required}"
            )
        self._set_required(required)

    def _set_required(self, required: int) -> None:
        self._required = required
        self.emit(RequirementChange, required=required)
        logger.info(f"Wallet {self.address} now requires {required} confirmations")

    # ── Read-only views ───────────────────────────────────────────────

    def get_members(self) -> List[str]:
        return list(self._owners)

    def get_required(self) -> int:
        return self._required

    def is_owner(self, account: Any) -> bool:
        return to_checksum_address(account) in self._owners

    def get_confirmations(self, transaction_id: int) -> List[str]:
        """Current owners that confirmed, in owner order."""
        tx = self._get(transaction_id)
        return [o for o in self._owners if o in tx.confirmations]

    def get_confirmation_count(self, transaction_id: int) -> int:
        return len(self.get_confirmations(transaction_id))

    def is_confirmed(self, transaction_id: int) -> bool:
        return self.get_confirmation_count(transaction_id) >= self._required

    def get_transaction(self, transaction_id: int) -> Transaction:
        """Copy of a transaction; changing it does not affect the wallet."""
        return copy.deepcopy(self._get(transaction_id))

    def get_transaction_status(self, transaction_id: int) -> TransactionStatus:
        tx = self._get(transaction_id)
        if tx.executed:
            return TransactionStatus.EXECUTED
        if self.is_confirmed(transaction_id):
            return TransactionStatus.READY
        return TransactionStatus.PENDING

    def get_transaction_count(self, pending: bool = True, executed: bool = True) -> int:
        """Number of transactions, filtered by pending and/or executed."""
        return sum(
            1 for tx in self._transactions
            if (pending and not tx.executed) or (executed and tx.executed)
        )

    def get_transaction_ids(self, start: int = 0, end: Optional[int] = None,
                            pending: bool = True, executed: bool = True) -> List[int]:
        """
        Ids of the filtered transactions in the range ``[start, end)`` of the
        filtered list.
        """
        ids = [
            tx.id for tx in self._transactions
            if (pending and not tx.executed) or (executed and tx.executed)
        ]
        if end is None:
            end = len(ids)
        if start < 0 or end < start:
            raise ContractError(f"Invalid range [{start}, {end})")
        return ids[start:end]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "title": self.title,
            "description": self.description,
            "owners": self.get_members(),
            "required": self._required,
            "transactionCount": len(self._transactions),
        }

    def __repr__(self) -> str:
        return f"QuorumWallet({self.address}, {self._required}-of-{len(self._owners)})"
