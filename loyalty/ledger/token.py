"""
Loyalty Token

Fungible loyalty-point ledger with:
  - ERC-20 style balances and transfers
  - Owner-only minting under an optional supply cap
  - Signed delegated transfers submitted by relayers
  - A flat protocol fee carved out of delegated transfers with fee

The owner is normally a QuorumWallet, so minting and fee policy changes go
through its M-of-N approval.
"""

from typing import Any, Dict, Optional, Union

from ..chain.events import FeeAccountChange, ProtocolFeeChange, Transfer
from ..chain.runtime import Chain, Contract, external
from ..constants import (
    DEFAULT_PROTOCOL_FEE,
    LYT_DECIMALS,
    LYT_DEFAULT_MAX_SUPPLY,
    LYT_NAME,
    LYT_SYMBOL,
    ZERO_ADDRESS,
)
from ..crypto.address import is_zero_address, to_checksum_address
from ..crypto.keys import Signature
from ..exceptions import (
    ContractError,
    InsufficientBalanceError,
    SupplyCapExceededError,
    UnauthorizedError,
)
from ..logger import get_logger
from ..permits.authority import DelegatedTransferAuthority

logger = get_logger(__name__)


class LoyaltyToken(Contract):
    """
    Loyalty token contract.

    Interface:
        - transfer(to, amount)
        - mint(amount) / burn(amount)
        - setProtocolFee(fee) / changeFeeAccount(account)   (owner only)
        - delegatedTransfer(from, to, amount, expiry, signature)
        - delegatedTransferWithFee(from, to, amount, expiry, signature)
    """

    storage = (
        '_balances',
        '_total_supply',
        '_max_supply',
        '_owner',
        '_protocol_fee',
        '_fee_account',
    )

    def __init__(
        self,
        chain: Chain,
        address: str,
        owner: str,
        fee_account: str,
        max_supply: int = LYT_DEFAULT_MAX_SUPPLY,
        *,
        protocol_fee: int = DEFAULT_PROTOCOL_FEE,
        name: str = LYT_NAME,
        symbol: str = LYT_SYMBOL,
        decimals: int = LYT_DECIMALS,
    ):
        """
        Args:
            chain: Hosting chain
            address: Address assigned at deployment
            owner: Account allowed to mint and change the fee policy
            fee_account: Receiver of protocol fees
            max_supply: Supply cap in smallest units, 0 for uncapped
            protocol_fee: Flat fee of delegated transfers with fee
        """
        super().__init__(chain, address)

        if max_supply < 0:
            raise ContractError("Max supply cannot be negative")
        if protocol_fee < 0:
            raise ContractError("Protocol fee cannot be negative")
        if decimals < 0 or decimals > 18:
            raise ContractError(f"Decimals must be 0-18, got {decimals}")

        self.name = name
        self.symbol = symbol
        self.decimals = decimals

        self._owner = to_checksum_address(owner)
        self._fee_account = to_checksum_address(fee_account)
        self._max_supply = max_supply
        self._protocol_fee = protocol_fee
        self._total_supply = 0
        self._balances: Dict[str, int] = {}

        self.permits = DelegatedTransferAuthority(
            chain_id=chain.chain_id,
            token_address=address,
            clock=lambda: self.chain.timestamp,
            transfer=self._transfer,
        )

        logger.info(
            f"{symbol} deployed at {address}: owner={self._owner}, "
            f"max_supply={max_supply or 'uncapped'}, fee={protocol_fee}"
        )

    @classmethod
    def deploy(cls, chain: Chain, deployer: Any, owner: Any, fee_account: Any = None,
               config=None) -> "LoyaltyToken":
        """
        Deploy a token with parameters from a LoyaltyConfig.

        ``fee_account`` overrides the configured fee account; without either
        the owner collects the fees.
        """
        if config is None:
            from ..config import load_config
            config = load_config()

        token_config = config.token
        if fee_account is None:
            fee_account = token_config.fee_account or owner
        return chain.deploy(
            deployer,
            cls,
            to_checksum_address(owner),
            to_checksum_address(fee_account),
            token_config.max_supply,
            protocol_fee=token_config.protocol_fee,
            name=token_config.name,
            symbol=token_config.symbol,
            decimals=token_config.decimals,
        )

    # ── Read-only views ───────────────────────────────────────────────

    def balance_of(self, account: Any) -> int:
        return self._balances.get(to_checksum_address(account), 0)

    def total_supply(self) -> int:
        return self._total_supply

    def max_supply(self) -> int:
        return self._max_supply

    def get_owner(self) -> str:
        return self._owner

    def nonce_of(self, account: Any) -> int:
        return self.permits.nonce_of(account)

    def get_protocol_fee(self) -> int:
        return self._protocol_fee

    def get_fee_account(self) -> str:
        return self._fee_account

    # ── Internal ledger ───────────────────────────────────────────────

    def _transfer(self, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise ContractError("Transfer amount cannot be negative")
        if is_zero_address(recipient):
            raise ContractError("Transfer to the zero address")

        balance = self._balances.get(sender, 0)
        if balance < amount:
            raise InsufficientBalanceError(
                f"{sender} balance {balance} < transfer amount {amount}"
            )

        self._balances[sender] = balance - amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount
        self.emit(Transfer, sender=sender, recipient=recipient, amount=amount)
        logger.debug(f"Transfer: {sender} -> {recipient} {amount} {self.symbol}")

    def _require_owner(self) -> None:
        if self.msg_sender != self._owner:
            raise UnauthorizedError(f"{self.msg_sender} is not the token owner")

    # ── Core operations ───────────────────────────────────────────────

    @external("transfer(address,uint256)")
    def transfer(self, to: str, amount: int) -> bool:
        self._transfer(self.msg_sender, to_checksum_address(to), amount)
        return True

    @external("mint(uint256)")
    def mint(self, amount: int) -> None:
        """
        Mint ``amount`` to the owner.

        Raises:
            UnauthorizedError: If the caller is not the owner
            SupplyCapExceededError: If a cap is set and would be exceeded
        """
        self._require_owner()
        if amount < 0:
            raise ContractError("Mint amount cannot be negative")
        if self._max_supply and self._total_supply + amount > self._max_supply:
            raise SupplyCapExceededError(
                f"Minting {amount} exceeds max supply {self._max_supply} "
                f"(current {self._total_supply})"
            )

        self._total_supply += amount
        self._balances[self._owner] = self._balances.get(self._owner, 0) + amount
        self.emit(Transfer, sender=ZERO_ADDRESS, recipient=self._owner, amount=amount)
        logger.info(f"Minted {amount} {self.symbol} to {self._owner}")

    @external("burn(uint256)")
    def burn(self, amount: int) -> None:
        """Destroy ``amount`` of the caller's tokens."""
        sender = self.msg_sender
        if amount < 0:
            raise ContractError("Burn amount cannot be negative")

        balance = self._balances.get(sender, 0)
        if balance < amount:
            raise InsufficientBalanceError(
                f"{sender} balance {balance} < burn amount {amount}"
            )

        self._balances[sender] = balance - amount
        self._total_supply -= amount
        self.emit(Transfer, sender=sender, recipient=ZERO_ADDRESS, amount=amount)
        logger.info(f"Burned {amount} {self.symbol} from {sender}")

    # ── Fee policy ────────────────────────────────────────────────────

    @external("setProtocolFee(uint256)")
    def set_protocol_fee(self, fee: int) -> None:
        self._require_owner()
        if fee < 0:
            raise ContractError("Protocol fee cannot be negative")
        self._protocol_fee = fee
        self.emit(ProtocolFeeChange, fee=fee)
        logger.info(f"{self.symbol} protocol fee set to {fee}")

    @external("changeFeeAccount(address)")
    def change_fee_account(self, account: str) -> None:
        self._require_owner()
        account = to_checksum_address(account)
        if is_zero_address(account):
            raise ContractError("Fee account cannot be the zero address")
        self._fee_account = account
        self.emit(FeeAccountChange, account=account)
        logger.info(f"{self.symbol} fee account changed to {account}")

    # ── Delegated transfers ───────────────────────────────────────────

    @external("delegatedTransfer(address,address,uint256,uint256,bytes)")
    def delegated_transfer(self, sender: str, recipient: str, amount: int, expiry: int,
                           signature: Union[bytes, str, Signature]) -> bool:
        """
        Transfer on behalf of ``sender`` with a permit ``sender`` signed.

        Callable by anyone; the signature is the authorization.
        """
        self.permits.delegated_transfer(sender, recipient, amount, expiry, signature)
        return True

    @external("delegatedTransferWithFee(address,address,uint256,uint256,bytes)")
    def delegated_transfer_with_fee(self, sender: str, recipient: str, amount: int,
                                    expiry: int,
                                    signature: Union[bytes, str, Signature]) -> bool:
        """
        Delegated transfer paying the protocol fee to the fee account out of
        ``amount``.
        """
        self.permits.delegated_transfer_with_fee(
            sender, recipient, amount, expiry, signature,
            fee=self._protocol_fee,
            fee_account=self._fee_account,
        )
        return True

    # ── Snapshots ─────────────────────────────────────────────────────

    def snapshot_storage(self) -> Dict[str, Any]:
        state = super().snapshot_storage()
        state['permits'] = self.permits.snapshot()
        return state

    def restore_storage(self, state: Dict[str, Any]) -> None:
        state = dict(state)
        self.permits.restore(state.pop('permits'))
        super().restore_storage(state)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "owner": self._owner,
            "totalSupply": str(self._total_supply),
            "maxSupply": str(self._max_supply),
            "protocolFee": str(self._protocol_fee),
            "feeAccount": self._fee_account,
        }

    def __repr__(self) -> str:
        return f"LoyaltyToken({self.symbol}, {self.address}, supply={self._total_supply})"
