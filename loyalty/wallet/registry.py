"""
Wallet Registry

Factory for quorum wallets and index of the wallets each account is a
member of.
"""

from typing import Any, Dict, List, Optional, Sequence

from ..chain.events import ContractInstantiation
from ..chain.runtime import Chain, Contract, external
from ..constants import MAX_OWNER_COUNT
from ..crypto.address import to_checksum_address
from ..exceptions import ContractError, UnauthorizedError
from ..logger import get_logger
from .multisig import QuorumWallet

logger = get_logger(__name__)


class WalletRegistry(Contract):
    """
    Registry contract deploying QuorumWallets.

    Wallet addresses are CREATE2-derived from the registry address, the
    caller's seed and the owner set with its threshold, so they can be
    computed before creation.
    """

    storage = ('_wallets', '_is_wallet', '_member_wallets')

    def __init__(self, chain: Chain, address: str, max_owner_count: int = MAX_OWNER_COUNT):
        super().__init__(chain, address)
        self.max_owner_count = max_owner_count
        self._wallets: List[str] = []
        self._is_wallet: Dict[str, bool] = {}
        self._member_wallets: Dict[str, List[str]] = {}

    @staticmethod
    def _salt(seed: int) -> bytes:
        return seed.to_bytes(32, byteorder='big')

    def compute_wallet_address(self, owners: Sequence[str], required: int, seed: int) -> str:
        """Address create() would give a wallet with these parameters."""
        return self.chain.compute_address(
            self.address, QuorumWallet, "", "", owners, required, salt=self._salt(seed)
        )

    @external("create(string,string,address[],uint256,uint256)")
    def create(self, title: str, description: str, owners: Sequence[str], required: int,
               seed: int) -> str:
        """
        Deploy a QuorumWallet and index its members.

        Raises:
            InvalidWalletConfigError: Invalid owners or threshold
            ContractError: A wallet with the same seed and owner set exists

        Returns:
            Address of the new wallet
        """
        if seed < 0 or seed >= 2 ** 256:
            raise ContractError(f"Seed out of range: {seed}")

        sender = self.msg_sender
        wallet = self.chain.deploy(
            self.address,
            QuorumWallet,
            title,
            description,
            list(owners),
            required,
            salt=self._salt(seed),
            registry=self.address,
            max_owner_count=self.max_owner_count,
        )

        self._wallets.append(wallet.address)
        self._is_wallet[wallet.address] = True
        for member in wallet.get_members():
            self._index(member, wallet.address)

        self.emit(ContractInstantiation, sender=sender, wallet=wallet.address)
        logger.info(
            f"Registry {self.address} created wallet {wallet.address} for {sender}: "
            f"{required}-of-{len(owners)}"
        )
        return wallet.address

    def _index(self, member: str, wallet: str) -> None:
        wallets = self._member_wallets.setdefault(member, [])
        if wallet not in wallets:
            wallets.append(wallet)

    def _require_wallet(self) -> str:
        sender = self.msg_sender
        if not self._is_wallet.get(sender, False):
            raise UnauthorizedError(f"{sender} is not a wallet of this registry")
        return sender

    # ── Wallet hooks ──────────────────────────────────────────────────

    @external("addMember(address)")
    def add_member(self, member: str) -> None:
        wallet = self._require_wallet()
        self._index(to_checksum_address(member), wallet)
        logger.debug(f"Registry {self.address}: {member} joined {wallet}")

    @external("removeMember(address)")
    def remove_member(self, member: str) -> None:
        wallet = self._require_wallet()
        wallets = self._member_wallets.get(to_checksum_address(member), [])
        if wallet in wallets:
            wallets.remove(wallet)
        logger.debug(f"Registry {self.address}: {member} left {wallet}")

    # ── Read-only views ───────────────────────────────────────────────

    def get_number_of_wallets(self) -> int:
        return len(self._wallets)

    def get_wallets(self) -> List[str]:
        return list(self._wallets)

    def is_wallet(self, address: Any) -> bool:
        return self._is_wallet.get(to_checksum_address(address), False)

    def get_number_of_wallets_for_member(self, member: Any) -> int:
        return len(self._member_wallets.get(to_checksum_address(member), []))

    def get_wallets_for_member(self, member: Any, start: int = 0,
                               end: Optional[int] = None) -> List[str]:
        """Wallets of ``member`` in creation order, sliced to ``[start, end)``."""
        wallets = self._member_wallets.get(to_checksum_address(member), [])
        if end is None:
            end = len(wallets)
        if start < 0 or end < start:
            raise ContractError(f"Invalid range [{start}, {end})")
        return wallets[start:end]

    def __repr__(self) -> str:
        return f"WalletRegistry({self.address}, wallets={len(self._wallets)})"
