"""
Transfer permits.

A permit is a holder's off-line authorization of one transfer. It is
never stored; only its digest is signed and later recomputed from the
submitted fields and the holder's current nonce.
"""

from dataclasses import dataclass
from typing import Any, Dict, Union

from eth_abi import encode

from ..constants import PERMIT_FIELD_TYPES, UINT256_MAX
from ..crypto.address import to_checksum_address
from ..crypto.hashing import keccak256
from ..crypto.keys import PrivateKey, Signature
from ..crypto.signing import recover_message_signer, sign_message


@dataclass(frozen=True)
class TransferPermit:
    """Fields of a signed delegated transfer."""
    chain_id: int
    token_address: str
    sender: str
    recipient: str
    amount: int
    nonce: int
    expiry: int

    def __post_init__(self):
        # Frozen dataclass: normalize through object.__setattr__
        for name in ('token_address', 'sender', 'recipient'):
            object.__setattr__(self, name, to_checksum_address(getattr(self, name)))
        for name in ('chain_id', 'amount', 'nonce', 'expiry'):
            value = getattr(self, name)
            if value < 0:
                raise ValueError(f"Permit {name} cannot be negative")
            if value > UINT256_MAX:
                raise ValueError(f"Permit {name} does not fit in 256 bits")

    @property
    def digest(self) -> bytes:
        return compute_message(
            self.chain_id, self.token_address, self.sender, self.recipient,
            self.amount, self.nonce, self.expiry,
        )

    def sign(self, private_key: PrivateKey) -> bytes:
        return sign_permit(private_key, self.digest)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chainId": self.chain_id,
            "token": self.token_address,
            "from": self.sender,
            "to": self.recipient,
            "amount": str(self.amount),
            "nonce": self.nonce,
            "expiry": self.expiry,
            "digest": '0x' + self.digest.hex(),
        }


def compute_message(
    chain_id: int,
    token_address: str,
    sender: str,
    recipient: str,
    amount: int,
    nonce: int,
    expiry: int,
) -> bytes:
    """
    Digest of a transfer permit.

    keccak256 of the seven fields ABI encoded in order, each padded to 32
    bytes. The chain id and token address bind the permit to one token on
    one chain; the nonce makes it single-use.

    Returns:
        32-byte digest
    """
    encoded = encode(
        list(PERMIT_FIELD_TYPES),
        [
            chain_id,
            to_checksum_address(token_address),
            to_checksum_address(sender),
            to_checksum_address(recipient),
            amount,
            nonce,
            expiry,
        ],
    )
    return keccak256(encoded)


def sign_permit(private_key: PrivateKey, digest: bytes) -> bytes:
    """
    Sign a permit digest the way wallets personal-sign a 32-byte message.

    Returns:
        65-byte signature r || s || v
    """
    if len(digest) != 32:
        raise ValueError(f"Permit digest must be 32 bytes, got {len(digest)}")
    return sign_message(private_key, digest).to_bytes()


def recover_permit_signer(digest: bytes, signature: Union[bytes, str, Signature]) -> str:
    """
    Address that produced ``signature`` over a permit digest.

    Raises:
        InvalidSignatureError: If the signature is malformed
    """
    return recover_message_signer(digest, signature)
