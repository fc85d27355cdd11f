"""
Loyalty Crypto Keys Module

secp256k1 key management, wrapping eth-keys.
"""

import secrets
from typing import Tuple, Union

from eth_keys.datatypes import PrivateKey as EthPrivateKey, PublicKey as EthPublicKey
from eth_keys.datatypes import Signature as EthSignature
from eth_keys.exceptions import ValidationError as EthValidationError
from eth_utils import decode_hex

from ..exceptions import InvalidKeyError


def _to_hex(data: bytes, with_prefix: bool) -> str:
    return ("0x" if with_prefix else "") + data.hex()


class PrivateKey:
    """
    secp256k1 private key used to sign permits and to act as a chain account.
    """

    def __init__(self, key_bytes: bytes):
        """Raises InvalidKeyError unless ``key_bytes`` is a valid 32-byte scalar."""
        if len(key_bytes) != 32:
            raise InvalidKeyError(f"Private key must be 32 bytes, got {len(key_bytes)}")

        try:
            self._key = EthPrivateKey(key_bytes)
        except EthValidationError as e:
            raise InvalidKeyError(f"Invalid private key: {e}")

    @classmethod
    def from_hex(cls, hex_str: str) -> "PrivateKey":
        """Parse a hex key, 0x prefix optional (e.g. from LOYALTY_PRIVATE_KEY)."""
        try:
            key_bytes = decode_hex(hex_str)
        except ValueError as e:
            raise InvalidKeyError(f"Private key is not hex: {e}")
        return cls(key_bytes)

    @classmethod
    def from_int(cls, key_int: int) -> "PrivateKey":
        """Create from integer (deterministic test accounts)."""
        return cls(key_int.to_bytes(32, byteorder='big'))

    @classmethod
    def generate(cls) -> "PrivateKey":
        """Generate a new random private key."""
        return cls(secrets.token_bytes(32))

    @property
    def public_key(self) -> "PublicKey":
        return PublicKey(self._key.public_key)

    @property
    def address(self) -> str:
        """Checksum address of this key's account."""
        return self.public_key.to_address()

    def to_bytes(self) -> bytes:
        return self._key.to_bytes()

    def to_hex(self, with_prefix: bool = True) -> str:
        return _to_hex(self._key.to_bytes(), with_prefix)

    def sign_msg_hash(self, msg_hash: bytes) -> "Signature":
        """Raw recoverable signature over a 32-byte digest; no prefix is applied."""
        if len(msg_hash) != 32:
            raise ValueError(f"Message hash must be 32 bytes, got {len(msg_hash)}")
        return Signature(self._key.sign_msg_hash(msg_hash))

    def __repr__(self) -> str:
        return f"PrivateKey({self.address})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, PrivateKey):
            return False
        return self._key == other._key

    def __hash__(self) -> int:
        return hash(self.address)


class PublicKey:
    """
    secp256k1 public key.
    """

    def __init__(self, key: Union[EthPublicKey, bytes]):
        """
        Args:
            key: eth-keys PublicKey or 64/65-byte uncompressed public key
        """
        if isinstance(key, EthPublicKey):
            self._key = key
        elif isinstance(key, bytes):
            if len(key) == 64:
                self._key = EthPublicKey(key)
            elif len(key) == 65 and key[0] == 0x04:
                self._key = EthPublicKey(key[1:])
            else:
                raise InvalidKeyError(f"Invalid public key length: {len(key)}")
        else:
            raise InvalidKeyError(f"Invalid public key type: {type(key)}")

    @classmethod
    def recover_from_msg_hash(cls, msg_hash: bytes, signature: "Signature") -> "PublicKey":
        """Key that produced ``signature`` over ``msg_hash``."""
        return cls(signature._signature.recover_public_key_from_msg_hash(msg_hash))

    def to_bytes(self) -> bytes:
        """64-byte uncompressed public key (x || y)."""
        return self._key.to_bytes()

    def to_hex(self, with_prefix: bool = True) -> str:
        return _to_hex(self.to_bytes(), with_prefix)

    def to_address(self) -> str:
        """Checksum address derived from this public key."""
        from .address import public_key_to_address
        return public_key_to_address(self)

    def __repr__(self) -> str:
        return f"PublicKey({self.to_hex()[:18]}...)"

    def __eq__(self, other) -> bool:
        if not isinstance(other, PublicKey):
            return False
        return self._key == other._key

    def __hash__(self) -> int:
        return hash(self._key.to_bytes())


class Signature:
    """
    Recoverable ECDSA signature (v, r, s).
    """

    def __init__(self, signature: EthSignature):
        self._signature = signature

    @classmethod
    def from_vrs(cls, v: int, r: int, s: int) -> "Signature":
        """
        Build from components. ``v`` may be 0/1 or the 27/28 wallets emit.

        Raises:
            ValueError: If the components are out of range
        """
        if v >= 27:
            v -= 27
        try:
            return cls(EthSignature(vrs=(v, r, s)))
        except EthValidationError as e:
            raise ValueError(f"Invalid signature components: {e}")

    @classmethod
    def from_bytes(cls, sig_bytes: bytes) -> "Signature":
        """Parse the 65-byte r || s || v layout permits are submitted in."""
        if len(sig_bytes) != 65:
            raise ValueError(f"Signature must be 65 bytes, got {len(sig_bytes)}")
        return cls.from_vrs(
            sig_bytes[64],
            int.from_bytes(sig_bytes[:32], "big"),
            int.from_bytes(sig_bytes[32:64], "big"),
        )

    @classmethod
    def from_hex(cls, hex_str: str) -> "Signature":
        return cls.from_bytes(decode_hex(hex_str))

    @property
    def v(self) -> int:
        """Recovery parameter (0 or 1)."""
        return self._signature.v

    @property
    def r(self) -> int:
        return self._signature.r

    @property
    def s(self) -> int:
        return self._signature.s

    @property
    def vrs(self) -> Tuple[int, int, int]:
        return (self.v, self.r, self.s)

    def to_bytes(self) -> bytes:
        """
        65-byte signature r || s || v, with v as 27/28 the way wallets
        serialize personal-sign signatures.
        """
        return self.r.to_bytes(32, "big") + self.s.to_bytes(32, "big") + bytes([self.v + 27])

    def to_hex(self, with_prefix: bool = True) -> str:
        return _to_hex(self.to_bytes(), with_prefix)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Signature):
            return False
        return self.vrs == other.vrs

    def __hash__(self) -> int:
        return hash(self.vrs)

    def __repr__(self) -> str:
        return f"Signature(v={self.v}, r={hex(self.r)[:10]}..., s={hex(self.s)[:10]}...)"


def generate_keypair() -> Tuple[PrivateKey, PublicKey]:
    """Fresh random account key and its public key."""
    key = PrivateKey.generate()
    return key, key.public_key

