"""
Loyalty Crypto Signing Module

EIP-191 personal-sign signing and signer recovery over secp256k1.
"""

from typing import Union

from eth_keys.exceptions import BadSignature, ValidationError as EthValidationError

from ..constants import SECP256K1_N
from ..exceptions import InvalidSignatureError
from .hashing import keccak256
from .keys import PrivateKey, PublicKey, Signature


SignatureLike = Union[Signature, bytes, str]


def personal_message_hash(message: bytes) -> bytes:
    """
    Hash a message the way wallets do for personal_sign.

    The message is prefixed with "\\x19Ethereum Signed Message:\\n{length}"
    before hashing.

    Args:
        message: Raw message bytes (a 32-byte digest for permits)

    Returns:
        32-byte hash
    """
    prefix = b'\x19Ethereum Signed Message:\n' + str(len(message)).encode()
    return keccak256(prefix + message)


def sign_message_hash(private_key: PrivateKey, msg_hash: bytes) -> Signature:
    """
    Sign a 32-byte message hash as is.

    Args:
        private_key: PrivateKey to sign with
        msg_hash: 32-byte hash to sign
    """
    return private_key.sign_msg_hash(msg_hash)


def sign_message(private_key: PrivateKey, message: bytes) -> Signature:
    """
    Sign a message (personal_sign style).

    Args:
        private_key: PrivateKey to sign with
        message: Raw message bytes

    Returns:
        Signature
    """
    return private_key.sign_msg_hash(personal_message_hash(message))


def to_signature(signature: SignatureLike) -> Signature:
    """
    Coerce 65 raw bytes, a hex string or a Signature into a Signature.

    Raises:
        InvalidSignatureError: If the input is not a well-formed signature
            or its s value is in the upper half of the curve order
    """
    if isinstance(signature, Signature):
        sig = signature
    else:
        try:
            if isinstance(signature, str):
                sig = Signature.from_hex(signature)
            elif isinstance(signature, (bytes, bytearray)):
                sig = Signature.from_bytes(bytes(signature))
            else:
                raise InvalidSignatureError()
        except ValueError:
            raise InvalidSignatureError()
    # Only the low-s form of a signature is accepted
    if sig.s > SECP256K1_N // 2:
        raise InvalidSignatureError()
    return sig


def recover_public_key(msg_hash: bytes, signature: SignatureLike) -> PublicKey:
    """
    Recover public key from signature.

    Args:
        msg_hash: 32-byte message hash that was signed
        signature: Signature to recover from

    Raises:
        InvalidSignatureError: If no public key can be recovered
    """
    try:
        return PublicKey.recover_from_msg_hash(msg_hash, to_signature(signature))
    except (BadSignature, EthValidationError):
        raise InvalidSignatureError()


def recover_message_signer(message: bytes, signature: SignatureLike) -> str:
    """
    Recover the signer address of a personal_sign signature.

    Args:
        message: Original message bytes
        signature: Signature from sign_message()

    Returns:
        Checksum address of the signer
    """
    return recover_public_key(personal_message_hash(message), signature).to_address()


def verify_message(address: str, message: bytes, signature: SignatureLike) -> bool:
    """
    Check that a personal_sign signature was produced by ``address``.

    Args:
        address: Expected signer address
        message: Original message bytes
        signature: Signature to verify

    Returns:
        True if valid, False otherwise
    """
    from .address import to_checksum_address
    try:
        return recover_message_signer(message, signature) == to_checksum_address(address)
    except InvalidSignatureError:
        return False
