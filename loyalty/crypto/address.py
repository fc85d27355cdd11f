"""
Loyalty Crypto Address Module

Ethereum-style 20-byte addresses with EIP-55 checksums.
"""

from typing import Any

from ..exceptions import InvalidAddressError, InvalidKeyError
from .hashing import keccak256


ADDRESS_PREFIX = "0x"
ADDRESS_LENGTH = 40  # 20 bytes = 40 hex chars


def public_key_to_address(public_key) -> str:
    """
    Derive address from a secp256k1 public key.

    Last 20 bytes of keccak256(uncompressed pubkey without the 04 prefix).

    Args:
        public_key: PublicKey instance or raw bytes

    Returns:
        Checksum address with 0x prefix
    """
    if hasattr(public_key, 'to_bytes'):
        pub_bytes = public_key.to_bytes()
    else:
        pub_bytes = public_key

    if len(pub_bytes) == 65 and pub_bytes[0] == 0x04:
        pub_bytes = pub_bytes[1:]

    if len(pub_bytes) != 64:
        raise InvalidKeyError(f"secp256k1 public key must be 64 bytes, got {len(pub_bytes)}")

    return to_checksum_address(keccak256(pub_bytes)[-20:].hex())


def to_checksum_address(address: Any) -> str:
    """
    Convert an address to EIP-55 checksum format.

    Args:
        address: Hex address (with or without 0x prefix), 20 raw bytes,
            or any object exposing an ``address`` attribute

    Returns:
        Checksum address with 0x prefix

    Raises:
        InvalidAddressError: If the input is not a 20-byte address
    """
    if hasattr(address, 'address'):
        address = address.address
    if isinstance(address, (bytes, bytearray)):
        if len(address) != 20:
            raise InvalidAddressError(f"Address must be 20 bytes, got {len(address)}")
        address = bytes(address).hex()
    if not isinstance(address, str):
        raise InvalidAddressError(f"Invalid address type: {type(address).__name__}")

    if address.startswith(ADDRESS_PREFIX) or address.startswith("0X"):
        address = address[2:]
    address = address.lower()

    if len(address) != ADDRESS_LENGTH:
        raise InvalidAddressError(
            f"Address must be {ADDRESS_LENGTH} hex chars, got {len(address)}"
        )
    try:
        int(address, 16)
    except ValueError:
        raise InvalidAddressError(f"Address is not hex: 0x{address}")

    address_hash = keccak256(address.encode('utf-8')).hex()

    checksummed = ''
    for i, char in enumerate(address):
        if char in '0123456789':
            checksummed += char
        elif int(address_hash[i], 16) >= 8:
            checksummed += char.upper()
        else:
            checksummed += char.lower()

    return ADDRESS_PREFIX + checksummed


def to_canonical_bytes(address: Any) -> bytes:
    """Raw 20 bytes of an address."""
    return bytes.fromhex(to_checksum_address(address)[2:])


def is_valid_address(address: Any) -> bool:
    """
    Check if address is a well-formed 20-byte hex address.

    Args:
        address: Address to validate

    Returns:
        True if valid, False otherwise
    """
    if not isinstance(address, str):
        return False
    try:
        to_checksum_address(address)
        return True
    except InvalidAddressError:
        return False


def is_checksum_address(address: Any) -> bool:
    """
    Check if address carries a valid EIP-55 checksum.

    Args:
        address: Address to validate

    Returns:
        True if checksum is valid, False otherwise
    """
    return is_valid_address(address) and address == to_checksum_address(address)


def is_zero_address(address: Any) -> bool:
    """Check if address is the all-zero address."""
    return to_canonical_bytes(address) == b"\x00" * 20
