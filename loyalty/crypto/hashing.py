"""
Loyalty Crypto Hashing Module

Keccak-256, the hash behind addresses, selectors and permit digests.
"""

from typing import Union

from Crypto.Hash import keccak as _keccak


def keccak256(data: Union[bytes, str]) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum standard).

    Args:
        data: Input bytes or 0x-prefixed hex string

    Returns:
        32-byte hash
    """
    if isinstance(data, str):
        if data.startswith('0x') or data.startswith('0X'):
            data = bytes.fromhex(data[2:])
        else:
            data = data.encode('utf-8')

    k = _keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


def keccak256_hex(data: Union[bytes, str]) -> str:
    """
    Compute Keccak-256 hash and return as hex string.

    Args:
        data: Input bytes or 0x-prefixed hex string

    Returns:
        Hex string with 0x prefix
    """
    return '0x' + keccak256(data).hex()
