"""
Contract Address Generation

CREATE / CREATE2 address computation for contracts deployed on a Chain.
"""

import rlp

from .address import to_canonical_bytes, to_checksum_address
from .hashing import keccak256


def generate_contract_address(sender: str, nonce: int) -> str:
    """
    Generate contract address using CREATE opcode logic.

    Address = keccak256(rlp([sender, nonce]))[-20:]

    Args:
        sender: Deployer address
        nonce: Deployer account nonce

    Returns:
        Contract address (checksum format)
    """
    rlp_encoded = rlp.encode([to_canonical_bytes(sender), nonce])
    return to_checksum_address(keccak256(rlp_encoded)[-20:])


def generate_contract_address_create2(sender: str, salt: bytes, init_code: bytes) -> str:
    """
    Generate contract address using CREATE2 opcode logic.

    Address = keccak256(0xff + sender + salt + keccak256(init_code))[-20:]

    Args:
        sender: Deployer address
        salt: Salt, left-padded to 32 bytes
        init_code: Bytes identifying the contract and its constructor arguments

    Returns:
        Contract address (checksum format)
    """
    if len(salt) > 32:
        raise ValueError(f"Salt must be at most 32 bytes, got {len(salt)}")
    salt = salt.rjust(32, b'\x00')

    data = b'\xff' + to_canonical_bytes(sender) + salt + keccak256(init_code)
    return to_checksum_address(keccak256(data)[-20:])
