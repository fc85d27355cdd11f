"""
Loyalty Crypto Module

Cryptographic primitives used by the loyalty contracts:
- secp256k1 keys and recoverable signatures
- Keccak-256 hashing
- EIP-191 personal-sign messages
- EIP-55 addresses and contract address derivation
- ABI call payloads
"""

from .keys import PrivateKey, PublicKey, Signature, generate_keypair
from .signing import (
    personal_message_hash,
    sign_message,
    sign_message_hash,
    recover_public_key,
    recover_message_signer,
    verify_message,
)
from .hashing import keccak256, keccak256_hex
from .address import (
    public_key_to_address,
    is_valid_address,
    is_checksum_address,
    is_zero_address,
    to_checksum_address,
    to_canonical_bytes,
)
from .contract import generate_contract_address, generate_contract_address_create2
from .encoding import (
    PayloadError,
    function_selector,
    encode_call,
    decode_call,
    split_call,
)

__all__ = [
    # Keys
    "PrivateKey",
    "PublicKey",
    "Signature",
    "generate_keypair",
    # Signing
    "personal_message_hash",
    "sign_message",
    "sign_message_hash",
    "recover_public_key",
    "recover_message_signer",
    "verify_message",
    # Hashing
    "keccak256",
    "keccak256_hex",
    # Address
    "public_key_to_address",
    "is_valid_address",
    "is_checksum_address",
    "is_zero_address",
    "to_checksum_address",
    "to_canonical_bytes",
    "generate_contract_address",
    "generate_contract_address_create2",
    # Encoding
    "PayloadError",
    "function_selector",
    "encode_call",
    "decode_call",
    "split_call",
]
