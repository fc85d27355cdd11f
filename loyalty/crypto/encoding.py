"""
Loyalty ABI Call Encoding Module

Contract call payloads: a 4-byte function selector followed by the
ABI-encoded arguments.
"""

from typing import Any, List, Sequence, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError

from .hashing import keccak256


SELECTOR_LENGTH = 4


class PayloadError(ValueError):
    """Call payload cannot be encoded or decoded."""
    pass


def function_selector(function_signature: str) -> bytes:
    """
    Compute function selector (first 4 bytes of keccak256(sig)).

    Args:
        function_signature: Function signature like "transfer(address,uint256)"

    Returns:
        4-byte function selector
    """
    return keccak256(function_signature.replace(' ', '').encode('utf-8'))[:SELECTOR_LENGTH]


def parse_signature_types(function_signature: str) -> List[str]:
    """
    Argument types of a function signature.

    E.g., "transfer(address,uint256)" -> ['address', 'uint256']
    """
    try:
        args_start = function_signature.index('(') + 1
        args_end = function_signature.rindex(')')
    except ValueError:
        raise PayloadError(f"Malformed function signature: {function_signature}")

    arg_types_str = function_signature[args_start:args_end].strip()
    if not arg_types_str:
        return []
    return [t.strip() for t in arg_types_str.split(',')]


def encode_arguments(arg_types: Sequence[str], args: Sequence[Any]) -> bytes:
    """ABI-encode a list of values as a tuple of ``arg_types``."""
    if len(arg_types) != len(args):
        raise PayloadError(f"Expected {len(arg_types)} arguments, got {len(args)}")
    if not arg_types:
        return b''
    try:
        return encode(list(arg_types), list(args))
    except (EncodingError, TypeError) as e:
        raise PayloadError(f"Cannot encode arguments {list(arg_types)}: {e}")


def decode_arguments(arg_types: Sequence[str], data: bytes) -> Tuple[Any, ...]:
    """ABI-decode ``data`` into a tuple of values of ``arg_types``."""
    if not arg_types:
        if data:
            raise PayloadError("Unexpected argument data for a function without arguments")
        return ()
    try:
        return decode(list(arg_types), data)
    except DecodingError as e:
        raise PayloadError(f"Cannot decode arguments {list(arg_types)}: {e}")


def encode_call(function_signature: str, *args) -> bytes:
    """
    Encode function call data (selector + ABI-encoded arguments).

    Args:
        function_signature: Function signature
        *args: Function arguments

    Returns:
        Encoded call data
    """
    selector = function_selector(function_signature)
    return selector + encode_arguments(parse_signature_types(function_signature), args)


def split_call(data: bytes) -> Tuple[bytes, bytes]:
    """
    Split call data into selector and encoded arguments.

    Raises:
        PayloadError: If the data is shorter than a selector
    """
    if len(data) < SELECTOR_LENGTH:
        raise PayloadError(f"Call data too short for a selector: {len(data)} bytes")
    return data[:SELECTOR_LENGTH], data[SELECTOR_LENGTH:]


def decode_call(function_signature: str, data: bytes) -> Tuple[Any, ...]:
    """
    Decode call data produced by encode_call() for ``function_signature``.

    Raises:
        PayloadError: If the selector does not match or the arguments are malformed
    """
    selector, encoded_args = split_call(data)
    if selector != function_selector(function_signature):
        raise PayloadError(
            f"Selector 0x{selector.hex()} does not match {function_signature}"
        )
    return decode_arguments(parse_signature_types(function_signature), encoded_args)
