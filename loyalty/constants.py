"""
Loyalty Token Constants

This module consolidates the protocol constants and the environment
configuration used throughout the codebase. Constants are organized by
category for easy reference.
"""
import ast
from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
# Load environment variables once at module import
_config = dotenv_values(".env")

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'True',
    'LOG_FILE_OUTPUT':                 'False',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# WARNING: CHANGING THE VALUES BELOW CHANGES THE SIGNED PERMIT FORMAT AND THE
# DERIVED CONTRACT ADDRESSES. PERMITS SIGNED UNDER DIFFERENT VALUES WILL NOT VERIFY.

# ==================================================================================
# CHAIN PARAMETERS
# ==================================================================================
DEFAULT_CHAIN_ID = 24680
BLOCK_TIME = 12  # seconds per block, used by Chain.advance_blocks

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Largest value a permit field can carry (ABI uint256)
UINT256_MAX = 2 ** 256 - 1

# secp256k1 group order; signatures with s above half of it are rejected
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


# ==================================================================================
# TOKEN PARAMETERS
# ==================================================================================
LYT_NAME = "Loyalty Token"
LYT_SYMBOL = "LYT"
LYT_DECIMALS = 18

# 0 disables the supply cap
LYT_DEFAULT_MAX_SUPPLY = 0

# Flat fee carved out of every delegated transfer with fee (0.1 LYT)
DEFAULT_PROTOCOL_FEE = 10 ** 17


# ==================================================================================
# QUORUM WALLET PARAMETERS
# ==================================================================================
MAX_OWNER_COUNT = 50


# ==================================================================================
# PERMIT FORMAT
# ==================================================================================
# Field order of the signed transfer message. Each field is ABI encoded to 32 bytes.
PERMIT_FIELD_TYPES = (
    "uint256",  # chain id
    "address",  # token contract
    "address",  # from
    "address",  # to
    "uint256",  # amount
    "uint256",  # nonce
    "uint256",  # expiry
)

ERROR_INVALID_SIGNATURE = "Invalid signature"
ERROR_EXPIRED_SIGNATURE = "Expired signature"


# ==================================================================================
# CONFIGURATION WRAPPERS
# ==================================================================================
class ConfigString(str):
    """
    String subclass that stores a default value.
    """
    def __new__(cls, value, default):
        obj = str.__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default

class ConfigBool(int):
    """
    Int subclass acting as a boolean that stores a default value.
    """
    def __new__(cls, value, default):
        obj = int.__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __repr__(self):
        return str(bool(self))

    def __str__(self):
        return str(bool(self))

    def __eq__(self, other):
        return bool(self) == other

    def __hash__(self):
        return hash(bool(self))


# ==================================================================================
# DYNAMIC CONFIGURATION LOADING
# ==================================================================================
namespace = globals()

def parse_bool(v):
    """
    Convert "True"/"False" (any casing, with surrounding whitespace) into bool.
    Only calls ast.literal_eval for the two known literals.
    """
    if not isinstance(v, str):
        return v
    s = v.strip()
    if not s:
        return v
    if s.casefold() in {"true", "false"}:
        return ast.literal_eval(s.title())
    return v

for key, default_raw in LOGGER_DEFAULTS.items():
    # dotenv_values returns strings or None. None is treated as missing.
    raw = _config.get(key)
    value_raw = default_raw if raw is None else raw

    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        namespace[key] = ConfigString(value_raw, default_val)
