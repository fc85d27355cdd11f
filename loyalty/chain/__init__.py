"""
Loyalty Chain Module

In-process chain runtime hosting the loyalty contracts.
"""

from .runtime import (
    CallFrame,
    Chain,
    Contract,
    ContractCaller,
    ExternalMethod,
    Receipt,
    external,
)
from .events import (
    Event,
    Submission,
    Confirmation,
    Revocation,
    Execution,
    ExecutionFailure,
    Deposit,
    OwnerAddition,
    OwnerRemoval,
    RequirementChange,
    ContractInstantiation,
    Transfer,
    ProtocolFeeChange,
    FeeAccountChange,
)

__all__ = [
    # Runtime
    "CallFrame",
    "Chain",
    "Contract",
    "ContractCaller",
    "ExternalMethod",
    "Receipt",
    "external",
    # Events
    "Event",
    "Submission",
    "Confirmation",
    "Revocation",
    "Execution",
    "ExecutionFailure",
    "Deposit",
    "OwnerAddition",
    "OwnerRemoval",
    "RequirementChange",
    "ContractInstantiation",
    "Transfer",
    "ProtocolFeeChange",
    "FeeAccountChange",
]
