"""
Contract events.

Every event carries the address of the contract that emitted it and
serializes to a camelCase dict for logs and JSON output.
"""

from dataclasses import dataclass, fields
from typing import Any, ClassVar, Dict


def _camel_case(name: str) -> str:
    head, *tail = name.split('_')
    return head + ''.join(part.title() for part in tail)


@dataclass(frozen=True)
class Event:
    """Base class of all contract events."""
    contract: str

    # Keys that do not follow the camelCase rule
    _renamed: ClassVar[Dict[str, str]] = {}

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"event": self.name}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bytes):
                value = '0x' + value.hex()
            data[self._renamed.get(f.name, _camel_case(f.name))] = value
        return data


# ── Quorum wallet ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class Submission(Event):
    """A wallet transaction was proposed."""
    transaction_id: int


@dataclass(frozen=True)
class Confirmation(Event):
    """An owner confirmed a wallet transaction."""
    owner: str
    transaction_id: int


@dataclass(frozen=True)
class Revocation(Event):
    """An owner withdrew a confirmation."""
    owner: str
    transaction_id: int


@dataclass(frozen=True)
class Execution(Event):
    transaction_id: int


@dataclass(frozen=True)
class ExecutionFailure(Event):
    """The invoked operation reverted; the transaction stays retryable."""
    transaction_id: int
    reason: str


@dataclass(frozen=True)
class Deposit(Event):
    sender: str
    value: int


@dataclass(frozen=True)
class OwnerAddition(Event):
    owner: str


@dataclass(frozen=True)
class OwnerRemoval(Event):
    owner: str


@dataclass(frozen=True)
class RequirementChange(Event):
    required: int


@dataclass(frozen=True)
class ContractInstantiation(Event):
    """The registry deployed a new wallet."""
    sender: str
    wallet: str


# ── Ledger ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Transfer(Event):
    _renamed: ClassVar[Dict[str, str]] = {"sender": "from", "recipient": "to"}

    sender: str
    recipient: str
    amount: int


@dataclass(frozen=True)
class ProtocolFeeChange(Event):
    fee: int


@dataclass(frozen=True)
class FeeAccountChange(Event):
    account: str
