"""
Loyalty Chain Runtime

In-process host chain for the loyalty contracts.

The chain serializes calls, tracks the caller of every call frame
(``msg.sender``), attached native value and block time, dispatches
ABI-encoded payloads to contract methods, records events and makes every
call all-or-nothing through state snapshots.
"""

import copy
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Type

from ..constants import BLOCK_TIME, DEFAULT_CHAIN_ID
from ..crypto.address import to_checksum_address
from ..crypto.contract import generate_contract_address, generate_contract_address_create2
from ..crypto.encoding import (
    PayloadError,
    decode_arguments,
    encode_call,
    function_selector,
    parse_signature_types,
    split_call,
)
from ..exceptions import ContractError, InsufficientBalanceError
from ..logger import get_logger
from .events import Event

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXTERNAL METHODS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ExternalMethod:
    """ABI entry of a contract method callable through a transaction."""
    name: str
    signature: str
    selector: bytes
    arg_types: Tuple[str, ...]
    payable: bool = False


def external(signature: str, payable: bool = False) -> Callable:
    """
    Mark a contract method as callable by transactions and payloads.

    Args:
        signature: ABI signature, e.g. "transfer(address,uint256)"
        payable: Whether the method accepts native value

    Usage:
        @external("mint(uint256)")
        def mint(self, amount: int) -> None:
            ...
    """
    def decorator(func: Callable) -> Callable:
        func.__external__ = (signature, payable)
        return func
    return decorator


def _normalize_argument(arg_type: str, value: Any) -> Any:
    """Decoded addresses are lowercase; contracts work with checksummed ones."""
    if arg_type == 'address':
        return to_checksum_address(value)
    if arg_type.startswith('address['):
        return [to_checksum_address(v) for v in value]
    return value


# ══════════════════════════════════════════════════════════════════════
#  CONTRACT BASE
# ══════════════════════════════════════════════════════════════════════

class Contract:
    """
    Base class of contracts deployed on a Chain.

    Subclasses list the attributes that make up their persistent state in
    ``storage``; the chain copies them into every open snapshot when a
    call frame first enters the contract and restores them when a call
    reverts. State outside ``storage`` is not reverted.
    """

    storage: Tuple[str, ...] = ()

    _externals: Dict[bytes, ExternalMethod] = {}
    _externals_by_name: Dict[str, ExternalMethod] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        externals = dict(cls._externals)
        by_name = dict(cls._externals_by_name)
        for name, member in vars(cls).items():
            spec = getattr(member, '__external__', None)
            if spec is None:
                continue
            signature, payable = spec
            method = ExternalMethod(
                name=name,
                signature=signature,
                selector=function_selector(signature),
                arg_types=tuple(parse_signature_types(signature)),
                payable=payable,
            )
            if method.selector in externals and externals[method.selector].name != name:
                raise TypeError(f"Selector clash in {cls.__name__}: {signature}")
            externals[method.selector] = method
            by_name[name] = method
        cls._externals = externals
        cls._externals_by_name = by_name

    def __init__(self, chain: "Chain", address: str):
        self.chain = chain
        self.address = address

    @classmethod
    def init_code(cls, *args) -> bytes:
        """Bytes standing in for the contract's creation code in CREATE2 addresses."""
        return cls.__name__.encode('utf-8')

    # ── Call context ──────────────────────────────────────────────────

    def _frame(self) -> "CallFrame":
        frame = self.chain.current_frame
        if frame is None or frame.contract != self.address:
            raise ContractError(f"{type(self).__name__} called outside of a transaction")
        return frame

    @property
    def msg_sender(self) -> str:
        """Address of the immediate caller of the running external call."""
        return self._frame().sender

    @property
    def msg_value(self) -> int:
        """Native value attached to the running external call."""
        return self._frame().value

    @property
    def now(self) -> int:
        """Current block timestamp."""
        return self.chain.timestamp

    def emit(self, event_cls: Type[Event], **fields: Any) -> Event:
        """Record an event emitted by this contract."""
        event = event_cls(contract=self.address, **fields)
        self.chain.record_event(event)
        return event

    # ── ABI ───────────────────────────────────────────────────────────

    @classmethod
    def external_method(cls, name: str) -> ExternalMethod:
        method = cls._externals_by_name.get(name)
        if method is None:
            raise ContractError(f"{cls.__name__} has no external method '{name}'")
        return method

    @classmethod
    def external_methods(cls) -> List[ExternalMethod]:
        return list(cls._externals_by_name.values())

    @classmethod
    def encode_function_data(cls, name: str, args: Sequence[Any] = ()) -> bytes:
        """
        Build a call payload for an external method.

        Args:
            name: Python method name ("set_protocol_fee") or ABI name ("setProtocolFee")
            args: Method arguments in order

        Usage:
            data = LoyaltyToken.encode_function_data("mint", [10**28])
        """
        method = cls._externals_by_name.get(name)
        if method is None:
            matches = [m for m in cls._externals_by_name.values()
                       if m.signature.split('(', 1)[0] == name]
            if len(matches) != 1:
                raise ContractError(f"{cls.__name__} has no external method '{name}'")
            method = matches[0]
        return encode_call(method.signature, *args)

    def dispatch(self, value: int, data: bytes) -> Any:
        """
        Decode a call payload and invoke the matching external method.

        An empty payload goes to the payable ``receive`` method.

        Raises:
            ContractError: Unknown selector, malformed arguments, or value
                sent to a non-payable method
        """
        if not data:
            method = self._externals_by_name.get('receive')
            if method is None:
                raise ContractError(f"{type(self).__name__} does not accept plain transfers")
            args: Tuple[Any, ...] = ()
        else:
            try:
                selector, encoded_args = split_call(data)
                method = self._externals.get(selector)
                if method is None:
                    raise ContractError(
                        f"{type(self).__name__} has no method for selector 0x{selector.hex()}"
                    )
                decoded = decode_arguments(method.arg_types, encoded_args)
            except PayloadError as e:
                raise ContractError(f"Malformed call payload: {e}")
            args = tuple(
                _normalize_argument(t, v) for t, v in zip(method.arg_types, decoded)
            )

        if value and not method.payable:
            raise ContractError(f"{method.signature} is not payable")
        return getattr(self, method.name)(*args)

    # ── Snapshots ─────────────────────────────────────────────────────

    def snapshot_storage(self) -> Dict[str, Any]:
        return {name: copy.deepcopy(getattr(self, name)) for name in self.storage}

    def restore_storage(self, state: Dict[str, Any]) -> None:
        for name, value in state.items():
            setattr(self, name, value)

    def connect(self, sender: Any) -> "ContractCaller":
        """
        Bind a sender so external methods can be called as transactions.

        Usage:
            receipt = token.connect(holder).transfer(recipient, 10)
        """
        return ContractCaller(self, to_checksum_address(sender))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.address})"


class ContractCaller:
    """Proxy sending every external method call as a transaction from one sender."""

    def __init__(self, contract: Contract, sender: str):
        self._contract = contract
        self._sender = sender

    def __getattr__(self, name: str) -> Any:
        if name not in self._contract._externals_by_name:
            # Views are read directly
            return getattr(self._contract, name)

        def send(*args, value: int = 0) -> "Receipt":
            return self._contract.chain.transact(
                self._sender, self._contract, name, *args, value=value
            )
        return send

    def __repr__(self) -> str:
        return f"ContractCaller({self._contract!r}, sender={self._sender})"


# ══════════════════════════════════════════════════════════════════════
#  CHAIN
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CallFrame:
    sender: str
    contract: str
    value: int = 0


@dataclass
class Receipt:
    """Result of a committed top-level transaction."""
    sender: str
    contract: str
    method: str
    result: Any
    block_number: int
    timestamp: int
    events: List[Event] = field(default_factory=list)

    def events_named(self, name: str) -> List[Event]:
        return [e for e in self.events if e.name == name]

    def event_value(self, name: str, field_name: str) -> Any:
        """
        Value of a field of the first event called ``name``.

        ``field_name`` is either the attribute name or its camelCase key.

        Raises:
            KeyError: If no such event or field exists
        """
        for event in self.events_named(name):
            if hasattr(event, field_name):
                return getattr(event, field_name)
            return event.to_dict()[field_name]
        raise KeyError(f"No {name} event in transaction to {self.contract}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.sender,
            "to": self.contract,
            "method": self.method,
            "blockNumber": self.block_number,
            "timestamp": self.timestamp,
            "events": [e.to_dict() for e in self.events],
        }


class Chain:
    """
    Single-threaded host chain.

    Usage:
        chain = Chain(chain_id=24680)
        token = chain.deploy(deployer, LoyaltyToken, owner, fee_account)
        receipt = chain.transact(owner, token, "mint", 1000)
    """

    def __init__(self, chain_id: int = DEFAULT_CHAIN_ID, timestamp: Optional[int] = None):
        if chain_id <= 0:
            raise ValueError(f"Chain id must be positive, got {chain_id}")

        self.chain_id = chain_id
        self.timestamp = int(time.time()) if timestamp is None else timestamp
        self.block_number = 0

        self._balances: Dict[str, int] = {}
        self._nonces: Dict[str, int] = {}
        self._contracts: Dict[str, Contract] = {}
        self._events: List[Event] = []
        self._frames: List[CallFrame] = []
        self._snapshots: List[Dict[str, Any]] = []

    @classmethod
    def from_config(cls, config) -> "Chain":
        """Create a chain from a LoyaltyConfig."""
        return cls(
            chain_id=config.chain.chain_id,
            timestamp=config.chain.genesis_timestamp or None,
        )

    # ── Time ──────────────────────────────────────────────────────────

    def advance_time(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Time cannot move backwards")
        self.timestamp += seconds
        return self.timestamp

    def advance_blocks(self, count: int = 1) -> int:
        if count < 0:
            raise ValueError("Block number cannot move backwards")
        self.block_number += count
        self.timestamp += count * BLOCK_TIME
        return self.block_number

    # ── Accounts ──────────────────────────────────────────────────────

    def get_balance(self, address: Any) -> int:
        return self._balances.get(to_checksum_address(address), 0)

    def set_balance(self, address: Any, balance: int) -> None:
        if balance < 0:
            raise ValueError("Balance cannot be negative")
        self._balances[to_checksum_address(address)] = balance

    def get_nonce(self, address: Any) -> int:
        return self._nonces.get(to_checksum_address(address), 0)

    def _move_value(self, sender: str, recipient: str, value: int) -> None:
        if value < 0:
            raise ContractError("Value cannot be negative")
        if value == 0:
            return
        balance = self._balances.get(sender, 0)
        if balance < value:
            raise InsufficientBalanceError(
                f"{sender} native balance {balance} < value {value}"
            )
        self._balances[sender] = balance - value
        self._balances[recipient] = self._balances.get(recipient, 0) + value

    # ── Contracts ─────────────────────────────────────────────────────

    def get_contract(self, address: Any) -> Contract:
        if isinstance(address, Contract):
            address = address.address
        contract = self._contracts.get(to_checksum_address(address))
        if contract is None:
            raise ContractError(f"No contract at {address}")
        return contract

    def is_contract(self, address: Any) -> bool:
        return to_checksum_address(address) in self._contracts

    def compute_address(self, deployer: Any, contract_cls: Type[Contract], *args,
                        salt: Optional[bytes] = None) -> str:
        """Address the next deploy of ``contract_cls`` by ``deployer`` would get."""
        deployer = to_checksum_address(deployer)
        if salt is None:
            return generate_contract_address(deployer, self.get_nonce(deployer))
        return generate_contract_address_create2(deployer, salt, contract_cls.init_code(*args))

    def deploy(self, deployer: Any, contract_cls: Type[Contract], *args,
               salt: Optional[bytes] = None, **kwargs) -> Any:
        """
        Deploy a contract.

        The constructor runs in a call frame from ``deployer``. Without a salt
        the address follows CREATE (deployer nonce), with one CREATE2.

        Returns:
            The deployed contract instance
        """
        deployer = to_checksum_address(deployer)
        address = self.compute_address(deployer, contract_cls, *args, salt=salt)
        if address in self._contracts:
            raise ContractError(f"Contract already deployed at {address}")

        snapshot_id = self.snapshot()
        try:
            self._nonces[deployer] = self._nonces.get(deployer, 0) + 1
            contract = contract_cls.__new__(contract_cls)
            with self._call_frame(CallFrame(deployer, address)):
                contract.__init__(self, address, *args, **kwargs)
            self._contracts[address] = contract
        except Exception:
            self.revert(snapshot_id)
            raise
        self.commit(snapshot_id)

        logger.debug(f"Deployed {contract_cls.__name__} at {address} by {deployer}")
        return contract

    # ── Events ────────────────────────────────────────────────────────

    def record_event(self, event: Event) -> None:
        self._events.append(event)

    def get_events(self, name: Optional[str] = None, contract: Any = None) -> List[Event]:
        """Committed events, optionally filtered by name and emitting contract."""
        address = None
        if contract is not None:
            address = to_checksum_address(contract)
        return [
            e for e in self._events
            if (name is None or e.name == name) and (address is None or e.contract == address)
        ]

    # ── Call frames ───────────────────────────────────────────────────

    @property
    def current_frame(self) -> Optional[CallFrame]:
        return self._frames[-1] if self._frames else None

    @property
    def depth(self) -> int:
        return len(self._frames)

    @contextmanager
    def _call_frame(self, frame: CallFrame) -> Iterator[CallFrame]:
        self._track_storage(frame.contract)
        self._frames.append(frame)
        try:
            yield frame
        finally:
            self._frames.pop()

    # ── Snapshots ─────────────────────────────────────────────────────

    def snapshot(self) -> int:
        """
        Create state snapshot for revert.

        Contract storage is copied lazily: a contract's storage is recorded
        in every open snapshot the first time a call frame enters it.

        Returns:
            Snapshot ID
        """
        snapshot = {
            'balances': dict(self._balances),
            'nonces': dict(self._nonces),
            'contracts': dict(self._contracts),
            'storage': {},
            'events': len(self._events),
        }
        self._snapshots.append(snapshot)
        return len(self._snapshots) - 1

    def _track_storage(self, address: str) -> None:
        contract = self._contracts.get(address)
        if contract is None:
            return
        for snapshot in self._snapshots:
            if address not in snapshot['storage']:
                # Each snapshot needs its own copy; revert hands it to the contract
                snapshot['storage'][address] = contract.snapshot_storage()

    def revert(self, snapshot_id: int) -> None:
        """
        Revert state to snapshot.

        Args:
            snapshot_id: Snapshot ID from snapshot()
        """
        if snapshot_id < 0 or snapshot_id >= len(self._snapshots):
            raise ValueError(f"Invalid snapshot ID: {snapshot_id}")

        snapshot = self._snapshots[snapshot_id]
        self._balances = snapshot['balances']
        self._nonces = snapshot['nonces']
        self._contracts = snapshot['contracts']
        for address, state in snapshot['storage'].items():
            # Contracts deployed after the snapshot are dropped with it
            if address in self._contracts:
                self._contracts[address].restore_storage(state)
        del self._events[snapshot['events']:]

        # Remove this snapshot and newer ones
        self._snapshots = self._snapshots[:snapshot_id]

    def commit(self, snapshot_id: int) -> None:
        """Discard a snapshot (and newer ones) once its call succeeded."""
        self._snapshots = self._snapshots[:snapshot_id]

    # ── Calls ─────────────────────────────────────────────────────────

    def transact(self, sender: Any, contract: Any, method: str, *args,
                 value: int = 0) -> Receipt:
        """
        Send a top-level transaction calling an external method.

        Any exception reverts every state change made by the call (including
        nested calls, deployments, native transfers and events) and is
        re-raised.

        Args:
            sender: Account sending the transaction
            contract: Contract instance or address
            method: Python name of an @external method
            *args: Method arguments
            value: Native value attached to the call

        Returns:
            Receipt with the method result and the emitted events
        """
        sender = to_checksum_address(sender)
        target = self.get_contract(contract)
        spec = target.external_method(method)
        if value and not spec.payable:
            raise ContractError(f"{spec.signature} is not payable")

        events_before = len(self._events)
        snapshot_id = self.snapshot()
        try:
            self._move_value(sender, target.address, value)
            with self._call_frame(CallFrame(sender, target.address, value)):
                result = getattr(target, spec.name)(*args)
        except Exception as e:
            self.revert(snapshot_id)
            logger.debug(f"Reverted {spec.signature} from {sender}: {e}")
            raise
        self.commit(snapshot_id)

        self.block_number += 1
        return Receipt(
            sender=sender,
            contract=target.address,
            method=method,
            result=result,
            block_number=self.block_number,
            timestamp=self.timestamp,
            events=self._events[events_before:],
        )

    def call(self, sender: Any, target: Any, value: int, data: bytes) -> Any:
        """
        Nested message call carrying an ABI payload.

        Plain value transfers to accounts without code are allowed when the
        payload is empty. The call is reverted as a whole on failure.

        Raises:
            ContractError: If the payload cannot be dispatched or the callee reverts
        """
        sender = to_checksum_address(sender)
        target = to_checksum_address(target)

        snapshot_id = self.snapshot()
        try:
            self._move_value(sender, target, value)
            contract = self._contracts.get(target)
            if contract is None:
                if data:
                    raise ContractError(f"No contract at {target}")
                result = None
            else:
                with self._call_frame(CallFrame(sender, target, value)):
                    result = contract.dispatch(value, data)
        except Exception:
            self.revert(snapshot_id)
            raise
        self.commit(snapshot_id)
        return result

    def __repr__(self) -> str:
        return (
            f"Chain(chain_id={self.chain_id}, block={self.block_number}, "
            f"timestamp={self.timestamp}, contracts={len(self._contracts)})"
        )
