"""
Chain runtime tests.

Covers deployment addresses, call frames, ABI dispatch, native value,
events, receipts and snapshot/revert atomicity.

Run with:
    pytest tests/test_chain.py -v
"""

from dataclasses import dataclass

import pytest

from loyalty.chain import (
    Chain,
    Contract,
    Event,
    ExecutionFailure,
    Transfer,
    external,
)
from loyalty.crypto import (
    PrivateKey,
    encode_call,
    function_selector,
    generate_contract_address,
    generate_contract_address_create2,
)
from loyalty.exceptions import ContractError, InsufficientBalanceError


GENESIS = 1_700_000_000
ALICE = PrivateKey.from_int(1).address
BOB = PrivateKey.from_int(2).address


@dataclass(frozen=True)
class Incremented(Event):
    caller: str
    by: int


class Counter(Contract):
    """Minimal contract exercising the runtime."""

    storage = ('count', 'callers')

    def __init__(self, chain, address, start: int = 0):
        super().__init__(chain, address)
        if start < 0:
            raise ContractError("start cannot be negative")
        self.count = start
        self.callers = []
        self.creator = self.msg_sender

    @external("increment(uint256)")
    def increment(self, by: int) -> int:
        self.count += by
        self.callers.append(self.msg_sender)
        self.emit(Incremented, caller=self.msg_sender, by=by)
        return self.count

    @external("fail(string)")
    def fail(self, reason: str) -> None:
        self.count += 1000
        self.emit(Incremented, caller=self.msg_sender, by=1000)
        raise ContractError(reason)

    @external("deposit()", payable=True)
    def deposit(self) -> int:
        return self.msg_value

    @external("forward(address,bytes)")
    def forward(self, target: str, data: bytes):
        return self.chain.call(self.address, target, 0, data)

    @external("tryForward(address,bytes)")
    def try_forward(self, target: str, data: bytes) -> bool:
        self.count += 1
        try:
            self.chain.call(self.address, target, 0, data)
        except ContractError:
            return False
        return True


class CopyCountingCounter(Counter):
    """Counter that counts how often the chain copies its storage."""

    copies = 0

    def snapshot_storage(self):
        self.copies += 1
        return super().snapshot_storage()


@pytest.fixture
def chain():
    return Chain(chain_id=24680, timestamp=GENESIS)


@pytest.fixture
def counter(chain):
    return chain.deploy(ALICE, Counter)


# ══════════════════════════════════════════════════════════════════════
#  DEPLOYMENT
# ══════════════════════════════════════════════════════════════════════

class TestDeploy:

    def test_create_address_follows_nonce(self, chain):
        first = chain.deploy(ALICE, Counter)
        second = chain.deploy(ALICE, Counter)
        assert first.address == generate_contract_address(ALICE, 0)
        assert second.address == generate_contract_address(ALICE, 1)
        assert chain.get_nonce(ALICE) == 2
        assert chain.is_contract(first.address)

    def test_constructor_runs_as_deployer(self, chain):
        counter = chain.deploy(BOB, Counter, 5)
        assert counter.creator == BOB
        assert counter.count == 5

    def test_create2_address(self, chain):
        salt = (7).to_bytes(32, 'big')
        expected = generate_contract_address_create2(ALICE, salt, Counter.init_code())
        assert chain.compute_address(ALICE, Counter, salt=salt) == expected
        assert chain.deploy(ALICE, Counter, salt=salt).address == expected

    def test_create2_collision(self, chain):
        salt = (7).to_bytes(32, 'big')
        chain.deploy(ALICE, Counter, salt=salt)
        with pytest.raises(ContractError, match="already deployed"):
            chain.deploy(ALICE, Counter, salt=salt)

    def test_failed_constructor_leaves_nothing(self, chain):
        address = chain.compute_address(ALICE, Counter)
        with pytest.raises(ContractError):
            chain.deploy(ALICE, Counter, -1)
        assert not chain.is_contract(address)
        assert chain.get_nonce(ALICE) == 0

    def test_invalid_chain_id(self):
        with pytest.raises(ValueError):
            Chain(chain_id=0)


# ══════════════════════════════════════════════════════════════════════
#  TRANSACTIONS
# ══════════════════════════════════════════════════════════════════════

class TestTransact:

    def test_receipt(self, chain, counter):
        receipt = chain.transact(BOB, counter, "increment", 3)
        assert receipt.result == 3
        assert receipt.sender == BOB
        assert receipt.contract == counter.address
        assert receipt.block_number == 1
        assert receipt.timestamp == GENESIS
        assert receipt.event_value("Incremented", "by") == 3
        assert receipt.event_value("Incremented", "caller") == BOB
        assert receipt.to_dict()["events"][0]["event"] == "Incremented"

    def test_msg_sender_is_caller(self, chain, counter):
        chain.transact(ALICE, counter, "increment", 1)
        chain.transact(BOB, counter, "increment", 1)
        assert counter.callers == [ALICE, BOB]

    def test_msg_sender_outside_call(self, counter):
        with pytest.raises(ContractError, match="outside of a transaction"):
            counter.msg_sender

    def test_unknown_method(self, chain, counter):
        with pytest.raises(ContractError, match="no external method"):
            chain.transact(ALICE, counter, "creator")

    def test_revert_restores_state_and_events(self, chain, counter):
        chain.transact(ALICE, counter, "increment", 2)
        events_before = len(chain.get_events())
        with pytest.raises(ContractError, match="boom"):
            chain.transact(ALICE, counter, "fail", "boom")
        assert counter.count == 2
        assert len(chain.get_events()) == events_before
        assert chain.block_number == 1

    def test_missing_event(self, chain, counter):
        receipt = chain.transact(ALICE, counter, "increment", 1)
        with pytest.raises(KeyError):
            receipt.event_value("Transfer", "amount")

    def test_connect_proxy(self, counter):
        receipt = counter.connect(BOB).increment(4)
        assert receipt.result == 4
        assert counter.connect(BOB).count == 4

    def test_connect_accepts_keys(self, counter):
        counter.connect(PrivateKey.from_int(2)).increment(1)
        assert counter.callers == [BOB]


class TestNativeValue:

    def test_payable_call_moves_value(self, chain, counter):
        chain.set_balance(ALICE, 100)
        receipt = chain.transact(ALICE, counter, "deposit", value=40)
        assert receipt.result == 40
        assert chain.get_balance(ALICE) == 60
        assert chain.get_balance(counter.address) == 40

    def test_value_to_non_payable(self, chain, counter):
        chain.set_balance(ALICE, 100)
        with pytest.raises(ContractError, match="not payable"):
            chain.transact(ALICE, counter, "increment", 1, value=1)
        assert chain.get_balance(ALICE) == 100

    def test_insufficient_native_balance(self, chain, counter):
        with pytest.raises(InsufficientBalanceError):
            chain.transact(ALICE, counter, "deposit", value=1)

    def test_plain_transfer_to_account(self, chain):
        chain.set_balance(ALICE, 10)
        assert chain.call(ALICE, BOB, 10, b"") is None
        assert chain.get_balance(BOB) == 10

    def test_negative_balance_rejected(self, chain):
        with pytest.raises(ValueError):
            chain.set_balance(ALICE, -1)


# ══════════════════════════════════════════════════════════════════════
#  PAYLOAD DISPATCH
# ══════════════════════════════════════════════════════════════════════

class TestDispatch:

    def test_payload_call(self, chain, counter):
        data = Counter.encode_function_data("increment", [3])
        assert chain.call(ALICE, counter.address, 0, data) == 3
        assert counter.callers == [ALICE]

    def test_encode_by_abi_name(self):
        assert Counter.encode_function_data("tryForward", [ALICE, b""]) == \
            Counter.encode_function_data("try_forward", [ALICE, b""])

    def test_encode_unknown_name(self):
        with pytest.raises(ContractError):
            Counter.encode_function_data("decrement", [1])

    def test_unknown_selector(self, chain, counter):
        data = encode_call("decrement(uint256)", 1)
        with pytest.raises(ContractError, match="no method for selector"):
            chain.call(ALICE, counter.address, 0, data)

    def test_malformed_arguments(self, chain, counter):
        data = function_selector("increment(uint256)") + b"\x01"
        with pytest.raises(ContractError, match="Malformed"):
            chain.call(ALICE, counter.address, 0, data)

    def test_payload_shorter_than_selector(self, chain, counter):
        with pytest.raises(ContractError, match="Malformed"):
            chain.call(ALICE, counter.address, 0, b"\x01\x02")

    def test_empty_payload_without_receive(self, chain, counter):
        with pytest.raises(ContractError, match="plain transfers"):
            chain.call(ALICE, counter.address, 0, b"")

    def test_payload_to_account_without_code(self, chain):
        with pytest.raises(ContractError, match="No contract"):
            chain.call(ALICE, BOB, 0, encode_call("increment(uint256)", 1))

    def test_addresses_are_checksummed(self, chain, counter):
        other = chain.deploy(ALICE, Counter)
        data = Counter.encode_function_data(
            "forward", [other.address, Counter.encode_function_data("increment", [1])]
        )
        chain.call(BOB, counter.address, 0, data)
        assert other.callers == [counter.address]


class TestNestedCalls:

    def test_nested_failure_reverts_only_inner_call(self, chain, counter):
        target = chain.deploy(ALICE, Counter)
        data = Counter.encode_function_data("fail", ["inner"])
        receipt = chain.transact(BOB, counter, "try_forward", target.address, data)
        assert receipt.result is False
        assert counter.count == 1
        assert target.count == 0
        assert receipt.events_named("Incremented") == []

    def test_nested_failure_propagates(self, chain, counter):
        target = chain.deploy(ALICE, Counter)
        data = Counter.encode_function_data("fail", ["inner"])
        with pytest.raises(ContractError, match="inner"):
            chain.transact(BOB, counter, "forward", target.address, data)
        assert target.count == 0

    def test_nested_caller_is_contract(self, chain, counter):
        target = chain.deploy(ALICE, Counter)
        data = Counter.encode_function_data("increment", [2])
        chain.transact(BOB, counter, "forward", target.address, data)
        assert target.callers == [counter.address]
        assert chain.depth == 0


class TestSnapshots:

    def test_idle_contract_is_not_copied(self, chain, counter):
        idle = chain.deploy(ALICE, CopyCountingCounter)
        for _ in range(3):
            chain.transact(BOB, counter, "increment", 1)
        assert idle.copies == 0

    def test_copied_once_per_open_snapshot(self, chain, counter):
        target = chain.deploy(ALICE, CopyCountingCounter)
        chain.transact(BOB, target, "increment", 1)
        assert target.copies == 1

        # Entered again inside a nested call: outer and inner snapshot
        data = Counter.encode_function_data("increment", [1])
        chain.transact(BOB, counter, "forward", target.address, data)
        assert target.copies == 3

    def test_revert_restores_contracts_entered_after_snapshot(self, chain, counter):
        target = chain.deploy(ALICE, Counter)
        snapshot_id = chain.snapshot()
        chain.transact(BOB, counter, "increment", 5)
        data = Counter.encode_function_data("increment", [2])
        chain.transact(BOB, counter, "forward", target.address, data)
        late = chain.deploy(BOB, Counter)
        chain.transact(BOB, late, "increment", 1)

        chain.revert(snapshot_id)
        assert counter.count == 0
        assert counter.callers == []
        assert target.count == 0
        assert not chain.is_contract(late.address)
        assert chain.get_events("Incremented") == []

    def test_failed_nested_call_keeps_committed_sibling(self, chain, counter):
        target = chain.deploy(ALICE, Counter)
        chain.transact(BOB, target, "increment", 4)
        data = Counter.encode_function_data("fail", ["inner"])
        chain.transact(BOB, counter, "try_forward", target.address, data)
        assert target.count == 4
        assert target.callers == [BOB]
        assert counter.count == 1


# ══════════════════════════════════════════════════════════════════════
#  TIME & EVENTS
# ══════════════════════════════════════════════════════════════════════

class TestTime:

    def test_advance_time(self, chain):
        assert chain.advance_time(60) == GENESIS + 60
        with pytest.raises(ValueError):
            chain.advance_time(-1)

    def test_advance_blocks(self, chain):
        chain.advance_blocks(5)
        assert chain.block_number == 5
        assert chain.timestamp == GENESIS + 5 * 12

    def test_contract_clock(self, chain, counter):
        chain.advance_time(10)
        assert counter.now == GENESIS + 10


class TestEvents:

    def test_transfer_keys(self):
        event = Transfer(contract=ALICE, sender=ALICE, recipient=BOB, amount=5)
        assert event.to_dict() == {
            "event": "Transfer",
            "contract": ALICE,
            "from": ALICE,
            "to": BOB,
            "amount": 5,
        }

    def test_camel_case_keys(self):
        event = ExecutionFailure(contract=ALICE, transaction_id=3, reason="nope")
        assert event.to_dict() == {
            "event": "ExecutionFailure",
            "contract": ALICE,
            "transactionId": 3,
            "reason": "nope",
        }

    def test_filter_events(self, chain, counter):
        other = chain.deploy(ALICE, Counter)
        chain.transact(ALICE, counter, "increment", 1)
        chain.transact(ALICE, other, "increment", 1)
        assert len(chain.get_events("Incremented")) == 2
        assert len(chain.get_events("Incremented", contract=other.address)) == 1
        assert chain.get_events("Transfer") == []
