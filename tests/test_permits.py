"""
Delegated transfer permit tests.

Run with:
    pytest tests/test_permits.py -v
"""

import pytest

from loyalty.chain import Chain
from loyalty.constants import SECP256K1_N, UINT256_MAX
from loyalty.crypto import PrivateKey, Signature, keccak256
from loyalty.exceptions import (
    ContractError,
    ExpiredSignatureError,
    FeeExceedsAmountError,
    InsufficientBalanceError,
    InvalidSignatureError,
)
from loyalty.ledger import LoyaltyToken
from loyalty.permits import (
    DelegatedTransferAuthority,
    TransferPermit,
    compute_message,
    recover_permit_signer,
    sign_permit,
)


GENESIS = 1_700_000_000
CHAIN_ID = 24680
FEE = 10 ** 17

OWNER = PrivateKey.from_int(2).address
FEE_ACCOUNT = PrivateKey.from_int(3).address
HOLDER_KEY = PrivateKey.from_int(10)
HOLDER = HOLDER_KEY.address
OTHER_KEY = PrivateKey.from_int(11)
RECIPIENT = PrivateKey.from_int(12).address
RELAYER = PrivateKey.from_int(13).address
TOKEN = PrivateKey.from_int(14).address


@pytest.fixture
def chain():
    return Chain(chain_id=CHAIN_ID, timestamp=GENESIS)


@pytest.fixture
def token(chain):
    token = chain.deploy(OWNER, LoyaltyToken, OWNER, FEE_ACCOUNT)
    token.connect(OWNER).mint(10 ** 21)
    token.connect(OWNER).transfer(HOLDER, 10 ** 21)
    return token


def permit_for(token, amount, expiry=GENESIS + 3600, key=HOLDER_KEY, sender=None,
               nonce=None, chain_id=None):
    sender = sender or key.address
    permit = TransferPermit(
        chain_id=chain_id if chain_id is not None else token.chain.chain_id,
        token_address=token.address,
        sender=sender,
        recipient=RECIPIENT,
        amount=amount,
        nonce=token.nonce_of(sender) if nonce is None else nonce,
        expiry=expiry,
    )
    return permit.sign(key)


# ══════════════════════════════════════════════════════════════════════
#  MESSAGE DIGEST
# ══════════════════════════════════════════════════════════════════════

class TestComputeMessage:

    FIELDS = dict(
        chain_id=CHAIN_ID,
        token_address=TOKEN,
        sender=HOLDER,
        recipient=RECIPIENT,
        amount=500,
        nonce=0,
        expiry=GENESIS,
    )

    def test_digest_is_keccak_of_padded_fields(self):
        digest = compute_message(**self.FIELDS)
        encoded = b"".join([
            CHAIN_ID.to_bytes(32, 'big'),
            bytes(12) + bytes.fromhex(TOKEN[2:]),
            bytes(12) + bytes.fromhex(HOLDER[2:]),
            bytes(12) + bytes.fromhex(RECIPIENT[2:]),
            (500).to_bytes(32, 'big'),
            (0).to_bytes(32, 'big'),
            GENESIS.to_bytes(32, 'big'),
        ])
        assert digest == keccak256(encoded)

    def test_every_field_changes_the_digest(self):
        base = compute_message(**self.FIELDS)
        changes = dict(
            chain_id=CHAIN_ID + 1,
            token_address=RELAYER,
            sender=RELAYER,
            recipient=RELAYER,
            amount=501,
            nonce=1,
            expiry=GENESIS + 1,
        )
        for name, value in changes.items():
            fields = dict(self.FIELDS, **{name: value})
            assert compute_message(**fields) != base, name

    def test_address_case_does_not_matter(self):
        fields = dict(self.FIELDS, sender=HOLDER.lower(), recipient=RECIPIENT.lower())
        assert compute_message(**fields) == compute_message(**self.FIELDS)

    def test_sign_and_recover(self):
        digest = compute_message(**self.FIELDS)
        signature = sign_permit(HOLDER_KEY, digest)
        assert len(signature) == 65
        assert recover_permit_signer(digest, signature) == HOLDER
        assert recover_permit_signer(digest, '0x' + signature.hex()) == HOLDER

    def test_sign_rejects_wrong_digest_length(self):
        with pytest.raises(ValueError):
            sign_permit(HOLDER_KEY, b"\x00" * 31)

    def test_malformed_signature(self):
        digest = compute_message(**self.FIELDS)
        with pytest.raises(InvalidSignatureError):
            recover_permit_signer(digest, b"\x01\x02")


class TestTransferPermit:

    def test_fields_are_checksummed(self):
        permit = TransferPermit(CHAIN_ID, TOKEN.lower(), HOLDER.lower(), RECIPIENT, 1, 0, 1)
        assert permit.sender == HOLDER
        assert permit.token_address == TOKEN

    def test_digest_matches_compute_message(self):
        permit = TransferPermit(CHAIN_ID, TOKEN, HOLDER, RECIPIENT, 1, 0, 1)
        assert permit.digest == compute_message(CHAIN_ID, TOKEN, HOLDER, RECIPIENT, 1, 0, 1)

    def test_negative_field(self):
        with pytest.raises(ValueError):
            TransferPermit(CHAIN_ID, TOKEN, HOLDER, RECIPIENT, -1, 0, 1)

    @pytest.mark.parametrize("field", ["amount", "nonce", "expiry"])
    def test_field_wider_than_uint256(self, field):
        fields = dict(chain_id=CHAIN_ID, token_address=TOKEN, sender=HOLDER,
                      recipient=RECIPIENT, amount=1, nonce=0, expiry=1)
        fields[field] = UINT256_MAX + 1
        with pytest.raises(ValueError, match="256 bits"):
            TransferPermit(**fields)
        fields[field] = UINT256_MAX
        assert len(TransferPermit(**fields).digest) == 32

    def test_to_dict(self):
        permit = TransferPermit(CHAIN_ID, TOKEN, HOLDER, RECIPIENT, 10 ** 20, 3, 99)
        data = permit.to_dict()
        assert data["from"] == HOLDER
        assert data["to"] == RECIPIENT
        assert data["amount"] == str(10 ** 20)
        assert data["nonce"] == 3
        assert data["digest"] == '0x' + permit.digest.hex()


# ══════════════════════════════════════════════════════════════════════
#  DELEGATED TRANSFER ON THE TOKEN
# ══════════════════════════════════════════════════════════════════════

class TestDelegatedTransfer:

    def test_valid_permit(self, token):
        signature = permit_for(token, 500)
        receipt = token.connect(RELAYER).delegated_transfer(
            HOLDER, RECIPIENT, 500, GENESIS + 3600, signature
        )
        assert receipt.result is True
        assert token.balance_of(RECIPIENT) == 500
        assert token.balance_of(HOLDER) == 10 ** 21 - 500
        assert token.nonce_of(HOLDER) == 1

    def test_replay_is_rejected(self, token):
        signature = permit_for(token, 500)
        token.connect(RELAYER).delegated_transfer(HOLDER, RECIPIENT, 500, GENESIS + 3600, signature)
        with pytest.raises(InvalidSignatureError):
            token.connect(RELAYER).delegated_transfer(
                HOLDER, RECIPIENT, 500, GENESIS + 3600, signature
            )
        assert token.balance_of(RECIPIENT) == 500
        assert token.nonce_of(HOLDER) == 1

    def test_wrong_signer(self, token):
        signature = permit_for(token, 500, key=OTHER_KEY, sender=HOLDER)
        with pytest.raises(InvalidSignatureError, match="Invalid signature"):
            token.connect(RELAYER).delegated_transfer(
                HOLDER, RECIPIENT, 500, GENESIS + 3600, signature
            )
        assert token.nonce_of(HOLDER) == 0

    def test_tampered_amount(self, token):
        signature = permit_for(token, 500)
        with pytest.raises(InvalidSignatureError):
            token.connect(RELAYER).delegated_transfer(
                HOLDER, RECIPIENT, 501, GENESIS + 3600, signature
            )

    def test_expired(self, token):
        signature = permit_for(token, 500, expiry=GENESIS - 1)
        with pytest.raises(ExpiredSignatureError, match="Expired signature"):
            token.connect(RELAYER).delegated_transfer(
                HOLDER, RECIPIENT, 500, GENESIS - 1, signature
            )

    def test_expiry_equal_to_now_is_expired(self, token):
        signature = permit_for(token, 500, expiry=GENESIS)
        with pytest.raises(ExpiredSignatureError):
            token.connect(RELAYER).delegated_transfer(HOLDER, RECIPIENT, 500, GENESIS, signature)

    def test_expires_as_time_advances(self, chain, token):
        signature = permit_for(token, 500, expiry=GENESIS + 60)
        chain.advance_time(60)
        with pytest.raises(ExpiredSignatureError):
            token.connect(RELAYER).delegated_transfer(
                HOLDER, RECIPIENT, 500, GENESIS + 60, signature
            )

    def test_expiry_checked_before_signature(self, token):
        with pytest.raises(ExpiredSignatureError):
            token.connect(RELAYER).delegated_transfer(
                HOLDER, RECIPIENT, 500, GENESIS - 1, b"\x00" * 65
            )

    def test_other_chain(self, token):
        signature = permit_for(token, 500, chain_id=CHAIN_ID + 1)
        with pytest.raises(InvalidSignatureError):
            token.connect(RELAYER).delegated_transfer(
                HOLDER, RECIPIENT, 500, GENESIS + 3600, signature
            )

    def test_other_token(self, chain, token):
        other = chain.deploy(OWNER, LoyaltyToken, OWNER, FEE_ACCOUNT)
        signature = permit_for(other, 500)
        with pytest.raises(InvalidSignatureError):
            token.connect(RELAYER).delegated_transfer(
                HOLDER, RECIPIENT, 500, GENESIS + 3600, signature
            )

    def test_future_nonce(self, token):
        signature = permit_for(token, 500, nonce=1)
        with pytest.raises(InvalidSignatureError):
            token.connect(RELAYER).delegated_transfer(
                HOLDER, RECIPIENT, 500, GENESIS + 3600, signature
            )

    def test_insufficient_balance_keeps_nonce(self, token):
        amount = 10 ** 21 + 1
        signature = permit_for(token, amount)
        with pytest.raises(InsufficientBalanceError):
            token.connect(RELAYER).delegated_transfer(
                HOLDER, RECIPIENT, amount, GENESIS + 3600, signature
            )
        assert token.nonce_of(HOLDER) == 0
        assert token.balance_of(HOLDER) == 10 ** 21

    def test_amount_wider_than_uint256(self, token):
        with pytest.raises(ContractError, match="out of range"):
            token.connect(RELAYER).delegated_transfer(
                HOLDER, RECIPIENT, UINT256_MAX + 1, GENESIS + 3600, b"\x00" * 65
            )
        assert token.nonce_of(HOLDER) == 0
        assert token.balance_of(HOLDER) == 10 ** 21

    def test_expiry_wider_than_uint256(self, token):
        with pytest.raises(ContractError, match="out of range"):
            token.connect(RELAYER).delegated_transfer_with_fee(
                HOLDER, RECIPIENT, 500, UINT256_MAX + 1, b"\x00" * 65
            )
        assert token.nonce_of(HOLDER) == 0

    def test_high_s_signature(self, token):
        sig = Signature.from_bytes(permit_for(token, 500))
        twin = Signature.from_vrs(1 - sig.v, sig.r, SECP256K1_N - sig.s).to_bytes()
        with pytest.raises(InvalidSignatureError):
            token.connect(RELAYER).delegated_transfer(
                HOLDER, RECIPIENT, 500, GENESIS + 3600, twin
            )
        assert token.nonce_of(HOLDER) == 0
        assert token.balance_of(RECIPIENT) == 0

    def test_sequential_permits(self, token):
        for i in range(3):
            signature = permit_for(token, 100)
            token.connect(RELAYER).delegated_transfer(
                HOLDER, RECIPIENT, 100, GENESIS + 3600, signature
            )
        assert token.nonce_of(HOLDER) == 3
        assert token.balance_of(RECIPIENT) == 300


class TestDelegatedTransferWithFee:

    def test_fee_is_carved_out(self, token):
        amount = 500 * 10 ** 18
        signature = permit_for(token, amount)
        sender_before = token.balance_of(HOLDER)
        supply_before = token.total_supply()

        receipt = token.connect(RELAYER).delegated_transfer_with_fee(
            HOLDER, RECIPIENT, amount, GENESIS + 3600, signature
        )

        assert token.balance_of(RECIPIENT) == amount - FEE
        assert token.balance_of(FEE_ACCOUNT) == FEE
        assert sender_before - token.balance_of(HOLDER) == amount
        assert token.total_supply() == supply_before
        assert [e.recipient for e in receipt.events_named("Transfer")] == [FEE_ACCOUNT, RECIPIENT]
        assert token.nonce_of(HOLDER) == 1

    def test_fee_larger_than_amount(self, token):
        signature = permit_for(token, FEE - 1)
        with pytest.raises(FeeExceedsAmountError):
            token.connect(RELAYER).delegated_transfer_with_fee(
                HOLDER, RECIPIENT, FEE - 1, GENESIS + 3600, signature
            )
        assert token.nonce_of(HOLDER) == 0

    def test_fee_equal_to_amount(self, token):
        signature = permit_for(token, FEE)
        token.connect(RELAYER).delegated_transfer_with_fee(
            HOLDER, RECIPIENT, FEE, GENESIS + 3600, signature
        )
        assert token.balance_of(RECIPIENT) == 0
        assert token.balance_of(FEE_ACCOUNT) == FEE

    def test_zero_fee(self, token):
        token.connect(OWNER).set_protocol_fee(0)
        signature = permit_for(token, 700)
        receipt = token.connect(RELAYER).delegated_transfer_with_fee(
            HOLDER, RECIPIENT, 700, GENESIS + 3600, signature
        )
        assert token.balance_of(RECIPIENT) == 700
        assert len(receipt.events_named("Transfer")) == 1

    def test_fee_follows_fee_account_change(self, token):
        token.connect(OWNER).change_fee_account(RELAYER)
        signature = permit_for(token, 10 ** 18)
        token.connect(RELAYER).delegated_transfer_with_fee(
            HOLDER, RECIPIENT, 10 ** 18, GENESIS + 3600, signature
        )
        assert token.balance_of(RELAYER) == FEE
        assert token.balance_of(FEE_ACCOUNT) == 0

    def test_insufficient_balance_is_atomic(self, token):
        amount = 10 ** 21 + 1
        signature = permit_for(token, amount)
        with pytest.raises(InsufficientBalanceError):
            token.connect(RELAYER).delegated_transfer_with_fee(
                HOLDER, RECIPIENT, amount, GENESIS + 3600, signature
            )
        assert token.balance_of(HOLDER) == 10 ** 21
        assert token.balance_of(FEE_ACCOUNT) == 0
        assert token.nonce_of(HOLDER) == 0


# ══════════════════════════════════════════════════════════════════════
#  AUTHORITY WITHOUT A CHAIN
# ══════════════════════════════════════════════════════════════════════

class FakeLedger:
    """Plain dict ledger, no snapshots."""

    def __init__(self, balances):
        self.balances = dict(balances)

    def transfer(self, sender, recipient, amount):
        if self.balances.get(sender, 0) < amount:
            raise InsufficientBalanceError(f"{sender} cannot pay {amount}")
        self.balances[sender] -= amount
        self.balances[recipient] = self.balances.get(recipient, 0) + amount


class TestAuthority:

    @pytest.fixture
    def ledger(self):
        return FakeLedger({HOLDER: 1000})

    @pytest.fixture
    def authority(self, ledger):
        return DelegatedTransferAuthority(
            chain_id=CHAIN_ID,
            token_address=TOKEN,
            clock=lambda: GENESIS,
            transfer=ledger.transfer,
        )

    def sign(self, amount, nonce=0):
        permit = TransferPermit(CHAIN_ID, TOKEN, HOLDER, RECIPIENT, amount, nonce, GENESIS + 1)
        return permit.sign(HOLDER_KEY)

    def test_transfer(self, authority, ledger):
        authority.delegated_transfer(HOLDER, RECIPIENT, 400, GENESIS + 1, self.sign(400))
        assert ledger.balances[RECIPIENT] == 400
        assert authority.nonce_of(HOLDER) == 1
        assert authority.nonce_of(HOLDER.lower()) == 1

    def test_failed_transfer_restores_nonce(self, authority):
        with pytest.raises(InsufficientBalanceError):
            authority.delegated_transfer(HOLDER, RECIPIENT, 2000, GENESIS + 1, self.sign(2000))
        assert authority.nonce_of(HOLDER) == 0

    def test_failed_fee_transfer_restores_nonce(self, authority, ledger):
        with pytest.raises(InsufficientBalanceError):
            authority.delegated_transfer_with_fee(
                HOLDER, RECIPIENT, 2000, GENESIS + 1, self.sign(2000),
                fee=10, fee_account=FEE_ACCOUNT,
            )
        assert authority.nonce_of(HOLDER) == 0

    def test_negative_amount(self, authority, ledger):
        with pytest.raises(ContractError, match="out of range"):
            authority.delegated_transfer(HOLDER, RECIPIENT, -1, GENESIS + 1, self.sign(1))
        assert authority.nonce_of(HOLDER) == 0
        assert ledger.balances[HOLDER] == 1000

    def test_snapshot_restore(self, authority):
        state = authority.snapshot()
        authority.delegated_transfer(HOLDER, RECIPIENT, 1, GENESIS + 1, self.sign(1))
        authority.restore(state)
        assert authority.nonce_of(HOLDER) == 0
