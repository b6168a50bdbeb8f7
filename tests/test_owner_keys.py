"""
Tests for OwnerKey derivation.
"""

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import keccak, to_canonical_address

from perpsync.ledger.owner import (
    InvalidSignature,
    owner_key_from_address,
    owner_key_from_signature,
)

PRIVATE_KEY = "0x" + "11" * 32


def test_public_key_is_zero_padded_address():
    address = "0x00000000000000000000000000000000000000Ab"
    key = owner_key_from_address(address)

    assert len(key) == 32
    assert key[:12] == b"\x00" * 12
    assert key[12:] == to_canonical_address(address)


def test_private_key_is_hash_of_recovered_signer():
    account = Account.from_key(PRIVATE_KEY)
    message = "perpsync login 1700000000"
    signed = Account.sign_message(encode_defunct(text=message), private_key=PRIVATE_KEY)

    key = owner_key_from_signature(message, bytes(signed.signature))

    assert key == keccak(to_canonical_address(account.address))


def test_signature_over_other_message_yields_other_key():
    signed = Account.sign_message(encode_defunct(text="a"), private_key=PRIVATE_KEY)
    account = Account.from_key(PRIVATE_KEY)

    key = owner_key_from_signature("b", bytes(signed.signature))

    assert key != keccak(to_canonical_address(account.address))


def test_malformed_signature_raises():
    with pytest.raises(InvalidSignature):
        owner_key_from_signature("hello", b"\x00" * 10)
