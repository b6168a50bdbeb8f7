"""
OwnerKey derivation: the 32-byte join key for every per-owner ledger entry.

Private flow: keccak256 of the 20 address bytes recovered from an EIP-191
signature (the same hash the PrivacyProxy stores as ownerPubKey).
Public flow: the account address left-padded with zeros to 32 bytes.
"""

from __future__ import annotations

from typing import Union

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import keccak, to_canonical_address

from perpsync.infra.errors import PerpSyncError


class InvalidSignature(PerpSyncError):
    pass


def owner_key_from_address(address: str) -> bytes:
    return b"\x00" * 12 + to_canonical_address(address)


def owner_key_from_signer(address: str) -> bytes:
    return keccak(to_canonical_address(address))


def owner_key_from_signature(message: str, signature: Union[str, bytes]) -> bytes:
    try:
        signer = Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception as exc:
        raise InvalidSignature(f"cannot recover signer: {exc}") from exc
    return owner_key_from_signer(signer)
