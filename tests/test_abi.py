"""
Tests for log decoding and call encoding.
"""

import pytest
from eth_abi import encode
from eth_utils import keccak, to_checksum_address

from perpsync.chain.abi import (
    NOTE_CREATED,
    POSITION_CLOSED,
    PROXY_POSITION_OPENED,
    decode_log,
    decode_result,
    encode_call,
    selector,
)
from perpsync.infra.errors import DecodeError

USER = "0x" + "ab" * 20


def topic(type_, value):
    return "0x" + encode([type_], [value]).hex()


def raw_log(spec, indexed, data_types, data_values, block=0x10, log_index=0x2):
    return {
        "address": "0x" + "01" * 20,
        "topics": [spec.topic0] + [topic(t, v) for t, v in indexed],
        "data": "0x" + encode(data_types, data_values).hex(),
        "blockNumber": hex(block),
        "logIndex": hex(log_index),
        "transactionHash": "0x" + "ee" * 32,
    }


class TestEventSpec:

    def test_signature_and_topic(self):
        assert POSITION_CLOSED.signature == "PositionClosed(bytes32,address,int256)"
        assert POSITION_CLOSED.topic0 == "0x" + keccak(text=POSITION_CLOSED.signature).hex()

    def test_bind_checksums_address(self):
        bound = NOTE_CREATED.bind(USER)
        assert bound.address == to_checksum_address(USER)
        assert NOTE_CREATED.address is None


class TestDecodeLog:

    def test_decode_proxy_open(self):
        position_id = b"\x01" * 32
        owner_key = b"\x02" * 32
        raw = raw_log(
            PROXY_POSITION_OPENED,
            [("bytes32", position_id), ("bytes32", owner_key)],
            ["bool", "uint256", "uint256", "uint256"],
            [True, 65_000 * 10**18, 10**21, 10**17],
        )

        event = decode_log(PROXY_POSITION_OPENED, raw)

        assert event.label == "proxy.PositionOpened"
        assert event.block_number == 16
        assert event.log_index == 2
        assert event.args["positionId"] == position_id
        assert event.args["ownerPubKey"] == owner_key
        assert event.args["isLong"] is True
        assert event.args["entryPrice"] == 65_000 * 10**18

    def test_decode_negative_pnl_and_address(self):
        raw = raw_log(
            POSITION_CLOSED,
            [("bytes32", b"\x03" * 32), ("address", USER)],
            ["int256"],
            [-42],
        )

        event = decode_log(POSITION_CLOSED, raw)

        assert event.args["pnl"] == -42
        assert event.args["user"] == to_checksum_address(USER)

    def test_decode_unindexed_event(self):
        raw = raw_log(NOTE_CREATED, [], ["bytes32", "uint256", "uint256"], [b"\x09" * 32, 500, 7])

        event = decode_log(NOTE_CREATED, raw)

        assert event.args == {"receiverHash": b"\x09" * 32, "amount": 500, "noteNonce": 7}

    def test_topic_mismatch(self):
        raw = raw_log(NOTE_CREATED, [], ["bytes32", "uint256", "uint256"], [b"\x09" * 32, 500, 7])

        with pytest.raises(DecodeError):
            decode_log(POSITION_CLOSED, raw)

    def test_wrong_indexed_count(self):
        raw = raw_log(POSITION_CLOSED, [("bytes32", b"\x03" * 32)], ["int256"], [1])

        with pytest.raises(DecodeError):
            decode_log(POSITION_CLOSED, raw)

    def test_truncated_data(self):
        raw = raw_log(NOTE_CREATED, [], ["bytes32", "uint256", "uint256"], [b"\x09" * 32, 500, 7])
        raw["data"] = raw["data"][:40]

        with pytest.raises(DecodeError):
            decode_log(NOTE_CREATED, raw)


class TestCalls:

    def test_encode_call(self):
        data = encode_call("liquidate(bytes32)", ["bytes32"], [b"\x05" * 32])

        assert data.startswith("0x" + selector("liquidate(bytes32)").hex())
        assert len(bytes.fromhex(data[2:])) == 4 + 32

    def test_decode_result(self):
        assert decode_result(["int256", "bool"], encode(["int256", "bool"], [-5, True])) == (-5, True)

    def test_decode_result_garbage(self):
        with pytest.raises(DecodeError):
            decode_result(["int256", "bool"], b"\x00")
