"""
Tests for IndexerHandlers: chain events into ledger mutations.
"""

import pytest
from eth_utils import keccak, to_canonical_address, to_checksum_address

from perpsync.chain.abi import ChainEvent
from perpsync.chain.handlers import IndexerHandlers, note_id_for
from perpsync.ledger.models import PositionStatus
from perpsync.ledger.notes import NoteLedger
from perpsync.ledger.owner import owner_key_from_address
from perpsync.ledger.positions import PositionLedger

PROXY = to_checksum_address("0x" + "0a" * 20)
TOKEN = to_checksum_address("0x" + "0b" * 20)
CLEARING_HOUSE = to_checksum_address("0x" + "0c" * 20)
POOL = to_checksum_address("0x" + "0d" * 20)
ALICE = to_checksum_address("0x" + "a1" * 20)

POSITION_ID = b"\x11" * 32
OWNER_KEY = b"\x22" * 32
RECEIVER = b"\x33" * 32


def event(label, **args):
    return ChainEvent(label=label, block_number=1, log_index=0, tx_hash="0x", address="0x", args=args)


def opened(label, **extra):
    return event(
        label,
        positionId=POSITION_ID,
        isLong=False,
        entryPrice=65_000 * 10**18,
        margin=500 * 10**18,
        size=10**17,
        **extra,
    )


@pytest.fixture
def ledgers(store):
    return PositionLedger(store), NoteLedger(store)


@pytest.fixture
def handlers(ledgers):
    positions, notes = ledgers
    return IndexerHandlers(positions, notes, PROXY, TOKEN)


class TestPositionHandlers:

    @pytest.mark.asyncio
    async def test_private_open_keyed_by_owner_pub_key(self, handlers, ledgers):
        positions, _ = ledgers

        await handlers.on_private_position_opened(opened("proxy.PositionOpened", ownerPubKey=OWNER_KEY))

        got = positions.get_open_positions(OWNER_KEY)
        assert len(got) == 1
        assert got[0].position_id == "0x" + POSITION_ID.hex()
        assert got[0].is_long is False
        assert got[0].entry_price == str(65_000 * 10**18)

    @pytest.mark.asyncio
    async def test_public_open_keyed_by_padded_address(self, handlers, ledgers):
        positions, _ = ledgers

        await handlers.on_public_position_opened(opened("clearinghouse.PositionOpened", user=ALICE))

        assert len(positions.get_open_positions(owner_key_from_address(ALICE))) == 1

    @pytest.mark.asyncio
    async def test_public_open_by_proxy_is_skipped(self, handlers, ledgers):
        positions, _ = ledgers

        await handlers.on_public_position_opened(opened("clearinghouse.PositionOpened", user=PROXY))

        assert positions.owner_of(POSITION_ID) is None

    @pytest.mark.asyncio
    async def test_close_moves_with_pnl(self, handlers, ledgers):
        positions, _ = ledgers
        await handlers.on_private_position_opened(opened("proxy.PositionOpened", ownerPubKey=OWNER_KEY))

        await handlers.on_position_closed(
            event("clearinghouse.PositionClosed", positionId=POSITION_ID, user=PROXY, pnl=-1234)
        )

        assert positions.get_open_positions(OWNER_KEY) == []
        history = positions.get_historical_positions(OWNER_KEY).items
        assert history[0].status is PositionStatus.CLOSED
        assert history[0].final_pnl == "-1234"
        assert history[0].owner_address == PROXY

    @pytest.mark.asyncio
    async def test_liquidation_settles_as_liquidated(self, handlers, ledgers):
        positions, _ = ledgers
        await handlers.on_public_position_opened(opened("clearinghouse.PositionOpened", user=ALICE))

        await handlers.on_position_liquidated(
            event("clearinghouse.PositionLiquidated", positionId=POSITION_ID, user=ALICE, liquidator=PROXY, fee=1)
        )

        history = positions.get_historical_positions(owner_key_from_address(ALICE)).items
        assert history[0].status is PositionStatus.LIQUIDATED
        assert history[0].final_pnl == "Liquidated"

    @pytest.mark.asyncio
    async def test_close_before_open_is_noop(self, handlers, ledgers):
        positions, _ = ledgers

        await handlers.on_position_closed(
            event("clearinghouse.PositionClosed", positionId=POSITION_ID, user=ALICE, pnl=5)
        )

        assert positions.get_position_by_id(POSITION_ID) is None

    def test_routes_bind_addresses(self, handlers):
        routes = handlers.routes(CLEARING_HOUSE, POOL)

        by_label = {r.spec.label: r.spec.address for r in routes}
        assert by_label["proxy.PositionOpened"] == PROXY
        assert by_label["clearinghouse.PositionClosed"] == CLEARING_HOUSE
        assert by_label["tokenpool.NoteClaimed"] == POOL
        assert len(routes) == 6


class TestNoteHandlers:

    def test_note_id_derivation(self):
        expected = keccak(to_canonical_address(TOKEN) + (7).to_bytes(32, "big"))
        assert note_id_for(TOKEN, 7) == "0x" + expected.hex()

    @pytest.mark.asyncio
    async def test_created_then_claimed(self, handlers, ledgers):
        _, notes = ledgers

        await handlers.on_note_created(event("tokenpool.NoteCreated", receiverHash=RECEIVER, amount=900, noteNonce=7))

        bucket = notes.get_unspent_notes(RECEIVER)
        assert len(bucket) == 1
        assert bucket[0].note_id == note_id_for(TOKEN, 7)
        assert bucket[0].value == "900"
        assert bucket[0].note_nonce == 7

        note_id = bytes.fromhex(note_id_for(TOKEN, 7)[2:])
        await handlers.on_note_claimed(event("tokenpool.NoteClaimed", noteId=note_id, receiver=ALICE, amount=900))

        assert notes.get_unspent_notes(RECEIVER) == []

    @pytest.mark.asyncio
    async def test_claim_of_unknown_note_is_noop(self, handlers, ledgers):
        _, notes = ledgers
        await handlers.on_note_created(event("tokenpool.NoteCreated", receiverHash=RECEIVER, amount=1, noteNonce=1))

        await handlers.on_note_claimed(event("tokenpool.NoteClaimed", noteId=b"\x99" * 32, receiver=ALICE, amount=1))

        assert len(notes.get_unspent_notes(RECEIVER)) == 1
