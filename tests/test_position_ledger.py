"""
Tests for PositionLedger.

Tests cover:
- Open set idempotence and reverse index
- Move to historical (ordering, duplicates, unknown ids)
- Pagination over the reverse-chronological history
- Global id-keyed records across lifecycle stages
"""

import pytest

from perpsync.ledger.models import Position, PositionRecord, PositionStatus
from perpsync.ledger.positions import PositionLedger

from conftest import owner, pid


def make_position(n: int, is_long: bool = True) -> Position:
    return Position(
        position_id=pid(n),
        is_long=is_long,
        entry_price="65000000000000000000000",
        margin="1000000000000000000000",
        size=str(10**17 * n),
    )


@pytest.fixture
def ledger(store):
    return PositionLedger(store)


class TestOpenPositions:
    """Open set management."""

    def test_add_open_position(self, ledger):
        ledger.add_open_position(owner(1), make_position(1))

        open_positions = ledger.get_open_positions(owner(1))
        assert [p.position_id for p in open_positions] == [pid(1)]
        assert ledger.owner_of(pid(1)) == owner(1)

    def test_duplicate_open_is_noop(self, ledger):
        ledger.add_open_position(owner(1), make_position(1))
        ledger.add_open_position(owner(1), make_position(1))

        assert len(ledger.get_open_positions(owner(1))) == 1

    def test_unknown_owner_has_no_positions(self, ledger):
        assert ledger.get_open_positions(owner(9)) == []

    def test_caller_position_is_not_modified(self, ledger):
        position = make_position(0xAB)
        position.position_id = "0X" + pid(0xAB)[2:].upper()

        ledger.add_open_position(owner(1), position)

        assert position.position_id == "0X" + pid(0xAB)[2:].upper()
        assert [p.position_id for p in ledger.get_open_positions(owner(1))] == [pid(0xAB)]

    def test_owners_are_isolated(self, ledger):
        ledger.add_open_position(owner(1), make_position(1))
        ledger.add_open_position(owner(2), make_position(2))

        assert [p.position_id for p in ledger.get_open_positions(owner(1))] == [pid(1)]
        assert [p.position_id for p in ledger.get_open_positions(owner(2))] == [pid(2)]

    def test_owner_key_accepts_hex(self, ledger):
        ledger.add_open_position("0x" + owner(3).hex(), make_position(3))

        assert len(ledger.get_open_positions(owner(3))) == 1

    def test_global_record_tagged_open(self, ledger):
        ledger.add_open_position(owner(1), make_position(1))

        record = ledger.get_position_by_id(pid(1))
        assert record is not None
        assert record.stage == PositionRecord.OPEN
        assert record.data.size == make_position(1).size


class TestMoveToHistorical:
    """Lifecycle transition open -> historical."""

    def test_open_then_closed(self, ledger):
        ledger.add_open_position(owner(1), make_position(1))

        moved = ledger.move_to_historical(pid(1), PositionStatus.CLOSED, "-42", "0xabc")

        assert moved is True
        assert ledger.get_open_positions(owner(1)) == []
        assert ledger.owner_of(pid(1)) is None
        page = ledger.get_historical_positions(owner(1))
        assert len(page.items) == 1
        item = page.items[0]
        assert item.position.position_id == pid(1)
        assert item.status is PositionStatus.CLOSED
        assert item.final_pnl == "-42"
        assert item.owner_address == "0xabc"

    def test_duplicate_close_is_noop(self, ledger):
        ledger.add_open_position(owner(1), make_position(1))
        ledger.move_to_historical(pid(1), PositionStatus.CLOSED, "10", "0xabc")

        moved = ledger.move_to_historical(pid(1), PositionStatus.CLOSED, "10", "0xabc")

        assert moved is False
        assert len(ledger.get_historical_positions(owner(1)).items) == 1

    def test_liquidated_after_closed_is_noop(self, ledger):
        ledger.add_open_position(owner(1), make_position(1))
        ledger.move_to_historical(pid(1), PositionStatus.CLOSED, "10", "0xabc")
        ledger.move_to_historical(pid(1), PositionStatus.LIQUIDATED, "Liquidated", "0xabc")

        history = ledger.get_historical_positions(owner(1)).items
        assert [h.status for h in history] == [PositionStatus.CLOSED]

    def test_close_unknown_id_is_noop(self, ledger):
        assert ledger.move_to_historical(pid(7), PositionStatus.CLOSED, "0", "0xabc") is False
        assert ledger.get_position_by_id(pid(7)) is None

    def test_history_is_most_recent_first(self, ledger):
        ledger.add_open_position(owner(1), make_position(1))
        ledger.add_open_position(owner(1), make_position(2))

        ledger.move_to_historical(pid(1), PositionStatus.CLOSED, "1", "0xabc")
        ledger.move_to_historical(pid(2), PositionStatus.LIQUIDATED, "Liquidated", "0xabc")

        history = ledger.get_historical_positions(owner(1)).items
        assert [h.position.position_id for h in history] == [pid(2), pid(1)]

    def test_other_open_positions_untouched(self, ledger):
        ledger.add_open_position(owner(1), make_position(1))
        ledger.add_open_position(owner(1), make_position(2))

        ledger.move_to_historical(pid(1), PositionStatus.CLOSED, "1", "0xabc")

        assert [p.position_id for p in ledger.get_open_positions(owner(1))] == [pid(2)]
        assert ledger.owner_of(pid(2)) == owner(1)

    def test_global_record_retagged_historical(self, ledger):
        ledger.add_open_position(owner(1), make_position(1))
        ledger.move_to_historical(pid(1), PositionStatus.LIQUIDATED, "Liquidated", "0xabc")

        record = ledger.get_position_by_id(pid(1))
        assert record.stage == PositionRecord.HISTORICAL
        assert record.data.status is PositionStatus.LIQUIDATED
        assert record.data.position.position_id == pid(1)


class TestHistoricalPagination:
    """Cursor pagination over history."""

    @pytest.fixture
    def five_closed(self, ledger):
        for n in range(1, 6):
            ledger.add_open_position(owner(1), make_position(n))
        for n in range(1, 6):
            ledger.move_to_historical(pid(n), PositionStatus.CLOSED, str(n), "0xabc")
        # most recent first: 5, 4, 3, 2, 1
        return ledger

    def test_first_page(self, five_closed):
        page = five_closed.get_historical_positions(owner(1), cursor=0, page_size=2)

        assert [h.position.position_id for h in page.items] == [pid(5), pid(4)]
        assert page.has_more is True
        assert page.next_cursor == "2"

    def test_default_cursor_is_zero(self, five_closed):
        page = five_closed.get_historical_positions(owner(1), page_size=2)
        assert page.next_cursor == "2"

    def test_last_partial_page(self, five_closed):
        page = five_closed.get_historical_positions(owner(1), cursor=4, page_size=2)

        assert [h.position.position_id for h in page.items] == [pid(1)]
        assert page.has_more is False
        assert page.next_cursor is None

    def test_exact_end_has_no_more(self, five_closed):
        page = five_closed.get_historical_positions(owner(1), cursor=3, page_size=2)

        assert len(page.items) == 2
        assert page.has_more is False
        assert page.next_cursor is None

    def test_cursor_at_length_is_empty(self, five_closed):
        page = five_closed.get_historical_positions(owner(1), cursor=5, page_size=2)

        assert page.items == []
        assert page.has_more is False
        assert page.next_cursor is None

    def test_cursor_past_length_is_empty(self, five_closed):
        page = five_closed.get_historical_positions(owner(1), cursor=50, page_size=2)
        assert page.items == []
        assert page.has_more is False

    def test_invalid_page_size(self, five_closed):
        with pytest.raises(ValueError):
            five_closed.get_historical_positions(owner(1), page_size=0)

    def test_page_serializes(self, five_closed):
        payload = five_closed.get_historical_positions(owner(1), cursor=0, page_size=1).to_dict()

        assert payload["has_more"] is True
        assert payload["next_cursor"] == "1"
        assert payload["items"][0]["position_id"] == pid(5)
        assert payload["items"][0]["status"] == "Closed"
