import pytest

from gaze_rooms.models.presence import Seat
from gaze_rooms.presence.seats import SEAT_ORDER, SeatAssigner, SeatTable


def test_seat_order():
    assert [s.value for s in SEAT_ORDER] == [
        "center",
        "middleLeft",
        "middleRight",
        "topCenter",
        "bottomCenter",
        "topLeft",
        "topRight",
        "bottomLeft",
        "bottomRight",
    ]


@pytest.mark.parametrize("index", range(9))
def test_assign_by_index(index):
    assert SeatAssigner().assign("p", index) is SEAT_ORDER[index]


@pytest.mark.parametrize("index", [9, 10, 42])
def test_index_past_last_seat_clamps_to_center(index, caplog):
    assert SeatAssigner().assign("p", index) is Seat.CENTER
    assert "No free seat" in caplog.text


def test_negative_index_rejected():
    with pytest.raises(ValueError):
        SeatAssigner().assign("p", -1)


def test_assignment_depends_only_on_index():
    assigner = SeatAssigner()
    assert assigner.assign("x", 1) is Seat.MIDDLE_LEFT
    assert assigner.assign("y", 1) is Seat.MIDDLE_LEFT
    assert assigner.assign("z", 8) is Seat.BOTTOM_RIGHT


def test_grid_cells_and_alignment():
    assert Seat.CENTER.grid_cell == (2, 2)
    assert Seat.TOP_LEFT.grid_cell == (1, 1)
    assert Seat.BOTTOM_RIGHT.grid_cell == (3, 3)
    assert Seat.TOP_RIGHT.alignment == "end"
    assert Seat.BOTTOM_LEFT.alignment == "start"
    assert Seat.MIDDLE_LEFT.alignment == "center"


class TestSeatTable:

    def test_seat_cached_per_tenancy(self):
        table = SeatTable()
        assert table.seat_for("b", 0) is Seat.CENTER
        # A later, different index does not move the participant.
        assert table.seat_for("b", 4) is Seat.CENTER
        assert table.get("b") is Seat.CENTER
        assert "b" in table
        assert len(table) == 1

    def test_retain_returns_departed(self):
        table = SeatTable()
        table.seat_for("b", 0)
        table.seat_for("c", 1)
        table.seat_for("d", 2)

        departed = table.retain({"c"})

        assert departed == {"b", "d"}
        assert list(table) == ["c"]
        assert table.get("b") is None

    def test_clear(self):
        table = SeatTable()
        table.seat_for("b", 0)
        table.clear()
        assert len(table) == 0
