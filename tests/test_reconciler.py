import pytest

from gaze_rooms.errors import MalformedPresenceError
from gaze_rooms.models.presence import Seat
from gaze_rooms.presence.reconciler import PresenceReconciler, parse_membership

from .conftest import presence_meta as meta


def test_three_participants_in_join_order():
    reconciler = PresenceReconciler("a")
    view = reconciler.reconcile({"a": meta(0), "b": meta(1), "c": meta(2)})

    assert view.ids() == ["a", "b", "c"]
    assert view.seat_of("b") is Seat.CENTER
    assert view.seat_of("c") is Seat.MIDDLE_LEFT
    assert view.without("a").ids() == ["b", "c"]


def test_order_follows_timestamp_not_map_order():
    view = PresenceReconciler("a").reconcile({"c": meta(5), "a": meta(0), "b": meta(3)})
    assert view.ids() == ["a", "b", "c"]
    assert view.seat_of("b") is Seat.CENTER
    assert view.seat_of("c") is Seat.MIDDLE_LEFT


def test_equal_timestamps_keep_map_order():
    view = PresenceReconciler("a").reconcile({"a": meta(0), "y": meta(1), "x": meta(1)})
    assert view.ids() == ["a", "y", "x"]


def test_reconcile_is_idempotent():
    reconciler = PresenceReconciler("a")
    raw = {"a": meta(0), "b": meta(1), "c": meta(2), "d": meta(3)}
    assert reconciler.reconcile(raw) == reconciler.reconcile(raw)


def test_seats_stable_while_others_leave_and_join():
    reconciler = PresenceReconciler("a")
    before = reconciler.reconcile({"a": meta(0), "b": meta(1), "c": meta(2), "d": meta(3)}, sync=True)

    after_leave = reconciler.reconcile({"a": meta(0), "c": meta(2), "d": meta(3)}, sync=True)
    after_join = reconciler.reconcile({"a": meta(0), "c": meta(2), "d": meta(3), "e": meta(4)}, sync=True)

    for pid in ("c", "d"):
        assert after_leave.seat_of(pid) is before.seat_of(pid)
        assert after_join.seat_of(pid) is before.seat_of(pid)
    # e is the third non-self entry placed.
    assert after_join.seat_of("e") is Seat.MIDDLE_RIGHT


def test_rejoin_gets_seat_from_current_index_not_old_one():
    reconciler = PresenceReconciler("a")
    reconciler.reconcile({"a": meta(0), "b": meta(1), "c": meta(2)}, sync=True)
    reconciler.reconcile({"a": meta(0), "c": meta(2)}, sync=True)
    assert "b" not in reconciler.seats

    view = reconciler.reconcile({"a": meta(0), "c": meta(2), "b": meta(9)}, sync=True)

    assert view.seat_of("c") is Seat.MIDDLE_LEFT
    # One non-self entry is placed before b, so b takes index 1.
    assert view.seat_of("b") is Seat.MIDDLE_LEFT


def test_payload_seat_kept_and_placed_first():
    raw = {
        "a": meta(0),
        "b": meta(1),
        "z": meta(7, position="topLeft"),
    }
    view = PresenceReconciler("a").reconcile(raw)

    assert view.ids() == ["z", "a", "b"]
    assert view.seat_of("z") is Seat.TOP_LEFT
    # The seated member counts as placed.
    assert view.seat_of("b") is Seat.MIDDLE_LEFT


def test_self_is_not_counted():
    view = PresenceReconciler("c").reconcile({"a": meta(0), "b": meta(1), "c": meta(2)})
    assert view.seat_of("a") is Seat.CENTER
    assert view.seat_of("b") is Seat.MIDDLE_LEFT
    assert view.seat_of("c") is Seat.MIDDLE_RIGHT


def test_more_than_nine_others_clamp_to_center():
    raw = {"self": meta(0)}
    raw.update({f"p{i}": meta(i + 1) for i in range(10)})
    view = PresenceReconciler("self").reconcile(raw)
    assert view.seat_of("p9") is Seat.CENTER


def test_malformed_record_rejects_whole_pass():
    reconciler = PresenceReconciler("a")
    reconciler.reconcile({"a": meta(0), "b": meta(1)})
    seats_before = dict((pid, reconciler.seats.get(pid)) for pid in reconciler.seats)

    with pytest.raises(MalformedPresenceError) as exc_info:
        reconciler.reconcile({"a": meta(0), "b": meta(1), "c": meta(2), "bad": [{"room": 1}]})

    assert exc_info.value.participant_id == "bad"
    assert dict((pid, reconciler.seats.get(pid)) for pid in reconciler.seats) == seats_before
    assert "c" not in reconciler.seats


@pytest.mark.parametrize(
    "metas",
    [
        [],
        [{"online_at": ""}],
        [{"online_at": "2026-01-01T00:00:00+00:00", "position": "nowhere"}],
    ],
)
def test_parse_membership_rejects(metas):
    with pytest.raises(MalformedPresenceError):
        parse_membership({"x": metas})


def test_parse_membership_uses_first_meta():
    records = parse_membership({"x": meta(1, room=3) + meta(2, room=4)})
    assert records[0].joined_at.endswith("00:00:01+00:00")
    assert records[0].room == 3


def test_sync_prunes_and_notifies():
    reconciler = PresenceReconciler("a")
    pruned = []
    reconciler.add_prune_listener(pruned.append)

    reconciler.reconcile({"a": meta(0), "b": meta(1), "c": meta(2)})
    assert pruned == []

    reconciler.reconcile({"a": meta(0), "c": meta(2)}, sync=True)
    assert pruned == [frozenset({"a", "c"})]
    assert "b" not in reconciler.seats
