import logging
from typing import Any, Callable, Mapping, Optional, Sequence

from pydantic import ValidationError

from ..errors import MalformedPresenceError
from ..models.presence import PresenceRecord, RoomView, SeatedParticipant
from .seats import SeatTable

logger = logging.getLogger(__name__)

RawMembership = Mapping[str, Sequence[Mapping[str, Any]]]
PruneListener = Callable[[frozenset[str]], None]


def parse_membership(raw_membership: RawMembership) -> list[PresenceRecord]:
    """
    Projects the backend's presence state onto PresenceRecords.

    The first meta of each key is the member's record. Raises
    MalformedPresenceError for the first record that breaks the contract.
    """
    records = []
    for participant_id, metas in raw_membership.items():
        if not metas:
            raise MalformedPresenceError(participant_id, "no presence metas")
        meta = metas[0]
        if not meta.get("online_at"):
            raise MalformedPresenceError(participant_id, "missing 'online_at' timestamp")
        try:
            records.append(PresenceRecord.model_validate({**meta, "participant_id": participant_id}))
        except ValidationError as e:
            raise MalformedPresenceError(participant_id, str(e)) from e
    return records


class PresenceReconciler:
    """
    Rebuilds the seated room view from raw membership on every join/sync.

    Members whose payload already carries a seat keep it verbatim and are
    placed first; the rest get a seat from the local SeatTable, assigned
    once per tenancy from the number of entries already placed (self not
    counted). Both groups are ordered by `online_at`, ties by map order.
    """

    def __init__(self, self_id: str, seats: Optional[SeatTable] = None):
        self._self_id = self_id
        self._seats = seats or SeatTable()
        self._prune_listeners: list[PruneListener] = []

    @property
    def seats(self) -> SeatTable:
        return self._seats

    def add_prune_listener(self, listener: PruneListener) -> None:
        """`listener` receives the present ids after every sync pass."""
        self._prune_listeners.append(listener)

    def reconcile(self, raw_membership: RawMembership, *, sync: bool = False) -> RoomView:
        """
        Args:
            raw_membership: Presence key -> list of metas, as read from the channel.
            sync: True for a full membership snapshot; prunes state of
                  participants no longer present.

        Raises:
            MalformedPresenceError: A record has no ordering timestamp. Nothing
                                    is updated for this pass.
        """
        records = parse_membership(raw_membership)

        # sorted() is stable, so equal timestamps keep insertion order.
        seated = sorted((r for r in records if r.seat is not None), key=lambda r: r.joined_at)
        unseated = sorted((r for r in records if r.seat is None), key=lambda r: r.joined_at)

        placed: list[SeatedParticipant] = [
            SeatedParticipant(r.participant_id, r.joined_at, r.seat, r.room) for r in seated
        ]

        for record in unseated:
            index = sum(1 for p in placed if p.participant_id != self._self_id)
            seat = self._seats.seat_for(record.participant_id, index)
            placed.append(SeatedParticipant(record.participant_id, record.joined_at, seat, record.room))

        if sync:
            present = frozenset(raw_membership)
            self._seats.retain(present)
            for listener in self._prune_listeners:
                listener(present)

        return RoomView(tuple(placed))
