import logging
from typing import Iterable, Iterator, Optional

from ..models.presence import Seat

logger = logging.getLogger(__name__)

SEAT_ORDER: tuple[Seat, ...] = tuple(Seat)


class SeatAssigner:
    """
    Maps a 0-based join position onto the fixed nine-seat order.

    Pure function of the index; past the last seat the result clamps to
    center.
    """

    def assign(self, participant_id: str, position_index: int) -> Seat:
        if position_index < 0:
            raise ValueError(f"position_index must be >= 0, got {position_index}")
        if position_index >= len(SEAT_ORDER):
            # No tenth seat exists; room capacity keeps this from binding.
            logger.warning(
                f"No free seat for '{participant_id}' at index {position_index}, "
                f"falling back to {Seat.CENTER.value}."
            )
            return Seat.CENTER
        return SEAT_ORDER[position_index]


class SeatTable:
    """
    Local participant id -> seat cache of one room session.

    Not replicated. Entries live until `retain` is called with a membership
    that no longer contains the participant.
    """

    def __init__(self, assigner: Optional[SeatAssigner] = None):
        self._assigner = assigner or SeatAssigner()
        self._seats: dict[str, Seat] = {}

    def __contains__(self, participant_id: object) -> bool:
        return participant_id in self._seats

    def __len__(self) -> int:
        return len(self._seats)

    def __iter__(self) -> Iterator[str]:
        return iter(self._seats)

    def get(self, participant_id: str) -> Optional[Seat]:
        return self._seats.get(participant_id)

    def seat_for(self, participant_id: str, position_index: int) -> Seat:
        """Returns the cached seat, assigning from `position_index` only on a miss."""
        seat = self._seats.get(participant_id)
        if seat is None:
            seat = self._assigner.assign(participant_id, position_index)
            self._seats[participant_id] = seat
            logger.debug(f"Assigned seat {seat.value} to '{participant_id}'.")
        return seat

    def retain(self, present_ids: Iterable[str]) -> set[str]:
        """Drops every entry not in `present_ids`. Returns the dropped ids."""
        present = set(present_ids)
        departed = {pid for pid in self._seats if pid not in present}
        for pid in departed:
            del self._seats[pid]
        if departed:
            logger.debug(f"Released seats of departed participants: {sorted(departed)}")
        return departed

    def clear(self) -> None:
        self._seats.clear()
