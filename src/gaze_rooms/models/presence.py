from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Seat(str, Enum):
    """
    The nine fixed layout slots of the 3x3 room grid, in assignment order.

    Values are the wire names other clients put in the `position` field.
    """
    CENTER = "center"
    MIDDLE_LEFT = "middleLeft"
    MIDDLE_RIGHT = "middleRight"
    TOP_CENTER = "topCenter"
    BOTTOM_CENTER = "bottomCenter"
    TOP_LEFT = "topLeft"
    TOP_RIGHT = "topRight"
    BOTTOM_LEFT = "bottomLeft"
    BOTTOM_RIGHT = "bottomRight"

    @property
    def grid_cell(self) -> tuple[int, int]:
        """(column, row) of this seat in the 3x3 grid, both 1-based."""
        return _GRID_CELLS[self]

    @property
    def alignment(self) -> Literal["start", "center", "end"]:
        """How a renderer should align the eyes inside the cell."""
        if self in (Seat.TOP_LEFT, Seat.TOP_RIGHT):
            return "end"
        if self in (Seat.BOTTOM_LEFT, Seat.BOTTOM_RIGHT):
            return "start"
        return "center"


_GRID_CELLS = {
    Seat.CENTER: (2, 2),
    Seat.MIDDLE_LEFT: (1, 2),
    Seat.MIDDLE_RIGHT: (3, 2),
    Seat.TOP_CENTER: (2, 1),
    Seat.BOTTOM_CENTER: (2, 3),
    Seat.TOP_LEFT: (1, 1),
    Seat.TOP_RIGHT: (3, 1),
    Seat.BOTTOM_LEFT: (1, 3),
    Seat.BOTTOM_RIGHT: (3, 3),
}


class PresenceRecord(BaseModel):
    """
    Read-only projection of one member's replicated presence payload.

    The participant id is the presence key, not part of the payload.
    """
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    participant_id: str
    joined_at: str = Field(alias="online_at", min_length=1)
    seat: Optional[Seat] = Field(None, alias="position")
    room: Optional[int] = None
    x: float = 0.0
    y: float = 0.0


@dataclass(slots=True, frozen=True)
class SeatedParticipant:
    """One entry of a reconciled room view."""
    participant_id: str
    joined_at: str
    seat: Seat
    room: Optional[int] = None


@dataclass(frozen=True)
class RoomView:
    """
    Ordered, seated membership of the current room.

    Rebuilt from scratch on every presence join/sync; never patched.
    """
    participants: tuple[SeatedParticipant, ...] = ()

    def __iter__(self) -> Iterator[SeatedParticipant]:
        return iter(self.participants)

    def __len__(self) -> int:
        return len(self.participants)

    def __contains__(self, participant_id: object) -> bool:
        return any(p.participant_id == participant_id for p in self.participants)

    def ids(self) -> list[str]:
        return [p.participant_id for p in self.participants]

    def seat_of(self, participant_id: str) -> Optional[Seat]:
        for p in self.participants:
            if p.participant_id == participant_id:
                return p.seat
        return None

    def without(self, participant_id: str) -> "RoomView":
        return RoomView(tuple(p for p in self.participants if p.participant_id != participant_id))
