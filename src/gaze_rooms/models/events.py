from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional


class PresenceKind(str, Enum):
    JOIN = "join"
    LEAVE = "leave"
    SYNC = "sync"


@dataclass(slots=True, frozen=True)
class PresenceEvent:
    """
    A presence callback from a room channel, with the membership snapshot
    read at delivery time.
    """
    kind: PresenceKind
    room: int
    key: Optional[str] = None
    state: Mapping[str, list[dict[str, Any]]] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class BroadcastEvent:
    """An ephemeral broadcast received on a room channel."""
    room: int
    event: str
    payload: Mapping[str, Any] = field(default_factory=dict)
