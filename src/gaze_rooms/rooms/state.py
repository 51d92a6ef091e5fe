from enum import Enum, auto


class RouterState(Enum):
    """
    Operational states of the room router.

    DISCOVERING -> JOINING(n) -> JOINED(n), with JOINING(n) -> JOINING(n+1)
    whenever room n turns out to be full.
    """
    IDLE = auto()  # Nothing attempted yet.
    DISCOVERING = auto()  # Waiting for the discovery channel to confirm the connection.
    JOINING = auto()  # Subscribed to a room, waiting for our own join event.
    JOINED = auto()  # Room accepted; presence events drive reconciliation.
    CONNECTION_FAILED = auto()  # The backend never confirmed a subscription.
    LEFT = auto()  # Torn down.
