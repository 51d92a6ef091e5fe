from .router import JoinedRoom, RoomRouter
from .state import RouterState

__all__ = ["JoinedRoom", "RoomRouter", "RouterState"]
