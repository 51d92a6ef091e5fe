from .session import RoomSession

__all__ = ["RoomSession"]
