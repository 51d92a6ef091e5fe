from .reconciler import PresenceReconciler, parse_membership
from .seats import SEAT_ORDER, SeatAssigner, SeatTable

__all__ = ["PresenceReconciler", "SEAT_ORDER", "SeatAssigner", "SeatTable", "parse_membership"]
