from .broadcast import EYE_TRACKING_EVENT, GazeBroadcastPipeline
from .dispatcher import EventDispatcher

__all__ = ["EYE_TRACKING_EVENT", "EventDispatcher", "GazeBroadcastPipeline"]
