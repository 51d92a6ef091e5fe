from .zmq import ViewFeed, view_message

__all__ = ["ViewFeed", "view_message"]
