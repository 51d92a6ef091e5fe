class GazeRoomsError(Exception):
    """Base class for all errors raised by gaze_rooms."""


class MalformedPresenceError(GazeRoomsError):
    """
    A presence record broke the producer contract (e.g. no `online_at`).

    Raised by the reconciler; the whole reconciliation pass is rejected.
    """

    def __init__(self, participant_id: str, reason: str):
        super().__init__(f"Malformed presence record for '{participant_id}': {reason}")
        self.participant_id = participant_id
        self.reason = reason


class RoomConnectionError(GazeRoomsError):
    """The realtime backend never confirmed a subscription."""


class ProviderUnavailableError(GazeRoomsError):
    """The gaze-tracking provider could not be started or has no camera."""


class ProviderBusyError(GazeRoomsError):
    """Another owner already holds the process-wide provider session."""
