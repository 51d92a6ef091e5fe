from dataclasses import dataclass
from typing import Any, Mapping, Optional

import numpy as np


def _clamp_unit(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


@dataclass(slots=True, frozen=True)
class RawGazeFrame:
    """
    A single prediction from the gaze-tracking provider.

    Coordinates are screen-space pixels; either may be None when the
    provider could not produce a prediction for this frame.
    """
    x: Optional[float]
    y: Optional[float]
    timestamp: float = 0.0

    @property
    def is_valid(self) -> bool:
        return self.x is not None and self.y is not None


@dataclass(slots=True, frozen=True)
class EyePatches:
    """Left and right eye-region pixel patches at provider resolution."""
    left: np.ndarray
    right: np.ndarray


@dataclass(slots=True, frozen=True)
class GazeSample:
    """
    Ephemeral eye state of one participant, relayed by broadcast only.

    Gaze coordinates are normalised to the sender's viewport, in [0, 1].
    """
    participant_id: str
    is_blinking: bool
    gaze_x: float
    gaze_y: float

    @classmethod
    def from_screen(
        cls,
        participant_id: str,
        is_blinking: bool,
        x: float,
        y: float,
        width: float,
        height: float,
    ) -> "GazeSample":
        return cls(
            participant_id=participant_id,
            is_blinking=bool(is_blinking),
            gaze_x=_clamp_unit(x / width),
            gaze_y=_clamp_unit(y / height),
        )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "GazeSample":
        """Parses a peer broadcast. Raises KeyError/TypeError/ValueError if malformed."""
        participant_id = payload["userId"]
        if not isinstance(participant_id, str) or not participant_id:
            raise ValueError("userId must be a non-empty string")
        return cls(
            participant_id=participant_id,
            is_blinking=bool(payload["isBlinking"]),
            gaze_x=_clamp_unit(payload["gazeX"]),
            gaze_y=_clamp_unit(payload["gazeY"]),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "userId": self.participant_id,
            "isBlinking": self.is_blinking,
            "gazeX": self.gaze_x,
            "gazeY": self.gaze_y,
        }
