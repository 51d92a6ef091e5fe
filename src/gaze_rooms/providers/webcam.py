import asyncio
import logging
import time
from typing import Optional

import cv2
import numpy as np

from ..errors import ProviderUnavailableError
from ..models.gaze import EyePatches, RawGazeFrame
from ..utils.logging import ThrottledLogger
from .base import GazeProvider

logger = logging.getLogger(__name__)


class WebcamGazeProvider(GazeProvider):
    """
    A GazeProvider built on an OpenCV webcam capture and Haar cascades.

    Each frame: detect the largest face, then the two eyes in its upper
    half. The darkest point of each eye patch approximates the pupil; the
    mean pupil offset is the gaze feature. Until calibrated the feature is
    mapped linearly onto the viewport (mirrored); after three or more
    calibration samples an affine least-squares fit is used instead.
    """

    _FACE_CASCADE = "haarcascade_frontalface_default.xml"
    _EYE_CASCADE = "haarcascade_eye.xml"

    def __init__(
        self,
        *args,
        width: int = 1920,
        height: int = 1080,
        camera_index: int = 0,
        frequency: int = 30,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        if frequency <= 0:
            raise ValueError("Frequency must be positive.")

        self._width = width
        self._height = height
        self._camera_index = camera_index
        self._interval_s = 1.0 / frequency

        self._capture: Optional[cv2.VideoCapture] = None
        self._face_cascade = cv2.CascadeClassifier(cv2.data.haarcascades + self._FACE_CASCADE)
        self._eye_cascade = cv2.CascadeClassifier(cv2.data.haarcascades + self._EYE_CASCADE)

        self._patches: Optional[EyePatches] = None
        self._feature: Optional[np.ndarray] = None
        self._calibration: list[tuple[np.ndarray, tuple[float, float]]] = []
        self._model: Optional[np.ndarray] = None
        self._miss_logger = ThrottledLogger(logger, interval_sec=5)

    @property
    def is_calibrated(self) -> bool:
        return self._model is not None

    async def eye_patches(self) -> Optional[EyePatches]:
        return self._patches

    async def record_calibration(self, x: float, y: float, label: str = "click") -> None:
        if self._feature is None:
            logger.warning(f"No eye feature available for calibration point ({x:.0f}, {y:.0f}), skipping.")
            return

        self._calibration.append((self._feature.copy(), (x, y)))
        if len(self._calibration) >= 3:
            self._model = self._fit(self._calibration)
        logger.info(f"Recorded calibration '{label}' at ({x:.0f}, {y:.0f}); {len(self._calibration)} samples.")

    @staticmethod
    def _fit(samples: list[tuple[np.ndarray, tuple[float, float]]]) -> np.ndarray:
        features = np.array([np.append(f, 1.0) for f, _ in samples])
        targets = np.array([t for _, t in samples])
        model, *_ = np.linalg.lstsq(features, targets, rcond=None)
        return model

    def _open(self) -> None:
        self._capture = cv2.VideoCapture(self._camera_index)
        if not self._capture.isOpened():
            self._capture.release()
            self._capture = None
            raise ProviderUnavailableError(f"Camera {self._camera_index} could not be opened.")

    def _close(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None

    def _process(self) -> Optional[RawGazeFrame]:
        """Blocking: grabs one frame and updates patches and gaze feature."""
        ok, frame = self._capture.read()
        if not ok:
            return None

        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        faces = self._face_cascade.detectMultiScale(gray, scaleFactor=1.2, minNeighbors=5)
        if len(faces) == 0:
            self._patches = None
            return RawGazeFrame(None, None, time.monotonic())

        fx, fy, fw, fh = max(faces, key=lambda f: f[2] * f[3])
        upper = gray[fy:fy + fh // 2, fx:fx + fw]
        eyes = self._eye_cascade.detectMultiScale(upper, scaleFactor=1.1, minNeighbors=5)
        if len(eyes) < 2:
            self._patches = None
            return RawGazeFrame(None, None, time.monotonic())

        # Two largest detections, ordered left to right in the image.
        eyes = sorted(sorted(eyes, key=lambda e: e[2] * e[3], reverse=True)[:2], key=lambda e: e[0])
        patches, offsets = [], []
        for ex, ey, ew, eh in eyes:
            x0, y0 = fx + ex, fy + ey
            patches.append(frame[y0:y0 + eh, x0:x0 + ew].copy())
            eye_gray = cv2.GaussianBlur(gray[y0:y0 + eh, x0:x0 + ew], (5, 5), 0)
            _, _, min_loc, _ = cv2.minMaxLoc(eye_gray)
            offsets.append((min_loc[0] / ew, min_loc[1] / eh))

        self._patches = EyePatches(left=patches[0], right=patches[1])
        self._feature = np.mean(np.array(offsets), axis=0)
        x, y = self._predict(self._feature)
        return RawGazeFrame(x, y, time.monotonic())

    def _predict(self, feature: np.ndarray) -> tuple[float, float]:
        if self._model is not None:
            x, y = np.append(feature, 1.0) @ self._model
            return float(x), float(y)
        # Mirror horizontally: the camera faces the user.
        return float((1.0 - feature[0]) * self._width), float(feature[1] * self._height)

    async def run(self) -> None:
        """
        Opens the camera and queues one frame per capture until the stop
        event is set. The camera is released on every exit path.
        """
        try:
            await asyncio.to_thread(self._open)
            logger.info(f"Webcam {self._camera_index} opened.")

            while not self._stop_event.is_set():
                started = time.monotonic()
                frame = await asyncio.to_thread(self._process)
                if frame is None or not frame.is_valid:
                    self._miss_logger.warning("No face/eyes detected in webcam frame.")
                if frame is not None:
                    try:
                        self._output_queue.put_nowait(frame)
                    except asyncio.QueueFull:
                        logger.debug("Frame queue full, dropping webcam frame.")

                remaining = self._interval_s - (time.monotonic() - started)
                if remaining > 0:
                    try:
                        await asyncio.wait_for(self._stop_event.wait(), timeout=remaining)
                    except asyncio.TimeoutError:
                        pass

        except ProviderUnavailableError:
            logger.exception("Webcam provider could not start.")
        except asyncio.CancelledError:
            logger.info("Webcam provider run task was cancelled.")
        finally:
            await asyncio.to_thread(self._close)
            self._patches = None
            self._put_end()
            logger.info("WebcamGazeProvider has stopped.")
