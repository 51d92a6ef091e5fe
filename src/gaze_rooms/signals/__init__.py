from .blink import BrightnessBlinkDetector, patch_brightness
from .throttle import Throttled, limit

__all__ = ["BrightnessBlinkDetector", "Throttled", "limit", "patch_brightness"]
