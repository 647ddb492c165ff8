from typing import Optional, Union

from handrehab.utils.math_utils import clamp01
from handrehab.detectors.gesture_classifier import StableGesture


MIN_HOLD_SECS = 0.1


class GestureHoldJudge:
    """
    Decides when a card task is done: the confirmed gesture must match the
    target for `required_hold` seconds in total.

    Unknown frames pause the timer (brief tracking loss does not cost
    progress); any other confirmed gesture resets it.
    """

    def __init__(self, required_hold: float = 1.0, require_scan: bool = True):
        self.required_hold = max(MIN_HOLD_SECS, required_hold)
        self.require_scan = require_scan
        self.target = StableGesture.UNKNOWN
        self.armed = not require_scan
        self.hold_time = 0.0

    @property
    def progress(self) -> float:
        return clamp01(self.hold_time / self.required_hold)

    def arm(self, gesture: Union[str, StableGesture], hold_secs: Optional[float] = None) -> None:
        self.target = StableGesture.parse(gesture)
        if hold_secs is not None:
            self.required_hold = max(MIN_HOLD_SECS, float(hold_secs))
        self.hold_time = 0.0
        self.armed = True

    def disarm(self) -> None:
        self.armed = False
        self.hold_time = 0.0

    def update(self, confirmed: StableGesture, dt: float) -> bool:
        """Feed the confirmed gesture; True exactly once per completed hold."""
        if not self.armed or self.target == StableGesture.UNKNOWN:
            return False

        if confirmed == self.target:
            self.hold_time += dt
            if self.hold_time >= self.required_hold:
                self.hold_time = 0.0
                if self.require_scan:
                    self.armed = False
                return True
        elif confirmed != StableGesture.UNKNOWN:
            self.hold_time = 0.0
        return False
