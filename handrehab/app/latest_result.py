import threading
from typing import Optional, Tuple

from handrehab.detectors.hand_metrics import LandmarkFrame


class LatestResultSlot:
    """
    Single-slot handoff between the detector thread and the main tick.

    The detector publishes every result (None meaning "no hand"); a newer
    result overwrites an unread one. The main loop drains at most one
    result per tick, so it always works on the freshest frame and never on
    a backlog.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._frame: Optional[LandmarkFrame] = None
        self._available = False
        self.dropped = 0

    def publish(self, frame: Optional[LandmarkFrame]) -> None:
        with self._lock:
            if self._available:
                self.dropped += 1
            self._frame = frame
            self._available = True

    def take(self) -> Tuple[bool, Optional[LandmarkFrame]]:
        """Return (available, frame) and clear the slot."""
        with self._lock:
            if not self._available:
                return False, None
            frame = self._frame
            self._frame = None
            self._available = False
            return True, frame
