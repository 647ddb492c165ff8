import numpy as np
from enum import Enum
from typing import Optional

from handrehab.utils.math_utils import euclidean
from handrehab.detectors.hand_metrics import as_points


FINGER_TIPS = (4, 8, 12, 16, 20)
TIP_TO_MCP = {4: 2, 8: 5, 12: 9, 16: 13, 20: 17}


class SelectedMode(Enum):
    CARD = 'card'
    RANDOM = 'random'


def count_fingers_up(points) -> int:
    """Raised fingers by image height (y grows downward)."""
    pts = as_points(points)
    if pts is None:
        return 0
    return sum(1 for tip, mcp in TIP_TO_MCP.items() if pts[tip, 1] < pts[mcp, 1])


def is_one_finger_isolated(points, isolation_distance: float = 0.08) -> bool:
    """A raised fingertip far (3D mean distance) from the other four tips."""
    pts = as_points(points)
    if pts is None:
        return False
    for tip in FINGER_TIPS:
        others = [t for t in FINGER_TIPS if t != tip]
        mean_dist = float(np.mean(euclidean(pts[others], pts[tip])))
        if mean_dist > isolation_distance and pts[tip, 1] < pts[TIP_TO_MCP[tip], 1]:
            return True
    return False


class ModeSelector:
    """
    Picks the training mode from a held hand pose.

    Five raised fingers select random mode, one isolated finger selects
    card mode. The pose must persist for `selection_time` seconds; a
    different pose restarts the timer and no pose clears it.
    """

    def __init__(self, selection_time: float = 2.0, isolation_distance: float = 0.08):
        self.selection_time = selection_time
        self.isolation_distance = isolation_distance
        self.candidate: Optional[SelectedMode] = None
        self.elapsed = 0.0
        self.selected: Optional[SelectedMode] = None

    @classmethod
    def from_config(cls, cfg=None) -> 'ModeSelector':
        try:
            from handrehab.config.config_manager import config as global_config
            cfg = cfg or global_config
            return cls(
                selection_time=float(cfg.get('mode_selection', 'selection_time', default=2.0)),
                isolation_distance=float(cfg.get('mode_selection', 'isolation_distance', default=0.08)),
            )
        except Exception as e:
            print(f"⚠ Failed to load mode selection config: {e}")
            return cls()

    def detect(self, frame) -> Optional[SelectedMode]:
        pts = as_points(frame)
        if pts is None:
            return None
        if count_fingers_up(pts) == 5:
            return SelectedMode.RANDOM
        if is_one_finger_isolated(pts, self.isolation_distance):
            return SelectedMode.CARD
        return None

    @property
    def progress(self) -> float:
        if self.candidate is None or self.selection_time <= 0:
            return 0.0
        return min(1.0, self.elapsed / self.selection_time)

    def update(self, frame, dt: float) -> Optional[SelectedMode]:
        if self.selected is not None:
            return self.selected

        detected = self.detect(frame)
        if detected is None:
            self.candidate = None
            self.elapsed = 0.0
            return None

        if detected != self.candidate:
            self.candidate = detected
            self.elapsed = 0.0
        else:
            self.elapsed += dt

        if self.elapsed >= self.selection_time:
            self.selected = detected
            print(f"✓ Mode selected: {detected.value}")
        return self.selected
