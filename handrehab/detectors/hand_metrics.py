import numpy as np
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from handrehab.utils.math_utils import landmarks_to_array, euclidean, curl, unit


# MediaPipe Hand Landmark indices (for reference)
LANDMARK_NAMES = {
    'WRIST': 0,
    'THUMB_CMC': 1, 'THUMB_MCP': 2, 'THUMB_IP': 3, 'THUMB_TIP': 4,
    'INDEX_MCP': 5, 'INDEX_PIP': 6, 'INDEX_DIP': 7, 'INDEX_TIP': 8,
    'MIDDLE_MCP': 9, 'MIDDLE_PIP': 10, 'MIDDLE_DIP': 11, 'MIDDLE_TIP': 12,
    'RING_MCP': 13, 'RING_PIP': 14, 'RING_DIP': 15, 'RING_TIP': 16,
    'PINKY_MCP': 17, 'PINKY_PIP': 18, 'PINKY_DIP': 19, 'PINKY_TIP': 20,
}

NUM_LANDMARKS = 21
FINGERS = ('thumb', 'index', 'middle', 'ring', 'pinky')
LONG_FINGERS = FINGERS[1:]

# (tip, knuckle) used by the straight/curled ratio; the thumb measures against its MCP
FINGER_TIP_KNUCKLE = {
    'thumb': (LANDMARK_NAMES['THUMB_TIP'], LANDMARK_NAMES['THUMB_MCP']),
    'index': (LANDMARK_NAMES['INDEX_TIP'], LANDMARK_NAMES['INDEX_MCP']),
    'middle': (LANDMARK_NAMES['MIDDLE_TIP'], LANDMARK_NAMES['MIDDLE_MCP']),
    'ring': (LANDMARK_NAMES['RING_TIP'], LANDMARK_NAMES['RING_MCP']),
    'pinky': (LANDMARK_NAMES['PINKY_TIP'], LANDMARK_NAMES['PINKY_MCP']),
}

# (tip, pip, mcp) triples for curl of the four long fingers
FINGER_JOINTS = {
    'index': (8, 6, 5),
    'middle': (12, 10, 9),
    'ring': (16, 14, 13),
    'pinky': (20, 18, 17),
}

MIN_SCALE = 0.001


class FingerState(Enum):
    UNKNOWN = 'unknown'
    STRAIGHT = 'straight'
    CURLED = 'curled'


@dataclass
class FingerThresholds:
    """Ratio thresholds separating straight and curled fingers.

    Ratios are tip-to-wrist over knuckle-to-wrist. Values between the
    curled and straight thresholds are reported as UNKNOWN.
    """
    finger_straight: float = 1.6
    finger_curled: float = 1.3
    thumb_straight: float = 1.3
    thumb_curled: float = 1.1
    min_knuckle_distance: float = 0.01

    @classmethod
    def from_config(cls, cfg=None) -> 'FingerThresholds':
        defaults = cls()
        try:
            from handrehab.config.config_manager import config as global_config
            cfg = cfg or global_config
            return cls(
                finger_straight=float(cfg.get('finger_state', 'finger_straight', default=defaults.finger_straight)),
                finger_curled=float(cfg.get('finger_state', 'finger_curled', default=defaults.finger_curled)),
                thumb_straight=float(cfg.get('finger_state', 'thumb_straight', default=defaults.thumb_straight)),
                thumb_curled=float(cfg.get('finger_state', 'thumb_curled', default=defaults.thumb_curled)),
                min_knuckle_distance=float(cfg.get('finger_state', 'min_knuckle_distance',
                                                   default=defaults.min_knuckle_distance)),
            )
        except Exception as e:
            print(f"⚠ Failed to load finger thresholds from config: {e}")
            return defaults


@dataclass
class LandmarkFrame:
    """One detector tick worth of hand landmarks.

    points: (N, 3) array of image-normalized x, y and relative z.
    handedness: "Left", "Right" or None when the detector gives no label.
    """
    points: np.ndarray
    handedness: Optional[str] = None

    @classmethod
    def from_landmarks(cls, landmarks, handedness: Optional[str] = None) -> 'LandmarkFrame':
        if landmarks is None:
            return cls(np.zeros((0, 3), dtype=float), handedness)
        # MediaPipe legacy results wrap points in `.landmark`
        if hasattr(landmarks, 'landmark'):
            landmarks = landmarks.landmark
        return cls(landmarks_to_array(landmarks), handedness)

    @property
    def is_valid(self) -> bool:
        return self.points is not None and len(self.points) >= NUM_LANDMARKS

    @property
    def hand_points(self) -> Optional[np.ndarray]:
        """First 21 points, or None for an invalid frame."""
        if not self.is_valid:
            return None
        return np.asarray(self.points, dtype=float)[:NUM_LANDMARKS]


def as_points(source) -> Optional[np.ndarray]:
    """Accept a LandmarkFrame or raw point array; return (21, 3) or None."""
    if source is None:
        return None
    if isinstance(source, LandmarkFrame):
        return source.hand_points
    pts = np.asarray(source, dtype=float)
    if pts.ndim != 2 or pts.shape[0] < NUM_LANDMARKS:
        return None
    if pts.shape[1] == 2:
        pts = np.hstack([pts, np.zeros((pts.shape[0], 1))])
    return pts[:NUM_LANDMARKS, :3]


def normalize_landmarks(source) -> Optional[np.ndarray]:
    """Translate to the wrist and scale by wrist-to-middle-knuckle distance.

    Returns None for frames with fewer than 21 points.
    """
    pts = as_points(source)
    if pts is None:
        return None
    wrist = pts[LANDMARK_NAMES['WRIST']]
    scale = float(euclidean(wrist, pts[LANDMARK_NAMES['MIDDLE_MCP']]))
    if scale < MIN_SCALE:
        scale = 1.0
    return (pts - wrist) / scale


def finger_state(pts: np.ndarray, finger: str, thresholds: FingerThresholds) -> FingerState:
    tip_idx, knuckle_idx = FINGER_TIP_KNUCKLE[finger]
    wrist = pts[LANDMARK_NAMES['WRIST'], :2]
    d_knuckle = float(euclidean(pts[knuckle_idx, :2], wrist))
    if d_knuckle < thresholds.min_knuckle_distance:
        return FingerState.UNKNOWN

    ratio = float(euclidean(pts[tip_idx, :2], wrist)) / d_knuckle
    if finger == 'thumb':
        straight, curled = thresholds.thumb_straight, thresholds.thumb_curled
    else:
        straight, curled = thresholds.finger_straight, thresholds.finger_curled

    if ratio > straight:
        return FingerState.STRAIGHT
    if ratio < curled:
        return FingerState.CURLED
    return FingerState.UNKNOWN


def finger_states(source, thresholds: Optional[FingerThresholds] = None) -> Dict[str, FingerState]:
    """Per-finger straight/curled state for one frame."""
    thresholds = thresholds or FingerThresholds()
    pts = as_points(source)
    if pts is None:
        return {f: FingerState.UNKNOWN for f in FINGERS}
    return {f: finger_state(pts, f, thresholds) for f in FINGERS}


def hand_vectors(source, handedness: Optional[str] = 'Right') -> Tuple[np.ndarray, np.ndarray]:
    """Unit 2D hand axes (hand_up, hand_right).

    hand_up points from the wrist to the middle knuckle. hand_right runs
    across the knuckles and flips sign with handedness.
    """
    pts = as_points(source)
    if pts is None:
        return np.zeros(2), np.zeros(2)
    hand_up = unit(pts[9, :2] - pts[0, :2])
    if handedness == 'Right':
        hand_right = unit(pts[5, :2] - pts[9, :2])
    else:
        hand_right = unit(pts[9, :2] - pts[5, :2])
    return hand_up, hand_right


def direction(pts: np.ndarray, tip_idx: int, base_idx: int) -> np.ndarray:
    return unit(pts[tip_idx, :2] - pts[base_idx, :2])


def average_curl(source) -> float:
    """Mean curl of the four long fingers, 2D."""
    pts = as_points(source)
    if pts is None:
        return 0.0
    total = 0.0
    for tip, pip, mcp in FINGER_JOINTS.values():
        total += curl(pts[tip, :2], pts[pip, :2], pts[mcp, :2])
    return total / len(FINGER_JOINTS)


def tip_spread(source) -> float:
    """Mean fingertip-to-wrist distance of the four long fingers, 2D."""
    pts = as_points(source)
    if pts is None:
        return 0.0
    tips = [FINGER_JOINTS[f][0] for f in LONG_FINGERS]
    return float(np.mean(euclidean(pts[tips, :2], pts[0, :2])))


def thumb_index_distance(source) -> float:
    pts = as_points(source)
    if pts is None:
        return float('inf')
    return float(euclidean(pts[4, :2], pts[8, :2]))
