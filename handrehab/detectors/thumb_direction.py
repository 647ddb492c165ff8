import math
import numpy as np
from dataclasses import dataclass
from enum import Enum

from handrehab.utils.math_utils import angle_delta, curl
from handrehab.detectors.hand_metrics import LANDMARK_NAMES, as_points, average_curl


class ThumbDirection(Enum):
    UNKNOWN = 'unknown'
    UP = 'up'
    DOWN = 'down'
    SIDE = 'side'


@dataclass
class ThumbReading:
    """Classification plus the diagnostics that produced it."""
    direction: ThumbDirection
    angle_deg: float = 0.0
    magnitude: float = 0.0
    avg_curl: float = 0.0
    thumb_straightness: float = 0.0
    reason: str = ''


class ThumbDirectionClassifier:
    """
    Thumb up / down / sideways classifier used by the session state check.

    The vector from the thumb IP joint to the tip decides the direction.
    Up/Down need the vertical component to dominate and an angle near
    +/-90 degrees; Side needs the horizontal component to dominate and an
    angle near 0/180 within a tighter tolerance. Checking the dominant axis
    first keeps readings near 45 degrees from flip-flopping.
    """

    def __init__(
        self,
        invert_y: bool = True,
        thumb_straight_min: float = 0.10,
        min_vector_len: float = 0.03,
        angle_tolerance_deg: float = 25.0,
        need_other_fingers_curled: bool = False,
        four_fingers_curl_min: float = 0.16,
    ):
        self.invert_y = invert_y
        self.thumb_straight_min = thumb_straight_min
        self.min_vector_len = min_vector_len
        self.vertical_tolerance = float(np.clip(angle_tolerance_deg, 5.0, 60.0))
        self.horizontal_tolerance = self.vertical_tolerance * 0.6
        self.need_other_fingers_curled = need_other_fingers_curled
        self.four_fingers_curl_min = four_fingers_curl_min

    @classmethod
    def from_config(cls, cfg=None) -> 'ThumbDirectionClassifier':
        try:
            from handrehab.config.config_manager import config as global_config
            cfg = cfg or global_config
            return cls(
                invert_y=bool(cfg.get('state_check', 'invert_thumb_y', default=True)),
                thumb_straight_min=float(cfg.get('state_check', 'thumb_straight_min', default=0.10)),
                min_vector_len=float(cfg.get('state_check', 'min_vector_len', default=0.03)),
                angle_tolerance_deg=float(cfg.get('state_check', 'angle_tolerance_deg', default=25.0)),
                need_other_fingers_curled=bool(cfg.get('state_check', 'need_other_fingers_curled', default=False)),
                four_fingers_curl_min=float(cfg.get('state_check', 'four_fingers_curl_min', default=0.16)),
            )
        except Exception as e:
            print(f"⚠ Failed to load state check config: {e}")
            return cls()

    def classify(self, points) -> ThumbReading:
        pts = as_points(points)
        if pts is None:
            return ThumbReading(ThumbDirection.UNKNOWN, reason='no_hand')

        tip = pts[LANDMARK_NAMES['THUMB_TIP'], :2]
        ip = pts[LANDMARK_NAMES['THUMB_IP'], :2]
        mcp = pts[LANDMARK_NAMES['THUMB_MCP'], :2]

        avg = average_curl(pts)
        straightness = 1.0 - curl(tip, ip, mcp)
        reading = ThumbReading(ThumbDirection.UNKNOWN, avg_curl=avg, thumb_straightness=straightness)

        if self.need_other_fingers_curled and avg < self.four_fingers_curl_min:
            reading.reason = 'fingers_not_curled'
            return reading
        if straightness < self.thumb_straight_min:
            reading.reason = 'thumb_bent'
            return reading

        vx, vy = float(tip[0] - ip[0]), float(tip[1] - ip[1])
        if self.invert_y:
            vy = -vy
        reading.magnitude = math.hypot(vx, vy)
        if reading.magnitude < self.min_vector_len:
            reading.reason = 'vector_too_short'
            return reading

        angle = math.degrees(math.atan2(vy, vx))
        reading.angle_deg = angle
        ax, ay = abs(vx), abs(vy)

        if ay >= ax:
            if abs(angle_delta(angle, 90.0)) <= self.vertical_tolerance:
                reading.direction = ThumbDirection.UP
            elif abs(angle_delta(angle, -90.0)) <= self.vertical_tolerance:
                reading.direction = ThumbDirection.DOWN
        else:
            side_delta = min(abs(angle_delta(angle, 0.0)), abs(angle_delta(angle, 180.0)))
            if side_delta <= self.horizontal_tolerance:
                reading.direction = ThumbDirection.SIDE

        reading.reason = 'classified' if reading.direction != ThumbDirection.UNKNOWN else 'out_of_tolerance'
        return reading
