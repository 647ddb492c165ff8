"""
Rule-based gesture scoring.

Each gesture class owns a fixed point allocation over finger states and
hand-relative directions. Scores are additive, truncated to int and
bounded to 0..100. Gesture names may carry a leading difficulty digit
("2peace"), which is stripped before lookup.
"""

import re
import numpy as np
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Set

from handrehab.utils.math_utils import euclidean
from handrehab.detectors.hand_metrics import (
    FingerState, FingerThresholds, LandmarkFrame, as_points, direction,
    finger_states, hand_vectors,
)


STRAIGHT = FingerState.STRAIGHT
CURLED = FingerState.CURLED


class GestureClass(Enum):
    FIST = 'fist'
    LIKE = 'like'
    DISLIKE = 'dislike'
    ONE = 'one'
    POINT = 'point'
    PEACE = 'peace'
    PALM = 'palm'
    THREE = 'three'
    FOUR = 'four'
    OK = 'ok'
    CALL = 'call'
    ROCK = 'rock'
    FINGERS_CROSSED = 'fingers_crossed'
    # Arbitrary recorded gesture without a heuristic; scored by template only
    TEMPLATE = 'template'

    @classmethod
    def from_name(cls, name: str) -> 'GestureClass':
        key = canonical_name(name)
        if key in _ALIASES:
            return _ALIASES[key]
        try:
            member = cls(key)
        except ValueError:
            return cls.TEMPLATE
        return member


_ALIASES = {
    'grabbing': GestureClass.FIST,
    'two_up': GestureClass.PEACE,
    'stop': GestureClass.PALM,
    'open': GestureClass.PALM,
}

_PREFIX_RE = re.compile(r'^\d+')


def strip_difficulty_prefix(name: str) -> str:
    """'3rock' -> 'rock'."""
    return _PREFIX_RE.sub('', name or '')


def canonical_name(name: str) -> str:
    key = strip_difficulty_prefix(name).strip().lower()
    return re.sub(r'[\s\-]+', '_', key)


@dataclass
class RuleContext:
    """Everything a rule needs about one frame."""
    points: np.ndarray
    states: Dict[str, FingerState]
    hand_up: np.ndarray
    hand_right: np.ndarray
    handedness: Optional[str]
    ok_distance: float
    direction_dot: float
    crossed_dot: float

    def count(self, state: FingerState, *fingers: str) -> int:
        return sum(1 for f in fingers if self.states[f] == state)


def _score_fist(ctx: RuleContext) -> float:
    return 25 * ctx.count(CURLED, 'index', 'middle', 'ring', 'pinky')


def _thumb_vertical(ctx: RuleContext, want_up: bool) -> float:
    score = 12.5 * ctx.count(CURLED, 'index', 'middle', 'ring', 'pinky')
    if ctx.states['thumb'] == STRAIGHT:
        score += 25
    dot = float(np.dot(direction(ctx.points, 4, 2), ctx.hand_up))
    if (want_up and dot > ctx.direction_dot) or (not want_up and dot < -ctx.direction_dot):
        score += 25
    return score


def _score_like(ctx: RuleContext) -> float:
    return _thumb_vertical(ctx, want_up=True)


def _score_dislike(ctx: RuleContext) -> float:
    return _thumb_vertical(ctx, want_up=False)


def _index_only(ctx: RuleContext) -> float:
    score = 40 if ctx.states['index'] == STRAIGHT else 0
    return score + 15 * ctx.count(CURLED, 'middle', 'ring', 'pinky')


def _score_one(ctx: RuleContext) -> float:
    score = _index_only(ctx)
    if float(np.dot(direction(ctx.points, 8, 5), ctx.hand_up)) > ctx.direction_dot:
        score += 15
    return score


def _score_point(ctx: RuleContext) -> float:
    score = _index_only(ctx)
    if abs(float(np.dot(direction(ctx.points, 8, 5), ctx.hand_right))) > ctx.direction_dot:
        score += 15
    return score


def _score_peace(ctx: RuleContext) -> float:
    return 35 * ctx.count(STRAIGHT, 'index', 'middle') + 15 * ctx.count(CURLED, 'ring', 'pinky')


def _score_palm(ctx: RuleContext) -> float:
    return 20 * ctx.count(STRAIGHT, 'thumb', 'index', 'middle', 'ring', 'pinky')


def _score_three(ctx: RuleContext) -> float:
    return 30 * ctx.count(STRAIGHT, 'index', 'middle', 'ring') + 10 * ctx.count(CURLED, 'pinky')


def _score_four(ctx: RuleContext) -> float:
    return 20 * ctx.count(CURLED, 'thumb') + 20 * ctx.count(STRAIGHT, 'index', 'middle', 'ring', 'pinky')


def _score_ok(ctx: RuleContext) -> float:
    score = 20 * ctx.count(STRAIGHT, 'middle', 'ring', 'pinky')
    if float(euclidean(ctx.points[4, :2], ctx.points[8, :2])) < ctx.ok_distance:
        score += 40
    return score


def _score_call(ctx: RuleContext) -> float:
    return 30 * ctx.count(STRAIGHT, 'thumb', 'pinky') + 13.3 * ctx.count(CURLED, 'index', 'middle', 'ring')


def _score_rock(ctx: RuleContext) -> float:
    return 35 * ctx.count(STRAIGHT, 'index', 'pinky') + 15 * ctx.count(CURLED, 'middle', 'ring')


def _score_fingers_crossed(ctx: RuleContext) -> float:
    score = 15 * ctx.count(CURLED, 'ring', 'pinky') + 15 * ctx.count(STRAIGHT, 'index', 'middle')
    index_dot = float(np.dot(direction(ctx.points, 8, 5), ctx.hand_right))
    middle_dot = float(np.dot(direction(ctx.points, 12, 9), ctx.hand_right))
    if ctx.handedness == 'Right':
        crossed = index_dot > ctx.crossed_dot and middle_dot < -ctx.crossed_dot
    else:
        crossed = index_dot < -ctx.crossed_dot and middle_dot > ctx.crossed_dot
    if crossed:
        score += 40
    return score


RULES: Dict[GestureClass, Callable[[RuleContext], float]] = {
    GestureClass.FIST: _score_fist,
    GestureClass.LIKE: _score_like,
    GestureClass.DISLIKE: _score_dislike,
    GestureClass.ONE: _score_one,
    GestureClass.POINT: _score_point,
    GestureClass.PEACE: _score_peace,
    GestureClass.PALM: _score_palm,
    GestureClass.THREE: _score_three,
    GestureClass.FOUR: _score_four,
    GestureClass.OK: _score_ok,
    GestureClass.CALL: _score_call,
    GestureClass.ROCK: _score_rock,
    GestureClass.FINGERS_CROSSED: _score_fingers_crossed,
}


class RuleScorer:
    """
    Scores a landmark frame against a named gesture rule.

    Names without a rule resolve to GestureClass.TEMPLATE and receive
    `unknown_gesture_score`. Each such name is reported once so that
    configuration typos show up in the console.
    """

    def __init__(
        self,
        thresholds: Optional[FingerThresholds] = None,
        ok_distance: float = 0.08,
        direction_dot: float = 0.6,
        crossed_dot: float = 0.1,
        unknown_gesture_score: int = 50,
    ):
        self.thresholds = thresholds or FingerThresholds()
        self.ok_distance = ok_distance
        self.direction_dot = direction_dot
        self.crossed_dot = crossed_dot
        self.unknown_gesture_score = int(unknown_gesture_score)
        self._warned: Set[str] = set()

    @classmethod
    def from_config(cls, cfg=None) -> 'RuleScorer':
        try:
            from handrehab.config.config_manager import config as global_config
            cfg = cfg or global_config
            return cls(
                thresholds=FingerThresholds.from_config(cfg),
                ok_distance=float(cfg.get('rule_scoring', 'ok_distance', default=0.08)),
                direction_dot=float(cfg.get('rule_scoring', 'direction_dot', default=0.6)),
                crossed_dot=float(cfg.get('rule_scoring', 'crossed_dot', default=0.1)),
                unknown_gesture_score=int(cfg.get('rule_scoring', 'unknown_gesture_score', default=50)),
            )
        except Exception as e:
            print(f"⚠ Failed to load rule scoring config: {e}")
            return cls()

    def context(self, frame, handedness: Optional[str] = None) -> Optional[RuleContext]:
        pts = as_points(frame)
        if pts is None:
            return None
        if handedness is None and isinstance(frame, LandmarkFrame):
            handedness = frame.handedness
        hand_up, hand_right = hand_vectors(pts, handedness)
        return RuleContext(
            points=pts,
            states=finger_states(pts, self.thresholds),
            hand_up=hand_up,
            hand_right=hand_right,
            handedness=handedness,
            ok_distance=self.ok_distance,
            direction_dot=self.direction_dot,
            crossed_dot=self.crossed_dot,
        )

    def score_class(self, gesture_class: GestureClass, frame, handedness: Optional[str] = None) -> int:
        ctx = self.context(frame, handedness)
        if ctx is None:
            return 0
        rule = RULES.get(gesture_class)
        if rule is None:
            return self.unknown_gesture_score
        return int(max(0, min(100, int(rule(ctx)))))

    def score(self, gesture_name: str, frame, handedness: Optional[str] = None) -> int:
        """Score `frame` against the rule for `gesture_name` (0..100)."""
        gesture_class = GestureClass.from_name(gesture_name)
        if gesture_class is GestureClass.TEMPLATE and gesture_name not in self._warned:
            self._warned.add(gesture_name)
            print(f"⚠ No rule for gesture '{gesture_name}', "
                  f"using fallback score {self.unknown_gesture_score}")
        return self.score_class(gesture_class, frame, handedness)
