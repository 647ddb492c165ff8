import numpy as np
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union

from handrehab.utils.math_utils import EWMA
from handrehab.detectors.hand_metrics import as_points, average_curl, thumb_index_distance, tip_spread
from handrehab.session.events import GESTURE_CONFIRMED, emit


# Extra curl limits shared by every preset
OK_MAX_AVG_CURL = 0.12
OPEN_MAX_AVG_CURL = 0.15


class StableGesture(Enum):
    UNKNOWN = 'unknown'
    OK = 'ok'
    FIST = 'fist'
    OPEN = 'open'

    @classmethod
    def parse(cls, value: Union[str, 'StableGesture', None]) -> 'StableGesture':
        if isinstance(value, cls):
            return value
        try:
            return cls((value or '').strip().lower())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class GesturePreset:
    ok_tip_dist: float
    fist_avg_curl: float
    open_avg_spread: float


PRESETS: Dict[str, GesturePreset] = {
    'easy': GesturePreset(0.10, 0.16, 0.20),
    'medium': GesturePreset(0.08, 0.18, 0.22),
    'hard': GesturePreset(0.06, 0.20, 0.24),
}


def classify_points(points, preset: GesturePreset) -> StableGesture:
    """Instantaneous classification; OK wins over Fist, Fist over Open."""
    pts = as_points(points)
    if pts is None:
        return StableGesture.UNKNOWN
    avg = average_curl(pts)
    if thumb_index_distance(pts) < preset.ok_tip_dist and avg < OK_MAX_AVG_CURL:
        return StableGesture.OK
    if avg > preset.fist_avg_curl:
        return StableGesture.FIST
    if tip_spread(pts) > preset.open_avg_spread and avg < OPEN_MAX_AVG_CURL:
        return StableGesture.OPEN
    return StableGesture.UNKNOWN


@dataclass
class StableGestureState:
    raw_gesture: StableGesture = StableGesture.UNKNOWN
    last_frame_gesture: StableGesture = StableGesture.UNKNOWN
    stable_frame_count: int = 0
    current_gesture: StableGesture = StableGesture.UNKNOWN


class StableGestureClassifier:
    """
    Confirms OK / Fist / Open only after N identical frames.

    Raw points are smoothed with an EWMA, classified, optionally gated to a
    single target gesture, and then passed through a consecutive-frame
    counter. A dropped hand cancels any in-progress confirmation.
    """

    def __init__(
        self,
        preset: Union[str, GesturePreset] = 'medium',
        required_stable_frames: int = 5,
        smooth_factor: float = 0.3,
        enable_gate: bool = True,
        gate_gesture: Union[str, StableGesture] = StableGesture.UNKNOWN,
        events=None,
        presets: Optional[Dict[str, GesturePreset]] = None,
    ):
        self.presets = dict(PRESETS)
        self.presets.update(presets or {})
        self.preset = self.presets.get('medium', PRESETS['medium'])
        self.apply_preset(preset)
        self.required_stable_frames = max(1, int(required_stable_frames))
        self.smoother = EWMA(alpha=smooth_factor)
        self.enable_gate = enable_gate
        self.gate_gesture = StableGesture.parse(gate_gesture)
        self.events = events
        self.state = StableGestureState()
        self._last_points: Optional[np.ndarray] = None
        self._last_emitted = StableGesture.UNKNOWN

    @classmethod
    def from_config(cls, cfg=None, events=None) -> 'StableGestureClassifier':
        try:
            from handrehab.config.config_manager import config as global_config
            cfg = cfg or global_config
            overrides = cfg.get('gesture_recognition', 'presets', default={}) or {}
            presets = {
                name: GesturePreset(
                    float(values['ok_tip_dist']),
                    float(values['fist_avg_curl']),
                    float(values['open_avg_spread']),
                )
                for name, values in overrides.items()
            }
            return cls(
                preset=cfg.get('gesture_recognition', 'default_preset', default='medium'),
                required_stable_frames=int(cfg.get('gesture_recognition', 'required_stable_frames', default=5)),
                smooth_factor=float(cfg.get('gesture_recognition', 'smooth_factor', default=0.3)),
                enable_gate=bool(cfg.get('gesture_recognition', 'enable_gate', default=True)),
                events=events,
                presets=presets,
            )
        except Exception as e:
            print(f"⚠ Failed to load gesture recognition config: {e}")
            return cls(events=events)

    @property
    def current_gesture(self) -> StableGesture:
        return self.state.current_gesture

    @property
    def last_points(self) -> Optional[np.ndarray]:
        """Smoothed points of the latest valid frame; None after a dropped hand."""
        return self._last_points

    def apply_preset(self, preset: Union[str, GesturePreset]) -> None:
        if isinstance(preset, GesturePreset):
            self.preset = preset
        elif preset in self.presets:
            self.preset = self.presets[preset]
        else:
            print(f"⚠ Unknown preset '{preset}', keeping current thresholds")

    def gate_to(self, gesture: Union[str, StableGesture]) -> None:
        """Recognize only `gesture`; every other classification becomes Unknown."""
        self.gate_gesture = StableGesture.parse(gesture)

    def clear_gate(self) -> None:
        self.gate_gesture = StableGesture.UNKNOWN

    def reset(self) -> None:
        self.state = StableGestureState()
        self.smoother.reset()
        self._last_points = None
        self._last_emitted = StableGesture.UNKNOWN

    def feed(self, frame) -> StableGesture:
        """Process one detector tick and return the confirmed gesture."""
        pts = as_points(frame)
        state = self.state
        if pts is None:
            state.raw_gesture = StableGesture.UNKNOWN
            state.last_frame_gesture = StableGesture.UNKNOWN
            state.stable_frame_count = 0
            state.current_gesture = StableGesture.UNKNOWN
            self.smoother.reset()
            self._last_points = None
            self._last_emitted = StableGesture.UNKNOWN
            return state.current_gesture

        smoothed = self.smoother.update(pts)
        self._last_points = smoothed

        raw = classify_points(smoothed, self.preset)
        if self.enable_gate and self.gate_gesture != StableGesture.UNKNOWN and raw != self.gate_gesture:
            raw = StableGesture.UNKNOWN
        state.raw_gesture = raw

        if raw == state.last_frame_gesture:
            state.stable_frame_count += 1
        else:
            state.stable_frame_count = 1
        state.last_frame_gesture = raw

        if state.stable_frame_count >= self.required_stable_frames:
            state.current_gesture = raw
        else:
            state.current_gesture = StableGesture.UNKNOWN

        self._emit_transition()
        return state.current_gesture

    def _emit_transition(self) -> None:
        current = self.state.current_gesture
        if current == self._last_emitted:
            return
        self._last_emitted = current
        if current != StableGesture.UNKNOWN:
            emit(self.events, GESTURE_CONFIRMED, gesture=current)
