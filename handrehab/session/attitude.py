from typing import Optional

from handrehab.detectors.hand_metrics import LANDMARK_NAMES, as_points
from handrehab.detectors.rule_scorer import GestureClass, RuleScorer
from handrehab.detectors.template_scorer import TemplateLibrary, template_score
from handrehab.session.events import ATTITUDE_CONFIRMED, emit
from handrehab.session.round_scoring import Attitude


CYCLE_TIME = 5.0
HOLD_REQUIRED = 3.0
ATTITUDE_COUNTDOWN = 30.0
SCORE_THRESHOLD = 70
VERTICAL_MARGIN = 0.1


def expressed_attitude(
    frame,
    rule_scorer: RuleScorer,
    templates: Optional[TemplateLibrary] = None,
    score_threshold: float = SCORE_THRESHOLD,
    vertical_margin: float = VERTICAL_MARGIN,
) -> Attitude:
    """
    Good for a raised thumbs-up, Bad for a lowered thumbs-down.

    The like/dislike strength is the larger of the rule score and the
    template score; the thumb tip must also sit clearly above (or below)
    the wrist in the image.
    """
    pts = as_points(frame)
    if pts is None:
        return Attitude.NEUTRAL

    like = rule_scorer.score_class(GestureClass.LIKE, pts, handedness='Right')
    dislike = rule_scorer.score_class(GestureClass.DISLIKE, pts, handedness='Right')
    if templates is not None:
        like = max(like, template_score(pts, templates.attitude_template('like'), templates.max_distance))
        dislike = max(dislike, template_score(pts, templates.attitude_template('dislike'), templates.max_distance))

    thumb_y = pts[LANDMARK_NAMES['THUMB_TIP'], 1]
    wrist_y = pts[LANDMARK_NAMES['WRIST'], 1]
    if like >= score_threshold and thumb_y < wrist_y - vertical_margin:
        return Attitude.GOOD
    if dislike >= score_threshold and thumb_y > wrist_y + vertical_margin:
        return Attitude.BAD
    return Attitude.NEUTRAL


class AttitudeModeController:
    """
    Periodic mood check between rounds.

    While active, the displayed target alternates Good/Bad every
    `cycle_time` seconds. An expressed attitude has to stay unchanged for
    `hold_required` seconds to be confirmed; the whole check falls back to
    Neutral after `countdown` seconds.
    """

    def __init__(self, cycle_time: float = CYCLE_TIME, hold_required: float = HOLD_REQUIRED,
                 countdown: float = ATTITUDE_COUNTDOWN, events=None):
        self.cycle_time = cycle_time
        self.hold_required = hold_required
        self.countdown = countdown
        self.events = events

        self.active = False
        self.displayed_target = Attitude.GOOD
        self.pending = Attitude.NEUTRAL
        self.hold_time = 0.0
        self.remaining = 0.0
        self._cycle_left = 0.0

    @classmethod
    def from_config(cls, cfg=None, events=None) -> 'AttitudeModeController':
        try:
            from handrehab.config.config_manager import config as global_config
            cfg = cfg or global_config
            return cls(
                cycle_time=float(cfg.get('attitude', 'cycle_time', default=CYCLE_TIME)),
                hold_required=float(cfg.get('attitude', 'hold_required', default=HOLD_REQUIRED)),
                countdown=float(cfg.get('attitude', 'countdown', default=ATTITUDE_COUNTDOWN)),
                events=events,
            )
        except Exception as e:
            print(f"⚠ Failed to load attitude config: {e}")
            return cls(events=events)

    @property
    def hold_progress(self) -> float:
        if self.hold_required <= 0:
            return 1.0
        return min(1.0, self.hold_time / self.hold_required)

    def start(self) -> None:
        self.active = True
        self.displayed_target = Attitude.GOOD
        self.pending = Attitude.NEUTRAL
        self.hold_time = 0.0
        self.remaining = self.countdown
        self._cycle_left = self.cycle_time

    def update(self, expressed: Attitude, dt: float) -> Optional[Attitude]:
        """Advance the check; return the resolved attitude once it ends."""
        if not self.active:
            return None

        self._cycle_left -= dt
        if self._cycle_left <= 0:
            self._cycle_left = self.cycle_time
            self.displayed_target = Attitude.BAD if self.displayed_target == Attitude.GOOD else Attitude.GOOD

        if expressed != Attitude.NEUTRAL:
            if expressed == self.pending:
                self.hold_time += dt
                if self.hold_time >= self.hold_required:
                    return self._resolve(expressed)
            else:
                self.pending = expressed
                self.hold_time = 0.0
        else:
            self.pending = Attitude.NEUTRAL
            self.hold_time = 0.0

        self.remaining -= dt
        if self.remaining <= 0:
            return self._resolve(Attitude.NEUTRAL)
        return None

    def _resolve(self, attitude: Attitude) -> Attitude:
        self.active = False
        self.pending = Attitude.NEUTRAL
        self.hold_time = 0.0
        print(f"✓ Attitude confirmed: {attitude.name.lower()}")
        emit(self.events, ATTITUDE_CONFIRMED, attitude=attitude)
        return attitude
