"""
Round scoring for random-mode training.

A round asks the user to perform one gesture. Every frame with a visible
hand produces a rule score and a template score, blended into a live
score. Reaching the success threshold before the main countdown runs out
starts a short final countdown that keeps the peak live score. The
round's final score blends that peak, the time it took and the user's
attitude.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from handrehab.utils.math_utils import clamp01
from handrehab.detectors.hand_metrics import as_points
from handrehab.detectors.rule_scorer import RuleScorer
from handrehab.detectors.template_scorer import TemplateLibrary


RULE_WEIGHT = 0.6
TEMPLATE_WEIGHT = 0.4
SUCCESS_THRESHOLD = 60
MAIN_COUNTDOWN = 10.0
FINAL_COUNTDOWN = 3.5

# Final score weights: finish score, speed, attitude
SCORE_FACTOR_WEIGHT = 0.4
TIME_FACTOR_WEIGHT = 0.4
ATTITUDE_FACTOR_WEIGHT = 0.2


class Attitude(Enum):
    NEUTRAL = 0
    GOOD = 1
    BAD = 2


ATTITUDE_FACTORS = {
    Attitude.GOOD: 1.0,
    Attitude.BAD: 0.0,
    Attitude.NEUTRAL: 0.5,
}


def blend_live_score(rule_score: int, template_score: int,
                     rule_weight: float = RULE_WEIGHT, template_weight: float = TEMPLATE_WEIGHT) -> int:
    return int(round(rule_score * rule_weight + template_score * template_weight))


def compute_final_score(finish_score: float, time_taken: float, attitude: Attitude,
                        main_countdown: float = MAIN_COUNTDOWN) -> float:
    """Blend of score, speed and attitude factors, 0..100."""
    score_factor = clamp01(finish_score / 100.0)
    time_factor = clamp01(1.0 - time_taken / main_countdown) if main_countdown > 0 else 0.0
    attitude_factor = ATTITUDE_FACTORS[attitude]
    final = (score_factor * SCORE_FACTOR_WEIGHT
             + time_factor * TIME_FACTOR_WEIGHT
             + attitude_factor * ATTITUDE_FACTOR_WEIGHT) * 100.0
    return max(0.0, min(100.0, final))


@dataclass
class SessionRoundRecord:
    gesture_name: str
    finish_score: int
    final_score: float
    reference_score: int
    rule_score: int
    time_taken: float
    attitude: Attitude
    next_difficulty: int

    def to_dict(self) -> Dict:
        return {
            'GestureName': self.gesture_name,
            'FinishScore': int(self.finish_score),
            'FinalScore': round(float(self.final_score), 2),
            'ReferenceScore': int(self.reference_score),
            'RuleScore': int(self.rule_score),
            'TimeTaken': round(float(self.time_taken), 2),
            'mode': self.attitude.value,
            'NextDifficulty': int(self.next_difficulty),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'SessionRoundRecord':
        try:
            attitude = Attitude(int(data.get('mode', 0)))
        except ValueError:
            attitude = Attitude.NEUTRAL
        return cls(
            gesture_name=str(data.get('GestureName', '')),
            finish_score=int(data.get('FinishScore', 0)),
            final_score=float(data.get('FinalScore', 0.0)),
            reference_score=int(data.get('ReferenceScore', 0)),
            rule_score=int(data.get('RuleScore', 0)),
            time_taken=float(data.get('TimeTaken', 0.0)),
            attitude=attitude,
            next_difficulty=int(data.get('NextDifficulty', 1)),
        )


@dataclass
class RoundOutcome:
    """How a round ended, before attitude and difficulty are applied."""
    gesture_name: str
    finish_score: int
    time_taken: float
    reference_score: int
    rule_score: int
    succeeded: bool


class RoundPhase(Enum):
    IDLE = 'idle'
    ACTIVE = 'active'
    FINAL_COUNTDOWN = 'final_countdown'
    COMPLETE = 'complete'


class RoundScoringEngine:
    """
    Tracks one round at a time.

    Call `process_frame()` (or `update_scores()`) for every detector tick
    and then `tick(dt)`; `tick` returns a RoundOutcome on the tick the
    round ends and None otherwise.
    """

    def __init__(
        self,
        rule_scorer: Optional[RuleScorer] = None,
        templates: Optional[TemplateLibrary] = None,
        rule_weight: float = RULE_WEIGHT,
        template_weight: float = TEMPLATE_WEIGHT,
        success_threshold: float = SUCCESS_THRESHOLD,
        main_countdown: float = MAIN_COUNTDOWN,
        final_countdown: float = FINAL_COUNTDOWN,
    ):
        self.rule_scorer = rule_scorer or RuleScorer()
        self.templates = templates if templates is not None else TemplateLibrary()
        self.rule_weight = rule_weight
        self.template_weight = template_weight
        self.success_threshold = success_threshold
        self.main_countdown = main_countdown
        self.final_countdown = final_countdown

        self.phase = RoundPhase.IDLE
        self.gesture_name = ''
        self.rule_score = 0
        self.template_score = 0
        self.hand_visible = False
        self.remaining = 0.0
        self.time_to_success = 0.0
        self.peak_score = 0

    @classmethod
    def from_config(cls, rule_scorer=None, templates=None, cfg=None) -> 'RoundScoringEngine':
        try:
            from handrehab.config.config_manager import config as global_config
            cfg = cfg or global_config
            return cls(
                rule_scorer=rule_scorer,
                templates=templates,
                rule_weight=float(cfg.get('round', 'rule_weight', default=RULE_WEIGHT)),
                template_weight=float(cfg.get('round', 'template_weight', default=TEMPLATE_WEIGHT)),
                success_threshold=float(cfg.get('round', 'success_threshold', default=SUCCESS_THRESHOLD)),
                main_countdown=float(cfg.get('round', 'main_countdown', default=MAIN_COUNTDOWN)),
                final_countdown=float(cfg.get('round', 'final_countdown', default=FINAL_COUNTDOWN)),
            )
        except Exception as e:
            print(f"⚠ Failed to load round config: {e}")
            return cls(rule_scorer=rule_scorer, templates=templates)

    @property
    def live_score(self) -> int:
        return blend_live_score(self.rule_score, self.template_score, self.rule_weight, self.template_weight)

    @property
    def active(self) -> bool:
        return self.phase in (RoundPhase.ACTIVE, RoundPhase.FINAL_COUNTDOWN)

    def start_round(self, gesture_name: str) -> None:
        self.gesture_name = gesture_name
        self.phase = RoundPhase.ACTIVE
        self.remaining = self.main_countdown
        self.time_to_success = 0.0
        self.peak_score = 0
        self.rule_score = 0
        self.template_score = 0
        self.hand_visible = False

    def update_scores(self, rule_score: int, template_score: int) -> None:
        self.rule_score = int(rule_score)
        self.template_score = int(template_score)
        self.hand_visible = True

    def process_frame(self, frame) -> int:
        """Score one frame against the round's gesture; return the live score."""
        if as_points(frame) is None:
            self.rule_score = 0
            self.template_score = 0
            self.hand_visible = False
            return 0
        self.update_scores(
            self.rule_scorer.score(self.gesture_name, frame),
            self.templates.score(self.gesture_name, frame),
        )
        return self.live_score

    def tick(self, dt: float) -> Optional[RoundOutcome]:
        if not self.active:
            return None
        self.remaining -= dt
        live = self.live_score

        if self.phase == RoundPhase.ACTIVE:
            self.time_to_success += dt
            if live >= self.success_threshold:
                self.phase = RoundPhase.FINAL_COUNTDOWN
                self.remaining = self.final_countdown
                self.peak_score = live
            elif self.remaining <= 0:
                return self._complete(finish_score=0, time_taken=self.main_countdown, succeeded=False)
            return None

        self.peak_score = max(self.peak_score, live)
        if self.remaining <= 0:
            return self._complete(
                finish_score=self.peak_score,
                time_taken=min(self.time_to_success, self.main_countdown),
                succeeded=True,
            )
        return None

    def _complete(self, finish_score: int, time_taken: float, succeeded: bool) -> RoundOutcome:
        self.phase = RoundPhase.COMPLETE
        return RoundOutcome(
            gesture_name=self.gesture_name,
            finish_score=int(finish_score),
            time_taken=float(time_taken),
            reference_score=self.template_score,
            rule_score=self.rule_score,
            succeeded=succeeded,
        )
