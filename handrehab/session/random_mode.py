"""
Random-mode training session.

Each round picks a recorded gesture whose name starts with the current
difficulty digit ("3rock" belongs to level 3), scores the user's attempt,
periodically asks for a thumbs-up/down attitude, appends one round record
and moves the difficulty. Session progression (blocks, state checks,
rests, the round target) is delegated to TrainingSessionStateMachine.
"""

import random
from enum import Enum
from typing import List, Optional, Sequence

from handrehab.detectors.hand_metrics import as_points
from handrehab.detectors.rule_scorer import RuleScorer
from handrehab.detectors.template_scorer import TemplateLibrary
from handrehab.session.attitude import (
    AttitudeModeController, expressed_attitude, SCORE_THRESHOLD, VERTICAL_MARGIN,
)
from handrehab.session.difficulty import DifficultyController
from handrehab.session.events import ROUND_COMPLETED, emit
from handrehab.session.round_scoring import (
    Attitude, RoundOutcome, RoundScoringEngine, SessionRoundRecord, compute_final_score,
)
from handrehab.session.session_log import SessionLog
from handrehab.session.training_session import EndReason, TrainingSessionStateMachine


class RandomPhase(Enum):
    IDLE = 'idle'
    PAUSED = 'paused'
    ROUND = 'round'
    ATTITUDE = 'attitude'
    FINISHED = 'finished'


class RandomModeSession:
    def __init__(
        self,
        templates: TemplateLibrary,
        engine: Optional[RoundScoringEngine] = None,
        attitude: Optional[AttitudeModeController] = None,
        difficulty: Optional[DifficultyController] = None,
        state_machine: Optional[TrainingSessionStateMachine] = None,
        log: Optional[SessionLog] = None,
        events=None,
        rng=None,
        gestures: Optional[Sequence[str]] = None,
        attitude_round_interval: int = 5,
        logic_pause: float = 1.0,
        attitude_score_threshold: float = SCORE_THRESHOLD,
        attitude_vertical_margin: float = VERTICAL_MARGIN,
    ):
        """
        Args:
            templates: recorded gestures; also the default gesture catalog
            gestures: explicit gesture catalog (names may have no template)
            rng: object with `.choice()` and `.random()`; defaults to `random`
            attitude_round_interval: run the attitude check every N rounds (0 = never)
            logic_pause: seconds between rounds during which frames are ignored
        """
        self.templates = templates
        self.engine = engine or RoundScoringEngine(templates=templates)
        self.rule_scorer: RuleScorer = self.engine.rule_scorer
        self.attitude = attitude or AttitudeModeController(events=events)
        self.difficulty = difficulty or DifficultyController(rng=rng, events=events)
        self.state_machine = state_machine or TrainingSessionStateMachine(events=events)
        self.log = log
        self.events = events
        self.rng = rng or random
        self.gestures = list(gestures) if gestures is not None else None
        self.attitude_round_interval = attitude_round_interval
        self.logic_pause = logic_pause
        self.attitude_score_threshold = attitude_score_threshold
        self.attitude_vertical_margin = attitude_vertical_margin

        self.phase = RandomPhase.IDLE
        self.current_gesture: Optional[str] = None
        self.pause_left = 0.0
        self._pending: Optional[RoundOutcome] = None
        self._logged_checks = 0

    @classmethod
    def from_config(cls, templates: TemplateLibrary, cfg=None, events=None, rng=None,
                    gestures: Optional[Sequence[str]] = None) -> 'RandomModeSession':
        from handrehab.config.config_manager import config as global_config
        cfg = cfg or global_config
        engine = RoundScoringEngine.from_config(RuleScorer.from_config(cfg), templates, cfg)
        try:
            interval = int(cfg.get('attitude', 'round_interval', default=5))
            pause = float(cfg.get('round', 'logic_pause', default=1.0))
            threshold = float(cfg.get('attitude', 'score_threshold', default=SCORE_THRESHOLD))
            margin = float(cfg.get('attitude', 'vertical_margin', default=VERTICAL_MARGIN))
        except (TypeError, ValueError) as e:
            print(f"⚠ Failed to load random mode config: {e}")
            interval, pause, threshold, margin = 5, 1.0, SCORE_THRESHOLD, VERTICAL_MARGIN
        return cls(
            templates,
            engine=engine,
            attitude=AttitudeModeController.from_config(cfg, events),
            difficulty=DifficultyController.from_config(cfg, rng, events),
            state_machine=TrainingSessionStateMachine.from_config(cfg, events),
            events=events,
            rng=rng,
            gestures=gestures,
            attitude_round_interval=interval,
            logic_pause=pause,
            attitude_score_threshold=threshold,
            attitude_vertical_margin=margin,
        )

    @property
    def catalog(self) -> List[str]:
        return list(self.gestures) if self.gestures is not None else self.templates.names()

    @property
    def finished(self) -> bool:
        return self.phase == RandomPhase.FINISHED

    def select_gesture(self, level: int) -> str:
        names = self.catalog
        if not names:
            raise ValueError("No gestures available; record templates first")
        candidates = [n for n in names if n.startswith(str(level))] or names
        return self.rng.choice(candidates)

    def start(self) -> None:
        if self.log is None:
            self.log = SessionLog()
        print(f"✓ Random mode started with {len(self.catalog)} gestures")
        self._prepare_next_round()

    def tick(self, frame, dt: float) -> Optional[SessionRoundRecord]:
        """Advance one detector tick; return the record of a round that just ended."""
        if self.phase in (RandomPhase.IDLE, RandomPhase.FINISHED):
            return None

        sm = self.state_machine
        if not sm.accepts_tasks:
            sm.tick(dt, as_points(frame))
            self._sync_state_checks()
            if sm.stopped:
                self.phase = RandomPhase.FINISHED
            return None
        sm.tick(dt)

        if self.phase == RandomPhase.PAUSED:
            self.pause_left -= dt
            if self.pause_left <= 0:
                self.engine.start_round(self.current_gesture)
                self.phase = RandomPhase.ROUND
            return None

        if self.phase == RandomPhase.ROUND:
            self.engine.process_frame(frame)
            outcome = self.engine.tick(dt)
            if outcome is None:
                return None
            if self._attitude_due():
                self._pending = outcome
                self.attitude.start()
                self.phase = RandomPhase.ATTITUDE
                return None
            return self._complete_round(outcome, Attitude.NEUTRAL)

        if self.phase == RandomPhase.ATTITUDE:
            expressed = expressed_attitude(
                frame, self.rule_scorer, self.templates,
                self.attitude_score_threshold, self.attitude_vertical_margin,
            )
            result = self.attitude.update(expressed, dt)
            if result is None:
                return None
            outcome, self._pending = self._pending, None
            return self._complete_round(outcome, result)
        return None

    def finish(self, reason: EndReason = EndReason.ABORTED) -> SessionLog:
        """End the session early; a round waiting on its attitude is closed as Neutral."""
        if self._pending is not None:
            outcome, self._pending = self._pending, None
            self.attitude.active = False
            self._complete_round(outcome, Attitude.NEUTRAL)
        self.state_machine.stop(reason)
        self.phase = RandomPhase.FINISHED
        if self.log is None:
            self.log = SessionLog()
        return self.log

    def _attitude_due(self) -> bool:
        if self.attitude_round_interval <= 0:
            return False
        return (len(self.log.rounds) + 1) % self.attitude_round_interval == 0

    def _prepare_next_round(self) -> None:
        self.current_gesture = self.select_gesture(self.difficulty.level)
        self.pause_left = self.logic_pause
        self.phase = RandomPhase.PAUSED

    def _complete_round(self, outcome: RoundOutcome, attitude: Attitude) -> SessionRoundRecord:
        final = compute_final_score(outcome.finish_score, outcome.time_taken, attitude, self.engine.main_countdown)
        next_level = self.difficulty.advance(final, succeeded=outcome.succeeded)
        record = SessionRoundRecord(
            gesture_name=outcome.gesture_name,
            finish_score=outcome.finish_score,
            final_score=round(final, 2),
            reference_score=outcome.reference_score,
            rule_score=outcome.rule_score,
            time_taken=round(outcome.time_taken, 2),
            attitude=attitude,
            next_difficulty=next_level,
        )
        self.log.append(record)
        print(f"✓ Round {len(self.log.rounds)}: {record.gesture_name} "
              f"finish={record.finish_score} final={record.final_score:.2f} next={next_level}")
        emit(self.events, ROUND_COMPLETED, record=record)

        self.state_machine.on_round_completed()
        if self.state_machine.stopped:
            self.phase = RandomPhase.FINISHED
        elif self.phase != RandomPhase.FINISHED:
            self._prepare_next_round()
        return record

    def _sync_state_checks(self) -> None:
        results = self.state_machine.state_check_results
        while self._logged_checks < len(results):
            self.log.record_state_check(results[self._logged_checks])
            self._logged_checks += 1
