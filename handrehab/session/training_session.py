"""
Training session flow.

    TRAINING --(block done)--> STATE_CHECK --thumb up-->   TRAINING
        |                          |------thumb side--> REST --(timer)--> TRAINING
        |                          `------thumb down--> STOPPED
        `--(target reached)--> STOPPED

The state check starts with a warm-up during which every reading is
ignored, so gesture state left over from the last training frame cannot
trigger a transition. After that, one thumb direction must be held for
`thumbs_hold` seconds.
"""

from enum import Enum
from typing import List, Optional

from handrehab.detectors.thumb_direction import ThumbDirection, ThumbDirectionClassifier, ThumbReading
from handrehab.session.events import SESSION_ENDED, SESSION_STATE_CHANGED, STATE_CHECK_RESULT, emit


class SessionState(Enum):
    TRAINING = 'training'
    STATE_CHECK = 'state_check'
    REST = 'rest'
    STOPPED = 'stopped'


class EndReason(Enum):
    TARGET_REACHED = 'target reached'
    STOPPED_BY_USER = 'stopped by user'
    ABORTED = 'aborted'


STATE_CHECK_RESULTS = {
    ThumbDirection.UP: 'thumb_up',
    ThumbDirection.DOWN: 'thumb_down',
    ThumbDirection.SIDE: 'thumb_side',
}


class TrainingSessionStateMachine:
    def __init__(
        self,
        total_rounds_target: int = 10,
        block_size: int = 3,
        thumbs_hold: float = 0.6,
        rest_seconds: float = 300.0,
        state_check_warmup: float = 0.7,
        thumb_classifier: Optional[ThumbDirectionClassifier] = None,
        events=None,
    ):
        """
        Args:
            total_rounds_target: completed rounds that end the session (0 = unlimited)
            block_size: completed rounds between state checks
            thumbs_hold: seconds a thumb direction must persist in the state check
            rest_seconds: length of a rest break
            state_check_warmup: seconds of ignored input at the start of a state check
        """
        self.total_rounds_target = max(0, int(total_rounds_target))
        self.block_size = max(1, int(block_size))
        self.thumbs_hold = thumbs_hold
        self.rest_seconds = rest_seconds
        self.state_check_warmup = state_check_warmup
        self.thumb_classifier = thumb_classifier or ThumbDirectionClassifier()
        self.events = events

        self.state = SessionState.TRAINING
        self.total_completed = 0
        self.block_completed = 0
        self.end_reason: Optional[EndReason] = None
        self.elapsed = 0.0
        self.warmup_left = 0.0
        self.state_check_hold = 0.0
        self.held_direction = ThumbDirection.UNKNOWN
        self.last_reading: Optional[ThumbReading] = None
        self.state_check_results: List[str] = []
        self.rest_remaining = 0.0

    @classmethod
    def from_config(cls, cfg=None, events=None) -> 'TrainingSessionStateMachine':
        try:
            from handrehab.config.config_manager import config as global_config
            cfg = cfg or global_config
            return cls(
                total_rounds_target=int(cfg.get('session', 'total_rounds_target', default=10)),
                block_size=int(cfg.get('session', 'block_size', default=3)),
                thumbs_hold=float(cfg.get('state_check', 'thumbs_hold', default=0.6)),
                rest_seconds=float(cfg.get('session', 'rest_seconds', default=300.0)),
                state_check_warmup=float(cfg.get('state_check', 'warmup', default=0.7)),
                thumb_classifier=ThumbDirectionClassifier.from_config(cfg),
                events=events,
            )
        except Exception as e:
            print(f"⚠ Failed to load session config: {e}")
            return cls(events=events)

    @property
    def accepts_tasks(self) -> bool:
        """Rounds and card scans are only judged while training."""
        return self.state == SessionState.TRAINING

    @property
    def evaluates_gestures(self) -> bool:
        return self.state in (SessionState.TRAINING, SessionState.STATE_CHECK)

    @property
    def stopped(self) -> bool:
        return self.state == SessionState.STOPPED

    def on_round_completed(self) -> None:
        if self.state != SessionState.TRAINING:
            return
        self.total_completed += 1
        self.block_completed += 1

        if self.total_rounds_target > 0 and self.total_completed >= self.total_rounds_target:
            self._end(EndReason.TARGET_REACHED)
        elif self.block_completed >= self.block_size:
            self._enter_state_check()

    def stop(self, reason: EndReason = EndReason.ABORTED) -> None:
        if self.state != SessionState.STOPPED:
            self._end(reason)

    def tick(self, dt: float, points=None) -> SessionState:
        """Advance timers; `points` feeds the thumb classifier during state checks."""
        if self.state == SessionState.STOPPED:
            return self.state
        self.elapsed += dt

        if self.state == SessionState.STATE_CHECK:
            self._tick_state_check(dt, points)
        elif self.state == SessionState.REST:
            self.rest_remaining -= dt
            if self.rest_remaining <= 0:
                self.rest_remaining = 0.0
                self._resume_training()
        return self.state

    def _tick_state_check(self, dt: float, points) -> None:
        if self.warmup_left > 0:
            self.warmup_left -= dt
            self.state_check_hold = 0.0
            return

        reading = self.thumb_classifier.classify(points)
        self.last_reading = reading
        direction = reading.direction
        if direction == ThumbDirection.UNKNOWN:
            self.held_direction = ThumbDirection.UNKNOWN
            self.state_check_hold = 0.0
            return
        if direction != self.held_direction:
            self.held_direction = direction
            self.state_check_hold = 0.0

        self.state_check_hold += dt
        if self.state_check_hold < self.thumbs_hold:
            return

        result = STATE_CHECK_RESULTS[direction]
        self.state_check_results.append(result)
        emit(self.events, STATE_CHECK_RESULT, result=result)
        if direction == ThumbDirection.UP:
            self._resume_training()
        elif direction == ThumbDirection.DOWN:
            self._end(EndReason.STOPPED_BY_USER)
        else:
            self._enter_rest()

    def _enter_state_check(self) -> None:
        self.block_completed = 0
        self.state_check_hold = 0.0
        self.held_direction = ThumbDirection.UNKNOWN
        self.warmup_left = self.state_check_warmup
        self._set_state(SessionState.STATE_CHECK)

    def _enter_rest(self) -> None:
        self.rest_remaining = self.rest_seconds
        self._set_state(SessionState.REST)

    def _resume_training(self) -> None:
        self.block_completed = 0
        self.state_check_hold = 0.0
        self.held_direction = ThumbDirection.UNKNOWN
        self._set_state(SessionState.TRAINING)

    def _end(self, reason: EndReason) -> None:
        self.end_reason = reason
        self._set_state(SessionState.STOPPED)
        print(f"✓ Session ended ({reason.value}) after {self.total_completed} rounds")
        emit(self.events, SESSION_ENDED, total_rounds=self.total_completed, reason=reason)

    def _set_state(self, state: SessionState) -> None:
        previous = self.state
        self.state = state
        if state != previous:
            print(f"  Session state: {previous.value} -> {state.value}")
            emit(self.events, SESSION_STATE_CHANGED, state=state, previous=previous)
