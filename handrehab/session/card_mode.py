"""
Card-mode training session.

A scanned card names the task: which stable gesture (open, fist or ok),
at which difficulty preset, held for how long. The classifier is gated
to that gesture, the hold judge times it, and each success counts as a
completed round for the session state machine.

Card payload (decoded from the QR code by an external scanner):
    {"card_id": "C07", "gesture": "fist", "difficulty": "easy", "hold_secs": 1.5}
"""

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

from handrehab.detectors.gesture_classifier import StableGesture, StableGestureClassifier
from handrehab.session.events import TASK_SUCCEEDED, emit
from handrehab.session.hold_judge import MIN_HOLD_SECS, GestureHoldJudge
from handrehab.session.session_log import TIME_FORMAT, CardSessionLog
from handrehab.session.storage import SessionPersistenceError, save_session_log
from handrehab.session.training_session import EndReason, SessionState, TrainingSessionStateMachine


@dataclass
class CardTask:
    card_id: str
    gesture: StableGesture
    difficulty: str = 'medium'
    hold_secs: float = 1.0

    @classmethod
    def from_payload(cls, payload: str, default_hold: float = 1.0) -> Optional['CardTask']:
        """Parse a card payload; None for anything that is not a valid card."""
        try:
            data = json.loads(payload)
        except (TypeError, ValueError):
            return None
        if not isinstance(data, dict):
            return None
        gesture = StableGesture.parse(data.get('gesture'))
        if gesture == StableGesture.UNKNOWN:
            return None
        try:
            hold = float(data.get('hold_secs', default_hold))
        except (TypeError, ValueError):
            hold = default_hold
        return cls(
            card_id=str(data.get('card_id', '')),
            gesture=gesture,
            difficulty=str(data.get('difficulty', 'medium')).lower(),
            hold_secs=max(MIN_HOLD_SECS, hold),
        )


class CardModeSession:
    def __init__(
        self,
        classifier: Optional[StableGestureClassifier] = None,
        judge: Optional[GestureHoldJudge] = None,
        state_machine: Optional[TrainingSessionStateMachine] = None,
        events=None,
        default_hold: float = 1.0,
        log: Optional[CardSessionLog] = None,
        log_dir: Optional[Union[str, Path]] = None,
    ):
        """
        Args:
            log: rows of this session; a fresh log is started when omitted
            log_dir: when set, the log is rewritten there after every completed card
        """
        self.classifier = classifier or StableGestureClassifier(events=events)
        self.judge = judge or GestureHoldJudge()
        self.state_machine = state_machine or TrainingSessionStateMachine(events=events)
        self.events = events
        self.default_hold = default_hold
        self.current_card: Optional[CardTask] = None
        self.log = log if log is not None else CardSessionLog()
        self.log_dir = Path(log_dir) if log_dir is not None else None
        self._logged_checks = 0
        self._gate_enabled = self.classifier.enable_gate
        self._last_state = self.state_machine.state

    @classmethod
    def from_config(cls, cfg=None, events=None, log_dir=None) -> 'CardModeSession':
        from handrehab.config.config_manager import config as global_config
        cfg = cfg or global_config
        try:
            require_scan = bool(cfg.get('card_mode', 'require_scan', default=True))
            default_hold = float(cfg.get('card_mode', 'default_hold_secs', default=1.0))
        except (TypeError, ValueError) as e:
            print(f"⚠ Failed to load card mode config: {e}")
            require_scan, default_hold = True, 1.0
        return cls(
            classifier=StableGestureClassifier.from_config(cfg, events),
            judge=GestureHoldJudge(required_hold=default_hold, require_scan=require_scan),
            state_machine=TrainingSessionStateMachine.from_config(cfg, events),
            events=events,
            default_hold=default_hold,
            log_dir=log_dir,
        )

    @property
    def finished(self) -> bool:
        return self.state_machine.stopped

    @property
    def completed_cards(self) -> List[Dict]:
        return self.log.cards

    def on_card_scanned(self, payload: str) -> bool:
        """Arm a new task from a card payload; ignored outside training."""
        if not self.state_machine.accepts_tasks:
            return False
        card = CardTask.from_payload(payload, self.default_hold)
        if card is None:
            print(f"⚠ Ignoring unrecognized card payload: {payload!r}")
            return False
        if card.difficulty in self.classifier.presets:
            self.classifier.apply_preset(card.difficulty)
        self.classifier.gate_to(card.gesture)
        self.judge.arm(card.gesture, card.hold_secs)
        self.current_card = card
        print(f"✓ Card {card.card_id or '?'}: {card.gesture.value} "
              f"({card.difficulty}, hold {card.hold_secs:.1f}s)")
        return True

    def tick(self, frame, dt: float) -> bool:
        """Advance one detector tick; True when a card task was just completed."""
        sm = self.state_machine
        if sm.stopped:
            return False

        succeeded = False
        if sm.evaluates_gestures:
            confirmed = self.classifier.feed(frame)
            if sm.accepts_tasks:
                if self.judge.update(confirmed, dt):
                    self._on_success()
                    succeeded = True
                sm.tick(dt)
            else:
                sm.tick(dt, self.classifier.last_points)
        else:
            sm.tick(dt)

        self._sync_state_checks()
        self._sync_state()
        return succeeded

    def finish(self) -> CardSessionLog:
        """Stop the session (if still running) and return its log."""
        self.state_machine.stop(self.state_machine.end_reason or EndReason.ABORTED)
        self._sync_state_checks()
        self._sync_state()
        return self.log

    def _on_success(self) -> None:
        card = self.current_card
        row = {
            'time': datetime.now().strftime(TIME_FORMAT),
            'card_id': card.card_id if card else '',
            'gesture': card.gesture.value if card else self.judge.target.value,
            'difficulty': card.difficulty if card else '',
            'hold_secs': card.hold_secs if card else self.judge.required_hold,
            'note': 'success',
        }
        self.log.append_card(row)
        self.autosave()
        self.classifier.clear_gate()
        self.current_card = None
        emit(self.events, TASK_SUCCEEDED, gesture=row['gesture'], card=row)
        self.state_machine.on_round_completed()

    def autosave(self) -> Optional[Path]:
        if self.log_dir is None:
            return None
        try:
            return save_session_log(self.log, self.log_dir, quiet=True)
        except SessionPersistenceError as e:
            print(f"⚠ Card log autosave failed: {e}")
            return None

    def _sync_state_checks(self) -> None:
        results = self.state_machine.state_check_results
        while self._logged_checks < len(results):
            self.log.record_state_check(results[self._logged_checks])
            self._logged_checks += 1

    def _sync_state(self) -> None:
        state = self.state_machine.state
        if state == self._last_state:
            return
        self._last_state = state
        if state == SessionState.STATE_CHECK:
            # The thumb check must see every pose, not just the gated one
            self.classifier.enable_gate = False
            self.judge.disarm()
        elif state == SessionState.TRAINING:
            self.classifier.enable_gate = self._gate_enabled
            self.classifier.clear_gate()
        elif state == SessionState.STOPPED:
            self.judge.disarm()
