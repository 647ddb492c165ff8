import unittest
from unittest.mock import MagicMock
import sys
import os

# Add path to source
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from handrehab.detectors.template_scorer import ReferenceTemplate, TemplateLibrary
from handrehab.session.attitude import AttitudeModeController
from handrehab.session.difficulty import DifficultyController
from handrehab.session.events import ROUND_COMPLETED
from handrehab.session.random_mode import RandomModeSession, RandomPhase
from handrehab.session.round_scoring import Attitude, RoundScoringEngine
from handrehab.session.training_session import EndReason, SessionState, TrainingSessionStateMachine
import hand_fixtures as hf


class FixedRandom:
    def __init__(self, value=0.2):
        self.value = value

    def random(self):
        return self.value

    def choice(self, seq):
        return seq[0]


class TestRandomModeSession(unittest.TestCase):
    def setUp(self):
        self.lib = TemplateLibrary([
            ReferenceTemplate.create('1fist', hf.fist()),
            ReferenceTemplate.create('3like', hf.thumbs_up()),
        ])
        self.events = MagicMock()
        self.rng = FixedRandom()

    def _session(self, block_size=100, interval=2):
        return RandomModeSession(
            self.lib,
            engine=RoundScoringEngine(templates=self.lib, main_countdown=2.0, final_countdown=0.5),
            attitude=AttitudeModeController(hold_required=0.5, events=self.events),
            difficulty=DifficultyController(rng=self.rng, events=self.events),
            state_machine=TrainingSessionStateMachine(total_rounds_target=0, block_size=block_size,
                                                      state_check_warmup=0.5, events=self.events),
            events=self.events,
            rng=self.rng,
            attitude_round_interval=interval,
            logic_pause=0.5,
        )

    def _play(self, session, points, max_ticks=20):
        for _ in range(max_ticks):
            record = session.tick(hf.frame(points), 0.5)
            if record is not None:
                return record
        return None

    def test_select_gesture_by_level_prefix(self):
        session = self._session()
        self.assertEqual(session.select_gesture(3), '3like')
        # No gesture at this level: any gesture will do
        self.assertEqual(session.select_gesture(4), '1fist')
        with self.assertRaises(ValueError):
            RandomModeSession(TemplateLibrary()).select_gesture(1)

    def test_round_then_attitude_round(self):
        session = self._session()
        session.start()
        self.assertEqual(session.current_gesture, '1fist')

        first = self._play(session, hf.fist())
        self.assertEqual(first.gesture_name, '1fist')
        self.assertEqual(first.finish_score, 100)
        self.assertEqual(first.attitude, Attitude.NEUTRAL)
        self.assertAlmostEqual(first.final_score, 80.0)
        self.assertEqual(first.next_difficulty, 3)
        self.events.dispatch.assert_any_call(ROUND_COMPLETED, record=first)

        self.assertEqual(session.current_gesture, '3like')
        second = self._play(session, hf.thumbs_up())
        self.assertEqual(second.attitude, Attitude.GOOD)
        self.assertAlmostEqual(second.final_score, 90.0)
        self.assertEqual(second.next_difficulty, 5)
        self.assertEqual([r.gesture_name for r in session.log.rounds], ['1fist', '3like'])

    def test_missed_round(self):
        session = self._session(interval=0)
        session.start()
        record = self._play(session, hf.open_hand())
        self.assertEqual(record.finish_score, 0)
        self.assertEqual(record.time_taken, 2.0)
        # Failed rounds are not added to the difficulty history
        self.assertEqual(session.difficulty.history.levels, [1])

    def test_state_check_is_logged(self):
        session = self._session(block_size=1, interval=0)
        session.start()
        self._play(session, hf.fist())
        self.assertEqual(session.state_machine.state, SessionState.STATE_CHECK)
        for _ in range(4):
            self.assertIsNone(session.tick(hf.frame(hf.thumbs_up()), 0.5))
        self.assertEqual(session.state_machine.state, SessionState.TRAINING)
        self.assertEqual([c['Result'] for c in session.log.state_checks], ['thumb_up'])

    def test_finish_closes_pending_attitude_round(self):
        session = self._session(interval=1)
        session.start()
        self.assertIsNone(self._play(session, hf.fist(), max_ticks=3))
        self.assertEqual(session.phase, RandomPhase.ATTITUDE)
        log = session.finish(EndReason.STOPPED_BY_USER)
        self.assertTrue(session.finished)
        self.assertEqual(len(log.rounds), 1)
        self.assertEqual(log.rounds[0].attitude, Attitude.NEUTRAL)
        self.assertEqual(session.state_machine.end_reason, EndReason.STOPPED_BY_USER)
        self.assertIsNone(session.tick(hf.frame(hf.fist()), 0.5))


if __name__ == '__main__':
    unittest.main()
