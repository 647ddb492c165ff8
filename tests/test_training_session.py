import unittest
from unittest.mock import MagicMock
import sys
import os

# Add path to source
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from handrehab.session.events import SESSION_ENDED, STATE_CHECK_RESULT
from handrehab.session.training_session import EndReason, SessionState, TrainingSessionStateMachine
import hand_fixtures as hf


class TestTrainingSessionStateMachine(unittest.TestCase):
    def setUp(self):
        self.events = MagicMock()
        self.sm = TrainingSessionStateMachine(
            total_rounds_target=10, block_size=3, thumbs_hold=0.6,
            rest_seconds=1.0, state_check_warmup=0.7, events=self.events,
        )

    def _finish_block(self):
        for _ in range(3):
            self.sm.on_round_completed()

    def _run(self, points, ticks, dt=0.25):
        for _ in range(ticks):
            self.sm.tick(dt, points)

    def test_block_enters_state_check(self):
        self.sm.on_round_completed()
        self.sm.on_round_completed()
        self.assertEqual(self.sm.state, SessionState.TRAINING)
        self.sm.on_round_completed()
        self.assertEqual(self.sm.state, SessionState.STATE_CHECK)
        self.assertFalse(self.sm.accepts_tasks)
        self.assertTrue(self.sm.evaluates_gestures)

    def test_rounds_ignored_outside_training(self):
        self._finish_block()
        self.sm.on_round_completed()
        self.assertEqual(self.sm.total_completed, 3)

    def test_warmup_ignores_thumb(self):
        self._finish_block()
        self._run(hf.thumbs_down(), 3)
        self.assertEqual(self.sm.state, SessionState.STATE_CHECK)
        self.assertEqual(self.sm.state_check_hold, 0.0)

    def test_thumb_up_resumes_training(self):
        self._finish_block()
        self._run(hf.thumbs_up(), 3)
        self._run(hf.thumbs_up(), 2)
        self.assertEqual(self.sm.state, SessionState.STATE_CHECK)
        self._run(hf.thumbs_up(), 1)
        self.assertEqual(self.sm.state, SessionState.TRAINING)
        self.assertEqual(self.sm.state_check_results, ['thumb_up'])
        self.events.dispatch.assert_any_call(STATE_CHECK_RESULT, result='thumb_up')

    def test_thumb_down_stops(self):
        self._finish_block()
        self._run(hf.thumbs_down(), 6)
        self.assertEqual(self.sm.state, SessionState.STOPPED)
        self.assertEqual(self.sm.end_reason, EndReason.STOPPED_BY_USER)
        self.events.dispatch.assert_any_call(SESSION_ENDED, total_rounds=3, reason=EndReason.STOPPED_BY_USER)

    def test_thumb_side_rests_then_resumes(self):
        self._finish_block()
        self._run(hf.thumb_side(), 6)
        self.assertEqual(self.sm.state, SessionState.REST)
        self.sm.tick(0.5)
        self.assertEqual(self.sm.state, SessionState.REST)
        self.sm.tick(0.5)
        self.assertEqual(self.sm.state, SessionState.TRAINING)

    def test_direction_change_restarts_hold(self):
        self._finish_block()
        self._run(hf.thumbs_up(), 3)
        self._run(hf.thumbs_up(), 2)
        self._run(hf.thumb_side(), 1)
        self.assertEqual(self.sm.state, SessionState.STATE_CHECK)
        self.assertAlmostEqual(self.sm.state_check_hold, 0.25)

    def test_lost_hand_resets_hold(self):
        self._finish_block()
        self._run(hf.thumbs_up(), 5)
        self._run(None, 1)
        self.assertEqual(self.sm.state_check_hold, 0.0)

    def test_target_reached_wins_over_block(self):
        sm = TrainingSessionStateMachine(total_rounds_target=3, block_size=3)
        for _ in range(3):
            sm.on_round_completed()
        self.assertTrue(sm.stopped)
        self.assertEqual(sm.end_reason, EndReason.TARGET_REACHED)

    def test_stop_is_idempotent(self):
        self.sm.stop(EndReason.ABORTED)
        self.sm.stop(EndReason.STOPPED_BY_USER)
        self.assertEqual(self.sm.end_reason, EndReason.ABORTED)
        self.assertEqual(self.sm.tick(1.0), SessionState.STOPPED)


if __name__ == '__main__':
    unittest.main()
