import unittest
from unittest.mock import MagicMock
import sys
import os

# Add path to source
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from handrehab.detectors.rule_scorer import RuleScorer
from handrehab.session.attitude import AttitudeModeController, expressed_attitude
from handrehab.session.events import ATTITUDE_CONFIRMED
from handrehab.session.round_scoring import Attitude
import hand_fixtures as hf


class TestExpressedAttitude(unittest.TestCase):
    def setUp(self):
        self.scorer = RuleScorer()

    def test_thumbs_up_is_good(self):
        self.assertEqual(expressed_attitude(hf.frame(hf.thumbs_up()), self.scorer), Attitude.GOOD)

    def test_thumbs_down_is_bad(self):
        self.assertEqual(expressed_attitude(hf.frame(hf.thumbs_down()), self.scorer), Attitude.BAD)

    def test_other_poses_are_neutral(self):
        self.assertEqual(expressed_attitude(hf.frame(hf.open_hand()), self.scorer), Attitude.NEUTRAL)
        self.assertEqual(expressed_attitude(None, self.scorer), Attitude.NEUTRAL)


class TestAttitudeModeController(unittest.TestCase):
    def setUp(self):
        self.events = MagicMock()
        self.ctrl = AttitudeModeController(cycle_time=1.0, hold_required=1.0, countdown=5.0, events=self.events)
        self.ctrl.start()

    def test_hold_confirms(self):
        self.assertIsNone(self.ctrl.update(Attitude.GOOD, 0.5))
        self.assertIsNone(self.ctrl.update(Attitude.GOOD, 0.5))
        self.assertEqual(self.ctrl.update(Attitude.GOOD, 0.5), Attitude.GOOD)
        self.assertFalse(self.ctrl.active)
        self.events.dispatch.assert_called_once_with(ATTITUDE_CONFIRMED, attitude=Attitude.GOOD)

    def test_change_restarts_hold(self):
        self.ctrl.update(Attitude.GOOD, 0.5)
        self.ctrl.update(Attitude.GOOD, 0.5)
        self.ctrl.update(Attitude.BAD, 0.5)
        self.assertEqual(self.ctrl.hold_time, 0.0)
        self.ctrl.update(Attitude.NEUTRAL, 0.5)
        self.assertEqual(self.ctrl.pending, Attitude.NEUTRAL)

    def test_countdown_falls_back_to_neutral(self):
        result = None
        for _ in range(10):
            result = self.ctrl.update(Attitude.NEUTRAL, 0.5)
        self.assertEqual(result, Attitude.NEUTRAL)

    def test_displayed_target_alternates(self):
        self.assertEqual(self.ctrl.displayed_target, Attitude.GOOD)
        self.ctrl.update(Attitude.NEUTRAL, 1.0)
        self.assertEqual(self.ctrl.displayed_target, Attitude.BAD)
        self.ctrl.update(Attitude.NEUTRAL, 1.0)
        self.assertEqual(self.ctrl.displayed_target, Attitude.GOOD)

    def test_inactive_ignores_updates(self):
        self.ctrl.active = False
        self.assertIsNone(self.ctrl.update(Attitude.GOOD, 10.0))


if __name__ == '__main__':
    unittest.main()
