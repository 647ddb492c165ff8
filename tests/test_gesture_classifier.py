import unittest
from unittest.mock import MagicMock
import sys
import os

# Add path to source
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from handrehab.detectors.gesture_classifier import (
    PRESETS, GesturePreset, StableGesture, StableGestureClassifier, classify_points,
)
from handrehab.session.events import GESTURE_CONFIRMED
import hand_fixtures as hf


class DictConfig:
    """Minimal stand-in for Config reading from a plain dict."""

    def __init__(self, data):
        self.data = data

    def get(self, *keys, default=None):
        current = self.data
        for key in keys:
            if not isinstance(current, dict) or key not in current:
                return default
            current = current[key]
        return current


class TestClassifyPoints(unittest.TestCase):
    def test_basic_poses(self):
        preset = PRESETS['medium']
        self.assertEqual(classify_points(hf.open_hand(), preset), StableGesture.OPEN)
        self.assertEqual(classify_points(hf.fist(), preset), StableGesture.FIST)
        self.assertEqual(classify_points(hf.ok_sign(), preset), StableGesture.OK)
        self.assertEqual(classify_points(None, preset), StableGesture.UNKNOWN)

    def test_parse(self):
        self.assertEqual(StableGesture.parse(' Fist '), StableGesture.FIST)
        self.assertEqual(StableGesture.parse('wave'), StableGesture.UNKNOWN)
        self.assertEqual(StableGesture.parse(None), StableGesture.UNKNOWN)


class TestStableGestureClassifier(unittest.TestCase):
    def setUp(self):
        self.events = MagicMock()
        self.clf = StableGestureClassifier(required_stable_frames=3, events=self.events)

    def test_confirms_after_required_frames(self):
        f = hf.frame(hf.fist())
        self.assertEqual(self.clf.feed(f), StableGesture.UNKNOWN)
        self.assertEqual(self.clf.feed(f), StableGesture.UNKNOWN)
        self.assertEqual(self.clf.feed(f), StableGesture.FIST)
        self.assertEqual(self.clf.feed(f), StableGesture.FIST)
        self.events.dispatch.assert_called_once_with(GESTURE_CONFIRMED, gesture=StableGesture.FIST)

    def test_dropped_hand_cancels_progress(self):
        f = hf.frame(hf.fist())
        self.clf.feed(f)
        self.clf.feed(f)
        self.assertEqual(self.clf.feed(None), StableGesture.UNKNOWN)
        self.assertEqual(self.clf.state.stable_frame_count, 0)
        self.assertIsNone(self.clf.last_points)
        self.clf.feed(f)
        self.assertEqual(self.clf.feed(f), StableGesture.UNKNOWN)
        self.assertEqual(self.clf.feed(f), StableGesture.FIST)

    def test_gate_blocks_other_gestures(self):
        self.clf.gate_to('open')
        for _ in range(5):
            result = self.clf.feed(hf.frame(hf.fist()))
        self.assertEqual(result, StableGesture.UNKNOWN)
        self.events.dispatch.assert_not_called()

        self.clf.enable_gate = False
        for _ in range(3):
            result = self.clf.feed(hf.frame(hf.fist()))
        self.assertEqual(result, StableGesture.FIST)

    def test_apply_unknown_preset_keeps_thresholds(self):
        before = self.clf.preset
        self.clf.apply_preset('impossible')
        self.assertIs(self.clf.preset, before)
        self.clf.apply_preset('easy')
        self.assertEqual(self.clf.preset, PRESETS['easy'])

    def test_config_presets_stay_per_instance(self):
        custom = {'easy': {'ok_tip_dist': 0.5, 'fist_avg_curl': 0.5, 'open_avg_spread': 0.5},
                  'clinic': {'ok_tip_dist': 0.12, 'fist_avg_curl': 0.14, 'open_avg_spread': 0.18}}
        cfg = DictConfig({'gesture_recognition': {'presets': custom, 'default_preset': 'clinic'}})
        original_easy = PRESETS['easy']

        clf = StableGestureClassifier.from_config(cfg)
        self.assertEqual(clf.preset, GesturePreset(0.12, 0.14, 0.18))
        self.assertEqual(clf.presets['easy'], GesturePreset(0.5, 0.5, 0.5))

        self.assertIs(PRESETS['easy'], original_easy)
        self.assertNotIn('clinic', PRESETS)
        other = StableGestureClassifier()
        other.apply_preset('easy')
        self.assertEqual(other.preset, original_easy)


if __name__ == '__main__':
    unittest.main()
