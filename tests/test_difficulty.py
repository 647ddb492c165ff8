import unittest
from unittest.mock import MagicMock
import sys
import os

# Add path to source
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from handrehab.session.difficulty import DifficultyController, DifficultyHistory, next_difficulty
from handrehab.session.events import DIFFICULTY_CHANGED


class FixedRandom:
    """Deterministic stand-in for the `random` module."""

    def __init__(self, value=0.0):
        self.value = value

    def random(self):
        return self.value

    def choice(self, seq):
        return seq[0]


class TestNextDifficulty(unittest.TestCase):
    def test_fast_and_normal_upgrade(self):
        history = DifficultyHistory(initial=(1,))
        self.assertEqual(next_difficulty(1, 85, history), 3)
        self.assertEqual(next_difficulty(1, 65, history), 2)

    def test_low_score_drops_on_coin_flip(self):
        history = DifficultyHistory(initial=(2, 3))
        self.assertEqual(next_difficulty(3, 30, history, FixedRandom(0.9)), 2)
        self.assertEqual(next_difficulty(3, 30, history, FixedRandom(0.2)), 3)

    def test_uniform_history_forces_single_step(self):
        history = DifficultyHistory(initial=(2, 2, 2))
        self.assertEqual(next_difficulty(2, 95, history), 3)
        self.assertEqual(next_difficulty(2, 40, history), 1)

    def test_stuck_at_max_resets(self):
        history = DifficultyHistory(initial=(5, 5, 5))
        self.assertEqual(next_difficulty(5, 100, history), 3)
        for score in (0, 59, 60, 100):
            self.assertEqual(next_difficulty(5, score, DifficultyHistory(initial=(3, 3, 3))), 3)

    def test_result_is_clamped(self):
        history = DifficultyHistory(initial=(3, 4))
        self.assertEqual(next_difficulty(4, 90, history), 5)
        self.assertEqual(next_difficulty(1, 10, DifficultyHistory(initial=(1,)), FixedRandom(0.9)), 1)

    def test_history_is_bounded(self):
        history = DifficultyHistory(size=3, initial=(1,))
        for level in (2, 3, 4):
            history.record(level)
        self.assertEqual(history.levels, [2, 3, 4])
        self.assertFalse(history.is_uniform())


class TestDifficultyController(unittest.TestCase):
    def test_advance_records_success_only(self):
        events = MagicMock()
        ctrl = DifficultyController(rng=FixedRandom(0.2), events=events)
        self.assertEqual(ctrl.advance(70, succeeded=True), 2)
        self.assertEqual(ctrl.history.levels, [1, 1])
        events.dispatch.assert_called_once_with(DIFFICULTY_CHANGED, level=2, previous=1)

        ctrl.advance(10, succeeded=False)
        self.assertEqual(ctrl.history.levels, [1, 1])
        self.assertEqual(ctrl.level, 2)

    def test_reset(self):
        ctrl = DifficultyController(initial_level=2)
        ctrl.advance(90)
        ctrl.reset()
        self.assertEqual(ctrl.level, 2)
        self.assertEqual(ctrl.history.levels, [2])


if __name__ == '__main__':
    unittest.main()
