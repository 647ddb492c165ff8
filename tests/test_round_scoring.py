import unittest
import sys
import os

# Add path to source
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from handrehab.detectors.template_scorer import ReferenceTemplate, TemplateLibrary
from handrehab.session.round_scoring import (
    Attitude, RoundPhase, RoundScoringEngine, SessionRoundRecord,
    blend_live_score, compute_final_score,
)
import hand_fixtures as hf


class TestScoreFormulas(unittest.TestCase):
    def test_blend_rounds(self):
        self.assertEqual(blend_live_score(100, 0), 60)
        self.assertEqual(blend_live_score(55, 56), 55)
        self.assertEqual(blend_live_score(57, 56), 57)

    def test_final_score(self):
        self.assertAlmostEqual(compute_final_score(100, 0, Attitude.GOOD), 100.0)
        self.assertAlmostEqual(compute_final_score(0, 10, Attitude.BAD), 0.0)
        self.assertAlmostEqual(compute_final_score(82, 3.0, Attitude.NEUTRAL), 70.8)
        # Slower than the countdown never goes negative
        self.assertAlmostEqual(compute_final_score(0, 20, Attitude.NEUTRAL), 10.0)

    def test_record_dict_keys(self):
        rec = SessionRoundRecord('2peace', 80, 71.234, 70, 90, 3.456, Attitude.GOOD, 3)
        data = rec.to_dict()
        self.assertEqual(data['GestureName'], '2peace')
        self.assertEqual(data['FinalScore'], 71.23)
        self.assertEqual(data['TimeTaken'], 3.46)
        self.assertEqual(data['mode'], 1)
        self.assertEqual(SessionRoundRecord.from_dict(data).attitude, Attitude.GOOD)


class TestRoundScoringEngine(unittest.TestCase):
    def setUp(self):
        self.engine = RoundScoringEngine()

    def test_success_keeps_peak(self):
        self.engine.start_round('1fist')
        for _ in range(5):
            self.engine.update_scores(50, 50)
            self.assertIsNone(self.engine.tick(0.5))
        self.engine.update_scores(70, 70)
        self.assertIsNone(self.engine.tick(0.5))
        self.assertEqual(self.engine.phase, RoundPhase.FINAL_COUNTDOWN)

        outcome = None
        scores = [75, 82, 64, 70, 70, 70, 70]
        for s in scores:
            self.engine.update_scores(s, s)
            outcome = self.engine.tick(0.5)
        self.assertIsNotNone(outcome)
        self.assertTrue(outcome.succeeded)
        self.assertEqual(outcome.finish_score, 82)
        self.assertAlmostEqual(outcome.time_taken, 3.0)
        final = compute_final_score(outcome.finish_score, outcome.time_taken, Attitude.NEUTRAL)
        self.assertAlmostEqual(final, 70.8)

    def test_timeout_fails_round(self):
        self.engine.start_round('1fist')
        outcome = None
        ticks = 0
        while outcome is None and ticks < 100:
            self.engine.update_scores(30, 30)
            outcome = self.engine.tick(0.5)
            ticks += 1
        self.assertEqual(ticks, 20)
        self.assertFalse(outcome.succeeded)
        self.assertEqual(outcome.finish_score, 0)
        self.assertEqual(outcome.time_taken, 10.0)
        self.assertFalse(self.engine.active)

    def test_missing_hand_zeroes_scores(self):
        lib = TemplateLibrary([ReferenceTemplate.create('1fist', hf.fist())])
        engine = RoundScoringEngine(templates=lib)
        engine.start_round('1fist')
        self.assertEqual(engine.process_frame(hf.frame(hf.fist())), 100)
        self.assertEqual(engine.process_frame(None), 0)
        self.assertFalse(engine.hand_visible)

    def test_tick_outside_round(self):
        self.assertIsNone(self.engine.tick(1.0))


if __name__ == '__main__':
    unittest.main()
