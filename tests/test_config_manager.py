import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch
import sys
import os

# Add path to source
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from handrehab.config import config_manager
from handrehab.config.config_manager import Config, DEFAULTS
from handrehab.session.difficulty import DifficultyController
from handrehab.session.round_scoring import RoundScoringEngine
from handrehab.session.training_session import TrainingSessionStateMachine


BUNDLED = Path(config_manager.__file__).parent / 'config.json'


class TestConfig(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.path = Path(self.tmp.name) / 'config.json'

    def tearDown(self):
        with patch('builtins.print'):
            Config(str(BUNDLED))

    def _load(self, data):
        self.path.write_text(json.dumps(data))
        with patch('builtins.print'):
            return Config(str(self.path))

    def test_singleton(self):
        self.assertIs(Config(), config_manager.config)

    def test_bundled_file_matches_defaults(self):
        with open(BUNDLED) as f:
            bundled = json.load(f)
        self.assertEqual(set(bundled), set(DEFAULTS))
        cfg = Config(str(BUNDLED))
        for section, values in DEFAULTS.items():
            for key, value in values.items():
                self.assertEqual(cfg.get(section, key), value, f"{section}.{key}")

    def test_value_description_pairs(self):
        cfg = self._load({'session': {'block_size': [4, 'Rounds per block'], 'rest_seconds': 60}})
        self.assertEqual(cfg.get('session', 'block_size'), 4)
        self.assertEqual(cfg.get_with_description('session', 'block_size'), (4, 'Rounds per block'))
        self.assertEqual(cfg.get_with_description('session', 'rest_seconds'), (60, ''))
        self.assertEqual(cfg.get('session', 'missing', default=7), 7)
        self.assertEqual(cfg.get_with_description('session', 'missing', default=7), (7, ''))

    def test_set_keeps_description(self):
        cfg = self._load({'session': {'block_size': [4, 'Rounds per block']}})
        cfg.set('session', 'block_size', value=5)
        self.assertEqual(cfg.data['session']['block_size'], [5, 'Rounds per block'])
        cfg.set('round', 'main_countdown', value=8.0)
        self.assertEqual(cfg.get('round', 'main_countdown'), 8.0)

    def test_missing_or_broken_file_uses_defaults(self):
        with patch('builtins.print'):
            cfg = Config(str(Path(self.tmp.name) / 'absent.json'))
        self.assertEqual(cfg.get('session', 'block_size'), DEFAULTS['session']['block_size'])

        self.path.write_text('{broken')
        with patch('builtins.print'):
            cfg = Config(str(self.path))
        self.assertEqual(cfg.get('round', 'final_countdown'), DEFAULTS['round']['final_countdown'])

    def test_partial_file_is_filled_from_defaults(self):
        cfg = self._load({'session': {'block_size': [4, 'Rounds per block']}})
        self.assertEqual(cfg.get('session', 'block_size'), 4)
        self.assertEqual(cfg.get('session', 'rest_seconds'), DEFAULTS['session']['rest_seconds'])
        self.assertEqual(cfg.get('round', 'main_countdown'), DEFAULTS['round']['main_countdown'])

    def test_section_unwraps_descriptions(self):
        cfg = self._load({'card_mode': {'require_scan': [False, 'Need a card first'], 'default_hold_secs': 2.0}})
        self.assertEqual(cfg.section('card_mode'), {'require_scan': False, 'default_hold_secs': 2.0})
        self.assertEqual(cfg.section('nope'), {})

    def test_non_object_file_uses_defaults(self):
        self.path.write_text('[1, 2]')
        with patch('builtins.print'):
            cfg = Config(str(self.path))
        self.assertEqual(cfg.get('session', 'block_size'), DEFAULTS['session']['block_size'])

    def test_components_read_config(self):
        cfg = self._load({
            'round': {'main_countdown': [8.0, 'Round length'], 'success_threshold': 70},
            'session': {'block_size': 2},
            'difficulty': {'initial_level': 2},
        })
        engine = RoundScoringEngine.from_config(cfg=cfg)
        self.assertEqual(engine.main_countdown, 8.0)
        self.assertEqual(engine.success_threshold, 70.0)
        self.assertEqual(TrainingSessionStateMachine.from_config(cfg).block_size, 2)
        self.assertEqual(DifficultyController.from_config(cfg).level, 2)


if __name__ == '__main__':
    unittest.main()
