"""
Configuration Management for HANDREHAB

Loads and provides access to configuration from config.json.
Every recognition threshold, scoring weight, countdown and session
parameter of the training engine is tunable here.
Values are either plain or [value, description] pairs; sections and keys
missing from the file are filled in from DEFAULTS.
"""

import copy
import json
from typing import Dict, Any, Iterable, List, Optional, Tuple
from pathlib import Path


_MISSING = object()


def split_entry(entry: Any) -> Tuple[Any, str]:
    """[value, "description"] -> (value, description); anything else -> (entry, "")."""
    if isinstance(entry, list) and len(entry) == 2 and isinstance(entry[1], str):
        return entry[0], entry[1]
    return entry, ""


def fill_missing(data: Dict, defaults: Dict, prefix: str = "") -> List[str]:
    """Copy absent keys from `defaults` into `data`; returns the dotted paths filled."""
    filled = []
    for key, value in defaults.items():
        path = f"{prefix}{key}"
        if key not in data:
            data[key] = copy.deepcopy(value)
            filled.append(path)
        elif isinstance(value, dict) and isinstance(data[key], dict):
            filled.extend(fill_missing(data[key], value, path + "."))
    return filled


class Config:
    """
    Process-wide training configuration backed by one JSON file.

    Config() returns the shared instance; Config(path) repoints it at
    another file and reloads.
    """
    _instance = None
    _data: Dict[str, Any] = {}
    _path: str = ""

    def __new__(cls, *args, **kwargs):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
        return cls._instance

    def __init__(self, config_path: Optional[str] = None):
        if config_path is not None:
            self._path = str(config_path)
            self.reload()
        elif not self._data:
            self._path = str(Path(__file__).parent / "config.json")
            self.reload()

    @property
    def path(self) -> str:
        return self._path

    @property
    def data(self) -> Dict:
        """Raw configuration tree, descriptions included."""
        return self._data

    def reload(self):
        """Read the file again; unreadable files fall back to DEFAULTS."""
        try:
            with open(self._path, 'r', encoding='utf-8') as f:
                loaded = json.load(f)
            if not isinstance(loaded, dict):
                raise ValueError("top level must be an object")
        except FileNotFoundError:
            print(f"⚠ No training config at {self._path}, using built-in defaults")
            self._data = copy.deepcopy(DEFAULTS)
            return
        except ValueError as e:
            print(f"⚠ Training config {self._path} is invalid ({e}), using built-in defaults")
            self._data = copy.deepcopy(DEFAULTS)
            return

        filled = fill_missing(loaded, DEFAULTS)
        self._data = loaded
        print(f"✓ Training config loaded from {self._path}")
        if filled:
            print(f"  {len(filled)} setting(s) not in file, defaults used: {', '.join(filled[:5])}"
                  + (" ..." if len(filled) > 5 else ""))

    def save(self):
        """Write the current tree back to the file it came from."""
        try:
            with open(self._path, 'w', encoding='utf-8') as f:
                json.dump(self._data, f, indent=2)
            print(f"✓ Training config written to {self._path}")
        except OSError as e:
            print(f"✗ Could not write training config: {e}")

    def _node(self, keys: Iterable[str]) -> Any:
        current = self._data
        for key in keys:
            if not isinstance(current, dict) or key not in current:
                return _MISSING
            current = current[key]
        return current

    def get(self, *keys, default=None) -> Any:
        """
        Value at a key path, with any description stripped.

        Examples:
            config.get('round', 'main_countdown')            # 10.0
            config.get('gesture_recognition', 'presets', 'easy')
        """
        node = self._node(keys)
        return default if node is _MISSING else split_entry(node)[0]

    def get_with_description(self, *keys, default=None) -> Tuple[Any, str]:
        node = self._node(keys)
        return (default, "") if node is _MISSING else split_entry(node)

    def section(self, name: str) -> Dict[str, Any]:
        """One top-level section with every entry unwrapped to its value."""
        node = self._node((name,))
        if not isinstance(node, dict):
            return {}
        return {key: split_entry(entry)[0] for key, entry in node.items()}

    def set(self, *keys, value):
        """
        Set a value, keeping the description of an existing pair.

        Example:
            config.set('session', 'block_size', value=4)
        """
        if not keys:
            return
        parent = self._data
        for key in keys[:-1]:
            if not isinstance(parent.get(key), dict):
                parent[key] = {}
            parent = parent[key]
        _, description = split_entry(parent.get(keys[-1]))
        parent[keys[-1]] = [value, description] if description else value


DEFAULTS: Dict[str, Any] = {
    "finger_state": {
        "finger_straight": 1.6,
        "finger_curled": 1.3,
        "thumb_straight": 1.3,
        "thumb_curled": 1.1,
        "min_knuckle_distance": 0.01
    },
    "rule_scoring": {
        "ok_distance": 0.08,
        "direction_dot": 0.6,
        "crossed_dot": 0.1,
        "unknown_gesture_score": 50
    },
    "template_scoring": {
        "max_distance": 5.0
    },
    "gesture_recognition": {
        "smooth_factor": 0.3,
        "required_stable_frames": 5,
        "enable_gate": True,
        "default_preset": "medium",
        "presets": {
            "easy": {"ok_tip_dist": 0.10, "fist_avg_curl": 0.16, "open_avg_spread": 0.20},
            "medium": {"ok_tip_dist": 0.08, "fist_avg_curl": 0.18, "open_avg_spread": 0.22},
            "hard": {"ok_tip_dist": 0.06, "fist_avg_curl": 0.20, "open_avg_spread": 0.24}
        }
    },
    "round": {
        "rule_weight": 0.6,
        "template_weight": 0.4,
        "success_threshold": 60,
        "main_countdown": 10.0,
        "final_countdown": 3.5,
        "logic_pause": 1.0
    },
    "attitude": {
        "round_interval": 5,
        "cycle_time": 5.0,
        "hold_required": 3.0,
        "countdown": 30.0,
        "score_threshold": 70,
        "vertical_margin": 0.1
    },
    "difficulty": {
        "min_level": 1,
        "max_level": 5,
        "history_size": 3,
        "reset_level": 3,
        "initial_level": 1,
        "upgrade_threshold": 60,
        "fast_upgrade_threshold": 80
    },
    "session": {
        "total_rounds_target": 10,
        "block_size": 3,
        "rest_seconds": 300
    },
    "state_check": {
        "thumbs_hold": 0.6,
        "warmup": 0.7,
        "invert_thumb_y": True,
        "thumb_straight_min": 0.10,
        "min_vector_len": 0.03,
        "angle_tolerance_deg": 25,
        "need_other_fingers_curled": False,
        "four_fingers_curl_min": 0.16
    },
    "card_mode": {
        "require_scan": True,
        "default_hold_secs": 1.0
    },
    "mode_selection": {
        "selection_time": 2.0,
        "isolation_distance": 0.08
    },
    "camera": {
        "index": 0,
        "width": 640,
        "height": 480,
        "fps": 30
    },
    "performance": {
        "use_gpu": False,
        "max_hands": 1,
        "min_detection_confidence": 0.7,
        "min_tracking_confidence": 0.5
    },
    "display": {
        "show_window": True,
        "flip_horizontal": True,
        "window_name": "HANDREHAB"
    },
    "paths": {
        "templates_dir": "recordings",
        "log_dir": "sessions"
    }
}


# Global configuration instance
config = Config()


# Convenience functions for common access patterns
def get_recognition_setting(param_name: str, default=None):
    """Get a stabilized gesture classifier parameter."""
    return config.get('gesture_recognition', param_name, default=default)


def get_preset(name: str, default=None) -> Optional[Dict[str, float]]:
    """Get a difficulty preset (ok_tip_dist, fist_avg_curl, open_avg_spread)."""
    return config.get('gesture_recognition', 'presets', name, default=default)


def get_scoring_setting(section: str, param_name: str, default=None):
    """Get a scoring parameter from 'rule_scoring', 'template_scoring' or 'round'."""
    return config.get(section, param_name, default=default)


def get_session_setting(param_name: str, default=None):
    """Get a training session parameter."""
    return config.get('session', param_name, default=default)


def get_state_check_setting(param_name: str, default=None):
    """Get a thumb state-check parameter."""
    return config.get('state_check', param_name, default=default)


def get_attitude_setting(param_name: str, default=None):
    """Get an attitude sub-flow parameter."""
    return config.get('attitude', param_name, default=default)


def get_difficulty_setting(param_name: str, default=None):
    """Get a difficulty controller parameter."""
    return config.get('difficulty', param_name, default=default)


if __name__ == "__main__":
    print("\n=== Configuration Test ===\n")

    print("Round Scoring:")
    print(f"  Weights: rule={get_scoring_setting('round', 'rule_weight')} "
          f"template={get_scoring_setting('round', 'template_weight')}")
    print(f"  Countdown: {get_scoring_setting('round', 'main_countdown')}s")

    print("\nSession:")
    print(f"  Block size: {get_session_setting('block_size')}")
    print(f"  Rest: {get_session_setting('rest_seconds')}s")

    print("\nState check:")
    print(f"  Thumb hold: {get_state_check_setting('thumbs_hold')}s")

    print("\n✓ Configuration system working!")
