import random
from collections import deque
from typing import Iterable, List, Optional

from handrehab.session.events import DIFFICULTY_CHANGED, emit


MIN_LEVEL = 1
MAX_LEVEL = 5
HISTORY_SIZE = 3
RESET_LEVEL = 3
UPGRADE_THRESHOLD = 60.0
FAST_UPGRADE_THRESHOLD = 80.0


class DifficultyHistory:
    """The last few difficulty levels, oldest first."""

    def __init__(self, size: int = HISTORY_SIZE, initial: Iterable[int] = (MIN_LEVEL,)):
        self.size = size
        self._levels = deque(initial, maxlen=size)

    def record(self, level: int) -> None:
        self._levels.append(int(level))

    @property
    def levels(self) -> List[int]:
        return list(self._levels)

    def is_uniform(self) -> bool:
        """True when the history is full and every entry is the same level."""
        return len(self._levels) >= self.size and len(set(self._levels)) == 1

    def __len__(self) -> int:
        return len(self._levels)


def next_difficulty(
    current: int,
    final_score: float,
    history: DifficultyHistory,
    rng=None,
    min_level: int = MIN_LEVEL,
    max_level: int = MAX_LEVEL,
    reset_level: int = RESET_LEVEL,
    upgrade_threshold: float = UPGRADE_THRESHOLD,
    fast_upgrade_threshold: float = FAST_UPGRADE_THRESHOLD,
) -> int:
    """
    Next difficulty level from the last final score and the level history.

    A history of identical levels forces a single step (or a drop to
    `reset_level` when stuck at the maximum). Otherwise strong rounds jump
    up and weak rounds drop one level with probability 1/2. The result is
    always clamped to [min_level, max_level].

    Args:
        rng: object with a `.random()` method; defaults to the `random` module
    """
    rng = rng or random
    if history.is_uniform():
        if current == max_level:
            nxt = reset_level
        elif final_score >= upgrade_threshold:
            nxt = current + 1
        else:
            nxt = current - 1
    elif final_score >= fast_upgrade_threshold:
        nxt = current + 2
    elif final_score >= upgrade_threshold:
        nxt = current + 1
    elif rng.random() > 0.5:
        nxt = current - 1
    else:
        nxt = current
    return max(min_level, min(max_level, nxt))


class DifficultyController:
    """Owns the current level and its history for one session."""

    def __init__(
        self,
        initial_level: int = MIN_LEVEL,
        history_size: int = HISTORY_SIZE,
        rng=None,
        events=None,
        min_level: int = MIN_LEVEL,
        max_level: int = MAX_LEVEL,
        reset_level: int = RESET_LEVEL,
        upgrade_threshold: float = UPGRADE_THRESHOLD,
        fast_upgrade_threshold: float = FAST_UPGRADE_THRESHOLD,
    ):
        self.min_level = min_level
        self.max_level = max_level
        self.reset_level = reset_level
        self.upgrade_threshold = upgrade_threshold
        self.fast_upgrade_threshold = fast_upgrade_threshold
        self.initial_level = max(min_level, min(max_level, int(initial_level)))
        self.history_size = history_size
        self.rng = rng
        self.events = events
        self.level = self.initial_level
        self.history = DifficultyHistory(history_size, initial=(self.initial_level,))

    @classmethod
    def from_config(cls, cfg=None, rng=None, events=None) -> 'DifficultyController':
        try:
            from handrehab.config.config_manager import get_difficulty_setting
            if cfg is not None:
                def get(name, default):
                    return cfg.get('difficulty', name, default=default)
            else:
                get = get_difficulty_setting
            return cls(
                initial_level=int(get('initial_level', MIN_LEVEL)),
                history_size=int(get('history_size', HISTORY_SIZE)),
                rng=rng,
                events=events,
                min_level=int(get('min_level', MIN_LEVEL)),
                max_level=int(get('max_level', MAX_LEVEL)),
                reset_level=int(get('reset_level', RESET_LEVEL)),
                upgrade_threshold=float(get('upgrade_threshold', UPGRADE_THRESHOLD)),
                fast_upgrade_threshold=float(get('fast_upgrade_threshold', FAST_UPGRADE_THRESHOLD)),
            )
        except Exception as e:
            print(f"⚠ Failed to load difficulty config: {e}")
            return cls(rng=rng, events=events)

    def reset(self) -> None:
        self.level = self.initial_level
        self.history = DifficultyHistory(self.history_size, initial=(self.initial_level,))

    def peek(self, final_score: float, history: Optional[DifficultyHistory] = None) -> int:
        return next_difficulty(
            self.level, final_score, history or self.history, self.rng,
            self.min_level, self.max_level, self.reset_level,
            self.upgrade_threshold, self.fast_upgrade_threshold,
        )

    def advance(self, final_score: float, succeeded: bool = True) -> int:
        """
        Close a round: record the level (succeeded rounds only), compute the
        next level exactly once and apply it.
        """
        if succeeded:
            self.history.record(self.level)
        previous = self.level
        self.level = self.peek(final_score)
        if self.level != previous:
            emit(self.events, DIFFICULTY_CHANGED, level=self.level, previous=previous)
        return self.level
