import numpy as np
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from handrehab.utils.math_utils import euclidean, landmarks_to_array
from handrehab.detectors.hand_metrics import NUM_LANDMARKS, normalize_landmarks


MAX_TEMPLATE_DISTANCE = 5.0


def template_distance(live, reference) -> Optional[float]:
    """Summed 3D distance between normalized landmark sets, or None if invalid."""
    a = normalize_landmarks(live)
    b = normalize_landmarks(reference)
    if a is None or b is None:
        return None
    return float(np.sum(euclidean(a, b)))


def template_score(live, reference, max_distance: float = MAX_TEMPLATE_DISTANCE) -> int:
    """Similarity of a live frame to a reference set, 0..100.

    Both sides are normalized (wrist origin, wrist-to-middle-knuckle
    scale) before comparison. Missing or invalid data scores 0.
    """
    if reference is None:
        return 0
    if isinstance(reference, ReferenceTemplate):
        reference = reference.landmarks
    dist = template_distance(live, reference)
    if dist is None:
        return 0
    clamped = min(max(dist, 0.0), max_distance)
    return int(round(100.0 * (1.0 - clamped / max_distance)))


@dataclass(frozen=True)
class ReferenceTemplate:
    """A recorded gesture: normalized landmarks under a gesture name."""
    name: str
    landmarks: np.ndarray = field(compare=False)
    screenshot: Optional[str] = None

    @classmethod
    def create(cls, name: str, points, screenshot: Optional[str] = None) -> Optional['ReferenceTemplate']:
        norm = normalize_landmarks(points)
        if norm is None:
            return None
        norm = np.array(norm, dtype=float)
        norm.flags.writeable = False
        return cls(name=name, landmarks=norm, screenshot=screenshot)

    @classmethod
    def from_record(cls, record: Dict) -> Optional['ReferenceTemplate']:
        """Build from the persisted shape {GestureId, Landmarks, ScreenshotFileName}.

        Returns None unless the record holds exactly 21 points.
        """
        if not isinstance(record, dict):
            return None
        name = record.get('GestureId')
        raw = record.get('Landmarks')
        if not name or not isinstance(raw, list) or len(raw) != NUM_LANDMARKS:
            return None
        try:
            points = landmarks_to_array(
                [(p.get('x', 0.0), p.get('y', 0.0), p.get('z', 0.0)) if isinstance(p, dict) else p
                 for p in raw]
            )
        except (TypeError, ValueError):
            return None
        if points.shape != (NUM_LANDMARKS, 3):
            return None
        return cls.create(str(name), points, record.get('ScreenshotFileName'))

    def to_record(self) -> Dict:
        return {
            'GestureId': self.name,
            'Landmarks': [{'x': float(x), 'y': float(y), 'z': float(z)} for x, y, z in self.landmarks],
            'ScreenshotFileName': self.screenshot or '',
        }


class TemplateLibrary:
    """Name -> ReferenceTemplate lookup, populated once at startup."""

    def __init__(self, templates: Iterable[ReferenceTemplate] = (), max_distance: float = MAX_TEMPLATE_DISTANCE):
        self.max_distance = max_distance
        self._templates: Dict[str, ReferenceTemplate] = {}
        for t in templates:
            self.add(t)

    def add(self, template: ReferenceTemplate) -> None:
        self._templates[template.name] = template

    def get(self, name: str) -> Optional[ReferenceTemplate]:
        return self._templates.get(name)

    def names(self) -> List[str]:
        return sorted(self._templates)

    def __contains__(self, name) -> bool:
        return name in self._templates

    def __len__(self) -> int:
        return len(self._templates)

    def load_records(self, records: Iterable[Dict]) -> int:
        """Add every valid record; return how many were discarded."""
        discarded = 0
        for record in records:
            template = ReferenceTemplate.from_record(record)
            if template is None:
                discarded += 1
                continue
            self.add(template)
        return discarded

    def attitude_template(self, kind: str) -> Optional[ReferenceTemplate]:
        """First template usable as the 'like' or 'dislike' reference."""
        for name in self.names():
            lowered = name.lower()
            if kind == 'dislike' and 'dislike' in lowered:
                return self._templates[name]
            if kind == 'like' and 'like' in lowered and 'dislike' not in lowered:
                return self._templates[name]
        return None

    def score(self, name: str, frame) -> int:
        return template_score(frame, self.get(name), self.max_distance)

    @classmethod
    def from_config(cls, templates: Iterable[ReferenceTemplate] = (), cfg=None) -> 'TemplateLibrary':
        try:
            from handrehab.config.config_manager import config as global_config
            cfg = cfg or global_config
            max_distance = float(cfg.get('template_scoring', 'max_distance', default=MAX_TEMPLATE_DISTANCE))
        except Exception as e:
            print(f"⚠ Failed to load template scoring config: {e}")
            max_distance = MAX_TEMPLATE_DISTANCE
        return cls(templates, max_distance=max_distance)
