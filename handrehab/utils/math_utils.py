import numpy as np
from typing import Iterable, Union


EPS = 1e-5


def landmarks_to_array(landmarks: Iterable) -> np.ndarray:
    """Convert an iterable of landmarks into an Nx3 NumPy array.

    Accepts MediaPipe landmark objects (with `.x`, `.y` and optional `.z`)
    as well as plain (x, y) or (x, y, z) sequences. Missing depth is 0.

    Returns:
        np.ndarray of shape (N, 3) dtype float with columns (x, y, z).
    """
    rows = []
    for lm in landmarks:
        if hasattr(lm, 'x'):
            rows.append([lm.x, lm.y, getattr(lm, 'z', 0.0) or 0.0])
        else:
            vals = list(lm)
            if len(vals) == 2:
                vals.append(0.0)
            rows.append(vals[:3])
    if not rows:
        return np.zeros((0, 3), dtype=float)
    return np.array(rows, dtype=float)


def euclidean(a, b):
    """Euclidean distance between points.

    - If `a` and `b` are 1-D points, returns a scalar.
    - If arrays of points, returns distances per-row.
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    return np.linalg.norm(a - b, axis=-1)


def clamp01(x: float) -> float:
    return float(min(1.0, max(0.0, x)))


def unit(v) -> np.ndarray:
    """Normalize a vector, leaving (near) zero vectors as zeros."""
    v = np.asarray(v, dtype=float)
    n = float(np.linalg.norm(v))
    if n < 1e-9:
        return np.zeros_like(v)
    return v / n


def angle_delta(a: float, b: float) -> float:
    """Signed difference a - b in degrees wrapped into [-180, 180]."""
    d = (a - b) % 360.0
    if d > 180.0:
        d -= 360.0
    return d


def curl(tip, pip, mcp) -> float:
    """Finger curl in 0..1 (0 = straight, 1 = fully bent).

    Ratio of tip-to-base distance against mid-joint-to-base distance,
    inverted so that bending the finger raises the value.
    """
    d_tip = float(euclidean(tip, mcp))
    d_pip = float(euclidean(pip, mcp))
    return 1.0 - clamp01(d_tip / (d_pip + EPS))


class EWMA:
    """Exponential weighted moving average for smoothing point sets.

    `alpha` is the weight of the newest sample, so
    value = value + alpha * (x - value).

    Example:
        s = EWMA(alpha=0.3)
        smoothed = s.update(points)
    """

    def __init__(self, alpha: float = 0.3, init: Union[None, Iterable] = None) -> None:
        self.alpha = float(alpha)
        self.value = None if init is None else np.array(init, dtype=float)

    def update(self, x: Iterable) -> np.ndarray:
        x = np.array(x, dtype=float)
        if self.value is None or self.value.shape != x.shape:
            self.value = x
        else:
            self.value = self.alpha * x + (1 - self.alpha) * self.value
        return self.value

    def reset(self) -> None:
        self.value = None


__all__ = [
    "landmarks_to_array",
    "euclidean",
    "clamp01",
    "unit",
    "angle_delta",
    "curl",
    "EWMA",
]
