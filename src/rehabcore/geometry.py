"""
Geometry and scoring primitives shared by the feature extractor, the
rep state machines and the form scorers. All functions are pure.
"""

import math
from typing import Iterable, Optional, Sequence

import numpy as np

from .config import EPS

_ANGLE_EPS = 1e-12


def joint_angle(a: Sequence[float], b: Sequence[float], c: Sequence[float]) -> float:
    """Return the angle (degrees) at vertex ``b`` formed by ``a-b-c``.

    Points may be 2D or 3D. The norm product is floored at a small
    epsilon so zero-length rays yield a finite value in ``[0, 180]``
    instead of raising.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    c = np.asarray(c, dtype=np.float64)
    ba = a - b
    bc = c - b
    denom = max(float(np.linalg.norm(ba) * np.linalg.norm(bc)), _ANGLE_EPS)
    cosang = float(np.dot(ba, bc) / denom)
    cosang = max(-1.0, min(1.0, cosang))
    return math.degrees(math.acos(cosang))


def distance_2d(p: Sequence[float], q: Sequence[float]) -> float:
    """Euclidean distance over the x/y components only."""
    return math.hypot(float(p[0]) - float(q[0]), float(p[1]) - float(q[1]))


def _cross(o, a, b) -> float:
    return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])


def convex_hull(points: Iterable[Sequence[float]]) -> list[tuple[float, float]]:
    """Monotone-chain convex hull of 2D points, counter-clockwise."""
    pts = sorted({(float(p[0]), float(p[1])) for p in points})
    if len(pts) <= 2:
        return pts

    lower: list[tuple[float, float]] = []
    for p in pts:
        while len(lower) >= 2 and _cross(lower[-2], lower[-1], p) <= 0:
            lower.pop()
        lower.append(p)

    upper: list[tuple[float, float]] = []
    for p in reversed(pts):
        while len(upper) >= 2 and _cross(upper[-2], upper[-1], p) <= 0:
            upper.pop()
        upper.append(p)

    return lower[:-1] + upper[:-1]


def convex_hull_area(points: Iterable[Sequence[float]]) -> float:
    """Area enclosed by the convex hull (shoelace formula). 0 for <= 2 points."""
    hull = convex_hull(points)
    if len(hull) <= 2:
        return 0.0
    area = 0.0
    for i, (x1, y1) in enumerate(hull):
        x2, y2 = hull[(i + 1) % len(hull)]
        area += x1 * y2 - x2 * y1
    return abs(area) / 2.0


def containment_score(user_range: Sequence[float], ref_range: Sequence[float]) -> float:
    """Fraction of the observed ``[min, max]`` interval inside the reference one."""
    user_min, user_max = float(user_range[0]), float(user_range[1])
    ref_min, ref_max = float(ref_range[0]), float(ref_range[1])

    if user_min == user_max:
        return 1.0 if ref_min <= user_min <= ref_max else 0.0

    user_length = user_max - user_min
    if user_length <= 0:
        return 1.0

    overlap = max(0.0, min(user_max, ref_max) - max(user_min, ref_min))
    return overlap / user_length


def range_deviation(value: float, bounds: Sequence[float]) -> float:
    """0 inside ``[low, high]``, otherwise the distance to the nearest bound."""
    low, high = float(bounds[0]), float(bounds[1])
    if value < low:
        return low - value
    if value > high:
        return value - high
    return 0.0


def mean_absolute_error(errors: Sequence[float]) -> float:
    if len(errors) == 0:
        return 0.0
    return float(sum(errors) / len(errors))


def ema(prev: Optional[float], x: float, alpha: float) -> float:
    """Exponential moving average step; seeds with ``x`` when ``prev`` is None."""
    if prev is None:
        return x
    return alpha * x + (1.0 - alpha) * prev


def normalize_landmarks_2d(points: np.ndarray) -> Optional[np.ndarray]:
    """Torso-aligned 2D normalization of a ``(33, >=2)`` landmark array.

    Steps:
        1. Fit a least-squares line through both shoulders and hips to
           estimate torso tilt (vertical fit -> 90 degrees).
        2. Translate so the hip centre is the origin.
        3. Rotate by the negative tilt.
        4. Scale by the shoulder-centre to hip-centre distance.

    Returns:
        ``(33, 2)`` array, or ``None`` if the torso is degenerate.
    """
    xy = np.asarray(points, dtype=np.float64)[:, :2]
    torso = xy[[11, 12, 23, 24]]

    n = torso.shape[0]
    sx, sy = torso[:, 0].sum(), torso[:, 1].sum()
    sxy = (torso[:, 0] * torso[:, 1]).sum()
    sxx = (torso[:, 0] ** 2).sum()
    denom = n * sxx - sx * sx
    theta = math.pi / 2 if abs(denom) < EPS else math.atan((n * sxy - sx * sy) / denom)

    shoulder_center = (xy[11] + xy[12]) / 2.0
    hip_center = (xy[23] + xy[24]) / 2.0
    scale = float(np.linalg.norm(shoulder_center - hip_center))
    if scale < EPS:
        return None

    cos_t, sin_t = math.cos(-theta), math.sin(-theta)
    rot = np.array([[cos_t, -sin_t], [sin_t, cos_t]])
    return ((xy - hip_center) @ rot.T) / scale
