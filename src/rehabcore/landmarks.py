"""
Landmark indices and input coercion.

The external detector hands over 33 landmarks per frame, either as
MediaPipe landmark objects, plain dicts, or an already-stacked array.
Everything downstream works on a float ``(33, 4)`` array of
``[x, y, z, visibility]``.
"""

from typing import Any, Optional, Sequence

import numpy as np

NOSE = 0
LEFT_SHOULDER = 11
RIGHT_SHOULDER = 12
LEFT_ELBOW = 13
RIGHT_ELBOW = 14
LEFT_WRIST = 15
RIGHT_WRIST = 16
LEFT_PINKY = 17
RIGHT_PINKY = 18
LEFT_INDEX = 19
RIGHT_INDEX = 20
LEFT_THUMB = 21
RIGHT_THUMB = 22
LEFT_HIP = 23
RIGHT_HIP = 24
LEFT_KNEE = 25
RIGHT_KNEE = 26
LEFT_ANKLE = 27
RIGHT_ANKLE = 28

ARM_JOINTS = (LEFT_SHOULDER, LEFT_ELBOW, LEFT_WRIST, RIGHT_SHOULDER, RIGHT_ELBOW, RIGHT_WRIST)
LEG_JOINTS = (LEFT_HIP, LEFT_KNEE, LEFT_ANKLE, RIGHT_HIP, RIGHT_KNEE, RIGHT_ANKLE)
UPPER_BODY_HULL = ARM_JOINTS


def _coerce_one(lm: Any) -> list[float]:
    if isinstance(lm, dict):
        vis = lm.get("visibility")
        return [
            float(lm.get("x", 0.0)),
            float(lm.get("y", 0.0)),
            float(lm.get("z", 0.0) or 0.0),
            float("nan") if vis is None else float(vis),
        ]
    if hasattr(lm, "x") and hasattr(lm, "y"):
        vis = getattr(lm, "visibility", None)
        return [
            float(lm.x),
            float(lm.y),
            float(getattr(lm, "z", 0.0) or 0.0),
            float("nan") if vis is None else float(vis),
        ]
    values = [float(v) for v in lm]
    if len(values) == 3:
        values.append(float("nan"))
    return values[:4]


def to_landmark_array(landmarks: Optional[Sequence[Any]]) -> Optional[np.ndarray]:
    """Convert detector output to a float ``(N, 4)`` array.

    Args:
        landmarks: ``(N, 3|4)`` array-like, list of dicts with ``x, y, z``
            and optional ``visibility``, or landmark objects exposing the
            same attributes.

    Returns:
        Array of shape ``(N, 4)``; missing visibility is NaN.
        ``None`` for empty or malformed input.
    """
    if landmarks is None:
        return None
    if isinstance(landmarks, np.ndarray):
        if landmarks.size == 0:
            return None
        arr = np.asarray(landmarks, dtype=np.float64)
        if arr.ndim != 2 or arr.shape[1] < 3:
            return None
        if arr.shape[1] == 3:
            arr = np.concatenate([arr, np.full((arr.shape[0], 1), np.nan)], axis=1)
        return arr[:, :4].copy()

    rows = [_coerce_one(lm) for lm in landmarks]
    if not rows or any(len(r) != 4 for r in rows):
        return None
    return np.asarray(rows, dtype=np.float64)
