"""
Per-frame feature extraction.

Turns one frame of 33 landmarks into:
    A. a flat 141-d vector for the activity classifier
       (33 x [x, y, z, visibility] + 9 derived features), and
    B. a ``PoseFeatures`` record consumed by the rep state machines,
       the cross-exercise validator and the form scorers.

Nothing in here raises on degenerate geometry; divisions are guarded by
``EPS`` and angles fall back to finite values.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from . import landmarks as lm
from .config import EPS, NUM_LANDMARKS
from .geometry import convex_hull_area, distance_2d, joint_angle, normalize_landmarks_2d

logger = logging.getLogger(__name__)

DERIVED_FEATURE_NAMES = [
    "left_elbow_angle",
    "right_elbow_angle",
    "left_hip_angle",
    "right_hip_angle",
    "left_knee_angle",
    "right_knee_angle",
    "shoulder_width_ratio",
    "hip_width_ratio",
    "torso_vertical_cosine",
]


@dataclass(frozen=True)
class PoseFeatures:
    """Frame-scoped pose summary. Angles in degrees, coordinates normalized."""

    t_ms: float

    left_elbow: float
    right_elbow: float
    left_knee: float
    right_knee: float
    left_hip: float
    right_hip: float
    left_shoulder: float
    right_shoulder: float

    # normalized image coords, larger y = lower in the frame
    left_wrist_y: float
    right_wrist_y: float
    left_shoulder_y: float
    right_shoulder_y: float
    nose_y: float

    # hand orientation
    left_thumb_x: float
    left_thumb_y: float
    left_pinky_x: float
    left_pinky_y: float
    right_thumb_x: float
    right_thumb_y: float
    right_pinky_x: float
    right_pinky_y: float

    vis_arms: float
    vis_legs: float

    def angles(self) -> dict[str, float]:
        """Bilateral joint angles keyed ``<joint>_<l|r>``."""
        return {
            "elbow_l": self.left_elbow,
            "elbow_r": self.right_elbow,
            "knee_l": self.left_knee,
            "knee_r": self.right_knee,
            "hip_l": self.left_hip,
            "hip_r": self.right_hip,
            "shoulder_l": self.left_shoulder,
            "shoulder_r": self.right_shoulder,
        }


# ============================================================================
# Output A: classifier feature vector
# ============================================================================

def _planar_angle(points: np.ndarray, i: int, j: int, k: int) -> float:
    return joint_angle(points[i, :2], points[j, :2], points[k, :2])


def extract_activity_features(points: np.ndarray) -> np.ndarray:
    """Build the 141-d activity vector from normalized landmarks.

    Args:
        points: ``(33, 4)`` array of normalized ``[x, y, z, visibility]``.

    Returns:
        float64 array of shape ``(141,)``. Missing visibility is encoded as 0.
    """
    raw = np.nan_to_num(points[:NUM_LANDMARKS, :4], nan=0.0).reshape(-1)

    derived = [
        _planar_angle(points, lm.LEFT_SHOULDER, lm.LEFT_ELBOW, lm.LEFT_WRIST),
        _planar_angle(points, lm.RIGHT_SHOULDER, lm.RIGHT_ELBOW, lm.RIGHT_WRIST),
        _planar_angle(points, lm.LEFT_SHOULDER, lm.LEFT_HIP, lm.LEFT_KNEE),
        _planar_angle(points, lm.RIGHT_SHOULDER, lm.RIGHT_HIP, lm.RIGHT_KNEE),
        _planar_angle(points, lm.LEFT_HIP, lm.LEFT_KNEE, lm.LEFT_ANKLE),
        _planar_angle(points, lm.RIGHT_HIP, lm.RIGHT_KNEE, lm.RIGHT_ANKLE),
    ]

    shoulder_width = distance_2d(points[lm.LEFT_SHOULDER], points[lm.RIGHT_SHOULDER])
    hip_width = distance_2d(points[lm.LEFT_HIP], points[lm.RIGHT_HIP])
    mid_shoulder = (points[lm.LEFT_SHOULDER, :2] + points[lm.RIGHT_SHOULDER, :2]) / 2.0
    mid_hip = (points[lm.LEFT_HIP, :2] + points[lm.RIGHT_HIP, :2]) / 2.0
    torso_height = distance_2d(mid_shoulder, mid_hip)

    derived.append(shoulder_width / (torso_height + EPS))
    derived.append(hip_width / (torso_height + EPS))

    # Cosine between the hip->shoulder vector and image "up" (0, -1).
    torso_vec = mid_shoulder - mid_hip
    norm = float(np.linalg.norm(torso_vec))
    derived.append(float(-torso_vec[1] / norm) if norm > 0 else 0.0)

    return np.concatenate([raw, np.asarray(derived, dtype=np.float64)])


# ============================================================================
# Output B: PoseFeatures
# ============================================================================

def _mean_visibility(points: np.ndarray, idxs: tuple[int, ...]) -> float:
    vis = points[list(idxs), 3]
    # absent visibility counts as fully visible
    vis = np.where(np.isnan(vis), 1.0, vis)
    return float(np.mean(vis)) if vis.size else 0.0


def compute_pose_features(
    normalized: np.ndarray,
    world: Optional[np.ndarray],
    t_ms: float,
) -> PoseFeatures:
    """Compute the ``PoseFeatures`` record for one frame.

    Angles come from world landmarks (metric space) when supplied;
    otherwise the normalized landmarks are used as a stand-in, which skews
    angles under perspective but keeps counting alive.
    """
    if world is None or world.shape[0] < NUM_LANDMARKS:
        world = normalized

    def ang(i: int, j: int, k: int) -> float:
        return joint_angle(world[i, :3], world[j, :3], world[k, :3])

    return PoseFeatures(
        t_ms=float(t_ms),
        left_elbow=ang(lm.LEFT_SHOULDER, lm.LEFT_ELBOW, lm.LEFT_WRIST),
        right_elbow=ang(lm.RIGHT_SHOULDER, lm.RIGHT_ELBOW, lm.RIGHT_WRIST),
        left_knee=ang(lm.LEFT_HIP, lm.LEFT_KNEE, lm.LEFT_ANKLE),
        right_knee=ang(lm.RIGHT_HIP, lm.RIGHT_KNEE, lm.RIGHT_ANKLE),
        left_hip=ang(lm.LEFT_SHOULDER, lm.LEFT_HIP, lm.LEFT_KNEE),
        right_hip=ang(lm.RIGHT_SHOULDER, lm.RIGHT_HIP, lm.RIGHT_KNEE),
        left_shoulder=ang(lm.LEFT_HIP, lm.LEFT_SHOULDER, lm.LEFT_ELBOW),
        right_shoulder=ang(lm.RIGHT_HIP, lm.RIGHT_SHOULDER, lm.RIGHT_ELBOW),
        left_wrist_y=float(normalized[lm.LEFT_WRIST, 1]),
        right_wrist_y=float(normalized[lm.RIGHT_WRIST, 1]),
        left_shoulder_y=float(normalized[lm.LEFT_SHOULDER, 1]),
        right_shoulder_y=float(normalized[lm.RIGHT_SHOULDER, 1]),
        nose_y=float(normalized[lm.NOSE, 1]),
        left_thumb_x=float(normalized[lm.LEFT_THUMB, 0]),
        left_thumb_y=float(normalized[lm.LEFT_THUMB, 1]),
        left_pinky_x=float(normalized[lm.LEFT_PINKY, 0]),
        left_pinky_y=float(normalized[lm.LEFT_PINKY, 1]),
        right_thumb_x=float(normalized[lm.RIGHT_THUMB, 0]),
        right_thumb_y=float(normalized[lm.RIGHT_THUMB, 1]),
        right_pinky_x=float(normalized[lm.RIGHT_PINKY, 0]),
        right_pinky_y=float(normalized[lm.RIGHT_PINKY, 1]),
        vis_arms=_mean_visibility(world, lm.ARM_JOINTS),
        vis_legs=_mean_visibility(world, lm.LEG_JOINTS),
    )


def envelope_measurements(normalized: np.ndarray) -> tuple[float, float]:
    """Upper-body convex-hull area and wrist-to-wrist distance.

    Both are measured in normalized image coordinates, matching the
    ``convex_hull`` and ``wrist_distance`` envelopes of the exercise table.
    """
    hull_area = convex_hull_area(normalized[list(lm.UPPER_BODY_HULL), :2])
    wrist_dist = distance_2d(normalized[lm.LEFT_WRIST], normalized[lm.RIGHT_WRIST])
    return hull_area, wrist_dist


def torso_normalized_hull_area(normalized: np.ndarray) -> float:
    """Hull area of the upper body after torso-aligned normalization."""
    aligned = normalize_landmarks_2d(normalized)
    if aligned is None:
        logger.debug("Degenerate torso, torso-normalized hull area set to 0")
        return 0.0
    return convex_hull_area(aligned[list(lm.UPPER_BODY_HULL)])
