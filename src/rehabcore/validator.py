"""
Cross-exercise validator.

Looks at one frame's ``PoseFeatures`` and flags when the motion matches
the signature of a different known exercise than the configured one
(curling instead of pressing, squatting instead of curling, ...).
Purely advisory: it never touches the counters.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .exercises import ExerciseRegistry
from .features import PoseFeatures

logger = logging.getLogger(__name__)

LEGS_BENT_DEG = 120.0
DEEP_KNEE_DEG = 110.0
LEGS_STRAIGHT_DEG = 160.0
ELBOW_BENT_DEG = 90.0
ELBOW_STRAIGHT_DEG = 140.0
SPLIT_STANCE_DIFF_DEG = 25.0
SHOULDER_HEIGHT_MARGIN = 0.06
BELOW_SHOULDER_MARGIN = 0.05


def _thumb_above_pinky(thumb_x: float, thumb_y: float, pinky_x: float, pinky_y: float) -> bool:
    """Hand turned palm-in: the thumb-pinky line is closer to vertical than horizontal."""
    return abs(thumb_y - pinky_y) > abs(thumb_x - pinky_x)


@dataclass(frozen=True)
class MotionSignature:
    """Boolean posture descriptors the decision table is written in."""

    legs_bent: bool
    legs_straight: bool
    deep_symmetric_knees: bool
    split_stance: bool
    hip_hinge: bool
    elbows_bent: bool
    elbows_straight: bool
    arms_alternating: bool
    hands_overhead: bool
    hands_at_shoulder_height: bool
    wrists_below_shoulders: bool
    neutral_grip: bool

    @classmethod
    def from_features(cls, f: PoseFeatures) -> "MotionSignature":
        min_knee = min(f.left_knee, f.right_knee)
        knee_diff = abs(f.left_knee - f.right_knee)
        min_elbow = min(f.left_elbow, f.right_elbow)
        max_elbow = max(f.left_elbow, f.right_elbow)
        return cls(
            legs_bent=min_knee < LEGS_BENT_DEG,
            legs_straight=min_knee > LEGS_STRAIGHT_DEG,
            deep_symmetric_knees=max(f.left_knee, f.right_knee) < DEEP_KNEE_DEG and knee_diff < 20.0,
            split_stance=min_knee < LEGS_BENT_DEG and knee_diff >= SPLIT_STANCE_DIFF_DEG,
            hip_hinge=min(f.left_hip, f.right_hip) < 120.0 and min_knee > 110.0,
            elbows_bent=max_elbow < ELBOW_BENT_DEG,
            elbows_straight=min_elbow > ELBOW_STRAIGHT_DEG,
            arms_alternating=min_elbow < ELBOW_BENT_DEG and max_elbow > ELBOW_STRAIGHT_DEG,
            hands_overhead=f.left_wrist_y < f.nose_y and f.right_wrist_y < f.nose_y,
            hands_at_shoulder_height=(
                abs(f.left_wrist_y - f.left_shoulder_y) < SHOULDER_HEIGHT_MARGIN
                and abs(f.right_wrist_y - f.right_shoulder_y) < SHOULDER_HEIGHT_MARGIN
            ),
            wrists_below_shoulders=(
                f.left_wrist_y > f.left_shoulder_y + BELOW_SHOULDER_MARGIN
                and f.right_wrist_y > f.right_shoulder_y + BELOW_SHOULDER_MARGIN
            ),
            neutral_grip=(
                _thumb_above_pinky(f.left_thumb_x, f.left_thumb_y, f.left_pinky_x, f.left_pinky_y)
                and _thumb_above_pinky(f.right_thumb_x, f.right_thumb_y, f.right_pinky_x, f.right_pinky_y)
            ),
        )


Rule = tuple[str, Callable[[MotionSignature], bool]]


def _lunging(s: MotionSignature) -> bool:
    return s.split_stance


def _squatting(s: MotionSignature) -> bool:
    return s.legs_bent and not s.split_stance


def _curling(s: MotionSignature) -> bool:
    return s.elbows_bent and s.wrists_below_shoulders


def _pressing(s: MotionSignature) -> bool:
    return s.hands_overhead


def _raising_laterally(s: MotionSignature) -> bool:
    return s.hands_at_shoulder_height and s.elbows_straight


# Checked in order; the first matching signature wins.
_ARM_LEG_RULES: list[Rule] = [("lunges", _lunging), ("squat", _squatting)]

WRONG_EXERCISE_RULES: dict[str, list[Rule]] = {
    "bicep_curl": _ARM_LEG_RULES + [
        ("shoulder_press", _pressing),
        ("lateral_raises", _raising_laterally),
        ("hammer_curl", lambda s: s.arms_alternating or (_curling(s) and s.neutral_grip)),
    ],
    "hammer_curl": _ARM_LEG_RULES + [
        ("shoulder_press", _pressing),
        ("lateral_raises", _raising_laterally),
        ("bicep_curl", lambda s: _curling(s) and not s.neutral_grip),
    ],
    "shoulder_press": _ARM_LEG_RULES + [
        ("lateral_raises", _raising_laterally),
        ("bicep_curl", _curling),
    ],
    "lateral_raises": _ARM_LEG_RULES + [
        ("shoulder_press", _pressing),
        ("bicep_curl", _curling),
    ],
    "squat": [
        ("lunges", _lunging),
        ("deadlift", lambda s: s.hip_hinge),
        ("bicep_curl", lambda s: s.legs_straight and _curling(s)),
        ("shoulder_press", lambda s: s.legs_straight and _pressing(s)),
    ],
    "deadlift": [
        ("lunges", _lunging),
        ("squat", lambda s: s.deep_symmetric_knees),
        ("bicep_curl", lambda s: s.legs_straight and _curling(s)),
        ("shoulder_press", lambda s: s.legs_straight and _pressing(s)),
    ],
    "lunges": [
        ("squat", lambda s: s.deep_symmetric_knees),
        ("deadlift", lambda s: s.hip_hinge),
        ("bicep_curl", lambda s: s.legs_straight and _curling(s)),
        ("shoulder_press", lambda s: s.legs_straight and _pressing(s)),
    ],
}


class CrossExerciseValidator:
    """Detects when the performed motion matches another exercise."""

    def __init__(self, registry: ExerciseRegistry):
        self.registry = registry

    def detect(self, exercise_key: str, f: PoseFeatures) -> Optional[str]:
        """Key of the exercise the frame looks like instead, or ``None``."""
        rules = WRONG_EXERCISE_RULES.get(exercise_key)
        if not rules:
            return None
        sig = MotionSignature.from_features(f)
        for other_key, matches in rules:
            if matches(sig):
                logger.debug("Frame looks like '%s' while '%s' is configured", other_key, exercise_key)
                return other_key
        return None

    def check(self, exercise_key: str, f: PoseFeatures) -> Optional[str]:
        """Human-readable correction, or ``None`` when the motion fits."""
        other = self.detect(exercise_key, f)
        if other is None:
            return None
        return (
            f"This looks like {self.registry.display_name(other)}, "
            f"not {self.registry.display_name(exercise_key)}."
        )
