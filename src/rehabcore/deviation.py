"""
Form-deviation scoring.

For the phase the primary counter is in, every dynamic envelope of the
exercise (``elbow_up``, ``knee_down``, ...) is checked against the live
joint angles. Left and right sides are scored as separate samples so a
single-arm fault is not hidden by averaging the two angles first.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from .config import DEVIATION_THRESHOLD
from .exercises import ExerciseRegistry
from .features import PoseFeatures
from .geometry import mean_absolute_error, range_deviation

logger = logging.getLogger(__name__)

_SIDES = (("L", "_l"), ("R", "_r"))


@dataclass(frozen=True)
class DeviationResult:
    mae: float = 0.0
    is_deviating: bool = False
    details: tuple[str, ...] = field(default_factory=tuple)


class FormDeviationScorer:
    """Mean out-of-envelope angle error for the active phase.

    Args:
        registry: Exercise table providing the ``dynamic_angles`` ranges.
        threshold: MAE (degrees) above which the frame is flagged.
    """

    def __init__(self, registry: ExerciseRegistry, threshold: float = DEVIATION_THRESHOLD):
        self.registry = registry
        self.threshold = float(threshold)

    def score(self, exercise_key: str, f: PoseFeatures, fsm_state: str) -> DeviationResult:
        config = self.registry.get(exercise_key)
        if config is None or not config.dynamic_angles:
            return DeviationResult()

        suffix = config.target_suffix(fsm_state)
        angles = f.angles()
        errors: list[float] = []
        details: list[str] = []

        for joint, bounds in config.joints_for_phase(suffix).items():
            for tag, side_suffix in _SIDES:
                value = angles.get(joint + side_suffix)
                if value is None:
                    logger.debug("No angle source for joint '%s' in '%s'", joint, exercise_key)
                    break
                err = range_deviation(value, bounds)
                errors.append(err)
                if err > 0:
                    details.append(f"{tag}_{joint}{suffix} dev {err:.0f}")

        mae = mean_absolute_error(errors)
        return DeviationResult(
            mae=mae,
            is_deviating=mae > self.threshold,
            details=tuple(details),
        )

    def feedback(self, result: DeviationResult) -> Optional[str]:
        """``Fix Form: ...`` line for a deviating frame, else ``None``."""
        if not result.is_deviating:
            return None
        return "Fix Form: " + ", ".join(result.details)
