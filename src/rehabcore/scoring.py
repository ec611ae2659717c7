"""
Per-repetition quality scoring.

Every frame between two counted reps is collected, regardless of the
phase the counter is in. When a rep is counted, each ``up``/``down``
envelope is compared with the extreme of the rep that phase describes:
the phase whose envelope sits lower is judged on the lowest sample, the
other on the highest. Transit frames between the two ends therefore
never count against either phase. When both phases share the same
envelope midpoint the whole observed range is judged instead.

    - Hull score: containment of the hull-area observation per phase.
    - Dynamic angle score per ``<joint>_<side>_<phase>``: 100 inside the
      reference range, otherwise shrunk by the overshoot beyond
      ``dynamic_buffer`` degrees on each bound.
    - Static angle score per joint: containment in
      ``[ideal, ideal + static_tolerance]``.
    - Wrist distance score: containment in the wrist envelope.

All scores are 0-100.
"""

import logging
from collections import defaultdict
from typing import Iterable, Mapping, Optional, Sequence

from .config import DYNAMIC_ANGLE_BUFFER, STATIC_ANGLE_TOLERANCE
from .exercises import ExerciseConfig, Range
from .geometry import containment_score
from .state import RepScore

logger = logging.getLogger(__name__)

PHASES = ("up", "down")
_OTHER_PHASE = {"up": "down", "down": "up"}
_SIDE_SUFFIXES = {"left": "l", "right": "r"}


def dynamic_angle_score(observed: Sequence[float], ref_range: Sequence[float], buffer: float) -> float:
    """Score (0-100) of an observed angle range against a reference range."""
    user_min, user_max = min(observed), max(observed)
    ref_min, ref_max = float(ref_range[0]), float(ref_range[1])
    if ref_min <= user_min and user_max <= ref_max:
        return 100.0

    pen_low = max(0.0, max(0.0, ref_min - user_min) - buffer)
    pen_high = max(0.0, max(0.0, user_max - ref_max) - buffer)
    user_length = user_max - user_min
    if user_length <= 0:
        # a single value is either within the buffer or not
        return 100.0 if pen_low + pen_high == 0 else 0.0
    return max(0.0, (user_length - pen_low - pen_high) / user_length) * 100.0


def _range_of(values: Sequence[float]) -> tuple[float, float]:
    return min(values), max(values)


def _midpoint(rng: Range) -> float:
    return (float(rng[0]) + float(rng[1])) / 2.0


def phase_observation(
    samples: Sequence[float],
    phase: str,
    envelopes: Mapping[str, Range],
) -> tuple[float, float]:
    """Observed ``(min, max)`` to hold against ``envelopes[phase]``.

    The phase with the lower envelope is represented by the lowest
    sample, the other by the highest one. Without a distinct envelope
    for the opposite phase the whole ``[min, max]`` range is returned.
    """
    low, high = _range_of(samples)
    other = envelopes.get(_OTHER_PHASE[phase])
    if other is None:
        return low, high
    mid, other_mid = _midpoint(envelopes[phase]), _midpoint(other)
    if mid == other_mid:
        return low, high
    if mid < other_mid:
        return low, low
    return high, high


class RepScorer:
    """Collects samples for the rep in progress and scores it when it completes.

    Args:
        config: Exercise being performed.
        static_tolerance: Degrees allowed above each ideal static angle.
        dynamic_buffer: Degrees of free overshoot on each dynamic bound.
    """

    def __init__(
        self,
        config: ExerciseConfig,
        static_tolerance: float = STATIC_ANGLE_TOLERANCE,
        dynamic_buffer: float = DYNAMIC_ANGLE_BUFFER,
    ):
        self.config = config
        self.static_tolerance = float(static_tolerance)
        self.dynamic_buffer = float(dynamic_buffer)
        self.joints = sorted({k.rsplit("_", 1)[0] for k in config.dynamic_angles})
        # {joint: {phase: range}} for the extreme selection
        self._envelopes: dict[str, dict[str, Range]] = defaultdict(dict)
        for key, rng in config.dynamic_angles.items():
            joint, phase = key.rsplit("_", 1)
            self._envelopes[joint][phase] = rng
        self.reset()

    def reset(self) -> None:
        """Drop every sample of the rep in progress."""
        self._dynamic: dict[str, list[float]] = defaultdict(list)
        self._hull: list[float] = []
        self._wrist: list[float] = []
        self._static: dict[str, list[float]] = defaultdict(list)

    @property
    def num_samples(self) -> int:
        return len(self._hull)

    def add_frame(self, angles: dict[str, float], hull_area: float, wrist_distance: float) -> None:
        for joint in self.joints:
            for side in _SIDE_SUFFIXES.values():
                value = angles.get(f"{joint}_{side}")
                if value is not None:
                    self._dynamic[f"{joint}_{side}"].append(value)
        self._hull.append(hull_area)
        self._wrist.append(wrist_distance)
        for joint in self.config.static_angles:
            if joint in angles:
                self._static[joint].append(angles[joint])

    def score(self, rep_number: int, sides: Optional[Iterable[str]] = None) -> RepScore:
        """Score the collected rep.

        Args:
            rep_number: Number reported on the ``RepScore``.
            sides: ``"left"``/``"right"`` sides whose joint scores are
                reported; ``None`` reports both.
        """
        config = self.config
        suffixes = None if sides is None else {_SIDE_SUFFIXES[s] for s in sides}

        def wanted(key: str) -> bool:
            return suffixes is None or key.rsplit("_", 1)[1] in suffixes

        hull_score = None
        if config.convex_hull:
            per_phase = [
                containment_score(phase_observation(self._hull, phase, config.convex_hull), config.convex_hull[phase])
                for phase in PHASES
                if self._hull and phase in config.convex_hull
            ]
            hull_score = 100.0 * sum(per_phase) / len(per_phase) if per_phase else 0.0

        dynamic_scores: dict[str, float] = {}
        for key, samples in self._dynamic.items():
            if not samples or not wanted(key):
                continue
            envelopes = self._envelopes[key.rsplit("_", 1)[0]]
            for phase in PHASES:
                ref = envelopes.get(phase)
                if ref is None:
                    continue
                observed = phase_observation(samples, phase, envelopes)
                dynamic_scores[f"{key}_{phase}"] = dynamic_angle_score(observed, ref, self.dynamic_buffer)

        static_scores: dict[str, float] = {}
        for joint, ideal in config.static_angles.items():
            samples = self._static.get(joint)
            if samples and wanted(joint):
                static_scores[joint] = 100.0 * containment_score(
                    _range_of(samples), (ideal, ideal + self.static_tolerance)
                )

        wrist_score = None
        if config.wrist_distance is not None:
            wrist_score = (
                100.0 * containment_score(_range_of(self._wrist), config.wrist_distance)
                if self._wrist
                else 0.0
            )

        rep = RepScore(
            rep_number=rep_number,
            hull_score=hull_score,
            dynamic_angle_scores=dynamic_scores,
            static_angle_scores=static_scores,
            wrist_distance_score=wrist_score,
        )
        logger.debug("%s rep %d scored %.1f", config.key, rep_number, rep.overall)
        return rep
