"""
Per-session orchestrator.

One ``RehabCore`` per camera/training session. Every frame it:

    1. classifies the coarse activity (always, even without an exercise),
    2. updates the rep counters of the current exercise (built lazily),
    3. runs the cross-exercise validator and the form-deviation scorer,
    4. collects samples for per-rep quality scoring,

and merges everything into one ``ProcessResult``.

Usage:
    core = RehabCore.from_settings()
    core.set_exercise("Bicep Curls")
    for frame in frames:
        result = core.process(frame.landmarks, frame.world_landmarks)
"""

import logging
import time
from typing import Any, Optional, Sequence

from .classifier import ActivityClassifier
from .config import (
    DEVIATION_THRESHOLD,
    DYNAMIC_ANGLE_BUFFER,
    NUM_LANDMARKS,
    STATIC_ANGLE_TOLERANCE,
    get_rehab_config,
)
from .deviation import FormDeviationScorer
from .exercises import ExerciseRegistry, normalize_exercise_name
from .features import (
    compute_pose_features,
    envelope_measurements,
    extract_activity_features,
    torso_normalized_hull_area,
)
from .fsm import RepFSM, aggregate_reps, build_counters
from .geometry import mean_absolute_error
from .landmarks import to_landmark_array
from .scoring import RepScorer
from .state import FrameDebug, FrameScores, ProcessResult, RepScore, SetSnapshot
from .validator import CrossExerciseValidator

logger = logging.getLogger(__name__)


class RehabCore:
    """Streaming activity classification plus rep counting for one session.

    Args:
        classifier: Shared, read-only activity classifier.
        registry: Exercise table. Defaults to the built-in one.
        deviation_threshold: MAE (degrees) above which form is flagged.
        static_angle_tolerance: Passed to the per-rep scorer.
        dynamic_angle_buffer: Passed to the per-rep scorer.
        fsm_overrides: ``{exercise_key: {FSMParams field: value}}``.
    """

    def __init__(
        self,
        classifier: ActivityClassifier,
        registry: Optional[ExerciseRegistry] = None,
        deviation_threshold: float = DEVIATION_THRESHOLD,
        static_angle_tolerance: float = STATIC_ANGLE_TOLERANCE,
        dynamic_angle_buffer: float = DYNAMIC_ANGLE_BUFFER,
        fsm_overrides: Optional[dict[str, dict]] = None,
    ):
        self.classifier = classifier
        self.registry = registry if registry is not None else ExerciseRegistry()
        self.validator = CrossExerciseValidator(self.registry)
        self.deviation_scorer = FormDeviationScorer(self.registry, deviation_threshold)
        self.static_angle_tolerance = static_angle_tolerance
        self.dynamic_angle_buffer = dynamic_angle_buffer
        self.fsm_overrides = dict(fsm_overrides or {})

        self.current_exercise: Optional[str] = None
        self._counters: dict[str, list[RepFSM]] = {}
        self._scorers: dict[str, RepScorer] = {}
        self._warned_keys: set[str] = set()
        self._reset_set_stats()

    @classmethod
    def from_settings(cls, classifier: Optional[ActivityClassifier] = None) -> "RehabCore":
        """Build from ``config/rehab.yaml``; loads the classifier if not given."""
        settings = get_rehab_config()
        return cls(
            classifier if classifier is not None else ActivityClassifier.from_json(),
            registry=ExerciseRegistry.from_settings(),
            deviation_threshold=settings.get("deviation_threshold", DEVIATION_THRESHOLD),
            static_angle_tolerance=settings.get("static_angle_tolerance", STATIC_ANGLE_TOLERANCE),
            dynamic_angle_buffer=settings.get("dynamic_angle_buffer", DYNAMIC_ANGLE_BUFFER),
            fsm_overrides=settings.get("fsm") or {},
        )

    # ------------------------------------------------------------------
    # Session control
    # ------------------------------------------------------------------

    def _reset_set_stats(self) -> None:
        self._mae_samples: list[float] = []
        self._rep_scores: list[RepScore] = []
        self._last_feedback = ""

    def set_exercise(self, name: Optional[str]) -> None:
        """Select the exercise to count. Counters are built on the next frame."""
        key = normalize_exercise_name(name) or None
        if key != self.current_exercise:
            self._reset_set_stats()
        self.current_exercise = key
        logger.info("Exercise set: %r -> %s", name, key)

    def reset(self) -> None:
        """Clear every counter, scorer and set statistic; keep the exercise."""
        self._counters.clear()
        self._scorers.clear()
        self._reset_set_stats()
        logger.info("Session reset (exercise=%s)", self.current_exercise)

    reset_params = reset

    def _get_counters(self, key: str) -> Optional[list[RepFSM]]:
        counters = self._counters.get(key)
        if counters is not None:
            return counters

        counters = build_counters(key, self.fsm_overrides.get(key))
        if counters is None:
            if key not in self._warned_keys:
                logger.warning("No rep counter for exercise '%s'; counting disabled.", key)
                self._warned_keys.add(key)
            return None

        self._counters[key] = counters
        config = self.registry.get(key)
        if config is not None:
            self._scorers[key] = RepScorer(
                config,
                static_tolerance=self.static_angle_tolerance,
                dynamic_buffer=self.dynamic_angle_buffer,
            )
        return counters

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_reps(self, name: Optional[str] = None) -> int:
        key = normalize_exercise_name(name) if name else self.current_exercise
        counters = self._counters.get(key) if key else None
        return aggregate_reps(counters) if counters else 0

    def snapshot(self) -> SetSnapshot:
        """Set summary in the shape the persistence API stores."""
        return SetSnapshot(
            exercise=self.current_exercise,
            reps=self.get_reps(),
            feedback=self._last_feedback,
            mae=mean_absolute_error(self._mae_samples),
            rep_scores=list(self._rep_scores),
        )

    # ------------------------------------------------------------------
    # Per-frame processing
    # ------------------------------------------------------------------

    def _stage_text(self, key: str, counters: list[RepFSM]) -> str:
        config = self.registry.get(key)

        def stage(c: RepFSM) -> str:
            if config is None:
                return "UP" if c.state == "HIGH" else "DOWN"
            return config.target_suffix(c.state).lstrip("_").upper()

        if len(counters) == 2:
            return f"L: {stage(counters[0])} | R: {stage(counters[1])}"
        return stage(counters[0])

    def process(
        self,
        landmarks: Optional[Sequence[Any]],
        world_landmarks: Optional[Sequence[Any]] = None,
        timestamp_ms: Optional[float] = None,
    ) -> Optional[ProcessResult]:
        """Process one frame.

        Returns:
            ``ProcessResult``, or ``None`` when the frame has fewer than 33
            landmarks (the caller should skip it).
        """
        points = to_landmark_array(landmarks)
        if points is None or points.shape[0] < NUM_LANDMARKS:
            return None
        world = to_landmark_array(world_landmarks) if world_landmarks is not None else None
        t_ms = float(timestamp_ms) if timestamp_ms is not None else time.monotonic() * 1000.0

        prediction = self.classifier.predict(extract_activity_features(points))
        key = self.current_exercise
        result = ProcessResult(
            status=prediction.label,
            confidence=prediction.confidence,
            exercise=key,
        )
        if not key:
            return result

        counters = self._get_counters(key)
        if counters is None:
            return result

        features = compute_pose_features(points, world, t_ms)
        before = aggregate_reps(counters)
        updates = [c.update(features) for c in counters]
        reps = aggregate_reps(counters)
        primary = counters[0]

        warning = self.validator.check(key, features)
        deviation = self.deviation_scorer.score(key, features, primary.state)
        self._mae_samples.append(deviation.mae)

        hull_area, wrist_distance = envelope_measurements(points)
        scorer = self._scorers.get(key)
        if scorer is not None:
            scorer.add_frame(features.angles(), hull_area, wrist_distance)
            if reps > before:
                # only the sides that completed a cycle on this frame are scored
                finished = [c.side for c, u in zip(counters, updates) if u.delta]
                sides = None if any(s is None for s in finished) else set(finished)
                self._rep_scores.append(scorer.score(reps, sides))
                scorer.reset()
            elif any(u.cycle_ended for u in updates) and not any(c.in_cycle for c in counters):
                scorer.reset()

        feedback = self._stage_text(key, counters)
        if warning:
            feedback += f" | {warning}"
        else:
            fix = self.deviation_scorer.feedback(deviation)
            if fix:
                feedback += f" | {fix}"
        self._last_feedback = feedback

        result.reps = reps
        result.feedback = feedback
        result.debug = FrameDebug(
            angles=features.angles(),
            scores=FrameScores(
                deviation_mae=deviation.mae,
                rep_quality=self._rep_scores[-1] if self._rep_scores else None,
            ),
            envelope={
                "hull_area": hull_area,
                "hull_area_torso": torso_normalized_hull_area(points),
                "wrist_distance": wrist_distance,
            },
        )
        return result
