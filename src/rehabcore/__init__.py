"""
Rehab pose core: streaming activity classification, repetition counting
and form scoring over 33-point body pose landmarks.
"""

from .classifier import ActivityClassifier, ActivityPrediction, ModelLoadError
from .core import RehabCore
from .exercises import EXERCISE_CONFIGS, ExerciseConfig, ExerciseRegistry, normalize_exercise_name
from .features import PoseFeatures, compute_pose_features, extract_activity_features
from .fsm import FSMParams, RepFSM, RepSignal, build_counters
from .state import ProcessResult, RepScore, SetSnapshot

__all__ = [
    "ActivityClassifier",
    "ActivityPrediction",
    "ModelLoadError",
    "RehabCore",
    "EXERCISE_CONFIGS",
    "ExerciseConfig",
    "ExerciseRegistry",
    "normalize_exercise_name",
    "PoseFeatures",
    "compute_pose_features",
    "extract_activity_features",
    "FSMParams",
    "RepFSM",
    "RepSignal",
    "build_counters",
    "ProcessResult",
    "RepScore",
    "SetSnapshot",
]
