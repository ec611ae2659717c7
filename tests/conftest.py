"""Shared synthetic data for the rehab core tests.

No trained artifacts are needed: the classifier runs on a hand-built
three-tree ensemble and poses are built from prescribed joint angles.
"""

import numpy as np
import pytest

from rehabcore.classifier import ActivityClassifier
from rehabcore.features import PoseFeatures

LIMB_LEN = 0.15
TORSO_COSINE_IDX = 140  # last derived feature of the activity vector


# ============================================================================
# Tree ensembles
# ============================================================================

def _split_tree(feature: int, threshold: float, left_w: float, right_w: float, default_left: int = 1) -> dict:
    return {
        "left_children": [1, -1, -1],
        "right_children": [2, -1, -1],
        "split_indices": [feature, 0, 0],
        "split_conditions": [threshold, 0.0, 0.0],
        "default_left": [default_left, 0, 0],
        "base_weights": [0.0, left_w, right_w],
    }


def _leaf_tree(weight: float) -> dict:
    return {
        "left_children": [-1],
        "right_children": [-1],
        "split_indices": [0],
        "split_conditions": [0.0],
        "default_left": [0],
        "base_weights": [weight],
    }


def _tree_model(trees: list, num_class: int = 3, num_trees=None) -> dict:
    """Wrap raw trees in the XGBoost ``save_model`` JSON layout."""
    return {
        "learner": {
            "learner_model_param": {"num_class": str(num_class)},
            "gradient_booster": {
                "model": {
                    "gbtree_model_param": {"num_trees": str(num_trees if num_trees is not None else len(trees))},
                    "trees": trees,
                }
            },
        }
    }


def _activity_model() -> dict:
    """Upright torso -> Standing, horizontal torso -> Fall Detected."""
    return _tree_model([
        _split_tree(TORSO_COSINE_IDX, 0.5, -1.0, 2.0),
        _leaf_tree(0.0),
        _split_tree(TORSO_COSINE_IDX, 0.5, 2.0, -1.0),
    ])


@pytest.fixture
def split_tree():
    return _split_tree


@pytest.fixture
def leaf_tree():
    return _leaf_tree


@pytest.fixture
def tree_model():
    return _tree_model


@pytest.fixture
def activity_model():
    return _activity_model()


@pytest.fixture
def classifier():
    return ActivityClassifier(_activity_model())


# ============================================================================
# Poses
# ============================================================================

def _limb_end(joint: np.ndarray, angle_deg: float, tilt_deg: float = 0.0, length: float = LIMB_LEN) -> np.ndarray:
    """End point of a limb hanging from ``joint`` whose inner angle is ``angle_deg``.

    ``tilt_deg`` is how far the parent segment leans forward (-z) from
    pointing straight down the image. The limb bends forward in the plane
    spanned by the parent segment and the z axis.
    """
    t = np.radians(angle_deg)
    tilt = np.radians(tilt_deg)
    toward_parent = np.array([0.0, -np.cos(tilt), np.sin(tilt)])
    forward = np.array([0.0, -np.sin(tilt), -np.cos(tilt)])
    return joint + length * (np.cos(t) * toward_parent + np.sin(t) * forward)


def _make_pose(
    left_elbow: float = 180.0,
    right_elbow: float = 180.0,
    left_knee: float = 180.0,
    right_knee: float = 180.0,
    visibility: float = 1.0,
    shoulder_flexion: float = 0.0,
) -> np.ndarray:
    """Upright front-facing skeleton as a ``(33, 4)`` normalized array.

    ``shoulder_flexion`` raises both upper arms forward by that many degrees.
    """
    xyz = np.tile([0.5, 0.45, 0.0], (33, 1)).astype(np.float64)

    xyz[0] = [0.5, 0.15, 0.0]  # nose
    for i in range(1, 11):
        xyz[i] = [0.5, 0.15, 0.0]

    a = np.radians(shoulder_flexion)
    upper_arm = LIMB_LEN * np.array([0.0, np.cos(a), -np.sin(a)])
    xyz[11] = [0.6, 0.3, 0.0]
    xyz[12] = [0.4, 0.3, 0.0]
    xyz[13] = xyz[11] + upper_arm
    xyz[14] = xyz[12] + upper_arm
    xyz[15] = _limb_end(xyz[13], left_elbow, shoulder_flexion)
    xyz[16] = _limb_end(xyz[14], right_elbow, shoulder_flexion)
    for left_hand, right_hand in ((17, 18), (19, 20), (21, 22)):
        xyz[left_hand] = xyz[15]
        xyz[right_hand] = xyz[16]

    xyz[23] = [0.58, 0.6, 0.0]
    xyz[24] = [0.42, 0.6, 0.0]
    xyz[25] = xyz[23] + [0.0, LIMB_LEN, 0.0]
    xyz[26] = xyz[24] + [0.0, LIMB_LEN, 0.0]
    xyz[27] = _limb_end(xyz[25], left_knee)
    xyz[28] = _limb_end(xyz[26], right_knee)
    for left_foot, right_foot in ((29, 30), (31, 32)):
        xyz[left_foot] = xyz[27]
        xyz[right_foot] = xyz[28]

    return np.concatenate([xyz, np.full((33, 1), visibility)], axis=1)


@pytest.fixture
def make_pose():
    return _make_pose


def _make_features(**overrides) -> PoseFeatures:
    """Standing, arms hanging, fully visible; override any field."""
    values = dict(
        t_ms=0.0,
        left_elbow=170.0,
        right_elbow=170.0,
        left_knee=175.0,
        right_knee=175.0,
        left_hip=175.0,
        right_hip=175.0,
        left_shoulder=10.0,
        right_shoulder=10.0,
        left_wrist_y=0.6,
        right_wrist_y=0.6,
        left_shoulder_y=0.3,
        right_shoulder_y=0.3,
        nose_y=0.15,
        left_thumb_x=0.6,
        left_thumb_y=0.6,
        left_pinky_x=0.6,
        left_pinky_y=0.6,
        right_thumb_x=0.4,
        right_thumb_y=0.6,
        right_pinky_x=0.4,
        right_pinky_y=0.6,
        vis_arms=1.0,
        vis_legs=1.0,
    )
    values.update(overrides)
    return PoseFeatures(**values)


@pytest.fixture
def make_features():
    return _make_features


def _curl_set_angles(n_reps: int = 3) -> list[float]:
    """Elbow angle per 50 ms frame for ``n_reps`` slow, clean bicep curls.

    Each rep: 0.2 s rest at 170, 0.5 s down to 60, 0.2 s hold, 0.5 s back up.
    """
    angles = [170.0] * 6
    down = [170.0 - 11.0 * k for k in range(1, 11)]
    up = [60.0 + 11.0 * k for k in range(1, 11)]
    for _ in range(n_reps):
        angles += [170.0] * 4 + down + [60.0] * 4 + up
    angles += [170.0] * 10
    return angles


@pytest.fixture
def curl_set_angles():
    return _curl_set_angles
