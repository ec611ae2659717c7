"""Tests for landmark coercion and per-frame feature extraction."""

from types import SimpleNamespace

import numpy as np
import pytest

from rehabcore.config import ACTIVITY_FEATURE_DIM, RAW_FEATURE_DIM
from rehabcore.features import (
    DERIVED_FEATURE_NAMES,
    compute_pose_features,
    envelope_measurements,
    extract_activity_features,
    torso_normalized_hull_area,
)
from rehabcore.landmarks import to_landmark_array


# ============================================================================
# Test: Landmark coercion
# ============================================================================

class TestToLandmarkArray:

    def test_dicts_without_visibility(self):
        arr = to_landmark_array([{"x": 0.1, "y": 0.2, "z": 0.3}] * 33)
        assert arr.shape == (33, 4)
        np.testing.assert_allclose(arr[0, :3], [0.1, 0.2, 0.3])
        assert np.isnan(arr[0, 3])

    def test_attribute_objects(self):
        lm = SimpleNamespace(x=0.5, y=0.6, z=-0.1, visibility=0.9)
        arr = to_landmark_array([lm] * 33)
        np.testing.assert_allclose(arr[5], [0.5, 0.6, -0.1, 0.9])

    def test_xyz_array_gets_nan_visibility(self):
        arr = to_landmark_array(np.ones((33, 3)))
        assert arr.shape == (33, 4)
        assert np.all(np.isnan(arr[:, 3]))

    def test_empty_input(self):
        assert to_landmark_array(None) is None
        assert to_landmark_array([]) is None
        assert to_landmark_array(np.zeros((0, 4))) is None

    def test_malformed_rows(self):
        assert to_landmark_array([[0.1, 0.2]] * 33) is None


# ============================================================================
# Test: Activity feature vector
# ============================================================================

class TestActivityFeatures:

    def test_shape(self, make_pose):
        feats = extract_activity_features(make_pose())
        assert feats.shape == (ACTIVITY_FEATURE_DIM,)
        assert len(DERIVED_FEATURE_NAMES) == ACTIVITY_FEATURE_DIM - RAW_FEATURE_DIM

    def test_raw_block_is_flattened_landmarks(self, make_pose):
        pose = make_pose()
        feats = extract_activity_features(pose)
        np.testing.assert_allclose(feats[:RAW_FEATURE_DIM], pose.reshape(-1))

    def test_derived_values_for_upright_pose(self, make_pose):
        derived = dict(zip(DERIVED_FEATURE_NAMES, extract_activity_features(make_pose())[RAW_FEATURE_DIM:]))
        np.testing.assert_allclose(derived["left_elbow_angle"], 180.0, atol=1e-4)
        np.testing.assert_allclose(derived["right_knee_angle"], 180.0, atol=1e-4)
        np.testing.assert_allclose(derived["shoulder_width_ratio"], 0.2 / 0.3, atol=1e-4)
        np.testing.assert_allclose(derived["hip_width_ratio"], 0.16 / 0.3, atol=1e-4)
        np.testing.assert_allclose(derived["torso_vertical_cosine"], 1.0, atol=1e-9)

    def test_horizontal_torso_cosine(self, make_pose):
        pose = make_pose()
        pose[:, [0, 1]] = pose[:, [1, 0]]
        feats = extract_activity_features(pose)
        np.testing.assert_allclose(feats[-1], 0.0, atol=1e-9)

    def test_missing_visibility_encoded_as_zero(self, make_pose):
        pose = make_pose()
        pose[:, 3] = np.nan
        feats = extract_activity_features(pose)
        assert np.all(np.isfinite(feats))
        assert feats[3] == 0.0

    def test_degenerate_pose_does_not_raise(self):
        feats = extract_activity_features(np.zeros((33, 4)))
        assert np.all(np.isfinite(feats))

    def test_deterministic(self, make_pose):
        pose = make_pose(left_elbow=95.0)
        np.testing.assert_array_equal(extract_activity_features(pose), extract_activity_features(pose))


# ============================================================================
# Test: PoseFeatures
# ============================================================================

class TestPoseFeatures:

    def test_prescribed_angles(self, make_pose):
        f = compute_pose_features(make_pose(left_elbow=90.0, right_elbow=60.0, left_knee=100.0), None, 1234.0)
        assert f.t_ms == 1234.0
        assert f.left_elbow == pytest.approx(90.0, abs=1e-6)
        assert f.right_elbow == pytest.approx(60.0, abs=1e-6)
        assert f.left_knee == pytest.approx(100.0, abs=1e-6)
        assert f.right_knee == pytest.approx(180.0, abs=1e-4)

    def test_angles_in_range(self, make_pose):
        f = compute_pose_features(make_pose(left_elbow=30.0, right_knee=70.0), None, 0.0)
        for value in f.angles().values():
            assert 0.0 <= value <= 180.0

    def test_world_landmarks_drive_angles(self, make_pose):
        normalized = make_pose()
        world = make_pose(left_elbow=120.0)
        f = compute_pose_features(normalized, world, 0.0)
        assert f.left_elbow == pytest.approx(120.0, abs=1e-6)
        # y coordinates always come from the normalized set
        assert f.left_wrist_y == pytest.approx(normalized[15, 1])

    def test_short_world_falls_back_to_normalized(self, make_pose):
        normalized = make_pose(left_elbow=75.0)
        f = compute_pose_features(normalized, np.zeros((5, 4)), 0.0)
        assert f.left_elbow == pytest.approx(75.0, abs=1e-6)

    def test_visibility_aggregates(self, make_pose):
        pose = make_pose(visibility=0.3)
        f = compute_pose_features(pose, None, 0.0)
        assert f.vis_arms == pytest.approx(0.3)
        assert f.vis_legs == pytest.approx(0.3)

        pose[:, 3] = np.nan
        f = compute_pose_features(pose, None, 0.0)
        assert f.vis_arms == 1.0

    def test_angles_keys(self, make_pose):
        f = compute_pose_features(make_pose(), None, 0.0)
        assert set(f.angles()) == {
            "elbow_l", "elbow_r", "knee_l", "knee_r",
            "hip_l", "hip_r", "shoulder_l", "shoulder_r",
        }


# ============================================================================
# Test: Envelope measurements
# ============================================================================

class TestEnvelope:

    def test_upright_arms(self, make_pose):
        hull_area, wrist_dist = envelope_measurements(make_pose())
        np.testing.assert_allclose(hull_area, 0.2 * 0.3, atol=1e-9)
        np.testing.assert_allclose(wrist_dist, 0.2, atol=1e-9)

    def test_torso_normalized_hull_is_scale_free(self, make_pose):
        pose = make_pose()
        area = torso_normalized_hull_area(pose)
        np.testing.assert_allclose(area, (0.2 * 0.3) / 0.3 ** 2, atol=1e-6)

        zoomed = pose.copy()
        zoomed[:, :2] *= 2.0
        np.testing.assert_allclose(torso_normalized_hull_area(zoomed), area, atol=1e-9)

    def test_torso_normalized_hull_degenerate(self):
        assert torso_normalized_hull_area(np.zeros((33, 4))) == 0.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
