"""Tests for the cross-exercise validator decision table."""

import pytest

from rehabcore.exercises import ExerciseRegistry
from rehabcore.validator import CrossExerciseValidator, MotionSignature

CURL_TOP = {"left_elbow": 60.0, "right_elbow": 60.0, "left_wrist_y": 0.38, "right_wrist_y": 0.38}
HANDS_OVERHEAD = {"left_elbow": 170.0, "right_elbow": 170.0, "left_wrist_y": 0.05, "right_wrist_y": 0.05}
ARMS_OUT = {"left_elbow": 170.0, "right_elbow": 170.0, "left_wrist_y": 0.32, "right_wrist_y": 0.32}
SQUAT_BOTTOM = {"left_knee": 90.0, "right_knee": 90.0, "left_hip": 80.0, "right_hip": 80.0}
LUNGE_BOTTOM = {"left_knee": 90.0, "right_knee": 150.0}
HIP_HINGE = {"left_hip": 100.0, "right_hip": 100.0, "left_knee": 150.0, "right_knee": 150.0}
HAMMER_GRIP = {
    "left_thumb_x": 0.6, "left_thumb_y": 0.33, "left_pinky_x": 0.61, "left_pinky_y": 0.40,
    "right_thumb_x": 0.4, "right_thumb_y": 0.33, "right_pinky_x": 0.39, "right_pinky_y": 0.40,
}


@pytest.fixture
def validator():
    return CrossExerciseValidator(ExerciseRegistry())


# ============================================================================
# Test: Signatures
# ============================================================================

class TestMotionSignature:

    def test_neutral_stance(self, make_features):
        sig = MotionSignature.from_features(make_features())
        assert sig.legs_straight
        assert not sig.legs_bent
        assert not sig.elbows_bent
        assert sig.elbows_straight
        assert not sig.hands_overhead

    def test_alternating_arms(self, make_features):
        sig = MotionSignature.from_features(make_features(left_elbow=60.0, right_elbow=170.0))
        assert sig.arms_alternating
        assert not sig.elbows_bent

    def test_split_stance(self, make_features):
        sig = MotionSignature.from_features(make_features(**LUNGE_BOTTOM))
        assert sig.split_stance
        assert not sig.deep_symmetric_knees

    def test_neutral_grip(self, make_features):
        assert MotionSignature.from_features(make_features(**HAMMER_GRIP)).neutral_grip
        assert not MotionSignature.from_features(make_features()).neutral_grip

    def test_neutral_grip_needs_both_hands(self, make_features):
        one_hand = {k: v for k, v in HAMMER_GRIP.items() if k.startswith("left_")}
        assert not MotionSignature.from_features(make_features(**one_hand)).neutral_grip


# ============================================================================
# Test: Arm exercises
# ============================================================================

class TestArmExercises:

    def test_clean_curl_not_flagged(self, validator, make_features):
        assert validator.check("bicep_curl", make_features(**CURL_TOP)) is None
        assert validator.check("bicep_curl", make_features()) is None

    def test_curl_while_squatting(self, validator, make_features):
        msg = validator.check("bicep_curl", make_features(**CURL_TOP, **SQUAT_BOTTOM))
        assert msg == "This looks like Squat, not Bicep Curl."

    def test_curl_while_lunging(self, validator, make_features):
        assert validator.detect("bicep_curl", make_features(**LUNGE_BOTTOM)) == "lunges"

    def test_pressing_instead_of_curling(self, validator, make_features):
        assert validator.detect("bicep_curl", make_features(**HANDS_OVERHEAD)) == "shoulder_press"

    def test_raising_instead_of_curling(self, validator, make_features):
        assert validator.detect("bicep_curl", make_features(**ARMS_OUT)) == "lateral_raises"

    def test_alternating_instead_of_bicep(self, validator, make_features):
        frame = make_features(left_elbow=60.0, right_elbow=170.0, left_wrist_y=0.38)
        assert validator.detect("bicep_curl", frame) == "hammer_curl"

    def test_symmetric_curl_instead_of_hammer(self, validator, make_features):
        msg = validator.check("hammer_curl", make_features(**CURL_TOP))
        assert msg == "This looks like Bicep Curl, not Hammer Curl."

    def test_neutral_grip_instead_of_bicep(self, validator, make_features):
        assert validator.detect("bicep_curl", make_features(**CURL_TOP, **HAMMER_GRIP)) == "hammer_curl"

    def test_hammer_curl_with_neutral_grip_not_flagged(self, validator, make_features):
        assert validator.check("hammer_curl", make_features(**CURL_TOP, **HAMMER_GRIP)) is None

    def test_press_rack_position_not_flagged(self, validator, make_features):
        rack = make_features(left_elbow=80.0, right_elbow=80.0, left_wrist_y=0.3, right_wrist_y=0.3)
        assert validator.check("shoulder_press", rack) is None

    def test_curling_instead_of_pressing(self, validator, make_features):
        assert validator.detect("shoulder_press", make_features(**CURL_TOP)) == "bicep_curl"

    def test_pressing_instead_of_raising(self, validator, make_features):
        assert validator.detect("lateral_raises", make_features(**HANDS_OVERHEAD)) == "shoulder_press"

    def test_lateral_top_not_flagged(self, validator, make_features):
        assert validator.check("lateral_raises", make_features(**ARMS_OUT)) is None


# ============================================================================
# Test: Leg exercises
# ============================================================================

class TestLegExercises:

    def test_squat_bottom_not_flagged(self, validator, make_features):
        assert validator.check("squat", make_features(**SQUAT_BOTTOM)) is None

    def test_hinging_instead_of_squatting(self, validator, make_features):
        assert validator.detect("squat", make_features(**HIP_HINGE)) == "deadlift"

    def test_lunging_instead_of_squatting(self, validator, make_features):
        assert validator.detect("squat", make_features(**LUNGE_BOTTOM)) == "lunges"

    def test_curling_with_straight_legs_instead_of_squatting(self, validator, make_features):
        assert validator.detect("squat", make_features(**CURL_TOP)) == "bicep_curl"

    def test_squatting_instead_of_deadlifting(self, validator, make_features):
        assert validator.detect("deadlift", make_features(**SQUAT_BOTTOM)) == "squat"

    def test_deadlift_hinge_not_flagged(self, validator, make_features):
        assert validator.check("deadlift", make_features(**HIP_HINGE)) is None

    def test_hinging_instead_of_lunging(self, validator, make_features):
        assert validator.detect("lunges", make_features(**HIP_HINGE)) == "deadlift"

    def test_lunge_bottom_not_flagged(self, validator, make_features):
        assert validator.check("lunges", make_features(**LUNGE_BOTTOM)) is None


def test_unknown_exercise_never_flagged(validator, make_features):
    assert validator.check("jumping_jacks", make_features(**SQUAT_BOTTOM)) is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
