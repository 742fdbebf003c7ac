"""Tests for the exercise rule registry and individual form checks."""

import pytest

from form_service.models import (
    EXERCISE_RULES,
    CalibrationData,
    ExerciseType,
    LandmarkFrame,
    MissingLandmarkError,
    Phase,
    get_exercise_rule,
)


def evaluate(exercise, landmarks, calibration=None):
    rule = get_exercise_rule(exercise)
    return rule.evaluate(LandmarkFrame(landmarks), rule.thresholds_for(calibration))


# ============================================================================
# Test: Registry
# ============================================================================

class TestRegistry:

    def test_every_exercise_has_a_rule(self):
        assert set(EXERCISE_RULES) == set(ExerciseType)

    @pytest.mark.parametrize("exercise", list(ExerciseType))
    def test_penalties_cannot_reach_100(self, exercise):
        assert EXERCISE_RULES[exercise].max_deduction < 100

    def test_unknown_exercise_rejected(self):
        with pytest.raises(ValueError):
            get_exercise_rule("underwater_basket_weaving")

    def test_identifier_is_case_insensitive(self):
        assert get_exercise_rule(" Push_Up ").exercise is ExerciseType.PUSH_UP

    def test_isometric_holds(self):
        holds = {e for e, rule in EXERCISE_RULES.items() if rule.is_isometric}
        assert holds == {ExerciseType.PLANK, ExerciseType.WALL_SIT}

    def test_catalogue_entry(self):
        entry = EXERCISE_RULES[ExerciseType.PUSH_UP].to_dict()
        assert entry["perfect_form_threshold"] == 90
        assert entry["good_form_threshold"] == 75
        assert entry["calories_per_unit"] == pytest.approx(0.32)
        assert "back_not_straight" in entry["mistakes"]


# ============================================================================
# Test: Push-up
# ============================================================================

class TestPushUpRule:

    def test_clean_top_position(self, poses):
        result = evaluate("push_up", poses.push_up_top())
        assert result.score == 100
        assert result.in_position
        assert result.mistakes == []
        assert result.phase is Phase.UP

    def test_back_not_straight_only(self, poses):
        result = evaluate("push_up", poses.push_up_sagging())
        assert result.score == 85
        assert result.mistakes == ["back_not_straight"]
        assert len(result.suggestions) == 1

    def test_bottom_position_is_down(self, poses):
        result = evaluate("push_up", poses.push_up_bottom())
        assert result.phase is Phase.DOWN
        assert result.score == 100

    def test_shallow_rep_penalised(self, poses):
        result = evaluate("push_up", poses.push_up_shallow())
        assert result.phase is Phase.DOWN
        assert result.mistakes == ["depth_insufficient"]
        assert result.score == 80

    def test_transitional_zone_has_no_phase(self, poses):
        result = evaluate("push_up", poses.push_up_mid())
        assert result.in_position
        assert result.phase is None

    def test_calibrated_body_line_widens_tolerance(self, poses):
        natural_sag = CalibrationData("u1", "push_up", baseline_angles={"body_line": 165})
        assert evaluate("push_up", poses.push_up_sagging(hip_y=0.58)).mistakes == ["back_not_straight"]
        assert evaluate("push_up", poses.push_up_sagging(hip_y=0.58), natural_sag).mistakes == []

    def test_body_line_widening_is_capped(self, poses):
        very_curved = CalibrationData("u1", "push_up", baseline_angles={"body_line": 120})
        thresholds = get_exercise_rule("push_up").thresholds_for(very_curved)
        assert thresholds["body_line_tolerance"] == pytest.approx(35)

    def test_missing_joint_raises_for_analyzer(self, poses):
        landmarks = poses.push_up_top()
        landmarks[15]["visibility"] = 0.1
        with pytest.raises(MissingLandmarkError):
            evaluate("push_up", landmarks)


# ============================================================================
# Test: Squat and holds
# ============================================================================

class TestSquatRule:

    def test_standing_is_up_and_not_scored_position(self, poses):
        result = evaluate("squat", poses.standing())
        assert result.phase is Phase.UP
        assert not result.in_position
        assert result.score == 100

    def test_deep_squat(self, poses):
        result = evaluate("squat", poses.squat_bottom())
        assert result.phase is Phase.DOWN
        assert result.in_position
        assert result.mistakes == []

    def test_knees_past_toes(self, poses):
        result = evaluate("squat", poses.squat_bottom(knee_x=0.58))
        assert result.mistakes == ["knees_past_toes"]
        assert result.score == 85

    def test_long_legs_get_looser_knee_tolerance(self, poses):
        long_legs = CalibrationData("u1", "squat", body_proportions={"leg_length": 0.9, "torso_length": 0.3})
        result = evaluate("squat", poses.squat_bottom(knee_x=0.58), long_legs)
        assert result.mistakes == []

    def test_depth_target_clamped(self):
        rule = get_exercise_rule("squat")
        shallow = CalibrationData("u1", "squat", baseline_angles={"knee_bottom": 140})
        assert rule.thresholds_for(shallow)["depth_target"] == 110
        assert rule.thresholds_for(None)["depth_target"] == 90

    def test_push_up_depth_ignores_knee_calibration(self):
        knee_bottom = CalibrationData("u1", "push_up", baseline_angles={"knee_bottom": 100})
        assert get_exercise_rule("push_up").thresholds_for(knee_bottom)["depth_target"] == 90
        assert get_exercise_rule("wall_sit").thresholds_for(knee_bottom)["depth_target"] == 100


class TestPlankRule:

    def test_straight_plank(self, poses):
        result = evaluate("plank", poses.plank())
        assert result.in_position
        assert result.score == 100
        assert result.phase is None

    def test_hips_too_high(self, poses):
        landmarks = poses.plank()
        for index in (23, 24):
            landmarks[index]["y"] = 0.36
        result = evaluate("plank", landmarks)
        assert "hips_too_high" in result.mistakes
        assert "hips_too_low" not in result.mistakes


class TestWallSitRule:

    def test_thighs_parallel(self, poses):
        result = evaluate("wall_sit", poses.wall_sit(90))
        assert result.in_position
        assert result.score == 100
        assert result.phase is None

    def test_not_low_enough(self, poses):
        result = evaluate("wall_sit", poses.wall_sit(120))
        assert not result.in_position
        assert result.mistakes == ["not_low_enough"]
        assert result.score == 80


# ============================================================================
# Test: Lunge, crunch and mountain climber
# ============================================================================

class TestLungeRule:

    def test_bottom_position(self, poses):
        result = evaluate("lunge", poses.lunge_bottom())
        assert result.in_position
        assert result.phase is Phase.DOWN
        assert result.score == 100

    def test_front_knee_too_bent(self, poses):
        result = evaluate("lunge", poses.lunge_deep_front())
        assert result.phase is Phase.DOWN
        assert result.mistakes == ["front_knee_too_bent"]
        assert result.score == 85

    def test_standing_is_up(self, poses):
        result = evaluate("lunge", poses.standing())
        assert result.phase is Phase.UP
        assert not result.in_position
        assert result.mistakes == ["back_knee_not_bent"]


class TestCrunchRule:

    def test_lying_flat_is_down(self, poses):
        result = evaluate("crunch", poses.crunch_rest())
        assert result.phase is Phase.DOWN
        assert not result.in_position

    def test_curl_up(self, poses):
        result = evaluate("crunch", poses.crunch_up())
        assert result.phase is Phase.UP
        assert result.in_position
        assert result.score == 100

    def test_neck_pulled(self, poses):
        result = evaluate("crunch", poses.crunch_up(nose=(0.40, 0.60)))
        assert result.mistakes == ["neck_pulled"]
        assert result.score == 90

    def test_partial_lift_is_transitional(self, poses):
        landmarks = poses.crunch_rest()
        for index in (11, 12):
            landmarks[index]["y"] = 0.77
        result = evaluate("crunch", landmarks)
        assert result.phase is None
        assert not result.in_position


class TestMountainClimberRule:

    def test_legs_extended_is_up(self, poses):
        result = evaluate("mountain_climber", poses.mountain_climber_extended())
        assert result.in_position
        assert result.phase is Phase.UP
        assert result.score == 100

    def test_knee_drive_is_down(self, poses):
        result = evaluate("mountain_climber", poses.mountain_climber_tucked())
        assert result.phase is Phase.DOWN
        assert result.mistakes == []

    def test_hips_too_high(self, poses):
        result = evaluate("mountain_climber", poses.mountain_climber_piked())
        assert result.in_position
        assert result.mistakes == ["hips_too_high"]
        assert result.score == 85
        assert result.phase is None

    def test_upright_body_is_idle(self, poses):
        landmarks = poses.standing()
        for index in (11, 12):
            landmarks[index]["y"] = 0.20
        result = evaluate("mountain_climber", landmarks)
        assert not result.in_position
        assert result.phase is Phase.IDLE


# ============================================================================
# Test: Cardio
# ============================================================================

class TestJumpingJackRule:

    def test_closed_is_down(self, poses):
        result = evaluate("jumping_jack", poses.jumping_jack())
        assert result.in_position
        assert result.phase is Phase.DOWN
        assert result.score == 100

    def test_open_is_up(self, poses):
        result = evaluate("jumping_jack", poses.jumping_jack(arms="wide", legs="open"))
        assert result.phase is Phase.UP
        assert result.score == 100

    def test_arms_not_wide(self, poses):
        result = evaluate("jumping_jack", poses.jumping_jack(arms="narrow", legs="open"))
        assert result.phase is Phase.UP
        assert result.mistakes == ["arms_not_wide"]
        assert result.score == 85

    def test_arms_and_legs_out_of_sync(self, poses):
        result = evaluate("jumping_jack", poses.jumping_jack(arms="wide", legs="closed"))
        assert not result.in_position
        assert result.phase is None
        assert result.mistakes == ["not_synchronized"]
        assert result.score == 80


class TestBurpeeRule:

    def test_standing_is_up(self, poses):
        result = evaluate("burpee", poses.standing())
        assert result.phase is Phase.UP
        assert result.score == 100

    def test_plank_is_down(self, poses):
        result = evaluate("burpee", poses.push_up_top())
        assert result.phase is Phase.DOWN
        assert result.mistakes == []

    def test_sagging_plank(self, poses):
        result = evaluate("burpee", poses.burpee_sagging_plank())
        assert result.phase is Phase.DOWN
        assert result.mistakes == ["plank_not_straight"]
        assert result.score == 85


class TestHighKneesRule:

    def test_standing_is_down(self, poses):
        result = evaluate("high_knees", poses.standing())
        assert result.phase is Phase.DOWN
        assert not result.in_position

    def test_knee_at_hip_height(self, poses):
        result = evaluate("high_knees", poses.high_knee_lift())
        assert result.phase is Phase.UP
        assert result.in_position
        assert result.score == 100

    def test_knee_not_high_enough(self, poses):
        result = evaluate("high_knees", poses.high_knee_lift(knee=(0.58, 0.66)))
        assert result.phase is Phase.UP
        assert result.mistakes == ["knees_not_high_enough"]
        assert result.score == 85
