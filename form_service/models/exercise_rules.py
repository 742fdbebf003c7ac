"""
FITDUEL Form Service - Exercise Rules

Rule-based form checks for the closed set of supported exercises.
Every rule starts from a perfect 100 and subtracts fixed penalties for each
violated constraint, then classifies the frame into a coarse movement phase.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .calibration import AVERAGE_LEG_TORSO_RATIO, CalibrationData
from .geometry import PlanarPoint, angle, distance, horizontal_span, midpoint
from .landmarks import JointType, LandmarkFrame


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS AND DATA CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class ExerciseType(str, Enum):
    """Supported exercise identifiers."""
    PUSH_UP = "push_up"
    SQUAT = "squat"
    PLANK = "plank"
    JUMPING_JACK = "jumping_jack"
    BURPEE = "burpee"
    LUNGE = "lunge"
    MOUNTAIN_CLIMBER = "mountain_climber"
    CRUNCH = "crunch"
    WALL_SIT = "wall_sit"
    HIGH_KNEES = "high_knees"

    @classmethod
    def parse(cls, value) -> "ExerciseType":
        """Resolve an identifier; unknown identifiers raise ValueError."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unsupported exercise: {value!r}") from None


class Phase(str, Enum):
    """Coarse movement phase fed to the repetition state machine."""
    IDLE = "idle"
    UP = "up"
    DOWN = "down"


@dataclass(frozen=True)
class Penalty:
    """A fixed deduction for one violated constraint."""
    code: str
    points: int
    suggestion: str


@dataclass
class RuleResult:
    """Outcome of one rule evaluation. phase None means transitional."""
    score: int
    in_position: bool
    mistakes: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    phase: Optional[Phase] = None


class FormCheck:
    """Accumulates penalties for a single frame."""

    def __init__(self, penalties: Mapping[str, Penalty]):
        self._penalties = penalties
        self.score = 100
        self.mistakes: List[str] = []
        self.suggestions: List[str] = []

    def penalize(self, code: str) -> None:
        penalty = self._penalties[code]
        self.score -= penalty.points
        self.mistakes.append(penalty.code)
        self.suggestions.append(penalty.suggestion)

    def result(self, in_position: bool, phase: Optional[Phase]) -> RuleResult:
        return RuleResult(
            score=max(0, self.score),
            in_position=in_position,
            mistakes=self.mistakes,
            suggestions=self.suggestions,
            phase=phase,
        )


RuleFunction = Callable[[LandmarkFrame, Mapping[str, float], FormCheck], Tuple[bool, Optional[Phase]]]


@dataclass(frozen=True)
class ExerciseRule:
    """Definition of one exercise: thresholds, penalties and catalogue data."""
    exercise: ExerciseType
    name: str
    category: str
    difficulty: str
    check: RuleFunction
    thresholds: Mapping[str, float]
    penalties: Mapping[str, Penalty]
    perfect_threshold: int
    good_threshold: int
    calories_per_unit: float
    is_isometric: bool = False
    target_reps: Optional[int] = None
    target_time: Optional[int] = None
    muscle_groups: Tuple[str, ...] = ()

    @property
    def max_deduction(self) -> int:
        return sum(p.points for p in self.penalties.values())

    def evaluate(self, frame: LandmarkFrame, thresholds: Optional[Mapping[str, float]] = None) -> RuleResult:
        """Run the rule. Raises MissingLandmarkError when a required joint is absent."""
        form = FormCheck(self.penalties)
        in_position, phase = self.check(frame, thresholds or self.thresholds, form)
        return form.result(bool(in_position), phase)

    def thresholds_for(self, calibration: Optional[CalibrationData]) -> Dict[str, float]:
        """Effective thresholds after applying a subject's calibration."""
        thresholds = dict(self.thresholds)
        if calibration is None:
            return thresholds

        if "knee_toe_tolerance" in thresholds:
            ratio = calibration.leg_torso_ratio()
            if ratio:
                scale = _clamp(ratio / AVERAGE_LEG_TORSO_RATIO, 0.5, 2.0)
                thresholds["knee_toe_tolerance"] *= scale

        if "body_line_tolerance" in thresholds:
            natural = calibration.baseline_angles.get("body_line")
            if natural is not None:
                thresholds["body_line_tolerance"] += _clamp(180.0 - natural, 0.0, 15.0)

        # Knee depth only; the push-up depth target is an elbow angle
        if self.exercise in (ExerciseType.SQUAT, ExerciseType.WALL_SIT):
            knee_bottom = calibration.baseline_angles.get("knee_bottom")
            if knee_bottom is not None:
                thresholds["depth_target"] = _clamp(knee_bottom, 80.0, 110.0)

        if "elbow_width_factor" in thresholds:
            measured = calibration.baseline_distances.get("shoulder_width")
            proportion = calibration.body_proportions.get("shoulder_width")
            if measured and proportion:
                thresholds["elbow_width_factor"] *= _clamp(measured / proportion, 0.8, 1.25)

        return thresholds

    def to_dict(self) -> Dict:
        return {
            "id": self.exercise.value,
            "name": self.name,
            "category": self.category,
            "difficulty": self.difficulty,
            "perfect_form_threshold": self.perfect_threshold,
            "good_form_threshold": self.good_threshold,
            "calories_per_unit": self.calories_per_unit,
            "is_isometric": self.is_isometric,
            "target_reps": self.target_reps,
            "target_time": self.target_time,
            "muscle_groups": list(self.muscle_groups),
            "mistakes": sorted(self.penalties),
        }


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _penalties(*items: Penalty) -> Dict[str, Penalty]:
    return {p.code: p for p in items}


# ═══════════════════════════════════════════════════════════════════════════════
# STRENGTH
# ═══════════════════════════════════════════════════════════════════════════════

def _push_up(frame: LandmarkFrame, t: Mapping[str, float], form: FormCheck):
    l_shoulder, r_shoulder, l_elbow, r_elbow, l_wrist, r_wrist = frame.require_all(
        JointType.LEFT_SHOULDER, JointType.RIGHT_SHOULDER,
        JointType.LEFT_ELBOW, JointType.RIGHT_ELBOW,
        JointType.LEFT_WRIST, JointType.RIGHT_WRIST,
    )
    l_hip, r_hip, l_ankle, r_ankle = frame.require_all(
        JointType.LEFT_HIP, JointType.RIGHT_HIP, JointType.LEFT_ANKLE, JointType.RIGHT_ANKLE,
    )

    in_position = l_shoulder.y < l_wrist.y and r_shoulder.y < r_wrist.y
    elbow_angle = (angle(l_shoulder, l_elbow, l_wrist) + angle(r_shoulder, r_elbow, r_wrist)) / 2
    is_down = elbow_angle < t["elbow_down"]
    is_up = elbow_angle > t["elbow_up"]

    body_line = angle(midpoint(l_shoulder, r_shoulder), midpoint(l_hip, r_hip), midpoint(l_ankle, r_ankle))
    if abs(body_line - 180) > t["body_line_tolerance"]:
        form.penalize("back_not_straight")

    if horizontal_span(l_elbow, r_elbow) > horizontal_span(l_shoulder, r_shoulder) * t["elbow_width_factor"]:
        form.penalize("elbows_too_wide")

    if is_down and elbow_angle > t["depth_target"]:
        form.penalize("depth_insufficient")

    hands = distance(l_wrist, r_wrist)
    shoulders = distance(l_shoulder, r_shoulder)
    if hands < shoulders * t["hand_width_min"] or hands > shoulders * t["hand_width_max"]:
        form.penalize("hand_position_incorrect")

    if not in_position:
        return False, Phase.IDLE
    return True, Phase.UP if is_up else Phase.DOWN if is_down else None


def _squat(frame: LandmarkFrame, t: Mapping[str, float], form: FormCheck):
    l_hip, r_hip, l_knee, r_knee, l_ankle, r_ankle = frame.require_all(
        JointType.LEFT_HIP, JointType.RIGHT_HIP,
        JointType.LEFT_KNEE, JointType.RIGHT_KNEE,
        JointType.LEFT_ANKLE, JointType.RIGHT_ANKLE,
    )
    l_shoulder, r_shoulder = frame.require_all(JointType.LEFT_SHOULDER, JointType.RIGHT_SHOULDER)

    knee_angle = (angle(l_hip, l_knee, l_ankle) + angle(r_hip, r_knee, r_ankle)) / 2
    in_position = knee_angle < t["position_knee"]
    is_down = knee_angle < t["knee_down"]
    is_up = knee_angle > t["knee_up"]

    tolerance = t["knee_toe_tolerance"]
    if l_knee.x > l_ankle.x + tolerance or r_knee.x > r_ankle.x + tolerance:
        form.penalize("knees_past_toes")

    knees = horizontal_span(l_knee, r_knee)
    if knees < horizontal_span(l_ankle, r_ankle) * t["knee_inward_ratio"]:
        form.penalize("knees_inward")
    elif knees > horizontal_span(l_hip, r_hip) * t["knee_outward_ratio"]:
        form.penalize("knees_outward")

    if in_position and knee_angle > t["depth_target"]:
        form.penalize("squat_not_deep")

    hip = midpoint(l_hip, r_hip)
    torso_lean = angle(midpoint(l_shoulder, r_shoulder), hip, PlanarPoint(hip.x, hip.y - 0.1))
    if torso_lean > t["max_torso_lean"]:
        form.penalize("back_angle_incorrect")

    return in_position, Phase.UP if is_up else Phase.DOWN if is_down else None


def _lunge(frame: LandmarkFrame, t: Mapping[str, float], form: FormCheck):
    l_hip, r_hip, l_knee, r_knee, l_ankle, r_ankle = frame.require_all(
        JointType.LEFT_HIP, JointType.RIGHT_HIP,
        JointType.LEFT_KNEE, JointType.RIGHT_KNEE,
        JointType.LEFT_ANKLE, JointType.RIGHT_ANKLE,
    )
    left_knee = angle(l_hip, l_knee, l_ankle)
    right_knee = angle(r_hip, r_knee, r_ankle)

    # The forward foot sits lower in the image
    left_forward = l_ankle.y > r_ankle.y
    front_knee, back_knee = (left_knee, right_knee) if left_forward else (right_knee, left_knee)

    in_position = front_knee < t["position_knee"] and back_knee < t["position_knee"]

    if front_knee < t["front_knee_min"]:
        form.penalize("front_knee_too_bent")
    if back_knee > t["back_knee_max"]:
        form.penalize("back_knee_not_bent")

    if in_position:
        phase = Phase.DOWN
    elif front_knee > t["standing_knee"] and back_knee > t["standing_knee"]:
        phase = Phase.UP
    else:
        phase = None
    return in_position, phase


def _wall_sit(frame: LandmarkFrame, t: Mapping[str, float], form: FormCheck):
    l_hip, r_hip, l_knee, r_knee, l_ankle, r_ankle = frame.require_all(
        JointType.LEFT_HIP, JointType.RIGHT_HIP,
        JointType.LEFT_KNEE, JointType.RIGHT_KNEE,
        JointType.LEFT_ANKLE, JointType.RIGHT_ANKLE,
    )
    knee_angle = (angle(l_hip, l_knee, l_ankle) + angle(r_hip, r_knee, r_ankle)) / 2
    window = t["depth_window"]
    target = t["depth_target"]

    in_position = target - window < knee_angle < target + window
    if knee_angle > target + window:
        form.penalize("not_low_enough")

    return in_position, None


# ═══════════════════════════════════════════════════════════════════════════════
# CORE
# ═══════════════════════════════════════════════════════════════════════════════

def _plank(frame: LandmarkFrame, t: Mapping[str, float], form: FormCheck):
    l_shoulder, r_shoulder, l_elbow, l_hip, r_hip, l_ankle, r_ankle = frame.require_all(
        JointType.LEFT_SHOULDER, JointType.RIGHT_SHOULDER, JointType.LEFT_ELBOW,
        JointType.LEFT_HIP, JointType.RIGHT_HIP,
        JointType.LEFT_ANKLE, JointType.RIGHT_ANKLE,
    )
    shoulder = midpoint(l_shoulder, r_shoulder)
    hip = midpoint(l_hip, r_hip)
    body_line = angle(shoulder, hip, midpoint(l_ankle, r_ankle))
    in_position = abs(body_line - 180) < t["position_tolerance"]

    if hip.y < shoulder.y - t["hip_offset"]:
        form.penalize("hips_too_high")
    elif hip.y > shoulder.y + t["hip_offset"]:
        form.penalize("hips_too_low")

    if abs(body_line - 180) > t["body_line_tolerance"]:
        form.penalize("body_not_straight")

    # Upper arm against torso, roughly square for a forearm plank
    arm_angle = angle(l_elbow, l_shoulder, l_hip)
    if arm_angle < t["arm_angle_min"] or arm_angle > t["arm_angle_max"]:
        form.penalize("elbow_position_incorrect")

    nose = frame.get(JointType.NOSE)
    if nose is not None and (nose.y < shoulder.y - t["head_above"] or nose.y > shoulder.y + t["head_below"]):
        form.penalize("head_position")

    return in_position, None


def _crunch(frame: LandmarkFrame, t: Mapping[str, float], form: FormCheck):
    l_shoulder, r_shoulder, l_hip, r_hip = frame.require_all(
        JointType.LEFT_SHOULDER, JointType.RIGHT_SHOULDER, JointType.LEFT_HIP, JointType.RIGHT_HIP,
    )
    lift = midpoint(l_hip, r_hip).y - midpoint(l_shoulder, r_shoulder).y
    in_position = lift > t["lift_min"]

    nose = frame.get(JointType.NOSE)
    if in_position and nose is not None:
        neck = angle(nose, midpoint(l_shoulder, r_shoulder), midpoint(l_hip, r_hip))
        if neck < t["neck_angle_min"]:
            form.penalize("neck_pulled")

    if in_position:
        phase = Phase.UP
    elif lift < t["rest_max"]:
        phase = Phase.DOWN
    else:
        phase = None
    return in_position, phase


def _mountain_climber(frame: LandmarkFrame, t: Mapping[str, float], form: FormCheck):
    l_shoulder, r_shoulder, l_hip, r_hip, l_knee, r_knee = frame.require_all(
        JointType.LEFT_SHOULDER, JointType.RIGHT_SHOULDER,
        JointType.LEFT_HIP, JointType.RIGHT_HIP,
        JointType.LEFT_KNEE, JointType.RIGHT_KNEE,
    )
    shoulder = midpoint(l_shoulder, r_shoulder)
    hip = midpoint(l_hip, r_hip)
    in_position = abs(shoulder.y - hip.y) < t["torso_level"]

    left_hip_angle = angle(l_shoulder, l_hip, l_knee)
    right_hip_angle = angle(r_shoulder, r_hip, r_knee)

    if hip.y < shoulder.y - t["hip_offset"]:
        form.penalize("hips_too_high")

    if not in_position:
        return False, Phase.IDLE
    if min(left_hip_angle, right_hip_angle) < t["knee_drive"]:
        return True, Phase.DOWN
    if left_hip_angle > t["legs_extended"] and right_hip_angle > t["legs_extended"]:
        return True, Phase.UP
    return True, None


# ═══════════════════════════════════════════════════════════════════════════════
# CARDIO
# ═══════════════════════════════════════════════════════════════════════════════

def _jumping_jack(frame: LandmarkFrame, t: Mapping[str, float], form: FormCheck):
    l_wrist, r_wrist, l_shoulder, r_shoulder, l_ankle, r_ankle = frame.require_all(
        JointType.LEFT_WRIST, JointType.RIGHT_WRIST,
        JointType.LEFT_SHOULDER, JointType.RIGHT_SHOULDER,
        JointType.LEFT_ANKLE, JointType.RIGHT_ANKLE,
    )
    arms_up = l_wrist.y < l_shoulder.y and r_wrist.y < r_shoulder.y
    arms_wide = horizontal_span(l_wrist, r_wrist) > horizontal_span(l_shoulder, r_shoulder) * t["arm_width_ratio"]
    legs_wide = horizontal_span(l_ankle, r_ankle) > t["leg_spread"]

    is_open = arms_up and legs_wide
    is_closed = not arms_up and not legs_wide
    in_position = is_open or is_closed

    if arms_up and not arms_wide:
        form.penalize("arms_not_wide")
    if arms_wide and not arms_up:
        form.penalize("arms_not_up")
    if arms_up != legs_wide:
        form.penalize("not_synchronized")

    return in_position, Phase.UP if is_open else Phase.DOWN if is_closed else None


def _burpee(frame: LandmarkFrame, t: Mapping[str, float], form: FormCheck):
    l_shoulder, r_shoulder, l_hip, r_hip, l_ankle, r_ankle = frame.require_all(
        JointType.LEFT_SHOULDER, JointType.RIGHT_SHOULDER,
        JointType.LEFT_HIP, JointType.RIGHT_HIP,
        JointType.LEFT_ANKLE, JointType.RIGHT_ANKLE,
    )
    shoulder = midpoint(l_shoulder, r_shoulder)
    hip = midpoint(l_hip, r_hip)
    body_line = angle(shoulder, hip, midpoint(l_ankle, r_ankle))

    upright = shoulder.y < hip.y - t["upright_rise"]
    grounded = abs(shoulder.y - hip.y) < t["ground_level"]

    if grounded and abs(body_line - 180) > t["body_line_tolerance"]:
        form.penalize("plank_not_straight")

    if upright and body_line > t["standing_line"]:
        return True, Phase.UP
    if grounded:
        return True, Phase.DOWN
    return True, None


def _high_knees(frame: LandmarkFrame, t: Mapping[str, float], form: FormCheck):
    l_shoulder, r_shoulder, l_hip, r_hip, l_knee, r_knee = frame.require_all(
        JointType.LEFT_SHOULDER, JointType.RIGHT_SHOULDER,
        JointType.LEFT_HIP, JointType.RIGHT_HIP,
        JointType.LEFT_KNEE, JointType.RIGHT_KNEE,
    )
    left = angle(l_shoulder, l_hip, l_knee)
    right = angle(r_shoulder, r_hip, r_knee)
    lifted = min(left, right) < t["lift_angle"]
    high = l_knee.y <= l_hip.y or r_knee.y <= r_hip.y

    in_position = lifted
    if in_position and not high:
        form.penalize("knees_not_high_enough")

    if lifted:
        return in_position, Phase.UP
    if left > t["standing_angle"] and right > t["standing_angle"]:
        return in_position, Phase.DOWN
    return in_position, None


# ═══════════════════════════════════════════════════════════════════════════════
# REGISTRY
# ═══════════════════════════════════════════════════════════════════════════════

EXERCISE_RULES: Dict[ExerciseType, ExerciseRule] = {
    ExerciseType.PUSH_UP: ExerciseRule(
        exercise=ExerciseType.PUSH_UP,
        name="Push-Up",
        category="strength",
        difficulty="medium",
        check=_push_up,
        thresholds={
            "elbow_down": 110,
            "elbow_up": 150,
            "depth_target": 90,
            "body_line_tolerance": 20,
            "elbow_width_factor": 1.3,
            "hand_width_min": 0.8,
            "hand_width_max": 1.5,
        },
        penalties=_penalties(
            Penalty("back_not_straight", 15, "Keep your back straight"),
            Penalty("elbows_too_wide", 10, "Keep your elbows closer to your body"),
            Penalty("depth_insufficient", 20, "Go lower, elbows to 90 degrees"),
            Penalty("hand_position_incorrect", 10, "Place your hands shoulder-width apart"),
        ),
        perfect_threshold=90,
        good_threshold=75,
        calories_per_unit=0.32,
        target_reps=15,
        muscle_groups=("chest", "shoulders", "triceps", "core"),
    ),
    ExerciseType.SQUAT: ExerciseRule(
        exercise=ExerciseType.SQUAT,
        name="Squat",
        category="strength",
        difficulty="easy",
        check=_squat,
        thresholds={
            "position_knee": 130,
            "knee_down": 100,
            "knee_up": 160,
            "depth_target": 90,
            "knee_toe_tolerance": 0.05,
            "knee_inward_ratio": 0.8,
            "knee_outward_ratio": 1.2,
            "max_torso_lean": 45,
        },
        penalties=_penalties(
            Penalty("knees_past_toes", 15, "Don't let your knees travel past your toes"),
            Penalty("knees_inward", 20, "Keep your knees in line with your feet"),
            Penalty("knees_outward", 15, "Don't push your knees too far out"),
            Penalty("squat_not_deep", 15, "Go lower, aim for 90 degrees"),
            Penalty("back_angle_incorrect", 15, "Keep your chest up"),
        ),
        perfect_threshold=85,
        good_threshold=70,
        calories_per_unit=0.35,
        target_reps=20,
        muscle_groups=("quadriceps", "glutes", "hamstrings", "core"),
    ),
    ExerciseType.PLANK: ExerciseRule(
        exercise=ExerciseType.PLANK,
        name="Plank",
        category="core",
        difficulty="medium",
        check=_plank,
        thresholds={
            "position_tolerance": 30,
            "body_line_tolerance": 15,
            "hip_offset": 0.1,
            "arm_angle_min": 70,
            "arm_angle_max": 110,
            "head_above": 0.15,
            "head_below": 0.05,
        },
        penalties=_penalties(
            Penalty("hips_too_high", 20, "Lower your hips"),
            Penalty("hips_too_low", 20, "Lift your hips, keep your body straight"),
            Penalty("body_not_straight", 15, "Keep your body in a straight line"),
            Penalty("elbow_position_incorrect", 10, "Place your elbows under your shoulders"),
            Penalty("head_position", 10, "Keep your head in line with your spine"),
        ),
        perfect_threshold=90,
        good_threshold=80,
        calories_per_unit=0.05,
        is_isometric=True,
        target_time=60,
        muscle_groups=("core", "shoulders", "back"),
    ),
    ExerciseType.JUMPING_JACK: ExerciseRule(
        exercise=ExerciseType.JUMPING_JACK,
        name="Jumping Jack",
        category="cardio",
        difficulty="easy",
        check=_jumping_jack,
        thresholds={
            "arm_width_ratio": 2.0,
            "leg_spread": 0.15,
        },
        penalties=_penalties(
            Penalty("arms_not_wide", 15, "Open your arms wider"),
            Penalty("arms_not_up", 15, "Raise your arms above your head"),
            Penalty("not_synchronized", 20, "Move your arms and legs together"),
        ),
        perfect_threshold=80,
        good_threshold=65,
        calories_per_unit=0.2,
        target_reps=50,
        muscle_groups=("full_body",),
    ),
    ExerciseType.BURPEE: ExerciseRule(
        exercise=ExerciseType.BURPEE,
        name="Burpee",
        category="cardio",
        difficulty="hard",
        check=_burpee,
        thresholds={
            "upright_rise": 0.1,
            "ground_level": 0.1,
            "standing_line": 160,
            "body_line_tolerance": 30,
        },
        penalties=_penalties(
            Penalty("plank_not_straight", 15, "Keep your body straight in the plank phase"),
        ),
        perfect_threshold=85,
        good_threshold=70,
        calories_per_unit=0.5,
        target_reps=10,
        muscle_groups=("full_body",),
    ),
    ExerciseType.LUNGE: ExerciseRule(
        exercise=ExerciseType.LUNGE,
        name="Lunge",
        category="strength",
        difficulty="easy",
        check=_lunge,
        thresholds={
            "position_knee": 110,
            "front_knee_min": 85,
            "back_knee_max": 120,
            "standing_knee": 160,
        },
        penalties=_penalties(
            Penalty("front_knee_too_bent", 15, "Don't bend your front knee too much"),
            Penalty("back_knee_not_bent", 15, "Bend your back knee more"),
        ),
        perfect_threshold=85,
        good_threshold=70,
        calories_per_unit=0.4,
        target_reps=20,
        muscle_groups=("quadriceps", "glutes", "hamstrings"),
    ),
    ExerciseType.MOUNTAIN_CLIMBER: ExerciseRule(
        exercise=ExerciseType.MOUNTAIN_CLIMBER,
        name="Mountain Climber",
        category="core",
        difficulty="medium",
        check=_mountain_climber,
        thresholds={
            "torso_level": 0.25,
            "hip_offset": 0.1,
            "knee_drive": 120,
            "legs_extended": 150,
        },
        penalties=_penalties(
            Penalty("hips_too_high", 15, "Keep your hips level with your shoulders"),
        ),
        perfect_threshold=85,
        good_threshold=70,
        calories_per_unit=0.4,
        target_reps=40,
        muscle_groups=("core", "shoulders", "cardio"),
    ),
    ExerciseType.CRUNCH: ExerciseRule(
        exercise=ExerciseType.CRUNCH,
        name="Crunch",
        category="core",
        difficulty="easy",
        check=_crunch,
        thresholds={
            "lift_min": 0.05,
            "rest_max": 0.02,
            "neck_angle_min": 120,
        },
        penalties=_penalties(
            Penalty("neck_pulled", 10, "Don't pull on your neck, lift with your abs"),
        ),
        perfect_threshold=90,
        good_threshold=75,
        calories_per_unit=0.25,
        target_reps=30,
        muscle_groups=("abs",),
    ),
    ExerciseType.WALL_SIT: ExerciseRule(
        exercise=ExerciseType.WALL_SIT,
        name="Wall Sit",
        category="strength",
        difficulty="medium",
        check=_wall_sit,
        thresholds={
            "depth_target": 90,
            "depth_window": 10,
        },
        penalties=_penalties(
            Penalty("not_low_enough", 20, "Go lower, aim for 90 degrees"),
        ),
        perfect_threshold=88,
        good_threshold=75,
        calories_per_unit=0.05,
        is_isometric=True,
        target_time=45,
        muscle_groups=("quadriceps", "glutes"),
    ),
    ExerciseType.HIGH_KNEES: ExerciseRule(
        exercise=ExerciseType.HIGH_KNEES,
        name="High Knees",
        category="cardio",
        difficulty="easy",
        check=_high_knees,
        thresholds={
            "lift_angle": 135,
            "standing_angle": 160,
        },
        penalties=_penalties(
            Penalty("knees_not_high_enough", 15, "Bring your knees up to hip height"),
        ),
        perfect_threshold=82,
        good_threshold=67,
        calories_per_unit=0.15,
        target_reps=60,
        muscle_groups=("legs", "core", "cardio"),
    ),
}


def _verify_registry() -> None:
    missing = [e.value for e in ExerciseType if e not in EXERCISE_RULES]
    if missing:
        raise RuntimeError(f"Exercise rules missing for: {', '.join(missing)}")
    for exercise, rule in EXERCISE_RULES.items():
        if rule.exercise is not exercise:
            raise RuntimeError(f"Rule for {exercise.value} registered as {rule.exercise.value}")
        if rule.max_deduction >= 100:
            raise RuntimeError(f"Penalties for {exercise.value} can reach {rule.max_deduction}")
        if not rule.good_threshold < rule.perfect_threshold <= 100:
            raise RuntimeError(f"Invalid form thresholds for {exercise.value}")


_verify_registry()


def get_exercise_rule(exercise) -> ExerciseRule:
    """Look up the rule for an exercise identifier; unknown ids raise ValueError."""
    return EXERCISE_RULES[ExerciseType.parse(exercise)]


def list_exercise_rules() -> List[ExerciseRule]:
    return [EXERCISE_RULES[e] for e in ExerciseType]
