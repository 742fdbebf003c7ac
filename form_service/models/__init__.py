"""
FITDUEL Form Service Models

Rule-based exercise form analysis, calibration and session handling.
"""

from .landmarks import (
    JointType,
    Landmark,
    LandmarkFrame,
    MissingLandmarkError,
)

from .geometry import (
    PlanarPoint,
    angle,
    distance,
    midpoint,
)

from .calibration import (
    CalibrationData,
    CalibrationStore,
    get_calibration_store,
)

from .exercise_rules import (
    ExerciseType,
    ExerciseRule,
    Phase,
    Penalty,
    RuleResult,
    EXERCISE_RULES,
    get_exercise_rule,
    list_exercise_rules,
)

from .exercise_analyzer import (
    ExerciseAnalyzer,
    AnalysisResult,
    ExerciseState,
    PerformanceAccumulator,
)

from .exercise_session import (
    ExerciseSession,
    ExerciseSessionHandler,
    PerformanceSummary,
    SessionState,
    get_session_handler,
)

__all__ = [
    # Landmarks & geometry
    "JointType",
    "Landmark",
    "LandmarkFrame",
    "MissingLandmarkError",
    "PlanarPoint",
    "angle",
    "distance",
    "midpoint",
    # Calibration
    "CalibrationData",
    "CalibrationStore",
    "get_calibration_store",
    # Exercise rules
    "ExerciseType",
    "ExerciseRule",
    "Phase",
    "Penalty",
    "RuleResult",
    "EXERCISE_RULES",
    "get_exercise_rule",
    "list_exercise_rules",
    # Exercise analyzer
    "ExerciseAnalyzer",
    "AnalysisResult",
    "ExerciseState",
    "PerformanceAccumulator",
    # Exercise session
    "ExerciseSession",
    "ExerciseSessionHandler",
    "PerformanceSummary",
    "SessionState",
    "get_session_handler",
]
