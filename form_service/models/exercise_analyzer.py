"""
FITDUEL Form Service - Exercise Analyzer

Turns a stream of landmark frames into scored repetitions for one exercise.

Each frame is dispatched to the exercise rule, the resulting phase drives an
idle -> down -> up repetition state machine and the score feeds a per-session
PerformanceAccumulator. A rep is counted only on the down -> up transition.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Set

import numpy as np

from core.config import settings
from .calibration import CalibrationData
from .exercise_rules import ExerciseRule, ExerciseType, Phase, RuleResult, get_exercise_rule
from .landmarks import LandmarkFrame, MissingLandmarkError

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# DATA CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class AnalysisResult:
    """Per-frame analysis for live feedback."""
    form_score: int
    is_in_position: bool
    mistakes: List[str]
    suggestions: List[str]
    phase: str
    rep_count: int
    rep_completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "form_score": self.form_score,
            "is_in_position": self.is_in_position,
            "mistakes": self.mistakes,
            "suggestions": self.suggestions,
            "phase": self.phase,
            "rep_count": self.rep_count,
            "rep_completed": self.rep_completed,
        }


@dataclass
class ExerciseState:
    """Current movement phase plus a short history of transitions."""
    phase: Phase = Phase.IDLE
    history: Deque[Phase] = field(default_factory=lambda: deque(maxlen=settings.STATE_HISTORY_SIZE))
    last_transition_ms: Optional[float] = None
    down_started_ms: Optional[float] = None


@dataclass
class PerformanceAccumulator:
    """
    Session performance counters.

    Owned by a single analyzer and only grows until reset at session start.
    """
    rep_count: int = 0
    form_scores: List[float] = field(default_factory=list)
    mistake_tally: Set[str] = field(default_factory=set)
    rep_durations: List[float] = field(default_factory=list)  # milliseconds
    rep_scores: List[float] = field(default_factory=list)
    perfect_reps: int = 0
    good_reps: int = 0
    bad_reps: int = 0
    hold_ms: float = 0.0

    def average_form_score(self) -> float:
        if not self.form_scores:
            return 0.0
        return float(np.mean(self.form_scores))

    def best_form_score(self) -> float:
        if not self.form_scores:
            return 0.0
        return float(max(self.form_scores))

    def average_rep_duration(self) -> float:
        if not self.rep_durations:
            return 0.0
        return float(np.mean(self.rep_durations))

    def rep_consistency(self) -> float:
        """100 minus the coefficient of variation of rep durations, clamped to 0-100."""
        if len(self.rep_durations) < 2:
            return 100.0
        durations = np.asarray(self.rep_durations, dtype=float)
        mean = durations.mean()
        std = durations.std()
        if mean <= 0:
            return 100.0 if std == 0 else 0.0
        cv = std / mean * 100.0
        return float(max(0.0, min(100.0, 100.0 - cv)))

    def record_rep(self, duration_ms: Optional[float], score: float, rule: ExerciseRule) -> None:
        self.rep_count += 1
        if duration_ms is not None:
            self.rep_durations.append(duration_ms)
        self.rep_scores.append(score)
        if score >= rule.perfect_threshold:
            self.perfect_reps += 1
        elif score >= rule.good_threshold:
            self.good_reps += 1
        else:
            self.bad_reps += 1


# ═══════════════════════════════════════════════════════════════════════════════
# EXERCISE ANALYZER
# ═══════════════════════════════════════════════════════════════════════════════

class ExerciseAnalyzer:
    """
    Rule-driven analyzer for one exercise, chosen at construction.

    Usage:
        analyzer = ExerciseAnalyzer("squat")
        result = analyzer.analyze(landmarks)
        analyzer.rep_count(), analyzer.average_form_score()
    """

    def __init__(
        self,
        exercise,
        calibration: Optional[CalibrationData] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.rule: ExerciseRule = get_exercise_rule(exercise)
        self.exercise: ExerciseType = self.rule.exercise
        self._clock = clock or time.monotonic
        self.calibration: Optional[CalibrationData] = None
        self.thresholds: Dict[str, float] = self.rule.thresholds_for(None)
        if calibration is not None:
            self.set_calibration(calibration)

        self.state = ExerciseState()
        self.performance = PerformanceAccumulator()
        self._rep_frame_scores: List[float] = []
        self._pending_duration: Optional[float] = None
        self._last_hold_ms: Optional[float] = None

    def set_calibration(self, calibration: Optional[CalibrationData]) -> None:
        """Re-derive thresholds from a subject's calibration (None restores defaults)."""
        self.calibration = calibration
        self.thresholds = self.rule.thresholds_for(calibration)
        if calibration is not None:
            logger.info(f"Calibration applied for {calibration.subject_id} on {self.exercise.value}")

    # ═══════════════════════════════════════════════════════════════════════════
    # PER-FRAME ANALYSIS
    # ═══════════════════════════════════════════════════════════════════════════

    def analyze(self, landmarks: Sequence[Any], timestamp_ms: Optional[float] = None) -> AnalysisResult:
        """Analyze one landmark frame. Never raises on malformed input."""
        now = self._timestamp(timestamp_ms)
        outcome = self._evaluate(landmarks)

        rep_completed = False
        if outcome.phase is not None:
            rep_completed = self._update_state(outcome.phase, now)

        scored = outcome.in_position and (self.rule.is_isometric or self.state.phase is not Phase.IDLE)
        if scored:
            self.performance.form_scores.append(outcome.score)
            if not self.rule.is_isometric:
                self._rep_frame_scores.append(outcome.score)

        if rep_completed:
            self._complete_rep(outcome.score, now)

        if self.rule.is_isometric:
            self._track_hold(outcome.in_position, now)

        self.performance.mistake_tally.update(outcome.mistakes)

        return AnalysisResult(
            form_score=outcome.score,
            is_in_position=outcome.in_position,
            mistakes=list(outcome.mistakes),
            suggestions=list(outcome.suggestions),
            phase=self.state.phase.value,
            rep_count=self.performance.rep_count,
            rep_completed=rep_completed,
        )

    def _timestamp(self, timestamp_ms: Any) -> float:
        """Frame time in ms; missing or unparseable values fall back to the clock."""
        if timestamp_ms is None:
            return self._clock() * 1000.0
        try:
            now = float(timestamp_ms)
        except (TypeError, ValueError, OverflowError):
            now = float("nan")
        if not np.isfinite(now):
            logger.debug(f"Ignoring invalid timestamp {timestamp_ms!r}")
            return self._clock() * 1000.0
        return now

    def _evaluate(self, landmarks: Sequence[Any]) -> RuleResult:
        frame = LandmarkFrame(landmarks)
        try:
            return self.rule.evaluate(frame, self.thresholds)
        except MissingLandmarkError as e:
            logger.debug(f"{self.exercise.value}: {e}")
        except Exception as e:
            logger.error(f"Rule evaluation failed for {self.exercise.value}: {e}")
        return RuleResult(score=0, in_position=False)

    def _update_state(self, phase: Phase, now: float) -> bool:
        """Apply a phase transition. Returns True when a rep completed."""
        state = self.state
        if phase is state.phase:
            return False

        completed = state.phase is Phase.DOWN and phase is Phase.UP
        if completed:
            self._pending_duration = (
                now - state.down_started_ms if state.down_started_ms is not None else None
            )
        if phase is Phase.DOWN:
            # Start of a candidate rep
            state.down_started_ms = now
            self._rep_frame_scores = []
        elif not completed:
            state.down_started_ms = None

        state.phase = phase
        state.last_transition_ms = now
        state.history.append(phase)
        return completed

    def _complete_rep(self, frame_score: float, now: float) -> None:
        scores = self._rep_frame_scores or [frame_score]
        rep_score = float(np.mean(scores))
        duration = self._pending_duration
        self.performance.record_rep(duration, rep_score, self.rule)
        self._rep_frame_scores = []
        self._pending_duration = None
        self.state.down_started_ms = None
        logger.debug(
            f"{self.exercise.value} rep {self.performance.rep_count} "
            f"score={rep_score:.1f} duration={duration}"
        )

    def _track_hold(self, in_position: bool, now: float) -> None:
        if in_position:
            if self._last_hold_ms is not None and now > self._last_hold_ms:
                self.performance.hold_ms += now - self._last_hold_ms
            self._last_hold_ms = now
        else:
            self._last_hold_ms = None

    # ═══════════════════════════════════════════════════════════════════════════
    # AGGREGATES
    # ═══════════════════════════════════════════════════════════════════════════

    def rep_count(self) -> int:
        return self.performance.rep_count

    def average_form_score(self) -> float:
        return self.performance.average_form_score()

    def best_form_score(self) -> float:
        return self.performance.best_form_score()

    def mistakes(self) -> Set[str]:
        return set(self.performance.mistake_tally)

    def average_rep_duration(self) -> float:
        return self.performance.average_rep_duration()

    def rep_consistency(self) -> float:
        return self.performance.rep_consistency()

    def rep_quality_counts(self) -> Dict[str, int]:
        return {
            "perfect": self.performance.perfect_reps,
            "good": self.performance.good_reps,
            "bad": self.performance.bad_reps,
        }

    def hold_seconds(self) -> float:
        return self.performance.hold_ms / 1000.0

    @property
    def state_history(self) -> List[str]:
        return [p.value for p in self.state.history]

    def reset(self) -> None:
        """Clear accumulators and phase history; thresholds and calibration are kept."""
        self.state = ExerciseState()
        self.performance = PerformanceAccumulator()
        self._rep_frame_scores = []
        self._pending_duration = None
        self._last_hold_ms = None
