"""
FITDUEL Form Service - Exercise Session Handler

Wires landmark frames into the exercise analyzer and raw frames into the
trust validator, then packages both into an end-of-session report.
Duel (strict) sessions are validated; practice sessions are not.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from core.config import settings
from integrity_service.models import OpenCVFrameInspector, RawFrame, TrustValidator, ValidationResult
from shared.utils import get_now_iso
from .calibration import CalibrationStore, get_calibration_store
from .exercise_analyzer import ExerciseAnalyzer
from .exercise_rules import ExerciseType

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Exercise session states."""
    CREATED = "created"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


@dataclass
class PerformanceSummary:
    """End-of-session performance report."""
    exercise: str
    rep_count: int
    average_form_score: float
    best_form_score: float
    mistakes: List[str]
    perfect_reps: int
    good_reps: int
    bad_reps: int
    average_rep_duration_ms: float
    rep_consistency: float
    calories: float
    duration_seconds: float
    hold_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exercise": self.exercise,
            "rep_count": self.rep_count,
            "average_form_score": round(self.average_form_score, 1),
            "best_form_score": round(self.best_form_score, 1),
            "mistakes": self.mistakes,
            "perfect_reps": self.perfect_reps,
            "good_reps": self.good_reps,
            "bad_reps": self.bad_reps,
            "average_rep_duration_ms": round(self.average_rep_duration_ms, 1),
            "rep_consistency": round(self.rep_consistency, 1),
            "calories": round(self.calories, 2),
            "duration_seconds": round(self.duration_seconds, 1),
            "hold_seconds": round(self.hold_seconds, 1),
        }


@dataclass
class ExerciseSession:
    """Complete exercise session data."""
    session_id: str
    user_id: str
    exercise_type: ExerciseType
    analyzer: ExerciseAnalyzer
    validator: Optional[TrustValidator] = None
    strict_mode: bool = False
    target_reps: Optional[int] = None
    target_time: Optional[float] = None
    state: SessionState = SessionState.CREATED

    # Timing (handler clock, seconds)
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    paused_at: Optional[float] = None
    paused_total: float = 0.0

    current_feedback: List[str] = field(default_factory=list)
    summary: Optional[PerformanceSummary] = None
    validation: Optional[ValidationResult] = None
    completed_at: Optional[str] = None

    def elapsed(self, now: float) -> float:
        if self.start_time is None:
            return 0.0
        end = self.end_time if self.end_time is not None else now
        paused = self.paused_total
        if self.paused_at is not None:
            paused += end - self.paused_at
        return max(0.0, end - self.start_time - paused)

    def to_dict(self, now: float) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "exercise_type": self.exercise_type.value,
            "state": self.state.value,
            "strict_mode": self.strict_mode,
            "target_reps": self.target_reps,
            "target_time": self.target_time,
            "rep_count": self.analyzer.rep_count(),
            "avg_form_score": round(self.analyzer.average_form_score(), 1),
            "hold_seconds": round(self.analyzer.hold_seconds(), 1),
            "current_feedback": self.current_feedback,
            "duration_seconds": round(self.elapsed(now), 1),
            "trust": self.validator.snapshot() if self.validator else None,
        }


class ExerciseSessionHandler:
    """
    Manages exercise sessions across the form and integrity engines.

    Each session owns one analyzer and, in strict mode, one trust validator;
    sessions share only the read-only calibration store.
    """

    def __init__(
        self,
        calibration_store: Optional[CalibrationStore] = None,
        inspector_factory: Optional[Callable[[], Any]] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.calibration_store = calibration_store if calibration_store is not None else get_calibration_store()
        self.inspector_factory = inspector_factory or OpenCVFrameInspector
        self._clock = clock or time.monotonic
        self.active_sessions: Dict[str, ExerciseSession] = {}

    def create_session(
        self,
        user_id: str,
        exercise_type,
        strict_mode: bool = False,
        target_reps: Optional[int] = None,
        target_time: Optional[float] = None,
    ) -> ExerciseSession:
        """Create a session. Unknown exercise identifiers raise ValueError."""
        if target_reps is not None and target_reps < 1:
            raise ValueError("target_reps must be positive")
        if target_time is not None and target_time <= 0:
            raise ValueError("target_time must be positive")

        exercise = ExerciseType.parse(exercise_type)
        calibration = self.calibration_store.get(user_id, exercise.value)
        analyzer = ExerciseAnalyzer(exercise, calibration=calibration, clock=self._clock)

        validator = None
        if strict_mode:
            validator = TrustValidator(self.inspector_factory(), clock=self._clock)
            validator.initialize(user_id, exercise.value)

        session = ExerciseSession(
            session_id=str(uuid.uuid4())[:8],
            user_id=user_id,
            exercise_type=exercise,
            analyzer=analyzer,
            validator=validator,
            strict_mode=strict_mode,
            target_reps=target_reps,
            target_time=target_time,
        )
        self.active_sessions[session.session_id] = session

        logger.info(
            f"Session {session.session_id} created: {exercise.value} for {user_id} "
            f"(strict={strict_mode}, calibrated={calibration is not None})"
        )
        return session

    def start_session(self, session_id: str) -> Dict[str, Any]:
        session = self.active_sessions.get(session_id)
        if not session:
            return {"error": "Session not found", "session_id": session_id}
        if session.state is not SessionState.CREATED:
            return {"error": f"Session already {session.state.value}", "session_id": session_id}

        session.analyzer.reset()
        if session.validator:
            session.validator.start_validation()
        session.state = SessionState.ACTIVE
        session.start_time = self._clock()

        return {
            "status": "started",
            "session_id": session_id,
            "exercise": session.exercise_type.value,
            "strict_mode": session.strict_mode,
            "target_reps": session.target_reps,
            "target_time": session.target_time,
        }

    # ═══════════════════════════════════════════════════════════════════════════
    # FRAME DELIVERY
    # ═══════════════════════════════════════════════════════════════════════════

    def process_landmarks(
        self,
        session_id: str,
        landmarks: Sequence[Any],
        timestamp_ms: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Analyze one landmark frame and return live feedback."""
        session = self.active_sessions.get(session_id)
        if not session:
            return {"error": "Session not found"}
        if session.state is not SessionState.ACTIVE:
            return {"status": session.state.value, "message": "Session not active"}

        analysis = session.analyzer.analyze(landmarks, timestamp_ms)
        session.current_feedback = analysis.suggestions

        response = {
            "session_id": session_id,
            "state": session.state.value,
            **analysis.to_dict(),
            "target_reps": session.target_reps,
        }
        if session.analyzer.rule.is_isometric:
            response["hold_seconds"] = round(session.analyzer.hold_seconds(), 1)
        if session.validator:
            response["trust"] = session.validator.snapshot()

        if self._target_reached(session):
            response["session_completed"] = True
            response["result"] = self.complete_session(session_id)

        return response

    def process_raw_frame(
        self,
        session_id: str,
        image: Optional[np.ndarray],
        timestamp_ms: Optional[float] = None,
        device: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Hand a raw video frame to the trust validator."""
        session = self.active_sessions.get(session_id)
        if not session:
            return {"error": "Session not found"}
        if session.state is not SessionState.ACTIVE:
            return {"status": session.state.value, "message": "Session not active"}
        if not session.validator:
            return {"session_id": session_id, "status": "skipped", "message": "Validation disabled"}

        if timestamp_ms is None:
            timestamp_ms = self._clock() * 1000.0
        session.validator.validate_frame(RawFrame(image=image, timestamp_ms=timestamp_ms, device=device or {}))
        return {"session_id": session_id, "status": "accepted", "trust": session.validator.snapshot()}

    def report_violation(self, session_id: str, violation_type: str, severity: str) -> Dict[str, Any]:
        """Log an external anomaly such as a tab switch. Invalid severities raise ValueError."""
        session = self.active_sessions.get(session_id)
        if not session:
            return {"error": "Session not found"}
        if not session.validator:
            return {"session_id": session_id, "status": "skipped", "message": "Validation disabled"}

        violation = session.validator.report_violation(violation_type, severity)
        return {
            "session_id": session_id,
            "status": "recorded" if violation else "ignored",
            "trust": session.validator.snapshot(),
        }

    def _target_reached(self, session: ExerciseSession) -> bool:
        analyzer = session.analyzer
        if session.target_reps and analyzer.rep_count() >= session.target_reps:
            return True
        if session.target_time:
            if analyzer.rule.is_isometric:
                return analyzer.hold_seconds() >= session.target_time
            return session.elapsed(self._clock()) >= session.target_time
        return False

    # ═══════════════════════════════════════════════════════════════════════════
    # SESSION CONTROL
    # ═══════════════════════════════════════════════════════════════════════════

    def pause_session(self, session_id: str) -> Dict[str, Any]:
        """Pause an active session."""
        session = self.active_sessions.get(session_id)
        if not session:
            return {"error": "Session not found"}
        if session.state is not SessionState.ACTIVE:
            return {"error": "Session not active"}

        session.state = SessionState.PAUSED
        session.paused_at = self._clock()
        return {"status": "paused", "session_id": session_id}

    def resume_session(self, session_id: str) -> Dict[str, Any]:
        """Resume a paused session."""
        session = self.active_sessions.get(session_id)
        if not session:
            return {"error": "Session not found"}

        if session.state is SessionState.PAUSED:
            session.paused_total += self._clock() - session.paused_at
            session.paused_at = None
            session.state = SessionState.ACTIVE
            return {"status": "resumed", "session_id": session_id}

        return {"error": "Session not paused"}

    def complete_session(self, session_id: str) -> Dict[str, Any]:
        """
        Complete a session: stop validation and build the performance summary.

        Completing twice returns the same report.
        """
        session = self.active_sessions.get(session_id)
        if not session:
            return {"error": "Session not found"}

        if session.state is not SessionState.COMPLETED:
            now = self._clock()
            if session.paused_at is not None:
                session.paused_total += now - session.paused_at
                session.paused_at = None
            session.end_time = now
            session.state = SessionState.COMPLETED
            session.summary = self._generate_summary(session)
            if session.validator:
                session.validator.analyze_rep_timing(session.analyzer.performance.rep_durations)
                session.validation = session.validator.stop_validation()
            session.completed_at = get_now_iso()
            logger.info(
                f"Session {session_id} completed: {session.summary.rep_count} reps, "
                f"avg form {session.summary.average_form_score:.1f}"
            )
            self._evict_completed()

        return {
            "status": "completed",
            "session_id": session.session_id,
            "user_id": session.user_id,
            "exercise": session.exercise_type.value,
            "summary": session.summary.to_dict(),
            "validation": session.validation.to_dict() if session.validation else None,
            "completed_at": session.completed_at,
        }

    def _generate_summary(self, session: ExerciseSession) -> PerformanceSummary:
        analyzer = session.analyzer
        rule = analyzer.rule
        counts = analyzer.rep_quality_counts()

        if rule.is_isometric:
            calories = analyzer.hold_seconds() * rule.calories_per_unit
        else:
            calories = analyzer.rep_count() * rule.calories_per_unit

        return PerformanceSummary(
            exercise=session.exercise_type.value,
            rep_count=analyzer.rep_count(),
            average_form_score=analyzer.average_form_score(),
            best_form_score=analyzer.best_form_score(),
            mistakes=sorted(analyzer.mistakes()),
            perfect_reps=counts["perfect"],
            good_reps=counts["good"],
            bad_reps=counts["bad"],
            average_rep_duration_ms=analyzer.average_rep_duration(),
            rep_consistency=analyzer.rep_consistency(),
            calories=calories,
            duration_seconds=session.elapsed(self._clock()),
            hold_seconds=analyzer.hold_seconds(),
        )

    def get_session(self, session_id: str) -> Optional[ExerciseSession]:
        """Get session by ID."""
        return self.active_sessions.get(session_id)

    def get_session_status(self, session_id: str) -> Dict[str, Any]:
        """Get current session status."""
        session = self.active_sessions.get(session_id)
        if not session:
            return {"error": "Session not found"}

        return session.to_dict(self._clock())

    def _evict_completed(self) -> None:
        """Drop the oldest completed sessions beyond the retention limit."""
        completed = [sid for sid, s in self.active_sessions.items() if s.state is SessionState.COMPLETED]
        excess = len(completed) - settings.COMPLETED_SESSION_RETENTION
        for session_id in completed[:max(0, excess)]:
            self.cleanup_session(session_id)

    def open_session_count(self) -> int:
        """Sessions not yet completed."""
        return sum(1 for s in self.active_sessions.values() if s.state is not SessionState.COMPLETED)

    def cleanup_session(self, session_id: str) -> bool:
        """Remove session from active sessions."""
        session = self.active_sessions.pop(session_id, None)
        if session is None:
            return False
        logger.info(f"Session {session_id} removed ({session.state.value})")
        return True


# ═══════════════════════════════════════════════════════════════════════════════
# MODULE-LEVEL SINGLETON
# ═══════════════════════════════════════════════════════════════════════════════

_handler_instance: Optional[ExerciseSessionHandler] = None


def get_session_handler() -> ExerciseSessionHandler:
    """Get or create the global session handler instance."""
    global _handler_instance
    if _handler_instance is None:
        _handler_instance = ExerciseSessionHandler()
    return _handler_instance
