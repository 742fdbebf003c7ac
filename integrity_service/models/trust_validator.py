"""
FITDUEL Integrity Service - Trust Validator

Decides whether a session looks like a real person training live.

Raw frames are sampled every Nth call and passed to an injected FrameInspector
(device fingerprint, motion speed, static content). Every anomaly is appended
to a violation ledger and lowers a 0-100 trust score; a critical violation
invalidates the session on the spot.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

import numpy as np

from core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS AND DATA CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def weight(self) -> int:
        return SEVERITY_WEIGHTS[self]


SEVERITY_WEIGHTS = {
    Severity.LOW: 5,
    Severity.MEDIUM: 10,
    Severity.HIGH: 20,
    Severity.CRITICAL: 50,
}


class ViolationType(str, Enum):
    """Anomalies raised by the built-in checks. External reports may use any name."""
    MULTIPLE_DEVICES_DETECTED = "MULTIPLE_DEVICES_DETECTED"
    ABNORMAL_MOVEMENT_SPEED = "ABNORMAL_MOVEMENT_SPEED"
    STATIC_FRAME_DETECTED = "STATIC_FRAME_DETECTED"
    IMPOSSIBLE_REP_RATE = "IMPOSSIBLE_REP_RATE"
    MECHANICAL_TIMING = "MECHANICAL_TIMING"


class TrustLevel(str, Enum):
    """Coarse tier of a 0-100 trust score."""
    VERIFIED = "verified"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNTRUSTED = "untrusted"


TRUST_LEVEL_FLOORS = (
    (80, TrustLevel.VERIFIED),
    (60, TrustLevel.HIGH),
    (40, TrustLevel.MEDIUM),
    (20, TrustLevel.LOW),
)


def trust_level_for(score: int) -> TrustLevel:
    for floor, level in TRUST_LEVEL_FLOORS:
        if score >= floor:
            return level
    return TrustLevel.UNTRUSTED


class ValidatorState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    ACTIVE = "active"
    STOPPED = "stopped"


@dataclass(frozen=True)
class Violation:
    """A single ledger entry. Immutable once recorded."""
    type: str
    severity: Severity
    timestamp: float  # session clock, milliseconds

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "severity": self.severity.value, "timestamp": self.timestamp}


@dataclass
class RawFrame:
    """A captured video frame plus the client's device descriptor."""
    image: Optional[np.ndarray]
    timestamp_ms: Optional[float] = None
    device: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TrustConfig:
    sample_every: int = field(default_factory=lambda: settings.TRUST_SAMPLE_EVERY)
    min_trust_score: int = field(default_factory=lambda: settings.TRUST_MIN_SCORE)
    review_margin: int = field(default_factory=lambda: settings.TRUST_REVIEW_MARGIN)
    refresh_seconds: float = field(default_factory=lambda: settings.TRUST_REFRESH_SECONDS)
    static_grace_samples: int = field(default_factory=lambda: settings.STATIC_GRACE_SAMPLES)
    motion_speed_limit: float = field(default_factory=lambda: settings.MOTION_SPEED_LIMIT)
    low_confidence: float = field(default_factory=lambda: settings.LOW_CONFIDENCE_THRESHOLD)
    max_reps_per_minute: float = field(default_factory=lambda: settings.MAX_REPS_PER_MINUTE)
    mechanical_std_ms: float = field(default_factory=lambda: settings.MECHANICAL_TIMING_STD_MS)
    mechanical_min_reps: int = field(default_factory=lambda: settings.MECHANICAL_TIMING_MIN_REPS)
    full_coverage_samples: int = 10


@dataclass
class ValidationResult:
    """Terminal verdict of a validation pass."""
    is_valid: bool
    confidence: float
    trust_score: int
    violations: List[Violation]
    requires_manual_review: bool
    evidence: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "confidence": self.confidence,
            "trust_score": self.trust_score,
            "violations": [v.to_dict() for v in self.violations],
            "requires_manual_review": self.requires_manual_review,
            "evidence": self.evidence,
        }


class FrameInspector(Protocol):
    """
    Raw-frame analysis capability.

    Each method returns None when it cannot judge the frame; the validator
    then counts the check as skipped.
    """

    def compute_fingerprint(self, frame: RawFrame) -> Optional[str]: ...

    def estimate_motion(self, frame: RawFrame) -> Optional[float]: ...

    def is_frame_static(self, frame: RawFrame) -> Optional[bool]: ...

    def reset(self) -> None: ...


# ═══════════════════════════════════════════════════════════════════════════════
# TRUST VALIDATOR
# ═══════════════════════════════════════════════════════════════════════════════

class TrustValidator:
    """
    One validation pass for one session.

    Lifecycle: initialize() -> start_validation() -> validate_frame()* -> stop_validation()
    """

    CHECKS_PER_SAMPLE = 3

    def __init__(self, inspector: FrameInspector, clock: Optional[Callable[[], float]] = None):
        self.inspector = inspector
        self._clock = clock or time.monotonic
        self.state = ValidatorState.UNINITIALIZED
        self.subject_id: Optional[str] = None
        self.exercise_id: Optional[str] = None
        self.config = TrustConfig()
        self._result: Optional[ValidationResult] = None
        self._reset_counters()

    def _reset_counters(self) -> None:
        self.violations: List[Violation] = []
        self.frame_count = 0
        self.sampled_frames = 0
        self.checks_run = 0
        self.checks_skipped = 0
        self.is_valid = True
        self._trust = 100
        self._reported_trust = 100
        self._started_ms: Optional[float] = None
        self._last_refresh_ms: Optional[float] = None
        self._baseline_fingerprint: Optional[str] = None
        self._current_fingerprint: Optional[str] = None

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    # ═══════════════════════════════════════════════════════════════════════════
    # LIFECYCLE
    # ═══════════════════════════════════════════════════════════════════════════

    def initialize(self, subject_id: str, exercise_id: str, config: Optional[TrustConfig] = None) -> None:
        self.subject_id = subject_id
        self.exercise_id = exercise_id
        self.config = config or TrustConfig()
        if self.config.sample_every < 1:
            raise ValueError("sample_every must be at least 1")
        self.state = ValidatorState.INITIALIZED
        logger.info(f"Trust validator initialized for {subject_id}/{exercise_id}")

    def start_validation(self) -> None:
        """Begin a pass: ledger cleared, trust back to 100, frame counter reset."""
        if self.state is ValidatorState.UNINITIALIZED:
            logger.warning("start_validation called before initialize; ignored")
            return
        if self.state is ValidatorState.STOPPED:
            logger.warning(f"Validation for {self.subject_id} already stopped; ignored")
            return
        self._reset_counters()
        self.inspector.reset()
        self._started_ms = self._now_ms()
        self._last_refresh_ms = self._started_ms
        self.state = ValidatorState.ACTIVE

    def validate_frame(self, frame: Optional[RawFrame]) -> None:
        """Count a frame and run the raw-frame checks on every Nth one."""
        if self.state is not ValidatorState.ACTIVE:
            return

        self.frame_count += 1
        if self.frame_count % self.config.sample_every == 0:
            self.sampled_frames += 1
            self._inspect(frame)

        self._maybe_refresh()

    def report_violation(self, violation_type: str, severity) -> Optional[Violation]:
        """Record an anomaly; returns None when no pass is active."""
        if self.state is not ValidatorState.ACTIVE:
            logger.debug(f"Violation {violation_type} reported outside an active pass; ignored")
            return None

        severity = Severity(severity)
        violation = Violation(type=str(violation_type), severity=severity, timestamp=self._now_ms())
        self.violations.append(violation)
        self._trust = max(0, self._trust - severity.weight)
        if severity is Severity.CRITICAL:
            self.is_valid = False

        logger.warning(
            f"Violation {violation.type} ({severity.value}) for {self.subject_id}: trust now {self._trust}"
        )
        self._maybe_refresh()
        return violation

    def analyze_rep_timing(self, rep_durations: Sequence[float]) -> List[Violation]:
        """
        Flag repetition timing no person produces.

        A rep rate above max_reps_per_minute is impossible; durations with a
        standard deviation under mechanical_std_ms over mechanical_min_reps or
        more reps look scripted. Each finding is a medium violation.
        """
        if self.state is not ValidatorState.ACTIVE or not rep_durations:
            return []

        durations = np.asarray(rep_durations, dtype=float)
        found = []

        mean_ms = float(durations.mean())
        reps_per_minute = 60000.0 / mean_ms if mean_ms > 0 else float("inf")
        if reps_per_minute > self.config.max_reps_per_minute:
            logger.info(f"{self.subject_id}: {reps_per_minute:.0f} reps/min exceeds human pace")
            found.append(ViolationType.IMPOSSIBLE_REP_RATE)

        if len(durations) >= self.config.mechanical_min_reps and durations.std() < self.config.mechanical_std_ms:
            logger.info(f"{self.subject_id}: rep durations vary by {durations.std():.1f}ms")
            found.append(ViolationType.MECHANICAL_TIMING)

        return [self.report_violation(v.value, Severity.MEDIUM) for v in found]

    def stop_validation(self) -> ValidationResult:
        """Produce the terminal result. Repeated calls return the same result."""
        if self._result is not None:
            return self._result

        trust = self._ledger_trust()
        total_checks = self.checks_run + self.checks_skipped
        confidence = self._confidence()

        is_valid = self.is_valid and trust >= self.config.min_trust_score
        borderline = is_valid and trust < self.config.min_trust_score + self.config.review_margin
        requires_review = borderline or confidence < self.config.low_confidence or self.checks_run == 0

        self._result = ValidationResult(
            is_valid=is_valid,
            confidence=confidence,
            trust_score=trust,
            violations=list(self.violations),
            requires_manual_review=requires_review,
            evidence={
                "frames_received": self.frame_count,
                "sampled_frames": self.sampled_frames,
                "checks_run": self.checks_run,
                "checks_skipped": self.checks_skipped,
                "checks_total": total_checks,
                "device_fingerprint": self._baseline_fingerprint,
                "trust_level": trust_level_for(trust).value,
                "violations_by_severity": {
                    s.value: sum(1 for v in self.violations if v.severity is s) for s in Severity
                },
            },
        )
        self._reported_trust = trust
        self.state = ValidatorState.STOPPED

        logger.info(
            f"Validation stopped for {self.subject_id}: valid={is_valid} trust={trust} "
            f"confidence={confidence} review={requires_review}"
        )
        return self._result

    # ═══════════════════════════════════════════════════════════════════════════
    # LIVE INDICATORS
    # ═══════════════════════════════════════════════════════════════════════════

    @property
    def trust_score(self) -> int:
        """Trust score as last published on the refresh cadence."""
        return self._reported_trust

    def snapshot(self) -> Dict[str, Any]:
        return {
            "trust_score": self.trust_score,
            "trust_level": trust_level_for(self.trust_score).value,
            "violation_count": len(self.violations),
            "is_valid": self.is_valid,
            "state": self.state.value,
        }

    # ═══════════════════════════════════════════════════════════════════════════
    # CHECKS
    # ═══════════════════════════════════════════════════════════════════════════

    def _inspect(self, frame: Optional[RawFrame]) -> None:
        if frame is None or frame.image is None or getattr(frame.image, "size", 0) == 0:
            self.checks_skipped += self.CHECKS_PER_SAMPLE
            return

        fingerprint = self._run_check("fingerprint", self.inspector.compute_fingerprint, frame)
        if fingerprint is not None:
            if self._baseline_fingerprint is None:
                self._baseline_fingerprint = fingerprint
                self._current_fingerprint = fingerprint
            elif fingerprint != self._current_fingerprint:
                self._current_fingerprint = fingerprint
                self.report_violation(ViolationType.MULTIPLE_DEVICES_DETECTED.value, Severity.HIGH)

        motion = self._run_check("motion", self.inspector.estimate_motion, frame)
        if motion is not None and motion > self.config.motion_speed_limit:
            self.report_violation(ViolationType.ABNORMAL_MOVEMENT_SPEED.value, Severity.MEDIUM)

        is_static = self._run_check("static", self.inspector.is_frame_static, frame)
        if is_static and self.sampled_frames >= self.config.static_grace_samples:
            self.report_violation(ViolationType.STATIC_FRAME_DETECTED.value, Severity.LOW)

    def _run_check(self, name: str, check: Callable[[RawFrame], Any], frame: RawFrame) -> Any:
        try:
            value = check(frame)
        except Exception as e:
            logger.warning(f"Frame check '{name}' failed: {e}")
            value = None
        if value is None:
            self.checks_skipped += 1
        else:
            self.checks_run += 1
        return value

    def _ledger_trust(self) -> int:
        return max(0, 100 - sum(v.severity.weight for v in self.violations))

    def _maybe_refresh(self) -> None:
        now = self._now_ms()
        if self._last_refresh_ms is None or now - self._last_refresh_ms >= self.config.refresh_seconds * 1000.0:
            self._reported_trust = self._ledger_trust()
            self._last_refresh_ms = now

    def _confidence(self) -> float:
        total = self.checks_run + self.checks_skipped
        if total == 0:
            return 0.0
        coverage = min(1.0, self.sampled_frames / max(1, self.config.full_coverage_samples))
        return round(self.checks_run / total * coverage, 1)
