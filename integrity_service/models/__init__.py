"""
FITDUEL Integrity Service Models

Trust scoring and raw-frame anti-cheat checks.
"""

from .trust_validator import (
    TrustValidator,
    TrustConfig,
    ValidationResult,
    Violation,
    ViolationType,
    Severity,
    SEVERITY_WEIGHTS,
    ValidatorState,
    RawFrame,
    FrameInspector,
    TrustLevel,
    trust_level_for,
)

from .frame_inspector import (
    OpenCVFrameInspector,
    decode_image,
)

__all__ = [
    # Trust Validator
    "TrustValidator",
    "TrustConfig",
    "ValidationResult",
    "Violation",
    "ViolationType",
    "Severity",
    "SEVERITY_WEIGHTS",
    "ValidatorState",
    "RawFrame",
    "FrameInspector",
    "TrustLevel",
    "trust_level_for",
    # Frame Inspector
    "OpenCVFrameInspector",
    "decode_image",
]
