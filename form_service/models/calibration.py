"""
FITDUEL Form Service - Calibration Store

Per-subject, per-exercise baselines captured by the calibration flow.
Entries are immutable; re-calibration replaces the stored record.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from shared.utils import get_now

logger = logging.getLogger(__name__)

# Population averages used when a subject has no measurement for a key
AVERAGE_LEG_TORSO_RATIO = 1.5


@dataclass(frozen=True)
class CalibrationData:
    """Baseline measurements for one subject performing one exercise."""
    subject_id: str
    exercise_id: str
    baseline_angles: Mapping[str, float] = field(default_factory=dict)
    baseline_distances: Mapping[str, float] = field(default_factory=dict)
    body_proportions: Mapping[str, float] = field(default_factory=dict)
    calibrated_at: datetime = field(default_factory=get_now)

    def __post_init__(self):
        # Freeze the maps so a stored record cannot be edited in place
        for name in ("baseline_angles", "baseline_distances", "body_proportions"):
            value = getattr(self, name) or {}
            object.__setattr__(self, name, MappingProxyType({str(k): float(v) for k, v in dict(value).items()}))

    @property
    def key(self) -> Tuple[str, str]:
        return (self.subject_id, self.exercise_id)

    def leg_torso_ratio(self) -> Optional[float]:
        leg = self.body_proportions.get("leg_length")
        torso = self.body_proportions.get("torso_length")
        if not leg or not torso:
            return None
        return leg / torso

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject_id": self.subject_id,
            "exercise_id": self.exercise_id,
            "baseline_angles": dict(self.baseline_angles),
            "baseline_distances": dict(self.baseline_distances),
            "body_proportions": dict(self.body_proportions),
            "calibrated_at": self.calibrated_at.isoformat(),
        }


class CalibrationStore:
    """In-memory calibration records keyed by (subject_id, exercise_id)."""

    def __init__(self):
        self._records: Dict[Tuple[str, str], CalibrationData] = {}

    def set(self, data: CalibrationData) -> None:
        replaced = data.key in self._records
        self._records[data.key] = data
        logger.info(
            f"Calibration {'replaced' if replaced else 'stored'} for "
            f"{data.subject_id}/{data.exercise_id}"
        )

    def get(self, subject_id: str, exercise_id: str) -> Optional[CalibrationData]:
        return self._records.get((subject_id, exercise_id))

    def delete(self, subject_id: str, exercise_id: str) -> bool:
        return self._records.pop((subject_id, exercise_id), None) is not None

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


# Singleton instance
_calibration_store: Optional[CalibrationStore] = None


def get_calibration_store() -> CalibrationStore:
    """Get or create the calibration store singleton."""
    global _calibration_store
    if _calibration_store is None:
        _calibration_store = CalibrationStore()
    return _calibration_store
