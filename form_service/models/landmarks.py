"""
FITDUEL Form Service - Landmarks

Joint indexing and landmark normalization for frames delivered by the
pose-estimation collaborator (33-point MediaPipe scheme).
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from core.config import settings


# ═══════════════════════════════════════════════════════════════════════════════
# JOINT INDEX
# ═══════════════════════════════════════════════════════════════════════════════

class JointType(Enum):
    """Body joint indices of a landmark frame."""
    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_PINKY = 17
    RIGHT_PINKY = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_THUMB = 21
    RIGHT_THUMB = 22
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32


# ═══════════════════════════════════════════════════════════════════════════════
# LANDMARK TYPES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Landmark:
    """A single normalized landmark; visibility defaults to fully visible."""
    x: float
    y: float
    z: float = 0.0
    visibility: float = 1.0

    @classmethod
    def from_any(cls, value: Any) -> Optional["Landmark"]:
        """
        Build a Landmark from a Landmark, a mapping or an [x, y, z, visibility] list.

        Returns None for anything that cannot be read as a point.
        """
        if value is None:
            return None
        if isinstance(value, Landmark):
            return value
        try:
            if isinstance(value, dict):
                visibility = value.get("visibility")
                return cls(
                    x=float(value["x"]),
                    y=float(value["y"]),
                    z=float(value.get("z") or 0.0),
                    visibility=1.0 if visibility is None else float(visibility),
                )
            if hasattr(value, "x") and hasattr(value, "y"):
                visibility = getattr(value, "visibility", None)
                return cls(
                    x=float(value.x),
                    y=float(value.y),
                    z=float(getattr(value, "z", 0.0) or 0.0),
                    visibility=1.0 if visibility is None else float(visibility),
                )
            coords = list(value)
            if len(coords) < 2:
                return None
            return cls(
                x=float(coords[0]),
                y=float(coords[1]),
                z=float(coords[2]) if len(coords) > 2 else 0.0,
                visibility=float(coords[3]) if len(coords) > 3 else 1.0,
            )
        except (KeyError, TypeError, ValueError):
            return None

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z, "visibility": self.visibility}


class MissingLandmarkError(LookupError):
    """A required joint is absent or below the visibility floor."""

    def __init__(self, joint: JointType):
        super().__init__(f"Landmark {joint.name.lower()} missing or not visible")
        self.joint = joint


class LandmarkFrame:
    """
    One frame of landmarks indexed by JointType.

    Short arrays and unreadable entries are tolerated; lookups of such joints
    raise MissingLandmarkError so rule functions can bail out of the frame.
    """

    def __init__(self, landmarks: Optional[Sequence[Any]], min_visibility: Optional[float] = None):
        self.min_visibility = settings.MIN_LANDMARK_VISIBILITY if min_visibility is None else min_visibility
        points: List[Optional[Landmark]] = []
        if landmarks is not None:
            try:
                points = [Landmark.from_any(value) for value in landmarks]
            except TypeError:
                points = []
        self._points = points

    def __len__(self) -> int:
        return len(self._points)

    def get(self, joint: JointType) -> Optional[Landmark]:
        """Return the landmark if present and visible enough, else None."""
        if joint.value >= len(self._points):
            return None
        point = self._points[joint.value]
        if point is None or not self._is_finite(point):
            return None
        if point.visibility < self.min_visibility:
            return None
        return point

    def require(self, joint: JointType) -> Landmark:
        point = self.get(joint)
        if point is None:
            raise MissingLandmarkError(joint)
        return point

    def require_all(self, *joints: JointType) -> List[Landmark]:
        return [self.require(joint) for joint in joints]

    @staticmethod
    def _is_finite(point: Landmark) -> bool:
        return math.isfinite(point.x) and math.isfinite(point.y)
