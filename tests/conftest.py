"""Shared fixtures: synthetic landmark poses, a stub frame inspector and a manual clock."""

from typing import Dict, List, Optional, Tuple

import numpy as np
import pytest

from form_service.models import JointType, get_calibration_store
from integrity_service.models import RawFrame


# ============================================================================
# Landmark builders
# ============================================================================

# Right-side joints sit slightly behind the left ones in a side view
SIDE_OFFSET = 0.02

PAIRS = {
    "shoulder": (JointType.LEFT_SHOULDER, JointType.RIGHT_SHOULDER),
    "elbow": (JointType.LEFT_ELBOW, JointType.RIGHT_ELBOW),
    "wrist": (JointType.LEFT_WRIST, JointType.RIGHT_WRIST),
    "hip": (JointType.LEFT_HIP, JointType.RIGHT_HIP),
    "knee": (JointType.LEFT_KNEE, JointType.RIGHT_KNEE),
    "ankle": (JointType.LEFT_ANKLE, JointType.RIGHT_ANKLE),
}


def _point(x: float, y: float) -> dict:
    return {"x": x, "y": y, "z": 0.0, "visibility": 0.99}


def side_view(
    points: Dict[str, Tuple[float, float]],
    nose: Optional[Tuple[float, float]] = None,
    right: Optional[Dict[str, Tuple[float, float]]] = None,
) -> List[dict]:
    """
    Build a 33-point frame from one (x, y) per body part.

    Parts are mirrored onto the right side unless `right` gives that part its own point.
    """
    right = right or {}
    frame = [{"x": 0.5, "y": 0.5, "z": 0.0, "visibility": 0.0} for _ in JointType]
    for part, (x, y) in points.items():
        left_joint, right_joint = PAIRS[part]
        frame[left_joint.value] = _point(x, y)
        frame[right_joint.value] = _point(*right.get(part, (x + SIDE_OFFSET, y)))
    if nose is not None:
        frame[JointType.NOSE.value] = _point(*nose)
    return frame


class Poses:
    """Named synthetic poses (image coordinates, y grows downward)."""

    @staticmethod
    def push_up_top() -> List[dict]:
        return side_view({
            "shoulder": (0.30, 0.50), "elbow": (0.30, 0.60), "wrist": (0.30, 0.70),
            "hip": (0.55, 0.52), "ankle": (0.80, 0.54),
        })

    @staticmethod
    def push_up_mid() -> List[dict]:
        # Elbows around 130 degrees: between the down and up thresholds
        return side_view({
            "shoulder": (0.30, 0.56), "elbow": (0.333, 0.63), "wrist": (0.30, 0.70),
            "hip": (0.55, 0.575), "ankle": (0.80, 0.59),
        })

    @staticmethod
    def push_up_bottom() -> List[dict]:
        return side_view({
            "shoulder": (0.30, 0.62), "elbow": (0.38, 0.66), "wrist": (0.30, 0.70),
            "hip": (0.55, 0.63), "ankle": (0.80, 0.64),
        })

    @staticmethod
    def push_up_shallow() -> List[dict]:
        # Elbows around 106 degrees: counts as down but not deep enough
        return side_view({
            "shoulder": (0.30, 0.62), "elbow": (0.33, 0.66), "wrist": (0.30, 0.70),
            "hip": (0.55, 0.63), "ankle": (0.80, 0.64),
        })

    @staticmethod
    def push_up_sagging(hip_y: float = 0.62) -> List[dict]:
        return side_view({
            "shoulder": (0.30, 0.50), "elbow": (0.30, 0.60), "wrist": (0.30, 0.70),
            "hip": (0.55, hip_y), "ankle": (0.80, 0.54),
        })

    @staticmethod
    def standing() -> List[dict]:
        return side_view({
            "shoulder": (0.45, 0.30), "hip": (0.45, 0.55), "knee": (0.46, 0.72), "ankle": (0.45, 0.90),
            "elbow": (0.45, 0.42), "wrist": (0.45, 0.52),
        })

    @staticmethod
    def squat_bottom(knee_x: float = 0.52) -> List[dict]:
        return side_view({
            "shoulder": (0.50, 0.45), "hip": (0.38, 0.72), "knee": (knee_x, 0.70), "ankle": (0.50, 0.90),
            "elbow": (0.55, 0.55), "wrist": (0.60, 0.60),
        })

    @staticmethod
    def plank() -> List[dict]:
        return side_view({
            "shoulder": (0.30, 0.50), "elbow": (0.30, 0.60), "wrist": (0.35, 0.60),
            "hip": (0.55, 0.52), "ankle": (0.80, 0.54),
        }, nose=(0.25, 0.50))

    # Lunge: left foot forward (lower in the image)

    @staticmethod
    def lunge_bottom() -> List[dict]:
        # Both knees at 90 degrees
        return side_view(
            {"hip": (0.40, 0.60), "knee": (0.55, 0.60), "ankle": (0.55, 0.80)},
            right={"hip": (0.42, 0.60), "knee": (0.42, 0.75), "ankle": (0.27, 0.75)},
        )

    @staticmethod
    def lunge_deep_front() -> List[dict]:
        # Front knee folded to 60 degrees
        return side_view(
            {"hip": (0.40, 0.60), "knee": (0.55, 0.60), "ankle": (0.45, 0.7732)},
            right={"hip": (0.42, 0.60), "knee": (0.42, 0.75), "ankle": (0.27, 0.75)},
        )

    # Crunch: lying on the back, head to the left

    @staticmethod
    def crunch_rest() -> List[dict]:
        return side_view({"shoulder": (0.30, 0.80), "hip": (0.60, 0.80)}, nose=(0.22, 0.80))

    @staticmethod
    def crunch_up(nose: Tuple[float, float] = (0.26, 0.66)) -> List[dict]:
        # Default nose continues the torso line; (0.40, 0.60) tucks the chin at 90 degrees
        return side_view({"shoulder": (0.35, 0.70), "hip": (0.60, 0.80)}, nose=nose)

    # Mountain climber

    @staticmethod
    def mountain_climber_extended() -> List[dict]:
        return side_view({"shoulder": (0.30, 0.50), "hip": (0.55, 0.52), "knee": (0.70, 0.53)})

    @staticmethod
    def mountain_climber_tucked() -> List[dict]:
        # Left knee driven under the chest, right leg still extended
        return side_view(
            {"shoulder": (0.30, 0.50), "hip": (0.55, 0.52), "knee": (0.40, 0.62)},
            right={"knee": (0.72, 0.53)},
        )

    @staticmethod
    def mountain_climber_piked() -> List[dict]:
        return side_view({"shoulder": (0.30, 0.50), "hip": (0.55, 0.38), "knee": (0.70, 0.45)})

    # High knees

    @staticmethod
    def high_knee_lift(knee: Tuple[float, float] = (0.60, 0.55)) -> List[dict]:
        # Left knee raised; the default is level with the hip
        return side_view({
            "shoulder": (0.45, 0.30), "hip": (0.45, 0.55), "knee": knee, "ankle": (0.45, 0.90),
        }, right={"knee": (0.47, 0.72), "ankle": (0.47, 0.90)})

    # Jumping jack, front view

    @staticmethod
    def jumping_jack(arms: str = "down", legs: str = "closed") -> List[dict]:
        wrists = {
            "down": ((0.44, 0.55), (0.56, 0.55)),
            "wide": ((0.30, 0.15), (0.70, 0.15)),
            "narrow": ((0.46, 0.10), (0.54, 0.10)),
        }[arms]
        ankles = {"closed": ((0.47, 0.90), (0.53, 0.90)), "open": ((0.38, 0.90), (0.62, 0.90))}[legs]
        return side_view(
            {"shoulder": (0.45, 0.30), "wrist": wrists[0], "ankle": ankles[0]},
            right={"shoulder": (0.55, 0.30), "wrist": wrists[1], "ankle": ankles[1]},
        )

    # Burpee plank phase with the hips dropped about 35 degrees off straight

    @staticmethod
    def burpee_sagging_plank() -> List[dict]:
        return side_view({"shoulder": (0.30, 0.50), "hip": (0.55, 0.58), "ankle": (0.80, 0.50)})

    # Wall sit

    @staticmethod
    def wall_sit(knee_angle: int = 90) -> List[dict]:
        # Shin vertical, thigh rotated to the requested knee angle (90 or 120)
        hip = {90: (0.40, 0.60), 120: (0.4201, 0.525)}[knee_angle]
        return side_view({"hip": hip, "knee": (0.55, 0.60), "ankle": (0.55, 0.85)})



@pytest.fixture
def poses() -> Poses:
    return Poses()


# ============================================================================
# Clock and inspector doubles
# ============================================================================

class ManualClock:
    """Monotonic clock advanced by hand (seconds)."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubInspector:
    """Scripted FrameInspector that records every call."""

    def __init__(self, fingerprints=None, motion=0.5, static=False, fail=False):
        self.fingerprints = list(fingerprints or ["device-a"])
        self.motion = motion
        self.static = static
        self.fail = fail
        self.calls = {"fingerprint": 0, "motion": 0, "static": 0, "reset": 0}

    def compute_fingerprint(self, frame: RawFrame):
        self.calls["fingerprint"] += 1
        if self.fail:
            raise RuntimeError("camera backend unavailable")
        index = min(self.calls["fingerprint"] - 1, len(self.fingerprints) - 1)
        return self.fingerprints[index]

    def estimate_motion(self, frame: RawFrame):
        self.calls["motion"] += 1
        return self.motion

    def is_frame_static(self, frame: RawFrame):
        self.calls["static"] += 1
        return self.static

    def reset(self) -> None:
        self.calls["reset"] += 1


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def stub_inspector() -> StubInspector:
    return StubInspector()


@pytest.fixture
def raw_frame() -> RawFrame:
    return RawFrame(image=np.zeros((48, 64, 3), dtype=np.uint8), timestamp_ms=0.0, device={"ua": "test"})


@pytest.fixture(autouse=True)
def clear_calibration_store():
    get_calibration_store().clear()
    yield
    get_calibration_store().clear()
