"""
FITDUEL Integrity Service - Frame Inspector

OpenCV implementation of the raw-frame checks used by the trust validator.
Consecutive sampled frames are reduced to 64x64 grayscale thumbnails; their
mean absolute difference drives both motion speed and static detection.
"""

import hashlib
import json
import logging
from typing import Optional

import cv2
import numpy as np

from core.config import settings
from .trust_validator import RawFrame

logger = logging.getLogger(__name__)

THUMBNAIL_SIZE = (64, 64)


class OpenCVFrameInspector:
    """Fingerprint, motion and static checks over decoded video frames."""

    def __init__(
        self,
        human_motion_rate: Optional[float] = None,
        static_threshold: Optional[float] = None,
        static_samples: Optional[int] = None,
    ):
        self.human_motion_rate = settings.HUMAN_MOTION_RATE if human_motion_rate is None else human_motion_rate
        self.static_threshold = settings.STATIC_DIFF_THRESHOLD if static_threshold is None else static_threshold
        self.static_samples = settings.STATIC_CONSECUTIVE_SAMPLES if static_samples is None else static_samples
        if self.human_motion_rate <= 0:
            raise ValueError("human_motion_rate must be positive")
        self.reset()

    def reset(self) -> None:
        self._prev_thumb: Optional[np.ndarray] = None
        self._prev_timestamp: Optional[float] = None
        self._last_frame: Optional[RawFrame] = None
        self._last_diff: Optional[float] = None
        self._last_dt: Optional[float] = None
        self._static_streak = 0

    # ═══════════════════════════════════════════════════════════════════════════
    # CHECKS
    # ═══════════════════════════════════════════════════════════════════════════

    def compute_fingerprint(self, frame: RawFrame) -> Optional[str]:
        """SHA-256 over the device descriptor and the frame geometry."""
        if not self._has_image(frame):
            return None
        image = frame.image
        channels = image.shape[2] if image.ndim == 3 else 1
        payload = {
            "device": frame.device or {},
            "geometry": [int(image.shape[0]), int(image.shape[1]), int(channels)],
        }
        encoded = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
        return hashlib.sha256(encoded).hexdigest()

    def estimate_motion(self, frame: RawFrame) -> Optional[float]:
        """
        Thumbnail change per second, as a multiple of brisk human motion.

        Returns None for the first frame or when timestamps are missing.
        """
        if not self._observe(frame):
            return None
        if self._last_diff is None or not self._last_dt:
            return None
        per_second = self._last_diff / self._last_dt
        return float(per_second / self.human_motion_rate)

    def is_frame_static(self, frame: RawFrame) -> Optional[bool]:
        if not self._observe(frame):
            return None
        if self._last_diff is None:
            return None
        return self._static_streak >= self.static_samples

    # ═══════════════════════════════════════════════════════════════════════════
    # HELPERS
    # ═══════════════════════════════════════════════════════════════════════════

    @staticmethod
    def _has_image(frame: Optional[RawFrame]) -> bool:
        return frame is not None and frame.image is not None and getattr(frame.image, "size", 0) > 0

    def _observe(self, frame: RawFrame) -> bool:
        """Diff the frame against the previous sample once; later calls reuse the result."""
        if not self._has_image(frame):
            return False
        if self._last_frame is frame:
            return True

        thumb = self._thumbnail(frame.image)
        diff: Optional[float] = None
        dt: Optional[float] = None
        if self._prev_thumb is not None:
            diff = float(np.abs(thumb - self._prev_thumb).mean())
            if frame.timestamp_ms is not None and self._prev_timestamp is not None:
                elapsed = (frame.timestamp_ms - self._prev_timestamp) / 1000.0
                dt = elapsed if elapsed > 0 else None

            if diff < self.static_threshold:
                self._static_streak += 1
            else:
                self._static_streak = 0

        self._prev_thumb = thumb
        self._prev_timestamp = frame.timestamp_ms
        self._last_frame = frame
        self._last_diff = diff
        self._last_dt = dt
        return True

    @staticmethod
    def _thumbnail(image: np.ndarray) -> np.ndarray:
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY) if image.ndim == 3 and image.shape[2] == 3 else image
        if gray.ndim == 3:
            gray = gray[:, :, 0]
        small = cv2.resize(gray, THUMBNAIL_SIZE)
        return small.astype(float)


def decode_image(data: bytes) -> Optional[np.ndarray]:
    """Decode JPEG/PNG bytes into a BGR image; None when undecodable."""
    if not data:
        return None
    buffer = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if image is None:
        logger.debug("Received undecodable image payload")
    return image
