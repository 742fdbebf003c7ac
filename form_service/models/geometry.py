"""
FITDUEL Form Service - Geometry

Planar angle and distance helpers shared by every exercise rule.
Depth (z) is ignored everywhere: single-camera depth is too noisy to score on.
"""

import math
from typing import Union

import numpy as np

from .landmarks import Landmark


Point = Union[Landmark, "PlanarPoint"]


class PlanarPoint:
    """Synthetic 2D point used for joint centres and virtual reference points."""

    __slots__ = ("x", "y")

    def __init__(self, x: float, y: float):
        self.x = x
        self.y = y

    def __repr__(self) -> str:
        return f"PlanarPoint(x={self.x:.4f}, y={self.y:.4f})"


def angle(a: Point, b: Point, c: Point) -> float:
    """
    Interior angle at vertex b formed by rays b->a and b->c.

    Uses atan2 of both rays; the absolute difference is reflected into
    [0, 180] degrees. NaN coordinates produce NaN.
    """
    radians = np.arctan2(c.y - b.y, c.x - b.x) - np.arctan2(a.y - b.y, a.x - b.x)
    degrees = abs(float(np.degrees(radians)))
    if degrees > 180.0:
        degrees = 360.0 - degrees
    return degrees


def distance(a: Point, b: Point) -> float:
    """Planar Euclidean distance in normalized image units."""
    return math.hypot(a.x - b.x, a.y - b.y)


def midpoint(a: Point, b: Point) -> PlanarPoint:
    return PlanarPoint((a.x + b.x) / 2.0, (a.y + b.y) / 2.0)


def horizontal_span(a: Point, b: Point) -> float:
    """Absolute x separation of two points."""
    return abs(a.x - b.x)
