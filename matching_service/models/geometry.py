"""
POSEMATCH Matching Service - Joint Geometry

Angle at a joint from three 2D keypoints, plus horizontal mirroring of
keypoint coordinates.
"""

from dataclasses import replace
from typing import Any

import numpy as np

from .errors import DegenerateGeometry


def _as_vector(point: Any) -> np.ndarray:
    return np.array([float(point.x), float(point.y)], dtype=np.float64)


def angle_of(vertex: Any, point_a: Any, point_b: Any) -> float:
    """
    Calculate the angle at vertex formed by the rays vertex->point_a and
    vertex->point_b.

    Args:
        vertex, point_a, point_b: objects with x and y attributes
            (confidence is ignored here)

    Returns:
        Angle in degrees (0-180)

    Raises:
        DegenerateGeometry: vertex coincides with point_a or point_b
    """
    v = _as_vector(vertex)
    ba = _as_vector(point_a) - v
    bc = _as_vector(point_b) - v

    norm_a = np.linalg.norm(ba)
    norm_b = np.linalg.norm(bc)
    if norm_a == 0.0 or norm_b == 0.0:
        raise DegenerateGeometry(
            f"zero-length segment at vertex ({v[0]:.1f}, {v[1]:.1f})"
        )

    cosine_angle = np.dot(ba, bc) / (norm_a * norm_b)
    cosine_angle = np.clip(cosine_angle, -1.0, 1.0)
    return float(np.degrees(np.arccos(cosine_angle)))


def mirror_keypoint(keypoint, width: int):
    """Flip a keypoint's x coordinate across an image of the given width."""
    return replace(keypoint, x=float(width) - 1.0 - keypoint.x)


def mirror_pose(pose, width: int):
    """
    Mirror every keypoint of a pose horizontally.

    Landmark names are kept as-is; only x coordinates change.
    """
    return replace(pose, keypoints=tuple(mirror_keypoint(kp, width) for kp in pose.keypoints))
