"""
POSEMATCH Matching Service - Score Engine

Compares the live angle with the cached reference angle inside a fixed
tolerance window.
"""

import math
from typing import Optional

from .features import LiveState, ReferenceState


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class ScoreEngine:
    """
    Percentage similarity between a live and a reference angle.

    score = round((1 - delta / tolerance) * 100) while delta <= tolerance,
    otherwise no score (None).
    """

    def __init__(self, tolerance: float = 20.0, min_pose_confidence: float = 0.0):
        if tolerance <= 0:
            raise ValueError("tolerance must be positive")
        self.tolerance = float(tolerance)
        self.min_pose_confidence = float(min_pose_confidence)

    def score(
        self,
        reference: Optional[ReferenceState],
        live: Optional[LiveState],
        tolerance: Optional[float] = None,
    ) -> Optional[int]:
        if reference is None or reference.angle is None:
            return None
        if live is None or live.angle is None:
            return None
        if live.confidence < self.min_pose_confidence:
            return None

        window = self.tolerance if tolerance is None else float(tolerance)
        delta = abs(reference.angle - live.angle)
        if delta > window:
            return None
        return round_half_up((1.0 - delta / window) * 100.0)


class ScoreDisplay:
    """
    Score currently shown to the user.

    Out-of-tolerance frames leave the previous value in place.
    """

    def __init__(self):
        self.value: Optional[int] = None

    def update(self, score: Optional[int]) -> Optional[int]:
        if score is not None:
            self.value = score
        return self.value
