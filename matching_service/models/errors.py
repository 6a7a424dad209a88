"""
POSEMATCH Matching Service - Error Taxonomy

Errors raised inside the matching pipeline. Only EnvironmentUnavailable is
meant to reach the top-level caller; the others are absorbed where the
affected feature degrades.
"""


class PoseMatchError(Exception):
    """Base class for matching pipeline errors."""


class DegenerateGeometry(PoseMatchError, ValueError):
    """Angle requested on coincident points (zero-length vector)."""


class EnvironmentUnavailable(PoseMatchError, RuntimeError):
    """No capture device or capability; fatal to the capture flow."""


class ReferenceLoadFailure(PoseMatchError):
    """The reference image produced no usable reference angle."""
