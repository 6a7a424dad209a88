"""
POSEMATCH Matching Service - Angle Features

Derives the elbow-bend AngleFeature from a Pose, caches the reference
feature computed once from a still image, and extracts live features per
video frame.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from core.config import MatchConfig
from core.threading import run_ml_inference
from shared.utils import get_now

from .errors import DegenerateGeometry, ReferenceLoadFailure
from .geometry import angle_of
from .pose_estimator import (
    EstimateOptions,
    EstimationMode,
    Keypoint,
    Pose,
    PoseEstimator,
    model_input,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# FEATURE DEFINITION
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class JointTriple:
    """Three landmarks defining a bend angle at `vertex`."""
    vertex: str
    point_a: str
    point_b: str

    @property
    def names(self) -> Tuple[str, str, str]:
        return (self.vertex, self.point_a, self.point_b)


# Elbow vertex between wrist and shoulder (PoseNet keypoints 7, 9, 5)
ELBOW_BEND = JointTriple(vertex="left_elbow", point_a="left_wrist", point_b="left_shoulder")


def extract_angle(
    pose: Pose,
    triple: JointTriple = ELBOW_BEND,
    min_part_confidence: Optional[float] = None,
) -> Optional[float]:
    """
    Compute the triple's angle for a pose.

    Used by both the reference and the live path so the two features are
    always comparable.

    Returns:
        Angle in degrees, or None when a landmark is missing, below
        min_part_confidence (if given), or the geometry is degenerate.
    """
    points: List[Keypoint] = []
    for name in triple.names:
        kp = pose.get(name)
        if kp is None:
            return None
        if min_part_confidence is not None and kp.score < min_part_confidence:
            return None
        points.append(kp)

    try:
        return angle_of(points[0], points[1], points[2])
    except DegenerateGeometry as e:
        logger.debug(f"Angle skipped: {e}")
        return None


# ═══════════════════════════════════════════════════════════════════════════════
# STATE
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ReferenceState:
    """Reference feature, published once per session."""
    angle: Optional[float]
    confidence: float
    loaded_at: datetime = field(default_factory=get_now)

    def to_dict(self) -> dict:
        return {
            "angle": round(self.angle, 2) if self.angle is not None else None,
            "confidence": round(float(self.confidence), 4),
            "loaded_at": self.loaded_at.isoformat(),
        }


@dataclass(frozen=True)
class LiveState:
    """Live feature for one pose in one frame."""
    angle: Optional[float]
    confidence: float
    keypoints: Tuple[Keypoint, ...] = ()


# ═══════════════════════════════════════════════════════════════════════════════
# REFERENCE FEATURE STORE
# ═══════════════════════════════════════════════════════════════════════════════

class ReferenceFeatureStore:
    """
    Loads the reference image once and caches its AngleFeature.

    The state stays None until load_reference() completes, then is replaced
    in a single assignment and never changes for the session.
    """

    def __init__(self, estimator: PoseEstimator, image_source, config: MatchConfig):
        self.estimator = estimator
        self.image_source = image_source
        self.config = config
        self._state: Optional[ReferenceState] = None

    @property
    def state(self) -> Optional[ReferenceState]:
        return self._state

    @property
    def scoring_enabled(self) -> bool:
        return self._state is not None and self._state.angle is not None

    async def load_reference(
        self,
        image_ref: Optional[str] = None,
        model_loaded: Optional[asyncio.Event] = None,
    ) -> ReferenceState:
        """
        Estimate the reference pose and publish its angle.

        The image fetch may overlap the model load; estimation waits for
        `model_loaded` when one is given.

        Never raises for feature-level failures: the published state simply
        has no angle and scoring stays off for the session.
        """
        if self._state is not None:
            return self._state

        image_ref = image_ref or self.config.reference_image
        logger.info(f"Loading reference pose from {image_ref}")

        try:
            angle, confidence = await self._estimate_reference(image_ref, model_loaded)
        except ReferenceLoadFailure as e:
            logger.warning(f"⚠️ Reference unavailable, scoring disabled for this session: {e}")
            angle, confidence = None, 0.0

        state = ReferenceState(angle=angle, confidence=confidence)
        self._state = state

        if state.angle is not None:
            logger.info(f"✅ Reference angle {state.angle:.1f}° (confidence {state.confidence:.2f})")
        return state

    async def _estimate_reference(
        self, image_ref: str, model_loaded: Optional[asyncio.Event] = None
    ) -> Tuple[Optional[float], float]:
        try:
            pixels = await self.image_source.load(image_ref)
        except (OSError, ValueError) as e:
            raise ReferenceLoadFailure(f"could not load image {image_ref}: {e}") from e

        if model_loaded is not None and not model_loaded.is_set():
            logger.info("Reference image ready, waiting for the pose model")
            await model_loaded.wait()

        options = EstimateOptions(
            mode=EstimationMode.SINGLE,
            flip_horizontal=False,
            max_detections=self.config.max_detections,
            score_threshold=self.config.multi.min_part_confidence,
            suppression_radius=self.config.suppression_radius,
        )

        with model_input(self.estimator, pixels) as tensor:
            poses = await run_ml_inference(self.estimator.estimate, tensor, options)

        if not poses:
            raise ReferenceLoadFailure("no pose detected in reference image")

        pose = poses[0]
        thresholds = self.config.single
        if pose.score < thresholds.min_pose_confidence:
            raise ReferenceLoadFailure(
                f"pose confidence {pose.score:.2f} below {thresholds.min_pose_confidence:.2f}"
            )

        part_threshold = thresholds.min_part_confidence if self.config.require_joint_confidence else None
        angle = extract_angle(pose, ELBOW_BEND, part_threshold)
        if angle is None:
            raise ReferenceLoadFailure("reference joints unusable for the elbow angle")
        return angle, float(pose.score)


# ═══════════════════════════════════════════════════════════════════════════════
# LIVE FEATURE EXTRACTOR
# ═══════════════════════════════════════════════════════════════════════════════

class LiveFeatureExtractor:
    """Per-frame pose estimation and confidence filtering."""

    def __init__(self, estimator: PoseEstimator, config: MatchConfig):
        self.estimator = estimator
        self.config = config

    def options_for(self, mode: EstimationMode) -> EstimateOptions:
        if mode == EstimationMode.MULTI:
            return EstimateOptions(
                mode=EstimationMode.MULTI,
                flip_horizontal=self.config.flip_horizontal,
                max_detections=self.config.max_detections,
                score_threshold=self.config.multi.min_part_confidence,
                suppression_radius=self.config.suppression_radius,
            )
        return EstimateOptions(mode=EstimationMode.SINGLE, flip_horizontal=self.config.flip_horizontal)

    async def extract_live(self, frame, mode: EstimationMode) -> List[LiveState]:
        """
        Estimate poses in a frame and compute one LiveState per kept pose.

        Args:
            frame: RGB frame (H, W, 3)
            mode: single- or multi-subject estimation

        Returns:
            LiveStates for poses meeting the mode's pose-confidence threshold
        """
        mode = EstimationMode(mode)
        poses = await run_ml_inference(self.estimator.estimate, frame, self.options_for(mode))
        if mode == EstimationMode.SINGLE:
            poses = poses[:1]

        thresholds = self.config.thresholds(mode.value)
        part_threshold = thresholds.min_part_confidence if self.config.require_joint_confidence else None

        states = []
        for pose in poses:
            if pose.score < thresholds.min_pose_confidence:
                continue
            states.append(LiveState(
                angle=extract_angle(pose, ELBOW_BEND, part_threshold),
                confidence=float(pose.score),
                keypoints=pose.keypoints,
            ))
        return states
