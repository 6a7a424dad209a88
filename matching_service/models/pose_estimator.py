"""
POSEMATCH Matching Service - Pose Estimator

Model-agnostic pose types, the estimator interface consumed by the matching
pipeline, and a MediaPipe Tasks adapter producing COCO-17 keypoints in pixel
space.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

import numpy as np

from .geometry import mirror_pose

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# POSE TYPES
# ═══════════════════════════════════════════════════════════════════════════════

COCO17_NAMES = (
    "nose",
    "left_eye",
    "right_eye",
    "left_ear",
    "right_ear",
    "left_shoulder",
    "right_shoulder",
    "left_elbow",
    "right_elbow",
    "left_wrist",
    "right_wrist",
    "left_hip",
    "right_hip",
    "left_knee",
    "right_knee",
    "left_ankle",
    "right_ankle",
)


class EstimationMode(str, Enum):
    """Pose decoding mode."""
    SINGLE = "single-subject"
    MULTI = "multi-subject"


@dataclass(frozen=True)
class Keypoint:
    """A single named 2D keypoint in pixel coordinates."""
    name: str
    x: float
    y: float
    score: float  # confidence [0..1]


@dataclass(frozen=True)
class Pose:
    """One detected subject: ordered keypoints plus overall confidence."""
    keypoints: Tuple[Keypoint, ...]
    score: float

    def get(self, name: str) -> Optional[Keypoint]:
        for kp in self.keypoints:
            if kp.name == name:
                return kp
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "score": round(float(self.score), 4),
            "keypoints": [
                {"name": kp.name, "x": round(kp.x, 1), "y": round(kp.y, 1), "score": round(kp.score, 4)}
                for kp in self.keypoints
            ],
        }


@dataclass(frozen=True)
class EstimateOptions:
    """Pass-through options for one estimation call."""
    mode: EstimationMode = EstimationMode.SINGLE
    flip_horizontal: bool = False
    max_detections: Optional[int] = None
    score_threshold: Optional[float] = None
    suppression_radius: Optional[float] = None


# ═══════════════════════════════════════════════════════════════════════════════
# MODEL INPUT LIFECYCLE
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class ModelInput:
    """
    Caller-owned model input prepared from raw pixels.

    Must be released explicitly once the estimation call returns.
    """
    estimator: "PoseEstimator"
    width: int
    height: int
    _data: Any = field(default=None, repr=False)
    released: bool = False

    @property
    def data(self) -> Any:
        if self.released:
            raise ValueError("model input already released")
        return self._data

    def release(self) -> None:
        if self.released:
            return
        self.estimator._release(self._data)
        self._data = None
        self.released = True


@contextmanager
def model_input(estimator: "PoseEstimator", pixels: np.ndarray) -> Iterator[ModelInput]:
    """
    Scoped acquisition of a model input.

    Usage:
        with model_input(estimator, rgb) as tensor:
            poses = estimator.estimate(tensor, options)
    """
    handle = estimator.create_input(pixels)
    try:
        yield handle
    finally:
        handle.release()
        logger.debug(f"Released {handle.width}x{handle.height} model input")


# ═══════════════════════════════════════════════════════════════════════════════
# ESTIMATOR INTERFACE
# ═══════════════════════════════════════════════════════════════════════════════

class PoseEstimator(ABC):
    """
    Model adapter interface.

    Implementations provide _infer(); estimate() handles options common to
    every backend (horizontal flip, detection count).
    """

    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def _infer(self, prepared: Any, width: int, height: int, options: EstimateOptions) -> List[Pose]: ...

    def load(self) -> None:
        """Load model weights. Blocking; run it on a worker pool."""

    def close(self) -> None:
        """Release model resources."""

    def _prepare(self, pixels: np.ndarray) -> Any:
        return pixels

    def _release(self, prepared: Any) -> None:
        pass

    def create_input(self, pixels: np.ndarray) -> ModelInput:
        height, width = int(pixels.shape[0]), int(pixels.shape[1])
        return ModelInput(estimator=self, width=width, height=height, _data=self._prepare(pixels))

    def estimate(self, image: Any, options: EstimateOptions) -> List[Pose]:
        """
        Estimate poses in an RGB frame or a prepared ModelInput.

        Raw frames are prepared internally and never handed back to the caller.
        Flipped results are mirrored in keypoint space, not by re-running
        inference on a mirrored image.
        """
        if isinstance(image, ModelInput):
            prepared, width, height = image.data, image.width, image.height
        else:
            height, width = int(image.shape[0]), int(image.shape[1])
            prepared = self._prepare(image)

        poses = self._infer(prepared, width, height, options)

        if options.mode == EstimationMode.SINGLE:
            poses = poses[:1]
        elif options.max_detections:
            poses = poses[:options.max_detections]

        if options.flip_horizontal:
            poses = [mirror_pose(p, width) for p in poses]
        return poses


# ═══════════════════════════════════════════════════════════════════════════════
# MEDIAPIPE ADAPTER
# ═══════════════════════════════════════════════════════════════════════════════

# BlazePose landmark index for each COCO-17 name
MEDIAPIPE_INDEX = {
    "nose": 0,
    "left_eye": 2,
    "right_eye": 5,
    "left_ear": 7,
    "right_ear": 8,
    "left_shoulder": 11,
    "right_shoulder": 12,
    "left_elbow": 13,
    "right_elbow": 14,
    "left_wrist": 15,
    "right_wrist": 16,
    "left_hip": 23,
    "right_hip": 24,
    "left_knee": 25,
    "right_knee": 26,
    "left_ankle": 27,
    "right_ankle": 28,
}


def landmarks_to_pose(landmarks, width: int, height: int) -> Pose:
    """
    Convert one subject's normalized MediaPipe landmarks to a Pose.

    Visibility is used as keypoint score; the pose score is the mean
    visibility over the 17 mapped keypoints.
    """
    keypoints = []
    for name in COCO17_NAMES:
        lm = landmarks[MEDIAPIPE_INDEX[name]]
        keypoints.append(Keypoint(
            name=name,
            x=float(lm.x) * float(width),
            y=float(lm.y) * float(height),
            score=float(getattr(lm, "visibility", 0.0) or 0.0),
        ))
    score = float(np.mean([kp.score for kp in keypoints])) if keypoints else 0.0
    return Pose(keypoints=tuple(keypoints), score=score)


class MediaPipePoseEstimator(PoseEstimator):
    """
    MediaPipe PoseLandmarker (Tasks API, IMAGE running mode).

    Notes:
    - One landmarker is created per (num_poses, threshold) pair on demand.
    - Calls are serialised with a lock; the reference load and a live frame
      may be in flight at the same time.
    - suppression_radius has no MediaPipe counterpart and is ignored.
    """

    def __init__(self, model_path: str, min_tracking_confidence: float = 0.5):
        self.model_path = model_path
        self.min_tracking_confidence = min_tracking_confidence
        self._mp = None
        self._vision = None
        self._base_options = None
        self._landmarkers: Dict[Tuple[int, float], Any] = {}
        self._lock = threading.Lock()

    def name(self) -> str:
        return "mediapipe_pose_landmarker"

    def load(self) -> None:
        import mediapipe as mp
        from mediapipe.tasks import python as mp_python
        from mediapipe.tasks.python import vision

        if not Path(self.model_path).exists():
            raise FileNotFoundError(f"Pose model not found: {self.model_path}")

        self._vision = vision
        self._base_options = mp_python.BaseOptions(model_asset_path=self.model_path)
        # Warm the single-subject landmarker so the first frame isn't slow
        with self._lock:
            self._landmarker(1, 0.5)
        # Set last: _prepare treats a non-None _mp as fully loaded
        self._mp = mp
        logger.info(f"✅ MediaPipe pose landmarker loaded from {self.model_path}")

    def _landmarker(self, num_poses: int, threshold: float):
        key = (int(num_poses), round(float(threshold), 4))
        landmarker = self._landmarkers.get(key)
        if landmarker is None:
            options = self._vision.PoseLandmarkerOptions(
                base_options=self._base_options,
                running_mode=self._vision.RunningMode.IMAGE,
                num_poses=key[0],
                min_pose_detection_confidence=key[1],
                min_tracking_confidence=self.min_tracking_confidence,
            )
            landmarker = self._vision.PoseLandmarker.create_from_options(options)
            self._landmarkers[key] = landmarker
        return landmarker

    def _prepare(self, pixels: np.ndarray) -> Any:
        if self._mp is None:
            raise RuntimeError("Pose model not loaded; call load() first")
        return self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=np.ascontiguousarray(pixels))

    def _infer(self, prepared: Any, width: int, height: int, options: EstimateOptions) -> List[Pose]:
        if options.mode == EstimationMode.MULTI:
            num_poses = options.max_detections or 1
        else:
            num_poses = 1
        threshold = options.score_threshold if options.score_threshold is not None else 0.5

        with self._lock:
            result = self._landmarker(num_poses, threshold).detect(prepared)

        return [landmarks_to_pose(lms, width, height) for lms in (result.pose_landmarks or [])]

    def close(self) -> None:
        with self._lock:
            for landmarker in self._landmarkers.values():
                landmarker.close()
            self._landmarkers.clear()
