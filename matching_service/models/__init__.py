"""
POSEMATCH Matching Service Models

Joint-angle pose matching against a reference image.
"""

from .errors import (
    PoseMatchError,
    DegenerateGeometry,
    EnvironmentUnavailable,
    ReferenceLoadFailure,
)

from .geometry import angle_of, mirror_keypoint, mirror_pose

from .pose_estimator import (
    Keypoint,
    Pose,
    EstimationMode,
    EstimateOptions,
    ModelInput,
    model_input,
    PoseEstimator,
    MediaPipePoseEstimator,
    COCO17_NAMES,
)

from .features import (
    JointTriple,
    ELBOW_BEND,
    extract_angle,
    ReferenceState,
    LiveState,
    ReferenceFeatureStore,
    LiveFeatureExtractor,
)

from .score_engine import ScoreEngine, ScoreDisplay

from .frame_loop import (
    FrameLoop,
    FrameResult,
    LoopState,
    VideoSource,
    RefreshSignal,
    RenderSink,
    StatusSink,
)

from .match_service import (
    PoseMatchService,
    LoggingStatusSink,
    get_match_service,
    set_match_service,
)

__all__ = [
    # Errors
    "PoseMatchError",
    "DegenerateGeometry",
    "EnvironmentUnavailable",
    "ReferenceLoadFailure",
    # Geometry
    "angle_of",
    "mirror_keypoint",
    "mirror_pose",
    # Pose Estimator
    "Keypoint",
    "Pose",
    "EstimationMode",
    "EstimateOptions",
    "ModelInput",
    "model_input",
    "PoseEstimator",
    "MediaPipePoseEstimator",
    "COCO17_NAMES",
    # Features
    "JointTriple",
    "ELBOW_BEND",
    "extract_angle",
    "ReferenceState",
    "LiveState",
    "ReferenceFeatureStore",
    "LiveFeatureExtractor",
    # Scoring
    "ScoreEngine",
    "ScoreDisplay",
    # Frame Loop
    "FrameLoop",
    "FrameResult",
    "LoopState",
    "VideoSource",
    "RefreshSignal",
    "RenderSink",
    "StatusSink",
    # Service
    "PoseMatchService",
    "LoggingStatusSink",
    "get_match_service",
    "set_match_service",
]
