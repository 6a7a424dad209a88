"""
POSEMATCH Configuration

Environment variables and application settings.
"""

from dataclasses import dataclass
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "POSEMATCH"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8080"]

    # Thread Pool
    THREAD_POOL_SIZE: int = 2

    # Pose model
    POSE_MODEL_PATH: str = "ml_models/pose_landmarker_full.task"
    ESTIMATION_MODE: str = "single-subject"  # single-subject | multi-subject
    FLIP_POSE_HORIZONTAL: bool = True

    # Single-subject detection
    SINGLE_MIN_POSE_CONFIDENCE: float = 0.7
    SINGLE_MIN_PART_CONFIDENCE: float = 0.7

    # Multi-subject detection
    MULTI_MAX_POSE_DETECTIONS: int = 5
    MULTI_MIN_POSE_CONFIDENCE: float = 0.15
    MULTI_MIN_PART_CONFIDENCE: float = 0.1
    MULTI_NMS_RADIUS: float = 30.0

    # Scoring
    ANGLE_TOLERANCE: float = 20.0
    REQUIRE_JOINT_CONFIDENCE: bool = False

    # Reference image
    REFERENCE_IMAGE: str = "Vs9p4Sj.jpg"
    REFERENCE_IMAGE_BUCKET: str = "https://i.imgur.com/"

    # Local camera host
    CAMERA_INDEX: int = 0
    VIDEO_WIDTH: int = 640
    VIDEO_HEIGHT: int = 480
    DISPLAY_REFRESH_HZ: float = 30.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()


@dataclass(frozen=True)
class ModeThresholds:
    """Confidence thresholds for one estimation mode."""
    min_pose_confidence: float
    min_part_confidence: float


@dataclass(frozen=True)
class MatchConfig:
    """
    Explicit configuration handed to the matching pipeline.

    Built once from Settings so the loop, extractor and score engine never
    read ambient globals.
    """
    mode: str = "single-subject"
    single: ModeThresholds = ModeThresholds(0.7, 0.7)
    multi: ModeThresholds = ModeThresholds(0.15, 0.1)
    max_detections: int = 5
    suppression_radius: float = 30.0
    angle_tolerance: float = 20.0
    flip_horizontal: bool = True
    require_joint_confidence: bool = False
    reference_image: str = "Vs9p4Sj.jpg"

    def thresholds(self, mode: str) -> ModeThresholds:
        return self.multi if mode == "multi-subject" else self.single

    @classmethod
    def from_settings(cls, s: Settings) -> "MatchConfig":
        return cls(
            mode=s.ESTIMATION_MODE,
            single=ModeThresholds(s.SINGLE_MIN_POSE_CONFIDENCE, s.SINGLE_MIN_PART_CONFIDENCE),
            multi=ModeThresholds(s.MULTI_MIN_POSE_CONFIDENCE, s.MULTI_MIN_PART_CONFIDENCE),
            max_detections=s.MULTI_MAX_POSE_DETECTIONS,
            suppression_radius=s.MULTI_NMS_RADIUS,
            angle_tolerance=s.ANGLE_TOLERANCE,
            flip_horizontal=s.FLIP_POSE_HORIZONTAL,
            require_joint_confidence=s.REQUIRE_JOINT_CONFIDENCE,
            reference_image=s.REFERENCE_IMAGE,
        )
