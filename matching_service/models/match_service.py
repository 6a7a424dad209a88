"""
POSEMATCH Matching Service - Service Orchestrator

Owns the estimator, the reference store and the configuration for a
session. Startup loads the model and kicks off the reference load in
parallel; each video stream then gets its own FrameLoop reading the same
cached reference.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from core.config import MatchConfig, settings
from core.threading import run_ml_inference

from .errors import EnvironmentUnavailable
from .features import LiveFeatureExtractor, ReferenceFeatureStore
from .frame_loop import FrameLoop, LoopState, RefreshSignal, RenderSink, StatusSink, VideoSource
from .pose_estimator import EstimationMode, MediaPipePoseEstimator, PoseEstimator
from .score_engine import ScoreEngine

logger = logging.getLogger(__name__)

CAMERA_UNAVAILABLE_MESSAGE = (
    "this device does not support video capture, "
    "or this device does not have a camera"
)


class LoggingStatusSink(StatusSink):
    """Status sink that only logs."""

    def loading(self, active: bool) -> None:
        logger.info("⏳ Loading pose model..." if active else "✅ Pose model ready")

    def camera_unavailable(self, message: str) -> None:
        logger.error(f"📷 {message}")


class PoseMatchService:
    """
    Session owner for live pose matching.

    Usage:
        service = PoseMatchService(estimator, image_source, config)
        await service.startup()
        await service.run_stream(source, refresh, render_sink)
    """

    def __init__(
        self,
        estimator: PoseEstimator,
        image_source,
        config: MatchConfig,
        status_sink: Optional[StatusSink] = None,
    ):
        self.estimator = estimator
        self.config = config
        self.status_sink = status_sink or LoggingStatusSink()
        self.reference_store = ReferenceFeatureStore(estimator, image_source, config)
        self.extractor = LiveFeatureExtractor(estimator, config)
        self.model_ready = False
        self.reference_task: Optional[asyncio.Task] = None
        self._model_loaded: Optional[asyncio.Event] = None
        self.streams_started = 0

    def create_engine(self) -> ScoreEngine:
        mode = EstimationMode(self.config.mode)
        return ScoreEngine(
            tolerance=self.config.angle_tolerance,
            min_pose_confidence=self.config.thresholds(mode.value).min_pose_confidence,
        )

    def start_reference_load(self) -> asyncio.Task:
        """
        Start the one-shot reference load (idempotent).

        The image is fetched right away; estimation waits until the model
        has finished loading.
        """
        if self.reference_task is None:
            self._model_loaded = asyncio.Event()
            if self.model_ready:
                self._model_loaded.set()
            self.reference_task = asyncio.create_task(
                self.reference_store.load_reference(self.config.reference_image, self._model_loaded)
            )
            self.reference_task.add_done_callback(self._on_reference_done)
        return self.reference_task

    def _on_reference_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Reference load failed, scoring disabled: {error!r}")

    async def startup(self) -> None:
        """Load the model while the reference image is fetched in the background."""
        self.status_sink.loading(True)
        self.start_reference_load()
        try:
            await run_ml_inference(self.estimator.load)
        except Exception:
            self.reference_task.cancel()
            raise
        self.model_ready = True
        self._model_loaded.set()
        self.status_sink.loading(False)

    async def run_stream(
        self,
        source: VideoSource,
        refresh: RefreshSignal,
        render_sink: RenderSink,
        max_ticks: Optional[int] = None,
    ) -> FrameLoop:
        """
        Open the video source and run a frame loop over it.

        Raises:
            EnvironmentUnavailable: the capture device can't be opened
        """
        if not self.model_ready:
            raise RuntimeError("model not loaded; call startup() first")

        try:
            await source.open()
        except EnvironmentUnavailable:
            self.status_sink.camera_unavailable(CAMERA_UNAVAILABLE_MESSAGE)
            raise

        loop = FrameLoop(
            source=source,
            refresh=refresh,
            extractor=self.extractor,
            engine=self.create_engine(),
            reference_store=self.reference_store,
            render_sink=render_sink,
            config=self.config,
        )
        self.streams_started += 1
        try:
            await loop.run(max_ticks=max_ticks)
        finally:
            source.close()
        return loop

    def get_status(self) -> Dict[str, Any]:
        reference = self.reference_store.state
        return {
            "model": self.estimator.name(),
            "model_ready": self.model_ready,
            "mode": self.config.mode,
            "tolerance": self.config.angle_tolerance,
            "reference_image": self.config.reference_image,
            "reference": reference.to_dict() if reference else None,
            "scoring_enabled": self.reference_store.scoring_enabled,
            "streams_started": self.streams_started,
        }

    async def shutdown(self) -> None:
        if self.reference_task and not self.reference_task.done():
            self.reference_task.cancel()
        await run_ml_inference(self.estimator.close)


# ═══════════════════════════════════════════════════════════════════════════════
# MODULE-LEVEL SINGLETON
# ═══════════════════════════════════════════════════════════════════════════════

_service_instance: Optional[PoseMatchService] = None


def get_match_service() -> PoseMatchService:
    """Get or create the global match service instance."""
    global _service_instance
    if _service_instance is None:
        from matching_service.sources import ReferenceImageSource

        _service_instance = PoseMatchService(
            estimator=MediaPipePoseEstimator(settings.POSE_MODEL_PATH),
            image_source=ReferenceImageSource(bucket=settings.REFERENCE_IMAGE_BUCKET),
            config=MatchConfig.from_settings(settings),
        )
    return _service_instance


def set_match_service(service: Optional[PoseMatchService]) -> None:
    """Replace the global service (used by hosts that build their own)."""
    global _service_instance
    _service_instance = service
