"""
POSEMATCH Matching Service - Frame Loop

Cooperative per-frame scheduling: one refresh signal, one captured frame,
one awaited estimation call, then scoring and hand-off to the render sink.
The next tick starts only after the previous one has completed.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from core.config import MatchConfig
from shared.utils import log_execution_time

from .features import LiveFeatureExtractor, LiveState, ReferenceFeatureStore
from .pose_estimator import EstimationMode
from .score_engine import ScoreDisplay, ScoreEngine

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# COLLABORATOR INTERFACES
# ═══════════════════════════════════════════════════════════════════════════════

class VideoSource(ABC):
    """Yields live RGB frames on demand. capture() raises EOFError when the feed ends."""

    async def open(self) -> None:
        """Acquire the capture device; raises EnvironmentUnavailable."""

    @abstractmethod
    async def capture(self): ...

    def close(self) -> None:
        pass


class RefreshSignal(ABC):
    """Host display-refresh signal; one wait() per tick."""

    @abstractmethod
    async def wait(self) -> None: ...


class RenderSink(ABC):
    """Consumes keypoints, scores and the frame; owns all visual output."""

    @abstractmethod
    async def render(self, frame, results: List["FrameResult"], displayed_score: Optional[int]) -> None: ...


class StatusSink(ABC):
    """Coarse lifecycle messages for the user."""

    @abstractmethod
    def loading(self, active: bool) -> None: ...

    @abstractmethod
    def camera_unavailable(self, message: str) -> None: ...


# ═══════════════════════════════════════════════════════════════════════════════
# FRAME LOOP
# ═══════════════════════════════════════════════════════════════════════════════

class LoopState(Enum):
    """Frame loop states. There is no way back from RUNNING."""
    IDLE = "idle"
    RUNNING = "running"


@dataclass(frozen=True)
class FrameResult:
    """One scored pose in one frame."""
    live: LiveState
    score: Optional[int]

    def to_dict(self, min_part_confidence: float = 0.0) -> dict:
        return {
            "angle": round(self.live.angle, 2) if self.live.angle is not None else None,
            "confidence": round(self.live.confidence, 4),
            "score": self.score,
            "keypoints": [
                {"name": kp.name, "x": round(kp.x, 1), "y": round(kp.y, 1), "score": round(kp.score, 4)}
                for kp in self.live.keypoints
                if kp.score >= min_part_confidence
            ],
        }


class FrameLoop:
    """
    Drives live extraction and scoring once per refresh.

    Each tick awaits its estimation call before returning, and run() only
    waits for the next refresh after the tick returns, so at most one
    estimation call is ever in flight.
    """

    def __init__(
        self,
        source: VideoSource,
        refresh: RefreshSignal,
        extractor: LiveFeatureExtractor,
        engine: ScoreEngine,
        reference_store: ReferenceFeatureStore,
        render_sink: RenderSink,
        config: MatchConfig,
        display: Optional[ScoreDisplay] = None,
    ):
        self.source = source
        self.refresh = refresh
        self.extractor = extractor
        self.engine = engine
        self.reference_store = reference_store
        self.render_sink = render_sink
        self.config = config
        self.display = display or ScoreDisplay()
        self.mode = EstimationMode(config.mode)
        self.state = LoopState.IDLE
        self.ticks = 0

    @log_execution_time
    async def tick(self) -> List[FrameResult]:
        """Process exactly one frame."""
        frame = await self.source.capture()
        live_states = await self.extractor.extract_live(frame, self.mode)

        reference = self.reference_store.state
        results = []
        for live in live_states:
            score = self.engine.score(reference, live, self.config.angle_tolerance)
            self.display.update(score)
            results.append(FrameResult(live=live, score=score))

        await self.render_sink.render(frame, results, self.display.value)
        self.ticks += 1
        return results

    async def run(self, max_ticks: Optional[int] = None) -> int:
        """
        Enter RUNNING and tick once per refresh until the feed ends.

        Args:
            max_ticks: stop after this many ticks (None runs until the source ends)

        Returns:
            Number of ticks processed
        """
        if self.state != LoopState.IDLE:
            raise RuntimeError("frame loop already started")
        self.state = LoopState.RUNNING
        logger.info(f"▶️ Frame loop running ({self.mode.value})")

        while max_ticks is None or self.ticks < max_ticks:
            try:
                await self.refresh.wait()
                await self.tick()
            except EOFError:
                logger.info(f"Video feed ended after {self.ticks} frames")
                break
        return self.ticks
