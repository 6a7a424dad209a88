"""
Shared fixtures and fakes for the POSEMATCH test suite.
"""

import asyncio
import math
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional

import numpy as np
import pytest

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from core.config import MatchConfig
from matching_service.models import (
    COCO17_NAMES,
    EnvironmentUnavailable,
    EstimateOptions,
    Keypoint,
    ModelInput,
    Pose,
    PoseEstimator,
    RefreshSignal,
    RenderSink,
    StatusSink,
    VideoSource,
)

FRAME_WIDTH = 640
FRAME_HEIGHT = 480


def make_pose(elbow_angle: float, score: float = 0.9, offset_x: float = 0.0, part_score: Optional[float] = None) -> Pose:
    """
    Build a 17-keypoint pose whose left elbow bends by `elbow_angle` degrees.

    Elbow at (200, 200) + offset, shoulder 100px to its right, wrist rotated
    by the requested angle from the shoulder ray.
    """
    ex, ey = 200.0 + offset_x, 200.0
    theta = math.radians(elbow_angle)
    positions = {
        "left_elbow": (ex, ey),
        "left_shoulder": (ex + 100.0, ey),
        "left_wrist": (ex + 100.0 * math.cos(theta), ey + 100.0 * math.sin(theta)),
    }
    keypoints = []
    for i, name in enumerate(COCO17_NAMES):
        x, y = positions.get(name, (10.0 + 20.0 * i + offset_x, 400.0))
        kp_score = part_score if part_score is not None and name in positions else score
        keypoints.append(Keypoint(name=name, x=x, y=y, score=kp_score))
    return Pose(keypoints=tuple(keypoints), score=score)


def make_frame() -> np.ndarray:
    return np.zeros((FRAME_HEIGHT, FRAME_WIDTH, 3), dtype=np.uint8)


class FakeEstimator(PoseEstimator):
    """
    Scripted estimator.

    `poses` is either a list returned on every call, or a callable taking
    the call index. Tracks concurrency and prepared-input releases.

    With require_load, inputs can only be prepared after load() has
    finished, like the MediaPipe landmarker.
    """

    def __init__(
        self,
        poses=None,
        delay: float = 0.0,
        error: Optional[Exception] = None,
        require_load: bool = False,
        load_delay: float = 0.0,
        load_error: Optional[Exception] = None,
    ):
        self.poses = poses if poses is not None else [make_pose(90.0)]
        self.delay = delay
        self.error = error
        self.require_load = require_load
        self.load_delay = load_delay
        self.load_error = load_error
        self.load_finished_at: Optional[float] = None
        self.calls: List[EstimateOptions] = []
        self.prepared = 0
        self.released = 0
        self.loaded = False
        self.closed = False
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def name(self) -> str:
        return "fake"

    def load(self) -> None:
        if self.load_delay:
            time.sleep(self.load_delay)
        if self.load_error is not None:
            raise self.load_error
        self.loaded = True
        self.load_finished_at = time.monotonic()

    def close(self) -> None:
        self.closed = True

    def _prepare(self, pixels):
        if self.require_load and not self.loaded:
            raise RuntimeError("Pose model not loaded; call load() first")
        return pixels

    def create_input(self, pixels) -> ModelInput:
        self.prepared += 1
        return super().create_input(pixels)

    def _release(self, prepared) -> None:
        self.released += 1

    def _infer(self, prepared, width, height, options) -> List[Pose]:
        with self._lock:
            index = len(self.calls)
            self.calls.append(options)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.error is not None:
                raise self.error
            poses = self.poses(index) if callable(self.poses) else self.poses
            return list(poses)
        finally:
            with self._lock:
                self.in_flight -= 1


class FakeImageSource:
    def __init__(self, error: Optional[Exception] = None, delay: float = 0.0):
        self.error = error
        self.delay = delay
        self.requests: List[str] = []
        self.fetched_at: List[float] = []

    async def load(self, image_ref: str) -> np.ndarray:
        self.requests.append(image_ref)
        self.fetched_at.append(time.monotonic())
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return make_frame()


class FakeVideoSource(VideoSource):
    """Yields `frames` frames, then ends the feed."""

    def __init__(self, frames: int = 3, available: bool = True):
        self.frames = frames
        self.available = available
        self.captured = 0
        self.opened = False
        self.closed = False

    async def open(self) -> None:
        if not self.available:
            raise EnvironmentUnavailable("no camera")
        self.opened = True

    async def capture(self):
        if self.captured >= self.frames:
            raise EOFError("feed ended")
        self.captured += 1
        return make_frame()

    def close(self) -> None:
        self.closed = True


class ImmediateRefresh(RefreshSignal):
    def __init__(self):
        self.count = 0

    async def wait(self) -> None:
        self.count += 1
        await asyncio.sleep(0)


class RecordingRenderSink(RenderSink):
    def __init__(self):
        self.calls = []

    async def render(self, frame, results, displayed_score) -> None:
        self.calls.append((results, displayed_score))


class RecordingStatusSink(StatusSink):
    def __init__(self):
        self.events = []

    def loading(self, active: bool) -> None:
        self.events.append(("loading", active))

    def camera_unavailable(self, message: str) -> None:
        self.events.append(("camera_unavailable", message))


@pytest.fixture
def config() -> MatchConfig:
    return MatchConfig()


@pytest.fixture
def multi_config() -> MatchConfig:
    return MatchConfig(mode="multi-subject")
