"""
POSEMATCH Matching Service - I/O Collaborators

Local camera capture, a display-refresh ticker for hosts without a real
display signal, reference image loading, and a logging render sink.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import List, Optional

import aiohttp
import cv2
import numpy as np

from core.threading import process_video_frame, video_worker_pool

from .models.errors import EnvironmentUnavailable
from .models.frame_loop import FrameResult, RefreshSignal, RenderSink, VideoSource

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# VIDEO SOURCE
# ═══════════════════════════════════════════════════════════════════════════════

class CameraVideoSource(VideoSource):
    """Webcam frames through OpenCV, returned as RGB arrays."""

    def __init__(self, index: int = 0, width: Optional[int] = None, height: Optional[int] = None):
        self.index = index
        self.width = width
        self.height = height
        self.cap = None

    async def open(self) -> None:
        cap = await video_worker_pool.submit_async(cv2.VideoCapture, self.index)
        if not cap.isOpened():
            cap.release()
            raise EnvironmentUnavailable(f"camera {self.index} could not be opened")

        if self.width:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        if self.height:
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self.cap = cap
        logger.info(
            f"📷 Camera {self.index} opened "
            f"({int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))}x{int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))})"
        )

    async def capture(self) -> np.ndarray:
        if self.cap is None:
            raise EOFError("camera not open")
        ret, frame = await process_video_frame(self.cap.read)
        if not ret:
            raise EOFError("camera returned no frame")
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def close(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None


# ═══════════════════════════════════════════════════════════════════════════════
# REFRESH SIGNAL
# ═══════════════════════════════════════════════════════════════════════════════

class DisplayRefreshTicker(RefreshSignal):
    """
    Emulates a display refresh at a fixed rate.

    A refresh that already passed while the previous tick was running is
    not queued; wait() then returns immediately.
    """

    def __init__(self, hz: float = 30.0):
        if hz <= 0:
            raise ValueError("refresh rate must be positive")
        self.interval = 1.0 / hz
        self._next = 0.0

    async def wait(self) -> None:
        now = time.monotonic()
        if now < self._next:
            await asyncio.sleep(self._next - now)
            now = self._next
        self._next = now + self.interval


# ═══════════════════════════════════════════════════════════════════════════════
# REFERENCE IMAGE SOURCE
# ═══════════════════════════════════════════════════════════════════════════════

def decode_image(data: bytes) -> np.ndarray:
    """Decode encoded image bytes (JPEG/PNG) into an RGB array."""
    nparr = np.frombuffer(data, np.uint8)
    frame = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    if frame is None:
        raise ValueError("invalid image data")
    return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)


class ReferenceImageSource:
    """
    Resolves a reference image identifier to RGB pixels.

    - absolute http(s) URLs are fetched as-is
    - existing local paths are read from disk
    - anything else is appended to the bucket URL
    """

    def __init__(self, bucket: str = "", timeout_seconds: float = 30.0):
        self.bucket = bucket
        self.timeout_seconds = timeout_seconds

    def resolve(self, image_ref: str) -> str:
        if image_ref.startswith(("http://", "https://")) or Path(image_ref).exists():
            return image_ref
        if self.bucket:
            return f"{self.bucket}{image_ref}"
        return image_ref

    async def load(self, image_ref: str) -> np.ndarray:
        location = self.resolve(image_ref)
        if location.startswith(("http://", "https://")):
            data = await self._fetch(location)
        else:
            path = Path(location)
            if not path.exists():
                raise FileNotFoundError(f"Reference image not found: {path}")
            data = path.read_bytes()
        return decode_image(data)

    async def _fetch(self, url: str) -> bytes:
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        raise OSError(f"HTTP {response.status} fetching {url}")
                    return await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise OSError(f"Network error fetching {url}: {e}") from e


# ═══════════════════════════════════════════════════════════════════════════════
# RENDER SINK
# ═══════════════════════════════════════════════════════════════════════════════

class LoggingRenderSink(RenderSink):
    """Logs the displayed score whenever it changes."""

    def __init__(self):
        self.last_score: Optional[int] = None
        self.frames = 0

    async def render(self, frame, results: List[FrameResult], displayed_score: Optional[int]) -> None:
        self.frames += 1
        if displayed_score != self.last_score:
            logger.info(f"SCORE: {displayed_score} ({len(results)} pose(s), frame {self.frames})")
            self.last_score = displayed_score
