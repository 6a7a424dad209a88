"""
POSEMATCH Matching Service Router

Endpoints for service status and the live matching stream.
The browser captures the camera and sends one encoded frame per display
refresh; each received frame drives exactly one frame-loop tick.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from shared.utils import error_response, success_response

from .models import (
    FrameResult,
    RefreshSignal,
    RenderSink,
    VideoSource,
    EstimationMode,
    get_match_service,
)
from .sources import decode_image

logger = logging.getLogger(__name__)

router = APIRouter()


# ============= WebSocket Collaborators =============

class WebSocketFrameChannel(VideoSource, RefreshSignal):
    """
    Frames pushed by the client.

    wait() returns once a decodable frame has arrived; capture() hands that
    frame to the loop. Client disconnect ends the feed.
    """

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self._frame = None

    async def wait(self) -> None:
        while True:
            try:
                data = await self.websocket.receive_bytes()
            except WebSocketDisconnect as e:
                raise EOFError("client disconnected") from e

            try:
                self._frame = decode_image(data)
                return
            except ValueError:
                await self.websocket.send_json({
                    "type": "ERROR",
                    **error_response("Invalid frame data", error_code="INVALID_FRAME"),
                })

    async def capture(self):
        frame, self._frame = self._frame, None
        if frame is None:
            raise EOFError("no frame received")
        return frame


class WebSocketRenderSink(RenderSink):
    """Sends keypoints and scores back to the client for drawing."""

    def __init__(self, websocket: WebSocket, min_part_confidence: float):
        self.websocket = websocket
        self.min_part_confidence = min_part_confidence
        self.frame_number = 0

    async def render(self, frame, results: List[FrameResult], displayed_score: Optional[int]) -> None:
        self.frame_number += 1
        await self.websocket.send_json({
            "type": "FRAME_RESULT",
            "frame_number": self.frame_number,
            "score": displayed_score,
            "poses": [r.to_dict(self.min_part_confidence) for r in results],
        })


# ============= REST Endpoints =============

@router.get("/status")
async def get_status():
    """Model readiness, configuration and the cached reference feature."""
    return success_response(get_match_service().get_status())


@router.get("/reference")
async def get_reference():
    """Reference angle, or null while the reference is still loading."""
    state = get_match_service().reference_store.state
    if state is None:
        return success_response(None, message="Reference still loading")
    return success_response(state.to_dict())


# ============= WebSocket Endpoints =============

@router.websocket("/ws/stream/{client_id}")
async def match_stream(websocket: WebSocket, client_id: str):
    """
    Real-time pose matching.

    Receives encoded frames (JPEG/PNG bytes), returns keypoints and score
    for each one.
    """
    await websocket.accept()
    service = get_match_service()

    if not service.model_ready:
        await websocket.send_json({
            "type": "ERROR",
            **error_response("Pose model not loaded", error_code="MODEL_NOT_READY"),
        })
        await websocket.close()
        return

    await websocket.send_json({
        "type": "CONNECTED",
        "client_id": client_id,
        "status": service.get_status(),
    })

    mode = EstimationMode(service.config.mode)
    channel = WebSocketFrameChannel(websocket)
    sink = WebSocketRenderSink(websocket, service.config.thresholds(mode.value).min_part_confidence)

    try:
        loop = await service.run_stream(channel, channel, sink)
        logger.info(f"Client {client_id} stream ended after {loop.ticks} frames")
    except WebSocketDisconnect:
        logger.info(f"Client {client_id} disconnected from match stream")
    except Exception as e:
        logger.error(f"Match stream for {client_id} failed: {e!r}")
        await websocket.send_json({
            "type": "ERROR",
            **error_response(f"Processing error: {e}", error_code="PROCESSING_ERROR"),
        })
        await websocket.close()
