"""Tests for the REST and WebSocket surface of the matching service."""

import asyncio

import cv2
import numpy as np
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from matching_service.models import PoseMatchService, set_match_service
from matching_service.router import router

from conftest import FakeEstimator, FakeImageSource, RecordingStatusSink, make_pose


def encoded_frame() -> bytes:
    ok, buffer = cv2.imencode(".png", np.zeros((48, 64, 3), dtype=np.uint8))
    assert ok
    return buffer.tobytes()


@pytest.fixture
def service(config):
    svc = PoseMatchService(
        estimator=FakeEstimator([make_pose(95.0, score=0.9)], require_load=True),
        image_source=FakeImageSource(),
        config=config,
        status_sink=RecordingStatusSink(),
    )
    set_match_service(svc)
    yield svc
    set_match_service(None)


@pytest.fixture
def client():
    app = FastAPI()
    app.include_router(router, prefix="/api/match")
    return TestClient(app)


def start(service):
    async def scenario():
        await service.startup()
        await service.reference_task
    asyncio.run(scenario())


def test_reference_endpoint_before_and_after_load(service, client):
    body = client.get("/api/match/reference").json()
    assert body["success"] is True
    assert body["data"] is None

    start(service)

    body = client.get("/api/match/reference").json()
    assert body["data"]["angle"] == pytest.approx(95.0)


def test_status_endpoint(service, client):
    start(service)
    data = client.get("/api/match/status").json()["data"]
    assert data["model_ready"] is True
    assert data["mode"] == "single-subject"
    assert data["tolerance"] == 20.0


def test_stream_rejects_when_model_not_ready(service, client):
    with client.websocket_connect("/api/match/ws/stream/c1") as ws:
        message = ws.receive_json()
    assert message["type"] == "ERROR"
    assert message["error_code"] == "MODEL_NOT_READY"


def test_stream_answers_each_frame(service, client):
    start(service)
    with client.websocket_connect("/api/match/ws/stream/c1") as ws:
        assert ws.receive_json()["type"] == "CONNECTED"

        ws.send_bytes(encoded_frame())
        first = ws.receive_json()
        ws.send_bytes(encoded_frame())
        second = ws.receive_json()

    assert first["type"] == "FRAME_RESULT"
    assert first["frame_number"] == 1
    assert first["score"] == 100
    assert len(first["poses"]) == 1
    assert len(first["poses"][0]["keypoints"]) == 17
    assert second["frame_number"] == 2


def test_stream_reports_invalid_frames_and_continues(service, client):
    start(service)
    with client.websocket_connect("/api/match/ws/stream/c1") as ws:
        ws.receive_json()
        ws.send_bytes(b"not an image")
        error = ws.receive_json()
        ws.send_bytes(encoded_frame())
        result = ws.receive_json()

    assert error["type"] == "ERROR"
    assert error["error_code"] == "INVALID_FRAME"
    assert result["type"] == "FRAME_RESULT"


def test_stream_reports_estimator_failure_before_closing(config, client):
    failing = PoseMatchService(
        estimator=FakeEstimator(error=RuntimeError("landmarker crashed"), require_load=True),
        image_source=FakeImageSource(),
        config=config,
        status_sink=RecordingStatusSink(),
    )
    set_match_service(failing)

    async def scenario():
        await failing.startup()
        with pytest.raises(RuntimeError):
            await failing.reference_task
    asyncio.run(scenario())

    try:
        with client.websocket_connect("/api/match/ws/stream/c1") as ws:
            assert ws.receive_json()["type"] == "CONNECTED"
            ws.send_bytes(encoded_frame())
            error = ws.receive_json()
    finally:
        set_match_service(None)

    assert error["type"] == "ERROR"
    assert error["error_code"] == "PROCESSING_ERROR"
    assert "landmarker crashed" in error["error"]
