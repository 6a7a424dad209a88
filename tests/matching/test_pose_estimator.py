"""Tests for MediaPipe estimator loading."""

import pytest

from matching_service.models import MediaPipePoseEstimator

from conftest import make_frame


def test_prepare_before_load_is_rejected(tmp_path):
    estimator = MediaPipePoseEstimator(str(tmp_path / "pose.task"))
    with pytest.raises(RuntimeError):
        estimator._prepare(make_frame())


def test_missing_model_file_fails_load(tmp_path):
    estimator = MediaPipePoseEstimator(str(tmp_path / "missing.task"))
    with pytest.raises(FileNotFoundError):
        estimator.load()


def test_load_warms_landmarker_under_lock_before_marking_ready(tmp_path, monkeypatch):
    model = tmp_path / "pose.task"
    model.write_bytes(b"")
    estimator = MediaPipePoseEstimator(str(model))
    seen = []

    def warm(num_poses, threshold):
        seen.append((num_poses, estimator._lock.locked(), estimator._mp is None))
        return object()

    monkeypatch.setattr(estimator, "_landmarker", warm)
    estimator.load()

    assert seen == [(1, True, True)]
    assert estimator._mp is not None
