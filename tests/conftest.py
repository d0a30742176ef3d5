"""Shared pytest fixtures for the image watcher test suite."""

from datetime import datetime, timezone

import cv2
import numpy as np
import pytest

from image_watcher.capture import CapturedFrame, TILE_HEIGHT, TILE_WIDTH
from image_watcher.config import Config
from image_watcher.metrics import MetricsCollector

# Overlay text stays inside this many rows at the top of the composite
OVERLAY_BAND = 40


def make_tile(color, width=TILE_WIDTH, height=TILE_HEIGHT) -> np.ndarray:
    """Solid BGR tile."""
    tile = np.zeros((height, width, 3), dtype=np.uint8)
    tile[:, :] = color
    return tile


def jpeg_bytes(image: np.ndarray) -> bytes:
    ok, buffer = cv2.imencode('.jpg', image)
    assert ok
    return buffer.tobytes()


def frames_for(tiles) -> list:
    """CapturedFrames from a list of tiles; None marks a failed slot."""
    return [
        CapturedFrame(slot=i, url=f"http://cam{i + 1}/snapshot.jpg", image=tile)
        for i, tile in enumerate(tiles)
    ]


@pytest.fixture
def config(tmp_path) -> Config:
    """Valid local-storage configuration writing into a temp directory."""
    cfg = Config(
        camera_urls=["http://cam1/snapshot.jpg"],
        storage_path=str(tmp_path / "frames"),
        font_file=str(tmp_path / "missing-font.ttf"),
        max_width=5000,
    )
    cfg.validate()
    return cfg


@pytest.fixture
def remote_config(tmp_path) -> Config:
    cfg = Config(
        camera_urls=["http://cam1/snapshot.jpg"],
        storage_mode="remote",
        seafile_url="https://seafile.example.org",
        seafile_api_token="token",
        seafile_library_id="lib-1",
        seafile_directory="/cams",
        seafile_encryption_key="secret",
        font_file=str(tmp_path / "missing-font.ttf"),
    )
    cfg.validate()
    return cfg


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def timestamp() -> datetime:
    return datetime(2026, 10, 18, 14, 3, 5, tzinfo=timezone.utc)
