"""
Pytest configuration and shared fixtures for the MeLink test suite.
"""

import os

os.environ.setdefault("ENVIRONMENT", "testing")

import pytest
import tempfile
import shutil
import threading
import cv2
import numpy as np
from pathlib import Path
from typing import List, Optional
from unittest.mock import Mock

from models.video_metadata import VideoResource
from processing.video_decoder import VideoDecoder, VideoDecoderError
from processing.thumbnail_extractor import ThumbnailExtractorConfig


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir, ignore_errors=True)


def solid_frame(rgb, width: int = 320, height: int = 240) -> np.ndarray:
    """Create a uniform BGR frame from an RGB triple."""
    frame = np.zeros((height, width, 3), dtype=np.uint8)
    frame[:] = (rgb[2], rgb[1], rgb[0])
    return frame


@pytest.fixture
def black_frame():
    return solid_frame((0, 0, 0))


@pytest.fixture
def colorful_frame():
    """Uniform RGB(200, 100, 50) frame; scores above the early-exit threshold."""
    return solid_frame((200, 100, 50))


@pytest.fixture
def detailed_frame():
    """Frame with shapes and text, like a slide in a screen recording."""
    frame = solid_frame((240, 240, 235), 640, 360)
    cv2.rectangle(frame, (20, 20), (280, 120), (180, 90, 30), -1)
    cv2.circle(frame, (150, 220), 50, (40, 160, 220), -1)
    cv2.putText(frame, "Q3 roadmap", (30, 290), cv2.FONT_HERSHEY_SIMPLEX, 1.0, (20, 20, 20), 2)
    return frame


@pytest.fixture
def fast_config():
    """Extractor configuration without settle delay and with a short budget."""
    return ThumbnailExtractorConfig(timeout_seconds=5.0, settle_delay_seconds=0.0)


class FakeVideoDecoder(VideoDecoder):
    """
    Scripted decoder for extractor tests.

    Frames are returned in the order given, one per read_frame call. Setting
    ``block_open`` makes open() wait until release() is called, like a stalled
    network source.
    """

    def __init__(self, source: str = "fake.mp4", duration: float = 30.0,
                 frames: Optional[List[Optional[np.ndarray]]] = None,
                 width: int = 320, height: int = 240,
                 fail_open: bool = False, block_open: bool = False):
        super().__init__(source)
        self.duration = duration
        self.frames = list(frames or [])
        self.width = width
        self.height = height
        self.fail_open = fail_open
        self.block_open = block_open
        self.seeks: List[float] = []
        self.reads = 0
        self.release_calls = 0
        self._released = threading.Event()

    @property
    def released(self) -> bool:
        return self._released.is_set()

    def open(self) -> VideoResource:
        if self.block_open:
            self._released.wait(timeout=10)
        if self.fail_open:
            raise VideoDecoderError(f"Could not open video source: {self.source}")
        self.metadata = VideoResource(duration=self.duration, width=self.width,
                                      height=self.height, fps=30.0)
        return self.metadata

    def seek(self, timestamp: float) -> bool:
        self.seeks.append(timestamp)
        return True

    def read_frame(self) -> Optional[np.ndarray]:
        self.reads += 1
        if not self.frames:
            return None
        return self.frames.pop(0)

    def release(self) -> None:
        self.release_calls += 1
        self._released.set()


@pytest.fixture
def fake_decoder_factory():
    """Return a factory that records the decoders it builds."""
    def make(**kwargs):
        created: List[FakeVideoDecoder] = []

        def factory(source: str) -> FakeVideoDecoder:
            decoder = FakeVideoDecoder(source, **kwargs)
            created.append(decoder)
            return decoder

        factory.created = created
        return factory
    return make


def write_test_video(output_path: Path, colors, seconds_per_color: float = 1.0,
                     fps: int = 10, size=(320, 240)) -> Path:
    """Write an mp4 made of solid-color segments (RGB triples) with a moving box."""
    fourcc = cv2.VideoWriter_fourcc(*'mp4v')
    writer = cv2.VideoWriter(str(output_path), fourcc, fps, size)

    frames_per_color = int(seconds_per_color * fps)
    for index, rgb in enumerate(colors):
        for i in range(frames_per_color):
            frame = solid_frame(rgb, size[0], size[1])
            if any(rgb):
                x_pos = 10 + (i * 7) % (size[0] - 60)
                cv2.rectangle(frame, (x_pos, 40), (x_pos + 50, 90), (255, 255, 255), -1)
            writer.write(frame)

    writer.release()
    return output_path


@pytest.fixture
def sample_video_file(temp_dir):
    """Four second video: one black second, then colorful content."""
    return write_test_video(
        temp_dir / "meeting.mp4",
        [(0, 0, 0), (200, 100, 50), (60, 140, 200), (220, 220, 90)]
    )


@pytest.fixture
def corrupted_video_file(temp_dir):
    """Create a corrupted video file for error testing."""
    video_path = temp_dir / "corrupted_video.mp4"
    with open(video_path, 'wb') as f:
        f.write(b"This is not a valid video file content")
    return video_path


@pytest.fixture
def mock_redis():
    """In-memory stand-in for a redis client with the calls MeetingStore makes."""
    data = {}
    client = Mock()
    client.ping.return_value = True
    client.get.side_effect = lambda key: data.get(key)

    def set_(key, value):
        data[key] = value
        return True

    def setex(key, ttl, value):
        data[key] = value
        return True

    def delete(*keys):
        return sum(1 for key in keys if data.pop(key, None) is not None)

    def keys(pattern):
        prefix = pattern.rstrip('*')
        return [key for key in data if key.startswith(prefix)]

    client.set.side_effect = set_
    client.setex.side_effect = setex
    client.delete.side_effect = delete
    client.keys.side_effect = keys

    def pipeline():
        pipe = Mock()
        queued = []
        pipe.set.side_effect = lambda key, value: queued.append(lambda: set_(key, value))
        pipe.delete.side_effect = lambda *k: queued.append(lambda: delete(*k))
        pipe.execute.side_effect = lambda: [call() for call in queued]
        return pipe

    client.pipeline.side_effect = pipeline
    client.data = data
    return client


# Pytest hooks for test organization
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests for complete workflows")
    config.addinivalue_line("markers", "requires_opencv: Tests that encode or decode real video files")


def pytest_collection_modifyitems(config, items):
    """Add markers based on test file names."""
    for item in items:
        if "test_api" in item.nodeid:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
