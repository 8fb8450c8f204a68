"""
Video decoding capability used by the thumbnail extractor.

The extractor drives a decoder strictly sequentially: ``open`` once, then
``seek``/``read_frame`` pairs, then ``release``. Every call is blocking and is
expected to run on a worker thread, so ``release`` must be safe to call from
the event loop while a decode is still in flight on another thread.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

import cv2
import numpy as np

from models.video_metadata import VideoResource

logger = logging.getLogger(__name__)

REMOTE_PREFIXES = ("http://", "https://", "rtmp://", "rtsp://")


class VideoDecoderError(Exception):
    """Raised when a video source cannot be opened or decoded."""
    pass


class VideoDecoder(ABC):
    """A single-use decoder bound to one video source."""

    def __init__(self, source: str):
        self.source = source
        self.metadata: Optional[VideoResource] = None

    @abstractmethod
    def open(self) -> VideoResource:
        """Load metadata only. Raises VideoDecoderError if the source is unreadable."""

    @abstractmethod
    def seek(self, timestamp: float) -> bool:
        """Move the read position to ``timestamp`` seconds."""

    @abstractmethod
    def read_frame(self) -> Optional[np.ndarray]:
        """Decode the frame at the current position, or None if nothing could be decoded."""

    @abstractmethod
    def release(self) -> None:
        """Free decoder resources. Must not block and must be idempotent."""

    @property
    @abstractmethod
    def released(self) -> bool:
        """Whether release() has been requested."""


class OpenCVVideoDecoder(VideoDecoder):
    """
    Decoder backed by ``cv2.VideoCapture``.

    Remote sources go through the FFmpeg backend with an open/read timeout so a
    stalled server cannot pin a worker thread forever.
    """

    def __init__(self, source: str, io_timeout_ms: int = 30000):
        super().__init__(source)
        self.io_timeout_ms = io_timeout_ms
        self._capture: Optional[cv2.VideoCapture] = None
        self._lock = threading.Lock()
        self._closed = False

    @property
    def released(self) -> bool:
        return self._closed

    def _create_capture(self) -> cv2.VideoCapture:
        if self.source.lower().startswith(REMOTE_PREFIXES):
            params = [
                cv2.CAP_PROP_OPEN_TIMEOUT_MSEC, self.io_timeout_ms,
                cv2.CAP_PROP_READ_TIMEOUT_MSEC, self.io_timeout_ms,
            ]
            return cv2.VideoCapture(self.source, cv2.CAP_FFMPEG, params)
        return cv2.VideoCapture(self.source)

    def open(self) -> VideoResource:
        try:
            with self._lock:
                if self._closed:
                    raise VideoDecoderError("Decoder has already been released")

                capture = self._create_capture()
                if not capture.isOpened():
                    capture.release()
                    raise VideoDecoderError(f"Could not open video source: {self.source}")

                fps = capture.get(cv2.CAP_PROP_FPS) or 0.0
                frame_count = capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0.0
                width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
                height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
                duration = frame_count / fps if fps > 0 and frame_count > 0 else 0.0

                self._capture = capture
                self.metadata = VideoResource(
                    duration=duration,
                    width=width,
                    height=height,
                    fps=fps
                )

            logger.info(f"Video metadata: {width}x{height}, {fps:.1f}fps, {duration:.1f}s")
            return self.metadata
        except cv2.error as e:
            raise VideoDecoderError(f"Failed to read video metadata: {e}") from e
        finally:
            self._release_if_closed()

    def seek(self, timestamp: float) -> bool:
        try:
            with self._lock:
                if self._closed or self._capture is None:
                    return False
                return bool(self._capture.set(cv2.CAP_PROP_POS_MSEC, timestamp * 1000.0))
        except cv2.error as e:
            logger.warning(f"Seek to {timestamp:.2f}s failed: {e}")
            return False
        finally:
            self._release_if_closed()

    def read_frame(self) -> Optional[np.ndarray]:
        try:
            with self._lock:
                if self._closed or self._capture is None:
                    return None
                ok, frame = self._capture.read()
                if not ok or frame is None or frame.size == 0:
                    return None
                return frame
        except cv2.error as e:
            logger.warning(f"Frame decode failed: {e}")
            return None
        finally:
            self._release_if_closed()

    def release(self) -> None:
        self._closed = True
        self._try_release_capture()

    def _release_if_closed(self) -> None:
        # An in-flight call finishing after release() owns the cleanup
        if self._closed:
            self._try_release_capture()

    def _try_release_capture(self) -> None:
        if not self._lock.acquire(blocking=False):
            return
        try:
            if self._capture is not None:
                self._capture.release()
                self._capture = None
                logger.debug(f"Released decoder for {self.source}")
        finally:
            self._lock.release()
