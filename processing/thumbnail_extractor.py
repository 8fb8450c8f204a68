"""
Thumbnail extraction for uploaded meeting videos.

Many recordings open on a black or fade-in frame, so the first frame is a poor
poster image. The extractor samples a handful of timestamps spread across the
video, scores every decoded frame for visual information (brightness, local
variation, edge density, color richness) and returns the best one. A frame
that is clearly good ends the search early.

The whole procedure, metadata load included, races a wall-clock budget. When
the budget runs out the best frame captured so far is returned; with nothing
captured the call fails with ExtractionTimeoutError. Callers are expected to
treat every ThumbnailExtractionError as non-fatal and show a placeholder.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from models.captured_frame import CapturedFrame
from models.video_metadata import VideoResource
from processing.video_decoder import OpenCVVideoDecoder, VideoDecoder, VideoDecoderError

logger = logging.getLogger(__name__)


@dataclass
class ThumbnailExtractorConfig:
    """Tunable parameters for thumbnail extraction and frame scoring."""

    # Extraction settings
    timeout_seconds: float = 30.0
    settle_delay_seconds: float = 0.3  # Pause between seek and decode
    jpeg_quality: int = 75
    early_exit_score: float = 80.0
    fallback_size: Tuple[int, int] = (640, 360)  # (width, height)

    # Candidate generation
    edge_margin_seconds: float = 0.5
    min_candidate_spacing: float = 0.5

    # Scoring region and sampling
    sample_region: int = 300  # Top-left square, in pixels
    sample_stride: int = 4  # Every Nth pixel

    # Black/invalid classification
    bright_pixel_threshold: int = 25
    min_peak_brightness: int = 30
    min_bright_ratio: float = 0.05
    color_variation_threshold: int = 15
    flat_peak_brightness: int = 50

    # Composite score
    edge_threshold: int = 20
    min_average_brightness: float = 30.0
    max_average_brightness: float = 240.0


class ThumbnailExtractionError(Exception):
    """Base class for thumbnail extraction failures."""
    pass


class LoadError(ThumbnailExtractionError):
    """Raised when the video source cannot be opened or decoded."""
    pass


class ExtractionTimeoutError(ThumbnailExtractionError, TimeoutError):
    """Raised when the time budget expires before any frame was captured."""
    pass


class NoFrameError(ThumbnailExtractionError):
    """Raised when every candidate was tried and no frame could be captured."""
    pass


def _tier_points(duration: float) -> List[float]:
    d = duration
    if d <= 3:
        return [0.5, d * 0.3, d * 0.6, min(d * 0.9, d - 0.5)]
    if d <= 10:
        return [1.0, d * 0.2, d * 0.4, d * 0.6, d * 0.8, d - 1.0]
    if d <= 60:
        return [2.0, d * 0.15, d * 0.3, d * 0.5, d * 0.7, d * 0.85, d - 2.0]
    return [5.0, 15.0, d * 0.2, d * 0.4, d * 0.6, d * 0.8, min(d * 0.95, d - 5.0)]


def generate_candidate_timestamps(duration: float,
                                  config: Optional[ThumbnailExtractorConfig] = None) -> List[float]:
    """
    Generate the ordered seek points for a video of the given duration.

    Points are clamped to [margin, duration - margin], sorted, and thinned so
    consecutive points are at least ``min_candidate_spacing`` apart. Videos of
    three seconds or less only drop exact duplicates, since their usable window
    cannot hold four points at full spacing.

    Args:
        duration: Video duration in seconds
        config: Extractor configuration

    Returns:
        Strictly increasing list of timestamps in seconds
    """
    config = config or ThumbnailExtractorConfig()

    if not math.isfinite(duration) or duration <= 0:
        return [0.0]

    margin = config.edge_margin_seconds
    low = min(margin, duration / 2)
    high = max(low, duration - margin)

    points = sorted(min(max(point, low), high) for point in _tier_points(duration))

    min_gap = config.min_candidate_spacing if duration > 3 else 0.0
    candidates: List[float] = []
    for point in points:
        point = round(point, 3)
        if not candidates:
            candidates.append(point)
        elif point > candidates[-1] and point - candidates[-1] >= min_gap - 1e-9:
            candidates.append(point)
    return candidates


def _sample_pixels(frame: np.ndarray, config: ThumbnailExtractorConfig) -> np.ndarray:
    """Return sampled RGB values (N x 3, int32) from the top-left scoring region."""
    region = frame[:config.sample_region, :config.sample_region]
    if region.ndim == 2:
        rgba = cv2.cvtColor(region, cv2.COLOR_GRAY2RGBA)
    elif region.shape[2] == 4:
        rgba = cv2.cvtColor(region, cv2.COLOR_BGRA2RGBA)
    else:
        rgba = cv2.cvtColor(region, cv2.COLOR_BGR2RGBA)

    # Row-major RGBA buffer, one sample every ``sample_stride`` pixels
    pixels = rgba.reshape(-1, 4)[::config.sample_stride]
    return pixels[:, :3].astype(np.int32)


def _channel_spread(samples: np.ndarray) -> np.ndarray:
    """Per-pixel maximum difference between any two channels."""
    r, g, b = samples[:, 0], samples[:, 1], samples[:, 2]
    return np.maximum.reduce([np.abs(r - g), np.abs(g - b), np.abs(r - b)])


def is_black_frame(frame: np.ndarray, config: Optional[ThumbnailExtractorConfig] = None) -> bool:
    """Classify a BGR frame as black/uninformative."""
    config = config or ThumbnailExtractorConfig()
    samples = _sample_pixels(frame, config)
    return _is_black(samples, config)


def _is_black(samples: np.ndarray, config: ThumbnailExtractorConfig) -> bool:
    if samples.size == 0:
        return True

    peak = samples.max(axis=1)
    global_peak = int(peak.max())
    bright_ratio = float(np.count_nonzero(peak > config.bright_pixel_threshold)) / len(peak)
    has_color_variation = bool((_channel_spread(samples) > config.color_variation_threshold).any())

    return (
        global_peak < config.min_peak_brightness
        or bright_ratio < config.min_bright_ratio
        or (not has_color_variation and global_peak < config.flat_peak_brightness)
    )


def score_frame(frame: np.ndarray, config: Optional[ThumbnailExtractorConfig] = None) -> float:
    """
    Score a decoded BGR frame for how informative it is as a thumbnail.

    Black/invalid frames score exactly 0. Other frames add up to 150 points for
    average brightness, 100 for local brightness variation, 100 for edge
    density and 50 for color richness.

    Args:
        frame: Frame as a numpy array (BGR, BGRA or grayscale)
        config: Scoring configuration

    Returns:
        Non-negative score
    """
    config = config or ThumbnailExtractorConfig()
    samples = _sample_pixels(frame, config)

    if _is_black(samples, config):
        return 0.0

    brightness = samples.sum(axis=1) / 3.0
    score = 0.0

    avg_brightness = float(brightness.mean())
    if config.min_average_brightness < avg_brightness < config.max_average_brightness:
        score += min(150.0, avg_brightness / 1.6)

    if len(brightness) > 1:
        steps = np.abs(np.diff(brightness))
        score += min(100.0, float(steps.mean()) * 2.0)
        edge_ratio = float(np.count_nonzero(steps > config.edge_threshold)) / len(steps)
        score += min(100.0, edge_ratio * 1000.0)

    score += min(50.0, float(_channel_spread(samples).mean()) * 2.0)
    return score


def select_best_frame(frames: Sequence[CapturedFrame]) -> Optional[CapturedFrame]:
    """
    Pick the best captured frame.

    Frames scoring above zero win over black ones; among equals the earliest
    capture is kept. Returns None for an empty sequence.
    """
    if not frames:
        return None
    usable = [frame for frame in frames if frame.score > 0]
    return max(usable or frames, key=lambda frame: frame.score)


class _ExtractionSession:
    """Per-call result cell. Settles exactly once; later writes are ignored."""

    def __init__(self):
        self.frames: List[CapturedFrame] = []
        self.result: Optional[CapturedFrame] = None
        self.settled = False

    def record(self, frame: CapturedFrame) -> bool:
        if self.settled:
            return False
        self.frames.append(frame)
        return True

    def settle(self, result: Optional[CapturedFrame] = None) -> bool:
        if self.settled:
            return False
        self.settled = True
        self.result = result
        return True


class ThumbnailExtractor:
    """
    Extracts a representative still frame from a video.

    Each call owns one decoder instance, drives it strictly sequentially on
    worker threads and releases it on every exit path.
    """

    def __init__(self, config: Optional[ThumbnailExtractorConfig] = None,
                 decoder_factory: Optional[Callable[[str], VideoDecoder]] = None):
        """
        Initialize the extractor.

        Args:
            config: Extraction configuration
            decoder_factory: Builds a decoder for a video source
        """
        self.config = config or ThumbnailExtractorConfig()
        self.decoder_factory = decoder_factory or OpenCVVideoDecoder

    async def extract(self, video_url: str) -> CapturedFrame:
        """
        Extract the best thumbnail frame from a video.

        Args:
            video_url: Local path or URL of the video

        Returns:
            The selected CapturedFrame

        Raises:
            LoadError: If the video cannot be opened
            NoFrameError: If no candidate produced a frame
            ExtractionTimeoutError: If the budget expired with nothing captured
        """
        start_time = time.monotonic()
        session = _ExtractionSession()
        decoder = self.decoder_factory(video_url)
        task = asyncio.ensure_future(self._capture_loop(decoder, session))

        try:
            done, _ = await asyncio.wait({task}, timeout=self.config.timeout_seconds)

            if task in done:
                frame = task.result()
                session.settle(frame)
                logger.info(
                    f"Thumbnail for {video_url} taken at {frame.timestamp:.2f}s "
                    f"(score {frame.score:.1f}, {len(session.frames)} frames, "
                    f"{time.monotonic() - start_time:.2f}s)"
                )
                return frame

            best = select_best_frame(session.frames)
            session.settle(best)
            if best is None:
                raise ExtractionTimeoutError(
                    f"No frame captured from {video_url} within {self.config.timeout_seconds:.0f} seconds"
                )

            logger.warning(
                f"Thumbnail extraction for {video_url} timed out; using best of "
                f"{len(session.frames)} captured frames (score {best.score:.1f})"
            )
            return best

        finally:
            session.settle()
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
            decoder.release()

    async def _capture_loop(self, decoder: VideoDecoder,
                            session: _ExtractionSession) -> Optional[CapturedFrame]:
        loop = asyncio.get_running_loop()

        try:
            resource = await loop.run_in_executor(None, decoder.open)
        except VideoDecoderError as e:
            raise LoadError(str(e)) from e

        candidates = generate_candidate_timestamps(resource.duration, self.config)
        logger.debug(f"Sampling {len(candidates)} candidate timestamps: {candidates}")

        for timestamp in candidates:
            if not await loop.run_in_executor(None, decoder.seek, timestamp):
                logger.debug(f"Seek to {timestamp:.2f}s failed, skipping candidate")
                continue
            if self.config.settle_delay_seconds > 0:
                await asyncio.sleep(self.config.settle_delay_seconds)

            raw_frame = await loop.run_in_executor(None, decoder.read_frame)
            if raw_frame is None:
                logger.debug(f"No frame decoded at {timestamp:.2f}s")
                continue

            frame = await loop.run_in_executor(
                None, self._build_frame, timestamp, raw_frame, resource
            )
            if frame is None or not session.record(frame):
                continue

            logger.debug(f"Frame at {timestamp:.2f}s scored {frame.score:.1f}")
            if frame.score > self.config.early_exit_score:
                return frame

        best = select_best_frame(session.frames)
        if best is None:
            raise NoFrameError(f"No frame could be decoded from {decoder.source}")
        return best

    def _build_frame(self, timestamp: float, raw_frame: np.ndarray,
                     resource: VideoResource) -> Optional[CapturedFrame]:
        if not resource.has_dimensions:
            raw_frame = cv2.resize(raw_frame, self.config.fallback_size)

        ok, buffer = cv2.imencode(
            '.jpg', raw_frame, [cv2.IMWRITE_JPEG_QUALITY, self.config.jpeg_quality]
        )
        if not ok:
            logger.warning(f"JPEG encoding failed for frame at {timestamp:.2f}s")
            return None

        return CapturedFrame(
            timestamp=timestamp,
            encoded_image=buffer.tobytes(),
            score=score_frame(raw_frame, self.config)
        )


async def extract_thumbnail(video_url: str,
                            config: Optional[ThumbnailExtractorConfig] = None) -> str:
    """Extract a thumbnail and return it as a JPEG data URI."""
    frame = await ThumbnailExtractor(config).extract(video_url)
    return frame.data_uri
