"""Unit tests for the OpenCV video decoder."""

import threading
from unittest.mock import MagicMock, patch

import cv2
import pytest

from processing.video_decoder import OpenCVVideoDecoder, VideoDecoderError


@pytest.mark.requires_opencv
class TestOpenCVVideoDecoder:
    """Test cases for OpenCVVideoDecoder against real files."""

    def test_open_reads_metadata(self, sample_video_file):
        decoder = OpenCVVideoDecoder(str(sample_video_file))
        try:
            resource = decoder.open()
            assert resource.width == 320
            assert resource.height == 240
            assert resource.duration == pytest.approx(4.0, abs=0.2)
            assert decoder.metadata is resource
        finally:
            decoder.release()

    def test_seek_and_read(self, sample_video_file):
        decoder = OpenCVVideoDecoder(str(sample_video_file))
        try:
            decoder.open()
            assert decoder.seek(2.5)
            frame = decoder.read_frame()
            assert frame is not None
            assert frame.shape == (240, 320, 3)
        finally:
            decoder.release()

    def test_open_missing_file(self, temp_dir):
        decoder = OpenCVVideoDecoder(str(temp_dir / "missing.mp4"))
        with pytest.raises(VideoDecoderError, match="Could not open"):
            decoder.open()

    def test_release_is_idempotent(self, sample_video_file):
        decoder = OpenCVVideoDecoder(str(sample_video_file))
        decoder.open()

        decoder.release()
        decoder.release()

        assert decoder.released
        assert decoder.seek(1.0) is False
        assert decoder.read_frame() is None

    def test_open_after_release(self, sample_video_file):
        decoder = OpenCVVideoDecoder(str(sample_video_file))
        decoder.release()
        with pytest.raises(VideoDecoderError, match="already been released"):
            decoder.open()


class TestDecoderRelease:
    """Release behaviour with a mocked capture."""

    @pytest.fixture
    def mock_capture(self):
        capture = MagicMock()
        capture.isOpened.return_value = True
        capture.get.side_effect = lambda prop: {
            cv2.CAP_PROP_FPS: 25.0,
            cv2.CAP_PROP_FRAME_COUNT: 250.0,
            cv2.CAP_PROP_FRAME_WIDTH: 1280.0,
            cv2.CAP_PROP_FRAME_HEIGHT: 720.0,
        }.get(prop, 0.0)
        return capture

    def test_remote_source_uses_ffmpeg_with_timeouts(self, mock_capture):
        with patch('cv2.VideoCapture', return_value=mock_capture) as capture_class:
            decoder = OpenCVVideoDecoder("https://cdn.example.com/meeting.mp4", io_timeout_ms=5000)
            resource = decoder.open()

        args = capture_class.call_args[0]
        assert args[0] == "https://cdn.example.com/meeting.mp4"
        assert args[1] == cv2.CAP_FFMPEG
        assert list(args[2]) == [
            cv2.CAP_PROP_OPEN_TIMEOUT_MSEC, 5000, cv2.CAP_PROP_READ_TIMEOUT_MSEC, 5000
        ]
        assert resource.duration == 10.0
        assert resource.resolution == (1280, 720)

    def test_release_does_not_block_during_decode(self, mock_capture):
        read_started = threading.Event()
        finish_read = threading.Event()

        def slow_read():
            read_started.set()
            finish_read.wait(timeout=5)
            return True, MagicMock(size=1)

        mock_capture.read.side_effect = slow_read

        with patch('cv2.VideoCapture', return_value=mock_capture):
            decoder = OpenCVVideoDecoder("meeting.mp4")
            decoder.open()

        reader = threading.Thread(target=decoder.read_frame)
        reader.start()
        assert read_started.wait(timeout=5)

        # The in-flight read holds the capture; release only marks it closed
        decoder.release()
        assert decoder.released
        mock_capture.release.assert_not_called()

        finish_read.set()
        reader.join(timeout=5)
        mock_capture.release.assert_called_once()

    def test_unopened_capture(self, mock_capture):
        mock_capture.isOpened.return_value = False
        with patch('cv2.VideoCapture', return_value=mock_capture):
            with pytest.raises(VideoDecoderError):
                OpenCVVideoDecoder("broken.mp4").open()
        mock_capture.release.assert_called_once()
