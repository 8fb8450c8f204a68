"""
Streamed download of shared meetings.

Fetches a meeting record from a MeLink server, then streams the video to disk
while feeding a TransferProgressTracker, and saves the transcription and
summary as text files next to it.
"""

import logging
import re
import threading
import uuid
from pathlib import Path
from typing import Callable, Dict, Optional
from urllib.parse import urljoin

import httpx

from models.meeting import MeetingRecord
from processing.progress_service import TransferProgressTracker, progress_service

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]+')

DEFAULT_VIDEO_NAME = "meeting-recording"
TEXT_LOAD_ERROR = "Error: could not load content (status: {status})"
TEXT_FETCH_ERROR = "Error: could not fetch content."


class DownloadError(Exception):
    """Raised when a download fails."""
    pass


class DownloadCancelledError(DownloadError):
    """Raised when a download is cancelled by the caller."""
    pass


class MeetingNotFoundError(DownloadError):
    """Raised when the server has no meeting under the requested slug."""
    pass


def safe_filename(name: str, default: str = DEFAULT_VIDEO_NAME) -> str:
    """Strip path separators and control characters from a display name."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub('-', name).strip(' .-')
    return cleaned[:150] or default


class MeetingDownloader:
    """HTTP client for downloading a shared meeting and its documents."""

    def __init__(self, base_url: str, client: Optional[httpx.Client] = None,
                 timeout: float = 30.0, chunk_size: int = 64 * 1024):
        """
        Initialize the downloader.

        Args:
            base_url: Server root, e.g. ``http://localhost:8000``
            client: Optional preconfigured httpx client
            timeout: Per-request timeout in seconds
            chunk_size: Streaming chunk size in bytes
        """
        self.base_url = base_url.rstrip('/') + '/'
        self.chunk_size = chunk_size
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    def __enter__(self) -> 'MeetingDownloader':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def _absolute(self, url: str) -> str:
        return urljoin(self.base_url, url)

    def fetch_meeting(self, slug: str) -> MeetingRecord:
        """
        Fetch the record of a shared meeting.

        Raises:
            MeetingNotFoundError: If the server returns 404
            DownloadError: For other HTTP or transport failures
        """
        try:
            response = self.client.get(self._absolute(f"api/data/{slug}"))
        except httpx.HTTPError as e:
            raise DownloadError(f"Failed to reach server: {e}") from e

        if response.status_code == 404:
            raise MeetingNotFoundError(f"Meeting not found: {slug}")
        if response.is_error:
            raise DownloadError(f"HTTP error {response.status_code} while loading meeting {slug}")

        try:
            return MeetingRecord.from_dict(response.json(), slug=slug)
        except (ValueError, KeyError) as e:
            raise DownloadError(f"Invalid meeting data for {slug}: {e}") from e

    def fetch_text(self, url: str) -> str:
        """Fetch a text document; failures come back as a readable message instead of raising."""
        try:
            response = self.client.get(self._absolute(url))
        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch text from {url}: {e}")
            return TEXT_FETCH_ERROR

        if response.is_error:
            logger.warning(f"Failed to fetch text from {url}: HTTP {response.status_code}")
            return TEXT_LOAD_ERROR.format(status=response.status_code)
        return response.text

    def download_video(self, url: str, output_path: Path,
                       progress_callback: Optional[Callable[[TransferProgressTracker], None]] = None,
                       cancel_event: Optional[threading.Event] = None) -> Path:
        """
        Stream a video to disk.

        Args:
            url: Video URL, absolute or relative to the server root
            output_path: Destination file
            progress_callback: Called with the tracker after every chunk
            cancel_event: Set from another thread to abort the download

        Returns:
            Path of the downloaded file

        Raises:
            DownloadCancelledError: If ``cancel_event`` was set
            DownloadError: For HTTP, transport or filesystem failures
        """
        output_path = Path(output_path)
        partial_path = output_path.with_name(output_path.name + '.part')
        operation_id = f"download-{uuid.uuid4().hex[:8]}"
        tracker: Optional[TransferProgressTracker] = None

        try:
            with self.client.stream("GET", self._absolute(url)) as response:
                if response.is_error:
                    raise DownloadError(f"HTTP error {response.status_code} while downloading {url}")

                total = int(response.headers.get('content-length') or 0)
                tracker = progress_service.create_tracker(operation_id, total_bytes=total)
                tracker.start()

                with open(partial_path, 'wb') as out:
                    for chunk in response.iter_bytes(self.chunk_size):
                        if cancel_event is not None and cancel_event.is_set():
                            raise DownloadCancelledError(f"Download of {url} was cancelled")
                        out.write(chunk)
                        tracker.update(len(chunk))
                        if progress_callback:
                            progress_callback(tracker)

            partial_path.replace(output_path)
            tracker.mark_completed()
            if progress_callback:
                progress_callback(tracker)
            return output_path

        except DownloadCancelledError:
            if tracker:
                tracker.mark_cancelled()
            raise
        except DownloadError as e:
            if tracker:
                tracker.mark_failed(str(e))
            raise
        except (httpx.HTTPError, OSError) as e:
            if tracker:
                tracker.mark_failed(str(e))
            raise DownloadError(f"Failed to download {url}: {e}") from e
        finally:
            if partial_path.exists():
                partial_path.unlink()
            progress_service.remove_tracker(operation_id)

    def download_meeting(self, slug: str, output_dir: Path,
                         progress_callback: Optional[Callable[[TransferProgressTracker], None]] = None,
                         cancel_event: Optional[threading.Event] = None) -> Dict[str, Path]:
        """
        Download a meeting's video, transcription and summary.

        Returns:
            Mapping of ``video``, ``transcription`` and ``summary`` to saved paths
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        record = self.fetch_meeting(slug)
        base_name = safe_filename(record.title)

        video_path = self.download_video(
            record.video_url,
            output_dir / f"{base_name}.mp4",
            progress_callback=progress_callback,
            cancel_event=cancel_event
        )

        transcription_path = output_dir / f"{base_name}-transcription.txt"
        transcription_path.write_text(self.fetch_text(record.transcription_url), encoding='utf-8')

        summary_path = output_dir / f"{base_name}-summary.txt"
        summary_path.write_text(self.fetch_text(record.summary_url), encoding='utf-8')

        logger.info(f"Downloaded meeting {slug} to {output_dir}")
        return {
            'video': video_path,
            'transcription': transcription_path,
            'summary': summary_path
        }
