"""Unit tests for MeetingDownloader using httpx mock transports."""

import threading

import httpx
import pytest

from processing.downloader import (
    MeetingDownloader,
    DownloadError,
    DownloadCancelledError,
    MeetingNotFoundError,
    safe_filename,
)
from processing.progress_service import ProgressStatus, progress_service

BASE_URL = "http://melink.test"
VIDEO_BYTES = b"\x00\x00\x00\x18ftypmp42" + b"v" * 200_000

MEETING = {
    "title": "Weekly Sync",
    "videoUrl": "/files/weekly-sync-1a2b3c4d.mp4",
    "transcriptionUrl": "/files/weekly-sync-transcription-5e6f7a8b.txt",
    "summaryUrl": "https://cdn.example.com/weekly-sync-summary.txt",
    "createdAt": "2024-05-01T09:30:00+00:00",
}


def make_handler(overrides=None):
    """
    Build a mock server answering the MeLink routes.

    Route values are response factories, or exceptions to raise.
    """
    routes = {
        f"{BASE_URL}/api/data/weekly-sync": lambda: httpx.Response(200, json=MEETING),
        f"{BASE_URL}/api/data/missing": lambda: httpx.Response(404, json={"error": "not_found"}),
        f"{BASE_URL}{MEETING['videoUrl']}": lambda: httpx.Response(200, content=VIDEO_BYTES),
        f"{BASE_URL}{MEETING['transcriptionUrl']}": lambda: httpx.Response(200, text="Alice: hello"),
        MEETING["summaryUrl"]: lambda: httpx.Response(200, text="Agreed on Q3 goals."),
    }
    routes.update(overrides or {})

    def handler(request: httpx.Request) -> httpx.Response:
        route = routes.get(str(request.url))
        if route is None:
            return httpx.Response(404)
        if isinstance(route, Exception):
            raise route
        return route()

    return handler


@pytest.fixture
def downloader():
    client = httpx.Client(transport=httpx.MockTransport(make_handler()))
    with MeetingDownloader(BASE_URL, client=client, chunk_size=16 * 1024) as downloader:
        yield downloader
    client.close()


class TestMeetingDownloader:
    """Test cases for MeetingDownloader."""

    def test_fetch_meeting(self, downloader):
        record = downloader.fetch_meeting("weekly-sync")

        assert record.slug == "weekly-sync"
        assert record.title == "Weekly Sync"
        assert record.video_url == MEETING["videoUrl"]

    def test_fetch_meeting_not_found(self, downloader):
        with pytest.raises(MeetingNotFoundError):
            downloader.fetch_meeting("missing")

    def test_fetch_meeting_server_error(self):
        handler = make_handler({f"{BASE_URL}/api/data/weekly-sync": lambda: httpx.Response(500)})
        client = httpx.Client(transport=httpx.MockTransport(handler))

        with pytest.raises(DownloadError, match="HTTP error 500"):
            MeetingDownloader(BASE_URL, client=client).fetch_meeting("weekly-sync")

    def test_fetch_meeting_invalid_payload(self):
        handler = make_handler({
            f"{BASE_URL}/api/data/weekly-sync": lambda: httpx.Response(200, json={"title": "x"})
        })
        client = httpx.Client(transport=httpx.MockTransport(handler))

        with pytest.raises(DownloadError, match="Invalid meeting data"):
            MeetingDownloader(BASE_URL, client=client).fetch_meeting("weekly-sync")

    def test_fetch_text(self, downloader):
        assert downloader.fetch_text(MEETING["transcriptionUrl"]) == "Alice: hello"
        assert downloader.fetch_text(MEETING["summaryUrl"]) == "Agreed on Q3 goals."

    def test_fetch_text_never_raises(self):
        handler = make_handler({
            f"{BASE_URL}/files/gone.txt": lambda: httpx.Response(410),
            f"{BASE_URL}/files/flaky.txt": httpx.ConnectError("connection refused"),
        })
        client = httpx.Client(transport=httpx.MockTransport(handler))
        downloader = MeetingDownloader(BASE_URL, client=client)

        assert "410" in downloader.fetch_text("/files/gone.txt")
        assert downloader.fetch_text("/files/flaky.txt").startswith("Error")

    def test_download_video_with_progress(self, downloader, temp_dir):
        snapshots = []
        output = temp_dir / "meeting.mp4"

        path = downloader.download_video(
            MEETING["videoUrl"], output,
            progress_callback=lambda tracker: snapshots.append(tracker.get_metrics())
        )

        assert path == output
        assert output.read_bytes() == VIDEO_BYTES
        assert not (temp_dir / "meeting.mp4.part").exists()
        assert snapshots[0].total_bytes == len(VIDEO_BYTES)
        assert snapshots[-1].status == ProgressStatus.COMPLETED
        assert snapshots[-1].progress_percent == 100.0
        percents = [snapshot.progress_percent for snapshot in snapshots]
        assert percents == sorted(percents)

    def test_download_video_removes_tracker(self, downloader, temp_dir):
        downloader.download_video(MEETING["videoUrl"], temp_dir / "meeting.mp4")
        assert not any(op.startswith("download-") for op in progress_service.get_all_progress())

    def test_download_video_http_error(self, downloader, temp_dir):
        with pytest.raises(DownloadError, match="HTTP error 404"):
            downloader.download_video("/files/missing.mp4", temp_dir / "meeting.mp4")

        assert list(temp_dir.iterdir()) == []

    def test_download_video_cancelled(self, downloader, temp_dir):
        cancel = threading.Event()
        seen = []

        def on_progress(tracker):
            seen.append(tracker.get_metrics().status)
            cancel.set()

        with pytest.raises(DownloadCancelledError):
            downloader.download_video(
                MEETING["videoUrl"], temp_dir / "meeting.mp4",
                progress_callback=on_progress, cancel_event=cancel
            )

        assert seen == [ProgressStatus.IN_PROGRESS]
        assert list(temp_dir.iterdir()) == []

    def test_download_video_transport_error(self, temp_dir):
        handler = make_handler({
            f"{BASE_URL}{MEETING['videoUrl']}": httpx.ReadTimeout("stalled")
        })
        client = httpx.Client(transport=httpx.MockTransport(handler))

        with pytest.raises(DownloadError, match="Failed to download"):
            MeetingDownloader(BASE_URL, client=client).download_video(
                MEETING["videoUrl"], temp_dir / "meeting.mp4"
            )
        assert list(temp_dir.iterdir()) == []

    def test_download_meeting(self, downloader, temp_dir):
        paths = downloader.download_meeting("weekly-sync", temp_dir / "out")

        assert paths["video"].name == "Weekly Sync.mp4"
        assert paths["video"].read_bytes() == VIDEO_BYTES
        assert paths["transcription"].read_text(encoding="utf-8") == "Alice: hello"
        assert paths["summary"].read_text(encoding="utf-8") == "Agreed on Q3 goals."

    def test_download_meeting_not_found(self, downloader, temp_dir):
        with pytest.raises(MeetingNotFoundError):
            downloader.download_meeting("missing", temp_dir)


class TestSafeFilename:
    """Test cases for download filenames."""

    @pytest.mark.parametrize("name,expected", [
        ("Weekly Sync", "Weekly Sync"),
        ("Q3: plan/review", "Q3- plan-review"),
        ("../../etc", "etc"),
        ("", "meeting-recording"),
        ("???", "meeting-recording"),
    ])
    def test_safe_filename(self, name, expected):
        assert safe_filename(name) == expected
