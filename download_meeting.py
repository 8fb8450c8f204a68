#!/usr/bin/env python3
"""
Command line downloader for shared meetings.

Saves the video, transcription and summary of a meeting from a MeLink
server, printing transfer progress as it goes.
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from processing.downloader import MeetingDownloader, DownloadError, MeetingNotFoundError
from processing.progress_service import TransferProgressTracker

logger = logging.getLogger(__name__)

PRINT_INTERVAL_SECONDS = 0.5


class ProgressPrinter:
    """Prints tracker summaries at most every PRINT_INTERVAL_SECONDS."""

    def __init__(self, stream=sys.stdout):
        self.stream = stream
        self._last_print = 0.0

    def __call__(self, tracker: TransferProgressTracker) -> None:
        now = time.monotonic()
        metrics = tracker.get_metrics()
        if not metrics.is_complete and now - self._last_print < PRINT_INTERVAL_SECONDS:
            return
        self._last_print = now

        summary = tracker.get_summary()
        line = f"{summary['progress_text']}  {summary['speed_text']}"
        if summary.get('eta_text'):
            line += f"  ETA {summary['eta_text']}"
        self.stream.write(f"\r{line:<60}")
        if metrics.is_complete:
            self.stream.write("\n")
        self.stream.flush()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Download a shared meeting")
    parser.add_argument("base_url", help="Server root, e.g. http://localhost:8000")
    parser.add_argument("slug", help="Meeting slug from the share link")
    parser.add_argument("--output", "-o", default=".", help="Directory to save files into")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    with MeetingDownloader(args.base_url) as downloader:
        try:
            paths = downloader.download_meeting(
                args.slug, Path(args.output), progress_callback=ProgressPrinter()
            )
        except MeetingNotFoundError as e:
            print(f"Not found: {e}", file=sys.stderr)
            return 2
        except DownloadError as e:
            print(f"Download failed: {e}", file=sys.stderr)
            return 1
        except KeyboardInterrupt:
            print("\nDownload interrupted", file=sys.stderr)
            return 130

    for kind, path in paths.items():
        print(f"{kind}: {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
