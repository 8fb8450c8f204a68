"""
Progress reporting for streamed uploads and downloads.

This module tracks how many bytes of a transfer have moved, and derives the
completion percentage, throughput and remaining time from them. Throughput and
ETA are recomputed at most every ``speed_update_interval`` seconds so that a
burst of small chunks does not make the reported speed jitter.
"""

import math
import threading
import time
import logging
from typing import Dict, Optional, Callable, Any, List
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

logger = logging.getLogger(__name__)

_BYTE_UNITS = ['B', 'KB', 'MB', 'GB', 'TB']


def format_bytes(num_bytes: float) -> str:
    """
    Format a byte count for display, e.g. ``1.5 MB``.

    Uses base 1024 and one decimal place; a trailing ``.0`` is dropped.
    """
    if num_bytes <= 0:
        return '0 B'
    index = max(0, min(int(math.floor(math.log(num_bytes, 1024))), len(_BYTE_UNITS) - 1))
    value = round(num_bytes / math.pow(1024, index), 1)
    text = f"{value:.1f}".rstrip('0').rstrip('.')
    return f"{text} {_BYTE_UNITS[index]}"


def calculate_speed(num_bytes: float, seconds: float) -> str:
    """Format average throughput, e.g. ``1.2 MB/s``."""
    if seconds <= 0:
        return '0 B/s'
    return f"{format_bytes(num_bytes / seconds)}/s"


def format_duration(seconds: float) -> str:
    """Format a remaining or elapsed time, e.g. ``42s``, ``3m 5s`` or ``1h 2m``."""
    if seconds < 60:
        return f"{round(seconds)}s"
    minutes = int(seconds // 60)
    remaining_seconds = round(seconds % 60)
    if remaining_seconds == 60:
        minutes += 1
        remaining_seconds = 0
    if minutes < 60:
        return f"{minutes}m {remaining_seconds}s" if remaining_seconds > 0 else f"{minutes}m"
    hours = minutes // 60
    return f"{hours}h {minutes % 60}m"


class ProgressStatus(Enum):
    """Status enumeration for progress tracking."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = (ProgressStatus.COMPLETED, ProgressStatus.FAILED, ProgressStatus.CANCELLED)


@dataclass
class TransferMetrics:
    """Metrics for a single transfer."""

    # Basic progress
    transferred_bytes: int = 0
    total_bytes: int = 0  # 0 when the size is unknown
    progress_percent: float = 0.0
    status: ProgressStatus = ProgressStatus.NOT_STARTED

    # Timing information
    start_time: Optional[datetime] = None
    last_update_time: Optional[datetime] = None

    # Performance metrics
    speed_bytes_per_second: float = 0.0
    eta_seconds: Optional[float] = None

    # Error information
    error_message: Optional[str] = None

    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary for serialization."""
        return {
            'transferred_bytes': self.transferred_bytes,
            'total_bytes': self.total_bytes,
            'progress_percent': self.progress_percent,
            'status': self.status.value,
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'last_update_time': self.last_update_time.isoformat() if self.last_update_time else None,
            'speed_bytes_per_second': self.speed_bytes_per_second,
            'eta_seconds': self.eta_seconds,
            'error_message': self.error_message,
            'metadata': self.metadata.copy()
        }


class TransferProgressTracker:
    """
    Progress tracker for a single streamed transfer.

    Feed it chunk sizes as they arrive; read metrics or a display summary from
    any thread.
    """

    def __init__(self, operation_id: str, total_bytes: int = 0,
                 speed_update_interval: float = 0.5,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize progress tracker.

        Args:
            operation_id: Unique identifier for the transfer
            total_bytes: Expected size in bytes, 0 if unknown
            speed_update_interval: Minimum seconds between speed/ETA refreshes
            clock: Monotonic time source in seconds
        """
        self.operation_id = operation_id
        self.metrics = TransferMetrics(total_bytes=max(0, int(total_bytes or 0)))
        self.speed_update_interval = speed_update_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._start_clock: Optional[float] = None
        self._last_speed_clock: Optional[float] = None

    def start(self) -> None:
        """Mark the transfer as started."""
        with self._lock:
            self._start_clock = self._clock()
            self._last_speed_clock = None
            self.metrics.start_time = datetime.now()
            self.metrics.last_update_time = self.metrics.start_time
            self.metrics.status = ProgressStatus.IN_PROGRESS
            self.metrics.transferred_bytes = 0
            self.metrics.progress_percent = 0.0

            logger.debug(f"Transfer {self.operation_id} started ({format_bytes(self.metrics.total_bytes)} expected)")

    def update(self, chunk_size: int, **kwargs) -> TransferMetrics:
        """
        Account for a received or sent chunk.

        Args:
            chunk_size: Number of bytes in the chunk
            **kwargs: Additional metadata to store

        Returns:
            Snapshot of the updated metrics
        """
        with self._lock:
            if self._start_clock is None:
                self._start_clock = self._clock()
                self.metrics.start_time = datetime.now()
                self.metrics.status = ProgressStatus.IN_PROGRESS

            now = self._clock()
            self.metrics.transferred_bytes += chunk_size
            self.metrics.last_update_time = datetime.now()

            if self.metrics.total_bytes > 0:
                percent = self.metrics.transferred_bytes / self.metrics.total_bytes * 100.0
                self.metrics.progress_percent = min(100.0, percent)

            if (self._last_speed_clock is None
                    or now - self._last_speed_clock >= self.speed_update_interval):
                self._last_speed_clock = now
                self._calculate_speed(now)

            for key, value in kwargs.items():
                self.metrics.metadata[key] = value

            return self._snapshot()

    def mark_completed(self) -> None:
        """Mark the transfer as completed successfully."""
        with self._lock:
            self.metrics.status = ProgressStatus.COMPLETED
            self.metrics.progress_percent = 100.0
            self.metrics.last_update_time = datetime.now()
            if self._start_clock is not None:
                now = self._clock()
                self._calculate_speed(now)
                elapsed = now - self._start_clock
                logger.info(
                    f"Transfer {self.operation_id} completed: "
                    f"{format_bytes(self.metrics.transferred_bytes)} in {format_duration(elapsed)}"
                )
            self.metrics.eta_seconds = 0.0

    def mark_failed(self, error_message: str) -> None:
        """
        Mark the transfer as failed.

        Args:
            error_message: Error message describing the failure
        """
        with self._lock:
            self.metrics.status = ProgressStatus.FAILED
            self.metrics.error_message = error_message
            self.metrics.last_update_time = datetime.now()

            logger.error(f"Transfer {self.operation_id} failed: {error_message}")

    def mark_cancelled(self) -> None:
        """Mark the transfer as cancelled."""
        with self._lock:
            self.metrics.status = ProgressStatus.CANCELLED
            self.metrics.last_update_time = datetime.now()

            logger.info(f"Transfer {self.operation_id} was cancelled")

    def _calculate_speed(self, now: float) -> None:
        elapsed = now - self._start_clock
        if elapsed <= 0:
            return

        speed = self.metrics.transferred_bytes / elapsed
        self.metrics.speed_bytes_per_second = speed

        if self.metrics.total_bytes > 0 and speed > 0:
            remaining = max(0, self.metrics.total_bytes - self.metrics.transferred_bytes)
            self.metrics.eta_seconds = remaining / speed
        else:
            self.metrics.eta_seconds = None

    def _snapshot(self) -> TransferMetrics:
        return TransferMetrics(
            transferred_bytes=self.metrics.transferred_bytes,
            total_bytes=self.metrics.total_bytes,
            progress_percent=self.metrics.progress_percent,
            status=self.metrics.status,
            start_time=self.metrics.start_time,
            last_update_time=self.metrics.last_update_time,
            speed_bytes_per_second=self.metrics.speed_bytes_per_second,
            eta_seconds=self.metrics.eta_seconds,
            error_message=self.metrics.error_message,
            metadata=self.metrics.metadata.copy()
        )

    def get_metrics(self) -> TransferMetrics:
        """
        Get current transfer metrics.

        Returns:
            Copy of current metrics
        """
        with self._lock:
            return self._snapshot()

    def get_summary(self) -> Dict[str, Any]:
        """
        Get a display-ready summary of the transfer.

        Returns:
            Dictionary with raw numbers and formatted strings
        """
        metrics = self.get_metrics()

        if metrics.total_bytes > 0:
            progress_text = (
                f"{round(metrics.progress_percent)}% "
                f"({format_bytes(metrics.transferred_bytes)} / {format_bytes(metrics.total_bytes)})"
            )
        else:
            progress_text = f"Transferred {format_bytes(metrics.transferred_bytes)}"

        summary = {
            'operation_id': self.operation_id,
            'status': metrics.status.value,
            'progress_percent': metrics.progress_percent,
            'transferred_bytes': metrics.transferred_bytes,
            'total_bytes': metrics.total_bytes,
            'progress_text': progress_text,
            'speed_text': calculate_speed(metrics.speed_bytes_per_second, 1.0),
            'is_complete': metrics.is_complete
        }

        if metrics.eta_seconds is not None and metrics.status == ProgressStatus.IN_PROGRESS:
            summary['eta_seconds'] = metrics.eta_seconds
            summary['eta_text'] = format_duration(metrics.eta_seconds)

        if metrics.error_message:
            summary['error_message'] = metrics.error_message

        return summary


class ProgressService:
    """
    Registry of transfer trackers.

    Lets request handlers and the download CLI look up the progress of a
    transfer by id while it runs.
    """

    def __init__(self):
        self.trackers: Dict[str, TransferProgressTracker] = {}
        self._lock = threading.Lock()

    def create_tracker(self, operation_id: str, total_bytes: int = 0) -> TransferProgressTracker:
        """
        Create a new progress tracker, or return the existing one for this id.

        Args:
            operation_id: Unique identifier for the transfer
            total_bytes: Expected size in bytes, 0 if unknown
        """
        with self._lock:
            if operation_id in self.trackers:
                logger.warning(f"Progress tracker for {operation_id} already exists")
                return self.trackers[operation_id]

            tracker = TransferProgressTracker(operation_id, total_bytes)
            self.trackers[operation_id] = tracker
            logger.debug(f"Created progress tracker for transfer {operation_id}")
            return tracker

    def get_tracker(self, operation_id: str) -> Optional[TransferProgressTracker]:
        with self._lock:
            return self.trackers.get(operation_id)

    def remove_tracker(self, operation_id: str) -> bool:
        with self._lock:
            return self.trackers.pop(operation_id, None) is not None

    def get_all_progress(self) -> Dict[str, Dict[str, Any]]:
        """Get progress summary for all tracked transfers."""
        with self._lock:
            trackers = list(self.trackers.items())
        return {op_id: tracker.get_summary() for op_id, tracker in trackers}

    def get_active_operations(self) -> List[str]:
        """Get list of transfer ids that have not finished."""
        with self._lock:
            trackers = list(self.trackers.items())
        return [op_id for op_id, tracker in trackers if not tracker.get_metrics().is_complete]

    def cleanup_completed_operations(self, max_age_hours: float = 24) -> int:
        """
        Remove finished transfers older than the given age.

        Returns:
            Number of trackers removed
        """
        cutoff_time = datetime.now() - timedelta(hours=max_age_hours)

        with self._lock:
            stale = []
            for op_id, tracker in self.trackers.items():
                metrics = tracker.get_metrics()
                if (metrics.is_complete and metrics.last_update_time
                        and metrics.last_update_time < cutoff_time):
                    stale.append(op_id)

            for op_id in stale:
                del self.trackers[op_id]

        if stale:
            logger.info(f"Cleaned up {len(stale)} completed transfers")

        return len(stale)


# Global progress service instance
progress_service = ProgressService()
