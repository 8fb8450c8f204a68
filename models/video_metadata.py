"""VideoResource data model for decoder-reported video information."""

import math
from dataclasses import dataclass


@dataclass
class VideoResource:
    """Data model for a playable video once its metadata has loaded."""

    duration: float  # Duration in seconds (0.0 when unknown)
    width: int = 0  # Native width in pixels
    height: int = 0  # Native height in pixels
    fps: float = 0.0  # Frames per second

    @property
    def resolution(self) -> tuple:
        """Get (width, height) tuple."""
        return (self.width, self.height)

    @property
    def has_dimensions(self) -> bool:
        """Check if the decoder reported usable frame dimensions."""
        return self.width > 0 and self.height > 0

    @property
    def has_duration(self) -> bool:
        """Check if the duration is known and positive."""
        return math.isfinite(self.duration) and self.duration > 0

    @property
    def aspect_ratio(self) -> float:
        """Calculate aspect ratio (width/height)."""
        return self.width / self.height if self.height > 0 else 0.0

    @property
    def total_frames(self) -> int:
        """Calculate total number of frames."""
        if not self.has_duration:
            return 0
        return int(self.duration * self.fps)
