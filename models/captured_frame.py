"""CapturedFrame data model for storing thumbnail candidates."""

import base64
from dataclasses import dataclass, field


@dataclass
class CapturedFrame:
    """A decoded video frame sampled while searching for a thumbnail."""

    timestamp: float  # Seek position in seconds
    encoded_image: bytes = field(repr=False)  # JPEG bytes
    score: float  # 0.0 means black/invalid
    mime_type: str = "image/jpeg"

    @property
    def is_black(self) -> bool:
        """Check if the frame was classified as black/invalid."""
        return self.score <= 0

    @property
    def data_uri(self) -> str:
        """Get the encoded image as a data URI."""
        payload = base64.b64encode(self.encoded_image).decode("ascii")
        return f"data:{self.mime_type};base64,{payload}"

    @property
    def size_bytes(self) -> int:
        """Get size of the encoded image."""
        return len(self.encoded_image)
