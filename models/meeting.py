"""MeetingRecord data model for shared meeting pages."""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional


_WHITESPACE_RE = re.compile(r"\s+")
_NON_SLUG_RE = re.compile(r"[^a-z0-9-]")


def slugify(title: str) -> str:
    """Turn a meeting title into a URL-friendly slug.

    Empty string is returned when nothing usable survives.
    """
    slug = _WHITESPACE_RE.sub("-", title.strip().lower())
    return _NON_SLUG_RE.sub("", slug)


@dataclass
class MeetingRecord:
    """Data model for an uploaded meeting stored under its slug."""

    slug: str
    title: str
    video_url: str
    transcription_url: str
    summary_url: str
    created_at: datetime

    @classmethod
    def create_new(cls, slug: str, title: str, video_url: str,
                   transcription_url: str, summary_url: str) -> 'MeetingRecord':
        """Create a new meeting record stamped with the current UTC time."""
        return cls(
            slug=slug,
            title=title,
            video_url=video_url,
            transcription_url=transcription_url,
            summary_url=summary_url,
            created_at=datetime.now(timezone.utc)
        )

    @property
    def share_path(self) -> str:
        """Get the relative path of the shared meeting page."""
        return f"/{self.slug}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON shape served by the data endpoint."""
        return {
            "title": self.title,
            "videoUrl": self.video_url,
            "transcriptionUrl": self.transcription_url,
            "summaryUrl": self.summary_url,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], slug: Optional[str] = None) -> 'MeetingRecord':
        """
        Build a record from the data endpoint JSON shape.

        Raises:
            KeyError: If a required field is missing
            ValueError: If createdAt is not ISO-8601
        """
        created_at = data["createdAt"]
        if created_at.endswith("Z"):
            created_at = created_at[:-1] + "+00:00"
        return cls(
            slug=slug if slug is not None else slugify(data["title"]),
            title=data["title"],
            video_url=data["videoUrl"],
            transcription_url=data["transcriptionUrl"],
            summary_url=data["summaryUrl"],
            created_at=datetime.fromisoformat(created_at)
        )
