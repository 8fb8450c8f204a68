"""Data models for the MeLink service."""

from .meeting import MeetingRecord, slugify
from .video_metadata import VideoResource
from .captured_frame import CapturedFrame
from .validation import (
    validate_upload_fields,
    validate_filename,
    validate_video_header,
    validate_file_size,
    ValidationError,
    FileTooLargeError
)

__all__ = [
    'MeetingRecord',
    'slugify',
    'VideoResource',
    'CapturedFrame',
    'validate_upload_fields',
    'validate_filename',
    'validate_video_header',
    'validate_file_size',
    'ValidationError',
    'FileTooLargeError'
]
