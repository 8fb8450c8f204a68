"""Validation functions for meeting uploads."""

from pathlib import Path
from typing import List, Optional

import magic

from .meeting import slugify


class ValidationError(Exception):
    """Custom exception for validation errors."""
    pass


class FileTooLargeError(ValidationError):
    """Raised when an upload exceeds the size limit."""
    pass


# Supported video formats and their MIME types
SUPPORTED_VIDEO_FORMATS = {
    'video/mp4': ['.mp4', '.m4v'],
    'video/quicktime': ['.mov'],
    'video/webm': ['.webm'],
    'video/x-msvideo': ['.avi'],
    'video/avi': ['.avi'],
    'video/x-matroska': ['.mkv']
}

# File size limits
MAX_FILE_SIZE_BYTES = 500 * 1024 * 1024  # 500 MB
MIN_FILE_SIZE_BYTES = 1  # Reject empty files

# libmagic cannot classify every container from a short header
GENERIC_MIME_TYPES = {'application/octet-stream'}


def validate_upload_fields(title: Optional[str], video_filename: Optional[str],
                           transcription: Optional[str], summary: Optional[str]) -> str:
    """
    Validate the multipart upload fields and derive the meeting slug.

    Args:
        title: Meeting title
        video_filename: Filename of the uploaded video
        transcription: Transcription text
        summary: Summary text

    Returns:
        URL-friendly slug derived from the title

    Raises:
        ValidationError: If a field is missing or the title has no usable characters
    """
    if not title or not video_filename or not transcription or not summary:
        raise ValidationError("Missing required fields.")

    slug = slugify(title)
    if not slug:
        raise ValidationError(
            "Invalid title. Please use a title that can be converted into a URL-friendly slug."
        )
    return slug


def validate_filename(filename: str) -> None:
    """
    Validate video filename for security and compatibility.

    Args:
        filename: Original filename

    Raises:
        ValidationError: If filename contains invalid characters
    """
    if not filename:
        raise ValidationError("Filename cannot be empty")

    # Check for dangerous characters
    dangerous_chars = ['..', '/', '\\', ':', '*', '?', '"', '<', '>', '|']
    for char in dangerous_chars:
        if char in filename:
            raise ValidationError(f"Filename contains invalid character: '{char}'")

    if len(filename) > 255:
        raise ValidationError("Filename too long (maximum 255 characters)")

    file_extension = Path(filename).suffix.lower()
    if file_extension not in get_supported_formats():
        raise ValidationError(
            f"Invalid file extension: {file_extension}. "
            f"Supported extensions: {', '.join(get_supported_formats())}"
        )


def validate_video_header(header: bytes) -> str:
    """
    Validate the first bytes of an upload using magic numbers.

    Args:
        header: Leading bytes of the uploaded file

    Returns:
        Detected MIME type

    Raises:
        ValidationError: If the content is empty or clearly not a video
    """
    if len(header) < MIN_FILE_SIZE_BYTES:
        raise ValidationError("File is empty")

    try:
        mime_type = magic.from_buffer(header, mime=True)
    except Exception as e:
        raise ValidationError(f"Could not determine file type: {str(e)}")

    if mime_type in GENERIC_MIME_TYPES or mime_type.startswith('video/'):
        return mime_type

    raise ValidationError(
        f"Unsupported video format: {mime_type}. "
        f"Supported formats: {', '.join(get_supported_formats())}"
    )


def validate_file_size(size: int, max_size: int = MAX_FILE_SIZE_BYTES) -> None:
    """
    Validate an upload size in bytes.

    Raises:
        FileTooLargeError: If the size exceeds the limit
    """
    if size > max_size:
        raise FileTooLargeError(
            f"File too large: {size / (1024 * 1024):.1f} MB. "
            f"Maximum size: {max_size / (1024 * 1024):.1f} MB"
        )


def get_supported_formats() -> List[str]:
    """Get list of supported video file extensions."""
    extensions = []
    for ext_list in SUPPORTED_VIDEO_FORMATS.values():
        extensions.extend(ext_list)
    return sorted(list(set(extensions)))


def get_max_file_size_mb() -> float:
    """Get maximum file size in megabytes."""
    return MAX_FILE_SIZE_BYTES / (1024 * 1024)
