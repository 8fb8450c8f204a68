"""
REST API handlers for the MeLink service.

This module contains the handler classes behind the FastAPI routes for
meeting uploads, meeting data lookups, thumbnails, share/action logging
and health checks.
"""

import json
import logging
import uuid
from datetime import datetime
from typing import Optional, Dict, Any, List

import psutil
from fastapi import HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

import config
from models.meeting import MeetingRecord
from models.validation import (
    ValidationError, FileTooLargeError, validate_upload_fields, validate_filename, validate_video_header,
    validate_file_size, get_supported_formats
)
from processing.progress_service import progress_service
from processing.thumbnail_extractor import (
    ThumbnailExtractor, ThumbnailExtractorConfig, ThumbnailExtractionError
)
from storage.blob_store import BlobStore, BlobStoreError, BlobTooLargeError, StoredBlob
from storage.blob_store import get_blob_store as _get_global_blob_store
from storage.meeting_store import MeetingStore, MeetingStoreError
from storage.meeting_store import get_meeting_store as _get_global_meeting_store

logger = logging.getLogger(__name__)

HEADER_SNIFF_BYTES = 2048


# Response models
class UploadResponse(BaseModel):
    """Response model for meeting upload."""
    url: str


class MeetingDataResponse(BaseModel):
    """Response model for meeting data lookups (camelCase wire shape)."""
    title: str
    videoUrl: str
    transcriptionUrl: str
    summaryUrl: str
    createdAt: str


class ThumbnailResponse(BaseModel):
    """Response model for thumbnail lookups."""
    slug: str
    thumbnail: str
    placeholder: bool


class InteractionResponse(BaseModel):
    """Response model for share/action/banner endpoints."""
    success: bool
    message: str
    data: Optional[Dict[str, Any]] = None


class HealthResponse(BaseModel):
    """Response model for health check."""
    status: str
    timestamp: datetime
    version: str
    supported_formats: List[str]
    max_file_size_mb: float
    services: Dict[str, Any]
    resources: Dict[str, Any]


# Dependency injection
def get_blob_store() -> BlobStore:
    """Get BlobStore instance."""
    return _get_global_blob_store()


def get_meeting_store() -> MeetingStore:
    """Get MeetingStore instance; an unreachable Redis becomes a 503."""
    try:
        return _get_global_meeting_store()
    except MeetingStoreError as e:
        logger.error(f"Meeting store unavailable: {e}")
        raise HTTPException(
            status_code=503,
            detail={
                "error": "service_unavailable",
                "message": "Meeting storage is currently unavailable"
            }
        )


def get_thumbnail_extractor() -> ThumbnailExtractor:
    """Get a ThumbnailExtractor configured from settings."""
    return ThumbnailExtractor(ThumbnailExtractorConfig(
        timeout_seconds=config.THUMBNAIL_TIMEOUT_SECONDS,
        settle_delay_seconds=config.THUMBNAIL_SETTLE_DELAY_SECONDS,
        jpeg_quality=config.THUMBNAIL_JPEG_QUALITY
    ))


def _not_found(slug: str) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={
            "error": "not_found",
            "message": f"Meeting '{slug}' not found"
        }
    )


class MeetingUploadHandler:
    """Handler for meeting uploads."""

    def __init__(self, blob_store: BlobStore, meeting_store: MeetingStore,
                 max_file_size: int = None):
        self.blob_store = blob_store
        self.meeting_store = meeting_store
        self.max_file_size = max_file_size or config.MAX_FILE_SIZE

    async def upload_meeting(
        self,
        title: Optional[str],
        video: Optional[UploadFile],
        transcription: Optional[str],
        summary: Optional[str]
    ) -> UploadResponse:
        """
        Store a meeting's video and documents and register it under its slug.

        Args:
            title: Meeting title; the slug is derived from it
            video: Uploaded video file
            transcription: Transcription text
            summary: Summary text

        Returns:
            UploadResponse with the share path

        Raises:
            HTTPException: 400 for invalid input, 413 for oversize videos,
                500 when storage fails
        """
        stored: List[StoredBlob] = []
        tracker = None

        try:
            slug = validate_upload_fields(
                title, video.filename if video else None, transcription, summary
            )
            validate_filename(video.filename)

            if video.size is not None:
                validate_file_size(video.size, self.max_file_size)

            header = await video.read(HEADER_SNIFF_BYTES)
            mime_type = validate_video_header(header)
            await video.seek(0)
            logger.debug(f"Upload for {slug}: {video.filename} detected as {mime_type}")

            tracker = progress_service.create_tracker(
                f"upload-{slug}-{uuid.uuid4().hex[:8]}", total_bytes=video.size or 0
            )
            video_blob = await run_in_threadpool(
                self.blob_store.put_fileobj, video.filename, video.file,
                self.max_file_size, tracker
            )
            stored.append(video_blob)

            transcription_blob = await run_in_threadpool(
                self.blob_store.put, f"{slug}-transcription.txt", transcription
            )
            stored.append(transcription_blob)
            summary_blob = await run_in_threadpool(
                self.blob_store.put, f"{slug}-summary.txt", summary
            )
            stored.append(summary_blob)

            record = MeetingRecord.create_new(
                slug=slug,
                title=title,
                video_url=video_blob.url,
                transcription_url=transcription_blob.url,
                summary_url=summary_blob.url
            )
            await run_in_threadpool(self.meeting_store.save_meeting, record)

            summary_info = tracker.get_summary()
            logger.info(
                f"Stored meeting {slug} ({summary_info['progress_text']} "
                f"at {summary_info['speed_text']})"
            )
            return UploadResponse(url=record.share_path)

        except (FileTooLargeError, BlobTooLargeError) as e:
            raise HTTPException(
                status_code=413,
                detail={
                    "error": "file_too_large",
                    "message": str(e)
                }
            )
        except ValidationError as e:
            raise HTTPException(
                status_code=400,
                detail={
                    "error": "validation_error",
                    "message": str(e)
                }
            )
        except (BlobStoreError, MeetingStoreError) as e:
            logger.error(f"Upload failed: {e}")
            self._discard(stored)
            raise HTTPException(
                status_code=500,
                detail={
                    "error": "upload_failed",
                    "message": f"Upload failed: {e}"
                }
            )
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Unexpected error during upload: {e}", exc_info=True)
            self._discard(stored)
            raise HTTPException(
                status_code=500,
                detail={
                    "error": "upload_failed",
                    "message": f"Upload failed: {e}"
                }
            )
        finally:
            if tracker is not None:
                progress_service.remove_tracker(tracker.operation_id)

    def _discard(self, blobs: List[StoredBlob]) -> None:
        for blob in blobs:
            self.blob_store.delete(blob.name)


class MeetingDataHandler:
    """Handler for meeting data lookups."""

    def __init__(self, meeting_store: MeetingStore):
        self.meeting_store = meeting_store

    async def get_meeting_data(self, slug: str) -> MeetingDataResponse:
        try:
            record = self.meeting_store.get_meeting(slug)
        except MeetingStoreError as e:
            logger.error(f"Failed to load meeting {slug}: {e}")
            raise HTTPException(
                status_code=503,
                detail={
                    "error": "service_unavailable",
                    "message": "Meeting storage is currently unavailable"
                }
            )

        if record is None:
            raise _not_found(slug)
        return MeetingDataResponse(**record.to_dict())


class ThumbnailHandler:
    """
    Handler for meeting thumbnails.

    Serves a cached data URI when one exists, otherwise extracts a frame from
    the meeting video. Extraction failures fall back to the placeholder image.
    """

    def __init__(self, meeting_store: MeetingStore, blob_store: BlobStore,
                 extractor: ThumbnailExtractor, placeholder_url: str = None):
        self.meeting_store = meeting_store
        self.blob_store = blob_store
        self.extractor = extractor
        self.placeholder_url = placeholder_url or config.PLACEHOLDER_THUMBNAIL_URL

    async def get_thumbnail(self, slug: str) -> ThumbnailResponse:
        try:
            record = self.meeting_store.get_meeting(slug)
        except MeetingStoreError as e:
            logger.error(f"Failed to load meeting {slug}: {e}")
            raise HTTPException(
                status_code=503,
                detail={
                    "error": "service_unavailable",
                    "message": "Meeting storage is currently unavailable"
                }
            )

        if record is None:
            raise _not_found(slug)

        cached = self.meeting_store.get_cached_thumbnail(slug)
        if cached:
            return ThumbnailResponse(slug=slug, thumbnail=cached, placeholder=False)

        source = self._video_source(record)
        try:
            frame = await self.extractor.extract(source)
        except ThumbnailExtractionError as e:
            logger.warning(f"Thumbnail extraction failed for {slug}, using placeholder: {e}")
            return ThumbnailResponse(slug=slug, thumbnail=self.placeholder_url, placeholder=True)

        data_uri = frame.data_uri
        self.meeting_store.cache_thumbnail(slug, data_uri)
        return ThumbnailResponse(slug=slug, thumbnail=data_uri, placeholder=False)

    def _video_source(self, record: MeetingRecord) -> str:
        local_path = self.blob_store.resolve_url(record.video_url)
        if local_path is not None:
            return str(local_path)
        return record.video_url


class InteractionHandler:
    """Handler for share, action and banner events from the share page."""

    async def record_share(self, body: bytes) -> InteractionResponse:
        data = self._pick(self._parse(body, "share"), "title", "url")
        logger.info(f"Share: title={data.get('title')!r} url={data.get('url')!r}")
        return InteractionResponse(success=True, message="Share recorded", data=data)

    async def record_action(self, body: bytes) -> InteractionResponse:
        data = self._pick(self._parse(body, "action"), "action", "timestamp")
        logger.info(f"Action: {data.get('action')!r} at {data.get('timestamp')!r}")
        return InteractionResponse(success=True, message="Action recorded", data=data)

    async def close_banner(self) -> InteractionResponse:
        logger.info("Banner closed")
        return InteractionResponse(success=True, message="Banner closed")

    @staticmethod
    def _pick(data: Dict[str, Any], *keys: str) -> Dict[str, Any]:
        return {key: data[key] for key in keys if key in data}

    def _parse(self, body: bytes, kind: str) -> Dict[str, Any]:
        try:
            data = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"Failed to process {kind}: {e}")
            raise HTTPException(
                status_code=500,
                detail={
                    "error": f"{kind}_failed",
                    "message": f"Failed to process {kind}"
                }
            )

        if not isinstance(data, dict):
            logger.error(f"Failed to process {kind}: expected a JSON object")
            raise HTTPException(
                status_code=500,
                detail={
                    "error": f"{kind}_failed",
                    "message": f"Failed to process {kind}"
                }
            )
        return data


class HealthCheckHandler:
    """Handler for health checks."""

    def __init__(self, blob_store: BlobStore, meeting_store_factory=None):
        self.blob_store = blob_store
        self.meeting_store_factory = meeting_store_factory or _get_global_meeting_store

    async def health_check(self) -> HealthResponse:
        """
        Report service status.

        Redis being unreachable degrades the status instead of failing the
        check, so the endpoint stays useful while the store is down.
        """
        status = "healthy"
        services: Dict[str, Any] = {}

        try:
            services["blob_store"] = {
                "status": "healthy",
                "storage": self.blob_store.get_storage_info()
            }
        except OSError as e:
            services["blob_store"] = {"status": "unhealthy", "error": str(e)}
            status = "degraded"

        try:
            meeting_store = self.meeting_store_factory()
            if meeting_store.health_check():
                services["meeting_store"] = {
                    "status": "healthy",
                    "stats": meeting_store.get_stats()
                }
            else:
                services["meeting_store"] = {"status": "unhealthy"}
                status = "degraded"
        except MeetingStoreError as e:
            services["meeting_store"] = {"status": "unhealthy", "error": str(e)}
            status = "degraded"

        services["transfers"] = {
            "active": len(progress_service.get_active_operations())
        }

        return HealthResponse(
            status=status,
            timestamp=datetime.now(),
            version="1.0.0",
            supported_formats=get_supported_formats(),
            max_file_size_mb=round(config.MAX_FILE_SIZE / (1024 * 1024), 1),
            services=services,
            resources=get_system_resources()
        )


def get_system_resources() -> Dict[str, Any]:
    """Snapshot of host resource usage."""
    memory = psutil.virtual_memory()
    return {
        "cpu_percent": psutil.cpu_percent(interval=None),
        "memory_percent": memory.percent,
        "memory_available_mb": round(memory.available / (1024 * 1024), 2)
    }
