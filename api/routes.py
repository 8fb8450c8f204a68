"""
FastAPI routes for the MeLink API.

This module defines the REST API endpoints and wires them to the handler
classes.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

logger = logging.getLogger(__name__)

from .handlers import (
    MeetingUploadHandler,
    MeetingDataHandler,
    ThumbnailHandler,
    InteractionHandler,
    HealthCheckHandler,
    UploadResponse,
    MeetingDataResponse,
    ThumbnailResponse,
    InteractionResponse,
    HealthResponse,
    get_blob_store,
    get_meeting_store,
    get_thumbnail_extractor
)
from processing.thumbnail_extractor import ThumbnailExtractor
from storage.blob_store import BlobStore
from storage.meeting_store import MeetingStore

# Create API router
api_router = APIRouter(prefix="/api", tags=["melink"])


@api_router.post(
    "/upload",
    response_model=UploadResponse,
    summary="Upload a meeting",
    description="Upload a meeting video together with its transcription and summary. "
                "The title is turned into the slug of the share link."
)
async def upload_meeting(
    title: Optional[str] = Form(None),
    video: Optional[UploadFile] = File(None, description="Meeting video"),
    transcription: Optional[str] = Form(None),
    summary: Optional[str] = Form(None),
    blob_store: BlobStore = Depends(get_blob_store),
    meeting_store: MeetingStore = Depends(get_meeting_store)
) -> UploadResponse:
    """Store a meeting and return its share path."""
    handler = MeetingUploadHandler(blob_store, meeting_store)
    return await handler.upload_meeting(title, video, transcription, summary)


@api_router.get(
    "/data/{slug}",
    response_model=MeetingDataResponse,
    summary="Get meeting data",
    description="Get the title and asset URLs of a shared meeting."
)
async def get_meeting_data(
    slug: str,
    meeting_store: MeetingStore = Depends(get_meeting_store)
) -> MeetingDataResponse:
    handler = MeetingDataHandler(meeting_store)
    return await handler.get_meeting_data(slug)


@api_router.get(
    "/thumbnail/{slug}",
    response_model=ThumbnailResponse,
    summary="Get meeting thumbnail",
    description="Get a JPEG data URI of a representative video frame. "
                "Falls back to a placeholder image when no frame can be extracted."
)
async def get_thumbnail(
    slug: str,
    meeting_store: MeetingStore = Depends(get_meeting_store),
    blob_store: BlobStore = Depends(get_blob_store),
    extractor: ThumbnailExtractor = Depends(get_thumbnail_extractor)
) -> ThumbnailResponse:
    handler = ThumbnailHandler(meeting_store, blob_store, extractor)
    return await handler.get_thumbnail(slug)


@api_router.post(
    "/share",
    response_model=InteractionResponse,
    summary="Record a share",
    description="Log a share of a meeting link."
)
async def record_share(request: Request) -> InteractionResponse:
    return await InteractionHandler().record_share(await request.body())


@api_router.post(
    "/action",
    response_model=InteractionResponse,
    summary="Record a user action",
    description="Log an action taken on the share page."
)
async def record_action(request: Request) -> InteractionResponse:
    return await InteractionHandler().record_action(await request.body())


@api_router.post(
    "/banner/close",
    response_model=InteractionResponse,
    summary="Close the banner"
)
async def close_banner() -> InteractionResponse:
    return await InteractionHandler().close_banner()


@api_router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check service health and get configuration information."
)
async def health_check(
    blob_store: BlobStore = Depends(get_blob_store)
) -> HealthResponse:
    """Perform health check and return service information."""
    handler = HealthCheckHandler(blob_store)
    return await handler.health_check()
