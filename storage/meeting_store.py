"""Key-value store for meeting records using Redis."""

import json
import logging
from typing import Dict, List, Optional, Any
import redis
from redis.exceptions import RedisError, ConnectionError as RedisConnectionError

from models.meeting import MeetingRecord


logger = logging.getLogger(__name__)


class MeetingStoreError(Exception):
    """Base exception for meeting store operations."""
    pass


class MeetingStore:
    """Redis-backed store mapping meeting slugs to their records."""

    def __init__(self, redis_url: str = "redis://localhost:6379/0",
                 thumbnail_ttl_seconds: int = 7 * 24 * 3600):
        """
        Initialize the meeting store with Redis connection.

        Args:
            redis_url: Redis connection URL
            thumbnail_ttl_seconds: Lifetime of cached thumbnails
        """
        self.thumbnail_ttl_seconds = thumbnail_ttl_seconds
        self.redis_client = None
        self._connect(redis_url)

        # Redis key patterns
        self.meeting_key_prefix = "meeting:"
        self.thumbnail_key_prefix = "thumbnail:"

    def _connect(self, redis_url: str) -> None:
        """Establish Redis connection with error handling."""
        try:
            self.redis_client = redis.from_url(redis_url, decode_responses=True)
            # Test connection
            self.redis_client.ping()
            logger.info("Successfully connected to Redis")
        except RedisConnectionError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise MeetingStoreError(f"Redis connection failed: {e}")

    def _serialize_meeting(self, record: MeetingRecord) -> str:
        """Serialize MeetingRecord to JSON string."""
        return json.dumps(record.to_dict())

    def _deserialize_meeting(self, slug: str, data: str) -> MeetingRecord:
        """Deserialize JSON string to MeetingRecord."""
        try:
            return MeetingRecord.from_dict(json.loads(data), slug=slug)
        except (json.JSONDecodeError, KeyError, ValueError, AttributeError) as e:
            logger.error(f"Failed to deserialize meeting {slug}: {e}")
            raise MeetingStoreError(f"Invalid meeting data format: {e}")

    def save_meeting(self, record: MeetingRecord) -> bool:
        """
        Store a meeting record under its slug, replacing any previous one.

        Any cached thumbnail for the slug is dropped since the video may differ.

        Raises:
            MeetingStoreError: If the write fails
        """
        try:
            pipe = self.redis_client.pipeline()
            pipe.set(f"{self.meeting_key_prefix}{record.slug}", self._serialize_meeting(record))
            pipe.delete(f"{self.thumbnail_key_prefix}{record.slug}")
            pipe.execute()

            logger.info(f"Meeting {record.slug} stored successfully")
            return True

        except RedisError as e:
            logger.error(f"Failed to store meeting {record.slug}: {e}")
            raise MeetingStoreError(f"Failed to store meeting: {e}")

    def get_meeting(self, slug: str) -> Optional[MeetingRecord]:
        """
        Look up a meeting by slug.

        Returns:
            MeetingRecord, or None if no meeting is stored under the slug

        Raises:
            MeetingStoreError: If Redis fails or the stored data is corrupt
        """
        try:
            data = self.redis_client.get(f"{self.meeting_key_prefix}{slug}")
        except RedisError as e:
            logger.error(f"Failed to get meeting {slug}: {e}")
            raise MeetingStoreError(f"Failed to get meeting: {e}")

        if not data:
            return None
        return self._deserialize_meeting(slug, data)

    def delete_meeting(self, slug: str) -> bool:
        """Remove a meeting and its cached thumbnail. Returns False if absent."""
        try:
            pipe = self.redis_client.pipeline()
            pipe.delete(f"{self.meeting_key_prefix}{slug}")
            pipe.delete(f"{self.thumbnail_key_prefix}{slug}")
            deleted, _ = pipe.execute()
            return bool(deleted)
        except RedisError as e:
            logger.error(f"Failed to delete meeting {slug}: {e}")
            raise MeetingStoreError(f"Failed to delete meeting: {e}")

    def list_slugs(self) -> List[str]:
        """List the slugs of all stored meetings."""
        try:
            keys = self.redis_client.keys(f"{self.meeting_key_prefix}*")
            return sorted(key[len(self.meeting_key_prefix):] for key in keys)
        except RedisError as e:
            logger.error(f"Failed to list meetings: {e}")
            raise MeetingStoreError(f"Failed to list meetings: {e}")

    def get_cached_thumbnail(self, slug: str) -> Optional[str]:
        """Get a cached thumbnail data URI. Cache failures read as a miss."""
        try:
            return self.redis_client.get(f"{self.thumbnail_key_prefix}{slug}")
        except RedisError as e:
            logger.warning(f"Thumbnail cache read failed for {slug}: {e}")
            return None

    def cache_thumbnail(self, slug: str, data_uri: str) -> bool:
        """Cache a thumbnail data URI. Cache failures are logged and ignored."""
        try:
            self.redis_client.setex(
                f"{self.thumbnail_key_prefix}{slug}", self.thumbnail_ttl_seconds, data_uri
            )
            return True
        except RedisError as e:
            logger.warning(f"Thumbnail cache write failed for {slug}: {e}")
            return False

    def get_stats(self) -> Dict[str, Any]:
        """Get store statistics for health reporting."""
        try:
            return {
                "meetings": len(self.redis_client.keys(f"{self.meeting_key_prefix}*")),
                "cached_thumbnails": len(self.redis_client.keys(f"{self.thumbnail_key_prefix}*"))
            }
        except RedisError as e:
            logger.error(f"Failed to get store stats: {e}")
            raise MeetingStoreError(f"Failed to get store statistics: {e}")

    def health_check(self) -> bool:
        """
        Check if Redis connection is healthy.

        Returns:
            bool: True if Redis is accessible
        """
        try:
            self.redis_client.ping()
            return True
        except RedisError:
            return False


# Global meeting store instance
_meeting_store = None


def get_meeting_store() -> MeetingStore:
    """
    Get the global MeetingStore instance.

    Raises:
        MeetingStoreError: If Redis is unreachable
    """
    global _meeting_store
    if _meeting_store is None:
        import config
        _meeting_store = MeetingStore(
            redis_url=config.REDIS_URL,
            thumbnail_ttl_seconds=config.THUMBNAIL_CACHE_TTL_SECONDS
        )
    return _meeting_store
