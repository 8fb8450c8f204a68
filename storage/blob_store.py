"""
Blob storage for uploaded meeting assets.

This module stores videos and text documents on the local filesystem and
hands back public URLs for them, the same contract a hosted object store
offers: ``put`` a named payload, get a URL to share.
"""

import re
import secrets
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Dict, Optional, Union
import logging

from processing.progress_service import TransferProgressTracker

logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")

COPY_CHUNK_SIZE = 1024 * 1024  # 1MB


class BlobStoreError(Exception):
    """Raised when a blob cannot be written or read."""
    pass


class BlobTooLargeError(BlobStoreError):
    """Raised when a streamed blob exceeds the configured size limit."""
    pass


class BlobNotFoundError(BlobStoreError):
    """Raised when a requested blob does not exist."""
    pass


@dataclass
class StoredBlob:
    """Location of a stored blob."""
    name: str
    url: str
    path: Path
    size: int


class BlobStore:
    """
    Filesystem-backed public blob storage.

    Every stored name gets a short random suffix so uploads with the same
    filename never overwrite each other.
    """

    def __init__(self, base_storage_path: str = None, public_base_url: str = "/files",
                 public_origin: Optional[str] = None):
        """
        Initialize BlobStore.

        Args:
            base_storage_path: Directory holding the blobs
            public_base_url: URL path under which blobs are served
            public_origin: Scheme and host prepended to issued URLs, e.g.
                ``https://melink.example.com``; None issues host-relative URLs
        """
        self.base_storage_path = Path(base_storage_path or 'storage/blobs')
        self.public_base_url = public_base_url.rstrip('/')
        self.public_origin = public_origin.rstrip('/') if public_origin else ''
        self.base_storage_path.mkdir(parents=True, exist_ok=True)

    def _create_blob_name(self, original_name: str) -> str:
        original = Path(original_name)
        stem = _UNSAFE_NAME_CHARS.sub('-', original.stem).strip('-.') or 'blob'
        suffix = _UNSAFE_NAME_CHARS.sub('', original.suffix.lower())
        return f"{stem[:100]}-{secrets.token_hex(4)}{suffix}"

    def _url_for(self, blob_name: str) -> str:
        return f"{self.public_origin}{self.public_base_url}/{blob_name}"

    def put(self, name: str, data: Union[bytes, str]) -> StoredBlob:
        """
        Store an in-memory payload.

        Args:
            name: Desired name; made filesystem-safe and suffixed
            data: Bytes, or text stored as UTF-8

        Returns:
            StoredBlob with the public URL

        Raises:
            BlobStoreError: If the write fails
        """
        payload = data.encode('utf-8') if isinstance(data, str) else data
        blob_name = self._create_blob_name(name)
        path = self.base_storage_path / blob_name

        try:
            path.write_bytes(payload)
        except OSError as e:
            self._safe_unlink(path)
            raise BlobStoreError(f"Failed to store blob {name}: {e}") from e

        logger.info(f"Stored blob: {name} -> {path} ({len(payload)} bytes)")
        return StoredBlob(name=blob_name, url=self._url_for(blob_name), path=path, size=len(payload))

    def put_fileobj(self, name: str, fileobj: BinaryIO, max_size: Optional[int] = None,
                    tracker: Optional[TransferProgressTracker] = None) -> StoredBlob:
        """
        Store a file-like object by streaming it in chunks.

        The data lands in a ``.part`` file that is renamed only once the copy
        completes, so a failed upload never leaves a readable blob behind.

        Args:
            name: Desired name; made filesystem-safe and suffixed
            fileobj: Binary file-like object positioned at the start
            max_size: Optional size limit in bytes
            tracker: Optional progress tracker fed with every chunk

        Returns:
            StoredBlob with the public URL

        Raises:
            BlobTooLargeError: If the stream exceeds ``max_size``
            BlobStoreError: If the write fails
        """
        blob_name = self._create_blob_name(name)
        path = self.base_storage_path / blob_name
        partial_path = path.with_name(path.name + '.part')
        written = 0

        if tracker:
            tracker.start()

        try:
            with open(partial_path, 'wb') as out:
                while True:
                    chunk = fileobj.read(COPY_CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if max_size is not None and written > max_size:
                        raise BlobTooLargeError(
                            f"Blob {name} exceeds maximum size of {max_size} bytes"
                        )
                    out.write(chunk)
                    if tracker:
                        tracker.update(len(chunk))

            partial_path.replace(path)

        except BlobStoreError as e:
            self._safe_unlink(partial_path)
            if tracker:
                tracker.mark_failed(str(e))
            raise
        except OSError as e:
            self._safe_unlink(partial_path)
            if tracker:
                tracker.mark_failed(str(e))
            raise BlobStoreError(f"Failed to store blob {name}: {e}") from e

        if tracker:
            tracker.mark_completed()

        logger.info(f"Stored blob: {name} -> {path} ({written} bytes)")
        return StoredBlob(name=blob_name, url=self._url_for(blob_name), path=path, size=written)

    def get_path(self, blob_name: str) -> Path:
        """
        Resolve a stored blob name to its path.

        Raises:
            BlobNotFoundError: If the name is unsafe or the blob is missing
        """
        if not blob_name or blob_name != Path(blob_name).name or blob_name.endswith('.part'):
            raise BlobNotFoundError(f"Blob not found: {blob_name}")

        path = self.base_storage_path / blob_name
        if not path.is_file():
            raise BlobNotFoundError(f"Blob not found: {blob_name}")
        return path

    def resolve_url(self, url: str) -> Optional[Path]:
        """
        Map a public blob URL issued by this store back to its local path.

        Both absolute URLs under ``public_origin`` and host-relative ones are
        accepted.

        Returns:
            Local path, or None if the URL is not one of ours or the blob is gone
        """
        if self.public_origin and url.startswith(self.public_origin + '/'):
            url = url[len(self.public_origin):]
        prefix = f"{self.public_base_url}/"
        if not url.startswith(prefix):
            return None
        try:
            return self.get_path(url[len(prefix):])
        except BlobNotFoundError:
            return None

    def delete(self, blob_name: str) -> bool:
        """Delete a stored blob. Returns False if it did not exist."""
        try:
            path = self.get_path(blob_name)
        except BlobNotFoundError:
            return False
        return self._safe_unlink(path)

    def _safe_unlink(self, path: Path) -> bool:
        try:
            if path.exists():
                path.unlink()
                logger.debug(f"Removed file: {path}")
            return True
        except OSError as e:
            logger.error(f"Failed to remove file {path}: {e}")
            return False

    def get_storage_info(self) -> Dict[str, any]:
        """
        Get storage information for health checks.

        Returns:
            Dictionary with storage information
        """
        blob_count = 0
        total_size = 0
        for blob_path in self.base_storage_path.iterdir():
            if blob_path.is_file() and not blob_path.name.endswith('.part'):
                blob_count += 1
                total_size += blob_path.stat().st_size

        stats = {
            'blob_count': blob_count,
            'total_size_bytes': total_size,
            'total_size_mb': round(total_size / (1024 * 1024), 2)
        }

        try:
            total, used, free = shutil.disk_usage(self.base_storage_path)
            stats.update({
                'disk_free_mb': round(free / (1024 * 1024), 2),
                'disk_usage_percent': round((used / total) * 100, 2)
            })
        except OSError as e:
            logger.warning(f"Could not get disk usage info: {e}")
            stats['disk_info_error'] = str(e)

        return stats

    def ensure_directories(self):
        """Ensure the blob directory exists."""
        try:
            self.base_storage_path.mkdir(parents=True, exist_ok=True)
            logger.info(f"Ensured blob directory exists: {self.base_storage_path}")
        except OSError as e:
            logger.error(f"Failed to create blob directory: {e}")
            raise


# Global blob store instance
_blob_store = None


def get_blob_store() -> BlobStore:
    """
    Get the global BlobStore instance.

    Returns:
        BlobStore instance
    """
    global _blob_store
    if _blob_store is None:
        import config
        _blob_store = BlobStore(
            base_storage_path=str(config.BLOB_DIR),
            public_base_url=config.PUBLIC_BLOB_URL,
            public_origin=config.PUBLIC_BASE_URL
        )
    return _blob_store
