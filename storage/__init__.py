# Blob storage and meeting record store

from .blob_store import BlobStore, BlobStoreError, StoredBlob
from .meeting_store import MeetingStore, MeetingStoreError

__all__ = ['BlobStore', 'BlobStoreError', 'StoredBlob', 'MeetingStore', 'MeetingStoreError']
