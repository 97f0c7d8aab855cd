from functools import lru_cache

from services.blob_store import BlobStore
from services.drive_sink import GoogleDriveSink
from services.sink_handoff_service import SinkHandoffService


@lru_cache
def get_blob_store() -> BlobStore:
    return BlobStore()


@lru_cache
def get_drive_sink() -> GoogleDriveSink:
    return GoogleDriveSink()


def get_sink_handoff() -> SinkHandoffService:
    return SinkHandoffService(get_drive_sink())
