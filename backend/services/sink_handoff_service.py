import logging
from dataclasses import dataclass
from typing import Optional

from core.config import settings
from exceptions.exceptions import SinkUploadException
from services.drive_sink import GoogleDriveSink, SinkEntry

logger = logging.getLogger(__name__)


@dataclass
class SinkResult:
    file_id: str
    size: int
    deduped: bool = False
    web_view_link: Optional[str] = None


class SinkHandoffService:
    """
    Hands a finished file to the sink, reusing an identical entry when one exists.

    Deduplication is best effort: the folder lookup and the upload are not
    atomic, so two concurrent deliveries of the same file can both upload.
    """

    def __init__(self, sink: Optional[GoogleDriveSink] = None, simple_upload_max_bytes: Optional[int] = None):
        self.sink = sink or GoogleDriveSink()
        self.simple_upload_max_bytes = (
            simple_upload_max_bytes if simple_upload_max_bytes is not None else settings.SIMPLE_UPLOAD_MAX_BYTES
        )

    def find_existing(self, folder_id: str, file_name: str, size: int) -> Optional[SinkEntry]:
        """An entry with exactly this name and exactly this byte count, if any"""
        try:
            entries = self.sink.list_folder(folder_id, file_name)
        except SinkUploadException as e:
            logger.warning("Dedup lookup failed for %s in %s, uploading anyway: %s", file_name, folder_id, e.message)
            return None

        for entry in entries:
            if entry.name == file_name and entry.size == size:
                return entry
        return None

    def deliver(self, data: bytes, file_name: str, mime_type: Optional[str], folder_id: str) -> SinkResult:
        if not folder_id:
            raise SinkUploadException("No folder ID provided for upload")

        size = len(data)
        existing = self.find_existing(folder_id, file_name, size)
        if existing:
            logger.info("Dedup: %s (%d bytes) already in folder %s as %s", file_name, size, folder_id, existing.id)
            return SinkResult(file_id=existing.id, size=size, deduped=True, web_view_link=existing.web_view_link)

        logger.info("Uploading %s (%d bytes) to folder %s", file_name, size, folder_id)
        try:
            entry = self.sink.upload_multipart(folder_id, file_name, mime_type, data)
        except SinkUploadException as e:
            logger.error("Multipart upload of %s failed: %s", file_name, e.message)

            if size >= self.simple_upload_max_bytes:
                raise SinkUploadException(
                    f"File too large for fallback upload: {size / (1024 * 1024):.1f}MB ({e.message})"
                )

            logger.info("Trying simple upload fallback for %s", file_name)
            try:
                entry = self.sink.upload_simple(folder_id, file_name, mime_type, data)
            except SinkUploadException as fallback_error:
                raise SinkUploadException(f"Fallback upload failed: {fallback_error.message}")

        logger.info("Uploaded %s as %s", file_name, entry.id)
        return SinkResult(file_id=entry.id, size=size, deduped=False, web_view_link=entry.web_view_link)
