import logging
from datetime import datetime, timezone
from typing import Optional

from core.config import settings
from exceptions.exceptions import InvalidChunkException
from services.drive_sink import GoogleDriveSink, sanitize_name

logger = logging.getLogger(__name__)

RAW_FOOTAGE_FOLDER = "Raw footage"
FINAL_FOOTAGE_FOLDER = "Final footage"


def timestamp_label(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%d %H-%M")


class FolderService:
    def __init__(self, sink: Optional[GoogleDriveSink] = None):
        self.sink = sink or GoogleDriveSink()

    def ensure_upload_structure(
        self,
        gym_name: str,
        slot_names: list[str],
        upload_label: Optional[str] = None,
        root_folder_id: Optional[str] = None
    ) -> dict:
        """
        Ensure the folder tree a gym upload lands in.

        Layout: <root>/<gym>/<label>/{Raw footage, Final footage}/<slot>.
        Every level is created only if missing, so calling this twice with
        the same arguments returns the same ids.

        Args:
            gym_name: Tenant display name
            slot_names: Content slots, one folder each under raw and final footage
            upload_label: Name of the per-upload folder, a UTC timestamp by default
            root_folder_id: Parent of the gym folders, GOOGLE_DRIVE_ROOT_ID by default

        Returns:
            Dict of folder ids, with raw_slot_folders as the upload targets
        """
        root_folder_id = root_folder_id or settings.GOOGLE_DRIVE_ROOT_ID
        if not root_folder_id:
            raise InvalidChunkException("No root folder configured for upload structure")

        gym_folder_name = sanitize_name(gym_name)
        if not gym_folder_name:
            raise InvalidChunkException("gym_name is required")

        upload_label = sanitize_name(upload_label or timestamp_label())

        gym_folder_id = self.sink.ensure_folder(gym_folder_name, root_folder_id)
        upload_folder_id = self.sink.ensure_folder(upload_label, gym_folder_id)
        raw_folder_id = self.sink.ensure_folder(RAW_FOOTAGE_FOLDER, upload_folder_id)
        final_folder_id = self.sink.ensure_folder(FINAL_FOOTAGE_FOLDER, upload_folder_id)

        raw_slot_folders = {}
        final_slot_folders = {}
        for slot in slot_names:
            slot_folder_name = sanitize_name(slot)
            raw_slot_folders[slot] = self.sink.ensure_folder(slot_folder_name, raw_folder_id)
            final_slot_folders[slot] = self.sink.ensure_folder(slot_folder_name, final_folder_id)

        logger.info("Upload structure ready for %s under %s (%d slots)", gym_name, upload_label, len(slot_names))

        return {
            "gym_folder_id": gym_folder_id,
            "upload_folder_id": upload_folder_id,
            "upload_label": upload_label,
            "raw_footage_folder_id": raw_folder_id,
            "final_footage_folder_id": final_folder_id,
            "raw_slot_folders": raw_slot_folders,
            "final_slot_folders": final_slot_folders
        }
