import io
import json
import logging
import re
import threading
from dataclasses import dataclass
from typing import Optional

import google_auth_httplib2
import httplib2
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from core.config import settings
from exceptions.exceptions import SinkUploadException

logger = logging.getLogger(__name__)

DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive"]
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
FILE_FIELDS = "id,name,size,webViewLink"

# Transport level failures surfaced by httplib2
TRANSPORT_ERRORS = (HttpError, httplib2.HttpLib2Error, OSError)


@dataclass
class SinkEntry:
    id: str
    name: str
    size: Optional[int] = None
    web_view_link: Optional[str] = None

    @classmethod
    def from_drive(cls, data: dict) -> "SinkEntry":
        size = data.get("size")
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            size=int(size) if size is not None else None,
            web_view_link=data.get("webViewLink")
        )


def sanitize_name(name: str) -> str:
    """Strip characters Drive users cannot type in a folder name"""
    return re.sub(r'[/\\<>:"|?*\x00-\x1f]', "-", name).strip()[:200]


def _escape_query_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def load_credentials():
    raw = settings.GOOGLE_APPLICATION_CREDENTIALS_JSON
    if not raw:
        raise SinkUploadException("Missing GOOGLE_APPLICATION_CREDENTIALS_JSON")

    try:
        info = json.loads(raw)
    except json.JSONDecodeError:
        raise SinkUploadException("Invalid GOOGLE_APPLICATION_CREDENTIALS_JSON format")

    if not info.get("client_email") or not info.get("private_key"):
        raise SinkUploadException("GOOGLE_APPLICATION_CREDENTIALS_JSON missing client_email or private_key")

    # Keys pasted into env vars often carry escaped newlines
    info["private_key"] = info["private_key"].replace("\\n", "\n")

    logger.info("Google Drive auth using service account %s", info["client_email"])
    return service_account.Credentials.from_service_account_info(info, scopes=DRIVE_SCOPES)


class GoogleDriveSink:
    """
    Hierarchical file sink backed by Google Drive, shared drives included.

    httplib2.Http is not thread-safe, so each worker thread gets its own
    authorized transport and Drive service over shared credentials.
    """

    def __init__(self, service=None, shared_drive_id: Optional[str] = None):
        self._service = service
        self._credentials = None
        self._credentials_lock = threading.Lock()
        self._local = threading.local()
        self.shared_drive_id = shared_drive_id or settings.GOOGLE_SHARED_DRIVE_ID

    @property
    def credentials(self):
        with self._credentials_lock:
            if self._credentials is None:
                self._credentials = load_credentials()
            return self._credentials

    @property
    def service(self):
        if self._service is not None:
            return self._service

        service = getattr(self._local, "service", None)
        if service is None:
            http = google_auth_httplib2.AuthorizedHttp(
                self.credentials,
                http=httplib2.Http(timeout=settings.SINK_REQUEST_TIMEOUT_SECONDS)
            )
            service = build("drive", "v3", http=http, cache_discovery=False)
            self._local.service = service
        return service

    def _list_params(self) -> dict:
        params = {
            "supportsAllDrives": True,
            "includeItemsFromAllDrives": True,
        }
        if self.shared_drive_id:
            params["corpora"] = "drive"
            params["driveId"] = self.shared_drive_id
        return params

    def list_folder(self, folder_id: str, name: Optional[str] = None) -> list[SinkEntry]:
        """List non-trashed entries of a folder, optionally only those with an exact name"""
        query = f"'{_escape_query_value(folder_id)}' in parents and trashed=false"
        if name is not None:
            query = f"name='{_escape_query_value(name)}' and {query}"

        entries = []
        page_token = None
        try:
            while True:
                response = self.service.files().list(
                    q=query,
                    fields="nextPageToken, files(id,name,size,webViewLink)",
                    pageSize=100,
                    pageToken=page_token,
                    **self._list_params()
                ).execute()
                entries.extend(SinkEntry.from_drive(f) for f in response.get("files", []))
                page_token = response.get("nextPageToken")
                if not page_token:
                    break
        except TRANSPORT_ERRORS as e:
            raise SinkUploadException(f"Failed to list folder {folder_id}: {str(e)}")

        return entries

    def ensure_folder(self, name: str, parent_id: str) -> str:
        """Return the id of the named folder under parent_id, creating it if needed"""
        query = (
            f"name='{_escape_query_value(name)}' and mimeType='{FOLDER_MIME_TYPE}' "
            f"and '{_escape_query_value(parent_id)}' in parents and trashed=false"
        )
        try:
            response = self.service.files().list(
                q=query,
                fields="files(id,name)",
                **self._list_params()
            ).execute()
            files = response.get("files", [])
            if files:
                logger.debug("Found existing folder %s (%s)", name, files[0]["id"])
                return files[0]["id"]

            created = self.service.files().create(
                body={"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]},
                fields="id",
                supportsAllDrives=True
            ).execute()
        except TRANSPORT_ERRORS as e:
            raise SinkUploadException(f"Failed to ensure folder {name}: {str(e)}")

        if not created.get("id"):
            raise SinkUploadException(f"Failed to create folder {name} - no ID returned")

        logger.info("Created folder %s (%s) in %s", name, created["id"], parent_id)
        return created["id"]

    def upload_multipart(self, folder_id: str, name: str, mime_type: Optional[str], data: bytes) -> SinkEntry:
        """Upload through a resumable session, streamed in SINK_UPLOAD_CHUNK_BYTES pieces"""
        media = MediaIoBaseUpload(
            io.BytesIO(data),
            mimetype=mime_type or "application/octet-stream",
            chunksize=settings.SINK_UPLOAD_CHUNK_BYTES,
            resumable=True
        )
        try:
            request = self.service.files().create(
                body={"name": name, "parents": [folder_id]},
                media_body=media,
                fields=FILE_FIELDS,
                supportsAllDrives=True
            )
            response = None
            while response is None:
                status, response = request.next_chunk(num_retries=3)
                if status:
                    logger.debug("Uploading %s: %d%%", name, int(status.progress() * 100))
        except TRANSPORT_ERRORS as e:
            raise SinkUploadException(f"Multipart upload failed: {str(e)}")

        return self._to_entry(response, "multipart")

    def upload_simple(self, folder_id: str, name: str, mime_type: Optional[str], data: bytes) -> SinkEntry:
        """Upload metadata and content in a single request"""
        media = MediaIoBaseUpload(
            io.BytesIO(data),
            mimetype=mime_type or "application/octet-stream",
            resumable=False
        )
        try:
            response = self.service.files().create(
                body={"name": name, "parents": [folder_id]},
                media_body=media,
                fields=FILE_FIELDS,
                supportsAllDrives=True
            ).execute(num_retries=1)
        except TRANSPORT_ERRORS as e:
            raise SinkUploadException(f"Simple upload failed: {str(e)}")

        return self._to_entry(response, "simple")

    def _to_entry(self, response: Optional[dict], method: str) -> SinkEntry:
        if not response or not response.get("id"):
            raise SinkUploadException(f"No file ID returned from {method} upload")
        return SinkEntry.from_drive(response)
