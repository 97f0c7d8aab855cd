import logging
import re
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select, update, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from exceptions.exceptions import (
    InvalidChunkException,
    PartialCleanupException,
    SessionNotFoundException,
)
from models.file_chunk import FileChunk
from models.upload_session import UploadSession
from services.base import BaseService
from services.blob_store import BlobStore

logger = logging.getLogger(__name__)

SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


class SessionService(BaseService):
    def __init__(self, db: Session, blob_store: Optional[BlobStore] = None):
        super().__init__(db, blob_store)

    def validate_session_id(self, session_id: str) -> None:
        # Session ids become part of blob keys
        if not session_id or not SESSION_ID_PATTERN.match(session_id) or session_id in (".", ".."):
            raise InvalidChunkException(f"Invalid session id: {session_id!r}")

    def create_session(
        self,
        session_id: str,
        original_file_name: str,
        total_chunks: int,
        target_folder_id: str,
        file_type: Optional[str] = None,
        gym_slug: Optional[str] = None,
        gym_name: Optional[str] = None
    ) -> UploadSession:
        """
        Create an upload session. Creating an existing session is a no-op.

        Args:
            session_id: Client generated session identifier
            original_file_name: Name of the file being uploaded
            total_chunks: Number of chunks the client will send
            target_folder_id: Destination folder in the file sink
            file_type: MIME type of the file
            gym_slug: Tenant slug
            gym_name: Tenant display name

        Returns:
            The existing or newly created UploadSession
        """
        self.validate_session_id(session_id)
        if total_chunks < 1:
            raise InvalidChunkException("total_chunks must be at least 1")
        if not original_file_name:
            raise InvalidChunkException("original_file_name is required")

        existing = self.db.get(UploadSession, session_id)
        if existing:
            return existing

        now = datetime.now(timezone.utc)
        session = UploadSession(
            session_id=session_id,
            original_file_name=original_file_name,
            file_type=file_type,
            total_chunks=total_chunks,
            received_chunks=0,
            is_complete=False,
            target_folder_id=target_folder_id,
            gym_slug=gym_slug,
            gym_name=gym_name,
            created_at=now,
            last_activity=now
        )

        try:
            self.db.add(session)
            self.db.commit()
        except IntegrityError:
            # Another request created it first
            self.db.rollback()
            return self.get_session(session_id)

        logger.info("Created upload session %s for %s (%d chunks)", session_id, original_file_name, total_chunks)
        return session

    def find_session(self, session_id: str) -> Optional[UploadSession]:
        """Get a session, rebuilding the row from its chunk rows if it was lost"""
        session = self.db.get(UploadSession, session_id)
        if session:
            return session

        chunk = (
            self.db.query(FileChunk)
            .filter(FileChunk.session_id == session_id)
            .order_by(FileChunk.chunk_index)
            .first()
        )
        if not chunk or not chunk.target_folder_id:
            return None

        logger.warning("Session row missing for %s, restoring it from chunk rows", session_id)
        session = UploadSession(
            session_id=session_id,
            original_file_name=chunk.original_file_name,
            file_type=chunk.file_type,
            total_chunks=chunk.total_chunks,
            received_chunks=0,
            is_complete=False,
            target_folder_id=chunk.target_folder_id,
            gym_slug=chunk.gym_slug,
            gym_name=chunk.gym_name,
            created_at=chunk.created_at,
            last_activity=chunk.last_activity
        )
        try:
            self.db.add(session)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return self.db.get(UploadSession, session_id)

        return self.refresh_progress(session_id, touch=False)

    def get_session(self, session_id: str) -> UploadSession:
        session = self.find_session(session_id)
        if not session:
            raise SessionNotFoundException(session_id)
        return session

    def refresh_progress(self, session_id: str, touch: bool = True) -> UploadSession:
        """
        Recompute received_chunks from the chunk rows.

        A single UPDATE with a correlated count keeps this correct when
        chunks of the same session are stored concurrently or re-sent.
        """
        received = (
            select(func.count())
            .select_from(FileChunk)
            .where(FileChunk.session_id == session_id)
            .scalar_subquery()
        )
        values = {
            "received_chunks": received,
            "is_complete": received == UploadSession.total_chunks,
        }
        if touch:
            values["last_activity"] = datetime.now(timezone.utc)

        self.db.execute(
            update(UploadSession)
            .where(UploadSession.session_id == session_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

        session = self.db.get(UploadSession, session_id)
        if not session:
            raise SessionNotFoundException(session_id)
        self.db.refresh(session)
        return session

    def get_received_indices(self, session_id: str) -> list[int]:
        rows = (
            self.db.query(FileChunk.chunk_index)
            .filter(FileChunk.session_id == session_id)
            .order_by(FileChunk.chunk_index)
            .all()
        )
        return [row[0] for row in rows]

    def get_session_status(self, session_id: str) -> dict:
        """Progress snapshot for a session"""
        session = self.get_session(session_id)
        received = self.get_received_indices(session_id)
        received_set = set(received)

        return {
            "session_id": session.session_id,
            "original_file_name": session.original_file_name,
            "file_type": session.file_type,
            "received_chunks": session.received_chunks,
            "total_chunks": session.total_chunks,
            "is_complete": session.is_complete,
            "received_indices": received,
            "missing_indices": [i for i in range(session.total_chunks) if i not in received_set],
            "target_folder_id": session.target_folder_id,
            "created_at": session.created_at,
            "last_activity": session.last_activity
        }

    def delete_session(self, session_id: str) -> list[str]:
        """
        Delete a session, its chunk rows and its chunk blobs.

        Blob deletion failures are logged and do not stop the row cleanup.

        Returns:
            Blob paths that could not be deleted
        """
        session = self.db.get(UploadSession, session_id)
        has_chunks = (
            self.db.query(FileChunk.chunk_index)
            .filter(FileChunk.session_id == session_id)
            .first()
        ) is not None

        if not session and not has_chunks:
            raise SessionNotFoundException(session_id)

        return self.purge_session(session_id, session.total_chunks if session else None)

    def purge_session(self, session_id: str, total_chunks: Optional[int] = None) -> list[str]:
        paths = {
            row[0]
            for row in self.db.query(FileChunk.chunk_storage_path)
            .filter(FileChunk.session_id == session_id)
            .all()
        }
        # Blobs written without a committed chunk row live at the same deterministic paths
        if total_chunks:
            paths.update(self._generate_chunk_path(session_id, i) for i in range(total_chunks))

        failed = []
        try:
            self._delete_blobs(session_id, sorted(paths))
        except PartialCleanupException as e:
            logger.warning("%s: %s", e.message, ", ".join(e.failed_paths))
            failed = e.failed_paths

        try:
            self.db.execute(delete(FileChunk).where(FileChunk.session_id == session_id))
            self.db.execute(delete(UploadSession).where(UploadSession.session_id == session_id))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Cleaned up session %s (%d blob paths)", session_id, len(paths))
        return failed

    def _delete_blobs(self, session_id: str, paths: list[str]) -> None:
        if not paths:
            return
        failed = self.blob_store.delete_many(paths)
        if failed:
            raise PartialCleanupException(session_id, failed)
