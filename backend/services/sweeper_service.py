import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from core.config import settings
from models.file_chunk import FileChunk
from models.upload_session import UploadSession
from services.base import BaseService
from services.blob_store import BlobStore
from services.session_service import SessionService

logger = logging.getLogger(__name__)


class SessionSweeper(BaseService):
    """Deletes sessions, chunk rows and chunk blobs that saw no activity within the retention window"""

    def __init__(self, db: Session, blob_store: Optional[BlobStore] = None):
        super().__init__(db, blob_store)
        self.session_service = SessionService(db, self.blob_store)

    def find_stale_sessions(self, cutoff: datetime) -> dict[str, Optional[int]]:
        """Session id -> total_chunks for everything last active strictly before cutoff"""
        stale = {
            session_id: total_chunks
            for session_id, total_chunks in self.db.query(UploadSession.session_id, UploadSession.total_chunks)
            .filter(UploadSession.last_activity < cutoff)
            .all()
        }

        # Chunk rows whose session row is gone are judged by their own activity
        orphans = (
            self.db.query(FileChunk.session_id, FileChunk.total_chunks)
            .outerjoin(UploadSession, UploadSession.session_id == FileChunk.session_id)
            .filter(UploadSession.session_id.is_(None), FileChunk.last_activity < cutoff)
            .distinct()
            .all()
        )
        for session_id, total_chunks in orphans:
            stale.setdefault(session_id, total_chunks)

        return stale

    def sweep(self, retention: Optional[timedelta] = None, now: Optional[datetime] = None) -> int:
        """
        Remove stale sessions.

        Args:
            retention: Inactivity window, SESSION_RETENTION_HOURS by default
            now: Reference time, current UTC time by default

        Returns:
            Number of sessions removed
        """
        if retention is None:
            retention = timedelta(hours=settings.SESSION_RETENTION_HOURS)
        now = now or datetime.now(timezone.utc)
        cutoff = now - retention

        stale = self.find_stale_sessions(cutoff)
        logger.info("Sweeping %d stale session(s) inactive since %s", len(stale), cutoff.isoformat())

        removed = 0
        for session_id, total_chunks in stale.items():
            try:
                failed = self.session_service.purge_session(session_id, total_chunks)
            except Exception:
                self.db.rollback()
                logger.exception("Failed to remove stale session %s", session_id)
                continue

            if failed:
                logger.warning("Session %s removed with %d orphaned blob(s)", session_id, len(failed))
            removed += 1

        logger.info("Sweep removed %d session(s)", removed)
        return removed
