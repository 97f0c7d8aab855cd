import hashlib
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from exceptions.exceptions import IncompleteSessionException, IntegrityViolationException
from services.base import BaseService
from services.blob_store import BlobStore
from services.chunk_service import ChunkService
from services.session_service import SessionService
from services.sink_handoff_service import SinkHandoffService

logger = logging.getLogger(__name__)


@dataclass
class ReconstructionResult:
    session_id: str
    file_id: str
    file_name: str
    file_size: int
    sha256: str
    deduped: bool = False
    web_view_link: Optional[str] = None


class ReconstructionService(BaseService):
    def __init__(
        self,
        db: Session,
        blob_store: Optional[BlobStore] = None,
        handoff: Optional[SinkHandoffService] = None
    ):
        super().__init__(db, blob_store)
        self.session_service = SessionService(db, self.blob_store)
        self.chunk_service = ChunkService(db, self.blob_store)
        self._handoff = handoff

    @property
    def handoff(self) -> SinkHandoffService:
        if self._handoff is None:
            self._handoff = SinkHandoffService()
        return self._handoff

    def reconstruct(self, session_id: str) -> ReconstructionResult:
        """
        Rebuild a completed upload and deliver it to the sink.

        The session is deleted only after the sink accepted the file (or
        already had it). Any failure before that leaves the session intact
        so the call can be retried.

        Args:
            session_id: Upload session identifier

        Returns:
            ReconstructionResult with the sink file id and final byte length
        """
        session = self.session_service.get_session(session_id)

        if not session.is_complete:
            raise IncompleteSessionException(session_id, session.received_chunks, session.total_chunks)

        logger.info(
            "Reconstructing %s from %d chunks (session %s)",
            session.original_file_name, session.total_chunks, session_id
        )

        chunks = self.chunk_service.get_session_chunks(session_id, session.total_chunks)
        data = b"".join(chunks)

        expected_size = sum(len(chunk) for chunk in chunks)
        if len(data) != expected_size:
            raise IntegrityViolationException(
                session_id, f"reconstructed {len(data)} bytes, chunks total {expected_size}"
            )

        sha256 = hashlib.sha256(data).hexdigest()
        logger.info(
            "File reconstructed: %s (%.1fMB, sha256 %s)",
            session.original_file_name, len(data) / (1024 * 1024), sha256
        )

        file_name = session.original_file_name
        total_chunks = session.total_chunks
        result = self.handoff.deliver(
            data,
            file_name=file_name,
            mime_type=session.file_type,
            folder_id=session.target_folder_id
        )

        # The file is in the sink now; a concurrent reconstruct may already have cleaned up
        try:
            self.session_service.purge_session(session_id, total_chunks)
        except Exception:
            self.db.rollback()
            logger.exception("File %s delivered but session %s cleanup failed", result.file_id, session_id)

        return ReconstructionResult(
            session_id=session_id,
            file_id=result.file_id,
            file_name=file_name,
            file_size=len(data),
            sha256=sha256,
            deduped=result.deduped,
            web_view_link=result.web_view_link
        )
