import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from core.config import settings
from exceptions.exceptions import (
    IntegrityViolationException,
    InvalidChunkException,
    StorageException,
)
from models.file_chunk import FileChunk
from models.upload_session import UploadSession
from services.base import BaseService
from services.blob_store import BlobStore
from services.session_service import SessionService

logger = logging.getLogger(__name__)

# Columns refreshed when a chunk index is re-sent
UPSERT_COLUMNS = (
    "total_chunks",
    "original_file_name",
    "file_type",
    "chunk_storage_path",
    "chunk_size",
    "checksum",
    "gym_slug",
    "gym_name",
    "target_folder_id",
    "last_activity",
)


class ChunkService(BaseService):
    def __init__(self, db: Session, blob_store: Optional[BlobStore] = None):
        super().__init__(db, blob_store)
        self.session_service = SessionService(db, self.blob_store)

    def store_chunk(
        self,
        session_id: str,
        chunk_index: int,
        total_chunks: int,
        data: bytes,
        original_file_name: str,
        target_folder_id: Optional[str] = None,
        file_type: Optional[str] = None,
        gym_slug: Optional[str] = None,
        gym_name: Optional[str] = None
    ) -> UploadSession:
        """
        Store one chunk and recompute the session's progress.

        The blob is written first and the chunk row second. A failure between
        the two leaves an orphaned blob at the chunk's deterministic path,
        which session deletion also removes.

        Args:
            session_id: Upload session identifier
            chunk_index: 0-based index of this chunk
            total_chunks: Number of chunks in the file
            data: Chunk bytes
            original_file_name: Name of the file being uploaded
            target_folder_id: Destination folder, required for the first chunk of a new session
            file_type: MIME type of the file
            gym_slug: Tenant slug
            gym_name: Tenant display name

        Returns:
            The session with refreshed received_chunks and is_complete
        """
        self.session_service.validate_session_id(session_id)
        self._validate_chunk(chunk_index, total_chunks, data)

        session = self.session_service.find_session(session_id)
        if not session:
            if not target_folder_id:
                raise InvalidChunkException("target_folder_id is required to start a session")
            session = self.session_service.create_session(
                session_id=session_id,
                original_file_name=original_file_name,
                total_chunks=total_chunks,
                target_folder_id=target_folder_id,
                file_type=file_type,
                gym_slug=gym_slug,
                gym_name=gym_name
            )
        elif session.total_chunks != total_chunks:
            raise InvalidChunkException(
                f"total_chunks mismatch: session expects {session.total_chunks}, got {total_chunks}"
            )

        chunk_path = self._generate_chunk_path(session_id, chunk_index)
        self.blob_store.put(chunk_path, data)

        self._upsert_chunk_row({
            "session_id": session_id,
            "chunk_index": chunk_index,
            "total_chunks": session.total_chunks,
            "original_file_name": session.original_file_name,
            "file_type": session.file_type,
            "chunk_storage_path": chunk_path,
            "chunk_size": len(data),
            "checksum": hashlib.sha256(data).hexdigest(),
            "gym_slug": session.gym_slug,
            "gym_name": session.gym_name,
            "target_folder_id": session.target_folder_id,
            "created_at": datetime.now(timezone.utc),
            "last_activity": datetime.now(timezone.utc),
        })

        session = self.session_service.refresh_progress(session_id)

        logger.info(
            "Stored chunk %d/%d for session %s (%d bytes)",
            chunk_index + 1, session.total_chunks, session_id, len(data)
        )
        if session.is_complete:
            logger.info("All chunks received for session %s, ready for reconstruction", session_id)

        return session

    def _validate_chunk(self, chunk_index: int, total_chunks: int, data: bytes) -> None:
        if total_chunks < 1 or total_chunks > settings.MAX_TOTAL_CHUNKS:
            raise InvalidChunkException(f"total_chunks must be between 1 and {settings.MAX_TOTAL_CHUNKS}")
        if chunk_index < 0 or chunk_index >= total_chunks:
            raise InvalidChunkException(f"Invalid chunk index {chunk_index}. Must be between 0 and {total_chunks - 1}")
        if len(data) > self.MAX_CHUNK_BYTES:
            raise InvalidChunkException(f"Chunk exceeds the {settings.MAX_CHUNK_SIZE_MB}MB limit")

    def _upsert_chunk_row(self, values: dict) -> None:
        """Insert the chunk row, or overwrite the row already stored for (session_id, chunk_index)"""
        dialect = self.db.get_bind().dialect.name

        try:
            if dialect in ("postgresql", "sqlite"):
                insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
                stmt = insert(FileChunk).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[FileChunk.session_id, FileChunk.chunk_index],
                    set_={name: getattr(stmt.excluded, name) for name in UPSERT_COLUMNS}
                )
                self.db.execute(stmt)
            else:
                self.db.merge(FileChunk(**values))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def get_chunk_rows(self, session_id: str) -> list[FileChunk]:
        return (
            self.db.query(FileChunk)
            .filter(FileChunk.session_id == session_id)
            .order_by(FileChunk.chunk_index)
            .all()
        )

    def get_session_chunks(self, session_id: str, total_chunks: Optional[int] = None) -> list[bytes]:
        """
        Download every chunk of a session in parallel.

        Buffers are placed by chunk index, whatever order the downloads
        finish in. Raises IntegrityViolationException instead of returning
        a short list when an index has no row or its blob cannot be read.
        """
        rows = self.get_chunk_rows(session_id)
        if not rows:
            raise IntegrityViolationException(session_id, "no chunks stored")

        if total_chunks is None:
            total_chunks = rows[0].total_chunks

        by_index = {row.chunk_index: row for row in rows}
        missing = [i for i in range(total_chunks) if i not in by_index]
        if missing:
            raise IntegrityViolationException(
                session_id,
                f"missing {len(missing)} of {total_chunks} chunks",
                missing_indices=missing
            )
        unexpected = [i for i in by_index if i >= total_chunks]
        if unexpected:
            raise IntegrityViolationException(session_id, f"unexpected chunk indices {unexpected}")

        max_workers = total_chunks
        if settings.CHUNK_DOWNLOAD_MAX_WORKERS:
            max_workers = min(total_chunks, settings.CHUNK_DOWNLOAD_MAX_WORKERS)

        buffers: list[Optional[bytes]] = [None] * total_chunks
        failures = {}

        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="chunk-download") as executor:
            futures = {
                executor.submit(self.blob_store.get, by_index[i].chunk_storage_path): i
                for i in range(total_chunks)
            }
            for future in as_completed(futures):
                index = futures[future]
                try:
                    buffers[index] = future.result()
                except StorageException as e:
                    failures[index] = e.message

        if failures:
            indices = sorted(failures)
            logger.error("Chunk downloads failed for session %s: %s", session_id, failures)
            raise IntegrityViolationException(
                session_id,
                f"could not read blobs for chunks {indices}",
                missing_indices=indices
            )

        for i, data in enumerate(buffers):
            self._verify_chunk(session_id, by_index[i], data)

        return buffers

    def _verify_chunk(self, session_id: str, row: FileChunk, data: bytes) -> None:
        if len(data) != row.chunk_size:
            raise IntegrityViolationException(
                session_id,
                f"chunk {row.chunk_index} is {len(data)} bytes, expected {row.chunk_size}",
                missing_indices=[row.chunk_index]
            )
        if row.checksum and hashlib.sha256(data).hexdigest() != row.checksum:
            raise IntegrityViolationException(
                session_id,
                f"checksum mismatch for chunk {row.chunk_index}",
                missing_indices=[row.chunk_index]
            )
