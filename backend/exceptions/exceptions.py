from typing import Optional


class ChunkUploadException(Exception):
    """Base class for chunked upload errors"""

    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SessionNotFoundException(ChunkUploadException):
    def __init__(self, session_id: str):
        super().__init__(f"Upload session not found: {session_id}")
        self.session_id = session_id


class InvalidChunkException(ChunkUploadException):
    pass


class StorageException(ChunkUploadException):
    """Blob store read or write failed"""

    retryable = True


class IncompleteSessionException(ChunkUploadException):
    def __init__(self, session_id: str, received_chunks: int, total_chunks: int):
        super().__init__(f"Incomplete: {received_chunks}/{total_chunks} chunks received")
        self.session_id = session_id
        self.received_chunks = received_chunks
        self.total_chunks = total_chunks


class IntegrityViolationException(ChunkUploadException):
    """A chunk row without a retrievable blob, or a missing index in a complete session"""

    def __init__(self, session_id: str, message: str, missing_indices: Optional[list[int]] = None):
        super().__init__(f"Integrity violation in session {session_id}: {message}")
        self.session_id = session_id
        self.missing_indices = missing_indices or []


class SinkUploadException(ChunkUploadException):
    retryable = True


class PartialCleanupException(ChunkUploadException):
    def __init__(self, session_id: str, failed_paths: list[str]):
        super().__init__(f"Failed to delete {len(failed_paths)} blob(s) for session {session_id}")
        self.session_id = session_id
        self.failed_paths = failed_paths
