from fastapi import HTTPException, status

from exceptions.exceptions import (
    ChunkUploadException,
    IncompleteSessionException,
    IntegrityViolationException,
    InvalidChunkException,
    SessionNotFoundException,
    SinkUploadException,
    StorageException,
)

STATUS_CODES = {
    SessionNotFoundException: status.HTTP_404_NOT_FOUND,
    InvalidChunkException: status.HTTP_400_BAD_REQUEST,
    IncompleteSessionException: status.HTTP_409_CONFLICT,
    IntegrityViolationException: status.HTTP_500_INTERNAL_SERVER_ERROR,
    StorageException: status.HTTP_502_BAD_GATEWAY,
    SinkUploadException: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_exception(e: ChunkUploadException) -> HTTPException:
    """Translate a chunked upload error into the response the client sees"""
    status_code = next(
        (code for exc_type, code in STATUS_CODES.items() if isinstance(e, exc_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR
    )

    detail = {"message": e.message, "retryable": e.retryable}
    if isinstance(e, IncompleteSessionException):
        detail["received_chunks"] = e.received_chunks
        detail["total_chunks"] = e.total_chunks
    if isinstance(e, IntegrityViolationException):
        detail["missing_indices"] = e.missing_indices

    return HTTPException(status_code=status_code, detail=detail)
