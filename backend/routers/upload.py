from fastapi import APIRouter, Depends, status, HTTPException, UploadFile, File, Form
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from typing import Optional

from database import get_db
from dependencies.storage import get_blob_store, get_drive_sink, get_sink_handoff
from exceptions.exceptions import ChunkUploadException
from routers.errors import to_http_exception
from schemas.folder import UploadStructureRequest, UploadStructureResponse
from schemas.upload import (
    SessionCreateRequest,
    SessionResponse,
    SessionStatusResponse,
    ChunkUploadResponse,
    ReconstructResponse,
)
from services.blob_store import BlobStore
from services.chunk_service import ChunkService
from services.drive_sink import GoogleDriveSink
from services.folder_service import FolderService
from services.reconstruction_service import ReconstructionService
from services.session_service import SessionService
from services.sink_handoff_service import SinkHandoffService

router = APIRouter(prefix="/upload", tags=["upload"])


@router.post("/sessions", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    request: SessionCreateRequest,
    db: Session = Depends(get_db)
):
    """
    Create a chunked upload session.

    Creating a session that already exists returns it unchanged.
    """
    session_service = SessionService(db)
    try:
        return session_service.create_session(
            session_id=request.session_id,
            original_file_name=request.original_file_name,
            total_chunks=request.total_chunks,
            target_folder_id=request.target_folder_id,
            file_type=request.file_type,
            gym_slug=request.gym_slug,
            gym_name=request.gym_name
        )
    except ChunkUploadException as e:
        raise to_http_exception(e)


@router.post("/chunk", response_model=ChunkUploadResponse)
async def upload_chunk(
    session_id: str = Form(...),
    chunk_index: int = Form(...),
    total_chunks: int = Form(...),
    original_file_name: str = Form(...),
    file_type: Optional[str] = Form(None),
    gym_slug: Optional[str] = Form(None),
    gym_name: Optional[str] = Form(None),
    target_folder_id: Optional[str] = Form(None),
    chunk: UploadFile = File(...),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store)
):
    """
    Store one chunk of a file.

    - **session_id**: Client generated session identifier
    - **chunk_index**: 0-based chunk index
    - **total_chunks**: Number of chunks in the file
    - **chunk**: The chunk bytes

    The first chunk of an unknown session creates it.
    """
    try:
        data = await chunk.read()
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Error reading chunk: {str(e)}"
        )
    finally:
        await chunk.close()

    chunk_service = ChunkService(db, blob_store)
    try:
        session = await run_in_threadpool(
            chunk_service.store_chunk,
            session_id=session_id,
            chunk_index=chunk_index,
            total_chunks=total_chunks,
            data=data,
            original_file_name=original_file_name,
            target_folder_id=target_folder_id,
            file_type=file_type,
            gym_slug=gym_slug,
            gym_name=gym_name
        )
    except ChunkUploadException as e:
        raise to_http_exception(e)

    return ChunkUploadResponse(
        session_id=session_id,
        chunk_index=chunk_index,
        received_chunks=session.received_chunks,
        total_chunks=session.total_chunks,
        is_complete=session.is_complete,
        message=f"Chunk {chunk_index + 1} uploaded successfully"
    )


@router.get("/sessions/{session_id}", response_model=SessionStatusResponse)
async def get_session_status(
    session_id: str,
    db: Session = Depends(get_db)
):
    """Upload progress for a session"""
    session_service = SessionService(db)
    try:
        return session_service.get_session_status(session_id)
    except ChunkUploadException as e:
        raise to_http_exception(e)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def abort_session(
    session_id: str,
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store)
):
    """
    Abort an upload and delete everything stored for it.
    """
    session_service = SessionService(db, blob_store)
    try:
        await run_in_threadpool(session_service.delete_session, session_id)
        return None
    except ChunkUploadException as e:
        raise to_http_exception(e)


@router.post("/sessions/{session_id}/reconstruct", response_model=ReconstructResponse)
async def reconstruct_file(
    session_id: str,
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    handoff: SinkHandoffService = Depends(get_sink_handoff)
):
    """
    Reassemble a completed upload and hand it to Google Drive.

    Returns the Drive file id. If the target folder already holds a file
    with the same name and size, that file is reused and **deduped** is true.
    """
    reconstruction_service = ReconstructionService(db, blob_store, handoff)
    try:
        result = await run_in_threadpool(reconstruction_service.reconstruct, session_id)
    except ChunkUploadException as e:
        raise to_http_exception(e)

    return ReconstructResponse(
        message="File reconstructed and uploaded successfully",
        session_id=result.session_id,
        file_id=result.file_id,
        file_name=result.file_name,
        file_size=result.file_size,
        sha256=result.sha256,
        deduped=result.deduped,
        web_view_link=result.web_view_link
    )


@router.post("/structure", response_model=UploadStructureResponse)
async def ensure_upload_structure(
    request: UploadStructureRequest,
    sink: GoogleDriveSink = Depends(get_drive_sink)
):
    """
    Ensure the Drive folder tree for a gym upload and return its folder ids.
    """
    folder_service = FolderService(sink)
    try:
        return await run_in_threadpool(
            folder_service.ensure_upload_structure,
            gym_name=request.gym_name,
            slot_names=request.slot_names,
            upload_label=request.upload_label,
            root_folder_id=request.root_folder_id
        )
    except ChunkUploadException as e:
        raise to_http_exception(e)
