from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class SessionCreateRequest(BaseModel):
    """Request to create an upload session"""
    session_id: str = Field(..., min_length=1, max_length=128)
    original_file_name: str = Field(..., min_length=1)
    file_type: Optional[str] = None
    total_chunks: int = Field(..., ge=1)
    target_folder_id: str = Field(..., min_length=1)
    gym_slug: Optional[str] = None
    gym_name: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "session_id": "upload-1718000000000-k3j9",
                "original_file_name": "clip.mp4",
                "file_type": "video/mp4",
                "total_chunks": 3,
                "target_folder_id": "1AbCdEfGhIjKlMnOp",
                "gym_slug": "iron-temple",
                "gym_name": "Iron Temple"
            }
        }


class SessionResponse(BaseModel):
    session_id: str
    original_file_name: str
    file_type: Optional[str]
    total_chunks: int
    received_chunks: int
    is_complete: bool
    target_folder_id: str
    gym_slug: Optional[str]
    gym_name: Optional[str]
    created_at: Optional[datetime]
    last_activity: Optional[datetime]

    class Config:
        from_attributes = True


class SessionStatusResponse(BaseModel):
    """Upload progress for a session"""
    session_id: str
    original_file_name: str
    file_type: Optional[str]
    received_chunks: int
    total_chunks: int
    is_complete: bool
    received_indices: list[int]
    missing_indices: list[int]
    target_folder_id: str
    created_at: Optional[datetime]
    last_activity: Optional[datetime]


class ChunkUploadResponse(BaseModel):
    success: bool = True
    session_id: str
    chunk_index: int
    received_chunks: int
    total_chunks: int
    is_complete: bool
    message: str


class ReconstructResponse(BaseModel):
    success: bool = True
    message: str
    session_id: str
    file_id: str
    file_name: str
    file_size: int
    sha256: str
    deduped: bool
    web_view_link: Optional[str] = None

    class Config:
        from_attributes = True


class CleanupResponse(BaseModel):
    ok: bool
    removed: int
