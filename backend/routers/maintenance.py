from datetime import timedelta

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from typing import Optional

from database import get_db
from dependencies.storage import get_blob_store
from schemas.upload import CleanupResponse
from services.blob_store import BlobStore
from services.sweeper_service import SessionSweeper

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_sessions(
    retention_hours: Optional[float] = Query(None, gt=0, description="Inactivity window, SESSION_RETENTION_HOURS by default"),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store)
):
    """
    Delete upload sessions with no activity inside the retention window.
    """
    sweeper = SessionSweeper(db, blob_store)
    retention = timedelta(hours=retention_hours) if retention_hours else None
    removed = await run_in_threadpool(sweeper.sweep, retention)
    return {"ok": True, "removed": removed}
