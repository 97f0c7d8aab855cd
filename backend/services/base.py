from sqlalchemy.orm import Session
from typing import Optional
from core.config import settings
from services.blob_store import BlobStore

class BaseService:
    def __init__(self, db: Session, blob_store: Optional[BlobStore] = None):
        self.db = db
        self._blob_store = blob_store
        self.MAX_CHUNK_BYTES = settings.MAX_CHUNK_SIZE_MB * 1024 * 1024

    @property
    def blob_store(self) -> BlobStore:
        # Created lazily so metadata-only operations never build an S3 client
        if self._blob_store is None:
            self._blob_store = BlobStore()
        return self._blob_store

    def _generate_chunk_path(self, session_id: str, chunk_index: int) -> str:
        """Deterministic blob key for a chunk, so a re-sent index overwrites the same blob"""

        return f"{settings.CHUNK_KEY_PREFIX}/{session_id}/{chunk_index:06d}"
