from sqlalchemy import Column, String, Integer, BigInteger, DateTime
from sqlalchemy.sql import func
from database import Base


class FileChunk(Base):
    __tablename__ = "file_chunks"

    # No foreign key to chunk_sessions: rows must survive a lost session row
    session_id = Column(String, primary_key=True, nullable=False)
    chunk_index = Column(Integer, primary_key=True, nullable=False)
    total_chunks = Column(Integer, nullable=False)
    original_file_name = Column(String, nullable=False)
    file_type = Column(String, nullable=True)
    chunk_storage_path = Column(String, nullable=False)
    chunk_size = Column(BigInteger, nullable=False)
    checksum = Column(String(64), nullable=True)
    gym_slug = Column(String, nullable=True)
    gym_name = Column(String, nullable=True)
    target_folder_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_activity = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"FileChunk(session_id={self.session_id}, chunk_index={self.chunk_index}, total_chunks={self.total_chunks}, chunk_storage_path={self.chunk_storage_path}, chunk_size={self.chunk_size})"
