from sqlalchemy import Column, String, Integer, Boolean, DateTime
from sqlalchemy.sql import func
from database import Base


class UploadSession(Base):
    __tablename__ = "chunk_sessions"

    session_id = Column(String, primary_key=True)
    original_file_name = Column(String, nullable=False)
    file_type = Column(String, nullable=True)
    total_chunks = Column(Integer, nullable=False)
    received_chunks = Column(Integer, nullable=False, default=0)
    is_complete = Column(Boolean, nullable=False, default=False)
    target_folder_id = Column(String, nullable=False)
    gym_slug = Column(String, nullable=True, index=True)
    gym_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_activity = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"UploadSession(session_id={self.session_id}, original_file_name={self.original_file_name}, received_chunks={self.received_chunks}, total_chunks={self.total_chunks}, is_complete={self.is_complete}, last_activity={self.last_activity})"
