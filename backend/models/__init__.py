from .upload_session import UploadSession
from .file_chunk import FileChunk

__all__ = ["UploadSession", "FileChunk"]
