from .upload import router as upload_router
from .maintenance import router as maintenance_router

__all__ = ["upload_router", "maintenance_router"]
