"""API routers."""
from .endpoints import router as endpoints_router
from .hits import router as hits_router

__all__ = ["endpoints_router", "hits_router"]
