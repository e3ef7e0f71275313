"""
app/api/routers package marker.
"""

from app.api.routers.scan_import import router as scan_import_router

__all__ = [
    "scan_import_router",
]
