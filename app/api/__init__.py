"""
API Routers
"""
from app.api.codes import router as codes_router
from app.api.users import router as users_router
from app.api.monitor import router as monitor_router

__all__ = [
    "codes_router",
    "users_router",
    "monitor_router",
]
