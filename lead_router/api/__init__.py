"""
API package initialization.

This package contains FastAPI router modules for the Lead Router service:
- routing: evaluate, execute and preview routing decisions; queue metrics;
  routing state (enable, disable, mode)
- manager: proposal review (list, approve, reject, override, bulk approve)
"""

from fastapi import APIRouter

from lead_router.api.routing import router as routing_router
from lead_router.api.manager import router as manager_router

# Create main API router
api_router = APIRouter()

api_router.include_router(routing_router, prefix="/routing", tags=["routing"])
api_router.include_router(manager_router, prefix="/manager", tags=["manager"])

__all__ = [
    "api_router",
    "routing_router",
    "manager_router",
]
