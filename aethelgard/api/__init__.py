"""FastAPI endpoints under /api.

Endpoint groups: health, session (character, choice, rest, wake, reward,
finish, logout, chat), archives and known characters. Session endpoints
identify the player by the X-User-Id header set by the authentication
layer in front of this service.
"""

from fastapi import APIRouter

from .archives import router as archives_router
from .health import router as health_router
from .session import router as session_router

router = APIRouter()
router.include_router(health_router)
router.include_router(session_router)
router.include_router(archives_router)
