from __future__ import annotations

from fastapi import APIRouter

from . import ai, auth, health, projects

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(auth.router)
api_router.include_router(projects.router)
api_router.include_router(ai.router)

__all__ = ["api_router"]
