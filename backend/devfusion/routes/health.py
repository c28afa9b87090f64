from __future__ import annotations

from fastapi import APIRouter

from devfusion.database import ping_db
from devfusion.models.api import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    if await ping_db():
        return HealthResponse(status="ok", database="connected")
    return HealthResponse(status="degraded", database="disconnected")
