"""
Admin / observability endpoints
===============================

GET /api/v1/admin/sessions -- fetch status of every open driver session
GET /api/v1/admin/health   -- simple health check
"""

from fastapi import APIRouter, Depends, Request

from ridepilot.api.dependencies import get_registry
from ridepilot.api.middleware import limiter
from ridepilot.api.schemas import HealthResponse, SessionStatusResponse
from ridepilot.workers.sessions import SessionRegistry

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/sessions",
    response_model=list[SessionStatusResponse],
    summary="List open driver sessions",
)
@limiter.limit("100/minute")
async def list_sessions(
    request: Request,
    registry: SessionRegistry = Depends(get_registry),
):
    return [SessionStatusResponse.from_status(s) for s in registry.active()]


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
