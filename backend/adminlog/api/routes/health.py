"""Liveness endpoint (no authentication)."""

from fastapi import APIRouter, Request

from adminlog import __version__

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request):
    hub = getattr(request.app.state, "hub", None)
    return {
        "status": "ok",
        "version": __version__,
        "realtime": hub.online_stats() if hub is not None else None,
    }
