"""Health check endpoint."""

from fastapi import APIRouter

from helpcenter import __version__

router = APIRouter(tags=["health"])


@router.get("/api/health")
async def health_check() -> dict:
    return {"status": "ok", "version": __version__}
