"""
Health check endpoints.
"""

from fastapi import APIRouter

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def health_check():
    """Liveness probe."""
    return {"ok": True}


@router.get("/v1/health/status")
async def health_status():
    return {"status": "healthy", "service": "firstprinciples-portal"}
