"""
Remote image allowlist endpoint.
"""

from fastapi import APIRouter, Query

from firstprinciples.app.services.image_hosts import is_allowed_remote_image

router = APIRouter(prefix="/v1/images", tags=["images"])


@router.get("/allowed")
async def check_remote_image(url: str = Query(..., min_length=1)):
    """Report whether the portal may load an image from ``url``."""
    return {"url": url, "allowed": is_allowed_remote_image(url)}
