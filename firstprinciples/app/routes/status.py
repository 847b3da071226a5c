"""
Status display endpoint.

Returns the badge variant and human-readable label the portal uses for a
case status, review status or final classification value.
"""

from fastapi import APIRouter

from firstprinciples.app.services.status import describe_status

router = APIRouter(prefix="/v1", tags=["status"])


@router.get("/status/{value}")
async def get_status_display(value: str):
    variant, label = describe_status(value)
    return {"value": value, "variant": variant.value, "label": label}
