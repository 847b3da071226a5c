"""
Notification endpoints. A user can only mark their own notifications.

Updates run with the caller's access token; the notifications_update_own
policy limits them to the caller's rows.
"""

from fastapi import APIRouter, Depends, Request

from firstprinciples.app.routes.deps import action_response, get_notification_actions, get_route_limiter
from firstprinciples.app.security.auth import Identity, get_current_identity
from firstprinciples.app.services.admin_actions import NotificationActions

router = APIRouter(prefix="/v1/notifications", tags=["notifications"])

limiter = get_route_limiter()


@router.post("/read-all")
@limiter.limit("30/minute")
def mark_all_notifications_as_read(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    actions: NotificationActions = Depends(get_notification_actions),
):
    return action_response(actions.mark_all_notifications_as_read(identity.sub))


@router.post("/{notification_id}/read")
@limiter.limit("60/minute")
def mark_notification_as_read(
    request: Request,
    notification_id: str,
    identity: Identity = Depends(get_current_identity),
    actions: NotificationActions = Depends(get_notification_actions),
):
    return action_response(actions.mark_notification_as_read(identity.sub, notification_id))
