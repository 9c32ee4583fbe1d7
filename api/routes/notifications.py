# SPDX-License-Identifier: Apache-2.0

"""
Notification inbox endpoints.

A user only ever sees and changes their own notifications; anyone else's
notification id answers 404.
"""

from flask import request, jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from models.requests import NotificationListParams
from middleware.auth import require_auth, current_actor
from middleware.error_handler import validation_error_from_pydantic

notifications_tag = Tag(name="Notifications", description="Personal notification inbox")
notifications_bp = APIBlueprint(
    'notifications',
    __name__,
    url_prefix='/api/notifications',
    abp_tags=[notifications_tag]
)


class NotificationPath(BaseModel):
    notification_id: str = Field(..., description="Notification ID")


@notifications_bp.get('')
@require_auth
def list_notifications():
    """List your notifications, newest first."""
    try:
        params = NotificationListParams.model_validate(request.args.to_dict())
    except PydanticValidationError as e:
        raise validation_error_from_pydantic(e, "Invalid query parameters")

    page = current_app.notification_inbox.list_notifications(
        current_actor(),
        unread_only=params.unread_only,
        page=params.page,
        page_size=params.page_size
    )
    return jsonify(dict(page.model_dump(mode="json"), total_pages=page.total_pages))


@notifications_bp.post('/read-all')
@require_auth
def mark_all_notifications_read():
    """Mark all of your notifications as read."""
    updated = current_app.notification_inbox.mark_all_read(current_actor())
    return jsonify({"updated": updated})


@notifications_bp.post('/<notification_id>/read')
@require_auth
def mark_notification_read(path: NotificationPath):
    """Mark one notification as read."""
    notification = current_app.notification_inbox.mark_read(current_actor(), path.notification_id)
    return jsonify(notification.model_dump(mode="json"))


@notifications_bp.delete('/<notification_id>')
@require_auth
def clear_notification(path: NotificationPath):
    """Remove one notification from your inbox."""
    current_app.notification_inbox.clear(current_actor(), path.notification_id)
    return '', 204
