# SPDX-License-Identifier: Apache-2.0

"""
Notification delivery and inbox services.

``NotificationFanout`` consumes domain events: for every addressed recipient
it persists a Notification record and pushes it to the recipient's personal
channel, then pushes the event to the broadcast channels. Delivery is
best-effort and never fails the operation that emitted the event.

``NotificationInbox`` serves a recipient's stored notifications.
"""

import logging
from typing import Any, Dict

from opentelemetry import trace

from models.base import utcnow
from models.entities import Actor, Notification
from models.enums import NotificationType
from models.events import BaseDomainEvent
from models.responses import NotificationPage
from domain.authorization import ADMIN_DASHBOARD_CHANNEL, user_channel
from domain.notifications import RecipientNotice, build_push_message, plan_delivery
from middleware.error_handler import NotFoundError, ValidationError
from services.connections import ConnectionRegistry
from services.store import NOTIFICATIONS, IssueStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

MAX_PAGE_SIZE = 100


class NotificationFanout:
    """Event-bus consumer turning domain events into notifications and pushes."""

    def __init__(self, store: IssueStore, registry: ConnectionRegistry):
        self.store = store
        self.registry = registry

    def _persist(self, event: BaseDomainEvent, notice: RecipientNotice) -> str:
        """Store the notification once per (event, recipient); return its id."""
        notification = Notification(
            recipient_id=notice.recipient_id,
            type=event.type,
            title=notice.title,
            message=notice.message,
            payload=event.to_message()["payload"],
            event_id=event.event_id,
            issue_id=event.issue_id
        )
        key = {"event_id": event.event_id, "recipient_id": notice.recipient_id}
        if self.store.insert_if_absent(NOTIFICATIONS, key, notification.to_document()):
            return notification.id

        logger.debug(
            "Notification already stored for event",
            extra={"extra_fields": key}
        )
        existing = self.store.find_by_filter(NOTIFICATIONS, key, limit=1)
        return existing[0]["id"] if existing else notification.id

    def handle(self, event: BaseDomainEvent) -> None:
        """
        Deliver one domain event.

        Args:
            event: Event published on the bus
        """
        with tracer.start_as_current_span("notifications.fanout") as span:
            dashboard_users = []
            if event.type == NotificationType.ISSUE_CREATED.value:
                dashboard_users = self.registry.online_users(ADMIN_DASHBOARD_CHANNEL)
            plan = plan_delivery(event, dashboard_users)
            span.set_attributes({
                "event.id": event.event_id,
                "event.type": event.type,
                "notifications.recipients": len(plan.recipients),
                "notifications.channels": len(plan.broadcast_channels)
            })

            for notice in plan.recipients:
                try:
                    notification_id = self._persist(event, notice)
                    self.registry.push(
                        user_channel(notice.recipient_id),
                        build_push_message(event, notice, notification_id)
                    )
                except Exception as e:
                    span.record_exception(e)
                    logger.error(
                        "Notification delivery failed",
                        extra={
                            "extra_fields": {
                                "event_id": event.event_id,
                                "recipient_id": notice.recipient_id,
                                "error": str(e)
                            }
                        },
                        exc_info=True
                    )

            message = build_push_message(event, plan=plan)
            for channel in plan.broadcast_channels:
                try:
                    self.registry.push(channel, message)
                except Exception as e:
                    span.record_exception(e)
                    logger.error(
                        "Channel broadcast failed",
                        extra={
                            "extra_fields": {
                                "event_id": event.event_id,
                                "channel": channel,
                                "error": str(e)
                            }
                        },
                        exc_info=True
                    )


class NotificationInbox:
    """Recipient-scoped access to stored notifications."""

    def __init__(self, store: IssueStore):
        self.store = store

    def _load_own(self, actor: Actor, notification_id: str) -> Notification:
        document = self.store.find_by_id(NOTIFICATIONS, notification_id)
        if document is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        notification = Notification.from_document(document)
        # Someone else's notification looks exactly like a missing one
        if notification.recipient_id != actor.user_id or notification.is_deleted():
            raise NotFoundError(f"Notification {notification_id} not found")
        return notification

    def list_notifications(self, actor: Actor, unread_only: bool = False,
                           page: int = 1, page_size: int = 20) -> NotificationPage:
        """
        List the actor's notifications, newest first.

        Args:
            actor: Recipient
            unread_only: Only return unread notifications
            page: Page number (1-based)
            page_size: Items per page (at most 100)

        Returns:
            NotificationPage with items, total and unread count
        """
        if page < 1 or page_size < 1 or page_size > MAX_PAGE_SIZE:
            raise ValidationError(
                "Invalid pagination parameters",
                [{"field": "page_size", "message": f"page >= 1 and 1 <= page_size <= {MAX_PAGE_SIZE}", "type": "value_error"}]
            )

        base: Dict[str, Any] = {"recipient_id": actor.user_id, "deleted_at": None}
        filters = dict(base, is_read=False) if unread_only else base

        items = self.store.find_by_filter(
            NOTIFICATIONS,
            filters,
            sort=[("created_at", -1)],
            skip=(page - 1) * page_size,
            limit=page_size
        )
        return NotificationPage(
            items=[Notification.from_document(d) for d in items],
            total=self.store.count(NOTIFICATIONS, filters),
            unread_count=self.store.count(NOTIFICATIONS, dict(base, is_read=False)),
            page=page,
            page_size=page_size
        )

    def mark_read(self, actor: Actor, notification_id: str) -> Notification:
        """Mark one of the actor's notifications as read."""
        notification = self._load_own(actor, notification_id)
        if notification.is_read:
            return notification

        now = utcnow()
        document = self.store.atomic_update(
            NOTIFICATIONS,
            notification_id,
            {"recipient_id": actor.user_id},
            {"is_read": True, "read_at": now, "updated_at": now}
        )
        if document is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        return Notification.from_document(document)

    def mark_all_read(self, actor: Actor) -> int:
        """
        Mark every unread notification of the actor as read.

        Returns:
            Number of notifications updated
        """
        now = utcnow()
        updated = self.store.update_many(
            NOTIFICATIONS,
            {"recipient_id": actor.user_id, "is_read": False, "deleted_at": None},
            {"is_read": True, "read_at": now, "updated_at": now}
        )
        logger.info(f"Marked {updated} notifications read for user {actor.user_id}")
        return updated

    def clear(self, actor: Actor, notification_id: str) -> None:
        """Soft delete one of the actor's notifications."""
        notification = self._load_own(actor, notification_id)
        now = utcnow()
        self.store.atomic_update(
            NOTIFICATIONS,
            notification.id,
            {"recipient_id": actor.user_id},
            {"deleted_at": now, "updated_at": now}
        )
