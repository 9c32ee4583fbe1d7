# SPDX-License-Identifier: Apache-2.0

"""
Notification routing domain logic.

This module contains pure functions deciding, for each domain event, who is
notified, with which message, and which broadcast channels receive the
real-time push. Persistence and delivery live in ``services.notifications``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from models.events import BaseDomainEvent
from models.enums import NotificationType
from domain.authorization import ADMIN_DASHBOARD_CHANNEL, issue_channel, user_channel


@dataclass
class RecipientNotice:
    """One addressed notification to persist and push."""
    recipient_id: str
    title: str
    message: str


@dataclass
class DeliveryPlan:
    """Everything the fan-out has to do for one event."""
    event: BaseDomainEvent
    recipients: List[RecipientNotice] = field(default_factory=list)
    broadcast_channels: List[str] = field(default_factory=list)
    # Summary shown on broadcast channels, if any
    title: Optional[str] = None
    message: Optional[str] = None

    @property
    def recipient_ids(self) -> List[str]:
        return [r.recipient_id for r in self.recipients]


def _unique(ids: List[Optional[str]], exclude: Optional[str] = None) -> List[str]:
    """Drop empty ids, duplicates and the excluded id while keeping order."""
    seen = []
    for user_id in ids:
        if user_id and user_id != exclude and user_id not in seen:
            seen.append(user_id)
    return seen


def _issue_label(event: BaseDomainEvent) -> str:
    return event.payload.get("tracking_number") or event.issue_id or ""


def plan_status_changed(event: BaseDomainEvent) -> DeliveryPlan:
    to_status = event.payload.get("to_status")
    recipients = _unique([event.payload.get("submitted_by"), event.payload.get("assigned_to")])
    notices = [
        RecipientNotice(
            recipient_id=r,
            title="Issue Status Updated",
            message=f"Issue {_issue_label(event)} status updated to {to_status}"
        )
        for r in recipients
    ]
    return DeliveryPlan(
        event=event,
        recipients=notices,
        broadcast_channels=[issue_channel(event.issue_id), ADMIN_DASHBOARD_CHANNEL]
    )


def plan_issue_assigned(event: BaseDomainEvent) -> DeliveryPlan:
    notices = [
        RecipientNotice(
            recipient_id=r,
            title="New Issue Assigned",
            message=f"New issue assigned: {_issue_label(event)}"
        )
        for r in _unique([event.payload.get("assigned_to")])
    ]
    return DeliveryPlan(
        event=event,
        recipients=notices,
        broadcast_channels=[issue_channel(event.issue_id), ADMIN_DASHBOARD_CHANNEL]
    )


def plan_comment_added(event: BaseDomainEvent) -> DeliveryPlan:
    recipients = _unique(
        [event.payload.get("submitted_by"), event.payload.get("assigned_to")],
        exclude=event.actor_id
    )
    notices = [
        RecipientNotice(
            recipient_id=r,
            title="New Comment",
            message=f"New comment on issue {_issue_label(event)}"
        )
        for r in recipients
    ]
    return DeliveryPlan(event=event, recipients=notices, broadcast_channels=[issue_channel(event.issue_id)])


def plan_comment_deleted(event: BaseDomainEvent) -> DeliveryPlan:
    return DeliveryPlan(event=event, broadcast_channels=[issue_channel(event.issue_id)])


def plan_issue_created(event: BaseDomainEvent, dashboard_users: Iterable[str] = ()) -> DeliveryPlan:
    """
    Route a new report to the administrators watching the dashboard.

    Args:
        event: ``issue_created`` event
        dashboard_users: Owners of the connections subscribed to the admin
            dashboard when the event is delivered
    """
    notices = [
        RecipientNotice(
            recipient_id=r,
            title="New Issue Reported",
            message=f"New issue reported: {_issue_label(event)}"
        )
        for r in _unique(list(dashboard_users), exclude=event.actor_id)
    ]
    return DeliveryPlan(
        event=event,
        recipients=notices,
        broadcast_channels=[ADMIN_DASHBOARD_CHANNEL],
        title="New Issue Reported",
        message=f"New issue reported: {_issue_label(event)}"
    )


def plan_bulk_completed(event: BaseDomainEvent) -> DeliveryPlan:
    succeeded = len(event.payload.get("succeeded", []))
    failed = len(event.payload.get("failed", []))
    notices = [
        RecipientNotice(
            recipient_id=event.actor_id,
            title="Bulk Operation Completed",
            message=f"Bulk operation completed: {succeeded} succeeded, {failed} failed"
        )
    ]
    return DeliveryPlan(event=event, recipients=notices, broadcast_channels=[ADMIN_DASHBOARD_CHANNEL])


_PLANNERS = {
    NotificationType.STATUS_CHANGED.value: plan_status_changed,
    NotificationType.ISSUE_ASSIGNED.value: plan_issue_assigned,
    NotificationType.COMMENT_ADDED.value: plan_comment_added,
    NotificationType.COMMENT_DELETED.value: plan_comment_deleted,
    NotificationType.ISSUE_CREATED.value: plan_issue_created,
    NotificationType.BULK_COMPLETED.value: plan_bulk_completed,
}


def plan_delivery(event: BaseDomainEvent, dashboard_users: Iterable[str] = ()) -> DeliveryPlan:
    """
    Route a domain event to recipients and channels.

    Args:
        event: Domain event from the bus
        dashboard_users: Users currently watching the admin dashboard; only
            new reports are addressed to them

    Returns:
        DeliveryPlan for the fan-out

    Raises:
        ValueError: If the event type has no routing rule
    """
    planner = _PLANNERS.get(event.type)
    if planner is None:
        raise ValueError(f"No delivery rule for event type: {event.type}")
    if planner is plan_issue_created:
        return plan_issue_created(event, dashboard_users)
    return planner(event)


def build_push_message(event: BaseDomainEvent, notice: Optional[RecipientNotice] = None,
                       notification_id: Optional[str] = None,
                       plan: Optional[DeliveryPlan] = None) -> Dict[str, Any]:
    """
    Build the real-time message for a channel push.

    Every message carries the source event identity so clients can drop
    duplicates caused by redelivery or reconnects. Personal pushes carry the
    recipient's notice; broadcasts carry the plan's summary when it has one.
    """
    message = {
        "event_id": event.event_id,
        "type": event.type,
        "issue_id": event.issue_id,
        "actor_id": event.actor_id,
        "timestamp": event.timestamp.isoformat(),
        "payload": event.to_message()["payload"],
    }
    if notice is not None:
        message.update({
            "title": notice.title,
            "message": notice.message,
            "notification_id": notification_id,
        })
    elif plan is not None and plan.message:
        message.update({"title": plan.title, "message": plan.message})
    return message
