# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Domain events emitted by the issue lifecycle.

Events are a closed tagged union on ``type``; consumers (notification fan-out,
the AMQP forwarder, analytics) depend only on this shape.
"""

import uuid
from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Union
from pydantic import BaseModel, Field, TypeAdapter

from .base import utcnow


class BaseDomainEvent(BaseModel):
    """Fields shared by every domain event."""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Event identity")
    issue_id: Optional[str] = Field(None, description="Issue the event concerns")
    actor_id: str = Field(..., description="User who caused the event")
    timestamp: datetime = Field(default_factory=utcnow, description="When the event happened")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Event-specific data")

    def to_message(self) -> Dict[str, Any]:
        """Serialize for transports (JSON-safe)."""
        return self.model_dump(mode="json")


class StatusChangedEvent(BaseDomainEvent):
    """Issue moved along the transition graph.

    Payload: ``from_status``, ``to_status``, ``reason``, ``tracking_number``,
    ``submitted_by``, ``assigned_to``.
    """
    type: Literal["status_changed"] = "status_changed"


class IssueAssignedEvent(BaseDomainEvent):
    """Issue (re)assigned. Payload: ``assigned_to``, ``previous_assignee``, ``tracking_number``."""
    type: Literal["issue_assigned"] = "issue_assigned"


class CommentAddedEvent(BaseDomainEvent):
    """Comment created. Payload: ``comment_id``, ``text``, ``submitted_by``, ``assigned_to``."""
    type: Literal["comment_added"] = "comment_added"


class CommentDeletedEvent(BaseDomainEvent):
    """Comment tombstoned. Payload: ``comment_id``."""
    type: Literal["comment_deleted"] = "comment_deleted"


class IssueCreatedEvent(BaseDomainEvent):
    """New issue reported."""
    type: Literal["issue_created"] = "issue_created"


class BulkCompletedEvent(BaseDomainEvent):
    """Bulk operation finished. Payload: ``operation_id``, ``succeeded``, ``failed``."""
    type: Literal["bulk_completed"] = "bulk_completed"


DomainEvent = Annotated[
    Union[
        StatusChangedEvent,
        IssueAssignedEvent,
        CommentAddedEvent,
        CommentDeletedEvent,
        IssueCreatedEvent,
        BulkCompletedEvent,
    ],
    Field(discriminator="type"),
]

_domain_event_adapter = TypeAdapter(DomainEvent)


def parse_domain_event(data: Dict[str, Any]) -> BaseDomainEvent:
    """Rebuild a typed event from its serialized form."""
    return _domain_event_adapter.validate_python(data)
