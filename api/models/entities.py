# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the issue lifecycle engine.
"""

import random
import string
import time
from datetime import datetime
from typing import List, Optional, Dict, Any, Literal, Union
from pydantic import BaseModel, Field, field_validator, ConfigDict
from .base import BaseEntity, utcnow
from .enums import (
    IssueStatus,
    IssuePriority,
    UserRole,
    NotificationType,
    BulkOperationStatus
)


COMMENT_MAX_LENGTH = 2000


def generate_tracking_number() -> str:
    """Human-readable tracking number, e.g. ``ISS-1718000000000-4KQ2Z``."""
    suffix = ''.join(random.choices(string.ascii_uppercase + string.digits, k=5))
    return f"ISS-{int(time.time() * 1000)}-{suffix}"


class Actor(BaseModel):
    """Resolved identity attached to every inbound call."""

    user_id: str = Field(..., description="Authenticated user ID")
    role: UserRole = Field(..., description="Portal role")
    department: Optional[str] = Field(None, description="Department the user belongs to")
    is_active: bool = Field(default=True, description="Whether the account is active")
    name: Optional[str] = Field(None, description="User display name")
    ip_address: Optional[str] = Field(None, description="Client IP address")
    user_agent: Optional[str] = Field(None, description="Client user agent")
    session_id: Optional[str] = Field(None, description="Session identifier")

    model_config = ConfigDict(frozen=True)


class Issue(BaseEntity):
    """Citizen-reported civic issue."""

    title: str = Field(..., min_length=1, max_length=200, description="Issue title")
    description: str = Field(..., min_length=1, max_length=5000, description="Issue description")
    category: str = Field(..., min_length=1, max_length=100, description="Primary category")
    status: IssueStatus = Field(default=IssueStatus.OPEN, description="Workflow status")
    priority: IssuePriority = Field(default=IssuePriority.MEDIUM, description="Triage priority")
    submitted_by: str = Field(..., description="User ID of the reporter")
    assigned_to: Optional[str] = Field(None, description="User ID of the assignee")
    department: Optional[str] = Field(None, description="Owning department")
    tracking_number: str = Field(default_factory=generate_tracking_number, description="Immutable tracking number")
    version: int = Field(default=1, ge=1, description="Bumped on every mutation")
    resolved_at: Optional[datetime] = Field(None, description="When the issue entered Resolved")
    closed_at: Optional[datetime] = Field(None, description="When the issue entered Closed")

    @field_validator('title', 'description', 'category')
    @classmethod
    def validate_text(cls, v):
        """Reject whitespace-only text fields."""
        if not v.strip():
            raise ValueError('Field cannot be empty')
        return v.strip()

    def is_assigned_to(self, user_id: str) -> bool:
        """Check if the issue is assigned to a given user."""
        return self.assigned_to is not None and self.assigned_to == user_id


class StatusChangeEvent(BaseEntity):
    """Append-only record of one status change."""

    issue_id: str = Field(..., description="Issue the change applies to")
    from_status: Optional[IssueStatus] = Field(None, description="Previous status, None for creation")
    to_status: IssueStatus = Field(..., description="New status")
    performed_by: str = Field(..., description="Actor who made the change")
    reason: Optional[str] = Field(None, max_length=500, description="Optional reason")
    sequence: int = Field(default=0, description="Insertion order across events and comments")


class Comment(BaseEntity):
    """Comment on an issue; soft-deletable by its author."""

    issue_id: str = Field(..., description="Issue the comment belongs to")
    author_id: str = Field(..., description="Comment author")
    text: str = Field(..., min_length=1, max_length=COMMENT_MAX_LENGTH, description="Comment text")
    sequence: int = Field(default=0, description="Insertion order across events and comments")
    deleted_by: Optional[str] = Field(None, description="User who deleted the comment")


class Notification(BaseEntity):
    """Addressed notification derived from a domain event."""

    recipient_id: str = Field(..., description="Recipient user ID")
    type: NotificationType = Field(..., description="Notification kind")
    title: str = Field(..., description="Short title")
    message: str = Field(..., description="Human-readable message")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Event payload")
    event_id: str = Field(..., description="Identity of the source domain event")
    issue_id: Optional[str] = Field(None, description="Related issue")
    is_read: bool = Field(default=False, description="Read flag")
    read_at: Optional[datetime] = Field(None, description="When it was read")

    def mark_read(self) -> None:
        """Mark notification as read."""
        self.is_read = True
        self.read_at = utcnow()
        self.updated_at = self.read_at


class BulkFailure(BaseModel):
    """One failed item of a bulk operation."""

    issue_id: str
    reason: str
    error_type: str


class BulkOperation(BaseEntity):
    """Persisted record of a bulk update run."""

    initiated_by: str = Field(..., description="Actor who ran the operation")
    issue_ids: List[str] = Field(default_factory=list, description="Target issue IDs")
    updates: Dict[str, Any] = Field(default_factory=dict, description="Requested field updates")
    reason: Optional[str] = Field(None, description="Reason recorded on each transition")
    status: BulkOperationStatus = Field(default=BulkOperationStatus.RUNNING)
    succeeded: List[str] = Field(default_factory=list)
    failed: List[BulkFailure] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None


class StatusChangeEntry(BaseModel):
    """Timeline entry for a status change."""

    kind: Literal["status_change"] = "status_change"
    entry_id: str
    actor_id: str
    created_at: datetime
    description: str
    from_status: Optional[IssueStatus] = None
    to_status: IssueStatus
    sequence: int


class CommentEntry(BaseModel):
    """Timeline entry for a comment."""

    kind: Literal["comment"] = "comment"
    entry_id: str
    actor_id: str
    created_at: datetime
    description: str
    comment_id: str
    text: str
    can_delete: bool = False
    sequence: int


TimelineEntry = Union[StatusChangeEntry, CommentEntry]
