# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Request models for API endpoints and service calls.
"""

from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from .entities import COMMENT_MAX_LENGTH
from .enums import IssueStatus, IssuePriority


class CreateIssueRequest(BaseModel):
    """Request model for reporting an issue."""

    title: str = Field(..., min_length=1, max_length=200, description="Issue title")
    description: str = Field(..., min_length=1, max_length=5000, description="Issue description")
    category: str = Field(..., min_length=1, max_length=100, description="Primary category")
    priority: IssuePriority = Field(default=IssuePriority.MEDIUM, description="Initial priority")
    department: Optional[str] = Field(None, max_length=100, description="Owning department")

    @field_validator('title', 'description', 'category')
    @classmethod
    def validate_text(cls, v):
        """Reject whitespace-only text fields."""
        if not v.strip():
            raise ValueError('Field cannot be empty')
        return v.strip()


class TransitionRequest(BaseModel):
    """Request model for a status transition."""

    status: IssueStatus = Field(..., description="Target status")
    reason: Optional[str] = Field(None, max_length=500, description="Reason for the change")


class AssignIssueRequest(BaseModel):
    """Request model for assigning an issue."""

    assignee_id: str = Field(..., min_length=1, description="User ID of the new assignee")
    department: Optional[str] = Field(None, max_length=100, description="Department to route the issue to")


class UpdatePriorityRequest(BaseModel):
    """Request model for a priority change."""

    priority: IssuePriority = Field(..., description="New priority")


class AddCommentRequest(BaseModel):
    """Request model for adding a comment."""

    text: str = Field(..., description="Comment text")

    @field_validator('text')
    @classmethod
    def validate_text(cls, v):
        """Trim and bound comment text."""
        v = v.strip()
        if not v:
            raise ValueError('Comment text cannot be empty')
        if len(v) > COMMENT_MAX_LENGTH:
            raise ValueError(f'Comment text cannot exceed {COMMENT_MAX_LENGTH} characters')
        return v


class BulkUpdates(BaseModel):
    """Field updates applied by a bulk operation."""

    status: Optional[IssueStatus] = Field(None, description="Target status")
    priority: Optional[IssuePriority] = Field(None, description="New priority")

    @model_validator(mode='after')
    def validate_not_empty(self):
        """At least one field must be updated."""
        if self.status is None and self.priority is None:
            raise ValueError('At least one of status or priority must be provided')
        return self


class BulkUpdateRequest(BaseModel):
    """Request model for a bulk update."""

    issue_ids: List[str] = Field(..., min_length=1, max_length=500, description="Target issue IDs")
    updates: BulkUpdates = Field(..., description="Updates to apply")
    reason: Optional[str] = Field(None, max_length=500, description="Reason recorded on transitions")

    @field_validator('issue_ids')
    @classmethod
    def dedupe_ids(cls, v):
        """Treat ids as a set while keeping request order."""
        stripped = [i.strip() for i in v]
        if not all(stripped):
            raise ValueError('Issue IDs must not be blank')
        return list(dict.fromkeys(stripped))


class NotificationListParams(BaseModel):
    """Query parameters for listing notifications."""

    unread_only: bool = Field(default=False)
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)
