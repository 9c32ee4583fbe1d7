# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Response models returned by core operations and API endpoints.
"""

from typing import List, Optional
from pydantic import BaseModel, Field

from .entities import BulkFailure, Issue, Notification, StatusChangeEvent


class TransitionResult(BaseModel):
    """Outcome of a transition call."""

    issue: Issue = Field(..., description="Issue after the call")
    changed: bool = Field(..., description="False for an idempotent same-status call")
    event: Optional[StatusChangeEvent] = Field(None, description="Appended event, if any")


class BulkUpdateResult(BaseModel):
    """Outcome of a bulk update."""

    operation_id: str = Field(..., description="Persisted bulk operation record")
    succeeded: List[str] = Field(default_factory=list, description="Issue IDs updated")
    failed: List[BulkFailure] = Field(default_factory=list, description="Per-issue failures")

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)


class NotificationPage(BaseModel):
    """Page of a recipient's notifications."""

    items: List[Notification] = Field(default_factory=list)
    total: int = Field(..., description="Total matching notifications")
    unread_count: int = Field(..., description="Unread notifications for the recipient")
    page: int = Field(..., description="Current page number")
    page_size: int = Field(..., description="Items per page")

    @property
    def total_pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size


class ErrorResponse(BaseModel):
    """Problem-details error body."""

    type: str
    title: str
    status: int
    detail: str
    instance: Optional[str] = None
    errors: List[dict] = Field(default_factory=list)
