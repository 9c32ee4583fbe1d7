# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the issue lifecycle engine.
"""

from enum import Enum


class IssueStatus(str, Enum):
    """Issue workflow status enumeration."""
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    UNDER_REVIEW = "Under Review"
    RESOLVED = "Resolved"
    CLOSED = "Closed"


class IssuePriority(str, Enum):
    """Issue priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class UserRole(str, Enum):
    """Closed set of portal roles."""
    CITIZEN = "citizen"
    STAFF = "staff"
    DEPARTMENT_HEAD = "department_head"
    ADMIN = "admin"
    SYSTEM_ADMIN = "system_admin"


class NotificationType(str, Enum):
    """Kinds of domain events and the notifications derived from them."""
    STATUS_CHANGED = "status_changed"
    ISSUE_ASSIGNED = "issue_assigned"
    COMMENT_ADDED = "comment_added"
    COMMENT_DELETED = "comment_deleted"
    ISSUE_CREATED = "issue_created"
    BULK_COMPLETED = "bulk_completed"


class TimelineEntryKind(str, Enum):
    """Variants of a timeline entry."""
    STATUS_CHANGE = "status_change"
    COMMENT = "comment"


class BulkOperationStatus(str, Enum):
    """Execution state of a bulk operation record."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
