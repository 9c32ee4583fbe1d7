# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the issue lifecycle engine.
"""

# Base models
from .base import BaseEntity

# Enumerations
from .enums import (
    IssueStatus,
    IssuePriority,
    UserRole,
    NotificationType,
    TimelineEntryKind,
    BulkOperationStatus
)

# Core entities
from .entities import (
    Actor,
    Issue,
    StatusChangeEvent,
    Comment,
    Notification,
    BulkFailure,
    BulkOperation,
    StatusChangeEntry,
    CommentEntry,
    TimelineEntry
)

# Domain events
from .events import (
    BaseDomainEvent,
    StatusChangedEvent,
    IssueAssignedEvent,
    CommentAddedEvent,
    CommentDeletedEvent,
    IssueCreatedEvent,
    BulkCompletedEvent,
    DomainEvent,
    parse_domain_event
)

# Request models
from .requests import (
    CreateIssueRequest,
    TransitionRequest,
    AssignIssueRequest,
    UpdatePriorityRequest,
    AddCommentRequest,
    BulkUpdates,
    BulkUpdateRequest,
    NotificationListParams
)

# Response models
from .responses import (
    TransitionResult,
    BulkUpdateResult,
    NotificationPage,
    ErrorResponse
)

__all__ = [
    "BaseEntity",

    "IssueStatus",
    "IssuePriority",
    "UserRole",
    "NotificationType",
    "TimelineEntryKind",
    "BulkOperationStatus",

    "Actor",
    "Issue",
    "StatusChangeEvent",
    "Comment",
    "Notification",
    "BulkFailure",
    "BulkOperation",
    "StatusChangeEntry",
    "CommentEntry",
    "TimelineEntry",

    "BaseDomainEvent",
    "StatusChangedEvent",
    "IssueAssignedEvent",
    "CommentAddedEvent",
    "CommentDeletedEvent",
    "IssueCreatedEvent",
    "BulkCompletedEvent",
    "DomainEvent",
    "parse_domain_event",

    "CreateIssueRequest",
    "TransitionRequest",
    "AssignIssueRequest",
    "UpdatePriorityRequest",
    "AddCommentRequest",
    "BulkUpdates",
    "BulkUpdateRequest",
    "NotificationListParams",

    "TransitionResult",
    "BulkUpdateResult",
    "NotificationPage",
    "ErrorResponse"
]
