# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - Orchestration, persistence and external integrations.
"""

from .store import IssueStore, InMemoryIssueStore
from .mongodb import MongoDBService, MongoIssueStore, get_mongodb_service, close_mongodb_connection
from .events import EventBus, EventConsumer
from .issues import IssueService
from .timeline import TimelineAssembler
from .bulk import BulkOperationExecutor
from .connections import ConnectionRegistry, PushTransport
from .notifications import NotificationFanout, NotificationInbox
from .redis import RedisPushTransport, create_push_transport
from .amqp import AMQPEventPublisher, AMQPConfig, PublishResult, create_amqp_publisher

__all__ = [
    "IssueStore",
    "InMemoryIssueStore",
    "MongoDBService",
    "MongoIssueStore",
    "get_mongodb_service",
    "close_mongodb_connection",
    "EventBus",
    "EventConsumer",
    "IssueService",
    "TimelineAssembler",
    "BulkOperationExecutor",
    "ConnectionRegistry",
    "PushTransport",
    "NotificationFanout",
    "NotificationInbox",
    "RedisPushTransport",
    "create_push_transport",
    "AMQPEventPublisher",
    "AMQPConfig",
    "PublishResult",
    "create_amqp_publisher"
]
