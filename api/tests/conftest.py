# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.
"""

import os
import pytest
from datetime import datetime, timedelta
from typing import Dict, Any
from unittest.mock import MagicMock

import jwt

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ.pop('REDIS_URL', None)
os.environ.pop('REDIS_TOKEN', None)
os.environ.pop('AMQP_URL', None)

from models.entities import Actor
from models.enums import UserRole
from services.bulk import BulkOperationExecutor
from services.connections import ConnectionRegistry
from services.events import EventBus
from services.issues import IssueService
from services.notifications import NotificationFanout, NotificationInbox
from services.store import InMemoryIssueStore
from services.timeline import TimelineAssembler
from utils.config import Settings

TEST_JWT_SECRET = "test-secret"


class RecordingConsumer:
    """Event consumer remembering every event it receives."""

    def __init__(self):
        self.events = []

    def handle(self, event):
        self.events.append(event)

    def of_type(self, event_type: str):
        return [e for e in self.events if e.type == event_type]


@pytest.fixture
def store():
    """Fresh in-memory store."""
    return InMemoryIssueStore()


@pytest.fixture
def transport():
    """Push transport recording every send."""
    mock_transport = MagicMock()
    mock_transport.health_check.return_value = {"status": "healthy"}
    return mock_transport


@pytest.fixture
def registry(transport):
    return ConnectionRegistry(transport)


@pytest.fixture
def recorder():
    return RecordingConsumer()


@pytest.fixture
def bus(store, registry, recorder):
    """Event bus with the notification fan-out and a recorder attached."""
    event_bus = EventBus()
    event_bus.register(NotificationFanout(store, registry))
    event_bus.register(recorder)
    return event_bus


@pytest.fixture
def issue_service(store, bus):
    return IssueService(store, bus)


@pytest.fixture
def timeline(store):
    return TimelineAssembler(store)


@pytest.fixture
def bulk_executor(issue_service, store, bus):
    return BulkOperationExecutor(issue_service, store, bus, max_workers=4)


@pytest.fixture
def inbox(store):
    return NotificationInbox(store)


@pytest.fixture
def citizen():
    return Actor(user_id="citizen-1", role=UserRole.CITIZEN, name="Citizen One")


@pytest.fixture
def other_citizen():
    return Actor(user_id="citizen-2", role=UserRole.CITIZEN)


@pytest.fixture
def staff():
    return Actor(user_id="staff-1", role=UserRole.STAFF, department="roads")


@pytest.fixture
def other_staff():
    return Actor(user_id="staff-2", role=UserRole.STAFF, department="parks")


@pytest.fixture
def department_head():
    return Actor(user_id="head-1", role=UserRole.DEPARTMENT_HEAD, department="roads")


@pytest.fixture
def admin():
    return Actor(user_id="admin-1", role=UserRole.ADMIN)


@pytest.fixture
def system_admin():
    return Actor(user_id="root-1", role=UserRole.SYSTEM_ADMIN)


@pytest.fixture
def inactive_admin():
    return Actor(user_id="admin-9", role=UserRole.ADMIN, is_active=False)


@pytest.fixture
def sample_issue_data() -> Dict[str, Any]:
    """Sample issue data for testing."""
    return {
        "title": "Pothole on Main Street",
        "description": "Large pothole near the bus stop",
        "category": "roads",
        "priority": "high",
        "department": "roads"
    }


@pytest.fixture
def make_issue(issue_service, citizen, admin, sample_issue_data):
    """
    Factory reporting an issue as the citizen, optionally assigned and
    walked to a status by the admin.
    """
    path = {
        "Open": [],
        "In Progress": ["In Progress"],
        "Under Review": ["In Progress", "Under Review"],
        "Resolved": ["In Progress", "Under Review", "Resolved"],
        "Closed": ["In Progress", "Under Review", "Resolved", "Closed"],
    }

    def _make(status: str = "Open", assigned_to: str = None, **overrides):
        data = dict(sample_issue_data, **overrides)
        issue = issue_service.create_issue(citizen, data)
        if assigned_to:
            issue = issue_service.assign(admin, issue.id, assigned_to)
        for step in path[status]:
            issue = issue_service.transition(admin, issue.id, step).issue
        return issue

    return _make


@pytest.fixture
def app(transport):
    """Flask application on the in-memory store."""
    from app import create_app

    settings = Settings(environment="test", jwt_secret=TEST_JWT_SECRET)
    application = create_app(settings, store=InMemoryIssueStore(), transport=transport)
    application.config['TESTING'] = True
    return application


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers():
    """Build bearer headers for an actor."""
    def _headers(actor: Actor, **claims) -> Dict[str, str]:
        payload = {
            "sub": actor.user_id,
            "role": actor.role.value,
            "department": actor.department,
            "active": actor.is_active,
            "exp": datetime.utcnow() + timedelta(minutes=15)
        }
        payload.update(claims)
        token = jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")
        return {"Authorization": f"Bearer {token}"}

    return _headers
