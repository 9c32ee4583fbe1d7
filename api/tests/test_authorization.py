# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for the role-based authorization rules.
"""

import pytest

from models.entities import Actor, Comment, Issue
from models.enums import IssueStatus, UserRole
from domain.authorization import (
    ADMIN_DASHBOARD_CHANNEL,
    can_assign,
    can_comment,
    can_delete_comment,
    can_join_channel,
    can_manage_users,
    can_run_bulk,
    can_transition,
    can_update_priority,
    check_status_actor,
    check_transition,
    is_admin,
    is_valid_channel,
    issue_channel,
    user_channel,
)


def _issue(**overrides) -> Issue:
    data = {
        "title": "Broken streetlight",
        "description": "Light out since Monday",
        "category": "lighting",
        "submitted_by": "citizen-1",
        "department": "roads",
    }
    data.update(overrides)
    return Issue(**data)


class TestIsAdmin:
    """Admin equivalence."""

    @pytest.mark.parametrize("role", [UserRole.ADMIN, UserRole.SYSTEM_ADMIN, "admin", "system_admin"])
    def test_admin_roles(self, role):
        assert is_admin(role) is True

    @pytest.mark.parametrize("role", [UserRole.CITIZEN, UserRole.STAFF, UserRole.DEPARTMENT_HEAD, "root", None])
    def test_non_admin_roles(self, role):
        assert is_admin(role) is False


class TestTransitionAuthorization:
    """Who may move an issue along the graph."""

    @pytest.mark.parametrize("target", list(IssueStatus))
    def test_citizen_always_denied(self, citizen, target):
        """Citizens are denied whatever the target, even on their own issue."""
        issue = _issue(submitted_by=citizen.user_id, status=IssueStatus.IN_PROGRESS)
        assert can_transition(citizen, issue, target) is False

    def test_status_gate_denies_citizen_and_inactive(self, citizen, inactive_admin, staff):
        assert not check_status_actor(citizen)
        assert not check_status_actor(inactive_admin)
        assert check_status_actor(staff)

    def test_admin_allowed_on_valid_edge(self, admin, system_admin):
        issue = _issue(department="parks")
        assert can_transition(admin, issue, IssueStatus.IN_PROGRESS)
        assert can_transition(system_admin, issue, IssueStatus.IN_PROGRESS)

    def test_admin_denied_on_invalid_edge(self, admin):
        result = check_transition(admin, _issue(), IssueStatus.CLOSED)
        assert result.allowed is False
        assert "not allowed" in result.reason

    def test_staff_allowed_when_assigned(self, other_staff):
        issue = _issue(assigned_to=other_staff.user_id, department="roads")
        assert can_transition(other_staff, issue, IssueStatus.IN_PROGRESS)

    def test_staff_allowed_in_own_department(self, staff):
        assert can_transition(staff, _issue(department="roads"), IssueStatus.IN_PROGRESS)

    def test_staff_denied_outside_scope(self, other_staff):
        result = check_transition(other_staff, _issue(department="roads"), IssueStatus.IN_PROGRESS)
        assert result.allowed is False
        assert "not assigned" in result.reason

    def test_inactive_admin_denied(self, inactive_admin):
        assert can_transition(inactive_admin, _issue(), IssueStatus.IN_PROGRESS) is False


class TestOtherPermissions:
    """Priority, assignment, comments, bulk and user management."""

    def test_priority_follows_scope(self, staff, other_staff, admin, citizen):
        issue = _issue(department="roads")
        assert can_update_priority(staff, issue)
        assert can_update_priority(admin, issue)
        assert not can_update_priority(other_staff, issue)
        assert not can_update_priority(citizen, issue)

    def test_admin_assigns_anything(self, admin):
        assert can_assign(admin, _issue(department="parks"), "water")

    def test_department_head_assigns_within_department(self, department_head):
        issue = _issue(department="roads")
        assert can_assign(department_head, issue)
        assert can_assign(department_head, issue, "roads")
        assert not can_assign(department_head, issue, "parks")
        assert not can_assign(department_head, _issue(department="parks"))

    def test_staff_cannot_assign(self, staff):
        assert not can_assign(staff, _issue(department="roads"))

    def test_comment_rules(self, citizen, other_citizen):
        issue = _issue()
        comment = Comment(issue_id=issue.id, author_id=citizen.user_id, text="Still broken")
        assert can_comment(citizen, issue)
        assert can_delete_comment(citizen, comment)
        assert not can_delete_comment(other_citizen, comment)
        inactive = Actor(user_id=citizen.user_id, role=UserRole.CITIZEN, is_active=False)
        assert not can_comment(inactive, issue)

    def test_bulk_rules(self, admin, system_admin, department_head, staff, citizen, inactive_admin):
        assert can_run_bulk(admin)
        assert can_run_bulk(system_admin)
        assert can_run_bulk(department_head)
        assert not can_run_bulk(staff)
        assert not can_run_bulk(citizen)
        assert not can_run_bulk(inactive_admin)

    def test_manage_users(self, admin, system_admin, department_head):
        assert can_manage_users(admin)
        assert can_manage_users(system_admin)
        assert not can_manage_users(department_head)


class TestChannels:
    """Channel naming and subscription rules."""

    def test_channel_names(self):
        assert user_channel("u1") == "user:u1"
        assert issue_channel("i1") == "issue:i1"

    @pytest.mark.parametrize("channel,valid", [
        ("user:abc", True),
        ("issue:123", True),
        (ADMIN_DASHBOARD_CHANNEL, True),
        ("user:", False),
        ("issue:", False),
        ("everyone", False),
    ])
    def test_is_valid_channel(self, channel, valid):
        assert is_valid_channel(channel) is valid

    def test_own_user_channel_only(self, citizen):
        assert can_join_channel(citizen, user_channel(citizen.user_id))
        assert not can_join_channel(citizen, user_channel("someone-else"))

    def test_issue_channels_open_to_active_users(self, citizen):
        assert can_join_channel(citizen, issue_channel("any"))

    def test_admin_dashboard_requires_admin(self, citizen, staff, admin, system_admin):
        assert not can_join_channel(citizen, ADMIN_DASHBOARD_CHANNEL)
        assert not can_join_channel(staff, ADMIN_DASHBOARD_CHANNEL)
        assert can_join_channel(admin, ADMIN_DASHBOARD_CHANNEL)
        assert can_join_channel(system_admin, ADMIN_DASHBOARD_CHANNEL)

    def test_inactive_cannot_subscribe(self, inactive_admin):
        assert not can_join_channel(inactive_admin, ADMIN_DASHBOARD_CHANNEL)
