# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the issue transition graph and the IssueService lifecycle.
"""

import pytest
from unittest.mock import patch

from models.entities import StatusChangeEvent
from models.enums import IssuePriority, IssueStatus
from domain.issues import (
    ALLOWED_TRANSITIONS,
    allowed_targets,
    describe_status_change,
    ensure_transition,
    is_terminal,
    is_valid_transition,
    parse_status,
    replay_status,
    validate_status_transition,
)
from middleware.error_handler import (
    AuthorizationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from services.store import ISSUES, STATUS_EVENTS


class TestTransitionGraph:
    """Pure graph rules."""

    @pytest.mark.parametrize("current,target", [
        (IssueStatus.OPEN, IssueStatus.IN_PROGRESS),
        (IssueStatus.IN_PROGRESS, IssueStatus.UNDER_REVIEW),
        (IssueStatus.IN_PROGRESS, IssueStatus.OPEN),
        (IssueStatus.UNDER_REVIEW, IssueStatus.RESOLVED),
        (IssueStatus.UNDER_REVIEW, IssueStatus.IN_PROGRESS),
        (IssueStatus.RESOLVED, IssueStatus.CLOSED),
        (IssueStatus.RESOLVED, IssueStatus.IN_PROGRESS),
    ])
    def test_allowed_edges(self, current, target):
        assert is_valid_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (IssueStatus.OPEN, IssueStatus.CLOSED),
        (IssueStatus.OPEN, IssueStatus.RESOLVED),
        (IssueStatus.IN_PROGRESS, IssueStatus.RESOLVED),
        (IssueStatus.UNDER_REVIEW, IssueStatus.OPEN),
        (IssueStatus.CLOSED, IssueStatus.OPEN),
        (IssueStatus.CLOSED, IssueStatus.IN_PROGRESS),
    ])
    def test_disallowed_edges(self, current, target):
        assert not is_valid_transition(current, target)
        with pytest.raises(InvalidTransitionError):
            ensure_transition(current, target)

    def test_graph_covers_every_status(self):
        assert set(ALLOWED_TRANSITIONS) == set(IssueStatus)

    def test_closed_is_terminal(self):
        assert is_terminal(IssueStatus.CLOSED)
        assert allowed_targets(IssueStatus.CLOSED) == []
        result = validate_status_transition(IssueStatus.CLOSED, IssueStatus.OPEN)
        assert not result.is_valid
        assert "cannot change status" in result.errors[0]

    def test_allowed_targets_in_declaration_order(self):
        assert allowed_targets(IssueStatus.IN_PROGRESS) == [IssueStatus.OPEN, IssueStatus.UNDER_REVIEW]

    def test_parse_status(self):
        assert parse_status("Under Review") == IssueStatus.UNDER_REVIEW
        assert parse_status(IssueStatus.CLOSED) == IssueStatus.CLOSED
        with pytest.raises(ValidationError) as exc_info:
            parse_status("Done")
        assert exc_info.value.validation_errors[0]["field"] == "status"

    def test_describe_status_change(self):
        creation = StatusChangeEvent(issue_id="i", to_status=IssueStatus.OPEN, performed_by="u")
        change = StatusChangeEvent(
            issue_id="i", from_status=IssueStatus.OPEN, to_status=IssueStatus.IN_PROGRESS,
            performed_by="u", reason="Crew dispatched"
        )
        assert describe_status_change(creation) == "Issue reported"
        assert describe_status_change(change) == "Status changed to In Progress: Crew dispatched"


class TestReplayStatus:
    """Reconstructing status from recorded events."""

    def test_empty_history(self):
        assert replay_status([]) is None

    def test_broken_chain_raises(self):
        events = [
            StatusChangeEvent(issue_id="i", to_status=IssueStatus.OPEN, performed_by="u"),
            StatusChangeEvent(
                issue_id="i", from_status=IssueStatus.UNDER_REVIEW,
                to_status=IssueStatus.RESOLVED, performed_by="u"
            ),
        ]
        with pytest.raises(InvalidTransitionError):
            replay_status(events)

    def test_disallowed_edge_raises(self):
        events = [
            StatusChangeEvent(issue_id="i", to_status=IssueStatus.OPEN, performed_by="u"),
            StatusChangeEvent(
                issue_id="i", from_status=IssueStatus.OPEN,
                to_status=IssueStatus.CLOSED, performed_by="u"
            ),
        ]
        with pytest.raises(InvalidTransitionError):
            replay_status(events)

    def test_replay_matches_stored_status(self, issue_service, admin, make_issue):
        """A walk of the recorded events reconstructs the current status exactly."""
        issue = make_issue("Resolved")
        issue_service.transition(admin, issue.id, "In Progress", "Reopened after inspection")
        issue_service.transition(admin, issue.id, "Open")
        issue_service.transition(admin, issue.id, "In Progress")

        events = issue_service.list_status_events(issue.id)
        assert replay_status(events) == issue_service.get_issue(issue.id).status == IssueStatus.IN_PROGRESS
        assert events[0].from_status is None
        assert events[0].reason == "Issue created"


class TestCreateIssue:
    """Reporting issues."""

    def test_create_records_open_event(self, issue_service, store, citizen, sample_issue_data, recorder):
        issue = issue_service.create_issue(citizen, sample_issue_data)

        assert issue.status == IssueStatus.OPEN
        assert issue.priority == IssuePriority.HIGH
        assert issue.submitted_by == citizen.user_id
        assert issue.tracking_number.startswith("ISS-")
        assert issue.version == 1
        assert store.count(STATUS_EVENTS, {"issue_id": issue.id}) == 1

        created = recorder.of_type("issue_created")
        assert len(created) == 1
        assert created[0].issue_id == issue.id
        assert created[0].payload["tracking_number"] == issue.tracking_number

    def test_create_rejects_blank_title(self, issue_service, citizen, sample_issue_data):
        with pytest.raises(ValidationError) as exc_info:
            issue_service.create_issue(citizen, dict(sample_issue_data, title="   "))
        assert any(e["field"] == "title" for e in exc_info.value.validation_errors)

    def test_create_rejects_unknown_priority(self, issue_service, citizen, sample_issue_data):
        with pytest.raises(ValidationError):
            issue_service.create_issue(citizen, dict(sample_issue_data, priority="critical"))

    def test_inactive_actor_cannot_report(self, issue_service, sample_issue_data, inactive_admin):
        with pytest.raises(AuthorizationError):
            issue_service.create_issue(inactive_admin, sample_issue_data)


class TestTransition:
    """IssueService.transition behavior."""

    def test_staff_then_citizen_scenario(self, issue_service, staff, citizen, make_issue, inbox, recorder):
        """Assigned staff moves the issue; the submitting citizen cannot."""
        issue = make_issue(assigned_to=staff.user_id)

        result = issue_service.transition(staff, issue.id, "In Progress")
        assert result.changed is True
        assert result.issue.status == IssueStatus.IN_PROGRESS
        assert result.event.from_status == IssueStatus.OPEN
        assert result.event.to_status == IssueStatus.IN_PROGRESS

        events = issue_service.list_status_events(issue.id)
        assert [(e.from_status, e.to_status) for e in events] == [
            (None, IssueStatus.OPEN),
            (IssueStatus.OPEN, IssueStatus.IN_PROGRESS),
        ]

        page = inbox.list_notifications(citizen)
        status_notes = [n for n in page.items if n.type == "status_changed"]
        assert len(status_notes) == 1
        assert "In Progress" in status_notes[0].message

        with pytest.raises(AuthorizationError):
            issue_service.transition(citizen, issue.id, "Resolved")

        assert len(issue_service.list_status_events(issue.id)) == 2
        assert issue_service.get_issue(issue.id).status == IssueStatus.IN_PROGRESS
        assert len(recorder.of_type("status_changed")) == 1

    @pytest.mark.parametrize("target", ["Open", "In Progress", "Under Review", "Resolved", "Closed", "bogus"])
    def test_citizen_always_gets_authorization_error(self, issue_service, citizen, make_issue, target):
        issue = make_issue("In Progress")
        with pytest.raises(AuthorizationError):
            issue_service.transition(citizen, issue.id, target)

    def test_citizen_on_missing_issue_gets_authorization_error(self, issue_service, citizen):
        with pytest.raises(AuthorizationError):
            issue_service.transition(citizen, "does-not-exist", "In Progress")

    def test_same_status_is_idempotent(self, issue_service, admin, make_issue, recorder):
        issue = make_issue("In Progress")
        before = len(issue_service.list_status_events(issue.id))
        published = len(recorder.events)

        first = issue_service.transition(admin, issue.id, "In Progress")
        second = issue_service.transition(admin, issue.id, "In Progress")

        assert first.changed is False and second.changed is False
        assert first.event is None
        assert second.issue.version == issue.version
        assert len(issue_service.list_status_events(issue.id)) == before
        assert len(recorder.events) == published

    def test_unknown_status_is_validation_error(self, issue_service, admin, make_issue):
        issue = make_issue()
        with pytest.raises(ValidationError):
            issue_service.transition(admin, issue.id, "Done")

    def test_missing_issue_is_not_found(self, issue_service, admin):
        with pytest.raises(NotFoundError):
            issue_service.transition(admin, "does-not-exist", "In Progress")

    def test_invalid_edge(self, issue_service, admin, make_issue):
        issue = make_issue()
        with pytest.raises(InvalidTransitionError) as exc_info:
            issue_service.transition(admin, issue.id, "Closed")
        assert exc_info.value.status_code == 422
        assert exc_info.value.from_status == "Open"
        assert exc_info.value.to_status == "Closed"
        assert issue_service.get_issue(issue.id).status == IssueStatus.OPEN

    def test_closed_is_final(self, issue_service, admin, make_issue):
        issue = make_issue("Closed")
        assert issue.closed_at is not None
        with pytest.raises(InvalidTransitionError):
            issue_service.transition(admin, issue.id, "In Progress")

    def test_staff_outside_scope_denied(self, issue_service, other_staff, make_issue):
        issue = make_issue()
        with pytest.raises(AuthorizationError):
            issue_service.transition(other_staff, issue.id, "In Progress")

    def test_resolved_sets_timestamp_and_bumps_version(self, issue_service, admin, make_issue):
        issue = make_issue("Under Review")
        result = issue_service.transition(admin, issue.id, "Resolved", "Patched")
        assert result.issue.resolved_at is not None
        assert result.issue.version == issue.version + 1
        assert result.event.reason == "Patched"

    def test_status_changed_payload(self, issue_service, staff, make_issue, recorder):
        issue = make_issue(assigned_to=staff.user_id)
        issue_service.transition(staff, issue.id, "In Progress", "On it")

        event = recorder.of_type("status_changed")[-1]
        assert event.issue_id == issue.id
        assert event.actor_id == staff.user_id
        assert event.payload["from_status"] == "Open"
        assert event.payload["to_status"] == "In Progress"
        assert event.payload["reason"] == "On it"
        assert event.payload["assigned_to"] == staff.user_id
        assert event.payload["submitted_by"] == issue.submitted_by

    def test_lost_race_raises_conflict_and_writes_nothing(self, issue_service, store, admin, make_issue, recorder):
        """A concurrent change between read and write is detected by the CAS."""
        issue = make_issue()
        stale = issue_service.get_issue(issue.id)
        # Another writer moves the issue after our read
        store.atomic_update(ISSUES, issue.id, {}, {"version": issue.version + 1})

        with patch.object(issue_service, "_load_issue", return_value=stale):
            with pytest.raises(ConflictError):
                issue_service.transition(admin, issue.id, "In Progress")

        assert store.count(STATUS_EVENTS, {"issue_id": issue.id}) == 1
        assert issue_service.get_issue(issue.id).status == IssueStatus.OPEN
        assert recorder.of_type("status_changed") == []


class TestAssignAndPriority:
    """Assignment and priority changes."""

    def test_assign_publishes_event(self, issue_service, admin, staff, make_issue, recorder, inbox):
        issue = make_issue()
        updated = issue_service.assign(admin, issue.id, staff.user_id)

        assert updated.assigned_to == staff.user_id
        assert updated.version == issue.version + 1
        events = recorder.of_type("issue_assigned")
        assert len(events) == 1
        assert events[0].payload["previous_assignee"] is None
        assert inbox.list_notifications(staff).total == 1

    def test_reassigning_same_user_is_noop(self, issue_service, admin, staff, make_issue, recorder):
        issue = make_issue(assigned_to=staff.user_id)
        again = issue_service.assign(admin, issue.id, staff.user_id)
        assert again.version == issue.version
        assert len(recorder.of_type("issue_assigned")) == 1

    def test_department_head_cannot_route_elsewhere(self, issue_service, department_head, make_issue):
        issue = make_issue()
        with pytest.raises(AuthorizationError):
            issue_service.assign(department_head, issue.id, "staff-2", department="parks")

    def test_blank_assignee(self, issue_service, admin, make_issue):
        issue = make_issue()
        with pytest.raises(ValidationError):
            issue_service.assign(admin, issue.id, "  ")

    def test_priority_any_to_any(self, issue_service, staff, make_issue, recorder):
        issue = make_issue(priority="low")
        published = len(recorder.events)

        for value in ["urgent", "low", "medium"]:
            issue = issue_service.update_priority(staff, issue.id, value)
            assert issue.priority == IssuePriority(value)

        assert len(recorder.events) == published

    def test_priority_validation_and_authorization(self, issue_service, citizen, staff, make_issue):
        issue = make_issue()
        with pytest.raises(ValidationError):
            issue_service.update_priority(staff, issue.id, "critical")
        with pytest.raises(AuthorizationError):
            issue_service.update_priority(citizen, issue.id, "low")


class TestComments:
    """Adding and deleting comments."""

    def test_add_comment_trims_and_notifies(self, issue_service, staff, citizen, make_issue, inbox, recorder):
        issue = make_issue(assigned_to=staff.user_id)
        comment = issue_service.add_comment(staff, issue.id, "  Crew scheduled for Friday  ")

        assert comment.text == "Crew scheduled for Friday"
        assert comment.author_id == staff.user_id
        assert len(recorder.of_type("comment_added")) == 1
        # The commenter is not notified about their own comment
        assert inbox.list_notifications(citizen).total == 1
        assert inbox.list_notifications(staff).items[0].type != "comment_added"

    @pytest.mark.parametrize("text", ["", "   ", "x" * 2001])
    def test_invalid_comment_text(self, issue_service, citizen, make_issue, text):
        issue = make_issue()
        with pytest.raises(ValidationError):
            issue_service.add_comment(citizen, issue.id, text)

    def test_comment_at_limit(self, issue_service, citizen, make_issue):
        issue = make_issue()
        comment = issue_service.add_comment(citizen, issue.id, "x" * 2000)
        assert len(comment.text) == 2000

    def test_comment_on_missing_issue(self, issue_service, citizen):
        with pytest.raises(NotFoundError):
            issue_service.add_comment(citizen, "does-not-exist", "Hello")

    def test_only_author_deletes(self, issue_service, citizen, other_citizen, make_issue):
        issue = make_issue()
        comment = issue_service.add_comment(citizen, issue.id, "Mine")
        with pytest.raises(AuthorizationError):
            issue_service.delete_comment(other_citizen, comment.id)

    def test_delete_is_tombstone(self, issue_service, citizen, make_issue, recorder):
        issue = make_issue()
        comment = issue_service.add_comment(citizen, issue.id, "Typo")
        deleted = issue_service.delete_comment(citizen, comment.id)

        assert deleted.deleted_at is not None
        assert deleted.deleted_by == citizen.user_id
        assert issue_service.list_comments(issue.id) == []
        assert len(issue_service.list_comments(issue.id, include_deleted=True)) == 1
        assert len(recorder.of_type("comment_deleted")) == 1

        with pytest.raises(NotFoundError):
            issue_service.delete_comment(citizen, comment.id)
