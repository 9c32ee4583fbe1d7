# SPDX-License-Identifier: Apache-2.0

"""
Authorization domain logic for role-based access control.

This module contains pure functions deciding who may change what. Admin
equivalence (admin and system_admin) is decided only by ``is_admin``; every
other module that gates on administrators calls it.
"""

from typing import Optional, Union
from dataclasses import dataclass

from models.entities import Actor, Issue, Comment
from models.enums import UserRole, IssueStatus
from domain.issues import is_valid_transition

ADMIN_ROLES = frozenset({UserRole.ADMIN, UserRole.SYSTEM_ADMIN})
TRIAGE_ROLES = frozenset({UserRole.STAFF, UserRole.DEPARTMENT_HEAD})

USER_CHANNEL_PREFIX = "user:"
ISSUE_CHANNEL_PREFIX = "issue:"
ADMIN_DASHBOARD_CHANNEL = "admin-dashboard"


@dataclass
class AuthorizationResult:
    """Result of an authorization check."""
    allowed: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


def _deny(reason: str) -> AuthorizationResult:
    return AuthorizationResult(allowed=False, reason=reason)


def _allow() -> AuthorizationResult:
    return AuthorizationResult(allowed=True)


def is_admin(role: Union[UserRole, str, None]) -> bool:
    """
    Check if a role has administrator rights.

    Args:
        role: Role enum member or its string value

    Returns:
        True for admin and system_admin
    """
    if role is None:
        return False
    try:
        return UserRole(role) in ADMIN_ROLES
    except ValueError:
        return False


def is_in_scope(actor: Actor, issue: Issue) -> bool:
    """
    Check if an issue falls within a staff member's working scope.

    Args:
        actor: Acting user
        issue: Issue being acted upon

    Returns:
        True if the issue is assigned to the actor or to the actor's department
    """
    if issue.is_assigned_to(actor.user_id):
        return True
    return bool(actor.department) and issue.department == actor.department


def check_status_actor(actor: Actor) -> AuthorizationResult:
    """
    Role-level gate for status changes, independent of any issue.

    Inactive accounts and citizens can never change a status, whatever the
    issue or the target.
    """
    if not actor.is_active:
        return _deny("Inactive accounts cannot change issue status")
    if actor.role == UserRole.CITIZEN:
        return _deny("Citizens cannot change issue status")
    return _allow()


def check_transition(actor: Actor, issue: Issue, target_status: IssueStatus) -> AuthorizationResult:
    """
    Check whether an actor may move an issue to a target status.

    Args:
        actor: Acting user
        issue: Issue in its current state
        target_status: Requested status

    Returns:
        AuthorizationResult indicating if the transition is permitted
    """
    gate = check_status_actor(actor)
    if not gate:
        return gate

    if not is_valid_transition(issue.status, target_status):
        return _deny(f"Transition from {issue.status.value} to {IssueStatus(target_status).value} is not allowed")

    if is_admin(actor.role):
        return _allow()

    if actor.role in TRIAGE_ROLES and is_in_scope(actor, issue):
        return _allow()

    return _deny("Issue is not assigned to you or your department")


def can_transition(actor: Actor, issue: Issue, target_status: IssueStatus) -> bool:
    """Predicate form of ``check_transition``."""
    return check_transition(actor, issue, target_status).allowed


def can_manage_users(actor: Actor) -> bool:
    """Only active administrators may manage users."""
    return actor.is_active and is_admin(actor.role)


def check_priority_update(actor: Actor, issue: Issue) -> AuthorizationResult:
    """
    Check whether an actor may change an issue's priority.

    Priority is not governed by a state machine; the scope rules match
    status transitions.
    """
    if not actor.is_active:
        return _deny("Inactive accounts cannot change priority")
    if is_admin(actor.role):
        return _allow()
    if actor.role in TRIAGE_ROLES and is_in_scope(actor, issue):
        return _allow()
    return _deny("Not permitted to change the priority of this issue")


def can_update_priority(actor: Actor, issue: Issue) -> bool:
    """Predicate form of ``check_priority_update``."""
    return check_priority_update(actor, issue).allowed


def check_assignment(actor: Actor, issue: Issue,
                     target_department: Optional[str] = None) -> AuthorizationResult:
    """
    Admins assign anything; department heads assign within their department.

    Args:
        actor: Acting user
        issue: Issue being assigned
        target_department: Department the issue is being routed to, if any
    """
    if not actor.is_active:
        return _deny("Inactive accounts cannot assign issues")
    if is_admin(actor.role):
        return _allow()
    if (actor.role == UserRole.DEPARTMENT_HEAD and actor.department
            and issue.department == actor.department):
        if target_department and target_department != actor.department:
            return _deny("Department heads cannot route issues to another department")
        return _allow()
    return _deny("Not permitted to assign this issue")


def can_assign(actor: Actor, issue: Issue, target_department: Optional[str] = None) -> bool:
    """Predicate form of ``check_assignment``."""
    return check_assignment(actor, issue, target_department).allowed


def can_comment(actor: Actor, issue: Issue) -> bool:
    """Any active, authenticated user may comment on an issue they can view."""
    return actor.is_active


def can_delete_comment(actor: Actor, comment: Comment) -> bool:
    """Only the original author may delete a comment."""
    return actor.is_active and comment.author_id == actor.user_id


def can_run_bulk(actor: Actor) -> bool:
    """Administrators and department heads may start bulk operations."""
    return actor.is_active and (is_admin(actor.role) or actor.role == UserRole.DEPARTMENT_HEAD)


def user_channel(user_id: str) -> str:
    return f"{USER_CHANNEL_PREFIX}{user_id}"


def issue_channel(issue_id: str) -> str:
    return f"{ISSUE_CHANNEL_PREFIX}{issue_id}"


def is_valid_channel(channel: str) -> bool:
    """Check that a channel name is one of the three known shapes."""
    if channel == ADMIN_DASHBOARD_CHANNEL:
        return True
    for prefix in (USER_CHANNEL_PREFIX, ISSUE_CHANNEL_PREFIX):
        if channel.startswith(prefix) and len(channel) > len(prefix):
            return True
    return False


def check_channel_join(actor: Actor, channel: str) -> AuthorizationResult:
    """
    Check whether a live connection may subscribe to a channel.

    Args:
        actor: User owning the connection
        channel: Channel name

    Returns:
        AuthorizationResult indicating if the subscription is permitted
    """
    if not actor.is_active:
        return _deny("Inactive accounts cannot subscribe")
    if channel == ADMIN_DASHBOARD_CHANNEL:
        return _allow() if is_admin(actor.role) else _deny("Admin dashboard requires administrator role")
    if channel.startswith(USER_CHANNEL_PREFIX):
        if channel[len(USER_CHANNEL_PREFIX):] == actor.user_id:
            return _allow()
        return _deny("Cannot subscribe to another user's channel")
    if channel.startswith(ISSUE_CHANNEL_PREFIX):
        return _allow()
    return _deny(f"Unknown channel: {channel}")


def can_join_channel(actor: Actor, channel: str) -> bool:
    """Predicate form of ``check_channel_join``."""
    return check_channel_join(actor, channel).allowed
