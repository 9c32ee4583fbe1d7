# SPDX-License-Identifier: Apache-2.0

"""
Issue lifecycle domain logic.

This module contains pure functions for the status transition graph,
transition validation, status replay from recorded events and the
human-readable descriptions used by the timeline and notifications.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Union

from models.entities import StatusChangeEvent
from models.enums import IssueStatus
from middleware.error_handler import InvalidTransitionError, ValidationError

INITIAL_STATUS = IssueStatus.OPEN

ALLOWED_TRANSITIONS: Dict[IssueStatus, FrozenSet[IssueStatus]] = {
    IssueStatus.OPEN: frozenset({IssueStatus.IN_PROGRESS}),
    IssueStatus.IN_PROGRESS: frozenset({IssueStatus.UNDER_REVIEW, IssueStatus.OPEN}),
    IssueStatus.UNDER_REVIEW: frozenset({IssueStatus.RESOLVED, IssueStatus.IN_PROGRESS}),
    IssueStatus.RESOLVED: frozenset({IssueStatus.CLOSED, IssueStatus.IN_PROGRESS}),
    IssueStatus.CLOSED: frozenset(),  # Terminal state
}

TERMINAL_STATUSES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)


@dataclass
class ValidationResult:
    """Result of a transition validation."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)


def parse_status(value: Union[IssueStatus, str]) -> IssueStatus:
    """
    Parse a status value coming from a caller.

    Args:
        value: Enum member or its string value

    Returns:
        IssueStatus member

    Raises:
        ValidationError: If the value is not one of the five statuses
    """
    try:
        return IssueStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in IssueStatus)
        raise ValidationError(
            f"Invalid status value: {value!r}",
            [{"field": "status", "message": f"Must be one of: {allowed}", "type": "enum"}]
        )


def is_valid_transition(current: IssueStatus, target: IssueStatus) -> bool:
    """Check whether ``current -> target`` is an edge of the graph."""
    return IssueStatus(target) in ALLOWED_TRANSITIONS.get(IssueStatus(current), frozenset())


def allowed_targets(current: IssueStatus) -> List[IssueStatus]:
    """Statuses reachable in one step, in declaration order."""
    targets = ALLOWED_TRANSITIONS.get(IssueStatus(current), frozenset())
    return [s for s in IssueStatus if s in targets]


def is_terminal(status: IssueStatus) -> bool:
    return IssueStatus(status) in TERMINAL_STATUSES


def validate_status_transition(current: IssueStatus, target: IssueStatus) -> ValidationResult:
    """
    Validate an issue status transition.

    Args:
        current: Current issue status
        target: Desired new status

    Returns:
        ValidationResult with validation status and errors
    """
    errors = []

    if is_terminal(current):
        errors.append(f"Issue is {IssueStatus(current).value} and cannot change status")
    elif not is_valid_transition(current, target):
        allowed = ", ".join(s.value for s in allowed_targets(current))
        errors.append(
            f"Invalid status transition from {IssueStatus(current).value} to "
            f"{IssueStatus(target).value} (allowed: {allowed})"
        )

    return ValidationResult(is_valid=len(errors) == 0, errors=errors)


def ensure_transition(current: IssueStatus, target: IssueStatus) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` is allowed."""
    result = validate_status_transition(current, target)
    if not result.is_valid:
        raise InvalidTransitionError(
            result.errors[0],
            from_status=IssueStatus(current).value,
            to_status=IssueStatus(target).value
        )


def replay_status(events: Iterable[StatusChangeEvent]) -> Optional[IssueStatus]:
    """
    Reconstruct an issue's status by walking its recorded events.

    Events must be supplied in insertion order. The first event may be the
    creation record (``from_status`` of None, ``to_status`` Open).

    Args:
        events: StatusChangeEvents of one issue

    Returns:
        Status implied by the events, or None if there are none

    Raises:
        InvalidTransitionError: If the chain is broken or uses a disallowed edge
    """
    status: Optional[IssueStatus] = None

    for event in events:
        if event.from_status is None:
            if status is not None or event.to_status != INITIAL_STATUS:
                raise InvalidTransitionError(
                    f"Unexpected creation event {event.id} in status history"
                )
            status = INITIAL_STATUS
            continue

        expected = status if status is not None else INITIAL_STATUS
        if event.from_status != expected:
            raise InvalidTransitionError(
                f"Event {event.id} starts from {event.from_status.value}, expected {expected.value}"
            )
        ensure_transition(event.from_status, event.to_status)
        status = event.to_status

    return status


def describe_status_change(event: StatusChangeEvent) -> str:
    """Human-readable description of a status change."""
    if event.from_status is None:
        return "Issue reported"
    description = f"Status changed to {IssueStatus(event.to_status).value}"
    if event.reason:
        description += f": {event.reason}"
    return description
