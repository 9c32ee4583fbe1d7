# SPDX-License-Identifier: Apache-2.0

"""
Issue lifecycle service.

Operations that change an issue: reporting, status transitions, assignment,
priority and comments. Each operation authorizes the actor, writes through
the store with a compare-and-swap on the issue version, and only then
publishes its domain event on the bus.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import ValidationError as PydanticValidationError

from models.entities import Actor, Comment, Issue, StatusChangeEvent, COMMENT_MAX_LENGTH
from models.enums import IssuePriority, IssueStatus
from models.base import utcnow
from models.events import (
    BaseDomainEvent,
    CommentAddedEvent,
    CommentDeletedEvent,
    IssueAssignedEvent,
    IssueCreatedEvent,
    StatusChangedEvent,
)
from models.requests import CreateIssueRequest
from models.responses import TransitionResult
from domain.issues import INITIAL_STATUS, ensure_transition, parse_status
from domain.authorization import (
    can_comment,
    can_delete_comment,
    check_assignment,
    check_priority_update,
    check_status_actor,
    check_transition,
)
from middleware.error_handler import (
    AuthorizationError,
    ConflictError,
    CustomException,
    NotFoundError,
    ValidationError,
    validation_error_from_pydantic,
)
from services.events import EventBus
from services.store import COMMENTS, ISSUES, STATUS_EVENTS, TIMELINE_SEQUENCE, IssueStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

CREATION_REASON = "Issue created"


class IssueService:
    """Issue state machine and related mutations."""

    def __init__(self, store: IssueStore, bus: Optional[EventBus] = None):
        self.store = store
        self.bus = bus

    def _publish(self, event: BaseDomainEvent) -> None:
        if self.bus is not None:
            self.bus.publish(event)

    def _load_issue(self, issue_id: str) -> Issue:
        document = self.store.find_by_id(ISSUES, issue_id)
        if document is None:
            raise NotFoundError(f"Issue {issue_id} not found")
        issue = Issue.from_document(document)
        if issue.is_deleted():
            raise NotFoundError(f"Issue {issue_id} not found")
        return issue

    def _load_comment(self, comment_id: str) -> Comment:
        document = self.store.find_by_id(COMMENTS, comment_id)
        if document is None:
            raise NotFoundError(f"Comment {comment_id} not found")
        comment = Comment.from_document(document)
        if comment.is_deleted():
            raise NotFoundError(f"Comment {comment_id} not found")
        return comment

    def get_issue(self, issue_id: str) -> Issue:
        """
        Get an issue by ID.

        Raises:
            NotFoundError: If the issue does not exist
        """
        return self._load_issue(issue_id)

    def list_status_events(self, issue_id: str) -> List[StatusChangeEvent]:
        """Recorded status events of an issue in insertion order."""
        documents = self.store.find_by_filter(
            STATUS_EVENTS, {"issue_id": issue_id}, sort=[("sequence", 1)]
        )
        return [StatusChangeEvent.from_document(d) for d in documents]

    def list_comments(self, issue_id: str, include_deleted: bool = False) -> List[Comment]:
        """Comments of an issue in insertion order."""
        filters: Dict[str, Any] = {"issue_id": issue_id}
        if not include_deleted:
            filters["deleted_at"] = None
        documents = self.store.find_by_filter(COMMENTS, filters, sort=[("sequence", 1)])
        return [Comment.from_document(d) for d in documents]

    def create_issue(self, actor: Actor, request: Union[CreateIssueRequest, Dict[str, Any]]) -> Issue:
        """
        Report a new issue.

        The issue starts Open and gets its creation event recorded so the
        status can be replayed from events alone.

        Args:
            actor: Reporting user
            request: Validated request or raw fields

        Returns:
            Created issue

        Raises:
            AuthorizationError: If the account is inactive
            ValidationError: If a field is missing or malformed
        """
        with tracer.start_as_current_span("issues.create") as span:
            span.set_attribute("actor.id", actor.user_id)

            if not actor.is_active:
                raise AuthorizationError("Inactive accounts cannot report issues")

            if not isinstance(request, CreateIssueRequest):
                try:
                    request = CreateIssueRequest.model_validate(request)
                except PydanticValidationError as e:
                    raise validation_error_from_pydantic(e, "Invalid issue data")

            issue = Issue(
                title=request.title,
                description=request.description,
                category=request.category,
                priority=request.priority,
                department=request.department,
                status=INITIAL_STATUS,
                submitted_by=actor.user_id
            )
            self.store.insert(ISSUES, issue.to_document())

            creation = StatusChangeEvent(
                issue_id=issue.id,
                from_status=None,
                to_status=INITIAL_STATUS,
                performed_by=actor.user_id,
                reason=CREATION_REASON,
                sequence=self.store.next_sequence(TIMELINE_SEQUENCE),
                created_at=issue.created_at,
                updated_at=issue.created_at
            )
            self.store.insert(STATUS_EVENTS, creation.to_document())

            span.set_attribute("issue.id", issue.id)
            logger.info(
                "Issue reported",
                extra={
                    "extra_fields": {
                        "issue_id": issue.id,
                        "tracking_number": issue.tracking_number,
                        "submitted_by": actor.user_id
                    }
                }
            )

            self._publish(IssueCreatedEvent(
                issue_id=issue.id,
                actor_id=actor.user_id,
                timestamp=issue.created_at,
                payload={
                    "tracking_number": issue.tracking_number,
                    "title": issue.title,
                    "category": issue.category,
                    "priority": issue.priority.value,
                    "department": issue.department,
                    "submitted_by": issue.submitted_by
                }
            ))
            return issue

    def transition(self, actor: Actor, issue_id: str, target_status: Union[IssueStatus, str],
                   reason: Optional[str] = None) -> TransitionResult:
        """
        Move an issue to a new status.

        Args:
            actor: Acting user
            issue_id: Issue to change
            target_status: Requested status
            reason: Optional reason stored on the event

        Returns:
            TransitionResult; ``changed`` is False when the issue already had
            the requested status

        Raises:
            AuthorizationError: If the actor may not change this issue
            ValidationError: If the status value is unknown
            NotFoundError: If the issue does not exist
            InvalidTransitionError: If the edge is not in the graph
            ConflictError: If the issue changed concurrently
        """
        with tracer.start_as_current_span("issues.transition") as span:
            span.set_attributes({
                "issue.id": issue_id,
                "actor.id": actor.user_id,
                "actor.role": actor.role.value
            })

            try:
                gate = check_status_actor(actor)
                if not gate:
                    raise AuthorizationError(gate.reason)

                target = parse_status(target_status)
                span.set_attribute("issue.target_status", target.value)
                issue = self._load_issue(issue_id)

                if target == issue.status:
                    logger.debug(
                        "Transition to current status ignored",
                        extra={"extra_fields": {"issue_id": issue_id, "status": target.value}}
                    )
                    return TransitionResult(issue=issue, changed=False)

                ensure_transition(issue.status, target)

                decision = check_transition(actor, issue, target)
                if not decision:
                    raise AuthorizationError(decision.reason)

                now = utcnow()
                patch: Dict[str, Any] = {
                    "status": target,
                    "version": issue.version + 1,
                    "updated_at": now
                }
                if target == IssueStatus.RESOLVED:
                    patch["resolved_at"] = now
                elif target == IssueStatus.CLOSED:
                    patch["closed_at"] = now

                event = StatusChangeEvent(
                    issue_id=issue.id,
                    from_status=issue.status,
                    to_status=target,
                    performed_by=actor.user_id,
                    reason=reason,
                    sequence=self.store.next_sequence(TIMELINE_SEQUENCE),
                    created_at=now,
                    updated_at=now
                )

                updated = Issue.from_document(self.store.apply_transition(
                    issue.id,
                    {"status": issue.status, "version": issue.version},
                    patch,
                    event.to_document()
                ))

            except ConflictError as e:
                span.set_status(Status(StatusCode.ERROR, e.message))
                logger.warning(
                    "Status transition lost a concurrent update",
                    extra={"extra_fields": {"issue_id": issue_id, "actor_id": actor.user_id}}
                )
                raise
            except CustomException as e:
                span.set_status(Status(StatusCode.ERROR, e.message))
                raise

            logger.info(
                "Issue status changed",
                extra={
                    "extra_fields": {
                        "issue_id": issue_id,
                        "from_status": issue.status.value,
                        "to_status": target.value,
                        "actor_id": actor.user_id
                    }
                }
            )

            self._publish(StatusChangedEvent(
                issue_id=issue.id,
                actor_id=actor.user_id,
                timestamp=now,
                payload={
                    "from_status": issue.status.value,
                    "to_status": target.value,
                    "reason": reason,
                    "status_event_id": event.id,
                    "tracking_number": updated.tracking_number,
                    "submitted_by": updated.submitted_by,
                    "assigned_to": updated.assigned_to
                }
            ))
            return TransitionResult(issue=updated, changed=True, event=event)

    def assign(self, actor: Actor, issue_id: str, assignee_id: str,
               department: Optional[str] = None) -> Issue:
        """
        Assign an issue to a user, optionally routing it to a department.

        Raises:
            ValidationError: If the assignee is empty
            NotFoundError: If the issue does not exist
            AuthorizationError: If the actor may not assign the issue
            ConflictError: If the issue changed concurrently
        """
        with tracer.start_as_current_span("issues.assign") as span:
            span.set_attributes({"issue.id": issue_id, "actor.id": actor.user_id})

            assignee_id = (assignee_id or "").strip()
            if not assignee_id:
                raise ValidationError(
                    "Assignee is required",
                    [{"field": "assignee_id", "message": "Field cannot be empty", "type": "value_error"}]
                )

            issue = self._load_issue(issue_id)
            decision = check_assignment(actor, issue, department)
            if not decision:
                raise AuthorizationError(decision.reason)

            if issue.assigned_to == assignee_id and (department is None or department == issue.department):
                return issue

            patch: Dict[str, Any] = {
                "assigned_to": assignee_id,
                "version": issue.version + 1,
                "updated_at": utcnow()
            }
            if department is not None:
                patch["department"] = department

            document = self.store.atomic_update(ISSUES, issue.id, {"version": issue.version}, patch)
            if document is None:
                raise ConflictError(f"Issue {issue_id} was modified concurrently")
            updated = Issue.from_document(document)

            logger.info(
                "Issue assigned",
                extra={
                    "extra_fields": {
                        "issue_id": issue_id,
                        "assigned_to": assignee_id,
                        "previous_assignee": issue.assigned_to,
                        "actor_id": actor.user_id
                    }
                }
            )

            if issue.assigned_to != assignee_id:
                self._publish(IssueAssignedEvent(
                    issue_id=issue.id,
                    actor_id=actor.user_id,
                    payload={
                        "assigned_to": assignee_id,
                        "previous_assignee": issue.assigned_to,
                        "department": updated.department,
                        "tracking_number": updated.tracking_number
                    }
                ))
            return updated

    def update_priority(self, actor: Actor, issue_id: str,
                        priority: Union[IssuePriority, str]) -> Issue:
        """
        Change an issue's priority. Any value may follow any other.

        Raises:
            ValidationError: If the priority value is unknown
            NotFoundError: If the issue does not exist
            AuthorizationError: If the actor may not change the issue
            ConflictError: If the issue changed concurrently
        """
        with tracer.start_as_current_span("issues.update_priority") as span:
            span.set_attributes({"issue.id": issue_id, "actor.id": actor.user_id})

            try:
                priority = IssuePriority(priority)
            except ValueError:
                allowed = ", ".join(p.value for p in IssuePriority)
                raise ValidationError(
                    f"Invalid priority value: {priority!r}",
                    [{"field": "priority", "message": f"Must be one of: {allowed}", "type": "enum"}]
                )

            issue = self._load_issue(issue_id)
            decision = check_priority_update(actor, issue)
            if not decision:
                raise AuthorizationError(decision.reason)

            if issue.priority == priority:
                return issue

            document = self.store.atomic_update(
                ISSUES,
                issue.id,
                {"version": issue.version},
                {"priority": priority, "version": issue.version + 1, "updated_at": utcnow()}
            )
            if document is None:
                raise ConflictError(f"Issue {issue_id} was modified concurrently")

            logger.info(
                "Issue priority changed",
                extra={
                    "extra_fields": {
                        "issue_id": issue_id,
                        "from_priority": issue.priority.value,
                        "to_priority": priority.value,
                        "actor_id": actor.user_id
                    }
                }
            )
            return Issue.from_document(document)

    def add_comment(self, actor: Actor, issue_id: str, text: str) -> Comment:
        """
        Add a comment to an issue.

        Args:
            actor: Commenting user
            issue_id: Issue to comment on
            text: Comment text, trimmed before storing

        Returns:
            Stored comment

        Raises:
            ValidationError: If the text is empty or too long
            NotFoundError: If the issue does not exist
            AuthorizationError: If the account is inactive
        """
        with tracer.start_as_current_span("issues.add_comment") as span:
            span.set_attributes({"issue.id": issue_id, "actor.id": actor.user_id})

            text = (text or "").strip()
            if not text:
                raise ValidationError(
                    "Comment text cannot be empty",
                    [{"field": "text", "message": "Field cannot be empty", "type": "value_error"}]
                )
            if len(text) > COMMENT_MAX_LENGTH:
                raise ValidationError(
                    f"Comment text cannot exceed {COMMENT_MAX_LENGTH} characters",
                    [{"field": "text", "message": f"At most {COMMENT_MAX_LENGTH} characters", "type": "value_error"}]
                )

            issue = self._load_issue(issue_id)
            if not can_comment(actor, issue):
                raise AuthorizationError("Not permitted to comment on this issue")

            comment = Comment(
                issue_id=issue.id,
                author_id=actor.user_id,
                text=text,
                sequence=self.store.next_sequence(TIMELINE_SEQUENCE)
            )
            self.store.insert(COMMENTS, comment.to_document())
            span.set_attribute("comment.id", comment.id)

            logger.info(
                "Comment added",
                extra={"extra_fields": {"issue_id": issue_id, "comment_id": comment.id, "author_id": actor.user_id}}
            )

            self._publish(CommentAddedEvent(
                issue_id=issue.id,
                actor_id=actor.user_id,
                timestamp=comment.created_at,
                payload={
                    "comment_id": comment.id,
                    "text": comment.text,
                    "tracking_number": issue.tracking_number,
                    "submitted_by": issue.submitted_by,
                    "assigned_to": issue.assigned_to
                }
            ))
            return comment

    def delete_comment(self, actor: Actor, comment_id: str) -> Comment:
        """
        Tombstone a comment. Only its author may delete it.

        Raises:
            NotFoundError: If the comment does not exist or is already deleted
            AuthorizationError: If the actor is not the author
        """
        with tracer.start_as_current_span("issues.delete_comment") as span:
            span.set_attributes({"comment.id": comment_id, "actor.id": actor.user_id})

            comment = self._load_comment(comment_id)
            if not can_delete_comment(actor, comment):
                raise AuthorizationError("Only the author can delete this comment")

            now = utcnow()
            document = self.store.atomic_update(
                COMMENTS,
                comment.id,
                {"deleted_at": None},
                {"deleted_at": now, "deleted_by": actor.user_id, "updated_at": now}
            )
            if document is None:
                raise NotFoundError(f"Comment {comment_id} not found")

            logger.info(
                "Comment deleted",
                extra={"extra_fields": {"issue_id": comment.issue_id, "comment_id": comment_id}}
            )

            self._publish(CommentDeletedEvent(
                issue_id=comment.issue_id,
                actor_id=actor.user_id,
                timestamp=now,
                payload={"comment_id": comment.id}
            ))
            return Comment.from_document(document)
