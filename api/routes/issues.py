# SPDX-License-Identifier: Apache-2.0

"""
Issue lifecycle endpoints.

Reporting, status transitions, assignment, priority, comments, the merged
timeline and bulk updates. Every endpoint resolves the actor from the bearer
token and delegates to the core services; core errors become problem-details
responses through the error handler.
"""

from flask import request, jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError
import logging
from typing import Type, TypeVar

from models.requests import (
    AddCommentRequest,
    AssignIssueRequest,
    BulkUpdateRequest,
    CreateIssueRequest,
    TransitionRequest,
    UpdatePriorityRequest,
)
from middleware.auth import require_auth, current_actor
from middleware.error_handler import ValidationError, validation_error_from_pydantic

logger = logging.getLogger(__name__)

issues_tag = Tag(name="Issues", description="Issue lifecycle management")
issues_bp = APIBlueprint(
    'issues',
    __name__,
    url_prefix='/api',
    abp_tags=[issues_tag]
)

RequestModel = TypeVar("RequestModel", bound=BaseModel)


class IssuePath(BaseModel):
    issue_id: str = Field(..., description="Issue ID")


class CommentPath(BaseModel):
    comment_id: str = Field(..., description="Comment ID")


class OperationPath(BaseModel):
    operation_id: str = Field(..., description="Bulk operation ID")


def parse_body(model: Type[RequestModel]) -> RequestModel:
    """
    Validate the JSON body against a request model.

    Raises:
        ValidationError: If the body is missing or does not match the model
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise validation_error_from_pydantic(e)


@issues_bp.post('/issues')
@require_auth
def create_issue():
    """Report a new issue."""
    issue = current_app.issue_service.create_issue(current_actor(), parse_body(CreateIssueRequest))
    return jsonify(issue.model_dump(mode="json")), 201


@issues_bp.get('/issues/<issue_id>')
@require_auth
def get_issue(path: IssuePath):
    """Get one issue."""
    issue = current_app.issue_service.get_issue(path.issue_id)
    return jsonify(issue.model_dump(mode="json"))


@issues_bp.post('/issues/<issue_id>/status')
@require_auth
def transition_issue(path: IssuePath):
    """
    Move an issue to a new status.

    Repeating the current status is accepted and changes nothing.
    """
    body = parse_body(TransitionRequest)
    result = current_app.issue_service.transition(current_actor(), path.issue_id, body.status, body.reason)
    return jsonify(result.model_dump(mode="json"))


@issues_bp.post('/issues/<issue_id>/assign')
@require_auth
def assign_issue(path: IssuePath):
    """Assign an issue to a user."""
    body = parse_body(AssignIssueRequest)
    issue = current_app.issue_service.assign(current_actor(), path.issue_id, body.assignee_id, body.department)
    return jsonify(issue.model_dump(mode="json"))


@issues_bp.post('/issues/<issue_id>/priority')
@require_auth
def update_issue_priority(path: IssuePath):
    """Change an issue's priority."""
    body = parse_body(UpdatePriorityRequest)
    issue = current_app.issue_service.update_priority(current_actor(), path.issue_id, body.priority)
    return jsonify(issue.model_dump(mode="json"))


@issues_bp.get('/issues/<issue_id>/timeline')
@require_auth
def get_issue_timeline(path: IssuePath):
    """Merged status changes and comments, oldest first."""
    entries = current_app.timeline_assembler.get_timeline(path.issue_id, current_actor())
    return jsonify({
        "issue_id": path.issue_id,
        "entries": [entry.model_dump(mode="json") for entry in entries],
        "total": len(entries)
    })


@issues_bp.post('/issues/<issue_id>/comments')
@require_auth
def add_issue_comment(path: IssuePath):
    """Comment on an issue."""
    body = parse_body(AddCommentRequest)
    comment = current_app.issue_service.add_comment(current_actor(), path.issue_id, body.text)
    return jsonify(comment.model_dump(mode="json")), 201


@issues_bp.delete('/comments/<comment_id>')
@require_auth
def delete_comment(path: CommentPath):
    """Delete one of your own comments."""
    current_app.issue_service.delete_comment(current_actor(), path.comment_id)
    return '', 204


@issues_bp.post('/issues/bulk')
@require_auth
def bulk_update_issues():
    """Apply a status and/or priority change to many issues."""
    body = parse_body(BulkUpdateRequest)
    result = current_app.bulk_executor.bulk_update(
        current_actor(),
        body.issue_ids,
        body.updates,
        body.reason
    )
    return jsonify(dict(result.model_dump(mode="json"), total=result.total))


@issues_bp.get('/bulk-operations/<operation_id>')
@require_auth
def get_bulk_operation(path: OperationPath):
    """Get the record of a bulk operation."""
    operation = current_app.bulk_executor.get_operation(current_actor(), path.operation_id)
    return jsonify(operation.model_dump(mode="json"))
