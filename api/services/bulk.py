# SPDX-License-Identifier: Apache-2.0

"""
Bulk operation executor.

Applies the same status and/or priority update to many issues. Each issue
goes through the regular ``IssueService`` operations, so authorization,
the transition graph and the compare-and-swap apply per item. Failures are
collected per issue and never abort the rest of the run.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Optional, Union

from opentelemetry import context as otel_context
from opentelemetry import trace
from pydantic import ValidationError as PydanticValidationError

from models.base import utcnow
from models.entities import Actor, BulkFailure, BulkOperation
from models.enums import BulkOperationStatus
from models.events import BulkCompletedEvent
from models.requests import BulkUpdateRequest, BulkUpdates
from models.responses import BulkUpdateResult
from domain.authorization import can_run_bulk, is_admin
from middleware.error_handler import (
    AuthorizationError,
    CustomException,
    NotFoundError,
    validation_error_from_pydantic,
)
from services.events import EventBus
from services.issues import IssueService
from services.store import BULK_OPERATIONS, IssueStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_MAX_WORKERS = 4


class BulkOperationExecutor:
    """Runs bulk updates on a bounded worker pool."""

    def __init__(self, issues: IssueService, store: IssueStore, bus: Optional[EventBus] = None,
                 max_workers: int = DEFAULT_MAX_WORKERS):
        self.issues = issues
        self.store = store
        self.bus = bus
        self.max_workers = max(1, max_workers)

    def _apply_one(self, actor: Actor, issue_id: str, updates: BulkUpdates,
                   reason: Optional[str], parent_context) -> Optional[BulkFailure]:
        """Apply the updates to one issue; return the failure, if any."""
        token = otel_context.attach(parent_context)
        try:
            with tracer.start_as_current_span("bulk.item") as span:
                span.set_attribute("issue.id", issue_id)
                status_applied = False
                try:
                    if updates.status is not None:
                        self.issues.transition(actor, issue_id, updates.status, reason)
                        status_applied = True
                    if updates.priority is not None:
                        self.issues.update_priority(actor, issue_id, updates.priority)
                    return None
                except CustomException as e:
                    span.set_attribute("bulk.item.error_type", e.error_type)
                    # The status change is already durable and announced
                    message = f"status applied; priority failed: {e.message}" if status_applied else e.message
                    return BulkFailure(issue_id=issue_id, reason=message, error_type=e.error_type)
                except Exception as e:
                    span.record_exception(e)
                    logger.error(
                        "Unexpected error in bulk item",
                        extra={"extra_fields": {"issue_id": issue_id, "error": str(e)}},
                        exc_info=True
                    )
                    return BulkFailure(issue_id=issue_id, reason=str(e), error_type="internal-error")
        finally:
            otel_context.detach(token)

    def bulk_update(self, actor: Actor, issue_ids: Iterable[str],
                    updates: Union[BulkUpdates, Dict[str, Any]],
                    reason: Optional[str] = None) -> BulkUpdateResult:
        """
        Apply a status and/or priority update to a set of issues.

        Args:
            actor: Acting user
            issue_ids: Target issues; duplicates are processed once
            updates: Fields to change (``status``, ``priority``)
            reason: Reason recorded on every transition

        Returns:
            BulkUpdateResult with succeeded and failed issue IDs

        Raises:
            AuthorizationError: If the actor may not run bulk operations
            ValidationError: If the id set is empty or the updates are invalid
        """
        with tracer.start_as_current_span("bulk.update") as span:
            span.set_attribute("actor.id", actor.user_id)

            if not can_run_bulk(actor):
                raise AuthorizationError("Bulk operations require an administrator or department head")

            if isinstance(updates, BulkUpdates):
                updates = updates.model_dump(exclude_none=True)
            try:
                request = BulkUpdateRequest.model_validate({
                    "issue_ids": list(issue_ids),
                    "updates": updates,
                    "reason": reason
                })
            except PydanticValidationError as e:
                raise validation_error_from_pydantic(e, "Invalid bulk update")

            operation = BulkOperation(
                initiated_by=actor.user_id,
                issue_ids=request.issue_ids,
                updates=request.updates.model_dump(mode="json", exclude_none=True),
                reason=request.reason
            )
            self.store.insert(BULK_OPERATIONS, operation.to_document())
            span.set_attributes({
                "bulk.operation_id": operation.id,
                "bulk.items": len(request.issue_ids)
            })

            started = time.time()
            parent_context = otel_context.get_current()
            workers = min(self.max_workers, len(request.issue_ids))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bulk") as pool:
                futures = [
                    pool.submit(self._apply_one, actor, issue_id, request.updates, request.reason, parent_context)
                    for issue_id in request.issue_ids
                ]
                outcomes = [f.result() for f in futures]

            succeeded: List[str] = []
            failed: List[BulkFailure] = []
            for issue_id, failure in zip(request.issue_ids, outcomes):
                if failure is None:
                    succeeded.append(issue_id)
                else:
                    failed.append(failure)

            duration_ms = round((time.time() - started) * 1000, 2)
            final_status = BulkOperationStatus.COMPLETED if succeeded else BulkOperationStatus.FAILED
            self.store.atomic_update(
                BULK_OPERATIONS,
                operation.id,
                {"status": BulkOperationStatus.RUNNING},
                {
                    "status": final_status,
                    "succeeded": succeeded,
                    "failed": [f.model_dump() for f in failed],
                    "completed_at": utcnow(),
                    "duration_ms": duration_ms
                }
            )

            span.set_attributes({"bulk.succeeded": len(succeeded), "bulk.failed": len(failed)})
            logger.info(
                "Bulk operation finished",
                extra={
                    "extra_fields": {
                        "operation_id": operation.id,
                        "actor_id": actor.user_id,
                        "succeeded": len(succeeded),
                        "failed": len(failed),
                        "duration_ms": duration_ms
                    }
                }
            )

            if succeeded and self.bus is not None:
                self.bus.publish(BulkCompletedEvent(
                    actor_id=actor.user_id,
                    payload={
                        "operation_id": operation.id,
                        "updates": operation.updates,
                        "succeeded": succeeded,
                        "failed": [f.model_dump() for f in failed]
                    }
                ))

            return BulkUpdateResult(operation_id=operation.id, succeeded=succeeded, failed=failed)

    def get_operation(self, actor: Actor, operation_id: str) -> BulkOperation:
        """
        Get a bulk operation record.

        Raises:
            NotFoundError: If the record does not exist
            AuthorizationError: If the actor is neither the initiator nor an admin
        """
        document = self.store.find_by_id(BULK_OPERATIONS, operation_id)
        if document is None:
            raise NotFoundError(f"Bulk operation {operation_id} not found")
        operation = BulkOperation.from_document(document)
        if operation.initiated_by != actor.user_id and not is_admin(actor.role):
            raise AuthorizationError("Not permitted to view this bulk operation")
        return operation
