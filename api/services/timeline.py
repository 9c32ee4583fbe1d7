# SPDX-License-Identifier: Apache-2.0

"""
Timeline loading service.

Reads an issue's status events and comments from the store on every call and
hands them to ``domain.timeline`` for merging.
"""

import logging
from typing import Iterator, List, Optional

from opentelemetry import trace

from models.entities import Actor, Comment, StatusChangeEvent, TimelineEntry
from domain.timeline import merge_timeline
from middleware.error_handler import NotFoundError
from services.store import COMMENTS, ISSUES, STATUS_EVENTS, IssueStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class TimelineAssembler:
    """Builds the merged status/comment view of one issue."""

    def __init__(self, store: IssueStore):
        self.store = store

    def iter_timeline(self, issue_id: str, viewer: Optional[Actor] = None) -> Iterator[TimelineEntry]:
        """
        Lazily yield an issue's timeline in ascending order.

        Args:
            issue_id: Issue to assemble
            viewer: User looking at the timeline; controls ``can_delete``

        Raises:
            NotFoundError: If the issue does not exist
        """
        if self.store.find_by_id(ISSUES, issue_id) is None:
            raise NotFoundError(f"Issue {issue_id} not found")

        events = (
            StatusChangeEvent.from_document(d)
            for d in self.store.find_by_filter(
                STATUS_EVENTS, {"issue_id": issue_id}, sort=[("created_at", 1), ("sequence", 1)]
            )
        )
        comments = (
            Comment.from_document(d)
            for d in self.store.find_by_filter(
                COMMENTS, {"issue_id": issue_id, "deleted_at": None},
                sort=[("created_at", 1), ("sequence", 1)]
            )
        )
        return merge_timeline(events, comments, viewer.user_id if viewer else None)

    def get_timeline(self, issue_id: str, viewer: Optional[Actor] = None) -> List[TimelineEntry]:
        """Materialized timeline of an issue."""
        with tracer.start_as_current_span("timeline.get") as span:
            span.set_attribute("issue.id", issue_id)
            entries = list(self.iter_timeline(issue_id, viewer))
            span.set_attribute("timeline.entries", len(entries))
            logger.debug(f"Assembled timeline for issue {issue_id} with {len(entries)} entries")
            return entries
