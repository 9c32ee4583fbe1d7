# SPDX-License-Identifier: Apache-2.0

"""
Timeline domain logic.

Pure functions merging an issue's status-change events and comments into a
single ordered audit view.
"""

import heapq
from typing import Iterable, Iterator, List, Optional, Tuple

from models.entities import (
    Comment, CommentEntry, StatusChangeEntry, StatusChangeEvent, TimelineEntry
)
from models.enums import TimelineEntryKind
from domain.issues import describe_status_change

# Status changes sort before comments created in the same instant
KIND_RANK = {
    TimelineEntryKind.STATUS_CHANGE.value: 0,
    TimelineEntryKind.COMMENT.value: 1,
}


def sort_key(entry: TimelineEntry) -> Tuple:
    """Ordering key: timestamp, then kind, then insertion sequence."""
    return (entry.created_at, KIND_RANK[entry.kind], entry.sequence)


def status_entry(event: StatusChangeEvent) -> StatusChangeEntry:
    """Build a timeline entry from a status change event."""
    return StatusChangeEntry(
        entry_id=f"status-{event.id}",
        actor_id=event.performed_by,
        created_at=event.created_at,
        description=describe_status_change(event),
        from_status=event.from_status,
        to_status=event.to_status,
        sequence=event.sequence
    )


def comment_entry(comment: Comment, viewer_id: Optional[str] = None) -> CommentEntry:
    """Build a timeline entry from a comment, flagging the viewer's own comments."""
    return CommentEntry(
        entry_id=f"comment-{comment.id}",
        actor_id=comment.author_id,
        created_at=comment.created_at,
        description=comment.text,
        comment_id=comment.id,
        text=comment.text,
        can_delete=viewer_id is not None and comment.author_id == viewer_id and not comment.is_deleted(),
        sequence=comment.sequence
    )


def merge_timeline(
    events: Iterable[StatusChangeEvent],
    comments: Iterable[Comment],
    viewer_id: Optional[str] = None
) -> Iterator[TimelineEntry]:
    """
    Lazily merge status changes and comments into one ascending stream.

    Deleted comments are skipped. Inputs need not be pre-sorted; each side is
    ordered before the two streams are merged.

    Args:
        events: Status change events of one issue
        comments: Comments of the same issue
        viewer_id: User viewing the timeline (controls ``can_delete``)

    Yields:
        Timeline entries ordered by ``sort_key``
    """
    status_entries = sorted((status_entry(e) for e in events), key=sort_key)
    comment_entries = sorted(
        (comment_entry(c, viewer_id) for c in comments if not c.is_deleted()),
        key=sort_key
    )
    yield from heapq.merge(status_entries, comment_entries, key=sort_key)


def build_timeline(
    events: Iterable[StatusChangeEvent],
    comments: Iterable[Comment],
    viewer_id: Optional[str] = None
) -> List[TimelineEntry]:
    """Materialized form of ``merge_timeline``."""
    return list(merge_timeline(events, comments, viewer_id))
