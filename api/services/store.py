# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Persistence contract for the issue lifecycle core.

The core needs durable keyed records, filterable queries and atomic
single-record updates. ``IssueStore`` describes that contract;
``InMemoryIssueStore`` implements it for development and tests, and
``services.mongodb.MongoIssueStore`` implements it on MongoDB.
"""

import copy
import itertools
import logging
import threading
from collections import defaultdict
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from middleware.error_handler import ConflictError

logger = logging.getLogger(__name__)

ISSUES = "issues"
STATUS_EVENTS = "status_events"
COMMENTS = "comments"
NOTIFICATIONS = "notifications"
BULK_OPERATIONS = "bulk_operations"

TIMELINE_SEQUENCE = "timeline"

SortSpec = Sequence[Tuple[str, int]]


class IssueStore(Protocol):
    """Storage operations consumed by the core services."""

    def find_by_id(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        ...

    def find_by_filter(self, collection: str, filters: Optional[Dict[str, Any]] = None,
                       sort: Optional[SortSpec] = None, skip: int = 0,
                       limit: int = 0) -> List[Dict[str, Any]]:
        ...

    def count(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> int:
        ...

    def insert(self, collection: str, document: Dict[str, Any]) -> str:
        ...

    def insert_if_absent(self, collection: str, key: Dict[str, Any], document: Dict[str, Any]) -> bool:
        ...

    def atomic_update(self, collection: str, doc_id: str, expected: Dict[str, Any],
                      patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        ...

    def update_many(self, collection: str, filters: Dict[str, Any], patch: Dict[str, Any]) -> int:
        ...

    def apply_transition(self, issue_id: str, expected: Dict[str, Any], patch: Dict[str, Any],
                         event: Dict[str, Any]) -> Dict[str, Any]:
        ...

    def next_sequence(self, name: str) -> int:
        ...


def matches(document: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
    """
    Evaluate the subset of MongoDB query syntax the core uses.

    Supports equality (``None`` also matches a missing field), ``$in`` and
    ``$ne``.
    """
    if not filters:
        return True

    for field_name, condition in filters.items():
        value = document.get(field_name)
        if isinstance(condition, dict):
            if "$in" in condition and value not in condition["$in"]:
                return False
            if "$ne" in condition and value == condition["$ne"]:
                return False
        elif value != condition:
            return False

    return True


def sort_documents(documents: List[Dict[str, Any]], sort: Optional[SortSpec]) -> List[Dict[str, Any]]:
    """Stable multi-key sort; ``None`` values sort first."""
    if not sort:
        return documents
    for field_name, direction in reversed(list(sort)):
        documents.sort(
            key=lambda d: (d.get(field_name) is not None, d.get(field_name)),
            reverse=direction < 0
        )
    return documents


class InMemoryIssueStore:
    """
    Thread-safe in-process implementation of ``IssueStore``.

    A single lock serializes every operation, which gives each call the
    per-record atomicity the core relies on. Documents are copied on the way
    in and out so callers never share mutable state with the store.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self._sequences: Dict[str, itertools.count] = defaultdict(lambda: itertools.count(1))
        logger.info("In-memory issue store initialized")

    def find_by_id(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            document = self._collections[collection].get(doc_id)
            return copy.deepcopy(document) if document is not None else None

    def find_by_filter(self, collection: str, filters: Optional[Dict[str, Any]] = None,
                       sort: Optional[SortSpec] = None, skip: int = 0,
                       limit: int = 0) -> List[Dict[str, Any]]:
        with self._lock:
            # Insertion order is the natural order, as in a capped scan
            found = [copy.deepcopy(d) for d in self._collections[collection].values() if matches(d, filters)]

        found = sort_documents(found, sort)
        if skip:
            found = found[skip:]
        if limit:
            found = found[:limit]
        return found

    def count(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> int:
        with self._lock:
            return sum(1 for d in self._collections[collection].values() if matches(d, filters))

    def insert(self, collection: str, document: Dict[str, Any]) -> str:
        with self._lock:
            doc_id = document["id"]
            if doc_id in self._collections[collection]:
                raise ConflictError(f"Document {doc_id} already exists in {collection}")
            self._collections[collection][doc_id] = copy.deepcopy(document)
            logger.debug(f"Inserted document {doc_id} into {collection}")
            return doc_id

    def insert_if_absent(self, collection: str, key: Dict[str, Any], document: Dict[str, Any]) -> bool:
        with self._lock:
            if any(matches(d, key) for d in self._collections[collection].values()):
                return False
            self.insert(collection, document)
            return True

    def atomic_update(self, collection: str, doc_id: str, expected: Dict[str, Any],
                      patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Compare-and-swap a single record.

        Returns:
            The updated document, or None if the record is absent or does not
            match ``expected``
        """
        with self._lock:
            current = self._collections[collection].get(doc_id)
            if current is None or not matches(current, expected):
                return None
            current.update(copy.deepcopy(patch))
            return copy.deepcopy(current)

    def update_many(self, collection: str, filters: Dict[str, Any], patch: Dict[str, Any]) -> int:
        with self._lock:
            updated = 0
            for document in self._collections[collection].values():
                if matches(document, filters):
                    document.update(copy.deepcopy(patch))
                    updated += 1
            return updated

    def apply_transition(self, issue_id: str, expected: Dict[str, Any], patch: Dict[str, Any],
                         event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update an issue and append its status event as one unit.

        Raises:
            ConflictError: If the issue no longer matches ``expected``
        """
        with self._lock:
            updated = self.atomic_update(ISSUES, issue_id, expected, patch)
            if updated is None:
                raise ConflictError(f"Issue {issue_id} was modified concurrently")
            self.insert(STATUS_EVENTS, event)
            return updated

    def next_sequence(self, name: str) -> int:
        with self._lock:
            return next(self._sequences[name])
