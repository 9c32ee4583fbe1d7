# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB service layer with connection pooling and the MongoDB-backed
implementation of ``IssueStore``.
"""

import os
import logging
from enum import Enum
from typing import List, Dict, Optional, Any
from pymongo import MongoClient, ASCENDING, DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
    DuplicateKeyError
)
from opentelemetry import trace

from middleware.error_handler import ConflictError
from services.store import (
    ISSUES, STATUS_EVENTS, COMMENTS, NOTIFICATIONS, BULK_OPERATIONS, SortSpec
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

COUNTERS = "counters"


class MongoDBService:
    """MongoDB connection holder with pooling, health check and index setup."""

    def __init__(self, connection_string: str = None, database_name: str = None,
                 timeout_ms: int = None):
        """Initialize MongoDB service with connection pooling."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/civic_issues_dev'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'civic_issues_dev')
        self._client: Optional[MongoClient] = None
        self._database: Optional[Database] = None

        # Connection pool settings
        self.max_pool_size = int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.max_idle_time_ms = int(os.getenv('MONGODB_MAX_IDLE_TIME_MS', '30000'))
        # Bounds server selection and every socket operation
        self.timeout_ms = timeout_ms or int(os.getenv('MONGODB_TIMEOUT_MS', '5000'))

        logger.info(f"MongoDB service initialized for database: {self.database_name}")

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client with connection pooling."""
        if self._client is None:
            try:
                self._client = MongoClient(
                    self.connection_string,
                    maxPoolSize=self.max_pool_size,
                    minPoolSize=self.min_pool_size,
                    maxIdleTimeMS=self.max_idle_time_ms,
                    serverSelectionTimeoutMS=self.timeout_ms,
                    socketTimeoutMS=self.timeout_ms,
                    retryWrites=True,
                    retryReads=True
                )
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                raise

        return self._client

    @property
    def database(self) -> Database:
        """Get MongoDB database."""
        if self._database is None:
            self._database = self.client[self.database_name]
        return self._database

    def get_collection(self, collection_name: str) -> Collection:
        """Get MongoDB collection."""
        return self.database[collection_name]

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            result = self.client.admin.command('ping')
            return {
                'status': 'healthy',
                'ping': result.get('ok') == 1,
                'database': self.database_name
            }
        except Exception as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'database': self.database_name
            }

    def create_indexes(self) -> None:
        """Create the indexes the issue store queries rely on."""
        try:
            logger.info("Creating MongoDB indexes...")

            issues = self.get_collection(ISSUES)
            issues.create_index("tracking_number", unique=True)
            issues.create_index([("department", ASCENDING), ("status", ASCENDING)])
            issues.create_index([("assigned_to", ASCENDING), ("status", ASCENDING)])

            events = self.get_collection(STATUS_EVENTS)
            events.create_index([("issue_id", ASCENDING), ("sequence", ASCENDING)])

            comments = self.get_collection(COMMENTS)
            comments.create_index([("issue_id", ASCENDING), ("sequence", ASCENDING)])

            notifications = self.get_collection(NOTIFICATIONS)
            # One notification per (event, recipient) even under redelivery
            notifications.create_index([("event_id", ASCENDING), ("recipient_id", ASCENDING)], unique=True)
            notifications.create_index([("recipient_id", ASCENDING), ("is_read", ASCENDING), ("created_at", DESCENDING)])

            bulk = self.get_collection(BULK_OPERATIONS)
            bulk.create_index([("initiated_by", ASCENDING), ("started_at", DESCENDING)])

            logger.info("MongoDB indexes created successfully")

        except Exception as e:
            logger.error(f"Failed to create MongoDB indexes: {e}")
            raise


def _encode(value: Any) -> Any:
    """Convert enum members (recursively) to their stored values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


def _to_mongo(document: Dict[str, Any]) -> Dict[str, Any]:
    """Store the entity ``id`` as ``_id``."""
    encoded = _encode(document)
    if "id" in encoded:
        encoded["_id"] = encoded.pop("id")
    return encoded


def _from_mongo(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if document is None:
        return None
    if "_id" in document:
        document["id"] = str(document.pop("_id"))
    return document


def _query(filters: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    query = _encode(dict(filters or {}))
    if "id" in query:
        query["_id"] = query.pop("id")
    return query


class MongoIssueStore:
    """
    ``IssueStore`` backed by MongoDB.

    Single-record compare-and-swap uses ``find_one_and_update`` with the
    expected field values in the filter. A status transition updates the
    issue and appends its event inside one multi-document transaction, which
    requires a replica set or sharded cluster.
    """

    def __init__(self, service: MongoDBService):
        self.service = service

    def _collection(self, name: str) -> Collection:
        return self.service.get_collection(name)

    def find_by_id(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return _from_mongo(self._collection(collection).find_one({"_id": doc_id}))

    def find_by_filter(self, collection: str, filters: Optional[Dict[str, Any]] = None,
                       sort: Optional[SortSpec] = None, skip: int = 0,
                       limit: int = 0) -> List[Dict[str, Any]]:
        cursor = self._collection(collection).find(_query(filters))
        if sort:
            cursor = cursor.sort([("_id" if f == "id" else f, d) for f, d in sort])
        if skip:
            cursor = cursor.skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        documents = [_from_mongo(doc) for doc in cursor]
        logger.debug(f"Found {len(documents)} documents in {collection}")
        return documents

    def count(self, collection: str, filters: Optional[Dict[str, Any]] = None) -> int:
        return self._collection(collection).count_documents(_query(filters))

    def insert(self, collection: str, document: Dict[str, Any]) -> str:
        try:
            result = self._collection(collection).insert_one(_to_mongo(document))
        except DuplicateKeyError as e:
            logger.error(f"Duplicate key error in {collection}: {e}")
            raise ConflictError(f"Document {document.get('id')} already exists in {collection}")
        logger.info(f"Created document in {collection}: {result.inserted_id}")
        return str(result.inserted_id)

    def insert_if_absent(self, collection: str, key: Dict[str, Any], document: Dict[str, Any]) -> bool:
        try:
            result = self._collection(collection).update_one(
                _query(key),
                {"$setOnInsert": _to_mongo(document)},
                upsert=True
            )
        except DuplicateKeyError:
            # Lost an upsert race against the unique index
            return False
        return result.upserted_id is not None

    def atomic_update(self, collection: str, doc_id: str, expected: Dict[str, Any],
                      patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        query = _query(expected)
        query["_id"] = doc_id
        updated = self._collection(collection).find_one_and_update(
            query,
            {"$set": _encode(patch)},
            return_document=ReturnDocument.AFTER
        )
        return _from_mongo(updated)

    def update_many(self, collection: str, filters: Dict[str, Any], patch: Dict[str, Any]) -> int:
        result = self._collection(collection).update_many(_query(filters), {"$set": _encode(patch)})
        return result.modified_count

    def apply_transition(self, issue_id: str, expected: Dict[str, Any], patch: Dict[str, Any],
                         event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update an issue and append its status event in one transaction.

        Raises:
            ConflictError: If the issue no longer matches ``expected``
        """
        with tracer.start_as_current_span("mongodb.apply_transition") as span:
            span.set_attribute("issue.id", issue_id)

            def _callback(session):
                query = _query(expected)
                query["_id"] = issue_id
                updated = self._collection(ISSUES).find_one_and_update(
                    query,
                    {"$set": _encode(patch)},
                    return_document=ReturnDocument.AFTER,
                    session=session
                )
                if updated is None:
                    raise ConflictError(f"Issue {issue_id} was modified concurrently")
                self._collection(STATUS_EVENTS).insert_one(_to_mongo(event), session=session)
                return updated

            with self.service.client.start_session() as session:
                updated = session.with_transaction(_callback)

            return _from_mongo(updated)

    def next_sequence(self, name: str) -> int:
        counter = self._collection(COUNTERS).find_one_and_update(
            {"_id": name},
            {"$inc": {"value": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        return counter["value"]


# Singleton instance for application use
_mongodb_service: Optional[MongoDBService] = None


def get_mongodb_service() -> MongoDBService:
    """Get singleton MongoDB service instance."""
    global _mongodb_service
    if _mongodb_service is None:
        _mongodb_service = MongoDBService()
    return _mongodb_service


def close_mongodb_connection() -> None:
    """Close MongoDB connection (for cleanup)."""
    global _mongodb_service
    if _mongodb_service:
        _mongodb_service.close_connection()
        _mongodb_service = None
