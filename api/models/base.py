# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Common base for every persisted record of the issue engine.

Records are stored keyed by a string ``id`` (an ObjectId hex string) and are
never physically removed: deletion sets the ``deleted_at`` tombstone.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, ConfigDict
from bson import ObjectId


def generate_object_id() -> str:
    return str(ObjectId())


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what MongoDB round-trips."""
    return datetime.utcnow()


class BaseEntity(BaseModel):
    """Persisted record with identity, timestamps and tombstone."""

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    id: str = Field(default_factory=generate_object_id)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    deleted_at: Optional[datetime] = Field(None, description="Tombstone timestamp")

    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_document(self) -> Dict[str, Any]:
        """Serialize to a storage document keyed by ``id``."""
        return self.model_dump(mode="python")

    @classmethod
    def from_document(cls, document: Dict[str, Any]):
        return cls.model_validate(document)
