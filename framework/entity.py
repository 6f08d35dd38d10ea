"""
Base entity: identity, audit fields, soft-delete metadata and status.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field


def utc_now() -> datetime:
    """Naive UTC timestamp (MySQL DATETIME and SQLite both drop tzinfo)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class EntityStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class BaseEntity(SQLModel):
    """Common columns for every persisted record; subclasses declare table=True."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    created_at: Optional[datetime] = Field(default=None)
    created_by: Optional[uuid.UUID] = Field(default=None)
    updated_at: Optional[datetime] = Field(default=None)
    updated_by: Optional[uuid.UUID] = Field(default=None)

    is_deleted: bool = Field(default=False, index=True)
    deleted_at: Optional[datetime] = Field(default=None)
    deleted_by: Optional[uuid.UUID] = Field(default=None)

    status: EntityStatus = Field(default=EntityStatus.ACTIVE)

    def mark_created(self, user_id: Optional[uuid.UUID] = None) -> None:
        """Stamp creation metadata. A None user means the system."""
        if self.id is None:
            self.id = uuid.uuid4()
        self.created_at = utc_now()
        self.created_by = user_id

    def mark_updated(self, user_id: Optional[uuid.UUID] = None) -> None:
        self.updated_at = utc_now()
        self.updated_by = user_id

    def mark_deleted(self, user_id: Optional[uuid.UUID] = None) -> None:
        """Soft delete: flag the row and deactivate it."""
        self.is_deleted = True
        self.deleted_at = utc_now()
        self.deleted_by = user_id
        self.status = EntityStatus.INACTIVE

    def restore(self, user_id: Optional[uuid.UUID] = None) -> None:
        self.is_deleted = False
        self.deleted_at = None
        self.deleted_by = None
        self.status = EntityStatus.ACTIVE
        self.mark_updated(user_id)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values are taken as UTC already."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
