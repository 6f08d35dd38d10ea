import uuid
from enum import Enum
from typing import Optional
from sqlalchemy import Text
from sqlmodel import Field, Column
from framework.entity import BaseEntity


class UserActionType(str, Enum):
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"
    RESTORE = "Restore"
    STATUS_CHANGE = "StatusChange"
    LOGIN = "Login"


class UserAction(BaseEntity, table=True):
    """Who did what to which entity; old/new values are JSON snapshots."""
    __tablename__ = "user_actions"

    user_id: Optional[uuid.UUID] = Field(default=None, index=True)
    action: UserActionType
    entity_id: Optional[uuid.UUID] = Field(default=None, index=True)
    entity_name: str = Field(max_length=100)
    old_value: Optional[str] = Field(default=None, sa_column=Column(Text))
    new_value: Optional[str] = Field(default=None, sa_column=Column(Text))
    ip_address: Optional[str] = Field(default=None, max_length=64)
    action_detail: Optional[str] = Field(default=None, max_length=500)
