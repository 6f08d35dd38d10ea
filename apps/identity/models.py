from typing import List, Optional
from sqlmodel import Field, JSON, Column
from framework.entity import BaseEntity


class AppUser(BaseEntity, table=True):
    __tablename__ = "app_users"
    username: str = Field(unique=True, index=True, max_length=100)
    email: str = Field(unique=True, index=True, max_length=255)
    hashed_password: str
    full_name: Optional[str] = Field(default=None, max_length=200)
    phone_number: Optional[str] = Field(default=None, max_length=20)
    # Role names, e.g. ["Customer"]; see framework.security.RoleName
    roles: List[str] = Field(default_factory=list, sa_column=Column(JSON))
