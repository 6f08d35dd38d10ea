import uuid
from datetime import datetime
from typing import List, Optional
from pydantic import EmailStr, Field
from framework.entity import EntityStatus
from framework.query import BasePaginationFilter
from framework.response import CamelModel


class RegisterRequest(CamelModel):
    username: str = Field(min_length=3, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    full_name: Optional[str] = Field(default=None, max_length=200)
    phone_number: Optional[str] = Field(default=None, max_length=20)


class LoginRequest(CamelModel):
    username: str
    password: str


class UserResponse(CamelModel):
    id: uuid.UUID
    username: str
    email: str
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    roles: List[str] = []
    status: EntityStatus
    is_deleted: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AuthResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class UserFilter(BasePaginationFilter):
    role: Optional[str] = None
    include_deleted: bool = False
