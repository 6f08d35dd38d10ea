from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional
from uuid import UUID
from jose import jwt, JWTError
from passlib.context import CryptContext
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel
from framework.config import settings
from framework.exceptions.handler import BusinessException
from framework.response import ErrorCode

# 1. Password hashing (BCrypt)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# 2. OAuth2 scheme; auto_error off so the cookie can be used instead
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_PREFIX}/auth/login", auto_error=False)


class RoleName(str, Enum):
    CUSTOMER = "Customer"
    STAFF = "Staff"
    ADMIN = "Admin"


# --- Core models ---

class CurrentUser(BaseModel):
    """Current logged-in user context decoded from the access token."""
    id: UUID
    username: str
    roles: List[str] = []
    ip_address: Optional[str] = None

    def has_role(self, *roles: str) -> bool:
        wanted = {str(getattr(role, "value", role)).lower() for role in roles}
        return any(role.lower() in wanted for role in self.roles)


# --- Helpers ---

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT token"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str, ip_address: Optional[str] = None) -> Optional[CurrentUser]:
    """Decode a token into CurrentUser; None when invalid or incomplete."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None

    user_id = payload.get("sub")
    username = payload.get("username")
    if user_id is None or username is None:
        return None
    try:
        return CurrentUser(
            id=UUID(user_id),
            username=username,
            roles=payload.get("roles") or [],
            ip_address=ip_address,
        )
    except ValueError:
        return None


# --- FastAPI dependencies ---

def get_token_from_request(
    request: Request,
    token_from_header: Optional[str] = Depends(oauth2_scheme)
) -> Optional[str]:
    """
    Get token from request: prefer cookie, then Authorization header.
    """
    token = request.cookies.get(settings.ACCESS_TOKEN_COOKIE_NAME)
    if not token and token_from_header:
        token = token_from_header
    return token


def get_optional_user(
    request: Request,
    token: Optional[str] = Depends(get_token_from_request)
) -> Optional[CurrentUser]:
    """Dependency for endpoints that personalise output when a user is logged in."""
    if not token:
        return None
    client_host = request.client.host if request.client else None
    return decode_access_token(token, client_host)


def get_current_user(
    user: Optional[CurrentUser] = Depends(get_optional_user)
) -> CurrentUser:
    """
    Dependency: validate token and extract user. Use in router as user: CurrentUser = Depends(get_current_user).
    """
    if user is None:
        raise BusinessException("Could not validate credentials", ErrorCode.UNAUTHORIZED)
    return user


def require_roles(*roles: RoleName):
    """Dependency factory gating a router or endpoint on the token's role set."""
    allowed = ", ".join(role.value for role in roles)

    def _check(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not user.has_role(*roles):
            raise BusinessException(
                "You do not have access to this area.",
                ErrorCode.INSUFFICIENT_PERMISSIONS,
                errors=[f"This area is only accessible to: {allowed}."],
            )
        return user

    return _check


customer_access = require_roles(RoleName.CUSTOMER, RoleName.STAFF, RoleName.ADMIN)
cms_access = require_roles(RoleName.STAFF, RoleName.ADMIN)
admin_access = require_roles(RoleName.ADMIN)
