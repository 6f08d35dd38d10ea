import uuid
from fastapi import APIRouter, Depends, Request
from framework.config import settings
from framework.dependencies import get_uow
from framework.repository.unit_of_work import UnitOfWork
from framework.response import Result
from framework.security import CurrentUser, admin_access, get_current_user
from apps.audit.service import UserActionPublisher, get_action_publisher
from ..schemas import LoginRequest, RegisterRequest, UserFilter
from ..service import IdentityService

router = APIRouter()
users_router = APIRouter(dependencies=[Depends(admin_access)])


def get_identity_service(
    uow: UnitOfWork = Depends(get_uow),
    publisher: UserActionPublisher = Depends(get_action_publisher)
) -> IdentityService:
    """Dependency: create IdentityService for anonymous endpoints."""
    return IdentityService(uow, publisher=publisher)


def get_admin_identity_service(
    uow: UnitOfWork = Depends(get_uow),
    current_user: CurrentUser = Depends(get_current_user)
) -> IdentityService:
    """Dependency: create IdentityService acting as the logged-in admin."""
    return IdentityService(uow, current_user)


@router.post("/register")
async def register(
    data: RegisterRequest,
    service: IdentityService = Depends(get_identity_service)
):
    """Register a customer account."""
    result = await service.register(data)
    return result.to_response()


@router.post("/login")
async def login(
    data: LoginRequest,
    request: Request,
    service: IdentityService = Depends(get_identity_service)
):
    """Login: return JWT and set cookie."""
    client_host = request.client.host if request.client else None
    result = await service.login(data, ip_address=client_host)
    response = result.to_response()
    if result.is_success:
        response.set_cookie(
            key=settings.ACCESS_TOKEN_COOKIE_NAME,
            value=result.data.access_token,
            max_age=result.data.expires_in,
            httponly=True,
            secure=settings.COOKIE_SECURE,
            samesite=settings.COOKIE_SAMESITE
        )
    return response


@router.post("/logout")
async def logout():
    """Logout: clear token cookie."""
    response = Result.success(message="Logged out successfully").to_response()
    response.delete_cookie(
        key=settings.ACCESS_TOKEN_COOKIE_NAME,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite=settings.COOKIE_SAMESITE
    )
    return response


@router.get("/me")
async def me(user: CurrentUser = Depends(get_current_user)):
    """Claims of the current token."""
    return Result.success(data=user).to_response()


@users_router.get("")
async def get_user_list(
    filter: UserFilter = Depends(),
    service: IdentityService = Depends(get_admin_identity_service)
):
    result = await service.get_user_list(filter)
    return result.to_response()


@users_router.get("/{user_id}")
async def get_user(
    user_id: uuid.UUID,
    service: IdentityService = Depends(get_admin_identity_service)
):
    result = await service.get_user(user_id)
    return result.to_response()


@users_router.delete("/{user_id}")
async def delete_user(
    user_id: uuid.UUID,
    service: IdentityService = Depends(get_admin_identity_service)
):
    result = await service.delete_user(user_id)
    return result.to_response()


@users_router.post("/{user_id}/restore")
async def restore_user(
    user_id: uuid.UUID,
    service: IdentityService = Depends(get_admin_identity_service)
):
    result = await service.restore_user(user_id)
    return result.to_response()
