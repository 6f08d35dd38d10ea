import uuid
from datetime import timedelta
from typing import Optional
from framework.config import settings
from framework.entity import EntityStatus
from framework.logging.logger import get_logger
from framework.notification.notifier import notify_user_registered
from framework.repository.unit_of_work import UnitOfWork
from framework.response import ErrorCode, PaginationResult, Result
from framework.security import CurrentUser, RoleName, create_access_token, get_password_hash, verify_password
from apps.audit.models import UserActionType
from apps.audit.service import UserActionPublisher, record_user_action
from .models import AppUser
from .query import UserQueryBuilder
from .repository import UserRepository
from .schemas import AuthResponse, LoginRequest, RegisterRequest, UserFilter, UserResponse

logger = get_logger("identity_service")


async def resolve_current_user(uow: UnitOfWork, current_user: Optional[CurrentUser]) -> Optional[AppUser]:
    """The token's user, provided it still exists, is not deleted and is active."""
    if current_user is None:
        return None
    user = await uow.get_repository(UserRepository, AppUser).get_by_id(current_user.id)
    if user is None or user.status != EntityStatus.ACTIVE:
        return None
    return user


class IdentityService:
    def __init__(
        self,
        uow: UnitOfWork,
        current_user: Optional[CurrentUser] = None,
        publisher: Optional[UserActionPublisher] = None
    ):
        """Initialize Identity Service with UnitOfWork."""
        self.uow = uow
        self.current_user = current_user
        self.publisher = publisher or UserActionPublisher()

    @property
    def users(self) -> UserRepository:
        return self.uow.get_repository(UserRepository, AppUser)

    async def register(self, request: RegisterRequest) -> Result[UserResponse]:
        """Create a Customer account and send the welcome email."""
        try:
            if await self.users.username_exists(request.username):
                return Result.failure("Username already exists", ErrorCode.CONFLICT)
            if await self.users.email_exists(request.email):
                return Result.failure("Email already exists", ErrorCode.CONFLICT)

            user = AppUser(
                username=request.username,
                email=request.email,
                hashed_password=get_password_hash(request.password),
                full_name=request.full_name,
                phone_number=request.phone_number,
                roles=[RoleName.CUSTOMER.value],
            )
            user.mark_created()
            await self.users.add(user)
            await self.uow.save_changes()
            logger.info(f"User {user.username} registered")
        except Exception as e:
            logger.opt(exception=e).error(f"Failed to register user {request.username}: {str(e)}")
            return Result.from_exception(e, "Registration failed")

        await notify_user_registered(user.email, user.username, user.full_name)
        return Result.success(UserResponse.model_validate(user), "User registered successfully")

    async def login(self, request: LoginRequest, ip_address: Optional[str] = None) -> Result[AuthResponse]:
        """Authenticate and issue an access token carrying the role list."""
        try:
            user = await self.users.get_by_username(request.username)
            if not user or not verify_password(request.password, user.hashed_password):
                return Result.failure("Invalid username or password", ErrorCode.INVALID_CREDENTIALS)
            if user.status != EntityStatus.ACTIVE:
                return Result.failure("Account is inactive", ErrorCode.INVALID_CREDENTIALS)

            expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
            access_token = create_access_token(
                data={"sub": str(user.id), "username": user.username, "roles": list(user.roles)},
                expires_delta=expires_delta,
            )
        except Exception as e:
            logger.opt(exception=e).error(f"Login failed for {request.username}: {str(e)}")
            return Result.from_exception(e, "Login failed")

        logger.info(f"User {user.username} authenticated successfully")
        await self.publisher.publish(
            user.id, UserActionType.LOGIN, "AppUser", entity_id=user.id, ip_address=ip_address,
            detail="User logged in",
        )
        return Result.success(
            AuthResponse(
                access_token=access_token,
                expires_in=int(expires_delta.total_seconds()),
                user=UserResponse.model_validate(user),
            ),
            "Login successful",
        )

    async def get_user(self, user_id: uuid.UUID) -> Result[UserResponse]:
        try:
            user = await self.users.get_by_id(user_id, include_deleted=True)
            if user is None:
                return Result.failure("User not found", ErrorCode.NOT_FOUND)
            return Result.success(UserResponse.model_validate(user))
        except Exception as e:
            logger.opt(exception=e).error(f"Error getting user {user_id}: {str(e)}")
            return Result.from_exception(e, "Error getting user")

    async def get_user_list(self, filter: UserFilter) -> PaginationResult[UserResponse]:
        try:
            builder = UserQueryBuilder()
            users, total = await self.users.get_paged(
                filter.page,
                filter.page_size,
                predicate=builder.build_predicate(filter),
                order_by=builder.build_order_by(filter),
                ascending=builder.is_ascending(filter),
                include_deleted=filter.include_deleted,
            )
            items = [UserResponse.model_validate(user) for user in users]
            return PaginationResult.success(items, filter.page, filter.page_size, total)
        except Exception as e:
            logger.opt(exception=e).error(f"Error getting user list: {str(e)}")
            return PaginationResult.from_exception(e, "Error getting user list")

    async def delete_user(self, user_id: uuid.UUID) -> Result:
        """Soft delete plus audit row in one transaction."""
        try:
            actor = await resolve_current_user(self.uow, self.current_user)
            if actor is None:
                return Result.failure("User is not valid", ErrorCode.UNAUTHORIZED)
            if actor.id == user_id:
                return Result.failure("You cannot delete your own account", ErrorCode.INVALID_OPERATION)

            user = await self.users.get_by_id(user_id)
            if user is None:
                return Result.failure("User not found", ErrorCode.NOT_FOUND)

            old_value = UserResponse.model_validate(user)
            await self.uow.begin_transaction()
            try:
                user.mark_deleted(actor.id)
                await self.users.update(user)
                await record_user_action(
                    self.uow, actor.id, UserActionType.DELETE, "AppUser",
                    entity_id=user_id, old_value=old_value,
                    ip_address=self.current_user.ip_address,
                    detail=f"Deleted user '{old_value.username}'",
                )
                await self.uow.commit_transaction()
            except Exception:
                await self.uow.rollback_transaction()
                raise

            logger.info(f"User {user_id} deleted by {actor.id}")
            return Result.success(message="User deleted successfully")
        except Exception as e:
            logger.opt(exception=e).error(f"Error deleting user {user_id}: {str(e)}")
            return Result.from_exception(e, "Error deleting user")

    async def restore_user(self, user_id: uuid.UUID) -> Result[UserResponse]:
        try:
            actor = await resolve_current_user(self.uow, self.current_user)
            if actor is None:
                return Result.failure("User is not valid", ErrorCode.UNAUTHORIZED)

            user = await self.users.get_by_id(user_id, include_deleted=True)
            if user is None:
                return Result.failure("User not found", ErrorCode.NOT_FOUND)
            if not user.is_deleted:
                return Result.failure("User is not deleted", ErrorCode.INVALID_OPERATION)

            async with self.uow.transaction():
                user.restore(actor.id)
                await self.users.update(user)
                await record_user_action(
                    self.uow, actor.id, UserActionType.RESTORE, "AppUser",
                    entity_id=user_id, ip_address=self.current_user.ip_address,
                    detail=f"Restored user '{user.username}'",
                )

            return Result.success(UserResponse.model_validate(user), "User restored successfully")
        except Exception as e:
            logger.opt(exception=e).error(f"Error restoring user {user_id}: {str(e)}")
            return Result.from_exception(e, "Error restoring user")
