"""
Coupon handlers.

CMS operations (create/update/delete) are audited in the same transaction
as the change. Collecting a coupon creates the ``UserCoupon`` and bumps
``current_usage`` in a single save.
"""

import uuid
from decimal import Decimal
from typing import Optional
from framework.entity import EntityStatus, utc_now
from framework.logging.logger import get_logger
from framework.query import combine_and
from framework.repository.unit_of_work import UnitOfWork
from framework.response import ErrorCode, PaginationResult, Result
from framework.security import CurrentUser
from apps.audit.models import UserActionType
from apps.audit.service import UserActionPublisher, record_user_action
from apps.identity.service import resolve_current_user
from .models import Coupon, DiscountType, UserCoupon
from .query import CouponQueryBuilder, UserCouponQueryBuilder, coupon_is_valid
from .schemas import (
    AvailableCouponItem,
    AvailableCouponsResponse,
    CouponDto,
    CouponFilter,
    CouponRequest,
    UserCouponFilter,
    UserCouponItem,
)

logger = get_logger("coupon_service")


def to_user_coupon_item(user_coupon: UserCoupon) -> UserCouponItem:
    coupon = user_coupon.coupon
    return UserCouponItem(
        id=user_coupon.id,
        coupon_id=coupon.id,
        code=coupon.code,
        description=coupon.description,
        discount_type=coupon.discount_type,
        discount_value=coupon.discount_value,
        max_discount_cap=coupon.max_discount_cap,
        min_order_amount=coupon.min_order_amount,
        start_date=coupon.start_date,
        end_date=coupon.end_date,
        used_date=user_coupon.used_date,
        is_used=user_coupon.used_date is not None,
        is_expired=coupon.end_date < utc_now(),
        collected_at=user_coupon.created_at,
    )


class CouponService:
    def __init__(
        self,
        uow: UnitOfWork,
        current_user: Optional[CurrentUser] = None,
        publisher: Optional[UserActionPublisher] = None
    ):
        self.uow = uow
        self.current_user = current_user
        self.publisher = publisher or UserActionPublisher()
        self.coupons = uow.repository(Coupon)
        self.user_coupons = uow.repository(UserCoupon)

    @property
    def _ip(self) -> Optional[str]:
        return self.current_user.ip_address if self.current_user else None

    @staticmethod
    def _apply(coupon: Coupon, request: CouponRequest) -> None:
        for key, value in request.model_dump().items():
            setattr(coupon, key, value)
        coupon.code = request.code.strip().upper()
        if request.discount_type == DiscountType.FREE_SHIPPING:
            coupon.discount_value = Decimal("0")

    async def create_coupon(self, request: CouponRequest) -> Result[CouponDto]:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("Unauthorized", ErrorCode.UNAUTHORIZED)

            if request.start_date >= request.end_date:
                return Result.failure("End date must be after start date", ErrorCode.VALIDATION_FAILED)

            code = request.code.strip().upper()
            if await self.coupons.any(Coupon.code == code, include_deleted=True):
                return Result.failure("Coupon code already exists", ErrorCode.CONFLICT)

            coupon = Coupon()
            self._apply(coupon, request)
            coupon.mark_created(user.id)

            async with self.uow.transaction():
                await self.coupons.add(coupon)
                await record_user_action(
                    self.uow, user.id, UserActionType.CREATE, "Coupon",
                    entity_id=coupon.id, new_value=request, ip_address=self._ip,
                    detail=f"Created coupon '{coupon.code}'",
                )

            return Result.success(CouponDto.model_validate(coupon), "Coupon created successfully")
        except Exception as e:
            logger.opt(exception=e).error(f"Error creating coupon {request.code!r}: {str(e)}")
            return Result.from_exception(e, "Error creating coupon")

    async def update_coupon(self, coupon_id: uuid.UUID, request: CouponRequest) -> Result[CouponDto]:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("Unauthorized", ErrorCode.UNAUTHORIZED)

            coupon = await self.coupons.get_by_id(coupon_id)
            if coupon is None:
                return Result.failure("Coupon not found", ErrorCode.NOT_FOUND)

            if request.start_date >= request.end_date:
                return Result.failure("End date must be after start date", ErrorCode.VALIDATION_FAILED)

            code = request.code.strip().upper()
            if code != coupon.code and await self.coupons.any(
                (Coupon.code == code) & (Coupon.id != coupon_id), include_deleted=True
            ):
                return Result.failure("Coupon code already exists", ErrorCode.CONFLICT)

            old_value = CouponDto.model_validate(coupon)
            async with self.uow.transaction():
                self._apply(coupon, request)
                coupon.mark_updated(user.id)
                await self.coupons.update(coupon)
                await record_user_action(
                    self.uow, user.id, UserActionType.UPDATE, "Coupon",
                    entity_id=coupon_id, old_value=old_value, new_value=request, ip_address=self._ip,
                    detail=f"Updated coupon '{code}'",
                )

            return Result.success(CouponDto.model_validate(coupon), "Coupon updated successfully")
        except Exception as e:
            logger.opt(exception=e).error(f"Error updating coupon {coupon_id}: {str(e)}")
            return Result.from_exception(e, "Error updating coupon")

    async def delete_coupon(self, coupon_id: uuid.UUID) -> Result:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("Unauthorized", ErrorCode.UNAUTHORIZED)

            coupon = await self.coupons.get_by_id(coupon_id)
            if coupon is None:
                return Result.failure("Coupon not found", ErrorCode.NOT_FOUND)

            if coupon.current_usage > 0:
                return Result.failure("Cannot delete coupon that has been used", ErrorCode.CONFLICT)

            old_value = CouponDto.model_validate(coupon)
            async with self.uow.transaction():
                coupon.mark_deleted(user.id)
                await self.coupons.update(coupon)
                await record_user_action(
                    self.uow, user.id, UserActionType.DELETE, "Coupon",
                    entity_id=coupon_id, old_value=old_value, ip_address=self._ip,
                    detail=f"Deleted coupon '{old_value.code}'",
                )

            return Result.success(message="Coupon deleted successfully")
        except Exception as e:
            logger.opt(exception=e).error(f"Error deleting coupon {coupon_id}: {str(e)}")
            return Result.from_exception(e, "Error deleting coupon")

    async def get_coupon_by_id(self, coupon_id: uuid.UUID) -> Result[CouponDto]:
        try:
            coupon = await self.coupons.get_by_id(coupon_id)
            if coupon is None:
                return Result.failure("Coupon not found", ErrorCode.NOT_FOUND)
            return Result.success(CouponDto.model_validate(coupon), "Coupon retrieved successfully")
        except Exception as e:
            logger.opt(exception=e).error(f"Error getting coupon {coupon_id}: {str(e)}")
            return Result.from_exception(e, "Error getting coupon")

    async def get_coupon_by_code(self, code: str) -> Result[CouponDto]:
        try:
            coupon = await self.coupons.get_first_or_default(
                (Coupon.code == code.strip().upper()) & (Coupon.status == EntityStatus.ACTIVE)
            )
            if coupon is None:
                return Result.failure("Coupon not found or inactive", ErrorCode.NOT_FOUND)
            return Result.success(CouponDto.model_validate(coupon), "Coupon retrieved successfully")
        except Exception as e:
            logger.opt(exception=e).error(f"Error getting coupon by code {code!r}: {str(e)}")
            return Result.from_exception(e, "Error getting coupon")

    async def get_coupon_list(self, filter: CouponFilter) -> PaginationResult[CouponDto]:
        try:
            builder = CouponQueryBuilder()
            coupons, total = await self.coupons.get_paged(
                filter.page,
                filter.page_size,
                predicate=builder.build_predicate(filter),
                order_by=builder.build_order_by(filter),
                ascending=builder.is_ascending(filter),
            )
            items = [CouponDto.model_validate(c) for c in coupons]
            return PaginationResult.success(items, filter.page, filter.page_size, total)
        except Exception as e:
            logger.opt(exception=e).error(f"Error getting coupon list: {str(e)}")
            return PaginationResult.from_exception(e, "Error getting coupon list")

    async def get_available_coupons(self) -> Result[AvailableCouponsResponse]:
        """Collectable coupons, newest first; ``is_collected`` needs a signed-in user."""
        try:
            coupons = await self.coupons.find(
                combine_and(coupon_is_valid(utc_now())),
                order_by=Coupon.created_at,
                ascending=False,
            )

            collected = set()
            if self.current_user is not None and coupons:
                held = await self.user_coupons.find(
                    (UserCoupon.user_id == self.current_user.id)
                    & UserCoupon.used_date.is_(None)
                    & UserCoupon.coupon_id.in_([c.id for c in coupons])
                )
                collected = {uc.coupon_id for uc in held}

            response = AvailableCouponsResponse(
                coupons=[
                    AvailableCouponItem(
                        id=c.id,
                        code=c.code,
                        description=c.description,
                        discount_type=c.discount_type,
                        discount_value=c.discount_value,
                        min_order_amount=c.min_order_amount,
                        start_date=c.start_date,
                        end_date=c.end_date,
                        usage_limit=c.usage_limit,
                        current_usage=c.current_usage,
                        remaining_slots=c.usage_limit - c.current_usage if c.usage_limit is not None else None,
                        is_collected=c.id in collected,
                    )
                    for c in coupons
                ]
            )
            return Result.success(response)
        except Exception as e:
            logger.opt(exception=e).error(f"Error getting available coupons: {str(e)}")
            return Result.from_exception(e, "Error getting available coupons")

    async def collect_coupon(self, coupon_id: uuid.UUID) -> Result:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("User not authenticated", ErrorCode.UNAUTHORIZED)

            coupon = await self.coupons.get_by_id(coupon_id)
            if coupon is None:
                return Result.failure("Coupon not found", ErrorCode.NOT_FOUND)

            if coupon.is_badge_coupon:
                return Result.failure(
                    "This coupon is linked to a badge and cannot be collected manually. "
                    "Equip the badge to use this discount.",
                    ErrorCode.INVALID_OPERATION,
                )

            now = utc_now()
            if coupon.status != EntityStatus.ACTIVE:
                return Result.failure("Coupon is not active", ErrorCode.INVALID_OPERATION)
            if coupon.start_date > now:
                return Result.failure("Coupon has not started yet", ErrorCode.INVALID_OPERATION)
            if coupon.end_date < now:
                return Result.failure("Coupon has expired", ErrorCode.INVALID_OPERATION)
            if coupon.usage_limit is not None and coupon.current_usage >= coupon.usage_limit:
                return Result.failure("Coupon usage limit has been reached", ErrorCode.INVALID_OPERATION)

            already_collected = await self.user_coupons.any(
                (UserCoupon.user_id == user.id)
                & (UserCoupon.coupon_id == coupon_id)
                & UserCoupon.used_date.is_(None)
            )
            if already_collected:
                return Result.failure("You have already collected this coupon", ErrorCode.DUPLICATE_ENTRY)

            user_coupon = UserCoupon(user_id=user.id, coupon_id=coupon_id)
            user_coupon.mark_created(user.id)
            await self.user_coupons.add(user_coupon)

            coupon.current_usage += 1
            coupon.mark_updated(user.id)
            await self.coupons.update(coupon)
            await self.uow.save_changes()
        except Exception as e:
            logger.opt(exception=e).error(f"Error collecting coupon {coupon_id}: {str(e)}")
            return Result.from_exception(e, "Error collecting coupon")

        await self.publisher.publish(
            user.id, UserActionType.CREATE, "UserCoupon", entity_id=user_coupon.id,
            new_value={"coupon_id": str(coupon_id)}, ip_address=self._ip,
            detail=f"Collected coupon '{coupon.code}'",
        )
        return Result.success(message="Coupon collected successfully")

    async def get_user_coupons(self, filter: UserCouponFilter) -> PaginationResult[UserCouponItem]:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return PaginationResult.failure("Not authorized", ErrorCode.UNAUTHORIZED)

            builder = UserCouponQueryBuilder(user.id)
            user_coupons, total = await self.user_coupons.get_paged(
                filter.page,
                filter.page_size,
                predicate=builder.build_predicate(filter),
                order_by=builder.build_order_by(filter),
                ascending=builder.is_ascending(filter),
                includes=(UserCoupon.coupon,),
            )
            items = [to_user_coupon_item(uc) for uc in user_coupons]
            return PaginationResult.success(items, filter.page, filter.page_size, total)
        except Exception as e:
            logger.opt(exception=e).error(f"Error getting user coupons: {str(e)}")
            return PaginationResult.from_exception(e, "Error getting user coupons")

    async def get_user_coupon_by_id(self, user_coupon_id: uuid.UUID) -> Result[UserCouponItem]:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("Not authorized", ErrorCode.UNAUTHORIZED)

            user_coupon = await self.user_coupons.get_first_or_default(
                UserCoupon.id == user_coupon_id, includes=(UserCoupon.coupon,)
            )
            if user_coupon is None:
                return Result.failure("User coupon not found", ErrorCode.NOT_FOUND)
            if user_coupon.user_id != user.id:
                return Result.failure("This coupon does not belong to the current user", ErrorCode.FORBIDDEN)

            return Result.success(to_user_coupon_item(user_coupon), "User coupon retrieved successfully")
        except Exception as e:
            logger.opt(exception=e).error(f"Error getting user coupon {user_coupon_id}: {str(e)}")
            return Result.from_exception(e, "Error getting user coupon")
