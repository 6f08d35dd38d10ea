import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import Field, computed_field, field_validator
from framework.entity import EntityStatus, as_naive_utc, utc_now
from framework.query import BasePaginationFilter
from framework.response import CamelModel
from .models import DiscountType


class CouponRequest(CamelModel):
    code: str = Field(min_length=3, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)
    discount_type: DiscountType
    discount_value: Decimal = Field(default=Decimal("0"), ge=0, max_digits=18, decimal_places=2)
    max_discount_cap: Optional[Decimal] = Field(default=None, ge=0, max_digits=18, decimal_places=2)
    min_order_amount: Decimal = Field(default=Decimal("0"), ge=0, max_digits=18, decimal_places=2)
    start_date: datetime
    end_date: datetime
    usage_limit: Optional[int] = Field(default=None, ge=1)
    is_badge_coupon: bool = False
    status: EntityStatus = EntityStatus.ACTIVE

    naive_dates = field_validator("start_date", "end_date")(as_naive_utc)


class CouponDto(CamelModel):
    id: uuid.UUID
    code: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal
    max_discount_cap: Optional[Decimal] = None
    min_order_amount: Decimal
    start_date: datetime
    end_date: datetime
    usage_limit: Optional[int] = None
    current_usage: int
    is_badge_coupon: bool = False
    status: EntityStatus
    created_at: Optional[datetime] = None
    created_by: Optional[uuid.UUID] = None
    updated_at: Optional[datetime] = None
    updated_by: Optional[uuid.UUID] = None

    @computed_field
    @property
    def remaining_uses(self) -> Optional[int]:
        if self.usage_limit is None:
            return None
        return self.usage_limit - self.current_usage

    @computed_field
    @property
    def is_valid(self) -> bool:
        now = utc_now()
        return (
            self.status == EntityStatus.ACTIVE
            and self.start_date <= now <= self.end_date
            and (self.remaining_uses is None or self.remaining_uses > 0)
        )


class AvailableCouponItem(CamelModel):
    id: uuid.UUID
    code: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal
    min_order_amount: Decimal
    start_date: datetime
    end_date: datetime
    usage_limit: Optional[int] = None
    current_usage: int
    # None when the coupon has no usage limit
    remaining_slots: Optional[int] = None
    is_collected: bool = False


class AvailableCouponsResponse(CamelModel):
    coupons: List[AvailableCouponItem] = []


class UserCouponItem(CamelModel):
    id: uuid.UUID
    coupon_id: uuid.UUID
    code: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal
    max_discount_cap: Optional[Decimal] = None
    min_order_amount: Decimal
    start_date: datetime
    end_date: datetime
    used_date: Optional[datetime] = None
    is_used: bool = False
    is_expired: bool = False
    collected_at: Optional[datetime] = None


class CouponFilter(BasePaginationFilter):
    code: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    is_active: Optional[bool] = None
    is_expired: Optional[bool] = None
    is_valid: Optional[bool] = None
    start_date_from: Optional[datetime] = None
    start_date_to: Optional[datetime] = None
    end_date_from: Optional[datetime] = None
    end_date_to: Optional[datetime] = None
    has_usage_limit: Optional[bool] = None

    naive_dates = field_validator(
        "start_date_from", "start_date_to", "end_date_from", "end_date_to"
    )(as_naive_utc)


class UserCouponFilter(BasePaginationFilter):
    is_used: Optional[bool] = None
    is_expired: Optional[bool] = None
