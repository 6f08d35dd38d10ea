import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from sqlmodel import Field, Relationship
from framework.entity import BaseEntity


class DiscountType(str, Enum):
    PERCENTAGE = "Percentage"
    FIXED = "Fixed"
    FREE_SHIPPING = "FreeShipping"


class Coupon(BaseEntity, table=True):
    __tablename__ = "coupons"
    code: str = Field(unique=True, index=True, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)
    discount_type: DiscountType
    discount_value: Decimal = Field(default=Decimal("0"), max_digits=18, decimal_places=2)
    max_discount_cap: Optional[Decimal] = Field(default=None, max_digits=18, decimal_places=2)
    min_order_amount: Decimal = Field(default=Decimal("0"), max_digits=18, decimal_places=2)
    start_date: datetime
    end_date: datetime
    usage_limit: Optional[int] = None  # None means unlimited
    current_usage: int = Field(default=0)
    # Granted by equipping a badge, never collected manually
    is_badge_coupon: bool = Field(default=False)

    user_coupons: List["UserCoupon"] = Relationship(back_populates="coupon")


class UserCoupon(BaseEntity, table=True):
    __tablename__ = "user_coupons"
    user_id: uuid.UUID = Field(foreign_key="app_users.id", index=True)
    coupon_id: uuid.UUID = Field(foreign_key="coupons.id", index=True)
    used_date: Optional[datetime] = None

    coupon: Optional[Coupon] = Relationship(back_populates="user_coupons")
