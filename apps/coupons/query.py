from typing import List
from sqlalchemy import ColumnElement, or_
from framework.entity import EntityStatus, utc_now
from framework.query import QueryBuilder, contains_ci
from .models import Coupon, UserCoupon
from .schemas import CouponFilter, UserCouponFilter


def coupon_is_valid(now) -> List[ColumnElement[bool]]:
    """Active, inside its date window and with slots left."""
    return [
        Coupon.status == EntityStatus.ACTIVE,
        Coupon.start_date <= now,
        Coupon.end_date >= now,
        or_(Coupon.usage_limit.is_(None), Coupon.current_usage < Coupon.usage_limit),
    ]


class CouponQueryBuilder(QueryBuilder[Coupon, CouponFilter]):
    model = Coupon
    search_fields = ("code", "description")
    sort_fields = {
        "code": "code",
        "discountvalue": "discount_value",
        "minorderamount": "min_order_amount",
        "startdate": "start_date",
        "enddate": "end_date",
        "currentusage": "current_usage",
        "createdat": "created_at",
        "status": "status",
    }

    def custom_clauses(self, filter: CouponFilter) -> List[ColumnElement[bool]]:
        clauses = []
        now = utc_now()
        if filter.code:
            clauses.append(contains_ci(Coupon.code, filter.code))
        if filter.discount_type is not None:
            clauses.append(Coupon.discount_type == filter.discount_type)

        # Bounds are inclusive on both ends
        if filter.start_date_from is not None:
            clauses.append(Coupon.start_date >= filter.start_date_from)
        if filter.start_date_to is not None:
            clauses.append(Coupon.start_date <= filter.start_date_to)
        if filter.end_date_from is not None:
            clauses.append(Coupon.end_date >= filter.end_date_from)
        if filter.end_date_to is not None:
            clauses.append(Coupon.end_date <= filter.end_date_to)

        if filter.is_active is not None:
            clauses.append(
                Coupon.status == (EntityStatus.ACTIVE if filter.is_active else EntityStatus.INACTIVE)
            )
        if filter.is_expired is True:
            clauses.append(Coupon.end_date < now)
        elif filter.is_expired is False:
            clauses.append(Coupon.end_date >= now)

        if filter.is_valid is True:
            clauses.extend(coupon_is_valid(now))
        elif filter.is_valid is False:
            clauses.append(or_(
                Coupon.status == EntityStatus.INACTIVE,
                Coupon.start_date > now,
                Coupon.end_date < now,
                Coupon.usage_limit.is_not(None) & (Coupon.current_usage >= Coupon.usage_limit),
            ))

        if filter.has_usage_limit is True:
            clauses.append(Coupon.usage_limit.is_not(None))
        elif filter.has_usage_limit is False:
            clauses.append(Coupon.usage_limit.is_(None))
        return clauses


class UserCouponQueryBuilder(QueryBuilder[UserCoupon, UserCouponFilter]):
    """Coupons held by one user; search matches the coupon code."""

    model = UserCoupon
    sort_fields = {"createdat": "created_at", "useddate": "used_date"}

    def __init__(self, user_id):
        self.user_id = user_id

    def search_clause(self, filter: UserCouponFilter):
        term = (filter.search or "").strip()
        if not term:
            return None
        return UserCoupon.coupon.has(
            or_(contains_ci(Coupon.code, term), contains_ci(Coupon.description, term))
        )

    def custom_clauses(self, filter: UserCouponFilter) -> List[ColumnElement[bool]]:
        clauses = [UserCoupon.user_id == self.user_id]
        if filter.is_used is True:
            clauses.append(UserCoupon.used_date.is_not(None))
        elif filter.is_used is False:
            clauses.append(UserCoupon.used_date.is_(None))
        if filter.is_expired is not None:
            now = utc_now()
            expired = Coupon.end_date < now if filter.is_expired else Coupon.end_date >= now
            clauses.append(UserCoupon.coupon.has(expired))
        return clauses
