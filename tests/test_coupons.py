"""Coupon CMS handlers, collection rules and the customer's coupon wallet."""
import uuid
from datetime import timedelta
from decimal import Decimal
import pytest
from framework.entity import EntityStatus, utc_now
from framework.response import ErrorCode
from apps.audit.models import UserAction
from apps.coupons.models import Coupon, DiscountType, UserCoupon
from apps.coupons.schemas import CouponFilter, CouponRequest, UserCouponFilter
from apps.coupons.service import CouponService
from conftest import as_current_user


@pytest.fixture
def make_coupon(async_session):
    async def _make(code: str, **fields) -> Coupon:
        now = utc_now()
        values = dict(
            discount_type=DiscountType.PERCENTAGE,
            discount_value=Decimal("10"),
            start_date=now - timedelta(days=1),
            end_date=now + timedelta(days=7),
        )
        values.update(fields)
        coupon = Coupon(code=code, **values)
        coupon.mark_created()
        async_session.add(coupon)
        await async_session.commit()
        return coupon

    return _make


def coupon_request(code: str = "summer10", **fields) -> CouponRequest:
    now = utc_now()
    values = dict(
        code=code,
        discount_type=DiscountType.PERCENTAGE,
        discount_value=Decimal("10"),
        start_date=now,
        end_date=now + timedelta(days=30),
    )
    values.update(fields)
    return CouponRequest(**values)


# --- CMS ---

async def test_create_coupon_normalises_code_and_audits(uow, staff):
    service = CouponService(uow, as_current_user(staff))

    result = await service.create_coupon(coupon_request("  summer10 "))

    assert result.is_success
    assert result.message == "Coupon created successfully"
    assert result.data.code == "SUMMER10"
    assert result.data.current_usage == 0
    assert result.data.created_by == staff.id
    actions = await uow.repository(UserAction).find_all(entity_name="Coupon")
    assert len(actions) == 1
    assert actions[0].entity_id == result.data.id


async def test_create_coupon_code_conflict_includes_deleted(uow, staff, make_coupon):
    old = await make_coupon("SUMMER10")
    old.mark_deleted()
    await uow.save_changes()

    result = await CouponService(uow, as_current_user(staff)).create_coupon(coupon_request("summer10"))

    assert result.error_code == ErrorCode.CONFLICT
    assert result.message == "Coupon code already exists"


async def test_create_coupon_rejects_reversed_dates(uow, staff):
    now = utc_now()
    request = coupon_request(start_date=now, end_date=now - timedelta(hours=1))

    result = await CouponService(uow, as_current_user(staff)).create_coupon(request)

    assert result.error_code == ErrorCode.VALIDATION_FAILED
    assert result.message == "End date must be after start date"
    assert await uow.repository(Coupon).count() == 0


async def test_free_shipping_has_no_discount_value(uow, staff):
    request = coupon_request("SHIPFREE", discount_type=DiscountType.FREE_SHIPPING, discount_value=Decimal("50000"))

    result = await CouponService(uow, as_current_user(staff)).create_coupon(request)

    assert result.data.discount_value == Decimal("0")


async def test_create_coupon_requires_user(uow):
    result = await CouponService(uow).create_coupon(coupon_request())
    assert result.error_code == ErrorCode.UNAUTHORIZED


async def test_update_coupon(uow, staff, make_coupon):
    coupon = await make_coupon("SPRING")
    await make_coupon("TAKEN")
    service = CouponService(uow, as_current_user(staff))

    conflict = await service.update_coupon(coupon.id, coupon_request("taken"))
    assert conflict.error_code == ErrorCode.CONFLICT

    updated = await service.update_coupon(coupon.id, coupon_request("spring", discount_value=Decimal("15")))
    assert updated.is_success
    assert updated.data.discount_value == Decimal("15")

    missing = await service.update_coupon(uuid.uuid4(), coupon_request("other"))
    assert missing.error_code == ErrorCode.NOT_FOUND


async def test_delete_used_coupon_is_refused(uow, staff, make_coupon):
    coupon = await make_coupon("USED", current_usage=3)

    result = await CouponService(uow, as_current_user(staff)).delete_coupon(coupon.id)

    assert result.error_code == ErrorCode.CONFLICT
    assert result.message == "Cannot delete coupon that has been used"
    assert await uow.repository(Coupon).get_by_id(coupon.id) is not None


async def test_delete_coupon(uow, staff, make_coupon):
    coupon = await make_coupon("UNUSED")
    service = CouponService(uow, as_current_user(staff))

    result = await service.delete_coupon(coupon.id)

    assert result.is_success
    assert (await service.get_coupon_by_id(coupon.id)).error_code == ErrorCode.NOT_FOUND
    assert await uow.repository(UserAction).any(UserAction.entity_id == coupon.id)


async def test_get_coupon_by_code(uow, make_coupon):
    await make_coupon("ACTIVE10")
    await make_coupon("PAUSED", status=EntityStatus.INACTIVE)
    service = CouponService(uow)

    found = await service.get_coupon_by_code("active10")
    assert found.data.code == "ACTIVE10"
    assert found.data.is_valid is True

    inactive = await service.get_coupon_by_code("PAUSED")
    assert inactive.error_code == ErrorCode.NOT_FOUND
    assert inactive.message == "Coupon not found or inactive"


async def test_coupon_list_filters(uow, make_coupon):
    now = utc_now()
    await make_coupon("VALID")
    await make_coupon("OLD", start_date=now - timedelta(days=10), end_date=now - timedelta(days=1))
    await make_coupon("LIMITED", usage_limit=5, current_usage=5)
    service = CouponService(uow)

    valid = await service.get_coupon_list(CouponFilter(is_valid=True))
    assert [c.code for c in valid.items] == ["VALID"]

    expired = await service.get_coupon_list(CouponFilter(is_expired=True))
    assert [c.code for c in expired.items] == ["OLD"]

    everything = await service.get_coupon_list(CouponFilter(sort_by="code", is_ascending=True))
    assert [c.code for c in everything.items] == ["LIMITED", "OLD", "VALID"]
    assert everything.items[0].remaining_uses == 0


# --- Collecting ---

async def test_collect_coupon(uow, customer, make_coupon):
    coupon = await make_coupon("WELCOME", usage_limit=10)
    service = CouponService(uow, as_current_user(customer))

    result = await service.collect_coupon(coupon.id)

    assert result.message == "Coupon collected successfully"
    assert (await uow.repository(Coupon).get_by_id(coupon.id)).current_usage == 1
    held = await uow.repository(UserCoupon).find_all(user_id=customer.id)
    assert [uc.coupon_id for uc in held] == [coupon.id]

    again = await service.collect_coupon(coupon.id)
    assert again.error_code == ErrorCode.DUPLICATE_ENTRY


async def test_collect_exhausted_coupon(uow, customer, make_coupon):
    coupon = await make_coupon("GONE", usage_limit=1, current_usage=1)

    result = await CouponService(uow, as_current_user(customer)).collect_coupon(coupon.id)

    assert result.error_code == ErrorCode.INVALID_OPERATION
    assert result.message == "Coupon usage limit has been reached"
    assert await uow.repository(UserCoupon).count() == 0
    assert (await uow.repository(Coupon).get_by_id(coupon.id)).current_usage == 1


@pytest.mark.parametrize("fields, message", [
    ({"is_badge_coupon": True}, "This coupon is linked to a badge"),
    ({"status": EntityStatus.INACTIVE}, "Coupon is not active"),
    ({"start_date": utc_now() + timedelta(days=2)}, "Coupon has not started yet"),
    ({"end_date": utc_now() - timedelta(minutes=5)}, "Coupon has expired"),
])
async def test_collect_rejections(uow, customer, make_coupon, fields, message):
    coupon = await make_coupon("NOPE", **fields)

    result = await CouponService(uow, as_current_user(customer)).collect_coupon(coupon.id)

    assert result.error_code == ErrorCode.INVALID_OPERATION
    assert result.message.startswith(message)


async def test_used_coupon_can_be_collected_again(uow, customer, make_coupon):
    coupon = await make_coupon("REPEAT")
    used = UserCoupon(user_id=customer.id, coupon_id=coupon.id, used_date=utc_now())
    used.mark_created()
    await uow.repository(UserCoupon).add(used)
    await uow.save_changes()

    result = await CouponService(uow, as_current_user(customer)).collect_coupon(coupon.id)
    assert result.is_success


async def test_available_coupons_mark_collected(uow, customer, make_coupon):
    now = utc_now()
    first = await make_coupon("FIRST", usage_limit=3)
    second = await make_coupon("SECOND")
    await make_coupon("FUTURE", start_date=now + timedelta(days=1))
    service = CouponService(uow, as_current_user(customer))
    await service.collect_coupon(first.id)

    result = await service.get_available_coupons()

    by_code = {c.code: c for c in result.data.coupons}
    assert set(by_code) == {"FIRST", "SECOND"}
    assert by_code["FIRST"].is_collected is True
    assert by_code["FIRST"].remaining_slots == 2
    assert by_code["SECOND"].is_collected is False
    assert by_code["SECOND"].remaining_slots is None

    anonymous = await CouponService(uow).get_available_coupons()
    assert not any(c.is_collected for c in anonymous.data.coupons)
    assert second.id in {c.id for c in anonymous.data.coupons}


# --- Wallet ---

async def test_user_coupons(uow, customer, make_coupon):
    now = utc_now()
    active = await make_coupon("ACTIVE")
    service = CouponService(uow, as_current_user(customer))
    await service.collect_coupon(active.id)

    stale = await make_coupon("STALE", start_date=now - timedelta(days=9), end_date=now - timedelta(days=2))
    held = UserCoupon(user_id=customer.id, coupon_id=stale.id)
    held.mark_created()
    await uow.repository(UserCoupon).add(held)
    await uow.save_changes()

    everything = await service.get_user_coupons(UserCouponFilter())
    assert everything.total_items == 2

    expired = await service.get_user_coupons(UserCouponFilter(is_expired=True))
    assert [c.code for c in expired.items] == ["STALE"]
    assert expired.items[0].is_expired is True
    assert expired.items[0].is_used is False

    unauthenticated = await CouponService(uow).get_user_coupons(UserCouponFilter())
    assert unauthenticated.error_code == ErrorCode.UNAUTHORIZED


async def test_user_coupon_belongs_to_owner(uow, customer, other_customer, make_coupon):
    coupon = await make_coupon("MINE")
    owner = CouponService(uow, as_current_user(customer))
    await owner.collect_coupon(coupon.id)
    held = (await uow.repository(UserCoupon).find_all(user_id=customer.id))[0]

    mine = await owner.get_user_coupon_by_id(held.id)
    assert mine.data.code == "MINE"

    theirs = await CouponService(uow, as_current_user(other_customer)).get_user_coupon_by_id(held.id)
    assert theirs.error_code == ErrorCode.FORBIDDEN
    assert theirs.message == "This coupon does not belong to the current user"
