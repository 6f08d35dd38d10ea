import uuid
from typing import Optional
from fastapi import APIRouter, Depends
from framework.dependencies import get_uow
from framework.repository.unit_of_work import UnitOfWork
from framework.security import CurrentUser, cms_access, customer_access, get_optional_user
from apps.audit.service import UserActionPublisher, get_action_publisher
from ..schemas import CouponFilter, CouponRequest, UserCouponFilter
from ..service import CouponService

router = APIRouter()


def get_coupon_service(
    uow: UnitOfWork = Depends(get_uow),
    current_user: Optional[CurrentUser] = Depends(get_optional_user),
    publisher: UserActionPublisher = Depends(get_action_publisher)
) -> CouponService:
    """Dependency: create CouponService; role checks sit on the routes."""
    return CouponService(uow, current_user, publisher)


# --- Customer ---

@router.get("/available")
async def get_available_coupons(service: CouponService = Depends(get_coupon_service)):
    return (await service.get_available_coupons()).to_response()


@router.get("/my-coupons", dependencies=[Depends(customer_access)])
async def get_user_coupons(
    filter: UserCouponFilter = Depends(),
    service: CouponService = Depends(get_coupon_service)
):
    return (await service.get_user_coupons(filter)).to_response()


@router.get("/my-coupons/{user_coupon_id}", dependencies=[Depends(customer_access)])
async def get_user_coupon(
    user_coupon_id: uuid.UUID,
    service: CouponService = Depends(get_coupon_service)
):
    return (await service.get_user_coupon_by_id(user_coupon_id)).to_response()


@router.post("/{coupon_id}/collect", dependencies=[Depends(customer_access)])
async def collect_coupon(
    coupon_id: uuid.UUID,
    service: CouponService = Depends(get_coupon_service)
):
    return (await service.collect_coupon(coupon_id)).to_response()


@router.get("/code/{code}")
async def get_coupon_by_code(code: str, service: CouponService = Depends(get_coupon_service)):
    return (await service.get_coupon_by_code(code)).to_response()


# --- CMS ---

@router.get("", dependencies=[Depends(cms_access)])
async def get_coupon_list(
    filter: CouponFilter = Depends(),
    service: CouponService = Depends(get_coupon_service)
):
    return (await service.get_coupon_list(filter)).to_response()


@router.get("/{coupon_id}", dependencies=[Depends(cms_access)])
async def get_coupon(coupon_id: uuid.UUID, service: CouponService = Depends(get_coupon_service)):
    return (await service.get_coupon_by_id(coupon_id)).to_response()


@router.post("", dependencies=[Depends(cms_access)])
async def create_coupon(data: CouponRequest, service: CouponService = Depends(get_coupon_service)):
    return (await service.create_coupon(data)).to_response()


@router.put("/{coupon_id}", dependencies=[Depends(cms_access)])
async def update_coupon(
    coupon_id: uuid.UUID,
    data: CouponRequest,
    service: CouponService = Depends(get_coupon_service)
):
    return (await service.update_coupon(coupon_id, data)).to_response()


@router.delete("/{coupon_id}", dependencies=[Depends(cms_access)])
async def delete_coupon(coupon_id: uuid.UUID, service: CouponService = Depends(get_coupon_service)):
    return (await service.delete_coupon(coupon_id)).to_response()
