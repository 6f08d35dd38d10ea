import uuid
from typing import Optional
from fastapi import APIRouter, Depends
from framework.dependencies import get_uow
from framework.repository.unit_of_work import UnitOfWork
from framework.security import CurrentUser, customer_access, get_optional_user
from ..schemas import ProductReviewFilter, ProductReviewRequest
from ..service import ProductReviewService

router = APIRouter()


def get_review_service(
    uow: UnitOfWork = Depends(get_uow),
    current_user: Optional[CurrentUser] = Depends(get_optional_user)
) -> ProductReviewService:
    return ProductReviewService(uow, current_user)


@router.get("")
async def get_review_list(
    filter: ProductReviewFilter = Depends(),
    service: ProductReviewService = Depends(get_review_service)
):
    return (await service.get_review_list(filter)).to_response()


@router.get("/mine/{product_id}", dependencies=[Depends(customer_access)])
async def get_current_user_review(
    product_id: uuid.UUID,
    service: ProductReviewService = Depends(get_review_service)
):
    return (await service.get_current_user_review(product_id)).to_response()


@router.get("/{review_id}")
async def get_review(review_id: uuid.UUID, service: ProductReviewService = Depends(get_review_service)):
    return (await service.get_review(review_id)).to_response()


@router.post("", dependencies=[Depends(customer_access)])
async def create_review(
    data: ProductReviewRequest,
    service: ProductReviewService = Depends(get_review_service)
):
    return (await service.create_review(data)).to_response()


@router.put("/{review_id}", dependencies=[Depends(customer_access)])
async def update_review(
    review_id: uuid.UUID,
    data: ProductReviewRequest,
    service: ProductReviewService = Depends(get_review_service)
):
    return (await service.update_review(review_id, data)).to_response()


@router.delete("/{review_id}", dependencies=[Depends(customer_access)])
async def delete_review(review_id: uuid.UUID, service: ProductReviewService = Depends(get_review_service)):
    return (await service.delete_review(review_id)).to_response()
