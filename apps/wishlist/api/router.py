import uuid
from fastapi import APIRouter, Depends
from framework.dependencies import get_uow
from framework.repository.unit_of_work import UnitOfWork
from framework.security import CurrentUser, customer_access
from ..schemas import WishlistFilter, WishlistRequest
from ..service import WishlistService

router = APIRouter()


def get_wishlist_service(
    uow: UnitOfWork = Depends(get_uow),
    current_user: CurrentUser = Depends(customer_access)
) -> WishlistService:
    """Dependency: create WishlistService."""
    return WishlistService(uow, current_user)


@router.get("")
async def get_wishlist(
    filter: WishlistFilter = Depends(),
    service: WishlistService = Depends(get_wishlist_service)
):
    return (await service.get_wishlist(filter)).to_response()


@router.post("")
async def add_to_wishlist(
    data: WishlistRequest,
    service: WishlistService = Depends(get_wishlist_service)
):
    """Toggle a product in the wishlist (data: true when added)."""
    return (await service.add_to_wishlist(data.product_id)).to_response()


@router.delete("/{product_id}")
async def remove_from_wishlist(
    product_id: uuid.UUID,
    service: WishlistService = Depends(get_wishlist_service)
):
    return (await service.remove_from_wishlist(product_id)).to_response()
