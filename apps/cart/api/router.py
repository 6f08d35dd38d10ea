import uuid
from fastapi import APIRouter, Depends, Query
from framework.dependencies import get_uow
from framework.repository.unit_of_work import UnitOfWork
from framework.security import CurrentUser, customer_access
from apps.audit.service import UserActionPublisher, get_action_publisher
from ..schemas import CartFilter, CartItemRequest, UpdateCartCommand
from ..service import CartService

router = APIRouter()


def get_cart_service(
    uow: UnitOfWork = Depends(get_uow),
    current_user: CurrentUser = Depends(customer_access),
    publisher: UserActionPublisher = Depends(get_action_publisher)
) -> CartService:
    """Dependency: create CartService."""
    return CartService(uow, current_user, publisher)


@router.get("")
async def get_current_user_cart(
    filter: CartFilter = Depends(),
    service: CartService = Depends(get_cart_service)
):
    return (await service.get_current_user_cart(filter)).to_response()


@router.post("/items")
async def add_to_cart(
    data: CartItemRequest,
    service: CartService = Depends(get_cart_service)
):
    return (await service.add_to_cart(data)).to_response()


@router.put("/items/{cart_item_id}")
async def update_cart(
    cart_item_id: uuid.UUID,
    quantity: int = Query(ge=0, le=999),
    service: CartService = Depends(get_cart_service)
):
    """Set a line's quantity; 0 removes it."""
    command = UpdateCartCommand(cart_item_id=cart_item_id, quantity=quantity)
    return (await service.update_cart(command)).to_response()


@router.delete("/items/{cart_item_id}")
async def delete_cart_item(
    cart_item_id: uuid.UUID,
    service: CartService = Depends(get_cart_service)
):
    return (await service.delete_cart_item(cart_item_id)).to_response()


@router.delete("")
async def clear_cart(service: CartService = Depends(get_cart_service)):
    return (await service.clear_cart()).to_response()
