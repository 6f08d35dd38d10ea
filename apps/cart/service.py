import uuid
from decimal import Decimal
from typing import Optional
from sqlmodel import select, func
from framework.entity import EntityStatus
from framework.logging.logger import get_logger
from framework.repository.unit_of_work import UnitOfWork
from framework.response import ErrorCode, Result
from framework.security import CurrentUser
from apps.audit.models import UserActionType
from apps.audit.service import UserActionPublisher
from apps.catalog.models import Product, ProductImage
from apps.catalog.schemas import image_url
from apps.identity.service import resolve_current_user
from .models import CartItem, ShoppingCart
from .schemas import CartFilter, CartItemRequest, CartItemResponse, CartResponse, UpdateCartCommand

logger = get_logger("cart_service")


class CartService:
    """Cart handlers; changes are audited through the background stream."""

    def __init__(
        self,
        uow: UnitOfWork,
        current_user: Optional[CurrentUser] = None,
        publisher: Optional[UserActionPublisher] = None
    ):
        self.uow = uow
        self.current_user = current_user
        self.publisher = publisher or UserActionPublisher()
        self.carts = uow.repository(ShoppingCart)
        self.items = uow.repository(CartItem)

    @property
    def _ip(self) -> Optional[str]:
        return self.current_user.ip_address if self.current_user else None

    async def _get_cart(self, user_id: uuid.UUID) -> Optional[ShoppingCart]:
        return await self.carts.get_first_or_default(ShoppingCart.user_id == user_id)

    async def _get_or_create_cart(self, user_id: uuid.UUID) -> ShoppingCart:
        cart = await self._get_cart(user_id)
        if cart is None:
            cart = ShoppingCart(user_id=user_id)
            cart.mark_created(user_id)
            await self.carts.add(cart)
        return cart

    async def add_to_cart(self, request: CartItemRequest) -> Result:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("Invalid user.", ErrorCode.UNAUTHORIZED)

            product = await self.uow.repository(Product).get_by_id(request.product_id)
            if product is None or product.status != EntityStatus.ACTIVE:
                return Result.failure("Product is not available.", ErrorCode.VALIDATION_FAILED)

            cart = await self._get_or_create_cart(user.id)
            cart_item = await self.items.get_first_or_default(
                (CartItem.cart_id == cart.id) & (CartItem.product_id == request.product_id)
            )
            wanted = request.quantity + (cart_item.quantity if cart_item else 0)
            if product.stock_quantity < wanted:
                return Result.failure("Insufficient stock for the product.", ErrorCode.VALIDATION_FAILED)

            if cart_item is not None:
                cart_item.quantity = wanted
                cart_item.mark_updated(user.id)
                await self.items.update(cart_item)
                action = UserActionType.UPDATE
            else:
                cart_item = CartItem(cart_id=cart.id, product_id=request.product_id, quantity=request.quantity)
                cart_item.mark_created(user.id)
                await self.items.add(cart_item)
                action = UserActionType.CREATE
            await self.uow.save_changes()
        except Exception as e:
            logger.opt(exception=e).error(f"Error adding product {request.product_id} to cart: {str(e)}")
            return Result.from_exception(e, "An error occurred while adding the item to the cart.")

        await self.publisher.publish(
            user.id, action, "CartItem", entity_id=cart_item.id,
            new_value={"product_id": str(request.product_id), "quantity": cart_item.quantity},
            ip_address=self._ip,
        )
        return Result.success(message="Item added to cart successfully.")

    async def update_cart(self, command: UpdateCartCommand) -> Result:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("User is not valid", ErrorCode.UNAUTHORIZED)

            cart = await self._get_cart(user.id)
            cart_item = None
            if cart is not None:
                cart_item = await self.items.get_first_or_default(
                    (CartItem.id == command.cart_item_id) & (CartItem.cart_id == cart.id)
                )
            if cart_item is None:
                return Result.failure("Cart item not found.", ErrorCode.NOT_FOUND)

            if command.quantity == 0:
                await self.items.delete(cart_item)
                await self.uow.save_changes()
                await self.publisher.publish(
                    user.id, UserActionType.DELETE, "CartItem", entity_id=command.cart_item_id, ip_address=self._ip
                )
                return Result.success(message="Cart item removed successfully.")

            if cart_item.quantity == command.quantity:
                return Result.success(message="Quantity is the same. No changes made.")

            product = await self.uow.repository(Product).get_by_id(cart_item.product_id)
            if product is None or product.status != EntityStatus.ACTIVE:
                return Result.failure("Product is not available.", ErrorCode.VALIDATION_FAILED)
            if product.stock_quantity < command.quantity:
                return Result.failure("Insufficient stock for the product.", ErrorCode.VALIDATION_FAILED)

            old_quantity = cart_item.quantity
            cart_item.quantity = command.quantity
            cart_item.mark_updated(user.id)
            await self.items.update(cart_item)
            await self.uow.save_changes()
        except Exception as e:
            logger.opt(exception=e).error(f"Error updating cart item with ID {command.cart_item_id}: {str(e)}")
            return Result.from_exception(e, "An error occurred while updating the cart item")

        await self.publisher.publish(
            user.id, UserActionType.UPDATE, "CartItem", entity_id=command.cart_item_id,
            old_value={"quantity": old_quantity}, new_value={"quantity": command.quantity},
            ip_address=self._ip,
        )
        return Result.success(message="Cart item updated successfully.")

    async def delete_cart_item(self, cart_item_id: uuid.UUID) -> Result:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("User is not valid", ErrorCode.UNAUTHORIZED)

            cart = await self._get_cart(user.id)
            if cart is None:
                return Result.failure("Cart not found", ErrorCode.NOT_FOUND)
            cart_item = await self.items.get_first_or_default(
                (CartItem.id == cart_item_id) & (CartItem.cart_id == cart.id)
            )
            if cart_item is None:
                return Result.failure("Cart item not found", ErrorCode.NOT_FOUND)

            await self.items.delete(cart_item)
            await self.uow.save_changes()
        except Exception as e:
            logger.opt(exception=e).error(f"Error deleting cart item {cart_item_id}: {str(e)}")
            return Result.from_exception(e, "Error deleting cart item")

        await self.publisher.publish(
            user.id, UserActionType.DELETE, "CartItem", entity_id=cart_item_id, ip_address=self._ip
        )
        return Result.success(message="Cart item deleted successfully.")

    async def clear_cart(self) -> Result:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("User is not valid", ErrorCode.UNAUTHORIZED)

            cart = await self._get_cart(user.id)
            if cart is None:
                return Result.failure("Cart not found", ErrorCode.NOT_FOUND)

            items = await self.items.find(CartItem.cart_id == cart.id)
            await self.items.delete_range(items)
            removed = await self.uow.save_changes()
        except Exception as e:
            logger.opt(exception=e).error(f"Error clearing cart: {str(e)}")
            return Result.from_exception(e, "Error clearing cart")

        await self.publisher.publish(
            user.id, UserActionType.DELETE, "ShoppingCart", entity_id=cart.id, ip_address=self._ip,
            detail=f"Cleared {removed} cart item(s)",
        )
        return Result.success(message="Cart cleared successfully.")

    async def get_current_user_cart(self, filter: CartFilter) -> Result[CartResponse]:
        """Paged lines (newest first); the total covers every line whose product can still be bought."""
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("User is not valid", ErrorCode.UNAUTHORIZED)

            cart = await self._get_cart(user.id)
            if cart is None:
                cart = await self._get_or_create_cart(user.id)
                await self.uow.save_changes()
                return Result.success(CartResponse(cart_id=cart.id))

            cart_items, total_count = await self.items.get_paged(
                filter.page,
                filter.page_size,
                predicate=CartItem.cart_id == cart.id,
                order_by=CartItem.created_at,
                ascending=False,
                includes=(CartItem.product,),
            )

            total_statement = (
                select(func.coalesce(func.sum(Product.price * CartItem.quantity), 0))
                .select_from(CartItem)
                .join(Product, Product.id == CartItem.product_id)
                .where(
                    CartItem.cart_id == cart.id,
                    CartItem.is_deleted == False,  # noqa: E712
                    Product.is_deleted == False,  # noqa: E712
                    Product.status == EntityStatus.ACTIVE,
                )
            )
            total_price = await self.items.fetch_first(total_statement)

            product_ids = [item.product_id for item in cart_items]
            primary_images = await self.uow.repository(ProductImage).find(
                ProductImage.product_id.in_(product_ids) & (ProductImage.is_primary == True)  # noqa: E712
            ) if product_ids else []
            image_paths = {image.product_id: image.image_path for image in primary_images}

            response = CartResponse(
                cart_id=cart.id,
                total_items=total_count,
                total_price=Decimal(str(total_price or 0)).quantize(Decimal("0.01")),
                cart_items=[
                    CartItemResponse(
                        id=item.id,
                        product_id=item.product_id,
                        product_name=item.product.name,
                        price=item.product.price,
                        discount_price=item.product.discount_price,
                        quantity=item.quantity,
                        stock_quantity=item.product.stock_quantity,
                        image_path=image_url(image_paths.get(item.product_id)),
                        is_available=not item.product.is_deleted and item.product.status == EntityStatus.ACTIVE,
                        created_at=item.created_at,
                    )
                    for item in cart_items
                ],
            )
            return Result.success(response)
        except Exception as e:
            logger.opt(exception=e).error(f"Error getting current user cart: {str(e)}")
            return Result.from_exception(e, "Error getting current user cart")
