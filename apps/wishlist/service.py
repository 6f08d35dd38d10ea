import uuid
from typing import Optional
from sqlalchemy.orm import selectinload
from framework.logging.logger import get_logger
from framework.repository.unit_of_work import UnitOfWork
from framework.response import ErrorCode, Result
from framework.security import CurrentUser
from apps.catalog.models import Product
from apps.catalog.service import primary_image_url
from apps.identity.service import resolve_current_user
from .models import Wishlist, WishlistItem
from .schemas import WishlistFilter, WishlistItemResponse, WishlistResponse

logger = get_logger("wishlist_service")


class WishlistService:
    def __init__(self, uow: UnitOfWork, current_user: Optional[CurrentUser] = None):
        self.uow = uow
        self.current_user = current_user
        self.wishlists = uow.repository(Wishlist)
        self.items = uow.repository(WishlistItem)

    async def _find_item(self, wishlist_id: uuid.UUID, product_id: uuid.UUID) -> Optional[WishlistItem]:
        return await self.items.get_first_or_default(
            (WishlistItem.wishlist_id == wishlist_id) & (WishlistItem.product_id == product_id)
        )

    async def add_to_wishlist(self, product_id: uuid.UUID) -> Result[bool]:
        """Toggle: adds the product, or removes it when already present."""
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("User not authenticated", ErrorCode.UNAUTHORIZED)

            if await self.uow.repository(Product).get_by_id(product_id) is None:
                return Result.failure("Product not found", ErrorCode.NOT_FOUND)

            wishlist = await self.wishlists.get_first_or_default(Wishlist.user_id == user.id)
            if wishlist is None:
                wishlist = Wishlist(user_id=user.id)
                wishlist.mark_created(user.id)
                await self.wishlists.add(wishlist)

            existing = await self._find_item(wishlist.id, product_id)
            if existing is not None:
                await self.items.delete(existing)
                await self.uow.save_changes()
                return Result.success(False, "Removed from wishlist")

            item = WishlistItem(wishlist_id=wishlist.id, product_id=product_id)
            item.mark_created(user.id)
            await self.items.add(item)
            await self.uow.save_changes()
            return Result.success(True, "Added to wishlist")
        except Exception as e:
            logger.opt(exception=e).error(f"Error toggling wishlist product {product_id}: {str(e)}")
            return Result.from_exception(e, "Error updating wishlist")

    async def remove_from_wishlist(self, product_id: uuid.UUID) -> Result[bool]:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("User not authenticated", ErrorCode.UNAUTHORIZED)

            wishlist = await self.wishlists.get_first_or_default(Wishlist.user_id == user.id)
            if wishlist is None:
                return Result.failure("Wishlist not found", ErrorCode.NOT_FOUND)

            item = await self._find_item(wishlist.id, product_id)
            if item is None:
                return Result.failure("Item not in wishlist", ErrorCode.NOT_FOUND)

            await self.items.delete(item)
            await self.uow.save_changes()
            return Result.success(True, "Removed from wishlist")
        except Exception as e:
            logger.opt(exception=e).error(f"Error removing wishlist product {product_id}: {str(e)}")
            return Result.from_exception(e, "Error removing from wishlist")

    async def get_wishlist(self, filter: WishlistFilter) -> Result[WishlistResponse]:
        """Current user's wishlist, newest items first."""
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("User not authenticated", ErrorCode.UNAUTHORIZED)

            wishlist = await self.wishlists.get_first_or_default(Wishlist.user_id == user.id)
            if wishlist is None:
                return Result.success(
                    WishlistResponse(name="My Wishlist", page_number=filter.page, page_size=filter.page_size)
                )

            items, total = await self.items.get_paged(
                filter.page,
                filter.page_size,
                predicate=WishlistItem.wishlist_id == wishlist.id,
                order_by=WishlistItem.created_at,
                ascending=False,
                includes=(selectinload(WishlistItem.product).selectinload(Product.images),),
            )
            response = WishlistResponse(
                wishlist_id=wishlist.id,
                name=wishlist.name,
                items=[
                    WishlistItemResponse(
                        wishlist_item_id=item.id,
                        product_id=item.product_id,
                        name=item.product.name,
                        price=item.product.price,
                        discount_price=item.product.discount_price,
                        stock_quantity=item.product.stock_quantity,
                        primary_image_url=primary_image_url(item.product),
                        added_at=item.created_at,
                    )
                    for item in items
                ],
                total_items=total,
                page_number=filter.page,
                page_size=filter.page_size,
            )
            return Result.success(response)
        except Exception as e:
            logger.opt(exception=e).error(f"Error getting wishlist: {str(e)}")
            return Result.from_exception(e, "Error getting wishlist")

