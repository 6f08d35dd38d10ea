"""
Catalog handlers: categories, anime series and products.

Every mutation runs in an explicit transaction together with its
``user_actions`` row, so an audit failure leaves the catalog untouched.
"""

import uuid
from typing import List, Optional
from framework.entity import EntityStatus
from framework.logging.logger import get_logger
from framework.repository.unit_of_work import UnitOfWork
from framework.response import ErrorCode, PaginationResult, Result
from framework.security import CurrentUser
from apps.audit.models import UserActionType
from apps.audit.service import record_user_action
from apps.identity.service import resolve_current_user
from apps.wishlist.models import WishlistItem
from .models import AnimeSeries, Category, Product, ProductImage
from .query import AnimeSeriesQueryBuilder, CategoryQueryBuilder, ProductQueryBuilder
from .schemas import (
    AnimeSeriesFilter,
    AnimeSeriesRequest,
    AnimeSeriesResponse,
    CategoryFilter,
    CategoryRequest,
    CategoryResponse,
    ProductFilter,
    ProductImageResponse,
    ProductItem,
    ProductRequest,
    ProductResponse,
    SelectItem,
    image_url,
)

logger = get_logger("catalog_service")


class CategoryService:
    def __init__(self, uow: UnitOfWork, current_user: Optional[CurrentUser] = None):
        self.uow = uow
        self.current_user = current_user
        self.categories = uow.repository(Category)

    @property
    def _ip(self) -> Optional[str]:
        return self.current_user.ip_address if self.current_user else None

    async def _parent_error(self, category_id: Optional[uuid.UUID], parent_id: Optional[uuid.UUID]) -> Optional[Result]:
        """Failure when the parent is missing or would create a cycle."""
        if parent_id is None:
            return None
        if parent_id == category_id:
            return Result.failure("Category cannot be its own parent", ErrorCode.VALIDATION_FAILED)

        ancestor = await self.categories.get_by_id(parent_id)
        if ancestor is None:
            return Result.failure("Parent category not found", ErrorCode.NOT_FOUND)
        seen = set()
        while ancestor is not None and ancestor.parent_category_id is not None and ancestor.id not in seen:
            seen.add(ancestor.id)
            if ancestor.parent_category_id == category_id:
                return Result.failure("Category cannot be moved under its own subcategory", ErrorCode.VALIDATION_FAILED)
            ancestor = await self.categories.get_by_id(ancestor.parent_category_id)
        return None

    async def create_category(self, request: CategoryRequest) -> Result[CategoryResponse]:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("User is not valid", ErrorCode.UNAUTHORIZED)

            parent_error = await self._parent_error(None, request.parent_category_id)
            if parent_error:
                return parent_error

            category = Category(**request.model_dump())
            category.mark_created(user.id)

            await self.uow.begin_transaction()
            try:
                await self.categories.add(category)
                await record_user_action(
                    self.uow, user.id, UserActionType.CREATE, "Category",
                    entity_id=category.id, new_value=request, ip_address=self._ip,
                    detail=f"Created category '{request.name}'",
                )
                await self.uow.commit_transaction()
            except Exception:
                await self.uow.rollback_transaction()
                raise

            return Result.success(CategoryResponse.model_validate(category), "Category created successfully")
        except Exception as e:
            logger.opt(exception=e).error(f"Error creating category {request.name!r}: {str(e)}")
            return Result.from_exception(e, "Error creating category")

    async def update_category(self, category_id: uuid.UUID, request: CategoryRequest) -> Result[CategoryResponse]:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("User is not valid", ErrorCode.UNAUTHORIZED)

            category = await self.categories.get_by_id(category_id)
            if category is None:
                return Result.failure("Category not found", ErrorCode.NOT_FOUND)

            parent_error = await self._parent_error(category_id, request.parent_category_id)
            if parent_error:
                return parent_error

            old_value = CategoryResponse.model_validate(category)
            await self.uow.begin_transaction()
            try:
                for key, value in request.model_dump().items():
                    setattr(category, key, value)
                category.mark_updated(user.id)
                await self.categories.update(category)
                await record_user_action(
                    self.uow, user.id, UserActionType.UPDATE, "Category",
                    entity_id=category_id, old_value=old_value, new_value=request, ip_address=self._ip,
                    detail=f"Updated category '{request.name}'",
                )
                if old_value.status != request.status:
                    await record_user_action(
                        self.uow, user.id, UserActionType.STATUS_CHANGE, "Category",
                        entity_id=category_id, old_value=old_value.status.value, new_value=request.status.value,
                        ip_address=self._ip,
                        detail=f"Changed category status from {old_value.status.value} to {request.status.value}",
                    )
                await self.uow.commit_transaction()
            except Exception:
                await self.uow.rollback_transaction()
                raise

            return Result.success(CategoryResponse.model_validate(category), "Category updated successfully")
        except Exception as e:
            logger.opt(exception=e).error(f"Error updating category {category_id}: {str(e)}")
            return Result.from_exception(e, "Error updating category")

    async def delete_category(self, category_id: uuid.UUID) -> Result:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("User is not valid", ErrorCode.UNAUTHORIZED)

            category = await self.categories.get_by_id(category_id)
            if category is None:
                return Result.failure("Category not found", ErrorCode.NOT_FOUND)

            has_children = await self.categories.any(Category.parent_category_id == category_id)
            has_products = await self.uow.repository(Product).any(Product.category_id == category_id)
            if has_children or has_products:
                return Result.failure(
                    "Cannot delete category with subcategories or products", ErrorCode.RESOURCE_CONFLICT
                )

            old_value = CategoryResponse.model_validate(category)
            await self.uow.begin_transaction()
            try:
                category.mark_deleted(user.id)
                await self.categories.update(category)
                await record_user_action(
                    self.uow, user.id, UserActionType.DELETE, "Category",
                    entity_id=category_id, old_value=old_value, ip_address=self._ip,
                    detail=f"Deleted category '{old_value.name}'",
                )
                await self.uow.commit_transaction()
            except Exception:
                await self.uow.rollback_transaction()
                raise

            return Result.success(message="Category deleted successfully")
        except Exception as e:
            logger.opt(exception=e).error(f"Error deleting category {category_id}: {str(e)}")
            return Result.from_exception(e, "Error deleting category")

    async def get_category(self, category_id: uuid.UUID) -> Result[CategoryResponse]:
        try:
            category = await self.categories.get_by_id(category_id)
            if category is None:
                return Result.failure("Category not found", ErrorCode.NOT_FOUND)
            return Result.success(CategoryResponse.model_validate(category))
        except Exception as e:
            logger.opt(exception=e).error(f"Error getting category {category_id}: {str(e)}")
            return Result.from_exception(e, "Error getting category")

    async def get_category_list(self, filter: CategoryFilter) -> PaginationResult[CategoryResponse]:
        try:
            builder = CategoryQueryBuilder()
            categories, total = await self.categories.get_paged(
                filter.page,
                filter.page_size,
                predicate=builder.build_predicate(filter),
                order_by=builder.build_order_by(filter),
                ascending=builder.is_ascending(filter),
            )
            items = [CategoryResponse.model_validate(c) for c in categories]
            return PaginationResult.success(items, filter.page, filter.page_size, total)
        except Exception as e:
            logger.opt(exception=e).error(f"Error getting category list: {str(e)}")
            return PaginationResult.from_exception(e, "Error getting category list")

    async def get_select_list(self, search: Optional[str] = None) -> Result[List[SelectItem]]:
        """Active categories for dropdowns, sorted by name."""
        try:
            builder = CategoryQueryBuilder()
            predicate = builder.build_predicate(CategoryFilter(search=search, status=EntityStatus.ACTIVE))
            categories = await self.categories.find(predicate, order_by=Category.name)
            return Result.success([SelectItem(id=c.id, name=c.name) for c in categories])
        except Exception as e:
            logger.opt(exception=e).error(f"Error getting category select list: {str(e)}")
            return Result.from_exception(e, "Error getting category select list")


class AnimeSeriesService:
    def __init__(self, uow: UnitOfWork, current_user: Optional[CurrentUser] = None):
        self.uow = uow
        self.current_user = current_user
        self.series = uow.repository(AnimeSeries)

    async def create_anime_series(self, request: AnimeSeriesRequest) -> Result[AnimeSeriesResponse]:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("User is not valid", ErrorCode.UNAUTHORIZED)

            if await self.series.any(AnimeSeries.title == request.title, include_deleted=True):
                return Result.failure("Anime series title already exists", ErrorCode.CONFLICT)

            series = AnimeSeries(**request.model_dump())
            series.mark_created(user.id)
            async with self.uow.transaction():
                await self.series.add(series)
                await record_user_action(
                    self.uow, user.id, UserActionType.CREATE, "AnimeSeries",
                    entity_id=series.id, new_value=request, ip_address=self.current_user.ip_address,
                    detail=f"Created anime series '{request.title}'",
                )
            return Result.success(AnimeSeriesResponse.model_validate(series), "Anime series created successfully")
        except Exception as e:
            logger.opt(exception=e).error(f"Error creating anime series {request.title!r}: {str(e)}")
            return Result.from_exception(e, "Error creating anime series")

    async def update_anime_series(self, series_id: uuid.UUID, request: AnimeSeriesRequest) -> Result[AnimeSeriesResponse]:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("User is not valid", ErrorCode.UNAUTHORIZED)

            series = await self.series.get_by_id(series_id)
            if series is None:
                return Result.failure("Anime series not found", ErrorCode.NOT_FOUND)
            title_taken = await self.series.any(
                (AnimeSeries.title == request.title) & (AnimeSeries.id != series_id), include_deleted=True
            )
            if title_taken:
                return Result.failure("Anime series title already exists", ErrorCode.CONFLICT)

            old_value = AnimeSeriesResponse.model_validate(series)
            async with self.uow.transaction():
                for key, value in request.model_dump().items():
                    setattr(series, key, value)
                series.mark_updated(user.id)
                await self.series.update(series)
                await record_user_action(
                    self.uow, user.id, UserActionType.UPDATE, "AnimeSeries",
                    entity_id=series_id, old_value=old_value, new_value=request,
                    ip_address=self.current_user.ip_address,
                )
            return Result.success(AnimeSeriesResponse.model_validate(series), "Anime series updated successfully")
        except Exception as e:
            logger.opt(exception=e).error(f"Error updating anime series {series_id}: {str(e)}")
            return Result.from_exception(e, "Error updating anime series")

    async def delete_anime_series(self, series_id: uuid.UUID) -> Result:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("User is not valid", ErrorCode.UNAUTHORIZED)

            series = await self.series.get_by_id(series_id)
            if series is None:
                return Result.failure("Anime series not found", ErrorCode.NOT_FOUND)

            title = series.title
            async with self.uow.transaction():
                series.mark_deleted(user.id)
                await self.series.update(series)
                await record_user_action(
                    self.uow, user.id, UserActionType.DELETE, "AnimeSeries",
                    entity_id=series_id, ip_address=self.current_user.ip_address,
                    detail=f"Deleted anime series '{title}'",
                )
            return Result.success(message="Anime series deleted successfully")
        except Exception as e:
            logger.opt(exception=e).error(f"Error deleting anime series {series_id}: {str(e)}")
            return Result.from_exception(e, "Error deleting anime series")

    async def get_anime_series(self, series_id: uuid.UUID) -> Result[AnimeSeriesResponse]:
        try:
            series = await self.series.get_by_id(series_id)
            if series is None:
                return Result.failure("Anime series not found", ErrorCode.NOT_FOUND)
            return Result.success(AnimeSeriesResponse.model_validate(series))
        except Exception as e:
            logger.opt(exception=e).error(f"Error getting anime series {series_id}: {str(e)}")
            return Result.from_exception(e, "Error getting anime series")

    async def get_anime_series_list(self, filter: AnimeSeriesFilter) -> PaginationResult[AnimeSeriesResponse]:
        try:
            builder = AnimeSeriesQueryBuilder()
            series, total = await self.series.get_paged(
                filter.page,
                filter.page_size,
                predicate=builder.build_predicate(filter),
                order_by=builder.build_order_by(filter),
                ascending=builder.is_ascending(filter),
            )
            items = [AnimeSeriesResponse.model_validate(s) for s in series]
            return PaginationResult.success(items, filter.page, filter.page_size, total)
        except Exception as e:
            logger.opt(exception=e).error(f"Error getting anime series list: {str(e)}")
            return PaginationResult.from_exception(e, "Error getting anime series list")

    async def get_select_list(self) -> Result[List[SelectItem]]:
        try:
            series = await self.series.find(AnimeSeries.status == EntityStatus.ACTIVE, order_by=AnimeSeries.title)
            return Result.success([SelectItem(id=s.id, name=s.title) for s in series])
        except Exception as e:
            logger.opt(exception=e).error(f"Error getting anime series select list: {str(e)}")
            return Result.from_exception(e, "Error getting anime series select list")


def _live_images(product: Product) -> List[ProductImage]:
    images = [image for image in product.images if not image.is_deleted]
    return sorted(images, key=lambda image: (not image.is_primary, image.display_order))


def primary_image_url(product: Product) -> Optional[str]:
    images = _live_images(product)
    return image_url(images[0].image_path) if images else None


def to_product_item(product: Product) -> ProductItem:
    """Requires category and images to be loaded."""
    return ProductItem(
        id=product.id,
        name=product.name,
        price=product.price,
        discount_price=product.discount_price,
        stock_quantity=product.stock_quantity,
        category_id=product.category_id,
        category_name=product.category.name if product.category else None,
        anime_series_id=product.anime_series_id,
        is_pre_order=product.is_pre_order,
        primary_image_url=primary_image_url(product),
        status=product.status,
        created_at=product.created_at,
    )


def to_product_response(product: Product) -> ProductResponse:
    """Requires category, anime series and images to be loaded."""
    return ProductResponse(
        **to_product_item(product).model_dump(),
        description=product.description,
        pre_order_release_date=product.pre_order_release_date,
        anime_series_title=product.anime_series.title if product.anime_series else None,
        images=[
            ProductImageResponse(
                id=image.id,
                image_path=image.image_path,
                image_url=image_url(image.image_path),
                is_primary=image.is_primary,
                display_order=image.display_order,
            )
            for image in _live_images(product)
        ],
        updated_at=product.updated_at,
    )


class ProductService:
    DETAIL_INCLUDES = (Product.category, Product.anime_series, Product.images)

    def __init__(self, uow: UnitOfWork, current_user: Optional[CurrentUser] = None):
        self.uow = uow
        self.current_user = current_user
        self.products = uow.repository(Product)
        self.images = uow.repository(ProductImage)

    async def _validate_request(self, request: ProductRequest) -> Optional[Result]:
        if request.discount_price is not None and request.discount_price > request.price:
            return Result.failure("Discount price cannot exceed price", ErrorCode.VALIDATION_FAILED)
        if not await self.uow.repository(Category).any(Category.id == request.category_id):
            return Result.failure("Category does not exist", ErrorCode.NOT_FOUND)
        if request.anime_series_id is not None:
            if not await self.uow.repository(AnimeSeries).any(AnimeSeries.id == request.anime_series_id):
                return Result.failure("Anime series not found", ErrorCode.NOT_FOUND)
        return None

    def _new_images(self, product_id: uuid.UUID, paths: List[str], user_id: uuid.UUID) -> List[ProductImage]:
        images = []
        for index, path in enumerate(paths):
            image = ProductImage(product_id=product_id, image_path=path, is_primary=index == 0, display_order=index)
            image.mark_created(user_id)
            images.append(image)
        return images

    async def _load(self, product_id: uuid.UUID) -> Optional[Product]:
        return await self.products.get_first_or_default(Product.id == product_id, includes=self.DETAIL_INCLUDES)

    async def create_product(self, request: ProductRequest) -> Result[ProductResponse]:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("User is not valid", ErrorCode.UNAUTHORIZED)

            validation_error = await self._validate_request(request)
            if validation_error:
                return validation_error

            product = Product(**request.model_dump(exclude={"image_paths"}))
            product.mark_created(user.id)
            product_id = product.id

            async with self.uow.transaction():
                await self.products.add(product)
                await self.images.add_range(self._new_images(product_id, request.image_paths or [], user.id))
                await record_user_action(
                    self.uow, user.id, UserActionType.CREATE, "Product",
                    entity_id=product_id, new_value=request, ip_address=self.current_user.ip_address,
                    detail=f"Created product '{request.name}'",
                )

            self.uow.session.expunge(product)
            product = await self._load(product_id)
            return Result.success(to_product_response(product), "Product created successfully")
        except Exception as e:
            logger.opt(exception=e).error(f"Error creating product {request.name!r}: {str(e)}")
            return Result.from_exception(e, "Error creating product")

    async def update_product(self, product_id: uuid.UUID, request: ProductRequest) -> Result[ProductResponse]:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("User is not valid", ErrorCode.UNAUTHORIZED)

            product = await self._load(product_id)
            if product is None:
                return Result.failure("Product not found", ErrorCode.NOT_FOUND)

            validation_error = await self._validate_request(request)
            if validation_error:
                return validation_error

            old_value = to_product_response(product)
            async with self.uow.transaction():
                for key, value in request.model_dump(exclude={"image_paths"}).items():
                    setattr(product, key, value)
                product.mark_updated(user.id)
                await self.products.update(product)
                if request.image_paths is not None:
                    await self.images.delete_range(list(product.images))
                    await self.images.add_range(self._new_images(product_id, request.image_paths, user.id))
                await record_user_action(
                    self.uow, user.id, UserActionType.UPDATE, "Product",
                    entity_id=product_id, old_value=old_value, new_value=request,
                    ip_address=self.current_user.ip_address,
                    detail=f"Updated product '{request.name}'",
                )

            self.uow.session.expunge_all()
            product = await self._load(product_id)
            return Result.success(to_product_response(product), "Product updated successfully")
        except Exception as e:
            logger.opt(exception=e).error(f"Error updating product {product_id}: {str(e)}")
            return Result.from_exception(e, "Error updating product")

    async def delete_product(self, product_id: uuid.UUID) -> Result:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("User is not valid", ErrorCode.UNAUTHORIZED)

            product = await self.products.get_by_id(product_id)
            if product is None:
                return Result.failure("Product not found", ErrorCode.NOT_FOUND)
            if await self.uow.repository(WishlistItem).any(WishlistItem.product_id == product_id):
                return Result.failure(
                    "Cannot delete product with associated orders, or wishlist items", ErrorCode.RESOURCE_CONFLICT
                )

            name = product.name
            async with self.uow.transaction():
                product.mark_deleted(user.id)
                await self.products.update(product)
                await record_user_action(
                    self.uow, user.id, UserActionType.DELETE, "Product",
                    entity_id=product_id, ip_address=self.current_user.ip_address,
                    detail=f"Deleted product '{name}'",
                )
            return Result.success(message="Product deleted successfully")
        except Exception as e:
            logger.opt(exception=e).error(f"Error deleting product {product_id}: {str(e)}")
            return Result.from_exception(e, "Error deleting product")

    async def get_product(self, product_id: uuid.UUID) -> Result[ProductResponse]:
        try:
            product = await self._load(product_id)
            if product is None:
                return Result.failure("Product not found", ErrorCode.NOT_FOUND)
            return Result.success(to_product_response(product))
        except Exception as e:
            logger.opt(exception=e).error(f"Error getting product {product_id}: {str(e)}")
            return Result.from_exception(e, "Error getting product")

    async def get_product_list(self, filter: ProductFilter) -> PaginationResult[ProductItem]:
        try:
            builder = ProductQueryBuilder()
            products, total = await self.products.get_paged(
                filter.page,
                filter.page_size,
                predicate=builder.build_predicate(filter),
                order_by=builder.build_order_by(filter),
                ascending=builder.is_ascending(filter),
                includes=(Product.category, Product.images),
            )
            items = [to_product_item(p) for p in products]
            return PaginationResult.success(items, filter.page, filter.page_size, total)
        except Exception as e:
            logger.opt(exception=e).error(f"Error getting product list: {str(e)}")
            return PaginationResult.from_exception(e, "Error getting product list")
