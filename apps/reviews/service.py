import uuid
from typing import Optional
from sqlmodel import select, func
from framework.logging.logger import get_logger
from framework.repository.unit_of_work import UnitOfWork
from framework.response import ErrorCode, Result
from framework.security import CurrentUser
from apps.audit.models import UserActionType
from apps.audit.service import record_user_action
from apps.catalog.models import Product
from apps.identity.service import resolve_current_user
from .models import ProductReview
from .query import ProductReviewQueryBuilder
from .schemas import (
    ProductReviewFilter,
    ProductReviewItem,
    ProductReviewPage,
    ProductReviewRequest,
    ProductReviewResponse,
)

logger = get_logger("review_service")


def to_review_item(review: ProductReview) -> ProductReviewItem:
    item = ProductReviewItem.model_validate(review)
    if review.user is not None:
        item.user_name = review.user.full_name or review.user.username
    return item


class ProductReviewService:
    """Reviews are written by customers for products; one live review per user and product."""

    def __init__(self, uow: UnitOfWork, current_user: Optional[CurrentUser] = None):
        self.uow = uow
        self.current_user = current_user
        self.reviews = uow.repository(ProductReview)

    @property
    def _ip(self) -> Optional[str]:
        return self.current_user.ip_address if self.current_user else None

    async def _get_own_review(self, review_id: uuid.UUID, user_id: uuid.UUID):
        """(review, failure); failure is set when the review is missing or belongs to someone else."""
        review = await self.reviews.get_by_id(review_id)
        if review is None:
            return None, Result.failure("Review not found", ErrorCode.NOT_FOUND)
        if review.user_id != user_id:
            return None, Result.failure("You can only modify your own reviews", ErrorCode.FORBIDDEN)
        return review, None

    async def create_review(self, request: ProductReviewRequest) -> Result[ProductReviewItem]:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("User is not valid", ErrorCode.UNAUTHORIZED)

            product_exists = await self.uow.repository(Product).any(Product.id == request.product_id)
            if not product_exists:
                return Result.failure("Product not found", ErrorCode.NOT_FOUND)

            already_reviewed = await self.reviews.any(
                (ProductReview.product_id == request.product_id) & (ProductReview.user_id == user.id)
            )
            if already_reviewed:
                return Result.failure("You have already reviewed this product", ErrorCode.CONFLICT)

            review = ProductReview(**request.model_dump(), user_id=user.id)
            review.mark_created(user.id)

            await self.uow.begin_transaction()
            try:
                await self.reviews.add(review)
                await record_user_action(
                    self.uow, user.id, UserActionType.CREATE, "ProductReview",
                    entity_id=review.id, new_value=request, ip_address=self._ip,
                    detail=f"Reviewed product {request.product_id} with rating {request.rating}",
                )
                await self.uow.commit_transaction()
            except Exception:
                await self.uow.rollback_transaction()
                raise

            return Result.success(ProductReviewItem.model_validate(review), "Product review created successfully")
        except Exception as e:
            logger.opt(exception=e).error(f"Error creating review for product {request.product_id}: {str(e)}")
            return Result.from_exception(e, "Error creating product review")

    async def update_review(self, review_id: uuid.UUID, request: ProductReviewRequest) -> Result[ProductReviewItem]:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("User is not valid", ErrorCode.UNAUTHORIZED)

            review, failure = await self._get_own_review(review_id, user.id)
            if failure:
                return failure
            if request.product_id != review.product_id:
                return Result.failure("A review cannot be moved to another product", ErrorCode.VALIDATION_FAILED)

            old_value = ProductReviewItem.model_validate(review)
            await self.uow.begin_transaction()
            try:
                review.rating = request.rating
                review.title = request.title
                review.comment = request.comment
                review.mark_updated(user.id)
                await self.reviews.update(review)
                await record_user_action(
                    self.uow, user.id, UserActionType.UPDATE, "ProductReview",
                    entity_id=review_id, old_value=old_value, new_value=request, ip_address=self._ip,
                )
                await self.uow.commit_transaction()
            except Exception:
                await self.uow.rollback_transaction()
                raise

            return Result.success(ProductReviewItem.model_validate(review), "Product review updated successfully")
        except Exception as e:
            logger.opt(exception=e).error(f"Error updating review {review_id}: {str(e)}")
            return Result.from_exception(e, "Error updating product review")

    async def delete_review(self, review_id: uuid.UUID) -> Result:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("User is not valid", ErrorCode.UNAUTHORIZED)

            review, failure = await self._get_own_review(review_id, user.id)
            if failure:
                return failure

            old_value = ProductReviewItem.model_validate(review)
            async with self.uow.transaction():
                review.mark_deleted(user.id)
                await self.reviews.update(review)
                await record_user_action(
                    self.uow, user.id, UserActionType.DELETE, "ProductReview",
                    entity_id=review_id, old_value=old_value, ip_address=self._ip,
                )

            return Result.success(message="Product review deleted successfully")
        except Exception as e:
            logger.opt(exception=e).error(f"Error deleting review {review_id}: {str(e)}")
            return Result.from_exception(e, "Error deleting product review")

    async def get_review(self, review_id: uuid.UUID) -> Result[ProductReviewResponse]:
        try:
            review = await self.reviews.get_first_or_default(
                ProductReview.id == review_id, includes=(ProductReview.user, ProductReview.product)
            )
            if review is None:
                return Result.failure("Review not found", ErrorCode.NOT_FOUND)

            response = ProductReviewResponse.model_validate(review)
            if review.user is not None:
                response.user_name = review.user.full_name or review.user.username
            if review.product is not None:
                response.product_name = review.product.name
            return Result.success(response)
        except Exception as e:
            logger.opt(exception=e).error(f"Error getting review {review_id}: {str(e)}")
            return Result.from_exception(e, "Error getting product review")

    async def get_current_user_review(self, product_id: uuid.UUID) -> Result[ProductReviewItem]:
        try:
            user = await resolve_current_user(self.uow, self.current_user)
            if user is None:
                return Result.failure("User is not valid", ErrorCode.UNAUTHORIZED)

            review = await self.reviews.get_first_or_default(
                (ProductReview.product_id == product_id) & (ProductReview.user_id == user.id),
                includes=(ProductReview.user,),
            )
            if review is None:
                return Result.failure("Review not found", ErrorCode.NOT_FOUND)
            return Result.success(to_review_item(review))
        except Exception as e:
            logger.opt(exception=e).error(f"Error getting review of product {product_id}: {str(e)}")
            return Result.from_exception(e, "Error getting product review")

    async def get_review_list(self, filter: ProductReviewFilter) -> ProductReviewPage:
        """Paged reviews; ``average_rating`` covers the whole filtered set."""
        try:
            builder = ProductReviewQueryBuilder()
            predicate = builder.build_predicate(filter)
            reviews, total = await self.reviews.get_paged(
                filter.page,
                filter.page_size,
                predicate=predicate,
                order_by=builder.build_order_by(filter),
                ascending=builder.is_ascending(filter),
                includes=(ProductReview.user,),
            )

            average = await self.reviews.fetch_first(
                select(func.avg(ProductReview.rating)).where(
                    ProductReview.is_deleted == False,  # noqa: E712
                    predicate,
                )
            )

            page = ProductReviewPage.success(
                [to_review_item(r) for r in reviews], filter.page, filter.page_size, total
            )
            page.average_rating = round(float(average), 2) if average is not None else None
            return page
        except Exception as e:
            logger.opt(exception=e).error(f"Error getting product review list: {str(e)}")
            return ProductReviewPage.from_exception(e, "Error getting product review list")
