from typing import List
from sqlalchemy import ColumnElement
from framework.query import QueryBuilder
from .models import ProductReview
from .schemas import ProductReviewFilter


class ProductReviewQueryBuilder(QueryBuilder[ProductReview, ProductReviewFilter]):
    model = ProductReview
    search_fields = ("title", "comment")
    sort_fields = {"rating": "rating", "title": "title", "createdat": "created_at", "updatedat": "updated_at"}

    def custom_clauses(self, filter: ProductReviewFilter) -> List[ColumnElement[bool]]:
        clauses = []
        if filter.product_id is not None:
            clauses.append(ProductReview.product_id == filter.product_id)
        if filter.user_id is not None:
            clauses.append(ProductReview.user_id == filter.user_id)
        if filter.rating is not None:
            clauses.append(ProductReview.rating == filter.rating)
        if filter.min_rating is not None:
            clauses.append(ProductReview.rating >= filter.min_rating)
        if filter.max_rating is not None:
            clauses.append(ProductReview.rating <= filter.max_rating)
        return clauses
