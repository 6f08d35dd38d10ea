from typing import Any, List, Optional
from sqlalchemy import ColumnElement, func, or_
from framework.query import QueryBuilder, contains_ci
from .models import AnimeSeries, Category, Product, ProductImage
from .schemas import AnimeSeriesFilter, CategoryFilter, ProductFilter

# Price buckets in VND
PRICE_RANGES = {
    "under-500k": (None, 500_000),
    "500k-1m": (500_000, 1_000_000),
    "1m-2m": (1_000_000, 2_000_000),
    "over-2m": (2_000_000, None),
}

LOW_STOCK_THRESHOLD = 10


class CategoryQueryBuilder(QueryBuilder[Category, CategoryFilter]):
    model = Category
    search_fields = ("name", "description")
    sort_fields = {"name": "name", "createdat": "created_at", "updatedat": "updated_at", "status": "status"}

    def custom_clauses(self, filter: CategoryFilter) -> List[ColumnElement[bool]]:
        clauses = []
        if filter.name:
            clauses.append(contains_ci(Category.name, filter.name))
        if filter.parent_category_id is not None:
            clauses.append(Category.parent_category_id == filter.parent_category_id)
        if filter.is_root is True:
            clauses.append(Category.parent_category_id.is_(None))
        elif filter.is_root is False:
            clauses.append(Category.parent_category_id.is_not(None))
        return clauses


class AnimeSeriesQueryBuilder(QueryBuilder[AnimeSeries, AnimeSeriesFilter]):
    model = AnimeSeries
    search_fields = ("title", "description")
    sort_fields = {"title": "title", "releaseyear": "release_year", "createdat": "created_at"}

    def custom_clauses(self, filter: AnimeSeriesFilter) -> List[ColumnElement[bool]]:
        clauses = []
        if filter.title:
            clauses.append(contains_ci(AnimeSeries.title, filter.title))
        if filter.release_year is not None:
            clauses.append(AnimeSeries.release_year == filter.release_year)
        return clauses


class ProductQueryBuilder(QueryBuilder[Product, ProductFilter]):
    """Products; ``sort_type`` (e.g. ``price-desc``) takes precedence over ``sort_by``."""

    model = Product
    search_fields = ("name", "description")
    sort_fields = {
        "name": "name",
        "price": "price",
        "stockquantity": "stock_quantity",
        "createdat": "created_at",
    }

    def search_clause(self, filter: ProductFilter) -> Optional[ColumnElement[bool]]:
        clause = super().search_clause(filter)
        if clause is None:
            return None
        term = filter.search.strip()
        return or_(clause, Product.images.any(contains_ci(ProductImage.image_path, term)))

    def custom_clauses(self, filter: ProductFilter) -> List[ColumnElement[bool]]:
        clauses = []
        if filter.name:
            clauses.append(contains_ci(Product.name, filter.name))
        if filter.category_id is not None:
            clauses.append(Product.category_id == filter.category_id)
        if filter.anime_series_id is not None:
            clauses.append(Product.anime_series_id == filter.anime_series_id)

        if filter.has_image is not None:
            has_live_image = Product.images.any(ProductImage.is_deleted == False)  # noqa: E712
            clauses.append(has_live_image if filter.has_image else ~has_live_image)

        bounds = PRICE_RANGES.get((filter.price_range or "").lower())
        if bounds:
            low, high = bounds
            if low is not None:
                clauses.append(Product.price >= low)
            if high is not None:
                clauses.append(Product.price < high)

        stock_status = (filter.stock_status or "").lower()
        if stock_status == "out-of-stock":
            clauses.append(Product.stock_quantity == 0)
        elif stock_status == "low-stock":
            clauses.append(Product.stock_quantity.between(1, LOW_STOCK_THRESHOLD))
        elif stock_status == "in-stock":
            clauses.append(Product.stock_quantity > LOW_STOCK_THRESHOLD)
        return clauses

    def build_order_by(self, filter: ProductFilter) -> Any:
        sort_type = (filter.sort_type or "").lower()
        if sort_type.startswith("price-"):
            return Product.price
        if sort_type.startswith("name-"):
            return Product.name
        if sort_type.startswith("updated-"):
            return func.coalesce(Product.updated_at, Product.created_at)
        return super().build_order_by(filter)

    def is_ascending(self, filter: ProductFilter) -> bool:
        if filter.sort_type:
            return filter.sort_type.lower().endswith("-asc")
        return super().is_ascending(filter)
