"""
Filter object -> predicate / order-by translation.

A concrete builder names its model, the text columns searched by
``filter.search``, the sort keys it accepts, and any extra clauses derived
from its own filter fields. Everything is ANDed into one predicate.
"""

from datetime import datetime, timedelta
from typing import Any, ClassVar, Dict, Generic, List, Optional, Sequence, Type, TypeVar
from sqlalchemy import ColumnElement, and_, func, or_, true
from framework.entity import BaseEntity
from .filters import BasePaginationFilter

T = TypeVar("T", bound=BaseEntity)
F = TypeVar("F", bound=BasePaginationFilter)


def contains_ci(column: Any, term: str) -> ColumnElement[bool]:
    """Case-insensitive substring match with LIKE wildcards escaped."""
    return func.lower(column).contains(term.lower(), autoescape=True)


def date_range_clauses(
    column: Any, from_date: Optional[datetime], to_date: Optional[datetime]
) -> List[ColumnElement[bool]]:
    """``from_date`` inclusive; ``to_date`` covers that whole day."""
    clauses = []
    if from_date is not None:
        clauses.append(column >= from_date)
    if to_date is not None:
        end = datetime(to_date.year, to_date.month, to_date.day) + timedelta(days=1)
        clauses.append(column < end)
    return clauses


def combine_and(clauses: Sequence[ColumnElement[bool]]) -> ColumnElement[bool]:
    return and_(true(), *clauses)


class QueryBuilder(Generic[T, F]):
    model: ClassVar[Type[BaseEntity]]
    search_fields: ClassVar[Sequence[str]] = ()
    sort_fields: ClassVar[Dict[str, str]] = {}
    default_sort: ClassVar[str] = "created_at"
    default_ascending: ClassVar[bool] = False

    def base_clauses(self, filter: F) -> List[ColumnElement[bool]]:
        if filter.status is not None:
            return [self.model.status == filter.status]
        return []

    def search_clause(self, filter: F) -> Optional[ColumnElement[bool]]:
        term = (filter.search or "").strip()
        if not term or not self.search_fields:
            return None
        return or_(*(contains_ci(getattr(self.model, name), term) for name in self.search_fields))

    def custom_clauses(self, filter: F) -> List[ColumnElement[bool]]:
        return []

    def build_predicate(self, filter: F) -> ColumnElement[bool]:
        clauses = self.base_clauses(filter)
        search = self.search_clause(filter)
        if search is not None:
            clauses.append(search)
        clauses.extend(self.custom_clauses(filter))
        return combine_and(clauses)

    @staticmethod
    def _sort_key(value: Optional[str]) -> str:
        return (value or "").strip().lower().replace("_", "")

    def build_order_by(self, filter: F) -> Any:
        attr_name = self.sort_fields.get(self._sort_key(filter.sort_by), self.default_sort)
        return getattr(self.model, attr_name)

    def is_ascending(self, filter: F) -> bool:
        if filter.is_ascending is None:
            return self.default_ascending
        return filter.is_ascending
