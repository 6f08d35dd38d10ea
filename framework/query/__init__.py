"""
Filter objects and the builders that turn them into repository predicates.
"""

from .builder import QueryBuilder, combine_and, contains_ci, date_range_clauses
from .filters import BasePaginationFilter

__all__ = ["BasePaginationFilter", "QueryBuilder", "combine_and", "contains_ci", "date_range_clauses"]
