"""
Repository abstract base class and generic implementation.

Predicates are SQLAlchemy boolean expressions (``Product.price < 100``);
includes are relationship attributes, eager-loaded with ``selectinload``, or
ready-made loader options for multi-level loads
(``selectinload(Cart.items).selectinload(CartItem.product)``).

Soft-deleted rows are excluded from every read unless ``include_deleted=True``.
"""

from abc import ABC, abstractmethod
from typing import Any, Generic, Iterable, List, Optional, Sequence, Tuple, Type, TypeVar
from uuid import UUID
from sqlalchemy import ColumnElement
from sqlalchemy.orm import InstrumentedAttribute, selectinload
from sqlmodel import select, func
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlmodel.sql.expression import Select, SelectOfScalar
from framework.entity import BaseEntity

T = TypeVar("T", bound=BaseEntity)

Predicate = Optional[ColumnElement[bool]]


class IRepository(ABC, Generic[T]):
    """Repository interface; defines standard data access API."""

    @abstractmethod
    async def get_by_id(self, id: UUID, include_deleted: bool = False) -> Optional[T]:
        """Get entity by ID; None when missing."""

    @abstractmethod
    async def get_first_or_default(
        self, predicate: Predicate = None, includes: Sequence[Any] = (), include_deleted: bool = False
    ) -> Optional[T]:
        """First entity matching predicate."""

    @abstractmethod
    async def find(
        self,
        predicate: Predicate = None,
        includes: Sequence[Any] = (),
        order_by: Any = None,
        include_deleted: bool = False,
        ascending: bool = True,
    ) -> List[T]:
        """All entities matching predicate (unbounded; for small result sets)."""

    @abstractmethod
    async def get_paged(
        self,
        page_number: int,
        page_size: int,
        predicate: Predicate = None,
        order_by: Any = None,
        ascending: bool = True,
        includes: Sequence[Any] = (),
        include_deleted: bool = False,
    ) -> Tuple[List[T], int]:
        """One page of matches and the total match count."""

    @abstractmethod
    async def any(self, predicate: Predicate = None, include_deleted: bool = False) -> bool:
        """Existence check."""

    @abstractmethod
    async def count(self, predicate: Predicate = None, include_deleted: bool = False) -> int:
        """Count matches."""

    @abstractmethod
    async def add(self, entity: T) -> T:
        """Stage a new entity."""

    @abstractmethod
    async def update(self, entity: T) -> T:
        """Stage changes to an entity."""

    @abstractmethod
    async def delete(self, entity: T) -> None:
        """Stage a hard delete."""

    @abstractmethod
    def get_queryable(self, include_deleted: bool = False) -> SelectOfScalar[T]:
        """Composable select for call sites beyond the standard shape."""


class BaseRepository(IRepository[T]):
    """Generic repository implementation with SQLModel CRUD; subclasses can add custom queries."""

    def __init__(self, session: AsyncSession, model: Type[T]):
        self.session = session
        self.model = model

    # --- statement helpers ---

    def _not_deleted(self) -> ColumnElement[bool]:
        return self.model.is_deleted == False  # noqa: E712

    def _where(self, statement, predicate: Predicate, include_deleted: bool):
        if not include_deleted:
            statement = statement.where(self._not_deleted())
        if predicate is not None:
            statement = statement.where(predicate)
        return statement

    @staticmethod
    def _with_includes(statement, includes: Iterable[Any]):
        for include in includes:
            if isinstance(include, InstrumentedAttribute):
                statement = statement.options(selectinload(include))
            else:
                statement = statement.options(include)
        return statement

    def _ordered(self, statement, order_by: Any, ascending: bool):
        # id is the tie-break so equal sort keys page deterministically
        if order_by is None:
            return statement.order_by(self.model.id)
        order_clause = order_by.asc() if ascending else order_by.desc()
        return statement.order_by(order_clause, self.model.id)

    # --- reads ---

    async def get_by_id(self, id: UUID, include_deleted: bool = False) -> Optional[T]:
        statement = self._where(select(self.model), self.model.id == id, include_deleted)
        result = await self.session.exec(statement)
        return result.first()

    async def get_first_or_default(
        self, predicate: Predicate = None, includes: Sequence[Any] = (), include_deleted: bool = False
    ) -> Optional[T]:
        statement = self._where(select(self.model), predicate, include_deleted)
        statement = self._with_includes(statement, includes).limit(1)
        result = await self.session.exec(statement)
        return result.first()

    async def find(
        self,
        predicate: Predicate = None,
        includes: Sequence[Any] = (),
        order_by: Any = None,
        include_deleted: bool = False,
        ascending: bool = True,
    ) -> List[T]:
        statement = self._where(select(self.model), predicate, include_deleted)
        statement = self._ordered(statement, order_by, ascending)
        statement = self._with_includes(statement, includes)
        result = await self.session.exec(statement)
        return list(result.all())

    async def get_all(self, includes: Sequence[Any] = ()) -> List[T]:
        return await self.find(includes=includes)

    async def get_paged(
        self,
        page_number: int,
        page_size: int,
        predicate: Predicate = None,
        order_by: Any = None,
        ascending: bool = True,
        includes: Sequence[Any] = (),
        include_deleted: bool = False,
    ) -> Tuple[List[T], int]:
        if page_number < 1 or page_size < 1:
            raise ValueError(f"page_number and page_size must be positive (got {page_number}, {page_size})")

        total_count = await self.count(predicate, include_deleted=include_deleted)

        statement = self._where(select(self.model), predicate, include_deleted)
        statement = self._ordered(statement, order_by, ascending)
        statement = statement.offset((page_number - 1) * page_size).limit(page_size)
        statement = self._with_includes(statement, includes)

        result = await self.session.exec(statement)
        return list(result.all()), total_count

    async def any(self, predicate: Predicate = None, include_deleted: bool = False) -> bool:
        statement = self._where(select(self.model.id), predicate, include_deleted).limit(1)
        result = await self.session.exec(statement)
        return result.first() is not None

    async def count(self, predicate: Predicate = None, include_deleted: bool = False) -> int:
        statement = self._where(select(func.count()).select_from(self.model), predicate, include_deleted)
        result = await self.session.exec(statement)
        return result.one()

    async def find_one(self, **filters) -> Optional[T]:
        """Find one entity by column equality (e.g. username='admin')."""
        return await self.get_first_or_default(self._filters_predicate(filters))

    async def find_all(self, **filters) -> List[T]:
        """Find entities by column equality."""
        return await self.find(self._filters_predicate(filters))

    def _filters_predicate(self, filters: dict) -> Predicate:
        clauses = [getattr(self.model, key) == value for key, value in filters.items() if hasattr(self.model, key)]
        if not clauses:
            return None
        statement_predicate = clauses[0]
        for clause in clauses[1:]:
            statement_predicate = statement_predicate & clause
        return statement_predicate

    # --- escape hatch ---

    def get_queryable(self, include_deleted: bool = False) -> SelectOfScalar[T]:
        return self._where(select(self.model), None, include_deleted)

    async def fetch_all(self, statement: Select) -> List[Any]:
        result = await self.session.exec(statement)
        return list(result.all())

    async def fetch_first(self, statement: Select) -> Optional[Any]:
        result = await self.session.exec(statement)
        return result.first()

    # --- staged mutations ---

    async def add(self, entity: T) -> T:
        self.session.add(entity)
        return entity

    async def add_range(self, entities: Iterable[T]) -> List[T]:
        entities = list(entities)
        self.session.add_all(entities)
        return entities

    async def update(self, entity: T) -> T:
        """Update entity (SQLModel tracks changes)."""
        self.session.add(entity)
        return entity

    async def update_range(self, entities: Iterable[T]) -> List[T]:
        entities = list(entities)
        self.session.add_all(entities)
        return entities

    async def delete(self, entity: T) -> None:
        await self.session.delete(entity)

    async def delete_range(self, entities: Iterable[T]) -> None:
        for entity in entities:
            await self.session.delete(entity)
