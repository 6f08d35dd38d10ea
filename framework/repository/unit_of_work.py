"""
Unit of Work: manages repositories and transaction boundaries.

The session autobegins a database transaction on first use. ``save_changes``
flushes and commits it, unless an explicit transaction is open, in which case
the commit waits for ``commit_transaction``. Nesting is not supported.
"""

from contextlib import asynccontextmanager
from typing import Dict, Optional, Type, TypeVar
from sqlmodel.ext.asyncio.session import AsyncSession
from framework.entity import BaseEntity
from .base import BaseRepository

T = TypeVar("T", bound=BaseEntity)


class TransactionError(RuntimeError):
    """Misuse of the explicit transaction boundary."""


class UnitOfWork:
    """Manages related repositories with a shared session and transaction commit/rollback."""

    def __init__(self, session: Optional[AsyncSession] = None):
        """Initialize UnitOfWork; session must be provided (e.g. UnitOfWork.from_session())."""
        if session is None:
            raise ValueError("Session must be provided. Use UnitOfWork.from_session() or pass session explicitly.")

        self.session = session
        self._repositories: Dict[str, BaseRepository] = {}
        self._in_transaction = False

    @classmethod
    async def from_session(cls, session: AsyncSession) -> "UnitOfWork":
        """Create UnitOfWork from an existing session."""
        return cls(session=session)

    def repository(self, model: Type[T]) -> BaseRepository[T]:
        """Generic repository for a model, created once per unit of work."""
        cache_key = f"{BaseRepository.__name__}_{model.__name__}"
        if cache_key not in self._repositories:
            self._repositories[cache_key] = BaseRepository(self.session, model)
        return self._repositories[cache_key]

    def get_repository(self, repo_class, model_class):
        """Get or create a custom repository instance (cached)."""
        cache_key = f"{repo_class.__name__}_{model_class.__name__}"
        if cache_key not in self._repositories:
            self._repositories[cache_key] = repo_class(self.session)
        return self._repositories[cache_key]

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    async def save_changes(self) -> int:
        """Flush staged mutations; commit unless an explicit transaction is open. Returns affected entity count."""
        affected = len(self.session.new) + len(self.session.dirty) + len(self.session.deleted)
        await self.session.flush()
        if not self._in_transaction:
            await self.session.commit()
        return affected

    async def begin_transaction(self) -> None:
        if self._in_transaction:
            raise TransactionError("A transaction is already open on this unit of work")
        self._in_transaction = True

    async def commit_transaction(self) -> None:
        if not self._in_transaction:
            raise TransactionError("No open transaction to commit")
        await self.session.flush()
        await self.session.commit()
        self._in_transaction = False

    async def rollback_transaction(self) -> None:
        """Discard everything since the last commit; safe after a failed commit."""
        self._in_transaction = False
        await self.session.rollback()

    @asynccontextmanager
    async def transaction(self):
        """Scoped transaction: commit on normal exit, rollback and re-raise otherwise."""
        await self.begin_transaction()
        try:
            yield self
        except BaseException:
            await self.rollback_transaction()
            raise
        try:
            await self.commit_transaction()
        except BaseException:
            await self.rollback_transaction()
            raise

    async def commit(self) -> None:
        """Commit all changes."""
        await self.session.commit()

    async def rollback(self) -> None:
        """Rollback all changes."""
        self._in_transaction = False
        await self.session.rollback()

    async def flush(self) -> None:
        """Flush session (e.g. to surface constraint errors early)."""
        await self.session.flush()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            await self.rollback()
        else:
            await self.commit()
