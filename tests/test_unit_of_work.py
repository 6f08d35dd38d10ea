"""Unit of work: save semantics and explicit transaction boundaries."""
import pytest
from framework.repository.unit_of_work import TransactionError, UnitOfWork
from apps.catalog.models import Category


def _category(name: str) -> Category:
    category = Category(name=name)
    category.mark_created()
    return category


async def test_repository_is_cached_per_model(uow: UnitOfWork):
    assert uow.repository(Category) is uow.repository(Category)


async def test_save_changes_commits_and_counts(uow: UnitOfWork, session_factory):
    await uow.repository(Category).add_range([_category("A"), _category("B")])
    assert await uow.save_changes() == 2

    async with session_factory() as other_session:
        assert await UnitOfWork(other_session).repository(Category).count() == 2


async def test_commit_transaction_persists_all(uow: UnitOfWork, session_factory):
    await uow.begin_transaction()
    await uow.repository(Category).add(_category("A"))
    await uow.save_changes()
    assert uow.in_transaction
    await uow.repository(Category).add(_category("B"))
    await uow.commit_transaction()

    assert not uow.in_transaction
    async with session_factory() as other_session:
        assert await UnitOfWork(other_session).repository(Category).count() == 2


async def test_rollback_transaction_discards_saved_changes(uow: UnitOfWork):
    await uow.begin_transaction()
    await uow.repository(Category).add(_category("A"))
    await uow.save_changes()
    await uow.rollback_transaction()

    assert not uow.in_transaction
    assert await uow.repository(Category).count() == 0


async def test_transaction_context_rolls_back_on_error(uow: UnitOfWork):
    with pytest.raises(RuntimeError):
        async with uow.transaction():
            await uow.repository(Category).add(_category("A"))
            await uow.save_changes()
            raise RuntimeError("audit write failed")

    assert not uow.in_transaction
    assert await uow.repository(Category).count() == 0


async def test_transaction_misuse_raises(uow: UnitOfWork):
    with pytest.raises(TransactionError):
        await uow.commit_transaction()

    await uow.begin_transaction()
    with pytest.raises(TransactionError):
        await uow.begin_transaction()
    await uow.rollback_transaction()


def test_session_is_required():
    with pytest.raises(ValueError):
        UnitOfWork(session=None)
