"""Registration, login and user administration."""
from unittest.mock import AsyncMock
from sqlmodel import select
from framework.entity import EntityStatus
from framework.response import ErrorCode
from framework.security import decode_access_token
from apps.audit.models import UserAction, UserActionType
from apps.audit.service import UserActionPublisher
from apps.identity.schemas import LoginRequest, RegisterRequest, UserFilter
from apps.identity.service import IdentityService, resolve_current_user
from conftest import PASSWORD, as_current_user


def _register_request(username="mikufan", email="miku@nekovi.test"):
    return RegisterRequest(username=username, email=email, password="password1", full_name="Miku Fan")


async def test_register_creates_customer(uow):
    result = await IdentityService(uow).register(_register_request())

    assert result.is_success
    assert result.data.roles == ["Customer"]
    assert result.data.status == EntityStatus.ACTIVE


async def test_register_rejects_duplicates(uow, customer):
    service = IdentityService(uow)

    by_name = await service.register(_register_request(username="CUSTOMER"))
    assert by_name.error_code == ErrorCode.CONFLICT

    by_email = await service.register(_register_request(email=customer.email))
    assert by_email.error_code == ErrorCode.CONFLICT


async def test_login_issues_token_and_publishes_action(uow, customer):
    queue = AsyncMock()
    queue.enqueue.return_value = "1-0"
    service = IdentityService(uow, publisher=UserActionPublisher(queue))

    result = await service.login(LoginRequest(username="customer", password=PASSWORD), ip_address="10.0.0.1")

    assert result.is_success
    claims = decode_access_token(result.data.access_token)
    assert claims.id == customer.id
    assert claims.roles == ["Customer"]
    payload = queue.enqueue.await_args.args[0]
    assert payload["action"] == UserActionType.LOGIN.value
    assert payload["ip_address"] == "10.0.0.1"


async def test_login_rejects_wrong_password(uow, customer):
    result = await IdentityService(uow).login(LoginRequest(username="customer", password="nope"))
    assert result.error_code == ErrorCode.INVALID_CREDENTIALS


async def test_login_survives_publisher_failure(uow, customer):
    queue = AsyncMock()
    queue.enqueue.side_effect = ConnectionError("redis down")
    service = IdentityService(uow, publisher=UserActionPublisher(queue))

    result = await service.login(LoginRequest(username="customer", password=PASSWORD))
    assert result.is_success


async def test_resolve_current_user_rejects_inactive(uow, customer):
    assert (await resolve_current_user(uow, as_current_user(customer))).id == customer.id

    customer.status = EntityStatus.INACTIVE
    await uow.save_changes()
    assert await resolve_current_user(uow, as_current_user(customer)) is None
    assert await resolve_current_user(uow, None) is None


async def test_delete_and_restore_user_are_audited(uow, admin, customer):
    service = IdentityService(uow, as_current_user(admin))

    deleted = await service.delete_user(customer.id)
    assert deleted.is_success
    again = await service.delete_user(customer.id)
    assert again.error_code == ErrorCode.NOT_FOUND

    restored = await service.restore_user(customer.id)
    assert restored.is_success
    assert restored.data.is_deleted is False

    actions = (await uow.session.exec(select(UserAction).where(UserAction.entity_id == customer.id))).all()
    assert sorted(a.action for a in actions) == sorted([UserActionType.DELETE, UserActionType.RESTORE])


async def test_admin_cannot_delete_self(uow, admin):
    result = await IdentityService(uow, as_current_user(admin)).delete_user(admin.id)
    assert result.error_code == ErrorCode.INVALID_OPERATION


async def test_restore_requires_deleted_user(uow, admin, customer):
    result = await IdentityService(uow, as_current_user(admin)).restore_user(customer.id)
    assert result.error_code == ErrorCode.INVALID_OPERATION


async def test_user_list_filters_by_role(uow, admin, customer, staff):
    service = IdentityService(uow, as_current_user(admin))

    page = await service.get_user_list(UserFilter(role="Staff"))
    assert [u.username for u in page.items] == ["staff"]

    page = await service.get_user_list(UserFilter())
    assert page.total_items == 3
