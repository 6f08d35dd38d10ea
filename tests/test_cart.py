"""Shopping cart: lazy creation, stock checks, totals and fire-and-forget auditing."""
from decimal import Decimal
from unittest.mock import AsyncMock
import pytest
from framework.entity import EntityStatus
from framework.response import ErrorCode
from apps.audit.service import UserActionPublisher
from apps.cart.models import CartItem, ShoppingCart
from apps.cart.schemas import CartFilter, CartItemRequest, UpdateCartCommand
from apps.cart.service import CartService
from conftest import as_current_user


@pytest.fixture
def queue():
    queue = AsyncMock()
    queue.enqueue.return_value = "1-0"
    return queue


@pytest.fixture
def service(uow, customer, queue) -> CartService:
    return CartService(uow, as_current_user(customer), UserActionPublisher(queue))


async def _only_item(uow) -> CartItem:
    items = await uow.repository(CartItem).find()
    assert len(items) == 1
    return items[0]


async def test_first_access_creates_empty_cart(service, uow, customer):
    result = await service.get_current_user_cart(CartFilter())

    assert result.is_success
    assert result.data.total_items == 0
    assert result.data.cart_items == []
    cart = await uow.repository(ShoppingCart).get_first_or_default(ShoppingCart.user_id == customer.id)
    assert cart.id == result.data.cart_id


async def test_add_to_cart_merges_lines(service, uow, product, queue):
    first = await service.add_to_cart(CartItemRequest(product_id=product.id, quantity=2))
    second = await service.add_to_cart(CartItemRequest(product_id=product.id, quantity=1))

    assert first.message == "Item added to cart successfully."
    assert second.is_success
    assert (await _only_item(uow)).quantity == 3
    assert queue.enqueue.await_count == 2


async def test_add_to_cart_checks_combined_stock(service, uow, product):
    await service.add_to_cart(CartItemRequest(product_id=product.id, quantity=4))
    result = await service.add_to_cart(CartItemRequest(product_id=product.id, quantity=2))

    assert result.error_code == ErrorCode.VALIDATION_FAILED
    assert result.message == "Insufficient stock for the product."
    assert (await _only_item(uow)).quantity == 4


async def test_add_unavailable_product(service, uow, product):
    product.status = EntityStatus.INACTIVE
    await uow.save_changes()

    result = await service.add_to_cart(CartItemRequest(product_id=product.id))
    assert result.message == "Product is not available."
    assert await uow.repository(CartItem).count() == 0


async def test_add_requires_valid_user(uow, product):
    result = await CartService(uow, None).add_to_cart(CartItemRequest(product_id=product.id))
    assert result.error_code == ErrorCode.UNAUTHORIZED
    assert result.message == "Invalid user."


async def test_update_cart_quantity(service, uow, product):
    await service.add_to_cart(CartItemRequest(product_id=product.id, quantity=1))
    item = await _only_item(uow)

    same = await service.update_cart(UpdateCartCommand(cart_item_id=item.id, quantity=1))
    assert same.message == "Quantity is the same. No changes made."

    too_many = await service.update_cart(UpdateCartCommand(cart_item_id=item.id, quantity=6))
    assert too_many.message == "Insufficient stock for the product."

    updated = await service.update_cart(UpdateCartCommand(cart_item_id=item.id, quantity=5))
    assert updated.message == "Cart item updated successfully."
    assert (await _only_item(uow)).quantity == 5


async def test_update_cart_to_zero_removes_line(service, uow, product):
    await service.add_to_cart(CartItemRequest(product_id=product.id, quantity=2))
    item = await _only_item(uow)

    result = await service.update_cart(UpdateCartCommand(cart_item_id=item.id, quantity=0))

    assert result.message == "Cart item removed successfully."
    assert await uow.repository(CartItem).count() == 0


async def test_cannot_touch_another_users_line(service, uow, other_customer, product):
    await service.add_to_cart(CartItemRequest(product_id=product.id, quantity=1))
    item = await _only_item(uow)

    intruder = CartService(uow, as_current_user(other_customer))
    updated = await intruder.update_cart(UpdateCartCommand(cart_item_id=item.id, quantity=2))
    deleted = await intruder.delete_cart_item(item.id)

    assert updated.error_code == ErrorCode.NOT_FOUND
    assert deleted.error_code == ErrorCode.NOT_FOUND
    assert (await _only_item(uow)).quantity == 1


async def test_cart_totals_and_images(service, make_product, product):
    keychain = await make_product("Keychain", price="90000", stock=50)
    await service.add_to_cart(CartItemRequest(product_id=product.id, quantity=2))
    await service.add_to_cart(CartItemRequest(product_id=keychain.id, quantity=3))

    result = await service.get_current_user_cart(CartFilter(page_size=1))

    assert result.data.total_items == 2
    assert result.data.total_price == Decimal("2670000.00")
    assert len(result.data.cart_items) == 1
    assert result.data.cart_items[0].product_name == "Keychain"
    assert result.data.cart_items[0].image_path is None

    second_page = await service.get_current_user_cart(CartFilter(page=2, page_size=1))
    assert second_page.data.cart_items[0].image_path.endswith("products/rem.jpg")


async def test_delete_item_and_clear_cart(service, uow, make_product, product):
    keychain = await make_product("Keychain", price="90000", stock=50)
    await service.add_to_cart(CartItemRequest(product_id=product.id))
    await service.add_to_cart(CartItemRequest(product_id=keychain.id))
    items = await uow.repository(CartItem).find(order_by=CartItem.created_at)

    assert (await service.delete_cart_item(items[0].id)).is_success
    assert await uow.repository(CartItem).count() == 1

    cleared = await service.clear_cart()
    assert cleared.message == "Cart cleared successfully."
    assert await uow.repository(CartItem).count() == 0


async def test_clear_cart_without_cart(service):
    result = await service.clear_cart()
    assert result.error_code == ErrorCode.NOT_FOUND
    assert result.message == "Cart not found"


async def test_cart_works_when_audit_stream_is_down(uow, customer, product):
    queue = AsyncMock()
    queue.enqueue.side_effect = ConnectionError("redis down")
    service = CartService(uow, as_current_user(customer), UserActionPublisher(queue))

    result = await service.add_to_cart(CartItemRequest(product_id=product.id))
    assert result.is_success
    assert (await _only_item(uow)).quantity == 1


async def test_unavailable_products_leave_the_total(service, uow, make_product, product):
    keychain = await make_product("Keychain", price="90000", stock=50)
    poster = await make_product("Poster", price="150000", stock=50)
    for item, quantity in ((product, 1), (keychain, 2), (poster, 1)):
        await service.add_to_cart(CartItemRequest(product_id=item.id, quantity=quantity))

    keychain.status = EntityStatus.INACTIVE
    poster.mark_deleted()
    await uow.save_changes()

    result = await service.get_current_user_cart(CartFilter())

    assert result.data.total_items == 3
    assert result.data.total_price == Decimal("1200000.00")
    availability = {line.product_name: line.is_available for line in result.data.cart_items}
    assert availability == {"Rem 1/7 Scale Figure": True, "Keychain": False, "Poster": False}


async def test_cannot_raise_quantity_of_unavailable_product(service, uow, product):
    await service.add_to_cart(CartItemRequest(product_id=product.id, quantity=1))
    item = await _only_item(uow)
    product.status = EntityStatus.INACTIVE
    await uow.save_changes()

    result = await service.update_cart(UpdateCartCommand(cart_item_id=item.id, quantity=2))

    assert result.message == "Product is not available."
    assert (await _only_item(uow)).quantity == 1
