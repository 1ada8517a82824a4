import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from logistics import cart, order_service
from logistics.models import CartItem, Event, Order
from shopdrop_backend.exceptions import InvalidQuantity, OutOfStock, ResourceNotFound, SaleNotActive, TooManyItems

pytestmark = pytest.mark.django_db


def test_add_item_creates_then_replaces_quantity(customer, product):
    first, created = cart.add_item(customer, product.pk, 2)
    second, created_again = cart.add_item(customer, str(product.pk), "5")

    assert created is True
    assert created_again is False
    assert first.pk == second.pk
    assert CartItem.objects.get(pk=first.pk).quantity == 5


def test_variations_are_separate_lines(customer, product):
    cart.add_item(customer, product.pk, 1, selected_variation="500g")
    cart.add_item(customer, product.pk, 1, selected_variation="1kg")

    assert CartItem.objects.filter(user=customer).count() == 2


def test_add_item_resolves_events_when_no_product_matches(customer, shop):
    event = Event.objects.create(shop=shop, name="Diwali sweets box", original_price=Decimal("300"), stock=3)

    cart_item, _ = cart.add_item(customer, event.pk, 1)

    assert cart_item.item_type == CartItem.ItemType.EVENT


def _flash_sale(shop, **window):
    return Event.objects.create(shop=shop, name="Flash sale mangoes", original_price=Decimal("120"), stock=5, **window)


def test_events_sell_only_inside_their_window(customer, shop):
    now = timezone.now()
    ended = _flash_sale(shop, starts_at=now - timedelta(days=2), ends_at=now - timedelta(days=1))
    upcoming = _flash_sale(shop, starts_at=now + timedelta(hours=1))
    live = _flash_sale(shop, starts_at=now - timedelta(hours=1), ends_at=now + timedelta(hours=1))

    with pytest.raises(SaleNotActive):
        cart.add_item(customer, ended.pk, 1)
    with pytest.raises(SaleNotActive):
        cart.add_item(customer, upcoming.pk, 1)
    cart_item, _ = cart.add_item(customer, live.pk, 1)

    assert cart_item.item_type == CartItem.ItemType.EVENT


def test_checkout_rejects_a_sale_that_ended_after_carting(customer, shop):
    now = timezone.now()
    event = _flash_sale(shop, ends_at=now + timedelta(hours=1))
    cart.add_item(customer, event.pk, 1)
    Event.objects.filter(pk=event.pk).update(ends_at=now - timedelta(minutes=1))

    with pytest.raises(SaleNotActive):
        order_service.create_orders(customer, [{"product_id": str(event.pk), "quantity": 1}])

    assert not Order.objects.exists()
    assert cart.get_cart(customer)["items"][0]["is_available"] is False


@pytest.mark.parametrize("quantity", [0, -2, 1.5, "two", None, True, 1000])
def test_add_item_rejects_bad_quantity(customer, product, quantity):
    with pytest.raises(InvalidQuantity):
        cart.add_item(customer, product.pk, quantity)


def test_add_item_rejects_more_than_stock(customer, make_product, shop):
    product = make_product(shop, stock=2)

    with pytest.raises(OutOfStock) as excinfo:
        cart.add_item(customer, product.pk, 3)
    assert excinfo.value.extra["available_stock"] == 2


def test_add_unknown_item_is_not_found(customer):
    with pytest.raises(ResourceNotFound):
        cart.add_item(customer, uuid.uuid4(), 1)
    with pytest.raises(ResourceNotFound):
        cart.add_item(customer, "not-a-uuid", 1)


def test_update_item_checks_owner_and_stock(customer, other_customer, product):
    cart_item, _ = cart.add_item(customer, product.pk, 1)

    assert cart.update_item(customer, cart_item.pk, 4).quantity == 4
    with pytest.raises(ResourceNotFound):
        cart.update_item(other_customer, cart_item.pk, 2)
    with pytest.raises(OutOfStock):
        cart.update_item(customer, cart_item.pk, 11)


def test_remove_items_only_touches_own_lines(customer, other_customer, product, make_product, shop):
    other_product = make_product(shop, name="Onions")
    mine, _ = cart.add_item(customer, product.pk, 1)
    mine_too, _ = cart.add_item(customer, other_product.pk, 1)
    theirs, _ = cart.add_item(other_customer, product.pk, 1)

    removed = cart.remove_items(customer, [mine.pk, mine_too.pk, theirs.pk])

    assert removed == 2
    assert CartItem.objects.filter(pk=theirs.pk).exists()


def test_remove_items_limits(customer):
    with pytest.raises(ValidationError):
        cart.remove_items(customer, [])
    with pytest.raises(TooManyItems):
        cart.remove_items(customer, list(range(1, 102)))
    with pytest.raises(ResourceNotFound):
        cart.remove_items(customer, [12345])


def test_get_cart_summary_uses_live_prices(customer, make_product, shop):
    discounted = make_product(shop, name="Mangoes", price="100.00", discount_price="80.00")
    plain = make_product(shop, name="Rice", price="25.50")
    cart.add_item(customer, discounted.pk, 2)
    cart.add_item(customer, plain.pk, 1)

    # Price change after adding is reflected
    plain.original_price = Decimal("30.00")
    plain.save()

    result = cart.get_cart(customer)

    assert [line["name"] for line in result["items"]] == ["Mangoes", "Rice"]
    assert result["summary"] == {
        "total_items": 3,
        "subtotal": "190.00",
        "total_original_price": "230.00",
        "total_discount": "40.00",
        "total": "190.00",
        "currency": "INR",
        "savings": "40.00",
    }


def test_get_cart_drops_vanished_items(customer, product, make_product, shop):
    gone = make_product(shop, name="Discontinued")
    cart.add_item(customer, product.pk, 1)
    cart.add_item(customer, gone.pk, 1)
    gone.delete()

    result = cart.get_cart(customer)

    assert [line["item_id"] for line in result["items"]] == [str(product.pk)]
    assert result["summary"]["total_items"] == 1


def test_cart_endpoints(client_for, customer, product):
    client = client_for(customer)

    response = client.post("/api/v1/cart/", {"item_id": str(product.pk), "quantity": 2}, format="json")
    assert response.status_code == 201
    line_id = response.data["item"]["id"]

    response = client.post("/api/v1/cart/", {"item_id": str(product.pk), "quantity": 3}, format="json")
    assert response.status_code == 200

    response = client.patch(f"/api/v1/cart/{line_id}/", {"quantity": 4}, format="json")
    assert response.status_code == 200
    assert response.data["item"]["quantity"] == 4

    response = client.get("/api/v1/cart/")
    assert response.data["summary"]["total_items"] == 4

    response = client.post("/api/v1/cart/", {"item_id": str(product.pk), "quantity": 0}, format="json")
    assert response.status_code == 400
    assert response.data["error"] == "invalid_quantity"

    response = client.post("/api/v1/cart/bulk-remove/", {"item_ids": [line_id]}, format="json")
    assert response.data["removed"] == 1

    response = client.delete(f"/api/v1/cart/{line_id}/")
    assert response.status_code == 404
