from decimal import Decimal
import copy

import pytest
from rest_framework.exceptions import ValidationError

from logistics import cart, order_service
from logistics.models import CartItem, Notification, Order
from shopdrop_backend.exceptions import (
    AlreadyAssigned,
    AlreadyIgnored,
    DeliveryUnavailable,
    InvalidLocation,
    InvalidOtp,
    InvalidState,
    NotAssignedToYou,
    NotOrderOwner,
    OtpAttemptsExceeded,
    OutOfStock,
    PriceMismatch,
    ResourceNotFound,
)
from users.authentication import Principal

pytestmark = pytest.mark.django_db


@pytest.fixture
def place_order(customer):
    def _place(*products_and_quantities, buyer=None, **kwargs):
        lines = [{"product_id": str(p.pk), "quantity": q} for p, q in products_and_quantities]
        orders = order_service.create_orders(buyer or customer, lines, **kwargs)
        return orders[0] if len(orders) == 1 else orders
    return _place


def _principal(user):
    return Principal(role=user.role, user=user)


# --- checkout ---

def test_checkout_splits_cart_by_shop(customer, make_user, make_shop, make_product, location_payload,
                                      django_capture_on_commit_callbacks):
    shop_a = make_shop(make_user("SHOP_OWNER"), name="A")
    shop_b = make_shop(make_user("SHOP_OWNER"), name="B")
    apples = make_product(shop_a, name="Apples", price="30.00")
    pears = make_product(shop_a, name="Pears", price="20.00", discount_price="15.00")
    milk = make_product(shop_b, name="Milk", price="28.00")
    cart.add_item(customer, apples.pk, 1)

    with django_capture_on_commit_callbacks(execute=True):
        orders = order_service.create_orders(
            customer,
            [
                {"product_id": str(apples.pk), "quantity": 2},
                {"product_id": str(milk.pk), "quantity": 1},
                {"product_id": str(pears.pk), "quantity": 2},
            ],
            shipping_address={"city": "Tirupattur"},
            payment_info={"type": "cod"},
            user_location=location_payload,
            total_price="118.00",
        )

    # 1. One order per shop, in cart order
    assert [o.shop_id for o in orders] == [shop_a.pk, shop_b.pk]
    assert [o.total_amount for o in orders] == [Decimal("90.00"), Decimal("28.00")]
    assert sum(len(o.items) for o in orders) == 3

    # 2. Each order carries its own handoff code and the checkout snapshot
    for order in orders:
        assert order.status == "PROCESSING"
        assert order.payment_method == "COD"
        assert len(order.delivery_otp) == 6 and order.delivery_otp.isdigit()
        assert order.customer_snapshot["name"] == "Asha Kumar"
        assert order.delivery_address == "12 Gandhi Road"

    # 3. Purchased lines leave the cart
    assert not CartItem.objects.filter(user=customer).exists()

    # 4. Each shop owner hears about their order once committed
    assert Notification.objects.filter(event="order_created").count() == 2
    assert Notification.objects.filter(recipient=shop_b.owner, order=orders[1]).exists()


def test_checkout_without_location_skips_geofence(place_order, make_shop, make_product, seller):
    far_shop = make_shop(seller, name="Far", lat=13.0827, lng=80.2707)
    product = make_product(far_shop)

    order = place_order((product, 1))

    assert order.delivery_lat is None


def test_checkout_blocked_when_a_shop_cannot_deliver(place_order, shop, make_shop, make_product, seller, location_payload):
    near = make_product(shop)
    no_location_shop = make_shop(seller, name="Nowhere", lat=None, lng=None)
    far = make_product(no_location_shop)

    with pytest.raises(DeliveryUnavailable) as excinfo:
        place_order((near, 1), (far, 1), user_location=location_payload)

    unavailable = excinfo.value.extra["unavailable_shops"]
    assert [entry["shop_id"] for entry in unavailable] == [no_location_shop.pk]
    assert unavailable[0]["reason"] == "location_unavailable"
    assert not Order.objects.exists()


def test_checkout_rejects_malformed_location(place_order, product):
    with pytest.raises(InvalidLocation):
        place_order((product, 1), user_location={"latitude": "north", "longitude": 78.5})
    with pytest.raises(InvalidLocation):
        place_order((product, 1), user_location={"latitude": 12.5, "longitude": 200})


def test_checkout_rejects_stale_client_total(place_order, product):
    with pytest.raises(PriceMismatch) as excinfo:
        place_order((product, 2), total_price="10.00")

    assert excinfo.value.extra["expected_total"] == "80.00"
    assert not Order.objects.exists()


def test_checkout_rejects_quantity_above_stock(place_order, make_product, shop):
    product = make_product(shop, stock=1)

    with pytest.raises(OutOfStock):
        place_order((product, 2))


def test_checkout_does_not_touch_stock(place_order, product):
    place_order((product, 3))

    product.refresh_from_db()
    assert product.stock == 10


# --- seller ---

def test_seller_accept_commits_stock(place_order, product, seller):
    order = place_order((product, 3))

    order_service.update_status(seller, order.pk, "ACCEPTED")

    product.refresh_from_db()
    assert Order.objects.get(pk=order.pk).status == "ACCEPTED"
    assert (product.stock, product.sold_out) == (7, 3)


def test_stock_never_goes_negative(place_order, make_product, shop, seller):
    """
    Two orders for the last unit: the second acceptance fails and changes nothing.
    """
    product = make_product(shop, stock=1)
    first = place_order((product, 1))
    second = place_order((product, 1))

    order_service.update_status(seller, first.pk, "ACCEPTED")
    with pytest.raises(OutOfStock):
        order_service.update_status(seller, second.pk, "ACCEPTED")

    product.refresh_from_db()
    assert product.stock == 0
    assert Order.objects.get(pk=second.pk).status == "PROCESSING"


def test_multi_line_stock_commit_is_all_or_nothing(place_order, make_product, shop, seller):
    plenty = make_product(shop, name="Rice", stock=10)
    scarce = make_product(shop, name="Saffron", stock=1)
    order = place_order((plenty, 2), (scarce, 1))
    scarce.stock = 0
    scarce.save()

    with pytest.raises(OutOfStock):
        order_service.update_status(seller, order.pk, "ACCEPTED")

    plenty.refresh_from_db()
    assert plenty.stock == 10
    assert Order.objects.get(pk=order.pk).status == "PROCESSING"


def test_seller_rules(place_order, product, seller, make_user):
    order = place_order((product, 1))

    with pytest.raises(NotOrderOwner):
        order_service.update_status(make_user("SHOP_OWNER"), order.pk, "ACCEPTED")
    with pytest.raises(InvalidState):
        order_service.update_status(seller, order.pk, "DELIVERED")

    order_service.update_status(seller, order.pk, "ACCEPTED")
    with pytest.raises(InvalidState):
        order_service.update_status(seller, order.pk, "CANCELLED")


# --- rider ---

def test_accept_is_idempotent_for_the_same_rider(place_order, product, seller, rider):
    order = place_order((product, 1))
    order_service.update_status(seller, order.pk, "ACCEPTED")

    first = order_service.accept_order(rider, order.pk)
    again = order_service.accept_order(rider, order.pk)

    assert first.rider_id == again.rider_id == rider.pk
    assert again.status == "OUT_FOR_DELIVERY"
    product.refresh_from_db()
    assert product.stock == 9


def test_only_one_rider_wins_a_claim(place_order, product, rider, other_rider):
    order = place_order((product, 1))

    assert order_service.claim_order(order.pk, rider) is True
    assert order_service.claim_order(order.pk, other_rider) is False
    with pytest.raises(AlreadyAssigned):
        order_service.accept_order(other_rider, order.pk)

    assert Order.objects.get(pk=order.pk).rider_id == rider.pk


def test_claim_from_processing_commits_stock(place_order, product, rider):
    order = place_order((product, 4))

    order_service.accept_order(rider, order.pk)

    product.refresh_from_db()
    assert (product.stock, product.sold_out) == (6, 4)


def test_claim_fails_cleanly_without_stock(place_order, make_product, shop, rider):
    product = make_product(shop, stock=2)
    order = place_order((product, 2))
    product.stock = 1
    product.save()

    with pytest.raises(OutOfStock):
        order_service.accept_order(rider, order.pk)

    order.refresh_from_db()
    assert order.rider_id is None
    assert order.status == "PROCESSING"


def test_accept_cancelled_order_is_invalid_state(place_order, product, customer, rider):
    order = place_order((product, 1))
    order_service.cancel_order(customer, order.pk)

    with pytest.raises(InvalidState):
        order_service.accept_order(rider, order.pk)


def test_ignore_hides_order_from_that_rider_only(place_order, product, rider, other_rider):
    order = place_order((product, 1))

    order_service.ignore_order(rider, order.pk)

    assert order.pk not in set(order_service.available_orders_for_rider(rider).values_list("pk", flat=True))
    assert order.pk in set(order_service.available_orders_for_rider(other_rider).values_list("pk", flat=True))
    assert Order.objects.get(pk=order.pk).status == "PROCESSING"
    with pytest.raises(AlreadyIgnored):
        order_service.ignore_order(rider, order.pk)


def test_ignore_rules(place_order, product, customer, rider, other_rider):
    assigned = place_order((product, 1))
    order_service.accept_order(rider, assigned.pk)
    cancelled = place_order((product, 1))
    order_service.cancel_order(customer, cancelled.pk)

    with pytest.raises(AlreadyAssigned):
        order_service.ignore_order(other_rider, assigned.pk)
    with pytest.raises(InvalidState):
        order_service.ignore_order(other_rider, cancelled.pk)


# --- delivery handoff ---

def test_otp_round_trip_delivers_and_credits_seller(place_order, product, shop, rider,
                                                    django_capture_on_commit_callbacks):
    order = place_order((product, 1))
    order_service.accept_order(rider, order.pk)

    with django_capture_on_commit_callbacks(execute=True):
        delivered = order_service.confirm_delivery(rider, order.pk, order.delivery_otp)

    assert delivered.status == "DELIVERED"
    order.refresh_from_db()
    assert order.status == "DELIVERED"
    assert order.delivered_at is not None
    assert order.payment_status == "SUCCEEDED"
    assert order.paid_at is not None
    shop.refresh_from_db()
    assert shop.available_balance == Decimal("36.00")
    assert Notification.objects.filter(event="order_delivered").count() == 2


def test_seller_balance_accumulates(place_order, make_product, shop, rider):
    first = place_order((make_product(shop, name="Basket", price="100.00"), 1))
    second = place_order((make_product(shop, name="Bread", price="50.00"), 1))

    for order in (first, second):
        order_service.accept_order(rider, order.pk)
        order_service.confirm_delivery(rider, order.pk, order.delivery_otp)

    shop.refresh_from_db()
    assert shop.available_balance == Decimal("135.00")


def test_prepaid_order_keeps_payment_status(place_order, product, rider):
    order = place_order((product, 1), payment_info={"type": "PAYNOW", "id": "pn_1"})
    order_service.accept_order(rider, order.pk)

    order_service.confirm_delivery(rider, order.pk, order.delivery_otp)

    order.refresh_from_db()
    assert order.payment_method == "PAYNOW"
    assert order.payment_status == "PENDING"


def test_wrong_otp_counts_attempts_and_locks(place_order, product, rider, settings):
    settings.MAX_OTP_ATTEMPTS = 3
    order = place_order((product, 1))
    order_service.accept_order(rider, order.pk)
    wrong = "000000" if order.delivery_otp != "000000" else "111111"

    for _ in range(3):
        with pytest.raises(InvalidOtp):
            order_service.confirm_delivery(rider, order.pk, wrong)

    assert Order.objects.get(pk=order.pk).otp_attempts == 3
    with pytest.raises(OtpAttemptsExceeded):
        order_service.confirm_delivery(rider, order.pk, order.delivery_otp)
    assert Order.objects.get(pk=order.pk).status == "OUT_FOR_DELIVERY"


def test_parallel_wrong_otps_cannot_exceed_the_budget(place_order, product, rider, settings, monkeypatch):
    """
    Twenty submissions that all read the order before any attempt was recorded.
    """
    settings.MAX_OTP_ATTEMPTS = 5
    order = place_order((product, 1))
    order_service.accept_order(rider, order.pk)
    stale = order_service.get_order(order.pk)
    monkeypatch.setattr(order_service, "get_order", lambda order_id: copy.copy(stale))
    wrong = "000000" if order.delivery_otp != "000000" else "111111"

    outcomes = []
    for _ in range(20):
        with pytest.raises((InvalidOtp, OtpAttemptsExceeded)) as excinfo:
            order_service.confirm_delivery(rider, order.pk, wrong)
        outcomes.append(type(excinfo.value))

    # 1. Only five codes were ever compared
    assert outcomes.count(InvalidOtp) == 5
    assert outcomes.count(OtpAttemptsExceeded) == 15
    # 2. The counter stops at the budget
    assert Order.objects.get(pk=order.pk).otp_attempts == 5


def test_otp_must_match_exactly(place_order, product, rider):
    order = place_order((product, 1))
    order_service.accept_order(rider, order.pk)

    with pytest.raises(InvalidOtp):
        order_service.confirm_delivery(rider, order.pk, f" {order.delivery_otp} ")

    assert order_service.confirm_delivery(rider, order.pk, order.delivery_otp).status == "DELIVERED"


def test_only_assigned_rider_can_confirm(place_order, product, rider, other_rider):
    order = place_order((product, 1))
    order_service.accept_order(rider, order.pk)

    with pytest.raises(NotAssignedToYou):
        order_service.confirm_delivery(other_rider, order.pk, order.delivery_otp)


def test_confirm_twice_is_invalid_state(place_order, product, rider):
    order = place_order((product, 1))
    order_service.accept_order(rider, order.pk)
    order_service.confirm_delivery(rider, order.pk, order.delivery_otp)

    with pytest.raises(InvalidState):
        order_service.confirm_delivery(rider, order.pk, order.delivery_otp)


# --- customer ---

def test_cancel_rules(place_order, product, customer, other_customer, seller):
    order = place_order((product, 1))

    with pytest.raises(NotOrderOwner):
        order_service.cancel_order(other_customer, order.pk)

    order_service.update_status(seller, order.pk, "ACCEPTED")
    with pytest.raises(InvalidState):
        order_service.cancel_order(customer, order.pk)


def test_refund_flow_restores_stock(place_order, product, customer, seller, rider):
    order = place_order((product, 2))
    order_service.update_status(seller, order.pk, "ACCEPTED")

    with pytest.raises(InvalidState):
        order_service.request_refund(customer, order.pk)

    order_service.accept_order(rider, order.pk)
    order_service.confirm_delivery(rider, order.pk, order.delivery_otp)
    order_service.request_refund(customer, order.pk)
    refunded = order_service.approve_refund(seller, order.pk)

    assert refunded.status == "REFUND_SUCCEEDED"
    assert refunded.payment_status == "REFUNDED"
    product.refresh_from_db()
    assert (product.stock, product.sold_out) == (10, 0)


# --- reviews ---

def _deliver(order, rider):
    order_service.accept_order(rider, order.pk)
    return order_service.confirm_delivery(rider, order.pk, order.delivery_otp)


def test_review_flags_line_and_rates_item(place_order, make_product, shop, customer, other_customer, rider):
    tea = make_product(shop, name="Tea", price="10.00")
    sugar = make_product(shop, name="Sugar", price="20.00")
    order = place_order((tea, 1), (sugar, 1))
    _deliver(order, rider)

    reviewed = order_service.review_item(customer, order.pk, tea.pk, 4, "Fresh leaves")

    # 1. Only the reviewed line is flagged, the rest of the order is untouched
    assert {line["name"]: line["is_reviewed"] for line in reviewed.items} == {"Tea": True, "Sugar": False}
    assert reviewed.total_amount == Decimal("30.00")
    tea.refresh_from_db()
    assert (tea.rating, tea.review_count) == (4.0, 1)

    # 2. Reviewing again replaces the earlier review
    order_service.review_item(customer, order.pk, tea.pk, 2)
    tea.refresh_from_db()
    assert (tea.rating, tea.review_count) == (2.0, 1)

    # 3. Other customers' reviews are averaged in
    theirs = place_order((tea, 1), buyer=other_customer)
    _deliver(theirs, rider)
    order_service.review_item(other_customer, theirs.pk, tea.pk, 5)
    tea.refresh_from_db()
    assert (tea.rating, tea.review_count) == (3.5, 2)


def test_review_rules(place_order, make_product, shop, customer, other_customer, rider):
    tea = make_product(shop, name="Tea")
    not_ordered = make_product(shop, name="Coffee")
    pending = place_order((tea, 1))

    with pytest.raises(InvalidState):
        order_service.review_item(customer, pending.pk, tea.pk, 5)

    _deliver(pending, rider)
    with pytest.raises(NotOrderOwner):
        order_service.review_item(other_customer, pending.pk, tea.pk, 5)
    with pytest.raises(ResourceNotFound):
        order_service.review_item(customer, pending.pk, not_ordered.pk, 5)
    with pytest.raises(ValidationError):
        order_service.review_item(customer, pending.pk, tea.pk, 6)

    assert not any(line["is_reviewed"] for line in Order.objects.get(pk=pending.pk).items)


# --- visibility ---

def test_visibility_by_role(place_order, product, customer, other_customer, seller, rider, other_rider,
                            make_user, admin_user):
    mine = place_order((product, 1))
    theirs = place_order((product, 1), buyer=other_customer)
    order_service.accept_order(rider, theirs.pk)

    def visible(user):
        return set(order_service.orders_visible_to(_principal(user)).values_list("pk", flat=True))

    assert visible(customer) == {mine.pk}
    assert visible(seller) == {mine.pk, theirs.pk}
    assert visible(make_user("SHOP_OWNER")) == set()
    assert visible(rider) == {mine.pk, theirs.pk}
    assert visible(other_rider) == {mine.pk}
    assert visible(admin_user) == {mine.pk, theirs.pk}

    assert order_service.can_view(_principal(customer), mine)
    assert not order_service.can_view(_principal(customer), theirs)
    assert not order_service.can_view(_principal(other_rider), Order.objects.get(pk=theirs.pk))
