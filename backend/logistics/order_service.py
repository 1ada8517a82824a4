"""
Order lifecycle.

Checkout splits a cart into one order per shop. After that an order moves

    PROCESSING -> ACCEPTED -> OUT_FOR_DELIVERY -> DELIVERED

with CANCELLED reachable from PROCESSING and the refund pair hanging off
DELIVERED. Every status write is a conditional UPDATE on the status that was
read, so two requests racing on one order cannot both win.
"""
from dataclasses import replace
from decimal import Decimal
import hmac
import logging

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Avg, Count, F, Q
from django.db.models.functions import Greatest
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from dispatch import (
    ASSIGNABLE_STATUSES,
    OrderStateException,
    commits_stock,
    ensure_transition,
    is_assignable,
    restores_stock,
)
from orders.models import (
    CustomerSnapshot,
    DeliveryLocation,
    InvalidLocation as InvalidLocationValue,
    LineItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    generate_otp,
    order_total,
    split_by_shop,
)
from routing.geofence import ServiceArea, evaluate
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
from users.models import User
from .cart import catalog_model, check_available, get_policy, parse_quantity, resolve_item
from .models import CartItem, Order, Review, Shop
from .notifications import (
    ORDER_ASSIGNED,
    ORDER_CREATED,
    ORDER_DELIVERED,
    ORDER_STATUS_CHANGED,
    queue_order_event,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

SELLER_TARGETS = (OrderStatus.ACCEPTED, OrderStatus.CANCELLED)


def get_service_area():
    area = ServiceArea(
        center=(settings.SERVICE_AREA_CENTER_LAT, settings.SERVICE_AREA_CENTER_LNG),
        max_radius_km=settings.SERVICE_AREA_RADIUS_KM,
        box_offset_deg=settings.SERVICE_AREA_BOX_OFFSET_DEG,
        name=settings.SERVICE_AREA_NAME,
    )
    area.validate()
    return area


def check_shop_delivery(shop, lat, lng, service_area=None):
    """Geofence result for delivering from `shop` to (lat, lng)."""
    service_area = service_area or get_service_area()
    shop_location = (shop.lat, shop.lng) if shop.lat is not None and shop.lng is not None else None
    return evaluate(
        lat,
        lng,
        shop_location,
        radius_km=shop.effective_radius_km(service_area.max_radius_km),
        service_area=service_area,
    )


def get_order(order_id):
    try:
        return Order.objects.select_related("shop", "customer", "rider").get(pk=order_id)
    # a malformed UUID is reported by django as a ValidationError
    except (Order.DoesNotExist, ValueError, DjangoValidationError):
        raise ResourceNotFound("Order not found.")


# --- stock ---

def _lines(order):
    return [LineItem.from_dict(item) for item in order.items]


def _commit_stock(order):
    """
    Takes every line off the shelf or none of them. Must run inside transaction.atomic.
    """
    for line in _lines(order):
        model = catalog_model(line.item_type)
        updated = model.objects.filter(pk=line.product_id, stock__gte=line.quantity).update(
            stock=F("stock") - line.quantity,
            sold_out=F("sold_out") + line.quantity,
        )
        if not updated:
            logger.info("Order %s: not enough stock for %s", order.pk, line.product_id)
            raise OutOfStock(
                f"Not enough stock for {line.name}.",
                extra={"item_id": line.product_id},
            )


def _restore_stock(order):
    for line in _lines(order):
        model = catalog_model(line.item_type)
        model.objects.filter(pk=line.product_id).update(
            stock=F("stock") + line.quantity,
            sold_out=Greatest(F("sold_out") - line.quantity, 0),
        )


# --- transitions ---

def _transition(order, target, **fields):
    """
    Compare-and-set of order.status to `target`. Updates `order` in place and
    returns the previous status.
    """
    try:
        target = ensure_transition(order.status, target, order.pk)
    except OrderStateException as exc:
        raise InvalidState(str(exc))

    now = timezone.now()
    updated = Order.objects.filter(pk=order.pk, status=order.status).update(
        status=target.value, updated_at=now, **fields
    )
    if not updated:
        logger.info("Order %s changed while moving to %s", order.pk, target.value)
        raise InvalidState("Order was updated by someone else. Please refresh.")

    previous = order.status
    order.status = target.value
    order.updated_at = now
    for name, value in fields.items():
        setattr(order, name, value)
    logger.info("Order %s: %s -> %s", order.pk, previous, target.value)
    return previous


def _ensure_customer(customer, order):
    if order.customer_id != customer.pk:
        raise NotOrderOwner()


def _ensure_seller(seller, order):
    if order.shop.owner_id != seller.pk:
        raise NotOrderOwner()


# --- checkout ---

def _payment_method(payment_info):
    raw = (payment_info or {}).get("type") or PaymentMethod.COD.value
    try:
        return PaymentMethod(str(raw).upper())
    except ValueError:
        raise ValidationError({"payment_info": [f"Unsupported payment type {raw!r}."]})


def _resolve_lines(lines, policy):
    if not isinstance(lines, list) or not lines:
        raise ValidationError({"items": ["Cart is empty."]})

    resolved = []
    for raw in lines:
        if not isinstance(raw, dict):
            raise ValidationError({"items": ["Each item must be an object."]})
        item_id = raw.get("product_id") or raw.get("item_id") or raw.get("id")
        quantity = parse_quantity(raw.get("quantity"), policy)

        found = resolve_item(item_id)
        if found is None:
            raise ResourceNotFound(f"Item {item_id} not found.")
        item_type, item = found
        check_available(item, quantity)

        resolved.append(LineItem(
            product_id=str(item.pk),
            item_type=item_type.value,
            shop_id=item.shop_id,
            quantity=quantity,
            unit_price=Decimal(str(item.price)),
            name=item.name,
            image_url=item.image_url,
        ))
    return resolved


def create_orders(customer, lines, shipping_address=None, payment_info=None,
                  user_location=None, total_price=None, delivery_instruction="", policy=None):
    """
    Checkout. Creates one PROCESSING order per shop in the cart, all or nothing.

    Args:
        customer: the buying User
        lines: [{"product_id": ..., "quantity": ...}], prices come from the catalog
        shipping_address: free form address object stored on each order
        payment_info: {"type": "COD" | "PAYNOW" | "CARD", "id": ..., "status": ...}
        user_location: {"latitude", "longitude", "delivery_address"} or None
        total_price: optional client side total, must match the catalog total

    Raises:
        InvalidLocation, OutOfStock, DeliveryUnavailable, PriceMismatch, ValidationError
    """
    policy = policy or get_policy()

    try:
        location = DeliveryLocation.parse(user_location)
    except InvalidLocationValue as exc:
        raise InvalidLocation(str(exc))

    line_items = _resolve_lines(lines, policy)
    groups = split_by_shop(line_items)
    shops = Shop.objects.select_related("owner").in_bulk(list(groups))

    if location is not None:
        service_area = get_service_area()
        unavailable = []
        for shop_id in groups:
            shop = shops[shop_id]
            result = check_shop_delivery(shop, location.latitude, location.longitude, service_area)
            if not result.eligible:
                unavailable.append({"shop_id": shop.pk, "shop_name": shop.name, **result.to_dict()})
        if unavailable:
            logger.info("Checkout for customer %s blocked by geofence: %s", customer.pk, unavailable)
            raise DeliveryUnavailable(extra={"unavailable_shops": unavailable})

    computed_total = order_total(line_items).quantize(CENT)
    if total_price is not None:
        try:
            claimed = Decimal(str(total_price)).quantize(CENT)
        except ArithmeticError:
            raise ValidationError({"total_price": ["Must be a number."]})
        if claimed != computed_total:
            raise PriceMismatch(extra={"expected_total": str(computed_total)})

    payment_method = _payment_method(payment_info)
    snapshot = CustomerSnapshot(
        id=customer.pk,
        name=customer.display_name,
        email=customer.email,
        phone=str(customer.phone_number) if customer.phone_number else None,
    )

    created = []
    with transaction.atomic():
        for shop_id, shop_lines in groups.items():
            order = Order.objects.create(
                customer=customer,
                customer_snapshot=snapshot.to_dict(),
                shop=shops[shop_id],
                items=[line.to_dict() for line in shop_lines],
                total_amount=order_total(shop_lines).quantize(CENT),
                status=OrderStatus.PROCESSING.value,
                payment_method=payment_method.value,
                payment_status=PaymentStatus.PENDING.value,
                payment_details=dict(payment_info or {}),
                payment_reference=str((payment_info or {}).get("id") or ""),
                shipping_address=shipping_address or {},
                delivery_lat=location.latitude if location else None,
                delivery_lng=location.longitude if location else None,
                delivery_address=location.delivery_address if location else "",
                delivery_instruction=delivery_instruction or "",
                delivery_otp=generate_otp(policy.otp_length),
            )
            created.append(order)
            queue_order_event(ORDER_CREATED, order)

        CartItem.objects.filter(user=customer, item_id__in=[line.product_id for line in line_items]).delete()

    logger.info("Customer %s placed %d order(s) totalling %s", customer.pk, len(created), computed_total)
    return created


# --- rider ---

def claim_order(order_id, rider):
    """
    Assigns the rider if nobody holds the order yet. Returns True when this call won.

    One conditional UPDATE per assignable status; the database serializes
    concurrent claims so at most one of them matches a row.
    """
    for status in ASSIGNABLE_STATUSES:
        with transaction.atomic():
            won = Order.objects.filter(pk=order_id, status=status.value, rider__isnull=True).update(
                rider=rider,
                status=OrderStatus.OUT_FOR_DELIVERY.value,
                updated_at=timezone.now(),
            )
            if won:
                if commits_stock(status, OrderStatus.OUT_FOR_DELIVERY):
                    _commit_stock(Order.objects.get(pk=order_id))
                logger.info("Order %s claimed by rider %s from %s", order_id, rider.pk, status.value)
                return True
    return False


def accept_order(rider, order_id):
    order = get_order(order_id)
    if claim_order(order.pk, rider):
        order = get_order(order.pk)
        queue_order_event(ORDER_ASSIGNED, order)
        return order

    order.refresh_from_db()
    if order.rider_id == rider.pk:
        return order
    if order.rider_id is not None:
        logger.info("Rider %s lost order %s to rider %s", rider.pk, order.pk, order.rider_id)
        raise AlreadyAssigned()
    raise InvalidState(f"Order is {OrderStatus(order.status).label.lower()} and cannot be accepted.")


def ignore_order(rider, order_id):
    """Hides an open order from this rider. The order itself is untouched."""
    order = get_order(order_id)
    if order.rider_id is not None:
        raise AlreadyAssigned()
    if not is_assignable(order.status):
        raise InvalidState("Only open orders can be ignored.")
    if order.ignored_by.filter(pk=rider.pk).exists():
        raise AlreadyIgnored()
    order.ignored_by.add(rider)
    return order


def confirm_delivery(rider, order_id, otp, policy=None):
    """
    Handoff at the door: the rider submits the customer's OTP.

    Each submission burns one attempt, reserved with a conditional UPDATE so
    parallel requests cannot exceed the budget. Once the attempts are spent
    the order can no longer be confirmed with any code.
    """
    policy = policy or get_policy()
    order = get_order(order_id)

    if order.rider_id != rider.pk:
        raise NotAssignedToYou()
    if order.status != OrderStatus.OUT_FOR_DELIVERY.value:
        raise InvalidState("Order is not out for delivery.")
    reserved = Order.objects.filter(pk=order.pk, otp_attempts__lt=policy.max_otp_attempts).update(
        otp_attempts=F("otp_attempts") + 1
    )
    if not reserved:
        raise OtpAttemptsExceeded()

    if not hmac.compare_digest(str(otp if otp is not None else "").encode(), order.delivery_otp.encode()):
        logger.warning("Wrong OTP for order %s from rider %s", order.pk, rider.pk)
        raise InvalidOtp()

    now = timezone.now()
    fields = {"delivered_at": now}
    if order.payment_method == PaymentMethod.COD.value:
        fields.update(payment_status=PaymentStatus.SUCCEEDED.value, paid_at=now)

    earnings = (order.total_amount * (Decimal("1") - policy.commission_rate)).quantize(CENT)
    with transaction.atomic():
        _transition(order, OrderStatus.DELIVERED, **fields)
        Shop.objects.filter(pk=order.shop_id).update(available_balance=F("available_balance") + earnings)

    logger.info("Order %s delivered, shop %s credited %s", order.pk, order.shop_id, earnings)
    queue_order_event(ORDER_DELIVERED, order)
    return order


# --- seller ---

def update_status(seller, order_id, status):
    try:
        target = OrderStatus(status)
    except ValueError:
        raise ValidationError({"status": [f"Unknown status {status!r}."]})
    if target not in SELLER_TARGETS:
        raise InvalidState("Sellers can only accept or cancel orders.")

    order = get_order(order_id)
    _ensure_seller(seller, order)

    with transaction.atomic():
        previous = _transition(order, target)
        if commits_stock(previous, target):
            _commit_stock(order)

    queue_order_event(ORDER_STATUS_CHANGED, order)
    return order


def approve_refund(seller, order_id):
    order = get_order(order_id)
    _ensure_seller(seller, order)

    with transaction.atomic():
        _transition(order, OrderStatus.REFUND_SUCCEEDED, payment_status=PaymentStatus.REFUNDED.value)
        if restores_stock(order.status):
            _restore_stock(order)

    queue_order_event(ORDER_STATUS_CHANGED, order)
    return order


# --- customer ---

def cancel_order(customer, order_id):
    order = get_order(order_id)
    _ensure_customer(customer, order)
    _transition(order, OrderStatus.CANCELLED)
    queue_order_event(ORDER_STATUS_CHANGED, order)
    return order


def request_refund(customer, order_id):
    order = get_order(order_id)
    _ensure_customer(customer, order)
    _transition(order, OrderStatus.REFUND_REQUESTED)
    return order


def review_item(customer, order_id, item_id, rating, comment=""):
    """
    Rates one line of a delivered order.

    The line is flagged is_reviewed and the catalog item's average rating is
    recomputed. Reviewing the same item again replaces the earlier review.
    Lines are otherwise never edited after checkout.
    """
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError({"rating": ["Rating must be an integer from 1 to 5."]})

    order = get_order(order_id)
    _ensure_customer(customer, order)

    with transaction.atomic():
        order = Order.objects.select_for_update().get(pk=order.pk)
        if order.status != OrderStatus.DELIVERED.value:
            raise InvalidState("Only delivered orders can be reviewed.")

        lines = _lines(order)
        line = next((each for each in lines if each.product_id == str(item_id)), None)
        if line is None:
            raise ResourceNotFound("Item is not part of this order.")

        Review.objects.update_or_create(
            user=customer,
            item_id=line.product_id,
            defaults={"order": order, "item_type": line.item_type, "rating": rating, "comment": comment or ""},
        )
        stats = Review.objects.filter(item_id=line.product_id).aggregate(average=Avg("rating"), count=Count("id"))
        catalog_model(line.item_type).objects.filter(pk=line.product_id).update(
            rating=round(stats["average"], 2),
            review_count=stats["count"],
        )

        order.items = [
            replace(each, is_reviewed=True).to_dict() if each.product_id == line.product_id else each.to_dict()
            for each in lines
        ]
        order.save(update_fields=["items", "updated_at"])

    logger.info("Customer %s rated %s %d/5 on order %s", customer.pk, line.product_id, rating, order.pk)
    return get_order(order.pk)


# --- queries ---

def _open_orders():
    return Order.objects.filter(rider__isnull=True, status__in=[s.value for s in ASSIGNABLE_STATUSES])


def available_orders_for_rider(rider):
    return _open_orders().exclude(ignored_by=rider).select_related("shop")


def orders_visible_to(principal):
    user = principal.user
    queryset = Order.objects.select_related("shop", "rider")
    if principal.role == User.Roles.CUSTOMER:
        return queryset.filter(customer=user)
    if principal.role == User.Roles.SHOP_OWNER:
        return queryset.filter(shop__owner=user)
    if principal.role == User.Roles.RIDER:
        open_ids = available_orders_for_rider(user).values("pk")
        return queryset.filter(Q(rider=user) | Q(pk__in=open_ids))
    if principal.role == User.Roles.ADMIN:
        return queryset.all()
    return queryset.none()


def can_view(principal, order):
    user = principal.user
    if principal.role == User.Roles.CUSTOMER:
        return order.customer_id == user.pk
    if principal.role == User.Roles.SHOP_OWNER:
        return order.shop.owner_id == user.pk
    if principal.role == User.Roles.RIDER:
        if order.rider_id is not None:
            return order.rider_id == user.pk
        return is_assignable(order.status) and not order.ignored_by.filter(pk=user.pk).exists()
    return principal.role == User.Roles.ADMIN
