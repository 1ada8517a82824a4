"""
Customer cart.

Lines reference catalog items by id only; prices, names and stock are read
live from the catalog every time the cart is shown. An id is looked up among
products first, then among events.
"""
import logging
import uuid

from django.conf import settings
from rest_framework.exceptions import ValidationError

from orders.policy import MarketplacePolicy
from orders.pricing import InvalidQuantity as InvalidQuantityValue
from orders.pricing import coerce_quantity, price_line, summarize
from shopdrop_backend.exceptions import InvalidQuantity, OutOfStock, ResourceNotFound, SaleNotActive, TooManyItems
from .models import CartItem, Event, Product

logger = logging.getLogger(__name__)

CATALOG_MODELS = (
    (CartItem.ItemType.PRODUCT, Product),
    (CartItem.ItemType.EVENT, Event),
)


def get_policy():
    policy = MarketplacePolicy(
        commission_rate=settings.PLATFORM_COMMISSION_RATE,
        max_otp_attempts=settings.MAX_OTP_ATTEMPTS,
    )
    policy.validate()
    return policy


def catalog_model(item_type):
    return dict(CATALOG_MODELS)[CartItem.ItemType(item_type)]


def _as_uuid(value):
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


def resolve_item(item_id):
    """
    Returns (item_type, catalog item) or None when no product or event has this id.
    """
    key = _as_uuid(item_id)
    if key is None:
        return None
    for item_type, model in CATALOG_MODELS:
        item = model.objects.select_related("shop").filter(pk=key).first()
        if item is not None:
            return item_type, item
    return None


def parse_quantity(value, policy):
    try:
        return coerce_quantity(value, max_quantity=policy.max_cart_quantity)
    except InvalidQuantityValue as exc:
        raise InvalidQuantity(str(exc))


def check_available(item, quantity):
    """Raises unless `quantity` of `item` can be sold right now."""
    if item.is_available and not item.in_sale_window():
        raise SaleNotActive(f"{item.name} is not on sale right now.", extra={"item_id": str(item.pk)})
    if not item.is_available or item.stock < quantity:
        raise OutOfStock(
            f"Only {item.stock} of {item.name} left in stock." if item.is_available else f"{item.name} is not available.",
            extra={"item_id": str(item.pk), "available_stock": item.stock},
        )


def add_item(user, item_id, quantity, selected_variation="", policy=None):
    """
    Puts an item in the cart. Adding an item that is already there replaces its quantity.

    Returns (cart_item, created).
    """
    policy = policy or get_policy()
    quantity = parse_quantity(quantity, policy)

    resolved = resolve_item(item_id)
    if resolved is None:
        raise ResourceNotFound("Item not found.")
    item_type, item = resolved
    check_available(item, quantity)

    cart_item, created = CartItem.objects.update_or_create(
        user=user,
        item_id=item.pk,
        selected_variation=selected_variation or "",
        defaults={"quantity": quantity, "item_type": item_type},
    )
    logger.debug("Cart %s: %s x%s (created=%s)", user.pk, item.pk, quantity, created)
    return cart_item, created


def _own_line(user, cart_item_id):
    try:
        return CartItem.objects.get(pk=int(cart_item_id), user=user)
    except (CartItem.DoesNotExist, TypeError, ValueError):
        raise ResourceNotFound("Cart item not found.")


def update_item(user, cart_item_id, quantity, policy=None):
    policy = policy or get_policy()
    cart_item = _own_line(user, cart_item_id)
    quantity = parse_quantity(quantity, policy)

    item = catalog_model(cart_item.item_type).objects.filter(pk=cart_item.item_id).first()
    if item is None:
        raise ResourceNotFound("Item not found.")
    check_available(item, quantity)

    cart_item.quantity = quantity
    cart_item.save(update_fields=["quantity", "updated_at"])
    return cart_item


def remove_item(user, cart_item_id):
    _own_line(user, cart_item_id).delete()


def remove_items(user, cart_item_ids, policy=None):
    """
    Deletes several of the user's lines at once. Ids belonging to other users are ignored.

    Returns the number of lines deleted.
    """
    policy = policy or get_policy()
    if not isinstance(cart_item_ids, list) or not cart_item_ids:
        raise ValidationError({"item_ids": ["Provide a non-empty list of cart item ids."]})
    if len(cart_item_ids) > policy.max_bulk_remove:
        raise TooManyItems(f"Cannot remove more than {policy.max_bulk_remove} items at once.")

    ids = []
    for value in cart_item_ids:
        if isinstance(value, bool):
            raise ValidationError({"item_ids": ["Cart item ids must be integers."]})
        try:
            ids.append(int(value))
        except (TypeError, ValueError):
            raise ValidationError({"item_ids": ["Cart item ids must be integers."]})

    deleted, _ = CartItem.objects.filter(user=user, pk__in=ids).delete()
    if not deleted:
        raise ResourceNotFound("No matching cart items found.")
    return deleted


def get_cart(user, policy=None):
    """
    The cart joined with the live catalog plus a price summary.
    Lines whose catalog item was deleted are left out.
    """
    policy = policy or get_policy()
    cart_items = list(CartItem.objects.filter(user=user))

    catalog = {}
    for item_type, model in CATALOG_MODELS:
        ids = [ci.item_id for ci in cart_items if ci.item_type == item_type]
        if ids:
            catalog.update(model.objects.select_related("shop").in_bulk(ids))

    lines = []
    prices = []
    for cart_item in cart_items:
        item = catalog.get(cart_item.item_id)
        if item is None:
            continue
        price = price_line(item.discount_price, item.original_price, cart_item.quantity)
        prices.append(price)
        line = {
            "id": cart_item.pk,
            "item_id": str(item.pk),
            "item_type": cart_item.item_type,
            "name": item.name,
            "image_url": item.image_url,
            "shop": {"id": item.shop_id, "name": item.shop.name},
            "quantity": cart_item.quantity,
            "selected_variation": cart_item.selected_variation,
            "stock": item.stock,
            "is_available": item.is_available and item.in_sale_window(),
        }
        line.update(price.to_dict())
        lines.append(line)

    return {"items": lines, "summary": summarize(prices, policy.currency).to_dict()}
