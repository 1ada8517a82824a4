"""
Purpose: Domain models for the Orders capability.
What it does:
- Defines core data structures:
- LineItem (one cart line frozen into an order)
- CustomerSnapshot (denormalized customer captured at checkout)
- DeliveryLocation (customer point + free text address)

Defines enums/constants:
- OrderStatus = PROCESSING | ACCEPTED | OUT_FOR_DELIVERY | DELIVERED
                | CANCELLED | REFUND_REQUESTED | REFUND_SUCCEEDED
- PaymentMethod, PaymentStatus

Helpers:
- split_by_shop: partition a multi-shop cart, one group per shop
- generate_otp: delivery handoff code
- order_total

Rule: No Django, no database calls. Models only.
"""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import asdict, dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional
import secrets

from routing.geofence import InvalidCoordinates, validate_coordinates


class OrderStatus(str, Enum):
    PROCESSING = "PROCESSING"
    ACCEPTED = "ACCEPTED"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUND_REQUESTED = "REFUND_REQUESTED"
    REFUND_SUCCEEDED = "REFUND_SUCCEEDED"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").capitalize()


class PaymentMethod(str, Enum):
    COD = "COD"
    PAYNOW = "PAYNOW"
    CARD = "CARD"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    REFUNDED = "REFUNDED"


class InvalidLocation(ValueError):
    """Raised when a checkout location payload is malformed."""
    pass


@dataclass(frozen=True)
class LineItem:
    """
    A cart line copied into an order at checkout.
    Prices are the catalog prices at that moment, later catalog edits do not touch it.
    """
    product_id: str
    item_type: str
    shop_id: int
    quantity: int
    unit_price: Decimal
    name: str
    image_url: Optional[str] = None
    is_reviewed: bool = False

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict:
        data = asdict(self)
        data["unit_price"] = str(self.unit_price) # JSONField friendly
        return data

    @classmethod
    def from_dict(cls, data: dict) -> LineItem:
        return cls(
            product_id=str(data["product_id"]),
            item_type=data["item_type"],
            shop_id=int(data["shop_id"]),
            quantity=int(data["quantity"]),
            unit_price=Decimal(str(data["unit_price"])),
            name=data.get("name", ""),
            image_url=data.get("image_url"),
            is_reviewed=bool(data.get("is_reviewed", False)),
        )


@dataclass(frozen=True)
class CustomerSnapshot:
    """
    Customer identity as it was at checkout.
    Stored on the order, never joined live.
    """
    id: int
    name: str
    email: str
    phone: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class DeliveryLocation:
    latitude: float
    longitude: float
    delivery_address: str = ""

    @classmethod
    def parse(cls, payload: Optional[dict]) -> Optional[DeliveryLocation]:
        """
        Builds a location from the checkout payload.
        None means the client did not send one; anything else must be valid.
        """
        if payload is None:
            return None
        if not isinstance(payload, dict):
            raise InvalidLocation("userLocation must be an object")
        try:
            lat, lon = validate_coordinates(payload.get("latitude"), payload.get("longitude"))
        except InvalidCoordinates as exc:
            raise InvalidLocation(str(exc)) from exc
        return cls(
            latitude=lat,
            longitude=lon,
            delivery_address=str(payload.get("delivery_address") or payload.get("deliveryAddress") or ""),
        )


def split_by_shop(lines: Iterable[LineItem]) -> Dict[int, List[LineItem]]:
    """
    Partition cart lines by shop, keeping first-seen shop order.
    One order is created per key.
    """
    groups: Dict[int, List[LineItem]] = OrderedDict()
    for line in lines:
        groups.setdefault(line.shop_id, []).append(line)
    return groups


def order_total(lines: Iterable[LineItem]) -> Decimal:
    return sum((line.subtotal for line in lines), Decimal("0"))


def generate_otp(length: int = 6) -> str:
    """
    Numeric handoff code drawn from the OS CSPRNG.
    Leading zeros are kept, so the result is always `length` characters.
    """
    if length <= 0:
        raise ValueError("OTP length must be > 0")
    return "".join(str(secrets.randbelow(10)) for _ in range(length))
