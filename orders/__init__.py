"""
Purpose: Package entry + stable exports.
What it does:

Marks orders as a Python package.

Re-exports the public API so other modules can do:

from orders import OrderStatus, LineItem, split_by_shop

Should not contain business logic.

Orders domain package.

Public API:
- Domain models: LineItem, CustomerSnapshot, DeliveryLocation, OrderStatus,
  PaymentMethod, PaymentStatus
- Helpers: split_by_shop, generate_otp, order_total
- Policy: MarketplacePolicy, default_policy

"""
from .models import (
    CustomerSnapshot,
    DeliveryLocation,
    InvalidLocation,
    LineItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    generate_otp,
    order_total,
    split_by_shop,
)
from .policy import MarketplacePolicy, default_policy

__all__ = ["LineItem",
           "CustomerSnapshot",
             "DeliveryLocation",
               "InvalidLocation",
               "OrderStatus",
               "PaymentMethod",
               "PaymentStatus",
               "generate_otp",
               "order_total",
               "split_by_shop",
               "MarketplacePolicy",
               "default_policy",
               ]
