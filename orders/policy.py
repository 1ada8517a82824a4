"""
Purpose: Central configuration for the order lifecycle and the cart.
What it does:

Stores all tunable thresholds/caps used when pricing carts and settling orders:

COMMISSION_RATE = 0.10
OTP_LENGTH = 6
MAX_OTP_ATTEMPTS = 5

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class MarketplacePolicy:
    """
    Central configuration for checkout, delivery handoff and settlement.
    """

    # --- Settlement ---
    # Platform share of every delivered order. The seller is credited the rest.
    commission_rate: Decimal = Decimal("0.10")
    currency: str = "INR"

    # --- Delivery handoff ---
    otp_length: int = 6
    # Wrong OTP submissions allowed per order before confirmation is locked.
    max_otp_attempts: int = 5

    # --- Cart limits ---
    max_cart_quantity: int = 999
    max_bulk_remove: int = 100

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if not (Decimal("0") <= self.commission_rate < Decimal("1")):
            raise ValueError("commission_rate must be in [0, 1)")

        if self.otp_length < 4:
            raise ValueError("otp_length must be >= 4")

        if self.max_otp_attempts <= 0:
            raise ValueError("max_otp_attempts must be > 0")

        if self.max_cart_quantity <= 0 or self.max_bulk_remove <= 0:
            raise ValueError("cart limits must be > 0")


def default_policy() -> MarketplacePolicy:
    """
    Convenience factory for the default policy.
    """
    p = MarketplacePolicy()
    p.validate()
    return p
