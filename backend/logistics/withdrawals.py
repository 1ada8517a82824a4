"""
Seller payouts.

A request debits Shop.available_balance straight away with a floored
conditional UPDATE, so concurrent requests can never overdraw a shop. An
admin approves the request once the bank transfer has been made.
"""
from decimal import Decimal, InvalidOperation
import logging
import secrets

from django.db import transaction
from django.db.models import F
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from shopdrop_backend.exceptions import InsufficientBalance, InvalidState, NotShopOwner, ResourceNotFound
from users.models import User
from .models import Shop, Withdrawal
from .notifications import queue_withdrawal_approved

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _amount(value):
    try:
        amount = Decimal(str(value)).quantize(CENT)
    except (InvalidOperation, ValueError):
        raise ValidationError({"amount": ["Amount must be a number."]})
    if amount <= 0:
        raise ValidationError({"amount": ["Amount must be greater than zero."]})
    return amount


def _transaction_id():
    return f"TRX{timezone.now():%Y%m%d%H%M%S}{secrets.token_hex(3).upper()}"


def request_withdrawal(seller, shop_id, amount, bank_name, bank_account_number, bank_ifsc_code=""):
    """
    Opens a payout request for one of the seller's shops.

    Raises:
        ResourceNotFound, NotShopOwner, InsufficientBalance, ValidationError
    """
    amount = _amount(amount)
    shop = Shop.objects.filter(pk=shop_id).first()
    if shop is None:
        raise ResourceNotFound("Shop not found.")
    if shop.owner_id != seller.pk:
        raise NotShopOwner()

    with transaction.atomic():
        debited = Shop.objects.filter(pk=shop.pk, available_balance__gte=amount).update(
            available_balance=F("available_balance") - amount
        )
        if not debited:
            shop.refresh_from_db(fields=["available_balance"])
            raise InsufficientBalance(extra={"available_balance": str(shop.available_balance)})
        withdrawal = Withdrawal.objects.create(
            shop=shop,
            amount=amount,
            bank_name=bank_name,
            bank_account_number=bank_account_number,
            bank_ifsc_code=bank_ifsc_code or "",
        )

    logger.info("Shop %s requested withdrawal %s of %s", shop.pk, withdrawal.pk, amount)
    return withdrawal


def approve_withdrawal(withdrawal_id):
    """Marks a pending request paid. A request is approved once only."""
    updated = Withdrawal.objects.filter(pk=withdrawal_id, status=Withdrawal.Status.PROCESSING).update(
        status=Withdrawal.Status.SUCCEEDED,
        transaction_id=_transaction_id(),
        updated_at=timezone.now(),
    )
    if not updated:
        if not Withdrawal.objects.filter(pk=withdrawal_id).exists():
            raise ResourceNotFound("Withdrawal request not found.")
        raise InvalidState("This withdrawal request has already been processed.")

    withdrawal = Withdrawal.objects.select_related("shop").get(pk=withdrawal_id)
    logger.info("Withdrawal %s approved, transaction %s", withdrawal.pk, withdrawal.transaction_id)
    queue_withdrawal_approved(withdrawal)
    return withdrawal


def withdrawals_visible_to(principal):
    queryset = Withdrawal.objects.select_related("shop")
    if principal.role == User.Roles.ADMIN:
        return queryset.all()
    if principal.role == User.Roles.SHOP_OWNER:
        return queryset.filter(shop__owner=principal.user)
    return queryset.none()
