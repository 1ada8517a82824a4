"""
API error taxonomy and the DRF exception handler.

Every error response has the shape
    {"success": false, "error": <code>, "message": <text>, ...extra}
"""
import logging

from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response

from dispatch import OrderStateException
from orders.models import InvalidLocation as InvalidLocationValue
from orders.pricing import InvalidQuantity as InvalidQuantityValue
from routing.geofence import InvalidCoordinates

logger = logging.getLogger(__name__)


class MarketplaceError(exceptions.APIException):
    """Base for domain errors. `extra` is merged into the response body."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Request could not be processed."
    default_code = "error"

    def __init__(self, detail=None, code=None, extra=None):
        super().__init__(detail, code)
        self.extra = extra or {}


# --- 400 validation ---
class InvalidLocation(MarketplaceError):
    default_detail = "Invalid location coordinates."
    default_code = "invalid_location"


class InvalidQuantity(MarketplaceError):
    default_detail = "Quantity must be a positive integer."
    default_code = "invalid_quantity"


class DeliveryUnavailable(MarketplaceError):
    default_detail = "Some items are not available for delivery to your location."
    default_code = "delivery_unavailable"


class OutOfStock(MarketplaceError):
    default_detail = "Not enough items in stock."
    default_code = "out_of_stock"


class TooManyItems(MarketplaceError):
    default_detail = "Too many items in one request."
    default_code = "too_many_items"


class InvalidOtp(MarketplaceError):
    default_detail = "Invalid OTP."
    default_code = "invalid_otp"


class PriceMismatch(MarketplaceError):
    default_detail = "Order total does not match current prices."
    default_code = "price_mismatch"


class PaymentVerificationFailed(MarketplaceError):
    default_detail = "Payment could not be verified."
    default_code = "payment_verification_failed"


class SaleNotActive(MarketplaceError):
    default_detail = "This item is not on sale right now."
    default_code = "sale_not_active"


class InsufficientBalance(MarketplaceError):
    default_detail = "Withdrawal amount exceeds the available balance."
    default_code = "insufficient_balance"


# --- 401 authentication ---
class Unauthenticated(exceptions.NotAuthenticated):
    default_detail = "Please login to continue."
    default_code = "unauthenticated"


class InvalidToken(exceptions.AuthenticationFailed):
    default_detail = "Invalid token."
    default_code = "invalid_token"


class PrincipalNotFound(exceptions.AuthenticationFailed):
    default_detail = "Account not found."
    default_code = "principal_not_found"


# --- 403 authorization ---
class NotApproved(exceptions.PermissionDenied):
    default_detail = "Your account is pending approval."
    default_code = "not_approved"


class RoleNotAllowed(exceptions.PermissionDenied):
    default_detail = "Your role cannot access this resource."
    default_code = "role_not_allowed"


class NotOrderOwner(exceptions.PermissionDenied):
    default_detail = "You are not authorized to act on this order."
    default_code = "not_order_owner"


class NotAssignedToYou(exceptions.PermissionDenied):
    default_detail = "This order is not assigned to you."
    default_code = "not_assigned_to_you"


class NotShopOwner(exceptions.PermissionDenied):
    default_detail = "You do not own this shop."
    default_code = "not_shop_owner"


# --- 404 ---
class ResourceNotFound(exceptions.NotFound):
    default_detail = "Not found."
    default_code = "not_found"


# --- 409 state machine ---
class ConflictError(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Request conflicts with the current state."
    default_code = "conflict"


class AlreadyAssigned(ConflictError):
    default_detail = "Order is already assigned to another rider."
    default_code = "already_assigned"


class AlreadyIgnored(ConflictError):
    default_detail = "You have already ignored this order."
    default_code = "already_ignored"


class InvalidState(ConflictError):
    default_detail = "Order cannot be changed in its current state."
    default_code = "invalid_state"


class OtpAttemptsExceeded(ConflictError):
    default_detail = "Too many wrong OTP attempts for this order."
    default_code = "otp_attempts_exceeded"


# --- 502 upstream ---
class UpstreamError(MarketplaceError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Upstream service failed."
    default_code = "upstream_error"


def _translate(exc):
    """Maps pure domain exceptions onto the API taxonomy."""
    if isinstance(exc, InvalidCoordinates):
        return InvalidLocation(str(exc))
    if isinstance(exc, InvalidLocationValue):
        return InvalidLocation(str(exc))
    if isinstance(exc, InvalidQuantityValue):
        return InvalidQuantity(str(exc))
    if isinstance(exc, OrderStateException):
        return InvalidState(str(exc))
    if isinstance(exc, Http404):
        return ResourceNotFound()
    return exc


def _first_code(codes):
    if isinstance(codes, str):
        return codes
    if isinstance(codes, list) and codes:
        return _first_code(codes[0])
    if isinstance(codes, dict) and codes:
        return _first_code(next(iter(codes.values())))
    return "error"


def api_exception_handler(exc, context):
    # rest_framework.views reads the auth classes at import, which import this module
    from rest_framework.views import exception_handler

    exc = _translate(exc)
    response = exception_handler(exc, context)

    if response is None:
        view = context.get("view")
        logger.exception("Unhandled error in %s", view.__class__.__name__ if view else "unknown view")
        return Response(
            {"success": False, "error": "server_error", "message": "Internal server error."},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    body = {"success": False}
    if isinstance(exc, exceptions.ValidationError):
        body["error"] = _first_code(exc.get_codes()) if not isinstance(exc.detail, dict) else "invalid"
        body["message"] = "Invalid input."
        body["errors"] = response.data
    else:
        body["error"] = _first_code(exc.get_codes())
        body["message"] = str(exc.detail)
    body.update(getattr(exc, "extra", {}) or {})

    response.data = body
    return response
