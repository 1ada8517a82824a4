from paynow import Paynow
from django.conf import settings
import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)


def sign_payment(order_ref, payment_id, secret):
    """HMAC-SHA256 hex digest of "order_ref|payment_id"."""
    message = f"{order_ref}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_signature(order_ref, payment_id, signature, secret):
    """
    Checks a gateway callback signature in constant time.
    """
    if not signature or not secret:
        return False
    expected = sign_payment(order_ref, payment_id, secret)
    return hmac.compare_digest(expected, str(signature))


class PaymentService:
    def __init__(self, paynow=None):
        self.paynow = paynow or Paynow(
            settings.PAYNOW_INTEGRATION_ID,
            settings.PAYNOW_INTEGRATION_KEY,
            settings.PAYNOW_RETURN_URL,
            settings.PAYNOW_RESULT_URL,
        )

    def initiate_payment(self, orders, email):
        """
        Create one Paynow payment covering every order of a checkout.
        """
        orders = list(orders)
        if not orders:
            return {'success': False, 'error': "No orders to pay"}

        reference = ",".join(str(order.pk) for order in orders)
        payment = self.paynow.create_payment(f'Orders {reference}', email)

        # One line per shop order
        for order in orders:
            payment.add(f'{order.shop.name} #{str(order.pk)[:8]}', float(order.total_amount))

        try:
            response = self.paynow.send(payment)
        except Exception as e:
            logger.exception("Paynow request failed for %s", reference)
            return {'success': False, 'error': str(e)}

        if response.success:
            logger.info("Paynow payment started for %s", reference)
            return {
                'success': True,
                'reference': reference,
                'poll_url': response.poll_url,
                'redirect_url': response.redirect_url,
            }
        logger.warning("Paynow rejected payment for %s: %s", reference, getattr(response, 'error', 'unknown'))
        return {'success': False, 'error': getattr(response, 'error', None) or "Paynow error"}

    def check_status(self, poll_url):
        """
        Check the status of a transaction
        """
        status = self.paynow.check_transaction_status(poll_url)
        return status.status
