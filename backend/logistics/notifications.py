"""
Order event fan-out.

Every event writes an in-app Notification row and, when the recipient
registered an Expo token, pushes it to their device. Events are queued with
transaction.on_commit so a rolled back order never notifies anyone, and a
failing push never undoes an order change.
"""
from functools import lru_cache
import logging

from django.conf import settings
from django.db import transaction

from notifications import ExpoPushClient, ExpoPushError, is_expo_push_token
from orders.models import OrderStatus
from .models import Notification, Order, Withdrawal

logger = logging.getLogger(__name__)

ORDER_CREATED = "order_created"
ORDER_STATUS_CHANGED = "order_status_changed"
ORDER_ASSIGNED = "order_assigned"
ORDER_DELIVERED = "order_delivered"
WITHDRAWAL_APPROVED = "withdrawal_approved"


@lru_cache(maxsize=1)
def get_push_client():
    return ExpoPushClient(base_url=settings.EXPO_PUSH_URL, access_token=settings.EXPO_ACCESS_TOKEN)


def _short_id(order):
    return str(order.pk).split("-")[0].upper()


class NotificationDispatcher:
    def __init__(self, push_client=None, push_enabled=None):
        self._push_client = push_client
        self.push_enabled = settings.PUSH_NOTIFICATIONS_ENABLED if push_enabled is None else push_enabled

    @property
    def push_client(self):
        if self._push_client is None:
            self._push_client = get_push_client()
        return self._push_client

    def notify(self, recipient, event, title, body, order=None, data=None):
        payload = {"event": event}
        if order is not None:
            payload["order_id"] = str(order.pk)
            payload["status"] = order.status
        payload.update(data or {})

        notification = Notification.objects.create(
            recipient=recipient,
            order=order,
            event=event,
            title=title,
            body=body,
            data=payload,
        )

        if not self.push_enabled or not is_expo_push_token(recipient.push_token):
            return notification

        try:
            self.push_client.send_one(recipient.push_token, title, body, payload)
        except ExpoPushError as exc:
            logger.warning("Push %s to user %s failed: %s", event, recipient.pk, exc)
        return notification

    # --- order events ---
    def order_created(self, order):
        return self.notify(
            order.shop.owner,
            ORDER_CREATED,
            "New order received",
            f"Order #{_short_id(order)} for {order.total_amount} is waiting for you.",
            order=order,
        )

    def order_status_changed(self, order):
        label = OrderStatus(order.status).label
        return self.notify(
            order.customer,
            ORDER_STATUS_CHANGED,
            "Order update",
            f"Your order #{_short_id(order)} is now {label.lower()}.",
            order=order,
        )

    def order_assigned(self, order):
        sent = [self.order_status_changed(order)]
        if order.rider is not None:
            sent.append(self.notify(
                order.rider,
                ORDER_ASSIGNED,
                "Delivery assigned",
                f"Pick up order #{_short_id(order)} from {order.shop.name}.",
                order=order,
            ))
        return sent

    def order_delivered(self, order):
        return [
            self.notify(
                order.customer,
                ORDER_DELIVERED,
                "Order delivered",
                f"Your order #{_short_id(order)} has been delivered. Enjoy!",
                order=order,
            ),
            self.notify(
                order.shop.owner,
                ORDER_DELIVERED,
                "Order delivered",
                f"Order #{_short_id(order)} was handed to the customer.",
                order=order,
            ),
        ]


EVENT_HANDLERS = {
    ORDER_CREATED: NotificationDispatcher.order_created,
    ORDER_STATUS_CHANGED: NotificationDispatcher.order_status_changed,
    ORDER_ASSIGNED: NotificationDispatcher.order_assigned,
    ORDER_DELIVERED: NotificationDispatcher.order_delivered,
}


def dispatch(event, order_id):
    """Runs one event against the committed order."""
    order = Order.objects.select_related("customer", "shop__owner", "rider").filter(pk=order_id).first()
    if order is None:
        logger.warning("Skipping %s: order %s no longer exists", event, order_id)
        return
    EVENT_HANDLERS[event](NotificationDispatcher(), order)


def queue_order_event(event, order):
    if event not in EVENT_HANDLERS:
        raise ValueError(f"Unknown order event: {event}")
    order_id = order.pk
    transaction.on_commit(lambda: dispatch(event, order_id), robust=True)


def dispatch_withdrawal_approved(withdrawal_id):
    withdrawal = Withdrawal.objects.select_related("shop__owner").filter(pk=withdrawal_id).first()
    if withdrawal is None:
        logger.warning("Skipping %s: withdrawal %s no longer exists", WITHDRAWAL_APPROVED, withdrawal_id)
        return
    NotificationDispatcher().notify(
        withdrawal.shop.owner,
        WITHDRAWAL_APPROVED,
        "Withdrawal approved",
        f"Your withdrawal of {withdrawal.amount} has been paid. Transaction ID: {withdrawal.transaction_id}",
        data={"withdrawal_id": withdrawal.pk, "transaction_id": withdrawal.transaction_id},
    )


def queue_withdrawal_approved(withdrawal):
    withdrawal_id = withdrawal.pk
    transaction.on_commit(lambda: dispatch_withdrawal_approved(withdrawal_id), robust=True)
