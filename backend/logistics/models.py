import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

from orders.models import OrderStatus, PaymentMethod, PaymentStatus


def _choices(enum_cls):
    return [(member.value, member.value.replace("_", " ").title()) for member in enum_cls]


class Shop(models.Model):
    """
    Represents a physical store run by a shop owner.
    Owner is the User who manages this shop and fulfils its orders.
    """
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='shops')
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)

    # Landmark based address shown to riders
    address_text = models.TextField(blank=True, help_text="Landmark based address")

    # Geolocation for delivery eligibility, null means the shop never set it
    lat = models.FloatField(blank=True, null=True)
    lng = models.FloatField(blank=True, null=True)

    is_open = models.BooleanField(default=True)
    image_url = models.URLField(blank=True, null=True)

    # Seller earnings after commission, credited on every delivery
    available_balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    # Per shop delivery radius; disabled means the service area radius applies
    delivery_radius_enabled = models.BooleanField(default=False)
    max_delivery_radius_km = models.FloatField(
        default=5,
        validators=[MinValueValidator(1), MaxValueValidator(50)],
    )
    custom_delivery_radius_km = models.FloatField(
        blank=True, null=True,
        validators=[MinValueValidator(1), MaxValueValidator(50)],
    )

    def __str__(self):
        return self.name

    def effective_radius_km(self, default_km):
        if not self.delivery_radius_enabled:
            return default_km
        return self.custom_delivery_radius_km or self.max_delivery_radius_km


class CatalogItem(models.Model):
    """
    Something a customer can put in the cart.
    UUID keys keep products and events in disjoint id spaces.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    shop = models.ForeignKey(Shop, on_delete=models.CASCADE, related_name='%(class)ss')
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    original_price = models.DecimalField(max_digits=10, decimal_places=2)
    discount_price = models.DecimalField(max_digits=10, decimal_places=2, blank=True, null=True)
    stock = models.PositiveIntegerField(default=0)
    sold_out = models.PositiveIntegerField(default=0)
    is_available = models.BooleanField(default=True)
    image_url = models.URLField(blank=True, null=True)
    # Average of customer reviews, recomputed on every review
    rating = models.FloatField(default=0)
    review_count = models.PositiveIntegerField(default=0)

    class Meta:
        abstract = True

    def __str__(self):
        return self.name

    @property
    def price(self):
        return self.discount_price if self.discount_price is not None else self.original_price

    def in_sale_window(self, now=None):
        return True


class Product(CatalogItem):
    pass


class Event(CatalogItem):
    """Flash sale item, only sold between starts_at and ends_at. A missing bound is open."""
    starts_at = models.DateTimeField(blank=True, null=True)
    ends_at = models.DateTimeField(blank=True, null=True)

    def in_sale_window(self, now=None):
        now = now or timezone.now()
        if self.starts_at is not None and now < self.starts_at:
            return False
        return self.ends_at is None or now <= self.ends_at


class CartItem(models.Model):
    class ItemType(models.TextChoices):
        PRODUCT = "PRODUCT", "Product"
        EVENT = "EVENT", "Event"

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='cart_items')
    item_type = models.CharField(max_length=10, choices=ItemType.choices, default=ItemType.PRODUCT)
    item_id = models.UUIDField()
    selected_variation = models.CharField(max_length=255, blank=True, default="")
    quantity = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['user', 'item_id', 'selected_variation'], name='unique_cart_line'),
        ]
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"{self.user_id}:{self.item_type}:{self.item_id} x{self.quantity}"


class Order(models.Model):
    """
    One shop's share of a checkout.
    Tracks lifecycle: Processing -> Accepted -> Out for delivery -> Delivered.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Relationships
    customer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='orders')
    # Customer as they were at checkout, shown to sellers and riders
    customer_snapshot = models.JSONField(default=dict)
    shop = models.ForeignKey(Shop, on_delete=models.CASCADE, related_name='orders')
    # Rider is assigned once, by whoever claims first
    rider = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='deliveries')

    # Structure: [LineItem.to_dict(), ...]
    items = models.JSONField(default=list)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)

    status = models.CharField(max_length=20, choices=_choices(OrderStatus), default=OrderStatus.PROCESSING.value)
    payment_method = models.CharField(max_length=20, choices=_choices(PaymentMethod), default=PaymentMethod.COD.value)
    payment_status = models.CharField(max_length=20, choices=_choices(PaymentStatus), default=PaymentStatus.PENDING.value)
    payment_reference = models.CharField(max_length=255, blank=True, default="")
    payment_details = models.JSONField(default=dict, blank=True)

    shipping_address = models.JSONField(default=dict, blank=True)
    # Coordinates where the rider needs to go
    delivery_lat = models.FloatField(blank=True, null=True)
    delivery_lng = models.FloatField(blank=True, null=True)
    delivery_address = models.TextField(blank=True, default="")
    delivery_instruction = models.TextField(blank=True, default="")

    # Code the customer gives the rider at the door
    delivery_otp = models.CharField(max_length=6, help_text="OTP for delivery confirmation")
    otp_attempts = models.PositiveIntegerField(default=0)

    # Riders who passed on this order never see it again
    ignored_by = models.ManyToManyField(settings.AUTH_USER_MODEL, blank=True, related_name='ignored_orders')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    paid_at = models.DateTimeField(blank=True, null=True)
    delivered_at = models.DateTimeField(blank=True, null=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'rider'], name='order_status_rider_idx'),
        ]

    def __str__(self):
        return f"Order #{self.id} - {self.status}"


class Notification(models.Model):
    """In-app copy of every push sent, so the app can list them."""
    recipient = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='notifications')
    order = models.ForeignKey(Order, on_delete=models.CASCADE, null=True, blank=True, related_name='notifications')
    event = models.CharField(max_length=50)
    title = models.CharField(max_length=255)
    body = models.TextField(blank=True)
    data = models.JSONField(default=dict, blank=True)
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.event} -> {self.recipient_id}"


class Review(models.Model):
    """
    A customer's rating of one catalog item they received.
    One review per customer and item; reviewing again replaces it.
    """
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='reviews')
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='reviews')
    item_type = models.CharField(max_length=10, choices=CartItem.ItemType.choices)
    item_id = models.UUIDField()
    rating = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(5)])
    comment = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['user', 'item_id'], name='unique_review_per_item'),
        ]
        ordering = ['-updated_at']

    def __str__(self):
        return f"{self.user_id} rated {self.item_id}: {self.rating}"


class Withdrawal(models.Model):
    """
    Seller payout request. The amount leaves Shop.available_balance when the
    request is made; an admin approves it once the bank transfer is done.
    """
    class Status(models.TextChoices):
        PROCESSING = "PROCESSING", "Processing"
        SUCCEEDED = "SUCCEEDED", "Succeeded"

    shop = models.ForeignKey(Shop, on_delete=models.CASCADE, related_name='withdrawals')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    bank_name = models.CharField(max_length=255)
    bank_account_number = models.CharField(max_length=64)
    bank_ifsc_code = models.CharField(max_length=20, blank=True, default="")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PROCESSING)
    transaction_id = models.CharField(max_length=64, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Withdrawal {self.pk} of {self.amount} ({self.status})"
