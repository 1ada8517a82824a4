from decimal import Decimal
import uuid

from django.conf import settings
import django.core.validators
from django.db import migrations, models
import django.db.models.deletion


ORDER_STATUS_CHOICES = [
    ("PROCESSING", "Processing"),
    ("ACCEPTED", "Accepted"),
    ("OUT_FOR_DELIVERY", "Out For Delivery"),
    ("DELIVERED", "Delivered"),
    ("CANCELLED", "Cancelled"),
    ("REFUND_REQUESTED", "Refund Requested"),
    ("REFUND_SUCCEEDED", "Refund Succeeded"),
]
PAYMENT_METHOD_CHOICES = [("COD", "Cod"), ("PAYNOW", "Paynow"), ("CARD", "Card")]
PAYMENT_STATUS_CHOICES = [("PENDING", "Pending"), ("SUCCEEDED", "Succeeded"), ("REFUNDED", "Refunded")]


def _catalog_fields():
    return [
        ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
        ("name", models.CharField(max_length=255)),
        ("description", models.TextField(blank=True)),
        ("original_price", models.DecimalField(decimal_places=2, max_digits=10)),
        ("discount_price", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
        ("stock", models.PositiveIntegerField(default=0)),
        ("sold_out", models.PositiveIntegerField(default=0)),
        ("is_available", models.BooleanField(default=True)),
        ("image_url", models.URLField(blank=True, null=True)),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Shop",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True)),
                ("address_text", models.TextField(blank=True, help_text="Landmark based address")),
                ("lat", models.FloatField(blank=True, null=True)),
                ("lng", models.FloatField(blank=True, null=True)),
                ("is_open", models.BooleanField(default=True)),
                ("image_url", models.URLField(blank=True, null=True)),
                ("available_balance", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("delivery_radius_enabled", models.BooleanField(default=False)),
                ("max_delivery_radius_km", models.FloatField(default=5, validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(50)])),
                ("custom_delivery_radius_km", models.FloatField(blank=True, null=True, validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(50)])),
                ("owner", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="shops", to=settings.AUTH_USER_MODEL)),
            ],
        ),
        migrations.CreateModel(
            name="Product",
            fields=_catalog_fields() + [
                ("shop", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="products", to="logistics.shop")),
            ],
            options={"abstract": False},
        ),
        migrations.CreateModel(
            name="Event",
            fields=_catalog_fields() + [
                ("starts_at", models.DateTimeField(blank=True, null=True)),
                ("ends_at", models.DateTimeField(blank=True, null=True)),
                ("shop", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="events", to="logistics.shop")),
            ],
            options={"abstract": False},
        ),
        migrations.CreateModel(
            name="CartItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("item_type", models.CharField(choices=[("PRODUCT", "Product"), ("EVENT", "Event")], default="PRODUCT", max_length=10)),
                ("item_id", models.UUIDField()),
                ("selected_variation", models.CharField(blank=True, default="", max_length=255)),
                ("quantity", models.PositiveIntegerField(default=1)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="cart_items", to=settings.AUTH_USER_MODEL)),
            ],
            options={"ordering": ["created_at", "id"]},
        ),
        migrations.AddConstraint(
            model_name="cartitem",
            constraint=models.UniqueConstraint(fields=("user", "item_id", "selected_variation"), name="unique_cart_line"),
        ),
        migrations.CreateModel(
            name="Order",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("customer_snapshot", models.JSONField(default=dict)),
                ("items", models.JSONField(default=list)),
                ("total_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("status", models.CharField(choices=ORDER_STATUS_CHOICES, default="PROCESSING", max_length=20)),
                ("payment_method", models.CharField(choices=PAYMENT_METHOD_CHOICES, default="COD", max_length=20)),
                ("payment_status", models.CharField(choices=PAYMENT_STATUS_CHOICES, default="PENDING", max_length=20)),
                ("payment_reference", models.CharField(blank=True, default="", max_length=255)),
                ("payment_details", models.JSONField(blank=True, default=dict)),
                ("shipping_address", models.JSONField(blank=True, default=dict)),
                ("delivery_lat", models.FloatField(blank=True, null=True)),
                ("delivery_lng", models.FloatField(blank=True, null=True)),
                ("delivery_address", models.TextField(blank=True, default="")),
                ("delivery_instruction", models.TextField(blank=True, default="")),
                ("delivery_otp", models.CharField(help_text="OTP for delivery confirmation", max_length=6)),
                ("otp_attempts", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("delivered_at", models.DateTimeField(blank=True, null=True)),
                ("customer", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="orders", to=settings.AUTH_USER_MODEL)),
                ("shop", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="orders", to="logistics.shop")),
                ("rider", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="deliveries", to=settings.AUTH_USER_MODEL)),
                ("ignored_by", models.ManyToManyField(blank=True, related_name="ignored_orders", to=settings.AUTH_USER_MODEL)),
            ],
            options={"ordering": ["-created_at"]},
        ),
        migrations.AddIndex(
            model_name="order",
            index=models.Index(fields=["status", "rider"], name="order_status_rider_idx"),
        ),
        migrations.CreateModel(
            name="Notification",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("event", models.CharField(max_length=50)),
                ("title", models.CharField(max_length=255)),
                ("body", models.TextField(blank=True)),
                ("data", models.JSONField(blank=True, default=dict)),
                ("is_read", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("order", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name="notifications", to="logistics.order")),
                ("recipient", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="notifications", to=settings.AUTH_USER_MODEL)),
            ],
            options={"ordering": ["-created_at"]},
        ),
    ]
