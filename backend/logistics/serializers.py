from decimal import Decimal

from rest_framework import serializers

from orders.models import OrderStatus
from .models import Event, Notification, Order, Product, Shop, Withdrawal


class ProductSerializer(serializers.ModelSerializer):
    shop_name = serializers.CharField(source='shop.name', read_only=True)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)

    class Meta:
        model = Product
        fields = ['id', 'shop', 'shop_name', 'name', 'description', 'original_price', 'discount_price',
                  'price', 'stock', 'sold_out', 'is_available', 'image_url', 'rating', 'review_count']
        read_only_fields = fields


class EventSerializer(ProductSerializer):
    class Meta(ProductSerializer.Meta):
        model = Event
        fields = ProductSerializer.Meta.fields + ['starts_at', 'ends_at']
        read_only_fields = fields


class ShopSerializer(serializers.ModelSerializer):
    class Meta:
        model = Shop
        fields = ['id', 'name', 'description', 'address_text', 'lat', 'lng', 'is_open', 'image_url',
                  'delivery_radius_enabled', 'max_delivery_radius_km', 'custom_delivery_radius_km']
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    shop_name = serializers.CharField(source='shop.name', read_only=True)
    status_label = serializers.SerializerMethodField()
    delivery_otp = serializers.SerializerMethodField()
    customer = serializers.JSONField(source='customer_snapshot', read_only=True)

    class Meta:
        model = Order
        fields = ['id', 'customer', 'shop', 'shop_name', 'rider', 'items', 'total_amount',
                  'status', 'status_label', 'payment_method', 'payment_status', 'paid_at',
                  'shipping_address', 'delivery_lat', 'delivery_lng', 'delivery_address',
                  'delivery_instruction', 'delivery_otp', 'created_at', 'updated_at', 'delivered_at']
        read_only_fields = fields

    def get_status_label(self, obj):
        return OrderStatus(obj.status).label

    def get_delivery_otp(self, obj):
        # Only the customer sees the code; the rider must get it at the door
        request = self.context.get('request')
        user = getattr(request, 'user', None)
        if user is not None and user.pk == obj.customer_id:
            return obj.delivery_otp
        return None


class CheckoutSerializer(serializers.Serializer):
    items = serializers.ListField(child=serializers.DictField(), allow_empty=False)
    shipping_address = serializers.JSONField(required=False, default=dict)
    payment_info = serializers.DictField(required=False, default=dict)
    user_location = serializers.JSONField(required=False, allow_null=True, default=None)
    total_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True, default=None)
    delivery_instruction = serializers.CharField(required=False, allow_blank=True, default="")


class CartItemWriteSerializer(serializers.Serializer):
    item_id = serializers.CharField()
    # Kept raw, integer coercion happens in the cart service
    quantity = serializers.JSONField()
    selected_variation = serializers.CharField(required=False, allow_blank=True, default="")


class CartQuantitySerializer(serializers.Serializer):
    quantity = serializers.JSONField()


class BulkRemoveSerializer(serializers.Serializer):
    item_ids = serializers.JSONField()


class StatusUpdateSerializer(serializers.Serializer):
    status = serializers.CharField()


class ConfirmDeliverySerializer(serializers.Serializer):
    otp = serializers.CharField(max_length=12)


class PaymentVerifySerializer(serializers.Serializer):
    order_ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)
    order_ref = serializers.CharField()
    payment_id = serializers.CharField()
    signature = serializers.CharField()


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ['id', 'event', 'title', 'body', 'data', 'order', 'is_read', 'created_at']
        read_only_fields = fields


class ReviewSerializer(serializers.Serializer):
    item_id = serializers.UUIDField()
    rating = serializers.IntegerField(min_value=1, max_value=5)
    comment = serializers.CharField(required=False, allow_blank=True, default="")


class WithdrawalSerializer(serializers.ModelSerializer):
    shop_name = serializers.CharField(source='shop.name', read_only=True)

    class Meta:
        model = Withdrawal
        fields = ['id', 'shop', 'shop_name', 'amount', 'bank_name', 'bank_account_number', 'bank_ifsc_code',
                  'status', 'transaction_id', 'created_at', 'updated_at']
        read_only_fields = fields


class WithdrawalRequestSerializer(serializers.Serializer):
    shop = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
    bank_name = serializers.CharField(max_length=255)
    bank_account_number = serializers.CharField(max_length=64)
    bank_ifsc_code = serializers.CharField(max_length=20, required=False, allow_blank=True, default="")
