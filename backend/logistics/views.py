import logging

from django.conf import settings
from django.db.models import Q
from django.utils import timezone
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.views import APIView

from orders.models import PaymentStatus
from shopdrop_backend.exceptions import (
    InvalidLocation,
    NotOrderOwner,
    PaymentVerificationFailed,
    ResourceNotFound,
    UpstreamError,
)
from users.models import User
from users.permissions import IsAdmin, IsCustomer, IsRider, IsShopOwner, allow_roles
from . import cart, order_service, withdrawals
from .models import Event, Notification, Order, Product, Shop
from .paynow_service import PaymentService, verify_signature
from .serializers import (
    BulkRemoveSerializer,
    CartItemWriteSerializer,
    CartQuantitySerializer,
    CheckoutSerializer,
    ConfirmDeliverySerializer,
    EventSerializer,
    NotificationSerializer,
    OrderSerializer,
    PaymentVerifySerializer,
    ProductSerializer,
    ReviewSerializer,
    ShopSerializer,
    StatusUpdateSerializer,
    WithdrawalRequestSerializer,
    WithdrawalSerializer,
)

logger = logging.getLogger(__name__)


def _query_location(request):
    """
    (lat, lng) from ?latitude=&longitude=, None when neither is given.
    """
    lat = request.query_params.get('latitude')
    lng = request.query_params.get('longitude')
    if lat is None and lng is None:
        return None
    try:
        return float(lat), float(lng)
    except (TypeError, ValueError):
        raise InvalidLocation("Latitude and longitude must be numbers")


def _query_shop_id(request):
    """?shop= as an int, None when absent."""
    raw = request.query_params.get('shop')
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError({"shop": ["Shop id must be an integer."]})


def _deliverable_shop_ids(shops, location):
    service_area = order_service.get_service_area()
    return [
        shop.pk for shop in shops
        if order_service.check_shop_delivery(shop, location[0], location[1], service_area).eligible
    ]


class ShopViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Public shop directory.
    With ?latitude=&longitude= only shops that can deliver there are listed.
    """
    queryset = Shop.objects.filter(is_open=True).order_by('name')
    serializer_class = ShopSerializer
    permission_classes = [permissions.AllowAny]

    def get_queryset(self):
        queryset = super().get_queryset()
        location = _query_location(self.request)
        if location is not None and self.action == 'list':
            queryset = queryset.filter(pk__in=_deliverable_shop_ids(queryset, location))
        return queryset


class ProductViewSet(viewsets.ReadOnlyModelViewSet):
    catalog_model = Product
    serializer_class = ProductSerializer
    permission_classes = [permissions.AllowAny]

    def get_queryset(self):
        queryset = self.catalog_model.objects.filter(is_available=True, shop__is_open=True).select_related('shop').order_by('name')
        shop_id = _query_shop_id(self.request)
        if shop_id is not None:
            queryset = queryset.filter(shop_id=shop_id)

        location = _query_location(self.request)
        if location is not None and self.action == 'list':
            shops = Shop.objects.filter(is_open=True)
            queryset = queryset.filter(shop_id__in=_deliverable_shop_ids(shops, location))
        return queryset


class EventViewSet(ProductViewSet):
    """
    Flash sales that have not ended yet, upcoming ones included.
    """
    catalog_model = Event
    serializer_class = EventSerializer

    def get_queryset(self):
        return super().get_queryset().filter(Q(ends_at__isnull=True) | Q(ends_at__gte=timezone.now()))


class DeliveryAvailabilityView(APIView):
    """
    GET /delivery/check-availability/?latitude=&longitude=[&shop=]
    Geofence result for every open shop, or for one shop.
    """
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        location = _query_location(request)
        if location is None:
            raise InvalidLocation("Latitude and longitude are required")

        shops = Shop.objects.filter(is_open=True).order_by('name')
        shop_id = _query_shop_id(request)
        if shop_id is not None:
            shops = shops.filter(pk=shop_id)
            if not shops.exists():
                raise ResourceNotFound("Shop not found.")

        service_area = order_service.get_service_area()
        results = []
        for shop in shops:
            result = order_service.check_shop_delivery(shop, location[0], location[1], service_area)
            results.append({"shop_id": shop.pk, "shop_name": shop.name, **result.to_dict()})

        return Response({
            "success": True,
            "results": results,
            "available_count": sum(1 for r in results if r["available"]),
            "total_count": len(results),
        })


class CartViewSet(viewsets.ViewSet):
    permission_classes = [IsCustomer]

    def list(self, request):
        return Response({"success": True, **cart.get_cart(request.user)})

    def create(self, request):
        serializer = CartItemWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        cart_item, created = cart.add_item(
            request.user, data['item_id'], data['quantity'], data.get('selected_variation', ""),
        )
        return Response(
            {"success": True, "item": {"id": cart_item.pk, "item_id": str(cart_item.item_id), "quantity": cart_item.quantity}},
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    def partial_update(self, request, pk=None):
        serializer = CartQuantitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart_item = cart.update_item(request.user, pk, serializer.validated_data['quantity'])
        return Response({"success": True, "item": {"id": cart_item.pk, "quantity": cart_item.quantity}})

    def destroy(self, request, pk=None):
        cart.remove_item(request.user, pk)
        return Response({"success": True, "message": "Item removed from cart."})

    @action(detail=False, methods=['post'], url_path='bulk-remove')
    def bulk_remove(self, request):
        serializer = BulkRemoveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        removed = cart.remove_items(request.user, serializer.validated_data['item_ids'])
        return Response({"success": True, "removed": removed})


class OrderViewSet(viewsets.GenericViewSet):
    """
    Handles order creation and status management.
    Querysets are restricted by role (Customer vs Shop Owner vs Rider vs Admin).
    """
    serializer_class = OrderSerializer

    role_permissions = {
        'create': [IsCustomer],
        'cancel': [IsCustomer],
        'refund': [IsCustomer],
        'pay': [IsCustomer],
        'review': [IsCustomer],
        'set_status': [IsShopOwner],
        'refund_approve': [IsShopOwner],
        'accept': [IsRider],
        'ignore': [IsRider],
        'confirm_delivery': [IsRider],
        'available': [IsRider],
    }

    def get_permissions(self):
        classes = self.role_permissions.get(self.action, [permissions.IsAuthenticated])
        return [permission() for permission in classes]

    def get_queryset(self):
        return order_service.orders_visible_to(self.request.auth)

    def _respond(self, order):
        data = OrderSerializer(order, context=self.get_serializer_context()).data
        return Response({"success": True, "order": data})

    def create(self, request):
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        orders = order_service.create_orders(
            request.user,
            data['items'],
            shipping_address=data['shipping_address'],
            payment_info=data['payment_info'],
            user_location=data['user_location'],
            total_price=data['total_price'],
            delivery_instruction=data['delivery_instruction'],
        )
        return Response(
            {"success": True, "orders": OrderSerializer(orders, many=True, context=self.get_serializer_context()).data},
            status=status.HTTP_201_CREATED,
        )

    def retrieve(self, request, pk=None):
        order = order_service.get_order(pk)
        if not order_service.can_view(request.auth, order):
            raise NotOrderOwner("You are not allowed to view this order.")
        return self._respond(order)

    def list(self, request):
        data = OrderSerializer(self.get_queryset(), many=True, context=self.get_serializer_context()).data
        return Response({"success": True, "orders": data})

    @action(detail=False, methods=['get'])
    def available(self, request):
        orders = order_service.available_orders_for_rider(request.user)
        data = OrderSerializer(orders, many=True, context=self.get_serializer_context()).data
        return Response({"success": True, "orders": data})

    # --- seller ---
    @action(detail=True, methods=['put'], url_path='status')
    def set_status(self, request, pk=None):
        serializer = StatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = order_service.update_status(request.user, pk, serializer.validated_data['status'])
        return self._respond(order)

    @action(detail=True, methods=['put'], url_path='refund-approve')
    def refund_approve(self, request, pk=None):
        return self._respond(order_service.approve_refund(request.user, pk))

    # --- rider ---
    @action(detail=True, methods=['put'])
    def accept(self, request, pk=None):
        return self._respond(order_service.accept_order(request.user, pk))

    @action(detail=True, methods=['put'])
    def ignore(self, request, pk=None):
        order_service.ignore_order(request.user, pk)
        return Response({"success": True, "message": "Order ignored."})

    @action(detail=True, methods=['put'], url_path='confirm-delivery')
    def confirm_delivery(self, request, pk=None):
        serializer = ConfirmDeliverySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = order_service.confirm_delivery(request.user, pk, serializer.validated_data['otp'])
        return self._respond(order)

    # --- customer ---
    @action(detail=True, methods=['put'])
    def cancel(self, request, pk=None):
        return self._respond(order_service.cancel_order(request.user, pk))

    @action(detail=True, methods=['put'])
    def refund(self, request, pk=None):
        return self._respond(order_service.request_refund(request.user, pk))

    @action(detail=True, methods=['put'])
    def review(self, request, pk=None):
        serializer = ReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        order = order_service.review_item(request.user, pk, data['item_id'], data['rating'], data['comment'])
        return self._respond(order)

    @action(detail=True, methods=['post'])
    def pay(self, request, pk=None):
        """
        Initiate Paynow payment for this order.
        """
        order = order_service.get_order(pk)
        if order.customer_id != request.user.pk:
            raise NotOrderOwner()
        if order.payment_status != PaymentStatus.PENDING.value:
            return Response({"success": False, "error": "already_paid", "message": "Order is already paid."},
                            status=status.HTTP_400_BAD_REQUEST)

        email = request.user.email or settings.DEFAULT_FROM_EMAIL
        result = PaymentService().initiate_payment([order], email)
        if not result['success']:
            raise UpstreamError(result.get('error') or "Payment gateway error.")
        return Response(result)


class PaymentVerifyView(APIView):
    """
    Gateway callback relayed by the app after checkout.
    Marks the customer's listed orders paid when the signature checks out.
    """
    permission_classes = [IsCustomer]

    def post(self, request):
        serializer = PaymentVerifySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if not verify_signature(data['order_ref'], data['payment_id'], data['signature'], settings.PAYMENT_WEBHOOK_SECRET):
            logger.warning("Payment signature mismatch for %s from customer %s", data['order_ref'], request.user.pk)
            raise PaymentVerificationFailed("Invalid signature.")

        updated = Order.objects.filter(
            pk__in=data['order_ids'],
            customer=request.user,
            payment_status=PaymentStatus.PENDING.value,
        ).update(
            payment_status=PaymentStatus.SUCCEEDED.value,
            payment_reference=data['payment_id'],
            paid_at=timezone.now(),
        )
        logger.info("Payment %s verified, %d order(s) marked paid", data['payment_id'], updated)
        return Response({"success": True, "message": "Payment verified.", "updated": updated})


class NotificationPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


class NotificationViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    serializer_class = NotificationSerializer
    pagination_class = NotificationPagination
    lookup_value_regex = r"[0-9]+"

    def get_queryset(self):
        return Notification.objects.filter(recipient=self.request.user)

    def list(self, request, *args, **kwargs):
        response = super().list(request, *args, **kwargs)
        response.data['unread_count'] = self.get_queryset().filter(is_read=False).count()
        response.data['success'] = True
        return response

    @action(detail=True, methods=['post'])
    def read(self, request, pk=None):
        updated = self.get_queryset().filter(pk=pk).update(is_read=True)
        if not updated:
            raise ResourceNotFound("Notification not found.")
        return Response({"success": True})

    @action(detail=False, methods=['post'], url_path='read-all')
    def read_all(self, request):
        updated = self.get_queryset().filter(is_read=False).update(is_read=True)
        return Response({"success": True, "updated": updated})


class WithdrawalViewSet(viewsets.GenericViewSet):
    """
    Seller payouts: shop owners request and list their own, admins list all and approve.
    """
    serializer_class = WithdrawalSerializer
    lookup_value_regex = r"[0-9]+"

    role_permissions = {
        'list': [allow_roles(User.Roles.SHOP_OWNER, User.Roles.ADMIN)],
        'create': [IsShopOwner],
        'approve': [IsAdmin],
    }

    def get_permissions(self):
        classes = self.role_permissions.get(self.action, [permissions.IsAuthenticated])
        return [permission() for permission in classes]

    def get_queryset(self):
        return withdrawals.withdrawals_visible_to(self.request.auth)

    def list(self, request):
        data = WithdrawalSerializer(self.get_queryset(), many=True).data
        return Response({"success": True, "withdrawals": data})

    def create(self, request):
        serializer = WithdrawalRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        withdrawal = withdrawals.request_withdrawal(
            request.user,
            data['shop'],
            data['amount'],
            data['bank_name'],
            data['bank_account_number'],
            data['bank_ifsc_code'],
        )
        withdrawal.shop.refresh_from_db(fields=['available_balance'])
        return Response(
            {
                "success": True,
                "withdrawal": WithdrawalSerializer(withdrawal).data,
                "available_balance": str(withdrawal.shop.available_balance),
            },
            status=status.HTTP_201_CREATED,
        )

    @action(detail=True, methods=['put'])
    def approve(self, request, pk=None):
        withdrawal = withdrawals.approve_withdrawal(pk)
        return Response({"success": True, "withdrawal": WithdrawalSerializer(withdrawal).data})
