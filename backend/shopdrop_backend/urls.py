from django.contrib import admin
from django.urls import path, include
from rest_framework.routers import DefaultRouter
from users.views import LoginView, PushTokenView, RegisterView, RiderApprovalView, RiderLocationView, UserDetailView
from logistics.views import (
    CartViewSet,
    DeliveryAvailabilityView,
    EventViewSet,
    NotificationViewSet,
    OrderViewSet,
    PaymentVerifyView,
    ProductViewSet,
    ShopViewSet,
    WithdrawalViewSet,
)

router = DefaultRouter()
router.register(r'shops', ShopViewSet)
router.register(r'products', ProductViewSet, basename='product')
router.register(r'events', EventViewSet, basename='event')
router.register(r'orders', OrderViewSet, basename='order')
router.register(r'cart', CartViewSet, basename='cart')
router.register(r'notifications', NotificationViewSet, basename='notification')
router.register(r'withdrawals', WithdrawalViewSet, basename='withdrawal')

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include(router.urls)),
    path('api/v1/auth/register/', RegisterView.as_view(), name='register'),
    path('api/v1/auth/login/', LoginView.as_view(), name='login'),
    path('api/v1/auth/me/', UserDetailView.as_view(), name='user-detail'),
    path('api/v1/auth/me/location/', RiderLocationView.as_view(), name='rider-location'),
    path('api/v1/auth/me/push-token/', PushTokenView.as_view(), name='push-token'),
    path('api/v1/riders/<int:pk>/approve/', RiderApprovalView.as_view(), name='rider-approve'),
    path('api/v1/delivery/check-availability/', DeliveryAvailabilityView.as_view(), name='delivery-availability'),
    path('api/v1/payments/verify/', PaymentVerifyView.as_view(), name='payment-verify'),
]
