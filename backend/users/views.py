import logging

from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from shopdrop_backend.exceptions import NotApproved
from .authentication import issue_token
from .models import User
from .permissions import IsAdmin, IsRider
from .serializers import (
    LoginSerializer,
    PushTokenSerializer,
    RegisterSerializer,
    RiderLocationSerializer,
    UserSerializer,
)

logger = logging.getLogger(__name__)


class RegisterView(APIView):
    """
    Public sign up for customers, shop owners and riders.
    Riders receive no token until an admin approves them.
    """
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        logger.info("Registered user %s with role %s", user.pk, user.role)

        body = {"success": True, "user": UserSerializer(user).data}
        if user.role != User.Roles.RIDER:
            body["token"] = issue_token(user)
        return Response(body, status=status.HTTP_201_CREATED)


class LoginView(APIView):
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.validated_data["user"]

        if user.role == User.Roles.RIDER and not user.is_approved:
            raise NotApproved()

        return Response({"success": True, "token": issue_token(user), "user": UserSerializer(user).data})


class UserDetailView(APIView):
    def get(self, request):
        return Response({"success": True, "user": UserSerializer(request.user).data})


class RiderLocationView(APIView):
    """Rider app pushes its position (and optionally availability)."""
    permission_classes = [IsRider]

    def put(self, request):
        serializer = RiderLocationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        rider = request.user
        rider.current_lat = serializer.validated_data["latitude"]
        rider.current_lng = serializer.validated_data["longitude"]
        rider.location_updated_at = timezone.now()
        update_fields = ["current_lat", "current_lng", "location_updated_at"]
        if "is_available" in serializer.validated_data:
            rider.is_available = serializer.validated_data["is_available"]
            update_fields.append("is_available")
        rider.save(update_fields=update_fields)

        return Response({"success": True, "user": UserSerializer(rider).data})


class PushTokenView(APIView):
    def put(self, request):
        serializer = PushTokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = request.user
        user.push_token = serializer.validated_data["push_token"] or None
        user.save(update_fields=["push_token"])
        return Response({"success": True, "message": "Push token updated."})


class RiderApprovalView(APIView):
    permission_classes = [IsAdmin]

    def post(self, request, pk):
        rider = get_object_or_404(User, pk=pk, role=User.Roles.RIDER)
        rider.is_approved = True
        rider.save(update_fields=["is_approved"])
        logger.info("Admin %s approved rider %s", request.user.pk, rider.pk)
        return Response({"success": True, "user": UserSerializer(rider).data})
