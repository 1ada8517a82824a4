from django.contrib.auth import authenticate
from rest_framework import serializers

from routing.geofence import InvalidCoordinates, validate_coordinates
from .models import User


class UserSerializer(serializers.ModelSerializer):
    name = serializers.CharField(source='display_name', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'username', 'name', 'email', 'phone_number', 'role',
                  'is_approved', 'is_available', 'vehicle_type',
                  'current_lat', 'current_lng', 'location_updated_at']
        read_only_fields = fields


class RegisterSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, min_length=6)
    # Admin accounts are created from the Django shell, never self registered
    role = serializers.ChoiceField(
        choices=[User.Roles.CUSTOMER, User.Roles.SHOP_OWNER, User.Roles.RIDER],
        default=User.Roles.CUSTOMER,
    )

    class Meta:
        model = User
        fields = ['username', 'password', 'email', 'first_name', 'last_name', 'phone_number', 'role', 'vehicle_type']

    def create(self, validated_data):
        user = User.objects.create_user(
            username=validated_data['username'],
            password=validated_data['password'],
            email=validated_data.get('email', ''),
            first_name=validated_data.get('first_name', ''),
            last_name=validated_data.get('last_name', ''),
            phone_number=validated_data.get('phone_number'),
            role=validated_data.get('role', User.Roles.CUSTOMER),
            vehicle_type=validated_data.get('vehicle_type'),
        )
        return user


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField(write_only=True)

    def validate(self, attrs):
        user = authenticate(username=attrs['username'], password=attrs['password'])
        if user is None:
            raise serializers.ValidationError("Invalid username or password.", code='invalid_credentials')
        attrs['user'] = user
        return attrs


class RiderLocationSerializer(serializers.Serializer):
    latitude = serializers.FloatField()
    longitude = serializers.FloatField()
    is_available = serializers.BooleanField(required=False)

    def validate(self, attrs):
        try:
            validate_coordinates(attrs['latitude'], attrs['longitude'])
        except InvalidCoordinates as exc:
            raise serializers.ValidationError(str(exc), code='invalid_location')
        return attrs


class PushTokenSerializer(serializers.Serializer):
    # Empty string unregisters the device
    push_token = serializers.CharField(allow_blank=True, max_length=255)
