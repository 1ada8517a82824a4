from django.contrib.auth.models import AbstractUser
from django.contrib.auth.models import UserManager as DjangoUserManager
from django.db import models
from phonenumber_field.modelfields import PhoneNumberField

class UserManager(DjangoUserManager):
    def create_superuser(self, username, email=None, password=None, **extra_fields):
        # Superusers sign in to the API as platform admins
        extra_fields.setdefault("role", User.Roles.ADMIN)
        return super().create_superuser(username, email, password, **extra_fields)


class User(AbstractUser):
    class Roles(models.TextChoices):
        CUSTOMER = "CUSTOMER", "Customer"
        RIDER = "RIDER", "Rider"
        SHOP_OWNER = "SHOP_OWNER", "Shop Owner"
        ADMIN = "ADMIN", "Admin"

    # Role fields define permissions in the app
    # CUSTOMER: Can buy products
    # RIDER: Can accept delivery jobs
    # SHOP_OWNER: Can manage shops and fulfil their orders
    # ADMIN: Oversees the platform, approves riders
    role = models.CharField(max_length=20, choices=Roles.choices, default=Roles.CUSTOMER)

    # PhoneNumberField validates Indian numbers (+91...) by default
    phone_number = PhoneNumberField(blank=True, null=True, unique=True, region="IN")

    # Expo push token of the user's device, null when the app never registered one
    push_token = models.CharField(max_length=255, blank=True, null=True)

    # Rider specific fields (could be in a separate Profile model, but putting here for MVP simplicity)
    # is_approved: Admin gate, unapproved riders cannot log in or call rider endpoints
    is_approved = models.BooleanField(default=False)
    # is_available: Toggles rider visibility for job matching
    is_available = models.BooleanField(default=False)
    # vehicle_type: e.g., 'Bike', 'Car', 'Scooter'
    vehicle_type = models.CharField(max_length=50, blank=True, null=True)
    # Last position pushed by the rider app
    current_lat = models.FloatField(blank=True, null=True)
    current_lng = models.FloatField(blank=True, null=True)
    location_updated_at = models.DateTimeField(blank=True, null=True)

    objects = UserManager()

    @property
    def display_name(self):
        return self.get_full_name() or self.username

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"
