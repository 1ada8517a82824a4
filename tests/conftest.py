from decimal import Decimal

import pytest
from rest_framework.test import APIClient

# Tirupattur Bus Stand, the service area center
CENTER = (12.4962, 78.5696)


@pytest.fixture(autouse=True)
def _no_real_push(settings):
    # Tests opt back in with a fake client
    settings.PUSH_NOTIFICATIONS_ENABLED = False


@pytest.fixture
def make_user(db, django_user_model):
    counter = {"n": 0}

    def _make(role="CUSTOMER", **fields):
        counter["n"] += 1
        fields.setdefault("username", f"{role.lower()}_{counter['n']}")
        fields.setdefault("email", f"{fields['username']}@example.com")
        if role == "RIDER":
            fields.setdefault("is_approved", True)
        return django_user_model.objects.create_user(password="secret123", role=role, **fields)

    return _make


@pytest.fixture
def customer(make_user):
    return make_user("CUSTOMER", first_name="Asha", last_name="Kumar")


@pytest.fixture
def other_customer(make_user):
    return make_user("CUSTOMER")


@pytest.fixture
def seller(make_user):
    return make_user("SHOP_OWNER")


@pytest.fixture
def rider(make_user):
    return make_user("RIDER")


@pytest.fixture
def other_rider(make_user):
    return make_user("RIDER")


@pytest.fixture
def admin_user(make_user):
    return make_user("ADMIN")


@pytest.fixture
def make_shop(db):
    from logistics.models import Shop

    def _make(owner, name="Green Grocers", lat=CENTER[0], lng=CENTER[1], **fields):
        return Shop.objects.create(owner=owner, name=name, address_text="Near bus stand", lat=lat, lng=lng, **fields)

    return _make


@pytest.fixture
def shop(make_shop, seller):
    return make_shop(seller)


@pytest.fixture
def make_product(db):
    from logistics.models import Product

    def _make(shop, name="Tomatoes", price="40.00", discount_price=None, stock=10, **fields):
        return Product.objects.create(
            shop=shop,
            name=name,
            original_price=Decimal(price),
            discount_price=Decimal(discount_price) if discount_price is not None else None,
            stock=stock,
            **fields,
        )

    return _make


@pytest.fixture
def product(make_product, shop):
    return make_product(shop)


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for():
    from users.authentication import issue_token

    def _client(user):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_token(user)}")
        return client

    return _client


@pytest.fixture
def location_payload():
    return {"latitude": CENTER[0] + 0.005, "longitude": CENTER[1] + 0.005, "delivery_address": "12 Gandhi Road"}
