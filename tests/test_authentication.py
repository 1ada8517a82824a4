import pytest
from django.core import signing

from users.authentication import TOKEN_SALT, Principal, issue_token, load_principal
from shopdrop_backend.exceptions import NotApproved, PrincipalNotFound

pytestmark = pytest.mark.django_db

ME_URL = "/api/v1/auth/me/"


def test_token_round_trip_sets_principal(client_for, customer):
    response = client_for(customer).get(ME_URL)

    assert response.status_code == 200
    assert response.data["user"]["id"] == customer.pk
    assert response.data["user"]["role"] == "CUSTOMER"


def test_missing_header_is_401(api_client):
    response = api_client.get(ME_URL)

    assert response.status_code == 401
    assert response.data["success"] is False
    assert response.data["error"] == "not_authenticated"


def test_non_bearer_header_is_401(api_client):
    api_client.credentials(HTTP_AUTHORIZATION="Basic dXNlcjpwYXNz")

    response = api_client.get(ME_URL)

    assert response.status_code == 401
    assert response.data["error"] == "unauthenticated"


def test_tampered_token_is_invalid(api_client, customer):
    api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_token(customer)}x")

    response = api_client.get(ME_URL)

    assert response.status_code == 401
    assert response.data["error"] == "invalid_token"


def test_expired_token_is_invalid(api_client, customer, settings):
    settings.AUTH_TOKEN_MAX_AGE = -1
    api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_token(customer)}")

    response = api_client.get(ME_URL)

    assert response.status_code == 401
    assert response.data["error"] == "invalid_token"


def test_token_for_deleted_user_is_principal_not_found(api_client, customer):
    token = issue_token(customer)
    customer.delete()
    api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

    response = api_client.get(ME_URL)

    assert response.status_code == 401
    assert response.data["error"] == "principal_not_found"


def test_token_role_must_match_stored_role(api_client, customer):
    token = signing.dumps({"sub": customer.pk, "role": "RIDER"}, salt=TOKEN_SALT)
    api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

    response = api_client.get(ME_URL)

    assert response.status_code == 401
    assert response.data["error"] == "principal_not_found"


def test_unapproved_rider_token_is_rejected(api_client, make_user):
    rider = make_user("RIDER", is_approved=False)
    api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_token(rider)}")

    response = api_client.get(ME_URL)

    assert response.status_code == 403
    assert response.data["error"] == "not_approved"


def test_load_principal_by_role(seller, make_user):
    principal = load_principal("SHOP_OWNER", seller.pk)

    assert principal == Principal(role="SHOP_OWNER", user=seller)
    assert principal.is_shop_owner
    with pytest.raises(PrincipalNotFound):
        load_principal("CUSTOMER", seller.pk)
    with pytest.raises(NotApproved):
        load_principal("RIDER", make_user("RIDER", is_approved=False).pk)


def test_role_gate_rejects_other_roles(client_for, seller):
    response = client_for(seller).get("/api/v1/cart/")

    assert response.status_code == 403
    assert response.data["error"] == "role_not_allowed"


def test_admin_is_rejected_on_customer_endpoint_with_dedicated_message(client_for, admin_user):
    response = client_for(admin_user).get("/api/v1/cart/")

    assert response.status_code == 403
    assert response.data["error"] == "role_not_allowed"
    assert "Admins" in response.data["message"]


def test_register_and_login(api_client):
    response = api_client.post("/api/v1/auth/register/", {
        "username": "meena", "password": "secret123", "email": "meena@example.com",
    }, format="json")

    assert response.status_code == 201
    assert response.data["user"]["role"] == "CUSTOMER"
    assert response.data["token"]

    response = api_client.post("/api/v1/auth/login/", {"username": "meena", "password": "secret123"}, format="json")
    assert response.status_code == 200
    assert response.data["token"]


def test_login_with_wrong_password(api_client, customer):
    response = api_client.post("/api/v1/auth/login/", {"username": customer.username, "password": "nope"}, format="json")

    assert response.status_code == 400
    assert response.data["success"] is False


def test_register_cannot_create_admin(api_client):
    response = api_client.post("/api/v1/auth/register/", {
        "username": "sneaky", "password": "secret123", "role": "ADMIN",
    }, format="json")

    assert response.status_code == 400


def test_rider_needs_approval_before_login(api_client, client_for, admin_user):
    response = api_client.post("/api/v1/auth/register/", {
        "username": "ravi", "password": "secret123", "role": "RIDER", "vehicle_type": "Bike",
    }, format="json")
    assert response.status_code == 201
    assert "token" not in response.data

    login = {"username": "ravi", "password": "secret123"}
    assert api_client.post("/api/v1/auth/login/", login, format="json").status_code == 403

    rider_id = response.data["user"]["id"]
    approve = client_for(admin_user).post(f"/api/v1/riders/{rider_id}/approve/")
    assert approve.status_code == 200
    assert approve.data["user"]["is_approved"] is True

    assert api_client.post("/api/v1/auth/login/", login, format="json").status_code == 200


def test_rider_location_update(client_for, rider):
    response = client_for(rider).put("/api/v1/auth/me/location/", {
        "latitude": 12.5, "longitude": 78.57, "is_available": True,
    }, format="json")

    assert response.status_code == 200
    rider.refresh_from_db()
    assert rider.current_lat == 12.5
    assert rider.is_available is True
    assert rider.location_updated_at is not None


def test_rider_location_rejects_out_of_range(client_for, rider):
    response = client_for(rider).put("/api/v1/auth/me/location/", {"latitude": 120, "longitude": 78.57}, format="json")

    assert response.status_code == 400


def test_push_token_update(client_for, customer):
    response = client_for(customer).put("/api/v1/auth/me/push-token/", {"push_token": "ExponentPushToken[abc]"}, format="json")

    assert response.status_code == 200
    customer.refresh_from_db()
    assert customer.push_token == "ExponentPushToken[abc]"


def test_createsuperuser_accounts_are_admins(django_user_model, client_for, make_user):
    root = django_user_model.objects.create_superuser("root", "root@example.com", "secret123")
    pending_rider = make_user("RIDER", is_approved=False)

    assert root.role == "ADMIN"
    assert load_principal("ADMIN", root.pk).user == root
    response = client_for(root).post(f"/api/v1/riders/{pending_rider.pk}/approve/")
    assert response.status_code == 200
    assert response.data["user"]["is_approved"] is True
