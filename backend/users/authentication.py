"""
Bearer token identity for every role.

One verifier serves customers, shop owners, riders and admins:
- the token carries the subject id and the role it was issued for
- a loader keyed by role fetches the principal and applies that role's gate
- the result is a Principal(role, user) set as request.auth
"""
from dataclasses import dataclass
import logging

from django.conf import settings
from django.core import signing
from rest_framework import authentication

from shopdrop_backend.exceptions import InvalidToken, NotApproved, PrincipalNotFound, Unauthenticated
from .models import User

logger = logging.getLogger(__name__)

TOKEN_SALT = "users.authentication.bearer"
KEYWORD = "Bearer"


@dataclass(frozen=True)
class Principal:
    """The authenticated actor of a request."""
    role: str
    user: User

    @property
    def id(self):
        return self.user.pk

    @property
    def is_customer(self):
        return self.role == User.Roles.CUSTOMER

    @property
    def is_shop_owner(self):
        return self.role == User.Roles.SHOP_OWNER

    @property
    def is_rider(self):
        return self.role == User.Roles.RIDER

    @property
    def is_admin(self):
        return self.role == User.Roles.ADMIN


def issue_token(user):
    return signing.dumps({"sub": user.pk, "role": user.role}, salt=TOKEN_SALT)


def decode_token(token):
    """
    Returns the token payload or raises InvalidToken (bad signature, expired, malformed).
    """
    try:
        payload = signing.loads(token, salt=TOKEN_SALT, max_age=settings.AUTH_TOKEN_MAX_AGE)
    except signing.SignatureExpired:
        raise InvalidToken("Token has expired.")
    except signing.BadSignature:
        raise InvalidToken()

    if not isinstance(payload, dict) or "sub" not in payload or payload.get("role") not in User.Roles.values:
        raise InvalidToken()
    return payload


def _load_user(role, user_id):
    user = User.objects.filter(pk=user_id, role=role, is_active=True).first()
    if user is None:
        raise PrincipalNotFound()
    return user


def _load_rider(role, user_id):
    rider = _load_user(role, user_id)
    if not rider.is_approved:
        raise NotApproved()
    return rider


def _load_shop_owner(role, user_id):
    return User.objects.prefetch_related("shops").filter(pk=_load_user(role, user_id).pk).get()


PRINCIPAL_LOADERS = {
    User.Roles.CUSTOMER: _load_user,
    User.Roles.SHOP_OWNER: _load_shop_owner,
    User.Roles.RIDER: _load_rider,
    User.Roles.ADMIN: _load_user,
}


def load_principal(role, user_id):
    loader = PRINCIPAL_LOADERS[User.Roles(role)]
    return Principal(role=User.Roles(role), user=loader(role, user_id))


class RoleTokenAuthentication(authentication.BaseAuthentication):
    """
    Authorization: Bearer <token>

    No header: anonymous, the permission layer answers 401.
    Header present but not a bearer token: Unauthenticated.
    """

    def authenticate(self, request):
        header = authentication.get_authorization_header(request)
        if not header:
            return None

        parts = header.split()
        if len(parts) != 2 or parts[0].decode("latin-1").lower() != KEYWORD.lower():
            raise Unauthenticated()

        try:
            token = parts[1].decode("utf-8")
        except UnicodeDecodeError:
            raise InvalidToken()

        payload = decode_token(token)
        principal = load_principal(payload["role"], payload["sub"])
        return principal.user, principal

    def authenticate_header(self, request):
        return f'{KEYWORD} realm="api"'
