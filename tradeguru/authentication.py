import logging
from dataclasses import dataclass

from rest_framework import authentication, exceptions

logger = logging.getLogger(__name__)

ROLE_USER = "USER"
ROLE_MENTOR = "MENTOR"


@dataclass(frozen=True)
class Principal:
    """
    Authenticated caller as forwarded by the identity gateway.

    The id is opaque to this service; it is only compared against the
    owner and participant ids stored on wallets and sessions.
    """

    id: str
    role: str = ROLE_USER

    is_authenticated = True

    @property
    def is_mentor(self):
        return self.role == ROLE_MENTOR


class ForwardedPrincipalAuthentication(authentication.BaseAuthentication):
    """
    Reads the principal from the X-User-Id / X-User-Role headers set by the
    upstream identity gateway.
    """

    def authenticate(self, request):
        user_id = request.META.get("HTTP_X_USER_ID", "").strip()
        if not user_id:
            return None

        role = request.META.get("HTTP_X_USER_ROLE", ROLE_USER).strip().upper()
        if role not in (ROLE_USER, ROLE_MENTOR):
            logger.warning("Rejected principal %s with unknown role %r", user_id, role)
            raise exceptions.AuthenticationFailed("Unknown role.")

        return Principal(id=user_id, role=role), None

    def authenticate_header(self, request):
        return "X-User-Id"
