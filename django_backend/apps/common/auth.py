"""
Identity provider session verification.

Sessions are RS256 JWTs signed by the provider and published through its JWKS
endpoint. The verified ``sub`` claim is the provider's user ID, which is the
only identity the rest of the application needs.
"""
import logging
from functools import lru_cache

import jwt
from django.conf import settings
from jwt import PyJWKClient
from rest_framework.authentication import BaseAuthentication, get_authorization_header

from .exceptions import AuthenticationMissing

logger = logging.getLogger(__name__)


class ProviderPrincipal:
    """Authenticated caller as seen by the identity provider. Not a database row."""

    is_authenticated = True
    is_anonymous = False
    is_active = True
    is_staff = False
    is_superuser = False

    def __init__(self, external_id, claims=None):
        self.external_id = external_id
        self.claims = claims or {}

    @property
    def pk(self):
        return self.external_id

    @property
    def username(self):
        return self.external_id

    def get_username(self):
        return self.external_id

    def __eq__(self, other):
        return isinstance(other, ProviderPrincipal) and other.external_id == self.external_id

    def __hash__(self):
        return hash(self.external_id)

    def __str__(self):
        return self.external_id

    def __repr__(self):
        return f"ProviderPrincipal({self.external_id!r})"


@lru_cache(maxsize=1)
def get_jwk_client():
    return PyJWKClient(settings.IDENTITY_PROVIDER["JWKS_URL"], cache_keys=True)


def get_session_token(request):
    """Bearer token from the Authorization header, else the provider session cookie."""
    header = get_authorization_header(request).split()
    if header and header[0].lower() == b"bearer":
        if len(header) != 2:
            return None
        return header[1].decode("utf-8", errors="ignore")
    return request.COOKIES.get(settings.IDENTITY_PROVIDER["SESSION_COOKIE"]) or None


def decode_session_token(token):
    conf = settings.IDENTITY_PROVIDER
    signing_key = get_jwk_client().get_signing_key_from_jwt(token)
    claims = jwt.decode(
        token,
        signing_key.key,
        algorithms=["RS256"],
        issuer=conf["ISSUER"] or None,
        leeway=conf["LEEWAY_SECONDS"],
        options={"require": ["exp", "sub"], "verify_aud": False},
    )
    parties = conf["AUTHORIZED_PARTIES"]
    if parties and claims.get("azp") not in parties:
        raise jwt.InvalidTokenError(f"unauthorized party {claims.get('azp')!r}")
    return claims


def authenticate_token(token):
    """Return a ProviderPrincipal for a valid session token, or None."""
    try:
        claims = decode_session_token(token)
    except jwt.PyJWTError as e:
        logger.info(f"Rejected provider session token: {e}")
        return None
    return ProviderPrincipal(claims["sub"], claims)


class ProviderJWTAuthentication(BaseAuthentication):
    keyword = "Bearer"

    def authenticate(self, request):
        token = get_session_token(request)
        if not token:
            return None
        principal = authenticate_token(token)
        if principal is None:
            raise AuthenticationMissing("Invalid or expired session")
        return principal, token

    def authenticate_header(self, request):
        return f'{self.keyword} realm="api"'
