"""
JWT issuance and validation.

Tokens are HS256-signed and stateless: a token is valid iff its
signature verifies, it has not expired, its type matches the intended
use, and its subject still resolves to an existing user.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from django.conf import settings

from .models import User

logger = logging.getLogger(__name__)

ALGORITHM = 'HS256'

ACCESS_TOKEN = 'access'
REFRESH_TOKEN = 'refresh'

DEFAULT_ACCESS_TTL_SECONDS = 15 * 60
DEFAULT_REFRESH_TTL_SECONDS = 7 * 24 * 60 * 60


class JWTValidationError(Exception):
    """Raised when JWT validation fails."""
    pass


@dataclass
class TokenClaims:
    """Validated token claims."""
    sub: int  # User ID
    email: str
    role: str
    token_type: str
    raw_claims: Dict[str, Any]


@dataclass
class TokenPair:
    """Access and refresh tokens issued together."""
    access_token: str
    refresh_token: str
    expires_in: int  # access token lifetime in seconds

    def to_dict(self) -> dict:
        return {
            'accessToken': self.access_token,
            'refreshToken': self.refresh_token,
            'tokenType': 'Bearer',
            'expiresIn': self.expires_in,
        }


def get_signing_key() -> str:
    return getattr(settings, 'JWT_SECRET', None) or settings.SECRET_KEY


def _encode(user: User, token_type: str, ttl_seconds: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        'sub': str(user.id),
        'email': user.email,
        'role': user.role,
        'type': token_type,
        'iat': now,
        'exp': now + timedelta(seconds=ttl_seconds),
    }
    return jwt.encode(payload, get_signing_key(), algorithm=ALGORITHM)


def issue_token_pair(user: User) -> TokenPair:
    """Issue a fresh access/refresh token pair for a user."""
    access_ttl = getattr(settings, 'JWT_ACCESS_TTL_SECONDS', DEFAULT_ACCESS_TTL_SECONDS)
    refresh_ttl = getattr(settings, 'JWT_REFRESH_TTL_SECONDS', DEFAULT_REFRESH_TTL_SECONDS)

    return TokenPair(
        access_token=_encode(user, ACCESS_TOKEN, access_ttl),
        refresh_token=_encode(user, REFRESH_TOKEN, refresh_ttl),
        expires_in=access_ttl,
    )


def validate_token(token: str, expected_type: str = ACCESS_TOKEN) -> TokenClaims:
    """
    Validate a token and resolve its subject.

    Performs the following validations:
    1. Verify signature
    2. Verify token is not expired
    3. Verify the token type (a refresh token is not an access token)
    4. Verify the subject is an existing user

    Args:
        token: The JWT token string (without 'Bearer ' prefix)
        expected_type: 'access' or 'refresh'

    Returns:
        TokenClaims with validated claims

    Raises:
        JWTValidationError: If validation fails
    """
    try:
        claims = jwt.decode(
            token,
            get_signing_key(),
            algorithms=[ALGORITHM],
            options={
                'verify_signature': True,
                'verify_exp': True,
                'require': ['sub', 'exp', 'type'],
            }
        )
    except jwt.ExpiredSignatureError:
        raise JWTValidationError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise JWTValidationError(f"Invalid token: {e}")

    token_type = claims.get('type')
    if token_type != expected_type:
        raise JWTValidationError(f"Expected {expected_type} token, got {token_type}")

    try:
        user_id = int(claims['sub'])
    except (TypeError, ValueError):
        raise JWTValidationError("Invalid token subject")

    user: Optional[User] = User.objects.filter(id=user_id).first()
    if user is None:
        logger.warning(f"Token subject {user_id} no longer exists")
        raise JWTValidationError("Unknown token subject")

    return TokenClaims(
        sub=user.id,
        email=user.email,
        role=user.role,
        token_type=token_type,
        raw_claims=claims
    )
