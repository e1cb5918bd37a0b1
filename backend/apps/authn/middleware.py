"""
Bearer-token authentication for API views.

Rejections are answered through the same error boundary as every other
service error (apps.core.responses), as 401 {error, code}.
"""
import logging
from functools import wraps
from typing import Callable

from django.http import HttpRequest

from apps.core.errors import AuthenticationError
from apps.core.responses import error_response
from .audit import audit_token_rejected
from .jwt_validator import ACCESS_TOKEN, JWTValidationError, TokenClaims, validate_token

logger = logging.getLogger(__name__)

BEARER = 'bearer'


def get_token_from_request(request: HttpRequest) -> str:
    """
    Extract the token from an `Authorization: Bearer <token>` header.

    Raises:
        AuthenticationError: Header missing or not a single Bearer token
    """
    scheme, _, token = request.META.get('HTTP_AUTHORIZATION', '').strip().partition(' ')
    token = token.strip()

    if scheme.lower() != BEARER or not token or ' ' in token:
        raise AuthenticationError(
            'Authorization header missing or invalid', code='MISSING_TOKEN'
        )
    return token


def authenticate(request: HttpRequest) -> TokenClaims:
    """
    Resolve the caller from the request's access token.

    Raises:
        AuthenticationError: No usable token, or the token was rejected
    """
    token = get_token_from_request(request)
    try:
        return validate_token(token, expected_type=ACCESS_TOKEN)
    except JWTValidationError as e:
        logger.warning(f"Access token rejected: {e}")
        audit_token_rejected(request, reason=str(e))
        raise AuthenticationError(str(e), code='INVALID_TOKEN')


def auth_required(view_func: Callable) -> Callable:
    """
    Require a valid access token; 401 otherwise.

    Sets request.user_claims. The caller's identity is only ever taken
    from here; views pass request.user_claims.sub explicitly into the
    core.
    """
    @wraps(view_func)
    def wrapper(request: HttpRequest, *args, **kwargs):
        try:
            request.user_claims = authenticate(request)
        except AuthenticationError as e:
            return error_response(e)

        logger.debug(f"Authenticated user {request.user_claims.sub}")
        return view_func(request, *args, **kwargs)

    return wrapper
