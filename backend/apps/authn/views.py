"""
Authentication views.

Register, log in, refresh and inspect the current identity. Tokens are
issued by jwt_validator.issue_token_pair; no server-side session exists.
"""
import json
import logging

from django.contrib.auth.hashers import check_password, make_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from django.db import IntegrityError, transaction
from django.http import JsonResponse, HttpRequest
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from apps.core.errors import AuthenticationError, ValidationError
from apps.core.responses import handles_service_errors
from .audit import audit_login, audit_registered
from .jwt_validator import (
    REFRESH_TOKEN,
    JWTValidationError,
    issue_token_pair,
    validate_token,
)
from .middleware import auth_required
from .models import User

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def parse_json_object(request: HttpRequest) -> dict:
    """Decode a JSON object body; undecodable bytes count as invalid JSON."""
    try:
        body = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON", code='INVALID_JSON')

    if not isinstance(body, dict):
        raise ValidationError("Request body must be an object", code='INVALID_JSON')

    return body


def parse_credentials(request: HttpRequest) -> tuple[str, str]:
    """Parse and validate {email, password} from a JSON body."""
    body = parse_json_object(request)

    email = str(body.get('email', '')).strip().lower()
    password = body.get('password', '')

    try:
        validate_email(email)
    except DjangoValidationError:
        raise ValidationError("A valid email is required", code='INVALID_EMAIL')

    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            code='INVALID_PASSWORD'
        )

    return email, password


@csrf_exempt
@require_http_methods(["POST"])
@handles_service_errors
def register(request: HttpRequest) -> JsonResponse:
    """
    POST /api/auth/register

    Request body: {"email": "...", "password": "..."}
    Response: token pair (201)
    """
    email, password = parse_credentials(request)

    try:
        with transaction.atomic():
            user = User.objects.create(email=email, password_hash=make_password(password))
    except IntegrityError:
        raise ValidationError("Email is already registered", code='EMAIL_TAKEN')

    logger.info(f"Registered user {user.id}")
    audit_registered(request, user.id)

    return JsonResponse(issue_token_pair(user).to_dict(), status=201)


@csrf_exempt
@require_http_methods(["POST"])
@handles_service_errors
def login(request: HttpRequest) -> JsonResponse:
    """
    POST /api/auth/login

    Request body: {"email": "...", "password": "..."}
    Response: token pair
    """
    email, password = parse_credentials(request)

    user = User.objects.filter(email=email).first()
    if user is None or not check_password(password, user.password_hash):
        audit_login(request, user.id if user else None, success=False)
        raise AuthenticationError("Invalid email or password", code='INVALID_CREDENTIALS')

    audit_login(request, user.id, success=True)
    return JsonResponse(issue_token_pair(user).to_dict())


@csrf_exempt
@require_http_methods(["POST"])
@handles_service_errors
def refresh(request: HttpRequest) -> JsonResponse:
    """
    POST /api/auth/refresh

    Request body: {"refreshToken": "..."}
    Response: a new token pair
    """
    token = parse_json_object(request).get('refreshToken')
    if not token or not isinstance(token, str):
        raise ValidationError("refreshToken is required", code='MISSING_TOKEN')

    try:
        claims = validate_token(token, expected_type=REFRESH_TOKEN)
    except JWTValidationError as e:
        logger.warning(f"Refresh rejected: {e}")
        raise AuthenticationError(str(e), code='INVALID_TOKEN')

    user = User.objects.get(id=claims.sub)
    return JsonResponse(issue_token_pair(user).to_dict())


@require_http_methods(["GET"])
@auth_required
def me(request: HttpRequest) -> JsonResponse:
    """
    GET /api/auth/me
    
    Returns the authenticated user's information.
    """
    claims = request.user_claims

    return JsonResponse({
        'id': claims.sub,
        'email': claims.email,
        'role': claims.role,
    })


@require_http_methods(["GET"])
def health(request: HttpRequest) -> JsonResponse:
    """
    GET /api/health
    
    Health check endpoint (no auth required).
    """
    return JsonResponse({'status': 'ok'})
