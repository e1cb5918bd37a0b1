"""
HTTP boundary for service errors.

Views are wrapped with @handles_service_errors so that the error kind is
mapped to a status code in exactly one place. Faults (provider and
storage failures) are logged with full detail but reported to the client
with a generic message.
"""
import logging
from functools import wraps
from typing import Callable

from django.http import HttpRequest, JsonResponse

from .errors import ErrorKind, ServiceError

logger = logging.getLogger(__name__)


STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.UPSTREAM_MODEL: 502,
    ErrorKind.STORAGE: 500,
    ErrorKind.UNAUTHENTICATED: 401,
}

GENERIC_FAULT_MESSAGES = {
    ErrorKind.UPSTREAM_MODEL: 'Model service unavailable',
    ErrorKind.STORAGE: 'Storage failure',
}


def error_response(error: ServiceError) -> JsonResponse:
    """Build the client-visible response for a service error."""
    status = STATUS_BY_KIND[error.kind]

    if error.is_fault:
        return JsonResponse(
            {'error': GENERIC_FAULT_MESSAGES[error.kind], 'code': error.kind.value},
            status=status
        )

    return JsonResponse({'error': error.message, 'code': error.code}, status=status)


def handles_service_errors(view_func: Callable) -> Callable:
    """
    Decorator translating ServiceError into a JSON error response.

    Must sit inside @auth_required so that the request already carries
    the caller's claims when an error is logged.
    """
    @wraps(view_func)
    def wrapper(request: HttpRequest, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)
        except ServiceError as e:
            if e.is_fault:
                logger.error(
                    f"{e.kind.value} fault in {view_func.__name__}: {e.message}",
                    exc_info=True
                )
            elif e.kind == ErrorKind.FORBIDDEN:
                logger.warning(f"Forbidden in {view_func.__name__}: {e.message}")
            else:
                logger.info(f"{e.kind.value} in {view_func.__name__}: {e.message}")
            return error_response(e)

    return wrapper
