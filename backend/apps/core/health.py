"""
Health check endpoints for container probes.

- /healthz - Liveness (is the process running?)
- /readyz - Readiness (is the database reachable?)
"""
import logging
from datetime import datetime, timezone

import httpx
from django.conf import settings
from django.db import connection
from django.http import JsonResponse
from django.views.decorators.http import require_GET
from django.views.decorators.csrf import csrf_exempt

logger = logging.getLogger(__name__)


def get_timestamp() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


@csrf_exempt
@require_GET
def healthz(request):
    """
    Liveness probe endpoint.
    
    Returns 200 if the Django process is running.
    Does NOT check dependencies - that's for readiness.
    """
    return JsonResponse({
        'status': 'healthy',
        'timestamp': get_timestamp()
    })


def check_postgres() -> tuple[str, bool]:
    """Check database connectivity."""
    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
            cursor.fetchone()
        return 'ok', True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return f'error: {str(e)[:50]}', False


def check_model_server() -> tuple[str, bool]:
    """
    Check the embedding/generation server (degrades gracefully).
    
    Listing and downloading documents keep working while the model
    server is down, so this never fails readiness.
    """
    try:
        ollama_url = getattr(settings, 'OLLAMA_BASE_URL', 'http://ollama:11434')
        with httpx.Client(timeout=5.0) as client:
            response = client.get(f'{ollama_url}/api/version')
            if response.status_code == 200:
                return 'ok', True
            return f'status: {response.status_code}', True
    except httpx.HTTPError as e:
        logger.warning(f"Model server health check failed: {e}")
        return f'degraded: {str(e)[:30]}', True


@csrf_exempt
@require_GET
def readyz(request):
    """
    Readiness probe endpoint.
    
    Returns 200 only if the database is reachable.
    """
    checks = {}

    status, all_ok = check_postgres()
    checks['postgres'] = status

    status, _ = check_model_server()
    checks['model_server'] = status

    response_data = {
        'status': 'ready' if all_ok else 'not_ready',
        'timestamp': get_timestamp(),
        'checks': checks
    }

    return JsonResponse(response_data, status=200 if all_ok else 503)
