"""
Health check endpoints for Docker/Kubernetes.

- /healthz - Liveness (is process running?)
- /readyz - Readiness (can we serve traffic?)
"""
import logging
from datetime import datetime, timezone

from django.http import JsonResponse
from django.views.decorators.http import require_GET
from django.views.decorators.csrf import csrf_exempt

from apps.core.services import get_services

logger = logging.getLogger(__name__)


def get_timestamp() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


@csrf_exempt
@require_GET
def root(request):
    return JsonResponse({'status': 'Server is healthy and running'})


@csrf_exempt
@require_GET
def healthz(request):
    """
    Liveness check endpoint.

    Returns 200 if the Django process is running.
    Does NOT check dependencies - that's for readiness.
    """
    return JsonResponse({
        'status': 'healthy',
        'timestamp': get_timestamp()
    })


def check_redis(services) -> tuple:
    """Check the queue broker."""
    try:
        services.queue.ping()
        return 'ok', True
    except Exception as e:
        logger.error(f"Redis health check failed: {e}")
        return f'error: {str(e)[:50]}', False


def check_qdrant(services) -> tuple:
    """Check the vector index."""
    try:
        services.index.ping()
        return 'ok', True
    except Exception as e:
        logger.error(f"Qdrant health check failed: {e}")
        return f'error: {str(e)[:50]}', False


def check_openai(services) -> tuple:
    """
    Check that model-provider credentials are configured.

    No network call: a missing key is reported but doesn't block readiness,
    uploads and previews still work without it.
    """
    if services.config.openai_api_key:
        return 'ok', True
    return 'degraded: OPENAI_API_KEY not set', True


@csrf_exempt
@require_GET
def readyz(request):
    """
    Readiness check endpoint.

    Returns 200 only if all critical dependencies are reachable.
    """
    services = get_services()
    checks = {}
    all_ok = True

    for name, check in (('redis', check_redis), ('qdrant', check_qdrant), ('openai', check_openai)):
        status, ok = check(services)
        checks[name] = status
        if not ok:
            all_ok = False

    return JsonResponse({
        'status': 'ready' if all_ok else 'not_ready',
        'timestamp': get_timestamp(),
        'checks': checks
    }, status=200 if all_ok else 503)
