"""
HTTP helpers shared by the API views.

Collaborator errors are caught here and turned into JSON responses with a
human-readable message and a machine code. Stack traces never reach clients.
"""
import functools
import logging

from django.http import JsonResponse

from apps.core.errors import DocifyError, RequestValidationError

logger = logging.getLogger(__name__)


def error_response(message: str, code: str, status: int) -> JsonResponse:
    """Build the JSON body used for every error response."""
    return JsonResponse({'message': message, 'code': code}, status=status)


def api_errors(view_func):
    """
    Decorator that maps DocifyError subclasses to their HTTP status.

    Anything else is logged with its traceback and reported as a generic 500.
    """
    @functools.wraps(view_func)
    def wrapper(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)
        except DocifyError as e:
            if e.status_code >= 500:
                logger.error(f"{view_func.__name__} failed: {e.code}: {e.message}")
            else:
                logger.info(f"{view_func.__name__} rejected: {e.code}: {e.message}")
            return error_response(e.message, e.code, e.status_code)
        except Exception as e:
            logger.exception(f"Unexpected error in {view_func.__name__}: {e}")
            return error_response('Internal server error', 'INTERNAL_ERROR', 500)
    return wrapper


def require_param(request, *names: str) -> str:
    """
    Return the first non-empty query parameter among `names`.

    Later names are legacy aliases of the first one.

    Raises:
        RequestValidationError: If none of them is present and non-empty
    """
    for name in names:
        value = request.GET.get(name, '')
        if value and value.strip():
            return value.strip()
    raise RequestValidationError(f"{names[0]} query parameter is required.")
