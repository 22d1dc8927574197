"""
Origin allow-list.

django-cors-headers adds the CORS response headers for allowed origins; this
middleware rejects outright any request whose Origin header is not listed.
Requests without an Origin header (curl, server-to-server) pass through.
"""
import logging

from django.conf import settings

from apps.core.http import error_response

logger = logging.getLogger(__name__)


class OriginAllowListMiddleware:

    def __init__(self, get_response):
        self.get_response = get_response
        self.allowed = {o.rstrip('/') for o in getattr(settings, 'CORS_ALLOWED_ORIGINS', [])}

    def __call__(self, request):
        origin = request.headers.get('Origin')
        if origin and origin.rstrip('/') not in self.allowed:
            logger.warning(f"Rejected request from origin {origin} to {request.path}")
            return error_response('Origin not allowed', 'ORIGIN_NOT_ALLOWED', 403)
        return self.get_response(request)
