"""
ASGI config for the AiDocify backend.

Handles both HTTP and WebSocket connections.
"""
import os

from channels.routing import ProtocolTypeRouter, URLRouter
from channels.security.websocket import OriginValidator
from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

# Initialize Django ASGI application early to ensure the AppRegistry
# is populated before importing code that may import app modules.
django_asgi_app = get_asgi_application()

from django.conf import settings  # noqa: E402
from apps.jobs.routing import websocket_urlpatterns  # noqa: E402

application = ProtocolTypeRouter({
    # HTTP requests go to Django
    "http": django_asgi_app,

    # WebSocket connections are limited to the same allowed origins
    "websocket": OriginValidator(
        URLRouter(websocket_urlpatterns),
        settings.CORS_ALLOWED_ORIGINS,
    ),
})
