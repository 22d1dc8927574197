"""
URL configuration for the AiDocify backend.
"""
from django.urls import path, include

from apps.core.health import healthz, readyz, root

urlpatterns = [
    # Health check endpoints
    path('', root, name='root'),
    path('healthz', healthz, name='healthz'),
    path('readyz', readyz, name='readyz'),

    # API routes
    path('', include('apps.docs.urls')),
    path('', include('apps.jobs.urls')),
    path('', include('apps.rag.urls')),
]
