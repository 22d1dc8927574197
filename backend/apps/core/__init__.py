"""
Shared plumbing for the AiDocify backend.

Provides:
- Service configuration built once at startup
- Error taxonomy mapped to HTTP status codes
- Service container wiring the external collaborators
- Origin allow-list middleware and health checks
"""
