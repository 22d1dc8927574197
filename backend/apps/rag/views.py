"""
RAG API views.

Provides endpoints for:
- GET /api/summarize - Full-document summary
- GET /chat - Grounded question answering scoped to one document
"""
import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET

from apps.core.http import api_errors, require_param
from apps.core.services import get_services
from apps.docs.storage import validate_public_id

logger = logging.getLogger(__name__)


@csrf_exempt
@require_GET
@api_errors
def summarize(request):
    """
    GET /api/summarize?publicId=...   (legacy: fileName=...)

    Returns:
        {"summary": "..."}

    404 EMPTY_CONTENT while the document is still being ingested, or when
    no text could be extracted from it.
    """
    public_id = validate_public_id(require_param(request, 'publicId', 'fileName'))
    summary = get_services().responder.summarize(public_id)
    return JsonResponse({'summary': summary})


@csrf_exempt
@require_GET
@api_errors
def chat(request):
    """
    GET /chat?message=...&publicId=...   (legacy: selectedPdfPrefixedName=...)

    Returns:
        {
            "message": "answer text",
            "docs": [
                {"pageContent": "...", "metadata": {"source_id": "...", "page": 2}, "score": 0.83}
            ]
        }
    """
    message = require_param(request, 'message')
    public_id = validate_public_id(require_param(request, 'publicId', 'selectedPdfPrefixedName'))

    answer = get_services().responder.chat(public_id, message)
    return JsonResponse(answer.to_dict())
