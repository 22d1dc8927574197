"""
Job status view.
"""
import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET

from apps.core.errors import NotFound
from apps.core.http import api_errors
from apps.core.services import get_services

logger = logging.getLogger(__name__)


@csrf_exempt
@require_GET
@api_errors
def job_status(request, job_id):
    """
    Poll ingestion progress.

    GET /api/job-status/<jobId>

    Returns:
        {
            "jobId": "42",
            "status": "waiting|active|completed|failed",
            "progress": 0-100,
            "isCompleted": false,
            "isFailed": false,
            "failedReason": null,
            "timestamp": 1700000000000,
            "processedOn": null,
            "finishedOn": null
        }
    """
    status = get_services().queue.get_status(job_id)
    if status is None:
        raise NotFound('Job not found.')
    return JsonResponse(status.to_dict())
