"""
Event publisher for ingestion progress.

Publishes events to the Django Channels layer for broadcast to WebSocket
clients. Publishing is best effort: a failure never fails the job.
"""
import logging
from typing import Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from apps.jobs.events import JobEvent, get_group_name

logger = logging.getLogger(__name__)


def publish_progress(
    job_id: str,
    public_id: str,
    stage: str,
    progress: int,
    message: Optional[str] = None
) -> None:
    """Publish a progress event to the job's WebSocket group."""
    event = JobEvent.progress(job_id, public_id, stage, progress, message)
    _send_to_job(job_id, "job_progress", event)


def publish_complete(job_id: str, public_id: str, chunks: int) -> None:
    """Publish a completion event."""
    _send_to_job(job_id, "job_complete", JobEvent.complete(job_id, public_id, chunks))


def publish_failed(job_id: str, public_id: str, error_message: str) -> None:
    """Publish a failure event."""
    _send_to_job(job_id, "job_failed", JobEvent.failed(job_id, public_id, error_message))


def _send_to_job(job_id: str, event_type: str, event: JobEvent) -> None:
    try:
        channel_layer = get_channel_layer()

        if channel_layer is None:
            logger.debug("Channel layer not available, cannot send event")
            return

        group_name = get_group_name(job_id)
        async_to_sync(channel_layer.group_send)(
            group_name,
            {
                "type": event_type,
                "data": event.to_dict()
            }
        )

        logger.debug(f"Published {event_type} to {group_name}: stage={event.stage}, progress={event.progress}")

    except Exception as e:
        logger.warning(f"Failed to publish event: {e}")
