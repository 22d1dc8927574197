"""
WebSocket consumer for job progress events.

Clients connect to ws/jobs/<jobId>/ to receive updates for one ingestion job
instead of polling the job-status endpoint.
"""
import logging

from channels.generic.websocket import AsyncJsonWebsocketConsumer

from apps.jobs.events import get_group_name

logger = logging.getLogger(__name__)


class JobProgressConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer that joins the group of one job and forwards its
    progress, completion and failure events to the client.
    """

    async def connect(self):
        self.job_id = self.scope["url_route"]["kwargs"]["job_id"]
        self.group_name = get_group_name(self.job_id)

        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()

        logger.info(f"WebSocket connected for job {self.job_id}")

        await self.send_json({
            "type": "connected",
            "message": "Connected to job progress stream",
            "jobId": self.job_id
        })

    async def disconnect(self, close_code):
        if hasattr(self, 'group_name'):
            await self.channel_layer.group_discard(self.group_name, self.channel_name)
            logger.info(f"WebSocket disconnected for job {self.job_id} (code={close_code})")

    async def receive_json(self, content):
        if content.get("type") == "ping":
            await self.send_json({"type": "pong"})

    async def job_progress(self, event):
        await self.send_json({"type": "job_progress", "data": event["data"]})

    async def job_complete(self, event):
        await self.send_json({"type": "job_complete", "data": event["data"]})

    async def job_failed(self, event):
        await self.send_json({"type": "job_failed", "data": event["data"]})
