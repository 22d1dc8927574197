"""
Job progress event schema.

Event contract for real-time ingestion updates pushed over WebSocket, as an
alternative to polling /api/job-status/<jobId>.

Events are sent to the Channels group of the job; clients subscribe by
connecting to ws/jobs/<jobId>/.
"""
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Optional


class EventType(str, Enum):
    """Types of WebSocket events."""
    JOB_PROGRESS = "job_progress"
    JOB_COMPLETE = "job_complete"
    JOB_FAILED = "job_failed"


class IngestionStage(str, Enum):
    """
    Stages of the ingestion pipeline.

    Order: FETCH -> EXTRACT -> EMBED -> UPSERT -> COMPLETE
    Or FAILED at any point.
    """
    FETCH = "FETCH"
    EXTRACT = "EXTRACT"
    EMBED = "EMBED"
    UPSERT = "UPSERT"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"


@dataclass
class JobEvent:
    """
    Event sent to clients when a job changes.

    Schema:
    {
        "type": "job_progress",
        "jobId": "42",
        "publicId": "aidocify/<hex>-report.pdf",
        "stage": "FETCH|EXTRACT|EMBED|UPSERT|COMPLETE|FAILED",
        "progress": 0-100,
        "message": "optional human-readable message"
    }
    """
    type: str
    jobId: str
    publicId: str
    stage: str
    progress: int
    message: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def progress(
        cls,
        job_id: str,
        public_id: str,
        stage: str,
        progress: int,
        message: Optional[str] = None
    ) -> 'JobEvent':
        return cls(
            type=EventType.JOB_PROGRESS.value,
            jobId=job_id,
            publicId=public_id,
            stage=stage,
            progress=progress,
            message=message
        )

    @classmethod
    def complete(cls, job_id: str, public_id: str, chunks: int) -> 'JobEvent':
        return cls(
            type=EventType.JOB_COMPLETE.value,
            jobId=job_id,
            publicId=public_id,
            stage=IngestionStage.COMPLETE.value,
            progress=100,
            message=f"Ingested {chunks} chunks"
        )

    @classmethod
    def failed(cls, job_id: str, public_id: str, error_message: str) -> 'JobEvent':
        return cls(
            type=EventType.JOB_FAILED.value,
            jobId=job_id,
            publicId=public_id,
            stage=IngestionStage.FAILED.value,
            progress=0,
            message=error_message
        )


def get_group_name(job_id: str) -> str:
    """Channels group that receives the events of one job."""
    return f"job_{job_id}"
