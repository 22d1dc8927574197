"""
Service configuration.

All credentials and endpoints are read from Django settings exactly once and
frozen into a ServiceConfig. Components receive the config (or the values
they need) through their constructors instead of reading settings ad hoc.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceConfig:
    """Process-wide configuration for the ingestion/retrieval pipeline."""

    # OpenAI (embeddings + chat completion)
    openai_api_key: str = ''
    openai_base_url: str = 'https://api.openai.com/v1'
    openai_embed_model: str = 'text-embedding-3-small'
    openai_embed_dimensions: int = 1536
    openai_chat_model: str = 'gpt-3.5-turbo'
    openai_timeout: float = 120.0

    # Qdrant (vector index)
    qdrant_url: str = 'http://localhost:6333'
    qdrant_api_key: str = ''
    qdrant_collection: str = 'Ai_Docs'
    qdrant_timeout: float = 30.0

    # Redis (job queue broker)
    redis_url: str = 'redis://localhost:6379/0'
    job_queue_name: str = 'file-upload-queue'
    job_attempts: int = 1
    job_lock_seconds: int = 300
    job_retention_seconds: int = 86400

    # Ingestion worker
    worker_concurrency: int = 5
    worker_poll_interval: float = 2.0
    scratch_dir: Optional[Path] = None
    fetch_timeout: float = 60.0

    # Blob store
    blob_backend: str = 'cloudinary'
    cloudinary_cloud_name: str = ''
    cloudinary_api_key: str = ''
    cloudinary_api_secret: str = ''
    cloudinary_folder: str = 'aidocify'
    cloudinary_timeout: float = 60.0
    upload_root: Path = Path('uploads')
    public_base_url: str = 'http://localhost:8000'

    # Retrieval
    retrieval_top_k: int = 4

    allowed_origins: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_settings(cls, settings) -> 'ServiceConfig':
        """Build the config from a Django settings object."""
        scratch_dir = getattr(settings, 'SCRATCH_DIR', None)
        return cls(
            openai_api_key=getattr(settings, 'OPENAI_API_KEY', ''),
            openai_base_url=getattr(settings, 'OPENAI_BASE_URL', cls.openai_base_url),
            openai_embed_model=getattr(settings, 'OPENAI_EMBED_MODEL', cls.openai_embed_model),
            openai_embed_dimensions=int(getattr(settings, 'OPENAI_EMBED_DIMENSIONS', cls.openai_embed_dimensions)),
            openai_chat_model=getattr(settings, 'OPENAI_CHAT_MODEL', cls.openai_chat_model),
            openai_timeout=float(getattr(settings, 'OPENAI_TIMEOUT', cls.openai_timeout)),
            qdrant_url=getattr(settings, 'QDRANT_URL', cls.qdrant_url),
            qdrant_api_key=getattr(settings, 'QDRANT_API_KEY', ''),
            qdrant_collection=getattr(settings, 'QDRANT_COLLECTION', cls.qdrant_collection),
            qdrant_timeout=float(getattr(settings, 'QDRANT_TIMEOUT', cls.qdrant_timeout)),
            redis_url=getattr(settings, 'REDIS_URL', cls.redis_url),
            job_queue_name=getattr(settings, 'JOB_QUEUE_NAME', cls.job_queue_name),
            job_attempts=max(1, int(getattr(settings, 'JOB_ATTEMPTS', cls.job_attempts))),
            job_lock_seconds=int(getattr(settings, 'JOB_LOCK_SECONDS', cls.job_lock_seconds)),
            job_retention_seconds=int(getattr(settings, 'JOB_RETENTION_SECONDS', cls.job_retention_seconds)),
            worker_concurrency=max(1, int(getattr(settings, 'WORKER_CONCURRENCY', cls.worker_concurrency))),
            worker_poll_interval=float(getattr(settings, 'WORKER_POLL_INTERVAL', cls.worker_poll_interval)),
            scratch_dir=Path(scratch_dir) if scratch_dir else None,
            fetch_timeout=float(getattr(settings, 'FETCH_TIMEOUT', cls.fetch_timeout)),
            blob_backend=getattr(settings, 'BLOB_BACKEND', cls.blob_backend).lower(),
            cloudinary_cloud_name=getattr(settings, 'CLOUDINARY_CLOUD_NAME', ''),
            cloudinary_api_key=getattr(settings, 'CLOUDINARY_API_KEY', ''),
            cloudinary_api_secret=getattr(settings, 'CLOUDINARY_API_SECRET', ''),
            cloudinary_folder=getattr(settings, 'CLOUDINARY_FOLDER', cls.cloudinary_folder),
            upload_root=Path(getattr(settings, 'UPLOAD_ROOT', cls.upload_root)),
            public_base_url=getattr(settings, 'PUBLIC_BASE_URL', cls.public_base_url).rstrip('/'),
            retrieval_top_k=int(getattr(settings, 'RETRIEVAL_TOP_K', cls.retrieval_top_k)),
            allowed_origins=tuple(getattr(settings, 'CORS_ALLOWED_ORIGINS', ())),
        )

    def missing_requirements(self) -> list:
        """Return human-readable names of required settings that are unset."""
        missing = []
        if not self.openai_api_key:
            missing.append('OPENAI_API_KEY')
        if not self.qdrant_url:
            missing.append('QDRANT_URL')
        if not self.qdrant_collection:
            missing.append('QDRANT_COLLECTION')
        if not self.redis_url:
            missing.append('REDIS_URL')
        if self.blob_backend == 'cloudinary':
            for name, value in (
                ('CLOUDINARY_CLOUD_NAME', self.cloudinary_cloud_name),
                ('CLOUDINARY_API_KEY', self.cloudinary_api_key),
                ('CLOUDINARY_API_SECRET', self.cloudinary_api_secret),
            ):
                if not value:
                    missing.append(name)
        return missing


_config: Optional[ServiceConfig] = None


def get_service_config() -> ServiceConfig:
    """Get the service config (built from Django settings on first use)."""
    global _config
    if _config is None:
        from django.conf import settings
        _config = ServiceConfig.from_settings(settings)
    return _config


def reset_service_config():
    """Drop the cached config. Useful for testing."""
    global _config
    _config = None


def warn_missing_requirements(config: ServiceConfig) -> None:
    """Log a loud warning for every required setting that is missing."""
    for name in config.missing_requirements():
        logger.warning(
            f"{name} is not set. The ingestion/chat pipeline will not work correctly without it."
        )
