import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class CoreConfig(AppConfig):
    name = 'apps.core'
    verbose_name = 'AiDocify Core'

    def ready(self):
        from apps.core.config import get_service_config, warn_missing_requirements

        config = get_service_config()
        warn_missing_requirements(config)
        logger.info(
            f"Qdrant: {config.qdrant_url} (collection {config.qdrant_collection}), "
            f"Redis: {config.redis_url}, blob backend: {config.blob_backend}"
        )
