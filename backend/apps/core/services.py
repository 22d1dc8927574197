"""
Service container.

Builds every external-collaborator adapter once from the ServiceConfig and
hands them out to views and the worker.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from apps.core.config import ServiceConfig, get_service_config
from apps.docs.storage import get_blob_store
from apps.ingestion.pipeline import IngestionPipeline
from apps.jobs.queue import JobQueue
from apps.rag.embeddings import OpenAIEmbedder
from apps.rag.llm_client import BaseLLMClient, OpenAIChatClient
from apps.rag.responder import Responder
from apps.vectors.qdrant import QdrantIndex

logger = logging.getLogger(__name__)


@dataclass
class Services:
    config: ServiceConfig
    blob_store: object
    queue: JobQueue
    index: QdrantIndex
    embedder: OpenAIEmbedder
    llm: BaseLLMClient
    responder: Responder
    pipeline: IngestionPipeline


def build_services(config: ServiceConfig) -> Services:
    """Wire all adapters from one config."""
    index = QdrantIndex(config)
    embedder = OpenAIEmbedder(config)
    llm = OpenAIChatClient(config)

    return Services(
        config=config,
        blob_store=get_blob_store(config),
        queue=JobQueue.from_config(config),
        index=index,
        embedder=embedder,
        llm=llm,
        responder=Responder(
            index=index,
            collection=config.qdrant_collection,
            embedder=embedder,
            llm=llm,
            top_k=config.retrieval_top_k,
        ),
        pipeline=IngestionPipeline(config, index=index, embedder=embedder),
    )


_services: Optional[Services] = None


def get_services() -> Services:
    """Get the service container (lazy initialization)."""
    global _services
    if _services is None:
        _services = build_services(get_service_config())
    return _services


def set_services(services: Optional[Services]):
    """Replace the service container. Useful for testing."""
    global _services
    _services = services
