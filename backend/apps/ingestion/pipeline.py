"""
Ingestion of a single job.

Steps:
1. Fetch the blob bytes from the job's URL
2. Write them to a uniquely named scratch file
3. Extract text per page
4. Tag each page with its source id and page number
5. Embed every page
6. Ensure the collection, replace the document's points in one batch upsert
7. Remove the scratch file, on every exit path
"""
import logging
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional

import httpx

from apps.core.config import ServiceConfig
from apps.core.errors import FetchFailed, RequestValidationError
from apps.ingestion.extractor import extract_pages
from apps.jobs.events import IngestionStage
from apps.rag.embeddings import OpenAIEmbedder
from apps.vectors.models import DocumentChunk
from apps.vectors.qdrant import QdrantIndex

logger = logging.getLogger(__name__)

# Progress callback(stage, percent)
ProgressCallback = Callable[[str, int], None]


@dataclass
class UploadJob:
    """Payload of an ingestion job."""
    job_id: str
    public_id: str
    file_url: str
    original_name: str = ''

    @classmethod
    def from_payload(cls, job_id: str, data: dict) -> 'UploadJob':
        public_id = data.get('publicId') or ''
        file_url = data.get('fileUrl') or ''
        if not public_id or not file_url:
            raise RequestValidationError(f"Job {job_id} payload is missing publicId or fileUrl")
        return cls(
            job_id=job_id,
            public_id=public_id,
            file_url=file_url,
            original_name=data.get('originalName', ''),
        )


@dataclass
class IngestionResult:
    source_id: str
    chunks: int

    def to_dict(self) -> dict:
        return {'publicId': self.source_id, 'chunks': self.chunks}


@contextmanager
def scratch_file(content: bytes, directory: Optional[Path], prefix: str) -> Iterator[Path]:
    """
    Write bytes to a unique temporary file and remove it on exit.

    A failure to remove the file is logged, never raised.
    """
    if directory is not None:
        directory.mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(prefix=prefix, suffix='.pdf', dir=directory)
    path = Path(name)
    try:
        with os.fdopen(fd, 'wb') as handle:
            handle.write(content)
        yield path
    finally:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove scratch file {path}: {e}")


class IngestionPipeline:
    """Runs the ingestion steps for one job. Holds no per-job state."""

    def __init__(
        self,
        config: ServiceConfig,
        index: QdrantIndex,
        embedder: OpenAIEmbedder,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.index = index
        self.embedder = embedder
        self.collection = config.qdrant_collection
        self.dimensions = config.openai_embed_dimensions
        self.scratch_dir = config.scratch_dir
        self.fetch_timeout = config.fetch_timeout
        self._transport = transport

    def fetch(self, url: str) -> bytes:
        """
        Download the stored blob.

        Raises:
            FetchFailed: On a non-success status or transport error
        """
        try:
            with httpx.Client(
                timeout=self.fetch_timeout, follow_redirects=True, transport=self._transport
            ) as client:
                response = client.get(url)
        except httpx.TimeoutException:
            raise FetchFailed(f"Timed out fetching {url}")
        except httpx.RequestError as e:
            raise FetchFailed(f"Could not fetch {url}: {e}")

        if not response.is_success:
            raise FetchFailed(f"Fetching {url} returned {response.status_code}")

        return response.content

    def process(self, job: UploadJob, on_progress: Optional[ProgressCallback] = None) -> IngestionResult:
        """
        Ingest one uploaded document.

        Any exception propagates to the caller, which records the job failure.
        """
        def progress(stage: IngestionStage, percent: int):
            if on_progress:
                on_progress(stage.value, percent)

        progress(IngestionStage.FETCH, 10)
        content = self.fetch(job.file_url)
        logger.info(f"Job {job.job_id}: fetched {len(content)} bytes for {job.public_id}")

        with scratch_file(content, self.scratch_dir, prefix=f"aidocify-{job.job_id}-") as path:
            progress(IngestionStage.EXTRACT, 30)
            pages = extract_pages(path)

        if not pages:
            logger.info(f"Job {job.job_id}: no extractable text in {job.public_id}, nothing to index")
            return IngestionResult(source_id=job.public_id, chunks=0)

        chunks = [
            DocumentChunk(
                text=page.text,
                source_id=job.public_id,
                page=page.page,
                original_name=job.original_name,
            )
            for page in pages
        ]

        progress(IngestionStage.EMBED, 60)
        vectors = self.embedder.embed_documents([c.text for c in chunks])
        for chunk, vector in zip(chunks, vectors):
            chunk.embedding = vector

        progress(IngestionStage.UPSERT, 90)
        self.index.ensure_collection(self.collection, self.dimensions)
        # Replace semantics: a re-delivered job must not leave stale pages behind
        self.index.delete_by_source(self.collection, job.public_id)
        written = self.index.upsert(self.collection, chunks)

        logger.info(f"Job {job.job_id}: indexed {written} chunks for {job.public_id}")
        return IngestionResult(source_id=job.public_id, chunks=written)
