"""
Qdrant vector index adapter.

Wraps qdrant-client. Points carry a payload of
{"page_content": ..., "metadata": {"source_id": ..., "page": ...}} and every
read can be filtered by exact match on metadata.source_id.
"""
import logging
from typing import Iterable, List, Optional

from qdrant_client import QdrantClient
from qdrant_client.http import models as rest
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse

from apps.core.config import ServiceConfig
from apps.core.errors import VectorIndexError
from apps.vectors.models import DocumentChunk, ScoredChunk

logger = logging.getLogger(__name__)

SOURCE_ID_FIELD = 'metadata.source_id'

# Page size for scroll requests
SCROLL_PAGE_SIZE = 256

CLIENT_ERRORS = (UnexpectedResponse, ResponseHandlingException, ValueError)


def source_filter(source_id: str) -> rest.Filter:
    """Qdrant filter matching points of one document."""
    return rest.Filter(
        must=[rest.FieldCondition(key=SOURCE_ID_FIELD, match=rest.MatchValue(value=source_id))]
    )


def _chunk_from_point(point) -> DocumentChunk:
    return DocumentChunk.from_payload(point.payload or {})


class QdrantIndex:
    """
    Vector index backed by a Qdrant collection.

    Missing collections read as empty: a document that was never ingested
    simply has no chunks.
    """

    def __init__(self, config: ServiceConfig, client: Optional[QdrantClient] = None):
        if client is None:
            client = QdrantClient(
                url=config.qdrant_url,
                api_key=config.qdrant_api_key or None,
                timeout=int(config.qdrant_timeout),
            )
        self.client = client

    def _fail(self, action: str, error: Exception) -> VectorIndexError:
        if isinstance(error, UnexpectedResponse):
            logger.error(f"Qdrant {action} failed: {error.status_code} {error.content[:200]!r}")
            return VectorIndexError(f"Vector index error: {error.status_code}")
        if isinstance(error, ResponseHandlingException):
            logger.error(f"Qdrant connection error during {action}: {error}")
            return VectorIndexError('Could not connect to vector index')
        logger.error(f"Qdrant {action} failed: {error}")
        return VectorIndexError(f"Vector index error: {error}")

    def collection_exists(self, collection: str) -> bool:
        try:
            return self.client.collection_exists(collection)
        except CLIENT_ERRORS as e:
            raise self._fail('collection check', e)

    def ensure_collection(self, collection: str, dimension: int, distance: str = 'Cosine') -> bool:
        """
        Create the collection if it does not exist yet, and the keyword index
        on metadata.source_id if that is missing.

        Idempotent: an existing collection, or one created concurrently by
        another worker, is not an error.

        Returns:
            True if this call created the collection
        """
        created = False
        if not self.collection_exists(collection):
            try:
                self.client.create_collection(
                    collection_name=collection,
                    vectors_config=rest.VectorParams(size=dimension, distance=rest.Distance(distance)),
                )
                created = True
                logger.info(f"Created collection {collection} (size={dimension}, distance={distance})")
            except UnexpectedResponse as e:
                if e.status_code != 409:
                    raise self._fail('create collection', e)
                logger.info(f"Collection {collection} was created concurrently")
            except CLIENT_ERRORS as e:
                raise self._fail('create collection', e)

        self.ensure_source_index(collection)
        return created

    def ensure_source_index(self, collection: str) -> bool:
        """
        Create the keyword payload index on metadata.source_id if it is missing.

        Returns:
            True if the index was requested by this call
        """
        try:
            info = self.client.get_collection(collection)
            if SOURCE_ID_FIELD in (info.payload_schema or {}):
                return False
            self.client.create_payload_index(
                collection_name=collection,
                field_name=SOURCE_ID_FIELD,
                field_schema=rest.PayloadSchemaType.KEYWORD,
                wait=True,
            )
        except CLIENT_ERRORS as e:
            raise self._fail('create payload index', e)

        logger.info(f"Created keyword index on {SOURCE_ID_FIELD} in {collection}")
        return True

    def upsert(self, collection: str, chunks: Iterable[DocumentChunk]) -> int:
        """
        Insert or overwrite points in a single batch request.

        Returns:
            Number of points written
        """
        points = []
        for chunk in chunks:
            if not chunk.embedding:
                raise VectorIndexError(f"Chunk for page {chunk.page} has no embedding")
            points.append(rest.PointStruct(
                id=chunk.point_id,
                vector=list(chunk.embedding),
                payload=chunk.to_payload(),
            ))

        if not points:
            return 0

        try:
            self.client.upsert(collection_name=collection, points=points, wait=True)
        except CLIENT_ERRORS as e:
            raise self._fail('upsert', e)

        logger.info(f"Upserted {len(points)} points into {collection}")
        return len(points)

    def search(
        self,
        collection: str,
        vector: List[float],
        k: int,
        source_id: Optional[str] = None,
    ) -> List[ScoredChunk]:
        """
        Nearest-neighbour search, optionally scoped to one document.

        Returns:
            Chunks ordered by similarity (best first)
        """
        if not self.collection_exists(collection):
            logger.info(f"Collection {collection} does not exist, no results")
            return []

        try:
            response = self.client.query_points(
                collection_name=collection,
                query=list(vector),
                query_filter=source_filter(source_id) if source_id else None,
                limit=k,
                with_payload=True,
            )
        except CLIENT_ERRORS as e:
            raise self._fail('search', e)

        results = [
            ScoredChunk(chunk=_chunk_from_point(point), score=float(point.score))
            for point in response.points
        ]
        logger.info(f"Search returned {len(results)} chunks (k={k}, source_id={source_id})")
        return results

    def scroll_by_source(self, collection: str, source_id: str) -> List[DocumentChunk]:
        """
        Fetch every chunk of one document, ordered by page.
        """
        if not self.collection_exists(collection):
            return []

        chunks: List[DocumentChunk] = []
        offset = None
        try:
            while True:
                points, offset = self.client.scroll(
                    collection_name=collection,
                    scroll_filter=source_filter(source_id),
                    limit=SCROLL_PAGE_SIZE,
                    offset=offset,
                    with_payload=True,
                    with_vectors=False,
                )
                chunks.extend(_chunk_from_point(point) for point in points)
                if offset is None:
                    break
        except CLIENT_ERRORS as e:
            raise self._fail('scroll', e)

        chunks.sort(key=lambda c: c.page or 0)
        return chunks

    def count_by_source(self, collection: str, source_id: str) -> int:
        if not self.collection_exists(collection):
            return 0
        try:
            result = self.client.count(
                collection_name=collection,
                count_filter=source_filter(source_id),
                exact=True,
            )
        except CLIENT_ERRORS as e:
            raise self._fail('count', e)
        return result.count

    def delete_by_source(self, collection: str, source_id: str) -> None:
        """Remove every point of one document. A missing collection is a no-op."""
        if not self.collection_exists(collection):
            return
        try:
            self.client.delete(
                collection_name=collection,
                points_selector=rest.FilterSelector(filter=source_filter(source_id)),
                wait=True,
            )
        except CLIENT_ERRORS as e:
            raise self._fail('delete', e)
        logger.info(f"Deleted points for {source_id} from {collection}")

    def ping(self) -> bool:
        try:
            self.client.get_collections()
        except CLIENT_ERRORS as e:
            raise self._fail('ping', e)
        return True
