"""
Embedding service.

Uses the OpenAI embeddings endpoint for both document pages (ingestion) and
user questions (chat), so both sides always use the same model.
"""
import logging
import re
from typing import List, Optional

import httpx

from apps.core.config import ServiceConfig
from apps.core.errors import EmbeddingError, RequestValidationError

logger = logging.getLogger(__name__)

# Inputs per request
EMBED_BATCH_SIZE = 100

MAX_QUERY_LENGTH = 2000


def normalize_query(query: str) -> str:
    """
    Normalize a user query for embedding.

    - Strip leading/trailing whitespace
    - Collapse multiple whitespace to single space

    Raises:
        RequestValidationError: If query is empty or too long
    """
    normalized = re.sub(r'\s+', ' ', (query or '').strip())

    if not normalized:
        raise RequestValidationError("Query message is required.")

    if len(normalized) > MAX_QUERY_LENGTH:
        raise RequestValidationError(f"Query too long (max {MAX_QUERY_LENGTH} characters)")

    return normalized


class OpenAIEmbedder:
    """Client for the OpenAI /embeddings endpoint."""

    def __init__(self, config: ServiceConfig, transport: Optional[httpx.BaseTransport] = None):
        self.api_key = config.openai_api_key
        self.base_url = config.openai_base_url.rstrip('/')
        self.model = config.openai_embed_model
        self.dimensions = config.openai_embed_dimensions
        self.timeout = config.openai_timeout
        self._transport = transport

    def _embed_batch(self, client: httpx.Client, texts: List[str]) -> List[List[float]]:
        response = client.post(
            f"{self.base_url}/embeddings",
            json={"model": self.model, "input": texts},
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        response.raise_for_status()
        data = response.json().get("data", [])

        if len(data) != len(texts):
            raise EmbeddingError(
                f"Embedding service returned {len(data)} vectors for {len(texts)} inputs"
            )

        # The API may not preserve order; 'index' is authoritative
        vectors = [item["embedding"] for item in sorted(data, key=lambda d: d.get("index", 0))]

        for vector in vectors:
            if len(vector) != self.dimensions:
                logger.warning(f"Expected {self.dimensions} dimensions, got {len(vector)}")
                break

        return vectors

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts, in input order.

        Raises:
            EmbeddingError: If any request fails
        """
        if not texts:
            return []

        if not self.api_key:
            raise EmbeddingError("OPENAI_API_KEY not configured")

        if any(not t or not t.strip() for t in texts):
            raise EmbeddingError("Cannot generate embedding for empty text")

        embeddings: List[List[float]] = []
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                for start in range(0, len(texts), EMBED_BATCH_SIZE):
                    batch = texts[start:start + EMBED_BATCH_SIZE]
                    embeddings.extend(self._embed_batch(client, batch))
        except httpx.HTTPStatusError as e:
            logger.error(f"Embedding request failed: {e}")
            raise EmbeddingError(f"Embedding service error: {e.response.status_code}")
        except httpx.TimeoutException:
            logger.error("Embedding request timed out")
            raise EmbeddingError("Embedding service timed out")
        except httpx.RequestError as e:
            logger.error(f"Embedding connection error: {e}")
            raise EmbeddingError("Could not connect to embedding service")
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Unexpected embedding response format: {e}")
            raise EmbeddingError("Invalid response from embedding service")

        logger.info(f"Generated {len(embeddings)} embeddings with {self.model}")
        return embeddings

    def embed_query(self, query: str) -> List[float]:
        """Generate the embedding of a single (normalized) query."""
        return self.embed_documents([query])[0]
