"""
Retrieval-augmented responder.

- summarize(): full-document summary from every chunk of one document
- chat(): grounded answer from the top-k chunks of one document

Both are scoped by source id; chunks of other documents are never used.
"""
import logging
from dataclasses import dataclass, field
from typing import List

from apps.core.errors import EmptyContent
from apps.rag.embeddings import OpenAIEmbedder, normalize_query
from apps.rag.llm_client import BaseLLMClient, LLMMessage
from apps.vectors.models import ScoredChunk
from apps.vectors.qdrant import QdrantIndex

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 4
MIN_TOP_K = 2

SUMMARY_TEMPERATURE = 0.3
SUMMARY_MAX_TOKENS = 800
CHAT_TEMPERATURE = 0.2
CHAT_MAX_TOKENS = 600

# Returned instead of calling the model when nothing was retrieved
NO_CONTEXT_ANSWER = "I couldn't find information about that in this document yet."

SUMMARY_PROMPT = """Produce a concise and insightful summary of the document below.

Cover:
1. Purpose: what the document is and why it was written.
2. Key insights: the main findings, arguments or facts.
3. Relevance: who should care and in what context.
4. Significance: what follows from it or why it matters.

Use only the document text. Keep it to a few short paragraphs.

DOCUMENT:
{document}"""

CHAT_SYSTEM_PROMPT = """You are a helpful assistant answering questions about a PDF document.

STRICT RULES:
1. Use ONLY the context below.
2. If the answer is not contained in the context, say that the document does not contain it.
3. Be concise and factual. Do not use outside knowledge.

Context:
---
{context}
---"""


@dataclass
class ChatAnswer:
    """Answer plus the chunks it was grounded on."""
    answer: str
    chunks: List[ScoredChunk] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'message': self.answer,
            'docs': [c.to_dict() for c in self.chunks],
        }


def build_context(chunks: List[ScoredChunk]) -> str:
    return "\n\n---\n\n".join(c.chunk.text for c in chunks)


class Responder:
    """Answers and summaries grounded in one document's chunks."""

    def __init__(
        self,
        index: QdrantIndex,
        collection: str,
        embedder: OpenAIEmbedder,
        llm: BaseLLMClient,
        top_k: int = DEFAULT_TOP_K,
    ):
        self.index = index
        self.collection = collection
        self.embedder = embedder
        self.llm = llm
        self.top_k = max(MIN_TOP_K, top_k)

    def summarize(self, source_id: str) -> str:
        """
        Summarize a whole document.

        Raises:
            EmptyContent: If the document has no chunks (still ingesting, or
                nothing could be extracted)
            LLMError: If the model call fails
        """
        chunks = self.index.scroll_by_source(self.collection, source_id)
        text = "\n\n".join(c.text for c in chunks if c.text.strip()).strip()

        if not text:
            raise EmptyContent(
                f"No content found for {source_id} yet. "
                "It may still be processing, or no text could be extracted."
            )

        logger.info(f"Summarizing {source_id}: {len(chunks)} chunks, {len(text)} chars")

        response = self.llm.chat(
            [LLMMessage(role="user", content=SUMMARY_PROMPT.format(document=text))],
            temperature=SUMMARY_TEMPERATURE,
            max_tokens=SUMMARY_MAX_TOKENS,
        )
        return response.content

    def chat(self, source_id: str, query: str) -> ChatAnswer:
        """
        Answer a question from the document's most relevant chunks.

        If nothing is retrieved, returns NO_CONTEXT_ANSWER without calling
        the model.
        """
        question = normalize_query(query)
        query_vector = self.embedder.embed_query(question)

        chunks = self.index.search(
            self.collection, query_vector, self.top_k, source_id=source_id
        )
        # The filter already scopes the search; drop anything that slipped through
        chunks = [c for c in chunks if c.chunk.source_id == source_id]

        if not chunks:
            logger.info(f"No chunks for {source_id}, returning fallback answer")
            return ChatAnswer(answer=NO_CONTEXT_ANSWER, chunks=[])

        messages = [
            LLMMessage(role="system", content=CHAT_SYSTEM_PROMPT.format(context=build_context(chunks))),
            LLMMessage(role="user", content=question),
        ]
        response = self.llm.chat(messages, temperature=CHAT_TEMPERATURE, max_tokens=CHAT_MAX_TOKENS)

        return ChatAnswer(answer=response.content, chunks=chunks)
