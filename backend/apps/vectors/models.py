"""
Chunk types stored in and returned by the vector index.
"""
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

# Namespace for deterministic point ids: uuid5(namespace, "<source_id>:<page>")
POINT_ID_NAMESPACE = uuid.UUID('6f1c7d4e-2b1a-4f55-9a43-0c2d7e9b8a10')


@dataclass
class DocumentChunk:
    """
    One unit of extracted text (one PDF page) with its metadata.

    source_id must equal the public id of the blob the text came from; it is
    the only thing that scopes retrieval to a single document.
    """
    text: str
    source_id: str
    page: Optional[int] = None
    original_name: str = ''
    embedding: List[float] = field(default_factory=list, repr=False)

    @property
    def point_id(self) -> str:
        """Deterministic id, so re-ingesting a document overwrites its points."""
        return str(uuid.uuid5(POINT_ID_NAMESPACE, f"{self.source_id}:{self.page or 0}"))

    @property
    def metadata(self) -> dict:
        data = {'source_id': self.source_id}
        if self.page is not None:
            data['page'] = self.page
        if self.original_name:
            data['original_name'] = self.original_name
        return data

    def to_payload(self) -> dict:
        return {'page_content': self.text, 'metadata': self.metadata}

    @classmethod
    def from_payload(cls, payload: dict) -> 'DocumentChunk':
        metadata = payload.get('metadata') or {}
        page = metadata.get('page')
        return cls(
            text=payload.get('page_content', ''),
            source_id=metadata.get('source_id', ''),
            page=int(page) if page is not None else None,
            original_name=metadata.get('original_name', ''),
        )

    def to_dict(self) -> dict:
        """Convert to the JSON shape returned to clients as a citation."""
        return {'pageContent': self.text, 'metadata': self.metadata}


@dataclass
class ScoredChunk:
    """A chunk returned by similarity search."""
    chunk: DocumentChunk
    score: float

    def to_dict(self) -> dict:
        data = self.chunk.to_dict()
        data['score'] = round(self.score, 4)
        return data
