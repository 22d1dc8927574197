"""
Error taxonomy for the AiDocify backend.

Every collaborator failure is raised as one of these exceptions and converted
to a JSON response at the API boundary (see apps.core.http). The worker only
uses them to decide the failure reason recorded on the job.
"""


class DocifyError(Exception):
    """Base class for all expected errors. Maps to HTTP 500."""
    status_code = 500
    code = 'INTERNAL_ERROR'

    def __init__(self, message: str = 'Internal server error'):
        super().__init__(message)
        self.message = message


class RequestValidationError(DocifyError):
    """A required request parameter is missing or malformed."""
    status_code = 400
    code = 'VALIDATION_ERROR'


class NotFound(DocifyError):
    """The referenced document, job or content does not exist."""
    status_code = 404
    code = 'NOT_FOUND'


class EmptyContent(DocifyError):
    """The document produced no extractable text or no retrievable chunks."""
    status_code = 404
    code = 'EMPTY_CONTENT'


class UpstreamUnavailable(DocifyError):
    """An external collaborator is unreachable or returned an error."""
    status_code = 500
    code = 'UPSTREAM_ERROR'


class StorageUnavailable(UpstreamUnavailable):
    """The blob store failed or timed out."""
    code = 'STORAGE_ERROR'


class QueueUnavailable(UpstreamUnavailable):
    """The job queue broker is unreachable."""
    code = 'QUEUE_ERROR'


class VectorIndexError(UpstreamUnavailable):
    """The vector index failed or timed out."""
    code = 'VECTOR_INDEX_ERROR'


class EmbeddingError(UpstreamUnavailable):
    """Embedding generation failed."""
    code = 'EMBEDDING_ERROR'


class LLMError(UpstreamUnavailable):
    """The language model call failed or returned nothing."""
    code = 'LLM_ERROR'


class FetchFailed(UpstreamUnavailable):
    """Downloading a stored blob returned a non-success status."""
    code = 'FETCH_FAILED'


class ExtractionError(DocifyError):
    """Text extraction from a PDF failed."""
    code = 'EXTRACTION_ERROR'


class LeaseLost(DocifyError):
    """A worker's claim on a job was taken over by another worker."""
    code = 'LEASE_LOST'
