"""
Document views.

Provides endpoints for:
- POST /upload/pdf - Store a PDF and enqueue its ingestion
- GET /api/get-pdf-preview-url - Resolve a previewable URL for a stored PDF
- DELETE /api/documents/<publicId> - Remove a document's chunks (and blob)
- GET /uploads/<path> - Serve files of the local blob backend
"""
import logging
from pathlib import Path

from django.conf import settings
from django.http import Http404, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods
from django.views.static import serve

from apps.core.errors import DocifyError, RequestValidationError
from apps.core.http import api_errors, require_param
from apps.core.services import get_services
from apps.docs.storage import validate_public_id

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPES = ('application/pdf', 'application/x-pdf')
GENERIC_CONTENT_TYPES = ('application/octet-stream', 'binary/octet-stream', '')
PDF_MAGIC = b'%PDF-'


def validate_pdf_upload(uploaded_file) -> None:
    """
    Reject uploads that are clearly not PDFs, or too large.

    Raises:
        RequestValidationError: With a client-facing reason
    """
    max_size = settings.MAX_UPLOAD_SIZE
    if uploaded_file.size > max_size:
        raise RequestValidationError(
            f"File too large. Maximum size is {max_size // (1024 * 1024)}MB"
        )

    if uploaded_file.size == 0:
        raise RequestValidationError('Uploaded file is empty.')

    suffix = Path(uploaded_file.name or '').suffix.lower()
    content_type = (uploaded_file.content_type or '').lower()
    if suffix != '.pdf' and content_type not in PDF_CONTENT_TYPES:
        raise RequestValidationError('Invalid file type. Only PDF files are accepted.')
    if content_type not in PDF_CONTENT_TYPES + GENERIC_CONTENT_TYPES:
        raise RequestValidationError(f"Invalid content type: {content_type}")

    header = uploaded_file.read(len(PDF_MAGIC))
    uploaded_file.seek(0)
    if header != PDF_MAGIC:
        raise RequestValidationError('Uploaded file is not a valid PDF.')


@csrf_exempt
@require_http_methods(["POST"])
@api_errors
def upload_pdf(request):
    """
    Upload a PDF and start its ingestion.

    POST /upload/pdf  (multipart field 'pdf')

    Responds as soon as the file is stored and the job is queued; ingestion
    runs later in the worker.

    Returns:
        {
            "message": "File uploaded and processing started!",
            "publicId": "aidocify/<hex>-report.pdf",
            "fileName": "aidocify/<hex>-report.pdf",
            "originalName": "report.pdf",
            "jobId": "42",
            "fileUrl": "https://..."
        }
    """
    uploaded_file = request.FILES.get('pdf')
    if uploaded_file is None:
        raise RequestValidationError('No file uploaded. Send the PDF in the "pdf" field.')

    validate_pdf_upload(uploaded_file)

    original_name = uploaded_file.name
    logger.info(f"Upload request: {original_name}, {uploaded_file.content_type}, {uploaded_file.size} bytes")

    services = get_services()
    blob = services.blob_store.store(uploaded_file, original_name)

    try:
        job = services.queue.enqueue({
            'publicId': blob.id,
            'fileUrl': blob.url,
            'originalName': original_name,
        })
    except DocifyError:
        # Don't leave an orphaned blob that no job will ever ingest
        try:
            services.blob_store.delete(blob.id)
        except DocifyError as e:
            logger.warning(f"Failed to remove orphaned blob {blob.id}: {e}")
        raise

    logger.info(f"Document stored: {blob.id}, job: {job.id}")

    return JsonResponse({
        'message': 'File uploaded and processing started!',
        'publicId': blob.id,
        'fileName': blob.id,
        'originalName': original_name,
        'jobId': job.id,
        'fileUrl': blob.url,
    })


@csrf_exempt
@require_GET
@api_errors
def preview_url(request):
    """
    GET /api/get-pdf-preview-url?publicId=...

    Returns:
        {"previewUrl": "https://..."}
    """
    public_id = validate_public_id(require_param(request, 'publicId'))
    url = get_services().blob_store.resolve_preview_url(public_id)
    return JsonResponse({'previewUrl': url})


@csrf_exempt
@require_http_methods(["DELETE"])
@api_errors
def delete_document(request, public_id):
    """
    DELETE /api/documents/<publicId>[?keepFile=true]

    Removes every chunk of the document from the vector index, and the
    stored blob unless keepFile is set. Removing a file from the client-side
    list does not call this; it is an explicit server-side deletion.
    """
    public_id = validate_public_id(public_id)
    services = get_services()

    services.index.delete_by_source(services.config.qdrant_collection, public_id)

    file_deleted = False
    if request.GET.get('keepFile', '').lower() not in ('true', '1', 'yes'):
        file_deleted = services.blob_store.delete(public_id)

    logger.info(f"Deleted document {public_id} (file deleted: {file_deleted})")
    return JsonResponse({
        'message': 'Document deleted',
        'publicId': public_id,
        'fileDeleted': file_deleted,
    })


@require_GET
def serve_upload(request, path):
    """Serve a file stored by the local blob backend."""
    config = get_services().config
    if config.blob_backend != 'local':
        raise Http404('Uploads are not served by this backend')
    return serve(request, path, document_root=str(config.upload_root))
