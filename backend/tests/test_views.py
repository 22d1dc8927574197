"""
Tests for the HTTP API, through Django's test client.

The service container is replaced with a local blob store, a fakeredis
queue and in-memory fakes for the index, embedder and LLM.
"""
from unittest.mock import MagicMock

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import Client

from apps.core.errors import QueueUnavailable, VectorIndexError
from apps.core.services import Services, set_services
from apps.docs.storage import LocalBlobStore
from apps.jobs.queue import JobState
from apps.rag.responder import NO_CONTEXT_ANSWER, Responder
from fakes import FakeEmbedder, FakeIndex, FakeLLM, chunk

ALLOWED_ORIGIN = 'http://localhost:3000'


@pytest.fixture
def services(config, queue):
    from dataclasses import replace

    config = replace(config, blob_backend='local')
    index = FakeIndex()
    embedder = FakeEmbedder()
    llm = FakeLLM('Revenue grew twelve percent.')
    services = Services(
        config=config,
        blob_store=LocalBlobStore(config),
        queue=queue,
        index=index,
        embedder=embedder,
        llm=llm,
        responder=Responder(index, config.qdrant_collection, embedder, llm),
        pipeline=MagicMock(),
    )
    set_services(services)
    yield services
    set_services(None)


@pytest.fixture
def client():
    return Client()


def pdf_upload(content, name='report.pdf', content_type='application/pdf'):
    return SimpleUploadedFile(name, content, content_type=content_type)


class TestUpload:

    def test_upload_stores_and_enqueues(self, client, services, pdf_factory):
        content = pdf_factory(['Revenue grew.'])

        response = client.post('/upload/pdf', {'pdf': pdf_upload(content)})

        assert response.status_code == 200
        data = response.json()
        assert data['originalName'] == 'report.pdf'
        assert data['fileName'] == data['publicId']
        assert data['publicId'].endswith('-report.pdf')
        assert services.blob_store.get_path(data['publicId']).read_bytes() == content

        status = services.queue.get_status(data['jobId'])
        assert status.state == JobState.WAITING
        claimed = services.queue.claim()
        assert claimed.data == {
            'publicId': data['publicId'],
            'fileUrl': data['fileUrl'],
            'originalName': 'report.pdf',
        }

    def test_same_file_twice_gets_distinct_ids(self, client, services, pdf_factory):
        content = pdf_factory(['Same.'])

        first = client.post('/upload/pdf', {'pdf': pdf_upload(content)}).json()
        second = client.post('/upload/pdf', {'pdf': pdf_upload(content)}).json()

        assert first['publicId'] != second['publicId']
        assert first['jobId'] != second['jobId']

    def test_missing_file(self, client, services):
        response = client.post('/upload/pdf', {})

        assert response.status_code == 400
        assert response.json()['code'] == 'VALIDATION_ERROR'

    def test_non_pdf_rejected(self, client, services):
        response = client.post('/upload/pdf', {'pdf': pdf_upload(b'hello', 'notes.txt', 'text/plain')})

        assert response.status_code == 400
        assert services.queue.counts()[JobState.WAITING] == 0

    def test_fake_pdf_rejected(self, client, services):
        response = client.post('/upload/pdf', {'pdf': pdf_upload(b'not a pdf at all')})

        assert response.status_code == 400
        assert 'not a valid PDF' in response.json()['message']

    def test_queue_down_fails_fast_and_removes_blob(self, client, services, pdf_factory):
        services.queue = MagicMock()
        services.queue.enqueue.side_effect = QueueUnavailable('Failed to queue file for processing')

        response = client.post('/upload/pdf', {'pdf': pdf_upload(pdf_factory(['x']))})

        assert response.status_code == 500
        assert response.json() == {'message': 'Failed to queue file for processing', 'code': 'QUEUE_ERROR'}
        assert list(services.config.upload_root.rglob('*.pdf')) == []

    def test_get_not_allowed(self, client, services):
        assert client.get('/upload/pdf').status_code == 405


class TestJobStatus:

    def test_status_of_queued_job(self, client, services):
        handle = services.queue.enqueue({'publicId': 'aidocify/a.pdf', 'fileUrl': 'http://x/a.pdf'})

        response = client.get(f'/api/job-status/{handle.id}')

        assert response.status_code == 200
        data = response.json()
        assert data['jobId'] == handle.id
        assert data['status'] == 'waiting'
        assert data['isCompleted'] is False

    def test_failed_job_reports_reason(self, client, services):
        handle = services.queue.enqueue({'publicId': 'aidocify/a.pdf', 'fileUrl': 'http://x/a.pdf'})
        claimed = services.queue.claim()
        services.queue.fail(handle.id, claimed.token, 'FETCH_FAILED: 404')

        data = client.get(f'/api/job-status/{handle.id}').json()

        assert data['isFailed'] is True
        assert data['failedReason'] == 'FETCH_FAILED: 404'

    def test_unknown_job(self, client, services):
        response = client.get('/api/job-status/424242')

        assert response.status_code == 404
        assert response.json() == {'message': 'Job not found.', 'code': 'NOT_FOUND'}


class TestPreviewUrl:

    def test_preview_url(self, client, services):
        response = client.get('/api/get-pdf-preview-url', {'publicId': 'aidocify/abc-report.pdf'})

        assert response.status_code == 200
        assert response.json() == {'previewUrl': 'http://localhost:8000/uploads/aidocify/abc-report.pdf'}

    def test_missing_public_id(self, client, services):
        response = client.get('/api/get-pdf-preview-url')

        assert response.status_code == 400
        assert response.json()['message'] == 'publicId query parameter is required.'

    def test_preview_serves_uploaded_bytes(self, client, services, pdf_factory):
        content = pdf_factory(['Preview me.'])
        public_id = client.post('/upload/pdf', {'pdf': pdf_upload(content)}).json()['publicId']

        response = client.get(f'/uploads/{public_id}')

        assert response.status_code == 200
        assert b''.join(response.streaming_content) == content


class TestChat:

    @pytest.fixture
    def indexed(self, services):
        services.index.upsert(services.config.qdrant_collection, [
            chunk('Revenue grew twelve percent.', 'aidocify/a-annual.pdf', page=1),
            chunk('Revenue in another report.', 'aidocify/b-other.pdf', page=1),
        ])
        return services

    def test_chat_answer_with_scoped_citations(self, client, indexed):
        response = client.get('/chat', {'message': 'How did revenue change?', 'publicId': 'aidocify/a-annual.pdf'})

        assert response.status_code == 200
        data = response.json()
        assert data['message'] == 'Revenue grew twelve percent.'
        assert {d['metadata']['source_id'] for d in data['docs']} == {'aidocify/a-annual.pdf'}

    def test_legacy_parameter_name(self, client, indexed):
        response = client.get('/chat', {
            'message': 'revenue', 'selectedPdfPrefixedName': 'aidocify/a-annual.pdf',
        })

        assert response.status_code == 200

    def test_not_yet_ingested_document_gets_fallback(self, client, indexed):
        data = client.get('/chat', {'message': 'revenue', 'publicId': 'aidocify/new-doc.pdf'}).json()

        assert data == {'message': NO_CONTEXT_ANSWER, 'docs': []}

    def test_message_required(self, client, services):
        response = client.get('/chat', {'publicId': 'aidocify/a-annual.pdf'})

        assert response.status_code == 400

    def test_public_id_required(self, client, services):
        response = client.get('/chat', {'message': 'revenue'})

        assert response.status_code == 400

    def test_index_failure_is_500_without_trace(self, client, services):
        services.responder = MagicMock()
        services.responder.chat.side_effect = VectorIndexError('Could not connect to vector index')

        response = client.get('/chat', {'message': 'revenue', 'publicId': 'aidocify/a.pdf'})

        assert response.status_code == 500
        assert response.json() == {'message': 'Could not connect to vector index', 'code': 'VECTOR_INDEX_ERROR'}


class TestSummarize:

    def test_summary(self, client, services):
        services.index.upsert(services.config.qdrant_collection, [chunk('Revenue grew.', 'aidocify/a.pdf')])

        response = client.get('/api/summarize', {'publicId': 'aidocify/a.pdf'})

        assert response.status_code == 200
        assert response.json() == {'summary': 'Revenue grew twelve percent.'}

    def test_no_content_yet(self, client, services):
        response = client.get('/api/summarize', {'fileName': 'aidocify/pending.pdf'})

        assert response.status_code == 404
        assert response.json()['code'] == 'EMPTY_CONTENT'


class TestDeleteDocument:

    def test_delete_removes_chunks_and_file(self, client, services, pdf_factory):
        public_id = client.post('/upload/pdf', {'pdf': pdf_upload(pdf_factory(['x']))}).json()['publicId']
        collection = services.config.qdrant_collection
        services.index.upsert(collection, [chunk('Revenue.', public_id)])

        response = client.delete(f'/api/documents/{public_id}')

        assert response.status_code == 200
        assert response.json()['fileDeleted'] is True
        assert services.index.count_by_source(collection, public_id) == 0
        assert not services.blob_store.exists(public_id)

    def test_keep_file(self, client, services, pdf_factory):
        public_id = client.post('/upload/pdf', {'pdf': pdf_upload(pdf_factory(['x']))}).json()['publicId']

        response = client.delete(f'/api/documents/{public_id}?keepFile=true')

        assert response.json()['fileDeleted'] is False
        assert services.blob_store.exists(public_id)

    def test_invalid_id(self, client, services):
        assert client.delete('/api/documents/bad%20id.pdf').status_code == 400


class TestHealth:

    def test_root(self, client):
        assert client.get('/').json() == {'status': 'Server is healthy and running'}

    def test_healthz(self, client):
        assert client.get('/healthz').json()['status'] == 'healthy'

    def test_readyz_ok(self, client, services):
        services.index = MagicMock()

        response = client.get('/readyz')

        assert response.status_code == 200
        assert response.json()['checks'] == {'redis': 'ok', 'qdrant': 'ok', 'openai': 'ok'}

    def test_readyz_reports_unreachable_index(self, client, services):
        services.index = MagicMock()
        services.index.ping.side_effect = VectorIndexError('Could not connect to vector index')

        response = client.get('/readyz')

        assert response.status_code == 503
        assert response.json()['checks']['qdrant'].startswith('error')


class TestOrigins:

    def test_unlisted_origin_rejected(self, client):
        response = client.get('/healthz', HTTP_ORIGIN='https://evil.example')

        assert response.status_code == 403
        assert response.json()['code'] == 'ORIGIN_NOT_ALLOWED'

    def test_listed_origin_gets_cors_headers(self, client):
        response = client.get('/healthz', HTTP_ORIGIN=ALLOWED_ORIGIN)

        assert response.status_code == 200
        assert response['Access-Control-Allow-Origin'] == ALLOWED_ORIGIN

    def test_no_origin_passes(self, client):
        assert client.get('/healthz').status_code == 200
