"""
Shared fixtures.

Configures Django before any app module is imported, with an in-memory
channel layer so progress events never need a Redis server.
"""
import os
import sys
from pathlib import Path

import django
import fakeredis
import pytest

BACKEND_DIR = Path(__file__).resolve().parent.parent
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')
os.environ['ALLOWED_HOSTS'] = 'testserver,localhost'
os.environ['CORS_ALLOWED_ORIGINS'] = 'http://localhost:3000'
os.environ.setdefault('OPENAI_API_KEY', 'sk-test')
os.environ.setdefault('BLOB_BACKEND', 'local')

django.setup()

from django.conf import settings  # noqa: E402

settings.CHANNEL_LAYERS = {'default': {'BACKEND': 'channels.layers.InMemoryChannelLayer'}}

from apps.core.config import ServiceConfig  # noqa: E402
from apps.jobs.queue import JobQueue  # noqa: E402


@pytest.fixture
def config(tmp_path):
    """A config pointing every local path at a temp directory."""
    return ServiceConfig(
        openai_api_key='sk-test',
        openai_embed_dimensions=3,
        cloudinary_cloud_name='demo',
        cloudinary_api_key='key',
        cloudinary_api_secret='secret',
        upload_root=tmp_path / 'uploads',
        scratch_dir=tmp_path / 'scratch',
        job_lock_seconds=30,
        job_retention_seconds=60,
    )


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def queue(redis_client, config):
    return JobQueue(redis_client, config)


def make_pdf(pages):
    """Build a PDF in memory with one text block per page ('' = blank page)."""
    import fitz

    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def pdf_factory():
    return make_pdf
