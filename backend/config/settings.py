"""
Django settings for the AiDocify backend.
"""
import os
import tempfile
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name: str, default: str = 'False') -> bool:
    return os.getenv(name, default).lower() in ('true', '1', 'yes')


def env_list(name: str, default: str = '') -> list:
    return [item.strip() for item in os.getenv(name, default).split(',') if item.strip()]


# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-dev-key-change-in-production')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = env_bool('DEBUG')

ALLOWED_HOSTS = env_list('ALLOWED_HOSTS', 'localhost,127.0.0.1')

# Application definition
INSTALLED_APPS = [
    'daphne',  # ASGI server for Channels
    'channels',
    'corsheaders',
    'apps.core',
    'apps.docs',
    'apps.jobs',
    'apps.ingestion',
    'apps.rag',
]

MIDDLEWARE = [
    'corsheaders.middleware.CorsMiddleware',
    'apps.core.middleware.OriginAllowListMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = []

ASGI_APPLICATION = 'config.asgi.application'

# No database: all state lives in the blob store, the vector index and the
# queue broker.
DATABASES = {}

# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = False
USE_TZ = True

# =============================================================================
# CORS / allowed origins
# =============================================================================
# FRONTEND_URL may hold several comma-separated origins
CORS_ALLOWED_ORIGINS = env_list(
    'CORS_ALLOWED_ORIGINS', os.getenv('FRONTEND_URL', 'http://localhost:3000')
)

# =============================================================================
# OpenAI (embeddings + chat completion)
# =============================================================================
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY', '')
OPENAI_BASE_URL = os.getenv('OPENAI_BASE_URL', 'https://api.openai.com/v1')
OPENAI_EMBED_MODEL = os.getenv('OPENAI_EMBED_MODEL', 'text-embedding-3-small')
OPENAI_EMBED_DIMENSIONS = int(os.getenv('OPENAI_EMBED_DIMENSIONS', '1536'))
OPENAI_CHAT_MODEL = os.getenv('OPENAI_CHAT_MODEL', 'gpt-3.5-turbo')
OPENAI_TIMEOUT = int(os.getenv('OPENAI_TIMEOUT', '120'))  # 2 min

# Number of chunks retrieved for chat (2 for latency-sensitive deployments)
RETRIEVAL_TOP_K = int(os.getenv('RETRIEVAL_TOP_K', '4'))

# =============================================================================
# Qdrant
# =============================================================================
QDRANT_URL = os.getenv('QDRANT_URL', 'http://localhost:6333')
QDRANT_API_KEY = os.getenv('QDRANT_API_KEY', '')
QDRANT_COLLECTION = os.getenv('QDRANT_COLLECTION', 'Ai_Docs')
QDRANT_TIMEOUT = int(os.getenv('QDRANT_TIMEOUT', '30'))

# =============================================================================
# Redis / job queue
# =============================================================================
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
JOB_QUEUE_NAME = os.getenv('JOB_QUEUE_NAME', 'file-upload-queue')

# Attempts per job; 1 means a failed job is not retried
JOB_ATTEMPTS = int(os.getenv('JOB_ATTEMPTS', '1'))

# Lease on an active job before it is considered stalled and requeued
JOB_LOCK_SECONDS = int(os.getenv('JOB_LOCK_SECONDS', '300'))

# How long finished jobs stay queryable through /api/job-status
JOB_RETENTION_SECONDS = int(os.getenv('JOB_RETENTION_SECONDS', str(24 * 60 * 60)))

# =============================================================================
# Ingestion worker
# =============================================================================
WORKER_CONCURRENCY = int(os.getenv('WORKER_CONCURRENCY', '5'))
WORKER_POLL_INTERVAL = float(os.getenv('WORKER_POLL_INTERVAL', '2'))
FETCH_TIMEOUT = int(os.getenv('FETCH_TIMEOUT', '60'))

# Transient PDFs written for extraction
SCRATCH_DIR = os.getenv('SCRATCH_DIR', tempfile.gettempdir())

# =============================================================================
# Django Channels (job progress over WebSocket)
# =============================================================================
CHANNEL_LAYERS = {
    'default': {
        'BACKEND': 'channels_redis.core.RedisChannelLayer',
        'CONFIG': {
            'hosts': [REDIS_URL],
        },
    },
}

# =============================================================================
# Blob storage
# =============================================================================
# 'cloudinary' or 'local'
BLOB_BACKEND = os.getenv('BLOB_BACKEND', 'cloudinary')

CLOUDINARY_CLOUD_NAME = os.getenv('CLOUDINARY_CLOUD_NAME', '')
CLOUDINARY_API_KEY = os.getenv('CLOUDINARY_API_KEY', '')
CLOUDINARY_API_SECRET = os.getenv('CLOUDINARY_API_SECRET', '')
CLOUDINARY_FOLDER = os.getenv('CLOUDINARY_FOLDER', 'aidocify')

# Root directory for the local backend
UPLOAD_ROOT = Path(os.getenv('UPLOAD_ROOT', BASE_DIR / 'uploads'))

# Public base URL used to build local file URLs
PUBLIC_BASE_URL = os.getenv('PUBLIC_BASE_URL', 'http://localhost:8000')

# Maximum file size in bytes (50MB default)
MAX_UPLOAD_SIZE = int(os.getenv('MAX_UPLOAD_SIZE', 50 * 1024 * 1024))
DATA_UPLOAD_MAX_MEMORY_SIZE = MAX_UPLOAD_SIZE

# =============================================================================
# Logging
# =============================================================================
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        'apps': {
            'handlers': ['console'],
            'level': os.getenv('APP_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}
