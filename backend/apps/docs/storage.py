"""
Blob storage for uploaded PDFs.

Two backends share the same contract:
- CloudinaryBlobStore: raw uploads through the Cloudinary SDK
- LocalBlobStore: files under UPLOAD_ROOT, served by the /uploads/ view

Both return a public id of the form '<folder>/<uuid-hex>-<slug>.pdf', which
is stable, globally unique and safe to use as a vector metadata tag.
"""
import io
import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Union

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
import cloudinary.utils

from apps.core.config import ServiceConfig
from apps.core.errors import RequestValidationError, StorageUnavailable

logger = logging.getLogger(__name__)

SLUG_MAX_LENGTH = 60

PUBLIC_ID_PATTERN = re.compile(r'^[A-Za-z0-9_\-]+(/[A-Za-z0-9_\-]+)*(\.pdf)?$')


@dataclass
class StoredBlob:
    """Reference to a stored file."""
    id: str
    url: str


def slugify_filename(filename: str) -> str:
    """
    Turn an original file name into a tag-safe slug.

    'Quarterly Report (final).pdf' -> 'quarterly-report-final'
    """
    stem = Path(filename or '').stem.lower()
    slug = re.sub(r'[^a-z0-9_-]+', '-', stem).strip('-')
    return slug[:SLUG_MAX_LENGTH].rstrip('-') or 'document'


def make_public_id(folder: str, filename: str) -> str:
    """Generate a new unique public id for an uploaded file."""
    name = f"{uuid.uuid4().hex}-{slugify_filename(filename)}.pdf"
    folder = folder.strip('/')
    return f"{folder}/{name}" if folder else name


def validate_public_id(public_id: str) -> str:
    """
    Check that a client-supplied public id has the shape we generate.

    Raises:
        RequestValidationError: If the id contains unexpected characters
    """
    if not public_id or '..' in public_id or not PUBLIC_ID_PATTERN.match(public_id):
        raise RequestValidationError(f"Invalid publicId: {public_id!r}")
    return public_id


def _as_upload(file: Union[bytes, BinaryIO], name: str) -> BinaryIO:
    if isinstance(file, (bytes, bytearray)):
        buffer = io.BytesIO(file)
        buffer.name = name
        return buffer
    return file


class CloudinaryBlobStore:
    """
    Blob store backed by Cloudinary raw uploads.

    Credentials are passed on every call instead of through the SDK's global
    config, so several stores can coexist in one process.
    """

    resource_type = 'raw'

    def __init__(self, config: ServiceConfig):
        self.cloud_name = config.cloudinary_cloud_name
        self.api_key = config.cloudinary_api_key
        self.api_secret = config.cloudinary_api_secret
        self.folder = config.cloudinary_folder
        self.timeout = config.cloudinary_timeout

    @property
    def _options(self) -> dict:
        return {
            'cloud_name': self.cloud_name,
            'api_key': self.api_key,
            'api_secret': self.api_secret,
            'resource_type': self.resource_type,
        }

    def _ensure_configured(self) -> None:
        if not (self.cloud_name and self.api_key and self.api_secret):
            raise StorageUnavailable('Blob store credentials are not configured')

    def store(self, file: Union[bytes, BinaryIO], original_name: str) -> StoredBlob:
        """
        Upload a file and return its public id and delivery URL.

        Raises:
            StorageUnavailable: If credentials are missing or the upload fails
        """
        self._ensure_configured()
        public_id = make_public_id(self.folder, original_name)

        try:
            result = cloudinary.uploader.upload(
                _as_upload(file, Path(public_id).name),
                public_id=public_id,
                overwrite=False,
                timeout=self.timeout,
                **self._options,
            )
        except cloudinary.exceptions.Error as e:
            logger.error(f"Cloudinary upload of {public_id} failed: {e}")
            raise StorageUnavailable(f"Blob store error: {e}")

        stored_id = result.get('public_id') or public_id
        url = result.get('secure_url') or self.resolve_preview_url(stored_id)
        logger.info(f"Stored blob {stored_id} ({result.get('bytes', '?')} bytes)")
        return StoredBlob(id=stored_id, url=url)

    def resolve_preview_url(self, public_id: str) -> str:
        """Resolve a URL that serves the stored file."""
        url, _ = cloudinary.utils.cloudinary_url(
            public_id,
            resource_type=self.resource_type,
            secure=True,
            force_version=False,
            cloud_name=self.cloud_name,
        )
        return url

    def delete(self, public_id: str) -> bool:
        """Delete a stored file. Returns False if it did not exist."""
        self._ensure_configured()
        try:
            result = cloudinary.uploader.destroy(public_id, invalidate=True, **self._options)
        except cloudinary.exceptions.Error as e:
            logger.error(f"Cloudinary destroy of {public_id} failed: {e}")
            raise StorageUnavailable(f"Blob store error: {e}")

        logger.info(f"Deleted blob {public_id}: {result.get('result')}")
        return result.get('result') == 'ok'


class LocalBlobStore:
    """
    Blob store on the local filesystem.

    Files are stored at: {UPLOAD_ROOT}/{public_id}
    """

    def __init__(self, config: ServiceConfig):
        self.root = Path(config.upload_root)
        self.folder = config.cloudinary_folder
        self.public_base_url = config.public_base_url
        self._ensure_root_exists()

    def _ensure_root_exists(self) -> None:
        """Create the upload root directory if it doesn't exist."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create upload root {self.root}: {e}")
            raise StorageUnavailable(f"Cannot create upload directory: {e}")

    def get_path(self, public_id: str) -> Path:
        return self.root / public_id

    def store(self, file: Union[bytes, BinaryIO], original_name: str) -> StoredBlob:
        public_id = make_public_id(self.folder, original_name)
        filepath = self.get_path(public_id)

        try:
            filepath.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(file, (bytes, bytearray)):
                filepath.write_bytes(file)
            else:
                with open(filepath, 'wb') as dest:
                    # Read and write in chunks to handle large files
                    chunk_size = 8192
                    while True:
                        chunk = file.read(chunk_size)
                        if not chunk:
                            break
                        dest.write(chunk)
        except OSError as e:
            logger.error(f"Failed to save file {public_id}: {e}")
            raise StorageUnavailable(f"Failed to save file: {e}")

        logger.info(f"Saved file: {public_id} ({filepath.stat().st_size} bytes)")
        return StoredBlob(id=public_id, url=self.resolve_preview_url(public_id))

    def resolve_preview_url(self, public_id: str) -> str:
        return f"{self.public_base_url}/uploads/{public_id}"

    def exists(self, public_id: str) -> bool:
        return self.get_path(public_id).exists()

    def delete(self, public_id: str) -> bool:
        if not self.exists(public_id):
            return False
        try:
            self.get_path(public_id).unlink()
        except OSError as e:
            logger.error(f"Failed to delete file {public_id}: {e}")
            raise StorageUnavailable(f"Failed to delete file: {e}")
        logger.info(f"Deleted file: {public_id}")
        return True


def get_blob_store(config: ServiceConfig):
    """Build the blob store selected by BLOB_BACKEND."""
    if config.blob_backend == 'local':
        logger.info(f"Using local blob store at {config.upload_root}")
        return LocalBlobStore(config)
    logger.info("Using Cloudinary blob store")
    return CloudinaryBlobStore(config)
