"""Google Cloud Storage object storage.

Requires optional dependencies: pip install sessionreel[gcp]
Import-guarded so the rest of sessionreel works without the GCS client.
"""

import asyncio
import logging
from datetime import timedelta
from pathlib import Path
from urllib.parse import quote

from .errors import TransientIOError

# Import-guarded optional dependency.
try:
    from google.api_core import exceptions as gapi_exceptions
    from google.cloud import storage as gcs_storage
    _GCS_AVAILABLE = True
except ImportError:
    gapi_exceptions = None
    gcs_storage = None
    _GCS_AVAILABLE = False

logger = logging.getLogger(__name__)

# Client failures surfaced as TransientIOError so retry policies see them.
_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (ConnectionError,)
if gapi_exceptions is not None:
    _TRANSIENT_ERRORS += (
        gapi_exceptions.ServiceUnavailable,
        gapi_exceptions.TooManyRequests,
        gapi_exceptions.InternalServerError,
        gapi_exceptions.DeadlineExceeded,
    )

DEFAULT_HTTPS_BASE_URL = "https://storage.cloud.google.com"
DEFAULT_PREVIEW_URL_ROOT = "https://firebasestorage.googleapis.com"
READ_URL_TTL = timedelta(hours=1)


def firebase_preview_url(preview_url_root: str, bucket_name: str, path: str,
                         token: str) -> str:
    """Token-addressed download URL for an object."""
    return (
        f"{preview_url_root}/v0/b/{bucket_name}/o/{quote(path, safe='')}"
        f"?alt=media&token={token}"
    )


class GcsObjectStorage:
    """ObjectStorage over one GCS bucket. Client calls run in worker threads.

    Raises:
        RuntimeError: If sessionreel[gcp] is not installed.
    """

    def __init__(self, bucket_name: str, client=None,
                 https_base_url: str = DEFAULT_HTTPS_BASE_URL,
                 preview_url_root: str = DEFAULT_PREVIEW_URL_ROOT):
        if client is None:
            if not _GCS_AVAILABLE:
                raise RuntimeError(
                    "Google Cloud Storage requires extra dependencies.\n"
                    "Run: pip install sessionreel[gcp]"
                )
            client = gcs_storage.Client()
        self.client = client
        self.bucket_name = bucket_name
        self.bucket = client.bucket(bucket_name)
        self.https_base_url = https_base_url.rstrip("/")
        self.preview_url_root = preview_url_root.rstrip("/")

    def _blob(self, path: str):
        return self.bucket.blob(path)

    async def upload(self, local_path, path, content_type=None, metadata=None):
        blob = self._blob(path)
        if metadata:
            blob.metadata = dict(metadata)
        try:
            await asyncio.to_thread(
                blob.upload_from_filename, str(local_path), content_type=content_type,
            )
        except _TRANSIENT_ERRORS as exc:
            raise TransientIOError(f"Upload of {path} failed: {exc}") from exc
        logger.debug("Uploaded %s to gs://%s/%s", local_path, self.bucket_name, path)

    async def download(self, path, local_dest):
        Path(local_dest).parent.mkdir(parents=True, exist_ok=True)
        blob = self._blob(path)
        try:
            await asyncio.to_thread(blob.download_to_filename, str(local_dest))
        except _TRANSIENT_ERRORS as exc:
            raise TransientIOError(f"Download of {path} failed: {exc}") from exc

    async def set_metadata(self, path, metadata):
        blob = self._blob(path)
        blob.metadata = dict(metadata)
        try:
            await asyncio.to_thread(blob.patch)
        except _TRANSIENT_ERRORS as exc:
            raise TransientIOError(f"Metadata update of {path} failed: {exc}") from exc

    def preview_url(self, path, token):
        return firebase_preview_url(self.preview_url_root, self.bucket_name, path, token)

    def uri(self, path):
        return f"gs://{self.bucket_name}/{path}"

    def https_url(self, path):
        return f"{self.https_base_url}/{self.bucket_name}/{path}"

    def readable_url(self, path):
        """Short-lived signed URL so ffmpeg can stream the object."""
        return self._blob(path).generate_signed_url(
            version="v4", expiration=READ_URL_TTL, method="GET",
        )
