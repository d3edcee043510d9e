"""
Storage Service
Platform object storage: Google Cloud Storage, local filesystem or S3.
Every stored object is addressed by its path and exposed through the /files/ proxy URL.
"""

import logging
from pathlib import Path
from typing import Optional

import httpx

from creative_engine.core.config import settings
from creative_engine.core.errors import StorageError
from creative_engine.core.paths import FILES_PREFIX

logger = logging.getLogger(__name__)


class StorageService:
    """Service for file storage operations."""

    def __init__(self, base_path: Optional[str] = None):
        # Priority: GCS > Local > S3
        self.use_gcs = settings.USE_GCS and base_path is None
        self.use_local = base_path is not None or (settings.USE_LOCAL_STORAGE and not self.use_gcs)

        if self.use_gcs:
            from google.cloud import storage
            self.gcs_client = storage.Client(project=settings.GCP_PROJECT_ID)
            self.gcs_bucket = self.gcs_client.bucket(settings.GCS_BUCKET_ASSETS)
            logger.info(f"[Storage] Using Google Cloud Storage: {settings.GCS_BUCKET_ASSETS}")

        elif self.use_local:
            self.base_path = Path(base_path or settings.LOCAL_STORAGE_PATH)
            self.base_path.mkdir(parents=True, exist_ok=True)
            logger.info(f"[Storage] Using local storage: {self.base_path}")

        else:
            import boto3
            from botocore.config import Config
            self.s3 = boto3.client(
                "s3",
                endpoint_url=settings.S3_ENDPOINT or None,
                aws_access_key_id=settings.S3_ACCESS_KEY,
                aws_secret_access_key=settings.S3_SECRET_KEY,
                region_name=settings.S3_REGION,
                config=Config(signature_version="s3v4")
            )
            self.bucket = settings.S3_BUCKET
            logger.info(f"[Storage] Using S3: {self.bucket}")

    def _local_path(self, path: str) -> Path:
        """Filesystem path for a storage path; never outside base_path."""
        root = self.base_path.resolve()
        file_path = (root / path).resolve()
        if file_path != root and root not in file_path.parents:
            raise StorageError("Path escapes platform storage", details={"path": path})
        return file_path

    @property
    def backend(self) -> str:
        if self.use_gcs:
            return "gcs"
        return "local" if self.use_local else "s3"

    def put(self, path: str, data: bytes, content_type: str = "image/png") -> str:
        """
        Store bytes at `path`, overwriting any previous object, and return its URL.

        Raises:
            StorageError: if the backend rejects the write
        """
        try:
            if self.use_gcs:
                blob = self.gcs_bucket.blob(path)
                blob.upload_from_string(data, content_type=content_type)
            elif self.use_local:
                file_path = self._local_path(path)
                file_path.parent.mkdir(parents=True, exist_ok=True)
                file_path.write_bytes(data)
            else:
                self.s3.put_object(Bucket=self.bucket, Key=path, Body=data, ContentType=content_type)
        except StorageError:
            raise
        except Exception as e:
            logger.error(f"[Storage] Upload failed for {path}: {e}")
            raise StorageError("Could not save the generated asset", details={"path": path, "error": str(e)})

        return self.get_public_url(path)

    def get_file(self, path: str) -> bytes:
        """Get file contents by storage path."""
        try:
            if self.use_gcs:
                return self.gcs_bucket.blob(path).download_as_bytes()
            elif self.use_local:
                return self._local_path(path).read_bytes()
            else:
                response = self.s3.get_object(Bucket=self.bucket, Key=path)
                return response["Body"].read()
        except Exception as e:
            logger.error(f"[Storage] Read failed for {path}: {e}")
            raise StorageError("Could not read a stored asset", details={"path": path, "error": str(e)})

    def get_public_url(self, path: str) -> str:
        """API proxy URL for a stored path."""
        return f"{FILES_PREFIX}{path}"

    def get(self, url: str) -> bytes:
        """
        Download bytes from a URL.

        Supports /files/ proxy URLs, file://, s3:// and external http(s) URLs.
        Anything else is treated as a storage path.
        """
        if url.startswith(FILES_PREFIX):
            return self.get_file(url[len(FILES_PREFIX):])

        try:
            if url.startswith("file://"):
                return Path(url[len("file://"):]).read_bytes()

            elif url.startswith("s3://"):
                bucket, _, key = url[len("s3://"):].partition("/")
                response = self.s3.get_object(Bucket=bucket, Key=key)
                return response["Body"].read()

            elif url.startswith(("http://", "https://")):
                with httpx.Client(timeout=settings.PROVIDER_HTTP_TIMEOUT_SECONDS, follow_redirects=True) as client:
                    response = client.get(url)
                    response.raise_for_status()
                    return response.content
        except Exception as e:
            logger.error(f"[Storage] Error downloading {url}: {e}")
            raise StorageError("Could not download an asset", details={"url": url, "error": str(e)})

        return self.get_file(url)

    def health_check(self) -> dict:
        return {"status": "healthy", "backend": self.backend}
