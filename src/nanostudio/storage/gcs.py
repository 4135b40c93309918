"""Google Cloud Storage backend."""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from google.api_core import retry
from google.api_core.exceptions import NotFound
from google.cloud import storage
from google.oauth2 import service_account

from nanostudio.core.config import settings
from nanostudio.core.exceptions import UploadNotFound, UpstreamStorageError
from nanostudio.storage.base import BlobMetadata, BlobStore

logger = logging.getLogger(__name__)


class GCSBlobStore(BlobStore):
    """Google Cloud Storage backend."""

    def __init__(self, bucket_name: str | None = None, project_id: str | None = None):
        self.bucket_name = bucket_name if bucket_name is not None else settings.GCS_BUCKET_NAME
        self.project_id = project_id if project_id is not None else settings.GCP_PROJECT_ID
        self._client: Optional[storage.Client] = None
        self._bucket: Optional[storage.Bucket] = None

        # Metadata reads are idempotent and safe to retry
        self.retry_policy = retry.Retry(
            initial=1.0,
            maximum=10.0,
            multiplier=2.0,
            deadline=30.0,
            predicate=retry.if_transient_error,
        )

    def _get_bucket(self) -> storage.Bucket:
        """Lazy-load and cache GCS bucket."""
        if self._bucket is None:
            if not self.bucket_name:
                raise ValueError("GCS_BUCKET_NAME not configured")

            self._client = storage.Client(project=self.project_id or None)
            self._bucket = self._client.bucket(self.bucket_name)

        return self._bucket

    async def generate_signed_upload_url(self, key: str, content_type: str, expires_at: datetime) -> str:
        """Generate V4 signed URL for a direct PUT of ``key``."""
        try:
            return await asyncio.to_thread(self._sign_put_url, key, content_type, expires_at)
        except Exception as e:
            logger.error(
                "Failed to generate signed URL",
                extra={"bucket": self.bucket_name, "object_name": key, "error": str(e)},
            )
            raise UpstreamStorageError(f"Failed to generate upload URL: {e}") from e

    def _sign_put_url(self, key: str, content_type: str, expires_at: datetime) -> str:
        blob = self._get_bucket().blob(key)

        if not settings.GCS_SIGN_WITH_IAM:
            # Default credentials carry a private key (service account JSON)
            return blob.generate_signed_url(
                version="v4",
                expiration=expires_at,
                method="PUT",
                content_type=content_type,
            )

        from google.auth import compute_engine, iam
        from google.auth.transport import requests as auth_requests

        # Compute engine credentials have no private key; signing goes through
        # the IAM signBlob API. The service account needs
        # roles/iam.serviceAccountTokenCreator on itself.
        credentials = compute_engine.Credentials()
        auth_request = auth_requests.Request()
        credentials.refresh(auth_request)
        service_account_email = credentials.service_account_email

        signer = iam.Signer(
            request=auth_request,
            credentials=credentials,
            service_account_email=service_account_email,
        )
        signing_creds = service_account.Credentials(
            signer=signer,
            service_account_email=service_account_email,
            token_uri="https://oauth2.googleapis.com/token",
        )

        return blob.generate_signed_url(
            version="v4",
            expiration=expires_at,
            method="PUT",
            content_type=content_type,
            credentials=signing_creds,
            service_account_email=service_account_email,
        )

    async def exists(self, key: str) -> bool:
        """Check if an object exists in GCS.

        Any failure, including credential refresh and transport errors, is
        reported as ``UpstreamStorageError``.
        """
        try:
            blob = self._get_bucket().blob(key)
            return await asyncio.to_thread(blob.exists, retry=self.retry_policy)
        except Exception as e:
            logger.error(
                "Failed to check object existence",
                extra={"bucket": self.bucket_name, "object_name": key, "error": str(e)},
            )
            raise UpstreamStorageError(f"Failed to check upload status: {e}") from e

    async def get_metadata(self, key: str) -> BlobMetadata:
        """Fetch size, content type and creation time of an object."""
        try:
            blob = await asyncio.to_thread(self._get_bucket().get_blob, key, retry=self.retry_policy)
        except Exception as e:
            logger.error(
                "Failed to read object metadata",
                extra={"bucket": self.bucket_name, "object_name": key, "error": str(e)},
            )
            raise UpstreamStorageError(f"Failed to read upload metadata: {e}") from e

        if blob is None:
            raise UploadNotFound(key)

        return BlobMetadata(
            size=blob.size or 0,
            content_type=blob.content_type or "",
            time_created=blob.time_created,
        )

    async def delete(self, key: str) -> None:
        """Delete an object; a missing object counts as deleted."""
        try:
            blob = self._get_bucket().blob(key)
            await asyncio.to_thread(blob.delete)
        except NotFound:
            logger.info(
                "Object does not exist or already deleted",
                extra={"bucket": self.bucket_name, "object_name": key},
            )
        except Exception as e:
            logger.error(
                "Failed to delete object",
                extra={"bucket": self.bucket_name, "object_name": key, "error": str(e)},
            )
            raise UpstreamStorageError(f"Failed to cancel upload: {e}") from e

    def locator(self, key: str) -> str:
        return f"gs://{self.bucket_name}/{key}"

    def get_backend_name(self) -> str:
        return "gcs"
