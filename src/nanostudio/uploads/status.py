"""Upload status probing against the blob store."""

import logging
from typing import Any, Dict

from nanostudio.core.exceptions import UploadNotFound
from nanostudio.storage.base import BlobStore

logger = logging.getLogger(__name__)

STATUS_COMPLETED = "completed"
STATUS_IN_PROGRESS = "in_progress"


class UploadStatusProber:
    """Answers "is this upload done" from object existence alone.

    An existing object counts as a completed upload; its size is not checked
    against the declared size. A missing object is reported as in progress,
    whether the transfer never started, is running, or was abandoned.
    """

    def __init__(self, blob_store: BlobStore):
        self.blob_store = blob_store

    async def check_status(self, upload_id: str) -> Dict[str, Any]:
        """Report the status of ``upload_id``.

        Raises:
            UpstreamStorageError: If the blob store cannot be queried
        """
        if not await self.blob_store.exists(upload_id):
            return {"status": STATUS_IN_PROGRESS}

        try:
            metadata = await self.blob_store.get_metadata(upload_id)
        except UploadNotFound:
            # Deleted between the two calls, e.g. by a concurrent cancel
            return {"status": STATUS_IN_PROGRESS}

        return {
            "status": STATUS_COMPLETED,
            "size": metadata.size,
            "content_type": metadata.content_type,
            "created_at": metadata.time_created,
            "locator": self.blob_store.locator(upload_id),
        }

    async def cancel(self, upload_id: str) -> bool:
        """Delete whatever was uploaded under ``upload_id``.

        Deleting an object that does not exist succeeds.
        """
        await self.blob_store.delete(upload_id)
        logger.info("Upload cancelled", extra={"upload_id": upload_id})
        return True
