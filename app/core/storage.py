"""Supabase Storage client for packing photo evidence."""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from starlette.concurrency import run_in_threadpool

from app.config import settings
from app.core.exceptions import StorageUnavailableError


# Accepted photo MIME types and the extension they are stored under
PHOTO_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


@dataclass
class PhotoUploadResult:
    """Where an uploaded photo ended up."""
    photo_url: str
    thumbnail_url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class StorageClient:
    """Client for Supabase Storage operations."""

    _client = None

    @classmethod
    def get_client(cls):
        """Get or create Supabase client."""
        if cls._client is None:
            if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_KEY:
                raise StorageUnavailableError(
                    "Photo storage not configured. "
                    "Set SUPABASE_URL and SUPABASE_SERVICE_KEY environment variables."
                )
            from supabase import create_client

            cls._client = create_client(
                settings.SUPABASE_URL,
                settings.SUPABASE_SERVICE_KEY
            )
        return cls._client

    @classmethod
    def get_bucket(cls):
        """Get the storage bucket."""
        client = cls.get_client()
        return client.storage.from_(settings.SUPABASE_STORAGE_BUCKET)

    @classmethod
    def upload(
        cls,
        content: bytes,
        path: str,
        content_type: str
    ) -> str:
        """
        Upload file to Supabase Storage.

        Args:
            content: File content as bytes
            path: Storage path (e.g., "jobs/<job_id>/POST_PACK/<file>.png")
            content_type: MIME type (e.g., "image/png")

        Returns:
            Public URL of the uploaded file
        """
        bucket = cls.get_bucket()

        bucket.upload(
            path=path,
            file=content,
            file_options={"content-type": content_type, "upsert": "true"}
        )

        return cls.get_public_url(path)

    @classmethod
    def get_public_url(cls, path: str) -> str:
        bucket = cls.get_bucket()
        return bucket.get_public_url(path)


class PhotoStorage:
    """
    Photo storage collaborator used by the packing workflow.

    Accepts raw bytes plus job/photo-type metadata and returns the stored
    URLs. Thumbnails are not generated server-side; the thumbnail URL is the
    storage render endpoint when available.
    """

    def __init__(self, client: type[StorageClient] = StorageClient):
        self.client = client

    @staticmethod
    def build_photo_key(
        job_id: uuid.UUID,
        photo_type: str,
        taken_at: datetime,
        content_type: str = "image/jpeg",
    ) -> str:
        stamp = taken_at.strftime("%Y%m%dT%H%M%S")
        ext = PHOTO_EXTENSIONS.get(content_type, ".jpg")
        return f"jobs/{job_id}/{photo_type}/{stamp}-{uuid.uuid4().hex[:12]}{ext}"

    async def upload_photo(
        self,
        content: bytes,
        job_id: uuid.UUID,
        photo_type: str,
        content_type: str = "image/jpeg",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PhotoUploadResult:
        taken_at = datetime.now(timezone.utc)
        path = self.build_photo_key(job_id, photo_type, taken_at, content_type)
        # supabase-py storage calls are blocking
        photo_url = await run_in_threadpool(self.client.upload, content, path, content_type)

        return PhotoUploadResult(
            photo_url=photo_url,
            thumbnail_url=f"{photo_url}?width=200",
            metadata={"timestamp": taken_at.isoformat(), "content_type": content_type, **(metadata or {})},
        )


def get_photo_storage() -> PhotoStorage:
    """Dependency hook for the photo storage collaborator."""
    return PhotoStorage()
