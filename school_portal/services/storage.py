import logging
import mimetypes
import os
from typing import Optional

from fastapi import HTTPException, status
from supabase import Client, create_client

from school_portal.core.config import settings
from school_portal.utils.time_utils import utc_timestamp_ms

logger = logging.getLogger(__name__)


class StorageService:
    """Assignment files in a Supabase Storage bucket"""

    def __init__(self):
        if not settings.supabase_url or not settings.supabase_key:
            raise ValueError("Supabase URL and Key must be configured")

        self.supabase: Client = create_client(settings.supabase_url, settings.supabase_key)
        self.bucket_name = settings.supabase_storage_bucket

        self._ensure_bucket_exists()

    def _ensure_bucket_exists(self):
        """Ensure the storage bucket exists, create if it doesn't"""
        try:
            self.supabase.storage.get_bucket(self.bucket_name)
        except Exception:
            try:
                self.supabase.storage.create_bucket(self.bucket_name, options={"public": True})
                logger.info("Created storage bucket: %s", self.bucket_name)
            except Exception as e:
                logger.warning("Could not create bucket %s: %s", self.bucket_name, e)

    @staticmethod
    def get_file_extension(filename: str, content_type: str) -> str:
        """Get file extension from filename or content type"""
        _, ext = os.path.splitext(filename)
        if ext:
            return ext.lower()

        ext = mimetypes.guess_extension(content_type or "")
        return ext.lower() if ext else ".bin"

    @staticmethod
    def build_path(assignment_id: str, user_id: str, filename: str, content_type: str) -> str:
        """<assignment>/<uploader>/<timestamp ms><ext>"""
        extension = StorageService.get_file_extension(filename, content_type)
        return f"{assignment_id}/{user_id}/{utc_timestamp_ms()}{extension}"

    def upload(self, path: str, content: bytes, content_type: Optional[str]) -> str:
        """Upload bytes and return the public URL"""
        try:
            self.supabase.storage.from_(self.bucket_name).upload(
                path,
                content,
                file_options={
                    "content-type": content_type or "application/octet-stream",
                    "cache-control": "3600",
                }
            )
        except Exception as e:
            logger.error("Storage upload error for %s: %s", path, e)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Failed to upload file: {e}"
            )

        return self.supabase.storage.from_(self.bucket_name).get_public_url(path)

    def remove(self, path: str) -> bool:
        try:
            result = self.supabase.storage.from_(self.bucket_name).remove([path])
        except Exception as e:
            logger.error("Storage delete error for %s: %s", path, e)
            return False
        return len(result) > 0


storage_service: Optional[StorageService] = None


def get_storage_service() -> StorageService:
    """FastAPI dependency, initialises the client on first use"""
    global storage_service
    if storage_service is None:
        try:
            storage_service = StorageService()
        except Exception as e:
            logger.error("Failed to initialize storage: %s", e)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="File storage is not configured"
            )
    return storage_service
