# oral_exam/services/storage_service.py
import logging
from typing import Optional

from supabase import create_client, Client

logger = logging.getLogger(__name__)


class RecordingStorage:
    """
    Private Supabase Storage bucket for learner audio.
    Returns the path inside the bucket, never a public URL.
    """

    def __init__(self, url: Optional[str], key: Optional[str], bucket: str):
        self.url = url
        self.key = key
        self.bucket = bucket
        self._client: Optional[Client] = None

    @property
    def client(self) -> Client:
        if self._client is None:
            if not self.url or not self.key:
                raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
            self._client = create_client(self.url, self.key)
        return self._client

    def upload(self, dest_path: str, data: bytes, content_type: str = "audio/webm") -> str:
        self.client.storage.from_(self.bucket).upload(dest_path, data, {
            "content-type": content_type,
            "upsert": "true",
        })
        logger.info("[STORAGE] uploaded bucket=%s path=%s bytes=%s", self.bucket, dest_path, len(data))
        return dest_path


def recording_path(user_id: str, session_id: str, item_id: str, attempt_number: int) -> str:
    return f"{user_id}/{session_id}/{item_id}/attempt-{attempt_number}.webm"
