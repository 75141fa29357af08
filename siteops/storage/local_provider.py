"""
Local filesystem storage provider.
Used in development and tests, and whenever Azure Blob is not configured.
"""
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import structlog

from ..config import settings
from .provider import StorageProvider

logger = structlog.get_logger(__name__)


class LocalStorageProvider(StorageProvider):
    name = "local"
    container = "local"

    def __init__(self, base_dir: Optional[str] = None):
        self.base_dir = Path(base_dir or settings.local_storage_dir)
        (self.base_dir / "uploads").mkdir(parents=True, exist_ok=True)

    def _get_path(self, key: str) -> Path:
        """Filesystem path for a key; traversal segments are stripped."""
        clean_key = key.lstrip("/").replace("..", "").replace("\\", "/")
        return self.base_dir / "uploads" / clean_key

    def save(self, key: str, content: bytes, content_type: Optional[str] = None) -> None:
        path = self._get_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            f.write(content)

    def read(self, key: str) -> bytes:
        path = self._get_path(key)
        if not path.exists():
            raise FileNotFoundError(key)
        return path.read_bytes()

    def get_download_url(self, key: str, expires_s: int) -> Optional[str]:
        if self._get_path(key).exists():
            return f"{settings.public_base_url}/files/local/{quote(key.lstrip('/'))}"
        return None

    def exists(self, key: str) -> bool:
        return self._get_path(key).exists()

    def delete(self, key: str) -> None:
        path = self._get_path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("storage_delete_failed", key=key, error=str(exc))
