from typing import Optional


class StorageProvider:
    """Byte store addressed by canonical keys ("/org/2025/proj/category/file.jpg")."""

    name = "base"
    container = ""

    def save(self, key: str, content: bytes, content_type: Optional[str] = None) -> None:
        raise NotImplementedError

    def read(self, key: str) -> bytes:
        raise NotImplementedError

    def get_download_url(self, key: str, expires_s: int) -> Optional[str]:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError
