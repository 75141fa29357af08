from datetime import datetime, timedelta
from typing import Optional

import structlog
from azure.core.exceptions import ResourceNotFoundError
from azure.storage.blob import (
    BlobServiceClient,
    BlobSasPermissions,
    ContentSettings,
    generate_blob_sas,
)

from ..config import settings
from .provider import StorageProvider

logger = structlog.get_logger(__name__)


class BlobStorageProvider(StorageProvider):
    name = "blob"

    def __init__(self) -> None:
        if not settings.azure_blob_connection or not settings.azure_blob_container:
            raise RuntimeError("AZURE_BLOB_CONNECTION and AZURE_BLOB_CONTAINER must be set")
        self._service = BlobServiceClient.from_connection_string(settings.azure_blob_connection)
        self.container = settings.azure_blob_container

    def _client(self, key: str):
        return self._service.get_blob_client(self.container, key.lstrip("/"))

    def save(self, key: str, content: bytes, content_type: Optional[str] = None) -> None:
        self._client(key).upload_blob(
            content,
            overwrite=True,
            content_settings=ContentSettings(content_type=content_type) if content_type else None,
        )

    def read(self, key: str) -> bytes:
        try:
            return self._client(key).download_blob().readall()
        except ResourceNotFoundError as exc:
            raise FileNotFoundError(key) from exc

    def get_download_url(self, key: str, expires_s: int) -> Optional[str]:
        expiry = datetime.utcnow() + timedelta(seconds=expires_s)
        sas = generate_blob_sas(
            account_name=self._service.account_name,
            container_name=self.container,
            blob_name=key.lstrip("/"),
            account_key=self._service.credential.account_key,
            permission=BlobSasPermissions(read=True),
            expiry=expiry,
        )
        return f"{self._client(key).url}?{sas}"

    def exists(self, key: str) -> bool:
        return self._client(key).exists()

    def delete(self, key: str) -> None:
        try:
            self._client(key).delete_blob()
        except ResourceNotFoundError:
            logger.info("storage_delete_missing", key=key)
