"""
Async HTTP client for the SiteOps API, used by the field attendance workflow.
"""
import uuid
from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..config import settings

logger = structlog.get_logger(__name__)

DUPLICATE_CODE = "duplicate_attendance"
DUPLICATE_PHRASES = ("already exists", "duplicate attendance")


class ApiError(Exception):
    """Non-2xx response, or no response at all (status 0)."""

    def __init__(self, status: int, message: str, code: Optional[str] = None, payload: Any = None):
        super().__init__(message)
        self.status = status
        self.message = message
        self.code = code
        self.payload = payload

    @property
    def is_network_error(self) -> bool:
        return self.status == 0


def is_duplicate_error(error: ApiError) -> bool:
    """Error code first; message phrases only when the server sent no code."""
    if error.code:
        return error.code == DUPLICATE_CODE
    text = (error.message or "").lower()
    return any(phrase in text for phrase in DUPLICATE_PHRASES)


def _error_message(payload: Any, fallback: str) -> str:
    if isinstance(payload, dict):
        detail = payload.get("detail") or payload.get("message") or payload.get("error")
        if isinstance(detail, list) and detail:
            first = detail[0]
            if isinstance(first, dict):
                loc = ".".join(str(p) for p in first.get("loc", []) if p != "body")
                msg = first.get("msg", fallback)
                return f"{loc}: {msg}" if loc else msg
            return str(first)
        if detail:
            return str(detail)
    return fallback


class SiteOpsClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.public_base_url, timeout=timeout
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "SiteOpsClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("api_network_error", method=method, path=path, error=str(e))
            raise ApiError(0, f"Network error: {e}", code="network_error") from e

        if resp.status_code >= 400:
            try:
                payload = resp.json()
            except ValueError:
                payload = None
            message = _error_message(payload, resp.reason_phrase or f"HTTP {resp.status_code}")
            code = payload.get("code") if isinstance(payload, dict) else None
            raise ApiError(resp.status_code, message, code=code, payload=payload)

        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    async def list_projects(self) -> List[Dict]:
        return await self._request("GET", "/projects")

    async def list_roster(self, project_id: Optional[str] = None) -> List[Dict]:
        params = {"project_id": str(project_id)} if project_id else None
        return await self._request("GET", "/labours/roster", params=params)

    async def upload_file(
        self,
        content: bytes,
        filename: str,
        content_type: str,
        project_id: Optional[str] = None,
        category: Optional[str] = None,
    ) -> Dict:
        data = {}
        if project_id:
            data["project_id"] = str(project_id)
        if category:
            data["category"] = category
        return await self._request(
            "POST", "/files/upload", files={"file": (filename, content, content_type)}, data=data
        )

    async def create_attendance(self, payload: Dict) -> Dict:
        return await self._request("POST", "/attendance", json=payload)

    async def get_attendance(self, attendance_id) -> Dict:
        return await self._request("GET", f"/attendance/{uuid.UUID(str(attendance_id))}")
