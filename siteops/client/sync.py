"""
Local-first mutation queue.

A change is recorded locally before the remote call is attempted, and every entry
carries an explicit sync state. Entries the server has not seen yet stay
PENDING_SYNC and are retried by flush(); entries the server refused are REJECTED
and never retried. The queue is persisted as a JSON file.
"""
import enum
import json
import time
import uuid
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Union

import structlog

from .api import ApiError

logger = structlog.get_logger(__name__)

Submitter = Callable[[str, Dict], Awaitable[Optional[Dict]]]


class SyncState(str, enum.Enum):
    SYNCED = "synced"
    PENDING_SYNC = "pending_sync"
    REJECTED = "rejected"


@dataclass
class PendingChange:
    kind: str
    payload: Dict
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: SyncState = SyncState.PENDING_SYNC
    created_at_ms: int = field(default_factory=lambda: int(time.time() * 1000))
    attempts: int = 0
    last_error: Optional[str] = None
    remote_id: Optional[str] = None

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["state"] = self.state.value
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "PendingChange":
        data = dict(data)
        data["state"] = SyncState(data.get("state", SyncState.PENDING_SYNC.value))
        return cls(**data)


def attendance_submitter(api) -> Submitter:
    """Submitter routing "create_attendance" changes to SiteOpsClient."""

    async def submit(kind: str, payload: Dict) -> Optional[Dict]:
        if kind == "create_attendance":
            return await api.create_attendance(payload)
        raise ValueError(f"Unknown change kind: {kind}")

    return submit


class PendingSyncQueue:
    def __init__(self, submit: Submitter, path: Union[str, Path, None] = None):
        self._submit = submit
        self.path = Path(path) if path else None
        self.entries: List[PendingChange] = []
        if self.path and self.path.exists():
            self.load()

    @property
    def pending(self) -> List[PendingChange]:
        return [e for e in self.entries if e.state is SyncState.PENDING_SYNC]

    async def apply(self, kind: str, payload: Dict) -> PendingChange:
        """Record the change locally, then try to push it."""
        change = PendingChange(kind=kind, payload=payload)
        self.entries.append(change)
        self.save()
        await self._push(change)
        return change

    async def flush(self) -> List[PendingChange]:
        """Retry every PENDING_SYNC entry in creation order; returns those attempted."""
        attempted = list(self.pending)
        for change in attempted:
            await self._push(change)
        return attempted

    async def _push(self, change: PendingChange) -> None:
        change.attempts += 1
        try:
            result = await self._submit(change.kind, change.payload)
        except ApiError as e:
            change.last_error = e.message
            if e.is_network_error or e.status >= 500:
                logger.info("sync_deferred", change=change.id, status=e.status, error=e.message)
            else:
                change.state = SyncState.REJECTED
                logger.warning("sync_rejected", change=change.id, status=e.status, error=e.message)
        else:
            change.state = SyncState.SYNCED
            change.last_error = None
            if isinstance(result, dict) and result.get("id"):
                change.remote_id = str(result["id"])
        self.save()

    def discard(self, change_id: str) -> None:
        self.entries = [e for e in self.entries if e.id != change_id]
        self.save()

    def save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps([e.to_dict() for e in self.entries], indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def load(self) -> None:
        raw = json.loads(self.path.read_text(encoding="utf-8"))
        self.entries = [PendingChange.from_dict(item) for item in raw]
