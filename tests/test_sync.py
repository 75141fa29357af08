import asyncio
import json

from siteops.client.api import ApiError
from siteops.client.sync import PendingSyncQueue, SyncState, attendance_submitter


class ScriptedSubmitter:
    """Returns or raises the queued outcomes in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def __call__(self, kind, payload):
        self.calls.append((kind, payload))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def test_successful_change_is_synced():
    submit = ScriptedSubmitter({"id": "att-1"})
    queue = PendingSyncQueue(submit)

    change = asyncio.run(queue.apply("create_attendance", {"employee_name": "Ramesh Kumar"}))

    assert change.state is SyncState.SYNCED
    assert change.remote_id == "att-1"
    assert change.attempts == 1
    assert queue.pending == []


def test_network_failure_stays_pending_until_flush():
    submit = ScriptedSubmitter(ApiError(0, "Network error", code="network_error"), {"id": "att-1"})
    queue = PendingSyncQueue(submit)

    async def scenario():
        change = await queue.apply("create_attendance", {"employee_name": "Ramesh Kumar"})
        state_after_apply = change.state
        attempted = await queue.flush()
        return change, state_after_apply, attempted

    change, state_after_apply, attempted = asyncio.run(scenario())

    assert state_after_apply is SyncState.PENDING_SYNC
    assert attempted == [change]
    assert change.state is SyncState.SYNCED
    assert change.attempts == 2
    assert change.last_error is None


def test_server_error_is_retried_but_client_error_is_rejected():
    submit = ScriptedSubmitter(
        ApiError(503, "Service Unavailable"),
        ApiError(409, "already exists", code="duplicate_attendance"),
    )
    queue = PendingSyncQueue(submit)

    async def scenario():
        first = await queue.apply("create_attendance", {"n": 1})
        second = await queue.apply("create_attendance", {"n": 2})
        return first, second

    first, second = asyncio.run(scenario())

    assert first.state is SyncState.PENDING_SYNC
    assert second.state is SyncState.REJECTED
    assert second.last_error == "already exists"

    submit.outcomes.append({"id": "att-9"})
    assert asyncio.run(queue.flush()) == [first]
    assert second.attempts == 1


def test_queue_persists_and_reloads(tmp_path):
    path = tmp_path / "queue.json"
    submit = ScriptedSubmitter(ApiError(0, "offline", code="network_error"))
    queue = PendingSyncQueue(submit, path=path)
    change = asyncio.run(queue.apply("create_attendance", {"employee_name": "Anil Gowda"}))

    stored = json.loads(path.read_text(encoding="utf-8"))
    assert stored[0]["state"] == "pending_sync"
    assert not path.with_suffix(".json.tmp").exists()

    reloaded = PendingSyncQueue(ScriptedSubmitter({"id": "att-2"}), path=path)
    assert [e.id for e in reloaded.pending] == [change.id]
    assert reloaded.pending[0].payload == {"employee_name": "Anil Gowda"}

    asyncio.run(reloaded.flush())
    assert json.loads(path.read_text(encoding="utf-8"))[0]["state"] == "synced"


def test_discard_removes_entry(tmp_path):
    queue = PendingSyncQueue(ScriptedSubmitter(ApiError(400, "bad")), path=tmp_path / "q.json")
    change = asyncio.run(queue.apply("create_attendance", {}))
    queue.discard(change.id)
    assert queue.entries == []


def test_attendance_submitter_routes_to_api():
    class Api:
        async def create_attendance(self, payload):
            return {"id": "att-3", **payload}

    submit = attendance_submitter(Api())
    assert asyncio.run(submit("create_attendance", {"notes": "x"}))["id"] == "att-3"
