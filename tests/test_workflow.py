import asyncio
import io
import time

import httpx
import pytest
from PIL import Image as PILImage

from siteops.client.api import ApiError, SiteOpsClient
from siteops.client.workflow import (
    AttendanceWorkflow,
    PhotoStatus,
    ResultKind,
    WorkflowError,
    WorkflowState,
)
from siteops.config import settings
from siteops.main import app
from siteops.models.models import Attendance, Labour
from siteops.services.geocoding import GeocodingService
from siteops.services.location import LocationService, StaticPositionSource

from conftest import make_image_bytes

PROJECTS = [
    {"id": "p-1", "name": "Koramangala Residency", "timezone": "Asia/Kolkata"},
    {"id": "p-2", "name": "Whitefield Tech Park Block C", "timezone": "Asia/Kolkata"},
]
ROSTERS = {
    "p-1": [{"id": "l-1", "name": "Ramesh Kumar", "mobile_number": "98-765 43210", "labour_type": "Mason"}],
    "p-2": [{"id": "l-2", "name": "Anil Gowda", "mobile_number": "12345", "labour_type": "Electrician"}],
}


class FakeApi:
    def __init__(self):
        self.roster_requests = []
        self.uploads = []
        self.created = []
        self.upload_gate = None
        self.upload_error = None
        self.create_error = None

    async def list_projects(self):
        return list(PROJECTS)

    async def list_roster(self, project_id=None):
        self.roster_requests.append(project_id)
        return list(ROSTERS.get(project_id, []))

    async def upload_file(self, content, filename, content_type, project_id=None, category=None):
        if self.upload_gate is not None:
            await self.upload_gate.wait()
        if self.upload_error is not None:
            raise self.upload_error
        self.uploads.append({"content": content, "filename": filename, "content_type": content_type})
        return {"id": f"file-{len(self.uploads)}"}

    async def create_attendance(self, payload):
        if self.create_error is not None:
            raise self.create_error
        self.created.append(payload)
        return {"id": "att-1", **payload}


class FixedGeocoder:
    def __init__(self, address="Koramangala, Bengaluru, Karnataka, India"):
        self.address = address
        self.calls = []

    async def resolve_address(self, lat, lng):
        self.calls.append((lat, lng))
        return self.address


def make_workflow(api=None, source=StaticPositionSource(12.935223, 77.624482, 8.0), geocoder=None, **kwargs):
    return AttendanceWorkflow(
        api or FakeApi(),
        LocationService(source, retry_delay_s=0),
        geocoder or FixedGeocoder(),
        **kwargs,
    )


async def ready(workflow, project_id="p-1", labour_id="l-1", photo=True):
    await workflow.load_projects()
    await workflow.select_project(project_id)
    workflow.select_labour(labour_id)
    if photo:
        await workflow.capture_photo(make_image_bytes("JPEG"), "IMG_0001.jpg", "image/jpeg")


def test_happy_path_submits_one_record():
    api = FakeApi()
    workflow = make_workflow(api)

    async def scenario():
        await ready(workflow)
        workflow.time_in, workflow.time_out = "09:00", "17:30"
        return await workflow.submit()

    result = asyncio.run(scenario())

    assert result.kind is ResultKind.OK
    assert result.record["id"] == "att-1"
    assert len(api.created) == 1
    payload = api.created[0]
    assert payload["employee_name"] == "Ramesh Kumar"
    assert payload["mobile_number"] == "9876543210"
    assert payload["hours"] == 8.5
    assert payload["project_id"] == "p-1"
    assert payload["attachments"] == ["file-1"]
    assert workflow.state is WorkflowState.SUCCESS
    assert workflow.labour is None and workflow.photos == []


def test_photo_is_watermarked_jpeg_with_resolved_address():
    api = FakeApi()
    geocoder = FixedGeocoder()
    workflow = make_workflow(api, geocoder=geocoder)
    asyncio.run(ready(workflow))

    slot = workflow.photos[0]
    assert slot.status is PhotoStatus.UPLOADED
    assert slot.address == "Koramangala, Bengaluru, Karnataka, India"
    assert geocoder.calls == [(12.935223, 77.624482)]
    upload = api.uploads[0]
    assert upload["content_type"] == "image/jpeg"
    assert upload["filename"].startswith("attendance_")
    assert PILImage.open(io.BytesIO(upload["content"])).format == "JPEG"


def test_invalid_mobile_is_dropped():
    api = FakeApi()
    workflow = make_workflow(api)

    async def scenario():
        await ready(workflow, project_id="p-2", labour_id="l-2")
        return await workflow.submit()

    assert asyncio.run(scenario()).kind is ResultKind.OK
    assert api.created[0]["mobile_number"] is None
    assert api.created[0]["hours"] == settings.attendance_default_hours


def test_switching_project_resets_labour_and_refetches_roster():
    api = FakeApi()
    workflow = make_workflow(api)

    async def scenario():
        await workflow.load_projects()
        await workflow.select_project("p-1")
        workflow.select_labour("l-1")
        await workflow.select_project("p-2")

    asyncio.run(scenario())

    assert workflow.labour is None
    assert workflow.state is WorkflowState.PROJECT_SELECTED
    assert api.roster_requests == ["p-1", "p-2"]
    assert [l["id"] for l in workflow.roster] == ["l-2"]
    with pytest.raises(WorkflowError):
        workflow.select_labour("l-1")


def test_submit_blocked_while_upload_in_flight():
    api = FakeApi()
    workflow = make_workflow(api)

    async def scenario():
        api.upload_gate = asyncio.Event()
        await ready(workflow, photo=False)
        capture = asyncio.ensure_future(
            workflow.capture_photo(make_image_bytes("JPEG"), "IMG_0002.jpg", "image/jpeg")
        )
        while not workflow.photos or workflow.photos[0].status is not PhotoStatus.UPLOADING:
            await asyncio.sleep(0)
        assert workflow.state is WorkflowState.PHOTO_UPLOADING

        blocked = await workflow.submit()
        created_while_blocked = len(api.created)

        api.upload_gate.set()
        await capture
        return blocked, created_while_blocked, await workflow.submit()

    blocked, created_while_blocked, after = asyncio.run(scenario())

    assert blocked.kind is ResultKind.PENDING_UPLOAD
    assert created_while_blocked == 0
    assert after.kind is ResultKind.OK
    assert len(api.created) == 1


def test_submit_requires_photo():
    api = FakeApi()
    workflow = make_workflow(api)

    async def scenario():
        await ready(workflow, photo=False)
        return await workflow.submit()

    result = asyncio.run(scenario())
    assert result.kind is ResultKind.VALIDATION
    assert api.created == []
    assert workflow.state is WorkflowState.ERROR


def test_submit_requires_project_and_labour():
    workflow = make_workflow()
    assert asyncio.run(workflow.submit()).kind is ResultKind.VALIDATION


def test_duplicate_is_reported_verbatim_and_form_kept():
    api = FakeApi()
    message = 'Attendance for "Ramesh Kumar" (9876543210) on this date in this project already exists.'
    api.create_error = ApiError(409, message, code="duplicate_attendance")
    workflow = make_workflow(api)

    async def scenario():
        await ready(workflow)
        return await workflow.submit()

    result = asyncio.run(scenario())

    assert result.kind is ResultKind.DUPLICATE
    assert result.message == message
    assert result.display_seconds == settings.duplicate_toast_seconds
    assert result.display_seconds > settings.error_toast_seconds
    assert workflow.state is WorkflowState.ERROR
    assert workflow.error_kind is ResultKind.DUPLICATE
    assert workflow.labour["id"] == "l-1"
    assert workflow.attachment_ids == ["file-1"]


def test_duplicate_recognised_from_message_without_code():
    api = FakeApi()
    api.create_error = ApiError(400, "Duplicate attendance record")
    workflow = make_workflow(api)

    async def scenario():
        await ready(workflow)
        return await workflow.submit()

    assert asyncio.run(scenario()).kind is ResultKind.DUPLICATE


@pytest.mark.parametrize(
    "error,kind",
    [
        (ApiError(500, "Internal Server Error"), ResultKind.OTHER),
        (ApiError(0, "Network error: connection refused", code="network_error"), ResultKind.OTHER),
        (ApiError(422, "mobile_number: String should match pattern"), ResultKind.VALIDATION),
        (ApiError(409, "Project code already in use", code="conflict"), ResultKind.OTHER),
    ],
)
def test_other_failures_keep_form_for_retry(error, kind):
    api = FakeApi()
    api.create_error = error
    workflow = make_workflow(api)

    async def scenario():
        await ready(workflow)
        first = await workflow.submit()
        api.create_error = None
        second = await workflow.submit()
        return first, second

    first, second = asyncio.run(scenario())

    assert first.kind is kind
    assert first.display_seconds == settings.error_toast_seconds
    assert second.kind is ResultKind.OK


def test_upload_failure_marks_photo_and_allows_retry():
    api = FakeApi()
    api.upload_error = ApiError(502, "Failed to store file")
    workflow = make_workflow(api)

    async def scenario():
        await ready(workflow)
        slot = workflow.photos[0]
        failed_status, failed_error = slot.status, slot.error
        blocked = await workflow.submit()
        api.upload_error = None
        await workflow.retry_photo(slot.id)
        return failed_status, failed_error, blocked, slot.status

    failed_status, failed_error, blocked, retried_status = asyncio.run(scenario())

    assert failed_status is PhotoStatus.FAILED
    assert "Failed to store file" in failed_error
    assert blocked.kind is ResultKind.VALIDATION
    assert retried_status is PhotoStatus.UPLOADED


def test_photo_proceeds_without_location():
    api = FakeApi()
    geocoder = FixedGeocoder()
    workflow = make_workflow(api, source=None, geocoder=geocoder)
    asyncio.run(ready(workflow))

    slot = workflow.photos[0]
    assert slot.status is PhotoStatus.UPLOADED
    assert slot.location is None
    assert slot.address is None
    assert geocoder.calls == []


def test_photo_limit():
    workflow = make_workflow()
    asyncio.run(ready(workflow))
    with pytest.raises(WorkflowError, match="Maximum 1"):
        asyncio.run(workflow.capture_photo(make_image_bytes("JPEG"), "IMG_0003.jpg", "image/jpeg"))


def test_multiple_photos_uploaded_concurrently():
    api = FakeApi()
    workflow = make_workflow(api, max_photos=3)

    async def scenario():
        await ready(workflow, photo=False)
        return await workflow.capture_photos(
            [(make_image_bytes("JPEG"), f"IMG_{i}.jpg", "image/jpeg") for i in range(3)]
        )

    slots = asyncio.run(scenario())
    assert [s.status for s in slots] == [PhotoStatus.UPLOADED] * 3
    assert len(workflow.attachment_ids) == 3


def test_unsupported_photo_type_fails_without_upload():
    api = FakeApi()
    workflow = make_workflow(api)

    async def scenario():
        await ready(workflow, photo=False)
        return await workflow.capture_photo(b"%PDF-1.4", "scan.pdf", "application/pdf")

    slot = asyncio.run(scenario())
    assert slot.status is PhotoStatus.FAILED
    assert api.uploads == []


def test_workflow_against_backend_detects_duplicate(client, project, db):
    """Full round trip through the HTTP API; the second submission is a duplicate."""
    db.add(Labour(name="Ramesh Kumar", mobile_number="9876543210", labour_type="Mason", project_id=project.id))
    db.commit()

    async def scenario():
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
            api = SiteOpsClient(client=http)
            source = StaticPositionSource(12.935223, 77.624482, 8.0)
            results = []
            for _ in range(2):
                workflow = AttendanceWorkflow(
                    api, LocationService(source, retry_delay_s=0), GeocodingService([])
                )
                await workflow.load_projects()
                roster = await workflow.select_project(str(project.id))
                workflow.select_labour(roster[0]["id"])
                await workflow.capture_photo(make_image_bytes("JPEG"), "IMG_0001.jpg", "image/jpeg")
                results.append(await workflow.submit())
            return results

    first, second = asyncio.run(scenario())

    assert first.kind is ResultKind.OK
    assert first.record["project_name"] == "Koramangala Residency"
    assert second.kind is ResultKind.DUPLICATE
    assert "already exists" in second.message
    assert db.query(Attendance).count() == 1


class FlakyUploadApi(FakeApi):
    """First upload fails, later ones succeed."""

    def __init__(self):
        super().__init__()
        self.attempts = 0

    async def upload_file(self, content, filename, content_type, project_id=None, category=None):
        self.attempts += 1
        if self.attempts == 1:
            raise ApiError(503, "Service Unavailable")
        return await super().upload_file(content, filename, content_type, project_id, category)


def test_failed_photo_blocks_submit_even_with_another_uploaded():
    api = FlakyUploadApi()
    workflow = make_workflow(api, max_photos=2)

    async def scenario():
        await ready(workflow, photo=False)
        failed = await workflow.capture_photo(make_image_bytes("JPEG"), "IMG_1.jpg", "image/jpeg")
        await workflow.capture_photo(make_image_bytes("JPEG"), "IMG_2.jpg", "image/jpeg")
        blocked = await workflow.submit()
        created_while_blocked = len(api.created)
        workflow.remove_photo(failed.id)
        return blocked, created_while_blocked, await workflow.submit()

    blocked, created_while_blocked, after = asyncio.run(scenario())

    assert blocked.kind is ResultKind.VALIDATION
    assert "retry or remove" in blocked.message
    assert created_while_blocked == 0
    assert after.kind is ResultKind.OK
    assert api.created[0]["attachments"] == ["file-1"]


def test_photo_filename_uses_current_epoch_millis():
    api = FakeApi()
    workflow = make_workflow(api)
    before = int(time.time() * 1000)
    asyncio.run(ready(workflow))
    after = int(time.time() * 1000)

    stamp = int(api.uploads[0]["filename"][len("attendance_"):-len(".jpg")])
    assert before <= stamp <= after
