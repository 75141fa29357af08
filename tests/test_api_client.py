import asyncio
import json

import httpx
import pytest

from siteops.client.api import ApiError, SiteOpsClient, is_duplicate_error


def client_for(handler):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api.test")
    return SiteOpsClient(client=http)


def test_create_attendance_posts_json():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "abc", "employee_name": "Ramesh Kumar"})

    api = client_for(handler)
    record = asyncio.run(api.create_attendance({"employee_name": "Ramesh Kumar"}))

    assert record["id"] == "abc"
    assert seen == {"method": "POST", "path": "/attendance", "body": {"employee_name": "Ramesh Kumar"}}


def test_roster_passes_project_filter():
    def handler(request):
        assert request.url.path == "/labours/roster"
        assert request.url.params["project_id"] == "p-1"
        return httpx.Response(200, json=[{"id": "l-1", "name": "Ramesh Kumar"}])

    assert asyncio.run(client_for(handler).list_roster("p-1"))[0]["name"] == "Ramesh Kumar"


def test_upload_sends_multipart_form():
    def handler(request):
        body = request.content
        assert request.headers["content-type"].startswith("multipart/form-data")
        assert b'name="project_id"' in body and b"p-1" in body
        assert b'filename="attendance_1.jpg"' in body
        return httpx.Response(201, json={"id": "f-1"})

    uploaded = asyncio.run(
        client_for(handler).upload_file(b"\xff\xd8data", "attendance_1.jpg", "image/jpeg", project_id="p-1")
    )
    assert uploaded == {"id": "f-1"}


def test_conflict_carries_code_and_message():
    def handler(request):
        return httpx.Response(
            409,
            json={
                "detail": 'Attendance for "Ramesh Kumar" on this date already exists.',
                "code": "duplicate_attendance",
                "existing_record_id": "abc",
            },
        )

    with pytest.raises(ApiError) as exc_info:
        asyncio.run(client_for(handler).create_attendance({}))

    err = exc_info.value
    assert err.status == 409
    assert err.code == "duplicate_attendance"
    assert err.payload["existing_record_id"] == "abc"
    assert is_duplicate_error(err)


def test_validation_error_message_is_readable():
    def handler(request):
        return httpx.Response(
            422,
            json={"detail": [{"loc": ["body", "mobile_number"], "msg": "String should match pattern"}]},
        )

    with pytest.raises(ApiError) as exc_info:
        asyncio.run(client_for(handler).create_attendance({}))

    assert exc_info.value.message == "mobile_number: String should match pattern"
    assert not is_duplicate_error(exc_info.value)


def test_non_json_error_uses_reason_phrase():
    def handler(request):
        return httpx.Response(502, text="<html>bad gateway</html>")

    with pytest.raises(ApiError) as exc_info:
        asyncio.run(client_for(handler).list_projects())

    assert exc_info.value.status == 502
    assert exc_info.value.message == "Bad Gateway"


def test_network_failure_is_status_zero():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ApiError) as exc_info:
        asyncio.run(client_for(handler).list_projects())

    assert exc_info.value.is_network_error
    assert exc_info.value.code == "network_error"


@pytest.mark.parametrize(
    "error,expected",
    [
        (ApiError(409, "whatever", code="duplicate_attendance"), True),
        (ApiError(400, "Attendance record already exists for this date"), True),
        (ApiError(400, "Duplicate attendance"), True),
        (ApiError(409, "Record already exists", code="conflict"), False),
        (ApiError(400, "Unknown attachment id(s)"), False),
    ],
)
def test_is_duplicate_error(error, expected):
    assert is_duplicate_error(error) is expected
