"""
Field attendance workflow.

Drives one attendance submission: pick a project, pick a labourer from the project
roster, take a verification photo (located, address-stamped and uploaded), then
create exactly one attendance record.

    IDLE -> PROJECT_SELECTED -> LABOUR_SELECTED -> PHOTO_CAPTURING
         -> PHOTO_UPLOADING -> SUBMITTING -> SUCCESS | ERROR

Errors never clear the form; the same form can be submitted again.
"""
import asyncio
import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import pytz
import structlog
from PIL import UnidentifiedImageError

from ..config import settings
from ..services.geocoding import GeocodingService
from ..services.location import LocationError, LocationSample, LocationService
from ..services.time_rules import compute_hours, sanitize_mobile, work_date
from ..services.watermark import (
    PhotoValidationError,
    render_watermark,
    validate_photo,
    watermark_filename,
)
from .api import ApiError, SiteOpsClient, is_duplicate_error

logger = structlog.get_logger(__name__)


class WorkflowState(str, enum.Enum):
    IDLE = "idle"
    PROJECT_SELECTED = "project_selected"
    LABOUR_SELECTED = "labour_selected"
    PHOTO_CAPTURING = "photo_capturing"
    PHOTO_UPLOADING = "photo_uploading"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    ERROR = "error"


class ResultKind(str, enum.Enum):
    OK = "ok"
    DUPLICATE = "duplicate"
    VALIDATION = "validation"
    PENDING_UPLOAD = "pending_upload"
    OTHER = "other"


class PhotoStatus(str, enum.Enum):
    PROCESSING = "processing"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    FAILED = "failed"


class WorkflowError(Exception):
    pass


@dataclass
class SubmissionResult:
    kind: ResultKind
    message: str
    record: Optional[Dict] = None
    display_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.kind is ResultKind.OK


@dataclass
class PhotoSlot:
    content: bytes
    filename: str
    content_type: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: PhotoStatus = PhotoStatus.PROCESSING
    file_id: Optional[str] = None
    error: Optional[str] = None
    location: Optional[LocationSample] = None
    address: Optional[str] = None

    @property
    def in_flight(self) -> bool:
        return self.status in (PhotoStatus.PROCESSING, PhotoStatus.UPLOADING)


class AttendanceWorkflow:
    def __init__(
        self,
        api: SiteOpsClient,
        location: LocationService,
        geocoder: GeocodingService,
        *,
        max_photos: Optional[int] = None,
        timezone: Optional[str] = None,
    ):
        self.api = api
        self.location = location
        self.geocoder = geocoder
        self.max_photos = max_photos if max_photos is not None else settings.attendance_max_photos
        self.timezone = timezone

        self.state = WorkflowState.IDLE
        self.error_kind: Optional[ResultKind] = None
        self.projects: List[Dict] = []
        self.roster: List[Dict] = []
        self.project: Optional[Dict] = None
        self.labour: Optional[Dict] = None
        self.photos: List[PhotoSlot] = []

        self.time_in: Optional[str] = None
        self.time_out: Optional[str] = None
        self.status: str = "present"
        self.notes: Optional[str] = None

    # Selection

    async def load_projects(self) -> List[Dict]:
        self.projects = await self.api.list_projects()
        return self.projects

    async def select_project(self, project_id: str) -> List[Dict]:
        """Switch project; the labour choice is cleared and the roster refetched for it."""
        project = next((p for p in self.projects if str(p.get("id")) == str(project_id)), None)
        if project is None:
            project = {"id": str(project_id)}
        self.project = project
        self.labour = None
        self.roster = []
        self.state = WorkflowState.PROJECT_SELECTED
        self.roster = await self.api.list_roster(project_id)
        return self.roster

    def select_labour(self, labour_id: str) -> Dict:
        if self.project is None:
            raise WorkflowError("Please select a project first")
        labour = next((l for l in self.roster if str(l.get("id")) == str(labour_id)), None)
        if labour is None:
            raise WorkflowError("Selected labour is not on this project's roster")
        self.labour = labour
        self.state = WorkflowState.LABOUR_SELECTED
        return labour

    def _idle_state(self) -> WorkflowState:
        if self.labour is not None:
            return WorkflowState.LABOUR_SELECTED
        if self.project is not None:
            return WorkflowState.PROJECT_SELECTED
        return WorkflowState.IDLE

    # Photos

    @property
    def uploading(self) -> bool:
        return any(p.in_flight for p in self.photos)

    @property
    def attachment_ids(self) -> List[str]:
        return [p.file_id for p in self.photos if p.status is PhotoStatus.UPLOADED and p.file_id]

    async def capture_photo(self, content: bytes, filename: str, content_type: str) -> PhotoSlot:
        if len(self.photos) >= self.max_photos:
            raise WorkflowError(f"Maximum {self.max_photos} photo(s) allowed")
        slot = PhotoSlot(content=content, filename=filename, content_type=content_type)
        self.photos.append(slot)
        await self._process(slot)
        return slot

    async def capture_photos(self, files: Sequence[Tuple[bytes, str, str]]) -> List[PhotoSlot]:
        """Several photos at once; each runs its own pipeline."""
        room = self.max_photos - len(self.photos)
        if len(files) > room:
            raise WorkflowError(f"Maximum {self.max_photos} photo(s) allowed")
        slots = [PhotoSlot(content=c, filename=n, content_type=t) for c, n, t in files]
        self.photos.extend(slots)
        await asyncio.gather(*(self._process(s) for s in slots))
        return slots

    async def retry_photo(self, slot_id: str) -> PhotoSlot:
        slot = self._slot(slot_id)
        if slot.status is not PhotoStatus.FAILED:
            raise WorkflowError("Only failed photos can be retried")
        slot.error = None
        await self._process(slot)
        return slot

    def remove_photo(self, slot_id: str) -> None:
        slot = self._slot(slot_id)
        if slot.in_flight:
            raise WorkflowError("Photo is still uploading")
        self.photos.remove(slot)

    def _slot(self, slot_id: str) -> PhotoSlot:
        for slot in self.photos:
            if slot.id == slot_id:
                return slot
        raise WorkflowError("Photo not found")

    async def _process(self, slot: PhotoSlot) -> None:
        """Validate, locate, resolve address, watermark, upload; strictly in that order."""
        slot.status = PhotoStatus.PROCESSING
        self.state = WorkflowState.PHOTO_CAPTURING
        try:
            try:
                validate_photo(slot.content_type, len(slot.content))
            except PhotoValidationError as e:
                self._fail(slot, str(e))
                return

            try:
                slot.location = await self.location.acquire_location()
            except LocationError as e:
                logger.warning("photo_location_unavailable", photo=slot.id, error=str(e))
                slot.location = None

            if slot.location is not None:
                slot.address = await self.geocoder.resolve_address(
                    slot.location.latitude, slot.location.longitude
                )

            taken_at = datetime.now(pytz.UTC)
            try:
                stamped = render_watermark(
                    slot.content,
                    taken_at=taken_at,
                    address=slot.address,
                    latitude=slot.location.latitude if slot.location else None,
                    longitude=slot.location.longitude if slot.location else None,
                    project_label=(self.project or {}).get("name"),
                    timezone_str=self._timezone(),
                )
            except (UnidentifiedImageError, OSError, ValueError) as e:
                self._fail(slot, f"Could not process photo: {e}")
                return

            slot.status = PhotoStatus.UPLOADING
            self.state = WorkflowState.PHOTO_UPLOADING
            try:
                uploaded = await self.api.upload_file(
                    stamped,
                    watermark_filename(int(taken_at.timestamp() * 1000)),
                    "image/jpeg",
                    project_id=(self.project or {}).get("id"),
                    category="attendance",
                )
            except ApiError as e:
                self._fail(slot, f"Upload failed: {e.message}")
                return

            slot.file_id = str(uploaded["id"])
            slot.status = PhotoStatus.UPLOADED
            logger.info("photo_uploaded", photo=slot.id, file_id=slot.file_id, address=slot.address)
        finally:
            if not self.uploading:
                self.state = self._idle_state()

    def _fail(self, slot: PhotoSlot, message: str) -> None:
        slot.status = PhotoStatus.FAILED
        slot.error = message
        logger.warning("photo_failed", photo=slot.id, error=message)

    def _timezone(self) -> Optional[str]:
        return (self.project or {}).get("timezone") or self.timezone

    # Submission

    def build_payload(self) -> Dict:
        labour = self.labour or {}
        return {
            "employee_name": (labour.get("name") or "").strip(),
            "mobile_number": sanitize_mobile(labour.get("mobile_number")),
            "labour_type": labour.get("labour_type") or None,
            "project_id": str(self.project["id"]),
            "date": work_date(self._timezone()).isoformat(),
            "time_in": self.time_in,
            "time_out": self.time_out,
            "status": self.status,
            "hours": compute_hours(self.time_in, self.time_out),
            "notes": self.notes,
            "attachments": self.attachment_ids,
        }

    def _error(self, kind: ResultKind, message: str, seconds: Optional[float] = None) -> SubmissionResult:
        self.state = WorkflowState.ERROR
        self.error_kind = kind
        return SubmissionResult(
            kind=kind,
            message=message,
            display_seconds=seconds if seconds is not None else settings.error_toast_seconds,
        )

    async def submit(self) -> SubmissionResult:
        if self.uploading:
            return SubmissionResult(
                kind=ResultKind.PENDING_UPLOAD,
                message="Please wait for photo uploads to finish",
                display_seconds=settings.error_toast_seconds,
            )
        if self.project is None:
            return self._error(ResultKind.VALIDATION, "Please select a project")
        if self.labour is None:
            return self._error(ResultKind.VALIDATION, "Please select a labour")
        if any(p.status is PhotoStatus.FAILED for p in self.photos):
            return self._error(ResultKind.VALIDATION, "A photo failed to upload; retry or remove it")
        if not self.attachment_ids:
            return self._error(ResultKind.VALIDATION, "Please take a verification photo")

        payload = self.build_payload()
        self.state = WorkflowState.SUBMITTING
        try:
            record = await self.api.create_attendance(payload)
        except ApiError as e:
            if is_duplicate_error(e):
                logger.info("attendance_duplicate", employee_name=payload["employee_name"])
                return self._error(ResultKind.DUPLICATE, e.message, settings.duplicate_toast_seconds)
            if e.status in (400, 404, 422):
                return self._error(ResultKind.VALIDATION, e.message)
            logger.warning("attendance_submit_failed", status=e.status, error=e.message)
            return self._error(ResultKind.OTHER, e.message)

        self.reset()
        self.state = WorkflowState.SUCCESS
        return SubmissionResult(
            kind=ResultKind.OK,
            message="Attendance recorded",
            record=record,
            display_seconds=settings.error_toast_seconds,
        )

    def reset(self) -> None:
        """Clear the form; loaded projects stay cached."""
        self.project = None
        self.labour = None
        self.roster = []
        self.photos = []
        self.time_in = None
        self.time_out = None
        self.status = "present"
        self.notes = None
        self.error_kind = None
        self.state = WorkflowState.IDLE
