import uuid
from datetime import date as date_type, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
import enum


class AttendanceStatus(str, enum.Enum):
    present = "present"
    absent = "absent"
    late = "late"
    half_day = "half_day"
    overtime = "overtime"


HHMM_PATTERN = r"^([01]\d|2[0-3]):([0-5]\d)$"
TEXT_FIELDS = ("employee_name", "labour_type", "notes", "mobile_number", "time_in", "time_out")


def blank_to_none(v):
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


class AttendanceBase(BaseModel):
    employee_id: Optional[uuid.UUID] = None
    employee_name: str = Field(min_length=2, max_length=100)
    mobile_number: Optional[str] = Field(default=None, pattern=r"^\d{10}$")
    labour_type: Optional[str] = Field(default=None, min_length=2, max_length=50)
    project_id: uuid.UUID
    date: Optional[date_type] = None
    time_in: Optional[str] = Field(default=None, pattern=HHMM_PATTERN)
    time_out: Optional[str] = Field(default=None, pattern=HHMM_PATTERN)
    status: AttendanceStatus = AttendanceStatus.present
    hours: Optional[float] = Field(default=None, ge=0, le=24)
    overtime_hours: float = Field(default=0, ge=0)
    notes: Optional[str] = Field(default=None, min_length=2, max_length=500)
    attachments: List[uuid.UUID] = Field(default_factory=list)

    @field_validator(*TEXT_FIELDS, mode="before")
    @classmethod
    def strip_blank(cls, v):
        return blank_to_none(v)


class AttendanceCreate(AttendanceBase):
    pass


class AttendanceUpdate(BaseModel):
    """Partial update; only fields that are sent are applied."""
    employee_name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    mobile_number: Optional[str] = Field(default=None, pattern=r"^\d{10}$")
    labour_type: Optional[str] = Field(default=None, min_length=2, max_length=50)
    project_id: Optional[uuid.UUID] = None
    date: Optional[date_type] = None
    time_in: Optional[str] = Field(default=None, pattern=HHMM_PATTERN)
    time_out: Optional[str] = Field(default=None, pattern=HHMM_PATTERN)
    status: Optional[AttendanceStatus] = None
    hours: Optional[float] = Field(default=None, ge=0, le=24)
    overtime_hours: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, min_length=2, max_length=500)
    attachments: Optional[List[uuid.UUID]] = None

    @field_validator(*TEXT_FIELDS, mode="before")
    @classmethod
    def strip_blank(cls, v):
        return blank_to_none(v)

    @model_validator(mode="after")
    def required_fields_not_null(self):
        for name in ("employee_name", "project_id", "date", "status", "hours", "overtime_hours"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class ApproveRequest(BaseModel):
    approved_by: Optional[uuid.UUID] = None
    is_approved: bool = True


class AttachmentInfo(BaseModel):
    id: uuid.UUID
    original_name: Optional[str] = None
    content_type: Optional[str] = None
    size_bytes: Optional[int] = None
    key: Optional[str] = None

    class Config:
        from_attributes = True


class AttendanceResponse(BaseModel):
    id: uuid.UUID
    employee_id: Optional[uuid.UUID] = None
    employee_name: str
    mobile_number: Optional[str] = None
    labour_type: Optional[str] = None
    project_id: uuid.UUID
    project_name: Optional[str] = None
    date: date_type
    time_in: Optional[str] = None
    time_out: Optional[str] = None
    status: str
    hours: float
    overtime_hours: float
    notes: Optional[str] = None
    attachments: List[AttachmentInfo] = Field(default_factory=list)
    is_approved: bool
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AttendancePage(BaseModel):
    items: List[AttendanceResponse]
    total: int
    page: int
    pages: int


class AuditEntry(BaseModel):
    id: uuid.UUID
    action: str
    source: Optional[str] = None
    changes_json: Optional[dict] = None
    context: Optional[dict] = None
    timestamp_utc: datetime
    integrity_hash: Optional[str] = None

    class Config:
        from_attributes = True
