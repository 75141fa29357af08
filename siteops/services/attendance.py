"""
Attendance service - business logic for attendance records.

One record per employee per calendar day. Employee records are protected by the
uq_attendance_employee_date constraint; ad-hoc labour records (no employee id) are
matched on name, project, day and mobile number before insert.
"""
import math
import uuid
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

import structlog
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models.models import Attendance, FileObject, Project
from ..schemas.attendance import (
    AttachmentInfo,
    AttendanceCreate,
    AttendanceResponse,
    AttendanceUpdate,
)
from .audit import compute_diff, create_audit_log
from .time_rules import compute_hours, work_date

logger = structlog.get_logger(__name__)

DUPLICATE_CODE = "duplicate_attendance"


class AttendanceError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DuplicateAttendanceError(AttendanceError):
    code = DUPLICATE_CODE

    def __init__(self, message: str, existing_id: Optional[uuid.UUID] = None):
        super().__init__(message)
        self.existing_id = existing_id


class AttendanceNotFound(AttendanceError):
    pass


class ProjectNotFound(AttendanceError):
    pass


class InvalidAttachments(AttendanceError):
    pass


def duplicate_message(employee_id, employee_name: str, mobile_number: Optional[str]) -> str:
    if employee_id:
        return "Attendance for this employee on this date already exists"
    mobile = f" ({mobile_number})" if mobile_number else ""
    return (
        f'Attendance for "{employee_name}"{mobile} on this date in this project already exists. '
        "Please update the existing record instead."
    )


def find_duplicate(
    db: Session,
    employee_id: Optional[uuid.UUID],
    employee_name: str,
    project_id: uuid.UUID,
    day: date,
    mobile_number: Optional[str],
    exclude_id: Optional[uuid.UUID] = None,
) -> Optional[Attendance]:
    query = db.query(Attendance).filter(Attendance.date == day)
    if employee_id:
        query = query.filter(Attendance.employee_id == employee_id)
    else:
        query = query.filter(
            Attendance.employee_id.is_(None),
            Attendance.employee_name == employee_name.strip(),
            Attendance.project_id == project_id,
        )
        if mobile_number:
            query = query.filter(Attendance.mobile_number == mobile_number)
        else:
            query = query.filter(or_(Attendance.mobile_number.is_(None), Attendance.mobile_number == ""))
    if exclude_id:
        query = query.filter(Attendance.id != exclude_id)
    return query.first()


def _get_project(db: Session, project_id: uuid.UUID) -> Project:
    project = db.query(Project).filter(Project.id == project_id).first()
    if not project:
        raise ProjectNotFound("Project not found")
    return project


def _check_attachments(db: Session, attachment_ids: List[uuid.UUID]) -> List[str]:
    if not attachment_ids:
        return []
    found = {
        row.id for row in db.query(FileObject.id).filter(FileObject.id.in_(attachment_ids)).all()
    }
    missing = [str(a) for a in attachment_ids if a not in found]
    if missing:
        raise InvalidAttachments(f"Unknown attachment ids: {', '.join(missing)}")
    return [str(a) for a in attachment_ids]


def _snapshot(record: Attendance) -> Dict:
    return {
        "employee_id": str(record.employee_id) if record.employee_id else None,
        "employee_name": record.employee_name,
        "mobile_number": record.mobile_number,
        "labour_type": record.labour_type,
        "project_id": str(record.project_id),
        "project_name": record.project_name,
        "date": record.date.isoformat() if record.date else None,
        "time_in": record.time_in,
        "time_out": record.time_out,
        "status": record.status,
        "hours": record.hours,
        "overtime_hours": record.overtime_hours,
        "notes": record.notes,
        "attachments": list(record.attachments or []),
        "is_approved": record.is_approved,
        "approved_by": str(record.approved_by) if record.approved_by else None,
    }


def _raise_duplicate(existing: Attendance, employee_id, employee_name, mobile_number):
    logger.info(
        "attendance_duplicate_rejected",
        existing_id=str(existing.id),
        employee_id=str(employee_id) if employee_id else None,
        employee_name=employee_name,
        date=existing.date.isoformat(),
    )
    raise DuplicateAttendanceError(
        duplicate_message(employee_id, employee_name, mobile_number), existing.id
    )


def _commit_or_duplicate(db: Session, record: Attendance, exclude_id=None) -> None:
    """Commit; a unique violation becomes DuplicateAttendanceError."""
    # rollback expires the instance, so read the key first
    key = (record.employee_id, record.employee_name, record.project_id, record.date, record.mobile_number)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = find_duplicate(db, *key, exclude_id=exclude_id)
        if existing is None:
            raise
        _raise_duplicate(existing, key[0], key[1], key[4])


def create_attendance(db: Session, payload: AttendanceCreate, source: str = "api") -> Attendance:
    """
    Persist a new attendance record.

    Raises:
        ProjectNotFound: project_id does not exist
        InvalidAttachments: an attachment id has no file object
        DuplicateAttendanceError: a record for the same person and day already exists
    """
    project = _get_project(db, payload.project_id)
    day = payload.date or work_date(project.timezone)
    employee_name = payload.employee_name.strip()

    existing = find_duplicate(
        db, payload.employee_id, employee_name, payload.project_id, day, payload.mobile_number
    )
    if existing:
        _raise_duplicate(existing, payload.employee_id, employee_name, payload.mobile_number)

    attachments = _check_attachments(db, payload.attachments)
    hours = payload.hours if payload.hours is not None else compute_hours(payload.time_in, payload.time_out)

    record = Attendance(
        employee_id=payload.employee_id,
        employee_name=employee_name,
        mobile_number=payload.mobile_number,
        labour_type=payload.labour_type,
        project_id=payload.project_id,
        project_name=project.name,
        date=day,
        time_in=payload.time_in,
        time_out=payload.time_out,
        status=payload.status.value,
        hours=hours,
        overtime_hours=payload.overtime_hours,
        notes=payload.notes,
        attachments=attachments,
        is_approved=False,
    )
    db.add(record)
    _commit_or_duplicate(db, record)
    db.refresh(record)

    create_audit_log(
        db,
        entity_type="attendance",
        entity_id=record.id,
        action="CREATE",
        source=source,
        changes_json={"after": _snapshot(record)},
        context={"project_id": str(record.project_id), "date": day.isoformat()},
    )
    logger.info(
        "attendance_created",
        attendance_id=str(record.id),
        project_id=str(record.project_id),
        date=day.isoformat(),
        attachments=len(attachments),
    )
    return record


def get_attendance(db: Session, attendance_id: uuid.UUID) -> Attendance:
    record = db.query(Attendance).filter(Attendance.id == attendance_id).first()
    if not record:
        raise AttendanceNotFound("Attendance record not found")
    return record


def list_attendance(
    db: Session,
    project_id: Optional[uuid.UUID] = None,
    status: Optional[str] = None,
    employee_name: Optional[str] = None,
    search: Optional[str] = None,
    day: Optional[date] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[Attendance], int]:
    """Filtered page of records, newest date first; returns (items, total)."""
    query = db.query(Attendance)
    if project_id:
        query = query.filter(Attendance.project_id == project_id)
    if status:
        query = query.filter(Attendance.status == status)
    if employee_name:
        query = query.filter(Attendance.employee_name.ilike(f"%{employee_name}%"))
    if day:
        query = query.filter(Attendance.date == day)
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Attendance.employee_name.ilike(pattern),
                Attendance.mobile_number.ilike(pattern),
                Attendance.labour_type.ilike(pattern),
            )
        )

    total = query.count()
    items = (
        query.order_by(Attendance.date.desc(), Attendance.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def update_attendance(
    db: Session, attendance_id: uuid.UUID, payload: AttendanceUpdate, source: str = "api"
) -> Attendance:
    record = get_attendance(db, attendance_id)
    before = _snapshot(record)
    data = payload.model_dump(exclude_unset=True)

    if data.get("project_id") and data["project_id"] != record.project_id:
        record.project_name = _get_project(db, data["project_id"]).name
    if "attachments" in data:
        data["attachments"] = _check_attachments(db, data["attachments"] or [])
    if data.get("status") is not None:
        data["status"] = data["status"].value if hasattr(data["status"], "value") else data["status"]
    if data.get("employee_name"):
        data["employee_name"] = data["employee_name"].strip()

    for field, value in data.items():
        setattr(record, field, value)

    if ("time_in" in data or "time_out" in data) and "hours" not in data:
        record.hours = compute_hours(record.time_in, record.time_out)

    with db.no_autoflush:
        existing = find_duplicate(
            db,
            record.employee_id,
            record.employee_name,
            record.project_id,
            record.date,
            record.mobile_number,
            exclude_id=record.id,
        )
    if existing:
        key = (record.employee_id, record.employee_name, record.mobile_number)
        db.rollback()
        _raise_duplicate(existing, *key)

    record.updated_at = datetime.utcnow()
    _commit_or_duplicate(db, record, exclude_id=record.id)
    db.refresh(record)

    create_audit_log(
        db,
        entity_type="attendance",
        entity_id=record.id,
        action="UPDATE",
        source=source,
        changes_json=compute_diff(before, _snapshot(record)),
    )
    return record


def approve_attendance(
    db: Session,
    attendance_id: uuid.UUID,
    approved_by: Optional[uuid.UUID] = None,
    is_approved: bool = True,
    source: str = "api",
) -> Attendance:
    record = get_attendance(db, attendance_id)
    before = _snapshot(record)
    record.is_approved = is_approved
    record.approved_by = approved_by if is_approved else None
    record.approved_at = datetime.utcnow() if is_approved else None
    db.commit()
    db.refresh(record)

    create_audit_log(
        db,
        entity_type="attendance",
        entity_id=record.id,
        action="APPROVE" if is_approved else "UNAPPROVE",
        source=source,
        changes_json=compute_diff(before, _snapshot(record)),
    )
    return record


def delete_attendance(db: Session, attendance_id: uuid.UUID, source: str = "api") -> None:
    record = get_attendance(db, attendance_id)
    snapshot = _snapshot(record)
    record_id = record.id
    db.delete(record)
    db.commit()

    create_audit_log(
        db,
        entity_type="attendance",
        entity_id=record_id,
        action="DELETE",
        source=source,
        changes_json={"before": snapshot},
    )
    logger.info("attendance_deleted", attendance_id=str(record_id))


def to_response(db: Session, record: Attendance) -> AttendanceResponse:
    """Serialize a record with its attachments expanded to file metadata, in stored order."""
    ids = []
    for raw in record.attachments or []:
        try:
            ids.append(uuid.UUID(str(raw)))
        except ValueError:
            continue
    files = {}
    if ids:
        files = {fo.id: fo for fo in db.query(FileObject).filter(FileObject.id.in_(ids)).all()}

    return AttendanceResponse(
        id=record.id,
        employee_id=record.employee_id,
        employee_name=record.employee_name,
        mobile_number=record.mobile_number,
        labour_type=record.labour_type,
        project_id=record.project_id,
        project_name=record.project_name,
        date=record.date,
        time_in=record.time_in,
        time_out=record.time_out,
        status=record.status,
        hours=record.hours or 0,
        overtime_hours=record.overtime_hours or 0,
        notes=record.notes,
        attachments=[AttachmentInfo.model_validate(files[i]) for i in ids if i in files],
        is_approved=bool(record.is_approved),
        approved_by=record.approved_by,
        approved_at=record.approved_at,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )
