import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas.attendance import (
    ApproveRequest,
    AttendanceCreate,
    AttendancePage,
    AttendanceResponse,
    AttendanceStatus,
    AttendanceUpdate,
    AuditEntry,
)
from ..services import attendance as svc
from ..services.audit import get_audit_logs


router = APIRouter(prefix="/attendance", tags=["attendance"])


def _http_error(exc: svc.AttendanceError) -> HTTPException:
    if isinstance(exc, (svc.AttendanceNotFound, svc.ProjectNotFound)):
        return HTTPException(status_code=404, detail=exc.message)
    return HTTPException(status_code=400, detail=exc.message)


def _page(db: Session, items, total: int, page: int, limit: int) -> AttendancePage:
    return AttendancePage(
        items=[svc.to_response(db, r) for r in items],
        total=total,
        page=page,
        pages=svc.page_count(total, limit),
    )


@router.get("", response_model=AttendancePage)
def list_attendance(
    project_id: Optional[uuid.UUID] = None,
    status: Optional[AttendanceStatus] = None,
    employee_name: Optional[str] = None,
    search: Optional[str] = None,
    date: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=200),
    db: Session = Depends(get_db),
):
    items, total = svc.list_attendance(
        db,
        project_id=project_id,
        status=status.value if status else None,
        employee_name=employee_name,
        search=search,
        day=date,
        page=page,
        limit=limit,
    )
    return _page(db, items, total, page, limit)


@router.get("/project/{project_id}", response_model=AttendancePage)
def list_project_attendance(
    project_id: uuid.UUID,
    date: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    items, total = svc.list_attendance(db, project_id=project_id, day=date, page=page, limit=limit)
    return _page(db, items, total, page, limit)


@router.post("", response_model=AttendanceResponse, status_code=201)
def create_attendance(payload: AttendanceCreate, db: Session = Depends(get_db)):
    # DuplicateAttendanceError propagates to the app-level 409 handler
    try:
        record = svc.create_attendance(db, payload)
    except svc.DuplicateAttendanceError:
        raise
    except svc.AttendanceError as e:
        raise _http_error(e)
    return svc.to_response(db, record)


@router.get("/{attendance_id}", response_model=AttendanceResponse)
def get_attendance(attendance_id: uuid.UUID, db: Session = Depends(get_db)):
    try:
        record = svc.get_attendance(db, attendance_id)
    except svc.AttendanceError as e:
        raise _http_error(e)
    return svc.to_response(db, record)


@router.put("/{attendance_id}", response_model=AttendanceResponse)
def update_attendance(attendance_id: uuid.UUID, payload: AttendanceUpdate, db: Session = Depends(get_db)):
    try:
        record = svc.update_attendance(db, attendance_id, payload)
    except svc.DuplicateAttendanceError:
        raise
    except svc.AttendanceError as e:
        raise _http_error(e)
    return svc.to_response(db, record)


@router.post("/{attendance_id}/approve", response_model=AttendanceResponse)
def approve_attendance(
    attendance_id: uuid.UUID,
    payload: Optional[ApproveRequest] = None,
    db: Session = Depends(get_db),
):
    payload = payload or ApproveRequest()
    try:
        record = svc.approve_attendance(
            db, attendance_id, approved_by=payload.approved_by, is_approved=payload.is_approved
        )
    except svc.AttendanceError as e:
        raise _http_error(e)
    return svc.to_response(db, record)


@router.delete("/{attendance_id}", status_code=204)
def delete_attendance(attendance_id: uuid.UUID, db: Session = Depends(get_db)):
    try:
        svc.delete_attendance(db, attendance_id)
    except svc.AttendanceError as e:
        raise _http_error(e)
    return Response(status_code=204)


@router.get("/{attendance_id}/history", response_model=List[AuditEntry])
def attendance_history(attendance_id: uuid.UUID, db: Session = Depends(get_db)):
    """Audit trail for a record, newest first; kept after the record is deleted."""
    return get_audit_logs(db, entity_type="attendance", entity_id=attendance_id)
