import uuid
from datetime import datetime, date as date_type
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    Numeric,
    JSON,
    UniqueConstraint,
    BigInteger,
    Text,
    Index,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from ..db import Base


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)


ATTENDANCE_STATUSES = ("present", "absent", "late", "half_day", "overtime")
RESOURCE_TYPES = ("equipment", "material", "vehicle", "tool", "labor", "other")


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class FileObject(Base):
    __tablename__ = "file_objects"

    id: Mapped[uuid.UUID] = uuid_pk()
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    container: Mapped[str] = mapped_column(String(255), nullable=False)
    key: Mapped[str] = mapped_column(String(1024), nullable=False, index=True)
    original_name: Mapped[Optional[str]] = mapped_column(String(255))
    size_bytes: Mapped[Optional[int]] = mapped_column(BigInteger)
    content_type: Mapped[Optional[str]] = mapped_column(String(255))
    checksum_sha256: Mapped[Optional[str]] = mapped_column(String(128))

    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), index=True)
    task_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True))
    issue_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True))
    category: Mapped[Optional[str]] = mapped_column(String(100))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = uuid_pk()
    code: Mapped[Optional[str]] = mapped_column(String(50), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(500))
    address_city: Mapped[Optional[str]] = mapped_column(String(100))
    address_province: Mapped[Optional[str]] = mapped_column(String(100))
    address_country: Mapped[Optional[str]] = mapped_column(String(100))
    lat: Mapped[Optional[float]] = mapped_column(Numeric(10, 7))  # Latitude for geofence
    lng: Mapped[Optional[float]] = mapped_column(Numeric(10, 7))  # Longitude for geofence
    geofence_radius_m: Mapped[Optional[int]] = mapped_column(Integer)
    timezone: Mapped[Optional[str]] = mapped_column(String(100))
    status: Mapped[Optional[str]] = mapped_column(String(50), default="active")
    date_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    date_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    description: Mapped[Optional[str]] = mapped_column(String(2000))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class Labour(Base):
    """Registered site labour; projects pick from this list when marking attendance"""
    __tablename__ = "labours"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    mobile_number: Mapped[Optional[str]] = mapped_column(String(10))
    labour_type: Mapped[Optional[str]] = mapped_column(String(50))
    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("projects.id", ondelete="SET NULL"), index=True
    )  # Default project
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class Resource(Base):
    __tablename__ = "resources"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # equipment|material|vehicle|tool|labor|other
    quantity: Mapped[float] = mapped_column(Float, default=0)
    unit: Mapped[Optional[str]] = mapped_column(String(20))
    cost_per_unit: Mapped[float] = mapped_column(Float, default=0)
    supplier: Mapped[Optional[str]] = mapped_column(String(100))
    status: Mapped[Optional[str]] = mapped_column(String(20), default="available")
    mobile_number: Mapped[Optional[str]] = mapped_column(String(10))  # labor entries only
    labour_type: Mapped[Optional[str]] = mapped_column(String(50))  # labor entries only
    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("projects.id", ondelete="SET NULL"), index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class Attendance(Base):
    """Daily attendance for registered employees and ad-hoc labour"""
    __tablename__ = "attendance"

    id: Mapped[uuid.UUID] = uuid_pk()
    employee_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE")
    )  # Empty for labour records
    employee_name: Mapped[str] = mapped_column(String(100), nullable=False)
    mobile_number: Mapped[Optional[str]] = mapped_column(String(10))
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    project_name: Mapped[Optional[str]] = mapped_column(String(255))  # Snapshot at write time
    labour_type: Mapped[Optional[str]] = mapped_column(String(50))
    date: Mapped[date_type] = mapped_column(Date, nullable=False)
    time_in: Mapped[Optional[str]] = mapped_column(String(5))  # HH:MM
    time_out: Mapped[Optional[str]] = mapped_column(String(5))  # HH:MM
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="present")
    hours: Mapped[float] = mapped_column(Float, default=0)
    overtime_hours: Mapped[float] = mapped_column(Float, default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    attachments: Mapped[Optional[list]] = mapped_column(JSON)  # Ordered list of FileObject ids
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False)
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL")
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        # NULL employee ids never collide, so labour records are checked in the service
        UniqueConstraint("employee_id", "date", name="uq_attendance_employee_date"),
        Index("idx_attendance_project", "project_id"),
        Index("idx_attendance_date", "date"),
        Index("idx_attendance_status", "status"),
    )


class AuditLog(Base):
    """Append-only audit log for attendance actions"""
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = uuid_pk()
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # attendance|labour|file
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)  # CREATE|UPDATE|APPROVE|DELETE
    source: Mapped[Optional[str]] = mapped_column(String(50))  # app|api|system
    changes_json: Mapped[Optional[dict]] = mapped_column(JSON)  # Before/after diff
    timestamp_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False, index=True)
    context: Mapped[Optional[dict]] = mapped_column(JSON)
    integrity_hash: Mapped[Optional[str]] = mapped_column(String(64))  # SHA256 hash for integrity verification

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
    )
