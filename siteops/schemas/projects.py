import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class ProjectBase(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    code: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = None
    address_city: Optional[str] = None
    address_province: Optional[str] = None
    address_country: Optional[str] = None
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)
    geofence_radius_m: Optional[int] = Field(default=None, gt=0)
    timezone: Optional[str] = None
    status: Optional[str] = "active"
    date_start: Optional[datetime] = None
    date_end: Optional[datetime] = None
    description: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("code", "address", "address_city", "address_province", "address_country", "timezone", "description", mode="before")
    @classmethod
    def empty_str_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ProjectCreate(ProjectBase):
    pass


class ProjectResponse(ProjectBase):
    id: uuid.UUID
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class GeofenceCheck(BaseModel):
    project_id: uuid.UUID
    inside: bool
    distance_m: Optional[float] = None
    radius_m: Optional[float] = None
    accuracy_risk: Optional[bool] = None
