import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class LabourBase(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    mobile_number: Optional[str] = Field(default=None, pattern=r"^\d{10}$")
    labour_type: Optional[str] = Field(default=None, min_length=2, max_length=50)
    project_id: Optional[uuid.UUID] = None
    is_active: bool = True

    @field_validator("mobile_number", "labour_type", mode="before")
    @classmethod
    def empty_str_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class LabourCreate(LabourBase):
    pass


class LabourUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    mobile_number: Optional[str] = Field(default=None, pattern=r"^\d{10}$")
    labour_type: Optional[str] = Field(default=None, min_length=2, max_length=50)
    project_id: Optional[uuid.UUID] = None
    is_active: Optional[bool] = None


class LabourResponse(LabourBase):
    id: uuid.UUID
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RosterEntry(BaseModel):
    id: str
    name: str
    mobile_number: Optional[str] = None
    labour_type: Optional[str] = None
    project_id: Optional[str] = None
    source: str
