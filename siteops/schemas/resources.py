import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field
import enum


class ResourceType(str, enum.Enum):
    equipment = "equipment"
    material = "material"
    vehicle = "vehicle"
    tool = "tool"
    labor = "labor"
    other = "other"


class ResourceBase(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    type: ResourceType
    quantity: float = Field(default=0, ge=0)
    unit: Optional[str] = Field(default=None, max_length=20)
    cost_per_unit: float = Field(default=0, ge=0)
    supplier: Optional[str] = Field(default=None, max_length=100)
    status: Optional[str] = "available"
    mobile_number: Optional[str] = Field(default=None, pattern=r"^\d{10}$")
    labour_type: Optional[str] = Field(default=None, max_length=50)
    project_id: Optional[uuid.UUID] = None


class ResourceCreate(ResourceBase):
    pass


class ResourceResponse(ResourceBase):
    id: uuid.UUID
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
