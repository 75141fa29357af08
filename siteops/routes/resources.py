import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import Project, Resource
from ..schemas.resources import ResourceCreate, ResourceResponse, ResourceType


router = APIRouter(prefix="/resources", tags=["resources"])


@router.get("", response_model=List[ResourceResponse])
def list_resources(
    type: Optional[ResourceType] = None,
    project_id: Optional[uuid.UUID] = None,
    db: Session = Depends(get_db),
):
    query = db.query(Resource)
    if type:
        query = query.filter(Resource.type == type.value)
    if project_id:
        query = query.filter(Resource.project_id == project_id)
    return query.order_by(Resource.name.asc()).all()


@router.post("", response_model=ResourceResponse, status_code=201)
def create_resource(payload: ResourceCreate, db: Session = Depends(get_db)):
    if payload.project_id and not db.query(Project).filter(Project.id == payload.project_id).first():
        raise HTTPException(status_code=404, detail="Project not found")
    data = payload.model_dump()
    data["type"] = payload.type.value
    resource = Resource(**data)
    db.add(resource)
    db.commit()
    db.refresh(resource)
    return resource


@router.get("/{resource_id}", response_model=ResourceResponse)
def get_resource(resource_id: uuid.UUID, db: Session = Depends(get_db)):
    resource = db.query(Resource).filter(Resource.id == resource_id).first()
    if not resource:
        raise HTTPException(status_code=404, detail="Resource not found")
    return resource
