import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import Project
from ..schemas.projects import GeofenceCheck, ProjectCreate, ProjectResponse
from ..services.geofence import check_site


router = APIRouter(prefix="/projects", tags=["projects"])


def _get_project(db: Session, project_id: uuid.UUID) -> Project:
    project = db.query(Project).filter(Project.id == project_id).first()
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.post("", response_model=ProjectResponse, status_code=201)
def create_project(payload: ProjectCreate, db: Session = Depends(get_db)):
    if payload.code and db.query(Project).filter(Project.code == payload.code).first():
        raise HTTPException(status_code=400, detail="Project code already in use")
    project = Project(**payload.model_dump())
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


@router.get("", response_model=List[ProjectResponse])
def list_projects(
    q: Optional[str] = None,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
):
    query = db.query(Project)
    if status:
        query = query.filter(Project.status == status)
    if q:
        pattern = f"%{q}%"
        query = query.filter(or_(Project.name.ilike(pattern), Project.code.ilike(pattern)))
    return query.order_by(Project.name.asc()).all()


@router.get("/{project_id}", response_model=ProjectResponse)
def get_project(project_id: uuid.UUID, db: Session = Depends(get_db)):
    return _get_project(db, project_id)


@router.get("/{project_id}/geofence", response_model=GeofenceCheck)
def check_geofence(
    project_id: uuid.UUID,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    accuracy: Optional[float] = Query(None, ge=0),
    db: Session = Depends(get_db),
):
    """Whether a captured position falls inside the project's site radius."""
    project = _get_project(db, project_id)
    if project.lat is None or project.lng is None:
        return GeofenceCheck(project_id=project.id, inside=True)

    result = check_site(
        lat, lng, float(project.lat), float(project.lng), project.geofence_radius_m, accuracy_m=accuracy
    )
    return GeofenceCheck(
        project_id=project.id,
        inside=result.inside,
        distance_m=round(result.distance_m, 1),
        radius_m=result.radius_m,
        accuracy_risk=result.accuracy_risk,
    )
