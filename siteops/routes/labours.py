import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import Labour, Project
from ..schemas.labours import LabourCreate, LabourResponse, LabourUpdate, RosterEntry
from ..services.roster import load_roster


router = APIRouter(prefix="/labours", tags=["labours"])


def _get_labour(db: Session, labour_id: uuid.UUID) -> Labour:
    labour = db.query(Labour).filter(Labour.id == labour_id).first()
    if not labour:
        raise HTTPException(status_code=404, detail="Labour not found")
    return labour


def _check_project(db: Session, project_id: Optional[uuid.UUID]) -> None:
    if project_id and not db.query(Project).filter(Project.id == project_id).first():
        raise HTTPException(status_code=404, detail="Project not found")


@router.get("", response_model=List[LabourResponse])
def list_labours(
    project_id: Optional[uuid.UUID] = None,
    search: Optional[str] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
):
    query = db.query(Labour)
    if not include_inactive:
        query = query.filter(Labour.is_active.is_(True))
    if project_id:
        query = query.filter(Labour.project_id == project_id)
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(Labour.name.ilike(pattern), Labour.mobile_number.ilike(pattern), Labour.labour_type.ilike(pattern))
        )
    return query.order_by(Labour.name.asc()).all()


@router.get("/roster", response_model=List[RosterEntry])
def roster(project_id: Optional[uuid.UUID] = None, db: Session = Depends(get_db)):
    """Labour registry merged with labor-typed resources."""
    return load_roster(db, project_id)


@router.post("", response_model=LabourResponse, status_code=201)
def create_labour(payload: LabourCreate, db: Session = Depends(get_db)):
    _check_project(db, payload.project_id)
    labour = Labour(**payload.model_dump())
    labour.name = labour.name.strip()
    db.add(labour)
    db.commit()
    db.refresh(labour)
    return labour


@router.get("/{labour_id}", response_model=LabourResponse)
def get_labour(labour_id: uuid.UUID, db: Session = Depends(get_db)):
    return _get_labour(db, labour_id)


@router.put("/{labour_id}", response_model=LabourResponse)
def update_labour(labour_id: uuid.UUID, payload: LabourUpdate, db: Session = Depends(get_db)):
    labour = _get_labour(db, labour_id)
    data = payload.model_dump(exclude_unset=True)
    if "project_id" in data:
        _check_project(db, data["project_id"])
    for field, value in data.items():
        setattr(labour, field, value)
    db.commit()
    db.refresh(labour)
    return labour


@router.delete("/{labour_id}", status_code=204)
def delete_labour(labour_id: uuid.UUID, db: Session = Depends(get_db)):
    labour = _get_labour(db, labour_id)
    db.delete(labour)
    db.commit()
    return Response(status_code=204)
