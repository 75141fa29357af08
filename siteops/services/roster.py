"""
Labour roster for attendance marking.
Merges the labour registry with labor-typed resources into one picklist.
"""
import uuid
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ..models.models import Labour, Resource


def _entry(source: str, row) -> dict:
    return {
        "id": str(row.id),
        "name": row.name,
        "mobile_number": row.mobile_number,
        "labour_type": row.labour_type,
        "project_id": str(row.project_id) if row.project_id else None,
        "source": source,
    }


def merge_roster(labours: Iterable, resources: Iterable) -> List[dict]:
    """
    Registry labour first, then labor resources; entries with the same
    case-insensitive name on the same project are kept once.
    """
    merged: List[dict] = []
    seen = set()
    candidates = [_entry("labour", l) for l in labours] + [
        _entry("resource", r) for r in resources if (r.type or "").lower() == "labor"
    ]
    for item in candidates:
        key = ((item["name"] or "").strip().lower(), item["project_id"])
        if key in seen:
            continue
        seen.add(key)
        merged.append(item)
    return merged


def load_roster(db: Session, project_id: Optional[uuid.UUID] = None) -> List[dict]:
    labour_q = db.query(Labour).filter(Labour.is_active.is_(True))
    resource_q = db.query(Resource).filter(Resource.type == "labor")
    if project_id:
        labour_q = labour_q.filter(Labour.project_id == project_id)
        resource_q = resource_q.filter(Resource.project_id == project_id)
    return merge_roster(
        labour_q.order_by(Labour.name.asc()).all(),
        resource_q.order_by(Resource.name.asc()).all(),
    )
