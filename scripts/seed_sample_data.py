"""
Seed the local database with sample projects, registered labour and labor resources.

Usage:
  python scripts/seed_sample_data.py

This script is idempotent: projects are matched on code, labour on
(name, project) and resources on (name, type, project).
"""
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from siteops.db import SessionLocal, Base, engine
from siteops.models.models import Labour, Project, Resource


PROJECTS = [
    {
        "code": "BLR-001",
        "name": "Koramangala Residency",
        "address": "80 Feet Road, Koramangala",
        "address_city": "Bengaluru",
        "address_province": "Karnataka",
        "address_country": "India",
        "lat": 12.935223,
        "lng": 77.624482,
        "geofence_radius_m": 200,
        "timezone": "Asia/Kolkata",
    },
    {
        "code": "BLR-002",
        "name": "Whitefield Tech Park Block C",
        "address": "ITPL Main Road, Whitefield",
        "address_city": "Bengaluru",
        "address_province": "Karnataka",
        "address_country": "India",
        "lat": 12.969800,
        "lng": 77.749985,
        "geofence_radius_m": 300,
        "timezone": "Asia/Kolkata",
    },
]

LABOUR = {
    "BLR-001": [
        ("Ramesh Kumar", "9876543210", "Mason"),
        ("Suresh Naik", "9845012345", "Carpenter"),
        ("Manjunath", None, "Helper"),
    ],
    "BLR-002": [
        ("Anil Gowda", "9900112233", "Electrician"),
        ("Prakash Rao", "9731234567", "Plumber"),
    ],
}

LABOR_RESOURCES = {
    "BLR-001": [("Venkatesh", "9886001122", "Bar bender")],
    "BLR-002": [("Anil Gowda", "9900112233", "Electrician"), ("Shivu", None, "Helper")],
}


def ensure_project(session, data: dict) -> Project:
    project = session.query(Project).filter(Project.code == data["code"]).first()
    if project:
        for key, value in data.items():
            setattr(project, key, value)
        return project
    project = Project(**data)
    session.add(project)
    session.flush()
    return project


def ensure_labour(session, project: Project, name: str, mobile, labour_type: str) -> None:
    existing = (
        session.query(Labour)
        .filter(Labour.name == name, Labour.project_id == project.id)
        .first()
    )
    if existing:
        existing.mobile_number = mobile
        existing.labour_type = labour_type
        return
    session.add(Labour(name=name, mobile_number=mobile, labour_type=labour_type, project_id=project.id))


def ensure_labor_resource(session, project: Project, name: str, mobile, labour_type: str) -> None:
    existing = (
        session.query(Resource)
        .filter(Resource.name == name, Resource.type == "labor", Resource.project_id == project.id)
        .first()
    )
    if existing:
        return
    session.add(
        Resource(
            name=name,
            type="labor",
            quantity=1,
            unit="person",
            mobile_number=mobile,
            labour_type=labour_type,
            project_id=project.id,
        )
    )


def main() -> None:
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        projects = {p["code"]: ensure_project(session, p) for p in PROJECTS}
        for code, rows in LABOUR.items():
            for name, mobile, labour_type in rows:
                ensure_labour(session, projects[code], name, mobile, labour_type)
        for code, rows in LABOR_RESOURCES.items():
            for name, mobile, labour_type in rows:
                ensure_labor_resource(session, projects[code], name, mobile, labour_type)
        session.commit()
        print(f"Seeded {len(projects)} projects with labour and labor resources")
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    main()
