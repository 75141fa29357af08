"""
Pytest configuration and fixtures
"""
import io
import os
import tempfile

# Settings are read at import time; point them at throwaway resources first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["LOCAL_STORAGE_DIR"] = tempfile.mkdtemp(prefix="siteops-storage-")
os.environ["RATE_LIMIT"] = "10000/minute"
os.environ["AUDIT_SECRET"] = "test-secret"

import pytest
from fastapi.testclient import TestClient
from PIL import Image as PILImage
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from siteops.db import Base, get_db
from siteops.main import app
from siteops.models.models import Project, User
from siteops.routes.files import get_storage
from siteops.storage.local_provider import LocalStorageProvider


# Use in-memory SQLite for testing
engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db():
    """Fresh schema for each test"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def storage(tmp_path):
    return LocalStorageProvider(base_dir=str(tmp_path / "storage"))


@pytest.fixture(scope="function")
def client(db, storage):
    """Test client fixture with database and storage overrides"""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_image_bytes(fmt: str = "PNG", size=(320, 240), color=(240, 240, 240)) -> bytes:
    buf = io.BytesIO()
    PILImage.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def png_bytes():
    return make_image_bytes("PNG")


@pytest.fixture
def project(db):
    proj = Project(
        code="BLR-001",
        name="Koramangala Residency",
        address_city="Bengaluru",
        lat=12.935223,
        lng=77.624482,
        geofence_radius_m=200,
        timezone="Asia/Kolkata",
    )
    db.add(proj)
    db.commit()
    db.refresh(proj)
    return proj


@pytest.fixture
def other_project(db):
    proj = Project(code="BLR-002", name="Whitefield Tech Park Block C", timezone="Asia/Kolkata")
    db.add(proj)
    db.commit()
    db.refresh(proj)
    return proj


@pytest.fixture
def employee(db):
    user = User(name="Kavya Shetty", email="kavya@example.com")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def uploaded_file_id(client, project, png_bytes):
    resp = client.post(
        "/files/upload",
        files={"file": ("site.png", png_bytes, "image/png")},
        data={"project_id": str(project.id), "category": "attendance"},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]
