import os

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy import inspect, text
from sqlalchemy.orm import Session

from .config import settings
from .db import Base, engine, get_db
from .logging import RequestIdMiddleware, setup_logging
from .models import models  # noqa: F401  registers tables on Base.metadata
from .routes.attendance import router as attendance_router
from .routes.files import router as files_router
from .routes.labours import router as labours_router
from .routes.location import router as location_router
from .routes.projects import router as projects_router
from .routes.resources import router as resources_router
from .services.attendance import DuplicateAttendanceError

logger = structlog.get_logger(__name__)


async def duplicate_attendance_handler(request: Request, exc: DuplicateAttendanceError) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={
            "detail": exc.message,
            "code": exc.code,
            "existing_record_id": str(exc.existing_id) if exc.existing_id else None,
        },
    )


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_exception_handler(DuplicateAttendanceError, duplicate_attendance_handler)

    # Routers
    app.include_router(files_router)
    app.include_router(projects_router)
    app.include_router(labours_router)
    app.include_router(resources_router)
    app.include_router(attendance_router)
    app.include_router(location_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.on_event("startup")
    def _startup():
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            existing_tables = set(inspect(engine).get_table_names())
            missing = set(Base.metadata.tables.keys()) - existing_tables
            if missing:
                logger.info("startup_create_tables", missing=sorted(missing))
                Base.metadata.create_all(bind=engine)
        logger.info("startup_complete", environment=settings.environment)

    @app.get("/health")
    def health(db: Session = Depends(get_db)):
        try:
            db.execute(text("SELECT 1"))
            db_status = "ok"
        except Exception as e:
            logger.error("health_db_failed", error=str(e))
            db_status = "error"
        status_code = 200 if db_status == "ok" else 503
        return JSONResponse(status_code=status_code, content={"status": db_status, "app": settings.app_name})

    return app


app = create_app()
