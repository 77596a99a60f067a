import logging
import subprocess
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.attendance import router as attendance_router
from app.api.kpi import router as kpi_router
from app.core.config import settings
from app.core.errors import AttendanceError, attendance_error_handler

logger = logging.getLogger(__name__)

BACKEND_DIR = Path(__file__).resolve().parent.parent


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Optionally apply Alembic migrations before serving."""
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        logger.info("Running Alembic migrations...")
        try:
            result = subprocess.run(
                ["alembic", "upgrade", "head"],
                capture_output=True,
                text=True,
                cwd=BACKEND_DIR,
            )
            if result.returncode != 0:
                logger.error("Alembic migration failed:\n%s", result.stderr)
            else:
                logger.info("Migrations applied successfully:\n%s", result.stdout)
        except OSError as exc:
            logger.exception("Failed to run migrations: %s", exc)

    yield

    logger.info("Shutting down Presensi backend.")


app = FastAPI(
    title="Presensi API",
    description="Employee attendance tracking: GPS check-in/check-out and attendance KPIs.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(AttendanceError, attendance_error_handler)

app.include_router(attendance_router, prefix="/api/attendance", tags=["Attendance"])
app.include_router(kpi_router, prefix="/api/kpi", tags=["KPI"])


@app.get("/health", tags=["System"])
async def health_check() -> dict:
    return {"status": "ok"}
