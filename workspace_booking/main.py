import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from workspace_booking.config import settings
from workspace_booking.db import get_db, init_database
from workspace_booking.errors import InfrastructureError, register_error_handlers
from workspace_booking.routers import bookings
from workspace_booking.schemas.common import ApiResponse
from workspace_booking.utils.scheduler import start_scheduler

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    "lifespan for initing database and the no-show scheduler"
    init_database()
    scheduler = start_scheduler() if settings.no_show_sweep_enabled else None
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")


app = FastAPI(
    lifespan=lifespan,
    title="Workspace booker",
    description="Desk and meeting room booking service based on FastAPI.",
    version="0.1.0",
    license_info={
        "name": "MIT",
        "url": "https://opensource.org/licenses/MIT",
    },
)

register_error_handlers(app)
app.include_router(bookings.router)


@app.get("/health", response_model=ApiResponse[dict], tags=["health"])
def health(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.exception("Health check failed")
        raise InfrastructureError("Database unavailable") from exc
    return ApiResponse[dict].ok({"status": "healthy"})
