import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from studyplanner.core.config import settings as app_settings
from studyplanner.db.base import Base
from studyplanner.db.session import engine
import studyplanner.models  # noqa: F401  registers tables on Base.metadata
from .api import public_router, router as reminders_router
from .config import settings

logging.basicConfig(
    level=getattr(logging, app_settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def check_tables(bind=None) -> list:
    """Names of mapped tables missing from the database."""
    inspector = inspect(bind or engine)
    existing = set(inspector.get_table_names())
    return [table for table in Base.metadata.tables if table not in existing]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up reminder service...")
    try:
        missing_tables = check_tables()
    except SQLAlchemyError as e:
        logger.warning(f"Could not check database tables: {e}")
    else:
        if missing_tables:
            logger.warning(f"Missing database tables: {missing_tables}")
            logger.warning("Run `alembic upgrade head` before starting the service")
        else:
            logger.info("All required database tables exist")
    yield
    logger.info("Shutting down reminder service...")


def create_app() -> FastAPI:
    app = FastAPI(title="Study Reminder Service", version=app_settings.VERSION, lifespan=lifespan)
    prefix = f"{app_settings.API_V1_STR}/reminders"
    app.include_router(public_router, prefix=prefix, tags=["reminder-actions"])
    app.include_router(reminders_router, prefix=prefix, tags=["reminders"])
    if settings.METRICS_ENABLED:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")
    return app


app = create_app()


def main() -> None:
    uvicorn.run(
        "studyplanner.reminders.service:app",
        host=settings.SERVICE_HOST,
        port=settings.SERVICE_PORT,
        log_level=app_settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
