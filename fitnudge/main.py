from fastapi import FastAPI
from contextlib import asynccontextmanager
from typing import Optional
import logging
import sys

from fitnudge.core.config import settings
from fitnudge.reminders.config import settings as reminder_settings

# Configure logging
logging.basicConfig(
    level=getattr(logging, str(settings.LOG_LEVEL).upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)

from fitnudge.db.base import Base  # noqa: E402
from fitnudge.db.session import engine, SessionLocal  # noqa: E402
from fitnudge.reminders.api import router as reminders_router  # noqa: E402
from fitnudge.reminders.orchestrator import ReminderOrchestrator  # noqa: E402
from fitnudge.reminders.push import FCMPushSender  # noqa: E402


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info(f"Starting up {settings.PROJECT_NAME} ({settings.ENVIRONMENT.value})...")
    if not settings.is_production:
        # Production schema is managed by alembic
        Base.metadata.create_all(bind=engine)
    yield
    logger.info(f"Shutting down {settings.PROJECT_NAME}...")


def create_app(orchestrator: Optional[ReminderOrchestrator] = None) -> FastAPI:
    app = FastAPI(title=settings.PROJECT_NAME, version=settings.VERSION, lifespan=lifespan)
    # Constructed once per process; the HTTP trigger and tests share this object
    app.state.orchestrator = orchestrator or ReminderOrchestrator.from_settings(SessionLocal, FCMPushSender())
    app.include_router(reminders_router, prefix="/api", tags=["reminders"])
    if reminder_settings.METRICS_ENABLED:
        from prometheus_fastapi_instrumentator import Instrumentator
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("fitnudge.main:app", host="0.0.0.0", port=8000)
