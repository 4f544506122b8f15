import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from triage_timeline.config import (
    FHIR_BASE_URL,
    LOG_LEVEL,
    TIMELINE_CLINICAL_EVENT_DAYS,
    TIMELINE_VITAL_RECENT_HOURS,
)
from triage_timeline.routers import timeline

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Starting Triage Timeline (vitals window %sh, events window %sd)",
        TIMELINE_VITAL_RECENT_HOURS, TIMELINE_CLINICAL_EVENT_DAYS,
    )
    if not FHIR_BASE_URL:
        logger.info("FHIR_BASE_URL not set; patient timeline route disabled")
    yield
    logger.info("Triage Timeline shut down")


app = FastAPI(
    title="Triage Timeline",
    description="FHIR bundle summarization: critical overview and clinical timeline",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(timeline.router)
