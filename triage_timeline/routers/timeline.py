import logging

import httpx
from fastapi import APIRouter, HTTPException, Query

from triage_timeline.config import FHIR_BASE_URL
from triage_timeline.models.snapshot import (
    MAX_CLINICAL_EVENT_DAYS,
    MAX_VITAL_RECENT_HOURS,
    SummarizeRequest,
    TimelineSnapshot,
)
from triage_timeline.services import fhir_client
from triage_timeline.services.ingestor import MalformedBundle
from triage_timeline.services.summarizer import summarize_bundle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/timeline", tags=["timeline"])


@router.post("/summarize", response_model=TimelineSnapshot)
def summarize(body: SummarizeRequest):
    """Summarize a FHIR Bundle into a critical overview and a timeline.

    The bundle is passed through as-is; malformed individual entries are
    skipped, but a body whose ``bundle`` is not a FHIR Bundle is rejected
    with 422.
    """
    try:
        return summarize_bundle(body.bundle, body.config)
    except MalformedBundle as e:
        logger.warning("Rejected malformed bundle: %s", e)
        raise HTTPException(status_code=422, detail=str(e)) from None


@router.get("/patients/{patient_id}", response_model=TimelineSnapshot)
async def summarize_patient(
    patient_id: str,
    vital_recent_hours: float | None = Query(None, ge=0, le=MAX_VITAL_RECENT_HOURS, allow_inf_nan=False),
    clinical_event_days: float | None = Query(None, ge=0, le=MAX_CLINICAL_EVENT_DAYS, allow_inf_nan=False),
):
    """Pull a patient's ``$everything`` bundle from the FHIR server and summarize it."""
    if not FHIR_BASE_URL:
        raise HTTPException(status_code=503, detail="No FHIR server configured")

    try:
        bundle = await fhir_client.fetch_patient_bundle(patient_id, base_url=FHIR_BASE_URL)
    except httpx.HTTPStatusError as e:
        logger.warning(
            "FHIR server %s returned HTTP %s for patient %s",
            FHIR_BASE_URL, e.response.status_code, patient_id,
        )
        raise HTTPException(status_code=502, detail="FHIR server error") from None
    except httpx.HTTPError as e:
        logger.warning("FHIR request to %s failed: %s", FHIR_BASE_URL, e)
        raise HTTPException(status_code=502, detail="FHIR server unavailable") from None
    except ValueError:
        logger.warning("FHIR server %s returned a non-JSON response", FHIR_BASE_URL)
        raise HTTPException(status_code=502, detail="Invalid FHIR server response") from None

    config = {
        "vital_recent_hours": vital_recent_hours,
        "clinical_event_days": clinical_event_days,
    }
    try:
        return summarize_bundle(bundle, config)
    except MalformedBundle as e:
        raise HTTPException(status_code=422, detail=str(e)) from None
