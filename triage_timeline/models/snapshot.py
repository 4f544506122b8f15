from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from triage_timeline.config import TIMELINE_CLINICAL_EVENT_DAYS, TIMELINE_VITAL_RECENT_HOURS


class Severity(str, Enum):
    """Five-level urgency, totally ordered critical > high > moderate > low > info."""

    CRITICAL = "critical"
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"
    INFO = "info"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_RANK = {
    Severity.INFO: 0,
    Severity.LOW: 1,
    Severity.MODERATE: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class EventCategory(str, Enum):
    ENCOUNTER = "Encounter"
    PROCEDURE = "Procedure"
    CONDITION = "Condition"
    MEDICATION = "Medication"
    OBSERVATION = "Observation"
    DOCUMENT = "Document"
    NOTE = "Note"
    OTHER = "Other"


class ResourceReference(BaseModel):
    """Back-link to the originating FHIR resource. A lookup key, not ownership."""

    system: str | None = None
    reference: str | None = None
    display: str | None = None


class CriticalItem(BaseModel):
    label: str
    detail: str | None = None
    severity: Severity


class VitalSnapshot(BaseModel):
    name: str
    value: str
    recorded_at: datetime | None = None


class TimelineEvent(BaseModel):
    id: str
    category: EventCategory
    title: str
    detail: str | None = None
    occurred_at: datetime | None = None
    severity: Severity
    source: ResourceReference | None = None


class CriticalSummary(BaseModel):
    allergies: list[CriticalItem] = []
    medications: list[CriticalItem] = []
    chronic_conditions: list[CriticalItem] = []
    code_status: str | None = None
    alerts: list[CriticalItem] = []
    recent_vitals: list[VitalSnapshot] = []


class TimelineSnapshot(BaseModel):
    """Framework-neutral output consumed by every rendering adapter."""

    generated_at: datetime
    critical: CriticalSummary
    events: list[TimelineEvent] = []


# Largest windows a timedelta can hold.
MAX_CLINICAL_EVENT_DAYS = 999_999_999
MAX_VITAL_RECENT_HOURS = MAX_CLINICAL_EVENT_DAYS * 24


class SummarizeConfig(BaseModel):
    vital_recent_hours: float = Field(
        TIMELINE_VITAL_RECENT_HOURS, ge=0, le=MAX_VITAL_RECENT_HOURS, allow_inf_nan=False,
    )
    clinical_event_days: float = Field(
        TIMELINE_CLINICAL_EVENT_DAYS, ge=0, le=MAX_CLINICAL_EVENT_DAYS, allow_inf_nan=False,
    )


class SummarizeRequest(BaseModel):
    bundle: Any = None
    config: SummarizeConfig | None = None
