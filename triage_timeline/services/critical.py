"""Critical overview: the curated subset a clinician should see first."""

import logging
from datetime import datetime, timedelta

from triage_timeline.models.resources import (
    AllergyResource,
    ClassifiedResource,
    ConditionResource,
    FlagResource,
    MedicationResource,
    ObservationResource,
    PatientResource,
)
from triage_timeline.models.snapshot import (
    CriticalItem,
    CriticalSummary,
    Severity,
    SummarizeConfig,
    VitalSnapshot,
)
from triage_timeline.services.severity import (
    allergy_severity,
    condition_severity,
    flag_severity,
    medication_severity,
    observation_severity,
    patient_severity,
)
from triage_timeline.services.fhir_values import age_on

logger = logging.getLogger(__name__)

ACTIVE_ALLERGY_STATUSES = {None, "active", "recurrence"}
ACTIVE_CONDITION_STATUSES = {None, "active", "recurrence", "relapse"}
ACTIVE_FLAG_STATUSES = {None, "active"}
ACTIVE_MEDICATION_STATUSES = {"active", "in-progress"}

# Onset at least this long before generation time makes a condition chronic.
CHRONIC_ONSET_DAYS = 90

GENDER_LABELS = {"male": "Male", "female": "Female"}


def join_details(parts) -> str | None:
    parts = [part for part in parts if part]
    return " | ".join(parts) if parts else None


def within_days(timestamp: datetime | None, now: datetime, days: float) -> bool:
    """Undated resources are never excluded by the clinical event window."""
    if timestamp is None:
        return True
    return now - timestamp <= timedelta(days=days)


def _by_severity(items: list[CriticalItem]) -> list[CriticalItem]:
    return sorted(items, key=lambda item: -item.severity.rank)


def is_active_allergy(allergy: AllergyResource) -> bool:
    return (
        allergy.status in ACTIVE_ALLERGY_STATUSES
        and allergy.verification_status != "refuted"
    )


def is_chronic(condition: ConditionResource, now: datetime) -> bool:
    if condition.status not in ACTIVE_CONDITION_STATUSES:
        return False
    labels = [*condition.categories, (condition.display or "").lower()]
    if any("chronic" in label for label in labels):
        return True
    if condition.onset_at is not None:
        return now - condition.onset_at >= timedelta(days=CHRONIC_ONSET_DAYS)
    return False


def _allergy_item(allergy: AllergyResource) -> CriticalItem:
    return CriticalItem(
        label=allergy.display,
        detail=", ".join(allergy.manifestations) or None,
        severity=allergy_severity(allergy),
    )


def _medication_item(medication: MedicationResource) -> CriticalItem:
    indication = f"Indication: {medication.reason}" if medication.reason else None
    return CriticalItem(
        label=medication.display,
        detail=join_details([medication.dosage, indication]),
        severity=medication_severity(medication),
    )


def _condition_item(condition: ConditionResource) -> CriticalItem:
    severity_text = f"Severity: {condition.severity_text}" if condition.severity_text else None
    site = f"Site: {condition.body_site}" if condition.body_site else None
    return CriticalItem(
        label=condition.display,
        detail=join_details([severity_text, site]),
        severity=condition_severity(condition),
    )


def _patient_item(patient: PatientResource, now: datetime) -> CriticalItem:
    age = age_on(patient.birth_date, now.date()) if patient.birth_date else None
    gender = None
    if patient.gender:
        gender = GENDER_LABELS.get(patient.gender, f"Gender: {patient.gender}")
    return CriticalItem(
        label=f"Patient: {patient.display}",
        detail=join_details([f"{age} years" if age is not None else None, gender]),
        severity=patient_severity(patient),
    )


def _supersedes(candidate: ClassifiedResource, current: ClassifiedResource | None) -> bool:
    """Code status precedence: later timestamp wins, dated beats undated, ties go to the later entry."""
    if current is None:
        return True
    if candidate.timestamp is None:
        return current.timestamp is None
    if current.timestamp is None:
        return True
    return candidate.timestamp >= current.timestamp


def _code_status_text(resource: ClassifiedResource) -> str | None:
    if isinstance(resource, ObservationResource):
        return resource.value_text
    return resource.display


def _recent_vitals(
    observations: list[ObservationResource],
    now: datetime,
    hours: float,
) -> list[VitalSnapshot]:
    latest: dict[str, ObservationResource] = {}
    window = timedelta(hours=hours)
    for observation in observations:
        recorded_at = observation.timestamp
        if recorded_at is None or now - recorded_at > window:
            continue
        current = latest.get(observation.vital_name)
        if current is None or recorded_at > current.timestamp:
            latest[observation.vital_name] = observation

    ordered = sorted(latest.values(), key=lambda obs: obs.position)
    ordered.sort(key=lambda obs: obs.timestamp, reverse=True)
    return [
        VitalSnapshot(name=obs.vital_name, value=obs.value_text, recorded_at=obs.timestamp)
        for obs in ordered
    ]


def extract(
    classified: list[ClassifiedResource],
    config: SummarizeConfig,
    now: datetime,
) -> CriticalSummary:
    """Build the critical overview from classified resources.

    Args:
        classified: Output of ``ingest``, in bundle order. Not modified.
        config: Recency windows.
        now: Generation time every window is measured against.
    """
    allergies: list[CriticalItem] = []
    medications: list[CriticalItem] = []
    chronic: list[CriticalItem] = []
    alerts: list[CriticalItem] = []
    vitals: list[ObservationResource] = []
    code_status: ClassifiedResource | None = None

    for resource in classified:
        if isinstance(resource, AllergyResource):
            if is_active_allergy(resource):
                allergies.append(_allergy_item(resource))

        elif isinstance(resource, MedicationResource):
            if resource.status in ACTIVE_MEDICATION_STATUSES:
                medications.append(_medication_item(resource))

        elif isinstance(resource, ConditionResource):
            if is_chronic(resource, now):
                chronic.append(_condition_item(resource))

        elif isinstance(resource, ObservationResource):
            if resource.is_code_status:
                if _supersedes(resource, code_status):
                    code_status = resource
                continue
            if resource.vital_name:
                vitals.append(resource)
            severity = observation_severity(resource)
            if severity >= Severity.HIGH and within_days(
                resource.timestamp, now, config.clinical_event_days
            ):
                alerts.append(CriticalItem(
                    label=resource.display,
                    detail=resource.value_text,
                    severity=severity,
                ))

        elif isinstance(resource, PatientResource):
            alerts.append(_patient_item(resource, now))

        elif isinstance(resource, FlagResource):
            if resource.status not in ACTIVE_FLAG_STATUSES:
                continue
            if resource.is_code_status:
                if _supersedes(resource, code_status):
                    code_status = resource
                continue
            alerts.append(CriticalItem(
                label=resource.display,
                detail=resource.category,
                severity=flag_severity(resource),
            ))

    summary = CriticalSummary(
        allergies=_by_severity(allergies),
        medications=_by_severity(medications),
        chronic_conditions=_by_severity(chronic),
        code_status=_code_status_text(code_status) if code_status else None,
        alerts=_by_severity(alerts),
        recent_vitals=_recent_vitals(vitals, now, config.vital_recent_hours),
    )
    logger.debug(
        "Critical summary: %d allergies, %d medications, %d chronic conditions, %d alerts, %d vitals",
        len(summary.allergies), len(summary.medications), len(summary.chronic_conditions),
        len(summary.alerts), len(summary.recent_vitals),
    )
    return summary
