"""Timeline construction: one normalized, severity-tagged event per resource."""

import logging
from collections.abc import Callable
from datetime import datetime

from triage_timeline.models.resources import (
    AllergyResource,
    ClassifiedResource,
    ConditionResource,
    DocumentResource,
    EncounterResource,
    FlagResource,
    MedicationResource,
    ObservationResource,
    OtherResource,
    PatientResource,
    ProcedureResource,
    ResourceKind,
)
from triage_timeline.models.snapshot import (
    EventCategory,
    Severity,
    SummarizeConfig,
    TimelineEvent,
)
from triage_timeline.services.critical import join_details, within_days
from triage_timeline.services.severity import (
    classify,
    condition_severity,
    flag_severity,
    medication_severity,
    observation_severity,
)

logger = logging.getLogger(__name__)


def _status(resource: ClassifiedResource) -> str | None:
    return f"Status: {resource.status}" if resource.status else None


def event_id(resource: ClassifiedResource) -> str:
    """Deterministic event id: ``<resourceType>/<identifier>``."""
    return f"{resource.resource_type}/{resource.identifier}"


def _event(
    resource: ClassifiedResource,
    category: EventCategory,
    title: str,
    detail: str | None,
    severity: Severity,
) -> TimelineEvent:
    return TimelineEvent(
        id=event_id(resource),
        category=category,
        title=title,
        detail=detail,
        occurred_at=resource.timestamp,
        severity=severity,
        source=resource.reference,
    )


def _encounter(resource: EncounterResource) -> TimelineEvent:
    return _event(
        resource,
        EventCategory.ENCOUNTER,
        resource.display or "Encounter",
        join_details([resource.reason, _status(resource)]),
        classify(ResourceKind.ENCOUNTER, None),
    )


def _procedure(resource: ProcedureResource) -> TimelineEvent:
    outcome = f"Outcome: {resource.outcome}" if resource.outcome else None
    return _event(
        resource,
        EventCategory.PROCEDURE,
        resource.display or "Procedure",
        join_details([_status(resource), outcome]),
        classify(ResourceKind.PROCEDURE, None),
    )


def _condition(resource: ConditionResource) -> TimelineEvent:
    severity_text = f"Severity: {resource.severity_text}" if resource.severity_text else None
    return _event(
        resource,
        EventCategory.CONDITION,
        resource.display,
        join_details([_status(resource), severity_text]),
        condition_severity(resource),
    )


def _allergy(resource: AllergyResource) -> None:
    # Allergies are shown in the critical overview only.
    return None


def _medication(resource: MedicationResource) -> TimelineEvent:
    indication = f"Indication: {resource.reason}" if resource.reason else None
    return _event(
        resource,
        EventCategory.MEDICATION,
        resource.display,
        join_details([_status(resource), indication, resource.dosage]),
        medication_severity(resource),
    )


def _observation(resource: ObservationResource) -> TimelineEvent | None:
    severity = observation_severity(resource)
    if resource.vital_name and not resource.is_code_status and severity < Severity.HIGH:
        # routine vital, reported through recent_vitals
        return None
    title = "Code status update" if resource.is_code_status else resource.display
    return _event(resource, EventCategory.OBSERVATION, title, resource.value_text, severity)


def _document(resource: DocumentResource) -> TimelineEvent:
    return _event(
        resource,
        EventCategory.NOTE if resource.is_note else EventCategory.DOCUMENT,
        resource.display,
        resource.attachment_title or resource.description,
        classify(ResourceKind.DOCUMENT, None),
    )


def _flag(resource: FlagResource) -> TimelineEvent:
    return _event(
        resource,
        EventCategory.OTHER,
        resource.display,
        join_details([resource.category, _status(resource)]),
        flag_severity(resource),
    )


def _patient(resource: PatientResource) -> None:
    # Demographics are an overview alert, not a clinical event.
    return None


def _other(resource: OtherResource) -> TimelineEvent:
    return _event(
        resource,
        EventCategory.OTHER,
        resource.display or resource.resource_type,
        _status(resource),
        classify(ResourceKind.OTHER, None),
    )


EVENT_HANDLERS: dict[ResourceKind, Callable[..., TimelineEvent | None]] = {
    ResourceKind.ENCOUNTER: _encounter,
    ResourceKind.PROCEDURE: _procedure,
    ResourceKind.CONDITION: _condition,
    ResourceKind.ALLERGY: _allergy,
    ResourceKind.MEDICATION: _medication,
    ResourceKind.OBSERVATION: _observation,
    ResourceKind.DOCUMENT: _document,
    ResourceKind.FLAG: _flag,
    ResourceKind.PATIENT: _patient,
    ResourceKind.OTHER: _other,
}

_unhandled = set(ResourceKind) - set(EVENT_HANDLERS)
if _unhandled:
    raise RuntimeError(f"No timeline handler for resource kinds: {sorted(_unhandled)}")


def sort_events(events: list[TimelineEvent]) -> list[TimelineEvent]:
    """Newest first; undated events last, in their original order."""
    dated = [event for event in events if event.occurred_at is not None]
    undated = [event for event in events if event.occurred_at is None]
    dated.sort(key=lambda event: event.occurred_at, reverse=True)
    return dated + undated


def build(
    classified: list[ClassifiedResource],
    config: SummarizeConfig,
    now: datetime,
) -> list[TimelineEvent]:
    """Build the ordered timeline from classified resources.

    Events older than ``config.clinical_event_days`` before ``now`` are
    dropped; undated events are always kept. Each event id appears once:
    the first resource in bundle order wins.
    """
    events: list[TimelineEvent] = []
    seen: set[str] = set()
    for resource in classified:
        if not within_days(resource.timestamp, now, config.clinical_event_days):
            continue
        event = EVENT_HANDLERS[resource.kind](resource)
        if event is None or event.id in seen:
            continue
        seen.add(event.id)
        events.append(event)

    logger.debug("Built %d timeline events from %d resources", len(events), len(classified))
    return sort_events(events)
