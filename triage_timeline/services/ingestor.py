"""Bundle ingestion: walk ``Bundle.entry`` and classify each resource by kind.

Only a broken envelope is fatal (``MalformedBundle``). Individual entries
that are unusable are skipped without raising; unknown resource types are
kept as ``Other`` when they carry a timestamp so newer data still shows up
on the timeline.
"""

import logging

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
from triage_timeline.services.fhir_values import (
    blood_pressure,
    codeable_text,
    coding_terms,
    extract_datetime,
    first_codeable_text,
    human_name,
    list_terms,
    observation_number,
    observation_value,
    parse_fhir_datetime,
    reaction_severity,
    resource_reference,
    status_code,
    summarize_dosage,
    summarize_reactions,
)

logger = logging.getLogger(__name__)


class MalformedBundle(ValueError):
    """The input is not a recognizable FHIR Bundle envelope."""


KIND_BY_TYPE = {
    "Encounter": ResourceKind.ENCOUNTER,
    "Procedure": ResourceKind.PROCEDURE,
    "Condition": ResourceKind.CONDITION,
    "AllergyIntolerance": ResourceKind.ALLERGY,
    "MedicationStatement": ResourceKind.MEDICATION,
    "MedicationRequest": ResourceKind.MEDICATION,
    "MedicationAdministration": ResourceKind.MEDICATION,
    "Observation": ResourceKind.OBSERVATION,
    "DocumentReference": ResourceKind.DOCUMENT,
    "Composition": ResourceKind.DOCUMENT,
    "Flag": ResourceKind.FLAG,
    "Patient": ResourceKind.PATIENT,
}

TIMESTAMP_FIELDS = {
    ResourceKind.ENCOUNTER: ("period",),
    ResourceKind.PROCEDURE: ("performedDateTime", "performedPeriod"),
    ResourceKind.CONDITION: (
        "recordedDate", "onsetDateTime", "onsetPeriod", "onsetDate", "assertedDate",
    ),
    ResourceKind.ALLERGY: ("recordedDate", "onsetDateTime"),
    ResourceKind.MEDICATION: (
        "effectiveDateTime", "effectivePeriod", "dateAsserted", "authoredOn",
    ),
    ResourceKind.OBSERVATION: (
        "effectiveDateTime", "effectiveInstant", "effectivePeriod", "issued",
    ),
    ResourceKind.DOCUMENT: ("date", "created"),
    ResourceKind.FLAG: ("period",),
    ResourceKind.PATIENT: (),
    ResourceKind.OTHER: (
        "effectiveDateTime", "effectivePeriod", "occurrenceDateTime", "issued",
        "date", "authoredOn", "recordedDate", "period", "created",
    ),
}

# (label, LOINC codes, name fragments); checked in order, codes before names.
VITAL_SIGNS = (
    ("SpO2", ("59408-5", "2708-6"), ("spo2", "oxygen saturation", "pulse oximetry")),
    ("Heart rate", ("8867-4",), ("heart rate", "pulse")),
    ("Blood pressure", ("85354-9", "55284-4"), ("blood pressure",)),
    ("Respiratory rate", ("9279-1",), ("respiratory rate",)),
    ("Temperature", ("8310-5", "8331-1"), ("temperature",)),
)

CODE_STATUS_TERMS = (
    "code status",
    "dnr",
    "dnar",
    "do not resuscitate",
    "resuscitation status",
    "advance directive",
    "polst",
)

FLAG_PRIORITY_URL = "http://hl7.org/fhir/StructureDefinition/flag-priority"


def _text(value) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def infer_vital_name(display: str | None, codes: list[str], categories: list[str]) -> str | None:
    for label, loinc_codes, _ in VITAL_SIGNS:
        if any(code in codes for code in loinc_codes):
            return label
    lowered = (display or "").lower()
    for label, _, fragments in VITAL_SIGNS:
        if any(fragment in lowered for fragment in fragments):
            return label
    if "vital-signs" in categories:
        return display
    return None


def mentions_code_status(text: str | None) -> bool:
    lowered = (text or "").lower()
    return any(term in lowered for term in CODE_STATUS_TERMS)


def _resource_status(resource: dict) -> str | None:
    return status_code(resource.get("status")) or status_code(resource.get("clinicalStatus"))


def _encounter(resource: dict, common: dict) -> EncounterResource:
    klass = resource.get("class")
    label = first_codeable_text(resource.get("type"))
    if not label and isinstance(klass, dict):
        label = _text(klass.get("display")) or _text(klass.get("code")) or codeable_text(klass)
    label = label or first_codeable_text(resource.get("serviceType"))
    return EncounterResource(
        display=label,
        reason=first_codeable_text(resource.get("reasonCode")),
        **common,
    )


def _procedure(resource: dict, common: dict) -> ProcedureResource:
    return ProcedureResource(
        display=codeable_text(resource.get("code")),
        outcome=codeable_text(resource.get("outcome")),
        **common,
    )


def _condition(resource: dict, common: dict) -> ConditionResource | None:
    name = codeable_text(resource.get("code"))
    if not name:
        return None
    severity = resource.get("severity")
    return ConditionResource(
        display=name,
        severity_text=codeable_text(severity),
        severity_codes=coding_terms(severity),
        categories=list_terms(resource.get("category")),
        onset_at=extract_datetime(resource, ("onsetDateTime", "onsetPeriod", "onsetDate")),
        body_site=first_codeable_text(resource.get("bodySite")),
        **common,
    )


def _allergy(resource: dict, common: dict) -> AllergyResource | None:
    substance = codeable_text(resource.get("code")) or codeable_text(resource.get("substance"))
    if not substance:
        return None
    categories = resource.get("category")
    return AllergyResource(
        display=substance,
        verification_status=status_code(resource.get("verificationStatus")),
        criticality=status_code(resource.get("criticality")),
        reaction_severity=reaction_severity(resource),
        manifestations=summarize_reactions(resource),
        categories=[c for c in categories if isinstance(c, str)] if isinstance(categories, list) else [],
        **common,
    )


def _medication(resource: dict, common: dict) -> MedicationResource:
    name = codeable_text(resource.get("medicationCodeableConcept"))
    reference = resource.get("medicationReference")
    if not name and isinstance(reference, dict):
        name = _text(reference.get("display"))
    return MedicationResource(
        display=name or "Unknown medication",
        reason=first_codeable_text(resource.get("reasonCode")),
        dosage=summarize_dosage(resource),
        **common,
    )


def _observation(resource: dict, common: dict) -> ObservationResource | None:
    name = codeable_text(resource.get("code")) or "Observation"
    value = observation_value(resource)
    if value is None:
        return None
    categories = list_terms(resource.get("category"))
    codes = coding_terms(resource.get("code"))
    pressure = blood_pressure(resource.get("component"))
    return ObservationResource(
        display=name,
        categories=categories,
        codes=codes,
        value_text=value,
        numeric_value=observation_number(resource),
        blood_pressure=pressure[:2] if pressure else None,
        interpretation=list_terms(resource.get("interpretation")),
        vital_name=infer_vital_name(name, codes, categories),
        is_code_status=mentions_code_status(name),
        **common,
    )


def _document(resource: dict, common: dict) -> DocumentResource:
    doc_type = codeable_text(resource.get("type"))
    description = _text(resource.get("description"))
    attachment_title = None
    content = resource.get("content")
    if isinstance(content, list) and content and isinstance(content[0], dict):
        attachment = content[0].get("attachment")
        if isinstance(attachment, dict):
            attachment_title = _text(attachment.get("title"))
    labels = [doc_type or "", *list_terms(resource.get("category"))]
    return DocumentResource(
        display=doc_type or _text(resource.get("title")) or description or "Clinical document",
        description=description,
        attachment_title=attachment_title,
        is_note=any("note" in label.lower() for label in labels),
        **common,
    )


def _flag_priority(resource: dict) -> str | None:
    extensions = resource.get("extension")
    if not isinstance(extensions, list):
        return None
    for extension in extensions:
        if isinstance(extension, dict) and extension.get("url") == FLAG_PRIORITY_URL:
            return status_code(extension.get("valueCodeableConcept"))
    return None


def _flag(resource: dict, common: dict) -> FlagResource | None:
    text = codeable_text(resource.get("code"))
    if not text:
        return None
    return FlagResource(
        display=text,
        category=first_codeable_text(resource.get("category")),
        priority=_flag_priority(resource),
        is_code_status=mentions_code_status(text),
        **common,
    )


def _patient(resource: dict, common: dict) -> PatientResource | None:
    name = human_name(resource.get("name"))
    if not name:
        return None
    birth = parse_fhir_datetime(resource.get("birthDate"))
    return PatientResource(
        display=name,
        birth_date=birth.date() if birth else None,
        gender=status_code(resource.get("gender")),
        **common,
    )


def _other(resource: dict, common: dict) -> OtherResource | None:
    if common["timestamp"] is None:
        return None
    return OtherResource(
        display=(
            codeable_text(resource.get("code"))
            or codeable_text(resource.get("vaccineCode"))
            or first_codeable_text(resource.get("type"))
            or _text(resource.get("title"))
        ),
        **common,
    )


_BUILDERS = {
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


def classify_entry(position: int, entry) -> ClassifiedResource | None:
    """Classify one bundle entry, or None when it has to be skipped."""
    if not isinstance(entry, dict):
        return None
    resource = entry.get("resource")
    if not isinstance(resource, dict):
        return None
    resource_type = _text(resource.get("resourceType"))
    if not resource_type:
        return None

    status = _resource_status(resource)
    verification = status_code(resource.get("verificationStatus"))
    if "entered-in-error" in (status, verification):
        return None

    kind = KIND_BY_TYPE.get(resource_type, ResourceKind.OTHER)
    full_url = _text(entry.get("fullUrl"))
    common = {
        "identifier": _text(resource.get("id")) or full_url or f"#{position}",
        "resource_type": resource_type,
        "position": position,
        "status": status,
        "timestamp": extract_datetime(resource, TIMESTAMP_FIELDS[kind]),
    }
    classified = _BUILDERS[kind](resource, common)
    if classified is None:
        return None
    reference = resource_reference(resource, full_url, classified.display)
    return classified.model_copy(update={"reference": reference})


def ingest(bundle) -> list[ClassifiedResource]:
    """Classify every usable entry of a FHIR Bundle, preserving entry order.

    Raises:
        MalformedBundle: the value is not an object, is not a Bundle, or has
            no ``entry`` list.
    """
    if not isinstance(bundle, dict):
        raise MalformedBundle("Bundle must be a JSON object")
    resource_type = bundle.get("resourceType")
    if resource_type != "Bundle":
        raise MalformedBundle(f"Expected resourceType 'Bundle', got {resource_type!r}")
    entries = bundle.get("entry")
    if not isinstance(entries, list):
        raise MalformedBundle("Bundle.entry must be a list")

    classified = []
    for position, entry in enumerate(entries):
        resource = classify_entry(position, entry)
        if resource is not None:
            classified.append(resource)

    logger.debug(
        "Ingested %d of %d bundle entries (%d skipped)",
        len(classified), len(entries), len(entries) - len(classified),
    )
    return classified
