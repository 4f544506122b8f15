"""Helpers for reading loosely-typed FHIR R4 JSON values.

Every helper accepts whatever the bundle happens to contain (missing keys,
wrong types, empty strings) and answers ``None`` or an empty list rather
than raising.
"""

import re
from datetime import UTC, date, datetime

from triage_timeline.models.snapshot import ResourceReference

_PARTIAL_DATE = re.compile(r"^(\d{4})(?:-(\d{2}))?(?:-(\d{2}))?$")

SYSTOLIC_LOINC = "8480-6"
DIASTOLIC_LOINC = "8462-4"


def _clean(value) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def codeable_text(codeable_concept) -> str | None:
    """Human-readable text of a CodeableConcept: text, then a coding display, then a code."""
    if not isinstance(codeable_concept, dict):
        return None
    text = _clean(codeable_concept.get("text"))
    if text:
        return text
    codings = codeable_concept.get("coding")
    if not isinstance(codings, list):
        return None
    for coding in codings:
        if not isinstance(coding, dict):
            continue
        display = _clean(coding.get("display"))
        if display:
            return display
        code = _clean(coding.get("code"))
        if code:
            return code
    return None


def first_codeable_text(value) -> str | None:
    """Text of the first usable CodeableConcept in a list (reasonCode, type, ...)."""
    if isinstance(value, dict):
        return codeable_text(value)
    if not isinstance(value, list):
        return None
    for item in value:
        text = codeable_text(item)
        if text:
            return text
    return None


def coding_terms(codeable_concept) -> list[str]:
    """All codes, displays and the text of a CodeableConcept, lowercased, in order."""
    if isinstance(codeable_concept, str):
        term = _clean(codeable_concept)
        return [term.lower()] if term else []
    if not isinstance(codeable_concept, dict):
        return []
    terms: list[str] = []
    codings = codeable_concept.get("coding")
    if isinstance(codings, list):
        for coding in codings:
            if not isinstance(coding, dict):
                continue
            for key in ("code", "display"):
                term = _clean(coding.get(key))
                if term and term.lower() not in terms:
                    terms.append(term.lower())
    text = _clean(codeable_concept.get("text"))
    if text and text.lower() not in terms:
        terms.append(text.lower())
    return terms


def list_terms(value) -> list[str]:
    """``coding_terms`` flattened over a list of CodeableConcepts."""
    if isinstance(value, dict):
        return coding_terms(value)
    if not isinstance(value, list):
        return []
    terms: list[str] = []
    for item in value:
        for term in coding_terms(item):
            if term not in terms:
                terms.append(term)
    return terms


def status_code(value) -> str | None:
    """Normalize a status given either as a plain code or as a CodeableConcept."""
    if isinstance(value, str):
        code = _clean(value)
        return code.lower() if code else None
    if isinstance(value, dict):
        codings = value.get("coding")
        if isinstance(codings, list):
            for coding in codings:
                if isinstance(coding, dict) and _clean(coding.get("code")):
                    return coding["code"].strip().lower()
        text = codeable_text(value)
        return text.lower() if text else None
    return None


def parse_fhir_datetime(value) -> datetime | None:
    """Parse a FHIR date, partial date or dateTime into an aware UTC datetime.

    Partial dates ("2024", "2024-03") resolve to the first day of the period.
    A dateTime without an offset is taken as UTC.
    """
    text = _clean(value)
    if not text:
        return None
    match = _PARTIAL_DATE.match(text)
    if match:
        year, month, day = match.groups()
        try:
            return datetime(int(year), int(month or 1), int(day or 1), tzinfo=UTC)
        except ValueError:
            return None
    if text[-1] in "Zz":
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=UTC)
        # an offset can push year 1 or 9999 out of range
        return parsed.astimezone(UTC)
    except (ValueError, OverflowError):
        return None


def period_datetime(value) -> datetime | None:
    """A Period resolves to its end, falling back to its start."""
    if not isinstance(value, dict):
        return None
    return parse_fhir_datetime(value.get("end")) or parse_fhir_datetime(value.get("start"))


def extract_datetime(resource: dict, fields) -> datetime | None:
    """First usable timestamp among ``fields`` (dateTime strings or Periods)."""
    for field in fields:
        value = resource.get(field)
        if isinstance(value, str):
            parsed = parse_fhir_datetime(value)
        else:
            parsed = period_datetime(value)
        if parsed is not None:
            return parsed
    return None


def age_on(birth_date: date, on: date) -> int | None:
    """Completed years between ``birth_date`` and ``on``; None for a birth date in the future."""
    age = on.year - birth_date.year
    if (on.month, on.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age if age >= 0 else None


def human_name(names) -> str | None:
    """First HumanName of a Patient: its text, else first given name plus family."""
    if not isinstance(names, list) or not names or not isinstance(names[0], dict):
        return None
    name = names[0]
    text = _clean(name.get("text"))
    if text:
        return text
    given = name.get("given")
    first = _clean(given[0]) if isinstance(given, list) and given else None
    full = " ".join(part for part in (first, _clean(name.get("family"))) if part)
    return full or None


def _number(value) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:f}".rstrip("0").rstrip(".")


def format_quantity(quantity) -> str | None:
    """Render a Quantity as "<value> <unit>"."""
    if not isinstance(quantity, dict):
        return None
    magnitude = _number(quantity.get("value"))
    if magnitude is None:
        return None
    unit = _clean(quantity.get("unit")) or _clean(quantity.get("code"))
    number = format_number(magnitude)
    return f"{number} {unit}" if unit else number


def blood_pressure(components) -> tuple[float, float, str] | None:
    """Systolic/diastolic pair (and unit) from Observation components."""
    if not isinstance(components, list):
        return None
    systolic = diastolic = None
    unit = None
    for component in components:
        if not isinstance(component, dict):
            continue
        quantity = component.get("valueQuantity")
        value = _number(quantity.get("value")) if isinstance(quantity, dict) else None
        if value is None:
            continue
        terms = coding_terms(component.get("code"))
        joined = " ".join(terms)
        if systolic is None and (SYSTOLIC_LOINC in terms or "systolic" in joined):
            systolic = value
            unit = unit or _clean(quantity.get("unit"))
        elif diastolic is None and (DIASTOLIC_LOINC in terms or "diastolic" in joined):
            diastolic = value
            unit = unit or _clean(quantity.get("unit"))
    if systolic is None or diastolic is None:
        return None
    return systolic, diastolic, unit or "mmHg"


def observation_value(resource: dict) -> str | None:
    """Rendered value of an Observation, whatever ``value[x]`` or component form it uses."""
    rendered = format_quantity(resource.get("valueQuantity"))
    if rendered:
        return rendered
    text = _clean(resource.get("valueString"))
    if text:
        return text
    text = codeable_text(resource.get("valueCodeableConcept"))
    if text:
        return text
    if isinstance(resource.get("valueBoolean"), bool):
        return "yes" if resource["valueBoolean"] else "no"
    integer = _number(resource.get("valueInteger"))
    if integer is not None:
        return format_number(integer)

    components = resource.get("component")
    pressure = blood_pressure(components)
    if pressure:
        systolic, diastolic, unit = pressure
        return f"{format_number(systolic)}/{format_number(diastolic)} {unit}"
    if isinstance(components, list):
        parts = []
        for component in components:
            if not isinstance(component, dict):
                continue
            value = format_quantity(component.get("valueQuantity"))
            if value:
                label = codeable_text(component.get("code")) or "Component"
                parts.append(f"{label}: {value}")
        if parts:
            return " | ".join(parts)
    return None


def observation_number(resource: dict) -> float | None:
    quantity = resource.get("valueQuantity")
    if isinstance(quantity, dict):
        value = _number(quantity.get("value"))
        if value is not None:
            return value
    return _number(resource.get("valueInteger"))


def summarize_reactions(resource: dict) -> list[str]:
    """Distinct reaction manifestations of an AllergyIntolerance."""
    reactions = resource.get("reaction")
    if not isinstance(reactions, list):
        return []
    manifestations: list[str] = []
    for reaction in reactions:
        if not isinstance(reaction, dict):
            continue
        items = reaction.get("manifestation")
        if not isinstance(items, list):
            continue
        for item in items:
            text = codeable_text(item)
            if text and text not in manifestations:
                manifestations.append(text)
    return manifestations


def reaction_severity(resource: dict) -> str | None:
    reactions = resource.get("reaction")
    if not isinstance(reactions, list):
        return None
    for reaction in reactions:
        if isinstance(reaction, dict):
            severity = _clean(reaction.get("severity"))
            if severity:
                return severity.lower()
    return None


def summarize_dosage(resource: dict) -> str | None:
    """First dosage instruction: free text, route and rate."""
    dosages = resource.get("dosage") or resource.get("dosageInstruction")
    if isinstance(dosages, dict):
        dosages = [dosages]
    if not isinstance(dosages, list) or not dosages or not isinstance(dosages[0], dict):
        return None
    dosage = dosages[0]
    parts = []
    text = _clean(dosage.get("text"))
    if text:
        parts.append(text)
    route = codeable_text(dosage.get("route"))
    if route:
        parts.append(f"Route: {route}")
    rate = format_quantity(dosage.get("rateQuantity"))
    if rate:
        parts.append(f"Rate: {rate}")
    dose = format_quantity(dosage.get("dose"))
    if dose and not text:
        parts.insert(0, dose)
    return " | ".join(parts) if parts else None


def resource_reference(
    resource: dict,
    full_url: str | None = None,
    display: str | None = None,
) -> ResourceReference | None:
    """Build the deep-link back to a resource, or None if it cannot be addressed."""
    resource_type = _clean(resource.get("resourceType"))
    resource_id = _clean(resource.get("id"))
    full_url = _clean(full_url)

    system = None
    reference = None
    if resource_type and resource_id:
        reference = f"{resource_type}/{resource_id}"
        suffix = f"/{reference}"
        if full_url and full_url.startswith(("http://", "https://")) and full_url.endswith(suffix):
            system = full_url[: -len(suffix)] or None
    elif full_url:
        reference = full_url

    if reference is None:
        return None
    return ResourceReference(system=system, reference=reference, display=display)
