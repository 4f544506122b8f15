"""Severity classification shared by the critical overview and the timeline.

``classify`` is a pure table lookup from (resource kind, coded value) to a
Severity. The ``*_severity`` helpers pick the coded value out of a
classified resource and route it through the same table, so one resource
always gets one severity no matter which view asks.
"""

from triage_timeline.models.resources import (
    AllergyResource,
    ConditionResource,
    FlagResource,
    MedicationResource,
    ObservationResource,
    PatientResource,
    ResourceKind,
)
from triage_timeline.models.snapshot import Severity

SEVERITY_TABLE: dict[ResourceKind, dict[str, Severity]] = {
    ResourceKind.ALLERGY: {
        "high": Severity.CRITICAL,
        "low": Severity.MODERATE,
        "unable-to-assess": Severity.INFO,
        "reaction:severe": Severity.CRITICAL,
        "reaction:moderate": Severity.HIGH,
        "reaction:mild": Severity.MODERATE,
    },
    ResourceKind.OBSERVATION: {
        "hh": Severity.CRITICAL,
        "ll": Severity.CRITICAL,
        "aa": Severity.CRITICAL,
        "critical": Severity.CRITICAL,
        "critical high": Severity.CRITICAL,
        "critical low": Severity.CRITICAL,
        "critical abnormal": Severity.CRITICAL,
        "panic": Severity.CRITICAL,
        "h": Severity.HIGH,
        "l": Severity.HIGH,
        "a": Severity.HIGH,
        "hu": Severity.HIGH,
        "lu": Severity.HIGH,
        "high": Severity.HIGH,
        "low": Severity.HIGH,
        "abnormal": Severity.HIGH,
        "significantly high": Severity.HIGH,
        "significantly low": Severity.HIGH,
        "n": Severity.INFO,
        "normal": Severity.INFO,
        "range:critical": Severity.CRITICAL,
        "range:high": Severity.HIGH,
        "range:moderate": Severity.MODERATE,
        "code-status": Severity.CRITICAL,
    },
    ResourceKind.CONDITION: {
        "severe": Severity.HIGH,
        "24484000": Severity.HIGH,
        "life-threatening": Severity.CRITICAL,
        "442452003": Severity.CRITICAL,
    },
    ResourceKind.MEDICATION: {
        "high-alert": Severity.HIGH,
    },
    ResourceKind.FLAG: {
        "ph": Severity.HIGH,
        "pm": Severity.MODERATE,
        "pl": Severity.LOW,
        "pn": Severity.INFO,
    },
}

# Severity when the coded value is missing altogether.
ABSENT_SEVERITY: dict[ResourceKind, Severity] = {
    ResourceKind.ALLERGY: Severity.MODERATE,
    ResourceKind.CONDITION: Severity.LOW,
    ResourceKind.MEDICATION: Severity.MODERATE,
    ResourceKind.FLAG: Severity.HIGH,
    ResourceKind.PROCEDURE: Severity.MODERATE,
    ResourceKind.DOCUMENT: Severity.LOW,
}

# Severity for a coded value the table does not know. Anything not listed is info.
UNKNOWN_SEVERITY: dict[ResourceKind, Severity] = {
    ResourceKind.CONDITION: Severity.LOW,
}

# Condition-name heuristics, checked on the lowercased name.
LIFE_THREATENING_TERMS = ("sepsis", "shock", "arrest", "respiratory failure")
SERIOUS_CONDITION_TERMS = ("pneumonia", "infarction", "stroke", "pulmonary embolism")

HIGH_ALERT_MEDICATIONS = (
    "insulin", "heparin", "enoxaparin", "warfarin", "apixaban", "rivaroxaban",
    "dabigatran", "edoxaban", "alteplase", "tenecteplase", "morphine",
    "hydromorphone", "fentanyl", "oxycodone", "methadone", "ketamine", "propofol",
    "midazolam", "potassium chloride", "magnesium sulfate", "norepinephrine",
    "epinephrine", "vasopressin", "dopamine", "dobutamine", "amiodarone", "digoxin",
    "methotrexate", "chemotherapy", "anticoagulant", "opioid",
)


def _normalize(coded_value) -> str | None:
    if coded_value is None:
        return None
    code = str(coded_value).strip().lower()
    return code or None


def is_known(kind: ResourceKind, coded_value) -> bool:
    code = _normalize(coded_value)
    return code is not None and code in SEVERITY_TABLE.get(kind, {})


def classify(kind: ResourceKind, coded_value) -> Severity:
    """Map a coded clinical value to a Severity. Total: never raises, never escalates unknowns."""
    code = _normalize(coded_value)
    if code is None:
        return ABSENT_SEVERITY.get(kind, Severity.INFO)
    table = SEVERITY_TABLE.get(kind, {})
    if code in table:
        return table[code]
    return UNKNOWN_SEVERITY.get(kind, Severity.INFO)


def allergy_severity(allergy: AllergyResource) -> Severity:
    if allergy.criticality:
        return classify(ResourceKind.ALLERGY, allergy.criticality)
    if allergy.reaction_severity:
        return classify(ResourceKind.ALLERGY, f"reaction:{allergy.reaction_severity}")
    return classify(ResourceKind.ALLERGY, None)


def _range_code(observation: ObservationResource) -> str | None:
    """Vital-sign and lactate range rules for observations without an interpretation."""
    value = observation.numeric_value
    name = observation.vital_name

    if name == "Blood pressure" and observation.blood_pressure:
        systolic, diastolic = observation.blood_pressure
        if systolic >= 200 or diastolic >= 120:
            return "range:critical"
        if systolic >= 180 or diastolic >= 110 or systolic <= 80 or diastolic <= 50:
            return "range:high"
        return "range:moderate"

    if value is None:
        return None

    if name == "Heart rate":
        if value >= 140 or value <= 40:
            return "range:critical"
        if value >= 120 or value <= 50:
            return "range:high"
        return "range:moderate"

    if name == "Respiratory rate":
        if value >= 35 or value <= 8:
            return "range:critical"
        if value >= 28 or value <= 10:
            return "range:high"
        return "range:moderate"

    if name == "SpO2":
        if value < 85:
            return "range:critical"
        if value < 92:
            return "range:high"
        return "range:moderate"

    if observation.display and "lactate" in observation.display.lower():
        if value >= 4:
            return "range:critical"
        if value >= 2:
            return "range:high"
        return "range:moderate"

    return None


def observation_severity(observation: ObservationResource) -> Severity:
    if observation.is_code_status:
        return classify(ResourceKind.OBSERVATION, "code-status")
    for code in observation.interpretation:
        if is_known(ResourceKind.OBSERVATION, code):
            return classify(ResourceKind.OBSERVATION, code)
    return classify(ResourceKind.OBSERVATION, _range_code(observation))


def condition_severity(condition: ConditionResource) -> Severity:
    name = (condition.display or "").lower()
    if any(term in name for term in LIFE_THREATENING_TERMS):
        return classify(ResourceKind.CONDITION, "life-threatening")
    coded = next(
        (code for code in condition.severity_codes if is_known(ResourceKind.CONDITION, code)),
        condition.severity_codes[0] if condition.severity_codes else None,
    )
    severity = classify(ResourceKind.CONDITION, coded)
    if any(term in name for term in SERIOUS_CONDITION_TERMS):
        return max(severity, classify(ResourceKind.CONDITION, "severe"))
    return severity


def is_high_alert(medication: MedicationResource) -> bool:
    name = (medication.display or "").lower()
    return any(term in name for term in HIGH_ALERT_MEDICATIONS)


def medication_severity(medication: MedicationResource) -> Severity:
    return classify(ResourceKind.MEDICATION, "high-alert" if is_high_alert(medication) else None)


def flag_severity(flag: FlagResource) -> Severity:
    return classify(ResourceKind.FLAG, flag.priority)


def patient_severity(patient: PatientResource) -> Severity:
    return classify(ResourceKind.PATIENT, None)
