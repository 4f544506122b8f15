"""Tests for the critical overview extractor."""

from datetime import UTC, date, datetime, timedelta

from triage_timeline.models.resources import (
    AllergyResource,
    ConditionResource,
    FlagResource,
    MedicationResource,
    ObservationResource,
    PatientResource,
)
from triage_timeline.models.snapshot import Severity, SummarizeConfig
from triage_timeline.services.critical import extract, is_chronic, join_details, within_days
from triage_timeline.services.ingestor import ingest

NOW = datetime(2025, 3, 1, 12, tzinfo=UTC)
CONFIG = SummarizeConfig(vital_recent_hours=6, clinical_event_days=30)


def _common(position: int, resource_type: str, **fields) -> dict:
    return {"identifier": f"r{position}", "resource_type": resource_type, "position": position, **fields}


def _vital(position: int, name: str, value: float, hours_ago: float | None) -> ObservationResource:
    timestamp = NOW - timedelta(hours=hours_ago) if hours_ago is not None else None
    return ObservationResource(**_common(
        position, "Observation",
        display=name,
        vital_name=name,
        value_text=f"{value:g}",
        numeric_value=value,
        timestamp=timestamp,
    ))


# --- Emergency bundle ---


class TestEmergencyBundle:
    def test_allergies(self, emergency_bundle, now):
        summary = extract(ingest(emergency_bundle), CONFIG, now)
        assert [(a.label, a.severity, a.detail) for a in summary.allergies] == [
            ("Penicillin", Severity.CRITICAL, "Hives, Anaphylaxis"),
            ("Latex", Severity.MODERATE, None),
        ]

    def test_medications(self, emergency_bundle, now):
        summary = extract(ingest(emergency_bundle), CONFIG, now)
        assert [(m.label, m.severity, m.detail) for m in summary.medications] == [
            ("Warfarin 5 mg", Severity.HIGH, "5 mg PO daily | Indication: Atrial fibrillation"),
            ("Metformin 500 mg", Severity.MODERATE, None),
        ]

    def test_chronic_conditions(self, emergency_bundle, now):
        summary = extract(ingest(emergency_bundle), CONFIG, now)
        assert [c.label for c in summary.chronic_conditions] == [
            "Type 2 diabetes mellitus",
            "Kidney disease stage 3",
        ]
        assert all(c.severity is Severity.LOW for c in summary.chronic_conditions)

    def test_code_status_latest_wins(self, emergency_bundle, now):
        summary = extract(ingest(emergency_bundle), CONFIG, now)
        assert summary.code_status == "Do not resuscitate (DNR)"

    def test_alerts(self, emergency_bundle, now):
        summary = extract(ingest(emergency_bundle), CONFIG, now)
        assert [(a.label, a.severity, a.detail) for a in summary.alerts] == [
            ("Blood pressure panel", Severity.CRITICAL, "210/125 mmHg"),
            ("Lactate", Severity.CRITICAL, "4.5 mmol/L"),
            ("Heart rate", Severity.HIGH, "130 beats/min"),
            ("Fall risk", Severity.HIGH, "Clinical"),
            ("Patient: John Smith", Severity.INFO, "66 years | Male"),
        ]

    def test_recent_vitals(self, emergency_bundle, now):
        summary = extract(ingest(emergency_bundle), CONFIG, now)
        assert [(v.name, v.value, v.recorded_at) for v in summary.recent_vitals] == [
            ("SpO2", "95 %", datetime(2025, 3, 1, 11, 30, tzinfo=UTC)),
            ("Heart rate", "88 beats/min", datetime(2025, 3, 1, 11, tzinfo=UTC)),
            ("Blood pressure", "210/125 mmHg", datetime(2025, 3, 1, 10, 30, tzinfo=UTC)),
        ]


# --- Allergies ---


class TestAllergies:
    def test_inactive_and_refuted_excluded(self):
        classified = [
            AllergyResource(**_common(0, "AllergyIntolerance", display="Peanut", status="resolved")),
            AllergyResource(**_common(1, "AllergyIntolerance", display="Egg", verification_status="refuted")),
            AllergyResource(**_common(2, "AllergyIntolerance", display="Sulfa", status="inactive")),
            AllergyResource(**_common(3, "AllergyIntolerance", display="Latex")),
        ]
        summary = extract(classified, CONFIG, NOW)
        assert [a.label for a in summary.allergies] == ["Latex"]

    def test_sorted_by_severity_stable(self):
        classified = [
            AllergyResource(**_common(0, "AllergyIntolerance", display="A", criticality="low")),
            AllergyResource(**_common(1, "AllergyIntolerance", display="B", criticality="high")),
            AllergyResource(**_common(2, "AllergyIntolerance", display="C")),
        ]
        summary = extract(classified, CONFIG, NOW)
        assert [a.label for a in summary.allergies] == ["B", "A", "C"]


# --- Medications ---


class TestMedications:
    def test_only_active_statuses(self):
        classified = [
            MedicationResource(**_common(0, "MedicationRequest", display="A", status="active")),
            MedicationResource(**_common(1, "MedicationAdministration", display="B", status="in-progress")),
            MedicationResource(**_common(2, "MedicationRequest", display="C", status="stopped")),
            MedicationResource(**_common(3, "MedicationRequest", display="D")),
        ]
        summary = extract(classified, CONFIG, NOW)
        assert [m.label for m in summary.medications] == ["A", "B"]


# --- Chronic conditions ---


class TestChronicConditions:
    def test_chronic_by_name_or_category(self):
        by_name = ConditionResource(**_common(0, "Condition", display="Chronic obstructive pulmonary disease"))
        by_category = ConditionResource(**_common(1, "Condition", display="Asthma", categories=["chronic"]))
        assert is_chronic(by_name, NOW)
        assert is_chronic(by_category, NOW)

    def test_chronic_by_onset_age(self):
        old = ConditionResource(**_common(0, "Condition", display="Gout", onset_at=NOW - timedelta(days=90)))
        recent = ConditionResource(**_common(1, "Condition", display="Gout", onset_at=NOW - timedelta(days=89)))
        undated = ConditionResource(**_common(2, "Condition", display="Gout"))
        assert is_chronic(old, NOW)
        assert not is_chronic(recent, NOW)
        assert not is_chronic(undated, NOW)

    def test_resolved_condition_not_chronic(self):
        resolved = ConditionResource(**_common(0, "Condition", display="Chronic pain", status="resolved"))
        assert not is_chronic(resolved, NOW)

    def test_detail(self):
        condition = ConditionResource(**_common(
            0, "Condition",
            display="Chronic venous ulcer",
            severity_text="Moderate",
            body_site="Left leg",
        ))
        [item] = extract([condition], CONFIG, NOW).chronic_conditions
        assert item.detail == "Severity: Moderate | Site: Left leg"


# --- Code status ---


class TestCodeStatus:
    def _status(self, position, value, timestamp=None, resource_type="Observation"):
        return ObservationResource(**_common(
            position, resource_type,
            display="Code status",
            value_text=value,
            is_code_status=True,
            timestamp=timestamp,
        ))

    def test_absent(self):
        assert extract([], CONFIG, NOW).code_status is None

    def test_dated_beats_undated(self):
        classified = [
            self._status(0, "Full code", NOW - timedelta(days=400)),
            self._status(1, "DNR"),
        ]
        assert extract(classified, CONFIG, NOW).code_status == "Full code"

    def test_tie_goes_to_later_entry(self):
        moment = NOW - timedelta(days=1)
        classified = [self._status(0, "Full code", moment), self._status(1, "DNR", moment)]
        assert extract(classified, CONFIG, NOW).code_status == "DNR"

    def test_code_status_flag(self):
        classified = [
            self._status(0, "Full code", NOW - timedelta(days=10)),
            FlagResource(**_common(1, "Flag", display="DNR", is_code_status=True, timestamp=NOW - timedelta(days=1))),
        ]
        summary = extract(classified, CONFIG, NOW)
        assert summary.code_status == "DNR"
        assert summary.alerts == []


# --- Alerts ---


class TestAlerts:
    def test_old_abnormal_observation_not_an_alert(self):
        old = ObservationResource(**_common(
            0, "Observation",
            display="Potassium",
            value_text="6.9 mmol/L",
            interpretation=["hh"],
            timestamp=NOW - timedelta(days=45),
        ))
        assert extract([old], CONFIG, NOW).alerts == []

    def test_moderate_observation_not_an_alert(self):
        assert extract([_vital(0, "Heart rate", 80, 1)], CONFIG, NOW).alerts == []

    def test_inactive_flag_excluded(self):
        flag = FlagResource(**_common(0, "Flag", display="Violent behaviour", status="inactive"))
        assert extract([flag], CONFIG, NOW).alerts == []

    def test_patient_alert_sorted_after_clinical_alerts(self):
        classified = [
            PatientResource(**_common(0, "Patient", display="Jane Doe", birth_date=date(1990, 3, 2), gender="female")),
            FlagResource(**_common(1, "Flag", display="Fall risk", priority="pl")),
        ]
        alerts = extract(classified, CONFIG, NOW).alerts
        assert [(a.label, a.severity, a.detail) for a in alerts] == [
            ("Fall risk", Severity.LOW, None),
            ("Patient: Jane Doe", Severity.INFO, "34 years | Female"),
        ]

    def test_patient_alert_partial_demographics(self):
        undated = PatientResource(**_common(0, "Patient", display="A", gender="other"))
        future = PatientResource(**_common(1, "Patient", display="B", birth_date=date(2026, 1, 1)))
        bare = PatientResource(**_common(2, "Patient", display="C"))
        alerts = extract([undated, future, bare], CONFIG, NOW).alerts
        assert [(a.label, a.detail) for a in alerts] == [
            ("Patient: A", "Gender: other"),
            ("Patient: B", None),
            ("Patient: C", None),
        ]


# --- Recent vitals ---


class TestRecentVitals:
    def test_latest_reading_per_vital(self):
        classified = [_vital(0, "Heart rate", 130, 10), _vital(1, "Heart rate", 88, 1)]
        config = SummarizeConfig(vital_recent_hours=24, clinical_event_days=30)
        [vital] = extract(classified, config, NOW).recent_vitals
        assert vital.value == "88"
        assert vital.recorded_at == NOW - timedelta(hours=1)

    def test_window_bound(self):
        classified = [_vital(0, "Heart rate", 130, 10), _vital(1, "Heart rate", 88, 1)]
        config = SummarizeConfig(vital_recent_hours=0.5, clinical_event_days=30)
        assert extract(classified, config, NOW).recent_vitals == []

    def test_window_edge_inclusive(self):
        [vital] = extract([_vital(0, "SpO2", 97, 6)], CONFIG, NOW).recent_vitals
        assert vital.name == "SpO2"

    def test_undated_vitals_excluded(self):
        assert extract([_vital(0, "SpO2", 97, None)], CONFIG, NOW).recent_vitals == []

    def test_same_timestamp_keeps_first_entry(self):
        classified = [_vital(0, "Heart rate", 70, 1), _vital(1, "Heart rate", 75, 1)]
        [vital] = extract(classified, CONFIG, NOW).recent_vitals
        assert vital.value == "70"

    def test_newest_first(self):
        classified = [
            _vital(0, "Heart rate", 70, 3),
            _vital(1, "SpO2", 97, 1),
            _vital(2, "Respiratory rate", 16, 2),
        ]
        names = [v.name for v in extract(classified, CONFIG, NOW).recent_vitals]
        assert names == ["SpO2", "Respiratory rate", "Heart rate"]


class TestWithinDays:
    def test_undated_always_inside(self):
        assert within_days(None, NOW, 0)

    def test_boundaries(self):
        assert within_days(NOW - timedelta(days=30), NOW, 30)
        assert not within_days(NOW - timedelta(days=30, seconds=1), NOW, 30)


class TestJoinDetails:
    def test_missing_parts_dropped(self):
        assert join_details(["5 mg", None, "", "Route: PO"]) == "5 mg | Route: PO"

    def test_nothing_to_join(self):
        assert join_details([None, ""]) is None
        assert join_details([]) is None
