"""Classified FHIR resources: the intermediate form shared by every pipeline stage.

Each supported resource kind gets its own model, discriminated on ``kind``.
Instances are frozen; the ingestor builds them once per call and the
extractor and timeline builder only read them.
"""

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from triage_timeline.models.snapshot import ResourceReference


class ResourceKind(str, Enum):
    ENCOUNTER = "Encounter"
    PROCEDURE = "Procedure"
    CONDITION = "Condition"
    ALLERGY = "AllergyIntolerance"
    MEDICATION = "Medication"
    OBSERVATION = "Observation"
    DOCUMENT = "Document"
    FLAG = "Flag"
    PATIENT = "Patient"
    OTHER = "Other"


class ResourceBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str
    resource_type: str
    position: int
    status: str | None = None
    timestamp: datetime | None = None
    display: str | None = None
    reference: ResourceReference | None = None


class EncounterResource(ResourceBase):
    kind: Literal[ResourceKind.ENCOUNTER] = ResourceKind.ENCOUNTER
    reason: str | None = None


class ProcedureResource(ResourceBase):
    kind: Literal[ResourceKind.PROCEDURE] = ResourceKind.PROCEDURE
    outcome: str | None = None


class ConditionResource(ResourceBase):
    kind: Literal[ResourceKind.CONDITION] = ResourceKind.CONDITION
    severity_text: str | None = None
    severity_codes: list[str] = []
    categories: list[str] = []
    onset_at: datetime | None = None
    body_site: str | None = None


class AllergyResource(ResourceBase):
    kind: Literal[ResourceKind.ALLERGY] = ResourceKind.ALLERGY
    verification_status: str | None = None
    criticality: str | None = None
    reaction_severity: str | None = None
    manifestations: list[str] = []
    categories: list[str] = []


class MedicationResource(ResourceBase):
    kind: Literal[ResourceKind.MEDICATION] = ResourceKind.MEDICATION
    reason: str | None = None
    dosage: str | None = None


class ObservationResource(ResourceBase):
    kind: Literal[ResourceKind.OBSERVATION] = ResourceKind.OBSERVATION
    categories: list[str] = []
    codes: list[str] = []
    value_text: str | None = None
    numeric_value: float | None = None
    blood_pressure: tuple[float, float] | None = None
    interpretation: list[str] = []
    vital_name: str | None = None
    is_code_status: bool = False


class DocumentResource(ResourceBase):
    kind: Literal[ResourceKind.DOCUMENT] = ResourceKind.DOCUMENT
    description: str | None = None
    attachment_title: str | None = None
    is_note: bool = False


class FlagResource(ResourceBase):
    kind: Literal[ResourceKind.FLAG] = ResourceKind.FLAG
    category: str | None = None
    priority: str | None = None
    is_code_status: bool = False


class PatientResource(ResourceBase):
    kind: Literal[ResourceKind.PATIENT] = ResourceKind.PATIENT
    birth_date: date | None = None
    gender: str | None = None


class OtherResource(ResourceBase):
    kind: Literal[ResourceKind.OTHER] = ResourceKind.OTHER


ClassifiedResource = Annotated[
    Union[
        EncounterResource,
        ProcedureResource,
        ConditionResource,
        AllergyResource,
        MedicationResource,
        ObservationResource,
        DocumentResource,
        FlagResource,
        PatientResource,
        OtherResource,
    ],
    Field(discriminator="kind"),
]
