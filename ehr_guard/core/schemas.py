"""Pydantic schemas for API I/O."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from ehr_guard.core.models import AppointmentStatus, UserRole


class _Update(BaseModel):
    """Partial update; unknown fields are rejected rather than ignored."""

    model_config = ConfigDict(extra="forbid")


# --- User ---

class UserCreate(BaseModel):
    auth_ref: str
    username: str
    email: str
    role: UserRole = UserRole.staff
    first_name: str
    middle_name: Optional[str] = None
    last_name: str
    phone: Optional[str] = None
    npi: Optional[str] = None
    specialty: Optional[str] = None
    license_number: Optional[str] = None
    provider_bio: Optional[str] = None


class UserUpdate(_Update):
    username: Optional[str] = None
    email: Optional[str] = None
    role: Optional[UserRole] = None
    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    is_active: Optional[bool] = None
    npi: Optional[str] = None
    specialty: Optional[str] = None
    license_number: Optional[str] = None
    provider_bio: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    username: str
    email: str
    role: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    is_active: bool
    npi: Optional[str] = None
    specialty: Optional[str] = None
    created_at: datetime


# --- Patient ---

class PatientCreate(BaseModel):
    first_name: str
    middle_name: Optional[str] = None
    last_name: str
    date_of_birth: date
    gender: str
    primary_provider_id: Optional[uuid.UUID] = None
    auth_ref: Optional[str] = None
    external_id: Optional[str] = None
    email: Optional[str] = None
    phone_home: Optional[str] = None
    phone_cell: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    emergency_contact_relationship: Optional[str] = None
    insurance_provider: Optional[str] = None
    insurance_id: Optional[str] = None
    referral_source: Optional[str] = None
    presenting_problem: Optional[str] = None
    portal_access_enabled: bool = True


class PatientUpdate(_Update):
    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    primary_provider_id: Optional[uuid.UUID] = None
    auth_ref: Optional[str] = None
    external_id: Optional[str] = None
    email: Optional[str] = None
    phone_home: Optional[str] = None
    phone_cell: Optional[str] = None
    phone_work: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    emergency_contact_relationship: Optional[str] = None
    insurance_provider: Optional[str] = None
    insurance_id: Optional[str] = None
    insurance_group: Optional[str] = None
    referral_source: Optional[str] = None
    presenting_problem: Optional[str] = None
    previous_treatment: Optional[bool] = None
    previous_treatment_details: Optional[str] = None
    current_medications: Optional[str] = None
    medication_allergies: Optional[str] = None
    safety_risk_assessment: Optional[str] = None
    portal_access_enabled: Optional[bool] = None
    portal_terms_accepted: Optional[bool] = None


class PatientRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    primary_provider_id: Optional[uuid.UUID] = None
    first_name: str
    last_name: str
    date_of_birth: date
    gender: str
    email: Optional[str] = None
    phone_cell: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    presenting_problem: Optional[str] = None
    portal_access_enabled: bool
    portal_terms_accepted: bool
    created_at: datetime
    updated_at: Optional[datetime] = None


# --- Appointment ---

class AppointmentCreate(BaseModel):
    patient_id: uuid.UUID
    provider_id: uuid.UUID
    appointment_type: str
    start_time: datetime
    end_time: datetime
    duration: int = Field(gt=0)
    status: AppointmentStatus = AppointmentStatus.scheduled
    location: Optional[str] = None
    room: Optional[str] = None
    notes: Optional[str] = None
    is_telehealth: bool = False
    telehealth_url: Optional[str] = None
    telehealth_provider: Optional[str] = None
    billing_code: Optional[str] = None


class AppointmentUpdate(_Update):
    provider_id: Optional[uuid.UUID] = None
    appointment_type: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[int] = Field(default=None, gt=0)
    status: Optional[AppointmentStatus] = None
    cancellation_reason: Optional[str] = None
    location: Optional[str] = None
    room: Optional[str] = None
    notes: Optional[str] = None
    is_telehealth: Optional[bool] = None
    telehealth_url: Optional[str] = None
    telehealth_provider: Optional[str] = None
    billing_status: Optional[str] = None
    billing_code: Optional[str] = None
    billing_amount: Optional[Decimal] = None
    copay_amount: Optional[Decimal] = None


class AppointmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    patient_id: uuid.UUID
    provider_id: uuid.UUID
    appointment_type: str
    start_time: datetime
    end_time: datetime
    duration: int
    status: str
    cancellation_reason: Optional[str] = None
    location: Optional[str] = None
    room: Optional[str] = None
    notes: Optional[str] = None
    is_telehealth: bool = False
    billing_status: str = "unbilled"
    created_at: datetime


class FollowupRequest(BaseModel):
    days_until_followup: Optional[int] = Field(default=None, ge=1, le=365)


# --- Clinical Note ---

class ClinicalNoteCreate(BaseModel):
    patient_id: uuid.UUID
    provider_id: uuid.UUID
    appointment_id: Optional[uuid.UUID] = None
    note_type: str  # soap, progress, intake, discharge
    subjective: Optional[str] = None
    objective: Optional[str] = None
    assessment: Optional[str] = None
    plan: Optional[str] = None
    diagnosis_codes: Optional[list[str]] = None
    treatment_goals: Optional[str] = None
    interventions: Optional[str] = None
    mental_status: Optional[str] = None
    risk_assessment: Optional[str] = None


class ClinicalNoteUpdate(_Update):
    note_type: Optional[str] = None
    subjective: Optional[str] = None
    objective: Optional[str] = None
    assessment: Optional[str] = None
    plan: Optional[str] = None
    diagnosis_codes: Optional[list[str]] = None
    treatment_goals: Optional[str] = None
    interventions: Optional[str] = None
    mental_status: Optional[str] = None
    risk_assessment: Optional[str] = None


class NoteSignRequest(BaseModel):
    signature: str = Field(min_length=1)


class ClinicalNoteRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    patient_id: uuid.UUID
    provider_id: uuid.UUID
    appointment_id: Optional[uuid.UUID] = None
    note_type: str
    subjective: Optional[str] = None
    objective: Optional[str] = None
    assessment: Optional[str] = None
    plan: Optional[str] = None
    diagnosis_codes: Optional[list] = None
    is_signed: bool = False
    signed_at: Optional[datetime] = None
    is_locked: bool = False
    locked_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


# --- Care Plan ---

class CarePlanCreate(BaseModel):
    patient_id: uuid.UUID
    provider_id: uuid.UUID
    title: str
    start_date: date
    end_date: Optional[date] = None
    status: str = "active"
    presenting_problems: Optional[str] = None
    goals: Optional[list[Any]] = None
    interventions: Optional[list[Any]] = None
    progress_measures: Optional[str] = None
    review_frequency: Optional[str] = None
    next_review_date: Optional[date] = None
    notes: Optional[str] = None


class CarePlanUpdate(_Update):
    title: Optional[str] = None
    end_date: Optional[date] = None
    status: Optional[str] = None
    presenting_problems: Optional[str] = None
    goals: Optional[list[Any]] = None
    interventions: Optional[list[Any]] = None
    progress_measures: Optional[str] = None
    review_frequency: Optional[str] = None
    next_review_date: Optional[date] = None
    notes: Optional[str] = None


class CarePlanRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    patient_id: uuid.UUID
    provider_id: uuid.UUID
    title: str
    start_date: date
    end_date: Optional[date] = None
    status: str
    goals: Optional[list] = None
    interventions: Optional[list] = None
    next_review_date: Optional[date] = None
    created_at: datetime


# --- Medication ---

class MedicationCreate(BaseModel):
    patient_id: uuid.UUID
    provider_id: uuid.UUID
    medication_name: str
    dosage: str
    frequency: str
    start_date: date
    end_date: Optional[date] = None
    status: str = "active"
    reason: Optional[str] = None
    instructions: Optional[str] = None
    pharmacy_name: Optional[str] = None
    pharmacy_phone: Optional[str] = None
    is_prescribed: bool = True


class MedicationUpdate(_Update):
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    end_date: Optional[date] = None
    status: Optional[str] = None
    reason: Optional[str] = None
    instructions: Optional[str] = None
    side_effects: Optional[str] = None
    pharmacy_name: Optional[str] = None
    pharmacy_phone: Optional[str] = None


class MedicationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    patient_id: uuid.UUID
    provider_id: uuid.UUID
    medication_name: str
    dosage: str
    frequency: str
    start_date: date
    end_date: Optional[date] = None
    status: str
    instructions: Optional[str] = None
    created_at: datetime


# --- Assessment ---

class AssessmentCreate(BaseModel):
    patient_id: uuid.UUID
    provider_id: uuid.UUID
    assessment_type: str  # PHQ-9, GAD-7, ...
    assessment_date: date
    score: Optional[int] = Field(default=None, ge=0)
    interpretation: Optional[str] = None
    responses: Optional[dict[str, Any]] = None
    notes: Optional[str] = None


class AssessmentUpdate(_Update):
    score: Optional[int] = Field(default=None, ge=0)
    interpretation: Optional[str] = None
    responses: Optional[dict[str, Any]] = None
    notes: Optional[str] = None


class AssessmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    patient_id: uuid.UUID
    provider_id: uuid.UUID
    assessment_type: str
    assessment_date: date
    score: Optional[int] = None
    interpretation: Optional[str] = None
    created_at: datetime


# --- Audit ---

class AuditRecordRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    table_name: str
    record_id: uuid.UUID
    action: str
    changed_data: Optional[dict] = None
    previous_data: Optional[dict] = None
    changed_by: Optional[uuid.UUID] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime


# --- Summary / identity ---

class MedicationBrief(BaseModel):
    name: str
    dosage: str
    frequency: str


class AssessmentBrief(BaseModel):
    assessment_type: str
    assessment_date: date
    score: Optional[int] = None


class PatientSummary(BaseModel):
    patient_id: uuid.UUID
    patient_name: str
    date_of_birth: date
    age: int
    primary_provider: Optional[str] = None
    last_appointment: Optional[datetime] = None
    next_appointment: Optional[datetime] = None
    active_medications: list[MedicationBrief] = Field(default_factory=list)
    recent_assessments: list[AssessmentBrief] = Field(default_factory=list)  # newest first, at most 5
    care_plan_status: Optional[str] = None


class PrincipalRead(BaseModel):
    auth_ref: str
    role: str
    user_id: Optional[uuid.UUID] = None
    patient_id: Optional[uuid.UUID] = None
    display_name: str
    caseload_size: int = 0
