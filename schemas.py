"""
Database Schemas for the Medication Schedule API

Stored models map to MongoDB collections. The collection name is the
lowercase class name (e.g., Medication -> "medication",
MedicationUsage -> "medicationusage").
"""
import re
from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MedicationType = Literal["pill", "liquid", "injection", "cream", "inhaler"]
ScheduleStatus = Literal["overdue", "due_now", "upcoming"]

TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


def normalize_time(value: str) -> str:
    """Validate a 24h time string and zero-pad it to HH:MM."""
    value = value.strip()
    if not TIME_PATTERN.match(value):
        raise ValueError(f"Invalid time format: {value}. Use HH:MM format")
    hours, minutes = value.split(":")
    return f"{int(hours):02d}:{minutes}"


REQUIRED_TEXT_LABELS = {
    "name": "Medication name",
    "dosage": "Dosage",
    "frequency": "Frequency",
}


def _not_blank(value: str, label: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError(f"{label} is required")
    return value


def _check_refill_date(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        refill = date.fromisoformat(value)
    except ValueError:
        raise ValueError("Invalid date format. Use YYYY-MM-DD")
    if refill < date.today():
        raise ValueError("Refill date cannot be in the past")
    return value


class Medication(BaseModel):
    """Medications configured by a person.
    Collection: medication
    """
    user_id: str = Field(..., description="Owner user ID")
    name: str = Field(..., description="Medication name")
    dosage: str = Field(..., description="Dosage, e.g. '1 pill' or '5ml'")
    type: MedicationType = Field(..., description="Form of the medication")
    frequency: str = Field(..., description="Free-text frequency, e.g. 'twice daily'")
    times: List[str] = Field(default_factory=list, description="Daily reminder times in HH:MM 24h format")
    instruction: Optional[str] = Field(None, description="How to take it, e.g. 'with food'")
    doctor: Optional[str] = Field(None, description="Prescribing doctor")
    pharmacy: Optional[str] = Field(None, description="Pharmacy")
    refill_date: Optional[str] = Field(None, description="Next refill date in YYYY-MM-DD")
    side_effects: Optional[str] = Field(None, description="Known side effects")
    is_active: bool = Field(True, description="Whether this medication is active")
    is_daily: bool = Field(True, description="True for daily medications, False for as-needed (PRN)")

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _not_blank(v, REQUIRED_TEXT_LABELS["name"])

    @field_validator("dosage")
    @classmethod
    def _dosage(cls, v: str) -> str:
        return _not_blank(v, REQUIRED_TEXT_LABELS["dosage"])

    @field_validator("frequency")
    @classmethod
    def _frequency(cls, v: str) -> str:
        return _not_blank(v, REQUIRED_TEXT_LABELS["frequency"])

    @field_validator("times")
    @classmethod
    def _times(cls, v: List[str]) -> List[str]:
        return [normalize_time(t) for t in v]

    @model_validator(mode="after")
    def _daily_needs_times(self):
        if self.is_daily and not self.times:
            raise ValueError("At least one time is required")
        return self


class MedicationCreate(Medication):
    @field_validator("refill_date")
    @classmethod
    def _refill(cls, v: Optional[str]) -> Optional[str]:
        return _check_refill_date(v)


class MedicationUpdate(BaseModel):
    """Partial update; only the fields that are set are written."""
    name: Optional[str] = None
    dosage: Optional[str] = None
    type: Optional[MedicationType] = None
    frequency: Optional[str] = None
    times: Optional[List[str]] = None
    instruction: Optional[str] = None
    doctor: Optional[str] = None
    pharmacy: Optional[str] = None
    refill_date: Optional[str] = None
    side_effects: Optional[str] = None
    is_active: Optional[bool] = None
    is_daily: Optional[bool] = None

    @field_validator("name", "dosage", "frequency")
    @classmethod
    def _required_text(cls, v: Optional[str], info) -> Optional[str]:
        if v is None:
            return v
        return _not_blank(v, REQUIRED_TEXT_LABELS[info.field_name])

    @field_validator("times")
    @classmethod
    def _times(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        return [normalize_time(t) for t in v]

    @field_validator("refill_date")
    @classmethod
    def _refill(cls, v: Optional[str]) -> Optional[str]:
        return _check_refill_date(v)


class MedicationOut(Medication):
    id: str


class MedicationUsage(BaseModel):
    """Log of an as-needed (or manually marked) dose.
    Collection: medicationusage
    """
    medication_id: str = Field(..., description="ID of the medication document")
    user_id: str = Field(..., description="Owner user ID")
    taken_at: datetime = Field(..., description="When the dose was taken")
    notes: Optional[str] = Field(None, description="Free-text notes")


class MedicationUsageOut(MedicationUsage):
    id: str


class CaregiverLink(BaseModel):
    """Read-only share link letting a caregiver view a user's schedule.
    Collection: caregiverlink
    """
    token: str = Field(..., description="Opaque share token")
    user_id: str = Field(..., description="User whose schedule is shared")
    read_only: bool = Field(True, description="Share links never allow writes")
    expires_at: Optional[str] = Field(None, description="ISO timestamp after which the link is dead")
    medication_ids: Optional[List[str]] = Field(None, description="Restrict to these medications")


class ScheduleItem(BaseModel):
    """One reminder slot in today's schedule. Never stored."""
    id: str
    medication_id: str
    name: str
    dosage: str
    type: MedicationType
    scheduled_time: str
    display_time: str
    status: ScheduleStatus
    instruction: Optional[str] = None
    is_daily: bool


class MedicationStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_medications: int = Field(0, alias="totalMedications")
    active_daily_medications: int = Field(0, alias="activeDailyMedications")
    active_prn_medications: int = Field(0, alias="activePrnMedications")
    total_reminders: int = Field(0, alias="totalReminders")
    overdue_medications: int = Field(0, alias="overdueMedications")
    medications_due_now: int = Field(0, alias="medicationsDueNow")
    prn_used_today: int = Field(0, alias="prnUsedToday")
