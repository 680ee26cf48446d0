from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime
from typing import Optional, List

from ..models.health_metric import MetricType, MetricStatus, MetricTrend
from ..models.health_reminder import ReminderType, ReminderPriority, RecurrenceFrequency
from .common import Pagination, to_naive_utc

# Medications

class MedicationCreate(BaseModel):
    patient_id: int
    prescribed_by_id: Optional[int] = None  # admins prescribe on behalf of a doctor
    name: str = Field(..., min_length=1, max_length=100)
    dosage: str = Field(..., min_length=1, max_length=50)
    frequency: str = Field(..., min_length=1, max_length=100)
    instructions: Optional[str] = Field(None, max_length=500)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    next_dose: Optional[datetime] = None
    total_doses: Optional[int] = Field(None, ge=0)
    remaining_doses: Optional[int] = Field(None, ge=0)
    side_effects: List[str] = []
    notes: Optional[str] = None

    @field_validator("start_date", "end_date", "next_dose")
    @classmethod
    def normalize(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v) if v else v

    @model_validator(mode="after")
    def end_after_start(self):
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self

class MedicationUpdate(BaseModel):
    dosage: Optional[str] = Field(None, min_length=1, max_length=50)
    frequency: Optional[str] = Field(None, min_length=1, max_length=100)
    instructions: Optional[str] = Field(None, max_length=500)
    end_date: Optional[datetime] = None
    next_dose: Optional[datetime] = None
    remaining_doses: Optional[int] = Field(None, ge=0)
    side_effects: Optional[List[str]] = None
    is_active: Optional[bool] = None
    notes: Optional[str] = None

    @field_validator("end_date", "next_dose")
    @classmethod
    def normalize(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v) if v else v

class MedicationResponse(BaseModel):
    id: int
    patient_id: int
    prescribed_by_id: int
    name: str
    dosage: str
    frequency: str
    instructions: Optional[str] = None
    start_date: datetime
    end_date: Optional[datetime] = None
    next_dose: Optional[datetime] = None
    remaining_doses: Optional[int] = None
    total_doses: Optional[int] = None
    side_effects: Optional[List[str]] = None
    is_active: bool
    is_expired: bool
    is_due: bool
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class MedicationListResponse(BaseModel):
    medications: List[MedicationResponse]
    pagination: Pagination

# Reminders

class ReminderRecurrence(BaseModel):
    enabled: bool = False
    frequency: Optional[RecurrenceFrequency] = None
    interval: int = Field(1, ge=1, le=365)
    end_date: Optional[datetime] = None

    @model_validator(mode="after")
    def frequency_required(self):
        if self.enabled and not self.frequency:
            raise ValueError("A recurring reminder needs a frequency")
        return self

class ReminderCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    type: ReminderType
    priority: ReminderPriority = ReminderPriority.MEDIUM
    due_date: datetime
    ai_generated: bool = False
    recurring: Optional[ReminderRecurrence] = None
    related_type: Optional[str] = Field(None, pattern=r"^(medication|appointment|metric)$")
    related_id: Optional[int] = None

    @field_validator("due_date")
    @classmethod
    def normalize(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

class ReminderUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    priority: Optional[ReminderPriority] = None
    due_date: Optional[datetime] = None
    completed: Optional[bool] = None
    snooze_until: Optional[datetime] = None

    @field_validator("due_date", "snooze_until")
    @classmethod
    def normalize(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v) if v else v

class ReminderResponse(BaseModel):
    id: int
    user_id: int
    title: str
    description: Optional[str] = None
    type: ReminderType
    priority: ReminderPriority
    due_date: datetime
    completed: bool
    completed_at: Optional[datetime] = None
    ai_generated: bool = False
    recurring_enabled: bool = False
    recurring_frequency: Optional[RecurrenceFrequency] = None
    recurring_interval: Optional[int] = None
    recurring_end_date: Optional[datetime] = None
    related_type: Optional[str] = None
    related_id: Optional[int] = None
    snooze_until: Optional[datetime] = None
    is_overdue: bool
    is_snoozed: bool

    class Config:
        from_attributes = True

class ReminderListResponse(BaseModel):
    reminders: List[ReminderResponse]
    pagination: Pagination

# Metrics

class MetricCreate(BaseModel):
    user_id: Optional[int] = None  # staff recording for a patient's user account
    type: MetricType
    name: str = Field(..., min_length=1, max_length=100)
    value: float = Field(..., ge=0)
    unit: str = Field(..., min_length=1, max_length=20)
    status: Optional[MetricStatus] = None
    trend: Optional[MetricTrend] = None
    recorded_date: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=500)
    related_appointment_id: Optional[int] = None
    reference_min: Optional[float] = None
    reference_max: Optional[float] = None
    reference_unit: Optional[str] = Field(None, max_length=20)
    device_name: Optional[str] = Field(None, max_length=100)
    device_model: Optional[str] = Field(None, max_length=100)
    device_accuracy: Optional[str] = Field(None, max_length=50)

    @field_validator("recorded_date")
    @classmethod
    def normalize(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v) if v else v

    @model_validator(mode="after")
    def check_range(self):
        if (
            self.reference_min is not None
            and self.reference_max is not None
            and self.reference_min > self.reference_max
        ):
            raise ValueError("reference_min must not exceed reference_max")
        return self

class MetricUpdate(BaseModel):
    value: Optional[float] = Field(None, ge=0)
    status: Optional[MetricStatus] = None
    trend: Optional[MetricTrend] = None
    notes: Optional[str] = Field(None, max_length=500)

class MetricResponse(BaseModel):
    id: int
    user_id: int
    recorded_by_id: Optional[int] = None
    related_appointment_id: Optional[int] = None
    type: MetricType
    name: str
    value: float
    unit: str
    status: MetricStatus
    trend: Optional[MetricTrend] = None
    recorded_date: datetime
    notes: Optional[str] = None
    reference_min: Optional[float] = None
    reference_max: Optional[float] = None
    reference_unit: Optional[str] = None
    device_name: Optional[str] = None
    device_model: Optional[str] = None
    device_accuracy: Optional[str] = None
    is_normal: bool
    formatted_value: str

    class Config:
        from_attributes = True

class MetricListResponse(BaseModel):
    metrics: List[MetricResponse]
    pagination: Pagination
