from pydantic import BaseModel, Field, field_validator
from datetime import datetime, date
from typing import Optional, List, Literal, Dict, Any

from ..models.appointment import AppointmentStatus, AppointmentType
from .common import Pagination, to_naive_utc

class AppointmentCreate(BaseModel):
    doctor_id: int
    patient_id: Optional[int] = None  # required when a doctor or admin books
    clinic_id: Optional[int] = None
    appointment_date: datetime
    duration: int = Field(30, ge=15, le=120)
    type: AppointmentType = AppointmentType.CONSULTATION
    reason: str = Field(..., min_length=5, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)
    is_emergency: bool = False

    @field_validator("appointment_date")
    @classmethod
    def normalize_date(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

class AppointmentUpdate(BaseModel):
    reason: Optional[str] = Field(None, min_length=5, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)
    type: Optional[AppointmentType] = None
    duration: Optional[int] = Field(None, ge=15, le=120)

class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus

class AppointmentCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)

class AppointmentReschedule(BaseModel):
    new_date: datetime
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("new_date")
    @classmethod
    def normalize_date(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

class AppointmentComplete(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)
    diagnosis: Optional[str] = Field(None, max_length=1000)
    prescription: Optional[str] = Field(None, max_length=1000)

class PersonSummary(BaseModel):
    id: int
    full_name: str
    email: Optional[str] = None

    class Config:
        from_attributes = True

class DoctorSummary(PersonSummary):
    specialization: str

class AppointmentResponse(BaseModel):
    id: int
    confirmation_number: str
    patient_id: int
    doctor_id: int
    clinic_id: Optional[int] = None
    appointment_date: datetime
    duration: int
    end_time: datetime
    status: AppointmentStatus
    type: AppointmentType
    reason: str
    notes: Optional[str] = None
    is_emergency: bool = False
    reminder_sent: bool = False
    diagnosis: Optional[str] = None
    prescription: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    reschedule_reason: Optional[str] = None
    rescheduled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    patient: Optional[PersonSummary] = None
    doctor: Optional[DoctorSummary] = None

    class Config:
        from_attributes = True

class AppointmentListResponse(BaseModel):
    appointments: List[AppointmentResponse]
    pagination: Pagination

class AvailabilityResponse(BaseModel):
    doctor_id: int
    start: datetime
    end: datetime
    available: bool
    conflicts: List[int] = []

class SlotsResponse(BaseModel):
    doctor_id: int
    date: date
    duration: int
    slots: List[datetime]

class AppointmentStats(BaseModel):
    total: int
    by_status: Dict[str, int]

class BulkItem(BaseModel):
    id: int
    reason: Optional[str] = None
    data: Optional[AppointmentComplete] = None

class BulkOperation(BaseModel):
    operation: Literal["cancel", "complete"]
    appointments: List[BulkItem] = Field(..., min_length=1, max_length=100)

class BulkFailure(BaseModel):
    id: int
    reason: str

class BulkResult(BaseModel):
    successful: List[AppointmentResponse]
    failed: List[BulkFailure]

class SweepResult(BaseModel):
    processed: int
    details: List[Dict[str, Any]] = []
