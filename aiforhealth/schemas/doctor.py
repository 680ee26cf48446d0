from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List

from .appointment import AppointmentResponse
from .common import Pagination

class DoctorResponse(BaseModel):
    id: int
    user_id: int
    first_name: str
    last_name: str
    full_name: str
    email: Optional[str] = None
    specialization: str
    clinic_id: Optional[int] = None
    years_of_experience: Optional[int] = None
    qualification: Optional[str] = None
    bio: Optional[str] = None
    languages: Optional[List[str]] = None
    rating: Optional[float] = None
    consultation_fee: Optional[float] = None
    phone_number: Optional[str] = None
    is_available: bool

    class Config:
        from_attributes = True

class DoctorListResponse(BaseModel):
    doctors: List[DoctorResponse]
    pagination: Pagination

class DoctorAvailabilityUpdate(BaseModel):
    is_available: bool

class DoctorProfileUpdate(BaseModel):
    specialization: Optional[str] = Field(None, max_length=100)
    clinic_id: Optional[int] = None
    years_of_experience: Optional[int] = Field(None, ge=0, le=80)
    qualification: Optional[str] = Field(None, max_length=255)
    bio: Optional[str] = None
    languages: Optional[List[str]] = None
    consultation_fee: Optional[float] = Field(None, ge=0)
    phone_number: Optional[str] = Field(None, max_length=20)

class DoctorStats(BaseModel):
    today_appointments: int
    week_appointments: int
    month_appointments: int
    total_patients: int
    completed_appointments: int
    cancelled_appointments: int
    total_appointments: int

class DailyAppointments(BaseModel):
    count: int
    appointments: List[AppointmentResponse]

class PatientSummary(BaseModel):
    id: int
    full_name: str
    email: Optional[str] = None
    phone_number: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    last_visit: Optional[datetime] = None
    last_diagnosis: Optional[str] = None
    upcoming_appointment: Optional[datetime] = None
