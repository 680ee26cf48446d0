from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, List, Dict
import re

from .common import Pagination

PHONE_PATTERN = r"^\+?[1-9]\d{0,15}$"
HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

class OpeningHours(BaseModel):
    open: str
    close: str

    @field_validator("open", "close")
    @classmethod
    def check_format(cls, v: str) -> str:
        if not HHMM.match(v):
            raise ValueError("Time must be formatted as HH:MM")
        return v

def _check_hours(hours: Optional[Dict[str, Optional[OpeningHours]]]):
    if hours is None:
        return hours
    weekdays = {"monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"}
    unknown = set(hours) - weekdays
    if unknown:
        raise ValueError(f"Unknown weekdays: {sorted(unknown)}")
    for day, value in hours.items():
        if value is not None and value.open >= value.close:
            raise ValueError(f"Opening time must be before closing time on {day}")
    return hours

class ClinicBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    address: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., pattern=PHONE_PATTERN)
    rating: float = Field(4.0, ge=0, le=5)
    specialties: List[str] = Field(..., min_length=1)
    image: Optional[str] = None
    is_open: bool = True
    opening_hours: Optional[Dict[str, Optional[OpeningHours]]] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

    @field_validator("specialties")
    @classmethod
    def check_specialties(cls, v: List[str]) -> List[str]:
        cleaned = [s.strip() for s in v]
        for specialty in cleaned:
            if not 2 <= len(specialty) <= 50:
                raise ValueError("Each specialty must be between 2 and 50 characters")
        return cleaned

    @field_validator("opening_hours")
    @classmethod
    def check_hours(cls, v):
        return _check_hours(v)

class ClinicCreate(ClinicBase):
    pass

class ClinicUpdate(ClinicBase):
    pass

class ClinicResponse(BaseModel):
    id: int
    name: str
    address: str
    phone: str
    rating: float
    specialties: List[str]
    image: Optional[str] = None
    is_open: bool
    opening_hours: Optional[Dict[str, Optional[OpeningHours]]] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ClinicListResponse(BaseModel):
    clinics: List[ClinicResponse]
    pagination: Pagination
