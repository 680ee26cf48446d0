from sqlalchemy import Column, Integer, String, DateTime, Boolean, Float, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from datetime import datetime, time, timedelta
from typing import Optional, Tuple

from ..core.database import Base

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

def default_opening_hours() -> dict:
    weekday = {"open": "08:00", "close": "18:00"}
    return {
        "monday": dict(weekday),
        "tuesday": dict(weekday),
        "wednesday": dict(weekday),
        "thursday": dict(weekday),
        "friday": dict(weekday),
        "saturday": {"open": "09:00", "close": "17:00"},
        "sunday": {"open": "10:00", "close": "16:00"},
    }

def parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))

class Clinic(Base):
    __tablename__ = "clinics"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    address = Column(String(200), nullable=False)
    phone = Column(String(20), nullable=False)
    rating = Column(Float, nullable=False, default=4.0)
    specialties = Column(JSON, default=list)
    image = Column(String(255), nullable=True)
    is_open = Column(Boolean, default=True)
    opening_hours = Column(JSON, default=default_opening_hours)

    # Location
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    doctors = relationship("Doctor", back_populates="clinic")
    appointments = relationship("Appointment", back_populates="clinic")

    def hours_for(self, day: datetime) -> Optional[Tuple[time, time]]:
        """Opening and closing time on the weekday of ``day``, or None when closed."""
        hours = (self.opening_hours or default_opening_hours()).get(WEEKDAYS[day.weekday()])
        if not hours:
            return None
        return parse_hhmm(hours["open"]), parse_hhmm(hours["close"])

    def is_open_at(self, start: datetime, duration_minutes: int) -> bool:
        """True when [start, start + duration) fits inside that day's opening hours."""
        if not self.is_open:
            return False
        hours = self.hours_for(start)
        if hours is None:
            return False
        opens, closes = hours
        end = start + timedelta(minutes=duration_minutes)
        day_open = datetime.combine(start.date(), opens)
        day_close = datetime.combine(start.date(), closes)
        return day_open <= start and end <= day_close

    def __repr__(self):
        return f"<Clinic(id={self.id}, name='{self.name}')>"
