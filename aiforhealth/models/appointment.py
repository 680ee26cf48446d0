from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, Text, Enum as SQLEnum, event
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from datetime import datetime, timedelta
import enum
import secrets
import string
import time

from ..core.database import Base

class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    MISSED = "missed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"

class AppointmentType(str, enum.Enum):
    CONSULTATION = "consultation"
    FOLLOW_UP = "follow_up"
    EMERGENCY = "emergency"
    ROUTINE_CHECKUP = "routine_checkup"
    SPECIALIST = "specialist"
    TELEMEDICINE = "telemedicine"

# Statuses that hold the doctor's time slot
ACTIVE_STATUSES = (
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.RESCHEDULED,
    AppointmentStatus.IN_PROGRESS,
)

# Statuses still waiting for the visit to start
AWAITING_STATUSES = (
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.RESCHEDULED,
)

ALLOWED_TRANSITIONS = {
    AppointmentStatus.SCHEDULED: {
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.RESCHEDULED,
        AppointmentStatus.MISSED,
        AppointmentStatus.IN_PROGRESS,
    },
    AppointmentStatus.CONFIRMED: {
        AppointmentStatus.IN_PROGRESS,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.RESCHEDULED,
        AppointmentStatus.MISSED,
    },
    AppointmentStatus.RESCHEDULED: {
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.IN_PROGRESS,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.RESCHEDULED,
        AppointmentStatus.MISSED,
    },
    AppointmentStatus.MISSED: {
        AppointmentStatus.RESCHEDULED,
        AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.IN_PROGRESS: {
        AppointmentStatus.COMPLETED,
    },
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
}

_BASE36 = string.digits + string.ascii_uppercase

def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits)) or "0"

def generate_confirmation_number() -> str:
    """Human readable booking reference, e.g. APT-LZ3K9QW1-4F7A2B."""
    timestamp = _to_base36(int(time.time() * 1000))
    random_part = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"APT-{timestamp}-{random_part}"

class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    confirmation_number = Column(String(40), unique=True, nullable=False, default=generate_confirmation_number)

    # Relationships
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=True)

    # Appointment details
    appointment_date = Column(DateTime, nullable=False, index=True)
    duration = Column(Integer, nullable=False, default=30)
    end_time = Column(DateTime, nullable=False, index=True)
    status = Column(SQLEnum(AppointmentStatus), default=AppointmentStatus.SCHEDULED, nullable=False, index=True)
    type = Column(SQLEnum(AppointmentType), default=AppointmentType.CONSULTATION, nullable=False)
    reason = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    is_emergency = Column(Boolean, default=False)
    reminder_sent = Column(Boolean, default=False)

    # Outcome
    diagnosis = Column(Text, nullable=True)
    prescription = Column(Text, nullable=True)

    # Tracking
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    cancellation_reason = Column(String(500), nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    reschedule_reason = Column(String(500), nullable=True)
    rescheduled_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    patient = relationship("Patient", back_populates="appointments")
    doctor = relationship("Doctor", back_populates="appointments")
    clinic = relationship("Clinic", back_populates="appointments")

    def hours_until_start(self, now: datetime = None) -> float:
        now = now or datetime.utcnow()
        return (self.appointment_date - now).total_seconds() / 3600

    def can_transition_to(self, new_status: AppointmentStatus) -> bool:
        return AppointmentStatus(new_status) in ALLOWED_TRANSITIONS[AppointmentStatus(self.status)]

    def can_be_cancelled(self, notice_hours: int = 2, now: datetime = None) -> bool:
        """Notice only applies while the visit is still ahead."""
        if not self.can_transition_to(AppointmentStatus.CANCELLED):
            return False
        return self.status not in AWAITING_STATUSES or self.hours_until_start(now) >= notice_hours

    def can_be_rescheduled(self, notice_hours: int = 4, now: datetime = None) -> bool:
        if not self.can_transition_to(AppointmentStatus.RESCHEDULED):
            return False
        return self.status not in AWAITING_STATUSES or self.hours_until_start(now) >= notice_hours

    def is_past_due(self, now: datetime = None) -> bool:
        """Still waiting for the visit although its slot has already ended."""
        now = now or datetime.utcnow()
        return self.status in AWAITING_STATUSES and self.computed_end_time() <= now

    def computed_end_time(self) -> datetime:
        return self.appointment_date + timedelta(minutes=self.duration or 30)

    def __repr__(self):
        return f"<Appointment(id={self.id}, patient_id={self.patient_id}, doctor_id={self.doctor_id}, date='{self.appointment_date}')>"

@event.listens_for(Appointment, "before_insert")
@event.listens_for(Appointment, "before_update")
def _sync_end_time(mapper, connection, target):
    if target.duration is None:
        target.duration = 30
    target.end_time = target.computed_end_time()
