from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Boolean, Enum as SQLEnum, event
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from datetime import datetime, timedelta
from typing import Optional
from dateutil.relativedelta import relativedelta
import enum

from ..core.database import Base

class ReminderType(str, enum.Enum):
    MEDICATION = "medication"
    CHECKUP = "checkup"
    EXERCISE = "exercise"
    DIET = "diet"
    APPOINTMENT = "appointment"
    CUSTOM = "custom"

class ReminderPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

class RecurrenceFrequency(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

class HealthReminder(Base):
    __tablename__ = "health_reminders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String(200), nullable=False)
    description = Column(String(1000), nullable=True)
    type = Column(SQLEnum(ReminderType), nullable=False, index=True)
    priority = Column(SQLEnum(ReminderPriority), nullable=False, default=ReminderPriority.MEDIUM, index=True)
    due_date = Column(DateTime, nullable=False, index=True)
    completed = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    ai_generated = Column(Boolean, default=False)

    # Recurrence
    recurring_enabled = Column(Boolean, default=False)
    recurring_frequency = Column(SQLEnum(RecurrenceFrequency), nullable=True)
    recurring_interval = Column(Integer, default=1)
    recurring_end_date = Column(DateTime, nullable=True)

    # Related entity: medication, appointment or metric
    related_type = Column(String(20), nullable=True)
    related_id = Column(Integer, nullable=True)

    notification_sent = Column(Boolean, default=False)
    snooze_until = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User")

    @property
    def is_overdue(self) -> bool:
        return not self.completed and self.due_date < datetime.utcnow()

    @property
    def is_snoozed(self) -> bool:
        return bool(self.snooze_until and self.snooze_until > datetime.utcnow())

    def next_due_date(self) -> Optional[datetime]:
        """Due date of the next occurrence, or None when the series has ended."""
        if not self.recurring_enabled or not self.recurring_frequency:
            return None
        interval = self.recurring_interval or 1
        frequency = RecurrenceFrequency(self.recurring_frequency)
        if frequency == RecurrenceFrequency.DAILY:
            next_due = self.due_date + timedelta(days=interval)
        elif frequency == RecurrenceFrequency.WEEKLY:
            next_due = self.due_date + timedelta(weeks=interval)
        elif frequency == RecurrenceFrequency.MONTHLY:
            next_due = self.due_date + relativedelta(months=interval)
        else:
            next_due = self.due_date + relativedelta(years=interval)
        if self.recurring_end_date and next_due > self.recurring_end_date:
            return None
        return next_due

    def __repr__(self):
        return f"<HealthReminder(id={self.id}, title='{self.title}', due='{self.due_date}')>"

@event.listens_for(HealthReminder, "before_insert")
@event.listens_for(HealthReminder, "before_update")
def _stamp_completion(mapper, connection, target):
    if target.completed and not target.completed_at:
        target.completed_at = datetime.utcnow()
