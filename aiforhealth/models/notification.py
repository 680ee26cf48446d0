from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, JSON, Enum as SQLEnum, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from datetime import datetime, timedelta
import enum

from ..core.config import settings
from ..core.database import Base

class NotificationType(str, enum.Enum):
    APPOINTMENT_REMINDER = "appointment_reminder"
    APPOINTMENT_CONFIRMATION = "appointment_confirmation"
    APPOINTMENT_CANCELLATION = "appointment_cancellation"
    APPOINTMENT_RESCHEDULED = "appointment_rescheduled"
    MISSED_APPOINTMENT = "missed_appointment"
    DOCTOR_ASSIGNED = "doctor_assigned"
    PRESCRIPTION_READY = "prescription_ready"
    TEST_RESULTS_READY = "test_results_ready"
    GENERAL_ANNOUNCEMENT = "general_announcement"

class NotificationStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    READ = "read"
    FAILED = "failed"

class NotificationChannel(str, enum.Enum):
    IN_APP = "in_app"
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"

def _default_expiry():
    return datetime.utcnow() + timedelta(days=settings.NOTIFICATION_EXPIRE_DAYS)

class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_status", "user_id", "status"),
        Index("ix_notifications_related", "related_kind", "related_id"),
        Index("ix_notifications_status_scheduled", "status", "scheduled_for"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String(100), nullable=False)
    message = Column(String(500), nullable=False)
    type = Column(SQLEnum(NotificationType), nullable=False)
    status = Column(SQLEnum(NotificationStatus), nullable=False, default=NotificationStatus.PENDING)
    channel = Column(SQLEnum(NotificationChannel), nullable=False, default=NotificationChannel.IN_APP)

    # Related entity, e.g. ("Appointment", 42)
    related_kind = Column(String(50), nullable=True)
    related_id = Column(Integer, nullable=True)
    meta = Column("metadata", JSON, default=dict)

    scheduled_for = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    sent_at = Column(DateTime, nullable=True)
    read_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=False, default=_default_expiry, index=True)

    created_at = Column(DateTime, server_default=func.now(), index=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User")

    @property
    def is_unread(self) -> bool:
        return self.read_at is None and self.status in (NotificationStatus.PENDING, NotificationStatus.SENT)

    def mark_read(self):
        if not self.read_at:
            self.read_at = datetime.utcnow()
        self.status = NotificationStatus.READ

    def mark_sent(self):
        self.status = NotificationStatus.SENT
        self.sent_at = datetime.utcnow()

    def __repr__(self):
        return f"<Notification(id={self.id}, user_id={self.user_id}, type='{self.type}')>"
