from sqlalchemy.orm import Session
from sqlalchemy import or_
from fastapi import HTTPException, status
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List, Tuple
import logging

from ..core.config import settings
from ..models.notification import (
    Notification, NotificationType, NotificationStatus, NotificationChannel
)
from ..models.appointment import Appointment, AWAITING_STATUSES
from ..models.user import User
from .email_service import EmailService
from .sms_service import SmsService

logger = logging.getLogger(__name__)

APPOINTMENT_KIND = "Appointment"
MAX_BATCH = 100

def _when(appointment: Appointment) -> str:
    return appointment.appointment_date.strftime("%Y-%m-%d %H:%M")

def _doctor_name(appointment: Appointment) -> str:
    return f"Dr. {appointment.doctor.full_name}" if appointment.doctor else "your doctor"

class NotificationService:
    def __init__(
        self,
        db: Session,
        email_service: Optional[EmailService] = None,
        sms_service: Optional[SmsService] = None,
    ):
        self.db = db
        self.email_service = email_service or EmailService()
        self.sms_service = sms_service or SmsService()

    def create(
        self,
        user_id: int,
        title: str,
        message: str,
        type: NotificationType,
        channel: NotificationChannel = NotificationChannel.IN_APP,
        related_kind: Optional[str] = None,
        related_id: Optional[int] = None,
        meta: Optional[Dict[str, Any]] = None,
        scheduled_for: Optional[datetime] = None,
    ) -> Notification:
        """Queue a notification; the caller commits."""
        notification = Notification(
            user_id=user_id,
            title=title[:100],
            message=message[:500],
            type=type,
            channel=channel,
            status=NotificationStatus.PENDING,
            related_kind=related_kind,
            related_id=related_id,
            meta=meta or {},
            scheduled_for=scheduled_for or datetime.utcnow(),
        )
        self.db.add(notification)
        return notification

    # Inbox

    def _visible(self, user_id: int, now: datetime):
        return self.db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.scheduled_for <= now,
            Notification.expires_at > now,
        )

    def list_for_user(
        self,
        user_id: int,
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False,
    ) -> Tuple[List[Notification], int, int]:
        now = datetime.utcnow()
        unread_filter = (
            Notification.read_at.is_(None),
            Notification.status.in_([NotificationStatus.PENDING, NotificationStatus.SENT]),
        )
        query = self._visible(user_id, now)
        if unread_only:
            query = query.filter(*unread_filter)

        total = query.count()
        notifications = (
            query.order_by(Notification.scheduled_for.desc(), Notification.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        unread_count = self._visible(user_id, now).filter(*unread_filter).count()
        return notifications, total, unread_count

    def _get_own(self, notification_id: int, user_id: int) -> Notification:
        notification = self.db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        ).first()
        if not notification:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Notification not found"
            )
        return notification

    def mark_read(self, notification_id: int, user_id: int) -> Notification:
        notification = self._get_own(notification_id, user_id)
        notification.mark_read()
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def mark_all_read(self, user_id: int) -> int:
        now = datetime.utcnow()
        notifications = self._visible(user_id, now).filter(
            Notification.read_at.is_(None)
        ).all()
        for notification in notifications:
            notification.mark_read()
        self.db.commit()
        return len(notifications)

    def delete(self, notification_id: int, user_id: int) -> None:
        notification = self._get_own(notification_id, user_id)
        self.db.delete(notification)
        self.db.commit()

    # Appointment events

    def _for_appointment(
        self,
        appointment: Appointment,
        type: NotificationType,
        title: str,
        message: str,
        scheduled_for: Optional[datetime] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        data = {
            "confirmation_number": appointment.confirmation_number,
            "appointment_date": appointment.appointment_date.isoformat(),
        }
        data.update(meta or {})
        return self.create(
            user_id=appointment.patient.user_id,
            title=title,
            message=message,
            type=type,
            related_kind=APPOINTMENT_KIND,
            related_id=appointment.id,
            meta=data,
            scheduled_for=scheduled_for,
        )

    def appointment_confirmation(self, appointment: Appointment) -> Notification:
        return self._for_appointment(
            appointment,
            NotificationType.APPOINTMENT_CONFIRMATION,
            "Appointment Booked",
            f"Your appointment with {_doctor_name(appointment)} on {_when(appointment)} "
            f"is booked. Confirmation number: {appointment.confirmation_number}.",
        )

    def appointment_reminder(
        self, appointment: Appointment, now: Optional[datetime] = None
    ) -> Notification:
        """Reminder due REMINDER_LEAD_HOURS before the start, or now if that has passed."""
        now = now or datetime.utcnow()
        due = appointment.appointment_date - timedelta(hours=settings.REMINDER_LEAD_HOURS)
        appointment.reminder_sent = True
        return self._for_appointment(
            appointment,
            NotificationType.APPOINTMENT_REMINDER,
            "Appointment Reminder",
            f"Reminder: you have an appointment with {_doctor_name(appointment)} "
            f"on {_when(appointment)}.",
            scheduled_for=max(due, now),
        )

    def appointment_cancellation(
        self, appointment: Appointment, reason: Optional[str] = None
    ) -> Notification:
        self.drop_pending_reminders(appointment.id)
        message = f"Your appointment with {_doctor_name(appointment)} on {_when(appointment)} has been cancelled."
        if reason:
            message += f" Reason: {reason}"
        return self._for_appointment(
            appointment,
            NotificationType.APPOINTMENT_CANCELLATION,
            "Appointment Cancelled",
            message,
            meta={"reason": reason},
        )

    def appointment_rescheduled(
        self, appointment: Appointment, previous_date: datetime
    ) -> Notification:
        self.drop_pending_reminders(appointment.id)
        notification = self._for_appointment(
            appointment,
            NotificationType.APPOINTMENT_RESCHEDULED,
            "Appointment Rescheduled",
            f"Your appointment with {_doctor_name(appointment)} has been moved "
            f"from {previous_date.strftime('%Y-%m-%d %H:%M')} to {_when(appointment)}.",
            meta={"previous_date": previous_date.isoformat()},
        )
        self.appointment_reminder(appointment)
        return notification

    def missed_appointment(self, appointment: Appointment) -> Notification:
        self.drop_pending_reminders(appointment.id)
        return self._for_appointment(
            appointment,
            NotificationType.MISSED_APPOINTMENT,
            "Missed Appointment",
            f"You missed your appointment with {_doctor_name(appointment)} on "
            f"{_when(appointment)}. Please reschedule at your convenience.",
        )

    def drop_pending_reminders(self, appointment_id: int) -> int:
        return self.db.query(Notification).filter(
            Notification.related_kind == APPOINTMENT_KIND,
            Notification.related_id == appointment_id,
            Notification.type == NotificationType.APPOINTMENT_REMINDER,
            Notification.status == NotificationStatus.PENDING,
        ).delete(synchronize_session=False)

    # Background jobs

    def _deliver(self, notification: Notification) -> bool:
        user = self.db.query(User).filter(User.id == notification.user_id).first()
        if not user:
            return False

        if notification.channel == NotificationChannel.EMAIL:
            return self.email_service.send(user.email, notification.title, notification.message)

        if notification.channel == NotificationChannel.SMS:
            profile = user.patient or user.doctor
            phone = profile.phone_number if profile else None
            sent, error = self.sms_service.send(phone, f"{notification.title}: {notification.message}")
            if not sent:
                notification.meta = dict(notification.meta or {}, error=error)
            return sent

        # In-app and push notifications are delivered by being readable
        return True

    def process_pending(self, now: Optional[datetime] = None) -> Tuple[int, int]:
        """Deliver due pending notifications, at most MAX_BATCH per run."""
        now = now or datetime.utcnow()
        due = (
            self.db.query(Notification)
            .filter(
                Notification.status == NotificationStatus.PENDING,
                Notification.scheduled_for <= now,
                Notification.expires_at > now,
            )
            .order_by(Notification.scheduled_for)
            .limit(MAX_BATCH)
            .all()
        )

        failed = 0
        for notification in due:
            if self._deliver(notification):
                notification.mark_sent()
            else:
                notification.status = NotificationStatus.FAILED
                failed += 1

        self.db.commit()
        logger.info("Processed %d pending notifications, %d failed", len(due), failed)
        return len(due), failed

    def check_upcoming_appointments(self, now: Optional[datetime] = None) -> int:
        """Create reminders for soon-starting appointments that have none."""
        now = now or datetime.utcnow()
        window_end = now + timedelta(hours=settings.UPCOMING_REMINDER_WINDOW_HOURS)
        upcoming = self.db.query(Appointment).filter(
            Appointment.status.in_(AWAITING_STATUSES),
            Appointment.appointment_date > now,
            Appointment.appointment_date <= window_end,
            or_(Appointment.reminder_sent.is_(False), Appointment.reminder_sent.is_(None)),
        ).all()

        created = 0
        for appointment in upcoming:
            existing = self.db.query(Notification.id).filter(
                Notification.related_kind == APPOINTMENT_KIND,
                Notification.related_id == appointment.id,
                Notification.type == NotificationType.APPOINTMENT_REMINDER,
            ).first()
            if existing:
                appointment.reminder_sent = True
                continue
            self.appointment_reminder(appointment, now=now)
            created += 1

        self.db.commit()
        logger.info("Created %d appointment reminders", created)
        return created

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.utcnow()
        deleted = self.db.query(Notification).filter(
            Notification.expires_at <= now
        ).delete(synchronize_session=False)
        self.db.commit()
        logger.info("Purged %d expired notifications", deleted)
        return deleted
