from sqlalchemy.orm import Session
from fastapi import HTTPException, status
from datetime import datetime
from typing import Optional, List, Tuple
import logging

from ..core.database import apply_changes
from ..core.security import UserRole
from ..models.appointment import Appointment
from ..models.doctor import Doctor
from ..models.health_metric import HealthMetric, MetricType, MetricTrend
from ..models.health_reminder import HealthReminder
from ..models.medication import Medication
from ..models.patient import Patient
from ..models.user import User
from ..schemas.health import (
    MedicationCreate, MedicationUpdate, ReminderCreate, ReminderUpdate,
    MetricCreate, MetricUpdate
)

logger = logging.getLogger(__name__)

def _page(query, order_by, page: int, limit: int):
    total = query.count()
    items = query.order_by(order_by).offset((page - 1) * limit).limit(limit).all()
    return items, total

class HealthService:
    def __init__(self, db: Session):
        self.db = db

    def _forbidden(self, detail: str = "Not authorized to access this record"):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)

    def _treats(self, doctor: Optional[Doctor], patient_id: int) -> bool:
        if not doctor:
            return False
        return self.db.query(Appointment.id).filter(
            Appointment.doctor_id == doctor.id,
            Appointment.patient_id == patient_id,
        ).first() is not None

    # Medications

    def _medication_query(self, user: User):
        query = self.db.query(Medication)
        if user.role == UserRole.PATIENT:
            patient_id = user.patient.id if user.patient else -1
            query = query.filter(Medication.patient_id == patient_id)
        elif user.role == UserRole.DOCTOR:
            doctor_id = user.doctor.id if user.doctor else -1
            query = query.filter(Medication.prescribed_by_id == doctor_id)
        return query

    def list_medications(
        self,
        user: User,
        active_only: bool = False,
        patient_id: Optional[int] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Medication], int]:
        query = self._medication_query(user)
        if active_only:
            query = query.filter(Medication.is_active == True)
        if patient_id is not None and user.role != UserRole.PATIENT:
            query = query.filter(Medication.patient_id == patient_id)
        return _page(query, Medication.start_date.desc(), page, limit)

    def get_medication(self, user: User, medication_id: int) -> Medication:
        medication = self._medication_query(user).filter(Medication.id == medication_id).first()
        if not medication:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Medication not found"
            )
        return medication

    def create_medication(self, user: User, data: MedicationCreate) -> Medication:
        patient = self.db.query(Patient).filter(Patient.id == data.patient_id).first()
        if not patient:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Patient not found"
            )

        if user.role == UserRole.DOCTOR:
            if not user.doctor:
                raise self._forbidden("Doctor profile not found")
            prescriber_id = user.doctor.id
        else:
            if data.prescribed_by_id is None:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="prescribed_by_id is required"
                )
            if not self.db.query(Doctor.id).filter(Doctor.id == data.prescribed_by_id).first():
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="Doctor not found"
                )
            prescriber_id = data.prescribed_by_id

        values = data.model_dump(exclude={"prescribed_by_id"}, exclude_none=True)
        medication = Medication(**values, prescribed_by_id=prescriber_id)
        if medication.remaining_doses is None and medication.total_doses is not None:
            medication.remaining_doses = medication.total_doses

        self.db.add(medication)
        self.db.commit()
        self.db.refresh(medication)
        logger.info("Medication %s prescribed to patient %s", medication.id, patient.id)
        return medication

    def update_medication(self, user: User, medication_id: int, data: MedicationUpdate) -> Medication:
        medication = self.get_medication(user, medication_id)
        changes = data.model_dump(exclude_unset=True)
        end_date = changes.get("end_date")
        if end_date and end_date <= medication.start_date:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="End date must be after start date"
            )
        apply_changes(medication, changes)
        self.db.commit()
        self.db.refresh(medication)
        return medication

    def delete_medication(self, user: User, medication_id: int) -> None:
        medication = self.get_medication(user, medication_id)
        self.db.delete(medication)
        self.db.commit()

    # Reminders

    def _reminder_query(self, user: User):
        query = self.db.query(HealthReminder)
        if user.role != UserRole.ADMIN:
            query = query.filter(HealthReminder.user_id == user.id)
        return query

    def list_reminders(
        self,
        user: User,
        include_completed: bool = False,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[HealthReminder], int]:
        query = self._reminder_query(user)
        if not include_completed:
            query = query.filter(HealthReminder.completed == False)
        return _page(query, HealthReminder.due_date.asc(), page, limit)

    def get_reminder(self, user: User, reminder_id: int) -> HealthReminder:
        reminder = self._reminder_query(user).filter(HealthReminder.id == reminder_id).first()
        if not reminder:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Reminder not found"
            )
        return reminder

    def create_reminder(self, user: User, data: ReminderCreate) -> HealthReminder:
        reminder = HealthReminder(
            user_id=user.id,
            title=data.title,
            description=data.description,
            type=data.type,
            priority=data.priority,
            due_date=data.due_date,
            ai_generated=data.ai_generated,
            related_type=data.related_type,
            related_id=data.related_id,
        )
        if data.recurring and data.recurring.enabled:
            reminder.recurring_enabled = True
            reminder.recurring_frequency = data.recurring.frequency
            reminder.recurring_interval = data.recurring.interval
            reminder.recurring_end_date = data.recurring.end_date

        self.db.add(reminder)
        self.db.commit()
        self.db.refresh(reminder)
        return reminder

    def _schedule_next(self, reminder: HealthReminder) -> Optional[HealthReminder]:
        next_due = reminder.next_due_date()
        if next_due is None:
            return None
        # Reopening and completing again must not queue a second follow-up
        existing = self.db.query(HealthReminder).filter(
            HealthReminder.user_id == reminder.user_id,
            HealthReminder.title == reminder.title,
            HealthReminder.type == reminder.type,
            HealthReminder.due_date == next_due,
            HealthReminder.id != reminder.id,
        ).first()
        if existing:
            return existing
        follow_up = HealthReminder(
            user_id=reminder.user_id,
            title=reminder.title,
            description=reminder.description,
            type=reminder.type,
            priority=reminder.priority,
            due_date=next_due,
            ai_generated=reminder.ai_generated,
            recurring_enabled=True,
            recurring_frequency=reminder.recurring_frequency,
            recurring_interval=reminder.recurring_interval,
            recurring_end_date=reminder.recurring_end_date,
            related_type=reminder.related_type,
            related_id=reminder.related_id,
        )
        self.db.add(follow_up)
        return follow_up

    def update_reminder(self, user: User, reminder_id: int, data: ReminderUpdate) -> HealthReminder:
        reminder = self.get_reminder(user, reminder_id)
        was_completed = reminder.completed
        apply_changes(reminder, data.model_dump(exclude_unset=True))

        if reminder.completed and not was_completed:
            reminder.completed_at = datetime.utcnow()
            self._schedule_next(reminder)
        elif not reminder.completed:
            reminder.completed_at = None

        self.db.commit()
        self.db.refresh(reminder)
        return reminder

    def complete_reminder(self, user: User, reminder_id: int) -> HealthReminder:
        return self.update_reminder(user, reminder_id, ReminderUpdate(completed=True))

    def delete_reminder(self, user: User, reminder_id: int) -> None:
        reminder = self.get_reminder(user, reminder_id)
        self.db.delete(reminder)
        self.db.commit()

    # Metrics

    def _can_see_user(self, user: User, owner_id: int) -> bool:
        if user.role == UserRole.ADMIN or user.id == owner_id:
            return True
        if user.role == UserRole.DOCTOR:
            patient = self.db.query(Patient).filter(Patient.user_id == owner_id).first()
            return bool(patient and self._treats(user.doctor, patient.id))
        return False

    def list_metrics(
        self,
        user: User,
        user_id: Optional[int] = None,
        metric_type: Optional[MetricType] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[HealthMetric], int]:
        owner_id = user_id if user_id is not None else user.id
        if not self._can_see_user(user, owner_id):
            raise self._forbidden()

        query = self.db.query(HealthMetric).filter(HealthMetric.user_id == owner_id)
        if metric_type:
            query = query.filter(HealthMetric.type == metric_type)
        return _page(query, HealthMetric.recorded_date.desc(), page, limit)

    def get_metric(self, user: User, metric_id: int) -> HealthMetric:
        metric = self.db.query(HealthMetric).filter(HealthMetric.id == metric_id).first()
        if not metric:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Health metric not found"
            )
        if not self._can_see_user(user, metric.user_id):
            raise self._forbidden()
        return metric

    def create_metric(self, user: User, data: MetricCreate) -> HealthMetric:
        owner_id = data.user_id if data.user_id is not None else user.id
        if owner_id != user.id and user.role == UserRole.PATIENT:
            raise self._forbidden("Patients can only record their own metrics")
        if not self._can_see_user(user, owner_id):
            raise self._forbidden()

        values = data.model_dump(exclude={"user_id"}, exclude_none=True)
        metric = HealthMetric(**values, user_id=owner_id, recorded_by_id=user.id)

        if metric.trend is None:
            previous = self.db.query(HealthMetric).filter(
                HealthMetric.user_id == owner_id,
                HealthMetric.type == data.type,
            ).order_by(HealthMetric.recorded_date.desc()).first()
            if previous:
                if data.value > previous.value:
                    metric.trend = MetricTrend.UP
                elif data.value < previous.value:
                    metric.trend = MetricTrend.DOWN
                else:
                    metric.trend = MetricTrend.STABLE

        self.db.add(metric)
        self.db.commit()
        self.db.refresh(metric)
        return metric

    def update_metric(self, user: User, metric_id: int, data: MetricUpdate) -> HealthMetric:
        metric = self.get_metric(user, metric_id)
        apply_changes(metric, data.model_dump(exclude_unset=True))
        self.db.commit()
        self.db.refresh(metric)
        return metric

    def delete_metric(self, user: User, metric_id: int) -> None:
        metric = self.get_metric(user, metric_id)
        if user.role == UserRole.DOCTOR and metric.recorded_by_id != user.id:
            raise self._forbidden("Doctors can only delete metrics they recorded")
        self.db.delete(metric)
        self.db.commit()
